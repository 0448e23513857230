"""Client-side navigation surface: public pages and guarded portals."""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse

from controllers.portal_controller import enter_portal, portal_view, public_view
from models.session_models import Role

router = APIRouter(tags=["portal"])


@router.get("/")
async def home_page(request: Request):
    return public_view(request, "home")


@router.get("/login")
async def login_page(request: Request):
    return public_view(request, "login")


@router.get("/register")
async def register_page(request: Request):
    return public_view(request, "register")


def _portal_endpoint(required_role: Role):
    async def portal_page(request: Request):
        """Admit the portal for its role, otherwise redirect to login or the caller's own portal."""
        try:
            decision = await enter_portal(request, required_role)
        except HTTPException:
            raise
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if not decision.admitted:
            return RedirectResponse(decision.redirect_to, status_code=303)
        return portal_view(request, decision)

    portal_page.__name__ = f"{required_role.value}_portal_page"
    return portal_page


for _role in Role:
    router.add_api_route(_role.portal_path, _portal_endpoint(_role), methods=["GET"])


@router.get("/{unknown_path:path}", include_in_schema=False)
async def unknown_page(unknown_path: str):
    return RedirectResponse("/", status_code=303)
