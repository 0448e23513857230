from typing import Any, Dict, Optional

from fastapi import Request

from models.session_models import GuardDecision, Role, StoreKey
from services.role_resolver import try_resolve_role
from services.route_guard import PortalRouteGuard
from services.session_store import SessionStore


async def enter_portal(request: Request, required_role: Role) -> GuardDecision:
    """Run the route guard for a portal request and persist any corrections.

    Args:
        request: FastAPI Request (used to access app.state.session_store).
        required_role: Role the requested portal is reserved for.

    Returns:
        The guard decision: admitted, or a redirect target.
    """
    store: SessionStore = request.app.state.session_store
    guard = PortalRouteGuard(store)
    decision = guard.enter(required_role, context=request.url.path)
    await store.persist()
    return decision


def portal_view(request: Request, decision: GuardDecision) -> Dict[str, Any]:
    """Describe the admitted portal view."""
    store: SessionStore = request.app.state.session_store
    role = decision.required_role
    return {
        "view": f"{role.value}-portal",
        "role": role.value,
        "role_id": store.role_id(role),
        "username": store.get(StoreKey.USERNAME),
    }


def public_view(request: Request, name: str) -> Dict[str, Any]:
    """Describe an unguarded view, pointing signed-in users at their portal."""
    store: SessionStore = request.app.state.session_store
    token = store.get(StoreKey.AUTH_TOKEN)
    role: Optional[Role] = try_resolve_role(store.get(StoreKey.HOME_DATA)) if token else None
    return {
        "view": name,
        "authenticated": bool(token),
        "portal": role.portal_path if role else None,
    }
