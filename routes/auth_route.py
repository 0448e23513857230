"""FastAPI routes for login, registration and logout."""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from controllers.auth_controller import login, logout, register

router = APIRouter(prefix="/api", tags=["auth"])


class LoginPayload(BaseModel):
    username: str
    password: str


class RegisterPayload(BaseModel):
    kind: str
    username: str
    password: str
    person: Dict[str, Any] = Field(default_factory=dict)


@router.post("/login")
async def login_route(request: Request, payload: LoginPayload):
    try:
        return await login(request, payload.username, payload.password)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/register")
async def register_route(request: Request, payload: RegisterPayload):
    try:
        return await register(request, payload.kind, payload.username, payload.password, payload.person)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.post("/logout")
async def logout_route(request: Request):
    try:
        return await logout(request)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
