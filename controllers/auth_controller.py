"""Login, registration and logout flows against the HealthNet API."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from models.session_models import IDENTITY_KEYS, Role, StoreKey
from services.errors import NetworkFailure
from services.identity_reconciler import derive_role_id
from services.portal_api import PortalApiClient
from services.role_resolver import try_resolve_role
from services.session_store import SessionStore

LOGGER = logging.getLogger(__name__)

# The remote login endpoint expects a role field; the client has always sent PATIENT.
LOGIN_ROLE = "PATIENT"
ROLE_UNKNOWN_ERROR = "Login successful but unable to determine user role. Please try again or contact support."
ROLE_ID_UNKNOWN_ERROR = "Login successful but unable to determine your account id. Please contact support."
REGISTRATION_ROLES = (Role.PATIENT, Role.DOCTOR)


def _state(request: Request):
    store: SessionStore = request.app.state.session_store
    api: PortalApiClient = request.app.state.portal_api
    return store, api


def _failure(error: str) -> Dict[str, Any]:
    return {"ok": False, "error": error, "redirect": None}


async def login(request: Request, username: str, password: str) -> Dict[str, Any]:
    """Authenticate, fetch the identity payload and store the resolved session.

    Returns:
        ``{"ok", "role", "redirect", "error"}``; on failure ``error`` holds the
        message to show inline and every credential stored by the attempt is
        removed again.
    """
    store, api = _state(request)
    store.remove(StoreKey.AUTH_TOKEN, StoreKey.HOME_DATA, *IDENTITY_KEYS, StoreKey.CHAT_HISTORY)

    try:
        token = await api.login(username, password, role=LOGIN_ROLE, person_id=None)
        if not token:
            raise NetworkFailure("No token received from server")
        store.set(StoreKey.AUTH_TOKEN, token)
        store.set(StoreKey.USERNAME, username)
        home_data = await api.get_home(token)
    except NetworkFailure as exc:
        LOGGER.warning("Login failed for %s: %s", username, exc.detail)
        return await _abort_login(store, "Login failed: " + (exc.detail or "Please check your username and password."))

    store.set(StoreKey.HOME_DATA, home_data)
    role = try_resolve_role(home_data)
    if role is None:
        LOGGER.warning("Unable to determine user role for %s", username)
        return await _abort_login(store, ROLE_UNKNOWN_ERROR)

    role_id = derive_role_id(home_data, role)
    if role_id is None:
        LOGGER.warning("%s id not found in home data for %s", role.value, username)
        return await _abort_login(store, ROLE_ID_UNKNOWN_ERROR)

    store.set(StoreKey.ROLE, role.value)
    store.set(role.id_key, role_id)
    await store.persist()
    LOGGER.info("Login succeeded for %s as %s", username, role.value)
    return {"ok": True, "role": role.value, "redirect": role.portal_path, "error": None}


async def _abort_login(store: SessionStore, error: str) -> Dict[str, Any]:
    store.remove(StoreKey.AUTH_TOKEN, StoreKey.HOME_DATA, StoreKey.USERNAME, *IDENTITY_KEYS)
    await store.persist()
    return _failure(error)


async def register(
    request: Request,
    kind: str,
    username: str,
    password: str,
    person: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Register a patient or doctor record, then its login credentials."""
    _, api = _state(request)
    role = Role.parse(kind)
    if role not in REGISTRATION_ROLES:
        return _failure("Registration is only available for patients and doctors.")

    try:
        person_id = await api.register_person(role, dict(person or {}))
    except NetworkFailure as exc:
        LOGGER.warning("Person registration failed: %s", exc.detail)
        return _failure(f"Failed to register {role.value}: {exc.detail}")

    try:
        await api.register_auth(username, password, role, person_id)
    except NetworkFailure as exc:
        LOGGER.warning("Credential registration failed: %s", exc.detail)
        return _failure(f"Failed to register user: {exc.detail}")

    LOGGER.info("Registered %s %s", role.value, person_id)
    return {
        "ok": True,
        "person_id": person_id,
        "message": f"Registration successful! You are now registered as a {role.token}.",
        "redirect": "/",
        "error": None,
    }


async def logout(request: Request) -> Dict[str, Any]:
    """Forget the session and the local chat history."""
    store, _ = _state(request)
    store.clear_session()
    await store.persist()
    return {"ok": True, "redirect": "/"}
