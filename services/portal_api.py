"""Async HTTP client for the remote HealthNet API."""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from models.session_models import Role
from services.errors import NetworkFailure

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 30.0

ENDPOINTS = {
    "login": "/user_authentication/login",
    "home": "/home",
    "register_auth": "/user_authentication/register",
    "chat_history": "/chat/getmine",
    "chat_query": "/chat/query",
}
PERSON_ENDPOINTS = {Role.PATIENT: "/patient", Role.DOCTOR: "/doctor"}


class PortalApiClient:
    """Thin wrapper over `httpx.AsyncClient` for the HealthNet endpoints.

    Every transport error or non-2xx response surfaces as `NetworkFailure`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Create the client.

        Args:
            base_url: API root; defaults to HEALTHNET_API_BASE_URL.
            timeout: Request timeout in seconds; defaults to HEALTHNET_API_TIMEOUT.
            transport: Optional httpx transport, used to fake the API in tests.
        """
        self.base_url = (base_url or os.getenv("HEALTHNET_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        if timeout is None:
            timeout = float(os.getenv("HEALTHNET_API_TIMEOUT") or DEFAULT_TIMEOUT)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self._client.request(method, path, headers=headers, json=body)
        except httpx.HTTPError as exc:
            LOGGER.error("%s %s failed: %s", method, path, exc)
            raise NetworkFailure(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            detail = response.text.strip() or response.reason_phrase
            LOGGER.error("%s %s returned %s: %s", method, path, response.status_code, detail)
            raise NetworkFailure(detail, status_code=response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkFailure(f"Expected JSON from {response.request.url.path}") from exc

    async def login(
        self, username: str, password: str, role: str = "PATIENT", person_id: Optional[int] = None
    ) -> str:
        """Return the bearer token issued for the credentials."""
        response = await self._request(
            "POST",
            ENDPOINTS["login"],
            body={"username": username, "password": password, "role": role, "personId": person_id},
        )
        return response.text.strip()

    async def get_home(self, token: str) -> str:
        """Return the identity payload as a string (JSON re-serialized, text as-is)."""
        response = await self._request("GET", ENDPOINTS["home"], token=token)
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return json.dumps(response.json())
            except ValueError:
                LOGGER.warning("Home data declared JSON but did not parse; keeping raw text")
        return response.text

    async def register_person(self, role: Role, person: Dict[str, Any]) -> int:
        """Register a patient or doctor record and return its numeric id."""
        path = PERSON_ENDPOINTS.get(role)
        if path is None:
            raise ValueError(f"Only patients and doctors can self-register, not {role.value}.")
        response = await self._request("POST", path, body=person)
        try:
            return int(response.text.strip())
        except ValueError as exc:
            raise NetworkFailure(f"Unexpected {role.value} id in response: {response.text!r}") from exc

    async def register_auth(self, username: str, password: str, role: Role, person_id: int) -> None:
        await self._request(
            "POST",
            ENDPOINTS["register_auth"],
            body={"username": username, "password": password, "role": role.token, "personId": person_id},
        )

    async def get_chat_history(self, token: str) -> Any:
        response = await self._request("GET", ENDPOINTS["chat_history"], token=token)
        return self._json(response)

    async def chat_query(
        self,
        query: str,
        *,
        token: Optional[str] = None,
        context: Optional[List[Dict[str, Any]]] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send one chat query and return the decoded `{response}` body."""
        body: Dict[str, Any] = {"query": query}
        if context:
            body["context"] = context
        if user_id:
            body["userId"] = user_id
        data = self._json(await self._request("POST", ENDPOINTS["chat_query"], token=token, body=body))
        if not isinstance(data, dict):
            raise NetworkFailure("Chat response was not a JSON object")
        return data
