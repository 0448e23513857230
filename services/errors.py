"""Error taxonomy for session resolution, history and chat transport."""

from typing import Optional


class PortalClientError(Exception):
    """Base class for every error raised by the portal client."""


class MissingCredential(PortalClientError):
    """No auth token or identity payload is stored for the session."""


class RoleResolutionFailure(PortalClientError):
    """Every role inference strategy came up empty."""


class IdentityInconsistency(PortalClientError):
    """More than one role identifier slot is populated at once."""


class HistoryUnavailable(PortalClientError):
    """Persisted chat history could not be retrieved or was empty."""


class ChatBusy(PortalClientError):
    """A chat message is already awaiting its reply."""


class NetworkFailure(PortalClientError):
    """A remote HealthNet API call failed in transport or returned non-2xx."""

    def __init__(self, detail: str, status_code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
