"""Retrieve persisted chat history for the signed-in user."""

import logging
from typing import Any, Dict, List, Optional

from services.errors import HistoryUnavailable, NetworkFailure
from services.portal_api import PortalApiClient

LOGGER = logging.getLogger(__name__)


class TranscriptFetcher:
    """Fetch raw history records; every failure becomes HistoryUnavailable."""

    def __init__(self, api: PortalApiClient) -> None:
        self.api = api

    async def fetch(self, token: Optional[str]) -> List[Dict[str, Any]]:
        """Return the non-empty list of raw history records for `token`.

        Raises:
            HistoryUnavailable: Without a token, on transport/HTTP failure, or
                when the server returns no usable records.
        """
        if not token:
            raise HistoryUnavailable("No auth token; chat history needs a signed-in user")
        try:
            data = await self.api.get_chat_history(token)
        except NetworkFailure as exc:
            LOGGER.warning("Error fetching chat history: %s", exc)
            raise HistoryUnavailable(str(exc)) from exc
        if not isinstance(data, list):
            LOGGER.warning("Chat history response was %s, not a list", type(data).__name__)
            raise HistoryUnavailable("Chat history response was not a list")
        records = [record for record in data if isinstance(record, dict)]
        if not records:
            raise HistoryUnavailable("No chat history records")
        return records
