"""
Authoritative conversation history fetch.
"""

import httpx
from pydantic import ValidationError as PydanticValidationError

from duochat.errors import DuoChatError, FetchError
from duochat.models.message import Message, parse_message
from duochat.transport.http import HttpClient


class HistoryAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def fetch(self, me_id: str, peer_id: str) -> list[Message]:
        """GET /messages/{me}/{peer}, resolved for `me_id` as the viewer."""
        try:
            rows = await self._http.get(f"/messages/{me_id}/{peer_id}")
        except (DuoChatError, httpx.HTTPError) as e:
            raise FetchError(f"Failed to load history with {peer_id}: {e}", details={"peer_id": peer_id})
        if not isinstance(rows, list):
            raise FetchError(f"Unexpected history response for {peer_id}", details={"peer_id": peer_id})
        try:
            return [parse_message(row, me_id) for row in rows]
        except PydanticValidationError as e:
            raise FetchError(f"Malformed history for {peer_id}: {e}", details={"peer_id": peer_id})
