"""
User directory and profile REST API.
"""

from __future__ import annotations

from typing import Iterable

from duochat.models.session import Participant
from duochat.transport.http import HttpClient


class UsersAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def list_peers(self, me_id: str) -> list[Participant]:
        """GET /users/all, excluding self."""
        users = await self._http.get("/users/all")
        peers = (Participant.model_validate(u) for u in users or [])
        return [p for p in peers if p.id != me_id]

    async def update_profile(self, name: str, email: str) -> Participant:
        """PUT /users/update-profile → {user}."""
        result = await self._http.put("/users/update-profile", {"name": name, "email": email})
        return Participant.model_validate(result["user"])

    @staticmethod
    def search(peers: Iterable[Participant], query: str) -> list[Participant]:
        """Case-insensitive display-name filter."""
        needle = query.lower()
        return [p for p in peers if needle in p.display_name.lower()]
