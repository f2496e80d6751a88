"""
Auth module — session bootstrap. Email + password.
"""

from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from duochat.errors import AuthError, DuoChatError
from duochat.models.session import Participant, SessionContext
from duochat.transport.http import HttpClient


class Auth:
    def __init__(self, http: HttpClient):
        self._http = http

    async def login(self, email: str, password: str) -> SessionContext:
        """POST /auth/login → {token, user}. Sets the bearer token on success."""
        try:
            result = await self._http.post("/auth/login", {"email": email, "password": password}, authenticated=False)
        except (DuoChatError, httpx.HTTPError) as e:
            raise AuthError(f"Failed to log in: {e}")
        try:
            session = SessionContext(
                user=Participant.model_validate(result["user"]),
                token=result["token"],
                base_url=self._http.base_url,
            )
        except (KeyError, TypeError, PydanticValidationError) as e:
            raise AuthError(f"Unexpected login response: {e}", code="auth_bad_response")
        self._http.set_token(session.token)
        return session

    async def register(self, name: str, email: str, password: str) -> Any:
        """POST /auth/register. Does not log in."""
        try:
            return await self._http.post(
                "/auth/register",
                {"name": name, "email": email, "password": password},
                authenticated=False,
            )
        except (DuoChatError, httpx.HTTPError) as e:
            raise AuthError(f"Failed to register: {e}")
