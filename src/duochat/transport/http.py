"""
REST HTTP client for the DuoChat backend.

All authenticated calls send `Authorization: Bearer <token>`.
"""

from typing import Any, Optional

import httpx

from duochat.errors import HttpError

DEFAULT_BASE_URL = "https://chat-backend-727p.onrender.com"
USER_AGENT = "duochat-client/0.1.0"


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/api",
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _auth_headers(self, authenticated: bool) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if authenticated and self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _check(resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            raise HttpError(resp.status_code, f"HTTP {resp.status_code}: {resp.text[:200]}")
        if not resp.content:
            return None
        return resp.json()

    async def get(self, path: str, authenticated: bool = True) -> Any:
        resp = await self._client.get(path, headers=self._auth_headers(authenticated))
        return self._check(resp)

    async def post(self, path: str, body: Optional[dict[str, Any]] = None, authenticated: bool = True) -> Any:
        resp = await self._client.post(path, json=body, headers=self._auth_headers(authenticated))
        return self._check(resp)

    async def put(self, path: str, body: Optional[dict[str, Any]] = None, authenticated: bool = True) -> Any:
        resp = await self._client.put(path, json=body, headers=self._auth_headers(authenticated))
        return self._check(resp)

    async def close(self) -> None:
        await self._client.aclose()
