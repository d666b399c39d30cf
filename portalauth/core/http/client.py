"""
API Client
==========

Thin JSON client for the remote auth API, built on ``httpx.AsyncClient``.

- Adds ``Authorization: Bearer <token>`` when a session token is available
- Adds ``X-CSRF-Token`` on state-changing methods
- Maps non-2xx responses onto the error taxonomy by status code
- Maps connection failures and timeouts onto ``NetworkError``
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Final, Optional

import httpx

from portalauth.core.errors import NetworkError, error_for_status

if TYPE_CHECKING:
    from portalauth.core.config import PortalConfig

CSRF_HEADER: Final[str] = "X-CSRF-Token"
_STATE_CHANGING: Final[frozenset[str]] = frozenset({"POST", "PUT", "PATCH", "DELETE"})

CredentialProvider = Callable[[], Optional[str]]

_log = logging.getLogger("portalauth.http")


class ApiClient:
    """
    Async JSON client.

    Usage:
        async with ApiClient("https://api.example.com") as client:
            data = await client.post("/api/auth/login", {"email": e, "password": d})
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        token_provider: Optional[CredentialProvider] = None,
        csrf_provider: Optional[CredentialProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._token_provider = token_provider
        self._csrf_provider = csrf_provider

    @classmethod
    def from_config(
        cls,
        config: PortalConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> ApiClient:
        return cls(
            config.api.base_url,
            timeout=config.api.timeout_seconds,
            transport=transport,
        )

    def set_credential_providers(
        self,
        token_provider: Optional[CredentialProvider],
        csrf_provider: Optional[CredentialProvider],
    ) -> None:
        """Attach the callables that supply the bearer token and CSRF token."""
        self._token_provider = token_provider
        self._csrf_provider = csrf_provider

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _build_headers(self, method: str, auth: bool) -> dict[str, str]:
        headers: dict[str, str] = {}

        if auth and self._token_provider is not None:
            token = self._token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if method in _STATE_CHANGING and self._csrf_provider is not None:
            csrf = self._csrf_provider()
            if csrf:
                headers[CSRF_HEADER] = csrf

        return headers

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return {}
        return response.text

    async def request(
        self,
        method: str,
        endpoint: str,
        json: Any = None,
        *,
        auth: bool = True,
    ) -> Any:
        """
        Send a request and return the decoded body.

        Raises:
            NetworkError: If the endpoint could not be reached in time
            ApiError: (or a subclass) for any non-2xx response
        """
        method = method.upper()
        headers = self._build_headers(method, auth)

        try:
            response = await self._client.request(method, endpoint, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise NetworkError(
                "Request timed out. Please check your connection and try again."
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Could not reach {endpoint}: {exc}") from exc

        data = self._parse(response)
        _log.debug("%s %s -> %d", method, endpoint, response.status_code)

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            raise error_for_status(response.status_code, message, data)

        return data

    async def get(self, endpoint: str, *, auth: bool = True) -> Any:
        return await self.request("GET", endpoint, auth=auth)

    async def post(self, endpoint: str, json: Any = None, *, auth: bool = True) -> Any:
        return await self.request("POST", endpoint, json, auth=auth)

    async def put(self, endpoint: str, json: Any = None, *, auth: bool = True) -> Any:
        return await self.request("PUT", endpoint, json, auth=auth)

    async def patch(self, endpoint: str, json: Any = None, *, auth: bool = True) -> Any:
        return await self.request("PATCH", endpoint, json, auth=auth)

    async def delete(self, endpoint: str, *, auth: bool = True) -> Any:
        return await self.request("DELETE", endpoint, auth=auth)
