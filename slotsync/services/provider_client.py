from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from slotsync.services.errors import SyncError

TokenProvider = Callable[[], Awaitable[str]]


def static_token(token: str) -> TokenProvider:
    """
    Wrap a pre-issued access token as a TokenProvider.

    Tokens are opaque to this service; whoever issues them is responsible for
    refreshing them.
    """

    async def _provide() -> str:
        return token

    return _provide


class ProviderClient:
    """
    Minimal authenticated JSON client for an external provider REST API.

    Responsibilities
    ----------------
    - Attach the bearer credential supplied by the token provider.
    - Provide thin convenience methods for GET/POST/PATCH/DELETE.
    - Translate transport failures and non-2xx responses into SyncError,
      flagging the retryable ones, so no httpx details leak further.

    Notes
    -----
    - A new httpx.AsyncClient is used per request; calls are infrequent and
      this keeps the client safe to share across event loops.
    - The credential is never refreshed here.
    """

    provider_name = "provider"

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str,
        timeout_seconds: float = 10.0,
    ) -> None:
        if token_provider is None:
            raise ValueError("token_provider is required")

        self._token_provider = token_provider
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    def _url(self, path: str) -> str:
        # If path is not an absolute URL, treat it as relative to base_url.
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Low-level helper for issuing an authenticated HTTP request.

        Parameters
        ----------
        method:
            HTTP method (GET, POST, etc.).
        path:
            Either an absolute URL or a path relative to the configured base_url.
        params:
            Optional query string parameters.
        json:
            Optional JSON body.

        Returns
        -------
        httpx.Response
            The raw HTTP response object. Status codes are checked by callers.
        """
        token = await self._token_provider()

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                return await client.request(
                    method=method.upper(),
                    url=self._url(path),
                    headers=headers,
                    params=params,
                    json=json,
                )
        except httpx.TransportError as exc:
            raise SyncError(
                f"{self.provider_name} {method.upper()} transport error: {exc!r}",
                transient=True,
            ) from exc

    def _check(self, method: str, resp: httpx.Response) -> None:
        if resp.status_code // 100 != 2:
            raise SyncError.from_status(
                f"{self.provider_name} {method}",
                resp.status_code,
                resp.text,
            )

    def _json(self, method: str, resp: httpx.Response) -> Dict[str, Any]:
        try:
            return resp.json()
        except ValueError as exc:
            raise SyncError(
                f"{self.provider_name} {method} returned a body that is not JSON: {exc}"
            ) from exc

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Issue a GET request and return the JSON payload.

        Raises SyncError on non-2xx responses and on bodies that are not JSON.
        """
        resp = await self._request("GET", path, params=params)
        self._check("GET", resp)
        return self._json("GET", resp)

    async def post_json(self, path: str, *, json: Any = None) -> Dict[str, Any]:
        """
        Issue a POST request and return the JSON payload.

        Raises SyncError on non-2xx responses and on bodies that are not JSON.
        """
        resp = await self._request("POST", path, json=json)
        self._check("POST", resp)
        return self._json("POST", resp)

    async def patch(self, path: str, *, json: Any = None) -> None:
        """
        Issue a PATCH request. Bodies are ignored; some providers reply 204.
        """
        resp = await self._request("PATCH", path, json=json)
        self._check("PATCH", resp)

    async def delete(self, path: str) -> None:
        """
        Issue a DELETE request. A 404 counts as success: the artifact is
        already gone.
        """
        resp = await self._request("DELETE", path)
        if resp.status_code == 404:
            return
        self._check("DELETE", resp)
