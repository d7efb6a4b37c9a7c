"""
Meta Graph API Client
Thin async wrapper over httpx for the Facebook Graph API.
Handles the OAuth token endpoint and authenticated reads used by account linking.
"""

import logging
from typing import Any, Optional
import httpx

from adagent.config import get_settings

logger = logging.getLogger(__name__)

# Graph error code for an invalid / expired access token
GRAPH_AUTH_ERROR_CODE = 190


class GraphAPIError(Exception):
    """Raised for transport failures and Graph error responses."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.payload = payload

    @property
    def is_auth_error(self) -> bool:
        return self.code == GRAPH_AUTH_ERROR_CODE or self.status_code == 401


class MetaGraphClient:
    """
    Wrapper around the Graph API.
    Each instance is bound to one access token (or none, for the token endpoint).
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.access_token = access_token
        self.api_version = api_version or settings.meta_graph_version
        self.timeout = timeout if timeout is not None else settings.meta_http_timeout_seconds
        self.transport = transport

    @property
    def base_url(self) -> str:
        return f"https://graph.facebook.com/{self.api_version}"

    @property
    def headers(self) -> dict[str, str]:
        h = {"Accept": "application/json"}
        if self.access_token:
            h["Authorization"] = f"Bearer {self.access_token}"
        return h

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Authenticated GET against a Graph node or edge."""
        logger.info(f"Graph GET: {path} fields={(params or {}).get('fields', '-')}")
        async with self._client() as client:
            try:
                response = await client.get(path.lstrip("/"), params=params)
            except httpx.RequestError as e:
                logger.error(f"Graph request error on {path}: {e}")
                raise GraphAPIError(f"Request to Graph API failed: {e}")
        return self._parse_response(response, path)

    async def post(self, path: str, data: Optional[dict[str, Any]] = None) -> Any:
        """Form-encoded POST (used by the OAuth token endpoint)."""
        logger.info(f"Graph POST: {path}")
        async with self._client() as client:
            try:
                response = await client.post(path.lstrip("/"), data=data)
            except httpx.RequestError as e:
                logger.error(f"Graph request error on {path}: {e}")
                raise GraphAPIError(f"Request to Graph API failed: {e}")
        return self._parse_response(response, path)

    # ── OAuth ─────────────────────────────────────────────────────────

    async def exchange_code(self, client_id: str, client_secret: str, redirect_uri: str, code: str) -> dict:
        """Swap an authorization code for a (short-lived) user access token."""
        return await self.post(
            "oauth/access_token",
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )

    async def exchange_long_lived_token(self, client_id: str, client_secret: str, short_token: str) -> dict:
        """Swap a short-lived user token for a ~60 day token."""
        return await self.get(
            "oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": client_id,
                "client_secret": client_secret,
                "fb_exchange_token": short_token,
            },
        )

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _parse_response(response: httpx.Response, path: str) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success and not (isinstance(body, dict) and "error" in body):
            if body is None:
                raise GraphAPIError(f"Graph API returned a non-JSON body for {path}", status_code=response.status_code)
            return body

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            message = error.get("message") or f"Graph API error on {path}"
            code = error.get("code")
        else:
            message = f"Graph API returned HTTP {response.status_code} for {path}"
            code = None
        logger.warning(f"Graph API error on {path}: status={response.status_code} code={code} message={message}")
        raise GraphAPIError(message, status_code=response.status_code, code=code, payload=body)


def create_graph_client(access_token: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> MetaGraphClient:
    """Factory function to create a Graph client instance."""
    return MetaGraphClient(access_token=access_token, transport=transport)


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """FastAPI dependency: outbound HTTP transport override. None means the real network."""
    return None
