"""
HTTP client for the transport sidecar that owns the WhatsApp session.

The sidecar forwards events to ``POST /events/{name}`` and serves the outbound
calls used here.
"""
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote

import httpx

from wa_logger.core.config import Settings
from wa_logger.core.logging import get_logger
from wa_logger.transport.base import (
    RATE_LIMIT_MARKER,
    RATE_LIMIT_STATUS,
    RateLimitError,
    TransportError,
)

logger = get_logger(__name__)


class HttpTransport:
    """Transport implementation over the sidecar's REST surface."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        user_name: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_name = user_name
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpTransport":
        return cls(
            base_url=settings.transport_url,
            timeout=settings.transport_timeout,
            user_name=settings.account_name,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _error_for(response: httpx.Response) -> TransportError:
        """Translate an error response into the transport error taxonomy."""
        try:
            body = response.text
        except httpx.ResponseNotRead:
            body = ""
        if response.status_code == RATE_LIMIT_STATUS or RATE_LIMIT_MARKER in body:
            return RateLimitError(f"{RATE_LIMIT_MARKER}: {body}".strip())
        reason = "not found" if response.status_code == 404 else response.reason_phrase
        return TransportError(f"{response.status_code} {reason}: {body}".strip(), response.status_code)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise TransportError(f"transport request failed: {e}") from e

        if response.status_code >= 400:
            raise self._error_for(response)
        if not response.content:
            return {}
        return response.json()

    async def send_message(self, jid: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/send", json={"jid": jid, "content": payload})

    async def fetch_group_metadata(self, group_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/groups/{quote(group_id, safe='')}/metadata")

    async def connection_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/status")

    async def download_media(self, envelope: Dict[str, Any]) -> AsyncIterator[bytes]:
        return self._stream_media(envelope)

    async def _stream_media(self, envelope: Dict[str, Any]) -> AsyncIterator[bytes]:
        try:
            async with self._client.stream("POST", "/media/download", json={"message": envelope}) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise self._error_for(response)
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.RequestError as e:
            raise TransportError(f"media download failed: {e}") from e
