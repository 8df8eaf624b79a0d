"""
Alternate renderer proxy for routes migrating off the legacy templates.
"""

from typing import Optional, TYPE_CHECKING

import httpx
from fastapi import Response

from shared.errors import AlternateRendererError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..domain.models import PageRequest


FORWARDED_HEADERS = ("accept", "accept-language", "cookie", "user-agent", "x-request-id")
PASSTHROUGH_RESPONSE_HEADERS = ("cache-control", "etag", "last-modified", "set-cookie", "vary")


class AlternateRenderer:
    """Hand a page request to the alternate rendering service.

    The upstream owns the whole response: its body, status and caching
    headers are returned unchanged and never pass through the page cache.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.logger = get_logger("renderer.alternate")
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def handle(self, request: "PageRequest") -> Response:
        headers = {
            name: value
            for name, value in request.headers.items()
            if name.lower() in FORWARDED_HEADERS
        }

        try:
            upstream = await self._get_client().request(request.method, request.original_url, headers=headers)
        except httpx.HTTPError as exc:
            self.logger.error("Alternate renderer request failed", path=request.path, error=str(exc))
            raise AlternateRendererError(str(exc), {"path": request.path}) from exc

        response = Response(
            content=upstream.content,
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type"),
        )
        for name in PASSTHROUGH_RESPONSE_HEADERS:
            if name in upstream.headers:
                response.headers[name] = upstream.headers[name]
        return response

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
