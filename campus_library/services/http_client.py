import httpx
import logging
from typing import Optional

from campus_library.config import settings

logger = logging.getLogger(__name__)


class HTTPClient:
    """Pooled async HTTP client shared by the upload services."""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Connection limits for better performance
        limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        )

        total = timeout if timeout is not None else settings.http_timeout
        # Uploads can be slow; only connect gets a tighter bound
        timeout_config = httpx.Timeout(timeout=total, connect=min(5.0, total))

        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=timeout_config,
            follow_redirects=True,
            transport=transport,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Async GET request"""
        return await self._client.get(url, **kwargs)

    def build_request(self, method: str, url: str, **kwargs) -> httpx.Request:
        return self._client.build_request(method, url, **kwargs)

    async def send(self, request: httpx.Request) -> httpx.Response:
        return await self._client.send(request)

    async def close(self):
        """Close the underlying client"""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# Global HTTP client instance
_global_client: Optional[HTTPClient] = None


async def get_http_client() -> HTTPClient:
    """Get or create the global HTTP client"""
    global _global_client
    if _global_client is None:
        _global_client = HTTPClient()
    return _global_client


async def cleanup_http_client():
    """Close the global HTTP client"""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
