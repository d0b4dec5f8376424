"""
httpx page renderer.

The default and cheapest way to obtain a page's HTML. Manufacturer price-list
pages are mostly server rendered; JavaScript-heavy sites can switch to the
Playwright renderer with CRAWLER_RENDERER="playwright".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import httpx

from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass
class RenderResponse:
    """What a renderer got back for one URL."""

    url: str
    content: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None
    final_url: str = ""
    renderer: str = "httpx"

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.lower()
        return ""


class HttpxRenderer:
    """
    Plain GET with httpx.

    Timeouts, transport errors and 5xx are retried with 1s, 2s, 4s... pauses.
    A 4xx is final on the first attempt. render() reports failures in the
    RenderResponse instead of raising.
    """

    name = "httpx"

    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    )

    # No 'br': httpx only decodes brotli when the brotli package is installed.
    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "sv-SE,sv;q=0.9,en-US;q=0.8,en;q=0.7",
        "Accept-Encoding": "gzip, deflate",
    }

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        user_agent: Optional[str] = None,
        client_factory: Optional[Callable[..., httpx.AsyncClient]] = None,
    ):
        """
        Args:
            timeout: Seconds per request (CRAWLER_REQUEST_TIMEOUT)
            max_retries: Retries after the first attempt (CRAWLER_MAX_RETRIES)
            user_agent: Overrides DEFAULT_USER_AGENT
            client_factory: Called with AsyncClient kwargs; tests pass one
                that mounts an httpx.MockTransport
        """
        self.timeout = timeout or getattr(settings, "CRAWLER_REQUEST_TIMEOUT", 30)
        if max_retries is None:
            max_retries = getattr(settings, "CRAWLER_MAX_RETRIES", 2)
        self.max_retries = max_retries
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.client_factory = client_factory or httpx.AsyncClient
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self.client_factory(
                timeout=httpx.Timeout(self.timeout),
                headers={**self.DEFAULT_HEADERS, "User-Agent": self.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def render(self, url: str) -> RenderResponse:
        client = self._ensure_client()
        try:
            response = await self._get(client, url)
        except httpx.TimeoutException as e:
            return self._failed(url, f"Timeout: {e}")
        except httpx.HTTPStatusError as e:
            return self._failed(
                url,
                f"HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                headers=dict(e.response.headers),
            )
        except httpx.HTTPError as e:
            return self._failed(url, f"{type(e).__name__}: {e}")

        headers = dict(response.headers)
        if response.status_code >= 400:
            return self._failed(
                url, f"HTTP {response.status_code}", status_code=response.status_code, headers=headers
            )
        return RenderResponse(
            url=url,
            content=response.text,
            status_code=response.status_code,
            headers=headers,
            final_url=str(response.url),
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        """GET with retries. Returns 2xx/3xx/4xx responses, raises the last error otherwise."""
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = await client.get(url)
                if response.status_code < 500:
                    return response
                response.raise_for_status()
            except (httpx.TimeoutException, httpx.HTTPStatusError, httpx.TransportError) as e:
                if attempt == attempts:
                    raise
                logger.info(f"Retrying {url} after {type(e).__name__} ({attempt}/{attempts})")
                await asyncio.sleep(2 ** (attempt - 1))
        raise httpx.TransportError(f"No attempts made for {url}")

    def _failed(self, url: str, error: str, status_code: int = 0, headers=None) -> RenderResponse:
        logger.warning(f"Render failed for {url}: {error}")
        return RenderResponse(
            url=url,
            content="",
            status_code=status_code,
            headers=headers or {},
            success=False,
            error=error,
        )
