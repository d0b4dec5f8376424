"""
Page fetcher.

Retrieves one URL through a renderer and turns the response into a
PageRecord: page info, cleaned HTML, text and classified outbound links. It
has no knowledge of the crawl graph.
"""

import logging
from typing import Optional

from django.conf import settings

from catalog_crawler.exceptions import FetchError
from catalog_crawler.fetchers.browser_renderer import PlaywrightRenderer
from catalog_crawler.fetchers.http_renderer import HttpxRenderer
from catalog_crawler.services.html_cleaner import HtmlCleaner
from catalog_crawler.services.link_extractor import LinkExtractor
from catalog_crawler.types import PageRecord

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


def get_renderer(name: Optional[str] = None):
    """
    Build the renderer selected by CRAWLER_RENDERER.

    Args:
        name: "httpx" or "playwright" (default from settings)
    """
    name = name or getattr(settings, "CRAWLER_RENDERER", "httpx")
    if name == "playwright":
        return PlaywrightRenderer()
    return HttpxRenderer()


class PageFetcher:
    """
    Fetch a page and build its PageRecord.

    Usage:
        async with PageFetcher() as fetcher:
            page = await fetcher.fetch("https://www.suzuki.se/bilar/vitara")
    """

    def __init__(
        self,
        renderer=None,
        cleaner: Optional[HtmlCleaner] = None,
        link_extractor: Optional[LinkExtractor] = None,
    ):
        self.renderer = renderer or get_renderer()
        self.cleaner = cleaner or HtmlCleaner()
        self.link_extractor = link_extractor or LinkExtractor()

    async def __aenter__(self):
        """Async context manager entry."""
        if hasattr(self.renderer, "__aenter__"):
            await self.renderer.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        if hasattr(self.renderer, "close"):
            await self.renderer.close()

    async def fetch(self, url: str, depth: int = 0, link_text: str = "") -> PageRecord:
        """
        Fetch and process a single page.

        Args:
            url: URL to fetch
            depth: Crawl depth the URL was reached at
            link_text: Anchor text of the link that led here

        Returns:
            PageRecord

        Raises:
            FetchError: Network failure, timeout, HTTP error or non-HTML response
        """
        response = await self.renderer.render(url)

        if not response.success:
            raise FetchError(url, response.error or "Fetch failed", response.status_code)

        content_type = response.content_type
        if content_type and not content_type.startswith(HTML_CONTENT_TYPES):
            raise FetchError(url, f"Unexpected content type {content_type}", response.status_code)

        raw_html = response.content
        if not raw_html.strip():
            raise FetchError(url, "Empty response body", response.status_code)

        info = self.cleaner.extract_page_info(raw_html)
        cleaned_html = self.cleaner.clean(raw_html)
        text = self.cleaner.extract_text(raw_html)
        links = self.link_extractor.extract_links(raw_html, url)

        logger.debug(
            f"Fetched {url} via {response.renderer}: {len(raw_html)} chars, "
            f"{len(cleaned_html)} cleaned, {len(links)} links"
        )

        return PageRecord(
            url=url,
            title=info.title,
            description=info.description,
            raw_html=raw_html,
            cleaned_html=cleaned_html,
            text=text,
            content_length=len(raw_html),
            cleaned_content_length=len(cleaned_html),
            outbound_link_count=len(links),
            links=links,
            link_text=link_text,
            depth=depth,
        )
