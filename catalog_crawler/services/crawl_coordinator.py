"""
Crawl Coordinator.

Breadth-first crawl from a seed URL, bounded by depth:

1. The seed is fetched at depth 0. Its failure aborts the crawl.
2. For depth < max_depth, followable links of every page at that depth are
   queued at depth + 1 unless already visited.
3. Each depth level is fetched concurrently (bounded by max_concurrency) and
   joined before the next level is dispatched.
4. PDF links are discovered on every fetched page, the deepest level included.

The visited set, the PDF set and the result lists are only mutated here,
between levels, never from inside fetch tasks.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from django.conf import settings

from catalog_crawler.exceptions import FetchError
from catalog_crawler.fetchers.page_fetcher import PageFetcher
from catalog_crawler.services.link_extractor import LinkExtractor
from catalog_crawler.services.pdf_discovery import discover_pdf_links, pdf_dedup_key
from catalog_crawler.services.structured_data import extract_listing_items
from catalog_crawler.types import (
    CrawlResult,
    CrawlTarget,
    LinkedPageFailure,
    PageRecord,
    PdfLink,
    TargetOrigin,
)
from catalog_crawler.utils.deadline import Deadline, wait_within
from catalog_crawler.utils.normalization import normalize_url

logger = logging.getLogger(__name__)


class CrawlCoordinator:
    """
    Orchestrates the page fetcher across a depth-bounded link graph.

    Usage:
        async with PageFetcher() as fetcher:
            coordinator = CrawlCoordinator(fetcher)
            result = await coordinator.crawl("https://www.suzuki.se/bilar", max_depth=1)
    """

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        link_extractor: Optional[LinkExtractor] = None,
        max_concurrency: Optional[int] = None,
        max_pages: Optional[int] = None,
    ):
        self.fetcher = fetcher or PageFetcher()
        self.link_extractor = link_extractor or self.fetcher.link_extractor
        self.max_concurrency = max_concurrency or getattr(settings, "CRAWLER_MAX_CONCURRENCY", 5)
        self.max_pages = max_pages or getattr(settings, "CRAWLER_MAX_PAGES", 50)

    async def crawl(
        self,
        seed_url: str,
        max_depth: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CrawlResult:
        """
        Crawl from a seed URL.

        Args:
            seed_url: Page to start from
            max_depth: Link depth to follow (0 = seed only, default from settings)
            timeout: Overall time budget in seconds; on expiry no new fetches are
                dispatched and partial results are returned
            cancel_event: Set by the caller to stop the crawl early

        Returns:
            CrawlResult. success is False only when the seed page fails.
        """
        if max_depth is None:
            max_depth = getattr(settings, "CRAWLER_MAX_DEPTH", 1)
        max_depth = max(0, int(max_depth))

        deadline = Deadline(timeout, cancel_event)
        visited: Dict[str, str] = {}
        pdf_links: Dict[str, PdfLink] = {}
        result = CrawlResult(success=False)

        seed = CrawlTarget(url=seed_url, depth_remaining=max_depth, origin=TargetOrigin.SEED)
        visited[normalize_url(seed.url)] = seed.url

        pages, failures, interrupted = await self._fetch_level([seed], 0, deadline)
        if not pages:
            if interrupted:
                result.error = f"Crawl cancelled before seed page {seed_url} was fetched"
                result.timed_out = True
            else:
                result.error = failures[0].error if failures else f"Failed to fetch {seed_url}"
            result.visited_urls = list(visited.values())
            logger.warning(f"Seed fetch failed for {seed_url}: {result.error}")
            return result

        result.success = True
        result.page = pages[0]
        result.structured_data = extract_listing_items(result.page.raw_html, result.page.url)
        self._collect_pdfs(result.page, pdf_links)

        current_level: List[PageRecord] = [result.page]
        for depth in range(1, max_depth + 1):
            targets = self._next_targets(current_level, depth, max_depth, visited, result)
            if not targets:
                break

            if deadline.expired:
                result.timed_out = True
                logger.info(f"Crawl of {seed_url} stopped before depth {depth}")
                break

            pages, failures, interrupted = await self._fetch_level(targets, depth, deadline)
            for page in pages:
                result.linked_content.append(page)
                self._collect_pdfs(page, pdf_links)
            result.failed_links.extend(failures)

            if interrupted:
                result.timed_out = True
                logger.info(f"Crawl of {seed_url} interrupted at depth {depth}")
                break

            current_level = pages

        result.pdf_links = list(pdf_links.values())
        result.visited_urls = list(visited.values())

        logger.info(
            f"Crawl of {seed_url} done: {result.pages_fetched} pages, "
            f"{len(result.failed_links)} failed, {len(result.pdf_links)} PDFs"
            + (" (partial)" if result.timed_out else "")
        )
        return result

    def _next_targets(
        self,
        pages: List[PageRecord],
        depth: int,
        max_depth: int,
        visited: Dict[str, str],
        result: CrawlResult,
    ) -> List[CrawlTarget]:
        """Queue unvisited followable links of the given pages at the given depth."""
        targets: List[CrawlTarget] = []
        budget = self.max_pages - result.pages_fetched - len(result.failed_links)

        for page in pages:
            for link in self.link_extractor.select_followable(page.raw_html, page.url):
                if len(targets) >= budget:
                    return targets
                key = normalize_url(link.url)
                if key in visited:
                    continue
                visited[key] = link.url
                targets.append(
                    CrawlTarget(
                        url=link.url,
                        depth_remaining=max_depth - depth,
                        origin=TargetOrigin.DISCOVERED,
                        link_text=link.text,
                    )
                )
        return targets

    async def _fetch_level(
        self,
        targets: List[CrawlTarget],
        depth: int,
        deadline: Deadline,
    ) -> Tuple[List[PageRecord], List[LinkedPageFailure], bool]:
        """
        Fetch one depth level with bounded fan-out.

        Returns:
            (pages in target order, failures, interrupted). When interrupted,
            unfinished fetches are cancelled and only completed ones returned.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _fetch_one(target: CrawlTarget) -> PageRecord:
            async with semaphore:
                return await self.fetcher.fetch(target.url, depth=depth, link_text=target.link_text)

        tasks = {target: asyncio.ensure_future(_fetch_one(target)) for target in targets}
        interrupted = await wait_within(tasks.values(), deadline)

        pages: List[PageRecord] = []
        failures: List[LinkedPageFailure] = []
        for target, task in tasks.items():
            if task.cancelled():
                continue
            error = task.exception()
            if error is None:
                pages.append(task.result())
                continue

            message = str(error) if isinstance(error, FetchError) else f"{type(error).__name__}: {error}"
            failures.append(LinkedPageFailure(url=target.url, error=message, link_text=target.link_text))
            if target.origin == TargetOrigin.DISCOVERED:
                logger.warning(f"Skipping linked page {target.url}: {message}")

        return pages, failures, interrupted

    def _collect_pdfs(self, page: PageRecord, pdf_links: Dict[str, PdfLink]) -> None:
        for link in discover_pdf_links(page.raw_html, page.url):
            key = pdf_dedup_key(link.pdf_url)
            if key not in pdf_links:
                pdf_links[key] = link
