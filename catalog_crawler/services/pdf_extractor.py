"""
PDF Extractor.

Downloads discovered PDFs and runs them through the document-understanding
capability. One failing PDF never fails the batch:

- overall_status "success": every attempted PDF produced text
- overall_status "partial": some did
- overall_status "failed": none did (and at least one was attempted)
- overall_status "not_found": nothing to attempt
"""

import asyncio
import logging
import time
from typing import List, Optional
from urllib.parse import unquote, urlparse

import httpx
from django.conf import settings

from catalog_crawler.exceptions import CatalogPipelineError, FetchError
from catalog_crawler.services.document_reader import (
    PDF_MIME_TYPE,
    DocumentUnderstanding,
    get_document_reader,
)
from catalog_crawler.types import (
    PdfBatchStatus,
    PdfExtractionResult,
    PdfLink,
    PdfProcessingSummary,
)
from catalog_crawler.utils.deadline import Deadline, wait_within

logger = logging.getLogger(__name__)


def _filename(url: str) -> str:
    path = urlparse(url).path
    return unquote(path.rsplit("/", 1)[-1]) or url


def overall_status(attempted: int, succeeded: int) -> PdfBatchStatus:
    """Batch status from attempted/succeeded counts."""
    if attempted == 0:
        return PdfBatchStatus.NOT_FOUND
    if succeeded == attempted:
        return PdfBatchStatus.SUCCESS
    if succeeded > 0:
        return PdfBatchStatus.PARTIAL
    return PdfBatchStatus.FAILED


class PdfExtractor:
    """
    Extracts text from a batch of PDF links.

    Usage:
        extractor = PdfExtractor()
        summary = await extractor.extract_all(crawl_result.pdf_links)
    """

    USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0.0.0 Safari/537.36"
    )

    def __init__(
        self,
        reader: Optional[DocumentUnderstanding] = None,
        timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        max_bytes: Optional[int] = None,
        max_text_chars: Optional[int] = None,
        client_factory=None,
    ):
        """
        Initialize the PDF extractor.

        Args:
            reader: Document-understanding capability (default from settings)
            timeout: Download timeout in seconds
            max_concurrency: PDFs processed at the same time
            max_bytes: Larger downloads are rejected
            max_text_chars: Extracted text is truncated to this length
            client_factory: Builds the AsyncClient; tests inject a MockTransport here
        """
        self.reader = reader or get_document_reader()
        self.timeout = timeout or getattr(settings, "CRAWLER_REQUEST_TIMEOUT", 30)
        self.max_concurrency = max_concurrency or getattr(settings, "CRAWLER_MAX_CONCURRENCY", 5)
        self.max_bytes = max_bytes or getattr(settings, "CRAWLER_MAX_PDF_BYTES", 25 * 1024 * 1024)
        self.max_text_chars = max_text_chars or getattr(settings, "PDF_MAX_TEXT_CHARS", 30000)
        self.client_factory = client_factory or httpx.AsyncClient

    async def extract_all(
        self,
        pdf_links: List[PdfLink],
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PdfProcessingSummary:
        """
        Extract every PDF in the list.

        Args:
            pdf_links: Discovered PDF links (already deduplicated)
            timeout: Time budget in seconds; on expiry unfinished downloads are
                cancelled and the summary covers the PDFs that completed
            cancel_event: Set by the caller to stop early, same as a timeout

        Returns:
            PdfProcessingSummary with results in input order, timed_out set
            when some PDFs were cut off
        """
        summary = PdfProcessingSummary(total_pdfs_found=len(pdf_links))
        if not pdf_links:
            return summary

        deadline = Deadline(timeout, cancel_event)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with self.client_factory(
            timeout=httpx.Timeout(self.timeout),
            headers={"User-Agent": self.USER_AGENT, "Accept": "application/pdf,*/*"},
            follow_redirects=True,
        ) as client:

            async def _bounded(link: PdfLink) -> PdfExtractionResult:
                async with semaphore:
                    return await self.extract_one(link, client)

            tasks = [(link, asyncio.ensure_future(_bounded(link))) for link in pdf_links]
            summary.timed_out = await wait_within([task for _, task in tasks], deadline)

        results = [task.result() for _, task in tasks if not task.cancelled()]
        cut_off = [link for link, task in tasks if task.cancelled()]

        summary.results = results
        summary.total_pdfs_processed = sum(1 for r in results if r.success)
        summary.total_processing_time_ms = sum(r.processing_time_ms for r in results)
        summary.all_errors = [f"{r.filename}: {r.error}" for r in results if not r.success]
        summary.all_errors.extend(
            f"{_filename(link.pdf_url)}: not finished before the deadline" for link in cut_off
        )
        summary.overall_status = overall_status(len(pdf_links), summary.total_pdfs_processed)

        logger.info(
            f"PDF batch {summary.overall_status.value}: "
            f"{summary.total_pdfs_processed}/{summary.total_pdfs_found} extracted "
            f"in {summary.total_processing_time_ms:.0f}ms"
            + (f" ({len(cut_off)} cut off by deadline)" if cut_off else "")
        )
        return summary

    async def extract_one(self, link: PdfLink, client: httpx.AsyncClient) -> PdfExtractionResult:
        """Download and extract a single PDF. Never raises."""
        started = time.monotonic()
        filename = _filename(link.pdf_url)

        try:
            data = await self._download(link.pdf_url, client)
            document = await self.reader.extract_text(data, PDF_MIME_TYPE)

            text = document.text
            if len(text) > self.max_text_chars:
                text = text[: self.max_text_chars]
                document.fields["truncated"] = True

            return PdfExtractionResult(
                url=link.pdf_url,
                filename=filename,
                success=True,
                extracted_text=text,
                fields=document.fields,
                processing_time_ms=(time.monotonic() - started) * 1000,
                source_page_url=link.source_page_url,
            )

        except CatalogPipelineError as e:
            logger.warning(f"PDF extraction failed for {link.pdf_url}: {e}")
            return PdfExtractionResult(
                url=link.pdf_url,
                filename=filename,
                success=False,
                error=str(e),
                processing_time_ms=(time.monotonic() - started) * 1000,
                source_page_url=link.source_page_url,
            )

        except Exception as e:
            logger.exception(f"Unexpected error extracting {link.pdf_url}")
            return PdfExtractionResult(
                url=link.pdf_url,
                filename=filename,
                success=False,
                error=f"{type(e).__name__}: {e}",
                processing_time_ms=(time.monotonic() - started) * 1000,
                source_page_url=link.source_page_url,
            )

    async def _download(self, url: str, client: httpx.AsyncClient) -> bytes:
        try:
            response = await client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(url, f"Timeout downloading PDF: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"Error downloading PDF: {e}") from e

        if response.status_code >= 400:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)

        data = response.content
        if len(data) > self.max_bytes:
            raise FetchError(url, f"PDF too large ({len(data)} bytes)", response.status_code)

        content_type = response.headers.get("content-type", "").lower()
        if not data.lstrip().startswith(b"%PDF") and "pdf" not in content_type:
            raise FetchError(
                url,
                f"Not a PDF (content-type {content_type or 'unknown'})",
                response.status_code,
            )

        return data
