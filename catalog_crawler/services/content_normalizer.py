"""
Content Normalizer.

Merges the seed page, linked pages and PDF text of one crawl into a single
CanonicalDocument. Every section keeps the URL it came from so claims made
by extraction can be traced back and fact-checked against their source.
"""

import hashlib
import logging
from typing import List, Optional
from urllib.parse import urljoin

from django.conf import settings

from catalog_crawler.services.html_cleaner import HtmlCleaner
from catalog_crawler.types import (
    CanonicalDocument,
    CrawlResult,
    DocumentSection,
    PageRecord,
    PdfProcessingSummary,
    SectionKind,
)

logger = logging.getLogger(__name__)


class ContentNormalizer:
    """Builds the canonical document handed to extraction."""

    MIN_SECTION_CHARS = 40
    MAX_IMAGES = 10

    def __init__(
        self,
        cleaner: Optional[HtmlCleaner] = None,
        max_section_chars: Optional[int] = None,
    ):
        self.cleaner = cleaner or HtmlCleaner()
        self.max_section_chars = max_section_chars or getattr(
            settings, "NORMALIZER_MAX_SECTION_CHARS", 30000
        )

    def normalize(
        self,
        crawl: CrawlResult,
        pdf_summary: Optional[PdfProcessingSummary] = None,
    ) -> CanonicalDocument:
        """
        Merge crawl output and PDF text.

        Args:
            crawl: Successful crawl result (seed page present)
            pdf_summary: PDF extraction summary; failed PDFs are left out

        Returns:
            CanonicalDocument with primary, linked and pdf sections in that order
        """
        seed_url = crawl.page.url if crawl.page else ""
        document = CanonicalDocument(seed_url=seed_url)
        seen_hashes = set()

        def _add(source_url: str, kind: SectionKind, text: str, title: str = "") -> None:
            text = self._tidy(text, source_url)
            if len(text) < self.MIN_SECTION_CHARS and kind != SectionKind.PRIMARY:
                return
            digest = hashlib.sha1(text.encode("utf-8")).hexdigest()
            if digest in seen_hashes:
                logger.debug(f"Skipping duplicate content from {source_url}")
                return
            seen_hashes.add(digest)
            document.sections.append(
                DocumentSection(source_url=source_url, kind=kind, text=text, title=title)
            )

        if crawl.page is not None:
            _add(crawl.page.url, SectionKind.PRIMARY, self._page_text(crawl.page), crawl.page.title)
            document.image_urls = self._image_urls(crawl.page)

        for page in crawl.linked_content:
            _add(page.url, SectionKind.LINKED, self._page_text(page), page.title or page.link_text)

        if pdf_summary is not None:
            for result in pdf_summary.successful_results:
                _add(result.url, SectionKind.PDF, result.extracted_text, result.filename)

        logger.info(
            f"Canonical document for {seed_url}: {len(document.sections)} sections, "
            f"{document.total_chars} chars"
        )
        return document

    def split_batches(self, document: CanonicalDocument, max_chars: int) -> List[CanonicalDocument]:
        """
        Split a document into batches of whole sections under max_chars.

        The primary section leads the first batch. A single section larger than
        max_chars becomes its own batch, truncated.
        """
        batches: List[CanonicalDocument] = []
        current = CanonicalDocument(seed_url=document.seed_url, image_urls=document.image_urls)
        current_chars = 0

        for section in document.sections:
            if len(section.text) > max_chars:
                logger.warning(
                    f"Section from {section.source_url} exceeds batch size: "
                    f"dropped {len(section.text) - max_chars} of {len(section.text)} chars"
                )
                section = DocumentSection(
                    source_url=section.source_url,
                    kind=section.kind,
                    text=section.text[:max_chars],
                    title=section.title,
                )
            if current.sections and current_chars + len(section.text) > max_chars:
                batches.append(current)
                current = CanonicalDocument(seed_url=document.seed_url)
                current_chars = 0
            current.sections.append(section)
            current_chars += len(section.text)

        if current.sections:
            batches.append(current)
        return batches

    def _page_text(self, page: PageRecord) -> str:
        if page.text:
            return page.text
        return self.cleaner.extract_text(page.cleaned_html or page.raw_html)

    def _image_urls(self, page: PageRecord) -> List[str]:
        urls = [urljoin(page.url, src) for src in self.cleaner.image_urls(page.cleaned_html)]
        return urls[: self.MAX_IMAGES]

    def _tidy(self, text: str, source_url: str = "") -> str:
        lines = [" ".join(line.split()) for line in (text or "").splitlines()]
        tidy = "\n".join(line for line in lines if line)
        if len(tidy) > self.max_section_chars:
            logger.warning(
                f"Truncated section from {source_url or 'unknown source'}: "
                f"dropped {len(tidy) - self.max_section_chars} of {len(tidy)} chars"
            )
            tidy = tidy[: self.max_section_chars]
        return tidy
