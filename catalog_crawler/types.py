"""
Run-scoped data structures passed between pipeline stages.

None of these are persisted directly: PageRecord and PdfExtractionResult live
for one pipeline run, CanonicalDocument is the single input to extraction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from django.utils import timezone


class TargetOrigin(str, Enum):
    SEED = "seed"
    DISCOVERED = "discovered"


class LinkKind(str, Enum):
    PDF = "pdf"
    HTML = "html"
    ASSET = "asset"


class PdfType(str, Enum):
    PRICELIST = "pricelist"
    BROCHURE = "brochure"
    SPECIFICATIONS = "specifications"
    UNKNOWN = "unknown"


class PdfBatchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    NOT_FOUND = "not_found"


class SectionKind(str, Enum):
    PRIMARY = "primary"
    LINKED = "linked"
    PDF = "pdf"


@dataclass(frozen=True)
class CrawlTarget:
    """One frontier entry. Consumed once by the crawl coordinator."""

    url: str
    depth_remaining: int
    origin: TargetOrigin = TargetOrigin.DISCOVERED
    link_text: str = ""


@dataclass
class OutboundLink:
    """A link found on a fetched page, classified by kind."""

    url: str
    text: str
    kind: LinkKind


@dataclass
class PageRecord:
    """Rendered and cleaned content of one fetched URL."""

    url: str
    title: str = ""
    description: str = ""
    raw_html: str = ""
    cleaned_html: str = ""
    text: str = ""
    content_length: int = 0
    cleaned_content_length: int = 0
    outbound_link_count: int = 0
    links: List[OutboundLink] = field(default_factory=list)
    link_text: str = ""
    depth: int = 0
    fetched_at: datetime = field(default_factory=timezone.now)

    @property
    def page_info(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "scraped_at": self.fetched_at.isoformat(),
            "content_length": self.content_length,
            "cleaned_content_length": self.cleaned_content_length,
            "links_found": self.outbound_link_count,
        }


@dataclass
class LinkedPageFailure:
    """A linked page that could not be fetched. Recorded, never fatal."""

    url: str
    error: str
    link_text: str = ""


@dataclass(frozen=True)
class PdfLink:
    """A PDF reference discovered on a page."""

    source_page_url: str
    pdf_url: str
    pattern: str
    pdf_type: PdfType = PdfType.UNKNOWN


@dataclass
class CrawlResult:
    """Aggregated output of one crawl."""

    success: bool
    page: Optional[PageRecord] = None
    linked_content: List[PageRecord] = field(default_factory=list)
    failed_links: List[LinkedPageFailure] = field(default_factory=list)
    pdf_links: List[PdfLink] = field(default_factory=list)
    structured_data: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    timed_out: bool = False
    visited_urls: List[str] = field(default_factory=list)

    @property
    def page_info(self) -> Dict[str, Any]:
        if self.page is None:
            return {}
        info = self.page.page_info
        info["links_fetched"] = len(self.linked_content)
        return info

    @property
    def pages_fetched(self) -> int:
        return (1 if self.page else 0) + len(self.linked_content)

    @property
    def pages_failed(self) -> int:
        seed_failed = 1 if self.page is None and not self.success else 0
        return len(self.failed_links) + seed_failed


@dataclass
class DocumentText:
    """Output of a document-understanding capability."""

    text: str
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PdfExtractionResult:
    """Outcome of extracting one PDF."""

    url: str
    filename: str
    success: bool
    extracted_text: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)
    processing_time_ms: float = 0.0
    error: Optional[str] = None
    source_page_url: str = ""


@dataclass
class PdfProcessingSummary:
    """Aggregate of a PDF extraction batch."""

    total_pdfs_found: int = 0
    total_pdfs_processed: int = 0
    overall_status: PdfBatchStatus = PdfBatchStatus.NOT_FOUND
    results: List[PdfExtractionResult] = field(default_factory=list)
    total_processing_time_ms: float = 0.0
    all_errors: List[str] = field(default_factory=list)
    # Deadline or cancel hit before every PDF finished
    timed_out: bool = False

    @property
    def successful_results(self) -> List[PdfExtractionResult]:
        return [r for r in self.results if r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_pdfs_found": self.total_pdfs_found,
            "total_pdfs_processed": self.total_pdfs_processed,
            "overall_status": self.overall_status.value,
            "total_processing_time_ms": round(self.total_processing_time_ms, 1),
            "all_errors": list(self.all_errors),
            "timed_out": self.timed_out,
            "results": [
                {
                    "url": r.url,
                    "filename": r.filename,
                    "success": r.success,
                    "processing_time_ms": round(r.processing_time_ms, 1),
                    "error": r.error,
                }
                for r in self.results
            ],
        }


@dataclass
class DocumentSection:
    """A piece of the canonical document with its provenance."""

    source_url: str
    kind: SectionKind
    text: str
    title: str = ""


@dataclass
class CanonicalDocument:
    """Merged, source-tagged text handed to extraction."""

    seed_url: str
    sections: List[DocumentSection] = field(default_factory=list)
    image_urls: List[str] = field(default_factory=list)

    @property
    def source_urls(self) -> List[str]:
        return [s.source_url for s in self.sections]

    @property
    def total_chars(self) -> int:
        return sum(len(s.text) for s in self.sections)

    def section_for(self, source_url: str) -> Optional[DocumentSection]:
        for section in self.sections:
            if section.source_url == source_url:
                return section
        return None

    def find_source(self, excerpt: str) -> Optional[DocumentSection]:
        """Return the first section whose text contains the excerpt."""
        needle = " ".join(excerpt.split()).lower()
        if not needle:
            return None
        for section in self.sections:
            if needle in " ".join(section.text.split()).lower():
                return section
        return None

    def render(self) -> str:
        """Render sections into one delimited text for the extraction capability."""
        parts = []
        for index, section in enumerate(self.sections):
            if section.kind == SectionKind.PRIMARY:
                label = "MAIN PAGE CONTENT"
            elif section.kind == SectionKind.PDF:
                label = f"PDF DOCUMENT {index}"
            else:
                label = f"LINKED PAGE {index}"
            header = f"=== {label} START ===\nSOURCE: {section.source_url}"
            if section.title:
                header += f"\nTITLE: {section.title}"
            parts.append(f"{header}\n{section.text}\n=== {label} END ===")
        return "\n\n".join(parts)
