"""
PDF link discovery.

Price lists and brochures are referenced in several ways on manufacturer
sites: plain <a href>, data-href on buttons, <embed>/<object>/<iframe> viewers,
and bare URLs inside inline JSON or text. Discovery makes one pass over the
parsed attributes and one scan of the raw text, then deduplicates on the
normalized absolute URL so a PDF referenced twice is reported once.
"""

import logging
import re
from typing import Dict, List
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from catalog_crawler.types import PdfLink, PdfType
from catalog_crawler.utils.normalization import normalize_url

logger = logging.getLogger(__name__)

# Attributes that can hold a document URL
PDF_ATTRIBUTES = ["href", "data-href", "src", "data", "data-src", "data-url"]

BARE_PDF_URL_PATTERN = re.compile(
    r"""https?://[^\s"'<>()\\]+?\.pdf(?:\?[^\s"'<>()\\]*)?(?![\w.])""",
    re.IGNORECASE,
)

PDF_TYPE_KEYWORDS = [
    (PdfType.PRICELIST, ["prislista", "prislistor", "pricelist", "price", "produktfakta", "pris"]),
    (PdfType.BROCHURE, ["broschyr", "brochure", "folder", "webbversion"]),
    (PdfType.SPECIFICATIONS, ["spec", "tekn", "data"]),
]

# Page-count suffixes such as _8s_ (8 sidor) mark brochures
BROCHURE_PAGE_COUNT_PATTERN = re.compile(r"_\d+s_")


def categorize_pdf(url: str) -> PdfType:
    """Guess the kind of document from its URL."""
    lowered = url.lower()
    for pdf_type, keywords in PDF_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return pdf_type
        if pdf_type == PdfType.BROCHURE and BROCHURE_PAGE_COUNT_PATTERN.search(lowered):
            return pdf_type
    return PdfType.UNKNOWN


def filter_pricelist_pdfs(pdf_links: List[PdfLink]) -> List[PdfLink]:
    """Keep price lists and unknown PDFs (model sheets like 408.pdf); skip brochures and spec sheets."""
    return [
        link for link in pdf_links
        if link.pdf_type in (PdfType.PRICELIST, PdfType.UNKNOWN)
    ]


def pdf_dedup_key(url: str) -> str:
    """Dedup key for a PDF URL: the normalized absolute URL, query included."""
    return normalize_url(url)


def _is_pdf_url(url: str) -> bool:
    return urlparse(url).path.lower().endswith(".pdf")


def _pattern_name(tag_name: str, attribute: str) -> str:
    if tag_name in ("a", "link", "area"):
        return attribute
    return f"{tag_name}-{attribute}"


def discover_pdf_links(html: str, page_url: str) -> List[PdfLink]:
    """
    Find every PDF referenced by a page.

    Args:
        html: Raw HTML of the page
        page_url: URL the HTML was fetched from (base for relative URLs)

    Returns:
        PdfLink list in discovery order, one entry per normalized URL. The
        pattern is the first one that matched.
    """
    if not html:
        return []

    found: Dict[str, PdfLink] = {}

    def _add(url: str, pattern: str) -> None:
        absolute = urljoin(page_url, url.strip()).split("#", 1)[0]
        if not _is_pdf_url(absolute):
            return
        key = pdf_dedup_key(absolute)
        if key in found:
            return
        found[key] = PdfLink(
            source_page_url=page_url,
            pdf_url=absolute,
            pattern=pattern,
            pdf_type=categorize_pdf(absolute),
        )

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(True):
        for attribute in PDF_ATTRIBUTES:
            value = tag.get(attribute)
            if isinstance(value, str) and value.strip():
                _add(value, _pattern_name(tag.name, attribute))

    # JSON fragments escape slashes
    raw_text = html.replace("\\/", "/")
    for match in BARE_PDF_URL_PATTERN.finditer(raw_text):
        _add(match.group(0), "bare-url")

    if found:
        logger.debug(f"Discovered {len(found)} PDF links on {page_url}")
    return list(found.values())
