"""
Document-understanding capability.

Turns the bytes of a downloaded document into text plus optional fields.
Implementations:

- PypdfDocumentReader: local text layer via pypdf. Fast and free, but gets
  nothing out of scanned price lists.
- DocumentAIClient: remote OCR/document service over httpx. Reads tables in
  scanned documents; billed per page.
- FallbackDocumentReader: tries readers in order and returns the first that
  produces usable text.

All readers raise ExtractionError on failure. Isolating that failure per
document is the PDF extractor's job.
"""

import asyncio
import base64
import io
import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from django.conf import settings
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from catalog_crawler.exceptions import ExtractionError
from catalog_crawler.types import DocumentText
from catalog_crawler.utils.normalization import classify_price, parse_price

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"

# Text-layer PDFs with less than this per page are probably scanned
MIN_CHARS_PER_PAGE = 100

# Remote OCR list price (USD per page)
OCR_COST_PER_PAGE_USD = 1.50 / 1000

_PRICE_LINE_PATTERN = re.compile(
    r"\d{1,3}(?:[ \u00a0\u202f.]\d{3})+(?:\s*(?:kr|:-|sek))?|\d{3,7}\s*(?:kr|:-|sek)",
    re.IGNORECASE,
)


class DocumentUnderstanding(Protocol):
    """Protocol for document-understanding capabilities."""

    async def extract_text(self, data: bytes, mime_type: str) -> DocumentText: ...


def extract_price_lines(text: str, limit: int = 200) -> List[Dict[str, Any]]:
    """
    Pick lines that carry a plausible purchase price or monthly payment.

    Args:
        text: Extracted document text
        limit: Maximum lines returned

    Returns:
        Dicts with line, amount and kind ("purchase" or "monthly")
    """
    lines: List[Dict[str, Any]] = []
    for raw_line in text.splitlines():
        line = " ".join(raw_line.split())
        if not line:
            continue
        for match in _PRICE_LINE_PATTERN.finditer(line):
            amount = parse_price(match.group(0))
            kind = classify_price(amount)
            if kind:
                lines.append({"line": line, "amount": amount, "kind": kind})
                break
        if len(lines) >= limit:
            break
    return lines


class PypdfDocumentReader:
    """Extracts the text layer of a PDF with pypdf."""

    name = "pypdf"

    def __init__(self, max_pages: Optional[int] = None):
        self.max_pages = max_pages or getattr(settings, "PDF_MAX_PAGES", 60)

    async def extract_text(self, data: bytes, mime_type: str = PDF_MIME_TYPE) -> DocumentText:
        if mime_type and PDF_MIME_TYPE not in mime_type:
            raise ExtractionError(f"pypdf cannot read {mime_type}")
        return await asyncio.to_thread(self._read, data)

    def _read(self, data: bytes) -> DocumentText:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = reader.pages
            page_count = len(pages)
            chunks = []
            for index, page in enumerate(pages):
                if index >= self.max_pages:
                    break
                page_text = page.extract_text() or ""
                if page_text.strip():
                    chunks.append(page_text.strip())
        except PdfReadError as e:
            raise ExtractionError(f"Unreadable PDF: {e}") from e
        except Exception as e:
            raise ExtractionError(f"pypdf failed: {type(e).__name__}: {e}") from e

        text = "\n\n".join(chunks)
        if not text.strip():
            raise ExtractionError(
                f"No text layer found in {page_count}-page PDF (probably scanned)"
            )

        if page_count > 1 and len(text) < page_count * MIN_CHARS_PER_PAGE:
            logger.warning(
                f"pypdf extracted only {len(text)} characters from {page_count} pages; "
                "embedded fonts or images likely"
            )

        return DocumentText(
            text=text,
            fields={
                "method": self.name,
                "page_count": page_count,
                "price_lines": extract_price_lines(text),
            },
        )


class DocumentAIClient:
    """
    Async HTTP client for a remote document-understanding service.

    Request:  POST {base_url}/v1/documents:extract
              {"content": <base64>, "mime_type": "application/pdf"}
    Response: {"text": "...", "page_count": 3, "fields": {...}}
    """

    name = "document-ai"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        client_factory=None,
    ):
        """
        Initialize the document AI client.

        Args:
            base_url: Service URL (defaults to settings.DOCUMENT_AI_URL)
            api_key: Bearer token (defaults to settings.DOCUMENT_AI_API_KEY)
            timeout: Request timeout in seconds
            client_factory: Builds the AsyncClient; tests inject a MockTransport here
        """
        self.base_url = (base_url or getattr(settings, "DOCUMENT_AI_URL", "")).rstrip("/")
        self.api_key = api_key or getattr(settings, "DOCUMENT_AI_API_KEY", "")
        self.timeout = timeout
        self.client_factory = client_factory or httpx.AsyncClient
        self.extract_endpoint = f"{self.base_url}/v1/documents:extract"

    def _get_headers(self) -> Dict[str, str]:
        """Build request headers with authentication."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def extract_text(self, data: bytes, mime_type: str = PDF_MIME_TYPE) -> DocumentText:
        if not self.base_url:
            raise ExtractionError("DOCUMENT_AI_URL is not configured")

        payload = {
            "content": base64.b64encode(data).decode("ascii"),
            "mime_type": mime_type or PDF_MIME_TYPE,
        }

        try:
            async with self.client_factory(timeout=self.timeout) as client:
                response = await client.post(
                    self.extract_endpoint,
                    json=payload,
                    headers=self._get_headers(),
                )
                response.raise_for_status()
                body = response.json()

        except httpx.TimeoutException as e:
            raise ExtractionError(f"Document AI timed out after {self.timeout}s") from e

        except httpx.HTTPStatusError as e:
            raise ExtractionError(
                f"Document AI returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e

        except httpx.HTTPError as e:
            raise ExtractionError(f"Document AI request failed: {e}") from e

        except ValueError as e:
            raise ExtractionError(f"Document AI returned invalid JSON: {e}") from e

        text = (body.get("text") or "").strip() if isinstance(body, dict) else ""
        if not text:
            raise ExtractionError("Document AI returned no text")

        page_count = int(body.get("page_count") or 1)
        fields = dict(body.get("fields") or {})
        fields.update({
            "method": self.name,
            "page_count": page_count,
            "ocr_cost_usd": round(page_count * OCR_COST_PER_PAGE_USD, 4),
            "price_lines": extract_price_lines(text),
        })
        return DocumentText(text=text, fields=fields)


class FallbackDocumentReader:
    """Tries each reader in order; the first one that returns text wins."""

    name = "fallback"

    def __init__(self, readers: Sequence[DocumentUnderstanding]):
        if not readers:
            raise ValueError("FallbackDocumentReader needs at least one reader")
        self.readers = list(readers)

    async def extract_text(self, data: bytes, mime_type: str = PDF_MIME_TYPE) -> DocumentText:
        errors = []
        for reader in self.readers:
            reader_name = getattr(reader, "name", type(reader).__name__)
            try:
                return await reader.extract_text(data, mime_type)
            except ExtractionError as e:
                logger.info(f"Document reader {reader_name} failed, trying next: {e}")
                errors.append(f"{reader_name}: {e}")
        raise ExtractionError("; ".join(errors))


def get_document_reader() -> DocumentUnderstanding:
    """
    Build the document reader from settings.

    Remote document AI first when DOCUMENT_AI_URL is set, pypdf otherwise
    (and as the fallback).
    """
    if getattr(settings, "DOCUMENT_AI_URL", ""):
        return FallbackDocumentReader([DocumentAIClient(), PypdfDocumentReader()])
    return PypdfDocumentReader()
