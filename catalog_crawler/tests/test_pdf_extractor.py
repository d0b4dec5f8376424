"""
Tests for the PDF Extractor.

Downloads go through httpx.MockTransport; text extraction through a fake
document reader.
"""

import asyncio

import httpx
import pytest

from catalog_crawler.services.pdf_extractor import PdfExtractor, overall_status
from catalog_crawler.tests.conftest import FakeDocumentReader, mock_client_factory
from catalog_crawler.types import PdfBatchStatus, PdfLink, PdfType


PAGE_URL = "https://www.suzuki.se/bilar"


def pdf_link(name: str) -> PdfLink:
    return PdfLink(
        source_page_url=PAGE_URL,
        pdf_url=f"https://www.suzuki.se/media/{name}",
        pattern="href",
        pdf_type=PdfType.PRICELIST,
    )


def site_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("missing.pdf"):
        return httpx.Response(404, text="Not found")
    if path.endswith("page.pdf"):
        return httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"})
    if path.endswith("broken.pdf"):
        return httpx.Response(200, content=b"%PDF-1.4 BROKEN")
    name = path.rsplit("/", 1)[-1]
    return httpx.Response(
        200,
        content=f"%PDF-1.4 {name} Select 459 900 kr".encode("utf-8"),
        headers={"content-type": "application/pdf"},
    )


def make_extractor(**kwargs) -> PdfExtractor:
    return PdfExtractor(
        reader=kwargs.pop("reader", FakeDocumentReader()),
        timeout=5,
        max_concurrency=2,
        client_factory=mock_client_factory(site_handler),
        **kwargs,
    )


class TestOverallStatus:
    """Tests for batch status aggregation."""

    def test_statuses(self):
        assert overall_status(0, 0) == PdfBatchStatus.NOT_FOUND
        assert overall_status(3, 3) == PdfBatchStatus.SUCCESS
        assert overall_status(3, 2) == PdfBatchStatus.PARTIAL
        assert overall_status(2, 0) == PdfBatchStatus.FAILED


class TestExtractAll:
    """Tests for extracting a batch of PDFs."""

    @pytest.mark.asyncio
    async def test_one_failing_pdf_gives_partial_batch(self):
        links = [pdf_link("prislista-vitara.pdf"), pdf_link("missing.pdf"), pdf_link("prislista-swift.pdf")]

        summary = await make_extractor().extract_all(links)

        assert summary.overall_status == PdfBatchStatus.PARTIAL
        assert summary.total_pdfs_found == 3
        assert summary.total_pdfs_processed == 2
        assert [r.success for r in summary.results] == [True, False, True]
        assert "HTTP 404" in summary.results[1].error
        assert len(summary.all_errors) == 1
        assert summary.all_errors[0].startswith("missing.pdf")

    @pytest.mark.asyncio
    async def test_successful_results_carry_text_and_source(self):
        summary = await make_extractor().extract_all([pdf_link("prislista-vitara.pdf")])

        result = summary.results[0]
        assert summary.overall_status == PdfBatchStatus.SUCCESS
        assert result.filename == "prislista-vitara.pdf"
        assert "459 900 kr" in result.extracted_text
        assert result.source_page_url == PAGE_URL
        assert result.fields["method"] == "fake"

    @pytest.mark.asyncio
    async def test_no_links_is_not_found(self):
        reader = FakeDocumentReader()
        summary = await make_extractor(reader=reader).extract_all([])

        assert summary.overall_status == PdfBatchStatus.NOT_FOUND
        assert summary.total_pdfs_found == 0
        assert summary.results == []
        assert reader.calls == 0

    @pytest.mark.asyncio
    async def test_all_failing_is_failed(self):
        summary = await make_extractor().extract_all([pdf_link("missing.pdf"), pdf_link("broken.pdf")])

        assert summary.overall_status == PdfBatchStatus.FAILED
        assert summary.total_pdfs_processed == 0
        assert len(summary.all_errors) == 2

    @pytest.mark.asyncio
    async def test_html_instead_of_pdf_is_rejected(self):
        summary = await make_extractor().extract_all([pdf_link("page.pdf")])

        assert summary.results[0].success is False
        assert "Not a PDF" in summary.results[0].error

    @pytest.mark.asyncio
    async def test_reader_failure_is_isolated(self):
        summary = await make_extractor().extract_all([pdf_link("broken.pdf"), pdf_link("prislista.pdf")])

        assert summary.overall_status == PdfBatchStatus.PARTIAL
        assert "Unreadable PDF" in summary.results[0].error

    @pytest.mark.asyncio
    async def test_long_text_is_truncated(self):
        summary = await make_extractor(max_text_chars=10).extract_all([pdf_link("prislista.pdf")])

        result = summary.results[0]
        assert len(result.extracted_text) == 10
        assert result.fields["truncated"] is True

    @pytest.mark.asyncio
    async def test_oversized_download_is_rejected(self):
        summary = await make_extractor(max_bytes=5).extract_all([pdf_link("prislista.pdf")])

        assert summary.results[0].success is False
        assert "too large" in summary.results[0].error

    @pytest.mark.asyncio
    async def test_summary_to_dict(self):
        summary = await make_extractor().extract_all([pdf_link("prislista.pdf"), pdf_link("missing.pdf")])

        data = summary.to_dict()
        assert data["overall_status"] == "partial"
        assert data["total_pdfs_found"] == 2
        assert data["results"][1]["success"] is False


class TestExtractAllDeadline:
    """Tests for stopping a batch at its deadline."""

    @staticmethod
    def extractor_with_slow(name: str) -> PdfExtractor:
        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith(name):
                await asyncio.sleep(5)
            return site_handler(request)

        return PdfExtractor(
            reader=FakeDocumentReader(),
            timeout=10,
            max_concurrency=2,
            client_factory=mock_client_factory(handler),
        )

    @pytest.mark.asyncio
    async def test_timeout_keeps_finished_pdfs(self):
        extractor = self.extractor_with_slow("prislista-swift.pdf")

        summary = await extractor.extract_all(
            [pdf_link("prislista-vitara.pdf"), pdf_link("prislista-swift.pdf")], timeout=0.5
        )

        assert summary.timed_out is True
        assert [r.filename for r in summary.results] == ["prislista-vitara.pdf"]
        assert summary.total_pdfs_processed == 1
        assert summary.overall_status == PdfBatchStatus.PARTIAL
        assert summary.all_errors == ["prislista-swift.pdf: not finished before the deadline"]

    @pytest.mark.asyncio
    async def test_cancel_event_stops_batch(self):
        extractor = self.extractor_with_slow("prislista-swift.pdf")
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.2, cancel.set)

        summary = await extractor.extract_all(
            [pdf_link("prislista-vitara.pdf"), pdf_link("prislista-swift.pdf")], cancel_event=cancel
        )

        assert summary.timed_out is True
        assert summary.total_pdfs_processed == 1

    @pytest.mark.asyncio
    async def test_batch_within_budget_is_not_timed_out(self):
        summary = await make_extractor().extract_all([pdf_link("prislista.pdf")], timeout=5)

        assert summary.timed_out is False
        assert summary.to_dict()["timed_out"] is False
