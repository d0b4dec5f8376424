"""
Tests for PDF link discovery.
"""

from catalog_crawler.services.pdf_discovery import (
    categorize_pdf,
    discover_pdf_links,
    filter_pricelist_pdfs,
    pdf_dedup_key,
)
from catalog_crawler.types import PdfLink, PdfType


PAGE_URL = "https://www.suzuki.se/bilar/vitara"


class TestDiscoverPdfLinks:
    """Tests for discover_pdf_links."""

    def test_same_pdf_referenced_twice_is_reported_once(self):
        html = """
        <html><body>
            <a href="https://www.suzuki.se/media/prislista-vitara.pdf">Prislista</a>
            <script>var doc = "https://www.suzuki.se/media/prislista-vitara.pdf";</script>
        </body></html>
        """
        links = discover_pdf_links(html, PAGE_URL)

        assert len(links) == 1
        assert links[0].pattern == "href"
        assert links[0].source_page_url == PAGE_URL
        assert links[0].pdf_type == PdfType.PRICELIST

    def test_finds_pdfs_in_viewer_and_data_attributes(self):
        html = """
        <html><body>
            <button data-href="/media/broschyr-vitara.pdf">Ladda ner</button>
            <iframe src="/media/408.pdf"></iframe>
            <object data="/media/teknisk-data.pdf"></object>
        </body></html>
        """
        links = discover_pdf_links(html, PAGE_URL)

        assert [(link.pdf_url, link.pattern) for link in links] == [
            ("https://www.suzuki.se/media/broschyr-vitara.pdf", "button-data-href"),
            ("https://www.suzuki.se/media/408.pdf", "iframe-src"),
            ("https://www.suzuki.se/media/teknisk-data.pdf", "object-data"),
        ]

    def test_finds_escaped_urls_in_inline_json(self):
        html = '<script>{"file":"https:\\/\\/cdn.suzuki.se\\/prislista.pdf"}</script>'
        links = discover_pdf_links(html, PAGE_URL)

        assert [link.pdf_url for link in links] == ["https://cdn.suzuki.se/prislista.pdf"]
        assert links[0].pattern == "bare-url"

    def test_query_string_distinguishes_pdfs(self):
        html = """
        <a href="/media/prislista.pdf?model=swift">Swift</a>
        <a href="/media/prislista.pdf?model=vitara">Vitara</a>
        <a href="/media/prislista.pdf?model=swift#sida2">Swift igen</a>
        """
        links = discover_pdf_links(html, PAGE_URL)

        assert [link.pdf_url for link in links] == [
            "https://www.suzuki.se/media/prislista.pdf?model=swift",
            "https://www.suzuki.se/media/prislista.pdf?model=vitara",
        ]

    def test_ignores_non_pdf_links(self):
        html = '<a href="/bilar/swift">Swift</a><img src="/bild.png">'
        assert discover_pdf_links(html, PAGE_URL) == []

    def test_empty_html(self):
        assert discover_pdf_links("", PAGE_URL) == []


class TestCategorize:
    """Tests for PDF type guessing and filtering."""

    def test_categorize(self):
        assert categorize_pdf("https://x.se/prislista-swift.pdf") == PdfType.PRICELIST
        assert categorize_pdf("https://x.se/broschyr-swift.pdf") == PdfType.BROCHURE
        assert categorize_pdf("https://x.se/swift_8s_web.pdf") == PdfType.BROCHURE
        assert categorize_pdf("https://x.se/408.pdf") == PdfType.UNKNOWN

    def test_filter_keeps_pricelists_and_unknown(self):
        links = [
            PdfLink(PAGE_URL, "https://x.se/prislista.pdf", "href", PdfType.PRICELIST),
            PdfLink(PAGE_URL, "https://x.se/broschyr.pdf", "href", PdfType.BROCHURE),
            PdfLink(PAGE_URL, "https://x.se/408.pdf", "href", PdfType.UNKNOWN),
        ]

        kept = filter_pricelist_pdfs(links)

        assert [link.pdf_url for link in kept] == [
            "https://x.se/prislista.pdf",
            "https://x.se/408.pdf",
        ]

    def test_dedup_key_keeps_query(self):
        assert pdf_dedup_key("https://X.se/a.pdf?v=1") == "https://x.se/a.pdf?v=1"
        assert pdf_dedup_key("https://x.se/a.pdf?v=1") != pdf_dedup_key("https://x.se/a.pdf?v=2")
