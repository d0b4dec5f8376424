"""
HTML cleaning for fetched manufacturer pages.

Processing Pipeline:
1. Read page info (title, description) from head metadata
2. Locate the main content area (main, article, .content, ... falling back to body)
3. Strip scripts, styles, svg and other non-content tags
4. Strip attributes except href/src/alt/title
5. Drop elements left empty
6. Extract readable text with trafilatura, keeping price tables

Uses trafilatura for text extraction with BeautifulSoup get_text() when
trafilatura returns nothing (common for table-only price pages).
"""

import logging
import re
from dataclasses import dataclass

import trafilatura
from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)


@dataclass
class PageInfo:
    """Head metadata of a page."""

    title: str = ""
    description: str = ""


class HtmlCleaner:
    """
    Cleans raw HTML down to the content the extraction stage needs.

    The cleaned HTML keeps structure (tables, lists, links, images) so prices
    stay next to their variant names; the text form is what goes into the
    canonical document.
    """

    # Most specific first; body is the fallback
    MAIN_CONTENT_SELECTORS = [
        "main",
        "#main",
        ".main-section",
        "[role=main]",
        "article",
        ".content",
        "#content",
        ".page-content",
    ]

    REMOVE_TAGS = [
        "script", "style", "noscript", "svg", "path", "iframe",
        "canvas", "video", "audio", "form", "template", "link", "meta",
    ]

    PRESERVE_ATTRIBUTES = ["href", "src", "alt", "title"]

    # Elements kept even when they have no text
    SELF_CONTAINED_TAGS = {"img", "br", "hr", "td", "th"}

    MIN_MAIN_CONTENT_CHARS = 200

    def extract_page_info(self, html: str) -> PageInfo:
        """
        Read title and description from the page head.

        Args:
            html: Raw HTML

        Returns:
            PageInfo, empty strings where metadata is missing
        """
        if not html:
            return PageInfo()

        soup = BeautifulSoup(html, "html.parser")

        title = ""
        og_title = soup.find("meta", attrs={"property": "og:title"})
        if soup.title and soup.title.get_text(strip=True):
            title = soup.title.get_text(" ", strip=True)
        elif og_title and og_title.get("content"):
            title = og_title["content"].strip()
        else:
            h1 = soup.find("h1")
            title = h1.get_text(" ", strip=True) if h1 else ""

        description = ""
        for attrs in ({"name": "description"}, {"property": "og:description"}):
            meta = soup.find("meta", attrs=attrs)
            if meta and meta.get("content"):
                description = meta["content"].strip()
                break

        return PageInfo(title=title, description=description)

    def clean(self, html: str) -> str:
        """
        Clean HTML while preserving content structure.

        Args:
            html: Raw HTML

        Returns:
            Cleaned HTML of the main content area
        """
        if not html:
            return ""

        soup = BeautifulSoup(html, "html.parser")
        root = self._find_main_content(soup)

        for tag_name in self.REMOVE_TAGS:
            for tag in root.find_all(tag_name):
                tag.decompose()

        for comment in root.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        for tag in root.find_all(True):
            for attr in list(tag.attrs):
                if attr not in self.PRESERVE_ATTRIBUTES:
                    del tag[attr]

        self._remove_empty_elements(root)

        cleaned = str(root)
        cleaned = re.sub(r"\s+", " ", cleaned)
        return cleaned.strip()

    def extract_text(self, html: str) -> str:
        """
        Extract readable text from HTML.

        Args:
            html: Raw or cleaned HTML

        Returns:
            Plain text with table rows kept on their own lines
        """
        if not html:
            return ""

        extracted = trafilatura.extract(
            html,
            include_links=False,
            include_images=False,
            include_tables=True,
            favor_recall=True,
            output_format="txt",
        )
        if extracted and extracted.strip():
            return extracted.strip()

        logger.debug("trafilatura returned empty, using BeautifulSoup text")
        return self._basic_text_extract(html)

    def image_urls(self, html: str) -> list:
        """Return src of every <img> in the (cleaned) HTML, in document order."""
        if not html:
            return []
        soup = BeautifulSoup(html, "html.parser")
        urls = []
        for img in soup.find_all("img"):
            src = (img.get("src") or "").strip()
            if src and not src.startswith("data:") and src not in urls:
                urls.append(src)
        return urls

    def _find_main_content(self, soup: BeautifulSoup):
        for selector in self.MAIN_CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element and len(element.get_text(strip=True)) >= self.MIN_MAIN_CONTENT_CHARS:
                return element
        return soup.body or soup

    def _remove_empty_elements(self, root) -> None:
        # Children before parents so emptied containers are removed too
        for tag in reversed(root.find_all(True)):
            if tag.name in self.SELF_CONTAINED_TAGS:
                continue
            if tag.find(list(self.SELF_CONTAINED_TAGS)):
                continue
            if not tag.get_text(strip=True):
                tag.decompose()

    def _basic_text_extract(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        for tag_name in ("script", "style", "noscript"):
            for tag in soup.find_all(tag_name):
                tag.decompose()
        lines = [line.strip() for line in soup.get_text("\n").splitlines()]
        return "\n".join(line for line in lines if line)
