"""
Link Extractor Service.

Extracts outbound links from a fetched page, classifies each as pdf, html or
asset, and decides which html links are worth following from a model or
campaign page.
"""

import logging
import re
from typing import Iterable, List, Optional, Set
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from django.conf import settings

from catalog_crawler.types import LinkKind, OutboundLink
from catalog_crawler.utils.normalization import normalize_url

logger = logging.getLogger(__name__)


class LinkExtractor:
    """
    Extracts and classifies links from HTML content.

    Relevance rules for html links:
    - relative links, same-host links and links to an allowed brand host
    - utility sections (search, login, cart, contact, privacy, press, ...) skipped
    - generic anchor text ("läs mer", "read more", "här", digits, <= 2 chars) skipped
    """

    # Areas searched for followable links, most specific first
    CONTENT_AREAS = ["main", "article", ".content", ".main-content", "#main", "#content"]

    ASSET_EXTENSIONS = (
        ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico", ".avif",
        ".css", ".js", ".json", ".xml", ".zip", ".rar", ".exe", ".mp4", ".mp3",
        ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".woff", ".woff2",
    )

    NON_HTTP_PREFIXES = ("mailto:", "tel:", "javascript:", "data:", "sms:")

    # Path segments (Swedish and English) of sections that never carry prices
    SKIP_SEGMENTS = {
        "search", "sok", "login", "logga-in", "register", "registrera",
        "cart", "varukorg", "checkout", "kassa", "account", "konto",
        "profile", "profil", "settings", "installningar", "help", "hjalp",
        "support", "contact", "kontakt", "about", "om", "om-oss", "privacy",
        "integritet", "integritetspolicy", "terms", "villkor", "cookies",
        "sitemap", "rss", "feed", "api", "karriar", "jobb", "press", "investor",
    }

    LOW_QUALITY_TEXT_PATTERNS = [
        r"^(läs mer|read more|more|mer)$",
        r"^(här|here)$",
        r"^(klicka|click)$",
        r"^(visa|show|view)$",
        r"^(gå till|go to)$",
        r"^(se|see)$",
        r"^\d+$",
        r"^.{1,2}$",
    ]

    def __init__(
        self,
        allowed_hosts: Optional[Iterable[str]] = None,
        max_links: Optional[int] = None,
    ):
        """
        Initialize the link extractor.

        Args:
            allowed_hosts: Extra hosts (or host fragments such as "toyota") whose
                links are followed besides the page's own host
            max_links: Maximum followable links returned per page
        """
        if allowed_hosts is None:
            allowed_hosts = getattr(settings, "CRAWLER_ALLOWED_HOSTS", [])
        self.allowed_hosts = [h.lower() for h in allowed_hosts if h]
        self.max_links = max_links or getattr(settings, "CRAWLER_MAX_LINKS_PER_PAGE", 20)

        self._low_quality_regexes = [
            re.compile(p, re.IGNORECASE) for p in self.LOW_QUALITY_TEXT_PATTERNS
        ]

    def classify(self, url: str) -> Optional[LinkKind]:
        """
        Classify an absolute URL.

        Returns:
            LinkKind, or None for non-http links (mailto, tel, javascript)
        """
        lowered = url.lower()
        if lowered.startswith(self.NON_HTTP_PREFIXES):
            return None

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return None

        path = parsed.path.lower()
        if path.endswith(".pdf"):
            return LinkKind.PDF
        if path.endswith(self.ASSET_EXTENSIONS):
            return LinkKind.ASSET
        return LinkKind.HTML

    def extract_links(self, html: str, base_url: str) -> List[OutboundLink]:
        """
        Extract and classify every anchor on the page.

        Args:
            html: Raw HTML content
            base_url: Base URL for resolving relative links

        Returns:
            OutboundLink list, deduplicated by normalized URL, in document order
        """
        if not html:
            return []

        soup = BeautifulSoup(html, "html.parser")
        return self._collect(soup.find_all("a", href=True), base_url)

    def select_followable(self, html: str, base_url: str) -> List[OutboundLink]:
        """
        Select html links worth crawling from the page's main content area.

        Args:
            html: Raw HTML content
            base_url: URL of the page the links were found on

        Returns:
            At most max_links relevant html links
        """
        if not html:
            return []

        soup = BeautifulSoup(html, "html.parser")
        search_area = soup.body or soup
        for selector in self.CONTENT_AREAS:
            element = soup.select_one(selector)
            if element is not None:
                search_area = element
                break

        base_key = normalize_url(base_url)
        selected: List[OutboundLink] = []
        for link in self._collect(search_area.find_all("a", href=True), base_url):
            if link.kind != LinkKind.HTML:
                continue
            if normalize_url(link.url) == base_key:
                continue
            if not self.is_relevant(link.url, base_url):
                continue
            if self._is_low_quality_text(link.text):
                continue
            selected.append(link)
            if len(selected) >= self.max_links:
                break

        return selected

    def is_relevant(self, url: str, base_url: str) -> bool:
        """Same host or allowed brand host, and not a utility section."""
        parsed = urlparse(url)
        host = parsed.netloc.lower()
        base_host = urlparse(base_url).netloc.lower()

        if host != base_host and not any(allowed in host for allowed in self.allowed_hosts):
            return False

        path = parsed.path.strip("/")
        if not path:
            return False

        segments = {segment.lower() for segment in path.split("/")}
        return not (segments & self.SKIP_SEGMENTS)

    def _is_low_quality_text(self, text: str) -> bool:
        text = text.strip()
        if not text:
            return True
        return any(regex.match(text) for regex in self._low_quality_regexes)

    def _collect(self, anchors, base_url: str) -> List[OutboundLink]:
        links: List[OutboundLink] = []
        seen_urls: Set[str] = set()

        for anchor in anchors:
            href = anchor.get("href", "").strip()
            if not href or href.startswith("#"):
                continue

            full_url = urljoin(base_url, href)
            kind = self.classify(full_url)
            if kind is None:
                continue

            key = normalize_url(full_url)
            if key in seen_urls:
                continue
            seen_urls.add(key)

            text = anchor.get_text(" ", strip=True) or anchor.get("title", "") or ""
            links.append(OutboundLink(url=full_url.split("#")[0], text=text, kind=kind))

        return links


def get_link_extractor() -> LinkExtractor:
    """Get a link extractor configured from settings."""
    return LinkExtractor()
