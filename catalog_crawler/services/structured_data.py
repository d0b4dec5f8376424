"""
Listing-card sniffing for model and offer pages.

Collects title, price, year, mileage, image and link snippets from product
cards on a page. The result travels with the crawl output as a hint for
reviewers; extraction itself works from the canonical document.
"""

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

CONTAINER_SELECTORS = [
    ".puffBlock-puff", ".puffBlock", ".product", ".item", ".listing", ".card",
    ".offer", ".vehicle", ".car", "[class*=product]", "[class*=listing]",
    "[class*=card]", "[class*=offer]", "[class*=vehicle]", "article",
]

PRICE_PATTERNS = [
    re.compile(r"(?:från|endast)\s*\d{1,3}(?:[\s\u00a0,.]?\d{3})+\s*kr", re.IGNORECASE),
    re.compile(r"\d{1,3}(?:[\s\u00a0,.]?\d{3})+\s*(?:kr|sek|:-)", re.IGNORECASE),
    re.compile(r"kr\s*\d{1,3}(?:[\s\u00a0,.]?\d{3})+", re.IGNORECASE),
]

YEAR_PATTERN = re.compile(r"\b20[0-3]\d\b")

MILEAGE_PATTERNS = [
    re.compile(r"\d{1,3}(?:[\s\u00a0,.]?\d{3})+\s*(?:mil|km)\b", re.IGNORECASE),
    re.compile(r"\d{1,6}\s*mil\b", re.IGNORECASE),
]

MAX_ELEMENTS_PER_SELECTOR = 20
MIN_CARD_TEXT = 50


def _first_match(patterns, text: str) -> str:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return " ".join(match.group(0).split())
    return ""


def _image_url(element, page_url: str) -> Optional[str]:
    img = element.find("img")
    if img is not None:
        src = img.get("src") or img.get("data-src") or img.get("data-lazy-src") or ""
        if src and not src.startswith("data:") and "placeholder" not in src:
            return urljoin(page_url, src)

    source = element.find("source")
    if source is not None and source.get("srcset"):
        first = source["srcset"].split(",")[0].strip().split()[0]
        return urljoin(page_url, first)
    return None


def extract_listing_items(html: str, page_url: str) -> List[Dict[str, Any]]:
    """
    Extract listing cards from a page.

    Args:
        html: Raw HTML
        page_url: Page URL for resolving image and link URLs

    Returns:
        List of dicts with title, price, year, mileage, image, link, content
    """
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")
    items: List[Dict[str, Any]] = []
    seen = set()

    for selector in CONTAINER_SELECTORS:
        for element in soup.select(selector)[:MAX_ELEMENTS_PER_SELECTOR]:
            text = " ".join(element.get_text(" ", strip=True).split())
            if len(text) <= MIN_CARD_TEXT:
                continue

            title_element = element.find(["h1", "h2", "h3", "h4", "h5"])
            title = title_element.get_text(" ", strip=True) if title_element else text[:100]
            if len(title) <= 3:
                continue

            content = text[:500]
            key = (title, content)
            if key in seen:
                continue
            seen.add(key)

            link_element = element.find("a", href=True)
            year_match = YEAR_PATTERN.search(text)
            items.append({
                "title": title,
                "price": _first_match(PRICE_PATTERNS, text),
                "year": year_match.group(0) if year_match else "",
                "mileage": _first_match(MILEAGE_PATTERNS, text),
                "image": _image_url(element, page_url) or "",
                "link": urljoin(page_url, link_element["href"]) if link_element else "",
                "content": content,
            })

    return items
