"""
Pytest configuration and fixtures for the catalog crawler test suite.

Capabilities (page fetching, document reading, AI extraction, fact-check,
catalog persistence) are replaced with in-memory fakes so pipeline stages can
be exercised without network or database access.
"""

import asyncio
import uuid
from contextlib import contextmanager
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import pytest
from bs4 import BeautifulSoup

from catalog_crawler.exceptions import (
    ExtractionError,
    FetchError,
    InvariantViolation,
    ReconciliationConflict,
)
from catalog_crawler.services.link_extractor import LinkExtractor
from catalog_crawler.types import DocumentText, PageRecord


def mock_client_factory(handler):
    """AsyncClient factory that routes every request to handler."""
    transport = httpx.MockTransport(handler)

    def factory(**kwargs):
        return httpx.AsyncClient(transport=transport, **kwargs)

    return factory


class FakeFetcher:
    """PageFetcher stand-in serving canned HTML by URL."""

    def __init__(
        self,
        pages: Optional[Dict[str, str]] = None,
        failures: Optional[Dict[str, str]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.pages = pages or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls: List[tuple] = []
        self.link_extractor = LinkExtractor(allowed_hosts=[], max_links=20)

    async def fetch(self, url: str, depth: int = 0, link_text: str = "") -> PageRecord:
        self.calls.append((url, depth))
        delay = self.delays.get(url)
        if delay:
            await asyncio.sleep(delay)
        if url in self.failures:
            raise FetchError(url, self.failures[url], 500)
        if url not in self.pages:
            raise FetchError(url, "HTTP 404", 404)

        html = self.pages[url]
        soup = BeautifulSoup(html, "html.parser")
        return PageRecord(
            url=url,
            title=soup.title.get_text(strip=True) if soup.title else "",
            raw_html=html,
            cleaned_html=html,
            text=soup.get_text("\n", strip=True),
            content_length=len(html),
            cleaned_content_length=len(html),
            link_text=link_text,
            depth=depth,
        )

    @property
    def fetched_urls(self) -> List[str]:
        return [url for url, _ in self.calls]


class FakeDocumentReader:
    """Document reader returning the bytes after the %PDF marker as text."""

    name = "fake"

    def __init__(self, failing_marker: bytes = b"BROKEN"):
        self.failing_marker = failing_marker
        self.calls = 0

    async def extract_text(self, data: bytes, mime_type: str = "application/pdf") -> DocumentText:
        self.calls += 1
        if self.failing_marker in data:
            raise ExtractionError("Unreadable PDF")
        text = data.decode("utf-8").replace("%PDF-1.4", "").strip()
        return DocumentText(text=text, fields={"method": self.name})


class FakeExtractionClient:
    """Structured-extraction stand-in returning queued responses."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    async def extract(self, canonical_text: str, category_hint: str, image_urls=None):
        self.calls.append({
            "text": canonical_text,
            "category_hint": category_hint,
            "image_urls": image_urls,
        })
        if not self.responses:
            return {"category": None, "entities": []}
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeFactCheckClient:
    """Fact-check stand-in with a verdict per claim field."""

    def __init__(self, verdicts: Optional[Dict[str, Any]] = None, default: Any = True):
        self.verdicts = verdicts or {}
        self.default = default
        self.calls: List[tuple] = []

    async def verify(self, claim, source_context: str) -> bool:
        self.calls.append((claim.field, source_context))
        verdict = self.verdicts.get(claim.field, self.default)
        if isinstance(verdict, Exception):
            raise verdict
        return verdict


class FakeCatalogStore:
    """In-memory CatalogStore."""

    def __init__(self):
        self.brands: Dict[str, Any] = {}
        self.vehicles: Dict[tuple, Any] = {}
        self.variants: Dict[tuple, Any] = {}
        self.prices: List[Any] = []

    @contextmanager
    def atomic(self):
        yield

    def find_brand(self, name):
        return self.brands.get(name.strip().lower())

    def find_vehicle(self, brand, name, model_year):
        return self.vehicles.get((brand.id, name.strip().lower(), model_year))

    def find_variant(self, vehicle, name, motor_type, drivetrain):
        return self.variants.get((vehicle.id, name.strip().lower(), motor_type, drivetrain))

    def upsert_brand(self, name):
        brand = self.find_brand(name)
        if brand is not None:
            return brand, False
        brand = SimpleNamespace(id=uuid.uuid4(), name=name.strip())
        self.brands[name.strip().lower()] = brand
        return brand, True

    def upsert_vehicle(self, brand, name, model_year, defaults):
        vehicle = self.find_vehicle(brand, name, model_year)
        if vehicle is not None:
            return vehicle, False
        vehicle = SimpleNamespace(
            id=uuid.uuid4(), brand=brand, name=name.strip(), model_year=model_year, **defaults
        )
        self.vehicles[(brand.id, name.strip().lower(), model_year)] = vehicle
        return vehicle, True

    def upsert_variant(self, vehicle, name, motor_type, drivetrain, defaults):
        variant = self.find_variant(vehicle, name, motor_type, drivetrain)
        if variant is not None:
            return variant, False
        variant = SimpleNamespace(
            id=uuid.uuid4(),
            vehicle=vehicle,
            name=name.strip(),
            motor_type=motor_type,
            drivetrain=drivetrain,
            **defaults,
        )
        self.variants[(vehicle.id, name.strip().lower(), motor_type, drivetrain)] = variant
        return variant, True

    def find_current_price(self, variant, for_update=False):
        rows = self.current_rows(variant.id)
        if len(rows) > 1:
            raise InvariantViolation(variant.id, len(rows))
        return rows[0] if rows else None

    def expire_price(self, price_id, at):
        for row in self.prices:
            if row.id == price_id and row.valid_until is None:
                row.valid_until = at
                return
        raise ReconciliationConflict(f"Price row {price_id} is no longer current")

    def insert_price(self, variant, fields, valid_from):
        row = SimpleNamespace(
            id=uuid.uuid4(),
            variant_id=variant.id,
            valid_from=valid_from,
            valid_until=None,
            **fields,
        )
        self.prices.append(row)
        return row

    def vehicles_of_brand(self, brand_name):
        return [
            vehicle for vehicle in self.vehicles.values()
            if vehicle.brand.name.lower() == brand_name.strip().lower()
        ]

    def find_variant_by_names(self, brand, vehicle, variant, motor_type):
        for candidate in self.variants.values():
            if (
                candidate.vehicle.brand.name.lower() == brand.strip().lower()
                and candidate.vehicle.name.lower() == vehicle.strip().lower()
                and candidate.name.lower() == variant.strip().lower()
                and candidate.motor_type in (motor_type, "")
            ):
                return candidate
        return None

    def current_rows(self, variant_id):
        return [
            row for row in self.prices
            if row.variant_id == variant_id and row.valid_until is None
        ]


@pytest.fixture
def fake_store():
    return FakeCatalogStore()


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def api_user(db):
    """Create a user for authenticated API calls."""
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(username="prices", password="secret")


@pytest.fixture
def authenticated_client(api_client, api_user):
    api_client.force_authenticate(user=api_user)
    return api_client
