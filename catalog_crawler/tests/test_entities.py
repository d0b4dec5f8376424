"""
Tests for typed extraction entities.
"""

import pytest

from catalog_crawler.entities import (
    Campaign,
    ContentCategory,
    TransportVehicle,
    Vehicle,
    VerificationState,
    entity_from_payload,
    resolve_category,
)
from catalog_crawler.exceptions import ExtractionError


class TestResolveCategory:
    """Tests for resolve_category."""

    def test_known_categories(self):
        assert resolve_category("cars") == "cars"
        assert resolve_category(" Campaigns ") == "campaigns"
        assert resolve_category("transport_cars") == "transport_cars"

    def test_unknown_category_raises(self):
        with pytest.raises(ExtractionError):
            resolve_category("motorcycles")

    def test_missing_category_raises(self):
        with pytest.raises(ExtractionError):
            resolve_category(None)


class TestEntityFromPayload:
    """Tests for building typed entities from capability payloads."""

    def test_builds_vehicle_with_variants(self):
        entity = entity_from_payload("cars", {
            "brand": "Suzuki",
            "title": "Vitara",
            "model_year": "2025",
            "variants": [
                {"name": "Select", "price": "459 900 kr", "fuel_type": "Hybrid"},
                {"name": "", "price": 1},
                "not a variant",
            ],
            "claims": [
                {"field": "price", "value": 459900, "source_excerpt": "459 900 kr"},
                {"value": "no field"},
            ],
        })

        assert isinstance(entity, Vehicle)
        assert entity.category == ContentCategory.CARS
        assert entity.model_year == 2025
        assert len(entity.variants) == 1
        assert entity.variants[0].price == 459900
        assert entity.variants[0].fuel_type == "Hybrid"
        assert len(entity.claims) == 1
        assert entity.verification == VerificationState.UNVERIFIED

    def test_builds_transport_vehicle(self):
        entity = entity_from_payload("transport_cars", {
            "brand": "Suzuki",
            "title": "Jimny Professional",
            "payload_kg": 350,
            "cargo_volume_m3": 0.86,
        })

        assert isinstance(entity, TransportVehicle)
        assert entity.vehicle_type == "transport_cars"
        assert entity.payload_kg == 350
        assert entity.cargo_volume_m3 == 0.86

    def test_builds_campaign(self):
        entity = entity_from_payload("campaigns", {
            "title": "Vinterkampanj",
            "brand": "Suzuki",
            "monthly_price": "2 995 kr/mån",
            "includes": "Vinterhjul",
        })

        assert isinstance(entity, Campaign)
        assert entity.monthly_price == 2995
        assert entity.includes == ["Vinterhjul"]

    def test_rejects_non_mapping_payload(self):
        with pytest.raises(ExtractionError):
            entity_from_payload("cars", ["Vitara"])

    def test_rejects_unknown_category(self):
        with pytest.raises(ExtractionError):
            entity_from_payload("boats", {"title": "Yacht"})


class TestDedupKey:
    """Tests for entity identity keys."""

    def test_vehicle_key_ignores_case(self):
        a = Vehicle(brand="Suzuki", title="Vitara", model_year=2025)
        b = Vehicle(brand="SUZUKI", title="vitara", model_year=2025)
        assert a.dedup_key() == b.dedup_key()

    def test_model_year_is_part_of_key(self):
        a = Vehicle(brand="Suzuki", title="Vitara", model_year=2024)
        b = Vehicle(brand="Suzuki", title="Vitara", model_year=2025)
        assert a.dedup_key() != b.dedup_key()

    def test_category_is_part_of_key(self):
        a = Vehicle(brand="Suzuki", title="Jimny")
        b = TransportVehicle(brand="Suzuki", title="Jimny")
        assert a.dedup_key() != b.dedup_key()

    def test_is_flagged(self):
        entity = Campaign(title="X", verification=VerificationState.FLAGGED)
        assert entity.is_flagged is True
