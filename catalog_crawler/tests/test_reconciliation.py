"""
Tests for the reconciliation engine and the variant price ledger.

Most tests run on the in-memory catalog store; the TestDjangoLedger group
exercises the ORM store against the test database.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from catalog_crawler.entities import (
    Campaign,
    TransportVehicle,
    VariantData,
    VerificationState,
    Vehicle,
)
from catalog_crawler.exceptions import ReconciliationConflict
from catalog_crawler.models import Brand, VariantPrice, VehicleVariant
from catalog_crawler.models import Vehicle as VehicleModel
from catalog_crawler.services.catalog_store import get_catalog_store
from catalog_crawler.services.reconciliation import (
    ReconciliationEngine,
    ledger_fields,
    name_similarity,
)


def vitara(price=459900, old_price=None, **variant_kwargs):
    return Vehicle(
        brand="Suzuki",
        title="Vitara",
        model_year=2025,
        source_url="https://www.suzuki.se/bilar/vitara",
        variants=[
            VariantData(
                name="Select",
                price=price,
                old_price=old_price,
                fuel_type="Hybrid",
                **variant_kwargs,
            )
        ],
    )


def only_variant(store):
    assert len(store.variants) == 1
    return next(iter(store.variants.values()))


class TestNewVehicle:
    """Tests for reconciling a vehicle the catalog has never seen."""

    def test_creates_brand_vehicle_variant_and_price(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)

        result = engine.reconcile([vitara()])

        assert result.success
        assert result.created == 1
        assert result.variants_created == 1
        assert result.price_changes == 1
        variant = only_variant(fake_store)
        assert variant.motor_type == "HYBRID"
        rows = fake_store.current_rows(variant.id)
        assert len(rows) == 1
        assert rows[0].pris == 459900
        assert rows[0].is_campaign is False
        assert rows[0].source_url == "https://www.suzuki.se/bilar/vitara"

    def test_vehicle_name_is_stripped_from_variant_and_drivetrain_inferred(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        entity = Vehicle(
            brand="Suzuki",
            title="Vitara",
            variants=[VariantData(name="Vitara 1.4T ALLGRIP Select", price=489900)],
        )

        engine.reconcile([entity])

        variant = only_variant(fake_store)
        assert variant.name == "1.4T ALLGRIP Select"
        assert variant.drivetrain == "4WD"

    def test_explicit_drivetrain_wins_over_name(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        entity = Vehicle(
            brand="Suzuki",
            title="S-Cross",
            variants=[VariantData(name="ALLGRIP Select", drivetrain="awd", price=399900)],
        )

        engine.reconcile([entity])

        assert only_variant(fake_store).drivetrain == "AWD"

    def test_variant_without_prices_leaves_ledger_untouched(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)

        result = engine.reconcile([vitara(price=None)])

        assert result.variants_created == 1
        assert result.price_changes == 0
        assert result.unchanged == 0
        assert fake_store.prices == []

    def test_transport_vehicle_reconciles_like_a_vehicle(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        entity = TransportVehicle(
            brand="Suzuki",
            title="Carry",
            variants=[VariantData(name="Pickup", price=229900)],
        )

        result = engine.reconcile([entity])

        assert result.created == 1
        vehicle = next(iter(fake_store.vehicles.values()))
        assert vehicle.vehicle_type == "transport_cars"


class TestPriceLedger:
    """Tests for change detection and supersession of price rows."""

    def test_same_price_is_unchanged(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        engine.reconcile([vitara()])

        result = engine.reconcile([vitara()])

        assert result.updated == 1
        assert result.unchanged == 1
        assert result.price_changes == 0
        assert len(fake_store.prices) == 1

    def test_price_change_supersedes_current_row(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        engine.reconcile([vitara()])
        first_row = fake_store.prices[0]

        result = engine.reconcile([vitara(price=449900, old_price=459900)])

        assert result.price_changes == 1
        variant = only_variant(fake_store)
        current = fake_store.current_rows(variant.id)
        assert len(current) == 1
        assert current[0].pris == 449900
        assert current[0].old_pris == 459900
        assert current[0].is_campaign is True
        assert first_row.valid_until is not None
        assert first_row.valid_until == current[0].valid_from

    def test_reconcile_is_idempotent(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        entities = [vitara(price=449900, old_price=459900)]

        engine.reconcile(entities)
        second = engine.reconcile(entities)
        third = engine.reconcile(entities)

        assert second.unchanged == 1
        assert third.unchanged == 1
        assert len(fake_store.prices) == 1

    def test_untracked_field_change_is_not_a_price_change(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        engine.reconcile([vitara(old_price=469900)])

        result = engine.reconcile([vitara(old_price=479900)])

        assert result.unchanged == 1
        assert len(fake_store.prices) == 1

    def test_new_leasing_price_is_a_change(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        engine.reconcile([vitara()])

        result = engine.reconcile([vitara(privatleasing=3995)])

        assert result.price_changes == 1
        assert len(fake_store.prices) == 2

    def test_custom_tracked_fields(self, fake_store):
        engine = ReconciliationEngine(store=fake_store, tracked_fields=["pris"])
        engine.reconcile([vitara()])

        result = engine.reconcile([vitara(privatleasing=3995)])

        assert result.unchanged == 1

    def test_explicit_campaign_flag(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        variant, _ = fake_store.upsert_variant(
            fake_store.upsert_vehicle(fake_store.upsert_brand("Suzuki")[0], "Swift", None, {})[0],
            "Select",
            "BENSIN",
            None,
            {},
        )
        fields = {"pris": 219900, "is_campaign": True}

        outcome = engine.reconcile_price(variant, fields)

        assert outcome.changed is True
        assert fake_store.current_rows(variant.id)[0].is_campaign is True

    def test_two_current_rows_is_an_invariant_violation(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        engine.reconcile([vitara()])
        variant = only_variant(fake_store)
        fake_store.insert_price(variant, {"pris": 1}, timezone.now())

        result = engine.reconcile([vitara(price=439900)])

        assert result.invariant_violations == 1
        assert not result.success
        assert "2 current price rows" in result.errors[0]
        assert len(fake_store.current_rows(variant.id)) == 2


class TestEntityHandling:
    """Tests for flagged entities, campaigns and per-entity failures."""

    def test_flagged_entity_is_skipped(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        entity = vitara()
        entity.verification = VerificationState.FLAGGED

        result = engine.reconcile([entity])

        assert result.skipped_flagged == 1
        assert result.created == 0
        assert fake_store.vehicles == {}

    def test_persist_flagged_reconciles_flagged_entity(self, fake_store):
        engine = ReconciliationEngine(store=fake_store, persist_flagged=True)
        entity = vitara()
        entity.verification = VerificationState.FLAGGED

        result = engine.reconcile([entity])

        assert result.skipped_flagged == 0
        assert result.created == 1

    def test_campaigns_are_counted_not_persisted(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        campaign = Campaign(
            title="Vinterkampanj",
            brand="Suzuki",
            price=199900,
            old_price=229900,
            source_url="https://www.suzuki.se/erbjudanden",
        )

        result = engine.reconcile([campaign])

        assert result.campaigns_seen == 1
        assert result.campaigns[0]["title"] == "Vinterkampanj"
        assert result.campaigns[0]["old_price"] == 229900
        assert fake_store.vehicles == {}

    def test_failing_entity_does_not_stop_the_rest(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        broken = Vehicle(brand="", title="Nameless")

        result = engine.reconcile([broken, vitara()])

        assert not result.success
        assert len(result.errors) == 1
        assert "brand and title" in result.errors[0]
        assert result.created == 1

    def test_brand_matched_case_insensitively(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        engine.reconcile([vitara()])
        other = vitara()
        other.brand = "SUZUKI"

        result = engine.reconcile([other])

        assert len(fake_store.brands) == 1
        assert result.updated == 1

    def test_to_dict(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)

        summary = engine.reconcile([vitara()]).to_dict()

        assert summary["success"] is True
        assert summary["created"] == 1
        assert summary["price_changes"] == 1
        assert summary["errors"] == []


class TestVehicleMatching:
    """Tests for fuzzy vehicle matching."""

    def test_name_similarity(self):
        assert name_similarity("Vitara", "vitara") == 1.0
        assert name_similarity("Vitara", "Vitara Hybrid") == 0.9
        assert name_similarity("Vitara", "Swift") < 0.5
        assert name_similarity("", "") == 1.0
        assert name_similarity("Vitara", "") == 0.0

    def test_suggest_vehicle_matches(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)
        brand, _ = fake_store.upsert_brand("Suzuki")
        for name in ["Vitara", "Vitara Hybrid", "Swift"]:
            fake_store.upsert_vehicle(brand, name, 2025, {})

        matches = engine.suggest_vehicle_matches("suzuki", "Vitara")

        assert [m["name"] for m in matches] == ["Vitara", "Vitara Hybrid"]
        assert matches[0]["confidence"] == 1.0
        assert matches[1]["confidence"] == 0.9
        assert matches[0]["brand"] == "Suzuki"

    def test_no_matches_for_unknown_brand(self, fake_store):
        engine = ReconciliationEngine(store=fake_store)

        assert engine.suggest_vehicle_matches("Volvo", "XC60") == []


class TestLedgerFields:
    """Tests for mapping variant prices onto ledger columns."""

    def test_maps_every_price(self):
        variant = VariantData(
            name="Select",
            price=459900,
            old_price=479900,
            privatleasing=3995,
            company_leasing_price=3195,
            loan_price=4250,
            leasing_months=36,
        )

        fields = ledger_fields(variant, "https://www.suzuki.se/bilar/vitara")

        assert fields["pris"] == 459900
        assert fields["old_pris"] == 479900
        assert fields["privatleasing"] == 3995
        assert fields["foretagsleasing"] == 3195
        assert fields["billan_per_man"] == 4250
        assert fields["old_billan_per_man"] is None
        assert fields["leasing_months"] == 36
        assert fields["source_url"] == "https://www.suzuki.se/bilar/vitara"


class TestDjangoLedger:
    """Tests for reconciliation on the ORM store."""

    @pytest.fixture
    def engine(self, db):
        return ReconciliationEngine(store=get_catalog_store())

    def test_creates_catalog_rows(self, engine):
        result = engine.reconcile([vitara()])

        assert result.success
        brand = Brand.objects.get()
        assert brand.slug == "suzuki"
        vehicle = VehicleModel.objects.get()
        assert vehicle.brand == brand
        assert vehicle.model_year == 2025
        variant = VehicleVariant.objects.get()
        assert variant.motor_type == "HYBRID"
        assert variant.current_price.pris == 459900

    def test_price_change_keeps_history(self, engine):
        engine.reconcile([vitara()])
        engine.reconcile([vitara(price=449900, old_price=459900)])

        variant = VehicleVariant.objects.get()
        history = get_catalog_store().price_history(variant.id)
        assert [row.pris for row in history] == [449900, 459900]
        assert history[0].is_current
        assert history[0].is_campaign is True
        assert not history[1].is_current
        assert VariantPrice.objects.filter(variant=variant, valid_until__isnull=True).count() == 1

    def test_unchanged_price_writes_nothing(self, engine):
        engine.reconcile([vitara()])

        result = engine.reconcile([vitara()])

        assert result.unchanged == 1
        assert VariantPrice.objects.count() == 1

    def test_brand_name_case_insensitive(self, engine):
        engine.reconcile([vitara()])
        other = vitara()
        other.brand = "suzuki"

        engine.reconcile([other])

        assert Brand.objects.count() == 1
        assert VehicleModel.objects.count() == 1

    def test_expire_price_is_compare_and_set(self, engine):
        engine.reconcile([vitara()])
        row = VariantPrice.objects.get()
        store = get_catalog_store()
        store.expire_price(row.id, timezone.now())

        with pytest.raises(ReconciliationConflict):
            store.expire_price(row.id, timezone.now() + timedelta(seconds=1))

    def test_vehicle_fields_updated_on_rerun(self, engine):
        engine.reconcile([vitara()])
        rerun = vitara()
        rerun.description = "Kompakt SUV med mildhybrid"

        result = engine.reconcile([rerun])

        assert result.updated == 1
        assert VehicleModel.objects.get().description == "Kompakt SUV med mildhybrid"
