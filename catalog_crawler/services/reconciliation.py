"""
Reconciliation Engine.

Diffs extracted vehicles against the persisted catalog and maintains the
variant price ledger.

Identity:
- brand by name (case-insensitive)
- vehicle by brand + name + model_year
- variant by vehicle + name + motor_type + drivetrain

Price reconciliation per variant:
1. Read the current ledger row (valid_until NULL), locked for update
2. changed = no current row, or any tracked field differs
3. changed: expire the current row and insert the new current row, in one
   transaction; unchanged: no write

Each entity is reconciled on its own. A failing entity is recorded in
errors and the rest continue.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.utils import timezone
from rapidfuzz.distance import Levenshtein

from catalog_crawler.entities import Campaign, ExtractedEntity, VariantData, Vehicle
from catalog_crawler.exceptions import (
    CatalogPipelineError,
    InvariantViolation,
    ReconciliationConflict,
)
from catalog_crawler.services.catalog_store import CatalogStore, get_catalog_store
from catalog_crawler.utils.normalization import (
    normalize_drivetrain,
    normalize_motor_type,
    split_variant_name,
)

logger = logging.getLogger(__name__)

DEFAULT_TRACKED_PRICE_FIELDS = ["pris", "privatleasing", "foretagsleasing", "billan_per_man"]

# Vehicle match thresholds
MIN_MATCH_SIMILARITY = 0.5
CONTAINMENT_SIMILARITY = 0.9


@dataclass
class PriceOutcome:
    """Result of reconciling one variant's price."""

    changed: bool
    price_id: Any = None
    expired_id: Any = None


@dataclass
class ReconciliationResult:
    """Counts of one reconciliation pass."""

    created: int = 0
    updated: int = 0
    variants_created: int = 0
    price_changes: int = 0
    unchanged: int = 0
    skipped_flagged: int = 0
    campaigns_seen: int = 0
    invariant_violations: int = 0
    campaigns: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "created": self.created,
            "updated": self.updated,
            "variants_created": self.variants_created,
            "price_changes": self.price_changes,
            "unchanged": self.unchanged,
            "skipped_flagged": self.skipped_flagged,
            "campaigns_seen": self.campaigns_seen,
            "invariant_violations": self.invariant_violations,
            "errors": list(self.errors),
        }


def ledger_fields(variant: VariantData, source_url: str = "") -> Dict[str, Any]:
    """Map extracted variant prices onto ledger columns."""
    return {
        "pris": variant.price,
        "old_pris": variant.old_price,
        "privatleasing": variant.privatleasing,
        "old_privatleasing": variant.old_privatleasing,
        "foretagsleasing": variant.company_leasing_price,
        "old_foretagsleasing": variant.old_company_leasing_price,
        "billan_per_man": variant.loan_price,
        "old_billan_per_man": variant.old_loan_price,
        "leasing_months": variant.leasing_months,
        "source_url": source_url,
    }


def name_similarity(a: str, b: str) -> float:
    """Similarity 0-1 of two names; containment counts as a near match."""
    a = a.strip().lower()
    b = b.strip().lower()
    if not a or not b:
        return 1.0 if a == b else 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return CONTAINMENT_SIMILARITY
    return Levenshtein.normalized_similarity(a, b)


class ReconciliationEngine:
    """
    Applies extracted entities to the catalog.

    Usage:
        engine = ReconciliationEngine()
        result = engine.reconcile(entities)
    """

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        tracked_fields: Optional[List[str]] = None,
        persist_flagged: bool = False,
    ):
        self.store = store or get_catalog_store()
        self.tracked_fields = tracked_fields or list(
            getattr(settings, "RECONCILIATION_TRACKED_PRICE_FIELDS", DEFAULT_TRACKED_PRICE_FIELDS)
        )
        self.persist_flagged = persist_flagged

    def reconcile(self, entities: List[ExtractedEntity]) -> ReconciliationResult:
        """
        Reconcile a list of entities. Never raises for a single entity.

        Returns:
            ReconciliationResult; success only if no entity failed
        """
        result = ReconciliationResult()

        for entity in entities:
            if isinstance(entity, Campaign):
                result.campaigns_seen += 1
                result.campaigns.append(self._campaign_summary(entity))
                continue

            if entity.is_flagged and not self.persist_flagged:
                result.skipped_flagged += 1
                logger.info(f"Skipping flagged entity {entity.dedup_key()}")
                continue

            if not isinstance(entity, Vehicle):
                result.errors.append(f"Cannot reconcile {type(entity).__name__}")
                continue

            try:
                self.reconcile_vehicle(entity, result)
            except CatalogPipelineError as e:
                result.errors.append(f"{entity.brand} {entity.title}: {e}")
                logger.warning(f"Reconciliation failed for {entity.brand} {entity.title}: {e}")

        logger.info(
            f"Reconciliation: {result.created} created, {result.updated} updated, "
            f"{result.price_changes} price changes, {result.unchanged} unchanged, "
            f"{len(result.errors)} errors"
        )
        return result

    def reconcile_vehicle(self, entity: Vehicle, result: ReconciliationResult) -> None:
        """Upsert brand and vehicle, then reconcile every variant."""
        if not entity.brand or not entity.title:
            raise ReconciliationConflict("Vehicle entity needs both brand and title")

        brand, _ = self.store.upsert_brand(entity.brand)
        vehicle, created = self.store.upsert_vehicle(
            brand,
            entity.title,
            entity.model_year,
            {
                "description": entity.description,
                "thumbnail_url": entity.thumbnail_url,
                "vehicle_type": entity.vehicle_type,
                "dimensions": entity.dimensions,
                "equipment": entity.equipment,
                "source_url": entity.source_url,
            },
        )
        if created:
            result.created += 1
        else:
            result.updated += 1

        for variant_data in entity.variants:
            try:
                self.reconcile_variant(vehicle, entity, variant_data, result)
            except InvariantViolation as e:
                result.invariant_violations += 1
                result.errors.append(str(e))
                logger.error(f"Price ledger corrupted: {e}")
            except CatalogPipelineError as e:
                result.errors.append(f"{entity.title} {variant_data.name}: {e}")
                logger.warning(f"Variant {variant_data.name} of {entity.title} failed: {e}")

    def reconcile_variant(
        self,
        vehicle,
        entity: Vehicle,
        variant_data: VariantData,
        result: ReconciliationResult,
    ) -> None:
        name, inferred_drivetrain = split_variant_name(variant_data.name, entity.title)
        drivetrain = normalize_drivetrain(variant_data.drivetrain) or inferred_drivetrain
        motor_type = normalize_motor_type(variant_data.fuel_type)

        variant, created = self.store.upsert_variant(
            vehicle,
            name,
            motor_type,
            drivetrain,
            {
                "transmission": variant_data.transmission,
                "thumbnail_url": variant_data.thumbnail,
                "equipment": variant_data.equipment,
            },
        )
        if created:
            result.variants_created += 1

        fields = ledger_fields(variant_data, entity.source_url)
        if all(fields.get(field_name) is None for field_name in self.tracked_fields):
            logger.debug(f"No prices extracted for {name}; ledger untouched")
            return

        outcome = self.reconcile_price(variant, fields)
        if outcome.changed:
            result.price_changes += 1
        else:
            result.unchanged += 1

    def reconcile_price(self, variant, fields: Dict[str, Any]) -> PriceOutcome:
        """
        Supersede the variant's current price if any tracked field changed.

        Raises:
            ReconciliationConflict: Current row was expired by a concurrent run
            InvariantViolation: More than one current row
        """
        with self.store.atomic():
            current = self.store.find_current_price(variant, for_update=True)
            if current is not None and not self.price_changed(current, fields):
                return PriceOutcome(changed=False, price_id=current.id)

            at = timezone.now()
            expired_id = None
            if current is not None:
                self.store.expire_price(current.id, at)
                expired_id = current.id

            values = dict(fields)
            explicit_campaign = bool(values.pop("is_campaign", False))
            values["is_campaign"] = explicit_campaign or (values.get("old_pris") or 0) > 0
            new_row = self.store.insert_price(variant, values, at)

        logger.info(
            f"Price change for variant {variant.id}: "
            f"{getattr(current, 'pris', None)} -> {fields.get('pris')}"
        )
        return PriceOutcome(changed=True, price_id=new_row.id, expired_id=expired_id)

    def price_changed(self, current, fields: Dict[str, Any]) -> bool:
        return any(getattr(current, name) != fields.get(name) for name in self.tracked_fields)

    def suggest_vehicle_matches(self, brand: str, vehicle_name: str) -> List[Dict[str, Any]]:
        """
        Existing vehicles of a brand with a similar name, best first.

        Returns:
            Dicts with id, name, brand and confidence (> 0.5)
        """
        matches = []
        for vehicle in self.store.vehicles_of_brand(brand):
            confidence = name_similarity(vehicle_name, vehicle.name)
            if confidence > MIN_MATCH_SIMILARITY:
                matches.append({
                    "id": vehicle.id,
                    "name": vehicle.name,
                    "brand": vehicle.brand.name,
                    "model_year": vehicle.model_year,
                    "confidence": round(confidence, 3),
                })
        return sorted(matches, key=lambda m: m["confidence"], reverse=True)

    def _campaign_summary(self, campaign: Campaign) -> Dict[str, Any]:
        return {
            "title": campaign.title,
            "brand": campaign.brand,
            "description": campaign.description,
            "vehicle_types": campaign.vehicle_types,
            "valid_from": campaign.valid_from,
            "valid_to": campaign.valid_to,
            "price": campaign.price,
            "old_price": campaign.old_price,
            "monthly_price": campaign.monthly_price,
            "includes": campaign.includes,
            "conditions": campaign.conditions,
            "source_url": campaign.source_url,
            "verification": str(campaign.verification),
        }


def get_reconciliation_engine(persist_flagged: bool = False) -> ReconciliationEngine:
    """Get a reconciliation engine on the ORM-backed catalog store."""
    return ReconciliationEngine(persist_flagged=persist_flagged)
