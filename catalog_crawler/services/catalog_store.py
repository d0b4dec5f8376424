"""
Catalog persistence.

The only mutation surface for durable catalog state. Reconciliation talks to
a CatalogStore; DjangoCatalogStore implements it on the ORM models.

expire_price() is a compare-and-set: it only expires a row that is still
current. If a concurrent run expired it first, ReconciliationConflict is
raised and the surrounding atomic block rolls back.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils.text import slugify

from catalog_crawler.exceptions import InvariantViolation, ReconciliationConflict
from catalog_crawler.models import Brand, Vehicle, VehicleVariant, VariantPrice

logger = logging.getLogger(__name__)

LEDGER_PRICE_FIELDS = [
    "pris",
    "old_pris",
    "privatleasing",
    "old_privatleasing",
    "foretagsleasing",
    "old_foretagsleasing",
    "billan_per_man",
    "old_billan_per_man",
    "leasing_months",
]


class CatalogStore(Protocol):
    """Protocol for catalog persistence backends."""

    def find_brand(self, name: str) -> Optional[Any]: ...

    def find_vehicle(self, brand: Any, name: str, model_year: Optional[int]) -> Optional[Any]: ...

    def find_variant(
        self, vehicle: Any, name: str, motor_type: str, drivetrain: Optional[str]
    ) -> Optional[Any]: ...

    def find_current_price(self, variant: Any, for_update: bool = False) -> Optional[Any]: ...

    def upsert_brand(self, name: str) -> Tuple[Any, bool]: ...

    def upsert_vehicle(
        self, brand: Any, name: str, model_year: Optional[int], defaults: Dict[str, Any]
    ) -> Tuple[Any, bool]: ...

    def upsert_variant(
        self,
        vehicle: Any,
        name: str,
        motor_type: str,
        drivetrain: Optional[str],
        defaults: Dict[str, Any],
    ) -> Tuple[Any, bool]: ...

    def expire_price(self, price_id: Any, at) -> None: ...

    def insert_price(self, variant: Any, fields: Dict[str, Any], valid_from) -> Any: ...

    def atomic(self): ...

    def vehicles_of_brand(self, brand_name: str) -> List[Any]: ...


class DjangoCatalogStore:
    """CatalogStore on the Django ORM."""

    # Natural-key lookups

    def find_brand(self, name: str) -> Optional[Brand]:
        return Brand.objects.filter(name__iexact=name.strip()).first()

    def find_vehicle(self, brand: Brand, name: str, model_year: Optional[int]) -> Optional[Vehicle]:
        query = Vehicle.objects.filter(brand=brand, name__iexact=name.strip())
        if model_year is None:
            query = query.filter(model_year__isnull=True)
        else:
            query = query.filter(model_year=model_year)
        return query.first()

    def find_variant(
        self,
        vehicle: Vehicle,
        name: str,
        motor_type: str,
        drivetrain: Optional[str],
    ) -> Optional[VehicleVariant]:
        query = VehicleVariant.objects.filter(
            vehicle=vehicle, name__iexact=name.strip(), motor_type=motor_type
        )
        if drivetrain is None:
            query = query.filter(drivetrain__isnull=True)
        else:
            query = query.filter(drivetrain=drivetrain)
        return query.first()

    def find_current_price(
        self, variant: VehicleVariant, for_update: bool = False
    ) -> Optional[VariantPrice]:
        """
        The variant's current ledger row.

        Raises:
            InvariantViolation: More than one current row
        """
        query = VariantPrice.objects.filter(variant=variant, valid_until__isnull=True)
        if for_update:
            query = query.select_for_update()
        rows = list(query[:2])
        if len(rows) > 1:
            count = VariantPrice.objects.filter(variant=variant, valid_until__isnull=True).count()
            raise InvariantViolation(variant.id, count)
        return rows[0] if rows else None

    # Upserts

    def upsert_brand(self, name: str) -> Tuple[Brand, bool]:
        name = name.strip()
        brand = self.find_brand(name)
        if brand is not None:
            return brand, False
        try:
            with transaction.atomic():
                brand = Brand.objects.create(name=name, slug=self._unique_brand_slug(name))
        except IntegrityError:
            # Created by a concurrent run
            brand = self.find_brand(name)
            if brand is None:
                raise ReconciliationConflict(f"Could not create brand {name!r}")
            return brand, False
        logger.info(f"Created brand {brand.name} ({brand.slug})")
        return brand, True

    def upsert_vehicle(
        self,
        brand: Brand,
        name: str,
        model_year: Optional[int],
        defaults: Dict[str, Any],
    ) -> Tuple[Vehicle, bool]:
        vehicle = self.find_vehicle(brand, name, model_year)
        if vehicle is None:
            try:
                with transaction.atomic():
                    vehicle = Vehicle.objects.create(
                        brand=brand, name=name.strip(), model_year=model_year, **defaults
                    )
            except IntegrityError as e:
                raise ReconciliationConflict(
                    f"Vehicle {brand.name} {name} ({model_year}) collided: {e}"
                ) from e
            return vehicle, True

        changed = self._apply(vehicle, defaults)
        if changed:
            vehicle.save(update_fields=changed + ["updated_at"])
        return vehicle, False

    def upsert_variant(
        self,
        vehicle: Vehicle,
        name: str,
        motor_type: str,
        drivetrain: Optional[str],
        defaults: Dict[str, Any],
    ) -> Tuple[VehicleVariant, bool]:
        variant = self.find_variant(vehicle, name, motor_type, drivetrain)
        if variant is None:
            try:
                with transaction.atomic():
                    variant = VehicleVariant.objects.create(
                        vehicle=vehicle,
                        name=name.strip(),
                        motor_type=motor_type,
                        drivetrain=drivetrain,
                        **defaults,
                    )
            except IntegrityError as e:
                raise ReconciliationConflict(f"Variant {name} of {vehicle} collided: {e}") from e
            return variant, True

        changed = self._apply(variant, defaults)
        if changed:
            variant.save(update_fields=changed + ["updated_at"])
        return variant, False

    # Price ledger

    def expire_price(self, price_id, at) -> None:
        """Close a current ledger row. Compare-and-set on valid_until IS NULL."""
        updated = VariantPrice.objects.filter(id=price_id, valid_until__isnull=True).update(
            valid_until=at
        )
        if updated != 1:
            raise ReconciliationConflict(
                f"Price row {price_id} is no longer current; superseded by a concurrent run"
            )

    def insert_price(self, variant: VehicleVariant, fields: Dict[str, Any], valid_from) -> VariantPrice:
        try:
            with transaction.atomic():
                return VariantPrice.objects.create(
                    variant=variant,
                    valid_from=valid_from,
                    valid_until=None,
                    **fields,
                )
        except IntegrityError as e:
            raise ReconciliationConflict(
                f"Could not insert current price for variant {variant.id}: {e}"
            ) from e

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with transaction.atomic():
            yield

    # Reads

    def price_history(self, variant_id) -> List[VariantPrice]:
        """All ledger rows of a variant, newest first."""
        return list(VariantPrice.objects.filter(variant_id=variant_id).order_by("-valid_from"))

    def vehicles_of_brand(self, brand_name: str) -> List[Vehicle]:
        return list(Vehicle.objects.filter(brand__name__iexact=brand_name.strip()))

    def find_variant_by_names(
        self,
        brand: str,
        vehicle: str,
        variant: str,
        motor_type: str,
    ) -> Optional[VehicleVariant]:
        """Loose lookup used by the price-update protocol (no model year/drivetrain)."""
        query = VehicleVariant.objects.select_related("vehicle__brand").filter(
            vehicle__brand__name__iexact=brand.strip(),
            vehicle__name__iexact=vehicle.strip(),
            name__iexact=variant.strip(),
        )
        if motor_type:
            query = query.filter(Q(motor_type=motor_type) | Q(motor_type=""))
        return query.order_by("-vehicle__model_year", "-updated_at").first()

    def _apply(self, instance, values: Dict[str, Any]) -> List[str]:
        changed = []
        for field_name, value in values.items():
            if value in (None, "", [], {}):
                continue
            if getattr(instance, field_name) != value:
                setattr(instance, field_name, value)
                changed.append(field_name)
        return changed

    def _unique_brand_slug(self, name: str) -> str:
        base = slugify(name)[:110] or "brand"
        slug = base
        suffix = 2
        while Brand.objects.filter(slug=slug).exists():
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug


def get_catalog_store() -> DjangoCatalogStore:
    """Get the ORM-backed catalog store."""
    return DjangoCatalogStore()
