"""
Typed entities produced by the extraction classifier.

Extraction output is a tagged union keyed by content category:

- campaigns       -> Campaign
- cars            -> Vehicle
- transport_cars  -> TransportVehicle

Each entity carries the claims it was built from (field, value, source
excerpt) and a verification state set by the fact-check reviewer. Unknown
categories are rejected by entity_from_payload() so untyped dictionaries never
travel past the classifier.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

from django.db import models

from catalog_crawler.exceptions import ExtractionError
from catalog_crawler.utils.normalization import parse_price


class ContentCategory(models.TextChoices):
    """Content categories understood by extraction."""

    CAMPAIGNS = "campaigns", "Campaigns"
    CARS = "cars", "Passenger Cars"
    TRANSPORT_CARS = "transport_cars", "Transport Vehicles"


AUTO_DETECT = "auto-detect"


class VerificationState(models.TextChoices):
    """Fact-check outcome attached to an extracted entity."""

    UNVERIFIED = "unverified", "Unverified"
    VERIFIED = "verified", "Verified"
    FLAGGED = "flagged", "Flagged"


@dataclass
class Claim:
    """A numeric or factual value and the excerpt it was read from."""

    field: str
    value: Any
    source_excerpt: str = ""
    source_url: str = ""
    corroborated: Optional[bool] = None
    note: str = ""


@dataclass
class VariantData:
    """A trim/variant row as extracted, prices in whole SEK."""

    name: str
    price: Optional[int] = None
    old_price: Optional[int] = None
    privatleasing: Optional[int] = None
    old_privatleasing: Optional[int] = None
    company_leasing_price: Optional[int] = None
    old_company_leasing_price: Optional[int] = None
    loan_price: Optional[int] = None
    old_loan_price: Optional[int] = None
    fuel_type: str = ""
    transmission: str = ""
    drivetrain: Optional[str] = None
    thumbnail: str = ""
    leasing_months: Optional[int] = None
    equipment: List[str] = field(default_factory=list)


@dataclass
class ExtractedEntity:
    """Common part of every extracted entity."""

    category: ClassVar[str] = ""

    claims: List[Claim] = field(default_factory=list)
    verification: str = VerificationState.UNVERIFIED
    source_url: str = ""

    @property
    def is_flagged(self) -> bool:
        return self.verification == VerificationState.FLAGGED

    def dedup_key(self) -> tuple:
        return (self.category,)


@dataclass
class Campaign(ExtractedEntity):
    """A promotional offer. Not a catalog row; kept on the scrape session."""

    category: ClassVar[str] = ContentCategory.CAMPAIGNS

    title: str = ""
    description: str = ""
    brand: str = ""
    vehicle_types: List[str] = field(default_factory=list)
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None
    price: Optional[int] = None
    old_price: Optional[int] = None
    monthly_price: Optional[int] = None
    includes: List[str] = field(default_factory=list)
    conditions: str = ""

    def dedup_key(self) -> tuple:
        return (self.category, self.brand.lower(), self.title.lower())


@dataclass
class Vehicle(ExtractedEntity):
    """A passenger vehicle model with its variants."""

    category: ClassVar[str] = ContentCategory.CARS

    brand: str = ""
    title: str = ""
    model_year: Optional[int] = None
    description: str = ""
    thumbnail_url: str = ""
    vehicle_type: str = "cars"
    variants: List[VariantData] = field(default_factory=list)
    dimensions: Dict[str, Any] = field(default_factory=dict)
    motor_specs: List[Dict[str, Any]] = field(default_factory=list)
    equipment: List[str] = field(default_factory=list)

    def dedup_key(self) -> tuple:
        return (self.category, self.brand.lower(), self.title.lower(), self.model_year)


@dataclass
class TransportVehicle(Vehicle):
    """A commercial/transport vehicle. Same shape as a passenger vehicle."""

    category: ClassVar[str] = ContentCategory.TRANSPORT_CARS

    vehicle_type: str = "transport_cars"
    payload_kg: Optional[int] = None
    cargo_volume_m3: Optional[float] = None


ENTITY_TYPES = {
    ContentCategory.CAMPAIGNS.value: Campaign,
    ContentCategory.CARS.value: Vehicle,
    ContentCategory.TRANSPORT_CARS.value: TransportVehicle,
}

VARIANT_PRICE_FIELDS = [
    "price",
    "old_price",
    "privatleasing",
    "old_privatleasing",
    "company_leasing_price",
    "old_company_leasing_price",
    "loan_price",
    "old_loan_price",
]


def resolve_category(category: Optional[str]) -> str:
    """Return the canonical category value or raise ExtractionError."""
    value = (category or "").strip().lower()
    if value not in ENTITY_TYPES:
        raise ExtractionError(f"Unknown content category: {category!r}")
    return value


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return parse_price(str(value))


def _to_str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value if item]


def _claims_from(raw_claims: Any) -> List[Claim]:
    claims = []
    for raw in raw_claims or []:
        if not isinstance(raw, dict) or not raw.get("field"):
            continue
        claims.append(
            Claim(
                field=str(raw["field"]),
                value=raw.get("value"),
                source_excerpt=str(raw.get("source_excerpt") or raw.get("excerpt") or ""),
                source_url=str(raw.get("source_url") or ""),
            )
        )
    return claims


def _variant_from(raw: Dict[str, Any]) -> VariantData:
    variant = VariantData(
        name=str(raw.get("name") or "").strip(),
        fuel_type=str(raw.get("fuel_type") or raw.get("motor_type") or ""),
        transmission=str(raw.get("transmission") or ""),
        drivetrain=raw.get("drivetrain") or None,
        thumbnail=str(raw.get("thumbnail") or ""),
        leasing_months=_to_int(raw.get("leasing_months")),
        equipment=_to_str_list(raw.get("equipment")),
    )
    for price_field in VARIANT_PRICE_FIELDS:
        setattr(variant, price_field, _to_int(raw.get(price_field)))
    return variant


def entity_from_payload(category: str, payload: Dict[str, Any]) -> ExtractedEntity:
    """
    Build a typed entity from a capability payload.

    Args:
        category: Content category reported for the payload
        payload: Loosely-typed dictionary from the extraction capability

    Returns:
        Campaign, Vehicle or TransportVehicle

    Raises:
        ExtractionError: Unknown category or payload is not a mapping
    """
    category = resolve_category(category)
    if not isinstance(payload, dict):
        raise ExtractionError(f"Entity payload must be an object, got {type(payload).__name__}")

    claims = _claims_from(payload.get("claims"))
    source_url = str(payload.get("source_url") or "")

    if category == ContentCategory.CAMPAIGNS:
        return Campaign(
            claims=claims,
            source_url=source_url,
            title=str(payload.get("title") or ""),
            description=str(payload.get("description") or ""),
            brand=str(payload.get("brand") or ""),
            vehicle_types=_to_str_list(payload.get("vehicle_types")),
            valid_from=payload.get("valid_from"),
            valid_to=payload.get("valid_to"),
            price=_to_int(payload.get("price")),
            old_price=_to_int(payload.get("old_price")),
            monthly_price=_to_int(payload.get("monthly_price")),
            includes=_to_str_list(payload.get("includes")),
            conditions=str(payload.get("conditions") or ""),
        )

    entity_class = ENTITY_TYPES[category]
    kwargs = dict(
        claims=claims,
        source_url=source_url,
        brand=str(payload.get("brand") or ""),
        title=str(payload.get("title") or payload.get("model") or ""),
        model_year=_to_int(payload.get("model_year")),
        description=str(payload.get("description") or ""),
        thumbnail_url=str(payload.get("thumbnail_url") or ""),
        variants=[
            _variant_from(raw)
            for raw in payload.get("variants") or []
            if isinstance(raw, dict) and raw.get("name")
        ],
        dimensions=payload.get("dimensions") or {},
        motor_specs=[m for m in payload.get("motor_specs") or [] if isinstance(m, dict)],
        equipment=_to_str_list(payload.get("equipment")),
    )
    if entity_class is TransportVehicle:
        kwargs["payload_kg"] = _to_int(payload.get("payload_kg"))
        cargo = payload.get("cargo_volume_m3")
        kwargs["cargo_volume_m3"] = float(cargo) if isinstance(cargo, (int, float)) else None
    return entity_class(**kwargs)
