"""
Normalization utility functions for URLs, motor types, drivetrains and prices.

These are shared by the crawler (visited-set keys), the extraction stage
(price strings) and the reconciliation engine (variant natural keys).

Normalization Rules:
- URLs: lowercase scheme and host, drop fragment, strip trailing slash
- Motor type: fixed vocabulary (ELECTRIC -> EL, LADDHYBRID -> PHEV, ...),
  unknown values uppercased
- Drivetrain: first token of 4X4, 4WD, AWD, 2WD, FWD, RWD, ALLGRIP found in
  the variant name, ALLGRIP -> 4WD
- Prices: Swedish formatting ("459 900 kr", "3.995:-/mån") to whole kronor
"""

import re
from typing import Optional, Tuple
from urllib.parse import urlsplit, urlunsplit


MOTOR_TYPE_MAP = {
    "EL": "EL",
    "ELECTRIC": "EL",
    "ELBIL": "EL",
    "BEV": "EL",
    "BENSIN": "BENSIN",
    "PETROL": "BENSIN",
    "GASOLINE": "BENSIN",
    "DIESEL": "DIESEL",
    "HYBRID": "HYBRID",
    "HEV": "HYBRID",
    "ELHYBRID": "HYBRID",
    "LADDHYBRID": "PHEV",
    "PLUG-IN HYBRID": "PHEV",
    "PLUGIN HYBRID": "PHEV",
    "PLUGIN-HYBRID": "PHEV",
    "PLUG-IN-HYBRID": "PHEV",
    "PHEV": "PHEV",
}

# Order matters: first matching token wins.
DRIVETRAIN_TOKENS = ["4X4", "4WD", "AWD", "2WD", "FWD", "RWD", "ALLGRIP"]

DRIVETRAIN_ALIASES = {
    "ALLGRIP": "4WD",
}

_DRIVETRAIN_PATTERNS = [
    (token, re.compile(rf"(?<![A-Z0-9]){re.escape(token)}(?![A-Z0-9])"))
    for token in DRIVETRAIN_TOKENS
]

# "459 900", "459.900", "1 249 900" (regular or non-breaking spaces), or a bare number
_PRICE_PATTERN = re.compile(r"\d{1,3}(?:[ \u00a0\u202f.]\d{3})+|\d+")

# Plausible ranges for Swedish list prices and monthly payments (SEK)
PURCHASE_PRICE_RANGE = (50_000, 3_000_000)
MONTHLY_PRICE_RANGE = (500, 30_000)


def normalize_url(url: str) -> str:
    """
    Normalize a URL for visited-set and dedup keys.

    Example:
        >>> normalize_url("HTTPS://Www.Example.se/Modeller/#top")
        'https://www.example.se/Modeller'
    """
    if not url:
        return ""

    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    if scheme == "http" and netloc.endswith(":80"):
        netloc = netloc[:-3]
    elif scheme == "https" and netloc.endswith(":443"):
        netloc = netloc[:-4]

    path = parts.path.rstrip("/")
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def normalize_motor_type(value: Optional[str]) -> str:
    """
    Map a fuel/motor type string onto the catalog vocabulary.

    Unknown values are returned uppercased rather than rejected.

    Example:
        >>> normalize_motor_type("Laddhybrid")
        'PHEV'
        >>> normalize_motor_type("vätgas")
        'VÄTGAS'
    """
    if not value:
        return ""

    upper = " ".join(value.strip().upper().split())
    return MOTOR_TYPE_MAP.get(upper, upper)


def infer_drivetrain(variant_name: Optional[str]) -> Optional[str]:
    """
    Infer the drivetrain from a variant display name.

    Example:
        >>> infer_drivetrain("Vitara ALLGRIP Select")
        '4WD'
        >>> infer_drivetrain("Swift Select") is None
        True
    """
    if not variant_name:
        return None

    upper = variant_name.upper()
    for token, pattern in _DRIVETRAIN_PATTERNS:
        if pattern.search(upper):
            return DRIVETRAIN_ALIASES.get(token, token)
    return None


def normalize_drivetrain(value: Optional[str]) -> Optional[str]:
    """Normalize an explicitly supplied drivetrain, using the same vocabulary."""
    if not value or not value.strip():
        return None
    inferred = infer_drivetrain(value)
    return inferred or value.strip().upper()


def parse_price(text: Optional[str]) -> Optional[int]:
    """
    Parse the first price-looking number in a Swedish formatted string.

    Decimal parts after a comma are dropped ("459 900,00 kr" -> 459900).

    Example:
        >>> parse_price("Pris från 459 900 kr")
        459900
        >>> parse_price("3.995:-/mån")
        3995
    """
    if not text:
        return None

    match = _PRICE_PATTERN.search(text)
    if not match:
        return None

    digits = re.sub(r"[^\d]", "", match.group(0))
    return int(digits) if digits else None


def classify_price(amount: Optional[int]) -> Optional[str]:
    """Return "purchase", "monthly" or None for an amount in SEK."""
    if amount is None:
        return None
    if PURCHASE_PRICE_RANGE[0] <= amount <= PURCHASE_PRICE_RANGE[1]:
        return "purchase"
    if MONTHLY_PRICE_RANGE[0] <= amount <= MONTHLY_PRICE_RANGE[1]:
        return "monthly"
    return None


def split_variant_name(name: str, vehicle_name: str = "") -> Tuple[str, Optional[str]]:
    """
    Strip a leading vehicle name from a variant name and infer the drivetrain.

    Example:
        >>> split_variant_name("Vitara 1.4T ALLGRIP Select", "Vitara")
        ('1.4T ALLGRIP Select', '4WD')
    """
    clean = " ".join((name or "").split())
    if vehicle_name and clean.lower().startswith(vehicle_name.lower() + " "):
        clean = clean[len(vehicle_name) + 1:]
    return clean, infer_drivetrain(clean)
