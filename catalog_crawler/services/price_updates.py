"""
Price-update batch protocol.

Upstream callers (daily price scrapes, manual imports) send a list of:

    {"brand": "Suzuki", "vehicle": "Vitara", "variant": "1.4T ALLGRIP Select",
     "motor_type": "HYBRID", "prices": {"pris": 449900, "old_pris": 459900, ...}}

Each record is applied through the reconciliation engine's price supersede.
Per-record result: {success, updated, error?}. Aggregate: {total, success,
updated, unchanged, errors}.
"""

import logging
from typing import Any, Dict, List, Optional

from catalog_crawler.exceptions import CatalogPipelineError, InvariantViolation
from catalog_crawler.services.catalog_store import LEDGER_PRICE_FIELDS
from catalog_crawler.services.reconciliation import ReconciliationEngine
from catalog_crawler.utils.normalization import normalize_motor_type

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["brand", "vehicle", "variant", "motor_type"]


def _clean_prices(prices: Dict[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for name in LEDGER_PRICE_FIELDS:
        value = prices.get(name)
        if value is None or value == "":
            fields[name] = None
        elif isinstance(value, bool):
            raise ValueError(f"{name} must be a number")
        else:
            fields[name] = int(value)
    fields["is_campaign"] = bool(prices.get("is_campaign", False))
    fields["campaign_name"] = str(prices.get("campaign_name") or "")
    fields["source_url"] = str(prices.get("source_url") or "")
    return fields


class PriceUpdateService:
    """
    Applies price-update records to the ledger.

    Usage:
        service = PriceUpdateService()
        response = service.apply_batch(records)
    """

    def __init__(self, engine: Optional[ReconciliationEngine] = None):
        self.engine = engine or ReconciliationEngine()
        self.store = self.engine.store

    def apply_one(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Apply one record. Never raises."""
        missing = [name for name in REQUIRED_FIELDS if not record.get(name)]
        if missing:
            return {
                "success": False,
                "updated": False,
                "error": f"Missing required fields: {', '.join(missing)}",
            }

        motor_type = normalize_motor_type(record["motor_type"])
        variant = self.store.find_variant_by_names(
            record["brand"], record["vehicle"], record["variant"], motor_type
        )
        if variant is None:
            return {
                "success": False,
                "updated": False,
                "error": f"Variant not found: {record['variant']} ({motor_type})",
            }

        try:
            fields = _clean_prices(record.get("prices") or {})
        except (TypeError, ValueError) as e:
            return {"success": False, "updated": False, "error": f"Invalid prices: {e}"}

        try:
            outcome = self.engine.reconcile_price(variant, fields)
        except InvariantViolation as e:
            logger.error(f"Price ledger corrupted: {e}")
            return {"success": False, "updated": False, "error": str(e)}
        except CatalogPipelineError as e:
            logger.warning(f"Price update failed for {record['variant']}: {e}")
            return {"success": False, "updated": False, "error": str(e)}

        return {"success": True, "updated": outcome.changed}

    def apply_batch(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Apply a batch of records.

        Returns:
            {"success", "summary": {total, success, updated, unchanged, errors},
             "results": [...]}
        """
        results = []
        success_count = 0
        updated_count = 0
        error_count = 0

        for record in records:
            if not isinstance(record, dict):
                outcome = {"success": False, "updated": False, "error": "Record must be an object"}
                record = {}
            else:
                outcome = self.apply_one(record)

            results.append({
                "brand": record.get("brand"),
                "vehicle": record.get("vehicle"),
                "variant": record.get("variant"),
                "motor_type": record.get("motor_type"),
                **outcome,
            })

            if outcome["success"]:
                success_count += 1
                if outcome["updated"]:
                    updated_count += 1
            else:
                error_count += 1

        logger.info(
            f"Processed {len(records)} price updates: {updated_count} updated, "
            f"{success_count - updated_count} unchanged, {error_count} errors"
        )
        return {
            "success": error_count == 0,
            "message": f"Processed {len(records)} price updates",
            "summary": {
                "total": len(records),
                "success": success_count,
                "updated": updated_count,
                "unchanged": success_count - updated_count,
                "errors": error_count,
            },
            "results": results,
        }
