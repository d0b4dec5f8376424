"""
Celery tasks for the catalog crawler.

- run_catalog_pipeline: crawl, extract, verify and reconcile one seed URL
- apply_price_updates: apply a price-update batch to the ledger
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from celery import shared_task

from catalog_crawler.entities import AUTO_DETECT

logger = logging.getLogger(__name__)


@shared_task(name="catalog_crawler.tasks.run_catalog_pipeline", bind=True)
def run_catalog_pipeline(
    self,
    seed_url: str,
    max_depth: Optional[int] = None,
    category: str = AUTO_DETECT,
    persist_flagged: bool = False,
) -> Dict[str, Any]:
    """
    Run the catalog pipeline for one seed URL.

    Args:
        seed_url: Page to start from
        max_depth: Link depth to follow (default from settings)
        category: Content category or "auto-detect"
        persist_flagged: Persist entities the fact-check flagged

    Returns:
        Dict with success, run_id, stage counts and errors
    """
    # Import here to avoid circular imports
    from catalog_crawler.services.pipeline import get_pipeline

    logger.info(f"Starting catalog pipeline for {seed_url} (category={category})")

    pipeline = get_pipeline()

    # Run async pipeline in a fresh event loop
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(
            pipeline.run(
                seed_url,
                max_depth=max_depth,
                category=category,
                persist_flagged=persist_flagged,
            )
        )
    finally:
        loop.close()

    return result.to_dict()


@shared_task(name="catalog_crawler.tasks.apply_price_updates")
def apply_price_updates(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Apply a price-update batch.

    Args:
        records: {brand, vehicle, variant, motor_type, prices} records

    Returns:
        Batch response with summary and per-record results
    """
    from catalog_crawler.services.price_updates import PriceUpdateService

    logger.info(f"Applying {len(records)} price updates")
    return PriceUpdateService().apply_batch(records)
