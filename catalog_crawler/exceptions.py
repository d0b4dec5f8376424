"""
Error taxonomy for the catalog pipeline.

Stage-local errors (FetchError on a linked page, ExtractionError on one
document, ReconciliationConflict on one entity) are absorbed by the stage
that raised them and recorded in run metrics. InvariantViolation marks ledger
corruption and is always logged at ERROR level.
"""

from typing import Optional


class CatalogPipelineError(Exception):
    """Base class for all catalog pipeline errors."""

    pass


class FetchError(CatalogPipelineError):
    """Network, timeout or HTTP status failure fetching a page or PDF."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"{message} ({url})")


class ExtractionError(CatalogPipelineError):
    """AI capability failure or malformed extraction output."""

    pass


class VerificationInconclusive(CatalogPipelineError):
    """
    Fact-check capability could not give an answer for a claim.

    Not a failure of the run: the entity holding the claim is flagged.
    """

    pass


class ReconciliationConflict(CatalogPipelineError):
    """Natural-key collision or constraint violation while reconciling an entity."""

    pass


class InvariantViolation(CatalogPipelineError):
    """More than one current price row exists for a variant."""

    def __init__(self, variant_id, current_rows: int):
        self.variant_id = variant_id
        self.current_rows = current_rows
        super().__init__(
            f"Variant {variant_id} has {current_rows} current price rows (expected at most 1)"
        )
