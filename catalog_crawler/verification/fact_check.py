"""
Fact-Check Reviewer.

Second opinion on extracted entities. Every claim is sent to an independent
fact-check capability together with the source section it came from:

- every claim corroborated        -> verified
- any claim not corroborated      -> flagged
- capability inconclusive         -> flagged
- claims over FACT_CHECK_MAX_CLAIMS are not sent and count as
  not corroborated               -> flagged
- no claims                       -> unverified

Flagged entities are returned like any other; whether they are persisted is
decided by reconciliation.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from django.conf import settings

from catalog_crawler.entities import Claim, ExtractedEntity, VerificationState
from catalog_crawler.exceptions import VerificationInconclusive
from catalog_crawler.services.ai_client import get_fact_check_client
from catalog_crawler.types import CanonicalDocument

logger = logging.getLogger(__name__)

# Characters of context sent either side of a located excerpt
CONTEXT_WINDOW = 1500


class FactCheckReviewer:
    """
    Verifies entity claims against their sources.

    Usage:
        reviewer = FactCheckReviewer(fact_check_client)
        entities = await reviewer.verify(entities, document)
    """

    def __init__(
        self,
        fact_check_client=None,
        max_claims: Optional[int] = None,
        enabled: Optional[bool] = None,
        max_concurrency: int = 5,
    ):
        self.fact_check_client = fact_check_client or get_fact_check_client()
        self.max_claims = max_claims or getattr(settings, "FACT_CHECK_MAX_CLAIMS", 20)
        self.enabled = enabled if enabled is not None else getattr(settings, "FACT_CHECK_ENABLED", True)
        self.max_concurrency = max_concurrency

    async def verify(
        self,
        entities: List[ExtractedEntity],
        document: CanonicalDocument,
    ) -> List[ExtractedEntity]:
        """
        Set the verification state of each entity.

        Args:
            entities: Entities from the extraction classifier
            document: Canonical document the entities were extracted from

        Returns:
            The same entities, in order, with verification set
        """
        if not self.enabled:
            logger.info("Fact-check disabled; entities stay unverified")
            return entities

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _check(claim: Claim) -> None:
            async with semaphore:
                context = self.source_context(claim, document)
                try:
                    claim.corroborated = await self.fact_check_client.verify(claim, context)
                except VerificationInconclusive as e:
                    claim.corroborated = None
                    claim.note = str(e)
                    logger.warning(f"Fact-check inconclusive for {claim.field}: {e}")

        for entity in entities:
            claims = entity.claims
            if not claims:
                entity.verification = VerificationState.UNVERIFIED
                continue

            await asyncio.gather(*[_check(claim) for claim in claims[: self.max_claims]])
            for claim in claims[self.max_claims:]:
                claim.corroborated = None
                claim.note = f"Not checked: over the {self.max_claims}-claim limit"

            if all(claim.corroborated is True for claim in claims):
                entity.verification = VerificationState.VERIFIED
            else:
                entity.verification = VerificationState.FLAGGED
                failed = [c.field for c in claims if c.corroborated is not True]
                logger.info(f"Flagged {entity.category} entity: unconfirmed {', '.join(failed)}")

        logger.info(f"Fact-check summary: {self.summarize(entities)}")
        return entities

    def source_context(self, claim: Claim, document: CanonicalDocument) -> str:
        """Text of the claim's source section, windowed around the excerpt."""
        section = document.section_for(claim.source_url) if claim.source_url else None
        if section is None and claim.source_excerpt:
            section = document.find_source(claim.source_excerpt)
        if section is None:
            return claim.source_excerpt

        text = section.text
        if len(text) <= CONTEXT_WINDOW * 2:
            return text

        position = text.lower().find(claim.source_excerpt.lower()) if claim.source_excerpt else -1
        if position == -1:
            return text[: CONTEXT_WINDOW * 2]
        start = max(0, position - CONTEXT_WINDOW)
        return text[start: position + len(claim.source_excerpt) + CONTEXT_WINDOW]

    @staticmethod
    def summarize(entities: List[ExtractedEntity]) -> Dict[str, int]:
        counts = {state.value: 0 for state in VerificationState}
        for entity in entities:
            counts[str(entity.verification)] = counts.get(str(entity.verification), 0) + 1
        return counts
