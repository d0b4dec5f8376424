"""
Extraction Classifier.

Resolves the content category of a canonical document and turns the
structured-extraction capability's output into typed entities.

Category resolution:
- explicit hint ("campaigns", "cars", "transport_cars") is used as-is
- "auto-detect" lets the capability decide; when it reports nothing usable,
  URL and keyword heuristics decide
- anything else is rejected with ExtractionError
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings

from catalog_crawler.entities import (
    AUTO_DETECT,
    ENTITY_TYPES,
    ContentCategory,
    ExtractedEntity,
    entity_from_payload,
    resolve_category,
)
from catalog_crawler.exceptions import ExtractionError
from catalog_crawler.services.ai_client import get_extraction_client
from catalog_crawler.services.content_normalizer import ContentNormalizer
from catalog_crawler.types import CanonicalDocument

logger = logging.getLogger(__name__)

CAMPAIGN_URL_KEYWORDS = ["erbjudand", "kampanj", "offer", "finansiering"]
TRANSPORT_URL_KEYWORDS = ["transportbil", "commercial", "van"]
CARS_URL_KEYWORDS = ["personbil", "modeller", "cars"]

CAMPAIGN_KEYWORDS = [
    "kampanj", "erbjudande", "rabatt", "specialpris", "begränsat",
    "sommar", "vinter", "finansiering",
]
TRANSPORT_KEYWORDS = ["transport", "commercial", "van", "lastbil", "företag"]


def detect_content_type(text: str, source_url: str, category: Optional[str] = None) -> str:
    """
    Heuristic content category.

    Args:
        text: Page or document text
        source_url: URL the content came from
        category: Explicit category; returned unchanged when valid

    Returns:
        "campaigns", "cars" or "transport_cars" (cars by default)
    """
    if category in ENTITY_TYPES:
        return category

    url = (source_url or "").lower()
    if any(keyword in url for keyword in CAMPAIGN_URL_KEYWORDS):
        return ContentCategory.CAMPAIGNS.value
    if any(keyword in url for keyword in TRANSPORT_URL_KEYWORDS):
        return ContentCategory.TRANSPORT_CARS.value
    if any(keyword in url for keyword in CARS_URL_KEYWORDS):
        return ContentCategory.CARS.value

    content = (text or "").lower()
    campaign_count = sum(1 for word in CAMPAIGN_KEYWORDS if word in content)
    transport_count = sum(1 for word in TRANSPORT_KEYWORDS if word in content)

    if campaign_count > 2:
        return ContentCategory.CAMPAIGNS.value
    if transport_count > 1:
        return ContentCategory.TRANSPORT_CARS.value
    return ContentCategory.CARS.value


@dataclass
class ClassificationResult:
    """Output of the extraction classifier."""

    content_type: str
    entities: List[ExtractedEntity] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    batches: int = 0
    failed_batches: int = 0
    rejected_entities: int = 0

    @property
    def success(self) -> bool:
        return self.batches > 0 and self.failed_batches < self.batches

    def counts(self) -> Dict[str, int]:
        by_category: Dict[str, int] = {}
        for entity in self.entities:
            by_category[entity.category] = by_category.get(entity.category, 0) + 1
        return {
            "entities": len(self.entities),
            "batches": self.batches,
            "failed_batches": self.failed_batches,
            "rejected_entities": self.rejected_entities,
            **{f"{key}_count": value for key, value in by_category.items()},
        }


class ExtractionClassifier:
    """
    Classifies a canonical document and extracts typed entities.

    Usage:
        classifier = ExtractionClassifier(extraction_client)
        result = await classifier.classify(document, "auto-detect")
    """

    def __init__(
        self,
        extraction_client=None,
        normalizer: Optional[ContentNormalizer] = None,
        max_chars: Optional[int] = None,
        enable_images: Optional[bool] = None,
        max_parallel_batches: int = 3,
    ):
        self.extraction_client = extraction_client or get_extraction_client()
        self.normalizer = normalizer or ContentNormalizer()
        self.max_chars = max_chars or getattr(settings, "EXTRACTION_MAX_CHARS", 60000)
        self.enable_images = (
            enable_images
            if enable_images is not None
            else getattr(settings, "EXTRACTION_ENABLE_IMAGES", False)
        )
        self.max_parallel_batches = max_parallel_batches

    def resolve_hint(self, hint_category: Optional[str]) -> str:
        """Validate a category hint: a known category or "auto-detect"."""
        hint = (hint_category or AUTO_DETECT).strip().lower()
        if hint == AUTO_DETECT:
            return hint
        return resolve_category(hint)

    async def classify(
        self,
        document: CanonicalDocument,
        hint_category: Optional[str] = AUTO_DETECT,
    ) -> ClassificationResult:
        """
        Extract typed entities from a canonical document.

        Args:
            document: Source-tagged canonical document
            hint_category: Category or "auto-detect"

        Returns:
            ClassificationResult. Failed batches are recorded in errors.

        Raises:
            ExtractionError: Unknown hint category, or every batch failed
        """
        hint = self.resolve_hint(hint_category)
        batches = self.normalizer.split_batches(document, self.max_chars)
        if not batches:
            raise ExtractionError(f"Canonical document for {document.seed_url} is empty")

        semaphore = asyncio.Semaphore(self.max_parallel_batches)

        async def _run(index: int, batch: CanonicalDocument):
            async with semaphore:
                images = batch.image_urls if (self.enable_images and index == 0) else None
                return await self.extraction_client.extract(batch.render(), hint, image_urls=images)

        outcomes = await asyncio.gather(
            *[_run(i, batch) for i, batch in enumerate(batches)],
            return_exceptions=True,
        )

        result = ClassificationResult(content_type=hint, batches=len(batches))
        reported_categories: List[str] = []
        raw_batches: List[Dict[str, Any]] = []

        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                result.failed_batches += 1
                result.errors.append(f"batch {index + 1}: {outcome}")
                logger.warning(f"Extraction batch {index + 1}/{len(batches)} failed: {outcome}")
                continue
            raw_batches.append(outcome)
            if outcome.get("category"):
                reported_categories.append(str(outcome["category"]).strip().lower())

        if result.failed_batches == len(batches):
            raise ExtractionError(
                f"All {len(batches)} extraction batches failed: {'; '.join(result.errors)}"
            )

        result.content_type = self._resolve_content_type(hint, reported_categories, document)

        for batch_index, outcome in enumerate(raw_batches):
            for payload in outcome.get("entities") or []:
                category = self._payload_category(payload, result.content_type)
                try:
                    entity = entity_from_payload(category, payload)
                except ExtractionError as e:
                    result.rejected_entities += 1
                    result.errors.append(str(e))
                    logger.warning(f"Rejected extracted entity: {e}")
                    continue
                self._attach_sources(entity, document)
                result.entities.append(entity)

        result.entities = self._deduplicate(result.entities)
        logger.info(
            f"Extracted {len(result.entities)} {result.content_type} entities "
            f"from {document.seed_url} ({result.failed_batches}/{result.batches} batches failed)"
        )
        return result

    def _resolve_content_type(
        self,
        hint: str,
        reported: List[str],
        document: CanonicalDocument,
    ) -> str:
        if hint != AUTO_DETECT:
            return hint

        valid = [category for category in reported if category in ENTITY_TYPES]
        unknown = [category for category in reported if category not in ENTITY_TYPES]
        if unknown:
            raise ExtractionError(f"Unknown content category from extraction: {unknown[0]!r}")
        if valid:
            # Majority across batches, first reported wins ties
            return max(valid, key=lambda c: (valid.count(c), -valid.index(c)))

        primary = document.sections[0] if document.sections else None
        return detect_content_type(primary.text if primary else "", document.seed_url)

    def _payload_category(self, payload: Any, content_type: str) -> str:
        if isinstance(payload, dict) and payload.get("category"):
            return str(payload["category"])
        return content_type

    def _attach_sources(self, entity: ExtractedEntity, document: CanonicalDocument) -> None:
        """Fill missing claim source URLs by locating the excerpt in a section."""
        for claim in entity.claims:
            if claim.source_url and document.section_for(claim.source_url) is not None:
                continue
            section = document.find_source(claim.source_excerpt) if claim.source_excerpt else None
            claim.source_url = section.source_url if section else ""
        if not entity.source_url and entity.claims:
            entity.source_url = next((c.source_url for c in entity.claims if c.source_url), "")
        if not entity.source_url:
            entity.source_url = document.seed_url

    def _deduplicate(self, entities: List[ExtractedEntity]) -> List[ExtractedEntity]:
        """Merge entities with the same key; variants and claims are unioned."""
        merged: Dict[tuple, ExtractedEntity] = {}
        for entity in entities:
            key = entity.dedup_key()
            existing = merged.get(key)
            if existing is None:
                merged[key] = entity
                continue

            existing.claims.extend(entity.claims)
            if hasattr(existing, "variants"):
                known = {v.name.lower() for v in existing.variants}
                for variant in entity.variants:
                    if variant.name.lower() not in known:
                        existing.variants.append(variant)
                        known.add(variant.name.lower())
        return list(merged.values())


def get_extraction_classifier() -> ExtractionClassifier:
    """Get an extraction classifier configured from settings."""
    return ExtractionClassifier()
