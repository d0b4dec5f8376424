"""
Catalog Pipeline.

Runs one seed URL end to end:

    crawl -> pdf -> normalize -> classify -> verify -> reconcile

Every stage boundary is reported to the session sink. run() always returns
a PipelineResult and never raises:

- seed fetch failure or total extraction outage aborts the run; the stages
  already completed stay in the result
- an overall timeout stops dispatching further work and returns what was
  gathered so far with timed_out set
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from catalog_crawler.entities import AUTO_DETECT, ExtractedEntity
from catalog_crawler.exceptions import CatalogPipelineError, ExtractionError
from catalog_crawler.models import PipelineStage
from catalog_crawler.services.content_normalizer import ContentNormalizer
from catalog_crawler.services.crawl_coordinator import CrawlCoordinator
from catalog_crawler.services.extraction_classifier import (
    ClassificationResult,
    ExtractionClassifier,
)
from catalog_crawler.services.pdf_discovery import filter_pricelist_pdfs
from catalog_crawler.services.pdf_extractor import PdfExtractor
from catalog_crawler.services.reconciliation import (
    ReconciliationEngine,
    ReconciliationResult,
)
from catalog_crawler.services.session_tracker import get_session_tracker
from catalog_crawler.types import CanonicalDocument, CrawlResult, PdfProcessingSummary
from catalog_crawler.verification.fact_check import FactCheckReviewer

logger = logging.getLogger(__name__)


class PipelineTimeout(Exception):
    """Overall pipeline time budget exhausted."""


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""

    seed_url: str
    success: bool = False
    run_id: Optional[str] = None
    content_type: Optional[str] = None
    stage_counts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    crawl: Optional[CrawlResult] = None
    pdf_summary: Optional[PdfProcessingSummary] = None
    document: Optional[CanonicalDocument] = None
    classification: Optional[ClassificationResult] = None
    entities: List[ExtractedEntity] = field(default_factory=list)
    reconciliation: Optional[ReconciliationResult] = None
    timed_out: bool = False
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "run_id": self.run_id,
            "seed_url": self.seed_url,
            "content_type": self.content_type,
            "stage_counts": self.stage_counts,
            "errors": list(self.errors),
            "timed_out": self.timed_out,
            "duration_ms": round(self.duration_ms, 1),
        }

    def session_summary(self) -> Dict[str, Any]:
        """Fields stored on the scrape session when the run completes."""
        summary: Dict[str, Any] = {
            "success": self.success,
            "errors": list(self.errors),
            "content_type": self.content_type or "",
        }
        if self.crawl is not None:
            summary.update({
                "page_info": self.crawl.page_info,
                "pages_fetched": self.crawl.pages_fetched,
                "pages_failed": self.crawl.pages_failed,
                "pdfs_found": len(self.crawl.pdf_links),
            })
        if self.pdf_summary is not None:
            summary["pdf_summary"] = self.pdf_summary.to_dict()
            summary["pdfs_processed"] = self.pdf_summary.total_pdfs_processed
        if self.entities:
            summary["entities_extracted"] = len(self.entities)
            summary["entities_flagged"] = sum(1 for e in self.entities if e.is_flagged)
        output: Dict[str, Any] = {}
        if self.crawl is not None and self.crawl.structured_data:
            output["structured_data"] = self.crawl.structured_data
        if self.reconciliation is not None:
            summary.update({
                "created_count": self.reconciliation.created,
                "updated_count": self.reconciliation.updated,
                "price_changes": self.reconciliation.price_changes,
                "unchanged_count": self.reconciliation.unchanged,
            })
            output["campaigns"] = self.reconciliation.campaigns
        summary["output"] = output
        return summary


class CatalogPipeline:
    """
    Crawl, extract, verify and reconcile one seed URL.

    Usage:
        pipeline = CatalogPipeline()
        result = await pipeline.run("https://www.suzuki.se/bilar", max_depth=1)
    """

    def __init__(
        self,
        coordinator: Optional[CrawlCoordinator] = None,
        pdf_extractor: Optional[PdfExtractor] = None,
        normalizer: Optional[ContentNormalizer] = None,
        classifier: Optional[ExtractionClassifier] = None,
        reviewer: Optional[FactCheckReviewer] = None,
        engine: Optional[ReconciliationEngine] = None,
        session_sink=None,
        timeout: Optional[float] = None,
        pricelist_pdfs_only: Optional[bool] = None,
    ):
        self.coordinator = coordinator or CrawlCoordinator()
        self.pdf_extractor = pdf_extractor or PdfExtractor()
        self.normalizer = normalizer or ContentNormalizer()
        self.classifier = classifier or ExtractionClassifier(normalizer=self.normalizer)
        self.reviewer = reviewer or FactCheckReviewer()
        self.engine = engine or ReconciliationEngine()
        self.session_sink = session_sink or get_session_tracker()
        self.timeout = timeout or getattr(settings, "PIPELINE_TIMEOUT", 600)
        self.pricelist_pdfs_only = (
            pricelist_pdfs_only
            if pricelist_pdfs_only is not None
            else getattr(settings, "PDF_PRICELIST_ONLY", True)
        )

    async def run(
        self,
        seed_url: str,
        max_depth: Optional[int] = None,
        category: str = AUTO_DETECT,
        persist_flagged: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineResult:
        """
        Run the pipeline for one seed URL.

        Args:
            seed_url: Page to start from
            max_depth: Link depth to follow (default from settings)
            category: Content category or "auto-detect"
            persist_flagged: Persist entities the fact-check flagged
            cancel_event: Set by the caller to stop the run early

        Returns:
            PipelineResult. Never raises.
        """
        started = time.monotonic()
        result = PipelineResult(seed_url=seed_url)
        loop = asyncio.get_running_loop()
        expires_at = loop.time() + self.timeout

        try:
            result.run_id = await sync_to_async(self.session_sink.start_run)(seed_url, category)
        except Exception as e:
            logger.exception(f"Could not start scrape session for {seed_url}")
            result.errors.append(f"session: {e}")

        try:
            await self._run_stages(
                result, seed_url, max_depth, category, persist_flagged, cancel_event, expires_at
            )
        except PipelineTimeout as e:
            result.timed_out = True
            result.errors.append(str(e))
            logger.warning(f"Pipeline for {seed_url} timed out: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Pipeline for {seed_url} failed unexpectedly")
            result.errors.append(f"{type(e).__name__}: {e}")

        result.duration_ms = (time.monotonic() - started) * 1000
        result.success = (
            not result.timed_out
            and result.reconciliation is not None
            and result.reconciliation.success
        )

        if result.run_id is not None:
            try:
                await sync_to_async(self.session_sink.complete_run)(
                    result.run_id, result.session_summary()
                )
            except Exception:
                logger.exception(f"Could not complete scrape session {result.run_id}")

        logger.info(
            f"Pipeline for {seed_url} {'succeeded' if result.success else 'failed'} "
            f"in {result.duration_ms:.0f}ms ({len(result.errors)} errors)"
        )
        return result

    async def _run_stages(
        self,
        result: PipelineResult,
        seed_url: str,
        max_depth: Optional[int],
        category: str,
        persist_flagged: Optional[bool],
        cancel_event: Optional[asyncio.Event],
        expires_at: float,
    ) -> None:
        loop = asyncio.get_running_loop()

        def remaining() -> float:
            left = expires_at - loop.time()
            if left <= 0 or (cancel_event is not None and cancel_event.is_set()):
                raise PipelineTimeout(f"Pipeline stopped after {self.timeout}s budget")
            return left

        async def bounded(coro):
            try:
                timeout = remaining()
            except PipelineTimeout:
                coro.close()
                raise
            try:
                return await asyncio.wait_for(coro, timeout=timeout)
            except asyncio.TimeoutError:
                raise PipelineTimeout(f"Pipeline stopped after {self.timeout}s budget")

        # Crawl
        fetcher = self.coordinator.fetcher
        async with AsyncExitStack() as stack:
            if hasattr(fetcher, "__aenter__"):
                await stack.enter_async_context(fetcher)
            crawl = await self.coordinator.crawl(
                seed_url, max_depth=max_depth, timeout=remaining(), cancel_event=cancel_event
            )
        result.crawl = crawl
        await self._record(result, PipelineStage.CRAWL, {
            "pages_fetched": crawl.pages_fetched,
            "pages_failed": crawl.pages_failed,
            "pdf_links": len(crawl.pdf_links),
            "structured_items": len(crawl.structured_data),
            "timed_out": crawl.timed_out,
        }, crawl.error)
        result.errors.extend(f"crawl: {f.url}: {f.error}" for f in crawl.failed_links)

        if not crawl.success:
            result.errors.append(f"crawl: {crawl.error}")
            result.timed_out = crawl.timed_out
            return
        if crawl.timed_out:
            raise PipelineTimeout("Crawl did not finish within the pipeline budget")

        # PDFs
        pdf_links = crawl.pdf_links
        if self.pricelist_pdfs_only:
            pdf_links = filter_pricelist_pdfs(pdf_links)
        result.pdf_summary = await self.pdf_extractor.extract_all(
            pdf_links, timeout=remaining(), cancel_event=cancel_event
        )
        await self._record(result, PipelineStage.PDF, {
            "total_pdfs_found": result.pdf_summary.total_pdfs_found,
            "total_pdfs_processed": result.pdf_summary.total_pdfs_processed,
            "overall_status": result.pdf_summary.overall_status.value,
            "timed_out": result.pdf_summary.timed_out,
        })
        result.errors.extend(f"pdf: {error}" for error in result.pdf_summary.all_errors)
        if result.pdf_summary.timed_out:
            raise PipelineTimeout("PDF extraction did not finish within the pipeline budget")

        # Normalize
        result.document = self.normalizer.normalize(crawl, result.pdf_summary)
        await self._record(result, PipelineStage.NORMALIZE, {
            "sections": len(result.document.sections),
            "total_chars": result.document.total_chars,
            "images": len(result.document.image_urls),
        })

        # Classify
        remaining()
        try:
            result.classification = await bounded(
                self.classifier.classify(result.document, category)
            )
        except ExtractionError as e:
            result.errors.append(f"classify: {e}")
            await self._record(result, PipelineStage.CLASSIFY, {}, str(e))
            return
        result.content_type = result.classification.content_type
        result.entities = result.classification.entities
        result.errors.extend(f"classify: {error}" for error in result.classification.errors)
        await self._record(result, PipelineStage.CLASSIFY, result.classification.counts())

        # Verify
        result.entities = await bounded(self.reviewer.verify(result.entities, result.document))
        await self._record(result, PipelineStage.VERIFY, FactCheckReviewer.summarize(result.entities))

        # Reconcile
        remaining()
        engine = self.engine
        if persist_flagged is not None and persist_flagged != engine.persist_flagged:
            engine = ReconciliationEngine(
                store=engine.store,
                tracked_fields=engine.tracked_fields,
                persist_flagged=persist_flagged,
            )
        try:
            result.reconciliation = await sync_to_async(engine.reconcile)(result.entities)
        except CatalogPipelineError as e:
            result.errors.append(f"reconcile: {e}")
            await self._record(result, PipelineStage.RECONCILE, {}, str(e))
            return

        counts = result.reconciliation.to_dict()
        counts.pop("errors")
        counts.pop("success")
        result.errors.extend(f"reconcile: {error}" for error in result.reconciliation.errors)
        await self._record(
            result,
            PipelineStage.RECONCILE,
            counts,
            None if result.reconciliation.success else "; ".join(result.reconciliation.errors),
        )

    async def _record(
        self,
        result: PipelineResult,
        stage: str,
        counts: Dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        result.stage_counts[str(stage)] = counts
        if result.run_id is None:
            return
        try:
            await sync_to_async(self.session_sink.record_stage_result)(
                result.run_id, str(stage), counts, error
            )
        except Exception:
            logger.exception(f"Could not record {stage} stage for session {result.run_id}")


def get_pipeline() -> CatalogPipeline:
    """Get a pipeline with every capability built from settings."""
    return CatalogPipeline()
