"""
Session Tracker.

Records one pipeline run as an auditable unit: a ScrapeSession row plus one
StageResult per stage boundary. The pipeline only sees the SessionSink
protocol; NullSessionSink keeps runs in memory (tests, dry runs).
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol

from django.utils import timezone

from catalog_crawler.models import ScrapeSession, ScrapeSessionStatus, StageResult

logger = logging.getLogger(__name__)

# ScrapeSession columns filled from the run summary
SUMMARY_FIELDS = [
    "content_type",
    "page_info",
    "pdf_summary",
    "pages_fetched",
    "pages_failed",
    "pdfs_found",
    "pdfs_processed",
    "entities_extracted",
    "entities_flagged",
    "created_count",
    "updated_count",
    "price_changes",
    "unchanged_count",
    "output",
]


class SessionSink(Protocol):
    """Protocol for session/audit sinks."""

    def start_run(self, seed_url: str, category: str) -> str: ...

    def record_stage_result(
        self,
        run_id: str,
        stage: str,
        counts: Dict[str, Any],
        error: Optional[str] = None,
    ) -> None: ...

    def complete_run(self, run_id: str, summary: Dict[str, Any]) -> None: ...


class DjangoSessionTracker:
    """SessionSink on ScrapeSession and StageResult."""

    def start_run(self, seed_url: str, category: str) -> str:
        session = ScrapeSession.objects.create(seed_url=seed_url, category=category or "")
        session.start()
        logger.info(f"Started scrape session {session.id} for {seed_url}")
        return str(session.id)

    def record_stage_result(
        self,
        run_id: str,
        stage: str,
        counts: Dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        StageResult.objects.create(
            session_id=run_id,
            stage=stage,
            success=error is None,
            counts=counts,
            error=error or "",
        )

    def complete_run(self, run_id: str, summary: Dict[str, Any]) -> None:
        session = ScrapeSession.objects.get(id=run_id)
        for name in SUMMARY_FIELDS:
            if name in summary and summary[name] is not None:
                setattr(session, name, summary[name])
        session.errors = list(summary.get("errors") or [])
        session.status = (
            ScrapeSessionStatus.COMPLETED if summary.get("success") else ScrapeSessionStatus.FAILED
        )
        session.completed_at = timezone.now()
        session.save()
        logger.info(
            f"Scrape session {run_id} {session.status} in "
            f"{session.duration_seconds or 0:.1f}s ({len(session.errors)} errors)"
        )


class NullSessionSink:
    """In-memory SessionSink."""

    def __init__(self):
        self.runs: Dict[str, Dict[str, Any]] = {}

    def start_run(self, seed_url: str, category: str) -> str:
        run_id = str(uuid.uuid4())
        self.runs[run_id] = {
            "seed_url": seed_url,
            "category": category,
            "stages": [],
            "summary": None,
        }
        return run_id

    def record_stage_result(
        self,
        run_id: str,
        stage: str,
        counts: Dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        self.runs[run_id]["stages"].append({"stage": stage, "counts": counts, "error": error})

    def complete_run(self, run_id: str, summary: Dict[str, Any]) -> None:
        self.runs[run_id]["summary"] = summary

    def stages(self, run_id: str) -> List[str]:
        return [s["stage"] for s in self.runs[run_id]["stages"]]


def get_session_tracker() -> DjangoSessionTracker:
    """Get the database-backed session tracker."""
    return DjangoSessionTracker()
