"""
Tests for scrape session tracking.
"""

import pytest

from catalog_crawler.models import ScrapeSession, ScrapeSessionStatus, StageResult
from catalog_crawler.services.session_tracker import DjangoSessionTracker, NullSessionSink


@pytest.mark.django_db
class TestDjangoSessionTracker:
    """Tests for the database-backed session tracker."""

    def test_start_run_creates_running_session(self):
        tracker = DjangoSessionTracker()

        run_id = tracker.start_run("https://www.suzuki.se/bilar", "cars")

        session = ScrapeSession.objects.get(id=run_id)
        assert session.status == ScrapeSessionStatus.RUNNING
        assert session.category == "cars"
        assert session.started_at is not None

    def test_stage_results_are_recorded(self):
        tracker = DjangoSessionTracker()
        run_id = tracker.start_run("https://www.suzuki.se/bilar", "auto-detect")

        tracker.record_stage_result(run_id, "crawl", {"pages_fetched": 3})
        tracker.record_stage_result(run_id, "classify", {"entities": 0}, error="AI service down")

        stages = list(StageResult.objects.filter(session_id=run_id))
        assert [s.stage for s in stages] == ["crawl", "classify"]
        assert stages[0].success is True
        assert stages[0].counts == {"pages_fetched": 3}
        assert stages[1].success is False
        assert stages[1].error == "AI service down"

    def test_complete_run_success(self):
        tracker = DjangoSessionTracker()
        run_id = tracker.start_run("https://www.suzuki.se/bilar", "cars")

        tracker.complete_run(run_id, {
            "success": True,
            "content_type": "cars",
            "pages_fetched": 4,
            "price_changes": 2,
            "output": {"campaigns": []},
            "errors": [],
        })

        session = ScrapeSession.objects.get(id=run_id)
        assert session.status == ScrapeSessionStatus.COMPLETED
        assert session.content_type == "cars"
        assert session.pages_fetched == 4
        assert session.price_changes == 2
        assert session.completed_at is not None
        assert session.duration_seconds >= 0

    def test_complete_run_failure_keeps_errors(self):
        tracker = DjangoSessionTracker()
        run_id = tracker.start_run("https://www.suzuki.se/bilar", "cars")

        tracker.complete_run(run_id, {"success": False, "errors": ["Seed page failed"]})

        session = ScrapeSession.objects.get(id=run_id)
        assert session.status == ScrapeSessionStatus.FAILED
        assert session.errors == ["Seed page failed"]


class TestNullSessionSink:
    """Tests for the in-memory sink."""

    def test_records_run(self):
        sink = NullSessionSink()

        run_id = sink.start_run("https://www.suzuki.se/bilar", "cars")
        sink.record_stage_result(run_id, "crawl", {"pages_fetched": 1})
        sink.complete_run(run_id, {"success": True})

        assert sink.stages(run_id) == ["crawl"]
        assert sink.runs[run_id]["seed_url"] == "https://www.suzuki.se/bilar"
        assert sink.runs[run_id]["summary"] == {"success": True}
