"""
Management command to run the catalog pipeline for a seed URL.

Usage:
    python manage.py run_pipeline https://www.suzuki.se/bilar --depth 1
    python manage.py run_pipeline https://www.suzuki.se/erbjudanden --category campaigns
    python manage.py run_pipeline https://www.suzuki.se/bilar --async
"""

import asyncio
import json

from django.core.management.base import BaseCommand, CommandError

from catalog_crawler.entities import AUTO_DETECT, ENTITY_TYPES


class Command(BaseCommand):
    help = "Crawl a seed URL, extract and verify entities, and reconcile them into the catalog"

    def add_arguments(self, parser):
        parser.add_argument("seed_url", type=str, help="Page to start crawling from")
        parser.add_argument(
            "--depth",
            type=int,
            default=None,
            help="Link depth to follow (default: CRAWLER_MAX_DEPTH)",
        )
        parser.add_argument(
            "--category",
            type=str,
            default=AUTO_DETECT,
            help=f"Content category: {', '.join(ENTITY_TYPES)} or {AUTO_DETECT}",
        )
        parser.add_argument(
            "--persist-flagged",
            action="store_true",
            help="Also persist entities the fact-check flagged",
        )
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Queue the run on Celery instead of running it here",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print the result as JSON",
        )

    def handle(self, *args, **options):
        seed_url = options["seed_url"]
        category = options["category"]
        if category != AUTO_DETECT and category not in ENTITY_TYPES:
            raise CommandError(f"Unknown category {category!r}")
        if options["depth"] is not None and options["depth"] < 0:
            raise CommandError("--depth must be 0 or more")

        if options["run_async"]:
            from catalog_crawler.tasks import run_catalog_pipeline

            task = run_catalog_pipeline.apply_async(
                args=[seed_url],
                kwargs={
                    "max_depth": options["depth"],
                    "category": category,
                    "persist_flagged": options["persist_flagged"],
                },
                queue="pipeline",
            )
            self.stdout.write(self.style.SUCCESS(f"Queued pipeline run: task {task.id}"))
            return

        from catalog_crawler.services.pipeline import get_pipeline

        self.stdout.write(f"Running pipeline for {seed_url}...")
        pipeline = get_pipeline()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            result = loop.run_until_complete(
                pipeline.run(
                    seed_url,
                    max_depth=options["depth"],
                    category=category,
                    persist_flagged=options["persist_flagged"],
                )
            )
        finally:
            loop.close()

        if options["json"]:
            self.stdout.write(json.dumps(result.to_dict(), indent=2, default=str))
            return

        for stage, counts in result.stage_counts.items():
            summary = ", ".join(f"{key}={value}" for key, value in counts.items())
            self.stdout.write(f"  {stage}: {summary}")

        for error in result.errors[:20]:
            self.stdout.write(self.style.WARNING(f"  ! {error}"))
        if len(result.errors) > 20:
            self.stdout.write(self.style.WARNING(f"  ... {len(result.errors) - 20} more errors"))

        if result.success:
            self.stdout.write(self.style.SUCCESS(
                f"Pipeline completed in {result.duration_ms / 1000:.1f}s (session {result.run_id})"
            ))
        else:
            self.stdout.write(self.style.ERROR(
                f"Pipeline failed in {result.duration_ms / 1000:.1f}s (session {result.run_id})"
            ))
