"""
Management command to apply a price-update batch from a JSON file.

The file holds either a list of records or {"updates": [...]}:

    [{"brand": "Suzuki", "vehicle": "Vitara", "variant": "Select",
      "motor_type": "HYBRID", "prices": {"pris": 449900, "old_pris": 459900}}]

Usage:
    python manage.py update_prices prices.json
    python manage.py update_prices prices.json --show-results
"""

import json

from django.core.management.base import BaseCommand, CommandError

from catalog_crawler.services.price_updates import PriceUpdateService


class Command(BaseCommand):
    help = "Apply a price-update batch to the variant price ledger"

    def add_arguments(self, parser):
        parser.add_argument("path", type=str, help="JSON file with price-update records")
        parser.add_argument(
            "--show-results",
            action="store_true",
            help="Print the result of every record",
        )

    def handle(self, *args, **options):
        path = options["path"]
        try:
            with open(path, encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            raise CommandError(f"File not found: {path}")
        except json.JSONDecodeError as e:
            raise CommandError(f"Invalid JSON in {path}: {e}")

        records = payload.get("updates") if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise CommandError("Expected a list of records or an object with an 'updates' list")

        response = PriceUpdateService().apply_batch(records)
        summary = response["summary"]

        if options["show_results"]:
            for result in response["results"]:
                label = f"{result.get('brand')} {result.get('vehicle')} {result.get('variant')}"
                if not result["success"]:
                    self.stdout.write(self.style.WARNING(f"  {label}: {result.get('error')}"))
                elif result["updated"]:
                    self.stdout.write(f"  {label}: updated")
                else:
                    self.stdout.write(f"  {label}: unchanged")

        message = (
            f"Processed {summary['total']} records: {summary['updated']} updated, "
            f"{summary['unchanged']} unchanged, {summary['errors']} errors"
        )
        if summary["errors"]:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))
