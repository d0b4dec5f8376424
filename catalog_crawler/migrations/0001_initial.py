"""
Migration: Initial catalog schema.

Creates brands, vehicles, variants, the SCD-2 variant price ledger and the
scrape session tables.
"""

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Brand",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(max_length=100, unique=True)),
                ("slug", models.SlugField(max_length=120, unique=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "catalog_brands",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Vehicle",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(max_length=200)),
                ("model_year", models.IntegerField(blank=True, null=True)),
                ("slug", models.SlugField(blank=True, max_length=250)),
                ("description", models.TextField(blank=True)),
                ("thumbnail_url", models.URLField(blank=True, max_length=2000)),
                (
                    "vehicle_type",
                    models.CharField(
                        choices=[
                            ("cars", "Passenger Cars"),
                            ("transport_cars", "Transport Vehicles"),
                        ],
                        default="cars",
                        max_length=20,
                    ),
                ),
                ("dimensions", models.JSONField(blank=True, default=dict)),
                ("equipment", models.JSONField(blank=True, default=list)),
                ("source_url", models.URLField(blank=True, max_length=2000)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "brand",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="vehicles",
                        to="catalog_crawler.brand",
                    ),
                ),
            ],
            options={
                "db_table": "catalog_vehicles",
                "ordering": ["brand__name", "name"],
                "indexes": [
                    models.Index(fields=["vehicle_type"], name="vehicle_type_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("brand", "name", "model_year"),
                        name="unique_vehicle_per_brand_year",
                        nulls_distinct=False,
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="VehicleVariant",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(max_length=200)),
                ("motor_type", models.CharField(blank=True, max_length=20)),
                ("drivetrain", models.CharField(blank=True, max_length=10, null=True)),
                ("transmission", models.CharField(blank=True, max_length=50)),
                ("thumbnail_url", models.URLField(blank=True, max_length=2000)),
                ("equipment", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "vehicle",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="variants",
                        to="catalog_crawler.vehicle",
                    ),
                ),
            ],
            options={
                "db_table": "catalog_vehicle_variants",
                "ordering": ["vehicle", "name"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("vehicle", "name", "motor_type", "drivetrain"),
                        name="unique_variant_identity",
                        nulls_distinct=False,
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="VariantPrice",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("pris", models.IntegerField(blank=True, null=True)),
                ("old_pris", models.IntegerField(blank=True, null=True)),
                ("privatleasing", models.IntegerField(blank=True, null=True)),
                ("old_privatleasing", models.IntegerField(blank=True, null=True)),
                ("foretagsleasing", models.IntegerField(blank=True, null=True)),
                ("old_foretagsleasing", models.IntegerField(blank=True, null=True)),
                ("billan_per_man", models.IntegerField(blank=True, null=True)),
                ("old_billan_per_man", models.IntegerField(blank=True, null=True)),
                ("leasing_months", models.IntegerField(blank=True, null=True)),
                ("is_campaign", models.BooleanField(default=False)),
                ("campaign_name", models.CharField(blank=True, max_length=200)),
                ("source_url", models.URLField(blank=True, max_length=2000)),
                ("valid_from", models.DateTimeField(default=django.utils.timezone.now)),
                ("valid_until", models.DateTimeField(blank=True, null=True)),
                (
                    "variant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prices",
                        to="catalog_crawler.vehiclevariant",
                    ),
                ),
            ],
            options={
                "db_table": "catalog_variant_prices",
                "ordering": ["-valid_from"],
                "indexes": [
                    models.Index(
                        fields=["variant", "valid_from"], name="variant_price_history_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("valid_until__isnull", True)),
                        fields=("variant",),
                        name="one_current_price_per_variant",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ScrapeSession",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("seed_url", models.URLField(max_length=2000)),
                ("category", models.CharField(blank=True, max_length=30)),
                ("content_type", models.CharField(blank=True, max_length=30)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("page_info", models.JSONField(blank=True, default=dict)),
                ("pdf_summary", models.JSONField(blank=True, default=dict)),
                ("pages_fetched", models.IntegerField(default=0)),
                ("pages_failed", models.IntegerField(default=0)),
                ("pdfs_found", models.IntegerField(default=0)),
                ("pdfs_processed", models.IntegerField(default=0)),
                ("entities_extracted", models.IntegerField(default=0)),
                ("entities_flagged", models.IntegerField(default=0)),
                ("created_count", models.IntegerField(default=0)),
                ("updated_count", models.IntegerField(default=0)),
                ("price_changes", models.IntegerField(default=0)),
                ("unchanged_count", models.IntegerField(default=0)),
                ("output", models.JSONField(blank=True, default=dict)),
                ("errors", models.JSONField(blank=True, default=list)),
            ],
            options={
                "db_table": "catalog_scrape_sessions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"], name="scrape_session_status_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StageResult",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "stage",
                    models.CharField(
                        choices=[
                            ("crawl", "Crawl"),
                            ("pdf", "PDF Extraction"),
                            ("normalize", "Normalize"),
                            ("classify", "Classify"),
                            ("verify", "Fact-Check"),
                            ("reconcile", "Reconcile"),
                        ],
                        max_length=20,
                    ),
                ),
                ("success", models.BooleanField(default=True)),
                ("counts", models.JSONField(blank=True, default=dict)),
                ("error", models.TextField(blank=True)),
                ("recorded_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stages",
                        to="catalog_crawler.scrapesession",
                    ),
                ),
            ],
            options={
                "db_table": "catalog_stage_results",
                "ordering": ["recorded_at"],
            },
        ),
    ]
