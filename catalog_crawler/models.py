"""
Django models for the Vehicle Catalog Crawler.

Models: Brand, Vehicle, VehicleVariant, VariantPrice, ScrapeSession, StageResult

VariantPrice is an SCD-2 ledger: a price change expires the current row
(valid_until set) and inserts a new current row. At most one row per variant
has valid_until NULL; the partial unique constraint enforces it.
"""

import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.text import slugify


class VehicleType(models.TextChoices):
    """Catalog vehicle type."""

    CARS = "cars", "Passenger Cars"
    TRANSPORT_CARS = "transport_cars", "Transport Vehicles"


class ScrapeSessionStatus(models.TextChoices):
    """Status of a pipeline run."""

    PENDING = "pending", "Pending"
    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PipelineStage(models.TextChoices):
    """Stage boundaries observed by the session tracker."""

    CRAWL = "crawl", "Crawl"
    PDF = "pdf", "PDF Extraction"
    NORMALIZE = "normalize", "Normalize"
    CLASSIFY = "classify", "Classify"
    VERIFY = "verify", "Fact-Check"
    RECONCILE = "reconcile", "Reconcile"


class Brand(models.Model):
    """A vehicle manufacturer. Matched by name, case-insensitive."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=120, unique=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_brands"
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)[:120]
        super().save(*args, **kwargs)


class Vehicle(models.Model):
    """A vehicle model for one model year."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    brand = models.ForeignKey(Brand, on_delete=models.CASCADE, related_name="vehicles")
    name = models.CharField(max_length=200)
    model_year = models.IntegerField(null=True, blank=True)
    slug = models.SlugField(max_length=250, blank=True)

    # Descriptive fields, updated on every successful reconciliation
    description = models.TextField(blank=True)
    thumbnail_url = models.URLField(max_length=2000, blank=True)
    vehicle_type = models.CharField(
        max_length=20, choices=VehicleType.choices, default=VehicleType.CARS
    )
    dimensions = models.JSONField(default=dict, blank=True)
    equipment = models.JSONField(default=list, blank=True)
    source_url = models.URLField(max_length=2000, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_vehicles"
        ordering = ["brand__name", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["brand", "name", "model_year"],
                name="unique_vehicle_per_brand_year",
                nulls_distinct=False,
            ),
        ]
        indexes = [
            models.Index(fields=["vehicle_type"], name="vehicle_type_idx"),
        ]

    def __str__(self):
        year = f" ({self.model_year})" if self.model_year else ""
        return f"{self.brand.name} {self.name}{year}"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(f"{self.name} {self.model_year or ''}")[:250]
        super().save(*args, **kwargs)


class VehicleVariant(models.Model):
    """A trim/motor option of a vehicle."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    vehicle = models.ForeignKey(Vehicle, on_delete=models.CASCADE, related_name="variants")
    name = models.CharField(max_length=200)
    motor_type = models.CharField(max_length=20, blank=True)
    drivetrain = models.CharField(max_length=10, null=True, blank=True)
    transmission = models.CharField(max_length=50, blank=True)
    thumbnail_url = models.URLField(max_length=2000, blank=True)
    equipment = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_vehicle_variants"
        ordering = ["vehicle", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["vehicle", "name", "motor_type", "drivetrain"],
                name="unique_variant_identity",
                nulls_distinct=False,
            ),
        ]

    def __str__(self):
        parts = [self.name, self.motor_type, self.drivetrain or ""]
        return " ".join(p for p in parts if p)

    @property
    def current_price(self):
        return self.prices.filter(valid_until__isnull=True).first()


class VariantPrice(models.Model):
    """
    One row of a variant's price ledger.

    valid_until NULL marks the current row. Rows are never updated except to
    set valid_until when a newer price supersedes them.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    variant = models.ForeignKey(VehicleVariant, on_delete=models.CASCADE, related_name="prices")

    # Prices in whole SEK
    pris = models.IntegerField(null=True, blank=True)
    old_pris = models.IntegerField(null=True, blank=True)
    privatleasing = models.IntegerField(null=True, blank=True)
    old_privatleasing = models.IntegerField(null=True, blank=True)
    foretagsleasing = models.IntegerField(null=True, blank=True)
    old_foretagsleasing = models.IntegerField(null=True, blank=True)
    billan_per_man = models.IntegerField(null=True, blank=True)
    old_billan_per_man = models.IntegerField(null=True, blank=True)
    leasing_months = models.IntegerField(null=True, blank=True)

    is_campaign = models.BooleanField(default=False)
    campaign_name = models.CharField(max_length=200, blank=True)
    source_url = models.URLField(max_length=2000, blank=True)

    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "catalog_variant_prices"
        ordering = ["-valid_from"]
        constraints = [
            models.UniqueConstraint(
                fields=["variant"],
                condition=Q(valid_until__isnull=True),
                name="one_current_price_per_variant",
            ),
        ]
        indexes = [
            models.Index(fields=["variant", "valid_from"], name="variant_price_history_idx"),
        ]

    def __str__(self):
        state = "current" if self.valid_until is None else f"until {self.valid_until:%Y-%m-%d}"
        return f"{self.variant} {self.pris} SEK ({state})"

    @property
    def is_current(self) -> bool:
        return self.valid_until is None


class ScrapeSession(models.Model):
    """
    One pipeline run: seed URL through reconciliation.

    Created when a run starts; counts and errors filled in per stage.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    seed_url = models.URLField(max_length=2000)
    category = models.CharField(max_length=30, blank=True)
    content_type = models.CharField(max_length=30, blank=True)

    status = models.CharField(
        max_length=20, choices=ScrapeSessionStatus.choices, default=ScrapeSessionStatus.PENDING
    )

    # Timing
    created_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    # Crawl output
    page_info = models.JSONField(default=dict, blank=True)
    pdf_summary = models.JSONField(default=dict, blank=True)

    # Metrics
    pages_fetched = models.IntegerField(default=0)
    pages_failed = models.IntegerField(default=0)
    pdfs_found = models.IntegerField(default=0)
    pdfs_processed = models.IntegerField(default=0)
    entities_extracted = models.IntegerField(default=0)
    entities_flagged = models.IntegerField(default=0)
    created_count = models.IntegerField(default=0)
    updated_count = models.IntegerField(default=0)
    price_changes = models.IntegerField(default=0)
    unchanged_count = models.IntegerField(default=0)

    # Campaigns and other non-catalog output
    output = models.JSONField(default=dict, blank=True)
    errors = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "catalog_scrape_sessions"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="scrape_session_status_idx"),
        ]

    def __str__(self):
        return f"Session {self.id} - {self.seed_url[:80]} ({self.status})"

    @property
    def duration_seconds(self):
        """Calculate session duration."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def start(self):
        """Mark session as running."""
        self.status = ScrapeSessionStatus.RUNNING
        self.started_at = timezone.now()
        self.save(update_fields=["status", "started_at"])


class StageResult(models.Model):
    """Counts and error of one pipeline stage in a scrape session."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session = models.ForeignKey(ScrapeSession, on_delete=models.CASCADE, related_name="stages")
    stage = models.CharField(max_length=20, choices=PipelineStage.choices)
    success = models.BooleanField(default=True)
    counts = models.JSONField(default=dict, blank=True)
    error = models.TextField(blank=True)
    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "catalog_stage_results"
        ordering = ["recorded_at"]

    def __str__(self):
        return f"{self.stage} ({'ok' if self.success else 'failed'})"
