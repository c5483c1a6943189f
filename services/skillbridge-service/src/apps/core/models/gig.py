# services/skillbridge-service/src/apps/core/models/gig.py
"""
Marketplace Models

Gigs posted by clients, the skills they require and the applications
workers submit against them.
"""

import math
import uuid
from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone

from shared.common.constants import GigStatus, ApplicationStatus, GigPriority, PRIORITY_RANKS
from shared.common.utils import bounding_box, haversine_distance_km


class GigQuerySet(models.QuerySet):
    """Query helpers standing in for a geospatial index."""

    def open(self, now=None):
        """Gigs currently accepting applications."""
        now = now or timezone.now()
        return self.filter(status=Gig.Status.POSTED, expires_at__gt=now)

    def within_box(self, longitude: float, latitude: float, radius_km: float):
        """Coarse bounding-box prefilter around a point."""
        min_lon, min_lat, max_lon, max_lat = bounding_box(longitude, latitude, radius_km)
        return self.filter(
            latitude__gte=min_lat,
            latitude__lte=max_lat,
            longitude__gte=min_lon,
            longitude__lte=max_lon,
        )

    def nearest(self, longitude: float, latitude: float, max_distance_km: float):
        """
        Gigs within max_distance_km of a point, nearest first.

        Returns:
            List of (gig, distance_km) pairs with exact haversine distances.
        """
        candidates = []
        for gig in self.within_box(longitude, latitude, max_distance_km):
            distance = gig.distance_to(longitude, latitude)
            if distance <= max_distance_km:
                candidates.append((gig, distance))
        candidates.sort(key=lambda pair: pair[1])
        return candidates


class Gig(models.Model):
    """
    A posted short-term job.

    Status machine: draft -> posted -> in-progress -> completed,
    posted -> cancelled, and any non-terminal state -> disputed.
    """

    class Status(models.TextChoices):
        DRAFT = GigStatus.DRAFT.value, 'Draft'
        POSTED = GigStatus.POSTED.value, 'Posted'
        IN_PROGRESS = GigStatus.IN_PROGRESS.value, 'In Progress'
        COMPLETED = GigStatus.COMPLETED.value, 'Completed'
        CANCELLED = GigStatus.CANCELLED.value, 'Cancelled'
        DISPUTED = GigStatus.DISPUTED.value, 'Disputed'

    class Priority(models.TextChoices):
        LOW = GigPriority.LOW.value, 'Low'
        MEDIUM = GigPriority.MEDIUM.value, 'Medium'
        HIGH = GigPriority.HIGH.value, 'High'
        URGENT = GigPriority.URGENT.value, 'Urgent'

    class ExperienceLevel(models.TextChoices):
        ENTRY = 'entry', 'Entry Level'
        INTERMEDIATE = 'intermediate', 'Intermediate'
        EXPERT = 'expert', 'Expert'

    class BudgetType(models.TextChoices):
        FIXED = 'fixed', 'Fixed'
        HOURLY = 'hourly', 'Hourly'
        NEGOTIABLE = 'negotiable', 'Negotiable'

    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED, Status.DISPUTED)

    ALLOWED_TRANSITIONS = {
        Status.DRAFT.value: (Status.POSTED, Status.DISPUTED),
        Status.POSTED.value: (Status.IN_PROGRESS, Status.CANCELLED, Status.DISPUTED),
        Status.IN_PROGRESS.value: (Status.COMPLETED, Status.DISPUTED),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    client_id = models.UUIDField(db_index=True)

    title = models.CharField(max_length=200)
    description = models.TextField()
    category = models.CharField(max_length=50, db_index=True)
    tags = models.JSONField(default=list, blank=True)

    priority = models.CharField(
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM
    )
    experience_level = models.CharField(
        max_length=20,
        choices=ExperienceLevel.choices,
        default=ExperienceLevel.ENTRY
    )
    is_remote = models.BooleanField(default=False)
    featured = models.BooleanField(default=False)

    # Location
    longitude = models.FloatField(
        validators=[MinValueValidator(-180), MaxValueValidator(180)]
    )
    latitude = models.FloatField(
        validators=[MinValueValidator(-90), MaxValueValidator(90)]
    )
    address = models.CharField(max_length=255, blank=True, default='')
    city = models.CharField(max_length=100, blank=True, default='')

    # Budget
    budget_min = models.DecimalField(max_digits=12, decimal_places=2)
    budget_max = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default='KES')
    budget_type = models.CharField(
        max_length=20,
        choices=BudgetType.choices,
        default=BudgetType.FIXED
    )

    deadline = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField()

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True
    )

    # Applications
    max_applications = models.PositiveIntegerField(default=10)
    applications_count = models.PositiveIntegerField(default=0)

    # Assignment
    assigned_to = models.UUIDField(null=True, blank=True, db_index=True)
    assigned_at = models.DateTimeField(null=True, blank=True)

    # Resolution
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default='')
    disputed_at = models.DateTimeField(null=True, blank=True)
    dispute_reason = models.TextField(blank=True, default='')

    # Ratings
    client_rating = models.PositiveSmallIntegerField(null=True, blank=True)
    client_feedback = models.TextField(blank=True, default='')
    worker_rating = models.PositiveSmallIntegerField(null=True, blank=True)
    worker_feedback = models.TextField(blank=True, default='')

    views = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)

    posted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = GigQuerySet.as_manager()

    class Meta:
        db_table = 'gigs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'expires_at']),
            models.Index(fields=['category', 'status']),
            models.Index(fields=['latitude', 'longitude']),
            models.Index(fields=['client_id', 'status']),
        ]

    def __str__(self):
        return f"{self.title} ({self.status})"

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.ALLOWED_TRANSITIONS.get(str(self.status), ())

    def distance_to(self, longitude: float, latitude: float) -> float:
        """Great-circle distance in km from this gig to a point."""
        return haversine_distance_km(self.longitude, self.latitude, longitude, latitude)

    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANKS.get(str(self.priority), 0)

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= timezone.now()

    @property
    def application_count(self) -> int:
        """Applications that have not been withdrawn"""
        return self.applications.exclude(status=GigApplication.Status.WITHDRAWN).count()

    @property
    def budget_display(self) -> str:
        if self.budget_type == self.BudgetType.NEGOTIABLE:
            return 'Negotiable'
        minimum = _format_amount(self.budget_min)
        suffix = '/hr' if self.budget_type == self.BudgetType.HOURLY else ''
        if self.budget_max is None or self.budget_max == self.budget_min:
            return f"{self.currency} {minimum}{suffix}"
        return f"{self.currency} {minimum} - {_format_amount(self.budget_max)}{suffix}"

    @property
    def days_until_deadline(self):
        if not self.deadline:
            return None
        remaining = self.deadline - timezone.now()
        return math.ceil(remaining.total_seconds() / 86400)



def _format_amount(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value:.2f}"


class GigSkill(models.Model):
    """A skill a gig asks for."""

    class Level(models.TextChoices):
        BEGINNER = 'beginner', 'Beginner'
        INTERMEDIATE = 'intermediate', 'Intermediate'
        ADVANCED = 'advanced', 'Advanced'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gig = models.ForeignKey(
        Gig,
        on_delete=models.CASCADE,
        related_name='skills'
    )

    name = models.CharField(max_length=100, db_index=True)
    level = models.CharField(
        max_length=20,
        choices=Level.choices,
        default=Level.BEGINNER
    )
    required = models.BooleanField(default=True)

    class Meta:
        db_table = 'gig_skills'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.level})"


class GigApplication(models.Model):
    """
    A worker's request to be assigned a gig.

    pending -> accepted | rejected | withdrawn; all outcomes are terminal.
    """

    class Status(models.TextChoices):
        PENDING = ApplicationStatus.PENDING.value, 'Pending'
        ACCEPTED = ApplicationStatus.ACCEPTED.value, 'Accepted'
        REJECTED = ApplicationStatus.REJECTED.value, 'Rejected'
        WITHDRAWN = ApplicationStatus.WITHDRAWN.value, 'Withdrawn'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gig = models.ForeignKey(
        Gig,
        on_delete=models.CASCADE,
        related_name='applications'
    )
    applicant_id = models.UUIDField(db_index=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING
    )
    message = models.CharField(max_length=500, blank=True, default='')
    proposed_rate = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    estimated_duration = models.PositiveIntegerField(null=True, blank=True, help_text="Hours")
    portfolio = models.JSONField(default=list, blank=True)

    applied_at = models.DateTimeField(default=timezone.now)
    response_at = models.DateTimeField(null=True, blank=True)
    response_message = models.CharField(max_length=500, blank=True, default='')

    class Meta:
        db_table = 'gig_applications'
        ordering = ['applied_at']
        constraints = [
            models.UniqueConstraint(
                fields=['gig', 'applicant_id'],
                name='unique_gig_application'
            ),
        ]
        indexes = [
            models.Index(fields=['gig', 'status']),
        ]

    def __str__(self):
        return f"{self.applicant_id} -> {self.gig.title} ({self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING
