# services/skillbridge-service/src/apps/core/models/badge.py
"""
Badge Models

Badge definitions are created by administrators and are read-only to the
engine; only UserBadge rows and the earned counter mutate at runtime.
"""

import uuid

from django.db import models
from django.utils import timezone

from shared.common.constants import RARITY_SCORES, BadgeRarity, CriterionType


class Badge(models.Model):
    """
    Awardable achievement.

    Criteria are evaluated in position order with AND semantics. A badge
    becomes reachable only after all of its prerequisite badges are earned.
    """

    class Rarity(models.TextChoices):
        COMMON = BadgeRarity.COMMON.value, 'Common'
        UNCOMMON = BadgeRarity.UNCOMMON.value, 'Uncommon'
        RARE = BadgeRarity.RARE.value, 'Rare'
        EPIC = BadgeRarity.EPIC.value, 'Epic'
        LEGENDARY = BadgeRarity.LEGENDARY.value, 'Legendary'

    class AwardType(models.TextChoices):
        AUTOMATIC = 'automatic', 'Automatic'
        MANUAL = 'manual', 'Manual'

    class Category(models.TextChoices):
        LEARNING = 'learning', 'Learning'
        SKILL = 'skill', 'Skill'
        MARKETPLACE = 'marketplace', 'Marketplace'
        ENGAGEMENT = 'engagement', 'Engagement'
        SPECIAL = 'special', 'Special'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True, default='')
    icon = models.CharField(max_length=50, blank=True, default='')
    category = models.CharField(
        max_length=20,
        choices=Category.choices,
        default=Category.LEARNING
    )
    rarity = models.CharField(
        max_length=20,
        choices=Rarity.choices,
        default=Rarity.COMMON
    )
    award_type = models.CharField(
        max_length=20,
        choices=AwardType.choices,
        default=AwardType.AUTOMATIC
    )

    xp_reward = models.PositiveIntegerField(default=0)

    prerequisites = models.ManyToManyField(
        'self',
        symmetrical=False,
        blank=True,
        related_name='unlocks'
    )

    # A course-scoped badge may be earned once per course
    is_course_scoped = models.BooleanField(default=False)

    # Availability
    is_active = models.BooleanField(default=True)
    is_visible = models.BooleanField(default=True)
    available_from = models.DateTimeField(null=True, blank=True)
    available_until = models.DateTimeField(null=True, blank=True)

    # Eventually consistent; repaired by reconcile_badge_counts
    earned_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'badges'
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active', 'is_visible']),
            models.Index(fields=['category', 'rarity']),
        ]

    def __str__(self):
        return self.name

    @property
    def rarity_score(self) -> int:
        return RARITY_SCORES.get(str(self.rarity), 1)

    def is_available(self, at=None) -> bool:
        """Whether now (or `at`) falls inside the availability window."""
        at = at or timezone.now()
        if self.available_from and at < self.available_from:
            return False
        if self.available_until and at > self.available_until:
            return False
        return True


class BadgeCriterion(models.Model):
    """
    One rule of a badge, stored as a type tag plus a JSON value.

    The value shape depends on the type; apps.core.services.criteria parses
    rows into typed criterion objects.
    """

    class CriterionKind(models.TextChoices):
        COURSE_COMPLETION = CriterionType.COURSE_COMPLETION.value, 'Course Completion'
        SKILL_LEVEL = CriterionType.SKILL_LEVEL.value, 'Skill Level'
        GIG_COMPLETION = CriterionType.GIG_COMPLETION.value, 'Gig Completion'
        RATING_THRESHOLD = CriterionType.RATING_THRESHOLD.value, 'Rating Threshold'
        XP_THRESHOLD = CriterionType.XP_THRESHOLD.value, 'XP Threshold'
        STREAK = CriterionType.STREAK.value, 'Streak'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    badge = models.ForeignKey(
        Badge,
        on_delete=models.CASCADE,
        related_name='criteria'
    )

    position = models.PositiveIntegerField(default=0)
    criterion_type = models.CharField(max_length=30, choices=CriterionKind.choices)
    value = models.JSONField()
    description = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        db_table = 'badge_criteria'
        ordering = ['badge', 'position']
        constraints = [
            models.UniqueConstraint(
                fields=['badge', 'position'],
                name='unique_badge_criterion_position'
            )
        ]

    def __str__(self):
        return f"{self.badge.name}: {self.criterion_type}={self.value}"


class UserBadge(models.Model):
    """A badge earned by a user, optionally for a specific course."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    progress = models.ForeignKey(
        'core.UserProgress',
        on_delete=models.CASCADE,
        related_name='badges'
    )
    badge = models.ForeignKey(
        Badge,
        on_delete=models.PROTECT,
        related_name='awards'
    )
    course = models.ForeignKey(
        'core.Course',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='badge_awards'
    )

    earned_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'user_badges'
        ordering = ['-earned_at']
        constraints = [
            models.UniqueConstraint(
                fields=['progress', 'badge'],
                condition=models.Q(course__isnull=True),
                name='unique_user_badge'
            ),
            models.UniqueConstraint(
                fields=['progress', 'badge', 'course'],
                condition=models.Q(course__isnull=False),
                name='unique_user_badge_per_course'
            ),
        ]

    def __str__(self):
        return f"{self.progress.user_id} - {self.badge.name}"
