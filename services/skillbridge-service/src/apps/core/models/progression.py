# services/skillbridge-service/src/apps/core/models/progression.py
"""
Progression Models

Per-user progression state:
- Experience points and derived levels
- Daily activity streaks
- Skills with proficiency levels
- Marketplace reputation (completed gigs, rating)
- XP ledger
"""

import uuid
from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator

from shared.common.constants import XP_PER_LEVEL, SkillLevel, XPSource


def level_for_xp(xp: int) -> int:
    """Level reached with a given XP total."""
    return xp // XP_PER_LEVEL + 1


class UserProgress(models.Model):
    """
    Progression view of a user record.

    Level is always derived from xp; it is never stored. All writes go
    through ProgressionService under a row lock on this model.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(unique=True)

    xp = models.PositiveIntegerField(default=0)

    # Streak
    streak_current = models.PositiveIntegerField(default=0)
    streak_longest = models.PositiveIntegerField(default=0)
    last_activity_date = models.DateField(null=True, blank=True)

    # Marketplace reputation
    gigs_completed = models.PositiveIntegerField(default=0)
    rating_average = models.DecimalField(
        max_digits=4,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(0), MaxValueValidator(5)]
    )
    rating_count = models.PositiveIntegerField(default=0)

    # Optimistic version, bumped on every write
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_progress'
        ordering = ['-xp']
        indexes = [
            models.Index(fields=['-xp']),
        ]

    def __str__(self):
        return f"{self.user_id} - Level {self.level} ({self.xp} XP)"

    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    @property
    def next_level_xp(self) -> int:
        """XP total at which the next level starts"""
        return self.level * XP_PER_LEVEL

    @property
    def xp_into_level(self) -> int:
        return self.xp % XP_PER_LEVEL

    @property
    def xp_progress(self) -> float:
        """Percent of the way through the current level"""
        return round(self.xp_into_level / XP_PER_LEVEL * 100, 1)


class UserSkill(models.Model):
    """A named skill held by a user at a proficiency level."""

    class Level(models.TextChoices):
        BEGINNER = SkillLevel.BEGINNER.value, 'Beginner'
        INTERMEDIATE = SkillLevel.INTERMEDIATE.value, 'Intermediate'
        ADVANCED = SkillLevel.ADVANCED.value, 'Advanced'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    progress = models.ForeignKey(
        UserProgress,
        on_delete=models.CASCADE,
        related_name='skills'
    )

    name = models.CharField(max_length=100)
    level = models.CharField(
        max_length=20,
        choices=Level.choices,
        default=Level.BEGINNER
    )
    verified = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_skills'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['progress', 'name'],
                name='unique_user_skill'
            )
        ]

    def __str__(self):
        return f"{self.name} ({self.level})"

    @property
    def ordinal(self) -> int:
        return SkillLevel.ordinal(self.level)


class XPTransaction(models.Model):
    """
    Ledger of XP credits.

    reward_key identifies a logical reward (e.g. one quiz attempt); the
    unique constraint makes crediting the same reward twice impossible.
    """

    class Source(models.TextChoices):
        COURSE_ENROLLMENT = XPSource.COURSE_ENROLLMENT.value, 'Course Enrollment'
        MODULE_COMPLETION = XPSource.MODULE_COMPLETION.value, 'Module Completion'
        COURSE_COMPLETION = XPSource.COURSE_COMPLETION.value, 'Course Completion'
        QUIZ_ATTEMPT = XPSource.QUIZ_ATTEMPT.value, 'Quiz Attempt'
        BADGE_AWARD = XPSource.BADGE_AWARD.value, 'Badge Award'
        GIG_ACCEPTED = XPSource.GIG_ACCEPTED.value, 'Gig Accepted'
        GIG_COMPLETION = XPSource.GIG_COMPLETION.value, 'Gig Completion'
        BONUS = XPSource.BONUS.value, 'Bonus'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    progress = models.ForeignKey(
        UserProgress,
        on_delete=models.CASCADE,
        related_name='xp_transactions'
    )

    amount = models.PositiveIntegerField()
    source = models.CharField(max_length=30, choices=Source.choices)
    reason = models.CharField(max_length=255, blank=True, default='')
    reward_key = models.CharField(max_length=150, null=True, blank=True)

    balance_after = models.PositiveIntegerField()
    level_after = models.PositiveIntegerField()

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'xp_transactions'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['progress', 'reward_key'],
                condition=models.Q(reward_key__isnull=False),
                name='unique_xp_reward_key'
            )
        ]
        indexes = [
            models.Index(fields=['progress', '-created_at']),
        ]

    def __str__(self):
        return f"+{self.amount} XP ({self.source})"
