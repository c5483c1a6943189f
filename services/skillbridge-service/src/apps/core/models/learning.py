# services/skillbridge-service/src/apps/core/models/learning.py
"""
Learning Progress Models

Per-user, per-course progress: module progress, quiz attempts, learning
sessions and course reviews.
"""

import math
import uuid
from datetime import timedelta

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone

from shared.common.constants import ProgressStatus


class CourseProgress(models.Model):
    """
    Progress of one user through one course.

    Created at enrollment; terminal at completed or abandoned.
    progress_percentage == 100 exactly when status == completed.
    """

    class Status(models.TextChoices):
        NOT_STARTED = ProgressStatus.NOT_STARTED.value, 'Not Started'
        IN_PROGRESS = ProgressStatus.IN_PROGRESS.value, 'In Progress'
        COMPLETED = ProgressStatus.COMPLETED.value, 'Completed'
        ABANDONED = ProgressStatus.ABANDONED.value, 'Abandoned'

    TERMINAL_STATUSES = (Status.COMPLETED, Status.ABANDONED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.UUIDField(db_index=True)
    course = models.ForeignKey(
        'core.Course',
        on_delete=models.CASCADE,
        related_name='progress_records'
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.NOT_STARTED
    )
    progress_percentage = models.PositiveIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )

    # Quiz
    best_quiz_score = models.PositiveIntegerField(default=0)
    quiz_passed = models.BooleanField(default=False)

    # Time tracking
    total_time_spent = models.PositiveIntegerField(default=0, help_text="Minutes")
    sessions_count = models.PositiveIntegerField(default=0)
    average_session_time = models.PositiveIntegerField(default=0, help_text="Minutes")

    xp_earned = models.PositiveIntegerField(default=0)

    # Timestamps
    enrolled_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    abandoned_at = models.DateTimeField(null=True, blank=True)
    last_accessed_at = models.DateTimeField(null=True, blank=True)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'course_progress'
        ordering = ['-enrolled_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user_id', 'course'],
                name='unique_course_progress'
            )
        ]
        indexes = [
            models.Index(fields=['user_id', 'status']),
            models.Index(fields=['course', 'status']),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.course.title} ({self.progress_percentage}%)"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def completed_modules_count(self) -> int:
        return self.module_progress.filter(status=ModuleProgress.Status.COMPLETED).count()

    @property
    def quiz_attempts_count(self) -> int:
        return self.quiz_attempts.count()

    @property
    def days_since_enrollment(self) -> int:
        elapsed = timezone.now() - self.enrolled_at
        return math.ceil(abs(elapsed.total_seconds()) / 86400)

    @property
    def completion_speed(self) -> float:
        """Completed modules per day since enrollment"""
        days = self.days_since_enrollment
        if days == 0:
            return 0.0
        return round(self.completed_modules_count / days, 2)

    @property
    def estimated_completion_date(self):
        """Projected completion date at the current pace, if any progress"""
        if self.status == self.Status.COMPLETED:
            return self.completed_at.date() if self.completed_at else None
        speed = self.completion_speed
        if self.progress_percentage == 0 or speed == 0:
            return None
        total_modules = self.course.modules.count()
        remaining_modules = total_modules - self.completed_modules_count
        days_to_complete = math.ceil(max(remaining_modules, 0) / speed)
        return (timezone.now() + timedelta(days=days_to_complete)).date()


class ModuleProgress(models.Model):
    """Progress on one module; at most one row per (progress, module)."""

    class Status(models.TextChoices):
        NOT_STARTED = ProgressStatus.NOT_STARTED.value, 'Not Started'
        IN_PROGRESS = ProgressStatus.IN_PROGRESS.value, 'In Progress'
        COMPLETED = ProgressStatus.COMPLETED.value, 'Completed'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    progress = models.ForeignKey(
        CourseProgress,
        on_delete=models.CASCADE,
        related_name='module_progress'
    )
    module = models.ForeignKey(
        'core.CourseModule',
        on_delete=models.CASCADE,
        related_name='progress_records'
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.NOT_STARTED
    )
    time_spent = models.PositiveIntegerField(default=0, help_text="Minutes")
    notes = models.TextField(blank=True, default='')
    bookmarked = models.BooleanField(default=False)

    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'module_progress'
        ordering = ['module__order']
        constraints = [
            models.UniqueConstraint(
                fields=['progress', 'module'],
                name='unique_module_progress'
            )
        ]

    def __str__(self):
        return f"{self.module.title}: {self.status}"


class QuizAttempt(models.Model):
    """One graded submission of a course quiz."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    progress = models.ForeignKey(
        CourseProgress,
        on_delete=models.CASCADE,
        related_name='quiz_attempts'
    )

    attempt_number = models.PositiveIntegerField()
    answers = models.JSONField(default=list)
    results = models.JSONField(default=list, help_text="Per-question correctness")

    score = models.PositiveIntegerField(default=0)
    earned_points = models.PositiveIntegerField(default=0)
    max_points = models.PositiveIntegerField(default=0)
    passed = models.BooleanField(default=False)
    time_spent = models.PositiveIntegerField(default=0, help_text="Seconds")
    xp_awarded = models.PositiveIntegerField(default=0)

    attempted_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'quiz_attempts'
        ordering = ['progress', 'attempt_number']
        constraints = [
            models.UniqueConstraint(
                fields=['progress', 'attempt_number'],
                name='unique_quiz_attempt_number'
            )
        ]

    def __str__(self):
        return f"Attempt {self.attempt_number}: {self.score}%"


class CourseReview(models.Model):
    """A learner's rating of a course, one per enrollment."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    progress = models.OneToOneField(
        CourseProgress,
        on_delete=models.CASCADE,
        related_name='review'
    )

    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    comment = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'course_reviews'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.rating}/5"
