# services/skillbridge-service/src/apps/core/models/course.py
"""
Course Catalog Models

Courses, their ordered modules and the optional quiz attached to a course.
"""

import uuid
from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator

from shared.common.constants import QuestionType
from shared.common.utils import round_half_up


class Course(models.Model):
    """A course made of ordered modules and an optional quiz."""

    class Level(models.TextChoices):
        BEGINNER = 'beginner', 'Beginner'
        INTERMEDIATE = 'intermediate', 'Intermediate'
        ADVANCED = 'advanced', 'Advanced'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    instructor_id = models.UUIDField(null=True, blank=True, db_index=True)

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    category = models.CharField(max_length=50, blank=True, default='')
    skill_tag = models.CharField(max_length=100, blank=True, default='')
    level = models.CharField(
        max_length=20,
        choices=Level.choices,
        default=Level.BEGINNER
    )

    is_published = models.BooleanField(default=True)

    # Rewards
    xp_reward = models.PositiveIntegerField(default=500)
    badge_granted = models.ForeignKey(
        'core.Badge',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='granting_courses'
    )

    # Counters
    enrollment_count = models.PositiveIntegerField(default=0)
    completion_count = models.PositiveIntegerField(default=0)
    rating_average = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00')
    )
    rating_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'courses'
        ordering = ['title']
        indexes = [
            models.Index(fields=['skill_tag', 'level']),
            models.Index(fields=['category', 'is_published']),
        ]

    def __str__(self):
        return self.title

    @property
    def has_quiz(self) -> bool:
        return hasattr(self, 'quiz')

    @property
    def completion_rate(self) -> int:
        if self.enrollment_count == 0:
            return 0
        return round_half_up(self.completion_count / self.enrollment_count * 100)

    @property
    def total_duration(self) -> int:
        """Total module duration in minutes"""
        return sum(module.duration for module in self.modules.all())

    @property
    def total_xp_reward(self) -> int:
        """XP available from modules plus the completion reward"""
        return sum(module.xp_reward for module in self.modules.all()) + self.xp_reward


class CourseModule(models.Model):
    """One content unit within a course."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    course = models.ForeignKey(
        Course,
        on_delete=models.CASCADE,
        related_name='modules'
    )

    title = models.CharField(max_length=200)
    order = models.PositiveIntegerField()
    duration = models.PositiveIntegerField(default=0, help_text="Duration in minutes")
    xp_reward = models.PositiveIntegerField(default=50)
    is_optional = models.BooleanField(default=False)

    class Meta:
        db_table = 'course_modules'
        ordering = ['course', 'order']
        constraints = [
            models.UniqueConstraint(
                fields=['course', 'order'],
                name='unique_module_order'
            )
        ]

    def __str__(self):
        return f"{self.course.title} - {self.order}. {self.title}"


class Quiz(models.Model):
    """Graded assessment attached to a course."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    course = models.OneToOneField(
        Course,
        on_delete=models.CASCADE,
        related_name='quiz'
    )

    title = models.CharField(max_length=200, blank=True, default='')
    passing_score = models.PositiveIntegerField(
        default=70,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    attempts_allowed = models.PositiveIntegerField(default=3)
    xp_reward = models.PositiveIntegerField(default=100)
    time_limit = models.PositiveIntegerField(null=True, blank=True, help_text="Minutes")

    class Meta:
        db_table = 'quizzes'
        verbose_name_plural = 'quizzes'

    def __str__(self):
        return self.title or f"Quiz: {self.course.title}"

    @property
    def max_points(self) -> int:
        return sum(question.points for question in self.questions.all())


class QuizQuestion(models.Model):
    """
    A quiz question.

    Choice questions keep their options as [{"text": ..., "is_correct": bool}];
    free-text questions compare against correct_answer.
    """

    class Type(models.TextChoices):
        MULTIPLE_CHOICE = QuestionType.MULTIPLE_CHOICE.value, 'Multiple Choice'
        TRUE_FALSE = QuestionType.TRUE_FALSE.value, 'True/False'
        FILL_BLANK = QuestionType.FILL_BLANK.value, 'Fill in the Blank'
        SHORT_ANSWER = QuestionType.SHORT_ANSWER.value, 'Short Answer'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    quiz = models.ForeignKey(
        Quiz,
        on_delete=models.CASCADE,
        related_name='questions'
    )

    order = models.PositiveIntegerField(default=0)
    question_type = models.CharField(max_length=20, choices=Type.choices)
    text = models.TextField()
    options = models.JSONField(default=list, blank=True)
    correct_answer = models.CharField(max_length=500, blank=True, default='')
    points = models.PositiveIntegerField(default=10)
    explanation = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'quiz_questions'
        ordering = ['quiz', 'order']

    def __str__(self):
        return self.text[:50]

    @property
    def is_choice(self) -> bool:
        return self.question_type in (self.Type.MULTIPLE_CHOICE, self.Type.TRUE_FALSE)
