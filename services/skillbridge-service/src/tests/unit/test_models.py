# services/skillbridge-service/src/tests/unit/test_models.py
"""
Unit Tests for SkillBridge Models

Tests for derived, read-time model values.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.core.models import (
    Badge,
    Course,
    CourseProgress,
    Gig,
    GigApplication,
    UserProgress,
    level_for_xp,
)


class TestLevelForXP:
    """Tests for the level formula."""

    @pytest.mark.parametrize('xp,level', [
        (0, 1),
        (999, 1),
        (1000, 2),
        (1999, 2),
        (2500, 3),
        (10000, 11),
    ])
    def test_level_boundaries(self, xp, level):
        assert level_for_xp(xp) == level

    def test_level_is_monotonic(self):
        levels = [level_for_xp(xp) for xp in range(0, 5000, 37)]
        assert levels == sorted(levels)


@pytest.mark.django_db
class TestUserProgress:
    """Tests for UserProgress derived values."""

    def test_derived_level_values(self, user_id):
        progress = UserProgress.objects.create(user_id=user_id, xp=2500)

        assert progress.level == 3
        assert progress.next_level_xp == 3000
        assert progress.xp_into_level == 500
        assert progress.xp_progress == 50.0

    def test_level_follows_xp_without_save(self, user_id):
        progress = UserProgress.objects.create(user_id=user_id, xp=900)
        progress.xp = 1000

        assert progress.level == 2


@pytest.mark.django_db
class TestBadge:
    """Tests for Badge model."""

    def test_rarity_score(self, create_badge):
        assert create_badge(rarity=Badge.Rarity.COMMON).rarity_score == 1
        assert create_badge(rarity=Badge.Rarity.RARE).rarity_score == 3
        assert create_badge(rarity=Badge.Rarity.LEGENDARY).rarity_score == 5

    def test_availability_window(self, create_badge):
        now = timezone.now()
        badge = create_badge(
            available_from=now - timedelta(days=1),
            available_until=now + timedelta(days=1),
        )

        assert badge.is_available(now)
        assert not badge.is_available(now - timedelta(days=2))
        assert not badge.is_available(now + timedelta(days=2))

    def test_open_ended_badge_is_available(self, create_badge):
        assert create_badge().is_available()


@pytest.mark.django_db
class TestCourse:
    """Tests for Course derived values."""

    def test_total_xp_reward(self, create_course):
        course = create_course(modules=4, xp_reward=500)

        assert course.total_xp_reward == 4 * 50 + 500
        assert course.total_duration == 120

    def test_completion_rate(self, create_course):
        course = create_course(enrollment_count=3, completion_count=2)

        assert course.completion_rate == 67

    def test_completion_rate_without_enrollments(self, create_course):
        assert create_course().completion_rate == 0

    def test_has_quiz(self, create_course, create_quiz):
        course = create_course()
        assert not course.has_quiz

        create_quiz(course)
        assert Course.objects.get(pk=course.pk).has_quiz


@pytest.mark.django_db
class TestCourseProgress:
    """Tests for CourseProgress derived values."""

    def test_days_since_enrollment(self, create_course, user_id):
        progress = CourseProgress.objects.create(
            user_id=user_id,
            course=create_course(),
            enrolled_at=timezone.now() - timedelta(days=3, hours=1),
        )

        assert progress.days_since_enrollment == 4

    def test_estimated_completion_without_progress(self, create_course, user_id):
        progress = CourseProgress.objects.create(user_id=user_id, course=create_course())

        assert progress.estimated_completion_date is None
        assert progress.completion_speed == 0.0


@pytest.mark.django_db
class TestGig:
    """Tests for Gig model."""

    def test_budget_display_range(self, create_gig):
        gig = create_gig(budget_min=Decimal('1000'), budget_max=Decimal('5000'))

        assert gig.budget_display == 'KES 1000 - 5000'

    def test_budget_display_hourly(self, create_gig):
        gig = create_gig(
            budget_min=Decimal('1000'),
            budget_max=None,
            budget_type=Gig.BudgetType.HOURLY,
        )

        assert gig.budget_display == 'KES 1000/hr'

    def test_budget_display_negotiable(self, create_gig):
        gig = create_gig(budget_type=Gig.BudgetType.NEGOTIABLE)

        assert gig.budget_display == 'Negotiable'

    def test_days_until_deadline(self, create_gig):
        gig = create_gig(deadline=timezone.now() + timedelta(days=2, hours=3))

        assert gig.days_until_deadline == 3
        assert create_gig(deadline=None).days_until_deadline is None

    def test_is_expired(self, create_gig):
        assert not create_gig().is_expired
        assert create_gig(expires_at=timezone.now() - timedelta(minutes=1)).is_expired

    def test_transitions(self, create_gig):
        gig = create_gig(status=Gig.Status.DRAFT)

        assert gig.can_transition_to(Gig.Status.POSTED)
        assert not gig.can_transition_to(Gig.Status.COMPLETED)

        gig.status = Gig.Status.POSTED
        assert gig.can_transition_to(Gig.Status.CANCELLED)
        assert gig.can_transition_to(Gig.Status.IN_PROGRESS)

        gig.status = Gig.Status.COMPLETED
        assert not gig.can_transition_to(Gig.Status.DISPUTED)

    def test_priority_rank(self, create_gig):
        assert create_gig(priority=Gig.Priority.URGENT).priority_rank > \
            create_gig(priority=Gig.Priority.LOW).priority_rank

    def test_application_count_excludes_withdrawn(self, create_gig):
        gig = create_gig()
        GigApplication.objects.create(gig=gig, applicant_id=uuid.uuid4())
        GigApplication.objects.create(
            gig=gig,
            applicant_id=uuid.uuid4(),
            status=GigApplication.Status.WITHDRAWN,
        )

        assert gig.application_count == 1
