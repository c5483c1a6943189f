# services/skillbridge-service/src/tests/unit/test_course_progress_service.py
"""
Unit Tests for CourseProgressService

Tests for enrollment, module progress, quizzes and course completion.
"""

import uuid

import pytest

from apps.core.models import Course, CourseProgress, ModuleProgress, UserBadge, UserProgress
from apps.core.services import (
    ConflictError,
    CourseProgressService,
    NotFoundError,
    StateError,
    ValidationError,
)
from apps.core.services.course_progress_service import calculate_percentage


COMPLETED = {'status': 'completed'}


class TestCalculatePercentage:
    """Tests for the aggregate percentage formula."""

    @pytest.mark.parametrize('total,completed,has_quiz,passed,expected', [
        (4, 1, False, False, 25),
        (3, 1, False, False, 33),
        (3, 2, False, False, 67),
        (4, 4, True, False, 80),
        (4, 4, True, True, 100),
        (4, 2, True, True, 60),
        (0, 0, False, False, 0),
    ])
    def test_formula(self, total, completed, has_quiz, passed, expected):
        assert calculate_percentage(total, completed, has_quiz, passed) == expected


@pytest.mark.django_db
class TestEnrollment:
    """Tests for CourseProgressService.enroll."""

    def setup_method(self):
        """Set up test dependencies."""
        self.service = CourseProgressService()

    def test_enroll(self, create_course, user_id):
        course = create_course()

        progress = self.service.enroll(user_id, course.id)

        assert progress.status == CourseProgress.Status.NOT_STARTED
        assert progress.xp_earned == 25
        assert UserProgress.objects.get(user_id=user_id).xp == 25
        course.refresh_from_db()
        assert course.enrollment_count == 1

    def test_enroll_twice(self, create_course, user_id):
        course = create_course()
        self.service.enroll(user_id, course.id)

        with pytest.raises(ConflictError):
            self.service.enroll(user_id, course.id)

    def test_enroll_unpublished(self, create_course, user_id):
        course = create_course(is_published=False)

        with pytest.raises(StateError):
            self.service.enroll(user_id, course.id)

    def test_enroll_unknown_course(self, user_id):
        with pytest.raises(NotFoundError):
            self.service.enroll(user_id, uuid.uuid4())

    def test_enroll_xp_unlocks_badge(self, create_course, create_badge, user_id):
        badge = create_badge(name='First Enrollment', criteria=[('xp_threshold', 25)])

        self.service.enroll(user_id, create_course().id)

        assert UserBadge.objects.filter(badge=badge, progress__user_id=user_id).exists()


@pytest.mark.django_db
class TestModuleProgress:
    """Tests for CourseProgressService.update_module_progress."""

    def setup_method(self):
        """Set up test dependencies."""
        self.service = CourseProgressService()

    def modules(self, course):
        return list(course.modules.order_by('order'))

    def test_four_module_sequence(self, create_course, user_id):
        course = create_course(modules=4)
        progress = self.service.enroll(user_id, course.id)

        percentages, statuses, completed_at = [], [], []
        for module in self.modules(course):
            result = self.service.update_module_progress(progress, module.id, COMPLETED)
            percentages.append(result['progress'].progress_percentage)
            statuses.append(result['progress'].status)
            completed_at.append(result['progress'].completed_at)

        assert percentages == [25, 50, 75, 100]
        assert statuses == ['in-progress', 'in-progress', 'in-progress', 'completed']
        assert completed_at[:3] == [None, None, None]
        assert completed_at[3] is not None

    def test_completion_rewards_fire_once(self, create_course, user_id):
        course = create_course(modules=2, xp_reward=500)
        progress = self.service.enroll(user_id, course.id)
        first, second = self.modules(course)

        self.service.update_module_progress(progress, first.id, COMPLETED)
        result = self.service.update_module_progress(progress, second.id, COMPLETED)
        assert result['course_completed'] is True

        # Further updates on the completed course do not re-fire completion
        again = self.service.update_module_progress(progress, second.id, {'time_spent': 10, 'status': 'completed'})
        assert again['course_completed'] is False

        stored = CourseProgress.objects.get(pk=progress.pk)
        assert stored.completed_at == result['progress'].completed_at
        assert UserProgress.objects.get(user_id=user_id).xp == 25 + 2 * 50 + 500
        course.refresh_from_db()
        assert course.completion_count == 1

    def test_module_started_at_and_time(self, create_course, user_id):
        course = create_course(modules=2)
        progress = self.service.enroll(user_id, course.id)
        module = self.modules(course)[0]

        result = self.service.update_module_progress(
            progress, module.id, {'status': 'in-progress', 'time_spent': 15}
        )
        self.service.update_module_progress(progress, module.id, {'time_spent': 5})

        module_progress = ModuleProgress.objects.get(pk=result['module_progress'].pk)
        assert module_progress.started_at is not None
        assert module_progress.completed_at is None
        assert module_progress.time_spent == 20
        assert ModuleProgress.objects.filter(progress=progress, module=module).count() == 1
        assert result['progress'].status == CourseProgress.Status.NOT_STARTED

    def test_completed_module_cannot_reopen(self, create_course, user_id):
        course = create_course(modules=2)
        progress = self.service.enroll(user_id, course.id)
        module = self.modules(course)[0]
        self.service.update_module_progress(progress, module.id, COMPLETED)

        with pytest.raises(StateError):
            self.service.update_module_progress(progress, module.id, {'status': 'in-progress'})

    def test_module_xp_credited_once(self, create_course, user_id):
        course = create_course(modules=2)
        progress = self.service.enroll(user_id, course.id)
        module = self.modules(course)[0]

        self.service.update_module_progress(progress, module.id, COMPLETED)
        self.service.update_module_progress(progress, module.id, COMPLETED)

        assert UserProgress.objects.get(user_id=user_id).xp == 25 + 50

    def test_unknown_module(self, create_course, user_id):
        progress = self.service.enroll(user_id, create_course().id)
        other_module = create_course().modules.first()

        with pytest.raises(NotFoundError):
            self.service.update_module_progress(progress, other_module.id, COMPLETED)

    def test_invalid_update(self, create_course, user_id):
        course = create_course()
        progress = self.service.enroll(user_id, course.id)
        module = course.modules.first()

        with pytest.raises(ValidationError):
            self.service.update_module_progress(progress, module.id, {'status': 'finished'})
        with pytest.raises(ValidationError):
            self.service.update_module_progress(progress, module.id, {'grade': 'A'})

    def test_abandoned_progress_rejects_updates(self, create_course, user_id):
        course = create_course()
        progress = self.service.enroll(user_id, course.id)
        self.service.abandon(progress)

        with pytest.raises(StateError):
            self.service.update_module_progress(progress, course.modules.first().id, COMPLETED)
        with pytest.raises(StateError):
            self.service.abandon(progress)

    def test_course_badge_awarded_on_completion(self, create_course, create_badge, user_id):
        badge = create_badge(name='Course Finisher', is_course_scoped=True)
        course = create_course(modules=1, badge_granted=badge)
        progress = self.service.enroll(user_id, course.id)

        self.service.update_module_progress(progress, course.modules.first().id, COMPLETED)

        award = UserBadge.objects.get(badge=badge)
        assert award.course_id == course.id

    def test_completion_event_published_once(
        self, create_course, user_id, django_capture_on_commit_callbacks
    ):
        from apps.core.events.publishers import EventPublisher
        from shared.common.events import EventTypes

        course = create_course(modules=1)
        progress = self.service.enroll(user_id, course.id)
        module = course.modules.first()

        with django_capture_on_commit_callbacks(execute=True):
            self.service.update_module_progress(progress, module.id, COMPLETED)
            self.service.update_module_progress(progress, module.id, {'notes': 'done'})

        events = EventPublisher.get_memory_events(EventTypes.COURSE_COMPLETED)
        assert len(events) == 1
        assert events[0]['data']['course_id'] == str(course.id)


@pytest.mark.django_db
class TestQuizAttempts:
    """Tests for CourseProgressService.record_quiz_attempt."""

    def setup_method(self):
        """Set up test dependencies."""
        self.service = CourseProgressService()

    def complete_modules(self, progress, course):
        for module in course.modules.order_by('order'):
            self.service.update_module_progress(progress, module.id, COMPLETED)

    def test_quiz_caps_progress_until_passed(self, create_course, create_quiz, quiz_answers, user_id):
        course = create_course(modules=4)
        create_quiz(course)
        progress = self.service.enroll(user_id, course.id)

        self.complete_modules(progress, course)
        progress.refresh_from_db()
        assert progress.progress_percentage == 80
        assert progress.status == CourseProgress.Status.IN_PROGRESS
        assert progress.completed_at is None

        failed = self.service.record_quiz_attempt(progress, quiz_answers['all_wrong'])
        assert failed['progress_percentage'] == 80
        assert failed['course_completed'] is False

        passed = self.service.record_quiz_attempt(progress, quiz_answers['three_correct'])
        assert passed['score'] == 83
        assert passed['progress_percentage'] == 100
        assert passed['course_completed'] is True

        progress.refresh_from_db()
        assert progress.status == CourseProgress.Status.COMPLETED
        assert progress.best_quiz_score == 83
        assert progress.quiz_passed is True

    def test_quiz_xp_per_attempt(self, create_course, create_quiz, quiz_answers, user_id):
        course = create_course(modules=2)
        create_quiz(course, xp_reward=100)
        progress = self.service.enroll(user_id, course.id)

        failed = self.service.record_quiz_attempt(progress, quiz_answers['all_wrong'])
        again = self.service.record_quiz_attempt(progress, quiz_answers['all_wrong'])

        assert failed['xp_awarded'] == 30
        assert again['xp_awarded'] == 30
        assert UserProgress.objects.get(user_id=user_id).xp == 25 + 30 + 30

    def test_quiz_passed_stays_true(self, create_course, create_quiz, quiz_answers, user_id):
        course = create_course(modules=2)
        create_quiz(course)
        progress = self.service.enroll(user_id, course.id)

        self.service.record_quiz_attempt(progress, quiz_answers['all_correct'])
        self.service.record_quiz_attempt(progress, quiz_answers['all_wrong'])

        progress.refresh_from_db()
        assert progress.quiz_passed is True
        assert progress.best_quiz_score == 100
        assert progress.progress_percentage == 20

    def test_attempt_limit(self, create_course, create_quiz, quiz_answers, user_id):
        course = create_course(modules=2)
        create_quiz(course, attempts_allowed=2)
        progress = self.service.enroll(user_id, course.id)

        self.service.record_quiz_attempt(progress, quiz_answers['all_wrong'])
        self.service.record_quiz_attempt(progress, quiz_answers['all_wrong'])

        with pytest.raises(ConflictError):
            self.service.record_quiz_attempt(progress, quiz_answers['all_correct'])
        assert progress.quiz_attempts.count() == 2

    def test_course_without_quiz(self, create_course, quiz_answers, user_id):
        progress = self.service.enroll(user_id, create_course().id)

        with pytest.raises(StateError):
            self.service.record_quiz_attempt(progress, quiz_answers['all_correct'])


@pytest.mark.django_db
class TestSessionsReviewsAnalytics:
    """Tests for sessions, reviews, analytics and insights."""

    def setup_method(self):
        """Set up test dependencies."""
        self.service = CourseProgressService()

    def test_learning_sessions(self, create_course, user_id):
        progress = self.service.enroll(user_id, create_course().id)

        self.service.record_learning_session(progress, 30, device='mobile')
        updated = self.service.record_learning_session(progress, 15)

        assert updated.total_time_spent == 45
        assert updated.sessions_count == 2
        assert updated.average_session_time == 23
        assert updated.last_accessed_at is not None

    def test_review_updates_course_rating(self, create_course, user_id):
        course = create_course()
        first = self.service.enroll(user_id, course.id)
        second = self.service.enroll(uuid.uuid4(), course.id)

        self.service.add_review(first, 5, 'Great')
        self.service.add_review(second, 4)

        course = Course.objects.get(pk=course.pk)
        assert course.rating_count == 2
        assert float(course.rating_average) == 4.5

        with pytest.raises(ConflictError):
            self.service.add_review(first, 3)

    def test_review_rating_range(self, create_course, user_id):
        progress = self.service.enroll(user_id, create_course().id)

        with pytest.raises(ValidationError):
            self.service.add_review(progress, 0)

    def test_user_analytics(self, create_course, user_id):
        finished = create_course(modules=1)
        started = create_course(modules=2)
        progress = self.service.enroll(user_id, finished.id)
        self.service.enroll(user_id, started.id)
        self.service.update_module_progress(progress, finished.modules.first().id, COMPLETED)

        analytics = self.service.get_user_analytics(user_id)

        assert analytics['courses_enrolled'] == 2
        assert analytics['courses_completed'] == 1
        assert analytics['average_progress'] == 50

    def test_course_analytics(self, create_course, user_id):
        course = create_course(modules=1)
        progress = self.service.enroll(user_id, course.id)
        self.service.enroll(uuid.uuid4(), course.id)
        self.service.update_module_progress(progress, course.modules.first().id, COMPLETED)

        analytics = self.service.get_course_analytics(course.id)

        assert analytics['enrollments'] == 2
        assert analytics['completions'] == 1
        assert analytics['completion_rate'] == 50

    def test_insights(self, create_course, user_id):
        course = create_course(modules=2)
        progress = self.service.enroll(user_id, course.id)
        slow, quick = course.modules.order_by('order')
        self.service.update_module_progress(progress, slow.id, {'status': 'in-progress', 'time_spent': 90})
        self.service.update_module_progress(progress, quick.id, {'status': 'completed', 'time_spent': 3})

        insights = self.service.get_insights(progress)

        assert insights['struggling_areas'][0]['module_id'] == str(slow.id)
        assert insights['strong_areas'][0]['module_id'] == str(quick.id)
        assert insights['recommendations'] == []
