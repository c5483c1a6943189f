# services/skillbridge-service/src/apps/core/services/course_progress_service.py
"""
Course Progress Service

Enrollment, module progress, quiz attempts, learning sessions and the
aggregate completion percentage. Course completion XP and the course badge
fire only on the first transition of a CourseProgress into completed.
"""

import logging
import math
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, F, Q, Sum
from django.utils import timezone

from shared.common.constants import MODULE_WEIGHT_WITH_QUIZ, QUIZ_WEIGHT, XPSource
from shared.common.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from shared.common.utils import Deadline, check_deadline, round_decimal, round_half_up
from shared.common.validators import validate_choice, validate_non_negative_int, validate_rating

from ..conf import engine_setting
from ..models import (
    Course,
    CourseModule,
    CourseProgress,
    CourseReview,
    ModuleProgress,
    QuizAttempt,
)
from ..events.publishers import (
    publish_course_completed,
    publish_course_enrolled,
    publish_module_completed,
    publish_quiz_attempted,
)
from .badge_service import BadgeService, schedule_badge_reevaluation
from .grading import grade_quiz
from .progression_service import ProgressionService

logger = logging.getLogger(__name__)


def calculate_percentage(total_modules: int, completed_modules: int, has_quiz: bool, quiz_passed: bool) -> int:
    """
    Aggregate completion percentage of a course.

    With a quiz, modules weigh 80 and a passed quiz 20; without one,
    modules weigh 100. A course without modules is at 0.
    """
    if total_modules == 0:
        return 0
    if has_quiz:
        value = MODULE_WEIGHT_WITH_QUIZ * completed_modules / total_modules
        if quiz_passed:
            value += QUIZ_WEIGHT
    else:
        value = 100 * completed_modules / total_modules
    return min(100, round_half_up(value))


def status_for_percentage(percentage: int) -> str:
    if percentage >= 100:
        return CourseProgress.Status.COMPLETED
    if percentage > 0:
        return CourseProgress.Status.IN_PROGRESS
    return CourseProgress.Status.NOT_STARTED


class CourseProgressService:
    """Service for tracking learners through courses."""

    # Module time thresholds (minutes) used by get_insights
    STRUGGLING_MODULE_MINUTES = 60
    QUICK_COMPLETION_MINUTES = 5
    QUIZ_RETRY_WARNING = 2

    MODULE_UPDATE_FIELDS = ('status', 'time_spent', 'notes', 'bookmarked')
    TIME_TRACKING_FIELDS = ('time_spent', 'notes', 'bookmarked')

    def __init__(
        self,
        progression_service: Optional[ProgressionService] = None,
        badge_service: Optional[BadgeService] = None,
    ):
        self.progression = progression_service or ProgressionService()
        self.badges = badge_service or BadgeService(self.progression)

    # ==========================================================================
    # Enrollment
    # ==========================================================================

    def enroll(self, user_id: UUID, course_id: UUID, deadline: Optional[Deadline] = None) -> CourseProgress:
        """
        Enroll a user in a course.

        Raises:
            NotFoundError: Unknown course
            StateError: Course is not published
            ConflictError: User is already enrolled
        """
        course = self._get_course(course_id)
        if not course.is_published:
            raise StateError(f"Course {course.title} is not published")

        if CourseProgress.objects.filter(user_id=user_id, course=course).exists():
            logger.warning(f"User {user_id} already enrolled in course {course.id}")
            raise ConflictError("Already enrolled in this course")

        with transaction.atomic():
            check_deadline(deadline, 'enroll')
            try:
                with transaction.atomic():
                    progress = CourseProgress.objects.create(user_id=user_id, course=course)
            except IntegrityError:
                raise ConflictError("Already enrolled in this course")

            Course.objects.filter(pk=course.pk).update(enrollment_count=F('enrollment_count') + 1)

            xp = self.progression.add_xp(
                user_id,
                engine_setting('ENROLLMENT_XP'),
                XPSource.COURSE_ENROLLMENT,
                reason=f"Enrolled in {course.title}",
                reward_key=f"enroll:{course.id}",
                deadline=deadline,
            )
            progress.xp_earned += xp['xp_added']
            progress.save(update_fields=['xp_earned', 'updated_at'])
            schedule_badge_reevaluation(user_id)

            publish_course_enrolled(user_id=user_id, course_id=course.id, progress_id=progress.id)

        logger.info(
            f"User {user_id} enrolled in course {course.title}",
            extra={'user_id': str(user_id), 'course_id': str(course.id)}
        )
        return progress

    # ==========================================================================
    # Module Progress
    # ==========================================================================

    def update_module_progress(
        self,
        progress: Union[CourseProgress, UUID],
        module_id: UUID,
        update: Dict[str, Any],
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """
        Upsert a module's progress and recompute the course aggregate.

        Args:
            progress: CourseProgress or its id
            module_id: Module of the progress's course
            update: Any of status, time_spent (minutes to add), notes,
                bookmarked
            deadline: Optional cancellation signal

        Returns:
            Dict with module_progress, progress, module_completed and
            course_completed flags

        Raises:
            ValidationError: Unknown field or status
            NotFoundError: Unknown progress or module
            StateError: Progress is abandoned, completed (for anything but
                time tracking), or a completed module would be reopened
        """
        unknown = set(update) - set(self.MODULE_UPDATE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown module progress fields: {', '.join(sorted(unknown))}", field='update')

        new_status = update.get('status')
        if new_status is not None:
            new_status = str(getattr(new_status, 'value', new_status))
            validate_choice(new_status, ModuleProgress.Status, 'status')
        if 'time_spent' in update:
            validate_non_negative_int(update['time_spent'], 'time_spent')

        with transaction.atomic():
            progress = self._lock_progress(progress)
            course = progress.course
            module = self._get_module(course, module_id)

            if progress.status == CourseProgress.Status.ABANDONED:
                raise StateError("Course progress has been abandoned", current_state=progress.status)

            module_progress, _ = ModuleProgress.objects.get_or_create(progress=progress, module=module)
            old_status = module_progress.status

            if progress.status == CourseProgress.Status.COMPLETED and new_status not in (None, old_status):
                raise StateError("Course is already completed", current_state=progress.status)
            if old_status == ModuleProgress.Status.COMPLETED and new_status not in (None, old_status):
                raise StateError("Completed modules cannot be reopened", current_state=old_status)

            check_deadline(deadline, 'update_module_progress')

            now = timezone.now()
            if new_status is not None:
                module_progress.status = new_status
            if 'time_spent' in update:
                module_progress.time_spent += update['time_spent']
            if 'notes' in update:
                module_progress.notes = update['notes'] or ''
            if 'bookmarked' in update:
                module_progress.bookmarked = bool(update['bookmarked'])

            if module_progress.status == ModuleProgress.Status.IN_PROGRESS and module_progress.started_at is None:
                module_progress.started_at = now

            module_completed = (
                module_progress.status == ModuleProgress.Status.COMPLETED
                and old_status != ModuleProgress.Status.COMPLETED
            )
            if module_completed:
                module_progress.completed_at = now
                if module_progress.started_at is None:
                    module_progress.started_at = now

            module_progress.save()

            progress.last_accessed_at = now
            if 'time_spent' in update:
                progress.total_time_spent += update['time_spent']

            if module_completed:
                xp = self.progression.add_xp(
                    progress.user_id,
                    module.xp_reward,
                    XPSource.MODULE_COMPLETION,
                    reason=f"Module completed: {module.title}",
                    reward_key=f"module:{module.id}",
                    deadline=deadline,
                )
                progress.xp_earned += xp['xp_added']

            progress.save()
            course_completed = self._recompute(progress, course, deadline=deadline)

            if module_completed:
                publish_module_completed(
                    user_id=progress.user_id,
                    course_id=course.id,
                    module_id=module.id,
                    progress_percentage=progress.progress_percentage,
                )
                schedule_badge_reevaluation(progress.user_id)

        logger.info(
            f"Module {module.id} for user {progress.user_id}: {old_status} -> {module_progress.status} "
            f"({progress.progress_percentage}%)",
            extra={'progress_id': str(progress.id), 'module_id': str(module.id)}
        )
        return {
            'module_progress': module_progress,
            'progress': progress,
            'module_completed': module_completed,
            'course_completed': course_completed,
        }

    # ==========================================================================
    # Quiz
    # ==========================================================================

    def record_quiz_attempt(
        self,
        progress: Union[CourseProgress, UUID],
        answers: Union[List[Any], Dict[str, Any]],
        time_spent: int = 0,
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """
        Grade and record a quiz attempt.

        XP is credited once per attempt: the full quiz reward when passed,
        otherwise a fraction of it.

        Raises:
            StateError: Course has no quiz, or the progress is terminal
            ConflictError: Attempt limit reached
        """
        validate_non_negative_int(time_spent, 'time_spent')
        if not isinstance(answers, (list, tuple, dict)):
            raise ValidationError("Answers must be a list or a mapping", field='answers')

        with transaction.atomic():
            progress = self._lock_progress(progress)
            course = progress.course

            if progress.is_terminal:
                raise StateError(f"Course progress is {progress.status}", current_state=progress.status)
            if not course.has_quiz:
                raise StateError("No quiz available for this course")

            quiz = course.quiz
            questions = list(quiz.questions.order_by('order'))
            if not questions:
                raise StateError("No quiz available for this course")

            attempts = progress.quiz_attempts.count()
            if attempts >= quiz.attempts_allowed:
                logger.warning(f"Quiz attempt limit reached for progress {progress.id}")
                raise ConflictError(
                    "Maximum quiz attempts reached",
                    details={'attempts_allowed': quiz.attempts_allowed}
                )

            graded = grade_quiz(questions, answers, quiz.passing_score)
            check_deadline(deadline, 'record_quiz_attempt')

            attempt_number = attempts + 1
            try:
                with transaction.atomic():
                    attempt = QuizAttempt.objects.create(
                        progress=progress,
                        attempt_number=attempt_number,
                        answers=list(answers) if not isinstance(answers, dict) else answers,
                        results=graded['results'],
                        score=graded['score'],
                        earned_points=graded['earned_points'],
                        max_points=graded['max_points'],
                        passed=graded['passed'],
                        time_spent=time_spent,
                    )
            except IntegrityError:
                raise ConflictError("Quiz attempt already recorded")

            if graded['passed']:
                reward = quiz.xp_reward
                reason = f"Quiz passed: {course.title}"
            else:
                reward = math.floor(quiz.xp_reward * engine_setting('FAILED_QUIZ_XP_RATIO'))
                reason = f"Quiz attempted: {course.title}"

            xp = self.progression.add_xp(
                progress.user_id,
                reward,
                XPSource.QUIZ_ATTEMPT,
                reason=reason,
                reward_key=f"quiz:{progress.id}:{attempt_number}",
                deadline=deadline,
            )
            attempt.xp_awarded = xp['xp_added']
            attempt.save(update_fields=['xp_awarded'])

            progress.best_quiz_score = max(progress.best_quiz_score, graded['score'])
            progress.quiz_passed = progress.quiz_passed or graded['passed']
            progress.xp_earned += xp['xp_added']
            progress.last_accessed_at = timezone.now()
            progress.save()

            course_completed = self._recompute(progress, course, deadline=deadline)

            publish_quiz_attempted(
                user_id=progress.user_id,
                course_id=course.id,
                attempt_number=attempt_number,
                score=graded['score'],
                passed=graded['passed'],
            )
            schedule_badge_reevaluation(progress.user_id)

        logger.info(
            f"Quiz attempt {attempt_number} for user {progress.user_id}: "
            f"{graded['score']}% ({'passed' if graded['passed'] else 'failed'})",
            extra={'progress_id': str(progress.id), 'score': graded['score']}
        )
        return {
            'attempt': attempt,
            'score': graded['score'],
            'passed': graded['passed'],
            'xp_awarded': attempt.xp_awarded,
            'progress_percentage': progress.progress_percentage,
            'course_completed': course_completed,
        }

    # ==========================================================================
    # Aggregate
    # ==========================================================================

    def _recompute(self, progress: CourseProgress, course: Course, deadline: Optional[Deadline] = None) -> bool:
        """
        Recompute percentage and status from module and quiz state.

        Returns True only for the call that moves the progress into
        completed; a progress already completed is never recomputed.
        """
        if progress.is_terminal:
            return False

        total = course.modules.count()
        completed = progress.module_progress.filter(status=ModuleProgress.Status.COMPLETED).count()
        percentage = calculate_percentage(total, completed, course.has_quiz, progress.quiz_passed)
        status = status_for_percentage(percentage)
        now = timezone.now()

        if status != CourseProgress.Status.COMPLETED:
            progress.progress_percentage = percentage
            progress.status = status
            if status == CourseProgress.Status.IN_PROGRESS and progress.started_at is None:
                progress.started_at = now
            progress.save(update_fields=['progress_percentage', 'status', 'started_at', 'updated_at'])
            return False

        check_deadline(deadline, 'complete_course')

        # Only the writer whose update flips the row fires completion rewards
        flipped = CourseProgress.objects.filter(pk=progress.pk).exclude(
            status=CourseProgress.Status.COMPLETED
        ).update(
            status=CourseProgress.Status.COMPLETED,
            progress_percentage=100,
            completed_at=now,
            started_at=progress.started_at or now,
        )
        if not flipped:
            progress.refresh_from_db()
            return False

        progress.status = CourseProgress.Status.COMPLETED
        progress.progress_percentage = 100
        progress.completed_at = now
        progress.started_at = progress.started_at or now

        self._on_course_completed(progress, course, deadline=deadline)
        return True

    def _on_course_completed(self, progress: CourseProgress, course: Course, deadline: Optional[Deadline] = None) -> None:
        Course.objects.filter(pk=course.pk).update(completion_count=F('completion_count') + 1)

        xp = self.progression.add_xp(
            progress.user_id,
            course.xp_reward,
            XPSource.COURSE_COMPLETION,
            reason=f"Course completed: {course.title}",
            reward_key=f"course:{course.id}",
            deadline=deadline,
        )
        progress.xp_earned += xp['xp_added']
        progress.save(update_fields=['xp_earned', 'updated_at'])

        if course.badge_granted_id:
            badge = course.badge_granted
            eligibility = self.badges.check_eligibility(badge, progress.user_id, course_id=course.id)
            if eligibility['eligible']:
                self.badges.award_badge(badge, progress.user_id, course_id=course.id, deadline=deadline)
            else:
                logger.info(
                    f"Skipped course badge {badge.name} for user {progress.user_id}: {eligibility['reason']}"
                )

        publish_course_completed(
            user_id=progress.user_id,
            course_id=course.id,
            progress_id=progress.id,
            xp_reward=xp['xp_added'],
        )
        logger.info(
            f"User {progress.user_id} completed course {course.title}",
            extra={'user_id': str(progress.user_id), 'course_id': str(course.id)}
        )

    # ==========================================================================
    # Sessions, Abandonment and Reviews
    # ==========================================================================

    def record_learning_session(
        self,
        progress: Union[CourseProgress, UUID],
        duration_minutes: int,
        device: Optional[str] = None,
    ) -> CourseProgress:
        """Track time spent; allowed on completed progress, not on abandoned."""
        validate_non_negative_int(duration_minutes, 'duration_minutes')

        with transaction.atomic():
            progress = self._lock_progress(progress)
            if progress.status == CourseProgress.Status.ABANDONED:
                raise StateError("Course progress has been abandoned", current_state=progress.status)

            progress.total_time_spent += duration_minutes
            progress.sessions_count += 1
            progress.average_session_time = round_half_up(progress.total_time_spent / progress.sessions_count)
            progress.last_accessed_at = timezone.now()
            progress.save()

        logger.info(
            f"Recorded {duration_minutes} min session for progress {progress.id}",
            extra={'progress_id': str(progress.id), 'device': device}
        )
        return progress

    def abandon(self, progress: Union[CourseProgress, UUID]) -> CourseProgress:
        with transaction.atomic():
            progress = self._lock_progress(progress)
            if progress.is_terminal:
                raise StateError(f"Course progress is already {progress.status}", current_state=progress.status)

            progress.status = CourseProgress.Status.ABANDONED
            progress.abandoned_at = timezone.now()
            progress.save()

        logger.info(f"User {progress.user_id} abandoned course {progress.course_id}")
        return progress

    def add_review(self, progress: Union[CourseProgress, UUID], rating: int, comment: str = '') -> CourseReview:
        """
        Rate a course and fold the rating into the course average.

        Raises:
            ValidationError: Rating outside 1..5
            ConflictError: Progress already has a review
        """
        validate_rating(rating)

        with transaction.atomic():
            progress = self._lock_progress(progress)
            if CourseReview.objects.filter(progress=progress).exists():
                raise ConflictError("Course already reviewed")

            review = CourseReview.objects.create(progress=progress, rating=rating, comment=comment or '')

            course = Course.objects.select_for_update().get(pk=progress.course_id)
            total = course.rating_average * course.rating_count + Decimal(rating)
            course.rating_count += 1
            course.rating_average = round_decimal(total / course.rating_count, 2)
            course.save(update_fields=['rating_average', 'rating_count', 'updated_at'])

        logger.info(f"Review {rating}/5 for course {progress.course_id} by user {progress.user_id}")
        return review

    # ==========================================================================
    # Analytics
    # ==========================================================================

    def get_user_analytics(self, user_id: UUID) -> Dict[str, Any]:
        records = CourseProgress.objects.filter(user_id=user_id)
        totals = records.aggregate(
            enrolled=Count('id'),
            completed=Count('id', filter=Q(status=CourseProgress.Status.COMPLETED)),
            in_progress=Count('id', filter=Q(status=CourseProgress.Status.IN_PROGRESS)),
            abandoned=Count('id', filter=Q(status=CourseProgress.Status.ABANDONED)),
            total_time=Sum('total_time_spent'),
            average_progress=Avg('progress_percentage'),
            xp_earned=Sum('xp_earned'),
        )
        quiz_average = QuizAttempt.objects.filter(progress__user_id=user_id).aggregate(avg=Avg('score'))['avg']

        return {
            'user_id': str(user_id),
            'courses_enrolled': totals['enrolled'],
            'courses_completed': totals['completed'],
            'courses_in_progress': totals['in_progress'],
            'courses_abandoned': totals['abandoned'],
            'total_time_spent': totals['total_time'] or 0,
            'average_progress': round_half_up(totals['average_progress'] or 0),
            'average_quiz_score': round_half_up(quiz_average or 0),
            'xp_earned': totals['xp_earned'] or 0,
        }

    def get_course_analytics(self, course_id: UUID) -> Dict[str, Any]:
        course = self._get_course(course_id)
        records = course.progress_records.all()
        totals = records.aggregate(
            enrollments=Count('id'),
            completions=Count('id', filter=Q(status=CourseProgress.Status.COMPLETED)),
            average_progress=Avg('progress_percentage'),
            average_time=Avg('total_time_spent'),
        )
        quiz_average = records.filter(
            pk__in=QuizAttempt.objects.filter(progress__course=course).values('progress_id')
        ).aggregate(avg=Avg('best_quiz_score'))['avg']

        enrollments = totals['enrollments']
        return {
            'course_id': str(course.id),
            'enrollments': enrollments,
            'completions': totals['completions'],
            'completion_rate': round_half_up(100 * totals['completions'] / enrollments) if enrollments else 0,
            'average_progress': round_half_up(totals['average_progress'] or 0),
            'average_time_spent': round_half_up(totals['average_time'] or 0),
            'average_best_quiz_score': round_half_up(quiz_average or 0),
            'rating': {
                'average': float(course.rating_average),
                'count': course.rating_count,
            },
        }

    def get_insights(self, progress: Union[CourseProgress, UUID]) -> Dict[str, List[Dict[str, Any]]]:
        """Struggling and strong modules plus study recommendations."""
        progress = self._get_progress(progress)
        insights = {'struggling_areas': [], 'strong_areas': [], 'recommendations': []}

        for module_progress in progress.module_progress.select_related('module'):
            completed = module_progress.status == ModuleProgress.Status.COMPLETED
            if not completed and module_progress.time_spent > self.STRUGGLING_MODULE_MINUTES:
                insights['struggling_areas'].append({
                    'module_id': str(module_progress.module_id),
                    'reason': 'time_spent',
                    'severity': 'medium',
                })
            elif completed and module_progress.time_spent < self.QUICK_COMPLETION_MINUTES:
                insights['strong_areas'].append({
                    'module_id': str(module_progress.module_id),
                    'reason': 'quick_completion',
                })

        if progress.quiz_attempts.count() > self.QUIZ_RETRY_WARNING and not progress.quiz_passed:
            insights['recommendations'].append({
                'type': 'review_module',
                'message': 'Consider reviewing the course materials before retaking the quiz',
                'priority': 'high',
            })

        return insights

    # ==========================================================================
    # Lookups
    # ==========================================================================

    @staticmethod
    def _get_course(course_id: UUID) -> Course:
        try:
            return Course.objects.get(pk=course_id)
        except (Course.DoesNotExist, ValueError):
            raise NotFoundError('Course', course_id)

    @staticmethod
    def _get_module(course: Course, module_id: UUID) -> CourseModule:
        try:
            return course.modules.get(pk=module_id)
        except (CourseModule.DoesNotExist, ValueError):
            raise NotFoundError('Module', module_id)

    @staticmethod
    def _get_progress(progress: Union[CourseProgress, UUID]) -> CourseProgress:
        progress_id = progress.pk if isinstance(progress, CourseProgress) else progress
        try:
            return CourseProgress.objects.select_related('course').get(pk=progress_id)
        except (CourseProgress.DoesNotExist, ValueError):
            raise NotFoundError('Course progress', progress_id)

    @staticmethod
    def _lock_progress(progress: Union[CourseProgress, UUID]) -> CourseProgress:
        """Re-read the progress under a row lock; call inside transaction.atomic()."""
        progress_id = progress.pk if isinstance(progress, CourseProgress) else progress
        try:
            return CourseProgress.objects.select_for_update().select_related('course').get(pk=progress_id)
        except (CourseProgress.DoesNotExist, ValueError):
            raise NotFoundError('Course progress', progress_id)
