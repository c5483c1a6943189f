# services/skillbridge-service/src/apps/core/services/badge_service.py
"""
Badge Service

Eligibility evaluation against the prerequisite graph and typed criteria,
idempotent awarding, recommendations and background re-evaluation.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Union
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import Count, F
from django.utils import timezone

from shared.common.constants import XPSource
from shared.common.exceptions import ConflictError, NotFoundError, ValidationError
from shared.common.utils import Deadline, check_deadline

from ..conf import engine_setting
from ..models import Badge, Course, CourseProgress, UserBadge, UserProgress
from ..events.publishers import publish_badge_awarded
from .criteria import CriterionResult, UserSnapshot, parse_criterion
from .progression_service import ProgressionService

logger = logging.getLogger(__name__)


def schedule_badge_reevaluation(user_id: UUID) -> None:
    """
    Re-evaluate a user's automatic badges after their state changed.

    In 'async' mode a Celery task is queued once the transaction commits;
    in 'sync' mode evaluation runs inline in the caller's transaction.
    """
    if engine_setting('BADGE_REEVALUATION') == 'sync':
        BadgeService().evaluate_user(user_id)
        return

    from ..tasks import reevaluate_user_badges
    transaction.on_commit(lambda: reevaluate_user_badges.delay(str(user_id)))


class BadgeService:
    """Service for badge eligibility and awards."""

    REASON_INACTIVE = 'Badge is not active'
    REASON_NOT_YET_AVAILABLE = 'Badge not yet available'
    REASON_EXPIRED = 'Badge availability has expired'
    REASON_PREREQUISITES = 'Prerequisites not met'
    REASON_ALREADY_EARNED = 'already earned'

    def __init__(self, progression_service: Optional[ProgressionService] = None):
        self.progression = progression_service or ProgressionService()

    # ==========================================================================
    # Snapshots
    # ==========================================================================

    @staticmethod
    def build_snapshot(user_id: UUID, progress: Optional[UserProgress] = None) -> UserSnapshot:
        """Collect the state badge criteria are evaluated against."""
        if progress is None:
            progress = UserProgress.objects.filter(user_id=user_id).first()

        completed_courses = frozenset(
            str(course_id) for course_id in CourseProgress.objects.filter(
                user_id=user_id,
                status=CourseProgress.Status.COMPLETED,
            ).values_list('course_id', flat=True)
        )

        if progress is None:
            return UserSnapshot(user_id=str(user_id), completed_course_ids=completed_courses)

        earned = list(progress.badges.values_list('badge_id', 'course_id'))
        return UserSnapshot(
            user_id=str(user_id),
            xp=progress.xp,
            streak_current=progress.streak_current,
            gigs_completed=progress.gigs_completed,
            rating_average=float(progress.rating_average),
            skills={
                name.strip().lower(): level
                for name, level in progress.skills.values_list('name', 'level')
            },
            completed_course_ids=completed_courses,
            earned_badge_ids=frozenset(str(badge_id) for badge_id, _ in earned),
            earned_course_badges=frozenset(
                (str(badge_id), str(course_id))
                for badge_id, course_id in earned
                if course_id is not None
            ),
        )

    # ==========================================================================
    # Eligibility
    # ==========================================================================

    def check_eligibility(
        self,
        badge: Union[Badge, UUID],
        user_id: UUID,
        course_id: Optional[UUID] = None,
        snapshot: Optional[UserSnapshot] = None,
        now=None,
    ) -> Dict[str, Any]:
        """
        Decide whether a user can be awarded a badge.

        Checks short-circuit in order: active flag, availability window,
        prerequisites, already earned, then each criterion in position
        order.

        Returns:
            Dict with eligible, reason, progress (0-100) and
            missing_prerequisites
        """
        badge = self._get_badge(badge)
        snapshot = snapshot or self.build_snapshot(user_id)
        now = now or timezone.now()

        if not badge.is_active:
            return self._ineligible(self.REASON_INACTIVE)
        if badge.available_from and now < badge.available_from:
            return self._ineligible(self.REASON_NOT_YET_AVAILABLE)
        if badge.available_until and now > badge.available_until:
            return self._ineligible(self.REASON_EXPIRED)

        missing = self.missing_prerequisites(badge, snapshot)
        if missing:
            return self._ineligible(self.REASON_PREREQUISITES, missing=missing)

        scoped_course = course_id if badge.is_course_scoped else None
        if snapshot.has_badge(badge.id, scoped_course):
            return self._ineligible(self.REASON_ALREADY_EARNED, progress=100)

        result = self.evaluate_criteria(badge, snapshot)
        if not result.met:
            return self._ineligible(result.reason, progress=result.progress)

        return {
            'eligible': True,
            'reason': None,
            'progress': 100,
            'missing_prerequisites': [],
        }

    @staticmethod
    def _ineligible(reason: str, progress: int = 0, missing: Optional[List[str]] = None) -> Dict[str, Any]:
        return {
            'eligible': False,
            'reason': reason,
            'progress': progress,
            'missing_prerequisites': missing or [],
        }

    @staticmethod
    def evaluate_criteria(badge: Badge, snapshot: UserSnapshot) -> CriterionResult:
        """AND over the badge's criteria; the first unmet one decides progress."""
        for row in badge.criteria.order_by('position'):
            result = parse_criterion(row.criterion_type, row.value).evaluate(snapshot)
            if not result.met:
                return result
        return CriterionResult(True, 100)

    @staticmethod
    def missing_prerequisites(badge: Badge, snapshot: UserSnapshot) -> List[str]:
        """
        Ids of unearned badges on the prerequisite chain of `badge`.

        Walks down only through unearned prerequisites; the visited set
        keeps a malformed (cyclic) graph from looping forever.
        """
        missing = []
        visited: Set[UUID] = {badge.id}
        frontier = list(badge.prerequisites.all())

        while frontier:
            prerequisite = frontier.pop()
            if prerequisite.id in visited:
                continue
            visited.add(prerequisite.id)
            if snapshot.has_badge(prerequisite.id):
                continue
            missing.append(str(prerequisite.id))
            frontier.extend(prerequisite.prerequisites.all())

        return missing

    @staticmethod
    def validate_prerequisites(badge: Badge) -> None:
        """
        Reject a prerequisite graph in which `badge` depends on itself.

        Raises:
            ValidationError: If a cycle through the badge exists
        """
        visited: Set[UUID] = set()
        frontier = list(badge.prerequisites.all())

        while frontier:
            prerequisite = frontier.pop()
            if prerequisite.id == badge.id:
                raise ValidationError(
                    f"Badge '{badge.name}' is its own prerequisite",
                    field='prerequisites'
                )
            if prerequisite.id in visited:
                continue
            visited.add(prerequisite.id)
            frontier.extend(prerequisite.prerequisites.all())

    # ==========================================================================
    # Awarding
    # ==========================================================================

    def award_badge(
        self,
        badge: Union[Badge, UUID],
        user_id: UUID,
        course_id: Optional[UUID] = None,
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """
        Award a badge to a user.

        Awarding a badge the user already holds is a no-op. A first award
        records the badge, bumps the global earned counter and grants the
        badge's XP.

        Args:
            badge: Badge instance or id
            user_id: Recipient
            course_id: Originating course (distinguishes course-scoped awards)
            deadline: Optional cancellation signal

        Returns:
            Dict with awarded, user_badge and xp (the add_xp result or None)

        Raises:
            NotFoundError: Unknown badge or course
            ConflictError: User is not eligible
        """
        badge = self._get_badge(badge)
        course = self._get_course(course_id) if course_id else None
        scoped_course = course if badge.is_course_scoped else None

        with transaction.atomic():
            progress = self.progression.lock_progress(user_id)
            snapshot = self.build_snapshot(user_id, progress)
            eligibility = self.check_eligibility(
                badge, user_id, course_id=course_id, snapshot=snapshot
            )

            if not eligibility['eligible']:
                if eligibility['reason'] == self.REASON_ALREADY_EARNED:
                    logger.info(f"Badge {badge.name} already held by user {user_id}")
                    return {'awarded': False, 'user_badge': None, 'xp': None}
                logger.warning(
                    f"User {user_id} not eligible for badge {badge.name}: {eligibility['reason']}"
                )
                raise ConflictError(
                    eligibility['reason'],
                    details={
                        'badge_id': str(badge.id),
                        'progress': eligibility['progress'],
                        'missing_prerequisites': eligibility['missing_prerequisites'],
                    }
                )

            check_deadline(deadline, 'award_badge')

            try:
                with transaction.atomic():
                    user_badge = UserBadge.objects.create(
                        progress=progress,
                        badge=badge,
                        course=scoped_course,
                    )
            except IntegrityError:
                # Another writer recorded the same award first
                logger.info(f"Concurrent award of badge {badge.name} to user {user_id}")
                return {'awarded': False, 'user_badge': None, 'xp': None}

            Badge.objects.filter(pk=badge.pk).update(earned_count=F('earned_count') + 1)

            xp_result = None
            if badge.xp_reward > 0:
                xp_result = self.progression.add_xp(
                    user_id,
                    badge.xp_reward,
                    XPSource.BADGE_AWARD,
                    reason=f"Badge earned: {badge.name}",
                    reward_key=f"badge:{badge.id}:{scoped_course.id if scoped_course else '-'}",
                    deadline=deadline,
                )

            publish_badge_awarded(
                user_id=user_id,
                badge_id=badge.id,
                badge_name=badge.name,
                rarity=badge.rarity,
                xp_reward=badge.xp_reward,
                course_id=course.id if course else None,
            )

        logger.info(
            f"Awarded badge {badge.name} to user {user_id}",
            extra={'user_id': str(user_id), 'badge_id': str(badge.id)}
        )
        return {'awarded': True, 'user_badge': user_badge, 'xp': xp_result}

    def evaluate_user(self, user_id: UUID, deadline: Optional[Deadline] = None) -> List[Badge]:
        """
        Award every automatic badge the user has become eligible for.

        Repeats until no new badge is awarded, since each award grants XP
        and may satisfy prerequisites of further badges. Course-scoped
        badges are only granted through course completion.

        Returns:
            Badges newly awarded, in award order
        """
        awarded: List[Badge] = []
        attempted: Set[UUID] = set()

        while True:
            check_deadline(deadline, 'evaluate_user')
            snapshot = self.build_snapshot(user_id)
            candidates = Badge.objects.filter(
                is_active=True,
                award_type=Badge.AwardType.AUTOMATIC,
                is_course_scoped=False,
            ).exclude(pk__in=list(attempted)).prefetch_related('prerequisites')

            newly_awarded = []
            for badge in candidates:
                if snapshot.has_badge(badge.id):
                    continue
                if not self.check_eligibility(badge, user_id, snapshot=snapshot)['eligible']:
                    continue
                attempted.add(badge.id)
                if self.award_badge(badge, user_id, deadline=deadline)['awarded']:
                    newly_awarded.append(badge)

            if not newly_awarded:
                break
            awarded.extend(newly_awarded)

        if awarded:
            logger.info(
                f"Re-evaluation awarded {len(awarded)} badges to user {user_id}",
                extra={'user_id': str(user_id), 'badges': [b.name for b in awarded]}
            )
        return awarded

    # ==========================================================================
    # Recommendations and Queries
    # ==========================================================================

    def recommend(self, user_id: UUID, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Closest-to-earn badges for a user.

        Considers active, visible, currently available badges the user does
        not hold; sorts by progress descending, then commoner rarity first,
        then name.
        """
        if limit is None:
            limit = engine_setting('RECOMMENDATION_LIMIT')
        snapshot = self.build_snapshot(user_id)
        now = timezone.now()

        recommendations = []
        badges = Badge.objects.filter(is_active=True, is_visible=True).prefetch_related('prerequisites')
        for badge in badges:
            if snapshot.has_badge(badge.id) or not badge.is_available(now):
                continue
            result = self.check_eligibility(badge, user_id, snapshot=snapshot, now=now)
            recommendations.append({
                'badge': badge,
                'eligible': result['eligible'],
                'progress': result['progress'],
                'reason': result['reason'],
            })

        recommendations.sort(
            key=lambda r: (-r['progress'], r['badge'].rarity_score, r['badge'].name)
        )
        return recommendations[:limit]

    @staticmethod
    def get_user_badges(user_id: UUID) -> List[UserBadge]:
        return list(
            UserBadge.objects.filter(progress__user_id=user_id)
            .select_related('badge', 'course')
            .order_by('-earned_at')
        )

    @staticmethod
    def reconcile_earned_counts() -> int:
        """
        Repair earned_count from the award rows.

        Returns:
            Number of badges whose counter was corrected
        """
        fixed = 0
        for badge in Badge.objects.annotate(actual=Count('awards')):
            if badge.earned_count != badge.actual:
                Badge.objects.filter(pk=badge.pk).update(earned_count=badge.actual)
                logger.info(
                    f"Reconciled earned_count for {badge.name}: {badge.earned_count} -> {badge.actual}"
                )
                fixed += 1
        return fixed

    # ==========================================================================
    # Lookups
    # ==========================================================================

    @staticmethod
    def _get_badge(badge: Union[Badge, UUID]) -> Badge:
        if isinstance(badge, Badge):
            return badge
        try:
            return Badge.objects.get(pk=badge)
        except (Badge.DoesNotExist, ValueError):
            raise NotFoundError('Badge', badge)

    @staticmethod
    def _get_course(course_id: UUID) -> Course:
        try:
            return Course.objects.get(pk=course_id)
        except (Course.DoesNotExist, ValueError):
            raise NotFoundError('Course', course_id)
