# services/skillbridge-service/src/apps/core/services/progression_service.py
"""
Progression Service

XP accrual, level computation, streak bookkeeping and marketplace
reputation. Every write happens under a row lock on the user's
UserProgress, which serializes concurrent rewards for the same user.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from django.db import transaction

from shared.common.constants import STREAK_QUALIFYING_SOURCES, SkillLevel, XPSource
from shared.common.exceptions import NotFoundError, ValidationError
from shared.common.utils import Deadline, calendar_days_between, check_deadline, round_decimal, utc_today
from shared.common.validators import validate_choice, validate_rating

from ..models import UserProgress, UserSkill, XPTransaction, level_for_xp
from ..events.publishers import publish_xp_awarded, publish_level_up

logger = logging.getLogger(__name__)


class ProgressionService:
    """Service for XP, levels, streaks and user reputation."""

    # ==========================================================================
    # User State
    # ==========================================================================

    @staticmethod
    def get_or_create_progress(user_id: UUID) -> UserProgress:
        progress, created = UserProgress.objects.get_or_create(user_id=user_id)
        if created:
            logger.info(f"Created progression record for user {user_id}")
        return progress

    @staticmethod
    def lock_progress(user_id: UUID) -> UserProgress:
        """
        Fetch the user's progress row under a row lock.

        Must be called inside transaction.atomic(); the lock is held until
        the outermost transaction ends.
        """
        ProgressionService.get_or_create_progress(user_id)
        return UserProgress.objects.select_for_update().get(user_id=user_id)

    @staticmethod
    def get_progress(user_id: UUID) -> UserProgress:
        try:
            return UserProgress.objects.get(user_id=user_id)
        except UserProgress.DoesNotExist:
            raise NotFoundError('User progress', user_id)

    # ==========================================================================
    # XP
    # ==========================================================================

    def add_xp(
        self,
        user_id: UUID,
        amount: int,
        source: str,
        reason: str = '',
        reward_key: Optional[str] = None,
        activity_date: Optional[date] = None,
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """
        Credit XP to a user.

        Args:
            user_id: User receiving the XP
            amount: XP to add (0 is a no-op)
            source: XPSource value describing the activity
            reason: Human readable reason stored on the ledger
            reward_key: Identifier of the logical reward; a key that was
                already credited is not credited again
            activity_date: Calendar day of the activity for streaks
                (defaults to today, UTC)
            deadline: Optional cancellation signal

        Returns:
            Dict with new_xp, new_level, leveled_up, xp_added, duplicate

        Raises:
            ValidationError: If amount is negative or source unknown
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("XP amount must be an integer", field='amount')
        if amount < 0:
            logger.warning(f"Rejected negative XP amount {amount} for user {user_id}")
            raise ValidationError("XP amount cannot be negative", field='amount')

        source = str(getattr(source, 'value', source))
        validate_choice(source, XPSource, 'source')

        with transaction.atomic():
            progress = self.lock_progress(user_id)
            old_level = progress.level

            if amount == 0:
                return self._xp_result(progress, old_level, 0)

            if reward_key and progress.xp_transactions.filter(reward_key=reward_key).exists():
                logger.info(
                    f"Reward {reward_key} already credited to user {user_id}",
                    extra={'user_id': str(user_id), 'reward_key': reward_key}
                )
                return self._xp_result(progress, old_level, 0, duplicate=True)

            check_deadline(deadline, 'add_xp')

            progress.xp += amount
            if source in STREAK_QUALIFYING_SOURCES:
                self.update_streak(progress, activity_date or utc_today())
            progress.version += 1
            progress.save()

            XPTransaction.objects.create(
                progress=progress,
                amount=amount,
                source=source,
                reason=reason[:255],
                reward_key=reward_key,
                balance_after=progress.xp,
                level_after=progress.level,
            )

            result = self._xp_result(progress, old_level, amount)

            publish_xp_awarded(
                user_id=user_id,
                amount=amount,
                source=source,
                reason=reason,
                new_xp=result['new_xp'],
                new_level=result['new_level'],
            )
            if result['leveled_up']:
                publish_level_up(
                    user_id=user_id,
                    old_level=old_level,
                    new_level=result['new_level'],
                    xp=result['new_xp'],
                )

        logger.info(
            f"Awarded {amount} XP to user {user_id} ({source})",
            extra={
                'user_id': str(user_id),
                'amount': amount,
                'new_xp': result['new_xp'],
                'leveled_up': result['leveled_up'],
            }
        )
        return result

    @staticmethod
    def _xp_result(progress: UserProgress, old_level: int, added: int, duplicate: bool = False) -> Dict[str, Any]:
        new_level = level_for_xp(progress.xp)
        return {
            'new_xp': progress.xp,
            'new_level': new_level,
            'leveled_up': new_level > old_level,
            'xp_added': added,
            'duplicate': duplicate,
        }

    # ==========================================================================
    # Streaks
    # ==========================================================================

    @staticmethod
    def update_streak(progress: UserProgress, today: date) -> UserProgress:
        """
        Apply one day of qualifying activity to the streak (not saved).

        Consecutive calendar days extend the streak, a same-day repeat
        leaves it alone and a gap of more than one day restarts it at 1.
        Activity dated before the last recorded day is ignored.
        """
        last = progress.last_activity_date

        if last is None:
            progress.streak_current = 1
        else:
            gap = calendar_days_between(last, today)
            if gap < 0:
                return progress
            if gap == 1:
                progress.streak_current += 1
            elif gap > 1:
                progress.streak_current = 1
            elif progress.streak_current == 0:
                progress.streak_current = 1

        progress.streak_longest = max(progress.streak_longest, progress.streak_current)
        progress.last_activity_date = today
        return progress

    # ==========================================================================
    # Skills
    # ==========================================================================

    def set_skill(
        self,
        user_id: UUID,
        name: str,
        level: str,
        verified: bool = False,
    ) -> UserSkill:
        """
        Create or update a user's skill.

        Raises:
            ValidationError: Empty name or unknown level
        """
        name = (name or '').strip()
        if not name:
            raise ValidationError("Skill name is required", field='name')
        level = str(getattr(level, 'value', level))
        validate_choice(level, SkillLevel, 'level')

        with transaction.atomic():
            progress = self.lock_progress(user_id)
            skill = progress.skills.filter(name__iexact=name).first()
            if skill is None:
                skill = UserSkill.objects.create(
                    progress=progress,
                    name=name,
                    level=level,
                    verified=verified,
                )
            else:
                skill.level = level
                skill.verified = skill.verified or verified
                skill.save(update_fields=['level', 'verified', 'updated_at'])

            from .badge_service import schedule_badge_reevaluation
            schedule_badge_reevaluation(user_id)

        logger.info(f"Set skill {name}={level} for user {user_id}")
        return skill

    # ==========================================================================
    # Reputation
    # ==========================================================================

    def record_gig_completion(self, user_id: UUID, rating: Optional[int] = None) -> UserProgress:
        """
        Count a completed gig and fold an optional rating into the average.

        Joins the caller's transaction when there is one.
        """
        if rating is not None:
            validate_rating(rating, 'rating')

        with transaction.atomic():
            progress = self.lock_progress(user_id)
            progress.gigs_completed += 1

            if rating is not None:
                total = progress.rating_average * progress.rating_count + Decimal(rating)
                progress.rating_count += 1
                progress.rating_average = round_decimal(total / progress.rating_count, 2)

            progress.version += 1
            progress.save()

        logger.info(
            f"Recorded gig completion for user {user_id}",
            extra={'user_id': str(user_id), 'rating': rating}
        )
        return progress

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_summary(self, user_id: UUID) -> Dict[str, Any]:
        """Progression summary including derived level values."""
        progress = self.get_or_create_progress(user_id)
        return {
            'user_id': str(user_id),
            'xp': progress.xp,
            'level': progress.level,
            'next_level_xp': progress.next_level_xp,
            'xp_progress': progress.xp_progress,
            'streak': {
                'current': progress.streak_current,
                'longest': progress.streak_longest,
                'last_activity_date': progress.last_activity_date,
            },
            'gigs_completed': progress.gigs_completed,
            'rating': {
                'average': float(progress.rating_average),
                'count': progress.rating_count,
            },
            'skills': [
                {'name': s.name, 'level': s.level, 'verified': s.verified}
                for s in progress.skills.all()
            ],
            'badges': [
                {
                    'badge_id': str(ub.badge_id),
                    'name': ub.badge.name,
                    'course_id': str(ub.course_id) if ub.course_id else None,
                    'earned_at': ub.earned_at,
                }
                for ub in progress.badges.select_related('badge')
            ],
        }

    @staticmethod
    def get_leaderboard(limit: int = 10) -> List[Dict[str, Any]]:
        leaders = UserProgress.objects.order_by('-xp', 'created_at')[:limit]
        return [
            {
                'rank': index + 1,
                'user_id': str(progress.user_id),
                'xp': progress.xp,
                'level': progress.level,
            }
            for index, progress in enumerate(leaders)
        ]

    def get_xp_history(self, user_id: UUID, limit: int = 20) -> List[XPTransaction]:
        progress = self.get_progress(user_id)
        return list(progress.xp_transactions.all()[:limit])
