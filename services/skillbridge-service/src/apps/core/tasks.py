# services/skillbridge-service/src/apps/core/tasks.py
"""
SkillBridge Service Celery Tasks

Background badge re-evaluation and counter maintenance.
"""

import logging

from celery import shared_task

from shared.common.exceptions import BaseServiceException

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def reevaluate_user_badges(self, user_id: str):
    """
    Award every automatic badge a user has become eligible for.

    Badge awards are idempotent, so duplicate or re-ordered deliveries of
    this task cannot double-award.

    Args:
        user_id: User whose badges to re-evaluate
    """
    from .services import BadgeService

    try:
        awarded = BadgeService().evaluate_user(user_id)
    except BaseServiceException as e:
        logger.warning(f"Badge re-evaluation for user {user_id} failed: {e}")
        raise
    except Exception as e:
        logger.error(f"Error re-evaluating badges for user {user_id}: {e}")
        raise self.retry(countdown=30, exc=e)

    logger.info(f"Re-evaluated badges for user {user_id}: {len(awarded)} awarded")
    return {'user_id': user_id, 'awarded': [str(badge.id) for badge in awarded]}


@shared_task
def reconcile_badge_counts():
    """Repair Badge.earned_count from the award rows."""
    from .services import BadgeService

    fixed = BadgeService.reconcile_earned_counts()
    logger.info(f"Reconciled badge counters: {fixed} corrected")
    return {'corrected': fixed}
