# services/skillbridge-service/src/apps/core/events/handlers.py
"""
Event Handlers

Functions for handling events from other services.
"""

import logging

from django.db import close_old_connections

from shared.common.events import Event, EventTypes, dispatcher, handle_event
from shared.common.exceptions import ValidationError

logger = logging.getLogger(__name__)


@handle_event(EventTypes.USER_CREATED)
def handle_user_created(event: Event):
    """
    Create the progression record for a newly registered user.

    Args:
        event: Event whose data carries user_id
    """
    from ..services import ProgressionService

    user_id = event.data.get('user_id')
    if not user_id:
        raise ValidationError("user.created event without user_id", field='user_id')

    progress = ProgressionService.get_or_create_progress(user_id)
    logger.info(f"Initialized progression for user {user_id}")
    return progress


@handle_event(EventTypes.SKILL_VERIFIED)
def handle_skill_verified(event: Event):
    """
    Record a verified skill and re-evaluate the user's badges.

    Args:
        event: Event whose data carries user_id, skill name and level
    """
    from ..services import ProgressionService

    data = event.data
    user_id = data.get('user_id')
    if not user_id:
        raise ValidationError("skills.verified event without user_id", field='user_id')

    skill = ProgressionService().set_skill(
        user_id,
        data.get('name', ''),
        data.get('level', 'beginner'),
        verified=True,
    )
    logger.info(f"Verified skill {skill.name} ({skill.level}) for user {user_id}")
    return skill


def dispatch_event(event: Event) -> int:
    """
    Consumer entry point: dispatch one inbound event to its handlers.

    Runs on an executor thread of the event bus, so stale database
    connections are released around each event.
    """
    close_old_connections()
    try:
        return dispatcher.dispatch(event)
    finally:
        close_old_connections()
