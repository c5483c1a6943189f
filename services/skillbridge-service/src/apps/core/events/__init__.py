# services/skillbridge-service/src/apps/core/events/__init__.py
"""
SkillBridge Service Events

Event publishers and inbound handlers for the skillbridge service.
"""

from .publishers import (
    EventPublisher,
    get_publisher,
    publish_xp_awarded,
    publish_level_up,
    publish_badge_awarded,
    publish_course_enrolled,
    publish_module_completed,
    publish_course_completed,
    publish_quiz_attempted,
    publish_gig_posted,
    publish_application_submitted,
    publish_application_status_changed,
    publish_gig_completed,
    publish_gig_cancelled,
)

from .handlers import (
    handle_user_created,
    handle_skill_verified,
    dispatch_event,
)

__all__ = [
    # Publishers
    'EventPublisher',
    'get_publisher',
    'publish_xp_awarded',
    'publish_level_up',
    'publish_badge_awarded',
    'publish_course_enrolled',
    'publish_module_completed',
    'publish_course_completed',
    'publish_quiz_attempted',
    'publish_gig_posted',
    'publish_application_submitted',
    'publish_application_status_changed',
    'publish_gig_completed',
    'publish_gig_cancelled',

    # Handlers
    'handle_user_created',
    'handle_skill_verified',
    'dispatch_event',
]
