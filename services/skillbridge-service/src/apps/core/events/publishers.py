# services/skillbridge-service/src/apps/core/events/publishers.py
"""
Event Publishers

Functions for publishing progression and marketplace events to the event
sink. Events are handed to the sink only after the surrounding database
transaction commits, so a rolled-back operation never announces anything.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction

from shared.common.events import Event, EventBus, EventTypes
from shared.common.utils import as_str

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Event publisher for the skillbridge service.

    Supports multiple backends:
    - NATS JetStream (production)
    - Log only (development)
    - In-memory (for testing)

    Delivery is fire-and-forget: failures are logged and never propagate
    into the engine operation that produced the event.
    """

    # In-memory event store for testing
    _memory_events: List[Dict[str, Any]] = []

    def __init__(self, backend: Optional[str] = None):
        self._backend = backend

    @property
    def backend(self) -> str:
        return self._backend or getattr(settings, 'EVENT_BACKEND', 'nats')

    def publish(
        self,
        event_type: str,
        data: Dict[str, Any],
    ) -> None:
        """
        Publish an event once the current transaction commits.

        Args:
            event_type: Type of event
            data: Event data
        """
        event = Event(
            event_type=event_type,
            data=json.loads(json.dumps(data, default=str)),
        )
        transaction.on_commit(lambda: self._deliver(event))

    def _deliver(self, event: Event) -> None:
        try:
            if self.backend == 'nats':
                EventBus().publish(event)
            elif self.backend == 'memory':
                self._publish_memory(event)
            else:
                logger.info(
                    f"Publishing event: {event.event_type}",
                    extra={'event': event.to_dict()}
                )
        except Exception as e:
            logger.error(
                f"Failed to publish event {event.event_type}: {e}",
                extra={'event_id': event.event_id}
            )

    # ==================== MEMORY BACKEND ====================

    def _publish_memory(self, event: Event) -> None:
        """Store event in memory (for testing)."""
        self._memory_events.append({
            'event_type': event.event_type,
            'timestamp': event.timestamp,
            'service': event.source_service,
            'data': event.data,
        })
        logger.debug(f"Stored event {event.event_type} in memory")

    @classmethod
    def get_memory_events(cls, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get events from memory store (for testing)."""
        if event_type:
            return [e for e in cls._memory_events if e['event_type'] == event_type]
        return list(cls._memory_events)

    @classmethod
    def clear_memory_events(cls):
        """Clear memory event store (for testing)."""
        cls._memory_events.clear()


# Global publisher instance
_publisher = EventPublisher()


def get_publisher() -> EventPublisher:
    """Get the global event publisher instance."""
    return _publisher


# =============================================================================
# Progression Events
# =============================================================================

def publish_xp_awarded(
    user_id: UUID,
    amount: int,
    source: str,
    reason: str,
    new_xp: int,
    new_level: int
) -> None:
    get_publisher().publish(
        event_type=EventTypes.XP_AWARDED,
        data={
            'user_id': as_str(user_id),
            'amount': amount,
            'source': source,
            'reason': reason,
            'new_xp': new_xp,
            'new_level': new_level,
        }
    )


def publish_level_up(
    user_id: UUID,
    old_level: int,
    new_level: int,
    xp: int
) -> None:
    get_publisher().publish(
        event_type=EventTypes.LEVEL_UP,
        data={
            'user_id': as_str(user_id),
            'old_level': old_level,
            'new_level': new_level,
            'xp': xp,
        }
    )


# =============================================================================
# Badge Events
# =============================================================================

def publish_badge_awarded(
    user_id: UUID,
    badge_id: UUID,
    badge_name: str,
    rarity: str,
    xp_reward: int,
    course_id: Optional[UUID] = None
) -> None:
    """
    Publish badge awarded event.

    Args:
        user_id: User who earned the badge
        badge_id: Badge UUID
        badge_name: Badge display name
        rarity: Badge rarity
        xp_reward: XP granted with the badge
        course_id: Course the award is scoped to, if any
    """
    get_publisher().publish(
        event_type=EventTypes.BADGE_AWARDED,
        data={
            'user_id': as_str(user_id),
            'badge_id': as_str(badge_id),
            'badge_name': badge_name,
            'rarity': rarity,
            'xp_reward': xp_reward,
            'course_id': as_str(course_id),
        }
    )


# =============================================================================
# Learning Events
# =============================================================================

def publish_course_enrolled(user_id: UUID, course_id: UUID, progress_id: UUID) -> None:
    get_publisher().publish(
        event_type=EventTypes.COURSE_ENROLLED,
        data={
            'user_id': as_str(user_id),
            'course_id': as_str(course_id),
            'progress_id': as_str(progress_id),
        }
    )


def publish_module_completed(
    user_id: UUID,
    course_id: UUID,
    module_id: UUID,
    progress_percentage: int
) -> None:
    get_publisher().publish(
        event_type=EventTypes.MODULE_COMPLETED,
        data={
            'user_id': as_str(user_id),
            'course_id': as_str(course_id),
            'module_id': as_str(module_id),
            'progress_percentage': progress_percentage,
        }
    )


def publish_course_completed(
    user_id: UUID,
    course_id: UUID,
    progress_id: UUID,
    xp_reward: int
) -> None:
    """
    Publish course completed event.

    Args:
        user_id: Learner UUID
        course_id: Course UUID
        progress_id: CourseProgress UUID
        xp_reward: Completion XP credited
    """
    get_publisher().publish(
        event_type=EventTypes.COURSE_COMPLETED,
        data={
            'user_id': as_str(user_id),
            'course_id': as_str(course_id),
            'progress_id': as_str(progress_id),
            'xp_reward': xp_reward,
        }
    )


def publish_quiz_attempted(
    user_id: UUID,
    course_id: UUID,
    attempt_number: int,
    score: int,
    passed: bool
) -> None:
    get_publisher().publish(
        event_type=EventTypes.QUIZ_ATTEMPTED,
        data={
            'user_id': as_str(user_id),
            'course_id': as_str(course_id),
            'attempt_number': attempt_number,
            'score': score,
            'passed': passed,
        }
    )


# =============================================================================
# Marketplace Events
# =============================================================================

def publish_gig_posted(gig_id: UUID, client_id: UUID, category: str) -> None:
    get_publisher().publish(
        event_type=EventTypes.GIG_POSTED,
        data={
            'gig_id': as_str(gig_id),
            'client_id': as_str(client_id),
            'category': category,
        }
    )


def publish_application_submitted(
    gig_id: UUID,
    application_id: UUID,
    applicant_id: UUID,
    client_id: UUID
) -> None:
    get_publisher().publish(
        event_type=EventTypes.APPLICATION_SUBMITTED,
        data={
            'gig_id': as_str(gig_id),
            'application_id': as_str(application_id),
            'applicant_id': as_str(applicant_id),
            'client_id': as_str(client_id),
        }
    )


def publish_application_status_changed(
    gig_id: UUID,
    application_id: UUID,
    applicant_id: UUID,
    old_status: str,
    new_status: str,
    response_message: str = ''
) -> None:
    """
    Publish application status changed event.

    Args:
        gig_id: Gig UUID
        application_id: Application UUID
        applicant_id: Applicant UUID
        old_status: Previous status
        new_status: New status
        response_message: Message from the gig owner
    """
    get_publisher().publish(
        event_type=EventTypes.APPLICATION_STATUS_CHANGED,
        data={
            'gig_id': as_str(gig_id),
            'application_id': as_str(application_id),
            'applicant_id': as_str(applicant_id),
            'old_status': old_status,
            'new_status': new_status,
            'response_message': response_message,
        }
    )


def publish_gig_completed(
    gig_id: UUID,
    client_id: UUID,
    assigned_to: Optional[UUID],
    xp_awarded: int,
    client_rating: Optional[int] = None
) -> None:
    get_publisher().publish(
        event_type=EventTypes.GIG_COMPLETED,
        data={
            'gig_id': as_str(gig_id),
            'client_id': as_str(client_id),
            'assigned_to': as_str(assigned_to),
            'xp_awarded': xp_awarded,
            'client_rating': client_rating,
            'completed_at': datetime.now(timezone.utc).isoformat(),
        }
    )


def publish_gig_cancelled(gig_id: UUID, client_id: UUID, reason: str) -> None:
    get_publisher().publish(
        event_type=EventTypes.GIG_CANCELLED,
        data={
            'gig_id': as_str(gig_id),
            'client_id': as_str(client_id),
            'reason': reason,
        }
    )
