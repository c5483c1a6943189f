# shared/common/events.py
"""
Event Bus and Event Handling for Service Communication
Using NATS as the message broker with JetStream for persistence.
"""

import json
import uuid
import logging
import asyncio
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Any, List, Optional
from dataclasses import dataclass, asdict

import nats
from nats.js.api import (
    AckPolicy,
    ConsumerConfig,
    DeliverPolicy,
    RetentionPolicy,
    StorageType,
    StreamConfig,
)
from nats.js.errors import BadRequestError
from django.conf import settings

from .constants import EVENT_SUBJECT_PREFIX

logger = logging.getLogger(__name__)


# =============================================================================
# EVENT DATA CLASSES
# =============================================================================

@dataclass
class Event:
    """Base event class"""
    event_type: str
    data: Dict[str, Any]
    event_id: str = None
    timestamp: str = None
    source_service: str = None
    correlation_id: str = None
    version: str = "1.0"

    def __post_init__(self):
        if not self.event_id:
            self.event_id = str(uuid.uuid4())
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()
        if not self.source_service:
            self.source_service = getattr(settings, 'SERVICE_NAME', 'unknown')

    def to_dict(self) -> Dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Event':
        return cls(**data)

    @classmethod
    def from_json(cls, json_str: str) -> 'Event':
        return cls.from_dict(json.loads(json_str))


# =============================================================================
# EVENT TYPES
# =============================================================================

class EventTypes:
    """Event type constants"""

    # Identity Events (consumed)
    USER_CREATED = 'user.created'
    SKILL_VERIFIED = 'skills.verified'

    # Progression Events
    XP_AWARDED = 'progression.xp_awarded'
    LEVEL_UP = 'progression.level_up'

    # Badge Events
    BADGE_AWARDED = 'badges.badge_awarded'

    # Learning Events
    COURSE_ENROLLED = 'learning.enrolled'
    MODULE_COMPLETED = 'learning.module_completed'
    COURSE_COMPLETED = 'learning.course_completed'
    QUIZ_ATTEMPTED = 'learning.quiz_attempted'

    # Marketplace Events
    GIG_POSTED = 'gigs.posted'
    APPLICATION_SUBMITTED = 'gigs.application_submitted'
    APPLICATION_STATUS_CHANGED = 'gigs.application_status_changed'
    GIG_COMPLETED = 'gigs.completed'
    GIG_CANCELLED = 'gigs.cancelled'


# =============================================================================
# NATS CONFIGURATION
# =============================================================================

class NATSConfig:
    """NATS connection configuration"""

    def __init__(self):
        self.servers = getattr(settings, 'NATS_SERVERS', ['nats://localhost:4222'])
        self.user = getattr(settings, 'NATS_USER', None)
        self.password = getattr(settings, 'NATS_PASSWORD', None)
        self.token = getattr(settings, 'NATS_TOKEN', None)
        self.connect_timeout = getattr(settings, 'NATS_CONNECT_TIMEOUT', 10)
        self.reconnect_time_wait = getattr(settings, 'NATS_RECONNECT_TIME_WAIT', 2)
        self.max_reconnect_attempts = getattr(settings, 'NATS_MAX_RECONNECT_ATTEMPTS', 60)
        self.stream_name = getattr(settings, 'NATS_STREAM_NAME', 'SKILLBRIDGE_EVENTS')
        self.stream_subjects = getattr(settings, 'NATS_STREAM_SUBJECTS', [f'{EVENT_SUBJECT_PREFIX}.>'])

    def get_connect_options(self) -> Dict[str, Any]:
        """Get NATS connection options"""
        options = {
            'servers': self.servers,
            'connect_timeout': self.connect_timeout,
            'reconnect_time_wait': self.reconnect_time_wait,
            'max_reconnect_attempts': self.max_reconnect_attempts,
            'error_cb': self._error_callback,
            'disconnected_cb': self._disconnected_callback,
            'reconnected_cb': self._reconnected_callback,
            'closed_cb': self._closed_callback,
        }

        if self.user and self.password:
            options['user'] = self.user
            options['password'] = self.password
        elif self.token:
            options['token'] = self.token

        return options

    async def _error_callback(self, error):
        logger.error(f"NATS error: {error}")

    async def _disconnected_callback(self):
        logger.warning("Disconnected from NATS")

    async def _reconnected_callback(self):
        logger.info("Reconnected to NATS")

    async def _closed_callback(self):
        logger.info("NATS connection closed")


# =============================================================================
# NATS EVENT BUS
# =============================================================================

class EventBus:
    """
    Event Bus publishing and consuming events over NATS with JetStream.

    Publishing is fire-and-forget: the coroutine is scheduled on a dedicated
    background event loop and the caller never waits for the broker's
    acknowledgement. JetStream de-duplicates redeliveries by event id.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._nc = None  # NATS connection
        self._js = None  # JetStream context
        self._loop = None
        self._thread = None
        self._subscriptions = []
        self._config = NATSConfig()
        self._initialized = True

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        """Start the background loop thread on first use"""
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever,
                    name='nats-event-bus',
                    daemon=True,
                )
                self._thread.start()
        return self._loop

    async def _connect_async(self) -> bool:
        """Establish async connection to NATS"""
        if self._nc is not None and self._nc.is_connected:
            return True

        self._nc = await nats.connect(**self._config.get_connect_options())
        self._js = self._nc.jetstream()

        try:
            await self._js.add_stream(
                config=StreamConfig(
                    name=self._config.stream_name,
                    subjects=self._config.stream_subjects,
                    retention=RetentionPolicy.LIMITS,
                    storage=StorageType.FILE,
                    max_age=7 * 24 * 60 * 60,  # 7 days in seconds
                    duplicate_window=120,  # 2 minutes dedup window
                )
            )
            logger.info(f"Created/updated JetStream stream: {self._config.stream_name}")
        except BadRequestError as e:
            # Stream already exists with a different config
            logger.debug(f"Stream setup note: {e}")

        logger.info(f"Connected to NATS at {self._config.servers}")
        return True

    def _event_type_to_subject(self, event_type: str) -> str:
        """Convert event type to NATS subject format"""
        # gigs.completed -> skillbridge.gigs.completed
        return f"{EVENT_SUBJECT_PREFIX}.{event_type}"

    async def _publish_async(self, event: Event) -> None:
        """Publish event asynchronously"""
        await self._connect_async()

        ack = await self._js.publish(
            self._event_type_to_subject(event.event_type),
            event.to_json().encode('utf-8'),
            headers={
                'Nats-Msg-Id': event.event_id,  # For deduplication
                'correlation-id': event.correlation_id or event.event_id,
                'source-service': event.source_service,
            }
        )

        logger.info(
            f"Event published: {event.event_type}",
            extra={
                'event_id': event.event_id,
                'event_type': event.event_type,
                'stream': ack.stream,
                'seq': ack.seq,
            }
        )

    def publish(self, event: Event) -> None:
        """Schedule an event for delivery without waiting for the ack"""
        future = asyncio.run_coroutine_threadsafe(
            self._publish_async(event),
            self._ensure_loop()
        )
        future.add_done_callback(
            lambda f: self._log_failure(f, event)
        )

    @staticmethod
    def _log_failure(future, event: Event) -> None:
        error = future.exception()
        if error is not None:
            logger.error(
                f"Failed to publish event {event.event_type}: {error}",
                extra={'event_id': event.event_id}
            )

    async def _handle_message(self, msg, callback: Callable[[Event], Any]) -> None:
        """Decode one JetStream message, run the callback, then ack or nak"""
        try:
            event = Event.from_json(msg.data.decode('utf-8'))
        except (ValueError, TypeError) as e:
            # Malformed payloads are terminated rather than redelivered
            logger.error(f"Dropping malformed message on {msg.subject}: {e}")
            await msg.term()
            return

        logger.info(
            f"Event received: {event.event_type}",
            extra={
                'event_id': event.event_id,
                'event_type': event.event_type,
                'subject': msg.subject,
            }
        )

        try:
            if asyncio.iscoroutinefunction(callback):
                await callback(event)
            else:
                await asyncio.get_running_loop().run_in_executor(None, callback, event)
        except Exception as e:
            logger.error(
                f"Error processing event {event.event_type}: {e}",
                extra={'event_id': event.event_id}
            )
            await msg.nak(delay=5)
            return

        await msg.ack()

    async def _subscribe_async(
        self,
        event_types: List[str],
        callback: Callable[[Event], Any],
        queue_name: str = None,
        durable_name: str = None
    ) -> None:
        """Create one durable queue consumer per event type"""
        await self._connect_async()

        service_name = getattr(settings, 'SERVICE_NAME', 'service')
        queue_name = queue_name or f"{service_name}_queue"
        durable_name = durable_name or f"{service_name}_consumer"

        async def message_handler(msg):
            await self._handle_message(msg, callback)

        for event_type in event_types:
            subject = self._event_type_to_subject(event_type)
            sub = await self._js.subscribe(
                subject,
                queue=queue_name,
                durable=f"{durable_name}_{event_type.replace('.', '_')}",
                cb=message_handler,
                config=ConsumerConfig(
                    ack_policy=AckPolicy.EXPLICIT,
                    deliver_policy=DeliverPolicy.ALL,
                    max_deliver=5,
                    ack_wait=30,
                )
            )
            self._subscriptions.append(sub)
            logger.info(f"Subscribed to: {subject} (queue: {queue_name})")

    def subscribe(
        self,
        event_types: List[str],
        callback: Callable[[Event], Any],
        queue_name: str = None,
        timeout: float = 30.0
    ) -> None:
        """
        Start consuming event types on the background loop.

        Returns once the consumers exist; messages are then handled on the
        loop thread and sync callbacks run in its default executor.

        Raises:
            Whatever the broker raised while connecting or subscribing.
        """
        future = asyncio.run_coroutine_threadsafe(
            self._subscribe_async(list(event_types), callback, queue_name),
            self._ensure_loop()
        )
        future.result(timeout=timeout)
        logger.info(f"Subscribed to events: {list(event_types)}")

    def close(self, timeout: float = 5.0) -> None:
        """Drain the connection and stop the background loop"""
        if self._loop is None:
            return
        if self._nc is not None:
            asyncio.run_coroutine_threadsafe(self._nc.drain(), self._loop).result(timeout=timeout)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._nc = None
        self._js = None
        self._subscriptions = []
        logger.info("Event bus closed")


# =============================================================================
# EVENT HANDLERS
# =============================================================================

class BaseEventHandler(ABC):
    """Base class for event handlers"""

    @abstractmethod
    def handle(self, event: Event):
        """Handle the event"""
        pass


class FunctionEventHandler(BaseEventHandler):
    """Adapter turning a plain function into a handler"""

    def __init__(self, func: Callable[[Event], Any]):
        self.func = func

    def handle(self, event: Event):
        return self.func(event)


class EventDispatcher:
    """Dispatches inbound events to registered handlers"""

    def __init__(self):
        self._handlers: Dict[str, List[BaseEventHandler]] = {}

    def register(self, event_type: str, handler: BaseEventHandler):
        """Register a handler for an event type"""
        self._handlers.setdefault(event_type, [])
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)
            logger.debug(f"Registered handler for {event_type}")

    def handlers_for(self, event_type: str) -> List[BaseEventHandler]:
        return list(self._handlers.get(event_type, []))

    def event_types(self) -> List[str]:
        """Event types with at least one registered handler"""
        return sorted(t for t, handlers in self._handlers.items() if handlers)

    def dispatch(self, event: Event) -> int:
        """
        Dispatch event to all registered handlers.

        Returns:
            Number of handlers invoked
        """
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            logger.debug(f"No handlers for event type: {event.event_type}")
            return 0

        for handler in handlers:
            handler.handle(event)
        return len(handlers)


# Global dispatcher for inbound events
dispatcher = EventDispatcher()


def handle_event(*event_types: str, registry: Optional[EventDispatcher] = None):
    """
    Decorator registering a function as handler for event types.

    Usage:
        @handle_event(EventTypes.USER_CREATED)
        def on_user_created(event: Event):
            ...
    """
    def decorator(func):
        target = registry or dispatcher
        handler = FunctionEventHandler(func)
        for event_type in event_types:
            target.register(event_type, handler)
        return func
    return decorator
