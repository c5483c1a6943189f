# services/skillbridge-service/src/tests/unit/test_events.py
"""
Unit Tests for Events

Tests for the publisher's commit-time delivery and the inbound handlers.
"""

import asyncio
import uuid

import pytest
from django.core.management import CommandError, call_command

from apps.core.events.handlers import dispatch_event
from apps.core.events.publishers import EventPublisher, get_publisher
from apps.core.management.commands.consume_events import Command as ConsumeEventsCommand
from apps.core.models import UserProgress, UserSkill
from shared.common.events import Event, EventBus, EventDispatcher, EventTypes, dispatcher, handle_event
from shared.common.exceptions import ValidationError


@pytest.mark.django_db
class TestEventPublisher:
    """Tests for EventPublisher."""

    def test_published_after_commit(self, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            get_publisher().publish(EventTypes.GIG_POSTED, {'gig_id': uuid.uuid4()})

        assert EventPublisher.get_memory_events() == []
        assert len(callbacks) == 1

        callbacks[0]()
        events = EventPublisher.get_memory_events(EventTypes.GIG_POSTED)
        assert len(events) == 1
        assert isinstance(events[0]['data']['gig_id'], str)

    def test_filter_by_type(self, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            get_publisher().publish(EventTypes.GIG_POSTED, {})
            get_publisher().publish(EventTypes.GIG_CANCELLED, {})

        assert len(EventPublisher.get_memory_events()) == 2
        assert len(EventPublisher.get_memory_events(EventTypes.GIG_CANCELLED)) == 1

    def test_delivery_failure_is_logged(self, django_capture_on_commit_callbacks, monkeypatch):
        def fail(event):
            raise RuntimeError('broker down')

        publisher = EventPublisher(backend='memory')
        monkeypatch.setattr(publisher, '_publish_memory', fail)

        with django_capture_on_commit_callbacks(execute=True):
            publisher.publish(EventTypes.GIG_POSTED, {})

        assert EventPublisher.get_memory_events() == []


class TestEventDispatcher:
    """Tests for EventDispatcher registration."""

    def test_register_and_dispatch(self):
        registry = EventDispatcher()
        seen = []

        @handle_event('test.event', registry=registry)
        def on_event(event):
            seen.append(event.data['n'])

        assert registry.dispatch(Event(event_type='test.event', data={'n': 1})) == 1
        assert registry.dispatch(Event(event_type='other.event', data={})) == 0
        assert seen == [1]


@pytest.mark.django_db
class TestInboundHandlers:
    """Tests for the registered inbound event handlers."""

    def test_user_created(self, user_id):
        dispatcher.dispatch(Event(event_type=EventTypes.USER_CREATED, data={'user_id': str(user_id)}))

        progress = UserProgress.objects.get(user_id=user_id)
        assert progress.xp == 0
        assert progress.level == 1

    def test_user_created_is_idempotent(self, user_id):
        event = Event(event_type=EventTypes.USER_CREATED, data={'user_id': str(user_id)})

        dispatcher.dispatch(event)
        dispatcher.dispatch(event)

        assert UserProgress.objects.filter(user_id=user_id).count() == 1

    def test_user_created_without_user(self):
        with pytest.raises(ValidationError):
            dispatcher.dispatch(Event(event_type=EventTypes.USER_CREATED, data={}))

    def test_skill_verified(self, user_id, create_badge):
        badge = create_badge(name='Verified Pythonista', criteria=[
            ('skill_level', {'name': 'python', 'level': 'intermediate'}),
        ])

        dispatcher.dispatch(Event(
            event_type=EventTypes.SKILL_VERIFIED,
            data={'user_id': str(user_id), 'name': 'Python', 'level': 'advanced'},
        ))

        skill = UserSkill.objects.get(progress__user_id=user_id)
        assert skill.verified is True
        assert skill.level == 'advanced'
        assert badge.awards.filter(progress__user_id=user_id).exists()


class FakeMessage:
    """Minimal stand-in for a JetStream message."""

    def __init__(self, data: bytes, subject='skillbridge.user.created'):
        self.data = data
        self.subject = subject
        self.outcome = None

    async def ack(self):
        self.outcome = 'ack'

    async def nak(self, delay=None):
        self.outcome = 'nak'

    async def term(self):
        self.outcome = 'term'


class TestEventBusConsumer:
    """Tests for decoding and acknowledging consumed messages."""

    def test_decodes_and_acks(self):
        seen = []
        event = Event(event_type=EventTypes.USER_CREATED, data={'user_id': 'u-1'})
        msg = FakeMessage(event.to_json().encode('utf-8'))

        asyncio.run(EventBus()._handle_message(msg, seen.append))

        assert msg.outcome == 'ack'
        assert len(seen) == 1
        assert seen[0].event_id == event.event_id
        assert seen[0].data == {'user_id': 'u-1'}

    def test_handler_failure_naks(self):
        def fail(event):
            raise RuntimeError('database unavailable')

        msg = FakeMessage(Event(event_type=EventTypes.USER_CREATED, data={}).to_json().encode('utf-8'))

        asyncio.run(EventBus()._handle_message(msg, fail))

        assert msg.outcome == 'nak'

    def test_malformed_payload_is_terminated(self):
        seen = []
        msg = FakeMessage(b'{"not": "an event"}')

        asyncio.run(EventBus()._handle_message(msg, seen.append))

        assert msg.outcome == 'term'
        assert seen == []


@pytest.mark.django_db
class TestConsumeEventsCommand:
    """Tests for the consume_events management command."""

    @pytest.fixture
    def subscriptions(self, monkeypatch):
        calls = []

        def fake_subscribe(bus, event_types, callback, queue_name=None, timeout=30.0):
            calls.append((list(event_types), callback, queue_name))

        monkeypatch.setattr(EventBus, 'subscribe', fake_subscribe)
        monkeypatch.setattr(EventBus, 'close', lambda bus, timeout=5.0: None)
        monkeypatch.setattr(ConsumeEventsCommand, 'wait_for_shutdown', lambda command: None)
        return calls

    def test_subscribes_handled_types(self, subscriptions, user_id):
        call_command('consume_events')

        assert len(subscriptions) == 1
        event_types, callback, queue_name = subscriptions[0]
        assert event_types == [EventTypes.SKILL_VERIFIED, EventTypes.USER_CREATED]
        assert callback is dispatch_event
        assert queue_name is None

        # Delivered events reach the registered handlers
        dispatcher.dispatch(Event(event_type=EventTypes.USER_CREATED, data={'user_id': str(user_id)}))
        assert UserProgress.objects.filter(user_id=user_id).exists()

    def test_single_event_type(self, subscriptions):
        call_command('consume_events', '--event-type', EventTypes.USER_CREATED, '--queue', 'progression')

        assert subscriptions == [([EventTypes.USER_CREATED], dispatch_event, 'progression')]

    def test_unhandled_event_type(self, subscriptions):
        with pytest.raises(CommandError):
            call_command('consume_events', '--event-type', EventTypes.GIG_POSTED)

        assert subscriptions == []
