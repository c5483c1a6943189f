# services/skillbridge-service/src/apps/core/management/commands/consume_events.py
"""
Management command consuming inbound events from NATS JetStream.

Subscribes a durable queue consumer per handled event type and feeds every
message to the registered handlers until interrupted.
"""

import time

from django.core.management.base import BaseCommand, CommandError

from shared.common.events import EventBus, dispatcher

from apps.core.events.handlers import dispatch_event


class Command(BaseCommand):
    help = 'Consume inbound events (user.created, skills.verified) and dispatch them to handlers'

    def add_arguments(self, parser):
        parser.add_argument(
            '--event-type',
            dest='event_types',
            action='append',
            help='Only consume this event type (repeatable; default: every handled type)'
        )
        parser.add_argument(
            '--queue',
            type=str,
            help='Queue group name (default: <SERVICE_NAME>_queue)'
        )

    def handle(self, *args, **options):
        handled = dispatcher.event_types()
        event_types = options.get('event_types') or handled
        if not event_types:
            raise CommandError('No inbound event handlers are registered')

        unknown = sorted(set(event_types) - set(handled))
        if unknown:
            raise CommandError(f"No handler registered for: {', '.join(unknown)}")

        bus = EventBus()
        bus.subscribe(event_types, dispatch_event, queue_name=options.get('queue'))
        self.stdout.write(self.style.SUCCESS(f"Consuming {', '.join(event_types)}"))

        try:
            self.wait_for_shutdown()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('Shutting down consumer'))
        finally:
            bus.close()

    def wait_for_shutdown(self):
        while True:
            time.sleep(1)
