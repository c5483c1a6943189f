# services/skillbridge-service/src/tests/conftest.py
"""
Pytest Configuration and Fixtures

Provides common fixtures for skillbridge service tests.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone


@pytest.fixture(autouse=True)
def clear_events():
    """Start every test with an empty in-memory event store."""
    from apps.core.events.publishers import EventPublisher

    EventPublisher.clear_memory_events()
    yield
    EventPublisher.clear_memory_events()


@pytest.fixture
def user_id():
    """Provide a test user ID."""
    return uuid.uuid4()


@pytest.fixture
def client_id():
    """Provide a test gig client ID."""
    return uuid.uuid4()


@pytest.fixture
def worker_ids():
    """Provide three test worker IDs."""
    return [uuid.uuid4() for _ in range(3)]


@pytest.fixture
def nairobi():
    """(longitude, latitude) of central Nairobi."""
    return (36.8219, -1.2921)


@pytest.fixture
def create_course():
    """Factory fixture for creating courses with ordered modules."""
    from apps.core.models import Course, CourseModule

    def _create_course(modules: int = 4, **kwargs):
        defaults = {
            'title': f"Course {uuid.uuid4().hex[:6]}",
            'description': 'Learn something useful',
            'category': 'technology',
            'skill_tag': 'python',
            'xp_reward': 500,
        }
        defaults.update(kwargs)
        course = Course.objects.create(**defaults)

        for order in range(1, modules + 1):
            CourseModule.objects.create(
                course=course,
                title=f"Module {order}",
                order=order,
                duration=30,
                xp_reward=50,
            )
        return course

    return _create_course


@pytest.fixture
def create_quiz():
    """
    Factory fixture for attaching a quiz to a course.

    Default questions: two multiple-choice worth 10 points each and two
    short-answer worth 5 points each (30 points total).
    """
    from apps.core.models import Quiz, QuizQuestion

    def _create_quiz(course, questions=None, **kwargs):
        defaults = {
            'title': 'Final quiz',
            'passing_score': 70,
            'attempts_allowed': 3,
            'xp_reward': 100,
        }
        defaults.update(kwargs)
        quiz = Quiz.objects.create(course=course, **defaults)

        if questions is None:
            questions = [
                {
                    'question_type': 'multiple-choice',
                    'text': 'Which keyword defines a function?',
                    'options': [
                        {'text': 'def', 'is_correct': True},
                        {'text': 'func', 'is_correct': False},
                    ],
                    'points': 10,
                },
                {
                    'question_type': 'multiple-choice',
                    'text': 'Which type is immutable?',
                    'options': [
                        {'text': 'list', 'is_correct': False},
                        {'text': 'tuple', 'is_correct': True},
                    ],
                    'points': 10,
                },
                {
                    'question_type': 'short-answer',
                    'text': 'Name the package installer',
                    'correct_answer': 'pip',
                    'points': 5,
                },
                {
                    'question_type': 'fill-blank',
                    'text': 'A ___ holds key/value pairs',
                    'correct_answer': 'Dictionary',
                    'points': 5,
                },
            ]

        for order, question in enumerate(questions, start=1):
            QuizQuestion.objects.create(quiz=quiz, order=order, **question)
        return quiz

    return _create_quiz


@pytest.fixture
def quiz_answers():
    """Answers to the default quiz: all correct, or three correct."""
    return {
        'all_correct': ['def', 'tuple', 'pip', 'dictionary'],
        'three_correct': ['def', 'tuple', 'npm', ' DICTIONARY '],
        'all_wrong': ['func', 'list', 'npm', 'set'],
    }


@pytest.fixture
def create_badge():
    """Factory fixture for creating badges with criteria and prerequisites."""
    from apps.core.models import Badge, BadgeCriterion

    def _create_badge(name=None, criteria=None, prerequisites=None, **kwargs):
        badge = Badge.objects.create(
            name=name or f"Badge {uuid.uuid4().hex[:6]}",
            **kwargs
        )
        for position, (criterion_type, value) in enumerate(criteria or []):
            BadgeCriterion.objects.create(
                badge=badge,
                position=position,
                criterion_type=criterion_type,
                value=value,
            )
        if prerequisites:
            badge.prerequisites.set(prerequisites)
        return badge

    return _create_badge


@pytest.fixture
def create_gig(client_id, nairobi):
    """Factory fixture for creating posted gigs."""
    from apps.core.models import Gig, GigSkill

    def _create_gig(skills=None, **kwargs):
        now = timezone.now()
        defaults = {
            'client_id': client_id,
            'title': 'Fix a leaking kitchen sink',
            'description': 'Need a plumber to repair the sink this week',
            'category': 'home-services',
            'longitude': nairobi[0],
            'latitude': nairobi[1],
            'budget_min': Decimal('1000.00'),
            'budget_max': Decimal('5000.00'),
            'status': Gig.Status.POSTED,
            'posted_at': now,
            'expires_at': now + timedelta(days=30),
        }
        defaults.update(kwargs)
        gig = Gig.objects.create(**defaults)

        for skill in skills or []:
            GigSkill.objects.create(gig=gig, name=skill)
        return gig

    return _create_gig
