# services/skillbridge-service/src/apps/core/services/__init__.py
"""
SkillBridge Service Business Logic
"""

from shared.common.exceptions import (
    BaseServiceException,
    ValidationError,
    NotFoundError,
    ConflictError,
    StateError,
    OperationCancelledError,
)

from .progression_service import ProgressionService
from .badge_service import BadgeService, schedule_badge_reevaluation
from .course_progress_service import CourseProgressService
from .matching_service import GigMatchingService
from .gig_service import GigService
from .application_service import ApplicationService
from .criteria import Criterion, UserSnapshot, parse_criterion
from .grading import grade_answer, grade_quiz


__all__ = [
    # Services
    'ProgressionService',
    'BadgeService',
    'CourseProgressService',
    'GigMatchingService',
    'GigService',
    'ApplicationService',
    'schedule_badge_reevaluation',

    # Criteria and grading
    'Criterion',
    'UserSnapshot',
    'parse_criterion',
    'grade_answer',
    'grade_quiz',

    # Exceptions
    'BaseServiceException',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'StateError',
    'OperationCancelledError',
]
