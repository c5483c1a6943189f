# Shared Common Library for the SkillBridge platform
# This package contains the error taxonomy, event bus, validators,
# constants and helpers used by the skillbridge service.

__version__ = "1.0.0"

# Export commonly used components
from .exceptions import (
    BaseServiceException,
    ValidationError,
    NotFoundError,
    ConflictError,
    StateError,
    OperationCancelledError,
)

from .validators import (
    validate_uuid,
    validate_range,
    validate_rating,
    validate_coordinates,
    validate_choice,
)

from .constants import (
    XP_PER_LEVEL,
    SkillLevel,
    XPSource,
    BadgeRarity,
    CriterionType,
    ProgressStatus,
    GigStatus,
    ApplicationStatus,
    ERROR_CODES,
)

from .utils import (
    Deadline,
    check_deadline,
    haversine_distance_km,
)

__all__ = [
    # Version
    '__version__',

    # Exceptions
    'BaseServiceException',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'StateError',
    'OperationCancelledError',

    # Validators
    'validate_uuid',
    'validate_range',
    'validate_rating',
    'validate_coordinates',
    'validate_choice',

    # Constants
    'XP_PER_LEVEL',
    'SkillLevel',
    'XPSource',
    'BadgeRarity',
    'CriterionType',
    'ProgressStatus',
    'GigStatus',
    'ApplicationStatus',
    'ERROR_CODES',

    # Utilities
    'Deadline',
    'check_deadline',
    'haversine_distance_km',
]
