# services/skillbridge-service/src/apps/core/conf.py
"""
Engine settings with built-in defaults.

Deployments override individual keys through the SKILLBRIDGE settings dict.
"""

from typing import Any

from django.conf import settings

DEFAULTS = {
    'ENROLLMENT_XP': 25,
    'DEFAULT_MODULE_XP': 50,
    'DEFAULT_COURSE_XP': 500,
    'DEFAULT_QUIZ_XP': 100,
    'FAILED_QUIZ_XP_RATIO': 0.3,
    'GIG_ACCEPTED_XP': 150,
    'GIG_COMPLETION_MIN_XP': 200,
    'GIG_COMPLETION_BUDGET_RATIO': 0.1,
    'DEFAULT_PASSING_SCORE': 70,
    'DEFAULT_ATTEMPTS_ALLOWED': 3,
    'DEFAULT_MAX_APPLICATIONS': 10,
    'GIG_EXPIRY_DAYS': 30,
    'NEARBY_MAX_DISTANCE_METERS': 10000,
    'SEARCH_RADIUS_KM': 50,
    'SEARCH_RESULT_LIMIT': 20,
    'RECOMMENDATION_LIMIT': 5,
    'BADGE_REEVALUATION': 'async',
}


def engine_setting(name: str) -> Any:
    """Look up an engine tunable, falling back to the default."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown engine setting: {name}")
    overrides = getattr(settings, 'SKILLBRIDGE', {})
    return overrides.get(name, DEFAULTS[name])
