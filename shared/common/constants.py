# shared/common/constants.py
"""
Shared Constants and Enumerations for the SkillBridge platform
"""

from enum import Enum


# =============================================================================
# SERVICE CONFIGURATION
# =============================================================================

SERVICE_NAME = 'skillbridge-service'

EVENT_SUBJECT_PREFIX = 'skillbridge'


# =============================================================================
# PROGRESSION
# =============================================================================

# Level = floor(xp / XP_PER_LEVEL) + 1
XP_PER_LEVEL = 1000

EARTH_RADIUS_KM = 6371


class SkillLevel(str, Enum):
    """Skill proficiency, ordered from lowest to highest"""
    BEGINNER = 'beginner'
    INTERMEDIATE = 'intermediate'
    ADVANCED = 'advanced'

    @classmethod
    def ordinal(cls, value: str) -> int:
        """Position of a level in the proficiency order, -1 if unknown."""
        for index, member in enumerate(cls):
            if member.value == value:
                return index
        return -1


class XPSource(str, Enum):
    """Reasons an XP amount is credited"""
    COURSE_ENROLLMENT = 'course_enrollment'
    MODULE_COMPLETION = 'module_completion'
    COURSE_COMPLETION = 'course_completion'
    QUIZ_ATTEMPT = 'quiz_attempt'
    BADGE_AWARD = 'badge_award'
    GIG_ACCEPTED = 'gig_accepted'
    GIG_COMPLETION = 'gig_completion'
    BONUS = 'bonus'


# Sources that count as daily activity for streak bookkeeping
STREAK_QUALIFYING_SOURCES = frozenset({
    XPSource.COURSE_ENROLLMENT.value,
    XPSource.MODULE_COMPLETION.value,
    XPSource.COURSE_COMPLETION.value,
    XPSource.QUIZ_ATTEMPT.value,
    XPSource.GIG_COMPLETION.value,
})


# =============================================================================
# BADGES
# =============================================================================

class BadgeRarity(str, Enum):
    COMMON = 'common'
    UNCOMMON = 'uncommon'
    RARE = 'rare'
    EPIC = 'epic'
    LEGENDARY = 'legendary'


RARITY_SCORES = {
    BadgeRarity.COMMON.value: 1,
    BadgeRarity.UNCOMMON.value: 2,
    BadgeRarity.RARE.value: 3,
    BadgeRarity.EPIC.value: 4,
    BadgeRarity.LEGENDARY.value: 5,
}


class CriterionType(str, Enum):
    COURSE_COMPLETION = 'course_completion'
    SKILL_LEVEL = 'skill_level'
    GIG_COMPLETION = 'gig_completion'
    RATING_THRESHOLD = 'rating_threshold'
    XP_THRESHOLD = 'xp_threshold'
    STREAK = 'streak'


# =============================================================================
# LEARNING
# =============================================================================

class ProgressStatus(str, Enum):
    NOT_STARTED = 'not-started'
    IN_PROGRESS = 'in-progress'
    COMPLETED = 'completed'
    ABANDONED = 'abandoned'


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = 'multiple-choice'
    TRUE_FALSE = 'true-false'
    FILL_BLANK = 'fill-blank'
    SHORT_ANSWER = 'short-answer'


# Weight of modules and quiz in the aggregate percentage of a quizzed course
MODULE_WEIGHT_WITH_QUIZ = 80
QUIZ_WEIGHT = 20


# =============================================================================
# MARKETPLACE
# =============================================================================

class GigStatus(str, Enum):
    DRAFT = 'draft'
    POSTED = 'posted'
    IN_PROGRESS = 'in-progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    DISPUTED = 'disputed'


class ApplicationStatus(str, Enum):
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    WITHDRAWN = 'withdrawn'


class GigPriority(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    URGENT = 'urgent'


PRIORITY_RANKS = {
    GigPriority.LOW.value: 0,
    GigPriority.MEDIUM.value: 1,
    GigPriority.HIGH.value: 2,
    GigPriority.URGENT.value: 3,
}


# =============================================================================
# ERROR CODES
# =============================================================================

ERROR_CODES = {
    'VALIDATION_ERROR': 'Input validation failed',
    'NOT_FOUND': 'Resource not found',
    'CONFLICT': 'Resource conflict',
    'INVALID_STATE': 'Operation not allowed in the current state',
    'CANCELLED': 'Operation cancelled',
}
