# services/skillbridge-service/src/apps/core/models/__init__.py
"""
SkillBridge Service Models
"""

from .progression import UserProgress, UserSkill, XPTransaction, level_for_xp
from .badge import Badge, BadgeCriterion, UserBadge
from .course import Course, CourseModule, Quiz, QuizQuestion
from .learning import CourseProgress, ModuleProgress, QuizAttempt, CourseReview
from .gig import Gig, GigSkill, GigApplication

__all__ = [
    # Progression
    'UserProgress',
    'UserSkill',
    'XPTransaction',
    'level_for_xp',
    # Badges
    'Badge',
    'BadgeCriterion',
    'UserBadge',
    # Catalog
    'Course',
    'CourseModule',
    'Quiz',
    'QuizQuestion',
    # Learning progress
    'CourseProgress',
    'ModuleProgress',
    'QuizAttempt',
    'CourseReview',
    # Marketplace
    'Gig',
    'GigSkill',
    'GigApplication',
]
