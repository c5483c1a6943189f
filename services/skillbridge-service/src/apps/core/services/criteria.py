# services/skillbridge-service/src/apps/core/services/criteria.py
"""
Badge Criteria

Each criterion type is its own immutable class with an evaluate() method
over a UserSnapshot. Stored criteria (type tag + JSON value) are turned into
these objects by parse_criterion(); an unknown tag or malformed value is a
ValidationError, never a silently unmet rule.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, ClassVar, Dict, FrozenSet, NamedTuple, Optional, Tuple, Union

from shared.common.constants import CriterionType, SkillLevel
from shared.common.exceptions import ValidationError


@dataclass(frozen=True)
class UserSnapshot:
    """Read-only view of the user state a criterion is evaluated against."""
    user_id: str
    xp: int = 0
    streak_current: int = 0
    gigs_completed: int = 0
    rating_average: float = 0.0
    # Skill name (lower-cased) -> level
    skills: Dict[str, str] = field(default_factory=dict)
    completed_course_ids: FrozenSet[str] = frozenset()
    earned_badge_ids: FrozenSet[str] = frozenset()
    # (badge_id, course_id) pairs for course-scoped awards
    earned_course_badges: FrozenSet[Tuple[str, str]] = frozenset()

    def has_badge(self, badge_id: Any, course_id: Any = None) -> bool:
        if course_id is not None:
            return (str(badge_id), str(course_id)) in self.earned_course_badges
        return str(badge_id) in self.earned_badge_ids


class CriterionResult(NamedTuple):
    met: bool
    progress: int
    reason: Optional[str] = None


def _progress(current: Union[int, float, Decimal], target: Union[int, float, Decimal]) -> int:
    """Whole-percent progress toward a target, capped at 100."""
    if target <= 0:
        return 100
    return min(100, math.floor(float(current) / float(target) * 100))


class Criterion(ABC):
    """One rule a user must satisfy to earn a badge."""

    criterion_type: ClassVar[str]

    @abstractmethod
    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        """Evaluate against a user snapshot."""


# =============================================================================
# CRITERION TYPES
# =============================================================================

@dataclass(frozen=True)
class CourseCompletedCriterion(Criterion):
    """A specific course must be completed."""
    course_id: str
    criterion_type: ClassVar[str] = CriterionType.COURSE_COMPLETION.value

    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        if self.course_id in snapshot.completed_course_ids:
            return CriterionResult(True, 100)
        return CriterionResult(False, 0, f"Complete course {self.course_id}")


@dataclass(frozen=True)
class CourseCountCriterion(Criterion):
    """At least `count` courses must be completed."""
    count: int
    criterion_type: ClassVar[str] = CriterionType.COURSE_COMPLETION.value

    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        completed = len(snapshot.completed_course_ids)
        if completed >= self.count:
            return CriterionResult(True, 100)
        return CriterionResult(
            False,
            _progress(completed, self.count),
            f"Complete {self.count} courses ({completed}/{self.count})"
        )


@dataclass(frozen=True)
class SkillLevelCriterion(Criterion):
    """A named skill must be held at or above a level."""
    name: str
    level: str
    criterion_type: ClassVar[str] = CriterionType.SKILL_LEVEL.value

    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        required = SkillLevel.ordinal(self.level)
        held = snapshot.skills.get(self.name.strip().lower())
        current = SkillLevel.ordinal(held) if held else -1

        if current >= required:
            return CriterionResult(True, 100)

        progress = 0
        if current >= 0:
            progress = _progress(current + 1, required + 1)
        return CriterionResult(False, progress, f"Reach {self.level} in {self.name}")


@dataclass(frozen=True)
class GigCompletionCriterion(Criterion):
    count: int
    criterion_type: ClassVar[str] = CriterionType.GIG_COMPLETION.value

    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        done = snapshot.gigs_completed
        if done >= self.count:
            return CriterionResult(True, 100)
        return CriterionResult(
            False,
            _progress(done, self.count),
            f"Complete {self.count} gigs ({done}/{self.count})"
        )


@dataclass(frozen=True)
class RatingThresholdCriterion(Criterion):
    rating: float
    criterion_type: ClassVar[str] = CriterionType.RATING_THRESHOLD.value

    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        average = float(snapshot.rating_average)
        if average >= self.rating:
            return CriterionResult(True, 100)
        return CriterionResult(
            False,
            _progress(average, self.rating),
            f"Reach a {self.rating} rating (currently {average})"
        )


@dataclass(frozen=True)
class XPThresholdCriterion(Criterion):
    xp: int
    criterion_type: ClassVar[str] = CriterionType.XP_THRESHOLD.value

    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        if snapshot.xp >= self.xp:
            return CriterionResult(True, 100)
        return CriterionResult(
            False,
            _progress(snapshot.xp, self.xp),
            f"Earn {self.xp} XP ({snapshot.xp}/{self.xp})"
        )


@dataclass(frozen=True)
class StreakCriterion(Criterion):
    days: int
    criterion_type: ClassVar[str] = CriterionType.STREAK.value

    def evaluate(self, snapshot: UserSnapshot) -> CriterionResult:
        current = snapshot.streak_current
        if current >= self.days:
            return CriterionResult(True, 100)
        return CriterionResult(
            False,
            _progress(current, self.days),
            f"Keep a {self.days}-day streak ({current}/{self.days})"
        )


# =============================================================================
# PARSING
# =============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _count(value: Any, criterion_type: str) -> int:
    if not _is_number(value) or value < 0 or int(value) != value:
        raise ValidationError(
            f"{criterion_type} criterion requires a non-negative whole number",
            field='value'
        )
    return int(value)


def _parse_course_completion(value: Any) -> Criterion:
    if isinstance(value, str) and value.strip():
        return CourseCompletedCriterion(course_id=value.strip())
    return CourseCountCriterion(count=_count(value, CriterionType.COURSE_COMPLETION.value))


def _parse_skill_level(value: Any) -> Criterion:
    if not isinstance(value, dict) or not value.get('name'):
        raise ValidationError("skill_level criterion requires {name, level}", field='value')
    level = value.get('level', SkillLevel.BEGINNER.value)
    if SkillLevel.ordinal(level) < 0:
        raise ValidationError(f"Unknown skill level: {level}", field='value')
    return SkillLevelCriterion(name=str(value['name']), level=level)


def _parse_rating(value: Any) -> Criterion:
    if not _is_number(value) or not 0 <= value <= 5:
        raise ValidationError("rating_threshold criterion requires a number in [0, 5]", field='value')
    return RatingThresholdCriterion(rating=float(value))


CRITERION_PARSERS: Dict[str, Callable[[Any], Criterion]] = {
    CriterionType.COURSE_COMPLETION.value: _parse_course_completion,
    CriterionType.SKILL_LEVEL.value: _parse_skill_level,
    CriterionType.GIG_COMPLETION.value: lambda v: GigCompletionCriterion(
        count=_count(v, CriterionType.GIG_COMPLETION.value)
    ),
    CriterionType.RATING_THRESHOLD.value: _parse_rating,
    CriterionType.XP_THRESHOLD.value: lambda v: XPThresholdCriterion(
        xp=_count(v, CriterionType.XP_THRESHOLD.value)
    ),
    CriterionType.STREAK.value: lambda v: StreakCriterion(
        days=_count(v, CriterionType.STREAK.value)
    ),
}


def parse_criterion(criterion_type: str, value: Any) -> Criterion:
    """
    Build a typed criterion from its stored tag and value.

    Raises:
        ValidationError: Unknown type or malformed value
    """
    parser = CRITERION_PARSERS.get(str(criterion_type))
    if parser is None:
        raise ValidationError(f"Unknown criterion type: {criterion_type}", field='criterion_type')
    return parser(value)
