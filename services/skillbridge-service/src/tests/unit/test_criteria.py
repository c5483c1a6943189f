# services/skillbridge-service/src/tests/unit/test_criteria.py
"""
Unit Tests for Badge Criteria

Tests for criterion parsing and evaluation against user snapshots.
"""

import pytest

from apps.core.services import UserSnapshot, ValidationError, parse_criterion
from apps.core.services.criteria import (
    CourseCompletedCriterion,
    CourseCountCriterion,
    SkillLevelCriterion,
)


def snapshot(**kwargs):
    return UserSnapshot(user_id='user-1', **kwargs)


class TestParseCriterion:
    """Tests for parse_criterion."""

    def test_course_completion_by_id(self):
        criterion = parse_criterion('course_completion', 'course-42')

        assert isinstance(criterion, CourseCompletedCriterion)
        assert criterion.course_id == 'course-42'

    def test_course_completion_by_count(self):
        criterion = parse_criterion('course_completion', 3)

        assert isinstance(criterion, CourseCountCriterion)
        assert criterion.count == 3

    def test_skill_level(self):
        criterion = parse_criterion('skill_level', {'name': 'Python', 'level': 'intermediate'})

        assert isinstance(criterion, SkillLevelCriterion)

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            parse_criterion('karma', 10)

    @pytest.mark.parametrize('criterion_type,value', [
        ('gig_completion', -1),
        ('xp_threshold', 'lots'),
        ('streak', 2.5),
        ('rating_threshold', 6),
        ('skill_level', {'level': 'advanced'}),
        ('skill_level', {'name': 'Python', 'level': 'guru'}),
        ('course_completion', True),
    ])
    def test_malformed_values(self, criterion_type, value):
        with pytest.raises(ValidationError):
            parse_criterion(criterion_type, value)


class TestEvaluateCriterion:
    """Tests for criterion evaluation."""

    def test_specific_course(self):
        criterion = parse_criterion('course_completion', 'c1')

        assert criterion.evaluate(snapshot(completed_course_ids=frozenset({'c1'}))).met
        result = criterion.evaluate(snapshot())
        assert not result.met
        assert result.progress == 0

    def test_course_count_progress(self):
        criterion = parse_criterion('course_completion', 4)
        result = criterion.evaluate(snapshot(completed_course_ids=frozenset({'a', 'b', 'c'})))

        assert not result.met
        assert result.progress == 75

    def test_skill_level_ordinal(self):
        criterion = parse_criterion('skill_level', {'name': 'python', 'level': 'intermediate'})

        assert criterion.evaluate(snapshot(skills={'python': 'advanced'})).met
        assert criterion.evaluate(snapshot(skills={'python': 'intermediate'})).met
        below = criterion.evaluate(snapshot(skills={'python': 'beginner'}))
        assert not below.met
        assert below.progress == 50
        assert criterion.evaluate(snapshot()).progress == 0

    def test_skill_name_is_case_insensitive(self):
        criterion = parse_criterion('skill_level', {'name': 'Python', 'level': 'beginner'})

        assert criterion.evaluate(snapshot(skills={'python': 'beginner'})).met

    def test_gig_completion(self):
        criterion = parse_criterion('gig_completion', 10)
        result = criterion.evaluate(snapshot(gigs_completed=4))

        assert not result.met
        assert result.progress == 40
        assert criterion.evaluate(snapshot(gigs_completed=10)).met

    def test_rating_threshold(self):
        criterion = parse_criterion('rating_threshold', 4.5)

        assert criterion.evaluate(snapshot(rating_average=4.5)).met
        assert not criterion.evaluate(snapshot(rating_average=4.49)).met

    def test_xp_threshold_progress_capped(self):
        criterion = parse_criterion('xp_threshold', 1000)

        assert criterion.evaluate(snapshot(xp=333)).progress == 33
        assert criterion.evaluate(snapshot(xp=5000)).progress == 100

    def test_streak(self):
        criterion = parse_criterion('streak', 7)

        assert criterion.evaluate(snapshot(streak_current=7)).met
        assert criterion.evaluate(snapshot(streak_current=3)).progress == 42

    def test_zero_target_is_met(self):
        assert parse_criterion('xp_threshold', 0).evaluate(snapshot()).met
