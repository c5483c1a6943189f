# services/skillbridge-service/src/tests/unit/test_progression_service.py
"""
Unit Tests for ProgressionService

Tests for XP, levels, streaks, skills and reputation.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from apps.core.models import UserProgress, XPTransaction
from apps.core.services import (
    ProgressionService,
    ValidationError,
    NotFoundError,
    OperationCancelledError,
)
from shared.common.constants import XPSource
from shared.common.utils import Deadline


@pytest.mark.django_db
class TestAddXP:
    """Tests for ProgressionService.add_xp."""

    def setup_method(self):
        """Set up test dependencies."""
        self.service = ProgressionService()

    def test_add_xp_creates_progress(self, user_id):
        result = self.service.add_xp(user_id, 250, XPSource.BONUS, reason='Welcome')

        assert result == {
            'new_xp': 250,
            'new_level': 1,
            'leveled_up': False,
            'xp_added': 250,
            'duplicate': False,
        }
        assert UserProgress.objects.get(user_id=user_id).xp == 250

    def test_level_up(self, user_id):
        self.service.add_xp(user_id, 900, XPSource.BONUS)
        result = self.service.add_xp(user_id, 150, XPSource.BONUS)

        assert result['new_xp'] == 1050
        assert result['new_level'] == 2
        assert result['leveled_up'] is True

    def test_level_matches_xp(self, user_id):
        for amount in (300, 700, 1999, 1):
            result = self.service.add_xp(user_id, amount, XPSource.BONUS)
            assert result['new_level'] == result['new_xp'] // 1000 + 1

    def test_negative_amount_rejected(self, user_id):
        with pytest.raises(ValidationError):
            self.service.add_xp(user_id, -10, XPSource.BONUS)

        assert not XPTransaction.objects.exists()

    def test_non_integer_amount_rejected(self, user_id):
        with pytest.raises(ValidationError):
            self.service.add_xp(user_id, 10.5, XPSource.BONUS)

    def test_unknown_source_rejected(self, user_id):
        with pytest.raises(ValidationError):
            self.service.add_xp(user_id, 10, 'lottery')

    def test_zero_amount_is_noop(self, user_id):
        result = self.service.add_xp(user_id, 0, XPSource.BONUS)

        assert result['xp_added'] == 0
        assert not XPTransaction.objects.exists()

    def test_reward_key_credits_once(self, user_id):
        self.service.add_xp(user_id, 100, XPSource.QUIZ_ATTEMPT, reward_key='quiz:1:1')
        second = self.service.add_xp(user_id, 100, XPSource.QUIZ_ATTEMPT, reward_key='quiz:1:1')

        assert second['duplicate'] is True
        assert second['xp_added'] == 0
        assert UserProgress.objects.get(user_id=user_id).xp == 100
        assert XPTransaction.objects.count() == 1

    def test_ledger_records_balance(self, user_id):
        self.service.add_xp(user_id, 600, XPSource.BONUS, reason='First')
        self.service.add_xp(user_id, 600, XPSource.BONUS, reason='Second')

        latest = XPTransaction.objects.order_by('-balance_after').first()
        assert latest.balance_after == 1200
        assert latest.level_after == 2
        assert latest.reason == 'Second'

    def test_cancelled_deadline_aborts_without_changes(self, user_id):
        deadline = Deadline()
        deadline.cancel()

        with pytest.raises(OperationCancelledError):
            self.service.add_xp(user_id, 100, XPSource.BONUS, deadline=deadline)

        assert ProgressionService.get_or_create_progress(user_id).xp == 0

    def test_events_published_on_commit(self, user_id, django_capture_on_commit_callbacks):
        from apps.core.events.publishers import EventPublisher
        from shared.common.events import EventTypes

        with django_capture_on_commit_callbacks(execute=True):
            self.service.add_xp(user_id, 1200, XPSource.BONUS, reason='Boost')

        awarded = EventPublisher.get_memory_events(EventTypes.XP_AWARDED)
        level_up = EventPublisher.get_memory_events(EventTypes.LEVEL_UP)
        assert len(awarded) == 1
        assert awarded[0]['data']['amount'] == 1200
        assert awarded[0]['data']['user_id'] == str(user_id)
        assert level_up[0]['data']['old_level'] == 1
        assert level_up[0]['data']['new_level'] == 2


@pytest.mark.django_db
class TestStreaks:
    """Tests for streak bookkeeping."""

    def setup_method(self):
        """Set up test dependencies."""
        self.service = ProgressionService()

    def test_consecutive_days_then_gap(self, user_id):
        day1 = date(2024, 3, 1)

        self.service.add_xp(user_id, 10, XPSource.MODULE_COMPLETION, activity_date=day1)
        self.service.add_xp(user_id, 10, XPSource.MODULE_COMPLETION, activity_date=day1 + timedelta(days=1))
        progress = UserProgress.objects.get(user_id=user_id)
        assert progress.streak_current == 2

        self.service.add_xp(user_id, 10, XPSource.MODULE_COMPLETION, activity_date=day1 + timedelta(days=3))
        progress.refresh_from_db()
        assert progress.streak_current == 1
        assert progress.streak_longest == 2
        assert progress.last_activity_date == day1 + timedelta(days=3)

    def test_same_day_unchanged(self, user_id):
        today = date(2024, 3, 1)

        self.service.add_xp(user_id, 10, XPSource.COURSE_COMPLETION, activity_date=today)
        self.service.add_xp(user_id, 10, XPSource.COURSE_COMPLETION, activity_date=today)

        assert UserProgress.objects.get(user_id=user_id).streak_current == 1

    def test_non_qualifying_source_ignores_streak(self, user_id):
        self.service.add_xp(user_id, 10, XPSource.BADGE_AWARD, activity_date=date(2024, 3, 1))

        progress = UserProgress.objects.get(user_id=user_id)
        assert progress.streak_current == 0
        assert progress.last_activity_date is None

    def test_backdated_activity_ignored(self):
        progress = UserProgress(streak_current=3, streak_longest=3, last_activity_date=date(2024, 3, 10))

        ProgressionService.update_streak(progress, date(2024, 3, 8))

        assert progress.streak_current == 3
        assert progress.last_activity_date == date(2024, 3, 10)


@pytest.mark.django_db
class TestSkillsAndReputation:
    """Tests for skills, gig reputation and queries."""

    def setup_method(self):
        """Set up test dependencies."""
        self.service = ProgressionService()

    def test_set_skill_upserts_case_insensitively(self, user_id):
        self.service.set_skill(user_id, 'Python', 'beginner')
        skill = self.service.set_skill(user_id, 'python', 'advanced', verified=True)

        progress = UserProgress.objects.get(user_id=user_id)
        assert progress.skills.count() == 1
        assert skill.level == 'advanced'
        assert skill.verified is True

    def test_set_skill_unknown_level(self, user_id):
        with pytest.raises(ValidationError):
            self.service.set_skill(user_id, 'Python', 'guru')

    def test_record_gig_completion_folds_rating(self, user_id):
        self.service.record_gig_completion(user_id, 5)
        progress = self.service.record_gig_completion(user_id, 4)

        assert progress.gigs_completed == 2
        assert progress.rating_count == 2
        assert progress.rating_average == Decimal('4.50')

    def test_record_gig_completion_without_rating(self, user_id):
        progress = self.service.record_gig_completion(user_id)

        assert progress.gigs_completed == 1
        assert progress.rating_count == 0

    def test_record_gig_completion_invalid_rating(self, user_id):
        with pytest.raises(ValidationError):
            self.service.record_gig_completion(user_id, 6)

    def test_summary(self, user_id):
        self.service.add_xp(user_id, 1500, XPSource.BONUS)
        self.service.set_skill(user_id, 'Plumbing', 'intermediate')

        summary = self.service.get_summary(user_id)

        assert summary['level'] == 2
        assert summary['next_level_xp'] == 2000
        assert summary['xp_progress'] == 50.0
        assert summary['skills'][0]['name'] == 'Plumbing'

    def test_leaderboard_ordering(self, user_id, client_id):
        self.service.add_xp(user_id, 100, XPSource.BONUS)
        self.service.add_xp(client_id, 300, XPSource.BONUS)

        leaders = self.service.get_leaderboard(limit=2)

        assert [entry['user_id'] for entry in leaders] == [str(client_id), str(user_id)]
        assert leaders[0]['rank'] == 1

    def test_xp_history_unknown_user(self, user_id):
        with pytest.raises(NotFoundError):
            self.service.get_xp_history(user_id)
