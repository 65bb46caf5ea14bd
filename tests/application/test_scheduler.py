from datetime import datetime, timedelta, timezone

import pytest

from mnemos.application.scheduler import (
    is_due,
    next_easiness,
    preview_timeline,
    schedule,
    utc_day_range,
)
from mnemos.domain.errors import InvalidInputError
from mnemos.domain.models import MasteryLevel, MemoryState

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


def run(qualities, state=None, now=NOW):
    for q in qualities:
        state = schedule(state, q, now, user_id="u1", item_id="a")
        now = now + timedelta(days=state.interval_days)
    return state


class TestSchedule:
    """Tests for the SM-2 update."""

    def test_first_success(self):
        state = schedule(None, 5, NOW, user_id="u1", item_id="a")
        assert state.user_id == "u1"
        assert state.item_id == "a"
        assert state.repetition_count == 1
        assert state.interval_days == 1
        assert state.easiness_factor == pytest.approx(2.6)
        assert state.mastery_level == MasteryLevel.REMEMBERED
        assert state.last_reviewed_at == NOW
        assert state.next_review_at == NOW + timedelta(days=1)

    def test_interval_ladder(self):
        intervals = []
        state = None
        for _ in range(4):
            state = run([5], state)
            intervals.append(state.interval_days)
        # 1, 6, round(6 * 2.8) = 17, round(17 * 2.9) = 49
        assert intervals == [1, 6, 17, 49]

    def test_quality_three_is_fuzzy(self):
        state = schedule(None, 3, NOW, user_id="u1", item_id="a")
        assert state.mastery_level == MasteryLevel.FUZZY
        assert state.repetition_count == 1
        assert state.easiness_factor == pytest.approx(2.36)

    def test_lapse_resets(self):
        state = run([5, 5, 5])
        assert state.repetition_count == 3

        lapsed = schedule(state, 2, NOW, user_id="u1", item_id="a")
        assert lapsed.repetition_count == 0
        assert lapsed.interval_days == 1
        assert lapsed.mastery_level == MasteryLevel.UNFAMILIAR
        assert lapsed.streak_correct == 0
        assert lapsed.wrong_count == 1

    def test_easiness_floor(self):
        state = run([1] * 20)
        assert state.easiness_factor == pytest.approx(1.3)

    @pytest.mark.parametrize("qualities", [[3] * 8, [4, 3, 5, 3, 4, 3, 3], [3, 4] * 4])
    def test_intervals_never_shrink_on_success(self, qualities):
        state = None
        previous = 0
        for q in qualities:
            state = run([q], state)
            assert state.interval_days >= previous
            previous = state.interval_days

    def test_input_not_mutated(self):
        original = MemoryState(user_id="u1", item_id="a", interval_days=6, repetition_count=2)
        schedule(original, 5, NOW, user_id="u1", item_id="a")
        assert original.interval_days == 6
        assert original.repetition_count == 2

    def test_counters(self):
        state = run([5, 4, 2, 5])
        assert state.correct_count == 3
        assert state.wrong_count == 1
        assert state.streak_correct == 1

    @pytest.mark.parametrize("quality", [0, 6, "5", 4.0, True])
    def test_rejects_invalid_quality(self, quality):
        with pytest.raises(InvalidInputError):
            schedule(None, quality, NOW, user_id="u1", item_id="a")


class TestEasiness:
    def test_formula(self):
        assert next_easiness(2.5, 5) == pytest.approx(2.6)
        assert next_easiness(2.5, 4) == pytest.approx(2.5)
        assert next_easiness(2.5, 1) == pytest.approx(1.96)

    def test_floor(self):
        assert next_easiness(1.3, 1) == 1.3


class TestTimeline:
    """Tests for the perfect-recall projection."""

    def test_fresh_item(self):
        assert preview_timeline(None, 4) == [1, 6, 17, 49]

    def test_continues_from_state(self):
        state = run([5, 5])
        assert preview_timeline(state, 1) == [17]

    def test_rejects_zero_count(self):
        with pytest.raises(InvalidInputError):
            preview_timeline(None, 0)


class TestDue:
    """Tests for UTC-day due checks."""

    def test_day_range(self):
        start, end = utc_day_range(NOW)
        assert start == datetime(2024, 3, 10, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 11, tzinfo=timezone.utc)

    def test_due_later_today(self):
        state = MemoryState(user_id="u1", item_id="a", next_review_at=NOW + timedelta(hours=5))
        assert is_due(state, NOW)

    def test_not_due_tomorrow(self):
        state = MemoryState(
            user_id="u1", item_id="a", next_review_at=datetime(2024, 3, 11, tzinfo=timezone.utc)
        )
        assert not is_due(state, NOW)

    def test_skipped_never_due(self):
        state = MemoryState(
            user_id="u1", item_id="a", next_review_at=NOW - timedelta(days=3), skipped=True
        )
        assert not is_due(state, NOW)

    def test_unreviewed_not_due(self):
        assert not is_due(MemoryState(user_id="u1", item_id="a"), NOW)
