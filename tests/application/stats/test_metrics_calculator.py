from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from mnemos.application.stats.metrics_calculator import MetricsCalculator
from mnemos.application.stats.service import ReviewStatsService
from mnemos.domain.models import MasteryLevel, MemoryState, ModuleType

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


def state(item_id, mastery=MasteryLevel.REMEMBERED, reviewed_days_ago=0, due_in_days=3, **kw):
    return MemoryState(
        user_id="u1",
        item_id=item_id,
        mastery_level=mastery,
        last_reviewed_at=NOW - timedelta(days=reviewed_days_ago),
        next_review_at=NOW + timedelta(days=due_in_days),
        **kw,
    )


@pytest.fixture
def calculator():
    return MetricsCalculator()


@pytest.fixture
def mock_repo():
    return AsyncMock()


def test_distribution_and_rate(calculator):
    states = [
        state("a"),
        state("b", MasteryLevel.FUZZY),
        state("c", MasteryLevel.UNFAMILIAR),
        state("d"),
    ]
    stats = calculator.summarize("u1", states, NOW)

    assert stats.total_learned == 4
    assert stats.mastery_distribution == {"unfamiliar": 1, "fuzzy": 1, "remembered": 2}
    assert stats.mastery_rate == 0.5


def test_skipped_excluded_from_buckets(calculator):
    states = [state("a"), state("b", skipped=True, due_in_days=-2)]
    stats = calculator.summarize("u1", states, NOW)

    assert stats.skipped == 1
    assert stats.total_learned == 1
    assert stats.due_now == 0


def test_due_and_recommendation(calculator):
    states = [
        state("a", MasteryLevel.REMEMBERED, due_in_days=-3),
        state("b", MasteryLevel.UNFAMILIAR, due_in_days=-1),
        state("c", MasteryLevel.FUZZY, due_in_days=5),
    ]
    stats = calculator.summarize("u1", states, NOW)

    assert stats.due_now == 2
    # Weakest due item wins over the longest overdue one
    assert stats.next_recommended_item == "b"


def test_reviewed_today(calculator):
    states = [state("a"), state("b", reviewed_days_ago=1), state("c", reviewed_days_ago=0)]
    assert calculator.summarize("u1", states, NOW).reviewed_today == 2


def test_unreviewed_states_ignored(calculator):
    fresh = MemoryState(user_id="u1", item_id="x", skipped=False)
    stats = calculator.summarize("u1", [fresh], NOW)
    assert stats.total_learned == 0
    assert stats.streak_days == 0
    assert stats.next_recommended_item is None


def test_streak_counts_consecutive_days(calculator):
    states = [state("a", reviewed_days_ago=0), state("b", reviewed_days_ago=1), state("c", reviewed_days_ago=2)]
    assert calculator.compute_streak(states, NOW) == 3


def test_streak_survives_no_review_yet_today(calculator):
    states = [state("a", reviewed_days_ago=1), state("b", reviewed_days_ago=2)]
    assert calculator.compute_streak(states, NOW) == 2


def test_streak_broken_by_gap(calculator):
    states = [state("a", reviewed_days_ago=0), state("b", reviewed_days_ago=2)]
    assert calculator.compute_streak(states, NOW) == 1


@pytest.mark.asyncio
async def test_service_uses_repository(mock_repo):
    mock_repo.list_for_user.return_value = [state("a"), state("b", MasteryLevel.FUZZY)]
    service = ReviewStatsService(mock_repo)

    stats = await service.get_statistics("u1", NOW, module_type=ModuleType.LETTER)

    mock_repo.list_for_user.assert_awaited_once_with("u1", ModuleType.LETTER)
    assert stats.user_id == "u1"
    assert stats.total_learned == 2
