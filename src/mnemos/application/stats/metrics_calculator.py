"""
Metrics calculator for deriving review statistics from memory states.

This is a pure computation module with no I/O.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from mnemos.application.scheduler import is_due, utc_day_range
from mnemos.domain.models import MasteryLevel, MemoryState

# Days scanned backwards when counting a streak
MAX_STREAK_DAYS = 365


@dataclass
class ReviewStatistics:
    """
    Aggregate review statistics for one user.
    """

    user_id: str
    total_learned: int
    mastery_distribution: dict[str, int] = field(default_factory=dict)
    mastery_rate: float = 0.0  # remembered / learned
    due_now: int = 0
    reviewed_today: int = 0
    skipped: int = 0
    streak_days: int = 0
    next_recommended_item: str | None = None


class MetricsCalculator:
    """
    Computes ReviewStatistics from a user's memory states.

    Stateless and side-effect free.
    """

    def summarize(self, user_id: str, states: list[MemoryState], now: datetime) -> ReviewStatistics:
        start, end = utc_day_range(now)
        distribution = {level.value: 0 for level in MasteryLevel}
        reviewed_today = 0
        skipped = 0
        due: list[MemoryState] = []

        for state in states:
            reviewed = _utc(state.last_reviewed_at)
            if reviewed is not None and start <= reviewed < end:
                reviewed_today += 1

            if state.skipped:
                skipped += 1
                continue

            if state.last_reviewed_at is None:
                continue
            distribution[state.mastery_level.value] += 1
            if is_due(state, now):
                due.append(state)

        learned = sum(distribution.values())
        rate = distribution[MasteryLevel.REMEMBERED.value] / learned if learned else 0.0

        return ReviewStatistics(
            user_id=user_id,
            total_learned=learned,
            mastery_distribution=distribution,
            mastery_rate=rate,
            due_now=len(due),
            reviewed_today=reviewed_today,
            skipped=skipped,
            streak_days=self.compute_streak(states, now),
            next_recommended_item=self._recommend(due),
        )

    def compute_streak(self, states: list[MemoryState], now: datetime) -> int:
        """
        Consecutive UTC days with at least one review, counting back from today.

        A streak is not broken by today having no reviews yet.
        """
        days: set[date] = {
            _utc(s.last_reviewed_at).date() for s in states if s.last_reviewed_at is not None
        }
        if not days:
            return 0

        check = utc_day_range(now)[0].date()
        streak = 0
        for i in range(MAX_STREAK_DAYS):
            if check in days:
                streak += 1
            elif i > 0:
                break
            check -= timedelta(days=1)
        return streak

    def _recommend(self, due: list[MemoryState]) -> str | None:
        """Weakest due item first, then the longest overdue."""
        if not due:
            return None
        priority = {
            MasteryLevel.UNFAMILIAR: 0,
            MasteryLevel.FUZZY: 1,
            MasteryLevel.REMEMBERED: 2,
        }
        due = sorted(due, key=lambda s: (priority[s.mastery_level], _utc(s.next_review_at)))
        return due[0].item_id


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
