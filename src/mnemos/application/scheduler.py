"""
SM-2 review scheduler.

Pure computation module with no I/O. Given the previous memory state and a
quality score, produces the next memory state. The input is never mutated.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from mnemos.domain.constants import (
    DEFAULT_TIMELINE_LENGTH,
    FIRST_INTERVAL_DAYS,
    INITIAL_EASINESS_FACTOR,
    LAPSE_INTERVAL_DAYS,
    MAX_QUALITY,
    MIN_EASINESS_FACTOR,
    MIN_QUALITY,
    PASSING_QUALITY,
    SECOND_INTERVAL_DAYS,
)
from mnemos.domain.errors import InvalidInputError
from mnemos.domain.models import MasteryLevel, MemoryState, ModuleType

logger = logging.getLogger(__name__)


def next_easiness(easiness_factor: float, quality: int) -> float:
    """EF' = max(1.3, EF + (0.1 - (5-q) * (0.08 + (5-q) * 0.02)))."""
    miss = MAX_QUALITY - quality
    return max(MIN_EASINESS_FACTOR, easiness_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def next_interval(repetition_count: int, previous_interval: int, easiness_factor: float) -> int:
    """
    Interval ladder for a successful review.

    Args:
        repetition_count: Successful repetitions *including* this one.
        previous_interval: Interval before this review.
        easiness_factor: The already-updated easiness factor.
    """
    if repetition_count == 1:
        return FIRST_INTERVAL_DAYS
    if repetition_count == 2:
        return SECOND_INTERVAL_DAYS
    return round(previous_interval * easiness_factor)


def mastery_for(quality: int) -> MasteryLevel:
    if quality < PASSING_QUALITY:
        return MasteryLevel.UNFAMILIAR
    if quality == PASSING_QUALITY:
        return MasteryLevel.FUZZY
    return MasteryLevel.REMEMBERED


def _validate_quality(quality: int) -> None:
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidInputError(f"Quality must be an int, got {quality!r}")
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidInputError(f"Quality {quality} is outside {MIN_QUALITY}..{MAX_QUALITY}")


def schedule(
    state: MemoryState | None,
    quality: int,
    now: datetime,
    *,
    user_id: str,
    item_id: str,
    module_type: ModuleType = ModuleType.LETTER,
) -> MemoryState:
    """
    Apply one SM-2 review.

    Args:
        state: Previous memory state, or None on the first answer.
        quality: Integer quality in 1..5 (see grading.grade).
        now: Review timestamp (timezone-aware, UTC preferred).
        user_id / item_id / module_type: Identity used when state is None.

    Returns:
        A new MemoryState.

    Raises:
        InvalidInputError: quality is not an int in 1..5.
    """
    _validate_quality(quality)

    if state is None:
        state = MemoryState(user_id=user_id, item_id=item_id, module_type=module_type)

    easiness = next_easiness(state.easiness_factor, quality)

    if quality < PASSING_QUALITY:
        repetitions = 0
        interval = LAPSE_INTERVAL_DAYS
    else:
        repetitions = state.repetition_count + 1
        interval = next_interval(repetitions, state.interval_days, easiness)

    correct = quality >= PASSING_QUALITY
    updated = replace(
        state,
        mastery_level=mastery_for(quality),
        easiness_factor=easiness,
        interval_days=interval,
        repetition_count=repetitions,
        last_reviewed_at=now,
        next_review_at=now + timedelta(days=interval),
        correct_count=state.correct_count + (1 if correct else 0),
        wrong_count=state.wrong_count + (0 if correct else 1),
        streak_correct=state.streak_correct + 1 if correct else 0,
    )

    logger.debug(
        f"Scheduled {state.item_id} q={quality}: ef {state.easiness_factor:.2f}->{easiness:.2f}, "
        f"interval {state.interval_days}->{interval}d, reps {repetitions}"
    )
    return updated


def preview_timeline(
    state: MemoryState | None, count: int = DEFAULT_TIMELINE_LENGTH
) -> list[int]:
    """
    Project the next `count` intervals (in days) assuming perfect recall.

    Used for "what happens if I keep getting this right" previews.
    """
    if count < 1:
        raise InvalidInputError(f"count must be >= 1, got {count}")

    easiness = state.easiness_factor if state else INITIAL_EASINESS_FACTOR
    interval = state.interval_days if state else 0
    repetitions = state.repetition_count if state else 0

    timeline: list[int] = []
    for _ in range(count):
        easiness = next_easiness(easiness, MAX_QUALITY)
        repetitions += 1
        interval = next_interval(repetitions, interval, easiness)
        timeline.append(interval)
    return timeline


def utc_day_range(now: datetime) -> tuple[datetime, datetime]:
    """Return [start, end) of the UTC day containing `now`."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def is_due(state: MemoryState, now: datetime) -> bool:
    """
    An item is due when its next review falls before the end of the current UTC day.

    Skipped items and items never reviewed are not due.
    """
    if state.skipped or state.next_review_at is None:
        return False
    _, end = utc_day_range(now)
    return _as_utc(state.next_review_at) < end


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
