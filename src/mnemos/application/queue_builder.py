"""
Queue builder for multi-phase learning sessions.

Builds ordered session queues by:
1. Reviewing items carried over from earlier rounds/days
2. Introducing new items, with a mini-review after every full chunk
3. Running a final review over every new item in original order
"""

import logging
from collections.abc import Iterable, Sequence

from mnemos.domain.constants import DEFAULT_MINI_REVIEW_INTERVAL
from mnemos.domain.errors import InvalidInputError
from mnemos.domain.models import LearningItemRef, QueueItem, QueueSource

logger = logging.getLogger(__name__)


def expected_queue_length(
    new_count: int, previous_count: int = 0, chunk_size: int = DEFAULT_MINI_REVIEW_INTERVAL
) -> int:
    """P + N + chunk_size * floor(N / chunk_size) + N."""
    return previous_count + new_count + chunk_size * (new_count // chunk_size) + new_count


def build_session_queue(
    new_items: Sequence[LearningItemRef],
    previous_round_items: Sequence[LearningItemRef],
    round: int,
    *,
    chunk_size: int = DEFAULT_MINI_REVIEW_INTERVAL,
) -> tuple[QueueItem, ...]:
    """
    Build the deterministic queue for one round.

    Args:
        new_items: Items introduced this round, in curriculum order.
        previous_round_items: Carryover items reviewed before anything new.
        round: 1-indexed round number stamped on every entry.
        chunk_size: New items per mini-review chunk (lesson's mini_review_interval).

    Returns:
        Immutable tuple of QueueItem. A trailing partial chunk is not mini-reviewed.

    Raises:
        InvalidInputError: round < 1 or chunk_size < 1.
    """
    _validate(round, chunk_size)

    queue: list[QueueItem] = [
        QueueItem(item=ref, source=QueueSource.PREVIOUS_ROUND_REVIEW, round=round)
        for ref in previous_round_items
    ]

    chunk: list[LearningItemRef] = []
    for ref in new_items:
        queue.append(QueueItem(item=ref, source=QueueSource.NEW, round=round))
        chunk.append(ref)
        if len(chunk) == chunk_size:
            queue.extend(
                QueueItem(item=c, source=QueueSource.MINI_REVIEW, round=round) for c in chunk
            )
            chunk = []

    queue.extend(
        QueueItem(item=ref, source=QueueSource.FINAL_REVIEW, round=round) for ref in new_items
    )

    logger.debug(
        f"Built round {round} queue: {len(previous_round_items)} carryover, "
        f"{len(new_items)} new, {len(queue)} total"
    )
    return tuple(queue)


def build_remedy_queue(item_refs: Iterable[LearningItemRef], round: int) -> tuple[QueueItem, ...]:
    """Tag collected mistakes as REMEDY entries. Never spliced into the main queue."""
    _validate(round, 1)
    return tuple(QueueItem(item=ref, source=QueueSource.REMEDY, round=round) for ref in item_refs)


def _validate(round: int, chunk_size: int) -> None:
    if isinstance(round, bool) or not isinstance(round, int) or round < 1:
        raise InvalidInputError(f"round must be an int >= 1, got {round!r}")
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
        raise InvalidInputError(f"chunk_size must be an int >= 1, got {chunk_size!r}")
