"""
Domain models for the memory and session engine.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .constants import INITIAL_EASINESS_FACTOR


class Outcome(str, Enum):
    """A learner's self-report for one presentation of an item."""

    KNOW = "know"
    FUZZY = "fuzzy"
    FORGET = "forget"


class MasteryLevel(str, Enum):
    UNFAMILIAR = "unfamiliar"
    FUZZY = "fuzzy"
    REMEMBERED = "remembered"


class ModuleType(str, Enum):
    LETTER = "letter"
    WORD = "word"
    SENTENCE = "sentence"
    ARTICLE = "article"


class QueueSource(str, Enum):
    NEW = "new"
    MINI_REVIEW = "mini_review"
    FINAL_REVIEW = "final_review"
    PREVIOUS_ROUND_REVIEW = "previous_round_review"
    REMEDY = "remedy"


class Phase(str, Enum):
    YESTERDAY_REVIEW = "yesterday_review"
    YESTERDAY_REMEDY = "yesterday_remedy"
    TODAY_LEARNING = "today_learning"
    TODAY_MINI_REVIEW = "today_mini_review"
    TODAY_FINAL_REVIEW = "today_final_review"
    TODAY_REMEDY = "today_remedy"
    ROUND_EVALUATION = "round_evaluation"
    FINISHED = "finished"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class LearningItemRef:
    """
    Reference to a piece of content owned by the content provider.

    Attributes:
        item_id: Stable content identifier.
        module_type: Which learning module the item belongs to.
        lesson_ids: Lessons that teach this item.
        label: Display text (e.g. the letter itself), informational only.
    """

    item_id: str
    module_type: ModuleType = ModuleType.LETTER
    lesson_ids: tuple[str, ...] = ()
    label: str | None = None


@dataclass(frozen=True)
class QueueItem:
    """One typed entry of a session queue. Immutable once the queue is built."""

    item: LearningItemRef
    source: QueueSource
    round: int

    @property
    def item_id(self) -> str:
        return self.item.item_id


@dataclass(frozen=True)
class MemoryState:
    """
    SM-2 memory state for one user x item pair.

    Attributes:
        easiness_factor: Never below 1.3.
        interval_days: Days until the next review (0 before the first answer).
        repetition_count: Consecutive successful reviews.
        skipped: Removed from review rotation by the learner; never deleted.
    """

    user_id: str
    item_id: str
    module_type: ModuleType = ModuleType.LETTER
    mastery_level: MasteryLevel = MasteryLevel.UNFAMILIAR
    easiness_factor: float = INITIAL_EASINESS_FACTOR
    interval_days: int = 0
    repetition_count: int = 0
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None
    skipped: bool = False

    # Lifetime counters
    correct_count: int = 0
    wrong_count: int = 0
    streak_correct: int = 0


@dataclass
class SessionSnapshot:
    """
    Resumable position of one user inside one lesson.

    The first six fields are the recovery contract; the rest are what the
    service needs to rebuild the exact traversal after a crash.
    """

    lesson_id: str
    round: int
    phase: Phase
    answered_count: int
    current_index: int
    status: SessionStatus

    user_id: str = ""
    module_type: ModuleType = ModuleType.LETTER
    carryover_item_ids: list[str] = field(default_factory=list)
    mistake_item_ids: list[str] = field(default_factory=list)
    remedy_index: int = 0
    final_review_correct: int = 0
    retry_count: int = 0
    updated_at: datetime | None = None


@dataclass(frozen=True)
class RoundEvaluation:
    """
    Outcome of the ROUND_EVALUATION boundary.

    Attributes:
        round: The round that was evaluated.
        pass_rate: correct final-review answers / final-review items.
        promote: pass_rate met the lesson's minimum.
        next_round: Round the learner continues with (unchanged on retry).
        finished: The lesson is complete.
        forced: Advanced without promotion after exhausting retries.
    """

    round: int
    pass_rate: float
    promote: bool
    next_round: int
    finished: bool = False
    forced: bool = False


@dataclass(frozen=True)
class AnswerResult:
    quality: int
    next_review_at: datetime | None
    phase: Phase
    round: int


@dataclass(frozen=True)
class AggregateProgress:
    """
    Aggregate mastery progress used to derive module unlocks.

    The *_unlocked flags carry grants already persisted, so unlocks are never
    revoked.
    """

    letter_completed: bool = False
    letter_progress: float = 0.0
    word_mastery: float = 0.0
    sentence_mastery: float = 0.0
    word_unlocked: bool = False
    sentence_unlocked: bool = False
    article_unlocked: bool = False


@dataclass(frozen=True)
class RoundRecord:
    """One entry of a user's round history."""

    lesson_id: str
    round: int
    pass_rate: float
    promote: bool
    evaluated_at: datetime | None = None


@dataclass
class UserProgress:
    """
    Per-user learning progress document.

    Unlock flags only ever go from False to True.
    """

    user_id: str
    completed_lessons: list[str] = field(default_factory=list)
    round_history: list[RoundRecord] = field(default_factory=list)
    letter_progress: float = 0.0
    letter_completed: bool = False
    word_unlocked: bool = False
    sentence_unlocked: bool = False
    article_unlocked: bool = False
    daily_limit: int | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class UnlockInfo:
    word_unlocked: bool
    sentence_unlocked: bool
    article_unlocked: bool
    letter_progress: float
