"""
Learning session orchestration.

The service keeps no per-session state between calls: every operation
loads the persisted snapshot, rebuilds the round's queue from the lesson's
items plus the snapshot's carryover ids, and replays the cursor. That makes
an interrupted session resume exactly where it stopped.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from mnemos.application.grading import coerce_outcome, coerce_quality, grade
from mnemos.application.lessons import LessonCatalog, LessonMetadata
from mnemos.application.phase_machine import (
    REMEDY_PHASES,
    REVIEW_PHASES,
    TERMINAL_PHASES,
    PhaseStateMachine,
    initial_phase,
    phase_for_source,
)
from mnemos.application.queue_builder import build_remedy_queue, build_session_queue
from mnemos.application.scheduler import schedule
from mnemos.application.unlock import UnlockGate
from mnemos.domain.constants import DEFAULT_DAILY_LIMIT, PASSING_QUALITY
from mnemos.domain.errors import InvalidInputError, InvariantViolation, NotFoundError
from mnemos.domain.interfaces import ContentProvider
from mnemos.domain.models import (
    AggregateProgress,
    AnswerResult,
    LearningItemRef,
    MasteryLevel,
    MemoryState,
    ModuleType,
    Outcome,
    Phase,
    QueueItem,
    QueueSource,
    RoundEvaluation,
    RoundRecord,
    SessionSnapshot,
    SessionStatus,
    UnlockInfo,
    UserProgress,
)
from mnemos.infrastructure.repositories import (
    MemoryStateRepository,
    ProgressRepository,
    SessionRecoveryStore,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Runtime:
    """A snapshot replayed against its rebuilt queue."""

    snapshot: SessionSnapshot
    lesson: LessonMetadata
    machine: PhaseStateMachine
    queue: tuple[QueueItem, ...]
    remedy: tuple[QueueItem, ...]

    def current_item(self) -> QueueItem | None:
        phase = self.machine.phase
        if self.snapshot.status == SessionStatus.COMPLETED or phase in TERMINAL_PHASES:
            return None
        if phase in REMEDY_PHASES:
            idx = self.snapshot.remedy_index
            return self.remedy[idx] if idx < len(self.remedy) else None
        idx = self.snapshot.current_index
        return self.queue[idx] if idx < len(self.queue) else None

    def next_source(self) -> QueueSource | None:
        idx = self.snapshot.current_index
        return self.queue[idx].source if idx < len(self.queue) else None

    def final_review_total(self) -> int:
        return sum(1 for q in self.queue if q.source == QueueSource.FINAL_REVIEW)


class LearningSessionService:
    """
    Application service exposing the session lifecycle.

    Follows Dependency Inversion: collaborators are injected, so tests can
    run it over an in-memory store and a fixed clock.
    """

    def __init__(
        self,
        content: ContentProvider,
        memory_states: MemoryStateRepository,
        sessions: SessionRecoveryStore,
        progress: ProgressRepository,
        catalog: LessonCatalog | None = None,
        *,
        unlock_gate: UnlockGate | None = None,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        clamp_legacy_quality: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._content = content
        self._states = memory_states
        self._sessions = sessions
        self._progress = progress
        self._catalog = catalog or LessonCatalog()
        self._gate = unlock_gate or UnlockGate()
        self._daily_limit = daily_limit
        self._clamp_legacy = clamp_legacy_quality
        self._clock = clock

    @property
    def catalog(self) -> LessonCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(
        self, user_id: str, lesson_id: str, restart: bool = False
    ) -> SessionSnapshot:
        """
        Begin round 1 of a lesson.

        Round 1 opens with the user's due reviews, capped by the user's own
        daily limit or else the service default; without any, the yesterday
        phases are skipped.

        Raises:
            NotFoundError: unknown lesson.
            InvariantViolation: an IN_PROGRESS snapshot exists and restart is False.
        """
        _require_user(user_id)
        lesson = self._catalog.get(lesson_id)

        existing = await self._sessions.load(user_id, lesson_id)
        if existing and existing.status == SessionStatus.IN_PROGRESS and not restart:
            raise InvariantViolation(
                f"Session for {user_id}/{lesson_id} is already in progress "
                f"(round {existing.round}, {existing.phase.value}); restart explicitly"
            )

        now = self._clock()
        new_items = await self._content.list_new_items(
            user_id, lesson.module_type, lesson_id=lesson_id
        )
        lesson_item_ids = {ref.item_id for ref in new_items}
        user_limit = (await self._progress.get(user_id)).daily_limit
        limit = self._daily_limit if user_limit is None else user_limit
        due = await self._content.list_due_items(user_id, lesson.module_type, now, limit=limit)
        carryover = [ref for ref in due if ref.item_id not in lesson_item_ids]

        snapshot = SessionSnapshot(
            lesson_id=lesson_id,
            round=1,
            phase=initial_phase(has_carryover=bool(carryover)),
            answered_count=0,
            current_index=0,
            status=SessionStatus.IN_PROGRESS,
            user_id=user_id,
            module_type=lesson.module_type,
            carryover_item_ids=[ref.item_id for ref in carryover],
            updated_at=now,
        )
        runtime = self._runtime(snapshot, lesson, new_items, carryover)
        self._settle(runtime)
        await self._sessions.save(runtime.snapshot)

        logger.info(
            f"Started {lesson_id} for {user_id}: {len(new_items)} new, "
            f"{len(carryover)} carryover, {len(runtime.queue)} queued"
        )
        return runtime.snapshot

    async def get_next_item(self, user_id: str, lesson_id: str) -> QueueItem | None:
        """The item awaiting an answer, or None at ROUND_EVALUATION / after the lesson."""
        runtime = await self._load_runtime(user_id, lesson_id)
        return runtime.current_item()

    async def submit_answer(
        self,
        user_id: str,
        item_id: str,
        outcome: Outcome | str,
        attempts: int | None = None,
        lesson_id: str | None = None,
    ) -> AnswerResult:
        """
        Grade and schedule an answer to the current item, then advance the session.

        The memory state is written first, then the snapshot; a crash between
        the two replays the same item on resume.

        Args:
            outcome: Outcome or a name coerce_outcome accepts.
            attempts: Presentation count override; derived from the queue when None.
            lesson_id: Defaults to the user's active session.
        """
        outcome = coerce_outcome(outcome)
        if lesson_id is None:
            active = await self._sessions.find_active(user_id)
            if active is None:
                raise NotFoundError(f"No active session for {user_id}")
            lesson_id = active.lesson_id

        runtime = await self._load_runtime(user_id, lesson_id)
        current = runtime.current_item()
        if current is None:
            raise InvariantViolation(
                f"No item awaiting an answer in {lesson_id} ({runtime.machine.phase.value})"
            )
        if current.item_id != item_id:
            raise InvalidInputError(f"Expected an answer for {current.item_id}, got {item_id}")

        if attempts is None:
            attempts = self._attempts(runtime, item_id)
        quality = grade(outcome, attempts)

        now = self._clock()
        previous = await self._states.get(user_id, item_id)
        state = schedule(
            previous,
            quality,
            now,
            user_id=user_id,
            item_id=item_id,
            module_type=current.item.module_type,
        )
        await self._states.save(state)

        advanced = self._after_answer(runtime, item_id, quality >= PASSING_QUALITY, now)
        await self._sessions.save(advanced.snapshot)
        runtime.snapshot = advanced.snapshot

        logger.debug(
            f"{user_id} answered {item_id} ({outcome.value}, attempt {attempts}) -> q={quality}, "
            f"{advanced.machine.phase.value}"
        )
        return AnswerResult(
            quality=quality,
            next_review_at=state.next_review_at,
            phase=advanced.snapshot.phase,
            round=advanced.snapshot.round,
        )

    async def get_session_state(self, user_id: str, lesson_id: str) -> SessionSnapshot | None:
        return await self._sessions.load(user_id, lesson_id)

    async def evaluate_round(self, user_id: str, lesson_id: str) -> RoundEvaluation:
        """
        Resolve the ROUND_EVALUATION boundary.

        Raises:
            InvariantViolation: the session is not at ROUND_EVALUATION.
        """
        runtime = await self._load_runtime(user_id, lesson_id)
        evaluation = runtime.machine.conclude_round(
            runtime.snapshot.final_review_correct, runtime.final_review_total()
        )

        now = self._clock()
        snapshot = replace(
            runtime.snapshot,
            round=runtime.machine.round,
            phase=runtime.machine.phase,
            retry_count=runtime.machine.retry_count,
            current_index=0,
            remedy_index=0,
            final_review_correct=0,
            carryover_item_ids=[],
            mistake_item_ids=[],
            status=SessionStatus.COMPLETED if evaluation.finished else SessionStatus.IN_PROGRESS,
            updated_at=now,
        )

        if not evaluation.finished:
            new_items = await self._content.list_new_items(
                user_id, runtime.lesson.module_type, lesson_id=lesson_id
            )
            next_runtime = self._runtime(snapshot, runtime.lesson, new_items, [])
            self._settle(next_runtime)
            snapshot = next_runtime.snapshot

        # Progress before the snapshot: re-recording a round replaces its entry.
        await self._record_round(user_id, runtime.lesson, evaluation, now)
        await self._sessions.save(snapshot)
        return evaluation

    async def abandon_session(self, user_id: str, lesson_id: str) -> bool:
        """Drop the lesson's snapshot so the next start begins fresh."""
        cleared = await self._sessions.clear(user_id, lesson_id)
        if cleared:
            logger.info(f"Abandoned {lesson_id} for {user_id}")
        return cleared

    # ------------------------------------------------------------------
    # Items and progress
    # ------------------------------------------------------------------

    async def set_skipped(self, user_id: str, item_id: str, skipped: bool = True) -> MemoryState:
        _require_user(user_id)
        item = await self._require_item(item_id)
        return await self._states.set_skipped(user_id, item_id, skipped, item.module_type)

    async def record_review(self, user_id: str, item_id: str, quality: int | str) -> MemoryState:
        """
        Schedule a free-practice review graded by the caller, outside any session.

        Raises:
            InvalidInputError: quality is not an integer in 1..5 (out-of-range
                values are clamped instead when clamp_legacy_quality is set).
            NotFoundError: the item is not in the content store.
        """
        _require_user(user_id)
        quality = coerce_quality(quality, clamp_legacy=self._clamp_legacy)
        module_type = (await self._require_item(item_id)).module_type

        previous = await self._states.get(user_id, item_id)
        state = schedule(
            previous,
            quality,
            self._clock(),
            user_id=user_id,
            item_id=item_id,
            module_type=module_type,
        )
        await self._states.save(state)
        logger.debug(f"{user_id} reviewed {item_id} with q={quality}: next in {state.interval_days}d")
        return state

    async def get_user_progress(self, user_id: str) -> UserProgress:
        """Round history, completed lessons and unlock flags; empty for a new user."""
        _require_user(user_id)
        return await self._progress.get(user_id)

    async def set_daily_limit(self, user_id: str, daily_limit: int | None) -> UserProgress:
        """
        Store the user's own cap on round-1 carryover reviews.

        None clears it, so the configured default applies again.

        Raises:
            InvalidInputError: daily_limit is negative.
        """
        _require_user(user_id)
        if daily_limit is not None and daily_limit < 0:
            raise InvalidInputError(f"daily_limit must be >= 0, got {daily_limit}")

        progress = await self._progress.get(user_id)
        progress.daily_limit = daily_limit
        progress.updated_at = self._clock()
        await self._progress.save(progress)
        logger.info(f"Daily limit for {user_id} set to {daily_limit}")
        return progress

    async def get_unlock_info(self, user_id: str) -> UnlockInfo:
        """Evaluate module unlocks and persist any newly granted flag."""
        _require_user(user_id)
        progress = await self._progress.get(user_id)
        states = await self._states.list_for_user(user_id)

        aggregate = AggregateProgress(
            letter_completed=progress.letter_completed,
            letter_progress=progress.letter_progress,
            word_mastery=_mastery_ratio(states, ModuleType.WORD),
            sentence_mastery=_mastery_ratio(states, ModuleType.SENTENCE),
            word_unlocked=progress.word_unlocked,
            sentence_unlocked=progress.sentence_unlocked,
            article_unlocked=progress.article_unlocked,
        )
        info = self._gate.evaluate(aggregate)

        granted = (
            info.word_unlocked != progress.word_unlocked
            or info.sentence_unlocked != progress.sentence_unlocked
            or info.article_unlocked != progress.article_unlocked
        )
        if granted:
            progress.word_unlocked = info.word_unlocked
            progress.sentence_unlocked = info.sentence_unlocked
            progress.article_unlocked = info.article_unlocked
            progress.updated_at = self._clock()
            await self._progress.save(progress)
            logger.info(f"Unlocks updated for {user_id}: {info}")
        return info

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _runtime(
        self,
        snapshot: SessionSnapshot,
        lesson: LessonMetadata,
        new_items: list[LearningItemRef],
        carryover: list[LearningItemRef],
    ) -> _Runtime:
        machine = PhaseStateMachine(
            lesson, round=snapshot.round, phase=snapshot.phase, retry_count=snapshot.retry_count
        )
        queue = build_session_queue(
            new_items, carryover, snapshot.round, chunk_size=lesson.mini_review_interval
        )
        return _Runtime(snapshot=snapshot, lesson=lesson, machine=machine, queue=queue, remedy=())

    async def _load_runtime(self, user_id: str, lesson_id: str) -> _Runtime:
        snapshot = await self._sessions.load(user_id, lesson_id)
        if snapshot is None:
            raise NotFoundError(f"No session for {user_id}/{lesson_id}")
        lesson = self._catalog.get(lesson_id)

        new_items = await self._content.list_new_items(
            user_id, lesson.module_type, lesson_id=lesson_id
        )
        carryover = await self._resolve(snapshot.carryover_item_ids, snapshot.module_type)
        runtime = self._runtime(snapshot, lesson, new_items, carryover)
        if snapshot.phase in REMEDY_PHASES:
            mistakes = await self._resolve(snapshot.mistake_item_ids, snapshot.module_type)
            runtime.remedy = build_remedy_queue(mistakes, snapshot.round)
        return runtime

    async def _require_item(self, item_id: str) -> LearningItemRef:
        refs = await self._content.get_items([item_id])
        if not refs:
            raise NotFoundError(f"Unknown item {item_id}")
        return refs[0]

    async def _resolve(self, item_ids: list[str], module_type: ModuleType) -> list[LearningItemRef]:
        if not item_ids:
            return []
        known = {ref.item_id: ref for ref in await self._content.get_items(item_ids)}
        return [known.get(i) or LearningItemRef(item_id=i, module_type=module_type) for i in item_ids]

    def _attempts(self, runtime: _Runtime, item_id: str) -> int:
        """1 + earlier presentations of the item in this round."""
        seen = sum(1 for q in runtime.queue[: runtime.snapshot.current_index] if q.item_id == item_id)
        if runtime.machine.phase in REMEDY_PHASES:
            seen += sum(
                1 for q in runtime.remedy[: runtime.snapshot.remedy_index] if q.item_id == item_id
            )
        return seen + 1

    def _after_answer(
        self, runtime: _Runtime, item_id: str, correct: bool, now: datetime
    ) -> _Runtime:
        """Move the cursor past the answered item and settle the phase (no I/O)."""
        snapshot = replace(
            runtime.snapshot,
            answered_count=runtime.snapshot.answered_count + 1,
            carryover_item_ids=list(runtime.snapshot.carryover_item_ids),
            mistake_item_ids=list(runtime.snapshot.mistake_item_ids),
            updated_at=now,
        )
        phase = runtime.machine.phase

        if phase in REMEDY_PHASES:
            snapshot.remedy_index += 1
        else:
            snapshot.current_index += 1
            if phase in REVIEW_PHASES and not correct and item_id not in snapshot.mistake_item_ids:
                snapshot.mistake_item_ids.append(item_id)
            if phase == Phase.TODAY_FINAL_REVIEW and correct:
                snapshot.final_review_correct += 1

        machine = PhaseStateMachine(
            runtime.lesson, round=snapshot.round, phase=phase, retry_count=snapshot.retry_count
        )
        advanced = _Runtime(
            snapshot=snapshot,
            lesson=runtime.lesson,
            machine=machine,
            queue=runtime.queue,
            remedy=runtime.remedy,
        )
        self._settle(advanced)
        return advanced

    def _settle(self, runtime: _Runtime) -> None:
        """Advance through every exhausted segment until an item is pending or a boundary is hit."""
        snapshot = runtime.snapshot
        machine = runtime.machine

        while machine.phase not in TERMINAL_PHASES:
            phase = machine.phase
            if phase in REMEDY_PHASES:
                if snapshot.remedy_index < len(runtime.remedy):
                    break
                machine.advance(runtime.next_source(), has_mistakes=False)
                snapshot.mistake_item_ids = []
                snapshot.remedy_index = 0
                runtime.remedy = ()
                continue

            source = runtime.next_source()
            if source is not None and phase_for_source(source) == phase:
                break

            has_mistakes = phase in REVIEW_PHASES and bool(snapshot.mistake_item_ids)
            target = machine.advance(source, has_mistakes)
            if target in REMEDY_PHASES:
                snapshot.remedy_index = 0
                runtime.remedy = build_remedy_queue(
                    [_ref_for(runtime, i) for i in snapshot.mistake_item_ids], snapshot.round
                )
            elif target == Phase.TODAY_FINAL_REVIEW:
                snapshot.mistake_item_ids = []
                snapshot.final_review_correct = 0

        snapshot.phase = machine.phase
        snapshot.round = machine.round
        snapshot.retry_count = machine.retry_count

    async def _record_round(
        self, user_id: str, lesson: LessonMetadata, evaluation: RoundEvaluation, now: datetime
    ) -> None:
        progress = await self._progress.get(user_id)

        record = RoundRecord(
            lesson_id=lesson.lesson_id,
            round=evaluation.round,
            pass_rate=evaluation.pass_rate,
            promote=evaluation.promote,
            evaluated_at=now,
        )
        progress.round_history = [
            r
            for r in progress.round_history
            if not (r.lesson_id == record.lesson_id and r.round == record.round)
        ]
        progress.round_history.append(record)

        if evaluation.finished and lesson.lesson_id not in progress.completed_lessons:
            progress.completed_lessons.append(lesson.lesson_id)
            logger.info(f"{user_id} completed {lesson.lesson_id}")

        if lesson.module_type == ModuleType.LETTER:
            letter_lessons = [x.lesson_id for x in self._catalog.lessons_for(ModuleType.LETTER)]
            done = sum(1 for x in letter_lessons if x in progress.completed_lessons)
            progress.letter_progress = done / len(letter_lessons) if letter_lessons else 0.0
            progress.letter_completed = progress.letter_completed or done == len(letter_lessons)

        progress.updated_at = now
        await self._progress.save(progress)


def _ref_for(runtime: _Runtime, item_id: str) -> LearningItemRef:
    for q in runtime.queue:
        if q.item_id == item_id:
            return q.item
    return LearningItemRef(item_id=item_id, module_type=runtime.snapshot.module_type)


def _mastery_ratio(states: list[MemoryState], module_type: ModuleType) -> float:
    """Share of the user's reviewed, non-skipped items of a module that are REMEMBERED."""
    reviewed = [
        s
        for s in states
        if s.module_type == module_type and not s.skipped and s.last_reviewed_at is not None
    ]
    if not reviewed:
        return 0.0
    return sum(1 for s in reviewed if s.mastery_level == MasteryLevel.REMEMBERED) / len(reviewed)


def _require_user(user_id: str) -> None:
    if not user_id or not str(user_id).strip():
        raise InvalidInputError("user_id is required")
