"""
Session phase state machine.

Transitions are computed in memory from segment-exhaustion events; the
session service is responsible for persisting the resulting snapshot.

    YESTERDAY_REVIEW -> [YESTERDAY_REMEDY] -> TODAY_LEARNING <-> TODAY_MINI_REVIEW
        -> TODAY_FINAL_REVIEW -> [TODAY_REMEDY] -> ROUND_EVALUATION
        -> TODAY_LEARNING (next round / retry) | FINISHED
"""

import logging

from mnemos.application.lessons import LessonMetadata
from mnemos.domain.errors import InvalidInputError, InvariantViolation
from mnemos.domain.models import Phase, QueueSource, RoundEvaluation

logger = logging.getLogger(__name__)

# Float slack for pass-rate comparisons (9/10 must pass a 0.90 threshold)
PASS_RATE_EPSILON = 1e-9

_SOURCE_PHASES: dict[QueueSource, Phase] = {
    QueueSource.PREVIOUS_ROUND_REVIEW: Phase.YESTERDAY_REVIEW,
    QueueSource.NEW: Phase.TODAY_LEARNING,
    QueueSource.MINI_REVIEW: Phase.TODAY_MINI_REVIEW,
    QueueSource.FINAL_REVIEW: Phase.TODAY_FINAL_REVIEW,
}

REMEDY_PHASES = frozenset({Phase.YESTERDAY_REMEDY, Phase.TODAY_REMEDY})
REVIEW_PHASES = frozenset({Phase.YESTERDAY_REVIEW, Phase.TODAY_FINAL_REVIEW})
TERMINAL_PHASES = frozenset({Phase.ROUND_EVALUATION, Phase.FINISHED})


def initial_phase(has_carryover: bool) -> Phase:
    """First phase of a round. The yesterday phases exist only with carryover."""
    return Phase.YESTERDAY_REVIEW if has_carryover else Phase.TODAY_LEARNING


def phase_for_source(source: QueueSource | None) -> Phase:
    """Phase that owns a queue segment. No next segment means the final review."""
    if source is None:
        return Phase.TODAY_FINAL_REVIEW
    try:
        return _SOURCE_PHASES[source]
    except KeyError:
        raise InvalidInputError(f"{source.value} entries do not belong to the main queue") from None


def pass_rate(correct: int, total: int) -> float:
    if total < 0 or correct < 0 or correct > total:
        raise InvalidInputError(f"Invalid final review tally {correct}/{total}")
    if total == 0:
        return 1.0
    return correct / total


class PhaseStateMachine:
    """
    Phase and round bookkeeping for one user in one lesson.

    Attributes:
        round: Current 1-indexed round.
        phase: Current phase.
        retry_count: Failed evaluations of the current round so far.
    """

    def __init__(
        self,
        lesson: LessonMetadata,
        round: int = 1,
        phase: Phase = Phase.TODAY_LEARNING,
        retry_count: int = 0,
    ):
        if round < 1 or round > lesson.max_rounds:
            raise InvalidInputError(f"round must be within 1..{lesson.max_rounds}, got {round}")
        if retry_count < 0:
            raise InvalidInputError(f"retry_count must be >= 0, got {retry_count}")
        self.lesson = lesson
        self.round = round
        self.phase = phase
        self.retry_count = retry_count

    @property
    def finished(self) -> bool:
        return self.phase == Phase.FINISHED

    def advance(self, next_source: QueueSource | None, has_mistakes: bool) -> Phase:
        """
        Move past the exhausted segment of the current phase.

        Args:
            next_source: Source of the next main-queue entry, None when the queue is spent.
            has_mistakes: The review phase being left produced an incorrect answer.

        Raises:
            InvariantViolation: called at ROUND_EVALUATION or FINISHED.
        """
        current = self.phase
        if current in TERMINAL_PHASES:
            raise InvariantViolation(f"Cannot advance from {current.value}")

        if current == Phase.YESTERDAY_REVIEW and has_mistakes:
            target = Phase.YESTERDAY_REMEDY
        elif current == Phase.TODAY_FINAL_REVIEW:
            target = Phase.TODAY_REMEDY if has_mistakes else Phase.ROUND_EVALUATION
        elif current == Phase.TODAY_REMEDY:
            target = Phase.ROUND_EVALUATION
        else:
            target = phase_for_source(next_source)
            if target == Phase.YESTERDAY_REVIEW:
                raise InvariantViolation(f"Carryover entries cannot follow {current.value}")

        self.phase = target
        logger.debug(f"{self.lesson.lesson_id} round {self.round}: {current.value} -> {target.value}")
        return target

    def conclude_round(self, correct: int, total: int) -> RoundEvaluation:
        """
        Evaluate the round at the ROUND_EVALUATION boundary and move on.

        Promotion advances the round (or finishes the lesson after the last
        round). A failure retries the same round until max_round_retries is
        spent, then the learner is advanced anyway (forced).
        """
        if self.phase != Phase.ROUND_EVALUATION:
            raise InvariantViolation(
                f"Round can only be evaluated at round_evaluation, not {self.phase.value}"
            )

        rate = pass_rate(correct, total)
        promote = rate + PASS_RATE_EPSILON >= self.lesson.min_pass_rate
        evaluated_round = self.round
        forced = False

        if not promote and self.retry_count < self.lesson.max_round_retries:
            self.retry_count += 1
            self.phase = initial_phase(has_carryover=False)
            logger.info(
                f"{self.lesson.lesson_id} round {evaluated_round} failed "
                f"({rate:.2f} < {self.lesson.min_pass_rate:.2f}), retry {self.retry_count}"
            )
            return RoundEvaluation(
                round=evaluated_round, pass_rate=rate, promote=False, next_round=evaluated_round
            )

        if not promote:
            forced = True
            logger.warning(
                f"{self.lesson.lesson_id} round {evaluated_round} failed after "
                f"{self.retry_count} retries; advancing"
            )

        self.retry_count = 0
        if evaluated_round >= self.lesson.max_rounds:
            self.phase = Phase.FINISHED
            logger.info(f"{self.lesson.lesson_id} finished after round {evaluated_round}")
            return RoundEvaluation(
                round=evaluated_round,
                pass_rate=rate,
                promote=promote,
                next_round=evaluated_round,
                finished=True,
                forced=forced,
            )

        self.round = evaluated_round + 1
        self.phase = initial_phase(has_carryover=False)
        logger.info(f"{self.lesson.lesson_id} advanced to round {self.round} ({rate:.2f})")
        return RoundEvaluation(
            round=evaluated_round,
            pass_rate=rate,
            promote=promote,
            next_round=self.round,
            forced=forced,
        )
