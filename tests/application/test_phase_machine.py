import pytest

from mnemos.application.lessons import LessonMetadata
from mnemos.application.phase_machine import (
    PhaseStateMachine,
    initial_phase,
    pass_rate,
    phase_for_source,
)
from mnemos.domain.errors import InvalidInputError, InvariantViolation
from mnemos.domain.models import Phase, QueueSource


@pytest.fixture
def lesson():
    return LessonMetadata(lesson_id="l1", title="L1", order=1, min_pass_rate=0.9)


def at_evaluation(lesson, round=1, retry_count=0):
    return PhaseStateMachine(lesson, round=round, phase=Phase.ROUND_EVALUATION, retry_count=retry_count)


class TestTransitions:
    """Tests for segment-exhaustion transitions."""

    def test_initial_phase(self):
        assert initial_phase(True) == Phase.YESTERDAY_REVIEW
        assert initial_phase(False) == Phase.TODAY_LEARNING

    def test_phase_for_source(self):
        assert phase_for_source(QueueSource.NEW) == Phase.TODAY_LEARNING
        assert phase_for_source(QueueSource.MINI_REVIEW) == Phase.TODAY_MINI_REVIEW
        assert phase_for_source(None) == Phase.TODAY_FINAL_REVIEW
        with pytest.raises(InvalidInputError):
            phase_for_source(QueueSource.REMEDY)

    def test_clean_round(self, lesson):
        machine = PhaseStateMachine(lesson)
        seen = [machine.phase]
        seen.append(machine.advance(QueueSource.MINI_REVIEW, False))
        seen.append(machine.advance(QueueSource.FINAL_REVIEW, False))
        seen.append(machine.advance(None, False))
        assert seen == [
            Phase.TODAY_LEARNING,
            Phase.TODAY_MINI_REVIEW,
            Phase.TODAY_FINAL_REVIEW,
            Phase.ROUND_EVALUATION,
        ]

    def test_yesterday_mistakes_enter_remedy(self, lesson):
        machine = PhaseStateMachine(lesson, phase=Phase.YESTERDAY_REVIEW)
        assert machine.advance(QueueSource.NEW, True) == Phase.YESTERDAY_REMEDY
        assert machine.advance(QueueSource.NEW, False) == Phase.TODAY_LEARNING

    def test_yesterday_without_mistakes_skips_remedy(self, lesson):
        machine = PhaseStateMachine(lesson, phase=Phase.YESTERDAY_REVIEW)
        assert machine.advance(QueueSource.NEW, False) == Phase.TODAY_LEARNING

    def test_final_mistakes_enter_remedy(self, lesson):
        machine = PhaseStateMachine(lesson, phase=Phase.TODAY_FINAL_REVIEW)
        assert machine.advance(None, True) == Phase.TODAY_REMEDY
        assert machine.advance(None, False) == Phase.ROUND_EVALUATION

    @pytest.mark.parametrize("phase", [Phase.ROUND_EVALUATION, Phase.FINISHED])
    def test_cannot_advance_from_boundary(self, lesson, phase):
        machine = PhaseStateMachine(lesson, phase=phase)
        with pytest.raises(InvariantViolation):
            machine.advance(None, False)

    def test_round_out_of_range(self, lesson):
        with pytest.raises(InvalidInputError):
            PhaseStateMachine(lesson, round=4)


class TestConcludeRound:
    """Tests for round evaluation and promotion."""

    def test_exact_threshold_promotes(self, lesson):
        machine = at_evaluation(lesson)
        evaluation = machine.conclude_round(9, 10)
        assert evaluation.pass_rate == pytest.approx(0.9)
        assert evaluation.promote is True
        assert evaluation.next_round == 2
        assert machine.round == 2
        assert machine.phase == Phase.TODAY_LEARNING

    def test_just_below_threshold_fails(self, lesson):
        machine = at_evaluation(lesson)
        evaluation = machine.conclude_round(89, 100)
        assert evaluation.promote is False
        assert evaluation.next_round == 1
        assert machine.round == 1
        assert machine.retry_count == 1
        assert machine.phase == Phase.TODAY_LEARNING

    def test_last_round_finishes(self, lesson):
        machine = at_evaluation(lesson, round=3)
        evaluation = machine.conclude_round(10, 10)
        assert evaluation.finished is True
        assert evaluation.next_round == 3
        assert machine.finished

    def test_retries_exhausted_force_advance(self, lesson):
        machine = at_evaluation(lesson, retry_count=2)
        evaluation = machine.conclude_round(0, 10)
        assert evaluation.promote is False
        assert evaluation.forced is True
        assert evaluation.next_round == 2
        assert machine.retry_count == 0

    def test_forced_on_last_round_finishes(self, lesson):
        machine = at_evaluation(lesson, round=3, retry_count=2)
        evaluation = machine.conclude_round(1, 10)
        assert evaluation.finished is True
        assert evaluation.forced is True

    def test_no_final_items_passes(self, lesson):
        evaluation = at_evaluation(lesson).conclude_round(0, 0)
        assert evaluation.pass_rate == 1.0
        assert evaluation.promote is True

    def test_only_at_round_evaluation(self, lesson):
        machine = PhaseStateMachine(lesson, phase=Phase.TODAY_FINAL_REVIEW)
        with pytest.raises(InvariantViolation):
            machine.conclude_round(1, 1)

    def test_pass_rate_rejects_bad_tally(self):
        with pytest.raises(InvalidInputError):
            pass_rate(3, 2)
