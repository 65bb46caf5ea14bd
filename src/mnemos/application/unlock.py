"""Module unlock rules: letters -> words -> sentences -> articles."""

import logging

from mnemos.domain.constants import (
    DEFAULT_ARTICLE_UNLOCK_THRESHOLD,
    DEFAULT_SENTENCE_UNLOCK_THRESHOLD,
)
from mnemos.domain.errors import InvalidInputError
from mnemos.domain.models import AggregateProgress, UnlockInfo

logger = logging.getLogger(__name__)


class UnlockGate:
    """
    Derives which learning modules are available.

    Grants already recorded in AggregateProgress are never revoked, even if
    mastery later drops below a threshold.
    """

    def __init__(
        self,
        sentence_threshold: float = DEFAULT_SENTENCE_UNLOCK_THRESHOLD,
        article_threshold: float = DEFAULT_ARTICLE_UNLOCK_THRESHOLD,
    ):
        for name, value in (("sentence", sentence_threshold), ("article", article_threshold)):
            if not 0.0 <= value <= 1.0:
                raise InvalidInputError(f"{name} threshold must be within 0..1, got {value}")
        self.sentence_threshold = sentence_threshold
        self.article_threshold = article_threshold

    def evaluate(self, progress: AggregateProgress) -> UnlockInfo:
        word = progress.word_unlocked or progress.letter_completed
        sentence = progress.sentence_unlocked or (
            word and progress.word_mastery >= self.sentence_threshold
        )
        article = progress.article_unlocked or (
            sentence and progress.sentence_mastery >= self.article_threshold
        )

        info = UnlockInfo(
            word_unlocked=word,
            sentence_unlocked=sentence,
            article_unlocked=article,
            letter_progress=progress.letter_progress,
        )
        logger.debug(f"Unlock evaluation: {info}")
        return info
