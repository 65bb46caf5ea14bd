"""
Review Stats Service: application layer orchestrator.

Coordinates fetching memory states from the repository and summarizing them.
"""

import logging
from datetime import datetime, timezone

from mnemos.domain.models import ModuleType
from mnemos.infrastructure.repositories import MemoryStateRepository

from .metrics_calculator import MetricsCalculator, ReviewStatistics

logger = logging.getLogger(__name__)


class ReviewStatsService:
    """
    Application service for review statistics.
    """

    def __init__(
        self,
        memory_states: MemoryStateRepository,
        calculator: MetricsCalculator | None = None,
    ):
        """
        Args:
            memory_states: Repository of per-user memory states.
            calculator: Optional custom calculator; uses default if not provided.
        """
        self._repo = memory_states
        self._calc = calculator or MetricsCalculator()

    async def get_statistics(
        self,
        user_id: str,
        now: datetime | None = None,
        module_type: ModuleType | None = None,
    ) -> ReviewStatistics:
        """
        Summarize a user's memory states.

        Args:
            user_id: The learner.
            now: Reference time; defaults to the current UTC time.
            module_type: Restrict to one learning module.
        """
        now = now or datetime.now(timezone.utc)
        states = await self._repo.list_for_user(user_id, module_type)
        stats = self._calc.summarize(user_id, states, now)
        logger.debug(f"Stats for {user_id}: {stats.total_learned} learned, {stats.due_now} due")
        return stats
