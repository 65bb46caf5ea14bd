"""Persistence for per-user SM-2 memory states."""

import logging
from dataclasses import replace

from mnemos.domain.constants import MEMORY_STATES
from mnemos.domain.interfaces import DocumentStore
from mnemos.domain.models import MemoryState, ModuleType

from .codec import memory_state_from_doc, memory_state_to_doc
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class MemoryStateRepository:
    """
    One document per (user_id, item_id). Documents are upserted, never deleted.
    """

    def __init__(self, store: DocumentStore, retry: RetryPolicy | None = None):
        self._store = store
        self._retry = retry or RetryPolicy()

    async def get(self, user_id: str, item_id: str) -> MemoryState | None:
        doc = await self._retry.call(
            lambda: self._store.find_one(MEMORY_STATES, {"user_id": user_id, "item_id": item_id}),
            "load memory state",
        )
        return memory_state_from_doc(doc) if doc else None

    async def list_for_user(
        self, user_id: str, module_type: ModuleType | None = None
    ) -> list[MemoryState]:
        filter = {"user_id": user_id}
        if module_type is not None:
            filter["module_type"] = module_type.value
        docs = await self._retry.call(
            lambda: self._store.find(MEMORY_STATES, filter), "list memory states"
        )
        return [memory_state_from_doc(d) for d in docs]

    async def save(self, state: MemoryState) -> None:
        """Update-then-insert: insert only when no document matched."""
        key = {"user_id": state.user_id, "item_id": state.item_id}
        doc = memory_state_to_doc(state)

        async def upsert() -> None:
            result = await self._store.update_one(MEMORY_STATES, key, doc)
            if result.matched_count == 0:
                await self._store.insert_one(MEMORY_STATES, doc)

        await self._retry.call(upsert, "save memory state")

    async def set_skipped(
        self,
        user_id: str,
        item_id: str,
        skipped: bool,
        module_type: ModuleType = ModuleType.LETTER,
    ) -> MemoryState:
        """Toggle the skip flag, creating an unreviewed state if none exists."""
        state = await self.get(user_id, item_id)
        if state is None:
            state = MemoryState(user_id=user_id, item_id=item_id, module_type=module_type)
        state = replace(state, skipped=skipped)
        await self.save(state)
        logger.info(f"{'Skipped' if skipped else 'Restored'} {item_id} for {user_id}")
        return state
