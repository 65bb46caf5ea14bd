"""
Content provider backed by the document store.

Items live in the `items` collection:

    {"item_id": "ก", "module_type": "letter", "lesson_ids": ["lesson1"],
     "label": "ก", "order": 0}
"""

import logging
from datetime import datetime
from typing import Any

from mnemos.application.scheduler import is_due
from mnemos.domain.constants import ITEMS
from mnemos.domain.interfaces import ContentProvider, DocumentStore
from mnemos.domain.models import LearningItemRef, ModuleType

from .repositories.memory_states import MemoryStateRepository
from .repositories.retry import RetryPolicy

logger = logging.getLogger(__name__)


def _ref_from_doc(doc: dict[str, Any]) -> LearningItemRef:
    return LearningItemRef(
        item_id=doc["item_id"],
        module_type=ModuleType(doc.get("module_type", ModuleType.LETTER.value)),
        lesson_ids=tuple(doc.get("lesson_ids") or ()),
        label=doc.get("label"),
    )


class StoreContentProvider(ContentProvider):
    def __init__(
        self,
        store: DocumentStore,
        memory_states: MemoryStateRepository,
        retry: RetryPolicy | None = None,
    ):
        self._store = store
        self._states = memory_states
        self._retry = retry or RetryPolicy()

    async def _items(self, module_type: ModuleType | None = None) -> list[dict[str, Any]]:
        filter = {"module_type": module_type.value} if module_type is not None else {}
        docs = await self._retry.call(lambda: self._store.find(ITEMS, filter), "list items")
        return sorted(docs, key=lambda d: d.get("order", 0))

    async def list_due_items(
        self,
        user_id: str,
        module_type: ModuleType,
        now: datetime,
        limit: int | None = None,
    ) -> list[LearningItemRef]:
        states = [s for s in await self._states.list_for_user(user_id, module_type) if is_due(s, now)]
        states.sort(key=lambda s: s.next_review_at)
        if limit is not None:
            states = states[:limit]
        if not states:
            return []

        known = {ref.item_id: ref for ref in await self.get_items([s.item_id for s in states])}
        # Items removed from the catalog still come back for review
        return [
            known.get(s.item_id) or LearningItemRef(item_id=s.item_id, module_type=s.module_type)
            for s in states
        ]

    async def list_new_items(
        self,
        user_id: str,
        module_type: ModuleType,
        limit: int | None = None,
        lesson_id: str | None = None,
    ) -> list[LearningItemRef]:
        refs = [_ref_from_doc(d) for d in await self._items(module_type)]

        if lesson_id is not None:
            refs = [r for r in refs if lesson_id in r.lesson_ids]
        else:
            seen = {s.item_id for s in await self._states.list_for_user(user_id, module_type)}
            refs = [r for r in refs if r.item_id not in seen]

        if limit is not None:
            refs = refs[:limit]
        return refs

    async def get_items(self, item_ids: list[str]) -> list[LearningItemRef]:
        if not item_ids:
            return []
        by_id = {d["item_id"]: _ref_from_doc(d) for d in await self._items()}
        return [by_id[i] for i in item_ids if i in by_id]

    async def upsert_items(self, refs: list[LearningItemRef]) -> int:
        """Insert or update catalog items, keeping the given order. Returns the count written."""
        existing = await self._items()
        offset = max((d.get("order", 0) for d in existing), default=-1) + 1
        positions = {d["item_id"]: d.get("order", 0) for d in existing}

        for i, ref in enumerate(refs):
            doc = {
                "item_id": ref.item_id,
                "module_type": ref.module_type.value,
                "lesson_ids": list(ref.lesson_ids),
                "label": ref.label,
                "order": positions.get(ref.item_id, offset + i),
            }

            async def upsert(doc=doc) -> None:
                result = await self._store.update_one(ITEMS, {"item_id": doc["item_id"]}, doc)
                if result.matched_count == 0:
                    await self._store.insert_one(ITEMS, doc)

            await self._retry.call(upsert, "save item")

        logger.info(f"Seeded {len(refs)} items")
        return len(refs)
