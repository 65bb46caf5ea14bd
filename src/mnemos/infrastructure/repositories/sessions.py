"""
Session snapshot persistence.

Enables save/resume so a learner can be interrupted and continue exactly
where they stopped. At most one snapshot exists per (user, lesson).
"""

import logging

from mnemos.domain.constants import SESSION_SNAPSHOTS
from mnemos.domain.interfaces import DocumentStore
from mnemos.domain.models import SessionSnapshot, SessionStatus

from .codec import snapshot_from_doc, snapshot_to_doc
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class SessionRecoveryStore:
    def __init__(self, store: DocumentStore, retry: RetryPolicy | None = None):
        self._store = store
        self._retry = retry or RetryPolicy()

    async def save(self, snapshot: SessionSnapshot) -> None:
        """Idempotent, last-write-wins upsert keyed on (user_id, lesson_id)."""
        if not snapshot.user_id:
            raise ValueError("Snapshot has no user_id")
        key = {"user_id": snapshot.user_id, "lesson_id": snapshot.lesson_id}
        doc = snapshot_to_doc(snapshot)

        async def upsert() -> None:
            result = await self._store.update_one(SESSION_SNAPSHOTS, key, doc)
            if result.matched_count == 0:
                await self._store.insert_one(SESSION_SNAPSHOTS, doc)

        await self._retry.call(upsert, "save session snapshot")
        logger.debug(
            f"Saved snapshot {snapshot.user_id}/{snapshot.lesson_id}: round {snapshot.round}, "
            f"{snapshot.phase.value}, index {snapshot.current_index}"
        )

    async def load(self, user_id: str, lesson_id: str) -> SessionSnapshot | None:
        doc = await self._retry.call(
            lambda: self._store.find_one(
                SESSION_SNAPSHOTS, {"user_id": user_id, "lesson_id": lesson_id}
            ),
            "load session snapshot",
        )
        return snapshot_from_doc(doc) if doc else None

    async def clear(self, user_id: str, lesson_id: str) -> bool:
        deleted = await self._retry.call(
            lambda: self._store.delete_one(
                SESSION_SNAPSHOTS, {"user_id": user_id, "lesson_id": lesson_id}
            ),
            "clear session snapshot",
        )
        return deleted > 0

    async def find_active(self, user_id: str) -> SessionSnapshot | None:
        """Most recently saved IN_PROGRESS snapshot of the user, if any."""
        docs = await self._retry.call(
            lambda: self._store.find(
                SESSION_SNAPSHOTS,
                {"user_id": user_id, "status": SessionStatus.IN_PROGRESS.value},
            ),
            "find active session",
        )
        if not docs:
            return None
        # ISO-8601 UTC strings sort chronologically
        docs.sort(key=lambda d: d.get("updated_at") or "", reverse=True)
        return snapshot_from_doc(docs[0])
