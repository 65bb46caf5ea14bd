"""Persistence for per-user progress (round history, completed lessons, unlocks)."""

from mnemos.domain.constants import USER_PROGRESS
from mnemos.domain.interfaces import DocumentStore
from mnemos.domain.models import UserProgress

from .codec import progress_from_doc, progress_to_doc
from .retry import RetryPolicy


class ProgressRepository:
    def __init__(self, store: DocumentStore, retry: RetryPolicy | None = None):
        self._store = store
        self._retry = retry or RetryPolicy()

    async def get(self, user_id: str) -> UserProgress:
        """Return the user's progress, or an empty record if none was saved yet."""
        doc = await self._retry.call(
            lambda: self._store.find_one(USER_PROGRESS, {"user_id": user_id}),
            "load user progress",
        )
        return progress_from_doc(doc) if doc else UserProgress(user_id=user_id)

    async def save(self, progress: UserProgress) -> None:
        key = {"user_id": progress.user_id}
        doc = progress_to_doc(progress)

        async def upsert() -> None:
            result = await self._store.update_one(USER_PROGRESS, key, doc)
            if result.matched_count == 0:
                await self._store.insert_one(USER_PROGRESS, doc)

        await self._retry.call(upsert, "save user progress")
