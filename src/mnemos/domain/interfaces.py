"""
Ports (interfaces) for persistence and content.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .models import LearningItemRef, ModuleType


@dataclass(frozen=True)
class UpdateResult:
    matched_count: int


class DocumentStore(ABC):
    """
    Port for a key-addressable document store.

    Filters are "where equals" mappings: a document matches when every key in
    the filter is present with an equal value.

    Implementations:
        - InMemoryDocumentStore: dict-backed, for tests and ephemeral runs.
        - JsonFileDocumentStore: one JSON file per collection on disk.
    """

    @abstractmethod
    async def find_one(self, collection: str, filter: dict[str, Any]) -> dict[str, Any] | None:
        """Return the first matching document, or None."""
        pass

    @abstractmethod
    async def find(self, collection: str, filter: dict[str, Any]) -> list[dict[str, Any]]:
        """Return every matching document in insertion order."""
        pass

    @abstractmethod
    async def update_one(
        self, collection: str, filter: dict[str, Any], patch: dict[str, Any]
    ) -> UpdateResult:
        """
        Merge `patch` into the first matching document.

        Returns:
            UpdateResult with matched_count 0 or 1. Callers use a zero count to
            fall back to insert_one (update-or-insert).
        """
        pass

    @abstractmethod
    async def insert_one(self, collection: str, doc: dict[str, Any]) -> str:
        """Insert a document and return its `_id`."""
        pass

    @abstractmethod
    async def count(self, collection: str, filter: dict[str, Any]) -> int:
        pass

    @abstractmethod
    async def delete_one(self, collection: str, filter: dict[str, Any]) -> int:
        """Delete the first matching document. Returns the number deleted."""
        pass


class ContentProvider(ABC):
    """Port supplying candidate items to the session queue builder."""

    @abstractmethod
    async def list_due_items(
        self,
        user_id: str,
        module_type: ModuleType,
        now: datetime,
        limit: int | None = None,
    ) -> list[LearningItemRef]:
        """
        Items whose memory state is due for review, oldest due first.

        Skipped items are never due.
        """
        pass

    @abstractmethod
    async def list_new_items(
        self,
        user_id: str,
        module_type: ModuleType,
        limit: int | None = None,
        lesson_id: str | None = None,
    ) -> list[LearningItemRef]:
        """
        Items to introduce, in curriculum order.

        With a lesson_id, every item of that lesson is returned (the lesson
        defines its own size); otherwise items the user has never answered.
        """
        pass

    @abstractmethod
    async def get_items(self, item_ids: list[str]) -> list[LearningItemRef]:
        """Resolve item ids, preserving the requested order. Unknown ids are dropped."""
        pass
