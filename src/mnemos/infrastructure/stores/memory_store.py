"""
Dict-backed document store.

Used by the test suite and for ephemeral runs (`store_backend = "memory"`).
Documents are deep-copied on the way in and out so callers never share
mutable state with the store.
"""

import asyncio
import copy
from typing import Any

from mnemos.application.id_service import generate_document_id
from mnemos.domain.interfaces import DocumentStore, UpdateResult


def matches(doc: dict[str, Any], filter: dict[str, Any]) -> bool:
    """Where-equals: every filter key must be present with an equal value."""
    return all(key in doc and doc[key] == value for key, value in filter.items())


class InMemoryDocumentStore(DocumentStore):
    def __init__(self):
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _docs(self, collection: str) -> list[dict[str, Any]]:
        return self._collections.setdefault(collection, [])

    async def find_one(self, collection: str, filter: dict[str, Any]) -> dict[str, Any] | None:
        async with self._lock:
            for doc in self._docs(collection):
                if matches(doc, filter):
                    return copy.deepcopy(doc)
        return None

    async def find(self, collection: str, filter: dict[str, Any]) -> list[dict[str, Any]]:
        async with self._lock:
            return [copy.deepcopy(d) for d in self._docs(collection) if matches(d, filter)]

    async def update_one(
        self, collection: str, filter: dict[str, Any], patch: dict[str, Any]
    ) -> UpdateResult:
        async with self._lock:
            for doc in self._docs(collection):
                if matches(doc, filter):
                    doc.update(copy.deepcopy({k: v for k, v in patch.items() if k != "_id"}))
                    return UpdateResult(matched_count=1)
        return UpdateResult(matched_count=0)

    async def insert_one(self, collection: str, doc: dict[str, Any]) -> str:
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", generate_document_id())
        async with self._lock:
            self._docs(collection).append(stored)
        return stored["_id"]

    async def count(self, collection: str, filter: dict[str, Any]) -> int:
        async with self._lock:
            return sum(1 for d in self._docs(collection) if matches(d, filter))

    async def delete_one(self, collection: str, filter: dict[str, Any]) -> int:
        async with self._lock:
            docs = self._docs(collection)
            for i, doc in enumerate(docs):
                if matches(doc, filter):
                    del docs[i]
                    return 1
        return 0
