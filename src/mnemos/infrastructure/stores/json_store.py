"""
JSON file document store.

Each collection is a single `<collection>.json` file holding a list of
documents under `data_dir`. Every operation re-reads the file so separate
CLI invocations see each other's writes; writes go through a temp file and
`os.replace` so a crash never leaves a half-written collection.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from mnemos.application.id_service import generate_document_id
from mnemos.domain.interfaces import DocumentStore, UpdateResult

from .memory_store import matches

logger = logging.getLogger(__name__)


class JsonFileDocumentStore(DocumentStore):
    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._lock = asyncio.Lock()

    def _path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _read(self, collection: str) -> list[dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise json.JSONDecodeError(f"{path.name} must hold a list", "", 0)
        return data

    def _write(self, collection: str, docs: list[dict[str, Any]]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(collection)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(docs, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)

    async def _load(self, collection: str) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read, collection)

    async def _save(self, collection: str, docs: list[dict[str, Any]]) -> None:
        await asyncio.to_thread(self._write, collection, docs)

    async def find_one(self, collection: str, filter: dict[str, Any]) -> dict[str, Any] | None:
        async with self._lock:
            docs = await self._load(collection)
        return next((d for d in docs if matches(d, filter)), None)

    async def find(self, collection: str, filter: dict[str, Any]) -> list[dict[str, Any]]:
        async with self._lock:
            docs = await self._load(collection)
        return [d for d in docs if matches(d, filter)]

    async def update_one(
        self, collection: str, filter: dict[str, Any], patch: dict[str, Any]
    ) -> UpdateResult:
        async with self._lock:
            docs = await self._load(collection)
            for doc in docs:
                if matches(doc, filter):
                    doc.update({k: v for k, v in patch.items() if k != "_id"})
                    await self._save(collection, docs)
                    return UpdateResult(matched_count=1)
        return UpdateResult(matched_count=0)

    async def insert_one(self, collection: str, doc: dict[str, Any]) -> str:
        stored = dict(doc)
        stored.setdefault("_id", generate_document_id())
        async with self._lock:
            docs = await self._load(collection)
            docs.append(stored)
            await self._save(collection, docs)
        logger.debug(f"Inserted {stored['_id']} into {collection}")
        return stored["_id"]

    async def count(self, collection: str, filter: dict[str, Any]) -> int:
        return len(await self.find(collection, filter))

    async def delete_one(self, collection: str, filter: dict[str, Any]) -> int:
        async with self._lock:
            docs = await self._load(collection)
            for i, doc in enumerate(docs):
                if matches(doc, filter):
                    del docs[i]
                    await self._save(collection, docs)
                    return 1
        return 0
