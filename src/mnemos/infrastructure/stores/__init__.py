from .json_store import JsonFileDocumentStore
from .memory_store import InMemoryDocumentStore

__all__ = ["InMemoryDocumentStore", "JsonFileDocumentStore"]
