"""
Service Factory
Centralizes the wiring of store, repositories, content provider and services.
"""

import logging
from dataclasses import dataclass

from mnemos.application.config import AppConfig
from mnemos.application.lessons import LessonCatalog, load_lesson_catalog
from mnemos.application.session_service import LearningSessionService
from mnemos.application.stats import ReviewStatsService
from mnemos.application.unlock import UnlockGate
from mnemos.domain.interfaces import DocumentStore
from mnemos.infrastructure.content_provider import StoreContentProvider
from mnemos.infrastructure.repositories import (
    MemoryStateRepository,
    ProgressRepository,
    RetryPolicy,
    SessionRecoveryStore,
)
from mnemos.infrastructure.stores import InMemoryDocumentStore, JsonFileDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the CLI and HTTP layers need, built from one config."""

    store: DocumentStore
    catalog: LessonCatalog
    content: StoreContentProvider
    memory_states: MemoryStateRepository
    sessions: LearningSessionService
    stats: ReviewStatsService


def get_document_store(config: AppConfig) -> DocumentStore:
    """
    Returns the DocumentStore implementation selected by config.
    """
    if config.store_backend == "memory":
        return InMemoryDocumentStore()
    logger.debug(f"Using JSON store at {config.data_dir}")
    return JsonFileDocumentStore(config.data_dir)


def build_services(config: AppConfig, store: DocumentStore | None = None) -> Services:
    store = store or get_document_store(config)
    retry = RetryPolicy(config.store_retry_attempts, config.store_retry_base_delay)
    catalog = load_lesson_catalog(config.lessons_file)

    memory_states = MemoryStateRepository(store, retry)
    content = StoreContentProvider(store, memory_states, retry)
    session_service = LearningSessionService(
        content=content,
        memory_states=memory_states,
        sessions=SessionRecoveryStore(store, retry),
        progress=ProgressRepository(store, retry),
        catalog=catalog,
        unlock_gate=UnlockGate(config.sentence_unlock_threshold, config.article_unlock_threshold),
        daily_limit=config.daily_limit,
        clamp_legacy_quality=config.clamp_legacy_quality,
    )
    return Services(
        store=store,
        catalog=catalog,
        content=content,
        memory_states=memory_states,
        sessions=session_service,
        stats=ReviewStatsService(memory_states),
    )
