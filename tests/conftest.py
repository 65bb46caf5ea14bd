from datetime import datetime, timezone

import pytest
import pytest_asyncio

from mnemos.application.lessons import LessonCatalog, LessonMetadata
from mnemos.application.session_service import LearningSessionService
from mnemos.domain.models import LearningItemRef
from mnemos.infrastructure.content_provider import StoreContentProvider
from mnemos.infrastructure.repositories import (
    MemoryStateRepository,
    ProgressRepository,
    RetryPolicy,
    SessionRecoveryStore,
)
from mnemos.infrastructure.stores import InMemoryDocumentStore

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for services under test."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_refs(lesson_id: str, labels: str) -> list[LearningItemRef]:
    return [LearningItemRef(item_id=c, lesson_ids=(lesson_id,), label=c) for c in labels]


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def retry():
    return RetryPolicy(attempts=3, base_delay=0)


@pytest.fixture
def memory_states(store, retry):
    return MemoryStateRepository(store, retry)


@pytest.fixture
def session_store(store, retry):
    return SessionRecoveryStore(store, retry)


@pytest.fixture
def progress_repo(store, retry):
    return ProgressRepository(store, retry)


@pytest.fixture
def content(store, memory_states, retry):
    return StoreContentProvider(store, memory_states, retry)


@pytest.fixture
def catalog():
    """Small two-lesson catalog of three seeded letters each."""
    return LessonCatalog(
        [
            LessonMetadata(lesson_id="abc", title="ABC", order=1, min_pass_rate=0.9, items=("a", "b", "c")),
            LessonMetadata(lesson_id="def", title="DEF", order=2, min_pass_rate=0.9, items=("d", "e", "f")),
        ]
    )


@pytest_asyncio.fixture
async def seeded_content(content):
    await content.upsert_items(make_refs("abc", "abc") + make_refs("def", "def"))
    return content


@pytest.fixture
def service(seeded_content, memory_states, session_store, progress_repo, catalog, clock):
    return LearningSessionService(
        content=seeded_content,
        memory_states=memory_states,
        sessions=session_store,
        progress=progress_repo,
        catalog=catalog,
        clock=clock,
    )
