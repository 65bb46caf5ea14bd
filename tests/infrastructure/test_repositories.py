from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from mnemos.domain.constants import MEMORY_STATES, SESSION_SNAPSHOTS
from mnemos.domain.models import (
    LearningItemRef,
    MasteryLevel,
    MemoryState,
    ModuleType,
    Phase,
    RoundRecord,
    SessionSnapshot,
    SessionStatus,
    UserProgress,
)

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


def snapshot(lesson_id="abc", **kw):
    values = dict(
        lesson_id=lesson_id,
        round=1,
        phase=Phase.TODAY_LEARNING,
        answered_count=0,
        current_index=0,
        status=SessionStatus.IN_PROGRESS,
        user_id="u1",
        updated_at=NOW,
    )
    values.update(kw)
    return SessionSnapshot(**values)


class TestSessionRecoveryStore:
    @pytest.mark.asyncio
    async def test_save_and_load(self, session_store):
        saved = snapshot(
            phase=Phase.TODAY_REMEDY,
            current_index=7,
            answered_count=9,
            carryover_item_ids=["x"],
            mistake_item_ids=["a", "c"],
            remedy_index=1,
            final_review_correct=2,
            retry_count=1,
        )
        await session_store.save(saved)
        assert await session_store.load("u1", "abc") == saved

    @pytest.mark.asyncio
    async def test_save_is_idempotent(self, session_store, store):
        await session_store.save(snapshot())
        await session_store.save(snapshot(current_index=3))
        await session_store.save(snapshot(current_index=3))

        assert await store.count(SESSION_SNAPSHOTS, {"user_id": "u1"}) == 1
        assert (await session_store.load("u1", "abc")).current_index == 3

    @pytest.mark.asyncio
    async def test_load_missing(self, session_store):
        assert await session_store.load("u1", "nope") is None

    @pytest.mark.asyncio
    async def test_clear(self, session_store):
        await session_store.save(snapshot())
        assert await session_store.clear("u1", "abc") is True
        assert await session_store.clear("u1", "abc") is False
        assert await session_store.load("u1", "abc") is None

    @pytest.mark.asyncio
    async def test_requires_user(self, session_store):
        with pytest.raises(ValueError):
            await session_store.save(snapshot(user_id=""))

    @pytest.mark.asyncio
    async def test_find_active_picks_latest_in_progress(self, session_store):
        await session_store.save(snapshot("abc", updated_at=NOW - timedelta(hours=2)))
        await session_store.save(snapshot("def", updated_at=NOW - timedelta(hours=1)))
        await session_store.save(
            snapshot("ghi", status=SessionStatus.COMPLETED, phase=Phase.FINISHED, updated_at=NOW)
        )

        active = await session_store.find_active("u1")
        assert active.lesson_id == "def"
        assert await session_store.find_active("u2") is None


class TestMemoryStateRepository:
    @pytest.mark.asyncio
    async def test_upsert(self, memory_states, store):
        state = MemoryState(user_id="u1", item_id="a", next_review_at=NOW)
        await memory_states.save(state)
        await memory_states.save(replace(state, repetition_count=2, mastery_level=MasteryLevel.FUZZY))

        assert await store.count(MEMORY_STATES, {}) == 1
        loaded = await memory_states.get("u1", "a")
        assert loaded.repetition_count == 2
        assert loaded.mastery_level == MasteryLevel.FUZZY
        assert loaded.next_review_at == NOW

    @pytest.mark.asyncio
    async def test_list_filters_module(self, memory_states):
        await memory_states.save(MemoryState(user_id="u1", item_id="a"))
        await memory_states.save(MemoryState(user_id="u1", item_id="cat", module_type=ModuleType.WORD))
        await memory_states.save(MemoryState(user_id="u2", item_id="a"))

        assert len(await memory_states.list_for_user("u1")) == 2
        words = await memory_states.list_for_user("u1", ModuleType.WORD)
        assert [s.item_id for s in words] == ["cat"]

    @pytest.mark.asyncio
    async def test_set_skipped_creates_state(self, memory_states):
        state = await memory_states.set_skipped("u1", "a", True)
        assert state.skipped is True
        assert state.last_reviewed_at is None
        assert (await memory_states.get("u1", "a")).skipped is True

        restored = await memory_states.set_skipped("u1", "a", False)
        assert restored.skipped is False


class TestProgressRepository:
    @pytest.mark.asyncio
    async def test_default_is_empty(self, progress_repo):
        progress = await progress_repo.get("u1")
        assert progress == UserProgress(user_id="u1")

    @pytest.mark.asyncio
    async def test_round_trip(self, progress_repo):
        progress = UserProgress(
            user_id="u1",
            completed_lessons=["lesson1"],
            round_history=[RoundRecord("lesson1", 1, 0.9, True, NOW)],
            letter_progress=1 / 7,
            word_unlocked=True,
            updated_at=NOW,
        )
        await progress_repo.save(progress)
        await progress_repo.save(progress)
        assert await progress_repo.get("u1") == progress


class TestStoreContentProvider:
    @pytest.mark.asyncio
    async def test_new_items_for_lesson_in_order(self, seeded_content):
        refs = await seeded_content.list_new_items("u1", ModuleType.LETTER, lesson_id="abc")
        assert [r.item_id for r in refs] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_new_items_excludes_seen(self, seeded_content, memory_states):
        await memory_states.save(MemoryState(user_id="u1", item_id="a"))
        refs = await seeded_content.list_new_items("u1", ModuleType.LETTER, limit=2)
        assert [r.item_id for r in refs] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_due_items_oldest_first(self, seeded_content, memory_states):
        await memory_states.save(MemoryState(user_id="u1", item_id="e", next_review_at=NOW - timedelta(days=1)))
        await memory_states.save(MemoryState(user_id="u1", item_id="b", next_review_at=NOW - timedelta(days=3)))
        await memory_states.save(MemoryState(user_id="u1", item_id="c", next_review_at=NOW + timedelta(days=2)))
        await memory_states.save(
            MemoryState(user_id="u1", item_id="d", next_review_at=NOW - timedelta(days=5), skipped=True)
        )

        due = await seeded_content.list_due_items("u1", ModuleType.LETTER, NOW)
        assert [r.item_id for r in due] == ["b", "e"]
        assert due[0].lesson_ids == ("abc",)

        limited = await seeded_content.list_due_items("u1", ModuleType.LETTER, NOW, limit=1)
        assert [r.item_id for r in limited] == ["b"]

    @pytest.mark.asyncio
    async def test_due_item_missing_from_catalog(self, seeded_content, memory_states):
        await memory_states.save(MemoryState(user_id="u1", item_id="zz", next_review_at=NOW))
        due = await seeded_content.list_due_items("u1", ModuleType.LETTER, NOW)
        assert due == [LearningItemRef(item_id="zz")]

    @pytest.mark.asyncio
    async def test_get_items_preserves_order(self, seeded_content):
        refs = await seeded_content.get_items(["c", "missing", "a"])
        assert [r.item_id for r in refs] == ["c", "a"]

    @pytest.mark.asyncio
    async def test_reseeding_keeps_positions(self, seeded_content):
        await seeded_content.upsert_items([LearningItemRef(item_id="a", lesson_ids=("abc", "def"))])
        refs = await seeded_content.list_new_items("u1", ModuleType.LETTER)
        assert refs[0].item_id == "a"
        assert refs[0].lesson_ids == ("abc", "def")
