"""
Document <-> domain model conversion.

Documents hold only JSON-native values: datetimes as ISO-8601 strings and
enums as their values.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from mnemos.domain.models import (
    MasteryLevel,
    MemoryState,
    ModuleType,
    Phase,
    RoundRecord,
    SessionSnapshot,
    SessionStatus,
    UserProgress,
)


def dt_to_str(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def dt_from_str(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _strip(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k != "_id"}


def memory_state_to_doc(state: MemoryState) -> dict[str, Any]:
    doc = asdict(state)
    doc["module_type"] = state.module_type.value
    doc["mastery_level"] = state.mastery_level.value
    doc["last_reviewed_at"] = dt_to_str(state.last_reviewed_at)
    doc["next_review_at"] = dt_to_str(state.next_review_at)
    return doc


def memory_state_from_doc(doc: dict[str, Any]) -> MemoryState:
    data = _strip(doc)
    return MemoryState(
        user_id=data["user_id"],
        item_id=data["item_id"],
        module_type=ModuleType(data.get("module_type", ModuleType.LETTER.value)),
        mastery_level=MasteryLevel(data.get("mastery_level", MasteryLevel.UNFAMILIAR.value)),
        easiness_factor=float(data.get("easiness_factor", 2.5)),
        interval_days=int(data.get("interval_days", 0)),
        repetition_count=int(data.get("repetition_count", 0)),
        last_reviewed_at=dt_from_str(data.get("last_reviewed_at")),
        next_review_at=dt_from_str(data.get("next_review_at")),
        skipped=bool(data.get("skipped", False)),
        correct_count=int(data.get("correct_count", 0)),
        wrong_count=int(data.get("wrong_count", 0)),
        streak_correct=int(data.get("streak_correct", 0)),
    )


def snapshot_to_doc(snapshot: SessionSnapshot) -> dict[str, Any]:
    doc = asdict(snapshot)
    doc["phase"] = snapshot.phase.value
    doc["status"] = snapshot.status.value
    doc["module_type"] = snapshot.module_type.value
    doc["updated_at"] = dt_to_str(snapshot.updated_at)
    return doc


def snapshot_from_doc(doc: dict[str, Any]) -> SessionSnapshot:
    data = _strip(doc)
    return SessionSnapshot(
        lesson_id=data["lesson_id"],
        round=int(data["round"]),
        phase=Phase(data["phase"]),
        answered_count=int(data.get("answered_count", 0)),
        current_index=int(data.get("current_index", 0)),
        status=SessionStatus(data.get("status", SessionStatus.IN_PROGRESS.value)),
        user_id=data.get("user_id", ""),
        module_type=ModuleType(data.get("module_type", ModuleType.LETTER.value)),
        carryover_item_ids=list(data.get("carryover_item_ids") or []),
        mistake_item_ids=list(data.get("mistake_item_ids") or []),
        remedy_index=int(data.get("remedy_index", 0)),
        final_review_correct=int(data.get("final_review_correct", 0)),
        retry_count=int(data.get("retry_count", 0)),
        updated_at=dt_from_str(data.get("updated_at")),
    )


def progress_to_doc(progress: UserProgress) -> dict[str, Any]:
    doc = asdict(progress)
    doc["round_history"] = [
        {**asdict(r), "evaluated_at": dt_to_str(r.evaluated_at)} for r in progress.round_history
    ]
    doc["updated_at"] = dt_to_str(progress.updated_at)
    return doc


def progress_from_doc(doc: dict[str, Any]) -> UserProgress:
    data = _strip(doc)
    history = [
        RoundRecord(
            lesson_id=r["lesson_id"],
            round=int(r["round"]),
            pass_rate=float(r["pass_rate"]),
            promote=bool(r["promote"]),
            evaluated_at=dt_from_str(r.get("evaluated_at")),
        )
        for r in data.get("round_history") or []
    ]
    return UserProgress(
        user_id=data["user_id"],
        completed_lessons=list(data.get("completed_lessons") or []),
        round_history=history,
        letter_progress=float(data.get("letter_progress", 0.0)),
        letter_completed=bool(data.get("letter_completed", False)),
        word_unlocked=bool(data.get("word_unlocked", False)),
        sentence_unlocked=bool(data.get("sentence_unlocked", False)),
        article_unlocked=bool(data.get("article_unlocked", False)),
        daily_limit=data.get("daily_limit"),
        updated_at=dt_from_str(data.get("updated_at")),
    )
