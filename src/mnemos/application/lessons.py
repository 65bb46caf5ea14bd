"""
Lesson metadata catalog.

The built-in table covers the seven alphabet lessons. A YAML file can
replace it (see `load_lesson_catalog`).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from mnemos.domain.constants import (
    DEFAULT_MAX_ROUND_RETRIES,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_MINI_REVIEW_INTERVAL,
)
from mnemos.domain.errors import InvalidInputError, NotFoundError
from mnemos.domain.models import LearningItemRef, ModuleType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonMetadata:
    """
    Per-lesson progression rules.

    Attributes:
        min_pass_rate: Final-review pass rate needed to promote a round.
        mini_review_interval: New items per mini-review chunk.
        max_round_retries: Failed attempts at one round before force-advancing.
        items: Content labels taught by the lesson, in curriculum order.
    """

    lesson_id: str
    title: str
    order: int
    min_pass_rate: float
    mini_review_interval: int = DEFAULT_MINI_REVIEW_INTERVAL
    max_rounds: int = DEFAULT_MAX_ROUNDS
    max_round_retries: int = DEFAULT_MAX_ROUND_RETRIES
    module_type: ModuleType = ModuleType.LETTER
    items: tuple[str, ...] = field(default=())

    def __post_init__(self):
        if not 0.0 <= self.min_pass_rate <= 1.0:
            raise InvalidInputError(
                f"{self.lesson_id}: min_pass_rate must be within 0..1, got {self.min_pass_rate}"
            )
        if self.mini_review_interval < 1:
            raise InvalidInputError(f"{self.lesson_id}: mini_review_interval must be >= 1")
        if self.max_rounds < 1:
            raise InvalidInputError(f"{self.lesson_id}: max_rounds must be >= 1")
        if self.max_round_retries < 0:
            raise InvalidInputError(f"{self.lesson_id}: max_round_retries must be >= 0")


def _lesson(lesson_id, title, order, min_pass_rate, interval, *groups):
    letters: list[str] = []
    for group in groups:
        letters.extend(group)
    return LessonMetadata(
        lesson_id=lesson_id,
        title=title,
        order=order,
        min_pass_rate=min_pass_rate,
        mini_review_interval=interval,
        items=tuple(letters),
    )


DEFAULT_LESSONS: tuple[LessonMetadata, ...] = (
    _lesson(
        "lesson1", "Basic CV reading", 1, 0.95, 3,
        ["ก", "ด", "ต", "น", "ม"], ["า", "ะ", "ิ"],
    ),
    _lesson(
        "lesson2", "Leading vowels", 2, 0.90, 3,
        ["บ", "ป", "ร", "ล", "ว", "ย"], ["เ", "แ", "โ", "อ"],
    ),
    _lesson(
        "lesson3", "Tone basics", 3, 0.90, 3,
        ["ข", "ถ", "ผ", "ส", "ห"], ["ะ", "ุ", "ู"], ["่", "้"],
    ),
    _lesson(
        "lesson4", "Consonant classes and tones", 4, 0.85, 3,
        ["ค", "ท", "พ", "ช", "จ", "ง"], ["ไ", "ใ", "เอา", "อำ"], ["๊", "๋"],
    ),
    _lesson(
        "lesson5", "Compound vowels", 5, 0.85, 3,
        ["ซ", "ฉ", "ฝ", "ฟ", "ศ", "ษ", "ฮ", "อ"], ["เอีย", "เอือ", "อัว", "เออ", "ื", "ึ"],
    ),
    _lesson(
        "lesson6", "Full coverage", 6, 0.90, 4,
        ["ฑ", "ฒ", "ณ", "ภ", "ธ", "ฌ", "ญ", "ฬ", "ฎ", "ฏ", "ฐ"],
        ["อาย", "อุย", "เอย", "โอย", "ออย"],
    ),
    _lesson(
        "lesson7", "Rare letters and special vowels", 7, 0.80, 4,
        ["ฃ", "ฅ"], ["ฤ", "ฤๅ", "ฦ", "ฦๅ", "แอะ", "โอะ", "เอะ", "เอาะ"],
    ),
)


class LessonCatalog:
    """Ordered lookup of lesson metadata by id."""

    def __init__(self, lessons: list[LessonMetadata] | tuple[LessonMetadata, ...] | None = None):
        lessons = DEFAULT_LESSONS if lessons is None else lessons
        self._lessons = {
            lesson.lesson_id: lesson for lesson in sorted(lessons, key=lambda x: x.order)
        }
        if len(self._lessons) != len(lessons):
            raise InvalidInputError("Duplicate lesson ids in catalog")

    def get(self, lesson_id: str) -> LessonMetadata:
        try:
            return self._lessons[lesson_id]
        except KeyError:
            raise NotFoundError(f"Unknown lesson: {lesson_id}") from None

    def __contains__(self, lesson_id: object) -> bool:
        return lesson_id in self._lessons

    def __len__(self) -> int:
        return len(self._lessons)

    @property
    def lessons(self) -> list[LessonMetadata]:
        return list(self._lessons.values())

    @property
    def lesson_ids(self) -> list[str]:
        return list(self._lessons)

    def lessons_for(self, module_type: ModuleType) -> list[LessonMetadata]:
        return [lesson for lesson in self._lessons.values() if lesson.module_type == module_type]

    def item_refs(self) -> list[LearningItemRef]:
        """
        Content references for every item the catalog teaches.

        An item taught by several lessons appears once, listing all of them.
        """
        refs: dict[str, LearningItemRef] = {}
        for lesson in self._lessons.values():
            for label in lesson.items:
                existing = refs.get(label)
                lesson_ids = (existing.lesson_ids if existing else ()) + (lesson.lesson_id,)
                refs[label] = LearningItemRef(
                    item_id=label,
                    module_type=lesson.module_type,
                    lesson_ids=lesson_ids,
                    label=label,
                )
        return list(refs.values())


def _parse_lesson(raw: dict[str, Any], position: int) -> LessonMetadata:
    if not isinstance(raw, dict):
        raise InvalidInputError(f"Lesson entry #{position} must be a mapping")
    try:
        lesson_id = str(raw["lesson_id"])
        min_pass_rate = float(raw["min_pass_rate"])
    except KeyError as e:
        raise InvalidInputError(f"Lesson entry #{position} is missing {e.args[0]!r}") from e
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Lesson entry #{position}: {e}") from e

    try:
        module_type = ModuleType(raw.get("module_type", ModuleType.LETTER.value))
    except ValueError as e:
        raise InvalidInputError(f"{lesson_id}: {e}") from e

    return LessonMetadata(
        lesson_id=lesson_id,
        title=str(raw.get("title", lesson_id)),
        order=int(raw.get("order", position)),
        min_pass_rate=min_pass_rate,
        mini_review_interval=int(raw.get("mini_review_interval", DEFAULT_MINI_REVIEW_INTERVAL)),
        max_rounds=int(raw.get("max_rounds", DEFAULT_MAX_ROUNDS)),
        max_round_retries=int(raw.get("max_round_retries", DEFAULT_MAX_ROUND_RETRIES)),
        module_type=module_type,
        items=tuple(str(i) for i in raw.get("items") or ()),
    )


def load_lesson_catalog(path: Path | None) -> LessonCatalog:
    """
    Load a lesson table from YAML, or the built-in table when path is None.

    Expected shape:

        lessons:
          - lesson_id: lesson1
            title: Basic CV reading
            min_pass_rate: 0.95
            mini_review_interval: 3
    """
    if path is None:
        return LessonCatalog()

    path = Path(path)
    if not path.exists():
        raise NotFoundError(f"Lessons file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise InvalidInputError(f"Invalid lessons file {path}: {e}") from e

    entries = data.get("lessons") if isinstance(data, dict) else data
    if not isinstance(entries, list) or not entries:
        raise InvalidInputError(f"{path} must define a non-empty 'lessons' list")

    lessons = [_parse_lesson(raw, i) for i, raw in enumerate(entries, start=1)]
    logger.info(f"Loaded {len(lessons)} lessons from {path}")
    return LessonCatalog(lessons)
