import pytest

from mnemos.application.lessons import LessonCatalog, LessonMetadata, load_lesson_catalog
from mnemos.domain.errors import InvalidInputError, NotFoundError
from mnemos.domain.models import ModuleType


class TestDefaultCatalog:
    """Tests for the built-in alphabet lesson table."""

    def test_seven_lessons_in_order(self):
        catalog = LessonCatalog()
        assert catalog.lesson_ids == [f"lesson{i}" for i in range(1, 8)]

    def test_pass_rates(self):
        catalog = LessonCatalog()
        rates = [lesson.min_pass_rate for lesson in catalog.lessons]
        assert rates == [0.95, 0.90, 0.90, 0.85, 0.85, 0.90, 0.80]

    def test_mini_review_intervals(self):
        catalog = LessonCatalog()
        assert [lesson.mini_review_interval for lesson in catalog.lessons] == [3, 3, 3, 3, 3, 4, 4]

    def test_lesson_one_items(self):
        lesson = LessonCatalog().get("lesson1")
        assert len(lesson.items) == 8
        assert lesson.max_rounds == 3
        assert lesson.max_round_retries == 2

    def test_unknown_lesson(self):
        with pytest.raises(NotFoundError):
            LessonCatalog().get("lesson99")

    def test_shared_items_listed_once(self):
        refs = {ref.item_id: ref for ref in LessonCatalog().item_refs()}
        # The short "a" vowel is taught in lessons 1 and 3
        assert refs["ะ"].lesson_ids == ("lesson1", "lesson3")
        assert refs["ก"].module_type == ModuleType.LETTER


class TestLessonMetadata:
    def test_rejects_bad_pass_rate(self):
        with pytest.raises(InvalidInputError):
            LessonMetadata(lesson_id="x", title="x", order=1, min_pass_rate=1.5)

    def test_rejects_zero_interval(self):
        with pytest.raises(InvalidInputError):
            LessonMetadata(lesson_id="x", title="x", order=1, min_pass_rate=0.9, mini_review_interval=0)

    def test_duplicate_ids_rejected(self):
        lesson = LessonMetadata(lesson_id="x", title="x", order=1, min_pass_rate=0.9)
        with pytest.raises(InvalidInputError):
            LessonCatalog([lesson, lesson])


class TestLoadLessonCatalog:
    """Tests for YAML lesson tables."""

    def test_none_returns_default(self):
        assert len(load_lesson_catalog(None)) == 7

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "lessons.yaml"
        path.write_text(
            """
lessons:
  - lesson_id: w1
    title: First words
    module_type: word
    min_pass_rate: 0.75
    mini_review_interval: 2
    items: [cat, dog]
  - lesson_id: w2
    min_pass_rate: 0.8
""",
            encoding="utf-8",
        )
        catalog = load_lesson_catalog(path)
        first = catalog.get("w1")
        assert first.module_type == ModuleType.WORD
        assert first.min_pass_rate == 0.75
        assert first.mini_review_interval == 2
        assert first.items == ("cat", "dog")
        assert catalog.get("w2").title == "w2"
        assert catalog.lesson_ids == ["w1", "w2"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            load_lesson_catalog(tmp_path / "nope.yaml")

    def test_missing_pass_rate(self, tmp_path):
        path = tmp_path / "lessons.yaml"
        path.write_text("lessons:\n  - lesson_id: w1\n", encoding="utf-8")
        with pytest.raises(InvalidInputError):
            load_lesson_catalog(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "lessons.yaml"
        path.write_text("lessons: [unclosed", encoding="utf-8")
        with pytest.raises(InvalidInputError):
            load_lesson_catalog(path)
