"""
Unit tests for the JSON file repositories under DATA_DIR.
"""

import json

import pytest

from conftest import make_exam
from topik_cbt.errors import ContentLoadError
from topik_cbt.models.annotation_model import Annotation, CanvasData, Stroke, TargetType
from topik_cbt.models.session_state import ExamAttempt
from topik_cbt.services.repository import (
    AccessPolicy,
    AnnotationRepository,
    CanvasRepository,
    ExamRepository,
    HistoryRepository,
    JsonFileStore,
    canvas_key,
)
from topik_cbt.services.sample_exams import SAMPLE_EXAMS


class TestExamRepository:
    """Tests for ExamRepository."""

    def test_list_exams_when_no_file_then_sample_exams(self, tmp_path):
        repo = ExamRepository(str(tmp_path))

        exams = repo.list_exams()

        assert [e.id for e in exams] == [e.id for e in SAMPLE_EXAMS]
        assert all(e.questions == [] for e in exams)

    def test_save_exams_when_reloaded_then_questions_kept(self, tmp_path):
        repo = ExamRepository(str(tmp_path))
        repo.save_exams([make_exam("saved")])

        reloaded = ExamRepository(str(tmp_path))

        assert [e.id for e in reloaded.list_exams()] == ["saved"]
        assert len(reloaded.get_exam_questions("saved")) == 50
        raw = json.loads((tmp_path / "exams.json").read_text(encoding="utf-8"))
        assert "timeLimit" in raw[0]

    def test_get_exam_questions_when_unknown_then_empty(self, tmp_path):
        repo = ExamRepository(str(tmp_path), exams=[make_exam()])

        assert repo.get_exam_questions("missing") == []
        assert repo.get_exam("missing") is None

    def test_list_exams_when_corrupt_file_then_content_load_error(self, tmp_path):
        (tmp_path / "exams.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(ContentLoadError):
            ExamRepository(str(tmp_path)).list_exams()

    def test_list_exams_when_invalid_record_then_content_load_error(self, tmp_path):
        (tmp_path / "exams.json").write_text(json.dumps([{"id": "x"}]), encoding="utf-8")

        with pytest.raises(ContentLoadError):
            ExamRepository(str(tmp_path)).list_exams()


class TestHistoryRepository:
    """Tests for HistoryRepository."""

    def test_save_history_when_reloaded_then_int_answer_keys(self, tmp_path):
        repo = HistoryRepository(str(tmp_path))
        attempt = ExamAttempt(exam_id="e", score=4, max_score=100, user_answers={0: 2, 9: 1})

        repo.save_history(attempt)

        loaded = HistoryRepository(str(tmp_path)).list_history()
        assert [a.id for a in loaded] == [attempt.id]
        assert loaded[0].user_answers == {0: 2, 9: 1}

    def test_delete_history_when_present_then_removed(self, tmp_path):
        repo = HistoryRepository(str(tmp_path))
        keep = ExamAttempt(exam_id="e")
        drop = ExamAttempt(exam_id="e")
        repo.save_history(keep)
        repo.save_history(drop)

        assert repo.delete_history(drop.id)
        assert not repo.delete_history("nope")
        assert [a.id for a in repo.list_history()] == [keep.id]


class TestAnnotationRepository:
    def test_save_annotation_when_same_id_then_overwritten(self, tmp_path):
        repo = AnnotationRepository(str(tmp_path))
        annotation = Annotation(context_key="TOPIK-a-Q0", text="문장")

        repo.save_annotation(annotation)
        repo.save_annotation(annotation.model_copy(update={"note": "메모"}))
        repo.save_annotation(Annotation(context_key="TOPIK-b-Q0", text="다른 시험"))

        items = repo.list_annotations("TOPIK-a")
        assert len(items) == 1
        assert items[0].id == annotation.id
        assert items[0].note == "메모"
        assert len(repo.list_annotations()) == 2

    def test_list_annotations_when_corrupt_file_then_content_load_error(self, tmp_path):
        path = tmp_path / "annotations.json"
        path.write_text("{oops", encoding="utf-8")
        repo = AnnotationRepository(str(tmp_path))

        with pytest.raises(ContentLoadError):
            repo.list_annotations()
        with pytest.raises(ContentLoadError):
            repo.save_annotation(Annotation(context_key="TOPIK-a-Q0", text="문장"))

        assert path.read_text(encoding="utf-8") == "{oops"


class TestCanvasRepository:
    def test_save_canvas_when_older_version_then_skipped(self, tmp_path):
        repo = CanvasRepository(str(tmp_path))
        newer = CanvasData(lines=[Stroke(points=[0, 0, 1, 1])], version=5)

        repo.save_canvas("exam-1", TargetType.EXAM, 0, newer)
        repo.save_canvas("exam-1", TargetType.EXAM, 0, CanvasData(version=3))

        assert repo.load_canvas("exam-1", TargetType.EXAM, 0).version == 5
        assert repo.load_canvas("exam-1", TargetType.EXAM, 1) is None
        assert repo.load_canvas("exam-1", TargetType.TEXTBOOK, 0) is None

    def test_load_canvas_when_invalid_record_then_content_load_error(self, tmp_path):
        (tmp_path / "canvas.json").write_text(
            json.dumps({"EXAM:exam-1:0": {"lines": "x", "version": "new"}}), encoding="utf-8"
        )

        with pytest.raises(ContentLoadError):
            CanvasRepository(str(tmp_path)).load_canvas("exam-1", TargetType.EXAM, 0)

    def test_canvas_key_when_called_then_type_id_page(self):
        assert canvas_key("exam-1", "EXAM", 2) == "EXAM:exam-1:2"


class TestJsonFileStore:
    def test_update_when_missing_file_then_default_used(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "nested" / "doc.json"), list)

        store.update(lambda items: [*items, 1])

        assert store.read() == [1]


class TestAccessPolicy:
    @pytest.mark.parametrize(
        "tier, is_paid, expected",
        [("FREE", False, True), ("FREE", True, False), ("paid", True, True)],
    )
    def test_can_access_content(self, tier, is_paid, expected):
        assert AccessPolicy(tier).can_access_content(make_exam(is_paid=is_paid)) is expected
