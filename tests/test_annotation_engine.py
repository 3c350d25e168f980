"""
Unit tests for topik_cbt.services.annotation_engine.

Literal matching, segment rendering, idempotent store and the editor flow.
"""

import re

import pytest

from topik_cbt.errors import ContentLoadError
from topik_cbt.models.annotation_model import Annotation, HighlightColor
from topik_cbt.services.annotation_engine import (
    TEMP_ANNOTATION_ID,
    AnnotationEditor,
    AnnotationStore,
    build_context_key,
    build_context_prefix,
    find_spans,
    highlight_class,
    highlight_text,
)

KEY = "TOPIK-exam-1-Q0"


def _strip_tags(markup: str) -> str:
    return re.sub(r"<[^>]+>", "", markup)


class RecordingPersistence:
    def __init__(self, error=None):
        self.saved = []
        self.error = error

    def save_annotation(self, annotation):
        if self.error is not None:
            raise self.error
        self.saved.append(annotation)


@pytest.fixture
def persistence():
    return RecordingPersistence()


@pytest.fixture
def store(persistence):
    return AnnotationStore(persistence)


@pytest.fixture
def editor(store):
    return AnnotationEditor(store)


class TestMatching:
    """Tests for find_spans() and context keys."""

    def test_find_spans_when_regex_metacharacters_then_literal_match(self):
        text = "가격 (USD) 3.5달러, 3x5"

        assert find_spans(text, "(USD)") == [(3, 8)]
        assert find_spans(text, "3.5") == [(9, 12)]

    def test_find_spans_when_case_differs_then_matches(self):
        assert find_spans("Hello World world", "WORLD") == [(6, 11), (12, 17)]

    def test_find_spans_when_empty_needle_then_no_matches(self):
        assert find_spans("abc", "") == []
        assert find_spans("", "a") == []

    def test_build_context_key_when_called_then_prefix_and_index(self):
        assert build_context_prefix("91-reading") == "TOPIK-91-reading"
        assert build_context_key("91-reading", 4) == "TOPIK-91-reading-Q4"


class TestHighlightText:
    """Tests for highlight_text()."""

    def test_highlight_text_when_no_annotations_then_escaped_only(self):
        assert highlight_text("a < b", []) == "a &lt; b"

    def test_highlight_text_when_special_chars_then_escaped_once(self):
        annotation = Annotation(context_key=KEY, text="<b>")

        markup = highlight_text("x <b> & y", [annotation])

        assert "&amp;lt;" not in markup
        assert ">&lt;b&gt;</mark>" in markup
        assert "&amp; y" in markup

    def test_highlight_text_when_case_differs_then_original_text_kept(self):
        annotation = Annotation(context_key=KEY, text="world")

        markup = highlight_text("Hello World", [annotation])

        assert f'data-annotation-id="{annotation.id}"' in markup
        assert ">World</mark>" in markup

    def test_highlight_text_when_overlapping_then_text_preserved(self):
        first = Annotation(context_key=KEY, text="abc d", color=HighlightColor.GREEN)
        second = Annotation(context_key=KEY, text="c def", color=HighlightColor.BLUE)

        markup = highlight_text("abc def", [first, second])

        assert _strip_tags(markup) == "abc def"
        assert markup.count("<mark") == 2
        assert f'data-annotation-id="{first.id}" class="hl hl-underline hl-green">ab</mark>' in markup
        assert f'data-annotation-id="{second.id}" class="hl hl-underline hl-blue">c def</mark>' in markup

    def test_highlight_text_when_overlap_has_active_then_active_on_top(self):
        first = Annotation(context_key=KEY, text="abc d")
        second = Annotation(context_key=KEY, text="c def")

        markup = highlight_text("abc def", [first, second], active_annotation_id=first.id)

        assert f'data-annotation-id="{first.id}" class="hl hl-active hl-yellow">abc d</mark>' in markup
        assert _strip_tags(markup) == "abc def"

    def test_highlight_text_when_tombstone_then_not_rendered(self):
        deleted = Annotation(context_key=KEY, text="abc", color=None, note="")

        assert highlight_text("abc", [deleted]) == "abc"

    def test_highlight_text_when_note_only_then_yellow_underline(self):
        memo = Annotation(context_key=KEY, text="abc", color=None, note="메모")

        assert 'class="hl hl-underline hl-yellow"' in highlight_text("abc", [memo])

    def test_highlight_text_when_temp_preview_then_active(self):
        preview = Annotation(id=TEMP_ANNOTATION_ID, context_key=KEY, text="abc")

        assert 'class="hl hl-active hl-yellow"' in highlight_text("abc", [preview])

    def test_highlight_text_when_transform_given_then_applied_to_pieces(self):
        annotation = Annotation(context_key=KEY, text="b")

        markup = highlight_text("abc", [annotation], transform=str.upper)

        assert _strip_tags(markup) == "ABC"

    def test_highlight_class_when_color_missing_then_yellow(self):
        assert highlight_class(None, False) == "hl hl-underline hl-yellow"
        assert highlight_class("pink", True) == "hl hl-active hl-pink"


class TestAnnotationStore:
    """Tests for AnnotationStore."""

    def test_upsert_when_same_text_twice_then_single_record(self, store, persistence):
        first = store.upsert(KEY, "문장", color=HighlightColor.GREEN)
        second = store.upsert(KEY, "문장", note="메모")

        assert len(store.all()) == 1
        assert second.id == first.id
        assert second.timestamp == first.timestamp
        assert second.color == HighlightColor.GREEN
        assert second.note == "메모"
        assert len(persistence.saved) == 2

    def test_upsert_when_blank_selection_then_noop(self, store, persistence):
        assert store.upsert(KEY, "   ") is None
        assert store.all() == []
        assert persistence.saved == []

    def test_soft_delete_when_rehighlighted_then_same_id(self, store):
        created = store.upsert(KEY, "문장", note="메모")

        deleted = store.soft_delete(created.id)
        revived = store.upsert(KEY, "문장")

        assert deleted.is_tombstone
        assert store.get(created.id) is not None
        assert revived.id == created.id
        assert revived.color == HighlightColor.YELLOW
        assert highlight_text("문장입니다", store.for_context(KEY)).count("<mark") == 1

    def test_for_prefix_when_other_exam_then_filtered(self, store):
        store.upsert("TOPIK-a-Q0", "x")
        store.upsert("TOPIK-a-Q12", "y")
        store.upsert("TOPIK-ab-Q0", "z")

        assert {a.text for a in store.for_prefix("TOPIK-a")} == {"x", "y"}

    def test_sidebar_when_color_only_then_hidden(self, store):
        colored = store.upsert(KEY, "색만")
        memo = store.upsert(KEY, "메모 있음", note="기억")

        assert [a.id for a in store.sidebar()] == [memo.id]
        assert {a.id for a in store.sidebar(editing_id=colored.id)} == {colored.id, memo.id}

    def test_upsert_when_persistence_fails_then_kept_locally(self):
        store = AnnotationStore(RecordingPersistence(error=OSError("disk full")))

        saved = store.upsert(KEY, "문장")

        assert store.get(saved.id) is not None
        assert store.last_error == "disk full"

    def test_upsert_when_file_corrupt_then_error_kept_until_next_success(self):
        backend = RecordingPersistence(error=ContentLoadError("annotations.json 파일이 손상되었습니다"))
        store = AnnotationStore(backend)

        store.upsert(KEY, "문장")
        store.all()

        assert "손상" in store.last_error

        backend.error = None
        store.upsert(KEY, "다른 문장")

        assert store.last_error is None
        assert len(backend.saved) == 1


class TestAnnotationEditor:
    """Tests for the selection → menu → save flow."""

    def test_begin_selection_when_blank_then_ignored(self, editor):
        assert not editor.begin_selection(KEY, "")
        assert not editor.menu_open

    def test_save_when_selection_open_then_stored_and_active(self, editor, store):
        # Arrange
        editor.begin_selection(KEY, "문장")
        editor.note_input = "첫 메모"

        # Act
        saved = editor.save(HighlightColor.PINK)

        # Assert
        assert not editor.menu_open
        assert editor.active_annotation_id == saved.id
        assert store.find(KEY, "문장").note == "첫 메모"
        assert saved.color == HighlightColor.PINK

    def test_annotations_for_when_menu_open_then_includes_preview(self, editor):
        editor.begin_selection(KEY, "문장")

        items = editor.annotations_for(KEY)

        assert [a.id for a in items] == [TEMP_ANNOTATION_ID]
        assert editor.annotations_for("TOPIK-exam-1-Q1") == []
        assert [a.id for a in editor.annotations_for_prefix("TOPIK-exam-1")] == [TEMP_ANNOTATION_ID]

    def test_begin_selection_when_existing_then_prefills(self, editor, store):
        existing = store.upsert(KEY, "문장", color=HighlightColor.BLUE, note="이전 메모")

        editor.begin_selection(KEY, "문장")

        assert editor.note_input == "이전 메모"
        assert editor.selected_color == HighlightColor.BLUE
        assert editor.active_annotation_id == existing.id

    def test_cancel_when_menu_open_then_nothing_saved(self, editor, store):
        editor.begin_selection(KEY, "문장")

        editor.cancel()

        assert store.all() == []
        assert editor.preview_annotation() is None

    def test_commit_edit_when_editing_then_note_updated(self, editor, store):
        saved = store.upsert(KEY, "문장", note="old")

        editor.start_edit(saved.id)
        assert editor.edit_note_input == "old"
        assert saved.id in [a.id for a in editor.sidebar()]
        updated = editor.commit_edit("new")

        assert updated.note == "new"
        assert editor.editing_annotation_id is None
        assert editor.active_annotation_id is None

    def test_delete_when_active_then_cleared(self, editor, store):
        saved = store.upsert(KEY, "문장", note="memo")
        editor.set_active(saved.id)

        editor.delete(saved.id)

        assert editor.active_annotation_id is None
        assert store.get(saved.id).is_tombstone
        assert editor.sidebar() == []
