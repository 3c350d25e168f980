"""
Unit tests for topik_cbt.services.canvas_layer.

Timers come from FakeTimerFactory so debounced writes fire only when a test says so.
"""

import pytest

from topik_cbt.errors import ContentLoadError
from topik_cbt.models.annotation_model import CanvasData, Stroke, TargetType, ToolType
from topik_cbt.services.canvas_layer import CanvasAnnotation, CoalescingWriter


class MemoryCanvasRepository:
    def __init__(self):
        self.pages = {}
        self.saves = []
        self.on_load = None
        self.load_error = None
        self.save_error = None

    def load_canvas(self, target_id, target_type, page_index):
        if self.on_load is not None:
            hook, self.on_load = self.on_load, None
            hook(page_index)
        if self.load_error is not None:
            raise self.load_error
        return self.pages.get((target_id, target_type, page_index))

    def save_canvas(self, target_id, target_type, page_index, data):
        if self.save_error is not None:
            raise self.save_error
        self.saves.append((page_index, data))
        self.pages[(target_id, target_type, page_index)] = data


def _stroke(*points):
    return Stroke(points=list(points) or [0, 0, 10, 10])


@pytest.fixture
def repo():
    return MemoryCanvasRepository()


@pytest.fixture
def canvas(repo, timer_factory):
    layer = CanvasAnnotation("exam-1", TargetType.EXAM, 0, repo, timer_factory=timer_factory)
    layer.load()
    layer.set_drawing_mode(True)
    return layer


class TestCoalescingWriter:
    """Tests for CoalescingWriter."""

    def test_submit_when_ten_rapid_changes_then_single_write_of_last(self, timer_factory):
        written = []
        writer = CoalescingWriter(written.append, 1.0, timer_factory)

        for value in range(10):
            writer.submit(value)
        timer_factory.fire_all()

        assert written == [9]
        assert len(timer_factory.live) == 0
        assert sum(1 for t in timer_factory.timers if t.cancelled) == 10

    def test_flush_when_nothing_pending_then_false(self, timer_factory):
        writer = CoalescingWriter(lambda v: None, 1.0, timer_factory)

        assert not writer.flush()

    def test_cancel_when_pending_then_dropped(self, timer_factory):
        written = []
        writer = CoalescingWriter(written.append, 1.0, timer_factory)

        writer.submit("a")
        writer.cancel()
        timer_factory.fire_all()

        assert written == []
        assert not writer.pending


class TestCanvasAnnotation:
    """Tests for CanvasAnnotation."""

    def test_add_stroke_when_drawing_then_version_increments_and_debounced(self, canvas, repo, timer_factory):
        assert canvas.add_stroke(_stroke())
        assert canvas.add_stroke(_stroke(1, 1, 2, 2))

        assert canvas.canvas_data.version == 2
        assert len(canvas.lines) == 2
        assert repo.saves == []

        timer_factory.fire_all()

        assert len(repo.saves) == 1
        assert repo.saves[0][1].version == 2

    def test_add_stroke_when_tool_defaults_then_resolved(self, canvas):
        canvas.add_stroke(Stroke(tool=ToolType.HIGHLIGHTER, points=[0, 0, 5, 5]))

        line = canvas.lines[0]
        assert line.color == "#fde047"
        assert line.stroke_width == 20
        assert line.opacity == 0.4
        assert line.id.startswith("line-")

    def test_add_stroke_when_drawing_mode_off_then_ignored(self, canvas):
        canvas.set_drawing_mode(False)

        assert not canvas.add_stroke(_stroke())
        assert canvas.lines == []

    def test_undo_when_strokes_then_last_removed(self, canvas):
        first = _stroke()
        canvas.add_stroke(first)
        canvas.add_stroke(_stroke(3, 3, 4, 4))

        assert canvas.undo()

        assert [l.points for l in canvas.lines] == [first.points]
        assert canvas.canvas_data.version == 3

    def test_undo_when_empty_then_false(self, canvas):
        assert not canvas.undo()

    def test_clear_when_strokes_then_empty_and_saved(self, canvas, repo):
        canvas.add_stroke(_stroke())

        assert canvas.clear()
        canvas.flush()

        assert canvas.lines == []
        assert repo.saves[-1][1].lines == []

    def test_handle_canvas_change_when_loading_then_refused(self, repo, timer_factory):
        layer = CanvasAnnotation("exam-1", TargetType.EXAM, 0, repo, timer_factory=timer_factory)
        layer.set_drawing_mode(True)
        results = []
        repo.on_load = lambda page: results.append(layer.handle_canvas_change(CanvasData()))

        layer.load()

        assert results == [False]
        assert not layer.loading

    def test_handle_canvas_change_when_drawing_mode_off_then_refused(self, canvas, repo, timer_factory):
        canvas.set_drawing_mode(False)

        accepted = canvas.handle_canvas_change(CanvasData(lines=[_stroke()]))
        timer_factory.fire_all()

        assert not accepted
        assert canvas.lines == []
        assert repo.saves == []

    def test_handle_canvas_change_when_ten_rapid_changes_then_one_save_of_last(self, repo, timer_factory):
        # Arrange
        layer = CanvasAnnotation("exam-1", TargetType.EXAM, 0, repo, debounce_ms=1500, timer_factory=timer_factory)
        layer.load()
        layer.set_drawing_mode(True)
        strokes = [_stroke(i, i, i + 1, i + 1) for i in range(10)]

        # Act
        for n in range(1, 11):
            assert layer.handle_canvas_change(CanvasData(lines=strokes[:n]))
        assert repo.saves == []
        timer_factory.fire_all()

        # Assert
        assert len(repo.saves) == 1
        page_index, saved = repo.saves[0]
        assert page_index == 0
        assert saved.lines == strokes
        assert saved.version == 10
        assert layer.canvas_data.version == 10
        assert {t.interval for t in timer_factory.timers} == {1.5}

    @pytest.mark.parametrize("error", [
        ContentLoadError("canvas.json 파일이 손상되었습니다"),
        ValueError("invalid record"),
        OSError("permission denied"),
    ])
    def test_load_when_repository_fails_then_loading_cleared_and_input_accepted(self, repo, timer_factory, error):
        layer = CanvasAnnotation("exam-1", TargetType.EXAM, 0, repo, timer_factory=timer_factory)
        layer.set_drawing_mode(True)
        repo.load_error = error

        assert layer.load() is None

        assert not layer.loading
        assert layer.error == str(error)
        assert layer.accepts_input
        assert layer.add_stroke(_stroke())

    def test_load_when_page_changes_mid_load_then_stale_result_dropped(self, repo, timer_factory):
        page_two = CanvasData(lines=[_stroke()], version=7)
        repo.pages[("exam-1", TargetType.EXAM, 2)] = page_two
        repo.pages[("exam-1", TargetType.EXAM, 1)] = CanvasData(version=1)
        layer = CanvasAnnotation("exam-1", TargetType.EXAM, 1, repo, timer_factory=timer_factory)
        repo.on_load = lambda page: layer.go_to_page(2)

        layer.load()

        assert layer.page_index == 2
        assert layer.canvas_data == page_two
        assert not layer.loading

    def test_go_to_page_when_pending_then_flushed_to_old_page(self, canvas, repo):
        canvas.add_stroke(_stroke())

        canvas.go_to_page(1)

        assert [page for page, _ in repo.saves] == [0]
        assert canvas.page_index == 1
        assert canvas.lines == []

    def test_save_now_when_pending_then_single_immediate_write(self, canvas, repo, timer_factory):
        canvas.add_stroke(_stroke())

        canvas.save_now()
        timer_factory.fire_all()

        assert len(repo.saves) == 1

    def test_close_when_pending_then_written(self, canvas, repo):
        canvas.add_stroke(_stroke())

        canvas.close()

        assert len(repo.saves) == 1

    def test_save_when_repository_fails_then_error_kept(self, canvas, repo):
        repo.save_error = OSError("read-only")
        canvas.add_stroke(_stroke())

        canvas.flush()

        assert canvas.error == "read-only"
        assert not canvas.saving
        assert len(canvas.lines) == 1

    def test_snapshot_when_loaded_then_camel_case_data(self, canvas):
        canvas.add_stroke(_stroke())

        snap = canvas.snapshot()

        assert snap["target_type"] == "EXAM"
        assert snap["drawing_mode"] is True
        assert snap["canvas_data"]["version"] == 1
        assert "strokeWidth" in snap["canvas_data"]["lines"][0]
