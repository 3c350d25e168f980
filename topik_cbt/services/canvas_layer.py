"""
services/canvas_layer.py

시험지 위에 겹치는 손글씨(필기) 레이어.

  - (targetId, targetType, pageIndex) 단위로 필기 데이터를 불러오고 저장
  - 화면 갱신은 즉시, 저장은 디바운스 (연속 변경은 마지막 상태 1회 기록)
  - 되돌리기는 마지막 획 하나 제거, 지우기는 전체 제거 — 둘 다 같은 저장 경로
  - 그리기 모드가 꺼져 있거나 로드 중이면 입력을 받지 않음
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, Optional, Protocol, TypeVar

from config import CANVAS_DEBOUNCE_MS
from topik_cbt.errors import ContentLoadError
from topik_cbt.models.annotation_model import CanvasData, Stroke, TargetType

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimerLike(Protocol):
    def start(self) -> None: ...
    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerLike]


def daemon_timer(interval: float, fn: Callable[[], None]) -> TimerLike:
    timer = threading.Timer(interval, fn)
    timer.daemon = True
    return timer


class CoalescingWriter(Generic[T]):
    """
    길이 1짜리 대기열을 가진 지연 기록기.

    submit()할 때마다 대기 값을 최신 값으로 덮어쓰고 타이머를 다시 건다.
    타이머가 만료되거나 flush()를 부르면 대기 값을 한 번만 기록한다.
    """

    def __init__(
        self,
        write: Callable[[T], None],
        delay_seconds: float,
        timer_factory: TimerFactory = daemon_timer,
    ):
        self._write = write
        self._delay = delay_seconds
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: Optional[T] = None
        self._has_pending = False
        self._timer: Optional[TimerLike] = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._has_pending

    def submit(self, value: T) -> None:
        with self._lock:
            self._pending = value
            self._has_pending = True
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self._delay, self.flush)
            self._timer.start()

    def flush(self) -> bool:
        """대기 값이 있으면 기록한다. 기록했으면 True."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not self._has_pending:
                return False
            value = self._pending
            self._pending = None
            self._has_pending = False
        self._write(value)
        return True

    def cancel(self) -> None:
        """대기 값을 버린다."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None
            self._has_pending = False


class CanvasPersistence(Protocol):
    def load_canvas(self, target_id: str, target_type: TargetType, page_index: int) -> Optional[CanvasData]: ...
    def save_canvas(self, target_id: str, target_type: TargetType, page_index: int, data: CanvasData) -> None: ...


class CanvasAnnotation:
    """
    필기 레이어 한 페이지의 상태.

    Attributes:
        canvas_data:  현재 필기 데이터 (저장된 것이 없으면 None)
        loading:      불러오는 중 — 이 동안은 입력을 받지 않는다
        saving:       저장 중
        error:        마지막 로드/저장 오류 메시지
        drawing_mode: 그리기 모드. 꺼져 있으면 표시 전용
    """

    def __init__(
        self,
        target_id: str,
        target_type: TargetType,
        page_index: int,
        repository: CanvasPersistence,
        debounce_ms: int = CANVAS_DEBOUNCE_MS,
        auto_save: bool = True,
        timer_factory: TimerFactory = daemon_timer,
    ):
        self.target_id = target_id
        self.target_type = TargetType(target_type)
        self.page_index = page_index
        self.debounce_ms = debounce_ms
        self.auto_save = auto_save

        self._repository = repository
        self._lock = threading.RLock()
        self._load_token = 0
        self._writer: CoalescingWriter[tuple[int, CanvasData]] = CoalescingWriter(
            self._write, debounce_ms / 1000.0, timer_factory
        )

        self.canvas_data: Optional[CanvasData] = None
        self.loading = False
        self.saving = False
        self.error: Optional[str] = None
        self.drawing_mode = False

    # ── 상태 ──────────────────────────────────────────────────────────────

    @property
    def accepts_input(self) -> bool:
        return self.drawing_mode and not self.loading

    @property
    def lines(self) -> list[Stroke]:
        return list(self.canvas_data.lines) if self.canvas_data else []

    def set_drawing_mode(self, enabled: bool) -> None:
        self.drawing_mode = enabled

    # ── 로드 ──────────────────────────────────────────────────────────────

    def load(self) -> Optional[CanvasData]:
        """현재 페이지의 필기를 불러온다. 도중에 페이지가 바뀌면 결과를 버린다."""
        with self._lock:
            self._load_token += 1
            token = self._load_token
            page_index = self.page_index
            self.loading = True
            self.error = None

        data: Optional[CanvasData] = None
        failure: Optional[str] = None
        try:
            data = self._repository.load_canvas(self.target_id, self.target_type, page_index)
        except (OSError, ValueError, ContentLoadError) as e:
            logger.exception(f"필기 로드 실패: {self.target_id} p.{page_index}")
            failure = str(e)
        finally:
            # 어떤 경우에도 최신 로드가 끝나면 입력을 다시 받는다
            with self._lock:
                stale = token != self._load_token
                if not stale:
                    self.canvas_data = data
                    self.error = failure
                    self.loading = False

        if stale:
            logger.info(f"오래된 필기 로드 결과 무시: {self.target_id} p.{page_index}")
            return self.canvas_data
        return data

    def go_to_page(self, page_index: int) -> Optional[CanvasData]:
        """페이지 이동: 대기 중인 저장을 먼저 기록하고 새 페이지를 불러온다."""
        self._writer.flush()
        with self._lock:
            self.page_index = page_index
            self.canvas_data = None
        return self.load()

    # ── 변경 ──────────────────────────────────────────────────────────────

    def handle_canvas_change(self, data: CanvasData) -> bool:
        """
        화면 상태를 즉시 바꾸고, auto_save면 디바운스 저장을 예약한다.
        version은 이전 값 + 1로 올린다. 그리기 모드가 꺼져 있거나 로드 중이면 무시(False).
        """
        with self._lock:
            if not self.accepts_input:
                logger.debug(f"필기 입력 무시 (drawing_mode={self.drawing_mode}, loading={self.loading})")
                return False
            previous = self.canvas_data.version if self.canvas_data else 0
            new_data = data.model_copy(update={"version": max(previous, data.version) + 1})
            self.canvas_data = new_data
            page_index = self.page_index

        if self.auto_save:
            self._writer.submit((page_index, new_data))
        return True

    def add_stroke(self, stroke: Stroke) -> bool:
        if not self.accepts_input:
            return False
        return self.handle_canvas_change(CanvasData(
            lines=self.lines + [stroke.resolved()],
            version=self.canvas_data.version if self.canvas_data else 0,
        ))

    def undo(self) -> bool:
        """마지막 획 하나를 지운다. 별도 되돌리기 스택은 없다."""
        if not self.accepts_input or not self.lines:
            return False
        return self.handle_canvas_change(CanvasData(
            lines=self.lines[:-1],
            version=self.canvas_data.version,
        ))

    def clear(self) -> bool:
        if not self.accepts_input:
            return False
        return self.handle_canvas_change(CanvasData(
            lines=[],
            version=self.canvas_data.version if self.canvas_data else 0,
        ))

    # ── 저장 ──────────────────────────────────────────────────────────────

    def _write(self, payload: tuple[int, CanvasData]) -> None:
        page_index, data = payload
        self.saving = True
        try:
            self._repository.save_canvas(self.target_id, self.target_type, page_index, data)
            self.error = None
            logger.info(f"필기 저장 완료: {self.target_id} p.{page_index} v{data.version}")
        except (OSError, ContentLoadError) as e:
            logger.exception(f"필기 저장 실패: {self.target_id} p.{page_index}")
            self.error = str(e)
        finally:
            self.saving = False

    def save_now(self, data: Optional[CanvasData] = None) -> None:
        """수동 저장 — 대기 중인 디바운스 저장을 버리고 즉시 기록한다."""
        self._writer.cancel()
        with self._lock:
            if data is not None:
                self.canvas_data = data
            current = self.canvas_data
            page_index = self.page_index
        if current is not None:
            self._write((page_index, current))

    def flush(self) -> bool:
        return self._writer.flush()

    def close(self) -> None:
        """화면 해제 시 호출 — 대기 중인 저장을 기록한다."""
        self._writer.flush()

    def snapshot(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "target_type": self.target_type.value,
            "page_index": self.page_index,
            "canvas_data": self.canvas_data.model_dump(by_alias=True) if self.canvas_data else None,
            "loading": self.loading,
            "saving": self.saving,
            "error": self.error,
            "drawing_mode": self.drawing_mode,
        }
