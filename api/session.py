"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 사용자에게 UUID 세션 ID를 발급하고, 세션별로 독립된 상태를 유지.
  - machine  : ExamSessionMachine (화면 상태/답안/타이머)
  - editor   : AnnotationEditor (텍스트 주석 선택/편집)
  - canvases : {(targetType, targetId): CanvasAnnotation} 필기 레이어

저장소(백엔드)는 앱 전체가 공유하며 configure()로 주입한다.
TTL 경과 시 자동 만료되며, 만료/초기화 때 타이머와 대기 중인 필기 저장을 정리한다.
"""

import logging
import threading
import time
import uuid
from typing import Any

from config import SESSION_TTL
from topik_cbt.errors import AccessDeniedError
from topik_cbt.models.annotation_model import TargetType
from topik_cbt.models.question_model import Exam
from topik_cbt.services.annotation_engine import AnnotationEditor, AnnotationStore
from topik_cbt.services.canvas_layer import CanvasAnnotation
from topik_cbt.services.exam_session import ExamSessionMachine

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}
_backends: dict[str, Any] = {}


def configure(exams, history, annotations, canvas, access_policy=None, timer_factory=None) -> None:
    """세션이 사용할 저장소를 등록한다. 기존 세션은 모두 정리된다."""
    clear()
    _backends.clear()
    _backends.update(
        exams=exams,
        history=history,
        annotations=annotations,
        canvas=canvas,
        access_policy=access_policy,
        timer_factory=timer_factory,
    )


def _deny(exam: Exam) -> None:
    # 업그레이드 안내는 HTTP 403 응답으로 전달한다
    raise AccessDeniedError(exam.id)


def _new_state() -> dict[str, Any]:
    if not _backends:
        raise RuntimeError("세션 저장소가 설정되지 않았습니다. configure()를 먼저 호출하세요.")
    kwargs = {}
    if _backends.get("timer_factory") is not None:
        kwargs["timer_factory"] = _backends["timer_factory"]
    machine = ExamSessionMachine(
        _backends["exams"],
        _backends["history"],
        access_policy=_backends.get("access_policy"),
        on_show_upgrade_prompt=_deny,
        **kwargs,
    )
    return {
        "machine": machine,
        "editor": AnnotationEditor(AnnotationStore.from_repository(_backends["annotations"])),
        "canvases": {},
    }


def _dispose(state: dict[str, Any]) -> None:
    state["machine"].shutdown()
    for layer in state["canvases"].values():
        layer.close()


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    state = _new_state()
    with _lock:
        _sessions[sid] = state
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
    expired = None
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            expired = _sessions.pop(sid)
            del _timestamps[sid]
        else:
            _timestamps[sid] = time.time()  # 접근 시 갱신
            return _sessions[sid]
    _dispose(expired)
    return None


def get_canvas(sid: str, target_id: str, target_type: TargetType, page_index: int) -> CanvasAnnotation | None:
    """
    (targetType, targetId) 필기 레이어를 가져온다. 처음이면 만들어 불러오고,
    다른 페이지를 요청하면 페이지를 넘긴다 (대기 중인 저장을 먼저 기록).
    """
    session = get_session(sid)
    if session is None:
        return None
    key = (TargetType(target_type).value, target_id)
    canvases: dict = session["canvases"]
    layer = canvases.get(key)
    if layer is None:
        layer = CanvasAnnotation(target_id, target_type, page_index, _backends["canvas"])
        canvases[key] = layer
        layer.load()
    elif layer.page_index != page_index:
        layer.go_to_page(page_index)
    return layer


def reset(sid: str) -> None:
    """세션 초기화. 진행 중인 시험과 필기 레이어를 정리하고 새 상태로 바꾼다."""
    old = None
    with _lock:
        if sid in _sessions:
            old = _sessions[sid]
    if old is None:
        return
    _dispose(old)
    state = _new_state()
    with _lock:
        _sessions[sid] = state
        _timestamps[sid] = time.time()


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        states = [_sessions.pop(sid) for sid in expired]
        for sid in expired:
            del _timestamps[sid]
    for state in states:
        _dispose(state)
    return len(states)


def clear() -> None:
    """모든 세션 정리 (앱 종료/재설정 시)."""
    with _lock:
        states = list(_sessions.values())
        _sessions.clear()
        _timestamps.clear()
    for state in states:
        _dispose(state)
    if states:
        logger.info(f"세션 {len(states)}개 정리")
