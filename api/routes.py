"""
api/routes.py — FastAPI 엔드포인트

세션별 ExamSessionMachine / AnnotationEditor / CanvasAnnotation을 HTTP로 노출한다.
엔진 예외는 여기서 HTTP 상태 코드로 바꾼다.
  ContentLoadError → 503, IllegalTransitionError → 409, AccessDeniedError → 403
"""

import asyncio
from contextlib import contextmanager
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

import api.session as session
from topik_cbt.errors import AccessDeniedError, ContentLoadError, IllegalTransitionError
from topik_cbt.models.annotation_model import Annotation, CanvasData, HighlightColor, Stroke, TargetType
from topik_cbt.models.session_state import ExamView
from topik_cbt.services.annotation_engine import AnnotationEditor, build_context_prefix
from topik_cbt.services.exam_service import format_time, is_time_warning
from topik_cbt.services.exam_session import ExamSessionMachine
from topik_cbt.services.question_renderer import render_paper

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class AnswerBody(BaseModel):
    question_index: int = Field(..., ge=0)
    option_index: int = Field(..., ge=0)

class SelectionBody(BaseModel):
    context_key: str
    text: str

class SaveAnnotationBody(BaseModel):
    color: Optional[HighlightColor] = None
    note: Optional[str] = None

class NoteBody(BaseModel):
    note: str = ""

class ActiveBody(BaseModel):
    annotation_id: Optional[str] = None

class CanvasTarget(BaseModel):
    target_id: str
    target_type: TargetType = TargetType.EXAM
    page_index: int = Field(0, ge=0)

class CanvasChangeBody(CanvasTarget):
    data: CanvasData

class StrokeBody(CanvasTarget):
    stroke: Stroke

class DrawingModeBody(CanvasTarget):
    enabled: bool


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _session(request: Request) -> dict[str, Any]:
    state = session.get_session(request.state.session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="세션이 만료되었습니다. 새로고침해 주세요.")
    return state


def _machine(request: Request) -> ExamSessionMachine:
    return _session(request)["machine"]


def _editor(request: Request) -> AnnotationEditor:
    return _session(request)["editor"]


@contextmanager
def _engine_errors():
    try:
        yield
    except AccessDeniedError as e:
        raise HTTPException(
            status_code=403,
            detail={"message": "유료 회원 전용 시험입니다.", "exam_id": e.exam_id, "upgrade_required": True},
        )
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ContentLoadError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _state_to_dict(machine: ExamSessionMachine) -> dict:
    state = machine.state
    exam = state.current_exam
    return {
        "view": state.view.value,
        "exam": exam.summary().model_dump(mode="json", by_alias=True) if exam else None,
        "time_left": state.time_left,
        "time_display": format_time(state.time_left),
        "time_warning": is_time_warning(state.time_left),
        "timer_active": state.timer_active,
        "answered_count": state.answered_count,
        "total": len(exam.questions) if exam else 0,
        "submitted": state.submitted,
        "loading": state.loading,
        "error_message": state.error_message,
    }


def _annotation_to_dict(a: Annotation) -> dict:
    return a.model_dump(mode="json", by_alias=True)


def _result_to_dict(machine: ExamSessionMachine) -> dict:
    result = machine.state.exam_result
    if result is None:
        raise HTTPException(status_code=404, detail="결과 정보가 없습니다.")
    return {
        "score": result.score,
        "total_score": result.total_score,
        "correct_count": result.correct_count,
        "total_questions": result.total_questions,
        "percentage": round(result.percentage, 1),
        "passed": result.passed,
        "stats": machine.review_stats(),
    }


# ── 시험 목록 / 응시 기록 ─────────────────────────────────────────────────────

@router.get("/api/state")
async def get_state(request: Request):
    return _state_to_dict(_machine(request))


@router.get("/api/exams")
async def list_exams(request: Request):
    machine = _machine(request)
    entries = await asyncio.to_thread(machine.exam_list)
    return {
        "exams": [e.model_dump(mode="json", by_alias=True) for e in entries],
        "error_message": machine.state.error_message,
    }


@router.post("/api/exams/{exam_id}/select")
async def select_exam(exam_id: str, request: Request):
    machine = _machine(request)
    with _engine_errors():
        exam = await asyncio.to_thread(request.app.state.exams.get_exam, exam_id)
        if exam is None:
            raise HTTPException(status_code=404, detail="시험을 찾을 수 없습니다.")
        ok = await asyncio.to_thread(machine.select_exam, exam)
    if not ok:
        raise HTTPException(status_code=503, detail=machine.state.error_message or "시험을 불러오지 못했습니다.")
    data = _state_to_dict(machine)
    data["has_attempted"] = machine.has_attempted(exam_id)
    return data


@router.get("/api/history")
async def list_history(request: Request):
    machine = _machine(request)
    entries = await asyncio.to_thread(machine.history_list)
    return {"history": [e.model_dump(mode="json", by_alias=True) for e in entries]}


@router.post("/api/history/open")
async def open_history(request: Request):
    machine = _machine(request)
    with _engine_errors():
        entries = machine.view_history()
    return {"view": machine.view.value, "history": [e.model_dump(mode="json", by_alias=True) for e in entries]}


@router.post("/api/history/close")
async def close_history(request: Request):
    machine = _machine(request)
    with _engine_errors():
        machine.close_history()
    return _state_to_dict(machine)


@router.post("/api/history/{attempt_id}/review")
async def review_attempt(attempt_id: str, request: Request):
    machine = _machine(request)
    with _engine_errors():
        history = await asyncio.to_thread(machine.history)
    attempt = next((h for h in history if h.id == attempt_id), None)
    if attempt is None:
        raise HTTPException(status_code=404, detail="응시 기록을 찾을 수 없습니다.")
    with _engine_errors():
        ok = await asyncio.to_thread(machine.review, attempt)
    if not ok:
        raise HTTPException(status_code=503, detail=machine.state.error_message or "시험을 불러오지 못했습니다.")
    return _state_to_dict(machine)


@router.delete("/api/history/{attempt_id}")
async def delete_history(attempt_id: str, request: Request):
    machine = _machine(request)
    with _engine_errors():
        removed = await asyncio.to_thread(machine.delete_history, attempt_id)
    if not removed:
        raise HTTPException(status_code=404, detail="응시 기록을 찾을 수 없습니다.")
    return {"ok": True}


# ── 시험 진행 ────────────────────────────────────────────────────────────────

@router.post("/api/start")
async def start_exam(request: Request):
    machine = _machine(request)
    with _engine_errors():
        machine.start()
    return _state_to_dict(machine)


@router.get("/api/paper")
async def get_paper(request: Request):
    machine = _machine(request)
    editor = _editor(request)
    exam = machine.state.current_exam
    if exam is None or machine.view not in (ExamView.EXAM, ExamView.REVIEW):
        raise HTTPException(status_code=404, detail="진행 중인 시험이 없습니다.")
    review_mode = machine.view == ExamView.REVIEW
    annotations = editor.annotations_for_prefix(build_context_prefix(exam.id)) if review_mode else []
    paper = render_paper(
        exam,
        machine.state.user_answers,
        review_mode=review_mode,
        annotations=annotations,
        active_annotation_id=editor.active_annotation_id,
    )
    return paper.model_dump(mode="json")


@router.post("/api/answer")
async def save_answer(body: AnswerBody, request: Request):
    machine = _machine(request)
    with _engine_errors():
        machine.answer(body.question_index, body.option_index)
    return {"ok": True, "answered_count": machine.state.answered_count}


@router.post("/api/timer/pause")
async def pause_timer(request: Request):
    machine = _machine(request)
    machine.pause_timer()
    return _state_to_dict(machine)


@router.post("/api/timer/resume")
async def resume_timer(request: Request):
    machine = _machine(request)
    machine.resume_timer()
    return _state_to_dict(machine)


@router.post("/api/submit")
async def submit_exam(request: Request):
    machine = _machine(request)
    with _engine_errors():
        await asyncio.to_thread(machine.submit)
    return _result_to_dict(machine)


@router.get("/api/result")
async def get_result(request: Request):
    return _result_to_dict(_machine(request))


@router.post("/api/review")
async def review(request: Request):
    machine = _machine(request)
    with _engine_errors():
        machine.review()
    return _state_to_dict(machine)


@router.post("/api/try-again")
async def try_again(request: Request):
    machine = _machine(request)
    with _engine_errors():
        machine.try_again()
    return _state_to_dict(machine)


@router.post("/api/back-to-list")
async def back_to_list(request: Request):
    machine = _machine(request)
    machine.back_to_list()
    _editor(request).cancel()
    return _state_to_dict(machine)


# ── 주석 ─────────────────────────────────────────────────────────────────────

@router.get("/api/annotations")
async def list_annotations(request: Request, prefix: Optional[str] = None):
    editor = _editor(request)
    return {
        "sidebar": [_annotation_to_dict(a) for a in editor.sidebar(prefix)],
        "active_annotation_id": editor.active_annotation_id,
        "editing_annotation_id": editor.editing_annotation_id,
        "error": editor.store.last_error,
    }


@router.post("/api/annotations/select")
async def select_text(body: SelectionBody, request: Request):
    editor = _editor(request)
    if not editor.begin_selection(body.context_key, body.text):
        return {"ok": False}
    return {
        "ok": True,
        "note": editor.note_input,
        "color": editor.selected_color.value,
        "active_annotation_id": editor.active_annotation_id,
    }


@router.post("/api/annotations/save")
async def save_annotation(body: SaveAnnotationBody, request: Request):
    editor = _editor(request)
    saved = await asyncio.to_thread(editor.save, body.color, body.note)
    if saved is None:
        raise HTTPException(status_code=400, detail="선택된 텍스트가 없습니다.")
    return {"annotation": _annotation_to_dict(saved), "error": editor.store.last_error}


@router.post("/api/annotations/cancel")
async def cancel_annotation(request: Request):
    _editor(request).cancel()
    return {"ok": True}


@router.post("/api/annotations/active")
async def set_active_annotation(body: ActiveBody, request: Request):
    _editor(request).set_active(body.annotation_id)
    return {"ok": True}


@router.post("/api/annotations/{annotation_id}/edit")
async def start_edit(annotation_id: str, request: Request):
    editor = _editor(request)
    if editor.store.get(annotation_id) is None:
        raise HTTPException(status_code=404, detail="주석을 찾을 수 없습니다.")
    editor.start_edit(annotation_id)
    return {"ok": True, "note": editor.edit_note_input}


@router.put("/api/annotations/{annotation_id}/note")
async def update_note(annotation_id: str, body: NoteBody, request: Request):
    editor = _editor(request)
    if editor.store.get(annotation_id) is None:
        raise HTTPException(status_code=404, detail="주석을 찾을 수 없습니다.")
    if editor.editing_annotation_id == annotation_id:
        saved = editor.commit_edit(body.note)
    else:
        saved = editor.store.update_note(annotation_id, body.note)
    return {"annotation": _annotation_to_dict(saved)}


@router.delete("/api/annotations/{annotation_id}")
async def delete_annotation(annotation_id: str, request: Request):
    deleted = _editor(request).delete(annotation_id)
    if deleted is None:
        raise HTTPException(status_code=404, detail="주석을 찾을 수 없습니다.")
    return {"annotation": _annotation_to_dict(deleted)}


# ── 필기 레이어 ──────────────────────────────────────────────────────────────

def _canvas(request: Request, target: CanvasTarget):
    layer = session.get_canvas(request.state.session_id, target.target_id, target.target_type, target.page_index)
    if layer is None:
        raise HTTPException(status_code=404, detail="세션이 만료되었습니다. 새로고침해 주세요.")
    return layer


@router.get("/api/canvas")
async def get_canvas(
    request: Request,
    target_id: str,
    target_type: TargetType = TargetType.EXAM,
    page_index: int = 0,
):
    target = CanvasTarget(target_id=target_id, target_type=target_type, page_index=page_index)
    layer = await asyncio.to_thread(_canvas, request, target)
    return layer.snapshot()


@router.put("/api/canvas")
async def change_canvas(body: CanvasChangeBody, request: Request):
    layer = _canvas(request, body)
    if not layer.handle_canvas_change(body.data):
        raise HTTPException(status_code=409, detail="그리기 모드가 꺼져 있거나 불러오는 중입니다.")
    return layer.snapshot()


@router.post("/api/canvas/mode")
async def set_drawing_mode(body: DrawingModeBody, request: Request):
    layer = _canvas(request, body)
    layer.set_drawing_mode(body.enabled)
    return layer.snapshot()


@router.post("/api/canvas/stroke")
async def add_stroke(body: StrokeBody, request: Request):
    layer = _canvas(request, body)
    if not layer.add_stroke(body.stroke):
        raise HTTPException(status_code=409, detail="그리기 모드가 꺼져 있거나 불러오는 중입니다.")
    return layer.snapshot()


@router.post("/api/canvas/undo")
async def undo_stroke(body: CanvasTarget, request: Request):
    layer = _canvas(request, body)
    layer.undo()
    return layer.snapshot()


@router.post("/api/canvas/clear")
async def clear_canvas(body: CanvasTarget, request: Request):
    layer = _canvas(request, body)
    layer.clear()
    return layer.snapshot()


@router.post("/api/canvas/save")
async def save_canvas(body: CanvasTarget, request: Request):
    layer = _canvas(request, body)
    await asyncio.to_thread(layer.save_now)
    return layer.snapshot()


@router.post("/api/canvas/flush")
async def flush_canvas(body: CanvasTarget, request: Request):
    layer = _canvas(request, body)
    written = await asyncio.to_thread(layer.flush)
    return {"written": written, **layer.snapshot()}


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(request.state.session_id)
    return {"ok": True}
