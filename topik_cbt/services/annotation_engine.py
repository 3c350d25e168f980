"""
services/annotation_engine.py

문항 텍스트 하이라이트/메모 엔진.

원문(렌더링 전 텍스트)에서 주석 문구를 대소문자 무시 리터럴로 찾아
(start, end) 구간 목록을 만들고, 구간 경계마다 텍스트를 잘라 <mark>로 감싼다.
HTML 이스케이프는 잘린 원문 조각에 한 번만 적용되므로 이중 이스케이프가 없고,
겹치는 구간도 조각 단위로 정확히 표시된다.

주석 저장소(AnnotationStore)는 (contextKey, text) 기준으로 멱등하게 갱신하며,
삭제는 color=None, note='' 로 덮어쓰는 소프트 삭제이다.
"""

from __future__ import annotations

import html
import logging
import re
import threading
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Pattern, Protocol, Tuple

from pydantic import BaseModel

from topik_cbt.errors import AnnotationMatchMiss, ContentLoadError
from topik_cbt.models.annotation_model import Annotation, HighlightColor

logger = logging.getLogger(__name__)

TEMP_ANNOTATION_ID = "temp"     # 메뉴가 열려 있는 동안의 미리보기 주석
CONTEXT_PREFIX = "TOPIK"

_UNSET = object()


def build_context_prefix(exam_id: str) -> str:
    return f"{CONTEXT_PREFIX}-{exam_id}"


def build_context_key(exam_id: str, question_index: int) -> str:
    """문항 하나의 주석 범위 키. 예: TOPIK-91-reading-Q0"""
    return f"{build_context_prefix(exam_id)}-Q{question_index}"


class TextSelection(BaseModel):
    """렌더러가 위로 올려 보내는 텍스트 선택 이벤트."""
    context_key: str
    text: str


# ── 구간 계산 ────────────────────────────────────────────────────────────────

class HighlightSpan(NamedTuple):
    start: int
    end: int
    annotation_id: str
    css_class: str


def highlight_class(color: Optional[HighlightColor | str], is_active: bool) -> str:
    """
    활성 주석은 배경색 채움, 나머지는 밑줄만.
    색이 없으면(메모만 남은 주석) 노란색으로 표시한다.
    """
    name = HighlightColor(color).value if color else HighlightColor.YELLOW.value
    mode = "hl-active" if is_active else "hl-underline"
    return f"hl {mode} hl-{name}"


def _compile_needle(needle: str) -> Pattern[str]:
    try:
        return re.compile(re.escape(needle), re.IGNORECASE)
    except re.error as e:
        raise AnnotationMatchMiss(f"주석 문구로 검색 패턴을 만들 수 없습니다: {needle!r}") from e


def find_spans(text: str, needle: str) -> List[Tuple[int, int]]:
    """
    text 안에서 needle이 나오는 모든 구간을 반환한다 (대소문자 무시, 겹치지 않게 왼쪽부터).
    패턴 생성 실패는 매칭 없음으로 취급한다.
    """
    if not text or not needle:
        return []
    try:
        pattern = _compile_needle(needle)
    except AnnotationMatchMiss as e:
        logger.debug(str(e))
        return []
    return [(m.start(), m.end()) for m in pattern.finditer(text)]


def _is_active(annotation: Annotation, active_annotation_id: Optional[str]) -> bool:
    if active_annotation_id is None:
        return annotation.id == TEMP_ANNOTATION_ID
    return annotation.id == active_annotation_id


def highlight_spans(
    text: str,
    annotations: Iterable[Annotation],
    active_annotation_id: Optional[str] = None,
) -> List[HighlightSpan]:
    """
    주석마다 원문 구간을 구한다. annotations 순서(저장 순서)를 그대로 유지한다.
    소프트 삭제된 주석과 원문에 없는 문구는 건너뛴다.
    """
    spans: List[HighlightSpan] = []
    for annotation in annotations:
        if annotation.is_tombstone or not annotation.text:
            continue
        found = find_spans(text, annotation.text)
        if not found:
            logger.debug(f"주석 문구를 찾지 못함 (건너뜀): {annotation.id}")
            continue
        css_class = highlight_class(annotation.color, _is_active(annotation, active_annotation_id))
        spans.extend(HighlightSpan(s, e, annotation.id, css_class) for s, e in found)
    return spans


def _top_span(covering: List[Tuple[int, HighlightSpan]], active_id: Optional[str]) -> HighlightSpan:
    # 겹치는 구간에서는 활성 주석, 그다음 나중에 추가된 주석이 위에 온다
    for _, span in reversed(covering):
        if span.annotation_id == active_id:
            return span
    return covering[-1][1]


def highlight_text(
    text: str,
    annotations: Iterable[Annotation],
    active_annotation_id: Optional[str] = None,
    transform: Optional[Callable[[str], str]] = None,
) -> str:
    """
    원문을 HTML로 만들면서 주석 구간을 <mark>로 감싼다.

    Args:
        text:                 렌더링 전 원문
        annotations:          이 문항(contextKey)의 주석들
        active_annotation_id: 사이드 패널에서 선택/편집 중인 주석 id (없으면 None)
        transform:            이스케이프된 조각에 적용할 표시용 변환 (빈칸 표시 등)

    Returns:
        이스케이프된 HTML 문자열. 매칭이 하나도 없으면 원문을 이스케이프만 해서 반환.
    """
    if not text:
        return ""
    finish = transform or (lambda s: s)
    spans = highlight_spans(text, annotations, active_annotation_id)
    if not spans:
        return finish(html.escape(text))

    bounds = sorted({0, len(text)} | {s.start for s in spans} | {s.end for s in spans})
    indexed = list(enumerate(spans))

    # 조각별 최상단 주석을 구한 뒤, 같은 주석이 이어지는 조각은 하나로 합친다
    runs: List[Tuple[int, int, Optional[HighlightSpan]]] = []
    for a, b in zip(bounds, bounds[1:]):
        covering = [(i, s) for i, s in indexed if s.start <= a and b <= s.end]
        top = _top_span(covering, active_annotation_id) if covering else None
        if runs and runs[-1][2] == top and runs[-1][1] == a:
            runs[-1] = (runs[-1][0], b, top)
        else:
            runs.append((a, b, top))

    pieces: List[str] = []
    for a, b, top in runs:
        body = finish(html.escape(text[a:b]))
        if top is None:
            pieces.append(body)
        else:
            pieces.append(
                f'<mark data-annotation-id="{html.escape(top.annotation_id)}" '
                f'class="{top.css_class}">{body}</mark>'
            )
    return "".join(pieces)


# ── 저장소 ──────────────────────────────────────────────────────────────────

class AnnotationPersistence(Protocol):
    def save_annotation(self, annotation: Annotation) -> None: ...


class AnnotationStore:
    """
    주석 저장소. 생성/수정할 때마다 즉시 persistence에 기록한다.
    (주석 이벤트는 드물고 사용자 주도이므로 디바운스하지 않는다)
    """

    def __init__(
        self,
        persistence: Optional[AnnotationPersistence] = None,
        annotations: Iterable[Annotation] = (),
    ):
        self._persistence = persistence
        self._lock = threading.Lock()
        self._annotations: Dict[str, Annotation] = {a.id: a for a in annotations}
        self.last_error: Optional[str] = None

    @classmethod
    def from_repository(cls, repository) -> "AnnotationStore":
        """
        저장된 주석을 불러와 store를 만든다.
        저장소를 읽지 못하면 빈 store로 시작하고 last_error에 이유를 남긴다.
        """
        try:
            saved = repository.list_annotations()
        except (OSError, ContentLoadError) as e:
            logger.error(f"주석 불러오기 실패, 빈 상태로 시작: {e}")
            store = cls(repository)
            store.last_error = str(e)
            return store
        return cls(repository, saved)

    def all(self) -> List[Annotation]:
        with self._lock:
            return list(self._annotations.values())

    def get(self, annotation_id: str) -> Optional[Annotation]:
        with self._lock:
            return self._annotations.get(annotation_id)

    def for_context(self, context_key: str) -> List[Annotation]:
        return [a for a in self.all() if a.context_key == context_key]

    def for_prefix(self, context_prefix: str) -> List[Annotation]:
        head = f"{context_prefix}-"
        return [a for a in self.all() if a.context_key.startswith(head)]

    def find(self, context_key: str, text: str) -> Optional[Annotation]:
        for a in self.all():
            if a.context_key == context_key and a.text == text:
                return a
        return None

    def _put(self, annotation: Annotation) -> Annotation:
        with self._lock:
            self._annotations[annotation.id] = annotation
        if self._persistence is not None:
            try:
                self._persistence.save_annotation(annotation)
                self.last_error = None
            except (OSError, ContentLoadError) as e:
                # 로컬 상태는 유지하고 다음 저장에서 다시 기록된다
                logger.exception(f"주석 저장 실패: {annotation.id}")
                self.last_error = str(e)
        return annotation

    def upsert(
        self,
        context_key: str,
        text: str,
        color: Optional[HighlightColor] | object = _UNSET,
        note: Optional[str] = None,
    ) -> Optional[Annotation]:
        """
        (context_key, text) 주석을 만들거나 갱신한다.

        - 이미 있으면 id와 최초 timestamp를 유지한 채 color/note만 바꾼다.
        - note를 생략하면 기존 메모를 유지한다.
        - color를 생략하면 기존 색(없으면 노란색)을 쓴다.
        - 빈 문자열/공백 선택은 아무것도 하지 않고 None을 반환한다.
        """
        if not text or not text.strip():
            return None

        existing = self.find(context_key, text)
        if existing is not None:
            new_color = (existing.color or HighlightColor.YELLOW) if color is _UNSET else color
            updated = existing.model_copy(update={
                "color": new_color,
                "note": existing.note if note is None else note,
            })
            logger.info(f"주석 갱신: {updated.id} ({context_key})")
            return self._put(updated)

        created = Annotation(
            context_key=context_key,
            text=text,
            color=HighlightColor.YELLOW if color is _UNSET else color,
            note=note or "",
        )
        logger.info(f"주석 생성: {created.id} ({context_key})")
        return self._put(created)

    def update_note(self, annotation_id: str, note: str) -> Optional[Annotation]:
        existing = self.get(annotation_id)
        if existing is None:
            return None
        return self._put(existing.model_copy(update={"note": note}))

    def soft_delete(self, annotation_id: str) -> Optional[Annotation]:
        """color=None, note='' 로 덮어써서 지운다. 레코드와 id는 남는다."""
        existing = self.get(annotation_id)
        if existing is None:
            return None
        logger.info(f"주석 삭제(소프트): {annotation_id}")
        return self._put(existing.model_copy(update={"color": None, "note": ""}))

    def sidebar(
        self,
        context_prefix: Optional[str] = None,
        editing_id: Optional[str] = None,
    ) -> List[Annotation]:
        """
        사이드 패널 목록: 메모가 있는 주석 + 편집 중인 주석.
        색만 칠한 주석은 본문에서만 보인다.
        """
        pool = self.for_prefix(context_prefix) if context_prefix else self.all()
        return [a for a in pool if a.note.strip() or a.id == editing_id]


# ── 선택 → 저장 흐름 ─────────────────────────────────────────────────────────

class AnnotationEditor:
    """
    복습/시험 화면의 주석 편집 상태.

    텍스트 선택 → 메뉴(색/메모) → 저장, 사이드 패널 편집/삭제를 다룬다.
    한 화면에서 활성 주석은 최대 하나이다.
    """

    def __init__(self, store: AnnotationStore):
        self.store = store
        self.selection: Optional[TextSelection] = None
        self.note_input = ""
        self.selected_color = HighlightColor.YELLOW
        self.active_annotation_id: Optional[str] = None
        self.editing_annotation_id: Optional[str] = None
        self.edit_note_input = ""

    @property
    def menu_open(self) -> bool:
        return self.selection is not None

    def begin_selection(self, context_key: str, text: str) -> bool:
        """
        선택 이벤트를 받는다. 빈 선택은 무시(False).
        같은 문구의 기존 주석이 있으면 메모/색을 미리 채우고 활성화한다.
        """
        if not text or not text.strip():
            return False

        self.selection = TextSelection(context_key=context_key, text=text)
        existing = self.store.find(context_key, text)
        if existing is not None:
            self.note_input = existing.note
            if existing.color is not None:
                self.selected_color = HighlightColor(existing.color)
            self.active_annotation_id = existing.id
        else:
            self.note_input = ""
            self.active_annotation_id = None
        return True

    def preview_annotation(self) -> Optional[Annotation]:
        if self.selection is None:
            return None
        return Annotation(
            id=TEMP_ANNOTATION_ID,
            context_key=self.selection.context_key,
            text=self.selection.text,
            color=self.selected_color,
        )

    def annotations_for(self, context_key: str) -> List[Annotation]:
        """렌더링용: 저장된 주석 + (해당 문항이면) 미리보기 주석."""
        items = self.store.for_context(context_key)
        preview = self.preview_annotation()
        if preview is not None and preview.context_key == context_key:
            items.append(preview)
        return items

    def annotations_for_prefix(self, context_prefix: str) -> List[Annotation]:
        """시험지 전체 렌더링용 (문항별로 다시 걸러진다)."""
        items = self.store.for_prefix(context_prefix)
        preview = self.preview_annotation()
        if preview is not None and preview.context_key.startswith(f"{context_prefix}-"):
            items.append(preview)
        return items

    def save(
        self,
        color: Optional[HighlightColor] = None,
        note: Optional[str] = None,
    ) -> Optional[Annotation]:
        if self.selection is None:
            return None
        saved = self.store.upsert(
            self.selection.context_key,
            self.selection.text,
            color=color or self.selected_color,
            note=self.note_input if note is None else note,
        )
        self.selection = None
        self.note_input = ""
        if saved is not None:
            self.active_annotation_id = saved.id
        return saved

    def cancel(self) -> None:
        self.selection = None
        self.note_input = ""
        self.active_annotation_id = None

    def set_active(self, annotation_id: Optional[str]) -> None:
        self.active_annotation_id = annotation_id

    def start_edit(self, annotation_id: str) -> None:
        existing = self.store.get(annotation_id)
        if existing is None:
            return
        self.editing_annotation_id = annotation_id
        self.edit_note_input = existing.note
        self.active_annotation_id = annotation_id

    def commit_edit(self, note: Optional[str] = None) -> Optional[Annotation]:
        if self.editing_annotation_id is None:
            return None
        saved = self.store.update_note(
            self.editing_annotation_id,
            self.edit_note_input if note is None else note,
        )
        self.editing_annotation_id = None
        self.active_annotation_id = None
        return saved

    def delete(self, annotation_id: str) -> Optional[Annotation]:
        if self.editing_annotation_id == annotation_id:
            self.editing_annotation_id = None
        if self.active_annotation_id == annotation_id:
            self.active_annotation_id = None
        return self.store.soft_delete(annotation_id)

    def sidebar(self, context_prefix: Optional[str] = None) -> List[Annotation]:
        return self.store.sidebar(context_prefix, editing_id=self.editing_annotation_id)
