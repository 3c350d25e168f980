"""
models/annotation_model.py

텍스트 주석(하이라이트/메모)과 필기(캔버스) 데이터 모델.
"""

import time
import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def _now_ms() -> int:
    return int(time.time() * 1000)


class HighlightColor(str, Enum):
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PINK = "pink"


class Annotation(BaseModel):
    """
    문항 텍스트의 부분 문자열에 붙는 하이라이트/메모.

    삭제는 color=None, note='' 로 덮어쓰는 소프트 삭제이다.
    레코드(와 id)가 남아 있으므로 같은 문구를 다시 칠하면 같은 id가 재사용된다.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    context_key: str = Field(..., min_length=1, description="예: TOPIK-{examId}-Q{index}")
    text: str = Field(..., description="선택된 원문 문자열")
    note: str = ""
    color: Optional[HighlightColor] = HighlightColor.YELLOW
    timestamp: int = Field(default_factory=_now_ms)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @property
    def is_tombstone(self) -> bool:
        return self.color is None and not self.note


class ToolType(str, Enum):
    PEN = "pen"
    HIGHLIGHTER = "highlighter"
    ERASER = "eraser"


# 도구별 기본 스타일
DEFAULT_COLORS = {
    ToolType.PEN: "#1e293b",
    ToolType.HIGHLIGHTER: "#fde047",
    ToolType.ERASER: "#ffffff",
}
DEFAULT_STROKE_WIDTH = {
    ToolType.PEN: 2,
    ToolType.HIGHLIGHTER: 20,
    ToolType.ERASER: 20,
}
DEFAULT_OPACITY = {
    ToolType.PEN: 1.0,
    ToolType.HIGHLIGHTER: 0.4,
    ToolType.ERASER: 1.0,
}


class TargetType(str, Enum):
    TEXTBOOK = "TEXTBOOK"
    EXAM = "EXAM"


class Stroke(BaseModel):
    """필기 한 획. points는 [x0, y0, x1, y1, ...] 평탄화 좌표."""
    id: str = Field(default_factory=lambda: f"line-{uuid.uuid4().hex[:12]}")
    tool: ToolType = ToolType.PEN
    points: List[float] = Field(default_factory=list)
    color: Optional[str] = None
    stroke_width: Optional[float] = None
    opacity: Optional[float] = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    def resolved(self) -> "Stroke":
        """비어 있는 스타일 값을 도구 기본값으로 채운 사본."""
        return self.model_copy(update={
            "color": self.color or DEFAULT_COLORS[self.tool],
            "stroke_width": self.stroke_width or DEFAULT_STROKE_WIDTH[self.tool],
            "opacity": self.opacity if self.opacity is not None else DEFAULT_OPACITY[self.tool],
        })


class CanvasData(BaseModel):
    """(targetId, targetType, pageIndex) 단위 필기 데이터."""
    lines: List[Stroke] = Field(default_factory=list)
    version: int = 0

    model_config = {"alias_generator": to_camel, "populate_by_name": True}
