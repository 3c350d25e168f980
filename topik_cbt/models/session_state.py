"""
models/session_state.py

시험 진행 상태와 응시 기록 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음.
"""

import time
import uuid
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from config import PASS_PERCENTAGE
from topik_cbt.models.question_model import Exam


class ExamView(str, Enum):
    LIST = "LIST"
    HISTORY_LIST = "HISTORY_LIST"
    COVER = "COVER"
    EXAM = "EXAM"
    RESULT = "RESULT"
    REVIEW = "REVIEW"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExamResult(BaseModel):
    """채점 결과 요약."""
    score: int = 0
    total_score: int = 0
    correct_count: int = 0
    total_questions: int = 0

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @property
    def percentage(self) -> float:
        return self.score / self.total_score * 100 if self.total_score else 0.0

    @property
    def passed(self) -> bool:
        return self.percentage >= PASS_PERCENTAGE


class ExamAttempt(BaseModel):
    """
    응시 기록. 제출 1회당 1건 생성되며 이후 삭제 외에는 변경되지 않는다.

    Attributes:
        user_answers: {문항 인덱스(0-based): 선택한 보기 인덱스}
                      JSON 키는 항상 문자열이므로 역직렬화 시 int로 변환된다.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    exam_id: str
    exam_title: str = ""
    score: int = 0
    max_score: int = 0
    correct_count: int = 0
    total_questions: int = 0
    timestamp: int = Field(default_factory=_now_ms)
    user_answers: Dict[int, int] = Field(default_factory=dict)

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "frozen": True}

    @property
    def total_score(self) -> int:
        return self.max_score

    @property
    def percentage(self) -> float:
        return self.score / self.max_score * 100 if self.max_score else 0.0

    @property
    def passed(self) -> bool:
        return self.percentage >= PASS_PERCENTAGE


class SessionState(BaseModel):
    """
    시험 세션 전체 상태. ExamSessionMachine만 변경한다.

    Attributes:
        view:                   현재 화면 상태
        current_exam:           문항까지 로드된 시험 (LIST/HISTORY_LIST에서는 None)
        current_review_attempt: 기록 화면에서 선택한 과거 응시 기록
        user_answers:           {문항 인덱스: 보기 인덱스}
        time_left:              남은 시간 (초)
        timer_active:           타이머 동작 여부
        exam_result:            마지막 채점 결과
        submitted:              현재 응시분이 이미 제출되었는지 (중복 제출 방지)
        loading:                시험 콘텐츠 로드 중
        error_message:          사용자에게 보여줄 마지막 오류 (재시도 가능)
    """

    view: ExamView = ExamView.LIST
    current_exam: Optional[Exam] = None
    current_review_attempt: Optional[ExamAttempt] = None
    user_answers: Dict[int, int] = Field(default_factory=dict)
    time_left: int = 0
    timer_active: bool = False
    exam_result: Optional[ExamResult] = None
    submitted: bool = False
    loading: bool = False
    error_message: Optional[str] = None

    @property
    def answered_count(self) -> int:
        return len(self.user_answers)
