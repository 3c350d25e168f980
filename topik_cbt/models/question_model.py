import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from config import DEFAULT_QUESTION_SCORE, OPTIONS_PER_QUESTION, QUESTIONS_PER_EXAM

logger = logging.getLogger(__name__)


class ExamType(str, Enum):
    READING = "READING"
    LISTENING = "LISTENING"


class PaperType(str, Enum):
    A = "A"
    B = "B"


class Question(BaseModel):
    """
    TOPIK II 문항 모델
    Pydantic v2 적용 — 백엔드와 주고받는 JSON은 camelCase 키를 사용한다.
    """
    id: int = Field(
        ...,
        ge=1,
        le=QUESTIONS_PER_EXAM,
        description="문항 번호 (1~50, 시험 내 고유)"
    )
    passage: Optional[str] = Field(
        None,
        description="지문. 묶음 문항은 첫 문항(리더)에만 저장"
    )
    context_box: Optional[str] = Field(
        None,
        description="<보기> 상자 내용"
    )
    question: str = Field(
        "",
        description="발문"
    )
    options: List[str] = Field(
        default_factory=lambda: [""] * OPTIONS_PER_QUESTION,
        description="보기 4개"
    )
    correct_answer: int = Field(
        0,
        ge=0,
        description="정답 보기 인덱스 (0~3)"
    )
    score: int = Field(
        DEFAULT_QUESTION_SCORE,
        ge=0,
        description="배점 (기본 2점)"
    )
    image_url: Optional[str] = Field(
        None,
        description="문항 이미지 URL"
    )
    option_images: Optional[List[str]] = Field(
        None,
        description="그림 고르기 문항(IMAGE_CHOICE)의 보기 이미지 4개"
    )
    explanation: Optional[str] = Field(
        None,
        description="해설 (복습 화면에서만 표시)"
    )

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "frozen": True,
    }

    @field_validator("options")
    @classmethod
    def validate_options_length(cls, v: List[str]) -> List[str]:
        """
        검증 로직 1: 보기는 정확히 4개여야 한다.
        """
        if len(v) != OPTIONS_PER_QUESTION:
            raise ValueError(f"보기(options)는 {OPTIONS_PER_QUESTION}개여야 합니다. (현재 {len(v)}개)")
        return v

    @field_validator("option_images")
    @classmethod
    def validate_option_images_length(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is not None and len(v) != OPTIONS_PER_QUESTION:
            raise ValueError(f"보기 이미지(optionImages)는 {OPTIONS_PER_QUESTION}개여야 합니다.")
        return v

    @model_validator(mode="after")
    def validate_correct_answer_index(self) -> "Question":
        """
        검증 로직 2: 정답 인덱스는 반드시 보기 리스트 안을 가리켜야 한다.
        """
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(
                f"정답 인덱스({self.correct_answer})가 보기 범위(0~{len(self.options) - 1})를 벗어났습니다."
            )
        return self

    @property
    def points(self) -> int:
        """채점에 쓰는 배점. 0은 미지정으로 보고 기본 배점을 쓴다."""
        return self.score or DEFAULT_QUESTION_SCORE

    @classmethod
    def placeholder(cls, question_id: int) -> "Question":
        """누락된 문항을 채우는 빈 문항."""
        return cls(id=question_id, passage="", context_box="", question="")


class Exam(BaseModel):
    """
    시험지 모델. 세션 동안 불변이며, 관리자 도구를 통해서만 작성/수정된다.
    """
    id: str = Field(..., min_length=1, description="시험 ID")
    type: ExamType = Field(..., description="READING | LISTENING")
    title: str = Field(..., description="시험 제목 (예: 제91회 TOPIK II 읽기)")
    round: int = Field(0, ge=0, description="회차")
    paper_type: Optional[PaperType] = Field(None, description="A형 / B형")
    time_limit: int = Field(..., gt=0, description="제한 시간 (분)")
    audio_url: Optional[str] = Field(None, description="듣기 시험 음원 URL")
    description: Optional[str] = Field(None, description="설명")
    is_paid: bool = Field(False, description="유료 회원 전용 여부")
    questions: List[Question] = Field(default_factory=list, description="문항 리스트")

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "frozen": True,
    }

    @property
    def time_limit_seconds(self) -> int:
        return self.time_limit * 60

    @property
    def max_score(self) -> int:
        return sum(q.points for q in self.questions)

    def summary(self) -> "Exam":
        """문항을 뺀 목록용 사본."""
        return self.model_copy(update={"questions": []})

    def with_questions(self, questions: List[Question]) -> "Exam":
        """문항을 1~50으로 보정해 붙인 사본을 반환한다."""
        return self.model_copy(update={"questions": backfill_questions(questions)})


def backfill_questions(
    questions: List[Question],
    total: int = QUESTIONS_PER_EXAM,
) -> List[Question]:
    """
    문항 리스트를 id 1~total 연속 배열로 보정한다.

    - id 순으로 정렬
    - 같은 id가 여러 번 나오면 처음 것만 유지
    - 빠진 번호는 빈 문항(placeholder)으로 채움

    Returns:
        길이가 정확히 total이고 questions[i].id == i + 1 인 리스트.
    """
    by_id: dict[int, Question] = {}
    for q in questions:
        if q.id > total:
            logger.warning(f"범위를 벗어난 문항 번호 무시: {q.id}")
            continue
        if q.id in by_id:
            logger.warning(f"중복 문항 번호 무시: {q.id}")
            continue
        by_id[q.id] = q

    missing = [n for n in range(1, total + 1) if n not in by_id]
    if missing:
        logger.info(f"빈 문항 {len(missing)}개 자동 생성")

    return [by_id.get(n) or Question.placeholder(n) for n in range(1, total + 1)]
