"""
models/section_structure.py

TOPIK II 시험지 섹션 구조표.

문항 번호 범위 → 지시문, 렌더링 변형(type/style/has_box), 묶음(grouped) 여부.
구조표는 계산값이 아니라 저작 데이터이며, 모듈 로드 시점에 범위 무결성을 검증한다.
(1~50을 빈틈/중복 없이 덮지 않으면 StructureIntegrityError)
"""

from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, model_validator

from config import QUESTIONS_PER_EXAM
from topik_cbt.errors import StructureIntegrityError
from topik_cbt.models.question_model import ExamType


class SectionType(str, Enum):
    IMAGE_OPTIONAL = "IMAGE_OPTIONAL"   # 문항별 이미지 (읽기 5~12)
    IMAGE_CHOICE = "IMAGE_CHOICE"       # 보기가 그림 (듣기 1~3)


class SectionStyle(str, Enum):
    HEADLINE = "HEADLINE"               # 신문 기사 제목 (읽기 25~27)


class SectionStructure(BaseModel):
    range: Tuple[int, int] = Field(..., description="[시작 번호, 끝 번호] (양끝 포함)")
    instruction: str = Field(..., description="섹션 첫 문항 위에 표시되는 지시문")
    type: Optional[SectionType] = None
    grouped: bool = Field(False, description="지문 하나를 섹션 전체가 공유 (리더 문항에 저장)")
    style: Optional[SectionStyle] = None
    has_box: bool = Field(False, description="<보기> 상자 사용")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_range_order(self) -> "SectionStructure":
        start, end = self.range
        if start > end:
            raise ValueError(f"섹션 범위가 뒤집혀 있습니다: {self.range}")
        return self

    @property
    def start(self) -> int:
        return self.range[0]

    @property
    def end(self) -> int:
        return self.range[1]

    @property
    def numbers(self) -> range:
        return range(self.start, self.end + 1)

    def contains(self, question_number: int) -> bool:
        return self.start <= question_number <= self.end


def _s(start: int, end: int, instruction: str, **kwargs) -> SectionStructure:
    return SectionStructure(range=(start, end), instruction=instruction, **kwargs)


# ── TOPIK II 읽기 고정 구조 ──────────────────────────────────────────────────
TOPIK_READING_STRUCTURE: List[SectionStructure] = [
    _s(1, 2, "※ [1~2] (    )에 들어갈 가장 알맞은 것을 고르십시오. (각 2점)"),
    _s(3, 4, "※ [3～4] 다음 밑줄 친 부분과 의미가 비슷한 것을 고르십시오. (각 2점)"),
    _s(5, 8, "※ [5～8] 다음은 무엇에 대한 글인지 고르십시오. (각 2점)", type=SectionType.IMAGE_OPTIONAL),
    _s(9, 12, "※ [9～12] 다음 글 또는 도표의 내용과 같은 것을 고르십시오. (각 2점)", type=SectionType.IMAGE_OPTIONAL),
    _s(13, 15, "※ [13～15] 다음을 순서대로 맞게 배열한 것을 고르십시오. (각 2점)"),
    _s(16, 18, "※ [16～18] 다음을 읽고 (    )에 들어갈 내용으로 가장 알맞은 것을 고르십시오. (각 2점)"),
    _s(19, 20, "※ [19～20] 다음을 읽고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(21, 22, "※ [21～22] 다음을 읽고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(23, 24, "※ [23～24] 다음을 읽고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(25, 27, "※ [25～27] 다음은 신문 기사의 제목입니다. 가장 잘 설명한 것을 고르십시오. (각 2점)",
       style=SectionStyle.HEADLINE),
    _s(28, 31, "※ [28～31] 다음을 읽고 (    )에 들어갈 내용으로 가장 알맞은 것을 고르십시오. (각 2점)"),
    _s(32, 34, "※ [32～34] 다음을 읽고 내용이 같은 것을 고르십시오. (각 2점)"),
    _s(35, 38, "※ [35～38] 다음 글의 주제로 가장 알맞은 것을 고르십시오. (각 2점)"),
    _s(39, 41, "※ [39～41] 다음 글에서 <보기>의 문장이 들어가기에 가장 알맞은 곳을 고르십시오. (각 2점)",
       has_box=True),
    _s(42, 43, "※ [42～43] 다음을 읽고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(44, 45, "※ [44～45] 다음을 읽고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(46, 47, "※ [46～47] 다음을 읽고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(48, 50, "※ [48～50] 다음을 읽고 물음에 답하십시오. (각 2점)", grouped=True),
]

# ── TOPIK II 듣기 고정 구조 ──────────────────────────────────────────────────
TOPIK_LISTENING_STRUCTURE: List[SectionStructure] = [
    _s(1, 3, "※ [1～3] 다음을 듣고 알맞은 그림을 고르십시오. (각 2점)", type=SectionType.IMAGE_CHOICE),
    _s(4, 8, "※ [4～8] 다음 대화를 잘 듣고 이어질 수 있는 말을 고르십시오. (각 2점)"),
    _s(9, 12, "※ [9～12] 다음 대화를 잘 듣고 여자가 이어서 할 행동으로 알맞은 것을 고르십시오. (각 2점)"),
    _s(13, 16, "※ [13～16] 다음을 듣고 내용과 일치하는 것을 고르십시오. (각 2점)"),
    _s(17, 20, "※ [17～20] 다음을 듣고 남자의 중심 생각을 고르십시오. (각 2점)"),
    _s(21, 22, "※ [21～22] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(23, 24, "※ [23～24] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(25, 26, "※ [25～26] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(27, 28, "※ [27～28] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(29, 30, "※ [29～30] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(31, 32, "※ [31～32] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(33, 34, "※ [33～34] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(35, 36, "※ [35～36] 다음을 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(37, 38, "※ [37～38] 다음은 교양 프로그램입니다. 잘 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(39, 40, "※ [39～40] 다음은 대담입니다. 잘 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(41, 42, "※ [41～42] 다음은 강연입니다. 잘 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(43, 44, "※ [43～44] 다음은 다큐멘터리입니다. 잘 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(45, 46, "※ [45～46] 다음은 강연입니다. 잘 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(47, 48, "※ [47～48] 다음은 대담입니다. 잘 듣고 물음에 답하십시오. (각 2점)", grouped=True),
    _s(49, 50, "※ [49～50] 다음은 강연입니다. 잘 듣고 물음에 답하십시오. (각 2점)", grouped=True),
]


def validate_structure(
    table: Sequence[SectionStructure],
    total: int = QUESTIONS_PER_EXAM,
) -> None:
    """
    구조표의 범위가 1~total을 정확히 한 번씩 덮는지 검증한다.

    Raises:
        StructureIntegrityError: 빈 구조표, 빈틈, 중복, 범위 초과가 있는 경우.
    """
    if not table:
        raise StructureIntegrityError("섹션 구조표가 비어 있습니다.")

    expected_start = 1
    for section in table:
        if section.start != expected_start:
            kind = "중복" if section.start < expected_start else "빈틈"
            raise StructureIntegrityError(
                f"섹션 범위 {kind}: {expected_start}번에서 시작해야 하는데 {list(section.range)}"
            )
        expected_start = section.end + 1

    if expected_start - 1 != total:
        raise StructureIntegrityError(
            f"섹션 범위가 1~{total}을 덮지 않습니다 (마지막 번호: {expected_start - 1})"
        )


_STRUCTURES: Dict[ExamType, List[SectionStructure]] = {
    ExamType.READING: TOPIK_READING_STRUCTURE,
    ExamType.LISTENING: TOPIK_LISTENING_STRUCTURE,
}

# 구조표가 깨져 있으면 import 자체가 실패한다
for _table in _STRUCTURES.values():
    validate_structure(_table)


def structure_for(exam_type: ExamType) -> List[SectionStructure]:
    return _STRUCTURES[ExamType(exam_type)]


def section_for(question_number: int, exam_type: ExamType) -> SectionStructure:
    """문항 번호(1-based)가 속한 섹션을 반환한다."""
    for section in structure_for(exam_type):
        if section.contains(question_number):
            return section
    raise ValueError(f"문항 번호 {question_number}이(가) 구조표 범위를 벗어났습니다.")


def is_section_leader(question_number: int, exam_type: ExamType) -> bool:
    """섹션의 첫 문항이면 True (지시문·공유 지문을 이 문항에 표시)."""
    return section_for(question_number, exam_type).start == question_number


def group_leader_number(question_number: int, exam_type: ExamType) -> int:
    """묶음 섹션이면 리더 문항 번호, 아니면 자기 자신의 번호."""
    section = section_for(question_number, exam_type)
    return section.start if section.grouped else question_number
