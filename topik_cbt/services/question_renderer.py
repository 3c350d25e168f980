"""
services/question_renderer.py

문항 렌더러 — (문항, 답안, 정답, 주석) → 렌더링 설명(RenderedQuestion).

시험 전체 상태를 모르는 순수 함수이며, 부수 효과는 상위로 올려 보내는
보기 선택(on_answer_change)과 텍스트 선택(on_text_select) 이벤트뿐이다.
화면(streamlit)과 HTTP 응답이 같은 설명을 그대로 사용한다.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from config import LONG_OPTION_CHARS
from topik_cbt.models.annotation_model import Annotation
from topik_cbt.models.question_model import Exam, ExamType, PaperType, Question
from topik_cbt.models.section_structure import (
    SectionStructure,
    SectionStyle,
    SectionType,
    section_for,
)
from topik_cbt.services.annotation_engine import (
    TextSelection,
    build_context_prefix,
    highlight_text,
)

OPTION_GLYPHS = ("①", "②", "③", "④")

_BLANK_PATTERN = re.compile(r"\(\s*\)")
BLANK_MARKER = "(&nbsp;&nbsp;&nbsp;&nbsp;&nbsp;&nbsp;)"


def normalize_blanks(fragment: str) -> str:
    """`( )` 빈칸 표기를 고정 폭 빈칸으로 바꾼다. 표시용이며 저장된 원문은 건드리지 않는다."""
    return _BLANK_PATTERN.sub(BLANK_MARKER, fragment)


def option_columns(options: Sequence[str]) -> int:
    """보기 중 하나라도 25자를 넘으면 1열, 아니면 2열."""
    return 1 if any(len(opt) > LONG_OPTION_CHARS for opt in options) else 2


def option_status(
    option_index: int,
    user_answer: Optional[int],
    correct_answer: Optional[int],
    review_mode: bool,
) -> Optional[str]:
    if not review_mode:
        return None
    if option_index == correct_answer:
        return "correct"
    if option_index == user_answer and option_index != correct_answer:
        return "incorrect"
    return None


class RenderedOption(BaseModel):
    index: int
    glyph: str
    text: str
    html: str
    image_url: Optional[str] = None
    selected: bool = False
    status: Optional[str] = None    # "correct" | "incorrect" | None
    disabled: bool = False


class RenderedQuestion(BaseModel):
    index: int
    number: int
    context_key: str
    image_url: Optional[str] = None
    passage_html: Optional[str] = None
    passage_style: Optional[str] = None
    shared_passage_leader: Optional[int] = None
    context_box_html: Optional[str] = None
    question_html: str = ""
    options: List[RenderedOption]
    columns: int = 2
    review_mode: bool = False
    explanation: Optional[str] = None


def render_question(
    question: Question,
    question_index: int,
    user_answer: Optional[int] = None,
    correct_answer: Optional[int] = None,
    review_mode: bool = False,
    annotations: Iterable[Annotation] = (),
    active_annotation_id: Optional[str] = None,
    context_prefix: str = "",
    section: Optional[SectionStructure] = None,
) -> RenderedQuestion:
    """
    문항 하나를 렌더링 설명으로 만든다.

    Args:
        question:             렌더링할 문항
        question_index:       시험지 내 인덱스 (0-based, 표시 번호는 +1)
        user_answer:          사용자가 고른 보기 인덱스 (없으면 None)
        correct_answer:       정답 인덱스 (복습 모드에서만 의미 있음)
        review_mode:          True면 정답/오답 표시, 선택 비활성화
        annotations:          주석 목록 (이 문항 contextKey 것만 사용)
        active_annotation_id: 활성 주석 id
        context_prefix:       contextKey 접두어 (예: TOPIK-{examId})
        section:              문항이 속한 섹션 (지문 스타일/보기 이미지 판단용)
    """
    context_key = f"{context_prefix}-Q{question_index}"
    mine = [a for a in annotations if a.context_key == context_key]

    def _html(text: Optional[str], blanks: bool = False) -> Optional[str]:
        if not text:
            return None
        return highlight_text(
            text, mine, active_annotation_id,
            transform=normalize_blanks if blanks else None,
        )

    image_choice = bool(
        section is not None
        and section.type == SectionType.IMAGE_CHOICE
        and question.option_images
    )
    options = [
        RenderedOption(
            index=i,
            glyph=OPTION_GLYPHS[i],
            text=text,
            html=_html(text) or "",
            image_url=question.option_images[i] if image_choice else None,
            selected=user_answer == i,
            status=option_status(i, user_answer, correct_answer, review_mode),
            disabled=review_mode,
        )
        for i, text in enumerate(question.options)
    ]

    passage_style = None
    if section is not None and section.style == SectionStyle.HEADLINE:
        passage_style = SectionStyle.HEADLINE.value

    # <보기> 상자는 has_box 섹션이 아니어도 값이 있으면 표시한다
    return RenderedQuestion(
        index=question_index,
        number=question_index + 1,
        context_key=context_key,
        image_url=question.image_url,
        passage_html=_html(question.passage),
        passage_style=passage_style,
        context_box_html=_html(question.context_box),
        question_html=_html(question.question, blanks=True) or "",
        options=options,
        columns=option_columns(question.options),
        review_mode=review_mode,
        explanation=question.explanation if review_mode else None,
    )


def click_option(
    rendered: RenderedQuestion,
    option_index: int,
    on_answer_change: Optional[Callable[[int], None]],
) -> bool:
    """
    보기 클릭 이벤트. 시험 모드에서만 on_answer_change(option_index)를 부른다.
    정답 여부는 확인하지 않는다.
    """
    if rendered.review_mode or on_answer_change is None:
        return False
    if not 0 <= option_index < len(rendered.options):
        return False
    on_answer_change(option_index)
    return True


def select_text(
    rendered: RenderedQuestion,
    selected_text: str,
    on_text_select: Optional[Callable[[TextSelection], None]],
) -> bool:
    """지문/발문/보기 텍스트 선택 이벤트. 빈 선택은 무시한다."""
    if not selected_text or not selected_text.strip() or on_text_select is None:
        return False
    on_text_select(TextSelection(context_key=rendered.context_key, text=selected_text))
    return True


# ── 시험지 전체 ─────────────────────────────────────────────────────────────

class PaperBlock(BaseModel):
    instruction: Optional[str] = None
    grouped: bool = False
    question: RenderedQuestion


class NavItem(BaseModel):
    index: int
    number: int
    answered: bool


class RenderedPaper(BaseModel):
    exam_id: str
    title: str
    round: int
    paper_type: str
    period: str
    subject: str
    header: str
    blocks: List[PaperBlock]
    nav: List[NavItem]
    answered_count: int
    total: int
    review_mode: bool


def paper_header(exam: Exam) -> dict:
    listening = exam.type == ExamType.LISTENING
    paper_type = (exam.paper_type or PaperType.B).value
    period = "1교시" if listening else "2교시"
    subject = "듣기" if listening else "읽기"
    return {
        "paper_type": paper_type,
        "period": period,
        "subject": subject,
        "header": f"제{exam.round}회 한국어능력시험 II {paper_type}형 {period} ({subject})",
    }


def render_paper(
    exam: Exam,
    user_answers: Mapping[int, int],
    review_mode: bool = False,
    annotations: Sequence[Annotation] = (),
    active_annotation_id: Optional[str] = None,
) -> RenderedPaper:
    """
    평면 문항 배열을 섹션 구조표에 따라 시험지로 조립한다.

    - 섹션 첫 문항 위에 지시문 표시
    - 묶음 섹션은 리더 문항의 지문만 표시하고, 나머지 문항은 리더 번호만 참조
    """
    prefix = build_context_prefix(exam.id)
    blocks: List[PaperBlock] = []

    for idx, question in enumerate(exam.questions):
        number = idx + 1
        section = section_for(number, exam.type)
        leader = section.start == number

        rendered = render_question(
            question,
            idx,
            user_answer=user_answers.get(idx),
            correct_answer=question.correct_answer if review_mode else None,
            review_mode=review_mode,
            annotations=annotations,
            active_annotation_id=active_annotation_id,
            context_prefix=prefix,
            section=section,
        )
        if section.grouped and not leader:
            rendered = rendered.model_copy(update={
                "passage_html": None,
                "shared_passage_leader": section.start,
            })

        blocks.append(PaperBlock(
            instruction=section.instruction if leader else None,
            grouped=section.grouped,
            question=rendered,
        ))

    nav = [
        NavItem(index=idx, number=idx + 1, answered=idx in user_answers)
        for idx in range(len(exam.questions))
    ]
    return RenderedPaper(
        exam_id=exam.id,
        title=exam.title,
        round=exam.round,
        blocks=blocks,
        nav=nav,
        answered_count=sum(1 for item in nav if item.answered),
        total=len(exam.questions),
        review_mode=review_mode,
        **paper_header(exam),
    )
