"""
views/components/question_card.py

렌더링된 문항(PaperBlock)을 카드 형태로 그리는 컴포넌트.
보기 클릭과 텍스트 선택은 question_renderer의 이벤트 함수로 위에 올려 보낸다.
"""

from __future__ import annotations

from typing import Callable, Optional

import streamlit as st

from topik_cbt.services.annotation_engine import TextSelection
from topik_cbt.services.question_renderer import (
    PaperBlock,
    RenderedOption,
    click_option,
    select_text,
)

_STATUS_STYLE = {
    "correct": ("#10b981", "정답"),
    "incorrect": ("#ef4444", "내 답"),
}


def _option_label(option: RenderedOption) -> str:
    mark = " ✔" if option.selected else ""
    return f"{option.glyph} {option.text}{mark}"


def _render_review_option(option: RenderedOption) -> None:
    color, tag = _STATUS_STYLE.get(option.status, ("#1a1a2e", ""))
    badge = (
        f"<span style='font-size:0.72rem; color:{color}; margin-left:6px;'>[{tag}]</span>"
        if tag else ""
    )
    st.markdown(
        f"<div class='option-row' style='color:{color};'>{option.glyph} {option.html}{badge}</div>",
        unsafe_allow_html=True,
    )
    if option.image_url:
        st.image(option.image_url)


def render(
    block: PaperBlock,
    on_answer_change: Optional[Callable[[int], None]] = None,
    on_text_select: Optional[Callable[[TextSelection], None]] = None,
    shared_passage_html: Optional[str] = None,
) -> None:
    """
    문항 카드를 그린다.

    Args:
        block:               render_paper가 만든 문항 블록
        on_answer_change:    시험 모드에서 보기를 고르면 호출 (보기 인덱스)
        on_text_select:      복습 모드에서 텍스트를 선택하면 호출
        shared_passage_html: 묶음 문항의 리더 지문 (리더가 다른 화면에 있을 때 다시 보여줌)
    """
    q = block.question

    if block.instruction:
        st.markdown(f'<div class="instruction-banner">{block.instruction}</div>', unsafe_allow_html=True)

    # ── 지문 ──────────────────────────────────────────────────────────────
    if q.image_url:
        st.image(q.image_url)
    passage = q.passage_html or shared_passage_html
    if passage:
        css = "passage-box headline" if q.passage_style else "passage-box"
        st.markdown(f'<div class="{css}">{passage}</div>', unsafe_allow_html=True)
    if q.context_box_html:
        st.markdown(
            f'<div class="context-box"><b>&lt;보기&gt;</b><br>{q.context_box_html}</div>',
            unsafe_allow_html=True,
        )

    # ── 발문 ──────────────────────────────────────────────────────────────
    st.markdown(
        f"""
        <div class="question-card">
            <span class="question-number-badge">{q.number}.</span>
            <span style="font-size:1.02rem; font-weight:600; color:#1a1a2e; line-height:1.7;">
                {q.question_html}
            </span>
        </div>
        """,
        unsafe_allow_html=True,
    )

    # ── 보기 ──────────────────────────────────────────────────────────────
    cols = st.columns(q.columns)
    for option in q.options:
        with cols[option.index % q.columns]:
            if q.review_mode:
                _render_review_option(option)
                continue
            if option.image_url:
                st.image(option.image_url)
            if st.button(
                _option_label(option),
                key=f"opt_{q.index}_{option.index}",
                type="primary" if option.selected else "secondary",
                use_container_width=True,
            ):
                if click_option(q, option.index, on_answer_change):
                    st.rerun()

    # ── 해설 / 텍스트 선택 (복습 모드) ────────────────────────────────────
    if q.review_mode and q.explanation:
        with st.expander("해설 보기"):
            st.write(q.explanation)

    if q.review_mode and on_text_select is not None:
        with st.form(key=f"select_{q.index}", clear_on_submit=True):
            text = st.text_input(
                "하이라이트할 문구",
                placeholder="지문/문제/보기에서 표시할 문구를 그대로 입력하세요",
                key=f"select_text_{q.index}",
            )
            if st.form_submit_button("선택"):
                if select_text(q, text, on_text_select):
                    st.rerun()
