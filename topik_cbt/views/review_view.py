"""
views/review_view.py — 복습 화면 (REVIEW)

정답/오답 표시된 시험지와 주석 패널.
문구를 선택하면 하이라이트/메모를 남길 수 있고, 메모 목록은 오른쪽 패널에 보인다.
"""

from __future__ import annotations

import streamlit as st

from topik_cbt.services.annotation_engine import AnnotationEditor, TextSelection, build_context_prefix
from topik_cbt.services.exam_session import ExamSessionMachine
from topik_cbt.services.question_renderer import render_paper
from topik_cbt.views.components import annotation_panel
from topik_cbt.views.components import question_card as qcard
from topik_cbt.views.exam_view import shared_passage


def render(machine: ExamSessionMachine, editor: AnnotationEditor) -> None:
    state = machine.state
    exam = state.current_exam
    prefix = build_context_prefix(exam.id)

    paper = render_paper(
        exam,
        state.user_answers,
        review_mode=True,
        annotations=editor.annotations_for_prefix(prefix),
        active_annotation_id=editor.active_annotation_id,
    )
    stats = machine.review_stats()
    result = state.exam_result

    # ── 머리글 ─────────────────────────────────────────────────────────────
    header, back_col = st.columns([3, 1])
    with header:
        st.markdown(
            f"<h2 style='font-size:1.2rem; font-weight:700; color:#1a1a2e;'>{paper.header} · 복습</h2>",
            unsafe_allow_html=True,
        )
        if result is not None:
            st.caption(
                f"{result.score}/{result.total_score}점 · 정답 {stats['correct']} · "
                f"오답 {stats['wrong']} · 미응답 {stats['unanswered']}"
            )
    with back_col:
        if st.button("목록으로", key="review_back", use_container_width=True):
            editor.cancel()
            machine.back_to_list()
            st.rerun()

    only_wrong = st.toggle("틀린 문제만 보기", key="review_only_wrong")

    def _on_text_select(selection: TextSelection) -> None:
        editor.begin_selection(selection.context_key, selection.text)

    paper_col, panel_col = st.columns([3, 1.2])
    with paper_col:
        for block in paper.blocks:
            q = block.question
            if only_wrong and all(o.status != "incorrect" for o in q.options) and q.index in state.user_answers:
                continue
            qcard.render(
                block,
                on_text_select=_on_text_select,
                shared_passage_html=shared_passage(paper, q.index) if only_wrong else None,
            )
            st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)

    with panel_col:
        annotation_panel.render(editor, prefix)
