"""
views/cover_view.py — 시험지 표지 화면 (COVER)
"""

from __future__ import annotations

import streamlit as st

from topik_cbt.services.exam_session import ExamSessionMachine
from topik_cbt.services.question_renderer import paper_header


def render(machine: ExamSessionMachine) -> None:
    exam = machine.state.current_exam
    header = paper_header(exam)

    _, col, _ = st.columns([1, 2.2, 1])
    with col:
        with st.container(border=True):
            st.markdown(
                f"<p style='text-align:center; color:#6b7280;'>{header['paper_type']}형</p>"
                f"<h2 style='text-align:center; font-weight:700; color:#1a1a2e;'>"
                f"제{exam.round}회 한국어능력시험 II</h2>"
                f"<h3 style='text-align:center; color:#1a1a2e;'>{header['period']} ({header['subject']})</h3>",
                unsafe_allow_html=True,
            )
            st.markdown(
                f"- 문항 수: {len(exam.questions)}문항\n"
                f"- 시험 시간: {exam.time_limit}분\n"
                f"- 배점: {exam.max_score}점"
            )
            if exam.description:
                st.caption(exam.description)
            if machine.has_attempted(exam.id):
                st.info("이미 응시한 시험입니다. 다시 풀면 새 기록이 추가됩니다.")

            left, right = st.columns(2)
            with left:
                if st.button("← 목록", key="cover_back", use_container_width=True):
                    machine.back_to_list()
                    st.rerun()
            with right:
                if st.button("시험 시작", key="cover_start", type="primary", use_container_width=True):
                    st.session_state.current_index = 0
                    machine.start()
                    st.rerun()
