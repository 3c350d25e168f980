"""
views/result_view.py — 결과 화면 (RESULT)
"""

from __future__ import annotations

import streamlit as st

from topik_cbt.services.exam_session import ExamSessionMachine


def _stat_card(col, label: str, value: str, color: str) -> None:
    with col:
        st.markdown(
            f"""
            <div style="text-align:center; padding:12px; background:#f8fafc;
                        border-radius:10px; border:1px solid #e5eaf2;">
                <div style="font-size:1.4rem; font-weight:700; color:{color};">{value}</div>
                <div style="font-size:0.78rem; color:#6b7280;">{label}</div>
            </div>
            """,
            unsafe_allow_html=True,
        )


def render(machine: ExamSessionMachine) -> None:
    """결과 화면 렌더링."""
    state = machine.state
    result = state.exam_result
    exam = state.current_exam
    stats = machine.review_stats()

    _, col, _ = st.columns([0.8, 2.5, 0.8])
    with col:
        st.markdown(
            f"<h2 style='text-align:center; font-size:1.2rem; color:#1a1a2e;'>{exam.title}</h2>",
            unsafe_allow_html=True,
        )

        score_color = "#10b981" if result.passed else "#ef4444"
        st.markdown(
            f'<p class="score-big" style="color:{score_color};">{result.score}</p>'
            f"<p style='text-align:center; font-size:0.9rem; color:#9ca3af; margin-top:-8px;'>"
            f"/ {result.total_score}점 ({result.percentage:.1f}%)</p>",
            unsafe_allow_html=True,
        )

        badge_class = "pass" if result.passed else "fail"
        badge_text = "합격" if result.passed else "불합격"
        st.markdown(
            f"<div style='text-align:center; margin-bottom:24px;'>"
            f"<span class='pass-badge {badge_class}'>{badge_text}</span></div>",
            unsafe_allow_html=True,
        )

        s1, s2, s3 = st.columns(3)
        _stat_card(s1, "정답", str(stats["correct"]), "#10b981")
        _stat_card(s2, "오답", str(stats["wrong"]), "#ef4444")
        _stat_card(s3, "미응답", str(stats["unanswered"]), "#f59e0b")

        if state.error_message:
            st.warning(state.error_message)

        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)

        b1, b2, b3 = st.columns(3)
        with b1:
            if st.button("복습하기", key="review_btn", type="primary", use_container_width=True):
                st.session_state.current_index = 0
                machine.review()
                st.rerun()
        with b2:
            if st.button("다시 풀기", key="retry_btn", use_container_width=True):
                machine.try_again()
                st.rerun()
        with b3:
            if st.button("목록으로", key="home_btn", use_container_width=True):
                machine.back_to_list()
                st.rerun()
