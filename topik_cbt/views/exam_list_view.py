"""
views/exam_list_view.py — 시험 목록 / 응시 기록 화면

  - LIST         : 시험 카드 목록 (응시 횟수, 최고 점수, 유료 잠금)
  - HISTORY_LIST : 지난 응시 기록 (복습, 삭제)
"""

from __future__ import annotations

from datetime import datetime

import streamlit as st

from topik_cbt.models.question_model import ExamType
from topik_cbt.models.session_state import ExamView
from topik_cbt.services.exam_service import ExamListEntry
from topik_cbt.services.exam_session import ExamSessionMachine


def _format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _exam_card(machine: ExamSessionMachine, entry: ExamListEntry) -> None:
    exam = entry.exam
    subject = "듣기" if exam.type == ExamType.LISTENING else "읽기"
    best = f"{entry.best_percentage:.0f}%" if entry.best_percentage is not None else "-"

    with st.container(border=True):
        left, right = st.columns([3, 1])
        with left:
            lock = "🔒 " if entry.locked else ""
            st.markdown(f"**{lock}{exam.title}**")
            st.caption(
                f"{subject} · {exam.time_limit}분 · 응시 {entry.attempt_count}회 · 최고 {best}"
            )
            if exam.description:
                st.write(exam.description)
        with right:
            if st.button(
                "선택",
                key=f"select_{exam.id}",
                type="primary",
                use_container_width=True,
                disabled=machine.state.loading,
            ):
                st.session_state.pop("upgrade_prompt", None)
                with st.spinner("시험 문제를 불러오는 중..."):
                    machine.select_exam(exam)
                st.rerun()


def _render_list(machine: ExamSessionMachine) -> None:
    header, history_col = st.columns([3, 1])
    with header:
        st.markdown(
            "<h2 style='font-size:1.4rem; font-weight:700; color:#1a1a2e;'>TOPIK II 모의고사</h2>",
            unsafe_allow_html=True,
        )
    with history_col:
        if st.button("응시 기록", key="open_history", use_container_width=True):
            machine.view_history()
            st.rerun()

    upgrade = st.session_state.get("upgrade_prompt")
    if upgrade:
        st.info(f"'{upgrade}'은(는) 유료 회원 전용 시험입니다. 이용권을 구매하면 응시할 수 있습니다.")

    if machine.state.error_message:
        st.error(machine.state.error_message)
        if st.button("다시 시도", key="retry_list"):
            machine.clear_error()
            st.rerun()

    entries = machine.exam_list()
    if not entries and not machine.state.error_message:
        st.info("등록된 시험이 없습니다.")
    for entry in entries:
        _exam_card(machine, entry)


def _render_history(machine: ExamSessionMachine) -> None:
    header, back_col = st.columns([3, 1])
    with header:
        st.markdown(
            "<h2 style='font-size:1.4rem; font-weight:700; color:#1a1a2e;'>응시 기록</h2>",
            unsafe_allow_html=True,
        )
    with back_col:
        if st.button("← 목록", key="close_history", use_container_width=True):
            machine.close_history()
            st.rerun()

    if machine.state.error_message:
        st.error(machine.state.error_message)

    entries = machine.history_list()
    if not entries:
        st.info("아직 응시 기록이 없습니다.")
        return

    for entry in entries:
        attempt = entry.attempt
        badge = "합격" if entry.passed else "불합격"
        with st.container(border=True):
            info, review_col, delete_col = st.columns([3, 1, 1])
            with info:
                st.markdown(f"**{attempt.exam_title or attempt.exam_id}**")
                st.caption(
                    f"{_format_timestamp(attempt.timestamp)} · {attempt.score}/{attempt.max_score}점 "
                    f"({entry.percentage}%) · {badge}"
                )
            with review_col:
                if st.button("복습", key=f"review_{attempt.id}", use_container_width=True):
                    with st.spinner("시험 문제를 불러오는 중..."):
                        machine.review(attempt)
                    st.rerun()
            with delete_col:
                if st.button("삭제", key=f"delete_{attempt.id}", use_container_width=True):
                    machine.delete_history(attempt.id)
                    st.rerun()


def render(machine: ExamSessionMachine) -> None:
    if machine.view == ExamView.HISTORY_LIST:
        _render_history(machine)
    else:
        _render_list(machine)
