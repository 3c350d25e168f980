"""
views/components/timer.py

남은 시험 시간 표시 컴포넌트.
시간은 ExamSessionMachine의 카운트다운 타이머가 1초마다 줄이며,
이 컴포넌트는 1초마다 다시 그려 남은 시간만 읽는다.
"""

import streamlit as st

from topik_cbt.models.session_state import ExamView
from topik_cbt.services.exam_service import format_time, is_time_warning
from topik_cbt.services.exam_session import ExamSessionMachine


def render_time(time_left: int, paused: bool = False) -> None:
    warning = is_time_warning(time_left)
    css_class = "timer-display timer-warning" if warning else "timer-display"
    icon = "⏸ " if paused else ("⚠️ " if warning else "⏱ ")

    st.markdown(
        f'<div class="{css_class}">{icon}{format_time(time_left)}</div>',
        unsafe_allow_html=True,
    )
    if warning and not paused:
        st.caption("종료 5분 전입니다.")


@st.fragment(run_every=1)
def render(machine: ExamSessionMachine) -> None:
    """
    남은 시간 표시. 시간이 다 되어 자동 제출되면 전체 화면을 다시 그린다.
    """
    state = machine.state
    if state.view != ExamView.EXAM:
        st.rerun()
        return
    render_time(state.time_left, paused=not state.timer_active)
