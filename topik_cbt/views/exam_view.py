"""
views/exam_view.py — 시험 풀기 화면 (EXAM)

레이아웃:
  - st.sidebar : 타이머 + 일시정지/재개 + 문제 번호 네비게이터 + 최종 제출
  - 메인 영역  : 시험지 머리글 + (듣기) 음원 + 현재 문제 카드 + 이전/다음

상태 관리:
  - 답안/남은 시간/제출 여부는 ExamSessionMachine이 소유
  - 화면에 보이는 문제 위치만 st.session_state.current_index
"""

from __future__ import annotations

import streamlit as st

from topik_cbt.models.question_model import ExamType
from topik_cbt.services.exam_session import ExamSessionMachine
from topik_cbt.services.question_renderer import RenderedPaper, render_paper
from topik_cbt.views.components import question_card as qcard
from topik_cbt.views.components import sidebar as nav
from topik_cbt.views.components import timer as tmr


def shared_passage(paper: RenderedPaper, index: int):
    """묶음 문항이면 리더 문항의 지문을 돌려준다."""
    leader = paper.blocks[index].question.shared_passage_leader
    if leader is None:
        return None
    return paper.blocks[leader - 1].question.passage_html


def _submit(machine: ExamSessionMachine) -> None:
    st.session_state["confirm_submit"] = False
    machine.submit()
    st.rerun()


def render(machine: ExamSessionMachine) -> None:
    """시험 화면 렌더링."""
    state = machine.state
    exam = state.current_exam
    paper = render_paper(exam, state.user_answers)
    total = paper.total

    current_idx = max(0, min(st.session_state.get("current_index", 0), total - 1))
    st.session_state.current_index = current_idx

    # ── 사이드바 ───────────────────────────────────────────────────────────
    with st.sidebar:
        tmr.render(machine)

        if state.timer_active:
            if st.button("⏸ 일시정지", key="pause_btn", use_container_width=True):
                machine.pause_timer()
                st.rerun()
        elif st.button("▶ 계속하기", key="resume_btn", use_container_width=True):
            machine.resume_timer()
            st.rerun()

        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)
        nav.render(paper, current_idx)
        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)

        unanswered = total - paper.answered_count
        if unanswered > 0:
            st.markdown(
                f"<p style='font-size:0.8rem; color:#f59e0b; margin-bottom:8px;'>"
                f"⚠️ 미응답 문제: {unanswered}개</p>",
                unsafe_allow_html=True,
            )

        if st.button("최종 제출", key="submit_sidebar", type="primary", use_container_width=True):
            if unanswered > 0:
                st.session_state["confirm_submit"] = True
                st.rerun()
            else:
                _submit(machine)

        # 미응답 상태에서 제출 확인
        if st.session_state.get("confirm_submit"):
            st.warning(f"미응답 문제 {unanswered}개가 있습니다. 그래도 제출하시겠습니까?")
            col_yes, col_no = st.columns(2)
            with col_yes:
                if st.button("제출", key="confirm_yes", type="primary"):
                    _submit(machine)
            with col_no:
                if st.button("취소", key="confirm_no"):
                    st.session_state["confirm_submit"] = False
                    st.rerun()

    # ── 머리글 ─────────────────────────────────────────────────────────────
    st.markdown(
        f"<h2 style='font-size:1.2rem; font-weight:700; color:#1a1a2e; margin-bottom:4px;'>"
        f"{paper.header}</h2>",
        unsafe_allow_html=True,
    )
    if exam.type == ExamType.LISTENING and exam.audio_url:
        st.audio(exam.audio_url)
    if not state.timer_active:
        st.info("일시정지 중입니다. 사이드바의 '계속하기'를 누르면 시간이 다시 흐릅니다.")

    st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)

    # ── 문제 카드 ─────────────────────────────────────────────────────────
    qcard.render(
        paper.blocks[current_idx],
        on_answer_change=lambda option_index: machine.answer(current_idx, option_index),
        shared_passage_html=shared_passage(paper, current_idx),
    )

    # ── 이전 / 다음 ───────────────────────────────────────────────────────
    nav_left, nav_center, nav_right = st.columns([1, 2, 1])
    with nav_left:
        if current_idx > 0 and st.button("← 이전 문제", key="prev_btn", use_container_width=True):
            st.session_state.current_index = current_idx - 1
            st.rerun()
    with nav_center:
        st.markdown(
            f"<p style='text-align:center; font-size:0.85rem; color:#9ca3af; "
            f"padding-top:8px;'>{current_idx + 1} / {total}</p>",
            unsafe_allow_html=True,
        )
    with nav_right:
        if current_idx < total - 1:
            if st.button("다음 문제 →", key="next_btn", type="primary", use_container_width=True):
                st.session_state.current_index = current_idx + 1
                st.rerun()
        elif st.button("제출하기 →", key="submit_last", type="primary", use_container_width=True):
            _submit(machine)
