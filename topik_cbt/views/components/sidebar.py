"""
views/components/sidebar.py

문제 번호 네비게이션 그리드 컴포넌트.
각 번호를 클릭하면 해당 문제로 바로 이동한다.
"""

from __future__ import annotations

import streamlit as st

from topik_cbt.services.question_renderer import RenderedPaper


def render(paper: RenderedPaper, current_index: int) -> None:
    """
    사이드바에 문제 번호 버튼 그리드와 진행 현황을 렌더링한다.

    답한 문제는 번호 옆에 ● 표시. 클릭하면 st.session_state.current_index를 바꾼다.
    """
    total = paper.total
    answered = paper.answered_count

    # ── 진행 현황 ──────────────────────────────────────────────────────────
    st.markdown(
        f"""
        <div style="display:flex; justify-content:space-between;
                    font-size:0.8rem; color:#6b7280; margin-bottom:4px;">
            <span>진행률</span>
            <span><b>{answered}</b> / {total}</span>
        </div>
        """,
        unsafe_allow_html=True,
    )
    st.progress(answered / total if total > 0 else 0)

    # ── 문제 번호 그리드 (5열) ─────────────────────────────────────────────
    cols_per_row = 5

    for row_start in range(0, total, cols_per_row):
        row = paper.nav[row_start : row_start + cols_per_row]
        cols = st.columns(cols_per_row)
        for col_idx, item in enumerate(row):
            label = f"{item.number}●" if item.answered else str(item.number)
            with cols[col_idx]:
                if st.button(
                    label,
                    key=f"nav_{item.index}",
                    help=f"문제 {item.number}번으로 이동",
                    type="primary" if item.index == current_index else "secondary",
                ):
                    st.session_state.current_index = item.index
                    st.rerun()
