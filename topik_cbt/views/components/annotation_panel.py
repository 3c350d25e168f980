"""
views/components/annotation_panel.py

복습 화면의 주석 패널.
  - 텍스트를 선택하면 색/메모 입력 메뉴
  - 메모가 달린 주석 목록 (클릭하면 활성화, 수정/삭제)
"""

from __future__ import annotations

import streamlit as st

from topik_cbt.models.annotation_model import HighlightColor
from topik_cbt.services.annotation_engine import AnnotationEditor

_COLOR_LABELS = {
    HighlightColor.YELLOW: "노랑",
    HighlightColor.GREEN: "초록",
    HighlightColor.BLUE: "파랑",
    HighlightColor.PINK: "분홍",
}


def _render_menu(editor: AnnotationEditor) -> None:
    selection = editor.selection
    st.markdown(f"**선택한 문구**  \n> {selection.text}")

    colors = list(HighlightColor)
    color = st.radio(
        "색상",
        options=colors,
        index=colors.index(editor.selected_color),
        format_func=lambda c: _COLOR_LABELS[c],
        horizontal=True,
        key="annotation_color",
    )
    editor.selected_color = color
    note = st.text_area("메모", value=editor.note_input, key="annotation_note")

    left, right = st.columns(2)
    with left:
        if st.button("저장", key="annotation_save", type="primary", use_container_width=True):
            editor.save(color=color, note=note)
            st.rerun()
    with right:
        if st.button("취소", key="annotation_cancel", use_container_width=True):
            editor.cancel()
            st.rerun()


def render(editor: AnnotationEditor, context_prefix: str) -> None:
    st.markdown(
        "<h3 style='font-size:1rem; font-weight:700; color:#1a1a2e;'>📝 메모</h3>",
        unsafe_allow_html=True,
    )
    # 실패 메시지는 다음 저장이 성공할 때까지 rerun을 거쳐도 남는다
    if editor.store.last_error:
        st.error(f"주석 저장소 오류: {editor.store.last_error}")

    if editor.menu_open:
        _render_menu(editor)
        st.markdown('<hr class="cbt-divider">', unsafe_allow_html=True)

    items = editor.sidebar(context_prefix)
    if not items:
        st.caption("메모가 없습니다. 문구를 선택해 하이라이트와 메모를 남겨 보세요.")
        return

    for a in sorted(items, key=lambda x: x.timestamp):
        number = a.context_key.rsplit("-Q", 1)[-1]
        with st.container(border=True):
            label = f"{int(number) + 1}번 · {a.text}" if number.isdigit() else a.text
            if st.button(label, key=f"ann_focus_{a.id}", use_container_width=True):
                editor.set_active(None if editor.active_annotation_id == a.id else a.id)
                st.rerun()

            if editor.editing_annotation_id == a.id:
                note = st.text_area("메모 수정", value=editor.edit_note_input, key=f"ann_edit_{a.id}")
                left, right = st.columns(2)
                with left:
                    if st.button("저장", key=f"ann_commit_{a.id}", type="primary"):
                        editor.commit_edit(note)
                        st.rerun()
                with right:
                    if st.button("삭제", key=f"ann_delete_{a.id}"):
                        editor.delete(a.id)
                        st.rerun()
            else:
                st.write(a.note)
                if st.button("수정", key=f"ann_start_{a.id}"):
                    editor.start_edit(a.id)
                    st.rerun()
