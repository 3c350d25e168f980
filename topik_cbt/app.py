"""
topik_cbt/app.py — streamlit 진입점

    streamlit run topik_cbt/app.py

저장소는 프로세스 전체가 공유하고(st.cache_resource),
상태 머신과 주석 편집기는 브라우저 세션마다 하나씩 st.session_state에 둔다.
화면은 ExamSessionMachine.view 하나로만 고른다.
"""

import logging
import os
import sys

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

import streamlit as st

from config import DATA_DIR
from topik_cbt.models.question_model import Exam
from topik_cbt.models.session_state import ExamView
from topik_cbt.services.annotation_engine import AnnotationEditor, AnnotationStore
from topik_cbt.services.exam_session import ExamSessionMachine
from topik_cbt.services.repository import (
    AccessPolicy,
    AnnotationRepository,
    ExamRepository,
    HistoryRepository,
)
from topik_cbt.views import cover_view, exam_list_view, exam_view, result_view, review_view

logger = logging.getLogger(__name__)

_CSS = """
<style>
.timer-display { font-size:1.6rem; font-weight:700; color:#1a1a2e; text-align:center; }
.timer-warning { color:#ef4444; }
.instruction-banner { background:#eef2f8; border-left:4px solid #4a7fcb; padding:8px 12px; margin:12px 0; font-weight:600; }
.passage-box { border:1px solid #d1d9e6; border-radius:8px; padding:12px 16px; margin-bottom:10px; line-height:1.8; }
.passage-box.headline { font-weight:700; text-align:center; }
.context-box { border:1px dashed #9ca3af; padding:10px 14px; margin-bottom:10px; }
.question-card { margin:8px 0 12px; }
.question-number-badge { font-weight:700; margin-right:6px; }
.score-big { font-size:3rem; font-weight:800; text-align:center; margin:0; }
.pass-badge { padding:4px 16px; border-radius:14px; font-weight:700; }
.pass-badge.pass { background:#d1fae5; color:#065f46; }
.pass-badge.fail { background:#fee2e2; color:#991b1b; }
.cbt-divider { border:none; border-top:1px solid #e5eaf2; margin:12px 0; }
mark.hl { background:transparent; color:inherit; padding:0; }
mark.hl-active.hl-yellow { background:#fde047; }
mark.hl-active.hl-green { background:#86efac; }
mark.hl-active.hl-blue { background:#93c5fd; }
mark.hl-active.hl-pink { background:#f9a8d4; }
mark.hl-underline.hl-yellow { border-bottom:2px solid #eab308; }
mark.hl-underline.hl-green { border-bottom:2px solid #22c55e; }
mark.hl-underline.hl-blue { border-bottom:2px solid #3b82f6; }
mark.hl-underline.hl-pink { border-bottom:2px solid #ec4899; }
</style>
"""


@st.cache_resource
def _repositories() -> dict:
    logger.info(f"저장소 초기화: {DATA_DIR}")
    return {
        "exams": ExamRepository(DATA_DIR),
        "history": HistoryRepository(DATA_DIR),
        "annotations": AnnotationRepository(DATA_DIR),
        "access_policy": AccessPolicy(),
    }


def _show_upgrade_prompt(exam: Exam) -> None:
    st.session_state.upgrade_prompt = exam.title


def _init_session() -> None:
    if "machine" in st.session_state:
        return
    repos = _repositories()
    st.session_state.machine = ExamSessionMachine(
        repos["exams"],
        repos["history"],
        access_policy=repos["access_policy"],
        on_show_upgrade_prompt=_show_upgrade_prompt,
    )
    st.session_state.editor = AnnotationEditor(AnnotationStore.from_repository(repos["annotations"]))
    st.session_state.current_index = 0


def main() -> None:
    st.set_page_config(page_title="TOPIK CBT", page_icon="📝", layout="wide")
    st.markdown(_CSS, unsafe_allow_html=True)
    _init_session()

    machine: ExamSessionMachine = st.session_state.machine
    editor: AnnotationEditor = st.session_state.editor

    view = machine.view
    if view in (ExamView.LIST, ExamView.HISTORY_LIST):
        exam_list_view.render(machine)
    elif view == ExamView.COVER:
        cover_view.render(machine)
    elif view == ExamView.EXAM:
        exam_view.render(machine)
    elif view == ExamView.RESULT:
        result_view.render(machine)
    elif view == ExamView.REVIEW:
        review_view.render(machine, editor)


main()
