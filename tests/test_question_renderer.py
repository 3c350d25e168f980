"""
Unit tests for topik_cbt.services.question_renderer.
"""

from conftest import make_exam
from topik_cbt.models.annotation_model import Annotation
from topik_cbt.models.question_model import ExamType, Question
from topik_cbt.models.section_structure import section_for
from topik_cbt.services.annotation_engine import TextSelection
from topik_cbt.services.question_renderer import (
    BLANK_MARKER,
    click_option,
    option_columns,
    render_paper,
    render_question,
    select_text,
)

SHORT = ["가", "나", "다", "라"]


def _question(**kwargs) -> Question:
    data = {"id": 1, "question": "다음 중 맞는 것은?", "options": SHORT, "correct_answer": 2}
    data.update(kwargs)
    return Question(**data)


class TestRenderQuestion:
    """Tests for render_question()."""

    def test_render_question_when_exam_mode_then_no_status(self):
        rendered = render_question(_question(), 0, user_answer=1)

        assert [o.glyph for o in rendered.options] == ["①", "②", "③", "④"]
        assert [o.selected for o in rendered.options] == [False, True, False, False]
        assert all(o.status is None and not o.disabled for o in rendered.options)
        assert rendered.number == 1
        assert rendered.explanation is None

    def test_render_question_when_review_wrong_then_marks_both(self):
        rendered = render_question(
            _question(explanation="해설"), 0, user_answer=1, correct_answer=2, review_mode=True,
        )

        assert [o.status for o in rendered.options] == [None, "incorrect", "correct", None]
        assert all(o.disabled for o in rendered.options)
        assert rendered.explanation == "해설"

    def test_render_question_when_review_unanswered_then_only_correct(self):
        rendered = render_question(_question(), 0, correct_answer=2, review_mode=True)

        assert [o.status for o in rendered.options] == [None, None, "correct", None]

    def test_option_columns_when_long_option_then_single_column(self):
        assert option_columns(SHORT) == 2
        assert option_columns(["가" * 26, "나", "다", "라"]) == 1
        assert option_columns(["가" * 25, "나", "다", "라"]) == 2

    def test_render_question_when_blank_then_marker_in_html(self):
        rendered = render_question(_question(question="빈칸 (   ) 채우기"), 0)

        assert rendered.question_html == f"빈칸 {BLANK_MARKER} 채우기"

    def test_render_question_when_annotation_other_question_then_ignored(self):
        mine = Annotation(context_key="TOPIK-e-Q0", text="맞는")
        other = Annotation(context_key="TOPIK-e-Q1", text="다음")

        rendered = render_question(_question(), 0, annotations=[mine, other], context_prefix="TOPIK-e")

        assert rendered.context_key == "TOPIK-e-Q0"
        assert f'data-annotation-id="{mine.id}"' in rendered.question_html
        assert other.id not in rendered.question_html

    def test_render_question_when_image_choice_then_option_images(self):
        question = _question(option_images=["/a.png", "/b.png", "/c.png", "/d.png"])

        rendered = render_question(question, 0, section=section_for(1, ExamType.LISTENING))
        plain = render_question(question, 0, section=section_for(4, ExamType.LISTENING))

        assert [o.image_url for o in rendered.options] == ["/a.png", "/b.png", "/c.png", "/d.png"]
        assert all(o.image_url is None for o in plain.options)

    def test_render_question_when_headline_section_then_style(self):
        rendered = render_question(
            _question(id=25, passage="경제 성장 둔화"), 24, section=section_for(25, ExamType.READING),
        )

        assert rendered.passage_style == "HEADLINE"
        assert rendered.passage_html == "경제 성장 둔화"


class TestEvents:
    """Tests for click_option() and select_text()."""

    def test_click_option_when_exam_mode_then_callback(self):
        picked = []
        rendered = render_question(_question(), 0)

        assert click_option(rendered, 3, picked.append)
        assert picked == [3]

    def test_click_option_when_review_mode_then_suppressed(self):
        picked = []
        rendered = render_question(_question(), 0, review_mode=True, correct_answer=2)

        assert not click_option(rendered, 3, picked.append)
        assert not click_option(render_question(_question(), 0), 4, picked.append)
        assert picked == []

    def test_select_text_when_selection_then_event_with_context(self):
        events = []
        rendered = render_question(_question(), 3, context_prefix="TOPIK-e")

        assert select_text(rendered, "맞는 것", events.append)
        assert not select_text(rendered, "  ", events.append)
        assert events == [TextSelection(context_key="TOPIK-e-Q3", text="맞는 것")]


class TestRenderPaper:
    """Tests for render_paper()."""

    def test_render_paper_when_reading_then_header_and_instructions(self):
        paper = render_paper(make_exam(), {0: 1, 5: 2})

        assert paper.header == "제91회 한국어능력시험 II B형 2교시 (읽기)"
        assert len(paper.blocks) == 50
        assert paper.blocks[0].instruction.startswith("※ [1~2]")
        assert paper.blocks[1].instruction is None
        assert paper.answered_count == 2
        assert [n.index for n in paper.nav if n.answered] == [0, 5]

    def test_render_paper_when_listening_then_first_period(self):
        paper = render_paper(make_exam(exam_type=ExamType.LISTENING), {})

        assert paper.header == "제91회 한국어능력시험 II B형 1교시 (듣기)"
        assert paper.subject == "듣기"

    def test_render_paper_when_grouped_then_followers_reference_leader(self):
        questions = [Question(id=i, options=SHORT, passage=f"지문 {i}") for i in range(1, 51)]
        exam = make_exam(questions=questions)

        paper = render_paper(exam, {})
        leader, follower = paper.blocks[18].question, paper.blocks[19].question

        assert leader.passage_html == "지문 19"
        assert leader.shared_passage_leader is None
        assert follower.passage_html is None
        assert follower.shared_passage_leader == 19
        assert paper.blocks[19].grouped

    def test_render_paper_when_review_then_correct_marked(self):
        exam = make_exam()

        paper = render_paper(exam, {0: 0}, review_mode=True)
        first = paper.blocks[0].question

        # 1번 정답은 1 % 4 == 1
        assert first.options[1].status == "correct"
        assert first.options[0].status == "incorrect"
        assert paper.review_mode
