"""
services/sample_exams.py

exams.json 이 없을 때 사용하는 내장 샘플 시험.
일부 문항만 작성되어 있으며 나머지 번호는 로드 시 빈 문항으로 채워진다.
"""

from topik_cbt.models.question_model import Exam, ExamType, PaperType, Question

_READING_QUESTIONS = [
    Question(
        id=1,
        question="어제는 날씨가 추워서 하루 종일 집에 (    ).",
        options=["있었다", "있으려고 했다", "있을 뻔했다", "있는 편이었다"],
        correct_answer=0,
        explanation="날씨가 추운 것이 이유이므로 실제로 집에 있었다는 '있었다'가 알맞습니다.",
    ),
    Question(
        id=2,
        question="내일 시험이 있으니까 오늘은 일찍 (    ).",
        options=["자야 한다", "잘 뿐이다", "자기 쉽다", "잔 적이 있다"],
        correct_answer=0,
        explanation="시험을 앞둔 상황에서의 의무를 나타내는 '-아야 한다'가 알맞습니다.",
    ),
    Question(
        id=3,
        question="친구를 만나려고 약속 장소에 갔는데 친구가 오지 않았다.",
        options=["만나는 김에", "만나기 위해", "만나는 대로", "만나다가"],
        correct_answer=1,
        explanation="'-(으)려고'는 목적을 나타내므로 '-기 위해'와 의미가 비슷합니다.",
    ),
    Question(
        id=19,
        passage=(
            "우리는 보통 스트레스를 나쁜 것으로만 생각한다. 그러나 적당한 스트레스는 "
            "일의 능률을 높이고 집중력을 길러 준다. (    ) 스트레스가 지나치면 몸과 "
            "마음의 건강을 해칠 수 있으므로 스스로 조절하는 방법을 찾는 것이 중요하다."
        ),
        question="(    )에 들어갈 알맞은 것을 고르십시오.",
        options=["물론", "반면에", "게다가", "그래서"],
        correct_answer=1,
        explanation="앞의 긍정적인 내용과 뒤의 부정적인 내용이 대조되므로 '반면에'가 알맞습니다.",
    ),
    Question(
        id=20,
        question="위 글의 내용과 같은 것을 고르십시오.",
        options=[
            "스트레스는 언제나 건강에 해롭다.",
            "적당한 스트레스는 집중력에 도움이 된다.",
            "스트레스를 받으면 일의 능률이 떨어지기만 한다.",
            "스트레스는 다른 사람이 조절해 주어야 한다.",
        ],
        correct_answer=1,
    ),
    Question(
        id=25,
        passage="가을 단풍 예년보다 일주일 늦어, 이번 주말 절정",
        question="다음 신문 기사의 제목을 가장 잘 설명한 것을 고르십시오.",
        options=[
            "올해 단풍은 예년보다 늦게 들어 이번 주말에 가장 아름답겠다.",
            "올해 단풍은 예년보다 빨리 들어 이번 주말에 모두 지겠다.",
            "이번 주말에는 비가 와서 단풍 구경을 하기 어렵겠다.",
            "단풍이 늦게 들어 단풍 축제가 일주일 연기되었다.",
        ],
        correct_answer=0,
    ),
    Question(
        id=39,
        passage=(
            "한국의 전통 가옥인 한옥은 자연과의 조화를 중요하게 생각한다. ( ㉠ ) "
            "한옥의 마당은 햇빛을 반사해 집 안을 밝게 해 준다. ( ㉡ ) 또한 처마는 "
            "여름에는 햇빛을 막고 겨울에는 햇빛이 깊이 들어오게 한다. ( ㉢ )"
        ),
        context_box="이처럼 한옥은 계절에 따라 빛의 양을 스스로 조절한다.",
        question="다음 글에서 <보기>의 문장이 들어가기에 가장 알맞은 곳을 고르십시오.",
        options=["㉠", "㉡", "㉢", "㉠과 ㉡ 사이"],
        correct_answer=2,
    ),
]

_LISTENING_QUESTIONS = [
    Question(
        id=4,
        question="다음 대화를 잘 듣고 이어질 수 있는 말을 고르십시오.",
        options=[
            "네, 지금 바로 갈게요.",
            "아니요, 어제 다녀왔어요.",
            "그럼 내일 다시 전화할게요.",
            "회의가 벌써 끝났어요.",
        ],
        correct_answer=2,
    ),
]

SAMPLE_EXAMS = [
    Exam(
        id="sample-91-reading",
        type=ExamType.READING,
        title="제91회 TOPIK II 읽기 (샘플)",
        round=91,
        paper_type=PaperType.B,
        time_limit=70,
        description="일부 문항만 수록된 연습용 샘플 시험지",
        questions=_READING_QUESTIONS,
    ),
    Exam(
        id="sample-91-listening",
        type=ExamType.LISTENING,
        title="제91회 TOPIK II 듣기 (샘플)",
        round=91,
        paper_type=PaperType.B,
        time_limit=60,
        is_paid=True,
        description="유료 회원 전용 듣기 샘플",
        questions=_LISTENING_QUESTIONS,
    ),
]
