"""
services/exam_service.py

시험 채점 및 결과/목록 분석 비즈니스 로직.
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
"""

from typing import Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from config import PASS_PERCENTAGE, TIME_WARNING_SECONDS
from topik_cbt.models.question_model import Exam, Question
from topik_cbt.models.session_state import ExamAttempt, ExamResult


def calculate_result(
    questions: Sequence[Question],
    user_answers: Mapping[int, int],
) -> ExamResult:
    """
    사용자 답안을 채점한다.

    정답 판정 기준: user_answers.get(문항 인덱스) == question.correct_answer
    응답하지 않은 문제(키 없음)는 오답으로 처리하며 오류가 아니다.

    Args:
        questions:    채점 대상 Question 리스트 (시험지 순서).
        user_answers: 사용자 답안지. {문항 인덱스(0-based): 보기 인덱스}

    Returns:
        ExamResult — 같은 입력에 대해 항상 같은 값을 반환한다.
    """
    score = 0
    total_score = 0
    correct_count = 0

    for idx, q in enumerate(questions):
        question_score = q.points
        total_score += question_score
        if user_answers.get(idx) == q.correct_answer:
            score += question_score
            correct_count += 1

    return ExamResult(
        score=score,
        total_score=total_score,
        correct_count=correct_count,
        total_questions=len(questions),
    )


def get_incorrect_indices(
    questions: Sequence[Question],
    user_answers: Mapping[int, int],
) -> List[int]:
    """
    오답(미응답 포함) 문항 인덱스 리스트를 반환한다. 원본 순서 유지.
    """
    return [
        idx for idx, q in enumerate(questions)
        if user_answers.get(idx) != q.correct_answer
    ]


def review_stats(
    questions: Sequence[Question],
    user_answers: Mapping[int, int],
) -> Dict[str, int]:
    """복습 화면 상단 통계: {"correct", "wrong", "unanswered"}. wrong은 답했지만 틀린 문항 수."""
    incorrect = get_incorrect_indices(questions, user_answers)
    unanswered = sum(1 for idx in range(len(questions)) if idx not in user_answers)
    return {
        "correct": len(questions) - len(incorrect),
        "wrong": len(incorrect) - unanswered,
        "unanswered": unanswered,
    }


def is_passed(percentage: float, pass_percentage: float = PASS_PERCENTAGE) -> bool:
    """
    합격 여부를 반환한다.

    Args:
        percentage:      득점 비율 (0.0 ~ 100.0).
        pass_percentage: 합격 기준 (기본값 60%).
    """
    return percentage >= pass_percentage


def make_attempt(exam: Exam, result: ExamResult, user_answers: Mapping[int, int]) -> ExamAttempt:
    """제출 결과로부터 새 응시 기록을 만든다. 답안은 복사본을 저장한다."""
    return ExamAttempt(
        exam_id=exam.id,
        exam_title=exam.title,
        score=result.score,
        max_score=result.total_score,
        correct_count=result.correct_count,
        total_questions=result.total_questions,
        user_answers=dict(user_answers),
    )


# ── 시험 목록 / 응시 기록 화면용 ──────────────────────────────────────────────

class ExamListEntry(BaseModel):
    exam: Exam
    attempt_count: int = 0
    best_percentage: Optional[float] = None
    locked: bool = False


class HistoryEntry(BaseModel):
    attempt: ExamAttempt
    percentage: float
    passed: bool


def attempt_count(exam_id: str, history: Sequence[ExamAttempt]) -> int:
    return sum(1 for h in history if h.exam_id == exam_id)


def best_percentage(exam_id: str, history: Sequence[ExamAttempt]) -> Optional[float]:
    """해당 시험의 최고 득점 비율. 응시 기록이 없으면 None."""
    scores = [h.percentage for h in history if h.exam_id == exam_id]
    return max(scores) if scores else None


def build_exam_list(
    exams: Sequence[Exam],
    history: Sequence[ExamAttempt],
    can_access: Optional[Callable[[Exam], bool]] = None,
) -> List[ExamListEntry]:
    """
    시험 목록 화면 데이터를 만든다.

    Returns:
        [ExamListEntry, ...] — exams 순서 유지. can_access가 False를 주면 locked.
    """
    return [
        ExamListEntry(
            exam=exam,
            attempt_count=attempt_count(exam.id, history),
            best_percentage=best_percentage(exam.id, history),
            locked=bool(can_access and not can_access(exam)),
        )
        for exam in exams
    ]


def build_history_list(history: Sequence[ExamAttempt]) -> List[HistoryEntry]:
    """응시 기록 화면 데이터. 최신 기록이 먼저 온다."""
    ordered = sorted(history, key=lambda h: h.timestamp, reverse=True)
    return [
        HistoryEntry(attempt=h, percentage=round(h.percentage, 1), passed=is_passed(h.percentage))
        for h in ordered
    ]


# ── 남은 시간 표시 ────────────────────────────────────────────────────────────

def format_time(seconds: int) -> str:
    """남은 시간을 m:ss 형식으로. 음수는 0:00."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def is_time_warning(seconds: int) -> bool:
    """5분 미만 남았으면 경고 표시."""
    return 0 < seconds < TIME_WARNING_SECONDS
