"""
Shared fixtures and fakes for the TOPIK CBT test suite.

Timers are always injected so no test sleeps or spawns threads.
"""

from typing import Callable, Dict, List, Optional

import pytest

from topik_cbt.models.question_model import Exam, ExamType, PaperType, Question
from topik_cbt.models.session_state import ExamAttempt
from topik_cbt.services.exam_session import ExamSessionMachine


# ── Builders ────────────────────────────────────────────────────────────────

def make_questions(count: int = 50, score: int = 2) -> List[Question]:
    """Questions 1..count, each with four options and correct answer (id % 4)."""
    return [
        Question(
            id=i,
            question=f"{i}번 문항 (    )",
            options=["가", "나", "다", "라"],
            correct_answer=i % 4,
            score=score,
        )
        for i in range(1, count + 1)
    ]


def make_exam(
    exam_id: str = "exam-1",
    exam_type: ExamType = ExamType.READING,
    time_limit: int = 70,
    questions: Optional[List[Question]] = None,
    is_paid: bool = False,
) -> Exam:
    return Exam(
        id=exam_id,
        type=exam_type,
        title=f"{exam_id} 제목",
        round=91,
        paper_type=PaperType.B,
        time_limit=time_limit,
        is_paid=is_paid,
        questions=make_questions() if questions is None else questions,
    )


# ── Fakes ───────────────────────────────────────────────────────────────────

class FakeTimer:
    """threading.Timer stand-in; fire() runs the callback unless cancelled."""

    def __init__(self, interval: float, fn: Callable[[], None]):
        self.interval = interval
        self.fn = fn
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled and not self.fired:
            self.fired = True
            self.fn()


class FakeTimerFactory:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, fn: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, fn)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in list(self.live):
            timer.fire()


class FakeCountdown:
    """Countdown stand-in for ExamSessionMachine; tests drive ticks with fire()."""

    def __init__(self, on_tick: Callable[[], None]):
        self.on_tick = on_tick
        self.running = False
        self.starts = 0

    def start(self) -> None:
        if not self.running:
            self.running = True
            self.starts += 1

    def stop(self) -> None:
        self.running = False

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if not self.running:
                return
            self.on_tick()


class FakeExamRepository:
    """In-memory exam content. `error` is raised by get_exam_questions, `on_load` runs mid-load."""

    def __init__(self, exams: List[Exam]):
        self.exams: Dict[str, Exam] = {e.id: e for e in exams}
        self.error: Optional[Exception] = None
        self.on_load: Optional[Callable[[str], None]] = None
        self.loads: List[str] = []

    def list_exams(self) -> List[Exam]:
        return [e.summary() for e in self.exams.values()]

    def get_exam(self, exam_id: str) -> Optional[Exam]:
        exam = self.exams.get(exam_id)
        return exam.summary() if exam else None

    def get_exam_questions(self, exam_id: str) -> List[Question]:
        self.loads.append(exam_id)
        if self.error is not None:
            raise self.error
        if self.on_load is not None:
            hook, self.on_load = self.on_load, None
            hook(exam_id)
        exam = self.exams.get(exam_id)
        return list(exam.questions) if exam else []


class FakeHistoryRepository:
    def __init__(self):
        self.attempts: List[ExamAttempt] = []

    def list_history(self) -> List[ExamAttempt]:
        return list(self.attempts)

    def save_history(self, attempt: ExamAttempt) -> None:
        self.attempts.append(attempt)

    def delete_history(self, attempt_id: str) -> bool:
        before = len(self.attempts)
        self.attempts = [a for a in self.attempts if a.id != attempt_id]
        return len(self.attempts) != before


class DenyPaid:
    def can_access_content(self, exam: Exam) -> bool:
        return not exam.is_paid


# ── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def exam() -> Exam:
    return make_exam()


@pytest.fixture
def paid_exam() -> Exam:
    return make_exam("paid-1", ExamType.LISTENING, time_limit=60, is_paid=True)


@pytest.fixture
def exam_repo(exam, paid_exam) -> FakeExamRepository:
    return FakeExamRepository([exam, paid_exam])


@pytest.fixture
def history_repo() -> FakeHistoryRepository:
    return FakeHistoryRepository()


@pytest.fixture
def countdowns() -> List[FakeCountdown]:
    return []


@pytest.fixture
def upgrade_prompts() -> List[Exam]:
    return []


@pytest.fixture
def machine(exam_repo, history_repo, countdowns, upgrade_prompts) -> ExamSessionMachine:
    def _factory(on_tick):
        countdown = FakeCountdown(on_tick)
        countdowns.append(countdown)
        return countdown

    return ExamSessionMachine(
        exam_repo,
        history_repo,
        access_policy=DenyPaid(),
        on_show_upgrade_prompt=upgrade_prompts.append,
        timer_factory=_factory,
    )


@pytest.fixture
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()
