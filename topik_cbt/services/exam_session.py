"""
services/exam_session.py

시험 세션 상태 머신.

    LIST ──select──▶ COVER ──start──▶ EXAM ──submit──▶ RESULT ──review──▶ REVIEW
     │  ▲                               ▲                │  └──try_again──▶ COVER
     ▼  │                                                └──back_to_list──▶ LIST
    HISTORY_LIST ──review(attempt)──▶ REVIEW

모든 화면 전이는 _TRANSITIONS 표 하나로만 일어난다.
카운트다운 타이머는 EXAM 상태에서만 동작하며, 0초가 되면 자동 제출한다.
제출은 응시분 당 정확히 한 번만 처리된다 (수동 제출과 시간 만료가 겹쳐도 기록 1건).
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from config import TIMER_INTERVAL_SECONDS
from topik_cbt.errors import ContentLoadError, IllegalTransitionError
from topik_cbt.models.question_model import Exam, Question
from topik_cbt.models.session_state import ExamAttempt, ExamResult, ExamView, SessionState
from topik_cbt.services import exam_service
from topik_cbt.services.canvas_layer import TimerFactory, daemon_timer

logger = logging.getLogger(__name__)


class ExamEvent(str, Enum):
    VIEW_HISTORY = "VIEW_HISTORY"
    CLOSE_HISTORY = "CLOSE_HISTORY"
    SELECT = "SELECT"
    START = "START"
    SUBMIT = "SUBMIT"
    REVIEW = "REVIEW"
    REVIEW_ATTEMPT = "REVIEW_ATTEMPT"
    TRY_AGAIN = "TRY_AGAIN"
    BACK_TO_LIST = "BACK_TO_LIST"


_TRANSITIONS: Dict[Tuple[ExamView, ExamEvent], ExamView] = {
    (ExamView.LIST, ExamEvent.VIEW_HISTORY): ExamView.HISTORY_LIST,
    (ExamView.HISTORY_LIST, ExamEvent.CLOSE_HISTORY): ExamView.LIST,
    (ExamView.LIST, ExamEvent.SELECT): ExamView.COVER,
    (ExamView.COVER, ExamEvent.START): ExamView.EXAM,
    (ExamView.EXAM, ExamEvent.SUBMIT): ExamView.RESULT,
    (ExamView.RESULT, ExamEvent.REVIEW): ExamView.REVIEW,
    (ExamView.HISTORY_LIST, ExamEvent.REVIEW_ATTEMPT): ExamView.REVIEW,
    (ExamView.RESULT, ExamEvent.TRY_AGAIN): ExamView.COVER,
    **{
        (view, ExamEvent.BACK_TO_LIST): ExamView.LIST
        for view in ExamView
        if view != ExamView.LIST
    },
}


def next_view(view: ExamView, event: ExamEvent) -> ExamView:
    """전이표 조회. 정의되지 않은 전이는 IllegalTransitionError."""
    try:
        return _TRANSITIONS[(view, event)]
    except KeyError:
        raise IllegalTransitionError(view.value, event.value) from None


# ── 카운트다운 타이머 ─────────────────────────────────────────────────────────

class Countdown(Protocol):
    @property
    def running(self) -> bool: ...
    def start(self) -> None: ...
    def stop(self) -> None: ...


class CountdownTimer:
    """
    interval초마다 on_tick()을 부르는 반복 타이머.

    threading.Timer를 한 번씩 이어 거는 방식이라 stop() 이후에는
    이미 만료된 타이머가 있더라도 on_tick이 다시 불리지 않는다.
    """

    def __init__(
        self,
        on_tick: Callable[[], None],
        interval: float = TIMER_INTERVAL_SECONDS,
        timer_factory: TimerFactory = daemon_timer,
    ):
        self._on_tick = on_tick
        self._interval = interval
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._running = False
        # start()마다 증가. 이전 체인의 타이머는 자기 세대가 아니면 다시 걸지 않는다
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._generation += 1
            self._schedule(self._generation)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _schedule(self, generation: int) -> None:
        self._timer = self._timer_factory(self._interval, lambda: self._fire(generation))
        self._timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if not self._running or generation != self._generation:
                return
        # on_tick 안에서 stop()이 불릴 수 있으므로 잠금 밖에서 호출
        self._on_tick()
        with self._lock:
            if self._running and generation == self._generation:
                self._schedule(generation)


# ── 상태 머신 ─────────────────────────────────────────────────────────────────

class ExamSessionMachine:
    """
    시험 세션 하나의 상태를 소유하는 상태 머신.

    Args:
        exam_repository:        get_exam / get_exam_questions / list_exams 제공
        history_repository:     list_history / save_history / delete_history 제공
        access_policy:          can_access_content(exam) 제공. None이면 모든 시험 허용
        on_show_upgrade_prompt: 접근이 거부됐을 때 호출할 콜백 (exam 인자)
        timer_factory:          on_tick을 받아 Countdown을 만드는 함수
    """

    def __init__(
        self,
        exam_repository,
        history_repository,
        access_policy=None,
        on_show_upgrade_prompt: Optional[Callable[[Exam], None]] = None,
        timer_factory: Callable[[Callable[[], None]], Countdown] = CountdownTimer,
    ):
        self._exams = exam_repository
        self._history = history_repository
        self._access_policy = access_policy
        self._on_show_upgrade_prompt = on_show_upgrade_prompt

        self._lock = threading.RLock()
        self._load_generation = 0
        self._last_attempt: Optional[ExamAttempt] = None
        self._countdown = timer_factory(self.tick)

        self.state = SessionState()

    # ── 조회 ──────────────────────────────────────────────────────────────

    @property
    def view(self) -> ExamView:
        return self.state.view

    @property
    def last_attempt(self) -> Optional[ExamAttempt]:
        return self._last_attempt

    def can_access(self, exam: Exam) -> bool:
        if self._access_policy is None:
            return True
        return self._access_policy.can_access_content(exam)

    def history(self) -> List[ExamAttempt]:
        """응시 기록 전체. 저장소 오류는 ContentLoadError로 올라간다."""
        return self._history.list_history()

    def exam_list(self) -> List[exam_service.ExamListEntry]:
        """목록 화면 데이터. 로드 실패 시 오류 메시지를 남기고 빈 목록."""
        try:
            exams = self._exams.list_exams()
            history = self.history()
        except ContentLoadError as e:
            logger.error(f"시험 목록 로드 실패: {e}")
            self.state.error_message = str(e)
            return []
        return exam_service.build_exam_list(exams, history, self.can_access)

    def history_list(self) -> List[exam_service.HistoryEntry]:
        try:
            return exam_service.build_history_list(self.history())
        except ContentLoadError as e:
            logger.error(f"응시 기록 로드 실패: {e}")
            self.state.error_message = str(e)
            return []

    def has_attempted(self, exam_id: str) -> bool:
        try:
            return exam_service.attempt_count(exam_id, self.history()) > 0
        except ContentLoadError:
            return False

    def review_stats(self) -> Dict[str, int]:
        exam = self.state.current_exam
        if exam is None:
            return {"correct": 0, "wrong": 0, "unanswered": 0}
        return exam_service.review_stats(exam.questions, self.state.user_answers)

    def clear_error(self) -> None:
        self.state.error_message = None

    # ── 전이 ──────────────────────────────────────────────────────────────

    def _transition(self, event: ExamEvent) -> ExamView:
        previous = self.state.view
        self.state.view = next_view(previous, event)
        logger.info(f"[세션] {previous.value} --{event.value}--> {self.state.view.value}")
        if self.state.view != ExamView.EXAM:
            self._stop_timer()
        return self.state.view

    def _stop_timer(self) -> None:
        self._countdown.stop()
        self.state.timer_active = False

    def _reset(self) -> None:
        self._stop_timer()
        self._load_generation += 1
        self._last_attempt = None
        self.state = SessionState(view=self.state.view)

    def view_history(self) -> List[exam_service.HistoryEntry]:
        with self._lock:
            self._transition(ExamEvent.VIEW_HISTORY)
            self.state.error_message = None
        return self.history_list()

    def close_history(self) -> None:
        with self._lock:
            self._transition(ExamEvent.CLOSE_HISTORY)

    def _load_questions(self, exam_id: str) -> List[Question]:
        questions = self._exams.get_exam_questions(exam_id)
        if not questions:
            logger.warning(f"시험 {exam_id}: 등록된 문항이 없어 빈 문항으로 채웁니다")
        return questions

    def select_exam(self, exam: Exam) -> bool:
        """
        LIST에서 시험을 고른다.

        접근이 거부되면 업그레이드 안내 콜백만 부르고 LIST에 머문다.
        문항 로드가 끝나야 COVER로 넘어가며, 로드 실패 시 오류 메시지를 남기고 LIST에 머문다.
        로드 도중 다른 시험을 고르거나 목록으로 돌아가면 늦게 도착한 결과는 버린다.

        Returns:
            COVER로 넘어갔으면 True
        """
        with self._lock:
            next_view(self.state.view, ExamEvent.SELECT)
            if not self.can_access(exam):
                logger.info(f"[select_exam] 접근 거부: {exam.id}")
                denied = True
            else:
                denied = False
                self._load_generation += 1
                token = self._load_generation
                self.state.loading = True
                self.state.error_message = None

        if denied:
            if self._on_show_upgrade_prompt is not None:
                self._on_show_upgrade_prompt(exam)
            return False

        try:
            questions = self._load_questions(exam.id)
        except ContentLoadError as e:
            logger.error(f"[select_exam] 문항 로드 실패: {exam.id} — {e}")
            with self._lock:
                if token == self._load_generation:
                    self.state.loading = False
                    self.state.error_message = f"시험 문제를 불러오지 못했습니다. 다시 시도해 주세요. ({e})"
            return False

        with self._lock:
            if token != self._load_generation or self.state.view != ExamView.LIST:
                logger.info(f"[select_exam] 오래된 로드 결과 무시: {exam.id}")
                return False
            loaded = exam.with_questions(questions)
            self.state.loading = False
            self.state.current_exam = loaded
            self.state.user_answers = {}
            self.state.time_left = loaded.time_limit_seconds
            self.state.exam_result = None
            self.state.submitted = False
            self._transition(ExamEvent.SELECT)
            return True

    def start(self) -> None:
        """COVER → EXAM. 남은 시간을 제한 시간으로 맞추고 타이머를 켠다."""
        with self._lock:
            exam = self.state.current_exam
            if exam is None or len(exam.questions) == 0:
                raise IllegalTransitionError(self.state.view.value, ExamEvent.START.value)
            self._transition(ExamEvent.START)
            self.state.user_answers = {}
            self.state.time_left = exam.time_limit_seconds
            self.state.submitted = False
            self.state.exam_result = None
            self.state.timer_active = True
            self._countdown.start()

    def answer(self, question_index: int, option_index: int) -> None:
        with self._lock:
            if self.state.view != ExamView.EXAM or self.state.submitted:
                raise IllegalTransitionError(self.state.view.value, "ANSWER")
            questions = self.state.current_exam.questions
            if not 0 <= question_index < len(questions):
                raise ValueError(f"문항 인덱스 범위 초과: {question_index}")
            if not 0 <= option_index < len(questions[question_index].options):
                raise ValueError(f"보기 인덱스 범위 초과: {option_index}")
            self.state.user_answers[question_index] = option_index

    def tick(self) -> None:
        """타이머 1회. EXAM에서 타이머가 켜져 있을 때만 1초 줄이고, 0이 되면 자동 제출."""
        with self._lock:
            if self.state.view != ExamView.EXAM or not self.state.timer_active:
                return
            self.state.time_left = max(0, self.state.time_left - 1)
            if self.state.time_left > 0:
                return
            logger.info("[tick] 시간 종료 — 자동 제출")
            self.submit()

    def pause_timer(self) -> None:
        with self._lock:
            if self.state.view != ExamView.EXAM or not self.state.timer_active:
                return
            self._stop_timer()
            logger.info(f"[pause_timer] 남은 시간 {self.state.time_left}초")

    def resume_timer(self) -> None:
        with self._lock:
            if self.state.view != ExamView.EXAM or self.state.submitted:
                return
            if self.state.timer_active or self.state.time_left <= 0:
                return
            self.state.timer_active = True
            self._countdown.start()
            logger.info(f"[resume_timer] 남은 시간 {self.state.time_left}초")

    def submit(self) -> Optional[ExamResult]:
        """
        EXAM → RESULT. 채점하고 응시 기록을 1건 추가한다.

        이미 제출된 응시분에 대한 두 번째 호출은 아무것도 하지 않고 기존 결과를 돌려준다.
        """
        with self._lock:
            if self.state.submitted:
                logger.info("[submit] 이미 제출됨 — 무시")
                return self.state.exam_result
            self._transition(ExamEvent.SUBMIT)
            self.state.submitted = True

            exam = self.state.current_exam
            answers = dict(self.state.user_answers)
            result = exam_service.calculate_result(exam.questions, answers)
            attempt = exam_service.make_attempt(exam, result, answers)
            self.state.exam_result = result
            self._last_attempt = attempt
            logger.info(
                f"[submit] {exam.id}: {result.score}/{result.total_score}점 "
                f"({result.correct_count}/{result.total_questions})"
            )

            try:
                self._history.save_history(attempt)
            except (OSError, ContentLoadError) as e:
                logger.exception(f"[submit] 응시 기록 저장 실패: {attempt.id}")
                self.state.error_message = f"응시 기록을 저장하지 못했습니다: {e}"
            return result

    def review(self, attempt: Optional[ExamAttempt] = None) -> bool:
        """
        복습 화면으로 이동한다.

        attempt가 없으면 RESULT에서 방금 제출한 응시분을, 있으면 HISTORY_LIST에서
        고른 과거 기록을 보여준다. 과거 기록은 시험 문항을 다시 불러온 뒤에 전이한다.

        Returns:
            REVIEW로 넘어갔으면 True
        """
        if attempt is None:
            with self._lock:
                self._transition(ExamEvent.REVIEW)
                self.state.current_review_attempt = self._last_attempt
            return True

        with self._lock:
            next_view(self.state.view, ExamEvent.REVIEW_ATTEMPT)
            self._load_generation += 1
            token = self._load_generation
            self.state.loading = True
            self.state.error_message = None

        try:
            exam = self._exams.get_exam(attempt.exam_id)
            if exam is None:
                raise ContentLoadError(f"시험 '{attempt.exam_id}'을(를) 찾을 수 없습니다.")
            questions = self._load_questions(exam.id)
        except ContentLoadError as e:
            logger.error(f"[review] 복습용 시험 로드 실패: {attempt.exam_id} — {e}")
            with self._lock:
                if token == self._load_generation:
                    self.state.loading = False
                    self.state.error_message = str(e)
            return False

        with self._lock:
            if token != self._load_generation or self.state.view != ExamView.HISTORY_LIST:
                logger.info(f"[review] 오래된 로드 결과 무시: {attempt.exam_id}")
                return False
            loaded = exam.with_questions(questions)
            self.state.loading = False
            self.state.current_exam = loaded
            self.state.current_review_attempt = attempt
            self.state.user_answers = dict(attempt.user_answers)
            self.state.exam_result = exam_service.calculate_result(loaded.questions, attempt.user_answers)
            self.state.submitted = True
            self._transition(ExamEvent.REVIEW_ATTEMPT)
            return True

    def try_again(self) -> None:
        """RESULT → COVER. 같은 시험으로 답안과 남은 시간만 초기화한다."""
        with self._lock:
            self._transition(ExamEvent.TRY_AGAIN)
            exam = self.state.current_exam
            self.state.user_answers = {}
            self.state.time_left = exam.time_limit_seconds if exam else 0
            self.state.exam_result = None
            self.state.current_review_attempt = None
            self.state.submitted = False
            self._last_attempt = None

    def back_to_list(self) -> None:
        """어느 화면에서든 LIST로. 시험/답안/시간/결과/복습 기록을 모두 비운다."""
        with self._lock:
            if self.state.view == ExamView.LIST:
                self.state.loading = False
                self._load_generation += 1
                return
            self._transition(ExamEvent.BACK_TO_LIST)
            self._reset()

    def delete_history(self, attempt_id: str) -> bool:
        removed = self._history.delete_history(attempt_id)
        with self._lock:
            review = self.state.current_review_attempt
            if removed and review is not None and review.id == attempt_id and self.state.view == ExamView.REVIEW:
                # 보고 있던 기록이 지워지면 목록으로
                self.back_to_list()
        return removed

    def shutdown(self) -> None:
        """세션 해제. 타이머를 멈추고 진행 중인 로드를 무효화한다."""
        with self._lock:
            self._stop_timer()
            self._load_generation += 1
