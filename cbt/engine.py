"""
Exam session controller: lifecycle, the submit/timeout race, scoring and result persistence.

One SessionController per exam attempt. UI reruns, the timer fragment and the
registry poller may call in from different threads; the locked check-and-set in
_enter_terminating arbitrates between manual submission and clock expiry.
"""
import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional
from uuid import uuid4

from engine import (
    CLOCK_POLL_INTERVAL,
    RESULT_APPEND_BACKOFF_SECONDS,
    RESULT_APPEND_MAX_ATTEMPTS,
    RESULT_APPEND_MAX_BACKOFF_SECONDS,
)
from cbt.answers import AnswerTracker
from cbt.clock import SessionClock
from cbt.errors import (
    ClampedQuestionCount,
    ResultPersistenceExhausted,
    SessionStateError,
)
from cbt.models import ExamDefinition, PresentationMap, PresentedQuestion, QuestionBank, Result
from cbt.randomization import derive_presentation
from cbt.result_store import ResultStore
from cbt.scoring import score

logger = logging.getLogger(__name__)


class SessionState(Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


class SessionController:
    """Manages a single exam attempt from begin() to a recorded Result."""

    def __init__(
        self,
        result_store: ResultStore,
        candidate_identity: str,
        *,
        session_id: Optional[str] = None,
        rng=None,
        clock: Optional[SessionClock] = None,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = RESULT_APPEND_MAX_ATTEMPTS,
        backoff_seconds: float = RESULT_APPEND_BACKOFF_SECONDS,
        max_backoff_seconds: float = RESULT_APPEND_MAX_BACKOFF_SECONDS,
    ):
        """
        Args:
            result_store: Append-only result persistence
            candidate_identity: Opaque id from the authentication layer
            rng: Random source for the presentation (SystemRandom if None)
            clock: Session countdown; inject one with a fake time source in tests
            wall_clock: Epoch seconds for started/submitted timestamps
            sleep: Used between result-save attempts
            max_attempts: Result-save attempts before giving up
        """
        self.session_id = session_id or str(uuid4())
        self.candidate_identity = candidate_identity
        self.result_store = result_store
        self.rng = rng
        self.clock = clock or SessionClock()
        self._wall_clock = wall_clock
        self._sleep = sleep
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

        self.state = SessionState.NOT_STARTED
        self.exam: Optional[ExamDefinition] = None
        self.bank: Optional[QuestionBank] = None
        self.presentation: Optional[PresentationMap] = None
        self.tracker: Optional[AnswerTracker] = None
        self.started_at_epoch_seconds: Optional[float] = None
        self.warnings: List[ClampedQuestionCount] = []

        self.terminated_by: Optional[str] = None
        self.result: Optional[Result] = None
        self.persistence_error: Optional[ResultPersistenceExhausted] = None
        self.save_attempts = 0
        self._lock = threading.RLock()

        self.clock.on_expired(self.handle_expired)

    # ============= Lifecycle =============

    def begin(self, exam: ExamDefinition, bank: QuestionBank):
        """
        NotStarted -> Active: derive the presentation, start the clock, open the tracker.

        Raises:
            SessionStateError: if the session was already begun
            EmptyExam: if the exam would present no questions
        """
        if self.state is not SessionState.NOT_STARTED:
            raise SessionStateError(f"Session {self.session_id} already {self.state.value}")

        clamps: List[ClampedQuestionCount] = []
        presentation = derive_presentation(exam, bank, self.rng, clamps=clamps)
        self.warnings.extend(clamps)

        self.exam = exam
        self.bank = bank
        self.presentation = presentation
        self.tracker = AnswerTracker(presentation)
        self.started_at_epoch_seconds = self._wall_clock()
        self.clock.start(exam.duration_seconds)
        self.state = SessionState.ACTIVE
        logger.info(
            f"Session {self.session_id}: started exam {exam.id} for {self.candidate_identity} "
            f"({len(presentation)} questions, {exam.duration_seconds}s)"
        )

    def request_manual_submit(self) -> Optional[Result]:
        """
        Candidate pressed Submit. Returns the Result, or None if the session had
        already left Active (the click is ignored).
        """
        if not self._enter_terminating("manual"):
            return None
        return self._terminate()

    def handle_expired(self) -> Optional[Result]:
        """Clock expiry listener. Ignored unless the session is still Active."""
        if not self._enter_terminating("expired"):
            return None
        return self._terminate()

    def _enter_terminating(self, trigger: str) -> bool:
        with self._lock:
            if self.state is not SessionState.ACTIVE:
                logger.info(f"Session {self.session_id}: {trigger} ignored, session is {self.state.value}")
                return False
            self.state = SessionState.TERMINATING
            self.terminated_by = trigger
            self.clock.cancel()
            self.tracker.close()
        logger.info(f"Session {self.session_id}: terminating ({trigger})")
        return True

    def _terminate(self) -> Result:
        answers = self.tracker.snapshot()
        summary = score(self.presentation, answers, self.bank)
        elapsed = int(round(self.clock.elapsed_seconds()))
        result = Result(
            session_id=self.session_id,
            candidate_identity=self.candidate_identity,
            exam_id=self.exam.id,
            correct_count=summary.correct_count,
            total_questions=summary.total_questions,
            percent_score=summary.percent_score,
            submitted_at_epoch_seconds=self._wall_clock(),
            time_taken_seconds=min(elapsed, self.exam.duration_seconds),
            raw_answers=dict(answers),
            presentation=self.presentation,
            terminated_by=self.terminated_by,
        )
        self.result = result
        try:
            self._persist(result)
        finally:
            self.state = SessionState.TERMINATED
        logger.info(
            f"Session {self.session_id} completed: {result.correct_count}/{result.total_questions} "
            f"({result.percent_score}%) in {result.time_taken_seconds}s"
        )
        return result

    def _persist(self, result: Result):
        """Append with exponential backoff; never drops the result silently."""
        last_error = None
        for attempt in range(self.max_attempts):
            self.save_attempts = attempt + 1
            try:
                self.result_store.append(result)
                return
            except Exception as e:
                # stores other than DatabaseClient may raise their own errors
                last_error = e
                logger.warning(
                    f"Session {self.session_id}: saving result failed "
                    f"(attempt {attempt + 1}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts - 1:
                    self._sleep(min(self.backoff_seconds * (2 ** attempt), self.max_backoff_seconds))

        error = ResultPersistenceExhausted(result, self.max_attempts)
        self.persistence_error = error
        logger.error(f"Session {self.session_id}: result NOT saved, row={result.to_row()}")
        raise error from last_error

    # ============= UI surface =============

    def poll(self):
        """Advance the clock; may trigger automatic submission."""
        with self._lock:
            self.clock.poll()

    def remaining_seconds(self) -> int:
        return self.clock.remaining_seconds()

    def answered_count(self) -> int:
        return self.tracker.answered_count() if self.tracker else 0

    def select(self, position: int, option_position: int) -> bool:
        if self.tracker is None:
            return False
        with self._lock:
            return self.tracker.select(position, option_position)

    def clear(self, position: int) -> bool:
        if self.tracker is None:
            return False
        with self._lock:
            return self.tracker.clear(position)

    def go_to(self, position: int) -> int:
        if self.tracker is None:
            return 0
        return self.tracker.go_to(position)

    def next(self) -> int:
        if self.tracker is None:
            return 0
        return self.tracker.next()

    def previous(self) -> int:
        if self.tracker is None:
            return 0
        return self.tracker.previous()

    def current_presented_question(self) -> Optional[PresentedQuestion]:
        if self.tracker is None:
            return None
        position = self.tracker.current_position
        entry = self.presentation[position]
        question = self.bank[entry.original_question_id]
        return PresentedQuestion(
            position=position,
            total=len(self.presentation),
            text=question.text,
            options=entry.option_order.apply(question.options),
            selected_option=self.tracker.answer_for(position),
        )

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def is_terminated(self) -> bool:
        return self.state is SessionState.TERMINATED

    @property
    def expiry_due(self) -> bool:
        """Active with no time left: the next poll() submits the exam."""
        return self.is_active and self.clock.remaining_seconds() <= 0


def start_session(
    exam_id: str,
    exam_source,
    identity_source: Callable[[], str],
    result_store: ResultStore,
    **controller_kwargs,
) -> SessionController:
    """
    Load the exam from the catalog, identify the candidate and begin a session.

    `exam_source` provides load_exam_definition(exam_id) and load_question_bank(exam_id).
    """
    exam = exam_source.load_exam_definition(exam_id)
    bank = exam_source.load_question_bank(exam_id)
    controller = SessionController(result_store, identity_source(), **controller_kwargs)
    controller.begin(exam, bank)
    return controller


def run_until_terminated(
    controller: SessionController,
    sleep: Callable[[float], None] = time.sleep,
    interval: float = CLOCK_POLL_INTERVAL,
) -> Optional[Result]:
    """Poll an active session until it ends (by expiry if nobody submits)."""
    while controller.is_active:
        controller.poll()
        if controller.is_active:
            sleep(interval)
    return controller.result
