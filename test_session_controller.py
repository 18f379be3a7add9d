import random
import warnings

import pytest

from cbt.engine import SessionState, run_until_terminated, start_session
from cbt.errors import (
    ClampedQuestionCount,
    EmptyExam,
    ResultPersistenceExhausted,
    SessionStateError,
)
from cbt.models import QuestionBank
from cbt.result_store import InMemoryResultStore
from conftest import (
    FlakyResultStore,
    RecordingSleep,
    make_exam,
    make_questions,
    presented_position_of_correct,
)


def test_begin_activates_session(make_controller, store, exam, bank):
    controller = make_controller(store)
    controller.begin(exam, bank)
    assert controller.state is SessionState.ACTIVE
    assert len(controller.presentation) == 4
    assert controller.remaining_seconds() == 60
    assert controller.answered_count() == 0


def test_begin_twice_raises(make_controller, store, exam, bank):
    controller = make_controller(store)
    controller.begin(exam, bank)
    with pytest.raises(SessionStateError):
        controller.begin(exam, bank)


def test_empty_exam_cannot_start(make_controller, store, questions, bank):
    controller = make_controller(store)
    with pytest.raises(EmptyExam):
        controller.begin(make_exam(questions, count=0), bank)
    assert controller.state is SessionState.NOT_STARTED


def test_clamped_count_is_recorded_not_fatal(make_controller, store):
    questions = make_questions(3)
    controller = make_controller(store)
    controller.begin(make_exam(questions, count=8), QuestionBank(questions))
    assert controller.state is SessionState.ACTIVE
    assert len(controller.presentation) == 3
    assert len(controller.warnings) == 1
    assert isinstance(controller.warnings[0], ClampedQuestionCount)


def test_manual_submit_scores_against_canonical_key(make_controller, store, exam, bank, fake_time):
    controller = make_controller(store)
    controller.begin(exam, bank)
    fake_time.advance(12)
    controller.select(0, presented_position_of_correct(controller, 0))
    wrong = (presented_position_of_correct(controller, 1) + 1) % 4
    controller.select(1, wrong)
    controller.select(2, presented_position_of_correct(controller, 2))

    result = controller.request_manual_submit()

    assert controller.state is SessionState.TERMINATED
    assert (result.correct_count, result.total_questions, result.percent_score) == (2, 4, 50)
    assert result.time_taken_seconds == 12
    assert result.terminated_by == "manual"
    assert result.raw_answers == {0: presented_position_of_correct(controller, 0), 1: wrong,
                                  2: presented_position_of_correct(controller, 2)}
    assert store.all() == [result]


def test_never_acting_candidate_gets_one_result_on_expiry(make_controller, store, questions, bank, fake_time):
    controller = make_controller(store)
    controller.begin(make_exam(questions, duration_seconds=1), bank)
    fake_time.advance(1.2)
    controller.poll()

    assert controller.state is SessionState.TERMINATED
    assert len(store) == 1
    result = store.all()[0]
    assert result.terminated_by == "expired"
    assert result.correct_count == 0
    assert result.total_questions == 4
    assert result.time_taken_seconds == 1


def test_run_until_terminated_drives_expiry(make_controller, store, questions, bank, fake_time):
    controller = make_controller(store)
    controller.begin(make_exam(questions, duration_seconds=1), bank)
    result = run_until_terminated(controller, sleep=RecordingSleep(fake_time), interval=0.25)
    assert result is not None
    assert len(store) == 1
    assert store.append_calls == 1


def test_late_expiry_after_manual_submit_is_ignored(make_controller, store, exam, bank, fake_time):
    controller = make_controller(store)
    controller.begin(exam, bank)
    fake_time.advance(30)
    assert controller.remaining_seconds() == 30
    first = controller.request_manual_submit()

    assert controller.handle_expired() is None
    fake_time.advance(100)
    controller.poll()
    assert controller.request_manual_submit() is None

    assert store.append_calls == 1
    assert store.all() == [first]


def test_submit_after_expiry_is_ignored(make_controller, store, exam, bank, fake_time):
    controller = make_controller(store)
    controller.begin(exam, bank)
    fake_time.advance(61)
    controller.poll()
    assert controller.request_manual_submit() is None
    assert store.append_calls == 1


@pytest.mark.parametrize("events", [
    ("submit", "expire", "poll"),
    ("expire", "submit", "poll"),
    ("poll", "submit", "expire"),
    ("expire", "expire", "submit"),
    ("submit", "submit", "expire"),
])
def test_any_interleaving_produces_exactly_one_result(make_controller, store, exam, bank, fake_time, events):
    controller = make_controller(store)
    controller.begin(exam, bank)
    fake_time.advance(59.5)
    actions = {
        "submit": controller.request_manual_submit,
        "expire": controller.handle_expired,
        "poll": controller.poll,
    }
    for name in events:
        actions[name]()
        fake_time.advance(0.5)
    assert controller.state is SessionState.TERMINATED
    assert store.append_calls == 1
    assert len(store) == 1


def test_selection_rejected_after_termination(make_controller, store, exam, bank):
    controller = make_controller(store)
    controller.begin(exam, bank)
    controller.select(0, 0)
    result = controller.request_manual_submit()
    assert controller.select(1, 0) is False
    assert dict(result.raw_answers) == {0: 0}


def test_current_presented_question_uses_shuffled_options(make_controller, store, exam, bank):
    controller = make_controller(store)
    controller.begin(exam, bank)
    controller.go_to(2)
    controller.select(2, 1)
    shown = controller.current_presented_question()
    entry = controller.presentation[2]
    canonical = bank[entry.original_question_id].options
    assert shown.position == 2
    assert shown.total == 4
    assert shown.options == tuple(canonical[i] for i in entry.option_order.order)
    assert shown.selected_option == 1


def test_transient_persistence_failures_are_retried_with_backoff(make_controller, exam, bank, fake_time):
    store = FlakyResultStore(failures=2)
    sleep = RecordingSleep(fake_time)
    controller = make_controller(store, sleep=sleep, backoff_seconds=1.0, max_attempts=5)
    controller.begin(exam, bank)
    result = controller.request_manual_submit()

    assert controller.state is SessionState.TERMINATED
    assert controller.persistence_error is None
    assert sleep.calls == [1.0, 2.0]
    assert store.all() == [result]
    assert controller.save_attempts == 3


def test_exhausted_persistence_surfaces_and_keeps_result(make_controller, exam, bank, fake_time):
    store = FlakyResultStore(failures=100)
    sleep = RecordingSleep(fake_time)
    controller = make_controller(store, sleep=sleep, backoff_seconds=1.0, max_backoff_seconds=3.0, max_attempts=4)
    controller.begin(exam, bank)

    with pytest.raises(ResultPersistenceExhausted) as exc:
        controller.request_manual_submit()

    assert exc.value.attempts == 4
    assert exc.value.result is controller.result
    assert controller.persistence_error is exc.value
    assert controller.state is SessionState.TERMINATED
    assert sleep.calls == [1.0, 2.0, 3.0]
    assert len(store) == 0
    # a second trigger does not score or save again
    assert controller.handle_expired() is None
    assert store.append_calls == 4


def test_start_session_uses_collaborators(store, exam, bank, fake_time):
    class Catalog:
        def load_exam_definition(self, exam_id):
            assert exam_id == "exam-1"
            return exam

        def load_question_bank(self, exam_id):
            return bank

    controller = start_session(
        "exam-1", Catalog(), lambda: "cand-42", store,
        rng=random.Random(1), wall_clock=fake_time,
    )
    assert controller.is_active
    assert controller.candidate_identity == "cand-42"
    result = controller.request_manual_submit()
    assert result.candidate_identity == "cand-42"
    assert result.exam_id == "exam-1"


class ConnectionResetStore(InMemoryResultStore):
    """Raises a plain ConnectionError, the way a raw client would, `failures` times."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    def append(self, result):
        if self.failures > 0:
            self.failures -= 1
            self.append_calls += 1
            raise ConnectionError("connection reset by peer")
        super().append(result)


def test_raw_store_errors_are_retried(make_controller, exam, bank, fake_time):
    store = ConnectionResetStore(failures=1)
    sleep = RecordingSleep(fake_time)
    controller = make_controller(store, sleep=sleep, backoff_seconds=1.0)
    controller.begin(exam, bank)
    result = controller.request_manual_submit()

    assert controller.persistence_error is None
    assert sleep.calls == [1.0]
    assert store.all() == [result]


def test_raw_store_errors_exhaust_into_persistence_error(make_controller, exam, bank, fake_time):
    store = ConnectionResetStore(failures=100)
    controller = make_controller(store, sleep=RecordingSleep(fake_time), max_attempts=3)
    controller.begin(exam, bank)

    with pytest.raises(ResultPersistenceExhausted) as exc:
        controller.request_manual_submit()

    assert isinstance(exc.value.__cause__, ConnectionError)
    assert controller.persistence_error is exc.value
    assert controller.state is SessionState.TERMINATED
    assert store.append_calls == 3
    assert len(store) == 0


def test_clamp_recorded_without_issuing_warnings(make_controller, store):
    questions = make_questions(3)
    controller = make_controller(store)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        controller.begin(make_exam(questions, count=8), QuestionBank(questions))
    assert [(w.requested, w.available) for w in controller.warnings] == [(8, 3)]


def test_navigation_before_begin_is_harmless(make_controller, store):
    controller = make_controller(store)
    assert controller.go_to(2) == 0
    assert controller.next() == 0
    assert controller.previous() == 0
    assert controller.select(0, 0) is False
    assert controller.current_presented_question() is None


def test_expiry_due_once_time_runs_out(make_controller, store, exam, bank, fake_time):
    controller = make_controller(store)
    assert not controller.expiry_due
    controller.begin(exam, bank)
    fake_time.advance(59)
    assert not controller.expiry_due
    fake_time.advance(1)
    assert controller.expiry_due
    controller.poll()
    assert controller.is_terminated
    assert not controller.expiry_due
