"""Exam engine errors."""


class ExamEngineError(Exception):
    """Base class for exam session engine errors."""


class InvalidPosition(ExamEngineError):
    """Answer recorded against a question or option position that does not exist."""

    def __init__(self, position: int, limit: int, what: str = "question"):
        self.position = position
        self.limit = limit
        self.what = what
        super().__init__(f"{what} position {position} out of range [0, {limit})")


class EmptyExam(ExamEngineError):
    """Exam delivers zero questions; it cannot be started or scored."""


class SessionStateError(ExamEngineError):
    """Lifecycle call made in the wrong session state."""


class ExamNotFound(ExamEngineError):
    pass


class ResultPersistenceFailure(ExamEngineError):
    """ResultStore.append failed; safe to retry with the same result."""


class ResultPersistenceExhausted(ExamEngineError):
    """Result could not be saved after the retry budget was used up."""

    def __init__(self, result, attempts: int):
        self.result = result
        self.attempts = attempts
        super().__init__(
            f"Result for session {result.session_id} not saved after {attempts} attempts"
        )


class ClampedQuestionCount(UserWarning):
    """Requested question count exceeded the bank; the full bank is used instead."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"Requested {requested} questions, bank has {available}; using {available}")
