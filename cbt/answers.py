"""In-progress answers for the active session, keyed by presented position."""
import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from cbt.errors import InvalidPosition
from cbt.models import PresentationMap

logger = logging.getLogger(__name__)


class AnswerTracker:
    """
    Presented-question-position -> selected presented-option-position.

    Accepts selections only until close() is called; the controller closes it when
    the session leaves Active, so nothing can change after the final snapshot.
    """

    def __init__(self, presentation: PresentationMap):
        self._option_counts = [len(entry.option_order) for entry in presentation]
        self._answers: Dict[int, int] = {}
        self._open = True
        self.current_position = 0

    @property
    def question_count(self) -> int:
        return len(self._option_counts)

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self):
        self._open = False

    def _check_position(self, position: int):
        if not 0 <= position < self.question_count:
            raise InvalidPosition(position, self.question_count)

    def select(self, position: int, option_position: int) -> bool:
        """Record or overwrite an answer. Returns False once the tracker is closed."""
        self._check_position(position)
        n_options = self._option_counts[position]
        if not 0 <= option_position < n_options:
            raise InvalidPosition(option_position, n_options, what="option")
        if not self._open:
            logger.info(f"Selection at position {position} rejected: session no longer active")
            return False
        self._answers[position] = option_position
        return True

    def clear(self, position: int) -> bool:
        self._check_position(position)
        if not self._open:
            return False
        self._answers.pop(position, None)
        return True

    def answer_for(self, position: int) -> Optional[int]:
        self._check_position(position)
        return self._answers.get(position)

    def answered_count(self) -> int:
        return len(self._answers)

    def unanswered_positions(self) -> List[int]:
        return [p for p in range(self.question_count) if p not in self._answers]

    def is_complete(self) -> bool:
        return len(self._answers) == self.question_count

    def snapshot(self) -> Mapping[int, int]:
        return MappingProxyType(dict(self._answers))

    # --- navigation ---

    def go_to(self, position: int) -> int:
        self._check_position(position)
        self.current_position = position
        return position

    def next(self) -> int:
        if self.current_position < self.question_count - 1:
            self.current_position += 1
        return self.current_position

    def previous(self) -> int:
        if self.current_position > 0:
            self.current_position -= 1
        return self.current_position
