"""ResultStore contract and an in-process implementation."""
import logging
from typing import Dict, List, Protocol

from cbt.models import Result

logger = logging.getLogger(__name__)


class ResultStore(Protocol):
    def append(self, result: Result) -> None:
        """
        Persist a result.

        Returns on success; raises ResultPersistenceFailure on a failure that may be
        retried. A second append for an already stored session_id is a no-op.
        """
        ...


class InMemoryResultStore:
    """Append-only, idempotent on session_id. Used for offline runs and tests."""

    def __init__(self):
        self._results: Dict[str, Result] = {}
        self.append_calls = 0

    def append(self, result: Result) -> None:
        self.append_calls += 1
        if result.session_id in self._results:
            logger.info(f"Result for session {result.session_id} already stored, ignoring duplicate")
            return
        self._results[result.session_id] = result

    def all(self) -> List[Result]:
        return list(self._results.values())

    def __len__(self) -> int:
        return len(self._results)
