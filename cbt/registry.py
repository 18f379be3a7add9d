"""
Process-wide registry of live exam sessions.

A browser refresh loses st.session_state but not this registry, so a candidate
resumes the same attempt (same presentation, same clock) instead of starting over,
and abandoned attempts are still polled to expiry and recorded.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from engine import CLOCK_POLL_INTERVAL
from cbt.engine import SessionController
from cbt.errors import ResultPersistenceExhausted

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Active SessionControllers keyed by (candidate_identity, exam_id)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[Tuple[str, str], SessionController] = {}
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_or_start(
        self,
        candidate_identity: str,
        exam_id: str,
        start: Callable[[], SessionController],
    ) -> SessionController:
        """
        Return the candidate's active attempt at this exam, or begin one with `start()`.

        A terminated attempt is replaced; an active one is never restarted.
        """
        key = (candidate_identity, exam_id)
        with self._lock:
            existing = self._sessions.get(key)
            if existing is not None and existing.is_active:
                logger.info(f"Resuming session {existing.session_id} for {candidate_identity} on {exam_id}")
                return existing
            controller = start()
            self._sessions[key] = controller
            return controller

    def active_for(self, candidate_identity: str) -> Optional[SessionController]:
        with self._lock:
            for (candidate, _), controller in self._sessions.items():
                if candidate == candidate_identity and controller.is_active:
                    return controller
        return None

    def poll_all(self) -> List[SessionController]:
        """
        Poll every registered session, then forget the ones that have terminated.

        Returns the controllers that were dropped.
        """
        with self._lock:
            controllers = list(self._sessions.values())
        for controller in controllers:
            if not controller.is_active:
                continue
            try:
                controller.poll()
            except ResultPersistenceExhausted:
                # the controller keeps the Result and has logged the row
                logger.error(f"Session {controller.session_id}: expired but result could not be saved")

        with self._lock:
            finished = {k: c for k, c in self._sessions.items() if c.is_terminated}
            for key in finished:
                del self._sessions[key]
        if finished:
            logger.info(f"Registry dropped {len(finished)} finished session(s)")
        return list(finished.values())

    # ============= Background polling =============

    def start_polling(self, interval: float = CLOCK_POLL_INTERVAL) -> threading.Thread:
        """Poll all sessions from a daemon thread until stop_polling(). Idempotent."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop_event = threading.Event()

        def _loop(stop_event: threading.Event):
            while not stop_event.wait(interval):
                try:
                    self.poll_all()
                except Exception:
                    logger.exception("Session registry poll failed")

        self._thread = threading.Thread(
            target=_loop, args=(self._stop_event,), name="session-registry-poller", daemon=True
        )
        self._thread.start()
        logger.info(f"Session registry polling every {interval}s")
        return self._thread

    def stop_polling(self, timeout: Optional[float] = None):
        if self._stop_event is not None:
            self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
