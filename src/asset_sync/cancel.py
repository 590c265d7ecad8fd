"""Cooperative cancellation and deadlines for reconciliation passes.

Long-running phases poll ``CancelToken.check()`` between units of work (a
directory entry while scanning, a plan entry while applying) so a pass stops
at a clean boundary instead of mid-write.
"""

import logging
import signal
import threading
import time
from typing import Optional

from .errors import ReconciliationCancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """Thread-safe cancellation flag with an optional deadline.

    Usage:
        token = CancelToken(deadline=300)
        reconciler.run(cancel=token)
    """

    def __init__(self, deadline: Optional[float] = None):
        """
        Args:
            deadline: Seconds from now after which the pass is cancelled.
                None or <= 0 disables the deadline.
        """
        self._event = threading.Event()
        self._reason = "cancelled"
        self._expires_at = None
        if deadline is not None and deadline > 0:
            self._expires_at = time.monotonic() + deadline
            self.deadline = deadline
        else:
            self.deadline = None

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation."""
        self._reason = reason
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def check(self) -> None:
        """Raise ReconciliationCancelled if cancelled or past the deadline."""
        if self._event.is_set():
            raise ReconciliationCancelled(f"Reconciliation {self._reason}")
        if self.expired:
            raise ReconciliationCancelled(
                f"Reconciliation exceeded its deadline of {self.deadline}s"
            )


def check(token: Optional[CancelToken]) -> None:
    """Check an optional token."""
    if token is not None:
        token.check()


class InterruptHandler:
    """Turn SIGINT/SIGTERM into a cancellation request.

    First signal cancels the token so the pass stops at the next boundary;
    the previous handlers are restored on exit.
    """

    def __init__(self, token: CancelToken):
        self.token = token
        self._previous = {}

    def _handler(self, signum, frame) -> None:
        name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.warning("Received %s, stopping after the current step", name)
        self.token.cancel(f"interrupted by {name}")

    def __enter__(self) -> "InterruptHandler":
        # Signal handlers can only be installed from the main thread
        if threading.current_thread() is threading.main_thread():
            for sig in (signal.SIGINT, signal.SIGTERM):
                self._previous[sig] = signal.signal(sig, self._handler)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)
        self._previous.clear()
        return False
