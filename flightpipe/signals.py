"""Process-level helpers: resource closing and termination signals."""

import contextlib
import logging
import queue
import signal
from typing import Protocol

logger = logging.getLogger(__name__)


class _Closable(Protocol):
    def close(self) -> None: ...


def close_and_log(resource: _Closable) -> None:
    """Close a file or socket, logging instead of raising on failure."""
    try:
        resource.close()
    except OSError as exc:
        logger.error("close_and_log | action: closing | status: error | %s", exc)


def create_signal_listener() -> "queue.Queue[signal.Signals]":
    """Return a queue that receives SIGTERM and SIGINT as they arrive.

    The queue holds at most one pending signal; further ones are dropped
    until it is read. Must be called from the main thread.
    """
    signals: "queue.Queue[signal.Signals]" = queue.Queue(maxsize=1)

    def _handler(signum, _frame):
        with contextlib.suppress(queue.Full):
            signals.put_nowait(signal.Signals(signum))

    signal.signal(signal.SIGTERM, _handler)
    signal.signal(signal.SIGINT, _handler)
    return signals