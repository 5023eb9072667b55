"""Turn SIGINT/SIGTERM into a cancellation flag for the duration of a run."""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Iterator

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancelToken:
    """Flag polled by the pipeline between frames."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.signum: int | None = None

    def cancel(self, signum: int | None = None) -> None:
        if self.signum is None:
            self.signum = signum
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@contextmanager
def interrupt_guard(token: CancelToken) -> Iterator[CancelToken]:
    """Route interrupt signals to ``token`` instead of killing the process.

    The previous handlers are restored on exit. Must be entered from the
    main thread, as ``signal.signal`` requires.
    """
    previous = {}

    def _handler(signum, _frame) -> None:
        token.cancel(signum)

    for signum in INTERRUPT_SIGNALS:
        previous[signum] = signal.signal(signum, _handler)
    try:
        yield token
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
