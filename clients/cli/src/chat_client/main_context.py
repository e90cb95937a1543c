"""Hand-off queue that funnels background results onto the UI thread."""

from __future__ import annotations

import logging
import queue
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

_Task = Tuple[Callable[..., Any], Tuple[Any, ...]]


class MainContext:
    """Run-on-main primitive.

    Worker threads call :meth:`post`; the thread that owns the UI calls
    :meth:`drain` from its loop. Every mutation of session state happens inside
    a drained callable, so the state has a single writer and needs no locks.
    """

    def __init__(self) -> None:
        self._tasks: queue.Queue[_Task] = queue.Queue()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._tasks.put((fn, args))

    def pending(self) -> int:
        return self._tasks.qsize()

    def drain(self, limit: Optional[int] = None) -> int:
        """Run queued callables in FIFO order and return how many ran."""

        ran = 0
        while limit is None or ran < limit:
            try:
                fn, args = self._tasks.get_nowait()
            except queue.Empty:
                break
            ran += 1
            try:
                fn(*args)
            except Exception:
                logger.exception("Main-context task %r failed", fn)
        return ran
