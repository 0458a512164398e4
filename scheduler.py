"""Single-threaded event loop shared by every coordinator.

Timer firings, background-call completions and externally delivered events
(Qt input, hotkeys, speech callbacks) are all queued onto one worker thread,
so core objects only ever run one callback at a time even though
collaborators block on their own threads.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Queue
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

_STOP = object()


class _LoopTimer:
    def __init__(self, scheduler: "ThreadScheduler", delay_s: float, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self._cancelled = False
        self._timer = threading.Timer(max(0.0, delay_s), self._enqueue)
        self._timer.daemon = True

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()

    def _enqueue(self) -> None:
        self._scheduler.post(self._fire)

    def _fire(self) -> None:
        # cancel() may have run after the timer thread queued us
        if self._cancelled:
            return
        self._cancelled = True
        self._callback()


class ThreadScheduler:
    def __init__(self) -> None:
        self._events: Queue[Any] = Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def now(self) -> float:
        return time.monotonic()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name="event-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 2.0) -> None:
        if not self._running:
            return
        self._running = False
        self._events.put(_STOP)
        if self._thread and self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=timeout_s)

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _LoopTimer:
        timer = _LoopTimer(self, delay_s, callback)
        timer.start()
        return timer

    def run_in_background(
        self,
        work: Callable[[], T],
        on_done: Callable[[Optional[T], Optional[BaseException]], None],
    ) -> None:
        def _worker() -> None:
            try:
                result = work()
            except Exception as exc:
                self.post(on_done, None, exc)
                return
            self.post(on_done, result, None)

        threading.Thread(target=_worker, daemon=True).start()

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue ``callback(*args)`` to run on the event loop thread."""
        if not self._running:
            logger.debug("Event loop stopped, dropping %r", callback)
            return
        self._events.put((callback, args))

    def _run(self) -> None:
        while True:
            try:
                item = self._events.get(timeout=0.5)
            except Empty:
                if not self._running:
                    return
                continue
            if item is _STOP:
                return
            callback, args = item
            try:
                callback(*args)
            except Exception:
                logger.exception("Unhandled error in event callback %r", callback)
