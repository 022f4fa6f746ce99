"""
Request deadlines.

A Deadline is created once per engine operation and handed down to every
fetch, embedding, completion and storage call so a single slow page or
provider call cannot hang the whole request. Blocking calls made through
``run`` are abandoned as soon as the deadline expires or is cancelled.
"""
import threading
import time
from typing import Any, Callable, Optional

from .errors import DeadlineExceeded


class Deadline:
    """Absolute point in time after which a request must stop.

    Attributes:
        seconds: Budget the deadline was created with (None means unbounded)
    """

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds
        self._cancelled = threading.Event()
        self._waiters = set()
        self._lock = threading.Lock()

    def remaining(self) -> Optional[float]:
        """Seconds left, 0.0 when expired/cancelled, None when unbounded."""
        if self._cancelled.is_set():
            return 0.0
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def cancel(self) -> None:
        """Abort the request: calls waiting in run() return at once and every later check() fails."""
        self._cancelled.set()
        with self._lock:
            waiters = list(self._waiters)
        for finished in waiters:
            finished.set()

    def check(self) -> None:
        """Raise DeadlineExceeded if the request has run out of time."""
        if self._cancelled.is_set():
            raise DeadlineExceeded("request cancelled")
        if self.expired:
            raise DeadlineExceeded(f"request deadline of {self.seconds}s exceeded")

    def timeout(self, default: float) -> float:
        """Per-call timeout: the smaller of ``default`` and the time left."""
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def run(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run a blocking call on a worker thread and wait for it within the deadline.

        When the deadline expires or is cancelled first, the caller gets
        DeadlineExceeded right away; the worker is left to finish on its own
        socket timeout and its result is discarded. A call that completes
        after cancellation is reported as DeadlineExceeded too.

        Raises:
            DeadlineExceeded: Time ran out or the request was cancelled
            Exception: Whatever func raised
        """
        self.check()
        finished = threading.Event()
        outcome = {}

        def target():
            try:
                outcome["result"] = func(*args, **kwargs)
            except Exception as e:
                outcome["error"] = e
            finally:
                finished.set()

        with self._lock:
            self._waiters.add(finished)
        try:
            if self._cancelled.is_set():
                finished.set()
            else:
                threading.Thread(target=target, name="deadline-call", daemon=True).start()
                while not finished.wait(self.remaining()):
                    if self.expired:
                        break
        finally:
            with self._lock:
                self._waiters.discard(finished)

        if "error" in outcome:
            raise outcome["error"]
        self.check()
        if "result" not in outcome:
            raise DeadlineExceeded("request cancelled")
        return outcome["result"]


def call_timeout(deadline: Optional[Deadline], default: float) -> float:
    """Timeout for one outbound call, honouring an optional deadline."""
    if deadline is None:
        return default
    return deadline.timeout(default)


def run_with_deadline(deadline: Optional[Deadline], func: Callable[..., Any], *args, **kwargs) -> Any:
    """Call func directly, or through deadline.run() when a deadline is given."""
    if deadline is None:
        return func(*args, **kwargs)
    return deadline.run(func, *args, **kwargs)


def check_deadline(deadline: Optional[Deadline]) -> None:
    if deadline is not None:
        deadline.check()
