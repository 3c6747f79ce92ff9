import threading
import time
from typing import Callable, List, Optional


class DeadlineExceeded(Exception):
    """Raised when a network phase runs past its deadline."""


_local = threading.local()


class Deadline:
    """Hard wall-clock limit for one network phase, scoped with ``with``.

    Entering arms a watchdog timer; leaving cancels it on every exit path.
    When the watchdog fires, every callback registered through
    ``on_expire`` runs (the HTTP layer registers one that shuts down the
    socket of the in-flight request), so a server trickling headers or body
    cannot hold the call open past the budget.

    ``timeout()`` hands the remaining budget to ``requests`` for connect and
    socket reads, and ``check()`` is called between body chunks.

    The active deadline is tracked per thread; ``Deadline.current()`` returns
    the innermost one for the calling thread.
    """

    def __init__(self, seconds: float):
        if seconds <= 0:
            raise ValueError("Deadline must be positive")
        self.seconds = seconds
        self._expires_at: Optional[float] = None
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._previous: Optional["Deadline"] = None
        self._tripped = False

    @staticmethod
    def current() -> Optional["Deadline"]:
        return getattr(_local, "deadline", None)

    def __enter__(self) -> "Deadline":
        self._expires_at = time.monotonic() + self.seconds
        self._tripped = False
        self._timer = threading.Timer(self.seconds, self._trip)
        self._timer.daemon = True
        self._timer.start()
        self._previous = Deadline.current()
        _local.deadline = self
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        _local.deadline = self._previous
        self._previous = None
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._callbacks.clear()
            self._expires_at = None
        return False

    def _trip(self) -> None:
        with self._lock:
            if self._expires_at is None:
                return
            self._tripped = True
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def on_expire(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` from the watchdog thread if the deadline fires."""
        with self._lock:
            if self._expires_at is None:
                raise RuntimeError("Deadline is not armed; use it as a context manager")
            fire_now = self._tripped
            if not fire_now:
                self._callbacks.append(callback)
        if fire_now:
            callback()

    @property
    def tripped(self) -> bool:
        """True once the watchdog fired; stays set after the block exits."""
        return self._tripped

    def remaining(self) -> float:
        if self._expires_at is None:
            raise RuntimeError("Deadline is not armed; use it as a context manager")
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._tripped or self.remaining() <= 0.0

    def check(self) -> None:
        if self.expired():
            raise DeadlineExceeded(f"deadline of {self.seconds:.3f}s exceeded")

    def timeout(self) -> float:
        """Remaining seconds, for use as a requests timeout."""
        remaining = self.remaining()
        if remaining <= 0.0:
            raise DeadlineExceeded(f"deadline of {self.seconds:.3f}s exceeded")
        return remaining
