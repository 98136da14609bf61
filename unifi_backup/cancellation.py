"""
Cancellation tokens with nested deadlines.

A token is created per process (cancelled on SIGINT/SIGTERM) and each
blocking operation gets a child token carrying its own deadline. Cancelling
a token cancels all of its children; a child never outlives its parent's
deadline.
"""

import threading
import time
import weakref
from typing import Callable, Optional

from .exceptions import CancellationError, DeadlineExceeded


class CancellationToken:
    """
    Cooperative cancellation signal with an optional deadline.

    A token can be passed anywhere a ``cancellation_check`` callable is
    expected: calling the token is the same as calling ``check()``.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        parent: Optional['CancellationToken'] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize token.

        Args:
            timeout: Seconds until this token's deadline (None for no deadline)
            parent: Enclosing token whose cancellation and deadline also apply
            clock: Monotonic clock, injectable for tests
        """
        self._event = threading.Event()
        self._parent = parent
        self._clock = clock
        self._children = weakref.WeakSet()
        self._lock = threading.RLock()
        self._deadline = clock() + timeout if timeout is not None else None

        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: 'CancellationToken'):
        with self._lock:
            self._children.add(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()

    def child(self, timeout: Optional[float] = None) -> 'CancellationToken':
        """Create a nested token, optionally with its own deadline."""
        return CancellationToken(timeout=timeout, parent=self, clock=self._clock)

    def cancel(self):
        """Cancel this token and every token nested inside it."""
        with self._lock:
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def deadline(self) -> Optional[float]:
        """Effective deadline on the token's clock, or None."""
        deadlines = [d for d in (self._deadline, self._parent.deadline if self._parent else None) if d is not None]
        return min(deadlines) if deadlines else None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (never negative), or None."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(deadline - self._clock(), 0.0)

    def error(self) -> Optional[CancellationError]:
        """
        Return the error describing why this token is done.

        Returns:
            CancellationError for manual cancellation, DeadlineExceeded when
            the deadline has passed, None while the token is still live
        """
        if self._event.is_set():
            return CancellationError("operation cancelled")
        deadline = self.deadline
        if deadline is not None and self._clock() >= deadline:
            return DeadlineExceeded("deadline exceeded")
        return None

    def is_cancelled(self) -> bool:
        return self.error() is not None

    def check(self):
        """
        Raise if the token is cancelled or past its deadline.

        Raises:
            CancellationError: If cancelled or the deadline expired
        """
        err = self.error()
        if err is not None:
            raise err

    __call__ = check

    def wait(self, seconds: Optional[float] = None) -> bool:
        """
        Block until cancelled, the deadline passes, or seconds elapse.

        Returns:
            True if the token is done (cancelled or expired)
        """
        if self.error() is not None:
            return True

        remaining = self.remaining()
        if seconds is None:
            timeout = remaining
        elif remaining is None:
            timeout = seconds
        else:
            timeout = min(seconds, remaining)

        self._event.wait(timeout)
        return self.error() is not None

    def sleep(self, seconds: float):
        """
        Sleep for seconds unless cancelled first.

        Raises:
            CancellationError: As soon as the token is cancelled or expires
        """
        if self.wait(seconds):
            self.check()
