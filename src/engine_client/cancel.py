"""
Call cancellation control.

Provides cancellation tokens that callers hand to ``do``/``stream``/``hijack``
and the per-call arbiter that races blocking I/O against those tokens.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import CancellationError, CancelledError, DeadlineExceededError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


class CancelReason(str, Enum):
    """Reasons for cancellation."""

    USER_REQUEST = "user_request"
    DEADLINE = "deadline"


@dataclass
class CancelState:
    """State of a cancellation token.

    Attributes:
        cancelled: Whether cancellation was requested
        reason: Reason for cancellation
        timestamp: Time of cancellation
    """

    cancelled: bool = False
    reason: CancelReason | None = None
    timestamp: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class CancelToken:
    """Thread-safe cancellation token with an optional absolute deadline.

    The token fires at most once: either because :meth:`cancel` was called or
    because its deadline elapsed. Calls that receive a fired token fail with
    :class:`CancelledError` or :class:`DeadlineExceededError` respectively.

    Example:
        >>> token = CancelToken(timeout=5.0)
        >>> client.stream("POST", "/images/create", StreamSpec(stdout=sink, cancel_token=token))
        >>>
        >>> # From another thread
        >>> token.cancel()
    """

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize cancellation token.

        Args:
            timeout: Seconds until the token fires with ``CancelReason.DEADLINE``
        """
        self._state = CancelState()
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._callbacks: dict[int, Callable[[CancelReason], Any]] = {}
        self._next_callback_id = 0
        self._timer: threading.Timer | None = None
        self._detach_parent: Callable[[], None] | None = None
        self.deadline: float | None = None

        if timeout is not None:
            self.deadline = time.monotonic() + timeout
            self._timer = threading.Timer(timeout, self.cancel, args=(CancelReason.DEADLINE,))
            self._timer.daemon = True
            self._timer.start()

    def cancel(self, reason: CancelReason = CancelReason.USER_REQUEST, **metadata: Any) -> bool:
        """Request cancellation.

        Returns:
            True if cancellation was newly requested, False if already cancelled
        """
        with self._lock:
            if self._state.cancelled:
                return False
            self._state.cancelled = True
            self._state.reason = reason
            self._state.timestamp = time.time()
            self._state.metadata.update(metadata)
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
        for callback in callbacks:
            callback(reason)
        return True

    @property
    def is_cancelled(self) -> bool:
        return self._state.cancelled

    @property
    def reason(self) -> CancelReason | None:
        return self._state.reason

    @property
    def state(self) -> CancelState:
        return self._state

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the token fires; returns False if ``timeout`` elapsed first."""
        return self._event.wait(timeout)

    def on_cancel(self, callback: Callable[[CancelReason], Any]) -> Callable[[], None]:
        """Register ``callback`` to run when the token fires.

        The callback runs immediately when the token has already fired.

        Returns:
            A function that unregisters the callback
        """
        with self._lock:
            if not self._state.cancelled:
                callback_id = self._next_callback_id
                self._next_callback_id += 1
                self._callbacks[callback_id] = callback

                def unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(callback_id, None)

                return unregister
            reason = self._state.reason

        callback(reason or CancelReason.USER_REQUEST)
        return _noop

    def error(self) -> CancellationError | None:
        """Return the error a call observing this token should fail with."""
        if not self._state.cancelled:
            return None
        if self._state.reason == CancelReason.DEADLINE:
            return DeadlineExceededError()
        return CancelledError()

    def raise_if_cancelled(self) -> None:
        error = self.error()
        if error is not None:
            raise error

    def with_timeout(self, timeout: float) -> "CancelToken":
        """Derive a token that fires after ``timeout`` or when this one fires.

        The derived token must be released with :meth:`close`.
        """
        child = CancelToken(timeout=timeout)
        child._detach_parent = self.on_cancel(child.cancel)
        return child

    def close(self) -> None:
        """Stop the deadline timer and detach from a parent token."""
        if self._timer is not None:
            self._timer.cancel()
        if self._detach_parent is not None:
            self._detach_parent()
            self._detach_parent = None


def _noop() -> None:
    return None


class CallGuard:
    """Single-fire arbiter between a call's blocking I/O and its watchers.

    Watchers (cancellation tokens, the inactivity watchdog) call
    :meth:`interrupt`; the first one wins, records its error and runs every
    attached closer to unblock the I/O. The I/O side calls :meth:`finish`
    when it returns, after which interrupts are ignored.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._finished = False
        self._error: BaseException | None = None
        self._closers: list[Callable[[], None]] = []

    @property
    def interrupted(self) -> bool:
        return self._error is not None

    def attach(self, closer: Callable[[], None]) -> None:
        with self._lock:
            fire_now = self._error is not None and not self._finished
            if not fire_now:
                self._closers.append(closer)
        if fire_now:
            closer()

    def interrupt(self, error: BaseException) -> bool:
        with self._lock:
            if self._finished or self._error is not None:
                return False
            self._error = error
            closers = list(self._closers)
        for closer in closers:
            closer()
        return True

    def finish(self) -> BaseException | None:
        with self._lock:
            self._finished = True
            self._closers.clear()
            return self._error


@contextmanager
def guarded(guard: CallGuard, token: CancelToken | None) -> Iterator[CallGuard]:
    """Run a block of blocking I/O under ``guard``, raced against ``token``.

    When a watcher interrupted the call, its error replaces whatever the
    unblocked I/O raised (or the result it returned).
    """
    unregister = _noop
    if token is not None:
        token.raise_if_cancelled()
        unregister = token.on_cancel(lambda _reason: guard.interrupt(token.error() or CancelledError()))
    try:
        try:
            yield guard
        except Exception:
            error = guard.finish()
            if error is not None:
                raise error from None
            raise
        error = guard.finish()
        if error is not None:
            raise error
    finally:
        unregister()


__all__ = ["CallGuard", "CancelReason", "CancelState", "CancelToken", "guarded"]
