"""Cancellation and deadline token for data-access calls.

Every terminal operation (``all``, ``one``, ``next``, ``count``, ``exec``,
transaction begin/commit) accepts an optional :class:`Context`.  Cancelling
it from any thread interrupts the statement running on its behalf; the
operation then raises :class:`~rowspine.core.errors.CancelledError` and
its pooled connection goes back to the pool.

Examples:
    >>> ctx = Context.with_timeout(2.5)
    >>> sess.select_from("books").all(ctx=ctx)          # doctest: +SKIP

    >>> ctx = Context()
    >>> threading.Timer(1.0, ctx.cancel).start()        # doctest: +SKIP
    >>> sess.tx(load_everything, ctx=ctx)               # doctest: +SKIP

Tags:
    cancellation, deadline, timeout, rowspine
"""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable

from rowspine.core.errors import CancelledError, DeadlineExceededError


class Context:
    """
    Cancellation signal with an optional monotonic deadline.

    ``deadline`` is a ``time.monotonic()`` value.  Callbacks registered with
    :meth:`on_cancel` run once, on the thread that cancels (or on a timer
    thread when the deadline passes).
    """

    def __init__(self, deadline: float | None = None):
        self._deadline = deadline
        self._lock = threading.Lock()
        self._reason: type[CancelledError] | None = None
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._ids = itertools.count()
        self._timer: threading.Timer | None = None

    @classmethod
    def with_timeout(cls, seconds: float) -> Context:
        """Context that expires ``seconds`` from now."""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        return self._state() is not None

    def _state(self) -> type[CancelledError] | None:
        with self._lock:
            if (
                self._reason is None
                and self._deadline is not None
                and time.monotonic() >= self._deadline
            ):
                self._reason = DeadlineExceededError
            return self._reason

    def err(self) -> CancelledError | None:
        """A fresh cancellation error if the context is done, else ``None``."""
        reason = self._state()
        return reason() if reason is not None else None

    def check(self) -> None:
        """Raise the cancellation error if the context is done."""
        error = self.err()
        if error is not None:
            raise error

    def cancel(self) -> None:
        """Cancel the context and interrupt whatever is registered."""
        self._fire(CancelledError)

    def _expire(self) -> None:
        self._fire(DeadlineExceededError)

    def _fire(self, reason: type[CancelledError]) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` when the context is cancelled or expires.

        Returns a function that unregisters the callback.
        """
        with self._lock:
            key = next(self._ids)
            self._callbacks[key] = callback
            if self._deadline is not None and self._timer is None and self._reason is None:
                delay = max(0.0, self._deadline - time.monotonic())
                self._timer = threading.Timer(delay, self._expire)
                self._timer.daemon = True
                self._timer.start()

        def unregister() -> None:
            with self._lock:
                self._callbacks.pop(key, None)

        return unregister

    def __repr__(self) -> str:
        state = self._state()
        status = state.__name__ if state is not None else "active"
        return f"Context(deadline={self._deadline!r}, status={status})"


__all__ = ["Context"]
