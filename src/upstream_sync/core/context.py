"""Cancellation and deadline handling for a sequence of API calls."""

from __future__ import annotations

import threading
import time

from .errors import OperationCancelled


class CallContext:
    """Bound a series of blocking requests by a deadline and/or a cancel flag.

    Args:
        timeout: Total budget in seconds for every call made under this
            context.  ``None`` means no deadline.
        cancel_event: Optional ``threading.Event``; once set, the next
            ``check()`` raises ``OperationCancelled``.
    """

    def __init__(
        self,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._deadline = (
            time.monotonic() + timeout if timeout is not None else None
        )
        self._cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        """Raise ``OperationCancelled`` if cancelled or past the deadline."""
        if self.cancelled:
            raise OperationCancelled("operation cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise OperationCancelled("deadline exceeded")

    def request_timeout(self, default: float) -> float:
        """Per-request timeout: *default* capped by the remaining budget.

        Raises ``OperationCancelled`` once the budget is spent, since a zero
        timeout is rejected by the transport.
        """
        remaining = self.remaining()
        if remaining is None:
            return default
        if remaining <= 0:
            raise OperationCancelled("deadline exceeded")
        return min(default, remaining)


def background() -> CallContext:
    """A context with no deadline that is never cancelled."""
    return CallContext()
