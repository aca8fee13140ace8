"""
Caller-supplied timeout and cancellation for blocking collaborator calls.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Optional, TypeVar

from ..errors import Cancelled

T = TypeVar("T")

POLL_INTERVAL = 0.05


class Deadline:
    """Tracks a timeout and a cancel event for one engine operation.

    With neither set, calls run inline on the caller's thread. Otherwise each
    call runs on a worker thread and the caller stops waiting once the event
    is set or the timeout elapses; the abandoned result is discarded.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.expires_at = time.monotonic() + timeout if timeout is not None else None
        self.cancel_event = cancel_event

    @property
    def active(self) -> bool:
        return self.expires_at is not None or self.cancel_event is not None

    def poll_interval(self) -> Optional[float]:
        """Seconds to block before checking again, or None to block indefinitely."""
        if not self.active:
            return None
        if self.expires_at is None:
            return POLL_INTERVAL
        return max(0.0, min(POLL_INTERVAL, self.expires_at - time.monotonic()))

    def check(self, operation: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise Cancelled(f"{operation} was cancelled")
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            raise Cancelled(f"{operation} timed out")

    def run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        self.check(operation)
        if not self.active:
            return fn(*args)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="flowfix")
        try:
            future = executor.submit(fn, *args)
            while True:
                try:
                    return future.result(timeout=self.poll_interval())
                except FuturesTimeoutError:
                    if future.done():
                        # The call itself raised TimeoutError.
                        raise
                    self.check(operation)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
