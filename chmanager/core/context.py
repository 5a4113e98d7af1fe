"""
Request context carrying an optional deadline.

Every repository and remote-client call receives a `RequestContext` and
checks it before doing I/O.
"""
import time
from dataclasses import dataclass
from typing import Optional

from chmanager.core.errors import DeadlineExceeded


@dataclass(frozen=True)
class RequestContext:
    """Deadline-carrying context for one request.

    `deadline` is an absolute value on the `time.monotonic()` clock, or None
    for no deadline.
    """
    deadline: Optional[float] = None

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "RequestContext":
        """Build a context whose deadline is `seconds` from now."""
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    @classmethod
    def background(cls) -> "RequestContext":
        """Context without a deadline, for work detached from a request."""
        return cls()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (never negative), or None."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check_deadline(self, operation: str) -> None:
        """
        Raise DeadlineExceeded if the deadline has passed.

        Args:
            operation: Name of the operation about to start

        Raises:
            DeadlineExceeded: If the deadline elapsed
        """
        if self.expired():
            raise DeadlineExceeded(operation, "deadline exceeded")
