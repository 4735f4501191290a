"""
Job-related type definitions for internal use.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel

from job_throttle.constants import JobDisposition


class JobResult(BaseModel):
    """
    Result of one job attempt.
    Returned by job handlers, or built by the admission controller when
    the handler was not allowed to run.
    """

    success: bool
    disposition: JobDisposition = JobDisposition.COMPLETED
    output: dict[str, Any] | None = None
    error: str | None = None
    reason: str | None = None
    retry_after_seconds: float | None = None
    retry_range: tuple[float, float] | None = None
    duration_ms: float | None = None

    @classmethod
    def dropped(cls, reason: str) -> "JobResult":
        """Result for an attempt that is discarded without running."""
        return cls(success=False, disposition=JobDisposition.DROPPED, reason=reason)

    @classmethod
    def reenqueued(
        cls,
        reason: str,
        delay_seconds: float,
        delay_range: tuple[float, float],
    ) -> "JobResult":
        """Result for an attempt that must be scheduled again later."""
        return cls(
            success=False,
            disposition=JobDisposition.REENQUEUED,
            reason=reason,
            retry_after_seconds=delay_seconds,
            retry_range=delay_range,
        )


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Key functions and bucket selectors read the same object.
    """

    job_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    job_id: UUID = field(default_factory=uuid4)
    attempt: int = 1

    @property
    def data(self) -> dict[str, Any]:
        """Handler arguments stored under the payload's ``data`` key."""
        return self.payload.get("data", {})


# Type alias for job handler functions
JobHandler = Callable[[JobContext], Awaitable[JobResult]]
