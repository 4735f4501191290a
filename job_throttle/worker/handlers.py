"""
Job handler registry and throttled execution.

The registry is the seam between the execution runtime and admission
control: the runtime hands each job attempt to ``execute_job`` and acts on
the disposition of the returned JobResult.
"""

import logging
import time
from collections.abc import Callable
from typing import Protocol

from job_throttle.constants import SPAN_EXECUTE_JOB, JobDisposition
from job_throttle.exceptions import LockServiceError
from job_throttle.observability.logging import bind_job_context, clear_context
from job_throttle.observability.metrics import MetricsCollector, get_metrics
from job_throttle.observability.tracing import get_tracer
from job_throttle.throttle.controller import AdmissionController
from job_throttle.types.job import JobContext, JobHandler, JobResult

logger = logging.getLogger(__name__)


class ExecutionHooks(Protocol):
    """Runtime callbacks for attempts that did not run."""

    async def drop(self, context: JobContext, reason: str) -> None:
        """Discard the attempt permanently."""
        ...

    async def reenqueue(
        self,
        context: JobContext,
        delay_range: tuple[float, float],
        delay_seconds: float,
        reason: str,
    ) -> None:
        """Schedule another attempt after ``delay_seconds``."""
        ...


class HandlerRegistry:
    """
    Registry of job handlers, executed under admission control.

    Handlers may be executed more than once for the same job: denied
    attempts come back later as new attempts.
    """

    def __init__(
        self,
        controller: AdmissionController | None = None,
        hooks: ExecutionHooks | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the registry.

        Args:
            controller: Admission controller. Without one every job runs.
            hooks: Runtime callbacks notified of dropped and reenqueued attempts.
            metrics: Metrics collector. Defaults to the process collector.
        """
        self._handlers: dict[str, JobHandler] = {}
        self._controller = controller
        self._hooks = hooks
        self._metrics = metrics or get_metrics()

    def register(self, job_type: str) -> Callable[[JobHandler], JobHandler]:
        """
        Decorator to register a job handler.

        Args:
            job_type: The job type this handler processes.

        Returns:
            Decorator function.

        Example:
            @handlers.register("send_email")
            async def handle_send_email(context: JobContext) -> JobResult:
                ...
        """

        def decorator(handler: JobHandler) -> JobHandler:
            self._handlers[job_type] = handler
            logger.info(f"Registered handler for job type: {job_type}")
            return handler

        return decorator

    def get_handler(self, job_type: str) -> JobHandler | None:
        """Get the handler for a job type, or None if not found."""
        return self._handlers.get(job_type)

    def list_handlers(self) -> list[str]:
        """List all registered job types."""
        return list(self._handlers.keys())

    def attach(self, controller: AdmissionController) -> None:
        """Put admission control in front of every handler."""
        self._controller = controller

    async def execute_job(self, context: JobContext) -> JobResult:
        """
        Execute one job attempt.

        Args:
            context: The job attempt.

        Returns:
            JobResult: completed or failed when the handler ran, dropped or
            reenqueued when admission control held it back.

        Raises:
            LockServiceError: If the lock service failed under the ``raise`` policy.
        """
        handler = self.get_handler(context.job_type)

        if handler is None:
            logger.error(
                f"No handler for job type: {context.job_type}",
                extra={"job_id": str(context.job_id)},
            )
            return JobResult(
                success=False,
                disposition=JobDisposition.FAILED,
                error=f"No handler registered for job type: {context.job_type}",
            )

        bind_job_context(context)
        start_time = time.time()
        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", str(context.job_id))
                span.set_attribute("job_type", context.job_type)
                span.set_attribute("attempt", context.attempt)

                result = await self._run(context, handler)
                span.set_attribute("disposition", result.disposition.value)
        except LockServiceError:
            raise
        except Exception as e:
            logger.exception(
                "Handler raised exception",
                extra={"job_id": str(context.job_id), "error": str(e)},
            )
            result = JobResult(
                success=False,
                disposition=JobDisposition.FAILED,
                error=f"Handler exception: {str(e)}",
            )
        finally:
            clear_context()

        if result.disposition in (JobDisposition.DROPPED, JobDisposition.REENQUEUED):
            await self._notify(context, result)
            return result

        duration = time.time() - start_time
        status = JobDisposition.COMPLETED if result.success else JobDisposition.FAILED
        self._metrics.record_job_completed(
            job_type=context.job_type,
            status=status.value,
            duration_seconds=duration,
        )
        return result.model_copy(
            update={"disposition": status, "duration_ms": duration * 1000}
        )

    async def _run(self, context: JobContext, handler: JobHandler) -> JobResult:
        if self._controller is None:
            return await handler(context)
        return await self._controller.around(context, handler)

    async def _notify(self, context: JobContext, result: JobResult) -> None:
        if self._hooks is None:
            return

        if result.disposition is JobDisposition.DROPPED:
            await self._hooks.drop(context, result.reason)
        elif result.disposition is JobDisposition.REENQUEUED:
            await self._hooks.reenqueue(
                context,
                result.retry_range,
                result.retry_after_seconds,
                result.reason,
            )
