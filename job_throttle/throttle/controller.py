"""
Admission controller for throttled jobs.

The execution runtime calls ``before_execute`` once per job attempt and
acts on the returned decision, then calls ``after_execute`` when the job
body has finished. ``around`` and ``throttled`` do both for async handlers.

Denials are ordinary decisions. Only lock service failures raise, and
only when the failure policy is ``raise``.
"""

import functools
import logging
import random
import time

from job_throttle.config import Settings, get_settings
from job_throttle.constants import (
    SPAN_RELEASE_SLOT,
    SPAN_THROTTLE_ADMISSION,
    THROTTLING_REASON,
    AdmissionAction,
    LockFailurePolicy,
)
from job_throttle.exceptions import LockServiceError
from job_throttle.locks.base import LockService
from job_throttle.observability.logging import bound_admission_context
from job_throttle.observability.metrics import MetricsCollector, get_metrics
from job_throttle.observability.tracing import get_tracer, set_span_attributes
from job_throttle.throttle.backoff import compute_delay_range, sample_delay
from job_throttle.throttle.keys import derive_key
from job_throttle.throttle.registry import ThrottleRegistry
from job_throttle.types.job import JobContext, JobHandler, JobResult
from job_throttle.types.throttle import AdmissionDecision, ThrottleSpec

logger = logging.getLogger(__name__)


class AdmissionController:
    """
    Decides whether a job attempt may run now.

    Flow per attempt:
    1. Job types without throttles, attempts without a bucket and buckets
       without a spec are exempt
    2. The lock key is derived from job type, bucket and key function
    3. One slot is requested from the lock service
    4. Granted: run. Denied: drop or reenqueue with a randomized delay
    """

    def __init__(
        self,
        registry: ThrottleRegistry,
        lock_service: LockService,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the controller.

        Freezes the registry: throttles must be configured before this.

        Args:
            registry: Throttle configuration of every job type.
            lock_service: Slot service shared by all workers.
            settings: Settings. Defaults to the cached environment settings.
            metrics: Metrics collector. Defaults to the process collector.
            rng: Random source for reenqueue delays.
        """
        settings = settings or get_settings()

        self._configs = registry.freeze()
        self._lock_service = lock_service
        self._key_prefix = settings.lock_key_prefix
        self._failure_policy = settings.lock_failure_policy
        self._release_on_completion = settings.release_on_completion
        self._metrics = metrics or get_metrics()
        self._rng = rng or random.Random()

    async def before_execute(self, context: JobContext) -> AdmissionDecision:
        """
        Decide the fate of one job attempt.

        Args:
            context: The job attempt.

        Returns:
            The admission decision.

        Raises:
            LockServiceError: If the lock service failed and the policy is ``raise``.
        """
        job_type = context.job_type
        config = self._configs.get(job_type)

        if config is None or not config.buckets:
            return self._exempt(job_type)

        bucket = config.resolve_bucket(context)
        if bucket is None:
            return self._exempt(job_type)

        spec = config.lookup(bucket)
        if spec is None:
            return self._exempt(job_type, bucket)

        lock_key = derive_key(job_type, bucket, spec, context, prefix=self._key_prefix)

        with (
            bound_admission_context(job_type=job_type, bucket=bucket, lock_key=lock_key),
            get_tracer().start_as_current_span(SPAN_THROTTLE_ADMISSION) as span,
        ):
            set_span_attributes(
                span,
                job_type=job_type,
                bucket=bucket,
                lock_key=lock_key,
                threshold=spec.threshold,
            )

            start_time = time.perf_counter()
            try:
                token = await self._lock_service.acquire(
                    lock_key,
                    resources=spec.threshold,
                    stale_lock_expiration=spec.period,
                )
            except LockServiceError as e:
                decision = self._on_lock_failure(e, job_type, bucket, spec, lock_key)
            else:
                if token is not None:
                    logger.debug("Admitted throttled job")
                    decision = AdmissionDecision(
                        action=AdmissionAction.RUN,
                        job_type=job_type,
                        bucket=bucket,
                        lock_key=lock_key,
                        token=token,
                    )
                else:
                    decision = self._deny(job_type, bucket, spec, lock_key)
            finally:
                self._metrics.record_lock_acquire(
                    job_type, bucket, time.perf_counter() - start_time
                )

            set_span_attributes(span, decision=decision.action.value)

        self._metrics.record_admission(job_type, bucket, decision.action.value)
        return decision

    async def after_execute(self, decision: AdmissionDecision) -> None:
        """
        Finish a job attempt that ran.

        Gives the slot back when ``release_on_completion`` is set; otherwise
        the slot stays taken until its period runs out. Release failures are
        logged and swallowed so they never replace the job's own outcome.
        """
        if not decision.holds_slot or not self._release_on_completion:
            return

        with get_tracer().start_as_current_span(SPAN_RELEASE_SLOT) as span:
            set_span_attributes(span, job_type=decision.job_type, lock_key=decision.lock_key)
            try:
                await self._lock_service.release(decision.lock_key, decision.token)
            except LockServiceError:
                logger.warning(
                    "Failed to release throttle slot, it expires with its period",
                    exc_info=True,
                    extra={"job_type": decision.job_type, "lock_key": decision.lock_key},
                )
                return

        self._metrics.record_slot_released(decision.job_type, decision.bucket)

    async def around(self, context: JobContext, handler: JobHandler) -> JobResult:
        """
        Run a handler under admission control.

        Returns:
            The handler's result when admitted, otherwise a dropped or
            reenqueued result.
        """
        decision = await self.before_execute(context)

        if decision.action is AdmissionAction.DROP:
            return JobResult.dropped(decision.reason)

        if decision.action is AdmissionAction.REENQUEUE:
            return JobResult.reenqueued(
                decision.reason,
                decision.delay_seconds,
                decision.delay_range,
            )

        with bound_admission_context(
            bucket=decision.bucket,
            lock_key=decision.lock_key,
            decision=decision.action.value,
        ):
            try:
                return await handler(context)
            finally:
                await self.after_execute(decision)

    def throttled(self, handler: JobHandler) -> JobHandler:
        """
        Wrap a handler so every call goes through admission control.

        Example:
            send_email = controller.throttled(handle_send_email)
            result = await send_email(context)
        """

        @functools.wraps(handler)
        async def wrapper(context: JobContext) -> JobResult:
            return await self.around(context, handler)

        return wrapper

    def _exempt(self, job_type: str, bucket: str | None = None) -> AdmissionDecision:
        self._metrics.record_admission(job_type, bucket, AdmissionAction.EXEMPT.value)
        return AdmissionDecision(
            action=AdmissionAction.EXEMPT,
            job_type=job_type,
            bucket=bucket,
        )

    def _deny(
        self,
        job_type: str,
        bucket: str,
        spec: ThrottleSpec,
        lock_key: str,
    ) -> AdmissionDecision:
        if spec.drop:
            logger.info("Dropping throttled job")
            return AdmissionDecision(
                action=AdmissionAction.DROP,
                job_type=job_type,
                bucket=bucket,
                lock_key=lock_key,
                reason=THROTTLING_REASON,
            )

        delay_range = compute_delay_range(spec)
        delay = sample_delay(delay_range, self._rng)
        self._metrics.record_reenqueue(job_type, bucket, delay)

        logger.info(
            "Reenqueueing throttled job",
            extra={"delay": f"{delay:.2f}s"},
        )
        return AdmissionDecision(
            action=AdmissionAction.REENQUEUE,
            job_type=job_type,
            bucket=bucket,
            lock_key=lock_key,
            reason=THROTTLING_REASON,
            delay_seconds=delay,
            delay_range=delay_range,
        )

    def _on_lock_failure(
        self,
        error: LockServiceError,
        job_type: str,
        bucket: str,
        spec: ThrottleSpec,
        lock_key: str,
    ) -> AdmissionDecision:
        policy = self._failure_policy
        self._metrics.record_lock_error(job_type, bucket, policy.value)

        if policy is LockFailurePolicy.RAISE:
            logger.error(
                "Lock service failed",
                extra={"error": str(error)},
            )
            raise error

        if policy is LockFailurePolicy.FAIL_CLOSED:
            logger.warning(
                "Lock service failed, treating attempt as throttled",
                extra={"error": str(error)},
            )
            return self._deny(job_type, bucket, spec, lock_key)

        logger.warning(
            "Lock service failed, running job without a slot",
            extra={"error": str(error)},
        )
        return AdmissionDecision(
            action=AdmissionAction.RUN,
            job_type=job_type,
            bucket=bucket,
            lock_key=lock_key,
        )
