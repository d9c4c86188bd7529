"""Sync Scheduler - admission, scheduling and retry for content sync jobs.

Hey future me - this is the ONLY owner of JobState! Nothing else mutates it.

Two job identities, each with at most ONE live registration:
- PERIODIC: schedule_sync() (re)registers it. A new spec REPLACES the old
  registration completely. cancel_sync() removes it.
- ADHOC: sync_now() registers a one-shot run. Independent of PERIODIC - both
  may run at the same time. A second sync_now() while one is enqueued/running
  just returns the existing handle.

DISPATCH LOOP (every dispatch_interval seconds, or sooner when woken):
1. Find ENQUEUED registrations whose next_run_at has passed
2. Ask the host platform whether their constraints are satisfied
   - no → stays ENQUEUED (admission deferred, NOT a failure)
   - yes → RUNNING, launch the run as its own asyncio task
3. The run: notifier Running → worker.run_sync() (with timeout) → outcome

PERIODS:
Each periodic registration is anchored to a nominal due time (period_due_at).
The job becomes admissible at period_due_at - flex_window. The next period is
counted from the nominal due time, never from when the run finished, so a
60 minute job runs once per hour even when every run starts early.

AFTER A RUN:
- success → attempt count reset. Periodic: SUCCEEDED then back to ENQUEUED
  for the next period whose flex window is still ahead. Adhoc: SUCCEEDED (done).
- failure → attempt count +1, then RetryPolicy.next_delay(attempt_count):
  - delay → ENQUEUED again, due after the delay
  - None  → FAILED. Terminal! Only schedule_sync()/sync_now() starts over.
  With MAX_RETRIES=3 that's three consecutive failures until FAILED.
- exactly one terminal notification (Completed or Failed) per run.

A run whose registration got replaced or cancelled while it was running
finishes normally (cancel never aborts a run) but does NOT touch the new
registration - each registration has its own registration_id.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import partial
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.application.services.retry_policy import RetryPolicy
from streamsync.application.services.sync_notifier import SyncNotifier
from streamsync.application.workers.job_status import (
    JobHandle,
    JobStatusChannel,
    StatusSubscription,
)
from streamsync.application.workers.sync_worker import SyncWorkerCore
from streamsync.config import Settings
from streamsync.domain.entities import (
    MIN_SYNC_FREQUENCY,
    AdmissionConstraints,
    JobIdentity,
    JobRecord,
    JobState,
    RetryState,
    SyncJobSpec,
    SyncOutcome,
    ensure_utc_aware,
    utc_now,
)
from streamsync.domain.ports import (
    ICatalogFetcher,
    IHostPlatform,
    INotificationProvider,
    IStreamResolver,
)
from streamsync.infrastructure.observability.log_messages import LogMessages
from streamsync.infrastructure.observability.logger_template import log_worker_health
from streamsync.infrastructure.observability.logging import set_correlation_id
from streamsync.infrastructure.persistence.repositories import SyncJobRepository

logger = logging.getLogger(__name__)

RETRIES_EXHAUSTED_MESSAGE = (
    "Failed to update content after {attempts} attempts. "
    "No automatic retry until sync is rescheduled or run manually."
)

HEALTH_LOG_EVERY_CYCLES = 100


@dataclass
class JobRegistration:
    """Live, in-memory registration of one job identity."""

    identity: JobIdentity
    registration_id: str
    spec: SyncJobSpec
    constraints: AdmissionConstraints
    state: JobState
    next_run_at: datetime
    channel: JobStatusChannel
    retry: RetryState = field(default_factory=RetryState)
    handle: JobHandle | None = None
    last_run_id: str | None = None
    last_outcome: SyncOutcome | None = None
    deferred: bool = False
    # Nominal end of the current period (periodic only)
    period_due_at: datetime | None = None

    def to_record(self) -> JobRecord:
        return JobRecord(
            identity=self.identity,
            registration_id=self.registration_id,
            state=self.state,
            spec=self.spec,
            constraints=self.constraints,
            next_run_at=self.next_run_at,
            attempt_count=self.retry.attempt_count,
            last_error=self.retry.last_error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "state": self.state.value,
            "next_run_at": self.next_run_at.isoformat(),
            "attempt_count": self.retry.attempt_count,
            "last_error": self.retry.last_error,
            "last_run_id": self.last_run_id,
            "period_due_at": self.period_due_at.isoformat() if self.period_due_at else None,
            "spec": self.spec.to_dict(),
            "constraints": self.constraints.to_dict(),
        }


def _format_delay(delay: timedelta) -> str:
    seconds = int(delay.total_seconds())
    if seconds % 60 == 0 and seconds >= 60:
        return f"{seconds // 60}m"
    return f"{seconds}s"


class SyncScheduler:
    """Owns job registrations, admission and retry decisions.

    Configuration:
    - dispatch_interval: Max seconds between dispatch cycles (default: 30)
    - execution_timeout: Ceiling for a single run (default: 600). A timeout
      counts as MAINTENANCE_FAILED for retry purposes.
    - min_frequency: Floor for periodic frequency (default: 15 minutes)
    - default_spec: Spec used when schedule_sync() gets none (from SyncSettings)

    Lifecycle:
    - Created in lifecycle.py via create_sync_scheduler()
    - restore() re-registers persisted jobs, then start() runs the loop
    - stop() during shutdown waits for in-flight runs (bounded)

    Tests skip start() and drive it with run_pending() + wait_idle().
    """

    def __init__(
        self,
        worker: SyncWorkerCore,
        host: IHostPlatform,
        notifier: SyncNotifier,
        retry_policy: RetryPolicy | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = utc_now,
        min_frequency: timedelta = MIN_SYNC_FREQUENCY,
        dispatch_interval: float = 30.0,
        execution_timeout: float = 600.0,
        default_spec: SyncJobSpec | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            worker: Executes one sync pass
            host: Evaluates admission constraints
            notifier: Receives Running/Completed/Failed for every run
            retry_policy: Backoff policy (default: 30s base, 3 retries)
            session_factory: DB session factory; None runs memory-only
            clock: Returns current UTC time (injected for tests)
            min_frequency: Floor applied to periodic frequencies
            dispatch_interval: Max seconds between dispatch cycles
            execution_timeout: Seconds before a run counts as failed
            default_spec: Spec for schedule_sync() without arguments
        """
        self._worker = worker
        self._host = host
        self._notifier = notifier
        self._retry_policy = retry_policy or RetryPolicy()
        self._session_factory = session_factory
        self._clock = clock
        self._min_frequency = min_frequency
        self._dispatch_interval = dispatch_interval
        self._execution_timeout = execution_timeout
        self._default_spec = default_spec or SyncJobSpec()

        self._jobs: dict[JobIdentity, JobRegistration] = {}
        self._active: dict[JobIdentity, asyncio.Task[None]] = {}
        self._periodic_channel = JobStatusChannel(
            JobIdentity.PERIODIC.value, initial=JobState.NOT_SCHEDULED
        )
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._started_at: float | None = None
        self._cycles = 0
        self._stats: dict[str, Any] = {
            "runs_started": 0,
            "runs_succeeded": 0,
            "runs_failed": 0,
            "retries_scheduled": 0,
            "lineages_failed": 0,
            "admissions_deferred": 0,
            "loop_errors": 0,
            "persist_errors": 0,
            "last_dispatch_at": None,
            "last_outcome": None,
        }

    # =========================================================================
    # PUBLIC ENTRY POINTS
    # =========================================================================

    @property
    def notifier(self) -> SyncNotifier:
        return self._notifier

    @property
    def worker(self) -> SyncWorkerCore:
        return self._worker

    @property
    def cache(self) -> StreamCacheStore:
        return self._worker.cache

    @property
    def default_spec(self) -> SyncJobSpec:
        return self._default_spec

    async def schedule_sync(self, spec: SyncJobSpec | None = None) -> None:
        """(Re)register the periodic job. Replaces any existing registration.

        Args:
            spec: Job configuration (default: default_spec)
        """
        spec = spec or self._default_spec
        if spec.frequency < self._min_frequency:
            logger.warning(
                LogMessages.config_invalid(
                    setting="frequency",
                    value=_format_delay(spec.frequency),
                    expected=f">= {_format_delay(self._min_frequency)}",
                    hint=f"Clamped to {_format_delay(self._min_frequency)}",
                )
            )
            spec = spec.with_frequency_floor(self._min_frequency)

        now = self._now()
        period_due_at = now + spec.frequency
        reg = JobRegistration(
            identity=JobIdentity.PERIODIC,
            registration_id=str(uuid.uuid4()),
            spec=spec,
            constraints=AdmissionConstraints.for_network(spec.wifi_only, battery_not_low=True),
            state=JobState.ENQUEUED,
            next_run_at=period_due_at - self._flex(spec),
            channel=self._periodic_channel,
            period_due_at=period_due_at,
        )

        async with self._lock:
            replaced = self._jobs.get(JobIdentity.PERIODIC)
            self._jobs[JobIdentity.PERIODIC] = reg
            reg.channel.publish(JobState.ENQUEUED)
            await self._persist(reg)

        if replaced is not None:
            logger.info(
                f"Replaced periodic sync registration {replaced.registration_id} "
                f"({replaced.state.value})"
            )
        logger.info(LogMessages.job_registered(reg.identity.value, reg.state.value, spec.to_dict()))
        self._wake.set()

    async def cancel_sync(self) -> None:
        """Cancel the periodic job. No-op if none is registered.

        A run that is already executing finishes normally.
        """
        async with self._lock:
            reg = self._jobs.pop(JobIdentity.PERIODIC, None)
            if reg is None:
                logger.debug("cancel_sync: no periodic sync registered")
                return
            reg.state = JobState.CANCELLED
            reg.channel.publish(JobState.CANCELLED)
            await self._persist(reg)

        logger.info(f"Periodic sync cancelled (registration {reg.registration_id})")

    def is_sync_scheduled(self) -> bool:
        """True iff the periodic job is ENQUEUED or RUNNING."""
        reg = self._jobs.get(JobIdentity.PERIODIC)
        return reg is not None and reg.state.is_active

    def get_state(self, identity: JobIdentity = JobIdentity.PERIODIC) -> JobState:
        """Current state of one job identity."""
        reg = self._jobs.get(identity)
        if reg is not None:
            return reg.state
        if identity is JobIdentity.PERIODIC:
            return self._periodic_channel.last or JobState.NOT_SCHEDULED
        return JobState.NOT_SCHEDULED

    def get_registration(self, identity: JobIdentity) -> JobRegistration | None:
        return self._jobs.get(identity)

    def get_sync_status(self) -> StatusSubscription:
        """Live stream of periodic JobStates, starting with the current one.

        Close the subscription (or use ``async with``) to unsubscribe.
        """
        return self._periodic_channel.subscribe()

    async def sync_now(self, wifi_only: bool = False) -> JobHandle:
        """Register a one-shot run of all sections plus cache maintenance.

        Args:
            wifi_only: Require an unmetered network (default: any network)

        Returns:
            Handle for this run. If an adhoc run is already enqueued or
            running, that run's handle is returned instead.
        """
        async with self._lock:
            existing = self._jobs.get(JobIdentity.ADHOC)
            if existing is not None and existing.state.is_active and existing.handle is not None:
                logger.info("sync_now: manual sync already pending, returning existing handle")
                return existing.handle

            registration_id = str(uuid.uuid4())
            channel = JobStatusChannel(f"{JobIdentity.ADHOC.value}:{registration_id[:8]}")
            handle = JobHandle(JobIdentity.ADHOC, registration_id, channel)
            reg = JobRegistration(
                identity=JobIdentity.ADHOC,
                registration_id=registration_id,
                spec=SyncJobSpec(
                    frequency=self._min_frequency,
                    wifi_only=wifi_only,
                    flex_window=timedelta(0),
                ),
                constraints=AdmissionConstraints.for_network(wifi_only, battery_not_low=False),
                state=JobState.ENQUEUED,
                next_run_at=self._now(),
                channel=channel,
                handle=handle,
            )
            self._jobs[JobIdentity.ADHOC] = reg
            channel.publish(JobState.ENQUEUED)
            await self._persist(reg)

        logger.info(LogMessages.job_registered(reg.identity.value, reg.state.value, reg.spec.to_dict()))
        self._wake.set()
        return handle

    # =========================================================================
    # RESTORE
    # =========================================================================

    async def restore(self) -> int:
        """Re-register persisted jobs after a restart.

        Rules:
        - ENQUEUED → ENQUEUED
        - RUNNING (interrupted) → ENQUEUED, same attempt count, due now
        - FAILED / SUCCEEDED → kept as-is, never admitted

        Returns:
            Number of registrations restored
        """
        if self._session_factory is None:
            return 0

        async with self._session_factory() as session:
            records = await SyncJobRepository(session).list_all()

        now = self._now()
        restored = 0
        async with self._lock:
            for record in records:
                if record.identity in self._jobs:
                    continue

                state = record.state
                next_run_at = record.next_run_at
                if state is JobState.RUNNING:
                    state = JobState.ENQUEUED
                    next_run_at = min(next_run_at, now)

                period_due_at = None
                if record.identity is JobIdentity.PERIODIC:
                    channel = self._periodic_channel
                    handle = None
                    # Only the window start is stored, the nominal due time follows from it
                    period_due_at = record.next_run_at + self._flex(record.spec)
                else:
                    channel = JobStatusChannel(
                        f"{JobIdentity.ADHOC.value}:{record.registration_id[:8]}"
                    )
                    handle = JobHandle(JobIdentity.ADHOC, record.registration_id, channel)
                    if state.is_terminal:
                        handle._finish(state)

                reg = JobRegistration(
                    identity=record.identity,
                    registration_id=record.registration_id,
                    spec=record.spec,
                    constraints=record.constraints,
                    state=state,
                    next_run_at=next_run_at,
                    channel=channel,
                    retry=RetryState(record.attempt_count, record.last_error),
                    handle=handle,
                    period_due_at=period_due_at,
                )
                self._jobs[record.identity] = reg
                channel.publish(state)
                if state is not record.state:
                    await self._persist(reg)
                restored += 1
                logger.info(
                    f"Restored {record.identity.value} sync job as {state.value} "
                    f"(attempts={record.attempt_count})"
                )

        if restored:
            self._wake.set()
        return restored

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def run_pending(self) -> list[str]:
        """Run one dispatch cycle.

        Returns:
            Run ids of the runs launched in this cycle
        """
        now = self._now()
        self._stats["last_dispatch_at"] = now

        async with self._lock:
            due = [
                reg
                for reg in self._jobs.values()
                if reg.state is JobState.ENQUEUED
                and reg.next_run_at <= now
                and reg.identity not in self._active
            ]

        launched: list[str] = []
        for reg in due:
            # Host check happens outside the lock, it may do I/O
            if not await self._admit(reg):
                continue

            async with self._lock:
                if (
                    self._jobs.get(reg.identity) is not reg
                    or reg.state is not JobState.ENQUEUED
                    or reg.identity in self._active
                ):
                    continue

                run_id = uuid.uuid4().hex
                reg.state = JobState.RUNNING
                reg.last_run_id = run_id
                reg.deferred = False
                if reg.handle is not None:
                    reg.handle.run_ids.append(run_id)
                reg.channel.publish(JobState.RUNNING)
                await self._persist(reg)

                task = asyncio.create_task(
                    self._execute(reg, run_id), name=f"content-sync-{reg.identity.value}"
                )
                self._active[reg.identity] = task
                task.add_done_callback(partial(self._on_task_done, reg.identity))

            self._stats["runs_started"] += 1
            launched.append(run_id)

        return launched

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until no run is executing."""
        while self._active:
            tasks = list(self._active.values())
            await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), timeout)

    async def _admit(self, reg: JobRegistration) -> bool:
        try:
            admitted = await self._host.constraints_satisfied(reg.constraints)
        except Exception as e:
            logger.exception(f"Admission check failed for {reg.identity.value} sync: {e}")
            admitted = False

        if not admitted:
            self._stats["admissions_deferred"] += 1
            if not reg.deferred:
                logger.info(
                    LogMessages.admission_deferred(reg.identity.value, reg.constraints.to_dict())
                )
            else:
                logger.debug(f"{reg.identity.value} sync still deferred")
            reg.deferred = True
        return admitted

    def _on_task_done(self, identity: JobIdentity, task: "asyncio.Task[None]") -> None:
        if self._active.get(identity) is task:
            del self._active[identity]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Sync run task for {identity.value} crashed",
                exc_info=task.exception(),
            )

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def _execute(self, reg: JobRegistration, run_id: str) -> None:
        set_correlation_id(run_id)
        await self._notify_running(run_id)
        outcome = await self._run_worker(reg, run_id)
        await self._finish_run(reg, run_id, outcome)

    async def _run_worker(self, reg: JobRegistration, run_id: str) -> SyncOutcome:
        # Hey future me - the worker never raises for collaborator errors, so
        # anything caught here is a timeout or a bug. Both count as total failure.
        try:
            return await asyncio.wait_for(
                self._worker.run_sync(reg.spec, run_id=run_id),
                timeout=self._execution_timeout,
            )
        except TimeoutError:
            logger.error(
                f"{reg.identity.value} sync run {run_id} exceeded "
                f"{self._execution_timeout:g}s and was aborted"
            )
            return SyncOutcome.maintenance_failed(
                f"Sync timed out after {self._execution_timeout:g}s"
            )
        except Exception as e:
            logger.exception(f"{reg.identity.value} sync run {run_id} crashed: {e}")
            return SyncOutcome.maintenance_failed(str(e) or type(e).__name__)

    async def _finish_run(self, reg: JobRegistration, run_id: str, outcome: SyncOutcome) -> None:
        failure_message: str | None = None
        retry_in: timedelta | None = None

        async with self._lock:
            superseded = self._jobs.get(reg.identity) is not reg
            now = self._now()
            reg.last_outcome = outcome
            self._stats["last_outcome"] = outcome.to_dict()

            if outcome.succeeded:
                self._stats["runs_succeeded"] += 1
                reg.retry.reset()
                if not superseded:
                    self._mark_succeeded(reg, outcome, now)
                    await self._persist(reg)
            else:
                self._stats["runs_failed"] += 1
                reg.retry.record_failure(outcome.error_message)
                retry_in = self._retry_policy.next_delay(reg.retry.attempt_count)
                if retry_in is None:
                    failure_message = RETRIES_EXHAUSTED_MESSAGE.format(
                        attempts=reg.retry.attempt_count
                    )
                else:
                    failure_message = outcome.error_message
                if not superseded:
                    self._mark_failed(reg, outcome, now, retry_in)
                    await self._persist(reg)

        if superseded:
            logger.info(
                f"{reg.identity.value} sync run {run_id} finished after its registration "
                f"was replaced or cancelled - result not applied to the job"
            )

        if outcome.succeeded:
            logger.info(
                LogMessages.sync_completed(
                    run_id=run_id,
                    identity=reg.identity.value,
                    charts=outcome.charts_updated,
                    playlists=outcome.playlists_updated,
                    new_releases=outcome.new_releases_updated,
                    refreshed=outcome.cache_refreshed,
                    evicted=outcome.cache_evicted,
                    failures=len(outcome.failures),
                )
            )
            await self._notify_completed(run_id, outcome)
        else:
            logger.warning(
                LogMessages.sync_failed(
                    run_id=run_id,
                    identity=reg.identity.value,
                    error=outcome.error_message or outcome.error.value,
                    attempt=reg.retry.attempt_count,
                    max_retries=self._retry_policy.max_retries,
                    retry_in=_format_delay(retry_in) if retry_in is not None else None,
                )
            )
            await self._notify_failed(run_id, failure_message)

        self._wake.set()

    def _mark_succeeded(self, reg: JobRegistration, outcome: SyncOutcome, now: datetime) -> None:
        reg.channel.publish(JobState.SUCCEEDED)
        if reg.identity is JobIdentity.PERIODIC:
            reg.state = JobState.ENQUEUED
            reg.period_due_at = self._next_period_due(reg, now)
            reg.next_run_at = reg.period_due_at - self._flex(reg.spec)
            reg.channel.publish(JobState.ENQUEUED)
        else:
            reg.state = JobState.SUCCEEDED
            if reg.handle is not None:
                reg.handle._finish(JobState.SUCCEEDED, outcome)

    def _mark_failed(
        self,
        reg: JobRegistration,
        outcome: SyncOutcome,
        now: datetime,
        retry_in: timedelta | None,
    ) -> None:
        if retry_in is not None:
            reg.state = JobState.ENQUEUED
            reg.next_run_at = now + retry_in
            reg.channel.publish(JobState.ENQUEUED)
            self._stats["retries_scheduled"] += 1
            return

        reg.state = JobState.FAILED
        reg.channel.publish(JobState.FAILED)
        self._stats["lineages_failed"] += 1
        if reg.handle is not None:
            reg.handle._finish(JobState.FAILED, outcome)

    # Notifications are fire-and-forget: a broken renderer never changes job state
    async def _notify_running(self, run_id: str) -> None:
        try:
            await self._notifier.on_running(run_id)
        except Exception as e:
            logger.exception(f"[NOTIFICATION] Failed to emit running state: {e}")

    async def _notify_completed(self, run_id: str, outcome: SyncOutcome) -> None:
        try:
            await self._notifier.on_completed(run_id, outcome)
        except Exception as e:
            logger.exception(f"[NOTIFICATION] Failed to emit completed state: {e}")

    async def _notify_failed(self, run_id: str, message: str | None) -> None:
        try:
            await self._notifier.on_failed(run_id, message)
        except Exception as e:
            logger.exception(f"[NOTIFICATION] Failed to emit failed state: {e}")

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _persist(self, reg: JobRegistration) -> None:
        """Write the registration through to the DB (no-op when memory-only).

        Hey future me - a DB hiccup must not wedge the scheduler. The in-memory
        table stays authoritative; we log and count the error.
        """
        if self._session_factory is None:
            return
        try:
            async with self._session_factory() as session:
                repo = SyncJobRepository(session)
                if reg.state is JobState.CANCELLED:
                    await repo.delete(reg.identity)
                else:
                    await repo.save(reg.to_record())
                await session.commit()
        except Exception as e:
            self._stats["persist_errors"] += 1
            logger.exception(f"Failed to persist {reg.identity.value} sync job: {e}")

    # =========================================================================
    # LOOP
    # =========================================================================

    async def start(self) -> None:
        """Start the dispatch loop as a background task."""
        if self._running:
            logger.warning("SyncScheduler already running")
            return

        self._running = True
        self._started_at = time.monotonic()
        self._task = asyncio.create_task(self._run_loop(), name="sync-scheduler")
        logger.info(
            LogMessages.worker_started(
                "SyncScheduler",
                interval=self._dispatch_interval,
                config={
                    "Timeout": f"{self._execution_timeout:g}s",
                    "Max Retries": self._retry_policy.max_retries,
                    "Persistence": "database" if self._session_factory else "memory",
                },
            )
        )

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop the loop and wait (bounded) for in-flight runs."""
        self._running = False
        self._wake.set()

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._active:
            try:
                await self.wait_idle(timeout)
            except TimeoutError:
                logger.warning(
                    f"SyncScheduler: {len(self._active)} sync run(s) still active after "
                    f"{timeout:g}s, cancelling"
                )
                for task in list(self._active.values()):
                    task.cancel()

        logger.info("SyncScheduler stopped")

    async def _run_loop(self) -> None:
        while self._running:
            self._wake.clear()
            try:
                await self.run_pending()
            except Exception as e:
                # Log but don't crash - next cycle tries again
                self._stats["loop_errors"] += 1
                logger.exception(LogMessages.worker_failed("SyncScheduler", str(e)))

            self._cycles += 1
            if self._cycles % HEALTH_LOG_EVERY_CYCLES == 0 and self._started_at is not None:
                log_worker_health(
                    logger,
                    "sync_scheduler",
                    cycles_completed=self._cycles,
                    errors_total=self._stats["loop_errors"],
                    uptime_seconds=time.monotonic() - self._started_at,
                )

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._sleep_interval())
            except TimeoutError:
                pass

    def _sleep_interval(self) -> float:
        """Seconds until the next registration falls due, capped at dispatch_interval.

        Registrations that are already due (deferred by admission) don't shorten
        the sleep, otherwise a deferred job would spin the loop.
        """
        now = self._now()
        waits = [
            (reg.next_run_at - now).total_seconds()
            for reg in self._jobs.values()
            if reg.state is JobState.ENQUEUED
        ]
        upcoming = [w for w in waits if w > 0]
        return min([self._dispatch_interval, *upcoming])

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _now(self) -> datetime:
        return ensure_utc_aware(self._clock())

    @staticmethod
    def _flex(spec: SyncJobSpec) -> timedelta:
        # A flex window wider than the period would overlap the previous one
        return min(spec.flex_window, spec.frequency)

    def _next_period_due(self, reg: JobRegistration, now: datetime) -> datetime:
        """Nominal due time of the first period whose flex window opens after now.

        Periods missed while the job was deferred or retrying are skipped, not
        caught up - at most one run per period.
        """
        frequency = reg.spec.frequency
        flex = self._flex(reg.spec)
        due = (reg.period_due_at or now) + frequency
        if due - flex <= now:
            missed = (now - (due - flex)) // frequency + 1
            due += frequency * missed
        return due

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics.

        Returns:
            Dictionary with run counters, registrations and worker stats
        """
        return {
            **self._stats,
            "running": self._running,
            "dispatch_interval": self._dispatch_interval,
            "execution_timeout": self._execution_timeout,
            "max_retries": self._retry_policy.max_retries,
            "active_runs": [identity.value for identity in self._active],
            "jobs": {identity.value: reg.to_dict() for identity, reg in self._jobs.items()},
            "worker": self._worker.get_stats(),
        }


# Hey future me - factory function for easy scheduler creation from app context
def create_sync_scheduler(
    settings: Settings,
    catalog: ICatalogFetcher,
    resolver: IStreamResolver,
    host: IHostPlatform,
    cache: StreamCacheStore | None = None,
    providers: list[INotificationProvider] | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> SyncScheduler:
    """Create a SyncScheduler with worker, notifier and retry policy from settings.

    Args:
        settings: Application settings
        catalog: Catalog section fetcher
        resolver: Stream URL resolver
        host: Host platform evaluating admission constraints
        cache: Stream cache (a new one is created if omitted)
        providers: Notification renderers
        session_factory: DB session factory; None runs memory-only
        clock: Returns current UTC time

    Returns:
        Configured SyncScheduler instance
    """
    if cache is None:
        cache = StreamCacheStore(clock=clock, default_ttl=settings.cache.default_ttl)
    worker = SyncWorkerCore(
        catalog=catalog,
        resolver=resolver,
        cache=cache,
        refresh_window=settings.cache.refresh_window,
    )
    return SyncScheduler(
        worker=worker,
        host=host,
        notifier=SyncNotifier(providers=providers, clock=clock),
        retry_policy=RetryPolicy.from_settings(settings.retry),
        session_factory=session_factory,
        clock=clock,
        min_frequency=settings.sync.min_frequency,
        dispatch_interval=settings.sync.dispatch_interval_seconds,
        execution_timeout=settings.sync.execution_timeout_seconds,
        default_spec=SyncJobSpec(
            frequency=settings.sync.default_frequency,
            wifi_only=settings.sync.wifi_only,
            flex_window=settings.sync.flex_window,
        ),
    )
