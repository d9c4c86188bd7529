"""Unit tests for SyncScheduler.

Hey future me - these never call start()! They drive the scheduler with
run_pending() + wait_idle() and a FakeClock, so no test waits for the
dispatch interval. Collaborators:
- real SyncWorkerCore + StreamCacheStore
- AsyncMock catalog/resolver
- StaticHostPlatform for admission (flip unmetered/battery_low to defer)
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.application.services.retry_policy import RetryPolicy
from streamsync.application.services.sync_notifier import (
    DEFAULT_FAILURE_MESSAGE,
    NotifierState,
    SyncNotifier,
)
from streamsync.application.workers.sync_scheduler import (
    RETRIES_EXHAUSTED_MESSAGE,
    SyncScheduler,
    create_sync_scheduler,
)
from streamsync.application.workers.sync_worker import SyncWorkerCore
from streamsync.config import DatabaseSettings, Settings, SyncSettings
from streamsync.domain.entities import (
    AdmissionConstraints,
    JobIdentity,
    JobRecord,
    JobState,
    NetworkRequirement,
    SectionKind,
    SyncJobSpec,
    SyncOutcome,
)
from streamsync.domain.exceptions import ErrorKind
from streamsync.infrastructure.persistence import Database, SyncJobRepository
from streamsync.infrastructure.platform import StaticHostPlatform

START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> AsyncMock:
    catalog = AsyncMock()
    catalog.fetch_section = AsyncMock(return_value=2)
    return catalog


@pytest.fixture
def resolver() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def host() -> StaticHostPlatform:
    return StaticHostPlatform(connected=True, unmetered=True, battery_low=False)


@pytest.fixture
def notifier(clock: FakeClock) -> SyncNotifier:
    return SyncNotifier(clock=clock)


def _make_scheduler(
    clock: FakeClock,
    catalog: AsyncMock,
    resolver: AsyncMock,
    host: StaticHostPlatform,
    notifier: SyncNotifier,
    **kwargs,
) -> SyncScheduler:
    worker = SyncWorkerCore(catalog, resolver, StreamCacheStore(clock=clock))
    return SyncScheduler(worker=worker, host=host, notifier=notifier, clock=clock, **kwargs)


@pytest.fixture
def scheduler(
    clock: FakeClock,
    catalog: AsyncMock,
    resolver: AsyncMock,
    host: StaticHostPlatform,
    notifier: SyncNotifier,
) -> SyncScheduler:
    return _make_scheduler(clock, catalog, resolver, host, notifier)


async def _run_cycle(scheduler: SyncScheduler) -> list[str]:
    run_ids = await scheduler.run_pending()
    await scheduler.wait_idle(timeout=5)
    return run_ids


class TestScheduleSync:
    """Periodic registration."""

    async def test_schedule_registers_enqueued_job(self, scheduler: SyncScheduler) -> None:
        assert scheduler.is_sync_scheduled() is False
        assert scheduler.get_state() is JobState.NOT_SCHEDULED

        await scheduler.schedule_sync(SyncJobSpec())

        assert scheduler.is_sync_scheduled() is True
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.state is JobState.ENQUEUED
        # 60 min period, 15 min flex window
        assert reg.period_due_at == START + timedelta(minutes=60)
        # Admissible from the start of the flex window
        assert reg.next_run_at == START + timedelta(minutes=45)
        assert reg.constraints == AdmissionConstraints(
            network=NetworkRequirement.UNMETERED, battery_not_low=True
        )

    async def test_not_due_before_flex_window(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=44))
        assert await _run_cycle(scheduler) == []
        catalog.fetch_section.assert_not_awaited()

    async def test_frequency_below_floor_is_clamped(self, scheduler: SyncScheduler) -> None:
        await scheduler.schedule_sync(SyncJobSpec(frequency=timedelta(minutes=5)))
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.spec.frequency == timedelta(minutes=15)

    async def test_any_network_constraint(self, scheduler: SyncScheduler) -> None:
        await scheduler.schedule_sync(SyncJobSpec(wifi_only=False))
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.constraints.network is NetworkRequirement.CONNECTED

    async def test_reschedule_replaces_registration(self, scheduler: SyncScheduler) -> None:
        await scheduler.schedule_sync(SyncJobSpec(frequency=timedelta(hours=1)))
        first = scheduler.get_registration(JobIdentity.PERIODIC)
        await scheduler.schedule_sync(
            SyncJobSpec(frequency=timedelta(hours=2), sync_charts=False)
        )
        second = scheduler.get_registration(JobIdentity.PERIODIC)

        assert first is not None and second is not None
        assert second.registration_id != first.registration_id
        assert second.spec.frequency == timedelta(hours=2)
        assert second.spec.sync_charts is False
        assert len(scheduler.get_stats()["jobs"]) == 1

    async def test_reschedule_resets_retry_history(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        catalog.fetch_section = AsyncMock(side_effect=RuntimeError("down"))
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        await _run_cycle(scheduler)
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None and reg.retry.attempt_count == 1

        await scheduler.schedule_sync()
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None and reg.retry.attempt_count == 0


class TestCancelSync:
    """Cancelling the periodic job."""

    async def test_cancel(self, scheduler: SyncScheduler) -> None:
        await scheduler.schedule_sync()
        await scheduler.cancel_sync()

        assert scheduler.is_sync_scheduled() is False
        assert scheduler.get_state() is JobState.CANCELLED
        assert scheduler.get_registration(JobIdentity.PERIODIC) is None

    async def test_cancel_without_registration_is_noop(self, scheduler: SyncScheduler) -> None:
        await scheduler.cancel_sync()
        await scheduler.cancel_sync()
        assert scheduler.get_state() is JobState.NOT_SCHEDULED

    async def test_cancelled_job_never_runs(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        await scheduler.schedule_sync()
        await scheduler.cancel_sync()
        clock.advance(timedelta(hours=2))
        assert await _run_cycle(scheduler) == []
        catalog.fetch_section.assert_not_awaited()


class TestPeriodicRuns:
    """Execution and re-enqueue of the periodic lineage."""

    async def test_successful_run_reenqueues_for_next_period(
        self, scheduler: SyncScheduler, clock: FakeClock
    ) -> None:
        status = scheduler.get_sync_status()
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))

        run_ids = await _run_cycle(scheduler)

        assert len(run_ids) == 1
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.state is JobState.ENQUEUED
        # Next period counts from the nominal due time (START + 60m), not from now
        assert reg.period_due_at == START + timedelta(minutes=120)
        assert reg.next_run_at == START + timedelta(minutes=105)
        assert reg.last_outcome is not None and reg.last_outcome.charts_updated == 2
        assert status.pending() == [
            JobState.NOT_SCHEDULED,
            JobState.ENQUEUED,
            JobState.RUNNING,
            JobState.SUCCEEDED,
            JobState.ENQUEUED,
        ]
        status.close()

    async def test_notifier_sees_running_then_completed(
        self, scheduler: SyncScheduler, clock: FakeClock, notifier: SyncNotifier
    ) -> None:
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        await _run_cycle(scheduler)

        assert [s.state for s in notifier.history] == [
            NotifierState.RUNNING,
            NotifierState.COMPLETED,
        ]
        assert notifier.summary == "New content available! 2 charts, 2 playlists, 2 new releases"

    async def test_only_enabled_sections_run(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        await scheduler.schedule_sync(SyncJobSpec(sync_charts=False, sync_playlists=False))
        clock.advance(timedelta(minutes=45))
        await _run_cycle(scheduler)
        catalog.fetch_section.assert_awaited_once_with(SectionKind.NEW_RELEASES)

    async def test_minimum_frequency_does_not_rerun_immediately(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        # 15 min period with the default 15 min flex window opens right away
        await scheduler.schedule_sync(SyncJobSpec(frequency=timedelta(minutes=15)))
        assert len(await _run_cycle(scheduler)) == 1

        assert await _run_cycle(scheduler) == []
        assert await _run_cycle(scheduler) == []
        assert catalog.fetch_section.await_count == 3

        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.period_due_at == START + timedelta(minutes=30)
        assert reg.next_run_at == START + timedelta(minutes=15)

        clock.advance(timedelta(minutes=15))
        assert len(await _run_cycle(scheduler)) == 1

    async def test_one_run_per_period(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        await scheduler.schedule_sync()

        runs = 0
        for _ in range(36):
            clock.advance(timedelta(minutes=5))
            runs += len(await _run_cycle(scheduler))

        # 3 hours at 60 min: windows open at +45m, +105m, +165m
        assert runs == 3
        assert catalog.fetch_section.await_count == 9

    async def test_late_run_skips_missed_period(
        self, scheduler: SyncScheduler, clock: FakeClock, host: StaticHostPlatform
    ) -> None:
        host.update(unmetered=False)
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=110))
        assert await _run_cycle(scheduler) == []

        host.update(unmetered=True)
        assert len(await _run_cycle(scheduler)) == 1

        # The START+120m window already opened at +105m, so the next run waits for +180m
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.period_due_at == START + timedelta(minutes=180)
        assert reg.next_run_at == START + timedelta(minutes=165)
        assert await _run_cycle(scheduler) == []


class TestRetries:
    """Backoff and the FAILED terminal state."""

    async def test_three_failures_end_in_failed(
        self,
        scheduler: SyncScheduler,
        clock: FakeClock,
        catalog: AsyncMock,
        notifier: SyncNotifier,
    ) -> None:
        catalog.fetch_section = AsyncMock(side_effect=RuntimeError("no network"))
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))

        # 1st failure → retry in 60s
        await _run_cycle(scheduler)
        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.state is JobState.ENQUEUED
        assert reg.retry.attempt_count == 1
        assert reg.next_run_at == clock.now + timedelta(seconds=60)
        assert notifier.snapshot.message == "All 3 sync steps failed"

        # Not due yet
        clock.advance(timedelta(seconds=59))
        assert await _run_cycle(scheduler) == []

        # 2nd failure → retry in 120s
        clock.advance(timedelta(seconds=1))
        await _run_cycle(scheduler)
        assert reg.retry.attempt_count == 2
        assert reg.next_run_at == clock.now + timedelta(seconds=120)

        # 3rd failure → FAILED
        clock.advance(timedelta(seconds=120))
        await _run_cycle(scheduler)
        assert reg.retry.attempt_count == 3
        assert reg.state is JobState.FAILED
        assert scheduler.is_sync_scheduled() is False
        assert notifier.state is NotifierState.FAILED
        assert notifier.snapshot.message == RETRIES_EXHAUSTED_MESSAGE.format(attempts=3)

        # Terminal: never admitted again
        clock.advance(timedelta(days=1))
        assert await _run_cycle(scheduler) == []
        assert catalog.fetch_section.await_count == 9

        stats = scheduler.get_stats()
        assert stats["runs_failed"] == 3
        assert stats["retries_scheduled"] == 2
        assert stats["lineages_failed"] == 1

    async def test_failure_without_reason_uses_default_message(
        self, scheduler: SyncScheduler, notifier: SyncNotifier
    ) -> None:
        scheduler.worker.run_sync = AsyncMock(
            return_value=SyncOutcome(error=ErrorKind.MAINTENANCE_FAILED)
        )
        await scheduler.sync_now()
        await _run_cycle(scheduler)

        assert notifier.state is NotifierState.FAILED
        assert notifier.snapshot.message == DEFAULT_FAILURE_MESSAGE

    async def test_success_after_failure_resets_attempts(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        catalog.fetch_section = AsyncMock(side_effect=RuntimeError("flaky"))
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        await _run_cycle(scheduler)

        catalog.fetch_section = AsyncMock(return_value=1)
        clock.advance(timedelta(seconds=60))
        await _run_cycle(scheduler)

        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.retry.attempt_count == 0
        assert reg.state is JobState.ENQUEUED

    async def test_partial_failure_does_not_count_as_attempt(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        def fetch(kind: SectionKind) -> int:
            if kind is SectionKind.CHARTS:
                raise RuntimeError("charts down")
            return 1

        catalog.fetch_section = AsyncMock(side_effect=fetch)
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        await _run_cycle(scheduler)

        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.retry.attempt_count == 0

    async def test_timeout_counts_as_failure(
        self,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
        notifier: SyncNotifier,
    ) -> None:
        never = asyncio.Event()

        async def hang(kind: SectionKind) -> int:
            await never.wait()
            return 0

        catalog.fetch_section = AsyncMock(side_effect=hang)
        scheduler = _make_scheduler(
            clock, catalog, resolver, host, notifier, execution_timeout=0.05
        )
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        await _run_cycle(scheduler)

        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.retry.attempt_count == 1
        assert reg.retry.last_error == "Sync timed out after 0.05s"
        assert reg.state is JobState.ENQUEUED

    async def test_custom_retry_policy(
        self,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
        notifier: SyncNotifier,
    ) -> None:
        catalog.fetch_section = AsyncMock(side_effect=RuntimeError("down"))
        scheduler = _make_scheduler(
            clock, catalog, resolver, host, notifier, retry_policy=RetryPolicy(max_retries=1)
        )
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        await _run_cycle(scheduler)
        assert scheduler.get_state() is JobState.FAILED


class TestAdmission:
    """Constraint-based admission."""

    async def test_deferred_on_metered_network(
        self,
        scheduler: SyncScheduler,
        clock: FakeClock,
        host: StaticHostPlatform,
        catalog: AsyncMock,
    ) -> None:
        host.update(unmetered=False)
        await scheduler.schedule_sync(SyncJobSpec(wifi_only=True))
        clock.advance(timedelta(minutes=45))

        assert await _run_cycle(scheduler) == []
        assert await _run_cycle(scheduler) == []

        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.state is JobState.ENQUEUED
        assert reg.retry.attempt_count == 0
        assert reg.deferred is True
        assert scheduler.get_stats()["admissions_deferred"] == 2
        catalog.fetch_section.assert_not_awaited()

        host.update(unmetered=True)
        assert len(await _run_cycle(scheduler)) == 1
        assert reg.deferred is False

    async def test_deferred_on_low_battery(
        self, scheduler: SyncScheduler, clock: FakeClock, host: StaticHostPlatform
    ) -> None:
        host.update(battery_low=True)
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        assert await _run_cycle(scheduler) == []

    async def test_admission_error_defers(
        self, scheduler: SyncScheduler, clock: FakeClock, host: StaticHostPlatform
    ) -> None:
        host.constraints_satisfied = AsyncMock(side_effect=RuntimeError("platform api"))
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        assert await _run_cycle(scheduler) == []
        assert scheduler.get_state() is JobState.ENQUEUED


class TestSyncNow:
    """Manual one-shot runs."""

    async def test_sync_now_runs_on_metered_network(
        self, scheduler: SyncScheduler, host: StaticHostPlatform, catalog: AsyncMock
    ) -> None:
        host.update(unmetered=False, battery_low=True)

        handle = await scheduler.sync_now()
        assert handle.state is JobState.ENQUEUED
        await _run_cycle(scheduler)

        assert await handle.wait(timeout=1) is JobState.SUCCEEDED
        assert handle.outcome is not None
        assert handle.outcome.total_updated == 6
        assert len(handle.run_ids) == 1
        assert catalog.fetch_section.await_count == 3

    async def test_sync_now_wifi_only_is_deferred(
        self, scheduler: SyncScheduler, host: StaticHostPlatform
    ) -> None:
        host.update(unmetered=False)
        handle = await scheduler.sync_now(wifi_only=True)
        assert await _run_cycle(scheduler) == []
        assert handle.done is False

    async def test_sync_now_keeps_pending_run(self, scheduler: SyncScheduler) -> None:
        first = await scheduler.sync_now()
        second = await scheduler.sync_now()
        assert second is first

    async def test_sync_now_after_completion_starts_new_run(
        self, scheduler: SyncScheduler
    ) -> None:
        first = await scheduler.sync_now()
        await _run_cycle(scheduler)
        second = await scheduler.sync_now()
        assert second is not first
        assert second.registration_id != first.registration_id

    async def test_sync_now_fails_after_retries(
        self, scheduler: SyncScheduler, clock: FakeClock, catalog: AsyncMock
    ) -> None:
        catalog.fetch_section = AsyncMock(side_effect=RuntimeError("down"))
        handle = await scheduler.sync_now()
        for delay in (0, 60, 120):
            clock.advance(timedelta(seconds=delay))
            await _run_cycle(scheduler)

        assert await handle.wait(timeout=1) is JobState.FAILED
        assert len(handle.run_ids) == 3

    async def test_periodic_and_adhoc_run_concurrently(
        self, scheduler: SyncScheduler, clock: FakeClock
    ) -> None:
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        handle = await scheduler.sync_now()

        run_ids = await _run_cycle(scheduler)

        assert len(run_ids) == 2
        assert handle.state is JobState.SUCCEEDED
        assert scheduler.get_state(JobIdentity.PERIODIC) is JobState.ENQUEUED


class TestInFlightChanges:
    """Replacing or cancelling while a run executes."""

    @pytest.fixture
    def gate(self, catalog: AsyncMock) -> asyncio.Event:
        gate = asyncio.Event()

        async def fetch(kind: SectionKind) -> int:
            await gate.wait()
            return 1

        catalog.fetch_section = AsyncMock(side_effect=fetch)
        return gate

    async def test_cancel_does_not_abort_running_run(
        self,
        scheduler: SyncScheduler,
        clock: FakeClock,
        gate: asyncio.Event,
        notifier: SyncNotifier,
    ) -> None:
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        assert len(await scheduler.run_pending()) == 1
        assert scheduler.get_state() is JobState.RUNNING

        await scheduler.cancel_sync()
        gate.set()
        await scheduler.wait_idle(timeout=5)

        assert scheduler.is_sync_scheduled() is False
        assert scheduler.get_state() is JobState.CANCELLED
        assert notifier.state is NotifierState.COMPLETED

    async def test_replacement_waits_for_running_run(
        self, scheduler: SyncScheduler, clock: FakeClock, gate: asyncio.Event
    ) -> None:
        await scheduler.schedule_sync()
        clock.advance(timedelta(minutes=45))
        await scheduler.run_pending()

        await scheduler.schedule_sync(SyncJobSpec(frequency=timedelta(minutes=15)))
        new_reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert new_reg is not None
        # 15 min period with 15 min flex is due immediately, but the old run is still active
        assert await scheduler.run_pending() == []

        gate.set()
        await scheduler.wait_idle(timeout=5)

        # The old run's success did not touch the new registration
        assert scheduler.get_registration(JobIdentity.PERIODIC) is new_reg
        assert new_reg.last_outcome is None
        assert new_reg.state is JobState.ENQUEUED

        assert len(await _run_cycle(scheduler)) == 1


class TestNotificationIsolation:
    """Notifier errors never change job state."""

    async def test_broken_notifier(
        self,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
    ) -> None:
        broken = MagicMock(spec=SyncNotifier)
        broken.on_running = AsyncMock(side_effect=RuntimeError("boom"))
        broken.on_completed = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = _make_scheduler(clock, catalog, resolver, host, broken)

        handle = await scheduler.sync_now()
        await _run_cycle(scheduler)

        assert handle.state is JobState.SUCCEEDED
        broken.on_completed.assert_awaited_once()


class TestPersistence:
    """Write-through persistence and restore after restart."""

    @pytest.fixture
    async def db(self):
        database = Database(Settings(database=DatabaseSettings(url="sqlite+aiosqlite://")))
        await database.create_tables()
        yield database
        await database.close()

    async def _stored(self, db: Database, identity: JobIdentity) -> JobRecord | None:
        async with db.session_scope() as session:
            return await SyncJobRepository(session).get(identity)

    async def test_schedule_is_persisted(
        self,
        db: Database,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
        notifier: SyncNotifier,
    ) -> None:
        scheduler = _make_scheduler(
            clock, catalog, resolver, host, notifier, session_factory=db.session_factory
        )
        await scheduler.schedule_sync(SyncJobSpec(frequency=timedelta(minutes=30)))

        record = await self._stored(db, JobIdentity.PERIODIC)
        assert record is not None
        assert record.state is JobState.ENQUEUED
        assert record.spec.frequency == timedelta(minutes=30)

        await scheduler.cancel_sync()
        assert await self._stored(db, JobIdentity.PERIODIC) is None

    async def test_restore_after_restart(
        self,
        db: Database,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
        notifier: SyncNotifier,
    ) -> None:
        first = _make_scheduler(
            clock, catalog, resolver, host, notifier, session_factory=db.session_factory
        )
        await first.schedule_sync()
        registration_id = first.get_registration(JobIdentity.PERIODIC).registration_id

        second = _make_scheduler(
            clock, catalog, resolver, host, SyncNotifier(), session_factory=db.session_factory
        )
        assert await second.restore() == 1

        assert second.is_sync_scheduled() is True
        reg = second.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.registration_id == registration_id
        assert reg.period_due_at == START + timedelta(minutes=60)
        assert reg.next_run_at == START + timedelta(minutes=45)

    async def test_interrupted_run_is_reenqueued(
        self,
        db: Database,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
        notifier: SyncNotifier,
    ) -> None:
        async with db.session_scope() as session:
            await SyncJobRepository(session).save(
                JobRecord(
                    identity=JobIdentity.PERIODIC,
                    registration_id="reg-1",
                    state=JobState.RUNNING,
                    spec=SyncJobSpec(),
                    constraints=AdmissionConstraints.for_network(True),
                    next_run_at=START + timedelta(hours=1),
                    attempt_count=2,
                    last_error="earlier failure",
                )
            )

        scheduler = _make_scheduler(
            clock, catalog, resolver, host, notifier, session_factory=db.session_factory
        )
        await scheduler.restore()

        reg = scheduler.get_registration(JobIdentity.PERIODIC)
        assert reg is not None
        assert reg.state is JobState.ENQUEUED
        assert reg.retry.attempt_count == 2
        assert reg.next_run_at == START
        stored = await self._stored(db, JobIdentity.PERIODIC)
        assert stored is not None and stored.state is JobState.ENQUEUED

        assert len(await _run_cycle(scheduler)) == 1

    async def test_failed_job_is_not_readmitted_after_restore(
        self,
        db: Database,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
        notifier: SyncNotifier,
    ) -> None:
        async with db.session_scope() as session:
            await SyncJobRepository(session).save(
                JobRecord(
                    identity=JobIdentity.ADHOC,
                    registration_id="reg-2",
                    state=JobState.FAILED,
                    spec=SyncJobSpec(flex_window=timedelta(0)),
                    constraints=AdmissionConstraints.for_network(False, battery_not_low=False),
                    next_run_at=START,
                    attempt_count=3,
                )
            )

        scheduler = _make_scheduler(
            clock, catalog, resolver, host, notifier, session_factory=db.session_factory
        )
        await scheduler.restore()

        assert scheduler.get_state(JobIdentity.ADHOC) is JobState.FAILED
        assert await _run_cycle(scheduler) == []

    async def test_restore_without_database(self, scheduler: SyncScheduler) -> None:
        assert await scheduler.restore() == 0


class TestLoop:
    """start()/stop() of the dispatch loop."""

    async def test_loop_runs_due_job(
        self,
        clock: FakeClock,
        catalog: AsyncMock,
        resolver: AsyncMock,
        host: StaticHostPlatform,
        notifier: SyncNotifier,
    ) -> None:
        scheduler = _make_scheduler(
            clock, catalog, resolver, host, notifier, dispatch_interval=0.01
        )
        handle = await scheduler.sync_now()
        await scheduler.start()
        try:
            assert await handle.wait(timeout=5) is JobState.SUCCEEDED
            assert scheduler.get_stats()["running"] is True
        finally:
            await scheduler.stop()
        assert scheduler.get_stats()["running"] is False


def test_create_sync_scheduler_uses_settings(
    catalog: AsyncMock, resolver: AsyncMock, host: StaticHostPlatform
) -> None:
    settings = Settings()
    cache = StreamCacheStore()
    scheduler = create_sync_scheduler(settings, catalog, resolver, host, cache=cache)
    assert scheduler.cache is cache
    stats = scheduler.get_stats()
    assert stats["max_retries"] == 3
    assert stats["dispatch_interval"] == 30.0
    assert stats["execution_timeout"] == 600.0


async def test_create_sync_scheduler_default_spec_from_settings(
    clock: FakeClock, catalog: AsyncMock, resolver: AsyncMock, host: StaticHostPlatform
) -> None:
    settings = Settings(
        sync=SyncSettings(default_frequency_minutes=30, flex_minutes=5, wifi_only=False)
    )
    scheduler = create_sync_scheduler(settings, catalog, resolver, host, clock=clock)

    await scheduler.schedule_sync()

    reg = scheduler.get_registration(JobIdentity.PERIODIC)
    assert reg is not None
    assert reg.spec.frequency == timedelta(minutes=30)
    assert reg.spec.flex_window == timedelta(minutes=5)
    assert reg.constraints.network is NetworkRequirement.CONNECTED
    assert reg.next_run_at == START + timedelta(minutes=25)
