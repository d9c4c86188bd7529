"""Sync notifier - turns job lifecycle into one user-visible notification.

Hey future me - this is a tiny state machine with exactly three visible states
for the MOST RECENT run:

    RUNNING   "Syncing content..." (ongoing, indeterminate progress)
    COMPLETED "New content available!" + "3 charts, 2 playlists"
    FAILED    "Sync failed" + message (default: "Failed to update content. Will retry later.")
              low priority and auto-cancelled, a retry is usually already queued

Plus IDLE, which is what you get before the first run AND after a run that
completed with zero updates: the running indicator is cleared and nothing is
shown. No "nothing changed" spam every hour!

Rules:
- every run emits exactly one on_running() and then exactly one terminal
  (on_completed or on_failed). A second terminal for the same run raises
  InvalidStateException - the scheduler guarantees it never happens.
- every transition is fanned out to all providers (log, webhook, ...) in
  parallel. Provider failures are logged and swallowed (fire-and-forget).
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from streamsync.domain.entities import SyncOutcome, utc_now
from streamsync.domain.exceptions import InvalidStateException
from streamsync.domain.ports.notification import (
    SYNC_NOTIFICATION_KEY,
    INotificationProvider,
    Notification,
    NotificationPriority,
    NotificationResult,
    NotificationType,
)

logger = logging.getLogger(__name__)

RUNNING_TITLE = "Syncing content..."
RUNNING_MESSAGE = "Updating charts, playlists, and new releases"
COMPLETED_TITLE = "New content available!"
FAILED_TITLE = "Sync failed"
DEFAULT_FAILURE_MESSAGE = "Failed to update content. Will retry later."


class NotifierState(str, Enum):
    """Observable notifier states."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class NotifierSnapshot:
    """What the UI should currently render."""

    state: NotifierState
    run_id: str | None = None
    title: str | None = None
    message: str | None = None
    charts_updated: int = 0
    playlists_updated: int = 0
    new_releases_updated: int = 0
    ongoing: bool = False
    indeterminate: bool = False
    updated_at: datetime | None = None

    @property
    def summary(self) -> str | None:
        """Single-line human-readable summary."""
        if self.title is None:
            return None
        if not self.message:
            return self.title
        return f"{self.title} {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "run_id": self.run_id,
            "title": self.title,
            "message": self.message,
            "summary": self.summary,
            "charts_updated": self.charts_updated,
            "playlists_updated": self.playlists_updated,
            "new_releases_updated": self.new_releases_updated,
            "ongoing": self.ongoing,
            "indeterminate": self.indeterminate,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def format_completed_message(charts: int, playlists: int, new_releases: int) -> str:
    """Build "3 charts, 2 playlists, 5 new releases", skipping zero counts."""
    parts = []
    if charts > 0:
        parts.append(f"{charts} charts")
    if playlists > 0:
        parts.append(f"{playlists} playlists")
    if new_releases > 0:
        parts.append(f"{new_releases} new releases")
    return ", ".join(parts)


@dataclass
class _RunRecord:
    started_at: datetime
    terminal: NotifierState | None = None


class SyncNotifier:
    """Notification state machine for sync runs."""

    def __init__(
        self,
        providers: list[INotificationProvider] | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_tracked_runs: int = 50,
    ) -> None:
        """Initialize the notifier.

        Args:
            providers: Renderers that receive every transition
            clock: Returns current UTC time (injected for tests)
            max_tracked_runs: How many finished runs to remember for duplicate detection
        """
        self._providers = list(providers or [])
        self._clock = clock
        self._max_tracked_runs = max_tracked_runs
        self._snapshot = NotifierSnapshot(state=NotifierState.IDLE)
        self._runs: dict[str, _RunRecord] = {}
        self._history: deque[NotifierSnapshot] = deque(maxlen=100)

    @property
    def state(self) -> NotifierState:
        return self._snapshot.state

    @property
    def snapshot(self) -> NotifierSnapshot:
        return self._snapshot

    @property
    def summary(self) -> str | None:
        return self._snapshot.summary

    @property
    def history(self) -> list[NotifierSnapshot]:
        """Recent snapshots (most recent last, capped at 100)."""
        return list(self._history)

    def add_provider(self, provider: INotificationProvider) -> None:
        self._providers.append(provider)

    async def on_running(self, run_id: str) -> list[NotificationResult]:
        """A run started."""
        if run_id in self._runs:
            raise InvalidStateException(f"Run {run_id} already reported as running")
        self._runs[run_id] = _RunRecord(started_at=self._clock())
        self._prune()

        snapshot = NotifierSnapshot(
            state=NotifierState.RUNNING,
            run_id=run_id,
            title=RUNNING_TITLE,
            message=RUNNING_MESSAGE,
            ongoing=True,
            indeterminate=True,
            updated_at=self._clock(),
        )
        notification = Notification(
            type=NotificationType.SYNC_RUNNING,
            title=RUNNING_TITLE,
            message=RUNNING_MESSAGE,
            priority=NotificationPriority.LOW,
            data={"run_id": run_id},
            ongoing=True,
            indeterminate=True,
            auto_cancel=False,
        )
        return await self._emit(snapshot, notification)

    async def on_completed(self, run_id: str, outcome: SyncOutcome) -> list[NotificationResult]:
        """A run finished without error. Zero updates clears the notification."""
        self._mark_terminal(run_id, NotifierState.COMPLETED)
        charts = outcome.charts_updated
        playlists = outcome.playlists_updated
        new_releases = outcome.new_releases_updated

        if charts + playlists + new_releases == 0:
            logger.debug(f"[NOTIFICATION] Run {run_id} changed nothing - clearing notification")
            snapshot = NotifierSnapshot(
                state=NotifierState.IDLE, run_id=run_id, updated_at=self._clock()
            )
            notification = Notification(
                type=NotificationType.SYNC_CLEARED,
                title="",
                message="",
                priority=NotificationPriority.LOW,
                data={"run_id": run_id},
            )
            return await self._emit(snapshot, notification)

        message = format_completed_message(charts, playlists, new_releases)
        snapshot = NotifierSnapshot(
            state=NotifierState.COMPLETED,
            run_id=run_id,
            title=COMPLETED_TITLE,
            message=message,
            charts_updated=charts,
            playlists_updated=playlists,
            new_releases_updated=new_releases,
            updated_at=self._clock(),
        )
        notification = Notification(
            type=NotificationType.SYNC_COMPLETED,
            title=COMPLETED_TITLE,
            message=message,
            priority=NotificationPriority.NORMAL,
            data={
                "run_id": run_id,
                "charts_updated": charts,
                "playlists_updated": playlists,
                "new_releases_updated": new_releases,
            },
            auto_cancel=True,
        )
        return await self._emit(snapshot, notification)

    async def on_failed(self, run_id: str, message: str | None = None) -> list[NotificationResult]:
        """A run failed. ``message`` falls back to the default text."""
        self._mark_terminal(run_id, NotifierState.FAILED)
        text = message or DEFAULT_FAILURE_MESSAGE
        snapshot = NotifierSnapshot(
            state=NotifierState.FAILED,
            run_id=run_id,
            title=FAILED_TITLE,
            message=text,
            updated_at=self._clock(),
        )
        notification = Notification(
            type=NotificationType.SYNC_FAILED,
            title=FAILED_TITLE,
            message=text,
            priority=NotificationPriority.LOW,
            data={"run_id": run_id},
            auto_cancel=True,
        )
        return await self._emit(snapshot, notification)

    def _mark_terminal(self, run_id: str, terminal: NotifierState) -> None:
        record = self._runs.get(run_id)
        if record is None:
            raise InvalidStateException(f"Run {run_id} was never reported as running")
        if record.terminal is not None:
            raise InvalidStateException(
                f"Run {run_id} already finished as {record.terminal.value}"
            )
        record.terminal = terminal

    def _prune(self) -> None:
        # Only forget FINISHED runs; an in-flight run must keep its record
        finished = [rid for rid, rec in self._runs.items() if rec.terminal is not None]
        overflow = len(self._runs) - self._max_tracked_runs
        for run_id in finished[: max(overflow, 0)]:
            del self._runs[run_id]

    async def _emit(
        self, snapshot: NotifierSnapshot, notification: Notification
    ) -> list[NotificationResult]:
        self._snapshot = snapshot
        self._history.append(snapshot)
        notification.key = SYNC_NOTIFICATION_KEY
        logger.info(
            f"[NOTIFICATION] {snapshot.state.value}: {snapshot.summary or '(cleared)'}"
        )
        return await self._send_to_providers(notification)

    async def _send_to_providers(self, notification: Notification) -> list[NotificationResult]:
        """Send notification to all providers in parallel.

        One slow provider won't block others.
        """
        targets = [p for p in self._providers if p.supports(notification.type)]
        if not targets:
            return []

        results = await asyncio.gather(
            *(self._send_to_provider(p, notification) for p in targets),
            return_exceptions=True,
        )

        final_results: list[NotificationResult] = []
        for provider, result in zip(targets, results, strict=True):
            if isinstance(result, NotificationResult):
                final_results.append(result)
            elif isinstance(result, Exception):
                final_results.append(
                    NotificationResult(
                        success=False,
                        provider_name=provider.name,
                        notification_type=notification.type,
                        error=str(result),
                    )
                )
        return final_results

    async def _send_to_provider(
        self, provider: INotificationProvider, notification: Notification
    ) -> NotificationResult:
        """Send to a single provider with error handling."""
        try:
            if not await provider.is_configured():
                return NotificationResult(
                    success=False,
                    provider_name=provider.name,
                    notification_type=notification.type,
                    error="Provider not configured",
                )
            return await provider.send(notification)
        except Exception as e:
            logger.error(f"[NOTIFICATION] Provider {provider.name} error: {e}")
            return NotificationResult(
                success=False,
                provider_name=provider.name,
                notification_type=notification.type,
                error=str(e),
            )


__all__ = [
    "DEFAULT_FAILURE_MESSAGE",
    "NotifierSnapshot",
    "NotifierState",
    "SyncNotifier",
    "format_completed_message",
]
