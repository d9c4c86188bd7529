"""Worker system - background content sync and job scheduling."""

from streamsync.application.workers.job_status import (
    JobHandle,
    JobStatusChannel,
    StatusSubscription,
)
from streamsync.application.workers.sync_scheduler import (
    JobRegistration,
    SyncScheduler,
    create_sync_scheduler,
)
from streamsync.application.workers.sync_worker import SyncWorkerCore

__all__ = [
    "JobHandle",
    "JobRegistration",
    "JobStatusChannel",
    "StatusSubscription",
    "SyncScheduler",
    "SyncWorkerCore",
    "create_sync_scheduler",
]
