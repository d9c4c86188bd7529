"""SQLAlchemy ORM models for StreamSync."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from streamsync.domain.entities import utc_now


class Base(DeclarativeBase):
    """Base class for all ORM models.

    All models inherit from this to use the same metadata registry.
    """

    pass


# Hey future me - ONE row per job identity ("periodic", "adhoc"), that's the
# uniqueness invariant enforced by the primary key itself. registration_id changes
# on every schedule_sync()/sync_now() so a run that finishes after being replaced
# can tell its registration is gone. Cancelled registrations are DELETED, never
# stored, so a restart can't bring them back.
class SyncJobModel(Base):
    """Persistent registration of a sync job."""

    __tablename__ = "sync_jobs"

    identity: Mapped[str] = mapped_column(String(20), primary_key=True)
    registration_id: Mapped[str] = mapped_column(String(36), nullable=False)
    # enqueued, running, succeeded, failed
    state: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    # SyncJobSpec.to_dict() as JSON
    spec: Mapped[str] = mapped_column(Text, nullable=False)
    # AdmissionConstraints.to_dict() as JSON
    constraints: Mapped[str] = mapped_column(Text, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_run_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        return (
            f"SyncJobModel(identity={self.identity!r}, state={self.state!r}, "
            f"attempt_count={self.attempt_count})"
        )
