"""Repository implementations for sync job registrations."""

import json
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from streamsync.domain.entities import (
    AdmissionConstraints,
    JobIdentity,
    JobRecord,
    JobState,
    SyncJobSpec,
    ensure_utc_aware,
    utc_now,
)
from streamsync.domain.exceptions import ValidationException
from streamsync.infrastructure.persistence.models import SyncJobModel

logger = logging.getLogger(__name__)


class SyncJobRepository:
    """Repository for sync job registrations.

    Hey future me - the repository never commits! Callers use
    Database.session_scope() (or the session factory + commit) so a
    registration change is one transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        self.session = session

    async def get(self, identity: JobIdentity) -> JobRecord | None:
        """Get the registration for one job identity.

        Args:
            identity: periodic or adhoc

        Returns:
            JobRecord or None if not registered
        """
        model = await self.session.get(SyncJobModel, identity.value)
        if model is None:
            return None
        return self._to_entity(model)

    async def list_all(self) -> list[JobRecord]:
        """Get all stored registrations, skipping rows that no longer parse."""
        result = await self.session.execute(select(SyncJobModel).order_by(SyncJobModel.identity))
        records: list[JobRecord] = []
        for model in result.scalars().all():
            try:
                records.append(self._to_entity(model))
            except (ValueError, KeyError, ValidationException) as e:
                logger.warning(f"Skipping unreadable sync job row '{model.identity}': {e}")
        return records

    async def save(self, record: JobRecord) -> None:
        """Insert or update (upsert) the registration for ``record.identity``."""
        if record.state is JobState.CANCELLED:
            raise ValidationException("Cancelled registrations are deleted, not saved")

        model = await self.session.get(SyncJobModel, record.identity.value)
        if model is None:
            model = SyncJobModel(identity=record.identity.value)
            self.session.add(model)

        model.registration_id = record.registration_id
        model.state = record.state.value
        model.spec = json.dumps(record.spec.to_dict())
        model.constraints = json.dumps(record.constraints.to_dict())
        model.attempt_count = record.attempt_count
        model.last_error = record.last_error
        model.next_run_at = record.next_run_at
        model.updated_at = utc_now()
        await self.session.flush()

    async def delete(self, identity: JobIdentity) -> bool:
        """Delete the registration for one identity.

        Returns:
            True if a row was deleted
        """
        result = await self.session.execute(
            delete(SyncJobModel).where(SyncJobModel.identity == identity.value)
        )
        return bool(result.rowcount)

    @staticmethod
    def _to_entity(model: SyncJobModel) -> JobRecord:
        return JobRecord(
            identity=JobIdentity(model.identity),
            registration_id=model.registration_id,
            state=JobState(model.state),
            spec=SyncJobSpec.from_dict(json.loads(model.spec)),
            constraints=AdmissionConstraints.from_dict(json.loads(model.constraints)),
            next_run_at=ensure_utc_aware(model.next_run_at),
            attempt_count=model.attempt_count,
            last_error=model.last_error,
            updated_at=ensure_utc_aware(model.updated_at) if model.updated_at else None,
        )
