"""Domain ports (interfaces) for dependency inversion.

Hey future me - everything the sync core talks to but does NOT own lives
behind these interfaces: the catalog backend, the stream URL resolver, the
host platform that evaluates admission constraints, and notification renderers.
Tests replace all of them with AsyncMock / tiny fakes.
"""

from abc import ABC, abstractmethod

from streamsync.domain.entities import AdmissionConstraints, ResolvedStream, SectionKind

# Notification system interfaces
from streamsync.domain.ports.notification import (
    SYNC_NOTIFICATION_KEY,
    INotificationProvider,
    Notification,
    NotificationPriority,
    NotificationResult,
    NotificationType,
)


class ICatalogFetcher(ABC):
    """Port for refreshing one catalog section (charts, playlists, new releases)."""

    @abstractmethod
    async def fetch_section(self, kind: SectionKind) -> int:
        """Re-fetch a catalog section.

        Args:
            kind: Section to refresh

        Returns:
            Number of items updated

        Raises:
            SectionFetchFailed: If the section could not be fetched. Any other
                exception is treated the same way by the worker.
        """
        pass


class IStreamResolver(ABC):
    """Port for resolving a playable stream URL for a content id."""

    @abstractmethod
    async def resolve(self, content_id: str) -> ResolvedStream:
        """Resolve a fresh playable URL.

        Args:
            content_id: Content to resolve

        Returns:
            ResolvedStream with url and (optional) expiry

        Raises:
            ResolutionFailed: If no playable URL could be obtained.
        """
        pass


class IHostPlatform(ABC):
    """Port for the host that evaluates admission constraints.

    Hey future me - the scheduler NEVER looks at network or battery itself!
    It attaches AdmissionConstraints to a registration and asks the host
    right before each run. False means "not now" (AdmissionDeferred), which is
    not a failure and never touches the retry counter.
    """

    @abstractmethod
    async def constraints_satisfied(self, constraints: AdmissionConstraints) -> bool:
        """Check whether the job may run right now.

        Args:
            constraints: Constraints attached to the job registration

        Returns:
            True if the host admits the run
        """
        pass


__all__ = [
    "SYNC_NOTIFICATION_KEY",
    "ICatalogFetcher",
    "IHostPlatform",
    "INotificationProvider",
    "IStreamResolver",
    "Notification",
    "NotificationPriority",
    "NotificationResult",
    "NotificationType",
]
