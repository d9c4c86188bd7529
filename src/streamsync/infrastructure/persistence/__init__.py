"""Infrastructure persistence layer."""

from .database import Database
from .models import Base, SyncJobModel
from .repositories import SyncJobRepository

__all__ = [
    "Base",
    "Database",
    "SyncJobModel",
    "SyncJobRepository",
]
