"""Sync job models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class SyncMode(str, Enum):
    """How a sync enumerates the paths it processes."""

    FULL_SCAN = "FULL_SCAN"
    INCREMENTAL = "INCREMENTAL"
    SPECIFIC_COMMIT = "SPECIFIC_COMMIT"


class SyncStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class SyncJob(BaseModel):
    """A background sync of one repository."""

    id: str
    repository_id: str
    status: SyncStatus = SyncStatus.PENDING
    mode: SyncMode = SyncMode.INCREMENTAL
    target_branch: str | None = None
    target_commit_sha: str | None = None
    last_synced_commit: str | None = None
    error_message: str | None = None
    total_documents: int = 0
    processed_documents: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (SyncStatus.SUCCEEDED, SyncStatus.FAILED)
