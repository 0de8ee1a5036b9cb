from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, PositiveInt

MIN_FETCH_INTERVAL_MS = 60_000
MAX_FETCH_INTERVAL_MS = 3_600_000
DEFAULT_FETCH_INTERVAL_MS = 300_000

ChangeKind = Literal["added", "modified", "deleted", "renamed"]


class FetchStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    ERROR = "error"


class RepositoryConfig(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    path: str
    name: str
    enabled: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    fetch_interval: PositiveInt = DEFAULT_FETCH_INTERVAL_MS
    last_fetch_time: datetime | None = None
    last_fetch_status: FetchStatus = FetchStatus.IDLE
    last_fetch_error: str | None = None
    remote_changes: bool = False
    remote_commit_count: int | None = None


class FileChange(BaseModel):
    path: str
    change_type: ChangeKind
    previous_path: str | None = None


class RepositoryStatus(BaseModel):
    """Snapshot of a working tree. A path appears in at most one of the three lists."""

    repository_id: str
    repository_name: str
    repository_path: str
    branch: str | None = None
    staged: list[FileChange] = Field(default_factory=list)
    unstaged: list[FileChange] = Field(default_factory=list)
    untracked: list[FileChange] = Field(default_factory=list)
    unpushed_commits: int = 0
    remote_ahead: int = 0
    has_commits: bool = True
    last_fetch_status: FetchStatus = FetchStatus.IDLE
    last_fetch_time: datetime | None = None

    @property
    def changes(self) -> list[FileChange]:
        return [*self.staged, *self.unstaged, *self.untracked]

    @property
    def has_uncommitted_changes(self) -> bool:
        return bool(self.staged or self.unstaged or self.untracked)


class RemoteChangeStatus(BaseModel):
    branch: str | None = None
    tracking_branch: str | None = None
    ahead: int = 0
    behind: int = 0

    @property
    def has_changes(self) -> bool:
        return self.behind > 0


class FetchOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    ALREADY_IN_PROGRESS = "already_in_progress"


class FetchResult(BaseModel):
    repository_id: str
    timestamp: datetime
    outcome: FetchOutcome
    error: str | None = None
    error_kind: str | None = None
    remote_changes: bool = False
    remote_ahead: int = 0
    local_ahead: int = 0
    branch: str | None = None
    tracking_branch: str | None = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.outcome is FetchOutcome.SUCCESS


class RemoteChangeEvent(BaseModel):
    repository_id: str
    repository_name: str
    remote_ahead: int
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
