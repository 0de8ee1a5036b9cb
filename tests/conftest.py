from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from multi_git.models import (
    FileChange,
    RemoteChangeEvent,
    RemoteChangeStatus,
    RepositoryConfig,
    RepositoryStatus,
)
from multi_git.store import RepositoryStore


class FakeGit:
    """Stands in for GitCommandService; records calls and replays configured failures."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fetch_errors: dict[str, Exception] = {}
        self.behind: dict[str, int] = {}
        self.gate: asyncio.Event | None = None
        self.active = 0
        self.max_active = 0
        self.stage_error: Exception | None = None
        self.commit_error: Exception | None = None
        self.push_error: Exception | None = None
        self.status_changes: list[FileChange] = [FileChange(path="a.py", change_type="modified")]

    @property
    def fetch_calls(self) -> list[str]:
        return [path for name, path in self.calls if name == "fetch"]

    async def git_version(self) -> str | None:
        return "git version 2.43.0"

    async def is_repository(self, path) -> bool:
        return True

    async def repository_root(self, path) -> Path:
        return Path(path)

    async def fetch(self, path, timeout_ms: int = 60_000) -> None:
        self.calls.append(("fetch", str(path)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            error = self.fetch_errors.get(str(path))
            if error is not None:
                raise error
        finally:
            self.active -= 1

    async def remote_changes(self, path) -> RemoteChangeStatus:
        return RemoteChangeStatus(
            branch="main", tracking_branch="origin/main", behind=self.behind.get(str(path), 0)
        )

    async def get_status(self, path, repository: RepositoryConfig | None = None) -> RepositoryStatus:
        return RepositoryStatus(
            repository_id=repository.id if repository else str(path),
            repository_name=repository.name if repository else Path(path).name,
            repository_path=str(path),
            branch="main",
            unstaged=list(self.status_changes),
        )

    async def stage_all(self, path) -> None:
        self.calls.append(("stage", str(path)))
        if self.stage_error is not None:
            raise self.stage_error

    async def commit(self, path, message: str) -> str | None:
        self.calls.append(("commit", str(path)))
        if self.commit_error is not None:
            raise self.commit_error
        return "abc1234"

    async def push(self, path, timeout_ms: int = 60_000) -> None:
        self.calls.append(("push", str(path)))
        if self.push_error is not None:
            raise self.push_error


class RecordingNotifier:
    def __init__(self) -> None:
        self.remote_events: list[RemoteChangeEvent] = []
        self.errors: list[tuple[str, str]] = []

    async def notify_remote_changes(self, event: RemoteChangeEvent) -> None:
        self.remote_events.append(event)

    async def notify_fetch_error(self, repository_name: str, error: str) -> None:
        self.errors.append((repository_name, error))


def add_repo(store: RepositoryStore, name: str, **fields) -> RepositoryConfig:
    return store.add(RepositoryConfig(path=f"/repos/{name}", name=name, **fields))


@pytest.fixture
def store(tmp_path: Path) -> RepositoryStore:
    return RepositoryStore(tmp_path / "repositories.yaml")


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
