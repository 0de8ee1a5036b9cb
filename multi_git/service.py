from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from .config import Options, load_options
from .errors import RepositoryNotFoundError, ValidationError
from .git_client import GitCommandService
from .models import FetchResult, FetchStatus, RepositoryConfig, RepositoryStatus
from .notifier import NotificationSink, Notifier
from .publish import CommitOperation, CommitPushOrchestrator
from .scheduler import FetchScheduler, validate_interval
from .store import RepositoryStore
from .suggestion import generate

_LOGGER = logging.getLogger(__name__)


class MultiGitService:
    """Wires the git service, store, scheduler and orchestrator together.

    The embedding process owns one instance and calls :meth:`start` and
    :meth:`shutdown` around its lifetime.
    """

    def __init__(
        self,
        options: Options | None = None,
        *,
        git: GitCommandService | None = None,
        store: RepositoryStore | None = None,
        notifier: NotificationSink | None = None,
    ) -> None:
        self.options = options or load_options()
        self.git = git or GitCommandService(
            git_executable=self.options.git_executable,
            command_timeout_ms=self.options.command_timeout_ms,
        )
        self.store = store or RepositoryStore(
            self.options.repositories_file, self.options.default_fetch_interval_ms
        )
        self.notifier = notifier if notifier is not None else Notifier(self.options)
        self.scheduler = FetchScheduler(
            self.store,
            self.git,
            self.notifier,
            fetch_timeout_ms=self.options.fetch_timeout_ms,
            notifications_enabled=self.options.notify_on_remote_changes,
            error_notifications_enabled=self.options.notify_on_fetch_errors,
        )
        self.publisher = CommitPushOrchestrator(
            self.store, self.git, push_timeout_ms=self.options.push_timeout_ms
        )
        self._stop = asyncio.Event()
        self._startup_fetch: asyncio.Task[list[FetchResult]] | None = None

    async def start(self) -> None:
        self.scheduler.start_all()
        if self.options.fetch_on_startup and self.store.enabled():
            self._startup_fetch = asyncio.get_running_loop().create_task(
                self.scheduler.fetch_all_now(), name="startup-fetch"
            )

    async def run(self) -> None:
        await self.start()
        await self._stop.wait()

    async def shutdown(self) -> None:
        self.scheduler.stop_all()
        if self._startup_fetch is not None:
            await asyncio.gather(self._startup_fetch, return_exceptions=True)
        await self.scheduler.wait_idle()
        if isinstance(self.notifier, Notifier):
            await self.notifier.aclose()
        self._stop.set()

    async def add_repository(self, path: str, name: str | None = None) -> RepositoryConfig:
        candidate = Path(path.strip()) if path else Path()
        if not path or not candidate.is_absolute():
            raise ValidationError(f"Path must be absolute: {path}")
        if not candidate.is_dir():
            raise ValidationError(f"Directory does not exist: {path}")
        if not await self.git.is_repository(candidate):
            raise ValidationError(f"Path is not a git repository: {path}")

        root = await self.git.repository_root(candidate)
        config = RepositoryConfig(
            path=str(root),
            name=(name or "").strip() or root.name or str(root),
            fetch_interval=self.options.default_fetch_interval_ms,
        )
        config = self.store.add(config)
        self.scheduler.schedule_repository(config.id, config.fetch_interval)
        return config

    def remove_repository(self, repository_id: str) -> None:
        self.scheduler.unschedule_repository(repository_id)
        if not self.store.remove(repository_id):
            raise RepositoryNotFoundError(repository_id)

    def set_enabled(self, repository_id: str, enabled: bool) -> RepositoryConfig:
        config = self.store.set_enabled(repository_id, enabled)
        if enabled:
            self.scheduler.schedule_repository(config.id, config.fetch_interval)
        else:
            self.scheduler.unschedule_repository(config.id)
        return config

    def update_fetch_interval(self, repository_id: str, interval_ms: int) -> RepositoryConfig:
        validate_interval(interval_ms)
        config = self.store.update_fetch_interval(repository_id, interval_ms)
        if config.enabled:
            self.scheduler.schedule_repository(config.id, interval_ms)
        return config

    def repositories(self) -> list[RepositoryConfig]:
        views = []
        for repo in self.store.list():
            if self.scheduler.is_fetching(repo.id):
                repo.last_fetch_status = FetchStatus.FETCHING
            views.append(repo)
        return views

    async def repository_status(self, repository_id: str) -> RepositoryStatus:
        repo = self.store.get(repository_id)
        return await self.git.get_status(repo.path, repo)

    async def suggest_commit_message(self, repository_id: str) -> str:
        return generate(await self.repository_status(repository_id))

    async def fetch_now(self, repository_id: str) -> FetchResult:
        return await self.scheduler.fetch_repository_now(repository_id)

    async def fetch_all(self) -> list[FetchResult]:
        return await self.scheduler.fetch_all_now()

    async def commit_and_push(self, repository_id: str, message: str) -> CommitOperation:
        return await self.publisher.commit_and_push(repository_id, message)

    def public_config(self) -> dict[str, Any]:
        data = self.options.model_dump(mode="json")
        data.pop("event_token", None)
        data.pop("mqtt_password", None)
        if data.get("event_url"):
            data["event_url"] = "***redacted***"
        return data
