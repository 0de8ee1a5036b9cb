"""Per-repository periodic fetching with at most one fetch in flight per repository."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable

from .errors import MultiGitError, RepositoryNotFoundError, ValidationError
from .git_client import GitCommandService
from .models import (
    MAX_FETCH_INTERVAL_MS,
    MIN_FETCH_INTERVAL_MS,
    FetchOutcome,
    FetchResult,
    RemoteChangeEvent,
)
from .notifier import NotificationSink
from .process import NETWORK_TIMEOUT_MS
from .sanitize import sanitize
from .store import RepositoryStore

_LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SchedulerState(str, Enum):
    UNSCHEDULED = "unscheduled"
    IDLE = "idle"
    FETCHING = "fetching"


@dataclass
class ScheduledTask:
    repository_id: str
    interval_ms: int
    next_run: datetime
    handle: asyncio.Task[None] | None = field(default=None, repr=False)


def validate_interval(interval_ms: int) -> int:
    if not MIN_FETCH_INTERVAL_MS <= interval_ms <= MAX_FETCH_INTERVAL_MS:
        raise ValidationError(
            f"Fetch interval must be between {MIN_FETCH_INTERVAL_MS} and "
            f"{MAX_FETCH_INTERVAL_MS} ms, got {interval_ms}"
        )
    return interval_ms


class FetchScheduler:
    """Owns one timer per scheduled repository.

    Manual and timer-triggered fetches for the same repository share one
    exclusivity slot. ``fetch_all_now`` walks repositories one at a time.
    """

    def __init__(
        self,
        store: RepositoryStore,
        git: GitCommandService,
        notifier: NotificationSink | None = None,
        *,
        fetch_timeout_ms: int = NETWORK_TIMEOUT_MS,
        notifications_enabled: bool = True,
        error_notifications_enabled: bool = True,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._git = git
        self._notifier = notifier
        self._fetch_timeout_ms = fetch_timeout_ms
        self.notifications_enabled = notifications_enabled
        self.error_notifications_enabled = error_notifications_enabled
        self._sleep = sleep
        self._tasks: dict[str, ScheduledTask] = {}
        self._in_flight: dict[str, asyncio.Task[FetchResult]] = {}

    def start_all(self) -> None:
        repositories = self._store.enabled()
        _LOGGER.info("Scheduling automated fetch for %d repositories", len(repositories))
        for repo in repositories:
            try:
                self.schedule_repository(repo.id, repo.fetch_interval)
            except ValidationError as exc:
                _LOGGER.warning("Not scheduling %s: %s", repo.name, exc)

    def stop_all(self) -> None:
        _LOGGER.info(
            "Stopping %d timers (%d fetches still in flight)",
            len(self._tasks),
            len(self._in_flight),
        )
        for repository_id in list(self._tasks):
            self.unschedule_repository(repository_id)

    def schedule_repository(self, repository_id: str, interval_ms: int) -> ScheduledTask:
        validate_interval(interval_ms)
        self._store.get(repository_id)
        if repository_id in self._tasks:
            _LOGGER.debug("Re-scheduling %s with interval %dms", repository_id, interval_ms)
            self.unschedule_repository(repository_id)

        task = ScheduledTask(
            repository_id=repository_id,
            interval_ms=interval_ms,
            next_run=_utcnow() + timedelta(milliseconds=interval_ms),
        )
        task.handle = asyncio.get_running_loop().create_task(
            self._timer(task), name=f"fetch-timer:{repository_id}"
        )
        self._tasks[repository_id] = task
        _LOGGER.debug("Scheduled %s every %dms", repository_id, interval_ms)
        return task

    def unschedule_repository(self, repository_id: str) -> None:
        task = self._tasks.pop(repository_id, None)
        if task is None:
            return
        if task.handle is not None:
            task.handle.cancel()
        _LOGGER.debug("Unscheduled %s", repository_id)

    def scheduled_task(self, repository_id: str) -> ScheduledTask | None:
        return self._tasks.get(repository_id)

    def state(self, repository_id: str) -> SchedulerState:
        if repository_id not in self._tasks:
            return SchedulerState.UNSCHEDULED
        if repository_id in self._in_flight:
            return SchedulerState.FETCHING
        return SchedulerState.IDLE

    def is_fetching(self, repository_id: str) -> bool:
        return repository_id in self._in_flight

    async def fetch_repository_now(self, repository_id: str) -> FetchResult:
        self._store.get(repository_id)
        task = self._start_fetch(repository_id)
        if task is None:
            _LOGGER.debug("Fetch already in progress for %s", repository_id)
            return FetchResult(
                repository_id=repository_id,
                timestamp=_utcnow(),
                outcome=FetchOutcome.ALREADY_IN_PROGRESS,
            )
        return await task

    async def fetch_all_now(self) -> list[FetchResult]:
        repositories = self._store.enabled()
        started = time.monotonic()
        results: list[FetchResult] = []
        for repo in repositories:
            try:
                results.append(await self.fetch_repository_now(repo.id))
            except RepositoryNotFoundError as exc:
                # removed while the batch was running
                results.append(
                    FetchResult(
                        repository_id=repo.id,
                        timestamp=_utcnow(),
                        outcome=FetchOutcome.ERROR,
                        error=str(exc),
                        error_kind=type(exc).__name__,
                    )
                )
        succeeded = sum(1 for result in results if result.success)
        _LOGGER.info(
            "Batch fetch finished in %dms: %d/%d successful",
            int((time.monotonic() - started) * 1000),
            succeeded,
            len(repositories),
        )
        return results

    async def wait_idle(self) -> None:
        """Wait for every in-flight fetch to finish."""

        while self._in_flight:
            await asyncio.gather(*self._in_flight.values(), return_exceptions=True)

    def _start_fetch(self, repository_id: str) -> asyncio.Task[FetchResult] | None:
        # check-and-set must stay free of awaits to keep the slot exclusive
        if repository_id in self._in_flight:
            return None
        task = asyncio.get_running_loop().create_task(
            self._execute_fetch(repository_id), name=f"fetch:{repository_id}"
        )
        self._in_flight[repository_id] = task
        task.add_done_callback(lambda _: self._in_flight.pop(repository_id, None))
        return task

    async def _timer(self, task: ScheduledTask) -> None:
        while True:
            await self._sleep(task.interval_ms / 1000)
            task.next_run = _utcnow() + timedelta(milliseconds=task.interval_ms)
            if self._start_fetch(task.repository_id) is None:
                _LOGGER.debug(
                    "Skipping scheduled fetch for %s: previous fetch still running",
                    task.repository_id,
                )

    async def _execute_fetch(self, repository_id: str) -> FetchResult:
        try:
            repo = self._store.get(repository_id)
        except RepositoryNotFoundError as exc:
            return self._error_result(repository_id, exc)
        previous_ahead = repo.remote_commit_count or 0
        started = time.monotonic()
        _LOGGER.debug("Fetching %s (%s)", repo.name, repository_id)
        try:
            await self._git.fetch(repo.path, self._fetch_timeout_ms)
            remote = await self._git.remote_changes(repo.path)
            result = FetchResult(
                repository_id=repository_id,
                timestamp=_utcnow(),
                outcome=FetchOutcome.SUCCESS,
                remote_changes=remote.has_changes,
                remote_ahead=remote.behind,
                local_ahead=remote.ahead,
                branch=remote.branch,
                tracking_branch=remote.tracking_branch,
            )
        except MultiGitError as exc:
            _LOGGER.warning("Fetch failed for %s: %s", repo.name, sanitize(str(exc)))
            result = self._error_result(repository_id, exc)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.exception("Unexpected fetch failure for %s: %s", repo.name, exc)
            result = self._error_result(repository_id, exc)
        result.duration_ms = int((time.monotonic() - started) * 1000)

        try:
            self._store.record_fetch_result(result)
        except RepositoryNotFoundError:
            _LOGGER.info("Repository %s removed during fetch; result dropped", repository_id)
            return result
        except OSError as exc:
            _LOGGER.error("Could not persist fetch result for %s: %s", repo.name, exc)

        if result.success:
            _LOGGER.info(
                "Fetched %s in %dms (%s)",
                repo.name,
                result.duration_ms,
                f"{result.remote_ahead} commits behind" if result.remote_changes else "up to date",
            )
            if result.remote_ahead > previous_ahead:
                await self._notify_remote_changes(repo.id, repo.name, result.remote_ahead)
        else:
            await self._notify_error(repo.name, result.error or "fetch failed")
        return result

    @staticmethod
    def _error_result(repository_id: str, exc: Exception) -> FetchResult:
        return FetchResult(
            repository_id=repository_id,
            timestamp=_utcnow(),
            outcome=FetchOutcome.ERROR,
            error=sanitize(str(exc)) or type(exc).__name__,
            error_kind=type(exc).__name__,
        )

    async def _notify_remote_changes(self, repository_id: str, name: str, count: int) -> None:
        if self._notifier is None or not self.notifications_enabled:
            return
        event = RemoteChangeEvent(
            repository_id=repository_id, repository_name=name, remote_ahead=count
        )
        try:
            await self._notifier.notify_remote_changes(event)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Remote change notification failed for %s: %s", name, exc)

    async def _notify_error(self, name: str, error: str) -> None:
        if self._notifier is None or not self.error_notifications_enabled:
            return
        try:
            await self._notifier.notify_fetch_error(name, error)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Fetch error notification failed for %s: %s", name, exc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
