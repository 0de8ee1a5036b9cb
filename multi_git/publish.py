"""Stage, commit and push as one user-initiated publish.

Each step can fail on its own. The outcome records the phase that failed and
whether the commit already landed locally, which stays true once set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from .errors import HookFailureError, MultiGitError, NothingToCommitError, ValidationError
from .git_client import GitCommandService
from .process import NETWORK_TIMEOUT_MS
from .sanitize import sanitize
from .store import RepositoryStore

_LOGGER = logging.getLogger(__name__)


class CommitPhase(str, Enum):
    PREPARING = "preparing"
    STAGING = "staging"
    COMMITTING = "committing"
    PUSHING = "pushing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[CommitPhase, frozenset[CommitPhase]] = {
    CommitPhase.PREPARING: frozenset({CommitPhase.STAGING}),
    CommitPhase.STAGING: frozenset({CommitPhase.COMMITTING, CommitPhase.FAILED}),
    CommitPhase.COMMITTING: frozenset({CommitPhase.PUSHING, CommitPhase.FAILED}),
    CommitPhase.PUSHING: frozenset({CommitPhase.SUCCEEDED, CommitPhase.FAILED}),
    CommitPhase.SUCCEEDED: frozenset(),
    CommitPhase.FAILED: frozenset(),
}


@dataclass
class CommitOperation:
    repository_id: str
    message: str
    phase: CommitPhase = CommitPhase.PREPARING
    failed_phase: CommitPhase | None = None
    reason: str | None = None
    error: str | None = None
    hook_output: str | None = None
    commit_id: str | None = None
    committed_locally: bool = False

    @property
    def succeeded(self) -> bool:
        return self.phase is CommitPhase.SUCCEEDED

    @property
    def nothing_to_commit(self) -> bool:
        return self.reason == NothingToCommitError.__name__

    def advance(self, phase: CommitPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"Invalid commit phase transition {self.phase.value} -> {phase.value}")
        self.phase = phase

    def mark_committed(self, commit_id: str | None) -> None:
        self.committed_locally = True
        self.commit_id = commit_id

    def fail(self, exc: Exception) -> None:
        self.failed_phase = self.phase
        self.reason = type(exc).__name__
        self.error = str(exc)
        if isinstance(exc, HookFailureError):
            self.hook_output = exc.output
        self.advance(CommitPhase.FAILED)


class CommitPushOrchestrator:
    def __init__(
        self,
        store: RepositoryStore,
        git: GitCommandService,
        *,
        push_timeout_ms: int = NETWORK_TIMEOUT_MS,
    ) -> None:
        self._store = store
        self._git = git
        self._push_timeout_ms = push_timeout_ms
        self._locks: dict[str, asyncio.Lock] = {}

    async def commit_and_push(self, repository_id: str, message: str) -> CommitOperation:
        """Run the publish and report how far it got.

        Raises only for caller errors (unknown repository, empty message);
        git failures are reported on the returned operation.
        """

        repo = self._store.get(repository_id)
        if not message or not message.strip():
            raise ValidationError("Commit message must not be empty")

        operation = CommitOperation(repository_id=repository_id, message=message.strip())
        lock = self._locks.setdefault(repository_id, asyncio.Lock())
        async with lock:
            await self._run(operation, repo.path)

        if operation.succeeded:
            _LOGGER.info("Committed and pushed %s (%s)", repo.name, operation.commit_id or "unknown")
        elif operation.nothing_to_commit:
            _LOGGER.info("Nothing to commit in %s", repo.name)
        else:
            _LOGGER.warning(
                "Publish of %s failed while %s (%s, committed_locally=%s): %s",
                repo.name,
                operation.failed_phase.value if operation.failed_phase else "unknown",
                operation.reason,
                operation.committed_locally,
                sanitize(operation.error),
            )
        return operation

    async def _run(self, operation: CommitOperation, path: str) -> None:
        operation.advance(CommitPhase.STAGING)
        try:
            await self._git.stage_all(path)
        except MultiGitError as exc:
            operation.fail(exc)
            return

        operation.advance(CommitPhase.COMMITTING)
        try:
            commit_id = await self._git.commit(path, operation.message)
        except MultiGitError as exc:
            operation.fail(exc)
            return
        operation.mark_committed(commit_id)

        operation.advance(CommitPhase.PUSHING)
        try:
            await self._git.push(path, self._push_timeout_ms)
        except MultiGitError as exc:
            operation.fail(exc)
            return
        operation.advance(CommitPhase.SUCCEEDED)
