from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from .errors import (
    AuthenticationError,
    HookFailureError,
    NetworkError,
    NoUpstreamError,
    NothingToCommitError,
    ProcessSpawnError,
    UnknownVcsError,
    ValidationError,
    VcsError,
)
from .models import RemoteChangeStatus, RepositoryConfig, RepositoryStatus
from .process import DEFAULT_TIMEOUT_MS, NETWORK_TIMEOUT_MS, ProcessResult, ProcessRunner
from .sanitize import sanitize
from .status import parse_branch, parse_porcelain

_LOGGER = logging.getLogger(__name__)

GIT_ENVIRONMENT = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_OPTIONAL_LOCKS": "0",
    "LC_ALL": "C",
}

_AUTH_PATTERNS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "permission denied (publickey",
    "terminal prompts disabled",
    "invalid username or password",
    "access denied",
    "the requested url returned error: 401",
    "the requested url returned error: 403",
    "permission to",
)
_NETWORK_PATTERNS = (
    "could not resolve host",
    "could not resolve hostname",
    "temporary failure in name resolution",
    "name or service not known",
    "failed to connect",
    "connection refused",
    "network is unreachable",
    "no route to host",
    "connection timed out",
    "operation timed out",
    "unable to access",
)
_NO_UPSTREAM_PATTERNS = (
    "has no upstream branch",
    "no upstream branch",
    "no upstream configured",
    "--set-upstream ",
    "--set-upstream-to",
)
_NOTHING_TO_COMMIT_PATTERNS = (
    "nothing to commit",
    "nothing added to commit",
    "no changes added to commit",
)
_HOOK_PATH = re.compile(
    r"hooks[/\\](pre-commit|prepare-commit-msg|commit-msg|post-commit|pre-push|pre-receive|update)"
)
_HOOK_DECLINED = re.compile(r"(pre-receive|update|pre-push|pre-commit) hook declined")
_COMMIT_ID = re.compile(r"^\[(?:.+?) (?:\(root-commit\) )?([0-9a-f]{4,40})\]", re.MULTILINE)


def classify_failure(result: ProcessResult, operation: str) -> VcsError:
    """Map a failed invocation onto the VCS error taxonomy.

    Patterns are evaluated in a fixed order; the first match wins.
    """

    raw = result.output
    text = raw.lower()
    detail = sanitize(raw) or f"exit code {result.exit_code}"
    message = f"git {operation} failed: {detail}"

    if any(pattern in text for pattern in _AUTH_PATTERNS):
        return AuthenticationError(message, raw, result.exit_code)
    if any(pattern in text for pattern in _NETWORK_PATTERNS):
        return NetworkError(message, raw, result.exit_code)
    if any(pattern in text for pattern in _NO_UPSTREAM_PATTERNS):
        return NoUpstreamError(message, raw, result.exit_code)
    hook = _HOOK_PATH.search(raw) or _HOOK_DECLINED.search(raw)
    if hook is not None:
        return HookFailureError(message, raw, result.exit_code, hook=hook.group(1))
    if any(pattern in text for pattern in _NOTHING_TO_COMMIT_PATTERNS):
        return NothingToCommitError(f"git {operation}: nothing to commit", raw, result.exit_code)
    return UnknownVcsError(message, raw, result.exit_code)


class GitCommandService:
    """Repository-level git operations on top of :class:`ProcessRunner`."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        *,
        git_executable: str = "git",
        command_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self._runner = runner or ProcessRunner(GIT_ENVIRONMENT)
        self._git = git_executable
        self._timeout_ms = command_timeout_ms

    async def git_version(self) -> str | None:
        try:
            result = await self._runner.run(self._git, ["--version"], Path.cwd(), self._timeout_ms)
        except (ProcessSpawnError, OSError) as exc:
            _LOGGER.warning("git executable unavailable: %s", exc)
            return None
        return result.stdout.strip() if result.ok else None

    async def is_repository(self, path: str | Path) -> bool:
        if not Path(path).is_dir():
            return False
        result = await self._run(path, ["rev-parse", "--git-dir"])
        if result.ok:
            return True
        if "not a git repository" in result.output.lower():
            return False
        raise classify_failure(result, "rev-parse")

    async def repository_root(self, path: str | Path) -> Path:
        result = await self._run(path, ["rev-parse", "--show-toplevel"])
        if not result.ok:
            raise classify_failure(result, "rev-parse")
        return Path(result.stdout.strip())

    async def current_branch(self, path: str | Path) -> str | None:
        result = await self._run(path, ["branch", "--show-current"])
        if not result.ok:
            raise classify_failure(result, "branch")
        return parse_branch(result.stdout)

    async def has_commits(self, path: str | Path) -> bool:
        result = await self._run(path, ["rev-parse", "--verify", "--quiet", "HEAD"])
        return result.ok

    async def tracking_branch(self, path: str | Path) -> str | None:
        result = await self._run(
            path, ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"]
        )
        if not result.ok:
            # no upstream configured, or HEAD is detached / unborn
            return None
        return result.stdout.strip() or None

    async def count_commits(self, path: str | Path, revision_range: str) -> int:
        result = await self._run(path, ["rev-list", "--count", revision_range])
        if not result.ok:
            raise classify_failure(result, "rev-list")
        try:
            return int(result.stdout.strip() or 0)
        except ValueError as exc:
            raise UnknownVcsError(
                f"Unexpected rev-list output: {sanitize(result.stdout)}", result.output
            ) from exc

    async def remote_changes(self, path: str | Path) -> RemoteChangeStatus:
        branch = await self.current_branch(path)
        if branch is None:
            return RemoteChangeStatus()
        tracking = await self.tracking_branch(path)
        if tracking is None:
            return RemoteChangeStatus(branch=branch)
        ahead = await self.count_commits(path, "@{u}..HEAD")
        behind = await self.count_commits(path, "HEAD..@{u}")
        return RemoteChangeStatus(
            branch=branch, tracking_branch=tracking, ahead=ahead, behind=behind
        )

    async def get_status(
        self, path: str | Path, repository: RepositoryConfig | None = None
    ) -> RepositoryStatus:
        result = await self._run(path, ["status", "--porcelain=v1"])
        if not result.ok:
            raise classify_failure(result, "status")
        parsed = parse_porcelain(result.stdout)
        has_commits = await self.has_commits(path)
        remote = await self.remote_changes(path) if has_commits else RemoteChangeStatus()
        branch = remote.branch if has_commits else await self.current_branch(path)

        status = RepositoryStatus(
            repository_id=repository.id if repository else str(path),
            repository_name=repository.name if repository else Path(path).name,
            repository_path=str(path),
            branch=branch,
            staged=parsed.staged,
            unstaged=parsed.unstaged,
            untracked=parsed.untracked,
            unpushed_commits=remote.ahead,
            remote_ahead=remote.behind,
            has_commits=has_commits,
        )
        if repository is not None:
            status.last_fetch_status = repository.last_fetch_status
            status.last_fetch_time = repository.last_fetch_time
        return status

    async def stage_all(self, path: str | Path) -> None:
        result = await self._run(path, ["add", "-A"])
        if not result.ok:
            raise classify_failure(result, "add")

    async def commit(self, path: str | Path, message: str) -> str | None:
        if not message or not message.strip():
            raise ValidationError("Commit message must not be empty")
        result = await self._run(path, ["commit", "-m", message])
        if not result.ok:
            raise classify_failure(result, "commit")
        match = _COMMIT_ID.search(result.stdout)
        return match.group(1) if match else None

    async def push(self, path: str | Path, timeout_ms: int = NETWORK_TIMEOUT_MS) -> None:
        result = await self._run(path, ["push"], timeout_ms)
        if not result.ok:
            raise classify_failure(result, "push")

    async def fetch(self, path: str | Path, timeout_ms: int = NETWORK_TIMEOUT_MS) -> None:
        result = await self._run(path, ["fetch", "--all", "--tags", "--prune"], timeout_ms)
        if not result.ok:
            raise classify_failure(result, "fetch")

    async def _run(
        self, path: str | Path, args: Sequence[str], timeout_ms: int | None = None
    ) -> ProcessResult:
        timeout = timeout_ms or self._timeout_ms
        _LOGGER.debug("git %s in %s", sanitize(" ".join(args)), path)
        result = await self._runner.run(self._git, args, path, timeout)
        if result.ok:
            _LOGGER.debug("git %s completed in %dms", args[0], result.duration_ms)
        else:
            _LOGGER.debug(
                "git %s exited %s after %dms: %s",
                args[0],
                result.exit_code,
                result.duration_ms,
                sanitize(result.output),
            )
        return result
