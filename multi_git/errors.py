from __future__ import annotations


class MultiGitError(RuntimeError):
    """Base class for every failure raised by multi_git."""


class ValidationError(MultiGitError):
    """Raised when an interval, path or message is rejected before any process spawn."""


class RepositoryNotFoundError(MultiGitError):
    def __init__(self, repository_id: str) -> None:
        super().__init__(f"Repository not found: {repository_id}")
        self.repository_id = repository_id


class DuplicateRepositoryError(MultiGitError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Repository already configured: {path}")
        self.path = path


class ProcessSpawnError(MultiGitError):
    """Raised when the executable cannot be launched (missing, not permitted)."""


class ProcessTimeoutError(MultiGitError):
    """Raised when a child process exceeded its timeout and was killed.

    ``result`` holds whatever stdout/stderr was captured before the kill.
    """

    def __init__(self, message: str, result=None) -> None:
        super().__init__(message)
        self.result = result


class VcsError(MultiGitError):
    """A git invocation exited non-zero.

    ``output`` is the raw combined stdout/stderr; the exception message is
    sanitized and safe to log or persist.
    """

    def __init__(self, message: str, output: str = "", exit_code: int | None = None) -> None:
        super().__init__(message)
        self.output = output
        self.exit_code = exit_code


class AuthenticationError(VcsError):
    pass


class NetworkError(VcsError):
    pass


class NoUpstreamError(VcsError):
    pass


class HookFailureError(VcsError):
    def __init__(
        self,
        message: str,
        output: str = "",
        exit_code: int | None = None,
        hook: str | None = None,
    ) -> None:
        super().__init__(message, output, exit_code)
        self.hook = hook


class NothingToCommitError(VcsError):
    """Commit had nothing to record. Callers treat this as a no-op, not a failure."""


class UnknownVcsError(VcsError):
    pass
