"""Default commit summaries derived from a repository status."""

from __future__ import annotations

from posixpath import basename

from .models import FileChange, RepositoryStatus

MAX_SUMMARY_LENGTH = 50
MAX_FILENAME_LENGTH = 30
ELLIPSIS = "..."

_VERBS = {
    "added": "Add",
    "modified": "Update",
    "deleted": "Remove",
    "renamed": "Rename",
}


def generate(status: RepositoryStatus) -> str:
    """Return a one-line summary (at most 50 characters) for the pending changes."""

    if not status.has_commits:
        return "Initial commit"

    changes = _unique(status.changes)
    if not changes:
        return "Update files"

    kinds = {change.change_type for change in changes}
    count = len(changes)
    verb = _VERBS[changes[0].change_type] if len(kinds) == 1 else "Update"

    if count == 1:
        return truncate(f"{verb} {_display_name(changes[0].path)}")
    if count <= 3 and len(kinds) == 1:
        names = [_display_name(change.path) for change in changes]
        summary = f"{verb} {', '.join(names)}"
        if len(summary) <= MAX_SUMMARY_LENGTH:
            return summary
    return truncate(f"{verb} {count} files")


def truncate(summary: str, limit: int = MAX_SUMMARY_LENGTH) -> str:
    if len(summary) <= limit:
        return summary
    cut = summary[: limit - len(ELLIPSIS)]
    last_space = cut.rfind(" ")
    # cut at a word boundary only if 70% of the line survives
    if last_space > limit * 0.7:
        cut = cut[:last_space]
    return cut.rstrip(" ,") + ELLIPSIS


def _display_name(path: str) -> str:
    name = basename(path.rstrip("/")) or path
    if len(name) > MAX_FILENAME_LENGTH:
        return name[: MAX_FILENAME_LENGTH - len(ELLIPSIS)] + ELLIPSIS
    return name


def _unique(changes: list[FileChange]) -> list[FileChange]:
    seen: set[str] = set()
    unique: list[FileChange] = []
    for change in changes:
        if change.path in seen:
            continue
        seen.add(change.path)
        unique.append(change)
    return unique
