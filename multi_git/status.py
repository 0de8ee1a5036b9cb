"""Parsing of ``git status --porcelain=v1`` output into categorized changes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .models import FileChange

_INDEX_KINDS = {
    "A": "added",
    "C": "added",
    "M": "modified",
    "T": "modified",
    "D": "deleted",
    "R": "renamed",
}
_WORKTREE_KINDS = {
    "A": "added",
    "C": "added",
    "M": "modified",
    "T": "modified",
    "D": "deleted",
    "R": "renamed",
}
_CONFLICT_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}
_ESCAPE = re.compile(rb"\\([0-7]{3}|.)")
_SIMPLE_ESCAPES = {
    b"\\": b"\\",
    b'"': b'"',
    b"t": b"\t",
    b"n": b"\n",
}


@dataclass(slots=True)
class ParsedStatus:
    staged: list[FileChange] = field(default_factory=list)
    unstaged: list[FileChange] = field(default_factory=list)
    untracked: list[FileChange] = field(default_factory=list)


def parse_porcelain(output: str) -> ParsedStatus:
    """Split porcelain v1 lines into disjoint staged, unstaged and untracked lists.

    A path with both index and work-tree changes (``MM``) is reported once,
    under staged. Merge conflicts are reported as unstaged modifications.
    Ignored entries (``!!``) are dropped.
    """

    parsed = ParsedStatus()
    seen: set[str] = set()
    for line in output.splitlines():
        if len(line) < 4 or line[2] != " ":
            continue
        code, raw_path = line[:2], line[3:]
        if code == "!!":
            continue

        previous_path: str | None = None
        if " -> " in raw_path and ("R" in code or "C" in code):
            old, new = _split_rename(raw_path)
            previous_path, path = _unquote(old), _unquote(new)
        else:
            path = _unquote(raw_path)
        if path in seen:
            continue
        seen.add(path)

        index, worktree = code[0], code[1]
        if code == "??":
            parsed.untracked.append(FileChange(path=path, change_type="added"))
        elif code in _CONFLICT_CODES:
            parsed.unstaged.append(FileChange(path=path, change_type="modified"))
        elif index in _INDEX_KINDS:
            kind = _INDEX_KINDS[index]
            if kind != "renamed":
                previous_path = None
            parsed.staged.append(
                FileChange(path=path, change_type=kind, previous_path=previous_path)
            )
        elif worktree in _WORKTREE_KINDS:
            kind = _WORKTREE_KINDS[worktree]
            if kind != "renamed":
                previous_path = None
            parsed.unstaged.append(
                FileChange(path=path, change_type=kind, previous_path=previous_path)
            )
    return parsed


def parse_branch(output: str) -> str | None:
    branch = output.strip()
    return branch or None


def _split_rename(raw: str) -> tuple[str, str]:
    if raw.startswith('"'):
        # "old name" -> "new name"; the separator sits after the closing quote
        end = _closing_quote(raw)
        if end != -1 and raw[end + 1 : end + 5] == " -> ":
            return raw[: end + 1], raw[end + 5 :]
    old, _, new = raw.partition(" -> ")
    return old, new


def _closing_quote(raw: str) -> int:
    index = 1
    while index < len(raw):
        char = raw[index]
        if char == "\\":
            index += 2
            continue
        if char == '"':
            return index
        index += 1
    return -1


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of paths with special or non-ASCII bytes."""

    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path
    body = _ESCAPE.sub(_replace_escape, path[1:-1].encode("utf-8"))
    return body.decode("utf-8", errors="replace")


def _replace_escape(match: re.Match[bytes]) -> bytes:
    token = match.group(1)
    if len(token) == 3:
        return bytes([int(token, 8)])
    return _SIMPLE_ESCAPES.get(token, token)
