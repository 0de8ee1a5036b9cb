"""Async, timeout-bounded execution of external commands."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from .errors import ProcessSpawnError, ProcessTimeoutError

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000
NETWORK_TIMEOUT_MS = 60_000


@dataclass(slots=True)
class ProcessResult:
    """Holds the outcome of a single invocation."""

    args: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class ProcessRunner:
    """Spawn a program with a discrete argument vector, never through a shell.

    On timeout the whole process group is killed so descendants (credential
    helpers, ssh) do not outlive the call.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(env) if env is not None else None

    async def run(
        self,
        executable: str | Path,
        args: Sequence[str],
        cwd: str | Path,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> ProcessResult:
        cmd = (str(executable), *args)
        env = None
        if self._env is not None:
            env = {**os.environ, **self._env}
        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                start_new_session=sys.platform != "win32",
            )
        except OSError as exc:
            raise ProcessSpawnError(f"Unable to launch {cmd[0]} in {cwd}: {exc}") from exc

        stdout = bytearray()
        stderr = bytearray()
        timed_out = False
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _drain(process.stdout, stdout),
                    _drain(process.stderr, stderr),
                    process.wait(),
                ),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            timed_out = True
            _kill_tree(process)
            await process.wait()

        result = ProcessResult(
            args=cmd,
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_ms=int((time.monotonic() - started) * 1000),
            timed_out=timed_out,
        )
        if timed_out:
            _LOGGER.warning("%s killed after %dms timeout", cmd[0], timeout_ms)
            raise ProcessTimeoutError(
                f"{' '.join(cmd[:2])} timed out after {timeout_ms}ms", result
            )
        return result


async def _drain(stream: asyncio.StreamReader | None, buffer: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        buffer.extend(chunk)


def _kill_tree(process: asyncio.subprocess.Process) -> None:
    try:
        if sys.platform == "win32":
            process.kill()
        else:
            os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
