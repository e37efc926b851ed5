"""Process execution and filesystem access as seen by the discovery core."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from contextlib import suppress
from dataclasses import dataclass
from shlex import quote
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ._compat import paths_same
from ._errors import ProcessFailedError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    stdout: str
    stderr: str
    exit_code: int | None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check(self, cmd: str = "") -> ExecutionResult:
        if not self.ok:
            raise ProcessFailedError(cmd, self.exit_code, self.stderr)
        return self


class LogCmd:
    def __init__(self, cmd: Sequence[str], env: Mapping[str, str] | None = None) -> None:
        self.cmd = cmd
        self.env = env

    def __repr__(self) -> str:
        cmd_repr = " ".join(quote(str(c)) for c in self.cmd)
        if self.env is not None:
            cmd_repr = f"{cmd_repr} env of {self.env!r}"
        return cmd_repr


@runtime_checkable
class ProcessRunner(Protocol):
    """Spawns programs and captures their output."""

    async def exec(
        self,
        file: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult: ...

    async def exec_observable(
        self,
        file: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> asyncio.subprocess.Process: ...

    async def shell_exec(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult: ...


class AsyncProcessRunner:
    """:class:`ProcessRunner` on top of :mod:`asyncio` subprocesses."""

    async def exec(
        self,
        file: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        cmd = [file, *args]
        LOGGER.debug("exec %r", LogCmd(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(env) if env is not None else None,
                cwd=cwd,
            )
        except OSError as os_error:
            return ExecutionResult("", os_error.strerror or str(os_error), os_error.errno)
        return await self._communicate(process, cmd, timeout)

    async def exec_observable(
        self,
        file: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> asyncio.subprocess.Process:
        cmd = [file, *args]
        LOGGER.debug("spawn %r", LogCmd(cmd))
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=dict(env) if env is not None else None,
            cwd=cwd,
        )

    async def shell_exec(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        LOGGER.debug("shell exec %s", command)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as os_error:
            return ExecutionResult("", os_error.strerror or str(os_error), os_error.errno)
        return await self._communicate(process, [command], timeout)

    @staticmethod
    async def _communicate(
        process: asyncio.subprocess.Process,
        cmd: Sequence[str],
        timeout: float | None,
    ) -> ExecutionResult:
        try:
            out, err = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            LOGGER.info("%r timed out after %ss", LogCmd(cmd), timeout)
            return ExecutionResult("", f"timed out after {timeout}s", None)
        return ExecutionResult(
            out.decode("utf-8", errors="replace"),
            err.decode("utf-8", errors="replace"),
            process.returncode,
        )


@runtime_checkable
class FileSystem(Protocol):
    def exists(self, path: str) -> bool: ...

    def is_file(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def read_text(self, path: str) -> str: ...

    def write_text(self, path: str, content: str) -> None: ...

    def read_json(self, path: str) -> Any: ...

    def write_json(self, path: str, content: Any) -> None: ...

    def list_dir(self, path: str) -> list[str]: ...

    def stat_times(self, path: str) -> tuple[float, float] | None: ...

    def create_temp_file(self, suffix: str) -> str: ...

    def create_dir(self, path: str) -> None: ...

    def delete_dir(self, path: str) -> None: ...

    def delete_file(self, path: str) -> None: ...

    def paths_same(self, left: str, right: str) -> bool: ...


class LocalFileSystem:
    """:class:`FileSystem` backed by the local disk."""

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_file(self, path: str) -> bool:
        return os.path.isfile(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def read_text(self, path: str) -> str:
        with open(path, encoding="utf-8") as file_handler:
            return file_handler.read()

    def write_text(self, path: str, content: str) -> None:
        with open(path, "w", encoding="utf-8") as file_handler:
            file_handler.write(content)

    def read_json(self, path: str) -> Any:
        return json.loads(self.read_text(path))

    def write_json(self, path: str, content: Any) -> None:
        self.write_text(path, json.dumps(content, indent=1))

    def list_dir(self, path: str) -> list[str]:
        """:returns: full paths of the directory entries, sorted by name"""
        return [os.path.join(path, name) for name in sorted(os.listdir(path))]

    def stat_times(self, path: str) -> tuple[float, float] | None:
        try:
            stat = os.stat(path)
        except OSError:
            return None
        return stat.st_ctime, stat.st_mtime

    def create_temp_file(self, suffix: str) -> str:
        handle, path = tempfile.mkstemp(suffix=suffix)
        os.close(handle)
        return path

    def create_dir(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def delete_dir(self, path: str) -> None:
        shutil.rmtree(path, ignore_errors=True)

    def delete_file(self, path: str) -> None:
        with suppress(FileNotFoundError):
            os.unlink(path)

    def paths_same(self, left: str, right: str) -> bool:
        return paths_same(left, right)


__all__ = [
    "AsyncProcessRunner",
    "ExecutionResult",
    "FileSystem",
    "LocalFileSystem",
    "LogCmd",
    "ProcessRunner",
]
