"""Introspect interpreters by running them, memoizing successful answers per path."""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from pathlib import Path
from random import choice
from string import ascii_lowercase, ascii_uppercase, digits
from typing import TYPE_CHECKING, Any

from ._externals import AsyncProcessRunner, LogCmd
from ._info import Architecture, EnvironmentInfo, EnvKind, InterpreterType, PythonVersion
from ._worker_pool import QueuePosition, WorkerPool

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._externals import ProcessRunner

LOGGER = logging.getLogger(__name__)

_COOKIE_LENGTH: int = 32
_INFO_SCRIPT = Path(os.path.abspath(__file__)).parent / "_interpreter_info.py"


class Priority(Enum):
    DEFAULT = "default"
    HIGH = "high"


def _gen_cookie() -> str:
    return "".join(choice(f"{ascii_lowercase}{ascii_uppercase}{digits}") for _ in range(_COOKIE_LENGTH))  # noqa: S311


def _strip_cookies(out: str, start_cookie: str, end_cookie: str) -> str:
    # cookies are written reversed so that echoing the command line can never produce a false match
    out_starts = out.find(start_cookie[::-1])
    if out_starts > -1:
        out = out[out_starts + _COOKIE_LENGTH :]
    out_ends = out.find(end_cookie[::-1])
    if out_ends > -1:
        out = out[:out_ends]
    return out


def parse_interpreter_info(interpreter_path: str, payload: str) -> EnvironmentInfo | None:
    """Turn the JSON printed by the introspection script into an :class:`EnvironmentInfo`, ``None`` if unusable."""
    try:
        data: dict[str, Any] = json.loads(payload)
        version_info = data["versionInfo"]
    except (ValueError, KeyError, TypeError):
        LOGGER.debug("could not parse interpreter info of %s from %r", interpreter_path, payload)
        return None
    if not version_info:
        return None
    return EnvironmentInfo(
        interpreter_path=interpreter_path,
        interpreter_type=InterpreterType.CPYTHON,
        environment_type=EnvKind.UNKNOWN,  # decided by the locators, not by the interpreter itself
        architecture=Architecture.X64 if data.get("is64Bit") else Architecture.X86,
        version=PythonVersion.from_version_info(version_info),
        sys_prefix=data.get("sysPrefix"),
    )


async def get_interpreter_info(
    interpreter_path: str,
    runner: ProcessRunner,
    env: Mapping[str, str] | None = None,
) -> EnvironmentInfo | None:
    start_cookie, end_cookie = _gen_cookie(), _gen_cookie()
    args = [str(_INFO_SCRIPT), start_cookie, end_cookie]
    # prevent sys.prefix from leaking into the child process - see https://bugs.python.org/issue22490
    child_env = dict(os.environ if env is None else env)
    child_env.pop("__PYVENV_LAUNCHER__", None)
    LOGGER.debug("get interpreter info via cmd: %r", LogCmd([interpreter_path, *args]))
    result = await runner.exec(interpreter_path, args, env=child_env)
    if not result.ok:
        err_str = f" err: {result.stderr!r}" if result.stderr else ""
        LOGGER.info("failed to query %s with code %s%s", interpreter_path, result.exit_code, err_str)
        return None
    return parse_interpreter_info(interpreter_path, _strip_cookies(result.stdout, start_cookie, end_cookie))


class EnvironmentInfoService:
    """Hand out interpreter metadata, running at most one probe per path at any time.

    Successful answers are kept for the lifetime of the service; failures are not remembered so a later call can
    succeed once the environment is usable.
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        num_workers: int = 2,
        worker_pool: WorkerPool[str, EnvironmentInfo] | None = None,
    ) -> None:
        self._runner = runner if runner is not None else AsyncProcessRunner()
        self._cache: dict[str, EnvironmentInfo] = {}
        self._pool = worker_pool or WorkerPool(self._probe, num_workers, name="environment-info")

    async def _probe(self, interpreter_path: str) -> EnvironmentInfo | None:
        return await get_interpreter_info(interpreter_path, self._runner)

    async def get_environment_info(
        self,
        interpreter_path: str,
        priority: Priority = Priority.DEFAULT,
    ) -> EnvironmentInfo | None:
        if (cached := self._cache.get(interpreter_path)) is not None:
            return cached
        position = QueuePosition.FRONT if priority is Priority.HIGH else QueuePosition.BACK
        result = await self._pool.add_to_queue(interpreter_path, position)
        if result is not None:
            self._cache[interpreter_path] = result
        return result

    def clear_cache(self) -> None:
        self._cache.clear()
        self._pool.forget()

    async def stop(self) -> None:
        await self._pool.stop()


__all__ = [
    "EnvironmentInfoService",
    "Priority",
    "get_interpreter_info",
    "parse_interpreter_info",
]
