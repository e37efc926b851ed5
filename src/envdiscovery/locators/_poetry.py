"""Identify and locate environments managed by poetry."""

from __future__ import annotations

import logging
import os
import re
from typing import TYPE_CHECKING

from platformdirs import user_cache_path

from envdiscovery._compat import is_parent_path
from envdiscovery._info import EnvKind

from ._base import FSWatchingLocator, normalize_roots
from ._common import (
    build_record,
    find_interpreters_in_dir,
    get_environment_dir_from_path,
    looks_like_basic_virtual_python,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from envdiscovery._externals import FileSystem, ProcessRunner
    from envdiscovery._info import DiscoveryOptions, PartialRecord
    from envdiscovery._settings import DiscoverySettings

LOGGER = logging.getLogger(__name__)

# <sanitized_project_name>-<project_cwd_hash>-py<major>.<minor>; the name and hash rules are poetry internals
GLOBAL_POETRY_ENV_DIR_RE = re.compile(r"^(.+)-(.+)-py(\d).(\d){1,2}$")


def get_poetry_virtualenvs_dir(env: Mapping[str, str]) -> str:
    if custom := env.get("POETRY_VIRTUALENVS_PATH"):
        return os.path.expanduser(custom)
    if cache_dir := env.get("POETRY_CACHE_DIR"):
        return os.path.join(os.path.expanduser(cache_dir), "virtualenvs")
    return str(user_cache_path("pypoetry", appauthor=False) / "virtualenvs")


async def is_global_poetry_environment(interpreter_path: str, fs: FileSystem) -> bool:
    from ._virtualenv import is_virtualenv_environment  # noqa: PLC0415

    env_dir = get_environment_dir_from_path(interpreter_path)
    if not GLOBAL_POETRY_ENV_DIR_RE.match(os.path.basename(env_dir)):
        return False
    return await is_virtualenv_environment(interpreter_path, fs)


async def is_poetry_environment_related_to_folder(
    interpreter_path: str,
    folder: str,
    runner: ProcessRunner,
    poetry_path: str = "poetry",
    timeout: float = 15.0,
) -> bool:
    """Ask poetry which environment belongs to *folder* and check that the interpreter lives inside it."""
    result = await runner.shell_exec(f"{poetry_path} env info -p", cwd=folder, timeout=timeout)
    if not result.ok:
        # expected whenever the folder is not a poetry project
        return False
    return is_parent_path(interpreter_path, result.stdout.strip())


async def is_local_poetry_environment(
    interpreter_path: str,
    fs: FileSystem,
    runner: ProcessRunner,
    poetry_path: str = "poetry",
    timeout: float = 15.0,
) -> bool:
    # virtualenvs.in-project always names the folder .venv, next to the project's pyproject.toml
    env_dir = get_environment_dir_from_path(interpreter_path)
    if os.path.basename(env_dir) != ".venv":
        return False
    project = os.path.dirname(env_dir)
    if not fs.is_file(os.path.join(project, "pyproject.toml")):
        return False
    return await is_poetry_environment_related_to_folder(interpreter_path, project, runner, poetry_path, timeout)


async def is_poetry_environment(
    interpreter_path: str,
    fs: FileSystem,
    runner: ProcessRunner,
    poetry_path: str = "poetry",
    timeout: float = 15.0,
) -> bool:
    if await is_global_poetry_environment(interpreter_path, fs):
        return True
    return await is_local_poetry_environment(interpreter_path, fs, runner, poetry_path, timeout)


class PoetryLocator(FSWatchingLocator):
    """Poetry environments created inside a workspace (``<workspace>/.venv``)."""

    source = "workspace-venv"

    def __init__(
        self,
        runner: ProcessRunner,
        settings: DiscoverySettings,
        fs: FileSystem,
        workspace: str | None = None,
    ) -> None:
        self._runner = runner
        self._settings = settings
        self._workspace = workspace
        super().__init__(
            self._watched_roots,
            self._get_kind,
            fs=fs,
            delay_on_created=settings.delay_on_created,
            poll_interval=settings.poll_interval,
        )

    async def _watched_roots(self) -> list[str]:
        if self._workspace is None:
            return []
        return normalize_roots([self._workspace], self._fs)

    async def _get_kind(self, interpreter_path: str) -> EnvKind:
        settings = self._settings.for_scope(self._workspace)
        if await is_poetry_environment(
            interpreter_path, self._fs, self._runner, settings.poetry_path, settings.shell_timeout
        ):
            return EnvKind.POETRY
        return EnvKind.UNKNOWN

    async def iter_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        workspace = scope or self._workspace
        if workspace is None:
            return
        env_dirs = normalize_roots([os.path.join(workspace, ".venv")], self._fs)
        settings = self._settings.for_scope(workspace)
        for env_dir in env_dirs:
            LOGGER.debug("searching for poetry virtual envs in: %s", env_dir)
            for executable in find_interpreters_in_dir(env_dir, self._fs):
                if not looks_like_basic_virtual_python(executable):
                    LOGGER.debug("poetry virtual environment: [skipped] %s", executable)
                    continue
                if await is_local_poetry_environment(
                    executable, self._fs, self._runner, settings.poetry_path, settings.shell_timeout
                ):
                    LOGGER.debug("poetry virtual environment: [added] %s", executable)
                    yield build_record(executable, EnvKind.POETRY, self.source, self._fs)


__all__ = [
    "GLOBAL_POETRY_ENV_DIR_RE",
    "PoetryLocator",
    "get_poetry_virtualenvs_dir",
    "is_global_poetry_environment",
    "is_local_poetry_environment",
    "is_poetry_environment",
    "is_poetry_environment_related_to_folder",
]
