"""Identify and locate environments created by pipenv."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from envdiscovery._compat import paths_same
from envdiscovery._info import EnvKind

from ._base import FSWatchingLocator, normalize_roots
from ._common import (
    build_record,
    find_interpreters_in_dir,
    get_environment_dir_from_path,
    home_dir,
    looks_like_basic_virtual_python,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from envdiscovery._externals import FileSystem, ProcessRunner
    from envdiscovery._info import DiscoveryOptions, PartialRecord
    from envdiscovery._settings import DiscoverySettings

LOGGER = logging.getLogger(__name__)


def get_pipfile_name(env: Mapping[str, str]) -> str:
    return os.path.basename(env.get("PIPENV_PIPFILE", "")) or "Pipfile"


def get_pipenv_virtualenvs_dir(env: Mapping[str, str]) -> str | None:
    if workon_home := env.get("WORKON_HOME"):
        return os.path.expanduser(workon_home)
    home = home_dir()
    return None if home is None else os.path.join(home, ".local", "share", "virtualenvs")


def get_pipenv_project_dir(env_dir: str, fs: FileSystem, env: Mapping[str, str]) -> str | None:
    """:returns: the project a global pipenv environment belongs to, read from its ``.project`` file"""
    try:
        project = fs.read_text(os.path.join(env_dir, ".project")).strip()
    except OSError:
        return None
    if project and fs.is_file(os.path.join(project, get_pipfile_name(env))):
        return project
    LOGGER.debug("%s names %r as pipenv project but it has no Pipfile", env_dir, project)
    return None


def is_pipenv_environment(interpreter_path: str, fs: FileSystem, env: Mapping[str, str]) -> bool:
    env_dir = get_environment_dir_from_path(interpreter_path)
    # PIPENV_VENV_IN_PROJECT puts the environment at <project>/.venv
    if os.path.basename(env_dir) == ".venv":
        if fs.is_file(os.path.join(os.path.dirname(env_dir), get_pipfile_name(env))):
            return True
    return get_pipenv_project_dir(env_dir, fs, env) is not None


def is_pipenv_environment_related_to_folder(
    interpreter_path: str,
    folder: str,
    fs: FileSystem,
    env: Mapping[str, str],
) -> bool:
    env_dir = get_environment_dir_from_path(interpreter_path)
    if os.path.basename(env_dir) == ".venv" and paths_same(os.path.dirname(env_dir), folder):
        return is_pipenv_environment(interpreter_path, fs, env)
    project = get_pipenv_project_dir(env_dir, fs, env)
    return project is not None and paths_same(project, folder)


class PipenvLocator(FSWatchingLocator):
    """Environments of pipenv projects: the global pipenv folder plus whatever ``pipenv --venv`` reports."""

    source = "pipenv"

    def __init__(
        self,
        runner: ProcessRunner,
        settings: DiscoverySettings,
        fs: FileSystem,
        env: Mapping[str, str],
    ) -> None:
        self._runner = runner
        self._settings = settings
        self._env = env
        super().__init__(
            self._watched_roots,
            self._get_kind,
            fs=fs,
            delay_on_created=settings.delay_on_created,
            poll_interval=settings.poll_interval,
        )

    async def _watched_roots(self) -> list[str]:
        folder = get_pipenv_virtualenvs_dir(self._env)
        return [] if folder is None else normalize_roots([folder], self._fs)

    async def _get_kind(self, interpreter_path: str) -> EnvKind:
        return EnvKind.PIPENV if is_pipenv_environment(interpreter_path, self._fs, self._env) else EnvKind.UNKNOWN

    async def _ask_pipenv(self, workspace: str) -> str | None:
        settings = self._settings.for_scope(workspace)
        result = await self._runner.shell_exec(
            f"{settings.pipenv_path} --venv", cwd=workspace, timeout=settings.shell_timeout
        )
        if not result.ok:
            LOGGER.debug("pipenv --venv failed in %s: %s", workspace, result.stderr.strip())
            return None
        env_dir = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else ""
        return env_dir if env_dir and self._fs.is_dir(env_dir) else None

    async def iter_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        seen: set[str] = set()
        candidates: list[str] = []
        if scope is not None:
            candidates.append(os.path.join(scope, ".venv"))
        candidates.extend(
            entry
            for root in await self._watched_roots()
            for entry in self._safe_list_dir(root)
            if self._fs.is_dir(entry)
        )
        found_for_scope = False
        for env_dir in normalize_roots(candidates, self._fs):
            for record in self._records_in(env_dir, seen):
                if scope is not None and is_pipenv_environment_related_to_folder(
                    record.path, scope, self._fs, self._env
                ):
                    found_for_scope = True
                yield record
        has_pipfile = scope is not None and self._fs.is_file(os.path.join(scope, get_pipfile_name(self._env)))
        if scope is not None and has_pipfile and not found_for_scope:
            # project uses a custom WORKON_HOME or PIPENV_CUSTOM_VENV_NAME
            if (env_dir := await self._ask_pipenv(scope)) is not None:
                for record in self._records_in(env_dir, seen, trusted=True):
                    yield record

    def _records_in(self, env_dir: str, seen: set[str], *, trusted: bool = False) -> list[PartialRecord]:
        records = []
        for executable in find_interpreters_in_dir(env_dir, self._fs):
            if executable in seen or not looks_like_basic_virtual_python(executable):
                continue
            if not trusted and not is_pipenv_environment(executable, self._fs, self._env):
                LOGGER.debug("pipenv environment: [skipped] %s", executable)
                continue
            seen.add(executable)
            LOGGER.debug("pipenv environment: [added] %s", executable)
            records.append(build_record(executable, EnvKind.PIPENV, self.source, self._fs))
        return records

    def _safe_list_dir(self, folder: str) -> list[str]:
        try:
            return self._fs.list_dir(folder)
        except OSError:
            return []


__all__ = [
    "PipenvLocator",
    "get_pipenv_project_dir",
    "get_pipenv_virtualenvs_dir",
    "get_pipfile_name",
    "is_pipenv_environment",
    "is_pipenv_environment_related_to_folder",
]
