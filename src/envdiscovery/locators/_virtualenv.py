"""Identify virtual environments and locate them in global and workspace folders."""

from __future__ import annotations

import logging
import os
from abc import abstractmethod
from typing import TYPE_CHECKING

from envdiscovery._compat import IS_WIN, is_parent_path
from envdiscovery._info import EnvKind

from ._base import FSWatchingLocator, normalize_roots
from ._common import (
    DEFAULT_SEARCH_DEPTH,
    build_record,
    find_interpreters_in_dir,
    get_environment_dir_from_path,
    home_dir,
    looks_like_basic_virtual_python,
)
from ._pipenv import is_pipenv_environment
from ._poetry import get_poetry_virtualenvs_dir, is_poetry_environment

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from envdiscovery._externals import FileSystem, ProcessRunner
    from envdiscovery._info import DiscoveryOptions, PartialRecord
    from envdiscovery._settings import DiscoverySettings

LOGGER = logging.getLogger(__name__)

#: sub-folders of the home directory that commonly hold virtual environments
GLOBAL_VENV_FOLDERS = ("envs", ".direnv", ".venvs", ".virtualenvs", "Envs")
#: folder names that commonly hold the virtual environment of a workspace
WORKSPACE_VENV_FOLDERS = (".venv", "venv", ".env", "env", ".direnv")


def is_venv_environment(interpreter_path: str, fs: FileSystem) -> bool:
    """``python -m venv`` writes ``pyvenv.cfg`` next to the interpreter or one level above."""
    folder = os.path.dirname(interpreter_path)
    return fs.is_file(os.path.join(folder, "pyvenv.cfg")) or fs.is_file(
        os.path.join(os.path.dirname(folder), "pyvenv.cfg")
    )


async def is_virtualenv_environment(interpreter_path: str, fs: FileSystem) -> bool:
    """virtualenv (and venv) put ``activate`` scripts next to the interpreter."""
    folder = os.path.dirname(interpreter_path)
    try:
        entries = fs.list_dir(folder)
    except OSError:
        return False
    return any(os.path.basename(entry).lower().startswith("activate") for entry in entries)


def get_workon_home(env: Mapping[str, str]) -> str | None:
    if workon_home := env.get("WORKON_HOME"):
        return os.path.expanduser(workon_home)
    home = home_dir()
    if home is None:
        return None
    return os.path.join(home, "Envs" if IS_WIN else ".virtualenvs")


async def is_virtualenvwrapper_environment(interpreter_path: str, fs: FileSystem, env: Mapping[str, str]) -> bool:
    workon_home = get_workon_home(env)
    if workon_home is None or not is_parent_path(interpreter_path, workon_home):
        return False
    return await is_virtualenv_environment(interpreter_path, fs)


def is_conda_environment(interpreter_path: str, fs: FileSystem) -> bool:
    """Conda marks every environment with a ``conda-meta`` folder; on Windows the interpreter sits in its root."""
    folder = os.path.dirname(interpreter_path)
    return fs.is_dir(os.path.join(folder, "conda-meta")) or fs.is_dir(
        os.path.join(os.path.dirname(folder), "conda-meta")
    )


def get_pyenv_versions_dir(env: Mapping[str, str]) -> str | None:
    if pyenv_root := env.get("PYENV_ROOT"):
        return os.path.join(os.path.expanduser(pyenv_root), "versions")
    home = home_dir()
    if home is None:
        return None
    return os.path.join(home, ".pyenv", "pyenv-win" if IS_WIN else "", "versions")


def is_pyenv_environment(interpreter_path: str, env: Mapping[str, str]) -> bool:
    versions_dir = get_pyenv_versions_dir(env)
    return versions_dir is not None and is_parent_path(interpreter_path, os.path.normpath(versions_dir))


class EnvironmentClassifier:
    """Decide the :class:`EnvKind` of an interpreter by inspecting the folder it lives in."""

    def __init__(
        self,
        fs: FileSystem,
        runner: ProcessRunner,
        settings: DiscoverySettings,
        env: Mapping[str, str],
    ) -> None:
        self._fs = fs
        self._runner = runner
        self._settings = settings
        self._env = env

    async def get_kind(self, interpreter_path: str, scope: str | None = None) -> EnvKind:
        settings = self._settings.for_scope(scope)
        # most specific tool first, the plain venv/virtualenv markers are shared by all of them
        if await is_poetry_environment(
            interpreter_path, self._fs, self._runner, settings.poetry_path, settings.shell_timeout
        ):
            return EnvKind.POETRY
        if is_pipenv_environment(interpreter_path, self._fs, self._env):
            return EnvKind.PIPENV
        if await is_virtualenvwrapper_environment(interpreter_path, self._fs, self._env):
            return EnvKind.VIRTUALENVWRAPPER
        if is_venv_environment(interpreter_path, self._fs):
            return EnvKind.VENV
        if await is_virtualenv_environment(interpreter_path, self._fs):
            return EnvKind.VIRTUALENV
        if is_conda_environment(interpreter_path, self._fs):
            return EnvKind.CONDA
        if is_pyenv_environment(interpreter_path, self._env):
            return EnvKind.PYENV
        return EnvKind.UNKNOWN


class _VirtualEnvLocator(FSWatchingLocator):
    def __init__(self, classifier: EnvironmentClassifier, settings: DiscoverySettings, fs: FileSystem) -> None:
        self._classifier = classifier
        self._settings = settings
        super().__init__(
            self._watched_roots,
            self._classifier.get_kind,
            fs=fs,
            delay_on_created=settings.delay_on_created,
            poll_interval=settings.poll_interval,
        )

    async def _watched_roots(self) -> list[str]:
        return await self._search_roots(None)

    @abstractmethod
    async def _search_roots(self, scope: str | None) -> list[str]:
        """Folders holding virtual environments for *scope*."""
        raise NotImplementedError

    async def iter_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        seen: set[str] = set()
        for root in await self._search_roots(scope):
            LOGGER.debug("%r searching for virtual envs in: %s", self, root)
            for executable in find_interpreters_in_dir(root, self._fs, DEFAULT_SEARCH_DEPTH):
                if executable in seen:
                    continue
                seen.add(executable)
                # python3.8, python3 and friends are usually symlinks to the basic python
                if not looks_like_basic_virtual_python(executable):
                    LOGGER.debug("virtual environment: [skipped] %s", executable)
                    continue
                kind = await self._classifier.get_kind(executable, scope)
                LOGGER.debug("virtual environment: [added] %s as %s", executable, kind.value)
                yield build_record(executable, kind, self.source, self._fs)


class GlobalVirtualEnvLocator(_VirtualEnvLocator):
    """Virtual environments kept in well known per-user folders."""

    source = "global-venv"

    def __init__(
        self,
        classifier: EnvironmentClassifier,
        settings: DiscoverySettings,
        fs: FileSystem,
        env: Mapping[str, str],
    ) -> None:
        self._env = env
        super().__init__(classifier, settings, fs)

    async def _search_roots(self, scope: str | None) -> list[str]:
        settings = self._settings.for_scope(scope)
        home = home_dir()
        roots: list[str] = []
        if workon_home := get_workon_home(self._env):
            roots.append(workon_home)
        if home is not None:
            roots.extend(os.path.join(home, folder) for folder in GLOBAL_VENV_FOLDERS)
            roots.extend(os.path.join(home, folder) for folder in settings.venv_folders)
        if settings.venv_path:
            roots.append(settings.venv_path)
        if pyenv_versions := get_pyenv_versions_dir(self._env):
            roots.append(pyenv_versions)
        roots.append(get_poetry_virtualenvs_dir(self._env))
        return normalize_roots(roots, self._fs)


class WorkspaceVirtualEnvLocator(_VirtualEnvLocator):
    """Virtual environments created inside a workspace folder."""

    source = "workspace-venv"

    def __init__(
        self,
        classifier: EnvironmentClassifier,
        settings: DiscoverySettings,
        fs: FileSystem,
        workspace: str | None = None,
    ) -> None:
        self._workspace = workspace
        super().__init__(classifier, settings, fs)

    async def _watched_roots(self) -> list[str]:
        return await self._search_roots(self._workspace)

    async def _search_roots(self, scope: str | None) -> list[str]:
        scope = scope or self._workspace
        if scope is None:
            return []
        return normalize_roots([scope], self._fs)

    async def iter_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,
    ) -> AsyncIterator[PartialRecord]:
        async for record in super().iter_environments(scope, options):
            known_folder = os.path.basename(get_environment_dir_from_path(record.path)) in WORKSPACE_VENV_FOLDERS
            # a bare interpreter checked into some project folder is not an environment
            if known_folder or record.kind is not EnvKind.UNKNOWN:
                yield record


__all__ = [
    "GLOBAL_VENV_FOLDERS",
    "WORKSPACE_VENV_FOLDERS",
    "EnvironmentClassifier",
    "GlobalVirtualEnvLocator",
    "WorkspaceVirtualEnvLocator",
    "get_pyenv_versions_dir",
    "get_workon_home",
    "is_conda_environment",
    "is_pyenv_environment",
    "is_venv_environment",
    "is_virtualenv_environment",
    "is_virtualenvwrapper_environment",
]
