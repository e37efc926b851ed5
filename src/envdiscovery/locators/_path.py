"""Interpreters reachable through ``PATH``, well known install folders and the plain ``python`` command."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from platformdirs import user_data_path

from envdiscovery._compat import IS_MAC, IS_WIN, fs_path_id
from envdiscovery._info import EnvKind

from ._base import Locator, normalize_roots
from ._common import build_record, find_interpreters_in_dir, get_paths, home_dir, is_hidden_interpreter
from ._virtualenv import is_pyenv_environment

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Generator, Mapping

    from envdiscovery._externals import FileSystem, ProcessRunner
    from envdiscovery._info import DiscoveryOptions, PartialRecord
    from envdiscovery._settings import DiscoverySettings

LOGGER = logging.getLogger(__name__)

_POSIX_KNOWN_PATHS = ("/usr/local/bin", "/usr/bin", "/bin", "/usr/sbin", "/sbin", "/usr/local/sbin")

_VERSION_MANAGER_LAYOUTS: list[tuple[str, tuple[str, ...]]] = [
    ("PYENV_ROOT", ("versions",)),
    ("MISE_DATA_DIR", ("installs", "python")),
    ("ASDF_DATA_DIR", ("installs", "python")),
]

#: command used to ask an interpreter on PATH where it lives
PRINT_EXECUTABLE = "import sys;print(sys.executable)"


def get_known_search_paths(settings: DiscoverySettings, env: Mapping[str, str]) -> list[str]:
    """``PATH`` followed by folders interpreters are commonly installed into; also used to find bare executables."""
    paths = [*settings.search_paths, *get_paths(env)]
    if not IS_WIN:
        paths.extend(_POSIX_KNOWN_PATHS)
        if IS_MAC:
            paths.extend(("/opt/homebrew/bin", "/opt/local/bin"))
        if home := home_dir():
            paths.append(os.path.join(home, ".local", "bin"))
    seen: set[str] = set()
    result = []
    for path in paths:
        path_id = fs_path_id(os.path.normpath(path))
        if path_id not in seen:
            seen.add(path_id)
            result.append(path)
    return result


def get_uv_python_dir(env: Mapping[str, str]) -> str:
    if uv_python_dir := env.get("UV_PYTHON_INSTALL_DIR"):
        return os.path.expanduser(uv_python_dir)
    if xdg_data_home := env.get("XDG_DATA_HOME"):
        return os.path.join(os.path.expanduser(xdg_data_home), "uv", "python")
    return str(user_data_path("uv") / "python")


def resolve_shim(
    exe_path: str,
    env: Mapping[str, str],
    fs: FileSystem,
    cwd: str | None = None,
) -> str | None:
    """Resolve a version-manager shim to the actual Python binary.

    :param cwd: folder a local ``.python-version`` is looked up from, the process working directory by default
    """
    for shims_dir_env, versions_path in _VERSION_MANAGER_LAYOUTS:
        if root := env.get(shims_dir_env):
            shims_dir = os.path.join(root, "shims")
            if os.path.dirname(exe_path) == shims_dir:
                exe_name = os.path.basename(exe_path)
                versions_dir = os.path.join(root, *versions_path)
                return _resolve_shim_to_binary(exe_name, versions_dir, env, fs, cwd or os.getcwd())
    return None


def _resolve_shim_to_binary(
    exe_name: str,
    versions_dir: str,
    env: Mapping[str, str],
    fs: FileSystem,
    cwd: str,
) -> str | None:
    for version in _active_versions(env, fs, cwd):
        resolved = os.path.join(versions_dir, version, "bin", exe_name)
        if fs.is_file(resolved) and os.access(resolved, os.X_OK):
            return resolved
    return None


def _active_versions(env: Mapping[str, str], fs: FileSystem, cwd: str) -> Generator[str, None, None]:
    if pyenv_version := env.get("PYENV_VERSION"):
        yield from pyenv_version.split(":")
        return
    if versions := _read_python_version_file(cwd, fs):
        yield from versions
        return
    if (pyenv_root := env.get("PYENV_ROOT")) and (
        versions := _read_python_version_file(os.path.join(pyenv_root, "version"), fs, search_parents=False)
    ):
        yield from versions


def _read_python_version_file(start: str, fs: FileSystem, *, search_parents: bool = True) -> list[str] | None:
    current = start
    while True:
        candidate = os.path.join(current, ".python-version") if fs.is_dir(current) else current
        if fs.is_file(candidate):
            lines = fs.read_text(candidate).splitlines()
            if versions := [v for line in lines if (v := line.strip()) and not v.startswith("#")]:
                return versions
        if not search_parents:
            return None
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def _kind_of_known_path(interpreter_path: str, env: Mapping[str, str]) -> EnvKind:
    parts = interpreter_path.lower().split(os.sep)
    if "windowsapps" in parts:
        return EnvKind.WINDOWS_STORE
    if is_pyenv_environment(interpreter_path, env):
        return EnvKind.PYENV
    return EnvKind.UNKNOWN


class KnownPathsLocator(Locator):
    """Interpreters sitting directly in ``PATH`` entries and other well known folders."""

    source = "known-path"

    def __init__(self, settings: DiscoverySettings, fs: FileSystem, env: Mapping[str, str]) -> None:
        super().__init__()
        self._settings = settings
        self._fs = fs
        self._env = env

    async def iter_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        settings = self._settings.for_scope(scope)
        tested: set[str] = set()
        folders = normalize_roots(get_known_search_paths(settings, self._env), self._fs)
        for pos, folder in enumerate(folders):
            LOGGER.debug("discover known path [%d]=%s", pos, folder)
            for executable in find_interpreters_in_dir(folder, self._fs, depth=0):
                if resolved := resolve_shim(executable, self._env, self._fs, scope):
                    LOGGER.debug("resolved shim %s to %s", executable, resolved)
                    executable = resolved  # noqa: PLW2901
                exe_id = fs_path_id(executable)
                if exe_id in tested or is_hidden_interpreter(executable):
                    continue
                tested.add(exe_id)
                yield build_record(executable, _kind_of_known_path(executable, self._env), self.source, self._fs)
        uv_dir = get_uv_python_dir(self._env)
        for install in normalize_roots([uv_dir], self._fs):
            for executable in find_interpreters_in_dir(install, self._fs, depth=2):
                if os.path.basename(os.path.dirname(executable)) != "bin" or os.path.basename(executable) != "python":
                    continue
                if (exe_id := fs_path_id(executable)) not in tested:
                    tested.add(exe_id)
                    yield build_record(executable, EnvKind.GLOBAL, self.source, self._fs)


class CurrentPathLocator(Locator):
    """Whatever ``python``, ``python3`` and ``python2`` (and the configured python) resolve to for a shell."""

    source = "current-path"

    def __init__(self, runner: ProcessRunner, settings: DiscoverySettings, fs: FileSystem) -> None:
        super().__init__()
        self._runner = runner
        self._settings = settings
        self._fs = fs

    def _commands(self, scope: str | None) -> list[str]:
        commands = [self._settings.for_scope(scope).python_path, "python", "python3", "python2"]
        return list(dict.fromkeys(commands))

    async def iter_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        seen: set[str] = set()
        timeout = self._settings.for_scope(scope).shell_timeout
        for command in self._commands(scope):
            result = await self._runner.exec(command, ["-c", PRINT_EXECUTABLE], cwd=scope, timeout=timeout)
            if not result.ok:
                LOGGER.debug("%s is not usable: %s", command, result.stderr.strip())
                continue
            lines = result.stdout.strip().splitlines()
            executable = lines[-1].strip() if lines else ""
            if not executable or fs_path_id(executable) in seen or not self._fs.is_file(executable):
                continue
            seen.add(fs_path_id(executable))
            LOGGER.debug("%s resolves to %s", command, executable)
            yield build_record(executable, EnvKind.UNKNOWN, self.source, self._fs)


__all__ = [
    "PRINT_EXECUTABLE",
    "CurrentPathLocator",
    "KnownPathsLocator",
    "get_known_search_paths",
    "get_uv_python_dir",
    "resolve_shim",
]
