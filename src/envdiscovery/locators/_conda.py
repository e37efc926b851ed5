"""Locate conda environments and compute the environment variables an activated conda environment has."""

from __future__ import annotations

import json
import logging
import os
import shlex
import shutil
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from envdiscovery._compat import IS_WIN, paths_same
from envdiscovery._info import EnvKind

from ._base import FSWatchingLocator, Locator, normalize_roots
from ._common import build_record, get_paths, home_dir

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from envdiscovery._externals import FileSystem, ProcessRunner
    from envdiscovery._info import DiscoveryOptions, PartialRecord, Record
    from envdiscovery._settings import DiscoverySettings

LOGGER = logging.getLogger(__name__)

_CONDA_INSTALL_FOLDERS = ("anaconda3", "miniconda3", "miniforge3", "mambaforge", "anaconda", "miniconda")


@dataclass(frozen=True)
class CondaInfo:
    conda_version: str | None = None
    root_prefix: str | None = None
    default_prefix: str | None = None
    envs: tuple[str, ...] = ()
    envs_dirs: tuple[str, ...] = ()

    @classmethod
    def from_json(cls, payload: str) -> CondaInfo:
        data = json.loads(payload)
        return cls(
            conda_version=data.get("conda_version"),
            root_prefix=data.get("root_prefix"),
            default_prefix=data.get("default_prefix"),
            envs=tuple(data.get("envs") or ()),
            envs_dirs=tuple(data.get("envs_dirs") or ()),
        )


def get_conda_interpreter_path(prefix: str) -> str:
    return os.path.join(prefix, "python.exe") if IS_WIN else os.path.join(prefix, "bin", "python")


def get_conda_bin_dirs(prefix: str) -> list[str]:
    """Folders ``conda activate`` puts in front of ``PATH``."""
    if IS_WIN:
        return [
            prefix,
            os.path.join(prefix, "Library", "mingw-w64", "bin"),
            os.path.join(prefix, "Library", "usr", "bin"),
            os.path.join(prefix, "Library", "bin"),
            os.path.join(prefix, "Scripts"),
        ]
    return [os.path.join(prefix, "bin")]


def _known_conda_locations(env: Mapping[str, str]) -> list[str]:
    home = home_dir()
    bases = [os.path.join(home, folder) for folder in _CONDA_INSTALL_FOLDERS] if home else []
    if IS_WIN:
        if program_data := env.get("PROGRAMDATA"):
            bases.extend(os.path.join(program_data, folder) for folder in _CONDA_INSTALL_FOLDERS)
        return [os.path.join(base, "Scripts", "conda.exe") for base in bases]
    bases.extend(["/opt/conda", *(os.path.join("/opt", folder) for folder in _CONDA_INSTALL_FOLDERS)])
    return [os.path.join(base, "bin", "conda") for base in bases]


def parse_activation_script(script: str, base: Mapping[str, str]) -> dict[str, str]:
    """Apply the ``export``/``unset`` lines printed by ``conda shell.posix activate`` to a copy of *base*."""
    result = dict(base)
    for line in script.splitlines():
        try:
            tokens = shlex.split(line, posix=True)
        except ValueError:
            continue
        if len(tokens) >= 2 and tokens[0] == "export" and "=" in tokens[1]:  # noqa: PLR2004
            key, _, value = tokens[1].partition("=")
            result[key] = value
        elif len(tokens) >= 2 and tokens[0] == "unset":  # noqa: PLR2004
            for key in tokens[1:]:
                result.pop(key, None)
    return result


class CondaService:
    """Finds the conda executable, caches ``conda info`` and activates conda environments for child processes."""

    def __init__(
        self,
        runner: ProcessRunner,
        settings: DiscoverySettings,
        fs: FileSystem,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner
        self._settings = settings
        self._fs = fs
        self._env = os.environ if env is None else env
        self._conda_file: str | None = None
        self._conda_info: CondaInfo | None = None

    def clear(self) -> None:
        self._conda_file = None
        self._conda_info = None

    async def get_conda_file(self) -> str | None:
        if self._conda_file is not None:
            return self._conda_file
        candidates = [self._settings.conda_path, self._env.get("CONDA_EXE")]
        on_path = shutil.which("conda", path=os.pathsep.join(get_paths(self._env)))
        candidates.append(on_path)
        candidates.extend(_known_conda_locations(self._env))
        for candidate in candidates:
            if candidate and (self._fs.is_file(candidate) or candidate == self._settings.conda_path):
                LOGGER.debug("using conda at %s", candidate)
                self._conda_file = candidate
                return candidate
        LOGGER.debug("conda not found")
        return None

    async def is_conda_available(self) -> bool:
        return await self.get_conda_info() is not None

    async def get_conda_info(self) -> CondaInfo | None:
        if self._conda_info is not None:
            return self._conda_info
        conda = await self.get_conda_file()
        if conda is None:
            return None
        result = await self._runner.exec(conda, ["info", "--json"], timeout=self._settings.shell_timeout)
        if not result.ok:
            LOGGER.info("conda info failed with %s: %s", result.exit_code, result.stderr.strip())
            return None
        try:
            self._conda_info = CondaInfo.from_json(result.stdout)
        except (ValueError, AttributeError):
            LOGGER.info("conda info returned malformed json", exc_info=True)
            return None
        return self._conda_info

    def get_environment_name(self, prefix: str, info: CondaInfo | None) -> str:
        if info is not None and info.root_prefix and paths_same(prefix, info.root_prefix):
            return "base"
        return os.path.basename(os.path.normpath(prefix))

    async def get_activated_environment(
        self,
        record: Record,
        base: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Environment variables of a shell in which the conda environment of *record* was activated.

        Not cached: activation depends on *base*, which may differ on every call.
        """
        base = dict(self._env if base is None else base)
        prefix = record.sys_prefix or record.environment_path
        if prefix is None:
            return base
        conda = await self.get_conda_file()
        if conda is not None and not IS_WIN:
            result = await self._runner.exec(
                conda, ["shell.posix", "activate", prefix], env=base, timeout=self._settings.shell_timeout
            )
            if result.ok:
                return parse_activation_script(result.stdout, base)
            LOGGER.debug("conda activation of %s failed: %s", prefix, result.stderr.strip())
        info = self._conda_info
        activated = dict(base)
        path_key = next((key for key in base if key.upper() == "PATH"), "PATH")
        activated[path_key] = os.pathsep.join([*get_conda_bin_dirs(prefix), base.get(path_key, "")]).rstrip(os.pathsep)
        activated["CONDA_PREFIX"] = prefix
        activated["CONDA_DEFAULT_ENV"] = self.get_environment_name(prefix, info)
        return activated


def _conda_record(
    prefix: str,
    source: str,
    service: CondaService,
    info: CondaInfo | None,
    fs: FileSystem,
) -> PartialRecord | None:
    executable = get_conda_interpreter_path(prefix)
    if not fs.is_file(executable):
        # environments without python, e.g. holding only r or nodejs
        LOGGER.debug("conda environment %s has no interpreter", prefix)
        return None
    record = build_record(executable, EnvKind.CONDA, source, fs)
    return replace(
        record,
        environment_name=service.get_environment_name(prefix, info),
        environment_path=prefix,
        search_location=os.path.dirname(os.path.normpath(prefix)),
        sys_prefix=prefix,
    )


class CondaEnvLocator(FSWatchingLocator):
    """Environments reported by ``conda info --json``."""

    source = "conda"

    def __init__(self, service: CondaService, settings: DiscoverySettings, fs: FileSystem) -> None:
        self._service = service
        super().__init__(
            self._watched_roots,
            self._get_kind,
            fs=fs,
            delay_on_created=settings.delay_on_created,
            poll_interval=settings.poll_interval,
        )

    async def _watched_roots(self) -> list[str]:
        info = await self._service.get_conda_info()
        return [] if info is None else normalize_roots(list(info.envs_dirs), self._fs)

    async def _get_kind(self, interpreter_path: str) -> EnvKind:  # noqa: ARG002
        return EnvKind.CONDA

    async def iter_environments(
        self,
        scope: str | None = None,  # noqa: ARG002
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        # environments created since the last call must show up
        self._service.clear()
        info = await self._service.get_conda_info()
        if info is None:
            return
        prefixes = [info.root_prefix] if info.root_prefix else []
        prefixes.extend(info.envs)
        seen: set[str] = set()
        for prefix in prefixes:
            norm = os.path.normpath(prefix)
            if norm in seen:
                continue
            seen.add(norm)
            if (record := _conda_record(norm, self.source, self._service, info, self._fs)) is not None:
                yield record


class CondaEnvFileLocator(Locator):
    """Environments listed in ``~/.conda/environments.txt``, available even when conda itself is not on PATH."""

    source = "conda-file"

    def __init__(self, service: CondaService, fs: FileSystem) -> None:
        super().__init__()
        self._service = service
        self._fs = fs

    def environments_file(self) -> str | None:
        home = home_dir()
        return None if home is None else os.path.join(home, ".conda", "environments.txt")

    async def iter_environments(
        self,
        scope: str | None = None,  # noqa: ARG002
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        path = self.environments_file()
        if path is None:
            return
        try:
            content = self._fs.read_text(path)
        except OSError:
            LOGGER.debug("no conda environments file at %s", path)
            return
        for line in content.splitlines():
            prefix = line.strip()
            if not prefix or prefix.startswith("#"):
                continue
            if (record := _conda_record(prefix, self.source, self._service, None, self._fs)) is not None:
                yield record


__all__ = [
    "CondaEnvFileLocator",
    "CondaEnvLocator",
    "CondaInfo",
    "CondaService",
    "get_conda_bin_dirs",
    "get_conda_interpreter_path",
    "parse_activation_script",
]
