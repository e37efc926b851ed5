"""Filesystem helpers shared by the locators."""

from __future__ import annotations

import logging
import os
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING

from envdiscovery._compat import IS_WIN
from envdiscovery._info import PartialRecord, PythonVersion
from envdiscovery._py_spec import PYTHON_EXE_SPEC

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping

    from envdiscovery._externals import FileSystem
    from envdiscovery._info import EnvKind

LOGGER = logging.getLogger(__name__)

#: levels of sub-directories to recurse into when looking for interpreters
DEFAULT_SEARCH_DEPTH = 2

_BIN_DIRS = {"bin", "scripts"}
_BASIC_NAMES = {"python", "python.exe"}
_PYTHON_EXE_RE = PYTHON_EXE_SPEC.generate_re(windows=IS_WIN)


def find_interpreters_in_dir(
    root: str,
    fs: FileSystem,
    depth: int = DEFAULT_SEARCH_DEPTH,
) -> Generator[str, None, None]:
    """Yield python executables found in *root* and up to *depth* levels of its sub-directories."""

    def walk(folder: str, level: int) -> Generator[str, None, None]:
        try:
            entries = fs.list_dir(folder)
        except OSError:
            LOGGER.debug("cannot list %s", folder)
            return
        for entry in entries:
            if fs.is_dir(entry):
                if level < depth:
                    yield from walk(entry, level + 1)
            elif _PYTHON_EXE_RE.fullmatch(os.path.basename(entry)):
                yield entry

    yield from walk(root, 0)


def looks_like_basic_virtual_python(interpreter_path: str) -> bool:
    """Only ``python``/``python.exe``; ``python3.8`` and friends are usually symlinks next to it."""
    return os.path.basename(interpreter_path).lower() in _BASIC_NAMES


def get_environment_dir_from_path(interpreter_path: str) -> str:
    """``<env>/bin/python`` and ``<env>/Scripts/python.exe`` both map to ``<env>``."""
    folder = os.path.dirname(interpreter_path)
    if os.path.basename(folder).lower() in _BIN_DIRS:
        return os.path.dirname(folder)
    return folder


def read_pyvenv_cfg(env_dir: str, fs: FileSystem) -> dict[str, str]:
    path = os.path.join(env_dir, "pyvenv.cfg")
    try:
        content = fs.read_text(path)
    except OSError:
        return {}
    result = {}
    for line in content.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            result[key.strip().lower()] = value.strip()
    return result


def get_python_version_from_path(interpreter_path: str, fs: FileSystem) -> PythonVersion | None:
    """Best guess of the version without running the interpreter: ``pyvenv.cfg`` first, then the file name."""
    cfg = read_pyvenv_cfg(get_environment_dir_from_path(interpreter_path), fs)
    for key in ("version_info", "version"):
        if key in cfg and (version := PythonVersion.from_string(cfg[key])) is not None:
            return version
    match = _PYTHON_EXE_RE.fullmatch(os.path.basename(interpreter_path))
    if match and match["v"]:
        return PythonVersion.from_string(match["v"])
    return None


def is_hidden_interpreter(interpreter_path: str) -> bool:
    """Windows Store app execution aliases only open the store; they are not usable interpreters."""
    parts = [part.lower() for part in Path(interpreter_path).parts]
    return "windowsapps" in parts and not any(part.startswith("pythonsoftwarefoundation") for part in parts)


def build_record(
    interpreter_path: str,
    kind: EnvKind,
    source: str,
    fs: FileSystem,
) -> PartialRecord:
    env_dir = get_environment_dir_from_path(interpreter_path)
    times = fs.stat_times(interpreter_path)
    return PartialRecord(
        path=interpreter_path,
        kind=kind,
        version=get_python_version_from_path(interpreter_path, fs),
        environment_name=os.path.basename(env_dir),
        environment_path=env_dir,
        # the directory the environment folder was found in
        search_location=os.path.dirname(env_dir),
        source=source,
        ctime=times[0] if times else None,
        mtime=times[1] if times else None,
    )


def get_paths(env: Mapping[str, str]) -> Generator[str, None, None]:
    path = env.get("PATH", None)
    if path is None:
        try:
            path = os.confstr("CS_PATH")
        except (AttributeError, ValueError):
            path = os.defpath
    if path:
        for entry in path.split(os.pathsep):
            with suppress(OSError):
                if entry and os.path.isdir(entry):
                    yield entry


def home_dir() -> str | None:
    with suppress(RuntimeError, KeyError):
        return str(Path.home())
    return None


__all__ = [
    "DEFAULT_SEARCH_DEPTH",
    "build_record",
    "find_interpreters_in_dir",
    "get_environment_dir_from_path",
    "get_paths",
    "get_python_version_from_path",
    "home_dir",
    "is_hidden_interpreter",
    "looks_like_basic_virtual_python",
    "read_pyvenv_cfg",
]
