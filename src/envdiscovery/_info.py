"""Records describing a discovered Python interpreter, at partial or complete confidence."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from collections.abc import Sequence


class EnvKind(str, Enum):
    CONDA = "conda"
    VENV = "venv"
    VIRTUALENV = "virtualenv"
    VIRTUALENVWRAPPER = "virtualenvwrapper"
    PIPENV = "pipenv"
    POETRY = "poetry"
    PYENV = "pyenv"
    WINDOWS_STORE = "windows-store"
    GLOBAL = "global"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class Architecture(str, Enum):
    X86 = "x86"
    X64 = "x64"
    UNKNOWN = "unknown"


class InterpreterType(str, Enum):
    UNKNOWN = "unknown"
    CPYTHON = "cpython"


_VERSION_RE = re.compile(
    r"^(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?(?:-?(?P<pre>[a-zA-Z]+\d*))?(?:\+(?P<build>[\w.]+))?$",
)


@dataclass(frozen=True)
class PythonVersion:
    major: int
    minor: int
    patch: int
    build: tuple[str, ...] = ()
    prerelease: tuple[str, ...] = ()
    raw: str = ""

    @classmethod
    def from_version_info(cls, version_info: Sequence[Any]) -> PythonVersion:
        """Build from a ``sys.version_info`` shaped list, e.g. ``[3, 8, 3, "final", 0]``."""
        major, minor, patch = (int(version_info[i]) if len(version_info) > i else 0 for i in range(3))
        release_level = str(version_info[3]) if len(version_info) > 3 else ""  # noqa: PLR2004
        prerelease = (release_level,) if release_level else ()
        raw = f"{major}.{minor}.{patch}"
        if release_level:
            raw = f"{raw}-{release_level}"
        return cls(major, minor, patch, (), prerelease, raw)

    @classmethod
    def from_string(cls, text: str) -> PythonVersion | None:
        match = _VERSION_RE.match(text.strip())
        if match is None:
            return None
        groups = match.groupdict()
        return cls(
            int(groups["major"]),
            int(groups["minor"] or 0),
            int(groups["patch"] or 0),
            tuple(groups["build"].split(".")) if groups["build"] else (),
            (groups["pre"],) if groups["pre"] else (),
            text.strip(),
        )

    @property
    def version_info(self) -> tuple[int, int, int, str]:
        return self.major, self.minor, self.patch, self.prerelease[0] if self.prerelease else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "major": self.major,
            "minor": self.minor,
            "patch": self.patch,
            "build": list(self.build),
            "prerelease": list(self.prerelease),
            "raw": self.raw,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PythonVersion:
        return cls(
            data["major"],
            data["minor"],
            data["patch"],
            tuple(data.get("build", ())),
            tuple(data.get("prerelease", ())),
            data.get("raw", ""),
        )

    def __str__(self) -> str:
        return self.raw or f"{self.major}.{self.minor}.{self.patch}"


@dataclass
class PartialRecord:
    """What a single locator observed about an interpreter; only ``path`` is guaranteed."""

    path: str
    kind: EnvKind | None = None
    version: PythonVersion | None = None
    architecture: Architecture | None = None
    environment_name: str | None = None
    environment_path: str | None = None
    search_location: str | None = None
    sys_prefix: str | None = None
    source: str | None = None
    ctime: float | None = None
    mtime: float | None = None


@dataclass
class CompleteRecord:
    """An interpreter record enriched by running the interpreter itself."""

    path: str
    kind: EnvKind
    version: PythonVersion
    architecture: Architecture
    environment_name: str | None = None
    environment_path: str | None = None
    search_location: str | None = None
    sys_prefix: str | None = None
    source: str | None = None
    ctime: float | None = None
    mtime: float | None = None


Record = Union[PartialRecord, CompleteRecord]

RECORD_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(PartialRecord))
_REQUIRED_FIELDS = ("kind", "version", "architecture")


def promote(record: Record) -> Record:
    """:returns: a :class:`CompleteRecord` when every required field is known, a :class:`PartialRecord` otherwise"""
    values = {name: getattr(record, name) for name in RECORD_FIELDS}
    if all(values[name] is not None for name in _REQUIRED_FIELDS):
        return record if isinstance(record, CompleteRecord) else CompleteRecord(**values)
    return record if isinstance(record, PartialRecord) else PartialRecord(**values)


def as_partial(record: Record) -> PartialRecord:
    """Locator observations stay partial until the interpreter itself confirmed them."""
    if isinstance(record, PartialRecord):
        return record
    return PartialRecord(**{name: getattr(record, name) for name in RECORD_FIELDS})


def is_complete(record: Record) -> bool:
    return isinstance(record, CompleteRecord)


def with_path(record: Record, path: str) -> Record:
    return replace(record, path=path)


def record_to_dict(record: Record) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for name in RECORD_FIELDS:
        value = getattr(record, name)
        if value is None:
            continue
        if isinstance(value, PythonVersion):
            value = value.to_dict()
        elif isinstance(value, Enum):
            value = value.value
        result[name] = value
    return result


def record_from_dict(data: dict[str, Any]) -> Record:
    values = {name: data.get(name) for name in RECORD_FIELDS}
    if values["kind"] is not None:
        values["kind"] = EnvKind(values["kind"])
    if values["architecture"] is not None:
        values["architecture"] = Architecture(values["architecture"])
    if values["version"] is not None:
        values["version"] = PythonVersion.from_dict(values["version"])
    return promote(PartialRecord(**values))


@dataclass(frozen=True)
class DiscoveryOptions:
    #: wait until every discovered interpreter was executed before storing it
    get_complete_info: bool = False
    #: wait for every locator to finish instead of returning as soon as something is known
    get_all_environments: bool = False


@dataclass(frozen=True)
class EnvironmentInfo:
    """Result of introspecting an interpreter by executing it."""

    interpreter_path: str
    interpreter_type: InterpreterType
    environment_type: EnvKind
    architecture: Architecture
    version: PythonVersion | None = None
    sys_prefix: str | None = None

    def to_record(self, source: str | None = None) -> PartialRecord:
        return PartialRecord(
            path=self.interpreter_path,
            kind=self.environment_type,
            version=self.version,
            architecture=self.architecture,
            sys_prefix=self.sys_prefix,
            source=source,
        )


__all__ = [
    "RECORD_FIELDS",
    "Architecture",
    "CompleteRecord",
    "DiscoveryOptions",
    "EnvKind",
    "EnvironmentInfo",
    "InterpreterType",
    "PartialRecord",
    "PythonVersion",
    "Record",
    "as_partial",
    "is_complete",
    "promote",
    "record_from_dict",
    "record_to_dict",
    "with_path",
]
