"""Interpreters registered in the Windows registry as described by PEP 514."""

from __future__ import annotations

import logging
import os
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING

from envdiscovery._compat import IS_WIN
from envdiscovery._info import Architecture, EnvKind, PartialRecord, PythonVersion

from ._base import Locator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable, Iterator

    from envdiscovery._externals import FileSystem
    from envdiscovery._info import DiscoveryOptions

LOGGER = logging.getLogger(__name__)

_CONDA_COMPANIES = ("continuumanalytics", "anaconda")
#: ``PyLauncher`` only holds launcher settings, it never describes an interpreter
_IGNORED_COMPANIES = ("pylauncher",)


@dataclass(frozen=True)
class RegistryEntry:
    company: str
    tag: str
    executable: str
    version: str | None = None
    architecture: str | None = None
    display_name: str | None = None


def read_registry() -> Iterator[RegistryEntry]:
    import winreg  # noqa: PLC0415

    keys = (
        (winreg.HKEY_CURRENT_USER, r"Software\Python", 0, None),
        (winreg.HKEY_LOCAL_MACHINE, r"Software\Python", winreg.KEY_WOW64_64KEY, "64bit"),
        (winreg.HKEY_LOCAL_MACHINE, r"Software\Python", winreg.KEY_WOW64_32KEY, "32bit"),
    )
    for hive, key_path, flags, default_arch in keys:
        with suppress(OSError), winreg.OpenKeyEx(hive, key_path, access=winreg.KEY_READ | flags) as root:
            for company in _enum_keys(winreg, root):
                if company.lower() in _IGNORED_COMPANIES:
                    continue
                with suppress(OSError), winreg.OpenKeyEx(root, company, access=winreg.KEY_READ | flags) as company_key:
                    for tag in _enum_keys(winreg, company_key):
                        tag_access = winreg.KEY_READ | flags
                        with suppress(OSError), winreg.OpenKeyEx(company_key, tag, access=tag_access) as tag_key:
                            if (entry := _read_tag(winreg, company, tag, tag_key, default_arch)) is not None:
                                yield entry


def _enum_keys(winreg, key) -> Iterator[str]:  # noqa: ANN001
    index = 0
    while True:
        try:
            yield winreg.EnumKey(key, index)
        except OSError:
            return
        index += 1


def _get_value(winreg, key, sub_key: str, name: str | None) -> str | None:  # noqa: ANN001
    try:
        with winreg.OpenKeyEx(key, sub_key) as handle:
            value, _ = winreg.QueryValueEx(handle, name)
    except OSError:
        return None
    return str(value) if value else None


def _read_tag(  # noqa: ANN001
    winreg, company: str, tag: str, tag_key, default_arch: str | None
) -> RegistryEntry | None:
    executable = _get_value(winreg, tag_key, "InstallPath", "ExecutablePath")
    if executable is None and (install_path := _get_value(winreg, tag_key, "InstallPath", None)):
        executable = os.path.join(install_path, "python.exe")
    if executable is None:
        LOGGER.debug("registry entry %s\\%s has no install path", company, tag)
        return None
    return RegistryEntry(
        company=company,
        tag=tag,
        executable=executable,
        version=_get_value(winreg, tag_key, "", "SysVersion") or _get_value(winreg, tag_key, "", "Version"),
        architecture=_get_value(winreg, tag_key, "", "SysArchitecture") or default_arch,
        display_name=_get_value(winreg, tag_key, "", "DisplayName"),
    )


def _architecture(value: str | None) -> Architecture | None:
    if value is None:
        return None
    return {"64bit": Architecture.X64, "32bit": Architecture.X86}.get(value.lower(), Architecture.UNKNOWN)


class WindowsRegistryLocator(Locator):
    """Interpreters installed by python.org or Anaconda installers register themselves under ``Software\\Python``."""

    source = "windows-registry"

    def __init__(self, fs: FileSystem, registry: Callable[[], Iterable[RegistryEntry]] | None = None) -> None:
        super().__init__()
        self._fs = fs
        self._registry = registry

    def _entries(self) -> Iterable[RegistryEntry]:
        if self._registry is not None:
            return self._registry()
        if not IS_WIN:
            return ()
        return read_registry()

    async def iter_environments(
        self,
        scope: str | None = None,  # noqa: ARG002
        options: DiscoveryOptions | None = None,  # noqa: ARG002
    ) -> AsyncIterator[PartialRecord]:
        for entry in self._entries():
            if not self._fs.is_file(entry.executable):
                LOGGER.debug("registry names %s, but it does not exist", entry.executable)
                continue
            is_conda = any(name in entry.company.lower() for name in _CONDA_COMPANIES)
            env_dir = os.path.dirname(entry.executable)
            times = self._fs.stat_times(entry.executable)
            yield PartialRecord(
                path=entry.executable,
                kind=EnvKind.CONDA if is_conda else EnvKind.UNKNOWN,
                version=PythonVersion.from_string(entry.version) if entry.version else None,
                architecture=_architecture(entry.architecture),
                environment_name=entry.display_name,
                environment_path=env_dir,
                search_location=os.path.dirname(env_dir),
                source=self.source,
                ctime=times[0] if times else None,
                mtime=times[1] if times else None,
            )


__all__ = [
    "RegistryEntry",
    "WindowsRegistryLocator",
    "read_registry",
]
