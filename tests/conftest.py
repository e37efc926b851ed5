from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from envdiscovery import (
    Architecture,
    CompleteRecord,
    DiscoverySettings,
    EnvKind,
    ExecutionResult,
    MemoryStore,
    PythonVersion,
)
from envdiscovery._event import Event

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

FAILED = ExecutionResult("", "command not found", 1)


def info_output(args: Sequence[str], version: Sequence[Any] = (3, 8, 3, "final", 0), prefix: str = "/usr") -> str:
    """What the interpreter-info script prints when run with *args*."""
    start_cookie, end_cookie = args[1], args[2]
    payload = {"versionInfo": list(version), "sysPrefix": prefix, "version": "", "is64Bit": True}
    return f"noise{start_cookie[::-1]}{json.dumps(payload)}{end_cookie[::-1]}noise"


def is_info_probe(args: Sequence[str]) -> bool:
    return bool(args) and args[0].endswith("_interpreter_info.py")


class FakeProcess:
    def __init__(self, args: Sequence[str]) -> None:
        self.args = list(args)
        self.returncode = None


class FakeRunner:
    """A process runner answering from Python callables and recording every call."""

    def __init__(self, handler: Any = None, shell_handler: Any = None, delay: float = 0) -> None:
        self.handler = handler if handler is not None else (lambda _file, _args: None)
        self.shell_handler = shell_handler if shell_handler is not None else (lambda _command, _cwd: None)
        self.delay = delay
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.envs: list[Mapping[str, str] | None] = []
        self.shell_calls: list[tuple[str, str | None]] = []
        self.spawned: list[FakeProcess] = []

    def count(self, predicate: Callable[[str, tuple[str, ...]], bool]) -> int:
        return sum(1 for file, args in self.calls if predicate(file, args))

    async def exec(self, file, args, *, env=None, cwd=None, timeout=None) -> ExecutionResult:  # noqa: ARG002
        self.calls.append((file, tuple(args)))
        self.envs.append(env)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.handler(file, list(args))
        return FAILED if result is None else result

    async def exec_observable(self, file, args, *, env=None, cwd=None) -> FakeProcess:  # noqa: ARG002
        self.calls.append((file, tuple(args)))
        self.envs.append(env)
        process = FakeProcess([file, *args])
        self.spawned.append(process)
        return process

    async def shell_exec(self, command, *, cwd=None, timeout=None) -> ExecutionResult:  # noqa: ARG002
        self.shell_calls.append((command, cwd))
        result = self.shell_handler(command, cwd)
        return FAILED if result is None else result


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def probing_runner() -> FakeRunner:
    """Every interpreter answers the info probe with 3.8.3."""

    def handler(_file: str, args: list[str]) -> ExecutionResult | None:
        if is_info_probe(args):
            return ExecutionResult(info_output(args), "", 0)
        return None

    return FakeRunner(handler)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def settings(tmp_path: Path) -> DiscoverySettings:
    return DiscoverySettings(
        cache_dir=tmp_path / "cache",
        delay_on_created=0.01,
        poll_interval=0.01,
        shell_timeout=1,
    )


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    folder = tmp_path / "home"
    folder.mkdir()
    monkeypatch.setattr(Path, "home", classmethod(lambda _cls: folder))
    return folder


def make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("")
    path.chmod(0o755)
    return path


def bin_dir(env_dir: Path) -> Path:
    return env_dir / ("Scripts" if sys.platform == "win32" else "bin")


def python_exe(env_dir: Path) -> Path:
    return bin_dir(env_dir) / ("python.exe" if sys.platform == "win32" else "python")


def make_venv(env_dir: Path, *, cfg: bool = True, activate: bool = True, version: str = "3.8.3") -> Path:
    exe = make_executable(python_exe(env_dir))
    if cfg:
        (env_dir / "pyvenv.cfg").write_text(f"home = /usr/bin\nversion = {version}\n")
    if activate:
        (bin_dir(env_dir) / "activate").write_text("")
    return exe


@pytest.fixture
def clean_env(tmp_path: Path) -> dict[str, str]:
    """An environment that points every tool at empty folders below tmp_path."""
    empty = tmp_path / "empty-path"
    empty.mkdir(exist_ok=True)
    return {
        "PATH": str(empty),
        "WORKON_HOME": str(tmp_path / "workon"),
        "PYENV_ROOT": str(tmp_path / "pyenv"),
        "POETRY_VIRTUALENVS_PATH": str(tmp_path / "poetry"),
        "UV_PYTHON_INSTALL_DIR": str(tmp_path / "uv"),
    }



def interpreter(path: Any, version: Sequence[int] = (3, 8, 3), kind: EnvKind = EnvKind.VENV) -> CompleteRecord:
    return CompleteRecord(str(path), kind, PythonVersion(*version, prerelease=("final",)), Architecture.X64)


class FakeInterpreters:
    """Interpreter service answering from a fixed list of records."""

    def __init__(self, records: Sequence[CompleteRecord], active: str | None = None) -> None:
        self.records = list(records)
        self.active = active
        self.on_did_change_interpreter: Event[str] = Event("active-interpreter")

    async def get_interpreters(self, scope=None, options=None):  # noqa: ARG002
        return list(self.records)

    async def get_active_interpreter(self, scope=None):  # noqa: ARG002
        return await self.get_interpreter_details(self.active) if self.active else None

    async def get_interpreter_details(self, path):
        return next((record for record in self.records if record.path == str(path)), None)

    def set_active_interpreter(self, path, scope=None):  # noqa: ARG002
        if path != self.active:
            self.active = path
            self.on_did_change_interpreter.fire(path)
