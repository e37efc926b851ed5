"""Store Protocol and built-in implementations for the persistent environment maps."""

from __future__ import annotations

import copy
import json
import logging
from contextlib import contextmanager, suppress
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class Store(Protocol):
    """A process-wide key-value store that survives restarts."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class DiskStore:
    """JSON file-based store with file locking.

    Layout: ``<root>/envs/1/<name>.json`` holding one JSON object keyed by store key.

    """

    def __init__(self, root: Path, name: str = "state") -> None:
        self._root = root
        self._name = name

    @property
    def _folder(self) -> Path:
        return self._root / "envs" / "1"

    @property
    def _file(self) -> Path:
        return self._folder / f"{self._name}.json"

    def get(self, key: str, default: Any = None) -> Any:
        with self.locked():
            data = self._read()
        if data is None or key not in data:
            return default
        return data[key]

    def set(self, key: str, value: Any) -> None:
        with self.locked():
            data = self._read() or {}
            data[key] = value
            self._write(data)

    def clear(self) -> None:
        with suppress(OSError):
            self._file.unlink()
        LOGGER.debug("removed environment state at %s", self._file)

    def _read(self) -> dict | None:
        data, bad_format = None, False
        try:
            data = json.loads(self._file.read_text(encoding="utf-8"))
        except ValueError:
            bad_format = True
        except OSError:
            LOGGER.debug("failed to read %s", self._file, exc_info=True)
        else:
            if isinstance(data, dict):
                return data
            bad_format = True
        if bad_format:
            LOGGER.debug("discarding malformed environment state at %s", self._file)
            self.clear()
        return None

    def _write(self, content: dict) -> None:
        self._folder.mkdir(parents=True, exist_ok=True)
        self._file.write_text(json.dumps(content, sort_keys=True, indent=2), encoding="utf-8")
        LOGGER.debug("wrote environment state at %s", self._file)

    @contextmanager
    def locked(self) -> Generator[None]:
        from filelock import FileLock  # noqa: PLC0415

        lock_path = self._folder / f"{self._name}.lock"
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(lock_path)):
            yield


class MemoryStore:
    """Store kept in process memory -- handy for tests and one-shot runs."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class NoOpStore:
    """Store that forgets everything -- used when persistence is disabled."""

    def get(self, key: str, default: Any = None) -> Any:  # noqa: ARG002
        return default

    def set(self, key: str, value: Any) -> None:
        pass


__all__ = [
    "DiskStore",
    "MemoryStore",
    "NoOpStore",
    "Store",
]
