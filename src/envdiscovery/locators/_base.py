"""Abstract base classes for interpreter locators."""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from abc import ABC, abstractmethod
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from envdiscovery._event import Event
from envdiscovery._externals import LocalFileSystem
from envdiscovery._info import EnvKind

from ._common import find_interpreters_in_dir, looks_like_basic_virtual_python

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from envdiscovery._externals import FileSystem
    from envdiscovery._info import DiscoveryOptions, PartialRecord

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocatorChangeEvent:
    scope: str | None = None
    #: the environment directory that appeared or vanished, ``None`` for "anything may have changed"
    path: str | None = None
    kind: EnvKind | None = None
    change: str = "changed"


class Locator(ABC):
    """Discover candidate interpreters of one origin."""

    #: identifies the records of this locator when several observations of one interpreter are merged
    source: str = "unknown"

    def __init__(self) -> None:
        self.on_did_change: Event[LocatorChangeEvent] = Event(type(self).__name__)

    @abstractmethod
    def iter_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,
    ) -> AsyncIterator[PartialRecord]:
        """Yield the interpreters this locator can see; may be called again at any time to start over.

        :param scope: workspace folder the search is relative to, ``None`` for global only
        """
        raise NotImplementedError

    async def start_watching(self) -> None:
        """Begin reporting changes through :attr:`on_did_change`."""

    async def dispose(self) -> None:
        """Stop watching and release resources."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(source={self.source!r})"


class FSWatchingLocator(Locator):
    """Locator whose environments live in a set of root folders that are polled for new or removed directories.

    Freshly created directories are classified only after ``delay_on_created`` seconds, giving the tool that creates
    the environment time to finish writing it.
    """

    def __init__(
        self,
        get_roots: Callable[[], Awaitable[list[str]]],
        get_kind: Callable[[str], Awaitable[EnvKind]],
        *,
        fs: FileSystem | None = None,
        delay_on_created: float = 1.0,
        poll_interval: float = 5.0,
    ) -> None:
        super().__init__()
        self._get_roots = get_roots
        self._get_kind = get_kind
        self._fs = fs if fs is not None else LocalFileSystem()
        self._delay_on_created = delay_on_created
        self._poll_interval = poll_interval
        self._watcher: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Task[None]] = {}

    async def start_watching(self) -> None:
        if self._watcher is None:
            self._watcher = asyncio.get_running_loop().create_task(self._watch(), name=f"{self!r}-watch")
            self._watcher.add_done_callback(self._task_done)

    async def dispose(self) -> None:
        tasks = [task for task in (self._watcher, *self._pending.values()) if task is not None]
        self._watcher = None
        self._pending.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _snapshot(self) -> set[str]:
        entries: set[str] = set()
        for root in await self._get_roots():
            with suppress(OSError):
                entries.update(entry for entry in self._fs.list_dir(root) if self._fs.is_dir(entry))
        return entries

    async def _watch(self) -> None:
        known = await self._snapshot()
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                current = await self._snapshot()
            except Exception:  # noqa: BLE001
                LOGGER.info("%r failed to poll its roots", self, exc_info=True)
                continue
            for removed in sorted(known - current):
                LOGGER.debug("%r saw %s go away", self, removed)
                self.on_did_change.fire(LocatorChangeEvent(path=removed, change="deleted"))
            for created in sorted(current - known):
                if created not in self._pending:
                    task = asyncio.get_running_loop().create_task(self._on_created(created))
                    task.add_done_callback(functools.partial(self._created_done, created))
                    self._pending[created] = task
            known = current

    async def _on_created(self, env_dir: str) -> None:
        await asyncio.sleep(self._delay_on_created)
        kind = EnvKind.UNKNOWN
        for executable in find_interpreters_in_dir(env_dir, self._fs, depth=1):
            if looks_like_basic_virtual_python(executable):
                kind = await self._get_kind(executable)
                break
        LOGGER.debug("%r saw %s appear as %s", self, env_dir, kind.value)
        self.on_did_change.fire(LocatorChangeEvent(path=env_dir, kind=kind, change="created"))

    def _created_done(self, env_dir: str, task: asyncio.Task[None]) -> None:
        if self._pending.get(env_dir) is task:
            del self._pending[env_dir]
        self._task_done(task)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            LOGGER.error("%r watch task failed", self, exc_info=exc)


def normalize_roots(roots: list[str], fs: FileSystem) -> list[str]:
    """Drop duplicates and folders that do not exist, keeping order."""
    seen: set[str] = set()
    result = []
    for root in roots:
        norm = os.path.normpath(os.path.expanduser(root))
        if norm in seen or not fs.is_dir(norm):
            continue
        seen.add(norm)
        result.append(norm)
    return result


async def collect(iterator: AsyncIterator[Any]) -> list[Any]:
    return [item async for item in iterator]


__all__ = [
    "FSWatchingLocator",
    "Locator",
    "LocatorChangeEvent",
    "collect",
    "normalize_roots",
]
