"""Two-tier (partial / complete) interpreter storage backed by a persistent :class:`Store`."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ._compat import normalize_path
from ._event import Event
from ._externals import LocalFileSystem
from ._info import (
    CompleteRecord,
    PartialRecord,
    as_partial,
    is_complete,
    record_from_dict,
    record_to_dict,
    with_path,
)
from ._info_service import Priority
from ._merge import INTERPRETER_INFO_SOURCE, merge_environments, merge_records

if TYPE_CHECKING:
    from collections.abc import Awaitable, Coroutine

    from ._cache import Store
    from ._externals import FileSystem
    from ._info import DiscoveryOptions, EnvironmentInfo, Record
    from ._info_service import EnvironmentInfoService

LOGGER = logging.getLogger(__name__)

PARTIAL_INFO_KEY = "PARTIAL_INFO_ENVIRONMENT_MAP_KEY"
COMPLETE_INFO_KEY = "COMPLETE_INFO_ENVIRONMENT_MAP_KEY"


class EnvironmentsStorage:
    """Owns the partial and complete interpreter maps; the only writer of both.

    A path is in at most one partial and one complete slot at a time, and a complete record is never replaced by a
    later partial observation.
    """

    def __init__(
        self,
        store: Store,
        environments_info: EnvironmentInfoService,
        file_system: FileSystem | None = None,
    ) -> None:
        self._store = store
        self._environments_info = environments_info
        self._fs = file_system if file_system is not None else LocalFileSystem()
        self._partial: dict[str, Record] = {}
        self._complete: dict[str, Record] = {}
        self._load()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._populated = asyncio.Event()
        if self._partial or self._complete:
            self._populated.set()
        self.on_did_change: Event[None] = Event("environments-storage")

    def _load(self) -> None:
        for key, target in ((PARTIAL_INFO_KEY, self._partial), (COMPLETE_INFO_KEY, self._complete)):
            for path, data in (self._store.get(key, {}) or {}).items():
                try:
                    record = record_from_dict(data)
                except (KeyError, TypeError, ValueError):
                    LOGGER.debug("dropping malformed stored environment %s", path, exc_info=True)
                    continue
                if target is self._complete and is_complete(record):
                    self._complete[path] = record
                else:
                    self._partial[path] = as_partial(record)
        for path in self._complete:
            self._partial.pop(path, None)
        LOGGER.debug("loaded %d partial and %d complete environments", len(self._partial), len(self._complete))

    def _save(self) -> None:
        self._store.set(PARTIAL_INFO_KEY, {path: record_to_dict(r) for path, r in self._partial.items()})
        self._store.set(COMPLETE_INFO_KEY, {path: record_to_dict(r) for path, r in self._complete.items()})

    @property
    def partial(self) -> dict[str, Record]:
        return dict(self._partial)

    @property
    def complete(self) -> dict[str, Record]:
        return dict(self._complete)

    async def get_environments(self, all_stored: Awaitable[Any] | None = None) -> list[Record]:
        """Return what is stored, doing its best to return at least one environment.

        :param all_stored: resolves once every locator finished and its results were handed to this storage; an empty
            list is only returned after it resolved without anything being stored
        """
        self._remove_invalid_entries()
        if all_stored is not None and not self._populated.is_set():
            populated = asyncio.ensure_future(self._populated.wait())
            stored = asyncio.ensure_future(all_stored)
            try:
                await asyncio.wait({populated, stored}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                populated.cancel()
            if stored.done() and not stored.cancelled() and stored.exception() is not None:
                LOGGER.error("environment discovery failed", exc_info=stored.exception())
        return merge_environments([*self._partial.values(), *self._complete.values()])

    async def add_partial_info(
        self,
        record: Record,
        options: DiscoveryOptions | None = None,
        priority: Priority = Priority.DEFAULT,
    ) -> None:
        record = as_partial(with_path(record, normalize_path(record.path)))
        path = record.path
        if path in self._complete:
            return
        info = asyncio.ensure_future(self._environments_info.get_environment_info(path, priority))
        if (stored := self._partial.get(path)) is not None:
            record = as_partial(merge_records([stored, record]))
        enrichment = self._spawn(self._store_complete_info(record, info))
        if options is not None and options.get_complete_info:
            await asyncio.shield(enrichment)
            return
        self._partial[path] = record
        self._save()
        self._populated.set()
        self.on_did_change.fire(None)

    async def add_path(self, interpreter_path: str) -> None:
        await self.add_partial_info(PartialRecord(path=interpreter_path), priority=Priority.HIGH)

    async def _store_complete_info(self, record: Record, info_future: Awaitable[EnvironmentInfo | None]) -> None:
        environment_info = await info_future
        path = record.path
        # state may have moved on while the interpreter was running
        current = self._partial.get(path, record)
        if path in self._complete:
            if self._partial.pop(path, None) is not None:
                self._save()
            return
        if environment_info is None:
            LOGGER.debug("keeping %s as partial, interpreter could not be queried", path)
            if self._partial.get(path) != current:
                # the caller waited for complete info and nothing was stored yet
                self._partial[path] = current
                self._save()
                self._populated.set()
                self.on_did_change.fire(None)
            return
        merged = merge_records([environment_info.to_record(INTERPRETER_INFO_SOURCE), current])
        merged = with_path(merged, path)
        if isinstance(merged, CompleteRecord):
            self._complete[path] = merged
            self._partial.pop(path, None)
        else:
            self._partial[path] = as_partial(merged)
        self._save()
        self._populated.set()
        self.on_did_change.fire(None)

    def _remove_invalid_entries(self) -> None:
        changed = False
        for mapping in (self._partial, self._complete):
            for path in list(mapping):
                if not self._fs.exists(path):
                    LOGGER.debug("forgetting %s, it no longer exists", path)
                    del mapping[path]
                    changed = True
        if changed:
            self._save()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            LOGGER.error("background environment task failed", exc_info=exc)

    async def aclose(self) -> None:
        """Wait for outstanding enrichment work."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


__all__ = [
    "COMPLETE_INFO_KEY",
    "PARTIAL_INFO_KEY",
    "EnvironmentsStorage",
]
