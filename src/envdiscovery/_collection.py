"""Run the locators and hand what they find to the environment storage."""

from __future__ import annotations

import asyncio
import logging
import os
from functools import partial
from typing import TYPE_CHECKING, Any

from ._cache import DiskStore, NoOpStore
from ._event import Event
from ._externals import AsyncProcessRunner, LocalFileSystem
from ._info_service import EnvironmentInfoService
from ._settings import DiscoverySettings
from ._storage import EnvironmentsStorage
from .locators import create_default_locators
from .locators._common import is_hidden_interpreter

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Iterable, Mapping

    from ._cache import Store
    from ._externals import FileSystem, ProcessRunner
    from ._info import DiscoveryOptions, Record
    from .locators import CondaService, Locator, LocatorChangeEvent

LOGGER = logging.getLogger(__name__)


class EnvironmentsCollection:
    """Facilitates locating Python interpreters.

    The locators are queried in the order given; when the same interpreter is reported more than once the metadata of
    locators earlier in the list wins.
    """

    def __init__(self, locators: Iterable[Locator], storage: EnvironmentsStorage) -> None:
        self._locators = list(locators)
        self._storage = storage
        self._tasks: set[asyncio.Task[Any]] = set()
        self._watching = False
        self.on_did_change: Event[None] = Event("environments-collection")
        self._subscriptions: list[Callable[[], None]] = [storage.on_did_change.subscribe(self.on_did_change.fire)]
        for locator in self._locators:
            self._subscriptions.append(locator.on_did_change.subscribe(partial(self._on_locator_changed, locator)))

    @property
    def locators(self) -> list[Locator]:
        return list(self._locators)

    @property
    def storage(self) -> EnvironmentsStorage:
        return self._storage

    async def get_environments(
        self,
        scope: str | None = None,
        options: DiscoveryOptions | None = None,
    ) -> list[Record]:
        """Return the known interpreters, starting a fresh discovery round in the background.

        Returns as soon as at least one interpreter is known; an empty list means every locator finished without
        finding anything. With ``options.get_all_environments`` every locator is waited for.
        """
        await self.start_watching()
        discovery = self._spawn(self._discover(self._locators, scope, options))
        if options is not None and options.get_all_environments:
            await asyncio.shield(discovery)
        return await self._storage.get_environments(asyncio.shield(discovery))

    async def add_path(self, interpreter_path: str) -> None:
        """Add an interpreter the user pointed at explicitly, probing it ahead of everything queued."""
        await self._storage.add_path(interpreter_path)

    async def start_watching(self) -> None:
        if self._watching:
            return
        self._watching = True
        for locator in self._locators:
            await locator.start_watching()

    async def _discover(
        self,
        locators: Iterable[Locator],
        scope: str | None,
        options: DiscoveryOptions | None,
    ) -> None:
        await asyncio.gather(*(self._run_locator(locator, scope, options) for locator in locators))

    async def _run_locator(self, locator: Locator, scope: str | None, options: DiscoveryOptions | None) -> None:
        found = 0
        try:
            async for record in locator.iter_environments(scope, options):
                if is_hidden_interpreter(record.path):
                    LOGGER.debug("%r: [hidden] %s", locator, record.path)
                    continue
                found += 1
                await self._storage.add_partial_info(record, options)
        except Exception:
            LOGGER.exception("%r failed to locate environments", locator)
        LOGGER.info("%r found %d environment(s)", locator, found)

    def _on_locator_changed(self, locator: Locator, event: LocatorChangeEvent) -> None:
        LOGGER.debug("%r reported %s of %s", locator, event.change, event.path)
        if event.change == "deleted":
            # stale entries are pruned on the next enumeration, consumers only need to ask again
            self.on_did_change.fire(None)
            return
        self._spawn(self._run_locator(locator, event.scope, None))

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
            LOGGER.error("environment discovery task failed", exc_info=exc)

    async def aclose(self) -> None:
        """Stop watching, wait for running discovery and enrichment to finish."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        for locator in self._locators:
            await locator.dispose()
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._storage.aclose()


def create_store(settings: DiscoverySettings) -> Store:
    if settings.no_cache:
        return NoOpStore()
    return DiskStore(settings.cache_dir)


def create_environments_collection(
    settings: DiscoverySettings | None = None,
    *,
    runner: ProcessRunner | None = None,
    fs: FileSystem | None = None,
    env: Mapping[str, str] | None = None,
    workspace: str | None = None,
    store: Store | None = None,
    info_service: EnvironmentInfoService | None = None,
    conda_service: CondaService | None = None,
) -> EnvironmentsCollection:
    """Wire the default locators, a persistent store and an interpreter info service together."""
    settings = DiscoverySettings.from_env(env) if settings is None else settings
    runner = AsyncProcessRunner() if runner is None else runner
    fs = LocalFileSystem() if fs is None else fs
    env = os.environ if env is None else env
    store = create_store(settings) if store is None else store
    if info_service is None:
        info_service = EnvironmentInfoService(runner, settings.num_workers)
    storage = EnvironmentsStorage(store, info_service, fs)
    locators = create_default_locators(settings, runner, fs, env, workspace, conda_service)
    return EnvironmentsCollection(locators, storage)


__all__ = [
    "EnvironmentsCollection",
    "create_environments_collection",
    "create_store",
]
