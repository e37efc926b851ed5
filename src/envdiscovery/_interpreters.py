"""Track which interpreter is active and answer questions about interpreters for the rest of the package."""

from __future__ import annotations

import logging
import os
import shutil
from typing import TYPE_CHECKING

from ._compat import normalize_path, paths_same
from ._event import Event
from ._info_service import Priority
from ._merge import INTERPRETER_INFO_SOURCE, merge_records
from ._settings import DiscoverySettings
from .locators._common import get_paths

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._collection import EnvironmentsCollection
    from ._info import DiscoveryOptions, Record
    from ._info_service import EnvironmentInfoService

LOGGER = logging.getLogger(__name__)


class InterpreterService:
    def __init__(
        self,
        collection: EnvironmentsCollection,
        info_service: EnvironmentInfoService,
        settings: DiscoverySettings | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._collection = collection
        self._info_service = info_service
        self._settings = DiscoverySettings() if settings is None else settings
        self._env = os.environ if env is None else env
        self._active: dict[str | None, str] = {}
        #: fired with the path of the newly selected interpreter
        self.on_did_change_interpreter: Event[str] = Event("active-interpreter")

    async def get_interpreters(self, scope: str | None = None, options: DiscoveryOptions | None = None) -> list[Record]:
        return await self._collection.get_environments(scope, options)

    def get_active_interpreter_path(self, scope: str | None = None) -> str | None:
        if (path := self._active.get(scope, self._active.get(None))) is not None:
            return path
        python_path = self._settings.for_scope(scope).python_path
        if os.path.isabs(python_path):
            return python_path
        return shutil.which(python_path, path=os.pathsep.join(get_paths(self._env)))

    async def get_active_interpreter(self, scope: str | None = None) -> Record | None:
        path = self.get_active_interpreter_path(scope)
        if path is None:
            LOGGER.info("no active interpreter for %s", scope or "global scope")
            return None
        return await self.get_interpreter_details(path)

    def set_active_interpreter(self, interpreter_path: str, scope: str | None = None) -> None:
        previous = self._active.get(scope)
        if previous is not None and paths_same(previous, interpreter_path):
            return
        self._active[scope] = interpreter_path
        LOGGER.info("active interpreter is now %s", interpreter_path)
        self.on_did_change_interpreter.fire(interpreter_path)

    async def get_interpreter_details(self, interpreter_path: str) -> Record | None:
        """Everything known about one interpreter, running it if it was never queried before.

        :returns: ``None`` when the interpreter cannot be executed
        """
        path = normalize_path(interpreter_path)
        storage = self._collection.storage
        if (complete := storage.complete.get(path)) is not None:
            return complete
        info = await self._info_service.get_environment_info(path, Priority.HIGH)
        if info is None:
            return None
        records = [info.to_record(INTERPRETER_INFO_SOURCE)]
        if (partial := storage.partial.get(path)) is not None:
            records.append(partial)
        return merge_records(records)


__all__ = [
    "InterpreterService",
]
