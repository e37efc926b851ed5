"""Discover the Python interpreters of a machine and run Jupyter with them."""

from __future__ import annotations

from ._cache import DiskStore, MemoryStore, NoOpStore, Store
from ._collection import EnvironmentsCollection, create_environments_collection
from ._errors import DiscoveryError, JupyterNotSupportedError, NotebookLaunchError, ProcessFailedError
from ._externals import AsyncProcessRunner, ExecutionResult, FileSystem, LocalFileSystem, ProcessRunner
from ._info import (
    Architecture,
    CompleteRecord,
    DiscoveryOptions,
    EnvironmentInfo,
    EnvKind,
    InterpreterType,
    PartialRecord,
    PythonVersion,
    Record,
)
from ._info_service import EnvironmentInfoService, Priority
from ._interpreters import InterpreterService
from ._merge import LOCATOR_ORDER, merge_environments, merge_records
from ._settings import DiscoverySettings
from ._storage import EnvironmentsStorage
from ._worker_pool import QueuePosition, WorkerPool

__all__ = [
    "LOCATOR_ORDER",
    "Architecture",
    "AsyncProcessRunner",
    "CompleteRecord",
    "DiscoveryError",
    "DiscoveryOptions",
    "DiscoverySettings",
    "DiskStore",
    "EnvKind",
    "EnvironmentInfo",
    "EnvironmentInfoService",
    "EnvironmentsCollection",
    "EnvironmentsStorage",
    "ExecutionResult",
    "FileSystem",
    "InterpreterService",
    "InterpreterType",
    "JupyterNotSupportedError",
    "LocalFileSystem",
    "MemoryStore",
    "NoOpStore",
    "NotebookLaunchError",
    "PartialRecord",
    "Priority",
    "ProcessFailedError",
    "ProcessRunner",
    "PythonVersion",
    "QueuePosition",
    "Record",
    "Store",
    "WorkerPool",
    "create_environments_collection",
    "merge_environments",
    "merge_records",
]
