"""Locators find candidate interpreters, each in one kind of place."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from envdiscovery._compat import IS_WIN
from envdiscovery._externals import LocalFileSystem

from ._base import FSWatchingLocator, Locator, LocatorChangeEvent, collect
from ._conda import CondaEnvFileLocator, CondaEnvLocator, CondaService
from ._path import CurrentPathLocator, KnownPathsLocator, get_known_search_paths
from ._pipenv import PipenvLocator
from ._poetry import PoetryLocator
from ._virtualenv import EnvironmentClassifier, GlobalVirtualEnvLocator, WorkspaceVirtualEnvLocator
from ._windows import WindowsRegistryLocator

if TYPE_CHECKING:
    from collections.abc import Mapping

    from envdiscovery._externals import FileSystem, ProcessRunner
    from envdiscovery._settings import DiscoverySettings


def create_default_locators(
    settings: DiscoverySettings,
    runner: ProcessRunner,
    fs: FileSystem | None = None,
    env: Mapping[str, str] | None = None,
    workspace: str | None = None,
    conda_service: CondaService | None = None,
) -> list[Locator]:
    """Every locator this platform supports, in the order their results are reported."""
    fs = LocalFileSystem() if fs is None else fs
    env = os.environ if env is None else env
    conda_service = CondaService(runner, settings, fs, env) if conda_service is None else conda_service
    classifier = EnvironmentClassifier(fs, runner, settings, env)
    locators: list[Locator] = []
    if IS_WIN:
        locators.append(WindowsRegistryLocator(fs))
    locators.extend(
        [
            CondaEnvLocator(conda_service, settings, fs),
            CondaEnvFileLocator(conda_service, fs),
            PipenvLocator(runner, settings, fs, env),
            GlobalVirtualEnvLocator(classifier, settings, fs, env),
            WorkspaceVirtualEnvLocator(classifier, settings, fs, workspace),
            PoetryLocator(runner, settings, fs, workspace),
            KnownPathsLocator(settings, fs, env),
            CurrentPathLocator(runner, settings, fs),
        ],
    )
    return locators


__all__ = [
    "CondaEnvFileLocator",
    "CondaEnvLocator",
    "CondaService",
    "CurrentPathLocator",
    "EnvironmentClassifier",
    "FSWatchingLocator",
    "GlobalVirtualEnvLocator",
    "KnownPathsLocator",
    "Locator",
    "LocatorChangeEvent",
    "PipenvLocator",
    "PoetryLocator",
    "WindowsRegistryLocator",
    "WorkspaceVirtualEnvLocator",
    "collect",
    "create_default_locators",
    "get_known_search_paths",
]
