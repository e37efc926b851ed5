"""User configurable knobs, read from ``ENVDISCOVERY_*`` environment variables with per-workspace overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from platformdirs import user_cache_path

if TYPE_CHECKING:
    from collections.abc import Mapping

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "ENVDISCOVERY_"


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.replace(",", os.pathsep).split(os.pathsep) if item.strip()]


def _bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DiscoverySettings:
    venv_path: str | None = None
    venv_folders: tuple[str, ...] = ()
    poetry_path: str = "poetry"
    pipenv_path: str = "pipenv"
    conda_path: str | None = None
    python_path: str = "python"
    search_paths: tuple[str, ...] = ()
    shell_timeout: float = 15.0
    num_workers: int = 2
    delay_on_created: float = 1.0
    poll_interval: float = 5.0
    cache_dir: Path = field(default_factory=lambda: user_cache_path("envdiscovery", appauthor=False))
    no_cache: bool = False
    workspace_overrides: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> DiscoverySettings:
        env = os.environ if env is None else env
        values: dict[str, Any] = {}
        for setting in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{setting.name.upper()}")
            if raw is None or setting.name == "workspace_overrides":
                continue
            try:
                values[setting.name] = _convert(setting.name, raw)
            except ValueError:
                LOGGER.warning("ignoring invalid value %r for %s%s", raw, ENV_PREFIX, setting.name.upper())
        values.update(overrides)
        return cls(**values)

    def for_scope(self, scope: str | None) -> DiscoverySettings:
        """:returns: the settings as seen from inside the workspace folder *scope*"""
        if scope is None:
            return self
        overrides = self.workspace_overrides.get(os.path.normpath(scope)) or self.workspace_overrides.get(scope)
        if not overrides:
            return self
        return replace(self, **{key: _coerce(key, value) for key, value in overrides.items()})

    def get(self, key: str, scope: str | None = None, default: Any = None) -> Any:
        return getattr(self.for_scope(scope), key, default)


_LIST_SETTINGS = {"venv_folders", "search_paths"}
_FLOAT_SETTINGS = {"shell_timeout", "delay_on_created", "poll_interval"}


def _convert(name: str, raw: str) -> Any:
    if name in _LIST_SETTINGS:
        return tuple(_split_list(raw))
    if name in _FLOAT_SETTINGS:
        return float(raw)
    if name == "num_workers":
        return max(1, int(raw))
    if name == "cache_dir":
        return Path(raw).expanduser()
    if name == "no_cache":
        return _bool(raw)
    return raw


def _coerce(name: str, value: Any) -> Any:
    if isinstance(value, str):
        return _convert(name, value)
    if name in _LIST_SETTINGS:
        return tuple(value)
    return value


__all__ = [
    "ENV_PREFIX",
    "DiscoverySettings",
]
