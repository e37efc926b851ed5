"""Combine several partial observations of the same interpreter into one record."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ._compat import fs_path_id, normalize_path
from ._info import RECORD_FIELDS, Architecture, EnvKind, PartialRecord, promote

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from ._info import Record

INTERPRETER_INFO_SOURCE = "interpreter-info"

# Sources earlier in the list carry richer metadata (type, environment name, ...) and win on conflicts.
LOCATOR_ORDER: tuple[str, ...] = (
    INTERPRETER_INFO_SOURCE,
    "windows-registry",
    "conda",
    "conda-file",
    "pipenv",
    "global-venv",
    "workspace-venv",
    "known-path",
    "current-path",
)


def source_rank(source: str | None) -> int:
    try:
        return LOCATOR_ORDER.index(source)  # type: ignore[arg-type]
    except ValueError:
        return len(LOCATOR_ORDER)


def _is_empty(value: object) -> bool:
    # identity checks: both enums are str subclasses and would compare equal to a plain "unknown"
    return value is None or value == "" or value is EnvKind.UNKNOWN or value is Architecture.UNKNOWN


def merge_records(records: Sequence[Record]) -> Record:
    """Merge records describing the same interpreter.

    For every field the value of the record whose source ranks first in :data:`LOCATOR_ORDER` wins; records of equal
    rank keep their input order. Empty values (``None``, ``""``, ``unknown`` kind/architecture) never override a known
    value, but an ``unknown`` survives when nothing better was observed.
    """
    if not records:
        msg = "cannot merge an empty list of records"
        raise ValueError(msg)
    ordered = sorted(records, key=lambda r: source_rank(r.source))
    values: dict[str, object] = {}
    for name in RECORD_FIELDS:
        chosen = None
        for record in ordered:
            value = getattr(record, name)
            if value is None:
                continue
            if chosen is None or (_is_empty(chosen) and not _is_empty(value)):
                chosen = value
            if not _is_empty(chosen):
                break
        values[name] = chosen
    values["path"] = ordered[0].path
    return promote(PartialRecord(**values))  # type: ignore[arg-type]


def merge_environments(records: Iterable[Record]) -> list[Record]:
    """Group records by normalized path and merge each group, keeping first-seen order."""
    groups: dict[str, list[Record]] = {}
    for record in records:
        groups.setdefault(fs_path_id(normalize_path(record.path)), []).append(record)
    return [merge_records(group) for group in groups.values()]


__all__ = [
    "INTERPRETER_INFO_SOURCE",
    "LOCATOR_ORDER",
    "merge_environments",
    "merge_records",
    "source_rank",
]
