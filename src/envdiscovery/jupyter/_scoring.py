"""Rank kernel specs against an interpreter, and interpreters against the active one."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from envdiscovery._compat import paths_same

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from envdiscovery._info import Record

    from ._kernel_spec import KernelSpec

LOGGER = logging.getLogger(__name__)

_TRAILING_DIGITS = re.compile(r"\D+(\d+)$")


def score_kernel_spec(spec: KernelSpec, target: Record | None, details: Record | None) -> int:
    """How well *spec* would run code meant for *target*.

    :param details: what is known about the interpreter the spec points at, ``None`` when that is not a real file
    """
    score = 0
    if spec.path and target is not None and paths_same(spec.path, target.path):
        score += 10
    if spec.language.lower() != "python":
        return score
    score += 1
    version = None if target is None else target.version
    if version is None:
        return score
    if details is not None and details.version is not None:
        theirs = details.version
        if theirs.major == version.major:
            score += 4
            if theirs.minor == version.minor:
                score += 2
                if theirs.patch == version.patch:
                    score += 1
    elif details is None and (match := _TRAILING_DIGITS.search(spec.name)) and int(match.group(1)) == version.major:
        # e.g. a spec named python3 that runs whatever "python" means for jupyter
        score += 4
    return score


async def find_spec_match(
    specs: Sequence[KernelSpec],
    target: Record | None,
    get_details: Callable[[str], Awaitable[Record | None]],
) -> KernelSpec | None:
    """Highest scoring spec, the earlier one on ties.

    When nothing scores above zero the first spec is returned anyway, whether it fits or not.
    """
    best_score = 0
    best_spec = None
    for spec in specs:
        details = await get_details(spec.path) if spec.path else None
        score = score_kernel_spec(spec, target, details)
        LOGGER.debug("kernel spec %s scores %d", spec.name, score)
        if score > best_score:
            best_score = score
            best_spec = spec
    if best_spec is None and specs:
        best_spec = specs[0]
    return best_spec


def score_interpreter_for_notebooks(candidate: Record, active: Record, *, has_module: bool) -> int:
    if not has_module:
        return 0
    score = 1
    if candidate.version is not None and active.version is not None:
        theirs, ours = candidate.version.version_info, active.version.version_info
        for position, points in enumerate((32, 16, 8, 4)):
            if theirs[position] != ours[position]:
                break
            score += points
    if candidate.kind is not None and candidate.kind == active.kind:
        score += 1
    return score


__all__ = [
    "find_spec_match",
    "score_interpreter_for_notebooks",
    "score_kernel_spec",
]
