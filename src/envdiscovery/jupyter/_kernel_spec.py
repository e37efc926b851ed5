"""Jupyter kernel specs as listed by ``jupyter kernelspec list`` and written by ``ipykernel install``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from envdiscovery._externals import FileSystem

LOGGER = logging.getLogger(__name__)

#: ``  python3    /usr/share/jupyter/kernels/python3``
KERNEL_SPEC_OUTPUT_RE = re.compile(r"^\s+(\S+)\s*(\S+)$")
#: ``Installed kernelspec <name> in <dir>``, the folder is the last word
PY_KERNEL_OUTPUT_RE = re.compile(r".*\s+(.+)$", re.MULTILINE)

KERNEL_FILE = "kernel.json"


@dataclass(frozen=True)
class KernelSpec:
    name: str
    language: str
    #: the interpreter the kernel is started with (``argv[0]``), empty when the spec has no argv
    path: str
    spec_file: str | None = None
    display_name: str | None = None

    @classmethod
    def from_model(cls, model: dict[str, Any], spec_file: str | None = None) -> KernelSpec:
        argv = model.get("argv") or []
        return cls(
            name=str(model.get("name", "")),
            language=str(model.get("language", "")),
            path=str(argv[0]) if argv else "",
            spec_file=spec_file,
            display_name=model.get("display_name"),
        )


def parse_kernel_spec_list(stdout: str) -> list[tuple[str, str]]:
    """:returns: ``(name, folder)`` pairs, the header line and anything unexpected are skipped"""
    result = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        if match := KERNEL_SPEC_OUTPUT_RE.match(line):
            result.append((match.group(1), match.group(2)))
    return result


def parse_install_output(stdout: str) -> str | None:
    """:returns: the ``kernel.json`` an ``ipykernel install`` run reports to have written"""
    match = PY_KERNEL_OUTPUT_RE.search(stdout.strip())
    if match is None:
        return None
    return os.path.join(match.group(1).strip(), KERNEL_FILE)


def read_kernel_spec(name: str, spec_dir: str, fs: FileSystem) -> KernelSpec | None:
    spec_file = os.path.join(spec_dir, KERNEL_FILE)
    if not fs.exists(spec_file):
        LOGGER.debug("kernel spec %s has no %s", name, spec_file)
        return None
    try:
        model = fs.read_json(spec_file)
    except (OSError, ValueError):
        LOGGER.info("cannot read kernel spec %s", spec_file, exc_info=True)
        return None
    if not isinstance(model, dict):
        return None
    model["name"] = name
    return KernelSpec.from_model(model, spec_file)


def rewrite_interpreter(spec_file: str, interpreter_path: str, fs: FileSystem) -> None:
    """Point an on-disk kernel spec at another interpreter."""
    model = fs.read_json(spec_file)
    argv = list(model.get("argv") or [])
    if argv:
        argv[0] = interpreter_path
    else:
        argv = [interpreter_path, "-m", "ipykernel_launcher", "-f", "{connection_file}"]
    model["argv"] = argv
    fs.write_json(spec_file, model)


__all__ = [
    "KERNEL_FILE",
    "KERNEL_SPEC_OUTPUT_RE",
    "PY_KERNEL_OUTPUT_RE",
    "KernelSpec",
    "parse_install_output",
    "parse_kernel_spec_list",
    "read_kernel_spec",
    "rewrite_interpreter",
]
