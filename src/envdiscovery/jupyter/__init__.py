"""Run Jupyter tools with the discovered interpreters."""

from __future__ import annotations

from ._command import (
    COMMANDS,
    CONVERT_COMMAND,
    KERNEL_CREATE_COMMAND,
    KERNEL_SPEC_COMMAND,
    NOTEBOOK_COMMAND,
    JupyterCommand,
)
from ._execution import JupyterConnection, JupyterExecution, NotebookLaunch
from ._kernel_spec import KernelSpec, parse_install_output, parse_kernel_spec_list
from ._scoring import find_spec_match, score_interpreter_for_notebooks, score_kernel_spec

__all__ = [
    "COMMANDS",
    "CONVERT_COMMAND",
    "KERNEL_CREATE_COMMAND",
    "KERNEL_SPEC_COMMAND",
    "NOTEBOOK_COMMAND",
    "JupyterCommand",
    "JupyterConnection",
    "JupyterExecution",
    "KernelSpec",
    "NotebookLaunch",
    "find_spec_match",
    "parse_install_output",
    "parse_kernel_spec_list",
    "score_interpreter_for_notebooks",
    "score_kernel_spec",
]
