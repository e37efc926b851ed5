"""A Jupyter tool invocation that was found to work on this machine."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from envdiscovery._info import EnvKind

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Mapping, Sequence

    from envdiscovery._externals import ExecutionResult, ProcessRunner
    from envdiscovery._interpreters import InterpreterService
    from envdiscovery.locators import CondaService

LOGGER = logging.getLogger(__name__)

NOTEBOOK_COMMAND = "notebook"
CONVERT_COMMAND = "nbconvert"
KERNEL_SPEC_COMMAND = "kernelspec"
KERNEL_CREATE_COMMAND = "ipykernel"

COMMANDS = (NOTEBOOK_COMMAND, CONVERT_COMMAND, KERNEL_SPEC_COMMAND, KERNEL_CREATE_COMMAND)


async def fixup_conda_env(
    interpreters: InterpreterService,
    conda: CondaService | None,
    env: Mapping[str, str] | None,
) -> Mapping[str, str]:
    """Conda environments only work once activated, so activate the active one for every child process."""
    base = os.environ if env is None else env
    if conda is None:
        return base
    active = await interpreters.get_active_interpreter()
    if active is not None and active.kind is EnvKind.CONDA:
        return await conda.get_activated_environment(active, base)
    return base


class JupyterCommand:
    """Run one jupyter sub-command through ``exe`` followed by ``required_args``."""

    def __init__(
        self,
        exe: str,
        required_args: Sequence[str],
        runner: ProcessRunner,
        interpreters: InterpreterService,
        conda: CondaService | None = None,
    ) -> None:
        self.exe = exe
        self.required_args = list(required_args)
        self._runner = runner
        self._interpreters = interpreters
        self._conda = conda
        self._main_version: int | None = None

    async def main_version(self) -> int:
        """Major python version of ``exe``, ``0`` when it is not an interpreter."""
        if self._main_version is None:
            details = await self._interpreters.get_interpreter_details(self.exe)
            self._main_version = details.version.major if details is not None and details.version is not None else 0
        return self._main_version

    async def exec(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        fixed = await fixup_conda_env(self._interpreters, self._conda, env)
        return await self._runner.exec(self.exe, [*self.required_args, *args], env=fixed, cwd=cwd, timeout=timeout)

    async def exec_observable(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> asyncio.subprocess.Process:
        fixed = await fixup_conda_env(self._interpreters, self._conda, env)
        return await self._runner.exec_observable(self.exe, [*self.required_args, *args], env=fixed, cwd=cwd)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({' '.join([self.exe, *self.required_args])})"


__all__ = [
    "COMMANDS",
    "CONVERT_COMMAND",
    "KERNEL_CREATE_COMMAND",
    "KERNEL_SPEC_COMMAND",
    "NOTEBOOK_COMMAND",
    "JupyterCommand",
    "fixup_conda_env",
]
