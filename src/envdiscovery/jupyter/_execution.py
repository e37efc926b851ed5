"""Find a way to run Jupyter with the interpreters of this machine and keep kernel specs pointing at them."""

from __future__ import annotations

import json
import logging
import os
import re
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from envdiscovery._compat import IS_WIN, paths_same
from envdiscovery._errors import JupyterNotSupportedError, NotebookLaunchError
from envdiscovery._externals import AsyncProcessRunner, LocalFileSystem
from envdiscovery._settings import DiscoverySettings
from envdiscovery.locators import get_known_search_paths

from ._command import (
    CONVERT_COMMAND,
    KERNEL_CREATE_COMMAND,
    KERNEL_SPEC_COMMAND,
    NOTEBOOK_COMMAND,
    JupyterCommand,
    fixup_conda_env,
)
from ._kernel_spec import parse_install_output, parse_kernel_spec_list, read_kernel_spec, rewrite_interpreter
from ._scoring import find_spec_match, score_interpreter_for_notebooks

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Mapping

    from envdiscovery._externals import FileSystem, ProcessRunner
    from envdiscovery._info import Record
    from envdiscovery._interpreters import InterpreterService
    from envdiscovery.locators import CondaService

    from ._kernel_spec import KernelSpec

LOGGER = logging.getLogger(__name__)

CHECK_JUPYTER_RE = re.compile(r"^jupyter\.exe$" if IS_WIN else r"^jupyter$", re.IGNORECASE)
DEFAULT_DISPLAY_NAME = "Python Interactive"

_SERVER_INFO_SCRIPT = """\
import json
try:
    from jupyter_server.serverapp import list_running_servers
except ImportError:
    from notebook.notebookapp import list_running_servers
print(json.dumps(list(list_running_servers())))
"""


class JupyterConnection(Protocol):
    """A running Jupyter server that can report the kernel specs it knows about."""

    async def get_kernel_specs(self) -> list[KernelSpec]: ...


@dataclass
class NotebookLaunch:
    """A started notebook server; the caller waits for its connection details and owns the process."""

    process: asyncio.subprocess.Process
    notebook_file: str
    kernel_spec: KernelSpec | None
    main_version: int


class JupyterExecution:
    def __init__(
        self,
        interpreters: InterpreterService,
        runner: ProcessRunner | None = None,
        conda: CondaService | None = None,
        fs: FileSystem | None = None,
        settings: DiscoverySettings | None = None,
        env: Mapping[str, str] | None = None,
        display_name: str = DEFAULT_DISPLAY_NAME,
    ) -> None:
        self._interpreters = interpreters
        self._runner = AsyncProcessRunner() if runner is None else runner
        self._conda = conda
        self._fs = LocalFileSystem() if fs is None else fs
        self._settings = DiscoverySettings() if settings is None else settings
        self._env = os.environ if env is None else env
        self._display_name = display_name
        self._commands: dict[str, JupyterCommand] = {}
        self._jupyter_path: str | None = None
        self._usable_interpreter: Record | None = None
        #: bumped on every interpreter change, lookups started under an older value are not cached
        self._generation = 0
        self._created_specs: list[str] = []
        self._temp_dirs: list[str] = []
        self._unsubscribe = interpreters.on_did_change_interpreter.subscribe(self._on_interpreter_changed)

    def _on_interpreter_changed(self, interpreter_path: str) -> None:
        LOGGER.debug("active interpreter changed to %s, forgetting resolved jupyter commands", interpreter_path)
        self._generation += 1
        self._commands.clear()
        self._jupyter_path = None
        self._usable_interpreter = None

    async def resolve_command(self, command: str) -> JupyterCommand | None:
        """Find a way to run *command*, trying the active interpreter, then every other one, then ``PATH``."""
        if (found := self._commands.get(command)) is not None:
            return found
        generation = self._generation
        active = await self._interpreters.get_active_interpreter()
        found = await self._find_interpreter_command(command, active) if active is not None else None
        if found is None:
            for interpreter in await self._interpreters.get_interpreters():
                if active is not None and paths_same(interpreter.path, active.path):
                    continue
                if (found := await self._find_interpreter_command(command, interpreter)) is not None:
                    break
        if found is None:
            found = await self._find_path_command(command)
        if found is None:
            return None
        if generation != self._generation:
            LOGGER.debug("dropping %r for jupyter %s, the active interpreter changed meanwhile", found, command)
            return found
        LOGGER.info("resolved jupyter %s to %r", command, found)
        self._commands[command] = found
        return found

    async def require_command(self, command: str) -> JupyterCommand:
        if (found := await self.resolve_command(command)) is None:
            raise JupyterNotSupportedError(command)
        return found

    async def is_command_supported(self, command: str) -> bool:
        try:
            return await self.resolve_command(command) is not None
        except Exception:  # noqa: BLE001
            LOGGER.warning("cannot check whether jupyter %s is supported", command, exc_info=True)
            return False

    async def is_notebook_supported(self) -> bool:
        return await self.is_command_supported(NOTEBOOK_COMMAND)

    async def is_import_supported(self) -> bool:
        return await self.is_command_supported(CONVERT_COMMAND)

    async def is_kernel_create_supported(self) -> bool:
        return await self.is_command_supported(KERNEL_CREATE_COMMAND)

    async def is_kernel_spec_supported(self) -> bool:
        return await self.is_command_supported(KERNEL_SPEC_COMMAND)

    async def does_module_exist(self, module: str, interpreter: Record | None) -> bool:
        if interpreter is None:
            return False
        # ipykernel is not a jupyter sub-command
        args = [module] if module == KERNEL_CREATE_COMMAND else ["jupyter", module]
        args = ["-m", *args, "--version"]
        env = await fixup_conda_env(self._interpreters, self._conda, None)
        result = await self._runner.exec(interpreter.path, args, env=env, timeout=self._settings.shell_timeout)
        if not result.ok:
            LOGGER.debug("%s cannot run %s: %s", interpreter.path, module, result.stderr.strip())
        return result.ok

    async def _find_interpreter_command(self, command: str, interpreter: Record) -> JupyterCommand | None:
        if not await self.does_module_exist(command, interpreter):
            return None
        args = ["-m", command] if command == KERNEL_CREATE_COMMAND else ["-m", "jupyter", command]
        return JupyterCommand(interpreter.path, args, self._runner, self._interpreters, self._conda)

    async def _search_paths_for_jupyter(self) -> str | None:
        if self._jupyter_path is None:
            for folder in get_known_search_paths(self._settings, self._env):
                try:
                    entries = self._fs.list_dir(folder)
                except OSError:
                    LOGGER.debug("cannot look for jupyter in %s", folder)
                    continue
                if found := [entry for entry in entries if CHECK_JUPYTER_RE.match(os.path.basename(entry))]:
                    self._jupyter_path = found[0]
                    break
        return self._jupyter_path

    async def _find_path_command(self, command: str) -> JupyterCommand | None:
        jupyter = await self._search_paths_for_jupyter()
        if jupyter is None:
            return None
        result = await self._runner.exec(jupyter, [command, "--version"], timeout=self._settings.shell_timeout)
        if not result.ok:
            LOGGER.debug("%s cannot run %s: %s", jupyter, command, result.stderr.strip())
            return None
        return JupyterCommand(jupyter, [command], self._runner, self._interpreters, self._conda)

    async def get_usable_jupyter_python(self) -> Record | None:
        """The interpreter closest to the active one that can host a kernel."""
        if self._usable_interpreter is not None:
            return self._usable_interpreter
        generation = self._generation
        usable = await self._find_usable_jupyter_python()
        if usable is not None and generation == self._generation:
            self._usable_interpreter = usable
        return usable

    async def _find_usable_jupyter_python(self) -> Record | None:
        # if nobody can run notebooks it does not matter who could run ipykernel
        if not await self.is_notebook_supported():
            return None
        active = await self._interpreters.get_active_interpreter()
        if active is None:
            return None
        if await self.does_module_exist(KERNEL_CREATE_COMMAND, active):
            return active
        best, best_score = None, 0
        for candidate in await self._interpreters.get_interpreters():
            if paths_same(candidate.path, active.path):
                continue
            has_module = await self.does_module_exist(KERNEL_CREATE_COMMAND, candidate)
            score = score_interpreter_for_notebooks(candidate, active, has_module=has_module)
            if score > best_score:
                best, best_score = candidate, score
        return best

    async def enumerate_specs(self) -> list[KernelSpec]:
        if not await self.is_kernel_spec_supported():
            return []
        command = await self.require_command(KERNEL_SPEC_COMMAND)
        result = await command.exec(["list"], timeout=self._settings.shell_timeout)
        if not result.ok:
            LOGGER.info("listing kernel specs failed with %s: %s", result.exit_code, result.stderr.strip())
            return []
        specs = []
        for name, spec_dir in parse_kernel_spec_list(result.stdout):
            if (spec := read_kernel_spec(name, spec_dir, self._fs)) is not None:
                specs.append(spec)
        return specs

    async def find_spec_path(self, name: str) -> str | None:
        return next((spec.spec_file for spec in await self.enumerate_specs() if spec.name == name), None)

    async def _has_spec_path_match(self, interpreter: Record | None) -> bool:
        if interpreter is None:
            # a new spec could not be pointed anywhere, so act as if one matched
            return True
        return any(spec.path and paths_same(spec.path, interpreter.path) for spec in await self.enumerate_specs())

    async def _interpreter_details(self, interpreter_path: str) -> Record | None:
        if not self._fs.exists(interpreter_path):
            return None
        return await self._interpreters.get_interpreter_details(interpreter_path)

    async def get_matching_kernel_spec(self, connection: JupyterConnection | None = None) -> KernelSpec | None:
        active = await self._interpreters.get_active_interpreter()
        if connection is None:
            if not await self._has_spec_path_match(active) and await self.is_kernel_create_supported():
                await self._add_closest_matching_spec()
            specs = await self.enumerate_specs()
        else:
            specs = await connection.get_kernel_specs()
        return await find_spec_match(specs, active, self._interpreter_details)

    async def _add_closest_matching_spec(self) -> str | None:
        """Install a kernel spec under a fresh name and point it at the usable interpreter.

        :returns: the generated ``kernel.json``, ``None`` when generation failed
        """
        try:
            command = await self.require_command(KERNEL_CREATE_COMMAND)
            name = str(uuid.uuid4())
            result = await command.exec(
                ["install", "--user", "--name", name, "--display-name", self._display_name],
                timeout=self._settings.shell_timeout,
            )
            result.check(f"{command!r} install")
            disk_path = parse_install_output(result.stdout)
            if disk_path is None or not self._fs.exists(disk_path):
                disk_path = await self.find_spec_path(name)
            best = await self.get_usable_jupyter_python()
            if disk_path is None or best is None or not self._fs.exists(disk_path):
                LOGGER.info("generated kernel spec %s cannot be used", name)
                return None
            rewrite_interpreter(disk_path, best.path, self._fs)
        except Exception:
            LOGGER.exception("failed to generate a kernel spec")
            return None
        self._created_specs.append(disk_path)
        LOGGER.info("generated kernel spec %s for %s", disk_path, best.path)
        return disk_path

    @property
    def created_specs(self) -> list[str]:
        return list(self._created_specs)

    async def generate_temp_file(self) -> str:
        """An empty notebook in a folder of its own, so a server started on that folder can be recognized."""
        stub = self._fs.create_temp_file(".ipynb")
        result_dir = os.path.join(os.path.dirname(stub), str(uuid.uuid4()))
        result = os.path.join(result_dir, os.path.basename(stub))
        self._fs.create_dir(result_dir)
        self._fs.write_text(result, "{}")
        self._fs.delete_file(stub)
        self._temp_dirs.append(result_dir)
        return result

    async def launch_notebook_server(self) -> NotebookLaunch:
        command = await self.require_command(NOTEBOOK_COMMAND)
        try:
            notebook_file = await self.generate_temp_file()
            args = ["--no-browser", f"--notebook-dir={os.path.dirname(notebook_file)}"]
            # the kernel spec must exist before the server starts
            kernel_spec = await self.get_matching_kernel_spec()
            process = await command.exec_observable(args)
            return NotebookLaunch(process, notebook_file, kernel_spec, await command.main_version())
        except Exception as exception:
            raise NotebookLaunchError(exception) from exception

    async def get_server_info(self) -> list[dict[str, Any]] | None:
        """Connection details of every running notebook server, as reported by the usable interpreter."""
        interpreter = await self.get_usable_jupyter_python()
        if interpreter is None:
            return None
        env = await fixup_conda_env(self._interpreters, self._conda, None)
        result = await self._runner.exec(
            interpreter.path, ["-c", _SERVER_INFO_SCRIPT], env=env, timeout=self._settings.shell_timeout
        )
        try:
            servers = json.loads(result.stdout.strip())
        except ValueError:
            LOGGER.debug("cannot parse server info %r", result.stdout)
            return None
        return servers if isinstance(servers, list) else None

    async def spawn_notebook(self, file: str) -> asyncio.subprocess.Process:
        """Open *file* in a notebook server; the server keeps running until the user stops it."""
        command = await self.require_command(NOTEBOOK_COMMAND)
        return await command.exec_observable([f"--NotebookApp.file_to_run={file}"])

    async def import_notebook(self, file: str, template: str) -> str:
        """Convert a notebook to a python script using an nbconvert template."""
        command = await self.require_command(CONVERT_COMMAND)
        result = await command.exec([file, "--to", "python", "--stdout", "--template", template])
        if result.stderr:
            # nbconvert reports progress on stderr
            LOGGER.info(result.stderr)
        return result.stdout

    async def dispose(self) -> None:
        """Delete the kernel specs and temporary notebooks created so far."""
        created, self._created_specs = self._created_specs, []
        for spec_file in created:
            LOGGER.debug("deleting generated kernel spec %s", spec_file)
            self._fs.delete_file(spec_file)
        temp_dirs, self._temp_dirs = self._temp_dirs, []
        for folder in temp_dirs:
            self._fs.delete_dir(folder)
        self._usable_interpreter = None

    async def aclose(self) -> None:
        await self.dispose()
        self._unsubscribe()


__all__ = [
    "CHECK_JUPYTER_RE",
    "DEFAULT_DISPLAY_NAME",
    "JupyterConnection",
    "JupyterExecution",
    "NotebookLaunch",
]
