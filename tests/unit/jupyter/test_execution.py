from __future__ import annotations

import asyncio
import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from envdiscovery import (
    ExecutionResult,
    JupyterNotSupportedError,
    LocalFileSystem,
    NotebookLaunchError,
)
from envdiscovery.jupyter import JupyterExecution, KernelSpec
from tests.conftest import FakeRunner, make_executable

OK = ExecutionResult("", "", 0)


class Machine:
    """Answers the commands jupyter resolution runs, for a configurable set of installed modules."""

    def __init__(self, kernels_dir: Path, modules: dict[str, set[str]]) -> None:
        self.kernels_dir = kernels_dir
        self.modules = modules
        self.jupyter_exe: str | None = None

    def __call__(self, file: str, args: list[str]) -> ExecutionResult | None:
        installed = self.modules.get(file, set())
        if args[:2] == ["-m", "ipykernel"] and "ipykernel" in installed:
            if args[2:] == ["--version"]:
                return OK
            if args[2] == "install":
                return self._install(args[args.index("--name") + 1])
        if args[:2] == ["-m", "jupyter"] and len(args) > 2 and args[2] in installed:
            if args[3:] == ["--version"]:
                return OK
            if args[2:] == ["kernelspec", "list"]:
                return self._list()
        if file == self.jupyter_exe and args[1:] == ["--version"]:
            return OK
        return None

    def _install(self, name: str) -> ExecutionResult:
        spec_dir = self.kernels_dir / name
        spec_dir.mkdir(parents=True)
        model = {"argv": ["python", "-m", "ipykernel_launcher", "-f", "{connection_file}"], "language": "python"}
        (spec_dir / "kernel.json").write_text(json.dumps(model))
        return ExecutionResult(f"Installed kernelspec {name} in {spec_dir}\n", "", 0)

    def _list(self) -> ExecutionResult:
        lines = ["Available kernels:"]
        if self.kernels_dir.exists():
            lines.extend(f"  {folder.name}    {folder}" for folder in sorted(self.kernels_dir.iterdir()))
        return ExecutionResult("\n".join(lines), "", 0)


@pytest.fixture
def kernels_dir(tmp_path):
    return tmp_path / "kernels"


@pytest.fixture
def no_jupyter_env(tmp_path, settings):
    empty = tmp_path / "no-jupyter"
    empty.mkdir()
    return replace(settings, search_paths=(str(empty),)), {"PATH": str(empty)}


def _execution(interpreters, runner, no_jupyter_env):
    settings, env = no_jupyter_env
    return JupyterExecution(interpreters, runner, fs=LocalFileSystem(), settings=settings, env=env)


def _probes(runner, module):
    return runner.count(lambda _file, args: module in args and args[-1] == "--version")


async def test_active_interpreter_is_preferred(interpreters, active, other, kernels_dir, no_jupyter_env):
    modules = {active.path: {"notebook"}, other.path: {"notebook"}}
    runner = FakeRunner(Machine(kernels_dir, modules))
    execution = _execution(interpreters, runner, no_jupyter_env)
    command = await execution.resolve_command("notebook")
    assert command.exe == active.path
    assert command.required_args == ["-m", "jupyter", "notebook"]


async def test_falls_back_to_other_interpreters(interpreters, active, other, kernels_dir, no_jupyter_env):
    runner = FakeRunner(Machine(kernels_dir, {other.path: {"nbconvert", "ipykernel"}}))
    execution = _execution(interpreters, runner, no_jupyter_env)
    assert await execution.is_import_supported()
    assert (await execution.resolve_command("nbconvert")).exe == other.path
    create = await execution.resolve_command("ipykernel")
    assert create.exe == other.path
    assert create.required_args == ["-m", "ipykernel"]
    assert not await execution.is_notebook_supported()
    assert [file for file, args in runner.calls if args == ("-m", "jupyter", "nbconvert", "--version")] == [
        active.path,
        other.path,
    ]


async def test_falls_back_to_jupyter_on_search_path(tmp_path, interpreters, kernels_dir, settings):
    folder = tmp_path / "tools"
    jupyter = make_executable(folder / ("jupyter.exe" if os.name == "nt" else "jupyter"))
    machine = Machine(kernels_dir, {})
    machine.jupyter_exe = str(jupyter)
    runner = FakeRunner(machine)
    execution = JupyterExecution(
        interpreters, runner, fs=LocalFileSystem(), settings=replace(settings, search_paths=(str(folder),)), env={}
    )
    command = await execution.resolve_command("notebook")
    assert command.exe == str(jupyter)
    assert command.required_args == ["notebook"]
    assert repr(command) == f"JupyterCommand({jupyter} notebook)"


async def test_nothing_supports_the_command(interpreters, kernels_dir, no_jupyter_env):
    execution = _execution(interpreters, FakeRunner(Machine(kernels_dir, {})), no_jupyter_env)
    assert await execution.resolve_command("notebook") is None
    with pytest.raises(JupyterNotSupportedError, match="'notebook' package was not found"):
        await execution.require_command("notebook")
    with pytest.raises(JupyterNotSupportedError):
        await execution.launch_notebook_server()


async def test_resolved_commands_are_forgotten_when_interpreter_changes(
    interpreters, active, other, kernels_dir, no_jupyter_env
):
    runner = FakeRunner(Machine(kernels_dir, {active.path: {"notebook"}, other.path: {"notebook"}}))
    execution = _execution(interpreters, runner, no_jupyter_env)

    assert (await execution.resolve_command("notebook")).exe == active.path
    await execution.resolve_command("notebook")
    assert _probes(runner, "notebook") == 1

    interpreters.set_active_interpreter(other.path)
    assert (await execution.resolve_command("notebook")).exe == other.path
    assert _probes(runner, "notebook") == 2

    # selecting the same interpreter again is not a change
    interpreters.set_active_interpreter(other.path)
    await execution.resolve_command("notebook")
    assert _probes(runner, "notebook") == 2


async def test_generated_kernel_spec_points_at_active_interpreter(interpreters, active, kernels_dir, no_jupyter_env):
    existing = kernels_dir / "python3"
    existing.mkdir(parents=True)
    existing_model = {"argv": ["/usr/bin/python3", "-m", "ipykernel_launcher"], "language": "python"}
    (existing / "kernel.json").write_text(json.dumps(existing_model))
    modules = {active.path: {"notebook", "kernelspec", "ipykernel"}}
    runner = FakeRunner(Machine(kernels_dir, modules))
    execution = _execution(interpreters, runner, no_jupyter_env)

    spec = await execution.get_matching_kernel_spec()

    assert spec is not None
    assert spec.path == active.path
    assert spec.name != "python3"
    (generated,) = execution.created_specs
    assert generated == spec.spec_file
    assert json.loads(Path(generated).read_text())["argv"][0] == active.path
    install = next(args for _, args in runner.calls if "install" in args)
    assert install[2:5] == ("install", "--user", "--name")
    assert install[-2:] == ("--display-name", "Python Interactive")

    # a matching spec exists now, nothing new is generated
    assert await execution.get_matching_kernel_spec() == spec
    assert len(execution.created_specs) == 1

    await execution.dispose()
    assert not Path(generated).exists()
    assert Path(generated).parent.exists()
    assert (existing / "kernel.json").exists()
    assert execution.created_specs == []


async def test_failed_generation_is_logged_and_ignored(interpreters, active, kernels_dir, no_jupyter_env, caplog):
    modules = {active.path: {"notebook", "kernelspec", "ipykernel"}}
    machine = Machine(kernels_dir, modules)

    def handler(file, args):
        if "install" in args:
            return ExecutionResult("", "permission denied", 1)
        return machine(file, args)

    execution = _execution(interpreters, FakeRunner(handler), no_jupyter_env)
    assert await execution.get_matching_kernel_spec() is None
    assert execution.created_specs == []
    assert "failed to generate a kernel spec" in caplog.text


async def test_connection_specs_are_scored(interpreters, active, kernels_dir, no_jupyter_env):
    class Connection:
        async def get_kernel_specs(self):
            return [KernelSpec("other", "python", "/nowhere/python"), KernelSpec("mine", "python", active.path)]

    runner = FakeRunner(Machine(kernels_dir, {}))
    execution = _execution(interpreters, runner, no_jupyter_env)
    assert (await execution.get_matching_kernel_spec(Connection())).name == "mine"
    assert runner.calls == []


async def test_usable_python_prefers_closest_interpreter(
    tmp_path, interpreters, active, other, kernels_dir, no_jupyter_env
):
    from tests.conftest import interpreter  # noqa: PLC0415

    close = interpreter(make_executable(tmp_path / "close" / "bin" / "python"), version=(3, 8, 1))
    interpreters.records.append(close)
    modules = {active.path: {"notebook"}, other.path: {"ipykernel"}, close.path: {"ipykernel"}}
    execution = _execution(interpreters, FakeRunner(Machine(kernels_dir, modules)), no_jupyter_env)
    assert await execution.get_usable_jupyter_python() == close


async def test_usable_python_needs_notebook_support(interpreters, active, kernels_dir, no_jupyter_env):
    execution = _execution(interpreters, FakeRunner(Machine(kernels_dir, {active.path: {"ipykernel"}})), no_jupyter_env)
    assert await execution.get_usable_jupyter_python() is None


async def test_temp_notebook_lives_in_own_folder(interpreters, kernels_dir, no_jupyter_env):
    execution = _execution(interpreters, FakeRunner(Machine(kernels_dir, {})), no_jupyter_env)
    notebook = Path(await execution.generate_temp_file())
    assert notebook.read_text() == "{}"
    assert notebook.suffix == ".ipynb"
    assert os.listdir(notebook.parent) == [notebook.name]
    await execution.aclose()
    assert not notebook.parent.exists()


async def test_launch_notebook_server(interpreters, active, kernels_dir, no_jupyter_env):
    runner = FakeRunner(Machine(kernels_dir, {active.path: {"notebook"}}))
    execution = _execution(interpreters, runner, no_jupyter_env)
    launch = await execution.launch_notebook_server()
    (process,) = runner.spawned
    assert launch.process is process
    assert process.args[:4] == [active.path, "-m", "jupyter", "notebook"]
    assert process.args[4] == "--no-browser"
    assert process.args[5] == f"--notebook-dir={os.path.dirname(launch.notebook_file)}"
    assert launch.kernel_spec is None
    assert launch.main_version == 3
    await execution.dispose()


async def test_launch_failures_are_wrapped(interpreters, active, kernels_dir, no_jupyter_env, mocker):
    execution = _execution(interpreters, FakeRunner(Machine(kernels_dir, {active.path: {"notebook"}})), no_jupyter_env)
    mocker.patch.object(execution, "generate_temp_file", side_effect=OSError("disk full"))
    with pytest.raises(NotebookLaunchError, match="disk full"):
        await execution.launch_notebook_server()


async def test_spawn_import_and_server_info(interpreters, active, kernels_dir, no_jupyter_env):
    machine = Machine(kernels_dir, {active.path: {"notebook", "nbconvert", "ipykernel"}})

    def handler(file, args):
        if args[:3] == ["-m", "jupyter", "nbconvert"] and "--to" in args:
            return ExecutionResult("print('hi')\n", "[NbConvertApp] Converting notebook", 0)
        if args[0] == "-c":
            return ExecutionResult('[{"url": "http://localhost:8888/", "token": "t"}]\n', "", 0)
        return machine(file, args)

    runner = FakeRunner(handler)
    execution = _execution(interpreters, runner, no_jupyter_env)

    process = await execution.spawn_notebook("/work/a.ipynb")
    assert process.args[-1] == "--NotebookApp.file_to_run=/work/a.ipynb"
    assert await execution.import_notebook("/work/a.ipynb", "/t/template.tpl") == "print('hi')\n"
    assert await execution.get_server_info() == [{"url": "http://localhost:8888/", "token": "t"}]


async def test_server_info_garbage(interpreters, active, kernels_dir, no_jupyter_env):
    machine = Machine(kernels_dir, {active.path: {"notebook", "ipykernel"}})

    def handler(file, args):
        if args[0] == "-c":
            return ExecutionResult("Traceback ...", "", 1)
        return machine(file, args)

    execution = _execution(interpreters, FakeRunner(handler), no_jupyter_env)
    assert await execution.get_server_info() is None


class GatedRunner(FakeRunner):
    """Holds the calls matching *gated* until :attr:`gate` is set."""

    def __init__(self, handler, gated) -> None:
        super().__init__(handler)
        self.gated = gated
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def exec(self, file, args, **kwargs) -> ExecutionResult:
        if not self.gate.is_set() and self.gated(file, list(args)):
            self.entered.set()
            await self.gate.wait()
        return await super().exec(file, args, **kwargs)


async def test_command_resolved_across_interpreter_change_is_not_cached(
    interpreters, active, other, kernels_dir, no_jupyter_env
):
    modules = {active.path: {"notebook"}, other.path: {"notebook"}}
    runner = GatedRunner(Machine(kernels_dir, modules), lambda file, args: file == active.path)
    execution = _execution(interpreters, runner, no_jupyter_env)

    pending = asyncio.ensure_future(execution.resolve_command("notebook"))
    await runner.entered.wait()
    interpreters.set_active_interpreter(other.path)
    runner.gate.set()
    assert (await pending).exe == active.path

    assert (await execution.resolve_command("notebook")).exe == other.path


async def test_usable_python_found_across_interpreter_change_is_not_cached(
    interpreters, active, other, kernels_dir, no_jupyter_env
):
    modules = {active.path: {"notebook", "ipykernel"}, other.path: {"notebook", "ipykernel"}}
    runner = GatedRunner(Machine(kernels_dir, modules), lambda file, args: file == active.path and "ipykernel" in args)
    execution = _execution(interpreters, runner, no_jupyter_env)

    pending = asyncio.ensure_future(execution.get_usable_jupyter_python())
    await runner.entered.wait()
    interpreters.set_active_interpreter(other.path)
    runner.gate.set()
    assert (await pending).path == active.path

    assert (await execution.get_usable_jupyter_python()).path == other.path
