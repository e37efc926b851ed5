from __future__ import annotations

from envdiscovery import (
    DiscoveryOptions,
    EnvironmentInfoService,
    EnvironmentsCollection,
    EnvironmentsStorage,
    EnvKind,
    InterpreterService,
    MemoryStore,
    PartialRecord,
)
from envdiscovery.locators import Locator
from tests.conftest import FakeRunner, make_executable


class ListLocator(Locator):
    source = "global-venv"

    def __init__(self, records):
        super().__init__()
        self.records = records

    async def iter_environments(self, scope=None, options=None):
        for record in self.records:
            yield record


def _service(runner, records=(), settings=None, env=None):
    info_service = EnvironmentInfoService(runner)
    storage = EnvironmentsStorage(MemoryStore(), info_service)
    collection = EnvironmentsCollection([ListLocator(list(records))], storage)
    return InterpreterService(collection, info_service, settings, {} if env is None else env), collection


async def test_get_interpreters(tmp_path, probing_runner):
    exe = str(make_executable(tmp_path / "venv" / "bin" / "python"))
    service, collection = _service(probing_runner, [PartialRecord(exe, kind=EnvKind.VENV, source="global-venv")])
    options = DiscoveryOptions(get_complete_info=True, get_all_environments=True)
    (record,) = await service.get_interpreters(options=options)
    assert record.path == exe
    assert record.kind is EnvKind.VENV
    assert record.version.major == 3
    await collection.aclose()


async def test_active_interpreter_defaults_to_python_on_path(tmp_path, settings, probing_runner):
    folder = tmp_path / "bin"
    exe = make_executable(folder / "python")
    service, collection = _service(probing_runner, settings=settings, env={"PATH": str(folder)})
    assert service.get_active_interpreter_path() == str(exe)
    active = await service.get_active_interpreter()
    assert active.path == str(exe)
    assert active.kind is EnvKind.UNKNOWN
    await collection.aclose()


async def test_no_active_interpreter(tmp_path, settings):
    empty = tmp_path / "empty"
    empty.mkdir()
    service, collection = _service(FakeRunner(), settings=settings, env={"PATH": str(empty)})
    assert service.get_active_interpreter_path() is None
    assert await service.get_active_interpreter() is None
    await collection.aclose()


async def test_set_active_interpreter_fires_on_change(tmp_path, settings):
    service, collection = _service(FakeRunner(), settings=settings)
    changes = []
    service.on_did_change_interpreter.subscribe(changes.append)
    first, second = str(tmp_path / "a" / "python"), str(tmp_path / "b" / "python")

    service.set_active_interpreter(first)
    service.set_active_interpreter(first)
    service.set_active_interpreter(second)
    service.set_active_interpreter(first, scope=str(tmp_path / "ws"))

    assert changes == [first, second, first]
    assert service.get_active_interpreter_path() == second
    assert service.get_active_interpreter_path(str(tmp_path / "ws")) == first
    assert service.get_active_interpreter_path(str(tmp_path / "other")) == second
    await collection.aclose()


async def test_details_use_stored_knowledge(tmp_path, probing_runner):
    exe = str(make_executable(tmp_path / "venv" / "bin" / "python"))
    service, collection = _service(probing_runner)
    record = PartialRecord(exe, kind=EnvKind.CONDA, environment_name="ml", source="conda")
    await collection.storage.add_partial_info(record)
    details = await service.get_interpreter_details(exe)
    assert details.kind is EnvKind.CONDA
    assert details.environment_name == "ml"
    assert details.version.major == 3
    await collection.aclose()
    # once complete the stored record is returned without running anything
    calls = len(probing_runner.calls)
    assert (await service.get_interpreter_details(exe)).environment_name == "ml"
    assert len(probing_runner.calls) == calls


async def test_details_of_broken_interpreter(tmp_path):
    service, collection = _service(FakeRunner())
    assert await service.get_interpreter_details(str(tmp_path / "python")) is None
    await collection.aclose()
