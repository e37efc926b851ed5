from __future__ import annotations

import asyncio

from envdiscovery import Architecture, EnvironmentInfoService, EnvKind, ExecutionResult, Priority
from envdiscovery._info_service import parse_interpreter_info
from tests.conftest import FakeRunner, info_output, is_info_probe


async def test_concurrent_requests_share_one_probe():
    runner = FakeRunner(lambda _f, args: ExecutionResult(info_output(args), "", 0), delay=0.01)
    service = EnvironmentInfoService(runner)
    results = await asyncio.gather(*(service.get_environment_info("/usr/bin/python3") for _ in range(10)))
    assert runner.count(lambda file, _: file == "/usr/bin/python3") == 1
    assert all(result is results[0] for result in results)
    info = results[0]
    assert info is not None
    assert info.interpreter_path == "/usr/bin/python3"
    assert str(info.version) == "3.8.3-final"
    assert info.environment_type is EnvKind.UNKNOWN
    assert info.architecture is Architecture.X64
    assert info.sys_prefix == "/usr"
    # answered from the cache afterwards
    assert await service.get_environment_info("/usr/bin/python3", Priority.HIGH) is info
    assert len(runner.calls) == 1
    await service.stop()


async def test_failure_is_not_remembered():
    attempts = []

    def handler(_file, args):
        attempts.append(args)
        if len(attempts) == 1:
            return None
        return ExecutionResult(info_output(args), "", 0)

    service = EnvironmentInfoService(FakeRunner(handler))
    assert await service.get_environment_info("/broken/python") is None
    assert await service.get_environment_info("/broken/python") is not None
    assert len(attempts) == 2
    await service.stop()


async def test_probe_runs_the_info_script_with_cookies(probing_runner):
    service = EnvironmentInfoService(probing_runner)
    await service.get_environment_info("/usr/bin/python3")
    (_file, args), = probing_runner.calls
    assert is_info_probe(args)
    assert len(args) == 3
    assert args[1] != args[2]
    assert "__PYVENV_LAUNCHER__" not in probing_runner.envs[0]
    await service.stop()


async def test_clear_cache_probes_again(probing_runner):
    service = EnvironmentInfoService(probing_runner)
    await service.get_environment_info("/usr/bin/python3")
    service.clear_cache()
    await service.get_environment_info("/usr/bin/python3")
    assert len(probing_runner.calls) == 2
    await service.stop()


def test_parse_rejects_garbage():
    assert parse_interpreter_info("/p", "not json") is None
    assert parse_interpreter_info("/p", "{}") is None
    assert parse_interpreter_info("/p", '{"versionInfo": []}') is None


def test_parse_32_bit():
    info = parse_interpreter_info("/p", '{"versionInfo": [2, 7, 18, "final", 0], "is64Bit": false}')
    assert info is not None
    assert info.architecture is Architecture.X86
    assert info.version.major == 2
