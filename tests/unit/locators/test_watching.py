from __future__ import annotations

import asyncio
import logging
import shutil

from envdiscovery import EnvKind, LocalFileSystem
from envdiscovery.locators import FSWatchingLocator
from tests.conftest import make_venv


class FolderLocator(FSWatchingLocator):
    async def iter_environments(self, scope=None, options=None):
        return
        yield


async def _wait_for(events, count):
    for _ in range(200):
        if len(events) >= count:
            return
        await asyncio.sleep(0.01)


async def test_reports_created_and_deleted_environments(tmp_path):
    root = tmp_path / "envs"
    root.mkdir()
    kinds = []

    async def get_roots():
        return [str(root)]

    async def get_kind(path):
        kinds.append(path)
        return EnvKind.VENV

    locator = FolderLocator(get_roots, get_kind, fs=LocalFileSystem(), delay_on_created=0.02, poll_interval=0.01)
    events = []
    locator.on_did_change.subscribe(events.append)
    await locator.start_watching()
    await asyncio.sleep(0.03)

    exe = make_venv(root / "fresh")
    await _wait_for(events, 1)
    (created,) = events
    assert created.change == "created"
    assert created.path == str(root / "fresh")
    assert created.kind is EnvKind.VENV
    assert kinds == [str(exe)]

    shutil.rmtree(root / "fresh")
    await _wait_for(events, 2)
    assert events[1].change == "deleted"
    assert events[1].path == str(root / "fresh")

    await locator.dispose()


async def test_unrecognized_folder_is_unknown(tmp_path):
    root = tmp_path / "envs"
    root.mkdir()

    async def get_roots():
        return [str(root)]

    async def get_kind(_path):
        raise AssertionError

    locator = FolderLocator(get_roots, get_kind, fs=LocalFileSystem(), delay_on_created=0.01, poll_interval=0.01)
    events = []
    locator.on_did_change.subscribe(events.append)
    await locator.start_watching()
    await asyncio.sleep(0.03)
    (root / "docs").mkdir()
    await _wait_for(events, 1)
    assert events[0].kind is EnvKind.UNKNOWN
    await locator.dispose()


async def test_failing_classifier_is_logged(tmp_path, caplog):
    root = tmp_path / "envs"
    root.mkdir()

    async def get_roots():
        return [str(root)]

    async def get_kind(_path):
        msg = "cannot classify"
        raise RuntimeError(msg)

    locator = FolderLocator(get_roots, get_kind, fs=LocalFileSystem(), delay_on_created=0.01, poll_interval=0.01)
    events = []
    locator.on_did_change.subscribe(events.append)
    await locator.start_watching()
    await asyncio.sleep(0.03)
    make_venv(root / "broken")

    failures = []
    for _ in range(200):
        failures = [record for record in caplog.records if record.levelno == logging.ERROR]
        if failures:
            break
        await asyncio.sleep(0.01)

    (failure,) = failures
    assert "watch task failed" in failure.getMessage()
    assert str(failure.exc_info[1]) == "cannot classify"
    assert events == []
    assert locator._pending == {}  # noqa: SLF001
    await locator.dispose()
