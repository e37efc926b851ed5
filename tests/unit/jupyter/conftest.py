from __future__ import annotations

import pytest

from envdiscovery import CompleteRecord, EnvKind
from tests.conftest import FakeInterpreters, interpreter, make_executable


@pytest.fixture
def active(tmp_path) -> CompleteRecord:
    return interpreter(make_executable(tmp_path / "active" / "bin" / "python"))


@pytest.fixture
def other(tmp_path) -> CompleteRecord:
    return interpreter(make_executable(tmp_path / "other" / "bin" / "python"), version=(3, 9, 1), kind=EnvKind.CONDA)


@pytest.fixture
def interpreters(active, other) -> FakeInterpreters:
    return FakeInterpreters([active, other], active=active.path)
