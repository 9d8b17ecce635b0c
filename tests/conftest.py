"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from flowdir.engine.render_tree import MemoryRenderTree
from tests.helpers import ManualClock


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in ("FLOWDIR_GLOBAL_DIRECTION", "FLOWDIR_DETECTION", "FLOWDIR_QUIESCENCE_MS", "FLOWDIR_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FLOWDIR_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def tree() -> MemoryRenderTree:
    return MemoryRenderTree()
