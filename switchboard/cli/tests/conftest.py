"""Shared pytest fixtures for switchboard.cli tests."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console


@pytest.fixture(autouse=True)
def _isolate_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    monkeypatch.setenv("SWITCHBOARD_DATA_DIR", str(data_dir))
    monkeypatch.setenv("SWITCHBOARD_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("DOTENV_PATH", str(tmp_path / ".env"))
    for key in ("ACTIONS_DIR", "LOG_DIR", "DISABLED_CATEGORIES", "WEB_SERVER_PORT", "API_PREFIX"):
        monkeypatch.delenv(key, raising=False)
    return data_dir


@pytest.fixture(autouse=True)
def _reset_singletons(_isolate_data_dir: Path):
    from switchboard.runtime.util.singletons import reset_all_singletons

    reset_all_singletons()
    yield
    reset_all_singletons()


@pytest.fixture()
def data_dir(_isolate_data_dir: Path) -> Path:
    return _isolate_data_dir


@pytest.fixture()
def output(monkeypatch: pytest.MonkeyPatch) -> io.StringIO:
    """Capture CLI output on a console wide enough to never wrap paths."""
    from switchboard.cli import actions

    buffer = io.StringIO()
    monkeypatch.setattr(actions, "console", Console(file=buffer, width=400, no_color=True))
    return buffer


@pytest.fixture()
def actions_dir(tmp_path: Path) -> Path:
    root = tmp_path / "actions"
    root.mkdir()
    return root


@pytest.fixture()
def write_action(actions_dir: Path):
    def _write(relpath: str, source: str) -> Path:
        path = actions_dir / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
        return path

    return _write
