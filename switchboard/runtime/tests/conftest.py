"""Shared pytest fixtures for switchboard.runtime tests."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from switchboard.runtime.actions.audit import AuditSink
from switchboard.runtime.config.settings import Settings

_SETTING_KEYS = (
    "DISCORD_TOKEN",
    "DEVELOPER_IDS",
    "DEVELOPMENT_GUILD_ID",
    "MAINTENANCE_MODE",
    "WEB_SERVER_PORT",
    "API_PREFIX",
    "DISABLED_CATEGORIES",
    "ACTIONS_DIR",
    "LOG_DIR",
    "HANDLER_TIMEOUT",
    "SYNC_COMMANDS",
    "APPLICATIONINSIGHTS_CONNECTION_STRING",
)


@pytest.fixture(autouse=True)
def _isolate_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    monkeypatch.setenv("SWITCHBOARD_DATA_DIR", str(data_dir))
    monkeypatch.setenv("SWITCHBOARD_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("DOTENV_PATH", str(tmp_path / ".env"))
    for key in _SETTING_KEYS:
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
def settings(data_dir: Path) -> Settings:
    return Settings()


@pytest.fixture()
def audit(tmp_path: Path) -> AuditSink:
    return AuditSink(tmp_path / "logs")


@pytest.fixture()
def actions_dir(tmp_path: Path) -> Path:
    root = tmp_path / "actions"
    root.mkdir()
    return root


@pytest.fixture()
def write_action(actions_dir: Path) -> Callable[[str, str], Path]:
    """Write an action file under the test action root."""

    def _write(relpath: str, source: str) -> Path:
        path = actions_dir / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source))
        return path

    return _write
