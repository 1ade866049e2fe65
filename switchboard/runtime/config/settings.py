"""Application settings -- reads from environment and ``.env`` file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar

from ..util.env_file import EnvFile
from ..util.singletons import register_singleton

REQUIRED_ENV_KEYS: tuple[str, ...] = ("DISCORD_TOKEN",)

_TRUTHY = ("1", "true", "yes", "on")


class ConfigError(ValueError):
    """Raised when a setting holds a value that cannot be used."""


class Settings:

    _DATA_DIR_ENV: ClassVar[str] = "SWITCHBOARD_DATA_DIR"

    def __init__(self) -> None:
        dotenv = os.getenv("DOTENV_PATH")
        if not dotenv:
            data_dir = os.getenv(self._DATA_DIR_ENV)
            dotenv = str(Path(data_dir) / ".env") if data_dir else ".env"
        self.env = EnvFile(dotenv)
        self.reload()

    def reload(self) -> None:
        e = self._read

        self.discord_token: str = e("DISCORD_TOKEN")

        self.developer_ids: frozenset[str] = _split(e("DEVELOPER_IDS"))
        self.development_guild_id: str = e("DEVELOPMENT_GUILD_ID")
        self.maintenance_mode: bool = e("MAINTENANCE_MODE").lower() in _TRUTHY

        self.web_server_port: int = self._int("WEB_SERVER_PORT", 3000)
        prefix = e("API_PREFIX") or "/api"
        self.api_prefix: str = "/" + prefix.strip("/") if prefix.strip("/") else ""

        self.disabled_categories: frozenset[str] = _split(e("DISABLED_CATEGORIES"))
        self.handler_timeout: float = self._float("HANDLER_TIMEOUT", 0.0)
        self.sync_commands: bool = (e("SYNC_COMMANDS") or "true").lower() in _TRUTHY

        self.appinsights_connection_string: str = e("APPLICATIONINSIGHTS_CONNECTION_STRING")

        self._actions_dir: str = e("ACTIONS_DIR")
        self._log_dir: str = e("LOG_DIR")

    @property
    def api_enabled(self) -> bool:
        return self.web_server_port != -1

    @property
    def data_dir(self) -> Path:
        return Path(os.getenv(self._DATA_DIR_ENV, str(Path.home() / ".switchboard")))

    @property
    def project_root(self) -> Path:
        env_root = os.getenv("SWITCHBOARD_PROJECT_ROOT")
        if env_root:
            return Path(env_root)
        p = Path(__file__).resolve().parent
        for _ in range(5):
            p = p.parent
            if (p / "actions").is_dir() or (p / "pyproject.toml").is_file():
                return p
        return Path(__file__).resolve().parent.parent.parent.parent

    @property
    def actions_dir(self) -> Path:
        if self._actions_dir:
            return Path(self._actions_dir)
        return self.project_root / "actions"

    @actions_dir.setter
    def actions_dir(self, value: Path) -> None:
        self._actions_dir = str(value)

    @property
    def log_dir(self) -> Path:
        if self._log_dir:
            return Path(self._log_dir)
        return self.data_dir / "logs"

    def missing_required(self) -> list[str]:
        """Return the required keys that are unset."""
        return self.env.missing(REQUIRED_ENV_KEYS, dict(os.environ))

    def is_developer(self, actor_id: str | None) -> bool:
        return actor_id is not None and actor_id in self.developer_ids

    def _read(self, key: str) -> str:
        return self.env.read(key) or os.getenv(key, "")

    def _int(self, key: str, default: int) -> int:
        raw = self._read(key)
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc

    def _float(self, key: str, default: float) -> float:
        raw = self._read(key)
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError as exc:
            raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _split(raw: str) -> frozenset[str]:
    return frozenset(v.strip() for v in raw.split(",") if v.strip()) if raw else frozenset()


cfg = Settings()


def _reset_cfg() -> None:
    global cfg
    cfg = Settings()


register_singleton(_reset_cfg)
