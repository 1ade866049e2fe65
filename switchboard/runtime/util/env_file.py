"""``.env`` file reader."""

from __future__ import annotations

import threading
from pathlib import Path


class EnvFile:
    """Parses a simple ``KEY=VALUE`` file, re-reading it when it changes."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._cache: dict[str, str] = {}
        self._mtime: float | None = None

    def read(self, key: str) -> str:
        """Return the value for *key*, or ``""`` if absent."""
        return self.read_all().get(key, "")

    def read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with self._lock:
            mtime = self.path.stat().st_mtime
            if mtime != self._mtime:
                self._cache = _parse(self.path.read_text())
                self._mtime = mtime
            return dict(self._cache)

    def missing(self, keys: tuple[str, ...], environ: dict[str, str]) -> list[str]:
        """Return the *keys* set neither in the file nor in *environ*."""
        values = self.read_all()
        return [k for k in keys if not (values.get(k) or environ.get(k))]


def _parse(text: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, _, value = line.partition("=")
        result[key.strip()] = value.strip().strip('"').strip("'")
    return result
