"""Developer audit sink -- load warnings, guard denials, failures, debug flushes.

Everything goes through :mod:`logging`.  When a log directory is
configured the records are also appended to plain-text files grouped by
category (``warnings/``, ``errors/``, ``debugs/``, ``denials/``) so a
developer can read an action's history without digging through the
process log.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_MAX_RECORDS = 500


@dataclass
class AuditRecord:
    category: str  # warning | denial | failure | debug
    source: str
    message: str
    correlation_id: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class AuditSink:
    def __init__(self, log_dir: Path | None = None) -> None:
        self._log_dir = log_dir
        self._lock = threading.Lock()
        self._seen_warnings: set[tuple[str, str]] = set()
        self.records: deque[AuditRecord] = deque(maxlen=_MAX_RECORDS)

    def of(self, category: str) -> list[AuditRecord]:
        return [r for r in self.records if r.category == category]

    def forget_warnings(self) -> None:
        """Let every load warning be reported again, e.g. before a reload."""
        with self._lock:
            self._seen_warnings.clear()

    def warning(self, warning: str, *, result: str, fix: str, source: str) -> None:
        """Record a load-time warning once per (source, warning) pair."""
        key = (source, warning)
        with self._lock:
            if key in self._seen_warnings:
                return
            self._seen_warnings.add(key)
        logger.warning("[audit] %s. %s", warning, fix)
        self._append(
            AuditRecord("warning", source, warning, details={"result": result, "fix": fix}),
            "warnings",
            [f"Warning: {warning}", f"Result: {result}", f"Fix: {fix}"],
        )

    def denial(self, source: str, reason: str, *, correlation_id: str, actor_id: str | None) -> None:
        logger.info(
            "[audit] %s denied (%s) actor=%s cid=%s", source, reason, actor_id, correlation_id,
        )
        self._append(
            AuditRecord(
                "denial", source, reason,
                correlation_id=correlation_id, details={"actor_id": actor_id},
            ),
            "denials",
            [f"[{correlation_id}] {reason} actor={actor_id}"],
        )

    def failure(
        self,
        source: str,
        error: BaseException,
        *,
        correlation_id: str,
        elapsed_ms: float,
    ) -> None:
        summary = f"{type(error).__name__}: {error}"
        logger.error(
            "[audit] %s failed after %.1fms cid=%s: %s",
            source, elapsed_ms, correlation_id, summary,
            exc_info=error,
        )
        self._append(
            AuditRecord(
                "failure", source, summary,
                correlation_id=correlation_id, details={"elapsed_ms": elapsed_ms},
            ),
            "errors",
            [f"[{correlation_id}] {summary} ({elapsed_ms:.1f}ms)"],
        )

    def debug_flush(
        self,
        source: str,
        lines: list[str],
        *,
        correlation_id: str,
        outcome: str,
        elapsed_ms: float,
        error: str | None = None,
    ) -> None:
        logger.debug(
            "[audit] debug stream %s cid=%s outcome=%s lines=%d",
            source, correlation_id, outcome, len(lines),
        )
        footer = f"[{correlation_id}] {outcome.upper()} in {elapsed_ms:.1f}ms"
        if error:
            footer += f": {error}"
        self._append(
            AuditRecord(
                "debug", source, outcome,
                correlation_id=correlation_id,
                details={"lines": list(lines), "elapsed_ms": elapsed_ms, "error": error},
            ),
            "debugs",
            [f"[{correlation_id}] START", *lines, footer],
        )

    def _append(self, record: AuditRecord, folder: str, lines: list[str]) -> None:
        self.records.append(record)
        if self._log_dir is None:
            return
        target = self._log_dir / folder / f"{_safe_name(record.source)}.txt"
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        try:
            with self._lock:
                target.parent.mkdir(parents=True, exist_ok=True)
                with target.open("a", encoding="utf-8") as fh:
                    for line in lines:
                        fh.write(f"[{stamp}] {line}\n")
        except OSError as exc:
            logger.warning("[audit] cannot write %s: %s", target, exc)


def _safe_name(source: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in source) or "unknown"
