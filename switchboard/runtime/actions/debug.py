"""Per-invocation debug stream for actions with ``enable_debug`` set."""

from __future__ import annotations

import enum
import time
from datetime import datetime, timezone

from .audit import AuditSink


class Outcome(enum.Enum):
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class DebugStream:
    """Buffered, correlation-scoped write sink.

    Handlers call :meth:`write`; the dispatcher calls :meth:`close` once the
    handler settles, which hands the buffered lines, the outcome and the
    elapsed time to the audit sink in one piece.  Handlers receive ``None``
    instead of a stream when debugging is off.
    """

    def __init__(self, source: str, correlation_id: str, audit: AuditSink) -> None:
        self.source = source
        self.correlation_id = correlation_id
        self._audit = audit
        self._lines: list[str] = []
        self._started = time.monotonic()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def write(self, message: object) -> None:
        if self._closed:
            return
        stamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        self._lines.append(f"{stamp} {message}")

    def close(self, outcome: Outcome, error: BaseException | None = None) -> float:
        """Flush the stream and return the elapsed milliseconds."""
        elapsed_ms = (time.monotonic() - self._started) * 1000
        if self._closed:
            return elapsed_ms
        self._closed = True
        self._audit.debug_flush(
            self.source,
            self._lines,
            correlation_id=self.correlation_id,
            outcome=outcome.value,
            elapsed_ms=elapsed_ms,
            error=f"{type(error).__name__}: {error}" if error is not None else None,
        )
        return elapsed_ms
