"""OpenTelemetry bootstrap and span helpers for action invocations."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from ..util.singletons import register_singleton

logger = logging.getLogger(__name__)

_otel_active = False

_NOISY_LOGGERS = (
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.monitor.opentelemetry.exporter.export._base",
    "discord.gateway",
    "discord.http",
)

_TRACER_NAME = "switchboard"


def quiet_noisy_loggers() -> None:
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _reset_otel_state() -> None:
    """Reset module-level OTel state -- for test isolation only."""
    global _otel_active
    _otel_active = False


register_singleton(_reset_otel_state)


def configure_otel(connection_string: str, *, sampling_ratio: float = 1.0) -> bool:
    """Initialise the Azure Monitor OpenTelemetry distro.

    Returns ``True`` if tracing is active afterwards.  Monitoring is
    optional and never prevents startup.
    """
    global _otel_active

    if _otel_active:
        return True
    if not connection_string:
        logger.info("[otel.configure] No connection string provided, skipping")
        return False

    try:
        from azure.monitor.opentelemetry import configure_azure_monitor

        configure_azure_monitor(
            connection_string=connection_string,
            sampling_ratio=sampling_ratio,
        )
    except Exception:
        logger.error("[otel.configure] Failed to configure OTel", exc_info=True)
        return False

    _otel_active = True
    quiet_noisy_loggers()
    logger.info("[otel.configure] Azure Monitor OpenTelemetry configured (sampling=%.2f)", sampling_ratio)
    return True


def shutdown_otel() -> None:
    global _otel_active

    if not _otel_active:
        return
    from opentelemetry import trace

    tp = trace.get_tracer_provider()
    if hasattr(tp, "shutdown"):
        tp.shutdown()
    _otel_active = False
    logger.info("[otel.shutdown] tracer provider shut down")


def is_active() -> bool:
    return _otel_active


@contextmanager
def action_span(
    name: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> Generator[Any, None, None]:
    """Span around one action invocation; yields ``None`` when OTel is off.

    Exceptions raised inside the block mark the span as failed and
    propagate unchanged.
    """
    if not _otel_active:
        yield None
        return

    from opentelemetry import trace
    from opentelemetry.trace import StatusCode

    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(name, attributes=attributes) as span:
        try:
            yield span
        except Exception as exc:
            if span.is_recording():
                span.set_attribute("error.type", type(exc).__name__)
                span.set_status(StatusCode.ERROR, str(exc)[:200])
            raise


def set_span_attribute(span: Any, key: str, value: Any) -> None:
    if span is not None and span.is_recording():
        span.set_attribute(key, value)
