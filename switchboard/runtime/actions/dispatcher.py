"""Shared action dispatcher.

Centralises resolution, guards and invocation so every transport adapter
(Discord interactions, reactions, gateway events, HTTP routes) goes
through a single implementation.  Adapters only build the invocation
context and say how a denial or a failure is shown to the caller.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from ..services.otel import action_span, set_span_attribute
from .debug import DebugStream, Outcome
from .guards import evaluate
from .models import (
    ActionDescriptor,
    ActionKind,
    ChatCommand,
    GuardReason,
    InvocationContext,
)
from .registry import ActionRegistry

if TYPE_CHECKING:
    from ..config.settings import Settings
    from .audit import AuditSink

logger = logging.getLogger(__name__)

# Routes answer maintenance in HTTP middleware; gateway events always run.
_MAINTENANCE_KINDS = frozenset({
    ActionKind.COMMAND,
    ActionKind.BUTTON,
    ActionKind.MODAL,
    ActionKind.STRING_MENU,
    ActionKind.REACTION,
})


class Responder(Protocol):
    async def maintenance(self, ctx: InvocationContext) -> None: ...

    async def deny(self, ctx: InvocationContext, reason: GuardReason) -> None: ...

    async def fail(self, ctx: InvocationContext) -> None: ...


class SilentResponder:
    """Responder for callers that cannot answer (gateway events, autocomplete)."""

    async def maintenance(self, ctx: InvocationContext) -> None:
        return None

    async def deny(self, ctx: InvocationContext, reason: GuardReason) -> None:
        return None

    async def fail(self, ctx: InvocationContext) -> None:
        return None


SILENT = SilentResponder()


class DispatchStatus(enum.Enum):
    MISS = "miss"
    MAINTENANCE = "maintenance"
    DENIED = "denied"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class DispatchResult:
    status: DispatchStatus
    correlation_id: str
    reason: GuardReason | None = None
    value: Any = None
    error: BaseException | None = None
    elapsed_ms: float = 0.0


class ActionDispatcher:
    def __init__(
        self,
        registry: ActionRegistry,
        settings: Settings,
        audit: AuditSink,
        *,
        services: Mapping[str, Any] | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings
        self._audit = audit
        self._services: Mapping[str, Any] = dict(services or {})

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def audit(self) -> AuditSink:
        return self._audit

    def reload(self, registry: ActionRegistry) -> None:
        """Swap in a freshly built registry; in-flight dispatches keep the old one."""
        self._registry = registry
        logger.info("[dispatch] registry reloaded (%d actions)", len(registry))

    def context(
        self,
        kind: ActionKind,
        event: Any,
        *,
        actor_id: str | None = None,
        permissions: frozenset[str] = frozenset(),
        guild_id: str | None = None,
    ) -> InvocationContext:
        return InvocationContext(
            kind=kind,
            event=event,
            settings=self._settings,
            actor_id=actor_id,
            permissions=permissions,
            guild_id=guild_id,
            services=self._services,
        )

    def resolve(self, kind: ActionKind, identifier: str) -> ActionDescriptor | None:
        return self._registry.get(kind, identifier)

    def under_maintenance(self, ctx: InvocationContext) -> bool:
        s = self._settings
        if not s.maintenance_mode:
            return False
        return not s.development_guild_id or ctx.guild_id != s.development_guild_id

    async def dispatch(
        self,
        kind: ActionKind,
        identifier: str,
        ctx: InvocationContext,
        responder: Responder,
    ) -> DispatchResult:
        descriptor = self.resolve(kind, identifier)
        if descriptor is None or descriptor.handler is None:
            logger.debug("[dispatch] no %s action for %r", kind.label, identifier)
            return DispatchResult(DispatchStatus.MISS, ctx.correlation_id)
        return await self.invoke(descriptor, ctx, responder)

    async def invoke(
        self,
        descriptor: ActionDescriptor,
        ctx: InvocationContext,
        responder: Responder,
    ) -> DispatchResult:
        ctx.descriptor = descriptor
        cid = ctx.correlation_id

        if descriptor.kind in _MAINTENANCE_KINDS and self.under_maintenance(ctx):
            await self.deliver(responder.maintenance(ctx), descriptor, "maintenance")
            return DispatchResult(DispatchStatus.MAINTENANCE, cid)

        decision = evaluate(descriptor, ctx, self._settings.developer_ids)
        if not decision.allowed and decision.reason is not None:
            self._audit.denial(
                descriptor.label, decision.reason.value, correlation_id=cid, actor_id=ctx.actor_id,
            )
            await self.deliver(responder.deny(ctx, decision.reason), descriptor, "denial")
            return DispatchResult(DispatchStatus.DENIED, cid, reason=decision.reason)

        debug = (
            DebugStream(descriptor.label, cid, self._audit) if descriptor.enable_debug else None
        )
        started = time.monotonic()
        outcome = Outcome.FAILED
        error: Exception | None = None
        value: Any = None
        try:
            with action_span(
                f"action.{descriptor.kind.label}",
                attributes={
                    "action.identifier": descriptor.identifier,
                    "action.correlation_id": cid,
                },
            ) as span:
                value = await self._run(descriptor, ctx, debug)
                set_span_attribute(span, "action.outcome", Outcome.SUCCEEDED.value)
            outcome = Outcome.SUCCEEDED
        except Exception as exc:
            error = exc
        finally:
            elapsed_ms = (time.monotonic() - started) * 1000
            if debug is not None:
                debug.close(outcome, error)

        if error is not None:
            self._audit.failure(descriptor.label, error, correlation_id=cid, elapsed_ms=elapsed_ms)
            await self.deliver(responder.fail(ctx), descriptor, "failure")
            return DispatchResult(DispatchStatus.FAILED, cid, error=error, elapsed_ms=elapsed_ms)

        logger.debug("[dispatch] %s ok in %.1fms cid=%s", descriptor.label, elapsed_ms, cid)
        return DispatchResult(DispatchStatus.SUCCEEDED, cid, value=value, elapsed_ms=elapsed_ms)

    async def autocomplete(
        self,
        command_name: str,
        ctx: InvocationContext,
        focused_name: str,
        focused_value: str,
    ) -> DispatchResult:
        """Delegate to the owning command's autocomplete handler.

        Nothing is shown to the user on failure; the error is recorded in
        the audit sink instead.
        """
        command = self.resolve(ActionKind.COMMAND, command_name)
        if not isinstance(command, ChatCommand) or command.autocomplete is None:
            return DispatchResult(DispatchStatus.MISS, ctx.correlation_id)
        ctx.descriptor = command

        decision = evaluate(command, ctx, self._settings.developer_ids)
        if not decision.allowed:
            return DispatchResult(DispatchStatus.DENIED, ctx.correlation_id, reason=decision.reason)

        started = time.monotonic()
        try:
            value = await command.autocomplete(ctx, focused_name, focused_value)
        except Exception as exc:
            elapsed_ms = (time.monotonic() - started) * 1000
            self._audit.failure(
                f"{command.name}-autocomplete", exc,
                correlation_id=ctx.correlation_id, elapsed_ms=elapsed_ms,
            )
            return DispatchResult(
                DispatchStatus.FAILED, ctx.correlation_id, error=exc, elapsed_ms=elapsed_ms,
            )
        return DispatchResult(DispatchStatus.SUCCEEDED, ctx.correlation_id, value=value)

    async def emit(
        self,
        event: str,
        make_context: Callable[[], InvocationContext],
    ) -> list[DispatchResult]:
        """Run every handler registered for a gateway *event*, in order.

        A failing handler is recorded and the remaining ones still run.
        """
        handlers = self._registry.events_for(event)
        results: list[DispatchResult] = []
        for descriptor in handlers:
            results.append(await self.invoke(descriptor, make_context(), SILENT))
        return results

    async def _run(
        self,
        descriptor: ActionDescriptor,
        ctx: InvocationContext,
        debug: DebugStream | None,
    ) -> Any:
        if descriptor.handler is None:
            raise RuntimeError(f"{descriptor.label} has no handler")
        call = descriptor.handler(ctx, debug)
        timeout = self._settings.handler_timeout
        if timeout > 0:
            return await asyncio.wait_for(call, timeout)
        return await call

    async def deliver(self, call: Any, descriptor: ActionDescriptor, what: str) -> None:
        """Await a responder call, logging instead of raising when delivery fails."""
        try:
            await call
        except Exception:
            logger.warning(
                "[dispatch] could not deliver %s response for %s", what, descriptor.label,
                exc_info=True,
            )
