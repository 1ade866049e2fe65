"""Tests for the shared action dispatcher."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from switchboard.runtime.actions.audit import AuditSink
from switchboard.runtime.actions.dispatcher import (
    ActionDispatcher,
    DispatchStatus,
)
from switchboard.runtime.actions.models import (
    ActionKind,
    Button,
    ChatCommand,
    GuardReason,
    LifecycleEvent,
    Reaction,
)
from switchboard.runtime.actions.registry import ActionRegistry
from switchboard.runtime.config.settings import Settings


def _responder() -> MagicMock:
    responder = MagicMock()
    responder.maintenance = AsyncMock()
    responder.deny = AsyncMock()
    responder.fail = AsyncMock()
    return responder


def _dispatcher(settings: Settings, audit: AuditSink, *descriptors, services=None):
    registry = ActionRegistry.from_descriptors(*descriptors)
    return ActionDispatcher(registry, settings, audit, services=services)


class TestDispatch:
    async def test_unknown_identifier_is_a_miss(self, settings: Settings, audit: AuditSink) -> None:
        dispatcher = _dispatcher(settings, audit)
        responder = _responder()
        ctx = dispatcher.context(ActionKind.BUTTON, None, actor_id="u1")

        result = await dispatcher.dispatch(ActionKind.BUTTON, "nope", ctx, responder)

        assert result.status is DispatchStatus.MISS
        responder.deny.assert_not_awaited()
        responder.fail.assert_not_awaited()
        assert list(audit.records) == []

    async def test_catalog_only_command_is_a_miss(
        self, settings: Settings, audit: AuditSink,
    ) -> None:
        dispatcher = _dispatcher(
            settings, audit, ChatCommand(name="listed", description="No handler"),
        )
        ctx = dispatcher.context(ActionKind.COMMAND, None)
        result = await dispatcher.dispatch(ActionKind.COMMAND, "listed", ctx, _responder())
        assert result.status is DispatchStatus.MISS

    async def test_handler_receives_context(self, settings: Settings, audit: AuditSink) -> None:
        seen = {}

        async def handler(ctx, debug):
            seen["ctx"] = ctx
            seen["debug"] = debug
            return "pong"

        cmd = ChatCommand(name="ping", description="Ping", handler=handler)
        dispatcher = _dispatcher(settings, audit, cmd, services={"db": "pool"})
        ctx = dispatcher.context(ActionKind.COMMAND, "event", actor_id="u1", guild_id="g1")

        result = await dispatcher.dispatch(ActionKind.COMMAND, "ping", ctx, _responder())

        assert result.status is DispatchStatus.SUCCEEDED
        assert result.value == "pong"
        assert result.correlation_id == ctx.correlation_id
        assert seen["ctx"].descriptor is cmd
        assert seen["ctx"].event == "event"
        assert seen["ctx"].services["db"] == "pool"
        assert seen["debug"] is None

    async def test_denial_is_audited(self, settings: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        btn = Button(custom_id="admin", permissions={"administrator"}, handler=handler)
        dispatcher = _dispatcher(settings, audit, btn)
        responder = _responder()
        ctx = dispatcher.context(ActionKind.BUTTON, None, actor_id="u1", guild_id="g1")

        result = await dispatcher.dispatch(ActionKind.BUTTON, "admin", ctx, responder)

        assert result.status is DispatchStatus.DENIED
        assert result.reason is GuardReason.INSUFFICIENT_PERMISSIONS
        handler.assert_not_awaited()
        responder.deny.assert_awaited_once_with(ctx, GuardReason.INSUFFICIENT_PERMISSIONS)
        [denial] = audit.of("denial")
        assert denial.message == "InsufficientPermissions"
        assert denial.correlation_id == ctx.correlation_id

    async def test_disabled_action_never_runs(self, settings: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        dispatcher = _dispatcher(settings, audit, Button(custom_id="b", is_disabled=True, handler=handler))
        ctx = dispatcher.context(ActionKind.BUTTON, None)

        result = await dispatcher.dispatch(ActionKind.BUTTON, "b", ctx, _responder())

        assert result.reason is GuardReason.DISABLED
        handler.assert_not_awaited()


class TestFailureContainment:
    async def test_failure_recorded_once(self, settings: Settings, audit: AuditSink) -> None:
        async def handler(ctx, debug):
            raise RuntimeError("boom")

        dispatcher = _dispatcher(settings, audit, Button(custom_id="bad", handler=handler))
        responder = _responder()
        ctx = dispatcher.context(ActionKind.BUTTON, None)

        result = await dispatcher.dispatch(ActionKind.BUTTON, "bad", ctx, responder)

        assert result.status is DispatchStatus.FAILED
        assert isinstance(result.error, RuntimeError)
        responder.fail.assert_awaited_once_with(ctx)
        [failure] = audit.of("failure")
        assert failure.correlation_id == ctx.correlation_id
        assert failure.source == "bad-button"

    async def test_next_invocation_unaffected(self, settings: Settings, audit: AuditSink) -> None:
        calls = []

        async def handler(ctx, debug):
            calls.append(ctx.correlation_id)
            if len(calls) == 1:
                raise RuntimeError("first call fails")
            return "ok"

        dispatcher = _dispatcher(settings, audit, Button(custom_id="flaky", handler=handler))

        first = await dispatcher.dispatch(
            ActionKind.BUTTON, "flaky", dispatcher.context(ActionKind.BUTTON, None), _responder(),
        )
        second = await dispatcher.dispatch(
            ActionKind.BUTTON, "flaky", dispatcher.context(ActionKind.BUTTON, None), _responder(),
        )

        assert first.status is DispatchStatus.FAILED
        assert second.status is DispatchStatus.SUCCEEDED
        assert first.correlation_id != second.correlation_id
        assert len(audit.of("failure")) == 1

    async def test_broken_responder_does_not_propagate(
        self, settings: Settings, audit: AuditSink,
    ) -> None:
        async def handler(ctx, debug):
            raise RuntimeError("boom")

        dispatcher = _dispatcher(settings, audit, Button(custom_id="bad", handler=handler))
        responder = _responder()
        responder.fail.side_effect = ConnectionError("interaction expired")

        result = await dispatcher.dispatch(
            ActionKind.BUTTON, "bad", dispatcher.context(ActionKind.BUTTON, None), responder,
        )

        assert result.status is DispatchStatus.FAILED

    async def test_handler_timeout(self, settings: Settings, audit: AuditSink) -> None:
        settings.handler_timeout = 0.05

        async def handler(ctx, debug):
            await asyncio.sleep(1)

        dispatcher = _dispatcher(settings, audit, Button(custom_id="slow", handler=handler))
        result = await dispatcher.dispatch(
            ActionKind.BUTTON, "slow", dispatcher.context(ActionKind.BUTTON, None), _responder(),
        )

        assert result.status is DispatchStatus.FAILED
        assert isinstance(result.error, asyncio.TimeoutError)


class TestDebugStream:
    async def test_stream_only_when_enabled(self, settings: Settings, audit: AuditSink) -> None:
        async def handler(ctx, debug):
            debug.write("step one")
            return None

        dispatcher = _dispatcher(
            settings, audit, Button(custom_id="dbg", enable_debug=True, handler=handler),
        )
        ctx = dispatcher.context(ActionKind.BUTTON, None)

        await dispatcher.dispatch(ActionKind.BUTTON, "dbg", ctx, _responder())

        [record] = audit.of("debug")
        assert record.message == "Succeeded"
        assert record.correlation_id == ctx.correlation_id
        assert record.details["lines"][0].endswith("step one")

    async def test_stream_flushed_on_failure(self, settings: Settings, audit: AuditSink) -> None:
        async def handler(ctx, debug):
            debug.write("about to fail")
            raise ValueError("bad input")

        dispatcher = _dispatcher(
            settings, audit, Button(custom_id="dbg", enable_debug=True, handler=handler),
        )
        await dispatcher.dispatch(
            ActionKind.BUTTON, "dbg", dispatcher.context(ActionKind.BUTTON, None), _responder(),
        )

        [record] = audit.of("debug")
        assert record.message == "Failed"
        assert record.details["error"] == "ValueError: bad input"


class TestConcurrency:
    async def test_invocations_overlap(self, settings: Settings, audit: AuditSink) -> None:
        async def handler(ctx, debug):
            await asyncio.sleep(0.2)
            return ctx.correlation_id

        dispatcher = _dispatcher(settings, audit, Button(custom_id="slow", handler=handler))

        started = time.monotonic()
        results = await asyncio.gather(*(
            dispatcher.dispatch(
                ActionKind.BUTTON, "slow", dispatcher.context(ActionKind.BUTTON, None), _responder(),
            )
            for _ in range(10)
        ))
        elapsed = time.monotonic() - started

        assert elapsed < 1.0
        assert len({r.correlation_id for r in results}) == 10
        assert all(r.status is DispatchStatus.SUCCEEDED for r in results)


class TestMaintenance:
    @pytest.fixture()
    def maintenance(self, settings: Settings) -> Settings:
        settings.maintenance_mode = True
        settings.development_guild_id = "dev-guild"
        return settings

    async def test_commands_blocked(self, maintenance: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        dispatcher = _dispatcher(
            maintenance, audit, ChatCommand(name="ping", description="d", handler=handler),
        )
        responder = _responder()
        ctx = dispatcher.context(ActionKind.COMMAND, None, guild_id="other")

        result = await dispatcher.dispatch(ActionKind.COMMAND, "ping", ctx, responder)

        assert result.status is DispatchStatus.MAINTENANCE
        responder.maintenance.assert_awaited_once_with(ctx)
        handler.assert_not_awaited()

    async def test_reactions_blocked(self, maintenance: Settings, audit: AuditSink) -> None:
        dispatcher = _dispatcher(maintenance, audit, Reaction(emoji="x", handler=AsyncMock()))
        ctx = dispatcher.context(ActionKind.REACTION, None)
        result = await dispatcher.dispatch(ActionKind.REACTION, "x", ctx, _responder())
        assert result.status is DispatchStatus.MAINTENANCE

    async def test_development_guild_allowed(self, maintenance: Settings, audit: AuditSink) -> None:
        dispatcher = _dispatcher(
            maintenance, audit, ChatCommand(name="ping", description="d", handler=AsyncMock()),
        )
        ctx = dispatcher.context(ActionKind.COMMAND, None, guild_id="dev-guild")
        result = await dispatcher.dispatch(ActionKind.COMMAND, "ping", ctx, _responder())
        assert result.status is DispatchStatus.SUCCEEDED

    async def test_events_still_run(self, maintenance: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        dispatcher = _dispatcher(
            maintenance, audit, LifecycleEvent(event="ready", name="log", handler=handler),
        )

        results = await dispatcher.emit(
            "ready", lambda: dispatcher.context(ActionKind.EVENT, ()),
        )

        assert [r.status for r in results] == [DispatchStatus.SUCCEEDED]
        handler.assert_awaited_once()


class TestAutocomplete:
    async def test_delegates_to_command(self, settings: Settings, audit: AuditSink) -> None:
        async def complete(ctx, name, value):
            return [f"{name}:{value}"]

        cmd = ChatCommand(name="tag", description="d", handler=AsyncMock(), autocomplete=complete)
        dispatcher = _dispatcher(settings, audit, cmd)
        ctx = dispatcher.context(ActionKind.COMMAND, None)

        result = await dispatcher.autocomplete("tag", ctx, "query", "he")

        assert result.status is DispatchStatus.SUCCEEDED
        assert result.value == ["query:he"]

    async def test_failure_only_audited(self, settings: Settings, audit: AuditSink) -> None:
        async def complete(ctx, name, value):
            raise KeyError(value)

        cmd = ChatCommand(name="tag", description="d", handler=AsyncMock(), autocomplete=complete)
        dispatcher = _dispatcher(settings, audit, cmd)
        ctx = dispatcher.context(ActionKind.COMMAND, None)

        result = await dispatcher.autocomplete("tag", ctx, "query", "he")

        assert result.status is DispatchStatus.FAILED
        [failure] = audit.of("failure")
        assert failure.source == "tag-autocomplete"
        assert failure.correlation_id == ctx.correlation_id

    async def test_command_without_autocomplete(self, settings: Settings, audit: AuditSink) -> None:
        dispatcher = _dispatcher(
            settings, audit, ChatCommand(name="ping", description="d", handler=AsyncMock()),
        )
        ctx = dispatcher.context(ActionKind.COMMAND, None)
        result = await dispatcher.autocomplete("ping", ctx, "x", "")
        assert result.status is DispatchStatus.MISS

    async def test_guards_apply(self, settings: Settings, audit: AuditSink) -> None:
        complete = AsyncMock(return_value=[])
        cmd = ChatCommand(
            name="tag", description="d", is_guild_only=True, handler=AsyncMock(), autocomplete=complete,
        )
        dispatcher = _dispatcher(settings, audit, cmd)
        ctx = dispatcher.context(ActionKind.COMMAND, None, guild_id=None)

        result = await dispatcher.autocomplete("tag", ctx, "x", "")

        assert result.status is DispatchStatus.DENIED
        complete.assert_not_awaited()


class TestEmit:
    async def test_runs_in_order_past_failures(self, settings: Settings, audit: AuditSink) -> None:
        order = []

        def make(name):
            async def handler(ctx, debug):
                order.append(name)
                if name == "second":
                    raise RuntimeError("boom")
            return handler

        dispatcher = _dispatcher(
            settings,
            audit,
            LifecycleEvent(event="message", name="third", handler=make("third")),
            LifecycleEvent(event="message", name="first", ordinal=1, handler=make("first")),
            LifecycleEvent(event="message", name="second", ordinal=2, handler=make("second")),
        )

        results = await dispatcher.emit(
            "message", lambda: dispatcher.context(ActionKind.EVENT, ("msg",)),
        )

        assert order == ["first", "second", "third"]
        assert [r.status for r in results] == [
            DispatchStatus.SUCCEEDED, DispatchStatus.FAILED, DispatchStatus.SUCCEEDED,
        ]
        assert len({r.correlation_id for r in results}) == 3
        assert len(audit.of("failure")) == 1

    async def test_unregistered_event(self, settings: Settings, audit: AuditSink) -> None:
        dispatcher = _dispatcher(settings, audit)
        results = await dispatcher.emit("typing", lambda: dispatcher.context(ActionKind.EVENT, ()))
        assert results == []


class TestReload:
    async def test_swaps_registry(self, settings: Settings, audit: AuditSink) -> None:
        dispatcher = _dispatcher(settings, audit, Button(custom_id="old", handler=AsyncMock()))
        dispatcher.reload(ActionRegistry.from_descriptors(Button(custom_id="new", handler=AsyncMock())))

        assert dispatcher.resolve(ActionKind.BUTTON, "old") is None
        assert dispatcher.resolve(ActionKind.BUTTON, "new") is not None
