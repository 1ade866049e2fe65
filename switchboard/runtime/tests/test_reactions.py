"""Tests for reaction routing."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from switchboard.runtime.actions.audit import AuditSink
from switchboard.runtime.actions.dispatcher import ActionDispatcher, DispatchStatus
from switchboard.runtime.actions.models import Reaction
from switchboard.runtime.actions.registry import ActionRegistry
from switchboard.runtime.config.settings import Settings
from switchboard.runtime.messaging.reactions import (
    REPEAT_TEXT,
    ReactionEvent,
    ReactionRouter,
    is_repeat,
)

PIN = "\N{PUSHPIN}"
BOT_ID = 999


def _payload(*, user_id: int = 1001, guild_id: int | None = 42, member=None) -> SimpleNamespace:
    return SimpleNamespace(
        user_id=user_id,
        guild_id=guild_id,
        channel_id=7,
        message_id=8,
        emoji=discord.PartialEmoji(name=PIN),
        member=member,
    )


def _message(count: int = 1) -> MagicMock:
    message = MagicMock()
    message.id = 8
    message.reactions = [SimpleNamespace(emoji=PIN, count=count)]
    message.remove_reaction = AsyncMock()
    message.reply = AsyncMock()
    return message


def _client(message: MagicMock) -> MagicMock:
    client = MagicMock()
    client.user.id = BOT_ID
    client.get_partial_messageable.return_value.fetch_message = AsyncMock(return_value=message)
    return client


@pytest.fixture()
def member() -> SimpleNamespace:
    return SimpleNamespace(guild_permissions=discord.Permissions(manage_messages=True))


def _router(settings, audit, client, *descriptors) -> ReactionRouter:
    registry = ActionRegistry.from_descriptors(*descriptors)
    return ReactionRouter(ActionDispatcher(registry, settings, audit), client)


class TestReactionRouter:
    async def test_handler_receives_event(
        self, settings: Settings, audit: AuditSink, member,
    ) -> None:
        handler = AsyncMock()
        message = _message()
        router = _router(settings, audit, _client(message), Reaction(emoji=PIN, handler=handler))
        payload = _payload(member=member)

        result = await router.handle(payload)

        assert result is not None and result.status is DispatchStatus.SUCCEEDED
        ctx = handler.await_args.args[0]
        assert isinstance(ctx.event, ReactionEvent)
        assert ctx.event.message is message
        assert ctx.actor_id == "1001"
        assert ctx.guild_id == "42"
        assert "manage_messages" in ctx.permissions

    async def test_own_reactions_ignored(self, settings: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        client = _client(_message())
        router = _router(settings, audit, client, Reaction(emoji=PIN, handler=handler))

        assert await router.handle(_payload(user_id=BOT_ID)) is None
        client.get_partial_messageable.assert_not_called()
        handler.assert_not_awaited()

    async def test_unknown_emoji_does_nothing(self, settings: Settings, audit: AuditSink) -> None:
        message = _message()
        client = _client(message)
        router = _router(settings, audit, client, Reaction(emoji="\N{WHITE HEAVY CHECK MARK}", handler=AsyncMock()))

        assert await router.handle(_payload()) is None
        client.get_partial_messageable.assert_not_called()
        message.reply.assert_not_awaited()

    async def test_repeat_reaction_rejected(self, settings: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        message = _message(count=2)
        router = _router(settings, audit, _client(message), Reaction(emoji=PIN, handler=handler))

        assert await router.handle(_payload()) is None

        handler.assert_not_awaited()
        message.remove_reaction.assert_awaited_once()
        content = message.reply.await_args.args[0]
        assert content == f"<@1001> {REPEAT_TEXT}"

    async def test_disabled_wins_over_repeat(self, settings: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        message = _message(count=2)
        router = _router(
            settings, audit, _client(message),
            Reaction(emoji=PIN, is_disabled=True, handler=handler),
        )

        result = await router.handle(_payload())

        assert result is not None and result.status is DispatchStatus.DENIED
        handler.assert_not_awaited()
        content = message.reply.await_args.args[0]
        assert "currently disabled" in content
        assert REPEAT_TEXT not in content

    async def test_maintenance_wins_over_repeat(self, settings: Settings, audit: AuditSink) -> None:
        settings.maintenance_mode = True
        message = _message(count=2)
        router = _router(settings, audit, _client(message), Reaction(emoji=PIN, handler=AsyncMock()))

        result = await router.handle(_payload())

        assert result is not None and result.status is DispatchStatus.MAINTENANCE
        assert REPEAT_TEXT not in message.reply.await_args.args[0]

    async def test_repeat_notice_delivery_failure_contained(
        self, settings: Settings, audit: AuditSink,
    ) -> None:
        message = _message(count=2)
        message.reply.side_effect = discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "no")
        router = _router(settings, audit, _client(message), Reaction(emoji=PIN, handler=AsyncMock()))

        assert await router.handle(_payload()) is None
        message.reply.assert_awaited_once()

    async def test_denial_removes_reaction(self, settings: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        message = _message()
        router = _router(
            settings, audit, _client(message),
            Reaction(emoji=PIN, permissions={"manage_messages"}, handler=handler),
        )

        result = await router.handle(_payload(member=None))

        assert result is not None and result.status is DispatchStatus.DENIED
        handler.assert_not_awaited()
        message.remove_reaction.assert_awaited_once()
        assert "permissions" in message.reply.await_args.args[0]

    async def test_failure_keeps_reaction(self, settings: Settings, audit: AuditSink) -> None:
        async def handler(ctx, debug):
            raise RuntimeError("boom")

        message = _message()
        router = _router(settings, audit, _client(message), Reaction(emoji=PIN, handler=handler))

        result = await router.handle(_payload())

        assert result is not None and result.status is DispatchStatus.FAILED
        message.remove_reaction.assert_not_awaited()
        assert result.correlation_id in message.reply.await_args.args[0]

    async def test_unfetchable_message(self, settings: Settings, audit: AuditSink) -> None:
        handler = AsyncMock()
        client = _client(_message())
        client.get_partial_messageable.return_value.fetch_message = AsyncMock(
            side_effect=discord.HTTPException(MagicMock(status=404, reason="Not Found"), "gone"),
        )
        router = _router(settings, audit, client, Reaction(emoji=PIN, handler=handler))

        assert await router.handle(_payload()) is None
        handler.assert_not_awaited()


class TestIsRepeat:
    def test_first_reaction(self) -> None:
        assert not is_repeat(_message(count=1), discord.PartialEmoji(name=PIN))

    def test_emoji_absent(self) -> None:
        assert not is_repeat(_message(count=3), discord.PartialEmoji(name="\N{WAVING HAND SIGN}"))
