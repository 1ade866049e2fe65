"""Reaction routing -- maps an added emoji to its reaction action."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import discord

from ..actions.dispatcher import ActionDispatcher, DispatchResult
from ..actions.guards import denial_text, evaluate
from ..actions.models import ActionKind, GuardReason, InvocationContext
from .interactions import FAILURE_TEXT, MAINTENANCE_TEXT, permission_names

logger = logging.getLogger(__name__)

NOTICE_TTL = 30.0
REPEAT_TEXT = "You can only trigger this reaction once per message."


@dataclass
class ReactionEvent:
    """What a reaction handler receives as ``ctx.event``."""

    payload: discord.RawReactionActionEvent
    message: discord.Message


class ReactionResponder:
    """Removes the triggering reaction and replies with a short-lived notice."""

    def __init__(self, event: ReactionEvent) -> None:
        self._event = event

    async def maintenance(self, ctx: InvocationContext) -> None:
        await self.notice(MAINTENANCE_TEXT)

    async def deny(self, ctx: InvocationContext, reason: GuardReason) -> None:
        await self.notice(denial_text(ActionKind.REACTION, reason))

    async def fail(self, ctx: InvocationContext) -> None:
        await self.notice(
            FAILURE_TEXT.format(label=ActionKind.REACTION.label, cid=ctx.correlation_id),
            remove=False,
        )

    async def notice(self, content: str, *, remove: bool = True) -> None:
        payload, message = self._event.payload, self._event.message
        if remove:
            try:
                await message.remove_reaction(payload.emoji, discord.Object(id=payload.user_id))
            except discord.HTTPException:
                logger.debug("[reactions] could not remove reaction on %s", message.id)
        await message.reply(
            f"<@{payload.user_id}> {content}",
            delete_after=NOTICE_TTL,
            mention_author=False,
        )


def is_repeat(message: discord.Message, emoji: discord.PartialEmoji) -> bool:
    """True when the emoji was already on the message before this reaction."""
    wanted = str(emoji)
    for reaction in message.reactions:
        if str(reaction.emoji) == wanted:
            return reaction.count > 1
    return False


class ReactionRouter:
    def __init__(self, dispatcher: ActionDispatcher, client: discord.Client) -> None:
        self._dispatcher = dispatcher
        self._client = client

    async def handle(self, payload: discord.RawReactionActionEvent) -> DispatchResult | None:
        me = self._client.user
        if me is not None and payload.user_id == me.id:
            return None

        emoji = payload.emoji.name or str(payload.emoji)
        descriptor = self._dispatcher.resolve(ActionKind.REACTION, emoji)
        if descriptor is None or descriptor.handler is None:
            return None

        message = await self._fetch_message(payload)
        if message is None:
            return None

        event = ReactionEvent(payload, message)
        responder = ReactionResponder(event)
        member = payload.member
        ctx = self._dispatcher.context(
            ActionKind.REACTION,
            event,
            actor_id=str(payload.user_id),
            permissions=permission_names(member.guild_permissions) if member else frozenset(),
            guild_id=str(payload.guild_id) if payload.guild_id else None,
        )

        # Maintenance and guard denials take precedence over the repeat notice.
        if (
            is_repeat(message, payload.emoji)
            and not self._dispatcher.under_maintenance(ctx)
            and evaluate(descriptor, ctx, self._dispatcher.settings.developer_ids).allowed
        ):
            await self._dispatcher.deliver(responder.notice(REPEAT_TEXT), descriptor, "repeat")
            return None
        return await self._dispatcher.invoke(descriptor, ctx, responder)

    async def _fetch_message(self, payload: discord.RawReactionActionEvent) -> discord.Message | None:
        channel = self._client.get_partial_messageable(payload.channel_id)
        try:
            return await channel.fetch_message(payload.message_id)
        except discord.HTTPException:
            logger.warning(
                "[reactions] cannot fetch message %s in %s", payload.message_id, payload.channel_id,
                exc_info=True,
            )
            return None
