"""Warn when a message mentions too many members."""

import discord

from switchboard.runtime.actions import LifecycleEvent

MAX_MENTIONS = 5


async def count_mentions(ctx, debug):
    (message,) = ctx.event
    if not isinstance(message, discord.Message) or message.author.bot:
        return
    if len(message.mentions) > MAX_MENTIONS:
        await message.reply("Please do not mass-mention members.", mention_author=False)


action = LifecycleEvent(is_guild_only=True, handler=count_mentions)
