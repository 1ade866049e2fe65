"""Discord gateway client -- feeds interactions, reactions and events to actions.

Every gateway callback already runs in its own task (``discord.Client``
schedules one per event), so a slow handler never blocks the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import discord

from ..actions.dispatcher import ActionDispatcher
from .catalog import sync_commands
from .events import EventFanout
from .interactions import InteractionRouter
from .reactions import ReactionRouter

logger = logging.getLogger(__name__)


class Bot(discord.Client):
    def __init__(
        self,
        dispatcher: ActionDispatcher,
        *,
        intents: discord.Intents | None = None,
        sync_catalog: bool = True,
    ) -> None:
        super().__init__(intents=intents or discord.Intents.default())
        self._dispatcher = dispatcher
        self._sync_catalog = sync_catalog
        self._catalog_synced = False
        self._interactions = InteractionRouter(dispatcher)
        self._reactions = ReactionRouter(dispatcher, self)
        self._events = EventFanout(dispatcher)
        self._event_tasks: set[asyncio.Task[Any]] = set()

    @property
    def dispatcher(self) -> ActionDispatcher:
        return self._dispatcher

    def dispatch(self, event: str, /, *args: Any, **kwargs: Any) -> None:
        super().dispatch(event, *args, **kwargs)
        if not self._events.wants(event):
            return
        task = asyncio.create_task(self._events.emit(event, *args), name=f"switchboard: {event}")
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    async def on_ready(self) -> None:
        logger.info("[bot] connected as %s (%s)", self.user, self.application_id)
        if self._sync_catalog and not self._catalog_synced and self.application_id:
            try:
                await sync_commands(
                    self.http, self.application_id, self._dispatcher.registry.commands(),
                )
                self._catalog_synced = True
            except discord.HTTPException:
                logger.error("[bot] command catalog sync failed", exc_info=True)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        await self._interactions.handle(interaction)

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        await self._reactions.handle(payload)
