"""Gateway event fan-out to lifecycle actions."""

from __future__ import annotations

import logging
from typing import Any

from ..actions.dispatcher import ActionDispatcher, DispatchResult, DispatchStatus
from ..actions.models import ActionKind, InvocationContext

logger = logging.getLogger(__name__)


def event_scope(args: tuple[Any, ...]) -> tuple[str | None, str | None]:
    """Best-effort ``(actor_id, guild_id)`` from the first gateway argument.

    Messages carry an author, members and users are the actor themselves,
    raw payloads only carry ids.
    """
    if not args:
        return None, None
    subject = args[0]

    actor = getattr(subject, "author", None) or getattr(subject, "user", None)
    actor_id = getattr(actor, "id", None) or getattr(subject, "user_id", None)
    if actor_id is None and hasattr(subject, "guild") and hasattr(subject, "joined_at"):
        actor_id = getattr(subject, "id", None)

    guild = getattr(subject, "guild", None)
    guild_id = getattr(guild, "id", None) or getattr(subject, "guild_id", None)

    return (
        str(actor_id) if actor_id is not None else None,
        str(guild_id) if guild_id is not None else None,
    )


class EventFanout:
    def __init__(self, dispatcher: ActionDispatcher) -> None:
        self._dispatcher = dispatcher

    def wants(self, event: str) -> bool:
        return bool(self._dispatcher.registry.events_for(event))

    async def emit(self, event: str, *args: Any) -> list[DispatchResult]:
        actor_id, guild_id = event_scope(args)

        def make_context() -> InvocationContext:
            return self._dispatcher.context(
                ActionKind.EVENT, args, actor_id=actor_id, guild_id=guild_id,
            )

        results = await self._dispatcher.emit(event, make_context)
        failed = sum(1 for r in results if r.status is DispatchStatus.FAILED)
        if failed:
            logger.info("[events] %s: %d/%d handlers failed", event, failed, len(results))
        return results
