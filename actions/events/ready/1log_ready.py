"""Log once the gateway session is ready."""

import logging

from switchboard.runtime.actions import LifecycleEvent

logger = logging.getLogger(__name__)


async def log_ready(ctx, debug):
    s = ctx.settings
    logger.info(
        "[events.ready] maintenance=%s developers=%d", s.maintenance_mode, len(s.developer_ids),
    )


action = LifecycleEvent(handler=log_ready)
