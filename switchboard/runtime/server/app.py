"""HTTP server and Discord client -- app factory and entry point."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from aiohttp import web

from .. import __version__
from ..actions.audit import AuditSink
from ..actions.dispatcher import ActionDispatcher
from ..actions.loader import ActionLoader
from ..actions.models import LoadError
from ..actions.registry import ActionRegistry
from ..config.settings import Settings
from ..services.otel import configure_otel, quiet_noisy_loggers, shutdown_otel
from .middleware import (
    ApiKeyResolver,
    QuietAccessLogger,
    api_key_middleware,
    maintenance_middleware,
)
from .routes import RouteDispatcher

logger = logging.getLogger(__name__)


def build_dispatcher(
    settings: Settings,
    *,
    registry: ActionRegistry | None = None,
    services: Mapping[str, Any] | None = None,
) -> ActionDispatcher:
    """Load every action kind and wrap the result in a dispatcher.

    A broken command file raises :class:`LoadError` and stops startup.
    """
    audit = AuditSink(settings.log_dir)
    if registry is None:
        registry = ActionLoader(settings.actions_dir, settings, audit).load_all()
    return ActionDispatcher(registry, settings, audit, services=services)


def reload_actions(dispatcher: ActionDispatcher) -> bool:
    """Rebuild the registry from disk; on failure the old one stays live."""
    settings = dispatcher.settings
    dispatcher.audit.forget_warnings()
    loader = ActionLoader(settings.actions_dir, settings, dispatcher.audit)
    try:
        registry = loader.load_all()
    except LoadError as exc:
        logger.error("[reload] keeping previous actions: %s", exc)
        return False
    dispatcher.reload(registry)
    return True


def _log_task_exit(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("[bot] Discord client stopped: %s", exc, exc_info=exc)


class AppFactory:
    def __init__(
        self,
        settings: Settings,
        *,
        registry: ActionRegistry | None = None,
        services: Mapping[str, Any] | None = None,
        api_keys: ApiKeyResolver | None = None,
        start_bot: bool = True,
        reload_signal: bool = False,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._services = services
        self._api_keys = api_keys
        self._start_bot = start_bot
        self._reload_signal = reload_signal

    async def build(self) -> web.Application:
        s = self._settings
        dispatcher = build_dispatcher(s, registry=self._registry, services=self._services)

        if self._api_keys is None:
            logger.warning("[startup] no API key resolver configured -- routes run anonymously")

        app = web.Application(middlewares=[
            maintenance_middleware(s),
            api_key_middleware(self._api_keys, s.api_prefix),
        ])
        app["settings"] = s
        app["dispatcher"] = dispatcher

        self._register_routes(app, dispatcher)
        self._register_lifecycle(app, dispatcher)
        return app

    def _register_routes(self, app: web.Application, dispatcher: ActionDispatcher) -> None:
        async def health(_req: web.Request) -> web.Response:
            return web.json_response({
                "status": "ok",
                "version": __version__,
                "actions": len(dispatcher.registry),
                "maintenance": self._settings.maintenance_mode,
            })

        router = app.router
        router.add_get("/health", health)
        RouteDispatcher(dispatcher).register(router, self._settings.api_prefix)

    def _register_lifecycle(self, app: web.Application, dispatcher: ActionDispatcher) -> None:
        s = self._settings

        async def on_startup(app: web.Application) -> None:
            configure_otel(s.appinsights_connection_string)
            if self._reload_signal:
                _install_reload_signal(dispatcher)
            if not self._start_bot:
                return
            if not s.discord_token:
                logger.warning("[startup] DISCORD_TOKEN not set -- Discord client not started")
                return
            from ..messaging.bot import Bot

            bot = Bot(dispatcher, sync_catalog=s.sync_commands)
            task = asyncio.create_task(bot.start(s.discord_token), name="switchboard: discord")
            task.add_done_callback(_log_task_exit)
            app["bot"] = bot
            app["bot_task"] = task
            logger.info(
                "[startup] actions=%d api_prefix=%s maintenance=%s",
                len(dispatcher.registry), s.api_prefix or "/", s.maintenance_mode,
            )

        async def on_cleanup(app: web.Application) -> None:
            bot = app.get("bot")
            if bot is not None:
                await bot.close()
            task = app.get("bot_task")
            if task is not None:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            shutdown_otel()

        app.on_startup.append(on_startup)
        app.on_cleanup.append(on_cleanup)


def _install_reload_signal(dispatcher: ActionDispatcher) -> None:
    if not hasattr(signal, "SIGHUP"):
        return
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGHUP, reload_actions, dispatcher)
    except (NotImplementedError, RuntimeError):
        logger.debug("[startup] SIGHUP reload not available", exc_info=True)
        return
    logger.info("[startup] send SIGHUP to reload actions")


async def create_app() -> web.Application:
    from ..config.settings import cfg

    return await AppFactory(cfg, reload_signal=True).build()


async def run_bot(settings: Settings) -> None:
    """Discord-only mode, used when the HTTP server is disabled."""
    from ..messaging.bot import Bot

    dispatcher = build_dispatcher(settings)
    configure_otel(settings.appinsights_connection_string)
    _install_reload_signal(dispatcher)
    bot = Bot(dispatcher, sync_catalog=settings.sync_commands)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        shutdown_otel()


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Switchboard action server")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override WEB_SERVER_PORT (-1 runs the Discord client only).",
    )
    parser.add_argument(
        "--actions-dir",
        default=None,
        help="Override ACTIONS_DIR.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(name)s  %(levelname)s  %(message)s",
    )
    quiet_noisy_loggers()

    from ..config.settings import cfg

    cfg.reload()
    if args.port is not None:
        cfg.web_server_port = args.port
    if args.actions_dir:
        cfg.actions_dir = Path(args.actions_dir)
    missing = cfg.missing_required()
    if missing:
        logger.warning("Missing required settings: %s", ", ".join(missing))

    logger.info("Loading actions from %s ...", cfg.actions_dir)
    if not cfg.api_enabled:
        if not cfg.discord_token:
            raise SystemExit("DISCORD_TOKEN is required when the HTTP server is disabled")
        asyncio.run(run_bot(cfg))
        return

    logger.info("Starting server on port %d ...", cfg.web_server_port)
    web.run_app(
        create_app(),
        host="0.0.0.0",
        port=cfg.web_server_port,
        access_log_class=QuietAccessLogger,
    )


if __name__ == "__main__":
    main()
