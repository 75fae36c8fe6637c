"""Main entry point for slashbot.

Initializes logging in two phases (defaults then config-driven),
wires the registry, dispatcher, publisher and lifecycle service, and
runs the event loop with graceful shutdown on SIGTERM/SIGINT.

Key functions:
    build_service: Compose the object graph from a Config.
    supervise: Run the service until it ends or a signal arrives.
    main: Async entry point; returns the process exit code.
    run: Synchronous wrapper for the ``slashbot`` console script.
"""

import asyncio
import signal
import sys
from typing import Iterable, Optional

import structlog

from . import __version__
from .logging_config import setup_logging


def build_service(config, session=None, sources: Optional[Iterable] = None):
    """Build a ready-to-run ConnectionLifecycleService.

    Args:
        config: Loaded Config.
        session: PlatformSession to drive. Defaults to a DiscordSession.
        sources: CommandSources to discover. Defaults to the built-ins.
    """
    from .commands import BUILTIN_COMMANDS, BotContext, HandlerRegistry
    from .consent import ConsentStore
    from .discord_api import DiscordRestClient
    from .dispatcher import CommandDispatcher
    from .lifecycle import ConnectionLifecycleService
    from .messages import create_message_handler
    from .publisher import RegistrationPublisher

    if session is None:
        from .session import DiscordSession
        session = DiscordSession()

    ctx = BotContext(
        config=config,
        session=session,
        _consent_store=ConsentStore(config.consent_file),
    )

    registry = HandlerRegistry(ctx)
    registry.load(list(sources) if sources is not None else [BUILTIN_COMMANDS])

    api = DiscordRestClient(
        token=config.bot_token,
        application_id=config.application_id,
        application_id_provider=lambda: session.application_id,
        base_url=config.api_base_url,
    )

    return ConnectionLifecycleService(
        session=session,
        token=config.bot_token,
        dispatcher=CommandDispatcher(registry),
        publisher=RegistrationPublisher(registry, api),
        message_handler=create_message_handler(config.message_handler),
        drain_timeout=config.shutdown_drain_timeout,
    )


async def supervise(service, shutdown_event: asyncio.Event) -> int:
    """Run the service until it ends or a shutdown is requested.

    Returns:
        0 after a clean shutdown, 1 when a fatal error ended the run.
    """
    logger = structlog.get_logger("slashbot.bot")
    exit_code = 0
    bot_task = asyncio.create_task(service.run())
    shutdown_task = asyncio.create_task(shutdown_event.wait())
    try:
        await asyncio.wait(
            {bot_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if not bot_task.done():
            bot_task.cancel()
        try:
            await bot_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("bot_error", error=str(e), error_type=type(e).__name__)
            exit_code = 1
    finally:
        shutdown_task.cancel()
        # run() stops the service itself unless it never got that far
        if service.needs_stop:
            await service.stop()
    return exit_code


async def main() -> int:
    """Main async entry point. Returns the process exit code."""
    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("slashbot.bot")

    logger.info("slashbot_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .config import get_config
    from .exceptions import ConfigurationError

    config = get_config()
    try:
        config.validate()
    except ConfigurationError as e:
        logger.error("config_invalid", error=str(e))
        return 2

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    service = build_service(config)

    # Setup graceful shutdown
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: add_signal_handler not supported.
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    exit_code = await supervise(service, shutdown_event)
    logger.info("slashbot_stopped", exit_code=exit_code)
    return exit_code


def run():
    """Synchronous entry point for the ``slashbot`` console script."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
