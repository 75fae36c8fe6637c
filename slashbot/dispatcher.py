"""Command dispatcher - routes interactions to their handlers.

Every dispatch ends in exactly one of three outcomes and sends the
user at most one reply of its own:

    SUCCEEDED: the handler returned normally.
    NOT_FOUND: no handler for the name; the user gets an ephemeral
        "not implemented" reply.
    FAILED: the handler raised; the fault is logged with command name
        and user id, and the user gets a generic ephemeral error notice
        as a top-level response, or as a followup if the handler had
        already responded.

Dispatch never raises for handler or reply faults. Cancellation
(shutdown) is allowed to propagate.
"""

from __future__ import annotations

import time
from enum import Enum

import structlog

from .commands.registry import HandlerRegistry
from .platform import InteractionEvent

logger = structlog.get_logger("slashbot.commands")

NOT_IMPLEMENTED_MESSAGE = "This command is not implemented."
ERROR_MESSAGE = "An error occurred while executing the `{command}` command."


class DispatchOutcome(str, Enum):
    """Terminal state of one dispatch."""
    SUCCEEDED = "succeeded"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class CommandDispatcher:
    """Resolves and runs the handler for each inbound interaction.

    Args:
        registry: Loaded HandlerRegistry; only read, never mutated.
    """

    def __init__(self, registry: HandlerRegistry):
        self.registry = registry

    async def dispatch(self, event: InteractionEvent) -> DispatchOutcome:
        """Handle one interaction. Never raises for handler faults."""
        with structlog.contextvars.bound_contextvars(
            correlation_id=event.correlation_id,
            command=event.command_name,
            user_id=event.user_id,
        ):
            logger.info("command_received", guild_id=event.guild_id)

            entry = self.registry.resolve(event.command_name)
            if entry is None:
                logger.info("command_not_found")
                await self._notify(event, NOT_IMPLEMENTED_MESSAGE)
                return DispatchOutcome.NOT_FOUND

            started = time.monotonic()
            try:
                handler = self.registry.create_handler(entry)
                await handler.handle(event)
            except Exception as e:
                logger.error(
                    "command_failed",
                    command=entry.name,
                    user_id=event.user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                await self._notify(event, ERROR_MESSAGE.format(command=entry.name))
                return DispatchOutcome.FAILED

            logger.debug(
                "command_succeeded",
                command=entry.name,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            return DispatchOutcome.SUCCEEDED

    async def _notify(self, event: InteractionEvent, message: str) -> None:
        """Send one ephemeral notice on whichever channel is still open.

        A top-level response if none was sent yet, otherwise a
        followup. Delivery faults are logged and swallowed.
        """
        try:
            if not event.has_responded:
                await event.respond(message, ephemeral=True)
            else:
                await event.followup(message, ephemeral=True)
        except Exception as e:
            logger.warning(
                "error_notice_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
