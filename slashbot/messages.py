"""Inbound message handlers.

The lifecycle service forwards every plain (non-command) chat message
to one MessageHandler, chosen by the ``message_handler`` setting.
"""

from abc import ABC, abstractmethod

import structlog

from .platform import InboundMessage

logger = structlog.get_logger("slashbot.bot")


class MessageHandler(ABC):
    """Receives inbound chat messages."""

    @abstractmethod
    async def handle_message(self, message: InboundMessage) -> None:
        ...


class LogMessageHandler(MessageHandler):
    """Logs who sent a message and how long it was."""

    async def handle_message(self, message: InboundMessage) -> None:
        logger.info(
            "message_received",
            author=message.author_name,
            author_id=message.author_id,
            channel_id=message.channel_id,
            length=len(message.content),
        )


class NullMessageHandler(MessageHandler):
    async def handle_message(self, message: InboundMessage) -> None:
        return None


MESSAGE_HANDLERS = {
    "log": LogMessageHandler,
    "null": NullMessageHandler,
}


def create_message_handler(kind: str) -> MessageHandler:
    """Build the handler named by config, falling back to logging."""
    handler_cls = MESSAGE_HANDLERS.get((kind or "").lower())
    if handler_cls is None:
        logger.warning("unknown_message_handler", kind=kind, fallback="log")
        handler_cls = LogMessageHandler
    return handler_cls()
