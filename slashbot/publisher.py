"""Registration publisher - pushes command descriptors to the platform.

Build failures for a single handler are logged and that handler is
left out. A rejection from the remote API is fatal: the publish stops
at the failing descriptor and raises PublishError, since a partially
registered command surface must be visible to the operator.
"""

from __future__ import annotations

from typing import List, Mapping, Optional

import structlog

from .commands.base import CommandDescriptor, HandlerEntry
from .commands.registry import HandlerRegistry
from .exceptions import PublishError
from .platform import CommandRegistrationApi

logger = structlog.get_logger("slashbot.commands")


class RegistrationPublisher:
    """Publishes every registered command as a global command.

    Args:
        registry: Source of handler entries and of the factory context.
        api: Remote command-registration API.
    """

    def __init__(self, registry: HandlerRegistry, api: CommandRegistrationApi):
        self.registry = registry
        self.api = api

    def build_descriptors(
        self, handlers: Optional[Mapping[str, HandlerEntry]] = None
    ) -> List[CommandDescriptor]:
        """Instantiate each handler once and collect its descriptor."""
        if handlers is None:
            handlers = self.registry.entries
        descriptors: List[CommandDescriptor] = []
        for name, entry in handlers.items():
            try:
                handler = self.registry.create_handler(entry)
                descriptors.append(handler.get_descriptor())
            except Exception as e:
                logger.error(
                    "command_descriptor_build_failed",
                    command=name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return descriptors

    async def publish(
        self, handlers: Optional[Mapping[str, HandlerEntry]] = None
    ) -> int:
        """Register all descriptors, one call at a time, in map order.

        Returns:
            Number of descriptors registered.

        Raises:
            PublishError: On the first remote rejection. Later
                descriptors are not attempted.
        """
        descriptors = self.build_descriptors(handlers)
        logger.info("command_publish_started", count=len(descriptors))

        registered = 0
        for descriptor in descriptors:
            logger.debug("command_publishing", command=descriptor.name)
            try:
                await self.api.create_global_command(descriptor)
            except Exception as e:
                logger.error(
                    "command_publish_failed",
                    command=descriptor.name,
                    registered=registered,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise PublishError(
                    f"Failed to register command {descriptor.name}",
                    command_name=descriptor.name,
                    registered=registered,
                    error=str(e),
                ) from e
            registered += 1

        logger.info("command_publish_complete", registered=registered)
        return registered
