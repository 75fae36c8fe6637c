"""Handler registry - maps command names to implementations.

Discovery iterates over explicit CommandSource registration lists
instead of scanning for types at runtime. Two discovery modes exist:

    discover: builds each handler through its factory and asks it for
        its descriptor. Authoritative, because it sees overridden
        behaviour.
    discover_by_metadata: reads @slash_command metadata or a static
        ``command_name`` attribute without constructing anything.

Both are partial-failure tolerant: a bad type is skipped with a
warning and a source that cannot be loaded yields an empty mapping.
The map built by ``load()`` is read-only afterwards, so concurrent
lookups need no locking.
"""

from __future__ import annotations

import inspect
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

import structlog

from ..exceptions import DiscoveryError
from .base import (
    BotContext,
    CommandRegistration,
    CommandSource,
    HandlerEntry,
    SlashCommand,
    static_command_name,
)

logger = structlog.get_logger("slashbot.commands")


def _is_command_type(candidate: object) -> bool:
    return (
        isinstance(candidate, type)
        and issubclass(candidate, SlashCommand)
        and not inspect.isabstract(candidate)
    )


def _type_label(candidate: object) -> str:
    module = getattr(candidate, "__module__", "?")
    qualname = getattr(candidate, "__qualname__", repr(candidate))
    return f"{module}.{qualname}"


class HandlerRegistry:
    """Case-insensitive map of command name -> HandlerEntry.

    Args:
        ctx: Dependency container passed to command factories during
            discovery and dispatch.
    """

    def __init__(self, ctx: BotContext):
        self.ctx = ctx
        self._entries: Dict[str, HandlerEntry] = {}

    # --- Discovery ---

    def discover(self, source: CommandSource) -> Dict[str, HandlerEntry]:
        """Build a name -> entry map by instantiating each registration.

        Each instance exists only to read its descriptor and is then
        discarded. Never raises.
        """
        logger.info("command_scan_started", source=source.name)
        try:
            registrations = source.load()
        except Exception as e:
            logger.error(
                "command_scan_failed",
                source=source.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return {}

        result: Dict[str, HandlerEntry] = {}
        for registration in registrations:
            try:
                entry = self._describe(registration, source.name)
            except Exception as e:
                logger.warning(
                    "command_discovery_failed",
                    command_type=_type_label(registration.command_type),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if entry is None:
                continue
            self._put(result, entry)

        logger.info("command_scan_complete", source=source.name, count=len(result))
        return result

    def discover_by_metadata(self, source: CommandSource) -> Dict[str, HandlerEntry]:
        """Build a name -> entry map from static metadata only.

        Used when constructing handlers is undesirable. Types with
        neither @slash_command metadata nor a ``command_name``
        attribute are skipped with a warning. Never raises.
        """
        logger.info("command_metadata_scan_started", source=source.name)
        try:
            registrations = source.load()
        except Exception as e:
            logger.error(
                "command_metadata_scan_failed",
                source=source.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return {}

        result: Dict[str, HandlerEntry] = {}
        for registration in registrations:
            command_type = registration.command_type
            try:
                if not _is_command_type(command_type):
                    logger.debug(
                        "command_type_skipped", command_type=_type_label(command_type)
                    )
                    continue
                name = static_command_name(command_type)
                if not name:
                    logger.warning(
                        "command_type_unnamed", command_type=_type_label(command_type)
                    )
                    continue
            except Exception as e:
                logger.warning(
                    "command_discovery_failed",
                    command_type=_type_label(command_type),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            self._put(
                result,
                HandlerEntry(
                    name=name,
                    command_type=command_type,
                    factory=registration.factory,
                    source=source.name,
                ),
            )

        logger.info(
            "command_metadata_scan_complete", source=source.name, count=len(result)
        )
        return result

    def discover_all(
        self, sources: Iterable[CommandSource], by_metadata: bool = False
    ) -> Dict[str, HandlerEntry]:
        """Discover several sources and union them in iteration order.

        On a name collision the later source's entry wins.
        """
        merged: Dict[str, HandlerEntry] = {}
        for source in sources:
            found = (
                self.discover_by_metadata(source) if by_metadata else self.discover(source)
            )
            for entry in found.values():
                self._put(merged, entry)
        return merged

    def load(self, sources: Iterable[CommandSource], by_metadata: bool = False) -> int:
        """Replace the registry's map with the merged discovery result.

        Returns:
            Number of registered commands.
        """
        self._entries = self.discover_all(sources, by_metadata=by_metadata)
        logger.info(
            "command_registry_loaded",
            commands=sorted(self._entries),
            mode="metadata" if by_metadata else "instance",
        )
        return len(self._entries)

    def _describe(
        self, registration: CommandRegistration, source_name: str
    ) -> Optional[HandlerEntry]:
        command_type = registration.command_type
        if not _is_command_type(command_type):
            logger.debug("command_type_skipped", command_type=_type_label(command_type))
            return None

        candidate = HandlerEntry(
            name="",
            command_type=command_type,
            factory=registration.factory,
            source=source_name,
        )
        handler = candidate.create_handler(self.ctx)
        descriptor = handler.get_descriptor()
        if descriptor is None:
            raise DiscoveryError(
                "Handler returned no descriptor",
                command_type=_type_label(command_type),
            )

        static_name = static_command_name(command_type)
        if static_name and static_name != descriptor.name:
            logger.warning(
                "command_metadata_mismatch",
                command_type=_type_label(command_type),
                metadata_name=static_name,
                instance_name=descriptor.name,
            )

        logger.debug(
            "command_discovered",
            command=descriptor.name,
            command_type=command_type.__name__,
        )
        return HandlerEntry(
            name=descriptor.name,
            command_type=command_type,
            factory=registration.factory,
            source=source_name,
        )

    @staticmethod
    def _put(target: Dict[str, HandlerEntry], entry: HandlerEntry) -> None:
        key = entry.name.lower()
        previous = target.get(key)
        if previous is not None and previous.command_type is not entry.command_type:
            logger.warning(
                "command_handler_conflict",
                command=key,
                replaced=_type_label(previous.command_type),
                handler=_type_label(entry.command_type),
                source=entry.source,
            )
        target[key] = entry

    # --- Lookup ---

    def resolve(self, name: str) -> Optional[HandlerEntry]:
        """Look up a command by name, ignoring case."""
        if not name:
            return None
        return self._entries.get(name.strip().lower())

    def create_handler(self, entry: HandlerEntry) -> SlashCommand:
        """Build a fresh handler for one invocation."""
        return entry.create_handler(self.ctx)

    @property
    def entries(self) -> Mapping[str, HandlerEntry]:
        """Read-only view of the current map."""
        return MappingProxyType(self._entries)

    @property
    def command_names(self) -> frozenset:
        """All registered command names."""
        return frozenset(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None
