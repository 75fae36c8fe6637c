"""Boundary types for the remote chat platform.

Everything the core needs from the platform transport is expressed
here, so the registry, dispatcher and lifecycle service never import
the transport library directly.

Key classes:
    PlatformSession: Protocol for the single persistent session.
    CommandRegistrationApi: Protocol for the global-command REST call.
    ResponseChannel: Protocol for replying to one interaction.
    InteractionEvent: An inbound slash-command invocation.
    InboundMessage: An inbound plain chat message.
    LogEvent: A diagnostic record emitted by the transport.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Optional,
    Protocol,
    runtime_checkable,
)

from .exceptions import ResponseError

if TYPE_CHECKING:
    from .commands.base import CommandDescriptor, ResponseEmbed


class LogSeverity(str, Enum):
    """Severity levels reported by the platform transport."""
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"
    DEBUG = "debug"


@dataclass
class LogEvent:
    """A diagnostic record from the transport."""
    severity: LogSeverity
    source: str
    message: str
    exc_info: Optional[BaseException] = None


@dataclass
class InboundMessage:
    """A plain chat message received by the bot."""
    message_id: int
    author_id: int
    author_name: str
    content: str
    channel_id: Optional[int] = None
    guild_id: Optional[int] = None


@runtime_checkable
class ResponseChannel(Protocol):
    """Transport-side reply operations for a single interaction."""

    def is_done(self) -> bool:
        """Whether the platform already recorded a top-level response."""
        ...

    async def send_response(
        self,
        content: Optional[str],
        embed: Optional["ResponseEmbed"],
        ephemeral: bool,
    ) -> None:
        ...

    async def send_followup(
        self,
        content: Optional[str],
        embed: Optional["ResponseEmbed"],
        ephemeral: bool,
    ) -> None:
        ...


class InteractionEvent:
    """An inbound slash-command invocation.

    Borrowed by the dispatcher for the lifetime of one dispatch call.
    Tracks which reply channel has been used so the first reply always
    goes out as the top-level response and later ones as followups.

    Args:
        interaction_id: Platform id of the interaction.
        command_name: Invoked command name as sent by the platform.
        user_id: Invoking user's id.
        channel: Transport reply operations.
        guild_id: Guild the command was invoked in (None for DMs).
        user_name: Display name of the invoking user.
        options: Option values keyed by option name.
    """

    def __init__(
        self,
        interaction_id: int,
        command_name: str,
        user_id: int,
        channel: ResponseChannel,
        guild_id: Optional[int] = None,
        user_name: str = "",
        options: Optional[Dict[str, Any]] = None,
    ):
        self.interaction_id = interaction_id
        self.command_name = command_name
        self.user_id = user_id
        self.guild_id = guild_id
        self.user_name = user_name
        self.options: Dict[str, Any] = dict(options or {})
        self.correlation_id = uuid.uuid4().hex
        self._channel = channel
        self._responded = False
        self.followups_sent = 0

    @property
    def has_responded(self) -> bool:
        return self._responded or self._channel.is_done()

    def option(self, name: str, default: Any = None) -> Any:
        """Return the value of a named option, or *default*."""
        return self.options.get(name, default)

    async def respond(
        self,
        content: Optional[str] = None,
        *,
        embed: Optional["ResponseEmbed"] = None,
        ephemeral: bool = False,
    ) -> None:
        """Send the top-level response.

        Raises:
            ResponseError: If a top-level response was already sent.
        """
        if self.has_responded:
            raise ResponseError(
                "Interaction already has a top-level response",
                interaction_id=self.interaction_id,
                command=self.command_name,
            )
        await self._channel.send_response(content, embed, ephemeral)
        self._responded = True

    async def followup(
        self,
        content: Optional[str] = None,
        *,
        embed: Optional["ResponseEmbed"] = None,
        ephemeral: bool = False,
    ) -> None:
        """Send a followup after the top-level response.

        Raises:
            ResponseError: If no top-level response exists yet.
        """
        if not self.has_responded:
            raise ResponseError(
                "Followup requires a top-level response first",
                interaction_id=self.interaction_id,
                command=self.command_name,
            )
        await self._channel.send_followup(content, embed, ephemeral)
        self.followups_sent += 1

    def __repr__(self) -> str:
        return (
            f"InteractionEvent(id={self.interaction_id}, "
            f"command={self.command_name!r}, user_id={self.user_id})"
        )


LogCallback = Callable[[LogEvent], Awaitable[None]]
MessageCallback = Callable[[InboundMessage], Awaitable[None]]
InteractionCallback = Callable[[InteractionEvent], Awaitable[None]]
ReadyCallback = Callable[[], Awaitable[None]]
DisconnectCallback = Callable[[Optional[BaseException]], Awaitable[None]]


@runtime_checkable
class PlatformSession(Protocol):
    """The single authenticated connection to the remote platform.

    Only ConnectionLifecycleService calls login/start/stop. Callbacks
    registered through the ``on_*`` methods are awaited by the
    transport; the lifecycle service turns each into its own task.
    """

    async def login(self, token: str) -> None:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    @property
    def is_connected(self) -> bool:
        ...

    @property
    def latency_ms(self) -> int:
        ...

    @property
    def application_id(self) -> Optional[int]:
        ...

    def on_log(self, callback: LogCallback) -> None:
        ...

    def on_message(self, callback: MessageCallback) -> None:
        ...

    def on_interaction(self, callback: InteractionCallback) -> None:
        ...

    def on_ready(self, callback: ReadyCallback) -> None:
        ...

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        ...


@runtime_checkable
class CommandRegistrationApi(Protocol):
    """Remote API that registers global slash commands."""

    async def create_global_command(self, descriptor: "CommandDescriptor") -> Dict[str, Any]:
        ...

    async def close(self) -> None:
        ...
