"""Discord session adapter.

Implements the PlatformSession protocol on top of discord.py. The
gateway connection runs in a background task; gateway events are
translated into slashbot's boundary types and handed to the
registered callbacks. discord.py's own stdlib log records are
bridged into LogEvents.
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

import discord
import structlog

from .commands.base import ResponseEmbed
from .exceptions import ErrorCategory, SessionError
from .platform import (
    DisconnectCallback,
    InboundMessage,
    InteractionCallback,
    InteractionEvent,
    LogCallback,
    LogEvent,
    LogSeverity,
    MessageCallback,
    ReadyCallback,
)

logger = structlog.get_logger("slashbot.platform")


def render_embed(embed: ResponseEmbed) -> discord.Embed:
    """Convert a ResponseEmbed into a discord.Embed."""
    out = discord.Embed(
        title=embed.title,
        description=embed.description,
        colour=embed.color,
        timestamp=embed.timestamp,
    )
    for f in embed.fields:
        out.add_field(name=f.name, value=f.value, inline=f.inline)
    if embed.footer:
        out.set_footer(text=embed.footer)
    return out


def _message_kwargs(
    content: Optional[str], embed: Optional[ResponseEmbed], ephemeral: bool
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"ephemeral": ephemeral}
    if content is not None:
        kwargs["content"] = content
    if embed is not None:
        kwargs["embed"] = render_embed(embed)
    return kwargs


class InteractionChannel:
    """ResponseChannel over a discord.Interaction."""

    def __init__(self, interaction: discord.Interaction):
        self._interaction = interaction

    def is_done(self) -> bool:
        return self._interaction.response.is_done()

    async def send_response(
        self, content: Optional[str], embed: Optional[ResponseEmbed], ephemeral: bool
    ) -> None:
        await self._interaction.response.send_message(
            **_message_kwargs(content, embed, ephemeral)
        )

    async def send_followup(
        self, content: Optional[str], embed: Optional[ResponseEmbed], ephemeral: bool
    ) -> None:
        await self._interaction.followup.send(**_message_kwargs(content, embed, ephemeral))


def interaction_options(data: Optional[dict]) -> Dict[str, Any]:
    """Flatten top-level option values from interaction data."""
    if not data:
        return {}
    return {
        opt["name"]: opt.get("value")
        for opt in data.get("options", []) or []
        if "name" in opt
    }


_SEVERITIES = (
    (logging.CRITICAL, LogSeverity.CRITICAL),
    (logging.ERROR, LogSeverity.ERROR),
    (logging.WARNING, LogSeverity.WARNING),
    (logging.INFO, LogSeverity.INFO),
    (logging.DEBUG, LogSeverity.DEBUG),
)


def severity_for(levelno: int) -> LogSeverity:
    for threshold, severity in _SEVERITIES:
        if levelno >= threshold:
            return severity
    return LogSeverity.VERBOSE


class _LogBridge(logging.Handler):
    """Turns discord.py log records into LogEvents on the event loop."""

    def __init__(self, session: "DiscordSession", loop: asyncio.AbstractEventLoop):
        super().__init__(level=logging.DEBUG)
        self._session = session
        self._loop = loop

    def emit(self, record: logging.LogRecord) -> None:
        exc = record.exc_info[1] if record.exc_info else None
        event = LogEvent(
            severity=severity_for(record.levelno),
            source=record.name,
            message=record.getMessage(),
            exc_info=exc,
        )
        try:
            self._loop.call_soon_threadsafe(self._session._emit_log, event)
        except RuntimeError:
            # Loop already closed during interpreter shutdown
            pass


class _GatewayClient(discord.Client):
    """discord.Client that forwards gateway events to a DiscordSession."""

    def __init__(self, session: "DiscordSession", **kwargs):
        super().__init__(**kwargs)
        self._session = session

    async def on_ready(self):
        await self._session._emit_ready()

    async def on_message(self, message: discord.Message):
        await self._session._emit_message(message)

    async def on_interaction(self, interaction: discord.Interaction):
        await self._session._emit_interaction(interaction)


class DiscordSession:
    """PlatformSession backed by a discord.py gateway client.

    A fresh client is created on every ``login`` so the session can be
    reopened after ``stop``.

    Args:
        intents: Gateway intents. Defaults to the unprivileged set plus
            message content.
        log_level: Minimum level of discord.py records to bridge.
    """

    def __init__(
        self,
        intents: Optional[discord.Intents] = None,
        log_level: int = logging.INFO,
    ):
        if intents is None:
            intents = discord.Intents.default()
            intents.message_content = True
        self._intents = intents
        self._log_level = log_level
        self._client: Optional[_GatewayClient] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._log_bridge: Optional[_LogBridge] = None
        self._closing = False
        self._pending: set = set()
        self._callbacks: Dict[str, List[Any]] = {
            "log": [],
            "message": [],
            "interaction": [],
            "ready": [],
            "disconnect": [],
        }

    # --- Subscriptions ---

    def on_log(self, callback: LogCallback) -> None:
        self._callbacks["log"].append(callback)

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks["message"].append(callback)

    def on_interaction(self, callback: InteractionCallback) -> None:
        self._callbacks["interaction"].append(callback)

    def on_ready(self, callback: ReadyCallback) -> None:
        self._callbacks["ready"].append(callback)

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        self._callbacks["disconnect"].append(callback)

    # --- Properties ---

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_ready() and not self._client.is_closed()

    @property
    def latency_ms(self) -> int:
        if self._client is None:
            return 0
        latency = self._client.latency
        if latency is None or not math.isfinite(latency):
            return 0
        return int(round(latency * 1000))

    @property
    def application_id(self) -> Optional[int]:
        return self._client.application_id if self._client else None

    # --- Lifecycle ---

    async def login(self, token: str) -> None:
        self._closing = False
        self._install_log_bridge()
        self._client = _GatewayClient(self, intents=self._intents)
        try:
            await self._client.login(token)
        except discord.LoginFailure as e:
            raise SessionError(
                "Platform rejected the bot token", category=ErrorCategory.PERMANENT
            ) from e
        except (discord.HTTPException, OSError) as e:
            raise SessionError("Login request failed", error=str(e)) from e
        logger.info("session_logged_in", application_id=self.application_id)

    async def start(self) -> None:
        if self._client is None:
            raise SessionError("login() must be called before start()")
        self._connect_task = asyncio.create_task(
            self._client.connect(reconnect=True), name="discord-gateway"
        )
        self._connect_task.add_done_callback(self._connect_finished)
        logger.info("session_connecting")

    async def stop(self) -> None:
        self._closing = True
        if self._client is not None:
            await self._client.close()
        if self._connect_task is not None:
            await asyncio.gather(self._connect_task, return_exceptions=True)
            self._connect_task = None
        self._remove_log_bridge()
        logger.info("session_closed")

    def _connect_finished(self, task: asyncio.Task) -> None:
        if self._closing:
            return
        error: Optional[BaseException] = None
        if not task.cancelled():
            error = task.exception()
        for callback in self._callbacks["disconnect"]:
            self._track(callback(error))

    def _track(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # --- Log bridging ---

    def _install_log_bridge(self) -> None:
        if self._log_bridge is not None:
            return
        self._log_bridge = _LogBridge(self, asyncio.get_running_loop())
        discord_logger = logging.getLogger("discord")
        discord_logger.setLevel(self._log_level)
        discord_logger.addHandler(self._log_bridge)
        discord_logger.propagate = False

    def _remove_log_bridge(self) -> None:
        if self._log_bridge is None:
            return
        discord_logger = logging.getLogger("discord")
        discord_logger.removeHandler(self._log_bridge)
        discord_logger.propagate = True
        self._log_bridge = None

    def _emit_log(self, event: LogEvent) -> None:
        for callback in self._callbacks["log"]:
            self._track(callback(event))

    # --- Gateway events ---

    async def _emit_ready(self) -> None:
        logger.info("session_ready", user=str(self._client.user) if self._client else None)
        for callback in self._callbacks["ready"]:
            await callback()

    async def _emit_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        inbound = InboundMessage(
            message_id=message.id,
            author_id=message.author.id,
            author_name=message.author.name,
            content=message.content,
            channel_id=message.channel.id,
            guild_id=message.guild.id if message.guild else None,
        )
        for callback in self._callbacks["message"]:
            await callback(inbound)

    async def _emit_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.application_command:
            return
        data = interaction.data or {}
        event = InteractionEvent(
            interaction_id=interaction.id,
            command_name=data.get("name", ""),
            user_id=interaction.user.id,
            channel=InteractionChannel(interaction),
            guild_id=interaction.guild_id,
            user_name=interaction.user.name,
            options=interaction_options(data),
        )
        for callback in self._callbacks["interaction"]:
            await callback(event)
