"""Ping command: reports gateway latency."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from . import BUILTIN_COMMANDS
from .base import BLUE, GREEN, ORANGE, RED, CommandBase, slash_command

if TYPE_CHECKING:
    from ..platform import InteractionEvent, PlatformSession

logger = structlog.get_logger("slashbot.commands")


def latency_color(latency_ms: int) -> int:
    if latency_ms < 100:
        return GREEN
    if latency_ms < 200:
        return BLUE
    if latency_ms < 400:
        return ORANGE
    return RED


@BUILTIN_COMMANDS.register(factory=lambda ctx: PingCommand(ctx.session))
@slash_command("ping", "Check if the bot is online and view latency")
class PingCommand(CommandBase):
    """Replies with an ephemeral embed showing the session latency."""

    command_name = "ping"
    command_description = "Check if the bot is online and view latency"

    def __init__(self, session: "PlatformSession"):
        self.session = session

    async def execute(self, event: "InteractionEvent") -> None:
        latency = self.session.latency_ms

        embed = self.create_embed(
            "🏓 Pong!",
            "Bot is online and operational.",
            color=latency_color(latency),
        )
        embed.add_field("Latency", f"{latency}ms", inline=True)
        embed.footer = f"Requested by {event.user_name or event.user_id}"

        await event.respond(embed=embed, ephemeral=True)
        logger.debug("ping_completed", latency_ms=latency)
