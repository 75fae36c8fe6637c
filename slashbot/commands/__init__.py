"""Slash command framework for slashbot.

Provides the SlashCommand capability contract, CommandSource
registration lists, and the HandlerRegistry that maps command names
to implementations.
"""

from .base import (
    BotContext,
    CommandBase,
    CommandDescriptor,
    CommandOption,
    CommandSource,
    HandlerEntry,
    OptionChoice,
    OptionType,
    ResponseEmbed,
    SlashCommand,
    slash_command,
)
from .registry import HandlerRegistry

# Commands shipped with the bot. Modules are imported on first load().
BUILTIN_COMMANDS = CommandSource(
    "builtin",
    modules=(
        "slashbot.commands.ping",
        "slashbot.commands.consent",
    ),
)

__all__ = [
    "BUILTIN_COMMANDS",
    "BotContext",
    "CommandBase",
    "CommandDescriptor",
    "CommandOption",
    "CommandSource",
    "HandlerEntry",
    "HandlerRegistry",
    "OptionChoice",
    "OptionType",
    "ResponseEmbed",
    "SlashCommand",
    "slash_command",
]
