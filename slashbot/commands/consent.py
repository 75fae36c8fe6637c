"""Consent command: grant, revoke or check a consent type."""

from __future__ import annotations

from typing import TYPE_CHECKING, List

import structlog

from . import BUILTIN_COMMANDS
from .base import CommandBase, CommandOption, OptionChoice, OptionType, slash_command

if TYPE_CHECKING:
    from ..consent import ConsentStore
    from ..platform import InteractionEvent

logger = structlog.get_logger("slashbot.commands")

ACTIONS = ("grant", "revoke", "status")


@BUILTIN_COMMANDS.register(factory=lambda ctx: ConsentCommand(ctx.consent_store))
@slash_command("consent", "Grant, revoke or check your consent")
class ConsentCommand(CommandBase):
    """Manages the invoking user's consent records."""

    command_name = "consent"
    command_description = "Grant, revoke or check your consent"

    def __init__(self, store: "ConsentStore"):
        self.store = store

    def build_options(self) -> List[CommandOption]:
        return [
            CommandOption(
                name="action",
                description="What to do",
                type=OptionType.STRING,
                required=True,
                choices=tuple(OptionChoice(name=a, value=a) for a in ACTIONS),
            ),
            CommandOption(
                name="type",
                description="Consent type, e.g. message-logging",
                type=OptionType.STRING,
                required=True,
            ),
        ]

    async def execute(self, event: "InteractionEvent") -> None:
        action = str(event.option("action", "")).lower()
        consent_type = str(event.option("type", "")).strip()

        if action not in ACTIONS or not consent_type:
            await event.respond(
                "Usage: /consent action:<grant|revoke|status> type:<name>",
                ephemeral=True,
            )
            return

        if action == "grant":
            added = self.store.add_consent(event.user_id, consent_type)
            message = (
                f"Consent for `{consent_type}` recorded."
                if added else f"You already consented to `{consent_type}`."
            )
        elif action == "revoke":
            removed = self.store.remove_consent(event.user_id, consent_type)
            message = (
                f"Consent for `{consent_type}` withdrawn."
                if removed else f"You had not consented to `{consent_type}`."
            )
        else:
            has = self.store.has_consent(event.user_id, consent_type)
            message = (
                f"You have consented to `{consent_type}`."
                if has else f"You have not consented to `{consent_type}`."
            )

        await event.respond(message, ephemeral=True)
