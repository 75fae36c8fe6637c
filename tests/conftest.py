"""Shared fakes for slashbot tests."""

from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from slashbot.commands.base import BotContext
from slashbot.platform import InteractionEvent


class FakeChannel:
    """Records replies instead of sending them."""

    def __init__(self, done: bool = False, fail: Optional[Exception] = None):
        self.done = done
        self.fail = fail
        self.responses: List[dict] = []
        self.followups: List[dict] = []

    def is_done(self) -> bool:
        return self.done

    async def send_response(self, content, embed, ephemeral):
        if self.fail:
            raise self.fail
        self.responses.append({"content": content, "embed": embed, "ephemeral": ephemeral})
        self.done = True

    async def send_followup(self, content, embed, ephemeral):
        if self.fail:
            raise self.fail
        self.followups.append({"content": content, "embed": embed, "ephemeral": ephemeral})


class FakeSession:
    """In-memory PlatformSession; tests fire the stored callbacks."""

    def __init__(self, latency_ms: int = 42):
        self.latency_ms = latency_ms
        self.application_id = 123456789012345678
        self.is_connected = False
        self.login = AsyncMock()
        self.start = AsyncMock()
        self.stop = AsyncMock()
        self.callbacks = {}

    def on_log(self, callback):
        self.callbacks["log"] = callback

    def on_message(self, callback):
        self.callbacks["message"] = callback

    def on_interaction(self, callback):
        self.callbacks["interaction"] = callback

    def on_ready(self, callback):
        self.callbacks["ready"] = callback

    def on_disconnect(self, callback):
        self.callbacks["disconnect"] = callback


def make_event(name: str = "ping", channel: Optional[FakeChannel] = None, **kwargs):
    """Build an InteractionEvent over a FakeChannel."""
    return InteractionEvent(
        interaction_id=kwargs.pop("interaction_id", 1),
        command_name=name,
        user_id=kwargs.pop("user_id", 4242),
        channel=channel or FakeChannel(),
        **kwargs,
    )


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def ctx(session):
    return BotContext(config=MagicMock(), session=session)
