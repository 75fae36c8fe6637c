"""Tests for the ping and consent commands."""

from unittest.mock import MagicMock

import pytest

from conftest import FakeChannel, FakeSession, make_event
from slashbot.commands import BUILTIN_COMMANDS, BotContext, HandlerRegistry
from slashbot.commands.base import BLUE, GREEN, ORANGE, RED
from slashbot.commands.consent import ConsentCommand
from slashbot.commands.ping import PingCommand, latency_color
from slashbot.consent import ConsentStore
from slashbot.dispatcher import NOT_IMPLEMENTED_MESSAGE, CommandDispatcher, DispatchOutcome


def _builtin_registry(tmp_path, latency_ms=42):
    ctx = BotContext(
        config=MagicMock(),
        session=FakeSession(latency_ms=latency_ms),
        _consent_store=ConsentStore(tmp_path / "consent.json"),
    )
    registry = HandlerRegistry(ctx)
    registry.load([BUILTIN_COMMANDS])
    return registry


class TestPing:

    @pytest.mark.asyncio
    async def test_reports_latency_in_ephemeral_embed(self):
        channel = FakeChannel()
        event = make_event("ping", channel, user_name="alice")
        await PingCommand(FakeSession(latency_ms=42)).handle(event)

        assert len(channel.responses) == 1
        reply = channel.responses[0]
        assert reply["ephemeral"] is True
        embed = reply["embed"]
        assert embed.title == "🏓 Pong!"
        assert embed.field_value("Latency") == "42ms"
        assert embed.timestamp is not None
        assert embed.footer == "Requested by alice"
        assert embed.color == GREEN

    def test_latency_colors(self):
        assert latency_color(42) == GREEN
        assert latency_color(150) == BLUE
        assert latency_color(250) == ORANGE
        assert latency_color(900) == RED

    def test_embed_defaults_to_blue(self):
        embed = PingCommand(FakeSession()).create_embed("Status", "")
        assert embed.color == BLUE
        assert embed.description is None
        assert embed.timestamp.tzinfo is not None

    def test_descriptor(self):
        descriptor = PingCommand(FakeSession()).get_descriptor()
        assert descriptor.name == "ping"
        assert descriptor.options == ()

    @pytest.mark.asyncio
    async def test_dispatch_ping_and_unknown(self, tmp_path):
        dispatcher = CommandDispatcher(_builtin_registry(tmp_path))

        ping_channel = FakeChannel()
        outcome = await dispatcher.dispatch(make_event("ping", ping_channel))
        assert outcome is DispatchOutcome.SUCCEEDED
        assert ping_channel.responses[0]["embed"].field_value("Latency") == "42ms"

        pong_channel = FakeChannel()
        outcome = await dispatcher.dispatch(make_event("pong", pong_channel))
        assert outcome is DispatchOutcome.NOT_FOUND
        assert pong_channel.responses[0]["content"] == NOT_IMPLEMENTED_MESSAGE


class TestConsentCommand:

    def _run(self, store, action, consent_type="message-logging", user_id=7):
        channel = FakeChannel()
        event = make_event(
            "consent", channel, user_id=user_id,
            options={"action": action, "type": consent_type},
        )
        return channel, ConsentCommand(store).handle(event)

    @pytest.mark.asyncio
    async def test_grant_status_revoke(self, tmp_path):
        store = ConsentStore(tmp_path / "consent.json")

        channel, call = self._run(store, "grant")
        await call
        assert "recorded" in channel.responses[0]["content"]
        assert store.has_consent(7, "message-logging")

        channel, call = self._run(store, "status")
        await call
        assert "have consented" in channel.responses[0]["content"]

        channel, call = self._run(store, "revoke")
        await call
        assert "withdrawn" in channel.responses[0]["content"]
        assert not store.has_consent(7, "message-logging")

    @pytest.mark.asyncio
    async def test_invalid_action_shows_usage(self, tmp_path):
        store = ConsentStore(tmp_path / "consent.json")
        channel, call = self._run(store, "delete")
        await call
        assert channel.responses[0]["content"].startswith("Usage:")
        assert channel.responses[0]["ephemeral"] is True
        assert store.records() == []

    def test_descriptor_has_required_options(self, tmp_path):
        descriptor = ConsentCommand(ConsentStore(tmp_path / "c.json")).get_descriptor()
        assert [o.name for o in descriptor.options] == ["action", "type"]
        assert all(o.required for o in descriptor.options)
        assert [c.value for c in descriptor.options[0].choices] == ["grant", "revoke", "status"]

    def test_builtin_source_registers_both(self, tmp_path):
        registry = _builtin_registry(tmp_path)
        assert registry.command_names == frozenset({"ping", "consent"})

    def test_consent_skipped_without_store(self):
        registry = HandlerRegistry(BotContext(config=MagicMock(), session=FakeSession()))
        registry.load([BUILTIN_COMMANDS])
        assert registry.command_names == frozenset({"ping"})
