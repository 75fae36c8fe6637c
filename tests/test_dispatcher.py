"""Tests for interaction dispatch and error notices."""

import asyncio
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from conftest import FakeChannel, make_event
from slashbot.commands.base import BotContext, CommandBase, CommandSource
from slashbot.commands.registry import HandlerRegistry
from slashbot.dispatcher import (
    ERROR_MESSAGE,
    NOT_IMPLEMENTED_MESSAGE,
    CommandDispatcher,
    DispatchOutcome,
)

calls = []


class EchoCommand(CommandBase):
    command_name = "echo"
    command_description = "Echo a word"

    async def execute(self, event):
        calls.append(event.command_name)
        await event.respond(event.option("text", "nothing"), ephemeral=True)


class ExplodingCommand(CommandBase):
    command_name = "explode"
    command_description = "Always fails"

    async def execute(self, event):
        calls.append(event.command_name)
        raise ValueError("boom")


class LateExplodingCommand(CommandBase):
    command_name = "late"
    command_description = "Fails after replying"

    async def execute(self, event):
        await event.respond("working on it")
        raise ValueError("late boom")


class SlowCommand(CommandBase):
    command_name = "slow"
    command_description = "Never finishes"

    async def execute(self, event):
        await asyncio.sleep(3600)


def _dispatcher():
    calls.clear()
    source = CommandSource("test")
    for command_type in (EchoCommand, ExplodingCommand, LateExplodingCommand, SlowCommand):
        source.add(command_type)
    registry = HandlerRegistry(BotContext(config=MagicMock(), session=MagicMock()))
    registry.load([source])
    return CommandDispatcher(registry)


@pytest.mark.asyncio
async def test_success_invokes_handler_once():
    dispatcher = _dispatcher()
    channel = FakeChannel()
    outcome = await dispatcher.dispatch(make_event("echo", channel, options={"text": "hey"}))
    assert outcome is DispatchOutcome.SUCCEEDED
    assert calls == ["echo"]
    assert channel.responses == [{"content": "hey", "embed": None, "ephemeral": True}]


@pytest.mark.asyncio
async def test_lookup_ignores_case():
    dispatcher = _dispatcher()
    outcome = await dispatcher.dispatch(make_event("ECHO"))
    assert outcome is DispatchOutcome.SUCCEEDED


@pytest.mark.asyncio
async def test_unknown_command_gets_not_implemented_notice():
    dispatcher = _dispatcher()
    channel = FakeChannel()
    outcome = await dispatcher.dispatch(make_event("pong", channel))
    assert outcome is DispatchOutcome.NOT_FOUND
    assert calls == []
    assert len(channel.responses) == 1
    assert channel.responses[0]["content"] == NOT_IMPLEMENTED_MESSAGE
    assert channel.responses[0]["ephemeral"] is True
    assert channel.followups == []


@pytest.mark.asyncio
async def test_handler_fault_logged_and_reported_once():
    dispatcher = _dispatcher()
    channel = FakeChannel()
    with capture_logs() as logs:
        outcome = await dispatcher.dispatch(make_event("explode", channel, user_id=77))
    assert outcome is DispatchOutcome.FAILED
    assert calls == ["explode"]
    assert len(channel.responses) == 1
    assert channel.responses[0]["content"] == ERROR_MESSAGE.format(command="explode")
    assert channel.responses[0]["ephemeral"] is True

    failed = [e for e in logs if e["event"] == "command_failed"]
    assert len(failed) == 1
    assert failed[0]["log_level"] == "error"
    assert failed[0]["command"] == "explode"
    assert failed[0]["user_id"] == 77


@pytest.mark.asyncio
async def test_fault_after_response_uses_followup():
    dispatcher = _dispatcher()
    channel = FakeChannel()
    outcome = await dispatcher.dispatch(make_event("late", channel))
    assert outcome is DispatchOutcome.FAILED
    assert [r["content"] for r in channel.responses] == ["working on it"]
    assert len(channel.followups) == 1
    assert channel.followups[0]["content"] == ERROR_MESSAGE.format(command="late")
    assert channel.followups[0]["ephemeral"] is True


@pytest.mark.asyncio
async def test_channel_already_done_uses_followup():
    dispatcher = _dispatcher()
    channel = FakeChannel(done=True)
    await dispatcher.dispatch(make_event("missing", channel))
    assert channel.responses == []
    assert [f["content"] for f in channel.followups] == [NOT_IMPLEMENTED_MESSAGE]


@pytest.mark.asyncio
async def test_notice_failure_is_swallowed():
    dispatcher = _dispatcher()
    channel = FakeChannel(fail=ConnectionError("gone"))
    with capture_logs() as logs:
        outcome = await dispatcher.dispatch(make_event("explode", channel))
    assert outcome is DispatchOutcome.FAILED
    assert any(
        e["event"] == "error_notice_failed" and e["log_level"] == "warning" for e in logs
    )


@pytest.mark.asyncio
async def test_cancellation_propagates():
    dispatcher = _dispatcher()
    task = asyncio.create_task(dispatcher.dispatch(make_event("slow")))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_concurrent_dispatches_are_independent():
    dispatcher = _dispatcher()
    channels = [FakeChannel() for _ in range(5)]
    outcomes = await asyncio.gather(
        *(dispatcher.dispatch(make_event("echo", c, interaction_id=i))
          for i, c in enumerate(channels))
    )
    assert outcomes == [DispatchOutcome.SUCCEEDED] * 5
    assert all(len(c.responses) == 1 for c in channels)
