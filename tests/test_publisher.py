"""Tests for global command publication."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from structlog.testing import capture_logs

from slashbot.commands.base import (
    BotContext,
    CommandBase,
    CommandOption,
    CommandSource,
    HandlerEntry,
)
from slashbot.commands.registry import HandlerRegistry
from slashbot.exceptions import PublishError
from slashbot.publisher import RegistrationPublisher


def _command(name, options=None):
    class _Command(CommandBase):
        command_name = name
        command_description = f"The {name} command"

        def build_options(self):
            return list(options or [])

        async def execute(self, event):
            pass

    _Command.__name__ = f"{name.title()}Command"
    return _Command


def _registry(*types):
    source = CommandSource("test")
    for command_type in types:
        source.add(command_type)
    registry = HandlerRegistry(BotContext(config=MagicMock(), session=MagicMock()))
    registry.load([source])
    return registry


def _api(side_effect=None):
    api = MagicMock()
    api.create_global_command = AsyncMock(side_effect=side_effect, return_value={"id": "1"})
    api.close = AsyncMock()
    return api


@pytest.mark.asyncio
async def test_publishes_every_descriptor_in_order():
    registry = _registry(_command("alpha"), _command("beta"), _command("gamma"))
    api = _api()
    count = await RegistrationPublisher(registry, api).publish()
    assert count == 3
    names = [c.args[0].name for c in api.create_global_command.await_args_list]
    assert names == ["alpha", "beta", "gamma"]


@pytest.mark.asyncio
async def test_remote_failure_stops_publish():
    registry = _registry(_command("alpha"), _command("beta"), _command("gamma"))
    api = _api(side_effect=[{"id": "1"}, RuntimeError("400 Bad Request"), {"id": "3"}])
    with pytest.raises(PublishError) as excinfo:
        await RegistrationPublisher(registry, api).publish()
    assert api.create_global_command.await_count == 2
    assert excinfo.value.command_name == "beta"
    assert excinfo.value.registered == 1
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_nested_publish_error_keeps_progress():
    registry = _registry(_command("alpha"), _command("beta"))
    api = _api(side_effect=[{"id": "1"}, PublishError("rejected", command_name="beta")])
    with pytest.raises(PublishError) as excinfo:
        await RegistrationPublisher(registry, api).publish()
    assert excinfo.value.registered == 1


@pytest.mark.asyncio
async def test_descriptor_build_failure_skips_handler():
    # Required after optional is rejected by CommandDescriptor validation
    bad_options = [
        CommandOption(name="first", description="optional"),
        CommandOption(name="second", description="required", required=True),
    ]
    registry = _registry(_command("alpha"), _command("gamma"))
    entries = dict(registry.entries)
    entries["broken"] = HandlerEntry(name="broken", command_type=_command("broken", bad_options))

    api = _api()
    with capture_logs() as logs:
        count = await RegistrationPublisher(registry, api).publish(entries)
    assert count == 2
    names = [c.args[0].name for c in api.create_global_command.await_args_list]
    assert names == ["alpha", "gamma"]
    assert any(
        e["event"] == "command_descriptor_build_failed" and e["command"] == "broken"
        for e in logs
    )


@pytest.mark.asyncio
async def test_empty_registry_publishes_nothing():
    api = _api()
    count = await RegistrationPublisher(_registry(), api).publish()
    assert count == 0
    api.create_global_command.assert_not_awaited()


def test_build_descriptors_payload():
    option = CommandOption(name="text", description="What to say", required=True)
    registry = _registry(_command("say", [option]))
    descriptors = RegistrationPublisher(registry, _api()).build_descriptors()
    payload = descriptors[0].to_payload()
    assert payload["name"] == "say"
    assert payload["type"] == 1
    assert payload["options"] == [
        {"name": "text", "description": "What to say", "type": 3, "required": True}
    ]
