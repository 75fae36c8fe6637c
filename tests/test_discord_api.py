"""Tests for the REST command-registration client."""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from slashbot.commands.base import CommandDescriptor
from slashbot.discord_api import DiscordRestClient
from slashbot.exceptions import ConfigurationError, ErrorCategory, PublishError

DESCRIPTOR = CommandDescriptor(name="ping", description="Check latency")


def _response(status, json_body=None, text=""):
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_body or {})
    resp.text = AsyncMock(return_value=text)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


def _client(*responses, **kwargs):
    client = DiscordRestClient(token="secret", application_id=42, **kwargs)
    http = MagicMock()
    http.closed = False
    http.post = MagicMock(side_effect=list(responses))
    http.close = AsyncMock()
    client._session = http
    return client, http


@pytest.mark.asyncio
async def test_posts_payload_to_application_endpoint():
    client, http = _client(_response(201, {"id": "99", "name": "ping"}))
    body = await client.create_global_command(DESCRIPTOR)
    assert body["id"] == "99"
    url = http.post.call_args.args[0]
    assert url == "https://discord.com/api/v10/applications/42/commands"
    assert http.post.call_args.kwargs["json"] == DESCRIPTOR.to_payload()


@pytest.mark.asyncio
async def test_rejection_raises_publish_error():
    client, _ = _client(_response(400, text='{"message": "Invalid Form Body"}'))
    with pytest.raises(PublishError) as excinfo:
        await client.create_global_command(DESCRIPTOR)
    assert excinfo.value.command_name == "ping"
    assert excinfo.value.context["status"] == 400
    assert excinfo.value.category is ErrorCategory.PERMANENT


@pytest.mark.asyncio
async def test_rate_limit_retried():
    client, http = _client(
        _response(429, {"retry_after": 0.5}),
        _response(200, {"id": "1"}),
    )
    with patch("slashbot.discord_api.asyncio.sleep", new=AsyncMock()) as sleep:
        body = await client.create_global_command(DESCRIPTOR)
    assert body == {"id": "1"}
    sleep.assert_awaited_once_with(0.5)
    assert http.post.call_count == 2


@pytest.mark.asyncio
async def test_rate_limit_exhausted_is_transient():
    client, _ = _client(
        _response(429, {"retry_after": 0}),
        _response(429, {"retry_after": 0}),
        max_attempts=2,
    )
    with patch("slashbot.discord_api.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(PublishError) as excinfo:
            await client.create_global_command(DESCRIPTOR)
    assert excinfo.value.is_retryable


@pytest.mark.asyncio
async def test_transport_error_wrapped():
    client, http = _client()
    http.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
    with pytest.raises(PublishError) as excinfo:
        await client.create_global_command(DESCRIPTOR)
    assert isinstance(excinfo.value.__cause__, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
async def test_application_id_from_provider():
    client = DiscordRestClient(token="t", application_id_provider=lambda: 7)
    assert client._resolve_application_id() == 7
    missing = DiscordRestClient(token="t", application_id_provider=lambda: None)
    with pytest.raises(ConfigurationError):
        missing._resolve_application_id()


@pytest.mark.asyncio
async def test_close_releases_session():
    client, http = _client()
    await client.close()
    http.close.assert_awaited_once()
    assert client._session is None
