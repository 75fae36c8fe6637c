"""Discord REST client for global command registration.

Talks to ``POST /applications/{application_id}/commands`` with
aiohttp. The HTTP session is created lazily and released by
``close()``.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import aiohttp
import structlog

from .commands.base import CommandDescriptor
from .exceptions import ConfigurationError, ErrorCategory, PublishError

logger = structlog.get_logger("slashbot.platform")

DEFAULT_API_BASE_URL = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (https://github.com/slashbot/slashbot, 1.0.0)"


class DiscordRestClient:
    """Minimal REST client for the command-registration endpoint.

    Args:
        token: Bot token, sent as ``Authorization: Bot <token>``.
        application_id: Application id. When None, resolved through
            ``application_id_provider`` at call time (e.g. from the
            logged-in gateway session).
        application_id_provider: Fallback source of the application id.
        base_url: API root, without trailing slash.
        timeout: Per-request timeout in seconds.
        max_attempts: Attempts per call when rate limited (HTTP 429).
    """

    def __init__(
        self,
        token: str,
        application_id: Optional[int] = None,
        application_id_provider: Optional[Callable[[], Optional[int]]] = None,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        max_attempts: int = 3,
    ):
        self._token = token
        self._application_id = application_id
        self._application_id_provider = application_id_provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._session: Optional[aiohttp.ClientSession] = None

    def _resolve_application_id(self) -> int:
        app_id = self._application_id
        if app_id is None and self._application_id_provider is not None:
            app_id = self._application_id_provider()
        if not app_id:
            raise ConfigurationError(
                "Application id is unknown; set discord.application_id",
                setting_name="application_id",
            )
        return int(app_id)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Bot {self._token}",
                    "User-Agent": USER_AGENT,
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def create_global_command(self, descriptor: CommandDescriptor) -> Dict[str, Any]:
        """Create or overwrite one global command.

        Returns:
            The platform's JSON representation of the command.

        Raises:
            PublishError: On a non-2xx response, exhausted rate-limit
                retries, or a transport failure.
        """
        url = f"{self.base_url}/applications/{self._resolve_application_id()}/commands"
        payload = descriptor.to_payload()
        session = self._get_session()

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with session.post(url, json=payload) as resp:
                    if resp.status in (200, 201):
                        body = await resp.json()
                        logger.debug(
                            "command_registered",
                            command=descriptor.name,
                            command_id=body.get("id"),
                        )
                        return body

                    if resp.status == 429 and attempt < self.max_attempts:
                        retry_after = await self._retry_after(resp)
                        logger.warning(
                            "command_register_rate_limited",
                            command=descriptor.name,
                            attempt=attempt,
                            retry_after=retry_after,
                        )
                        await asyncio.sleep(retry_after)
                        continue

                    text = await resp.text()
                    raise PublishError(
                        f"Platform rejected command {descriptor.name}",
                        command_name=descriptor.name,
                        category=(
                            ErrorCategory.TRANSIENT
                            if resp.status == 429 or resp.status >= 500
                            else ErrorCategory.PERMANENT
                        ),
                        status=resp.status,
                        body=text[:200],
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise PublishError(
                    f"Registration request for {descriptor.name} failed",
                    command_name=descriptor.name,
                    category=ErrorCategory.TRANSIENT,
                    error=str(e),
                ) from e

        raise PublishError(
            f"Registration of {descriptor.name} exhausted retries",
            command_name=descriptor.name,
            category=ErrorCategory.TRANSIENT,
        )

    @staticmethod
    async def _retry_after(resp: aiohttp.ClientResponse) -> float:
        try:
            body = await resp.json()
            return min(float(body.get("retry_after", 1.0)), 30.0)
        except (aiohttp.ContentTypeError, ValueError, TypeError):
            return 1.0

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
