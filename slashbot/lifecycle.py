"""Connection lifecycle service for slashbot.

Owns the single session to the remote platform and the connection
state machine::

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED
                         \\______________________/   (aborted start)

Bridges the session's event stream into the application. Every
inbound event (log, message, interaction, ready) runs in its own
asyncio task with its own structlog context, so a fault in one event
cannot block or corrupt the next.

Key classes:
    ConnectionState: The three connection states.
    ServiceStatus: Read-only status snapshot.
    ConnectionLifecycleService: start/stop/run and event fan-out.

Key functions:
    log_task_exception: Done-callback that logs failed tasks.
"""

import asyncio
import functools
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Set

import structlog

from .dispatcher import CommandDispatcher
from .exceptions import PublishError, SessionError, SessionStateError, SlashBotError
from .messages import MessageHandler
from .platform import InboundMessage, InteractionEvent, LogEvent, PlatformSession
from .platform_logging import PlatformLogForwarder
from .publisher import RegistrationPublisher

logger = structlog.get_logger("slashbot.bot")


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


_TRANSITIONS = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}


@dataclass(frozen=True)
class ServiceStatus:
    """Point-in-time view of the lifecycle service."""
    state: ConnectionState
    in_flight: int
    commands: int
    commands_published: bool
    latency_ms: Optional[int]


def log_task_exception(task: asyncio.Task):
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error("background_task_failed", error=str(exc), exc_type=type(exc).__name__)


class ConnectionLifecycleService:
    """Owns the platform session and fans its events out.

    The only component allowed to call the session's login/start/stop.
    The connection state is private and exposed only through
    ``state`` and ``status()``.

    Args:
        session: Platform session to drive.
        token: Bot credential passed to ``session.login``.
        dispatcher: Receives every interaction event.
        publisher: Run once per successful connection, on ready.
        message_handler: Receives every inbound chat message.
        log_forwarder: Receives every transport log event.
        drain_timeout: Seconds ``stop()`` waits for in-flight events
            before cancelling them.
    """

    def __init__(
        self,
        session: PlatformSession,
        token: str,
        dispatcher: CommandDispatcher,
        publisher: RegistrationPublisher,
        message_handler: MessageHandler,
        log_forwarder: Optional[PlatformLogForwarder] = None,
        drain_timeout: float = 10.0,
    ):
        self.session = session
        self._token = token
        self.dispatcher = dispatcher
        self.publisher = publisher
        self.message_handler = message_handler
        self.log_forwarder = log_forwarder or PlatformLogForwarder()
        self.drain_timeout = drain_timeout

        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._stopped = asyncio.Event()
        self._inflight: Set[asyncio.Task] = set()
        self._accepting = False
        self._session_open = False
        self._published = False
        self._fatal_error: Optional[BaseException] = None

        session.on_log(self._on_log)
        session.on_message(self._on_message)
        session.on_interaction(self._on_interaction)
        session.on_ready(self._on_ready)
        session.on_disconnect(self._on_disconnect)

    # --- State ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def needs_stop(self) -> bool:
        """Whether stop() still has a session, client or task to release."""
        return (
            self._state is not ConnectionState.DISCONNECTED
            or self._session_open
            or bool(self._inflight)
        )

    @property
    def fatal_error(self) -> Optional[BaseException]:
        return self._fatal_error

    def status(self) -> ServiceStatus:
        latency = None
        if self._state is ConnectionState.CONNECTED:
            try:
                latency = self.session.latency_ms
            except Exception as e:
                logger.debug("latency_unavailable", error=str(e))
        return ServiceStatus(
            state=self._state,
            in_flight=len(self._inflight),
            commands=len(self.dispatcher.registry),
            commands_published=self._published,
            latency_ms=latency,
        )

    def _transition(self, new: ConnectionState) -> None:
        if new not in _TRANSITIONS[self._state]:
            raise SessionStateError(
                "Illegal connection state transition",
                current=self._state.value,
                requested=new.value,
            )
        logger.debug("connection_state_changed", old=self._state.value, new=new.value)
        self._state = new

    # --- Lifecycle ---

    async def start(self) -> None:
        """Log in and open the session.

        A call while already connecting or connected is ignored.

        Raises:
            SessionError: If login or connect fails. The state returns
                to DISCONNECTED and the session is released.
        """
        async with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                logger.warning("bot_already_started", state=self._state.value)
                return

            self._transition(ConnectionState.CONNECTING)
            self._published = False
            self._fatal_error = None
            self._stopped.clear()
            self._accepting = True
            logger.info("bot_starting")

            try:
                self._session_open = True
                await self.session.login(self._token)
                await self.session.start()
            except Exception as e:
                logger.error(
                    "bot_start_failed", error=str(e), error_type=type(e).__name__
                )
                self._accepting = False
                await self._release()
                if self._state is not ConnectionState.DISCONNECTED:
                    self._transition(ConnectionState.DISCONNECTED)
                self._stopped.set()
                if isinstance(e, SlashBotError):
                    raise
                raise SessionError("Failed to open platform session", error=str(e)) from e

    async def stop(self) -> None:
        """Drain in-flight events and close the session.

        Logs a warning instead of raising when not connected.
        """
        async with self._lock:
            if self._state is ConnectionState.DISCONNECTED:
                # Session lost: events already bridged may still be running
                self._accepting = False
                if self._inflight:
                    await self._drain()
                else:
                    logger.warning("bot_not_connected", msg="Stop requested, no action taken")
                await self._release()
                self._stopped.set()
                return

            self._accepting = False
            try:
                await self._drain()
                await self._release()
            finally:
                self._transition(ConnectionState.DISCONNECTED)
                self._stopped.set()
            logger.info("bot_stopped")

    async def run(self) -> None:
        """Start, idle until stopped or cancelled, then stop.

        Raises:
            PublishError / SessionError: The fatal error that ended the
                run, after the session has been released.
        """
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            if self.needs_stop:
                await self.stop()
        if self._fatal_error is not None:
            raise self._fatal_error

    async def _drain(self) -> None:
        current = asyncio.current_task()
        pending = {t for t in self._inflight if t is not current}
        if not pending:
            return
        logger.info("draining_in_flight", count=len(pending), timeout=self.drain_timeout)
        _, pending = await asyncio.wait(pending, timeout=self.drain_timeout)
        if pending:
            logger.warning("in_flight_cancelled", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _release(self) -> None:
        if self._session_open:
            self._session_open = False
            try:
                await self.session.stop()
            except Exception as e:
                logger.warning("session_close_failed", error=str(e))
        try:
            await self.publisher.api.close()
        except Exception as e:
            logger.warning("registration_api_close_failed", error=str(e))

    def _fail(self, error: BaseException) -> None:
        """Record a fatal error and wake ``run()`` so it shuts down."""
        if self._fatal_error is None:
            self._fatal_error = error
        self._accepting = False
        self._stopped.set()

    # --- Event bridging ---

    def _spawn(
        self, kind: str, func: Callable[..., Awaitable[None]], *args
    ) -> Optional[asyncio.Task]:
        if not self._accepting:
            logger.debug("event_dropped", event_kind=kind, state=self._state.value)
            return None
        task = asyncio.create_task(
            self._run_isolated(kind, functools.partial(func, *args)),
            name=f"slashbot-{kind}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        log_task_exception(task)

    async def _run_isolated(self, kind: str, call: Callable[[], Awaitable[None]]) -> None:
        # Each task runs on a copy of the spawning context
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(event_kind=kind)
        try:
            await call()
        except asyncio.CancelledError:
            logger.warning("event_handler_cancelled")
            raise
        except Exception as e:
            logger.error(
                "event_handler_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    async def _on_log(self, event: LogEvent) -> None:
        self._spawn("log", self.log_forwarder.forward, event)

    async def _on_message(self, message: InboundMessage) -> None:
        self._spawn("message", self.message_handler.handle_message, message)

    async def _on_interaction(self, event: InteractionEvent) -> None:
        self._spawn("interaction", self.dispatcher.dispatch, event)

    async def _on_ready(self) -> None:
        if self._state is ConnectionState.CONNECTING:
            self._transition(ConnectionState.CONNECTED)
            logger.info("bot_connected")
        elif self._state is ConnectionState.CONNECTED:
            logger.debug("ready_repeated")
        else:
            logger.warning("ready_while_disconnected")
            return

        if self._published:
            return
        self._published = True
        self._spawn("ready", self._publish_commands)

    async def _publish_commands(self) -> None:
        try:
            count = await self.publisher.publish()
        except PublishError as e:
            logger.error("command_registration_aborted", error=str(e))
            self._fail(e)
            return
        logger.info("commands_registered", count=count)

    async def _on_disconnect(self, error: Optional[BaseException]) -> None:
        if self._state is ConnectionState.DISCONNECTED or not self._accepting:
            return
        logger.error("session_lost", error=str(error) if error else None)
        self._transition(ConnectionState.DISCONNECTED)
        if error is not None:
            self._fail(SessionError("Platform session ended", error=str(error)))
        else:
            self._accepting = False
            self._stopped.set()
