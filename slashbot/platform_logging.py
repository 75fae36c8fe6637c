"""Forwards the transport's diagnostic events into structlog."""

import structlog

from .platform import LogEvent, LogSeverity

logger = structlog.get_logger("slashbot.platform")

_LEVELS = {
    LogSeverity.CRITICAL: "critical",
    LogSeverity.ERROR: "error",
    LogSeverity.WARNING: "warning",
    LogSeverity.INFO: "info",
    LogSeverity.VERBOSE: "debug",
    LogSeverity.DEBUG: "debug",
}


class PlatformLogForwarder:
    """Maps platform log severities onto structlog levels."""

    def __init__(self, log=None):
        self._log = log or logger

    async def forward(self, event: LogEvent) -> None:
        method = getattr(self._log, _LEVELS.get(event.severity, "info"))
        if event.exc_info is not None:
            method(
                "platform_log",
                source=event.source,
                message=event.message,
                exc_info=event.exc_info,
            )
        else:
            method("platform_log", source=event.source, message=event.message)
