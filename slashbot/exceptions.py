"""Custom exception hierarchy for slashbot.

Provides precise error classification across the command registry,
dispatcher, publisher, and connection lifecycle, enabling targeted
error handling and better debugging context.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying (timeout, gateway hiccup)
    PERMANENT = "permanent"          # Not worth retrying (bad descriptor, bad input)
    INFRASTRUCTURE = "infrastructure"  # Missing token, env issues


class SlashBotError(Exception):
    """Base exception for all slashbot errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "commands.registry").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Command registry exceptions
# ---------------------------------------------------------------------------

class DiscoveryError(SlashBotError):
    """A single command type could not be constructed or introspected.

    Attributes:
        command_type: Qualified name of the offending type (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        command_type: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command_type = command_type
        super().__init__(
            message, category=category, module=module or "commands.registry", **context
        )


class ScanError(SlashBotError):
    """A whole command source could not be enumerated.

    Attributes:
        source: Name of the source that failed to load.
    """

    def __init__(
        self,
        message: str = "",
        *,
        source: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.source = source
        super().__init__(
            message, category=category, module=module or "commands.base", **context
        )


# ---------------------------------------------------------------------------
# Platform exceptions
# ---------------------------------------------------------------------------

class PublishError(SlashBotError):
    """The remote registration API rejected a command descriptor.

    Fatal to the publish operation: a half-registered command surface
    must stop startup.

    Attributes:
        command_name: Descriptor that failed.
        registered: How many descriptors were accepted before the failure.
    """

    def __init__(
        self,
        message: str = "",
        *,
        command_name: Optional[str] = None,
        registered: int = 0,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command_name = command_name
        self.registered = registered
        super().__init__(
            message, category=category, module=module or "publisher", **context
        )


class ResponseError(SlashBotError):
    """A response could not be delivered on an interaction."""

    def __init__(
        self,
        message: str = "",
        *,
        interaction_id: Optional[int] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.interaction_id = interaction_id
        super().__init__(
            message, category=category, module=module or "platform", **context
        )


class SessionError(SlashBotError):
    """Login or connect to the remote platform failed."""

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "session", **context
        )


class SessionStateError(SlashBotError):
    """An illegal connection state transition was attempted."""

    def __init__(
        self,
        message: str = "",
        *,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            message, category=category, module=module or "lifecycle", **context
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(SlashBotError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


# ---------------------------------------------------------------------------
# Consent store exceptions
# ---------------------------------------------------------------------------

class ConsentError(SlashBotError):
    """Invalid consent request (e.g. blank consent type)."""

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "consent", **context
        )
