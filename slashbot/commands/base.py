"""Base classes for the slash command framework.

Defines the command capability contract, the immutable descriptor
models published to the platform, and the typed registration list
that discovery iterates over.

Key classes:
    CommandDescriptor / CommandOption: Frozen pydantic models that
        describe a command to the platform.
    ResponseEmbed: Platform-neutral rich reply payload.
    SlashCommand: ABC every command implementation satisfies.
    CommandBase: Convenience base with class-level name/description.
    CommandSource: Ordered, explicit list of registered command types.
    HandlerEntry: One resolved name -> implementation mapping.
    BotContext: Dependency container handed to command factories.

Functions:
    slash_command: Decorator attaching static name/description metadata.
"""

from __future__ import annotations

import importlib
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Type,
    Union,
)

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..exceptions import DiscoveryError, ScanError

if TYPE_CHECKING:
    from ..config import Config
    from ..consent import ConsentStore
    from ..platform import InteractionEvent, PlatformSession

logger = structlog.get_logger("slashbot.commands")

# Chat-input command and option names accepted by the platform
NAME_PATTERN = re.compile(r"^[-_a-z0-9]{1,32}$")
MAX_OPTIONS = 25
MAX_CHOICES = 25


def _normalize_name(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _check_name(value: str) -> str:
    if not NAME_PATTERN.match(value):
        raise ValueError(
            f"invalid command name {value!r}: expected 1-32 chars of [-_a-z0-9]"
        )
    return value


class OptionType(str, Enum):
    """Option value types, with their platform type codes."""
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    USER = "user"
    CHANNEL = "channel"
    ROLE = "role"
    NUMBER = "number"

    @property
    def api_value(self) -> int:
        return _OPTION_TYPE_CODES[self]


_OPTION_TYPE_CODES = {
    OptionType.STRING: 3,
    OptionType.INTEGER: 4,
    OptionType.BOOLEAN: 5,
    OptionType.USER: 6,
    OptionType.CHANNEL: 7,
    OptionType.ROLE: 8,
    OptionType.NUMBER: 10,
}


class OptionChoice(BaseModel):
    """A fixed value offered for an option."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=100)
    value: Union[str, int, float]


class CommandOption(BaseModel):
    """One declared argument of a slash command."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = Field(min_length=1, max_length=100)
    type: OptionType = OptionType.STRING
    required: bool = False
    choices: Tuple[OptionChoice, ...] = ()

    @field_validator("name", mode="before")
    @classmethod
    def lower_name(cls, value: Any) -> Any:
        return _normalize_name(value)

    @field_validator("name")
    @classmethod
    def valid_name(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("choices")
    @classmethod
    def choice_limit(cls, value: Tuple[OptionChoice, ...]) -> Tuple[OptionChoice, ...]:
        if len(value) > MAX_CHOICES:
            raise ValueError(f"at most {MAX_CHOICES} choices are allowed")
        return value

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "type": self.type.api_value,
            "required": self.required,
        }
        if self.choices:
            payload["choices"] = [
                {"name": c.name, "value": c.value} for c in self.choices
            ]
        return payload


class CommandDescriptor(BaseModel):
    """Immutable metadata describing a command to the platform.

    Names are lower-cased before validation, so a handler declaring
    "Ping" publishes and registers as "ping".
    """
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = Field(min_length=1, max_length=100)
    options: Tuple[CommandOption, ...] = ()

    @field_validator("name", mode="before")
    @classmethod
    def lower_name(cls, value: Any) -> Any:
        return _normalize_name(value)

    @field_validator("name")
    @classmethod
    def valid_name(cls, value: str) -> str:
        return _check_name(value)

    @model_validator(mode="after")
    def check_options(self) -> "CommandDescriptor":
        if len(self.options) > MAX_OPTIONS:
            raise ValueError(f"at most {MAX_OPTIONS} options are allowed")
        seen_optional = False
        names = set()
        for option in self.options:
            if option.name in names:
                raise ValueError(f"duplicate option name {option.name!r}")
            names.add(option.name)
            if option.required and seen_optional:
                raise ValueError(
                    f"required option {option.name!r} follows an optional one"
                )
            seen_optional = seen_optional or not option.required
        return self

    def to_payload(self) -> Dict[str, Any]:
        """Render the global-command registration body (chat-input type)."""
        return {
            "name": self.name,
            "description": self.description,
            "type": 1,
            "options": [o.to_payload() for o in self.options],
        }


@dataclass
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass
class ResponseEmbed:
    """Platform-neutral rich reply; the session adapter renders it."""
    title: str
    description: Optional[str] = None
    color: int = 0x3498DB
    fields: List[EmbedField] = field(default_factory=list)
    footer: Optional[str] = None
    timestamp: Optional[datetime] = None

    def add_field(self, name: str, value: str, inline: bool = False) -> "ResponseEmbed":
        self.fields.append(EmbedField(name=name, value=value, inline=inline))
        return self

    def field_value(self, name: str) -> Optional[str]:
        for f in self.fields:
            if f.name == name:
                return f.value
        return None


# Colour palette shared by built-in commands
GREEN = 0x2ECC71
BLUE = 0x3498DB
ORANGE = 0xE67E22
RED = 0xE74C3C


@dataclass
class BotContext:
    """Dependency container for command factories.

    Factories receive this and pick out the collaborators their
    command's constructor needs. Optional collaborators use
    underscore storage with property getters that raise RuntimeError
    if the bot was built without them.
    """

    config: "Config"
    session: "PlatformSession"
    _consent_store: Optional["ConsentStore"] = field(default=None, repr=False)

    @property
    def consent_store(self) -> "ConsentStore":
        if self._consent_store is None:
            raise RuntimeError("Consent store not configured")
        return self._consent_store


class SlashCommand(ABC):
    """Capability contract for a user-invocable command.

    Implementations must be stateless across invocations: a fresh
    instance is built for every dispatch, and shared state lives only
    in collaborators injected by the factory.
    """

    @abstractmethod
    def get_descriptor(self) -> CommandDescriptor:
        """Return the command's name, description and options."""
        ...

    @abstractmethod
    async def handle(self, event: "InteractionEvent") -> None:
        """Run the command for one interaction."""
        ...


class CommandBase(SlashCommand):
    """Base class for slash commands.

    To create a new command:
    1. Subclass CommandBase
    2. Set ``command_name`` and ``command_description``
    3. Override ``build_options()`` if the command takes arguments
    4. Implement ``execute()``
    5. Register it on a CommandSource with ``@source.register(...)``
    """

    command_name: str = ""
    command_description: str = ""

    def build_options(self) -> List[CommandOption]:
        """Return the command's options. None by default."""
        return []

    def get_descriptor(self) -> CommandDescriptor:
        return CommandDescriptor(
            name=self.command_name,
            description=self.command_description,
            options=tuple(self.build_options()),
        )

    async def handle(self, event: "InteractionEvent") -> None:
        logger.info(
            "command_handling",
            command=self.command_name,
            user_id=event.user_id,
            guild_id=event.guild_id,
        )
        await self.execute(event)

    @abstractmethod
    async def execute(self, event: "InteractionEvent") -> None:
        ...

    def create_embed(
        self, title: str, description: Optional[str] = None, color: int = BLUE
    ) -> ResponseEmbed:
        """Build an embed stamped with the current UTC time."""
        return ResponseEmbed(
            title=title,
            description=description or None,
            color=color,
            timestamp=datetime.now(timezone.utc),
        )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

CommandFactory = Callable[[BotContext], SlashCommand]


@dataclass(frozen=True)
class CommandMetadata:
    """Static name/description attached by @slash_command."""
    name: str
    description: str = ""


def slash_command(name: str, description: str = ""):
    """Attach static command metadata to a class.

    Read by ``HandlerRegistry.discover_by_metadata`` so the command can
    be mapped without constructing it.
    """
    def decorator(cls):
        cls.__slash_command__ = CommandMetadata(name=name.strip().lower(), description=description)
        return cls
    return decorator


def static_command_name(command_type: type) -> Optional[str]:
    """Return a type's statically declared command name, if any.

    Checks @slash_command metadata first, then a ``command_name``
    class attribute.
    """
    metadata = getattr(command_type, "__slash_command__", None)
    if isinstance(metadata, CommandMetadata) and metadata.name:
        return metadata.name
    name = getattr(command_type, "command_name", None)
    if isinstance(name, str) and name.strip():
        return name.strip().lower()
    return None


@dataclass(frozen=True)
class CommandRegistration:
    """A command type plus the factory that builds it."""
    command_type: type
    factory: Optional[CommandFactory] = None


@dataclass(frozen=True)
class HandlerEntry:
    """Resolved mapping of a command name to its implementation."""
    name: str
    command_type: type
    factory: Optional[CommandFactory] = None
    source: str = ""

    def create_handler(self, ctx: BotContext) -> SlashCommand:
        """Build a fresh handler instance.

        Raises:
            DiscoveryError: If the factory produced something that is
                not a SlashCommand.
        """
        handler = self.factory(ctx) if self.factory else self.command_type()
        if not isinstance(handler, SlashCommand):
            raise DiscoveryError(
                "Factory did not return a SlashCommand",
                command_type=self.command_type.__qualname__,
                returned=type(handler).__name__,
            )
        return handler


class CommandSource:
    """Ordered, explicit registration list of command types.

    Command modules register their classes with the ``register``
    decorator. Modules named in ``modules`` are imported by ``load()``
    so their decorators run before the list is read.

    Args:
        name: Label used in logs and HandlerEntry.source.
        modules: Dotted module paths whose import populates the source.
    """

    def __init__(self, name: str, modules: Iterable[str] = ()):
        self.name = name
        self._modules: Tuple[str, ...] = tuple(modules)
        self._registrations: List[CommandRegistration] = []

    def register(
        self,
        command_type: Optional[Type[SlashCommand]] = None,
        *,
        factory: Optional[CommandFactory] = None,
    ):
        """Register a command type, usable bare or with a factory.

        Examples::

            @source.register
            class Hello(CommandBase): ...

            @source.register(factory=lambda ctx: Ping(ctx.session))
            class Ping(CommandBase): ...
        """
        def decorator(cls):
            self.add(cls, factory=factory)
            return cls

        if command_type is not None:
            return decorator(command_type)
        return decorator

    def add(self, command_type: type, factory: Optional[CommandFactory] = None) -> None:
        self._registrations.append(CommandRegistration(command_type, factory))

    def load(self) -> List[CommandRegistration]:
        """Import declared modules and return registrations in order.

        Raises:
            ScanError: If a declared module cannot be imported.
        """
        for module in self._modules:
            try:
                importlib.import_module(module)
            except Exception as e:
                raise ScanError(
                    f"Cannot load command module {module}",
                    source=self.name,
                    error=str(e),
                ) from e
        return list(self._registrations)

    def __len__(self) -> int:
        return len(self._registrations)

    def __repr__(self) -> str:
        return f"CommandSource({self.name!r}, registrations={len(self._registrations)})"
