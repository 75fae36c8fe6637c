"""Logging setup for slashbot.

structlog renders events; stdlib logging routes them. Each subsystem
logger writes its own rotating file and propagates to the combined
``slashbot.log`` and the console:

    slashbot.bot       -> bot.log       (lifecycle, config)
    slashbot.commands  -> commands.log  (registry, dispatch, publish)
    slashbot.platform  -> platform.log  (gateway, REST, discord.py)
    slashbot.consent   -> consent.log   (consent store)
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict

import structlog

SUBSYSTEMS = ("bot", "commands", "platform", "consent")

LOGGER_PREFIX = "slashbot"

_SECRET_PATTERNS = [
    # "Authorization: Bot <token>" and bearer values
    re.compile(r"(?:Bot|Bearer)\s+[A-Za-z0-9_.\-]{20,}"),
    # Raw bot tokens: <user id>.<timestamp>.<hmac>
    re.compile(r"[MNO][A-Za-z\d_-]{23,27}\.[A-Za-z\d_-]{6}\.[A-Za-z\d_-]{27,}"),
]

_REDACTED = "***REDACTED***"


def _scrub_value(value: str) -> str:
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def _scrub(value: Any) -> Any:
    return _scrub_value(value) if isinstance(value, str) else value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that redacts bot tokens.

    Strings are scrubbed at the top level and one level down inside
    lists, tuples and dicts.
    """
    for key, value in event_dict.items():
        if isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(_scrub(v) for v in value)
        elif isinstance(value, dict):
            event_dict[key] = {k: _scrub(v) for k, v in value.items()}
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def _rotating_handler(
    path: Path, level: int, formatter: logging.Formatter, max_bytes: int, backup_count: int
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _level(name: str, default: int) -> int:
    if not name:
        return default
    return getattr(logging, name.upper(), default)


def setup_logging(config=None) -> None:
    """Configure stdlib handlers and structlog.

    Called twice by ``main``: once with no config so startup messages
    are visible, then again with the loaded Config. Only the second
    call lets structlog cache loggers.

    Args:
        config: Loaded Config, or None for built-in defaults.
    """
    if config is not None:
        log_dir = Path(config.log_dir)
        root_level = _level(config.logging_level, logging.INFO)
        subsystem_levels = config.logging_subsystem_levels or {}
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count
    else:
        log_dir = Path(__file__).parent.parent / "logs"
        root_level = logging.INFO
        subsystem_levels = {}
        max_bytes = 10 * 1024 * 1024
        backup_count = 5

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        write_files = True
    except OSError as exc:
        print(
            f"WARNING: log directory {log_dir} unavailable ({exc}); "
            "logging to console only.",
            file=sys.stderr,
        )
        write_files = False

    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(root_level)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root_logger.addHandler(console)

    app_logger = logging.getLogger(LOGGER_PREFIX)
    app_logger.setLevel(logging.DEBUG)
    app_logger.handlers.clear()
    app_logger.propagate = True
    if write_files:
        app_logger.addHandler(_rotating_handler(
            log_dir / f"{LOGGER_PREFIX}.log", root_level, file_formatter,
            max_bytes, backup_count,
        ))

    for subsystem in SUBSYSTEMS:
        level = _level(subsystem_levels.get(subsystem, ""), root_level)
        sub_logger = logging.getLogger(f"{LOGGER_PREFIX}.{subsystem}")
        sub_logger.setLevel(level)
        sub_logger.handlers.clear()
        sub_logger.propagate = True
        if write_files:
            sub_logger.addHandler(_rotating_handler(
                log_dir / f"{subsystem}.log", level, file_formatter,
                max_bytes, backup_count,
            ))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=config is not None,
    )
