"""Structured logging setup.

Configures structlog with JSON output (or a console renderer for local
development) and a scrubber that keeps signing material out of log events.
"""

import logging
import re
import typing as t

import structlog

from racepass import __version__, settings

PEM_BLOCK_RE = re.compile(r"-----BEGIN [A-Z0-9 ]+-----.*?(-----END [A-Z0-9 ]+-----|$)", re.DOTALL)

SENSITIVE_KEYS = [
    "password",
    "private_key",
    "secret",
    "token",
    "assertion",
    "authorization",
    "pem",
    "credentials",
]


def scrub_secrets(logger: t.Any, method_name: str, event_dict: dict[str, t.Any]) -> dict[str, t.Any]:
    """Scrub signing material from log events.

    Redacts values under secret-looking keys and any embedded PEM block.
    """

    def _scrub(d: t.Any) -> t.Any:
        if not isinstance(d, dict):
            return d

        for key in list(d.keys()):
            if key == "event":
                continue
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS):
                d[key] = "[REDACTED]"
            elif isinstance(d[key], dict):
                d[key] = _scrub(d[key])
            elif isinstance(d[key], str) and "-----BEGIN" in d[key]:
                d[key] = PEM_BLOCK_RE.sub("[PEM REDACTED]", d[key])

        return d

    return t.cast(dict[str, t.Any], _scrub(event_dict))


def add_app_context(logger: t.Any, method_name: str, event_dict: dict[str, t.Any]) -> dict[str, t.Any]:
    """Add application-level context to all log events."""
    event_dict["service"] = settings.SERVICE_NAME
    event_dict["version"] = __version__
    event_dict["environment"] = settings.DEPLOYMENT_ENVIRONMENT
    return event_dict


def build_processors(json_logs: bool) -> list[t.Any]:
    """Build the structlog processor chain."""
    renderer: t.Any = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_app_context,
        scrub_secrets,
        renderer,
    ]


def configure_logging(json_logs: bool | None = None, level: str | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        json_logs: Render JSON lines. Defaults to the LOG_JSON setting.
        level: Root log level name. Defaults to the LOG_LEVEL setting.
    """
    json_logs = settings.LOG_JSON if json_logs is None else json_logs
    level_name = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(format="%(message)s", level=getattr(logging, level_name, logging.INFO))

    structlog.configure(
        processors=build_processors(json_logs),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
