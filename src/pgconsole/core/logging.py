"""Logging configuration using structlog.

Logs go to stderr to keep stdout clean for data output (piping).
Secret material is masked before rendering.
"""

import logging
import re
import sys
from typing import Any

import structlog

_LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_SECRET_KEYS = frozenset({"password", "secret", "private_key", "passphrase"})
_MASK = "***"
_DSN_PASSWORD = re.compile(r"(postgres(?:ql)?://[^:/@\s]+:)[^@\s]*@")


def mask_dsn(text: str) -> str:
    """Replace the password part of any postgres:// URL in text."""
    return _DSN_PASSWORD.sub(rf"\1{_MASK}@", text)


def redact_secrets(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor masking credential fields and DSN passwords."""
    for key, value in event_dict.items():
        if key in _SECRET_KEYS and value is not None:
            event_dict[key] = _MASK
        elif isinstance(value, str) and "://" in value:
            event_dict[key] = mask_dsn(value)
    return event_dict


class _LazyStderrFactory:
    """Resolve sys.stderr at logger creation time, not at configure() time.

    PrintLoggerFactory(file=sys.stderr) captures the file handle once.
    Under CliRunner tests the captured handle becomes stale when stderr
    is closed between invocations.  This factory defers the lookup so
    each logger gets the *current* sys.stderr.
    """

    def __call__(self, *args: Any, **kwargs: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file=sys.stderr)


def setup_logging(verbose: bool = False) -> None:
    """Configure structlog for pgconsole.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise WARNING.
    """
    log_level = "debug" if verbose else "warning"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVELS[log_level]),
        context_class=dict,
        logger_factory=_LazyStderrFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger, optionally bound with a name.

    Never call this at module level. Call inside functions or __init__()
    after setup_logging() has been called.
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger
