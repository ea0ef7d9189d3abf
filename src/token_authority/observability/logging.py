"""Structured logging for the token authority.

structlog is configured once per process with either a console renderer
(development) or a JSON renderer (production). Security-relevant events use
dotted names under ``token_authority.`` and carry ids only; token values,
verifiers and secrets are redacted by ``sanitize_for_logging``.

Environment Variables:
    TOKEN_AUTHORITY_LOG_FORMAT: "json" or "console"
    TOKEN_AUTHORITY_LOG_LEVEL: DEBUG, INFO, WARNING or ERROR
    TOKEN_AUTHORITY_SERVICE_NAME: service name bound into every record

Example:
    >>> from token_authority.observability.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.warning("token_authority.session.replay_detected", session_id="01H...")
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.typing import Processor

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "console"
DEFAULT_SERVICE_NAME = "token-authority"

ENV_LOG_FORMAT = "TOKEN_AUTHORITY_LOG_FORMAT"
ENV_LOG_LEVEL = "TOKEN_AUTHORITY_LOG_LEVEL"
ENV_SERVICE_NAME = "TOKEN_AUTHORITY_SERVICE_NAME"

REDACTED_PLACEHOLDER = "***REDACTED***"

_SENSITIVE_KEY_PATTERNS = frozenset(
    {"password", "token", "secret", "verifier", "authorization", "code"}
)
# Keys that contain a sensitive substring but only ever hold metadata.
_SAFE_KEYS = frozenset({"code_challenge_method", "token_type", "token_type_hint", "error_code"})

_logging_configured = False


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    if lower in _SAFE_KEYS:
        return False
    return any(pattern in lower for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with credential-bearing values redacted.

    Nested dicts and lists of dicts are sanitized recursively.

    Example:
        >>> sanitize_for_logging({"client_id": "app", "client_secret": "s3cr3t"})
        {'client_id': 'app', 'client_secret': '***REDACTED***'}
        >>> sanitize_for_logging({"params": {"refresh_token": "eyJ..."}})
        {'params': {'refresh_token': '***REDACTED***'}}
    """
    if not data:
        return {}
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive_key(key):
            sanitized[key] = REDACTED_PLACEHOLDER
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_for_logging(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            sanitized[key] = value
    return sanitized


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer_for(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    service_name: str | None = None,
    force: bool = False,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_format: "json" or "console". Defaults to TOKEN_AUTHORITY_LOG_FORMAT.
        log_level: Minimum level name. Defaults to TOKEN_AUTHORITY_LOG_LEVEL.
        service_name: Bound as ``service`` on every record.
        force: Reconfigure even when logging was already configured.
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    log_format = (log_format or os.environ.get(ENV_LOG_FORMAT, DEFAULT_LOG_FORMAT)).lower()
    log_level = (log_level or os.environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)).upper()
    service_name = service_name or os.environ.get(ENV_SERVICE_NAME, DEFAULT_SERVICE_NAME)

    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer_for(log_format),
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    structlog.contextvars.bind_contextvars(service=service_name)
    _logging_configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger, configuring defaults on first use."""
    if not _logging_configured:
        configure_logging()
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind values (e.g. ``request_id``) into all subsequent log records."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
