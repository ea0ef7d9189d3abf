"""Logging, metrics and operation instrumentation for the token authority.

Example:
    >>> from token_authority.observability import get_logger, get_metrics
    >>> logger = get_logger(__name__)
    >>> logger.info("token_authority.grant.created", grant_id="01H...")
"""

from token_authority.observability.instrumentation import instrument
from token_authority.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    sanitize_for_logging,
)
from token_authority.observability.metrics import (
    MetricsCollector,
    get_metrics,
    reset_metrics,
)

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_metrics",
    "instrument",
    "reset_metrics",
    "MetricsCollector",
    "sanitize_for_logging",
]
