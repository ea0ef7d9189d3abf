"""Timing and outcome recording around authority operations."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from token_authority.observability.logging import get_logger
from token_authority.observability.metrics import (
    OPERATION_DURATION,
    OPERATIONS_TOTAL,
    get_metrics,
)

logger = get_logger(__name__)


@contextmanager
def instrument(operation: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """Count and time ``operation``; exceptions are recorded and re-raised.

    The yielded dict is merged into the completion log record, so callers can
    attach ids that only become known inside the block.

    Example:
        >>> with instrument("grant.redeem", grant_id="01H...") as payload:
        ...     payload["session_id"] = "01J..."
    """
    payload: dict[str, Any] = dict(fields)
    started = time.perf_counter()
    metrics = get_metrics()
    try:
        yield payload
    except Exception as exc:
        metrics.increment_counter(OPERATIONS_TOTAL, {"operation": operation, "status": "error"})
        logger.debug(
            f"token_authority.{operation}.failed",
            error=type(exc).__name__,
            **payload,
        )
        raise
    else:
        metrics.increment_counter(OPERATIONS_TOTAL, {"operation": operation, "status": "success"})
        logger.debug(f"token_authority.{operation}", **payload)
    finally:
        metrics.observe_histogram(
            OPERATION_DURATION, time.perf_counter() - started, {"operation": operation}
        )
