"""Shared logger utilities.

USAGE:
    from streamsync.infrastructure.observability.logger_template import log_operation

    async with log_operation(logger, "content_sync", run_id="abc", identity="periodic"):
        outcome = await worker.run_sync(spec)
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Yo, this context manager does operation timing for you! It logs start/end with
# duration_ms and re-raises on failure so the caller can still handle the error.
# The **context args become extra fields on every line it writes.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Context manager for logging operation start/end with automatic timing.

    Logs:
    - {operation}.started with context fields
    - {operation}.completed with context + duration_ms
    - {operation}.failed with context + duration_ms + error details (if exception)

    The yielded dict is merged into the completion line, so the body can attach
    results (e.g. ``fields["error"] = "maintenance_failed"``).

    Args:
        logger: Module logger
        operation: Operation name (e.g., "content_sync")
        **context: Additional fields to include in logs (e.g., run_id="abc")
    """
    start = time.monotonic()
    result_fields: dict[str, Any] = {}
    logger.info(f"{operation}.started", extra=context)

    try:
        yield result_fields
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, **result_fields, "duration_ms": duration_ms},
    )


def log_worker_health(
    logger: logging.Logger,
    worker_name: str,
    cycles_completed: int,
    errors_total: int,
    uptime_seconds: float,
    extra_stats: dict[str, Any] | None = None,
) -> None:
    """Log worker health status in consistent format.

    Args:
        logger: Logger instance
        worker_name: Worker identifier (e.g., "sync_scheduler")
        cycles_completed: Total dispatch cycles since start
        errors_total: Total loop errors since start
        uptime_seconds: Seconds since worker started
        extra_stats: Optional dict of additional stats to include in log
    """
    log_data = {
        "worker": worker_name,
        "cycles_completed": cycles_completed,
        "errors_total": errors_total,
        "uptime_seconds": int(uptime_seconds),
    }
    if extra_stats:
        log_data.update(extra_stats)

    logger.info("worker.health", extra=log_data)
