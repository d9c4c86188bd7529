"""Observability infrastructure for structured logging."""

from streamsync.infrastructure.observability.log_messages import LogMessages, LogTemplate
from streamsync.infrastructure.observability.logger_template import (
    log_operation,
    log_worker_health,
)
from streamsync.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "CompactExceptionFormatter",
    "CorrelationIdFilter",
    "CustomJsonFormatter",
    "LogMessages",
    "LogTemplate",
    "configure_logging",
    "get_correlation_id",
    "log_operation",
    "log_worker_health",
    "set_correlation_id",
]
