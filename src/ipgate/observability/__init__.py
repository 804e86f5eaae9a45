"""Observability for ipgate: structlog setup and Prometheus metrics."""

from ipgate.observability.logging import LOG_LEVELS, configure_logging
from ipgate.observability.metrics import (
    GUARD_DECISIONS,
    REJECTED_REQUESTS,
    RULE_FILE_ERRORS,
    generate_metrics,
    get_content_type,
)

__all__ = [
    "LOG_LEVELS",
    "configure_logging",
    "GUARD_DECISIONS",
    "REJECTED_REQUESTS",
    "RULE_FILE_ERRORS",
    "generate_metrics",
    "get_content_type",
]
