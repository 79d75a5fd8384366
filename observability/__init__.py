"""
Marginalia - Observability Package

Structured logging (structlog) with OpenTelemetry trace context.

Usage:
    from observability import setup_logging, get_logger

    setup_logging(config.logging, environment="production")
    logger = get_logger(__name__)
"""
from observability.logging import (
    LogContext,
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "shutdown_logging",
    "LogContext",
    "bind_context",
    "clear_context",
]
