"""Shared utilities: structured logging and secret sanitization."""

from notify_dispatch.utils.logging import (
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)
from notify_dispatch.utils.sanitization import (
    REDACTED,
    is_sensitive_field,
    sanitize_exception,
    sanitize_mapping,
    sanitize_url,
    sanitize_value,
)

__all__ = [
    "REDACTED",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "is_sensitive_field",
    "log_with_context",
    "reset_correlation_id",
    "sanitize_exception",
    "sanitize_mapping",
    "sanitize_url",
    "sanitize_value",
    "set_correlation_id",
]
