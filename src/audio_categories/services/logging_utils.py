"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across mutations, diagnostics, sync
and cache maintenance.

Usage:
    from audio_categories.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="delete_category",
        outcome="success",
        category_id=12,
        cascade=True,
    )

    log_operation(
        logger,
        operation="create_category",
        outcome="validation_failed",
        level=logging.WARNING,
        codes=["DUPLICATE_NAME"],
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger under the 'audio_categories.services' namespace.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'audio_categories.services.category_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"audio_categories.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging
    handlers and also rendered into the message so plain handlers show it.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "create_category", "run_diagnostic")
        outcome: Outcome description (e.g., "success", "validation_failed")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (category ids, counts, codes)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **{f"ctx_{key}": value for key, value in context.items()},
    }
    details = " ".join(f"{key}={value}" for key, value in context.items())
    message = f"{operation}: {outcome}"
    if details:
        message = f"{message} ({details})"
    logger.log(level, message, extra=extra)
