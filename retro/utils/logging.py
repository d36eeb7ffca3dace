"""Logging helpers: one-time setup plus context-rich error logging."""

import logging
import traceback
from os import getenv
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Get the main logger
logger = logging.getLogger("Retro")


def is_debug() -> bool:
    return getenv("APP_DEBUG", "false").lower() == "true"


def configure_logging(debug: bool = False) -> None:
    """Configure the root handler once; later calls only adjust the level."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )
    logger.setLevel(logging.DEBUG if debug else logging.INFO)


def debug_log(message: str, *args, **kwargs) -> None:
    """
    Log a debug message only if APP_DEBUG is enabled.

    Args:
        message: Log message (supports % formatting)
        *args: Positional arguments for message formatting
        **kwargs: Keyword arguments (level, exc_info, etc.)
    """
    if is_debug():
        level = kwargs.pop("level", logging.DEBUG)
        logger.log(level, message, *args, **kwargs)


def error_log(
    message: str,
    exc: Optional[BaseException] = None,
    context: Optional[dict] = None,
    *args,
    **kwargs
) -> None:
    """
    Enhanced error logging with context and traceback.

    Args:
        message: Error message
        exc: Optional exception object
        context: Optional dictionary with additional context (item, user, ...)
        *args: Additional positional arguments
        **kwargs: Additional keyword arguments for logger
    """
    parts = [message]

    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        parts.append(f"Context: {context_str}")

    if exc:
        parts.append(f"Exception: {type(exc).__name__}: {exc}")

        # Include full traceback in debug mode
        if is_debug():
            parts.append(f"Traceback:\n{''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))}")

    full_message = " | ".join(parts)

    if exc:
        logger.error(full_message, exc_info=exc, *args, **kwargs)
    else:
        logger.error(full_message, *args, **kwargs)


def log_exception_with_context(
    exc: BaseException,
    context: Optional[dict] = None,
    message: Optional[str] = None
) -> None:
    """
    Log an exception with enhanced context information.

    Args:
        exc: The exception to log
        context: Optional dictionary with context (request path, event, params, etc.)
        message: Optional custom message
    """
    msg = message or f"Unhandled exception: {type(exc).__name__}"
    error_log(msg, exc=exc, context=context)


def request_context(request: Any) -> dict:
    """Best-effort request details for error logs."""
    context = {}
    url = getattr(request, "url", None)
    if url is not None:
        context["path"] = getattr(url, "path", str(url))
    method = getattr(request, "method", None)
    if method:
        context["method"] = method
    return context
