"""
Exception logging helpers for the proxy.

Unexpected faults are reported to callers as 500s with a diagnostic message,
so formatting must never raise, even for exceptions with broken __str__ or
for exception groups raised from task groups inside the ASGI stack.
"""

import logging


def _safe_str(obj) -> str:
    """Convert an object to string, falling back to repr and then the type name."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception as "<message>", or "<message> (Sub-exceptions: ...)"
    for exception groups.
    """
    if exception is None:
        return "None"
    message = _safe_str(exception)
    subs = _sub_exceptions(exception)
    if not subs:
        return message
    parts = [f"{type(sub).__name__}: {_safe_str(sub)}" for sub in subs]
    return f"{message} (Sub-exceptions: {'; '.join(parts)})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, one entry per sub-exception for
    exception groups.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    safe_prefix = _safe_str(prefix) if prefix is not None else ""
    try:
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(subs)} sub-exceptions: {_safe_str(exception)}",
            )
            for i, sub in enumerate(subs):
                logger.log(
                    level,
                    f"{safe_prefix} Sub-exception {i+1}: {type(sub).__name__}: {_safe_str(sub)}",
                    exc_info=sub,
                )
        else:
            logger.log(
                level,
                f"{safe_prefix} Exception: {_safe_str(exception)}",
                exc_info=exception if exception is not None else False,
            )
    except Exception:
        # Logging must never take the request down with it
        try:
            logger.log(level, f"{safe_prefix} Exception (logging failed)")
        except Exception:
            pass
