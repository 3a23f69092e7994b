"""
Logging utilities for the IPAM provider.

Thin wrapper around loguru so every module can do::

    from unifiipam.utils.logger import get_logger

    logger = get_logger(__name__)

and the manager entry points can call ``configure_logging`` once at startup.
Records emitted through the standard ``logging`` module (uvicorn, httpx) are
forwarded into loguru so everything ends up in the same sinks.
"""

import logging
import sys
import traceback

from loguru import logger as _logger

from unifiipam.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

# Default name for records that were not created through get_logger()
_logger.configure(extra={"name": "unifiipam"})


# =============================================================================
# Standard Library Interception
# =============================================================================


class InterceptHandler(logging.Handler):
    """Forward standard logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        _logger.bind(name=record.name).opt(exception=record.exc_info).log(
            level, record.getMessage()
        )


# =============================================================================
# Public API
# =============================================================================


def _loguru_level(level: LogLevel) -> str:
    if level in (LogLevel.FULL, LogLevel.DEBUG):
        return "DEBUG"
    if level == LogLevel.WARNING:
        return "WARNING"
    return "INFO"


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: str = "") -> None:
    """
    Configure loguru sinks.

    Args:
        level: Verbosity. ``FULL`` also enables loguru backtraces and
            variable diagnosis on exceptions.
        log_file: Optional path of an additional rotating log file.
    """
    full = level == LogLevel.FULL
    loguru_level = _loguru_level(level)

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
    )
    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            backtrace=full,
            diagnose=full,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


def get_logger(name: str):
    """Return a loguru logger bound to a module name."""
    return _logger.bind(name=name)


def format_traceback(e: BaseException) -> str:
    """Format an exception with its traceback as a single string."""
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))
