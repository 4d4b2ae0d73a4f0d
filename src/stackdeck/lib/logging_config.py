"""Logging configuration for StackDeck.

All modules obtain loggers through ``get_logger`` so that everything is
namespaced under the ``stackdeck`` logger and can be configured in one place
by the CLI.
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "stackdeck"

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Chatty third-party loggers held back unless verbose output is requested
NOISY_LOGGERS = (
    "aiobotocore",
    "aioboto3",
    "botocore",
    "boto3",
    "urllib3",
    "docker",
)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the stackdeck namespace.

    Args:
        name: Module name, usually ``__name__``

    Returns:
        Logger instance
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging for CLI commands.

    Args:
        verbose: Enable DEBUG level output, including third-party libraries
        quiet: Only show errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    # Replace handlers so repeated CLI invocations in one process don't stack
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.propagate = False

    third_party_level = logging.DEBUG if verbose else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def log_retry(
    logger: logging.Logger,
    operation: str,
    *,
    attempt: int,
    max_attempts: int,
    delay: float,
    error: BaseException,
) -> None:
    """Log a retry of a transient failure at WARNING level.

    Args:
        logger: Logger to write to
        operation: Human-readable name of the retried operation
        attempt: Attempt that just failed (1-based)
        max_attempts: Total attempts allowed
        delay: Seconds until the next attempt
        error: The transient error
    """
    logger.warning(
        f"{operation} failed (attempt {attempt}/{max_attempts}), "
        f"retrying in {delay:.1f}s: {error}"
    )
