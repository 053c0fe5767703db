"""Logging configuration for StackDeck.

All modules log through the standard library ``logging`` package using
module-level loggers. The CLI calls ``setup_logging`` once per command to pick
the verbosity; library callers are free to configure logging themselves.
"""

from __future__ import annotations

import logging
import sys

LOGGER_NAMESPACE = "stackdeck"

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
VERBOSE_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d]: %(message)s"
)

# Third-party loggers that are too chatty at INFO level
_NOISY_LOGGERS = ("kubernetes", "urllib3", "httpx", "httpcore", "asyncio")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the StackDeck logger hierarchy.

    Args:
        verbose: Enable DEBUG level output with source locations
        quiet: Only emit errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    root = logging.getLogger(LOGGER_NAMESPACE)
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT)
    )
    root.addHandler(handler)
    root.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a StackDeck module.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Logger inside the ``stackdeck`` namespace
    """
    if not name.startswith(LOGGER_NAMESPACE):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return logging.getLogger(name)
