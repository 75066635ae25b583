"""Logging configuration helpers."""

import logging

_PACKAGE_LOGGER = "lifestyle_tracker"
# httpx logs every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "hpack")


def configure_logging(level: str = "INFO") -> None:
    """Attach one stream handler to the package logger and quiet HTTP clients."""
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(level.upper())
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
