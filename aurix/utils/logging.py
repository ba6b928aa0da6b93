# aurix/utils/logging.py
"""
Small logging helper.

Usage:
    from aurix.utils.logging import get_logger
    logger = get_logger("aurix.module")

`configure_logging()` is called once by the app on import; scripts may call
`get_logger()` directly, which sets a simple console formatter if no handlers
are configured.
"""
import logging
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
ROOT_LOGGER = "aurix"


def configure_logging(level: str = "info") -> logging.Logger:
    """Configure the root handler and the `aurix` logger level."""
    logging.basicConfig(level=level.upper(), format=DEFAULT_FORMAT)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level.upper())
    return logger


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    # If root has no handlers, configure a default one (useful in scripts)
    if not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter(DEFAULT_FORMAT)
        handler.setFormatter(fmt)
        logging.getLogger().addHandler(handler)

    if level:
        logger.setLevel(level.upper())
    return logger
