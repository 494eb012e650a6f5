from __future__ import annotations

import logging
from typing import Final

_LOGGER_PREFIX: Final[str] = "nft_client"


def get_logger(name: str) -> logging.Logger:
    """Return a shared ``nft_client.<name>`` logger with a single stream handler."""

    logger = logging.getLogger(f"{_LOGGER_PREFIX}.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)s %(message)s", "%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger
