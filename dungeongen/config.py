"""Process-level settings read from the environment."""

import logging
import os

LOG_LEVEL = os.getenv("DUNGEONGEN_LOG_LEVEL", "INFO").upper()

# Seed used when LayoutParameters.seed is None.  Unset means fresh entropy.
_seed = os.getenv("DUNGEONGEN_SEED", "").strip()
DEFAULT_SEED = int(_seed) if _seed else None

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level=None):
    """
    Configure the root logger once.

    Args:
        level: Level name or number; defaults to DUNGEONGEN_LOG_LEVEL

    Returns:
        logging.Logger: the package logger
    """
    level = level or LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    logger = logging.getLogger("dungeongen")
    logger.setLevel(level)
    return logger
