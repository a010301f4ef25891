"""Process logging setup."""

import logging
import os

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once, honouring ``AII_LOG_LEVEL``.

    Args:
        level: Optional explicit level name; falls back to the environment, then INFO.
    """
    resolved = (level or os.getenv("AII_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
