"""
Logging configuration
"""

import logging
import sys
from typing import Optional

DEFAULT_LOG_LEVEL = "INFO"


def setup_logging(level: Optional[str] = None):
    """Configure application logging"""

    level_name = (level or DEFAULT_LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stderr)
        ],
        force=True
    )

    # Request-level chatter from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured at {level_name} level")
