"""
Logging setup for SellMate.

Entry points (API process, cron-triggered sweeps) call configure_logging()
once; modules only ever do logging.getLogger(__name__).
"""

import logging
from typing import Optional

from sellmate.config.settings import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
