# flowsight/config/logging_setup.py
#
# Global logging configuration for host applications that embed the engine.
# The engine modules only ever call `logging.getLogger(__name__)`; the host
# decides once, at start-up, how those records are rendered.

import logging
from typing import Optional

from config.settings import settings


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Applies the configured log level and format to the root logger.

    Args:
        level: Optional override for `settings.app.log_level`.

    Returns:
        The logger for this module, already configured.
    """
    logging.basicConfig(
        level=level or settings.app.log_level,
        format=settings.app.log_format,
        datefmt=settings.app.log_date_format,
        force=True  # Override any existing handlers
    )
    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured for {settings.engine_label}.")
    return logger
