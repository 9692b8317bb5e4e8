"""Logging setup for applications embedding the engine."""

import logging
from typing import Optional

from workflow_dag.config.settings import Settings, get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from settings (DEBUG when debug is on)."""
    settings = settings or get_settings()
    level_name = "DEBUG" if settings.debug else settings.log_level.upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
    logging.getLogger("workflow_dag").setLevel(getattr(logging, level_name, logging.INFO))
