from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

from cashdesk import config

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging() -> logging.Logger:
    """Console logging for the whole process, plus a rotating file when LOG_FILE is set."""
    settings = config.settings
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if settings.log_file:
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(settings.log_file, maxBytes=1048576, backupCount=3))

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    return logging.getLogger("cashdesk")
