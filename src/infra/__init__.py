"""
Infrastructure module - settings and logging.
"""

from .logging_config import setup_logging, DailyRotatingFileHandler
from .settings import QueueSettings, load_settings, get_project_root

__all__ = [
    # logging
    "setup_logging",
    "DailyRotatingFileHandler",
    # settings
    "QueueSettings",
    "load_settings",
    "get_project_root",
]
