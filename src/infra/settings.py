"""
Runtime settings for the badge print queue.

Values come from environment variables, optionally loaded from a .env file.

Environment Variables:
- PRINT_QUEUE_DB_PATH: SQLite job store (default: data/print_queue.db)
- PRINT_QUEUE_MAX_SIZE: Maximum active (queued + processing) jobs (default: 50)
- PRINT_QUEUE_MAX_RETRIES: Failed attempts before a job fails for good (default: 3)
- PRINT_QUEUE_RETRY_BASE_DELAY: Backoff base in seconds (default: 1.0)
- PRINT_QUEUE_PROCESSING_TIMEOUT: Seconds per attempt (default: 30.0)
- PRINT_QUEUE_POLL_INTERVAL: Idle re-check interval in seconds (default: 2.0)
- PRINT_QUEUE_WORK_DIR: Temporary badge images (default: data/temp)
- PRINT_QUEUE_AUTOSTART: Start the dispatch loop with the API (default: true)
- BADGE_TEMPLATES_DIR: Template directories (default: data/templates)
- PRINTER_NAME: CUPS printer name; unset spools to PRINTER_SPOOL_DIR
- PRINTER_SPOOL_DIR: Spool directory (default: data/spool)
- PRINTER_PRESET: Named set of lp options (default, high-quality, fast)
- LOG_LEVEL: Logging level (default: INFO)
- LOG_DIR: Log file directory (default: logs)
- API_AUTH_ENABLED: Require an X-API-Key on /api and /ws (default: false)
- API_KEY: The accepted key

Relative paths are resolved against the project root.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# =============================================================================
# Environment helpers
# =============================================================================

def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    val = os.getenv(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    elif val in ("false", "0", "no", "off"):
        return False
    return default


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid integer for {key}: {val}, using default: {default}")
    return default


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"[Settings] Invalid number for {key}: {val}, using default: {default}")
    return default


def _get_env_path(key: str, default: str) -> Path:
    path = Path(os.getenv(key) or default)
    if not path.is_absolute():
        path = get_project_root() / path
    return path


def get_project_root() -> Path:
    """
    Get the project root directory.

    File is at src/infra/settings.py, so project root is 2 levels up.
    """
    return Path(__file__).parent.parent.parent.resolve()


# =============================================================================
# Settings
# =============================================================================

@dataclass(frozen=True)
class QueueSettings:
    """Print queue configuration. Durations are in seconds."""

    db_path: Path = Path("data/print_queue.db")
    max_queue_size: int = 50
    max_retries: int = 3
    retry_base_delay: float = 1.0
    processing_timeout: float = 30.0
    poll_interval: float = 2.0
    work_dir: Path = Path("data/temp")
    templates_dir: Path = Path("data/templates")
    printer_name: Optional[str] = None
    spool_dir: Path = Path("data/spool")
    printer_preset: Optional[str] = None
    autostart: bool = True
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    api_auth_enabled: bool = False
    api_key: str = field(default="", repr=False)

    def __post_init__(self):
        if self.max_queue_size < 1:
            raise ValueError(f"max_queue_size must be >= 1, got {self.max_queue_size}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        for name in ("retry_base_delay", "processing_timeout", "poll_interval"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")


def load_settings(env_file: Optional[str | Path] = None) -> QueueSettings:
    """
    Build QueueSettings from the environment.

    Args:
        env_file: Optional .env file; by default python-dotenv searches
            from the working directory upwards. Existing variables win.

    Raises:
        ValueError: If a value is out of range
    """
    load_dotenv(env_file)

    return QueueSettings(
        db_path=_get_env_path("PRINT_QUEUE_DB_PATH", "data/print_queue.db"),
        max_queue_size=_get_env_int("PRINT_QUEUE_MAX_SIZE", 50),
        max_retries=_get_env_int("PRINT_QUEUE_MAX_RETRIES", 3),
        retry_base_delay=_get_env_float("PRINT_QUEUE_RETRY_BASE_DELAY", 1.0),
        processing_timeout=_get_env_float("PRINT_QUEUE_PROCESSING_TIMEOUT", 30.0),
        poll_interval=_get_env_float("PRINT_QUEUE_POLL_INTERVAL", 2.0),
        work_dir=_get_env_path("PRINT_QUEUE_WORK_DIR", "data/temp"),
        templates_dir=_get_env_path("BADGE_TEMPLATES_DIR", "data/templates"),
        printer_name=os.getenv("PRINTER_NAME") or None,
        spool_dir=_get_env_path("PRINTER_SPOOL_DIR", "data/spool"),
        printer_preset=os.getenv("PRINTER_PRESET") or None,
        autostart=_get_env_bool("PRINT_QUEUE_AUTOSTART", True),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=_get_env_path("LOG_DIR", "logs"),
        api_auth_enabled=_get_env_bool("API_AUTH_ENABLED", False),
        api_key=os.getenv("API_KEY", ""),
    )
