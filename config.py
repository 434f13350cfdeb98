"""Configuration for the medication tracker.

All tunable parameters live here. Environment variables are loaded
from .env at import time via python-dotenv.
"""

from dataclasses import dataclass, field
import logging
import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("medsync")
if not logger.handlers:
    _h = logging.StreamHandler()
    _h.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))
    logger.addHandler(_h)
    logger.setLevel(os.getenv("MEDSYNC_LOG_LEVEL", "INFO").upper())


# ---------------------------------------------------------------------------
# Module configs
# ---------------------------------------------------------------------------

@dataclass
class ScheduleConfig:
    """Escalation policy and tick cadence."""
    tick_interval: float = field(default_factory=lambda: float(os.getenv("MEDSYNC_TICK_INTERVAL", "1.0")))  # Must stay <= 60s or due windows get skipped
    due_window_minutes: float = 1.0
    snooze_minutes: int = 5
    missed_after_minutes: float = 120.0   # Two hours past the scheduled time

    def __post_init__(self):
        if not 0 < self.tick_interval <= 60:
            raise ValueError(f"tick_interval must be in (0, 60] seconds, got {self.tick_interval}")


@dataclass
class StorageConfig:
    """Where the medication and caregiver lists are persisted."""
    data_dir: str = field(default_factory=lambda: os.getenv("MEDSYNC_DATA_DIR", "data"))


@dataclass
class NotificationConfig:
    """Personal notifications and caregiver alerts."""
    enabled: bool = field(default_factory=lambda: _env_flag("MEDSYNC_NOTIFICATIONS"))
    webhook_url: str = field(default_factory=lambda: os.getenv("MEDSYNC_NOTIFY_WEBHOOK", ""))
    alert_webhook_url: str = field(default_factory=lambda: os.getenv("MEDSYNC_ALERT_WEBHOOK", ""))
    timeout: float = 5.0


@dataclass
class ServerConfig:
    host: str = field(default_factory=lambda: os.getenv("MEDSYNC_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("MEDSYNC_PORT", "5000")))


# ---------------------------------------------------------------------------
# Store keys
# ---------------------------------------------------------------------------

MEDICATIONS_KEY = "medications"
CAREGIVERS_KEY = "caregivers"
DOSE_LOG_KEY = "dose_log"

# Most recent taken/missed outcomes kept in the dose log
DOSE_LOG_LIMIT = 1000
