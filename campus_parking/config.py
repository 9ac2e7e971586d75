# campus_parking/config.py
"""
Application configuration using Pydantic-Settings.
All settings can be overridden via environment variables or .env file.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # ── Database ──────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite:///./campus_parking.db"

    # ── Network ───────────────────────────────────────────────────────────
    BACKEND_IP: str = "0.0.0.0"
    BACKEND_PORT: int = 8080

    # ── Security ──────────────────────────────────────────────────────────
    API_KEY: Optional[str] = None   # Set in .env to enable auth on API endpoints

    # ── Parking lot ───────────────────────────────────────────────────────
    TOTAL_SPOTS: int = 500
    GATES: list[str] = ["A", "B", "C", "D"]
    LOW_CAPACITY_WARNING: int = 10               # Alert when this few spots remain

    # ── Pricing (VND) ─────────────────────────────────────────────────────
    FIRST_HOUR_FEE: int = 5000
    ADDITIONAL_HOUR_FEE: int = 3000
    OVERNIGHT_FEE: int = 20000
    MONTHLY_STUDENT_FEE: int = 100000
    MONTHLY_STAFF_FEE: int = 0
    OVERNIGHT_START_HOUR: int = 23
    OVERNIGHT_END_HOUR: int = 5

    # ── LPR confidence bands ──────────────────────────────────────────────
    LPR_HIGH_THRESHOLD: int = 95
    LPR_MEDIUM_THRESHOLD: int = 80
    LPR_LOW_THRESHOLD: int = 60

    # ── Exception priority ────────────────────────────────────────────────
    URGENT_CONFIDENCE_BELOW: int = 20
    MEDIUM_CONFIDENCE_BELOW: int = 80            # Reads under the medium LPR band rank medium

    # ── Registrations ─────────────────────────────────────────────────────
    DEFAULT_REGISTRATION_MONTHS: int = 12
    DEFAULT_OPERATOR: str = "operator_1"

    # ── Persistence ───────────────────────────────────────────────────────
    STORAGE_PREFIX: str = "haui-parking:"
    DEBOUNCE_MS: int = 500
    FLUSH_INTERVAL_SECONDS: float = 0.25
    STORAGE_QUOTA_BYTES: int = 5 * 1024 * 1024
    BACKUP_RETENTION: int = 5
    BACKUP_PRUNE_KEEP: int = 3                   # Kept when quota pressure is detected
    BACKUP_VERSION: str = "1.0.0"

    # ── Logging ───────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True
    LOG_DIR: Optional[str] = None                # Defaults to <repo>/logs
    LOG_FILE: str = "events.log"

    @property
    def TARIFF(self) -> dict:
        return {
            "total_spots": self.TOTAL_SPOTS,
            "first_hour": self.FIRST_HOUR_FEE,
            "additional_hour": self.ADDITIONAL_HOUR_FEE,
            "overnight": self.OVERNIGHT_FEE,
            "monthly_student": self.MONTHLY_STUDENT_FEE,
            "monthly_staff": self.MONTHLY_STAFF_FEE,
            "overnight_start_hour": self.OVERNIGHT_START_HOUR,
            "overnight_end_hour": self.OVERNIGHT_END_HOUR,
        }

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
