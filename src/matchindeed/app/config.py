"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./matchindeed.db"

    # Auth / JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"

    # Meetings
    meeting_duration_minutes: int = 30
    meeting_fee_credits: int = 1
    meeting_fee_cents: int = 0  # cancellation fee defaults to this
    investigation_urgent_after_days: int = 2
    reminder_offsets_minutes: str = "1440,60"
    monitor_interval_minutes: int = 15

    # Top picks
    top_picks_default_limit: int = 5
    top_picks_max_limit: int = 50

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin (LAN IPs, etc.).
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def reminder_offsets(self) -> list[int]:
        """Reminder lead times in minutes, largest first. Bad entries are skipped."""
        offsets = []
        for part in self.reminder_offsets_minutes.split(","):
            part = part.strip()
            if part.isdigit() and int(part) > 0:
                offsets.append(int(part))
        return sorted(set(offsets), reverse=True)


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
