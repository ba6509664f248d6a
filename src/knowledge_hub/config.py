"""Configuration management using pydantic-settings."""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Knowledge Hub"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./knowledge_hub.db"

    # Record store behaviour
    STORE_TIMEOUT_SECONDS: float = 10.0  # Per unit of work, including commit
    STORE_CONFLICT_RETRIES: int = 3  # Attempts for version-number races

    # Expiry windows (days, inclusive upper bounds)
    EXPIRY_URGENT_DAYS: int = 7
    EXPIRY_UPCOMING_DAYS: int = 30

    # Documents
    DEFAULT_DEPARTMENT: str = "Other"

    @model_validator(mode="after")
    def check_expiry_windows(self) -> "Settings":
        """Validate that the urgent window sits inside the upcoming window."""
        if self.EXPIRY_URGENT_DAYS < 1:
            raise ValueError("EXPIRY_URGENT_DAYS must be at least 1")
        if self.EXPIRY_URGENT_DAYS >= self.EXPIRY_UPCOMING_DAYS:
            raise ValueError(
                "EXPIRY_URGENT_DAYS must be smaller than EXPIRY_UPCOMING_DAYS"
            )
        return self


settings = Settings()
