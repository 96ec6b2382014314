from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "MedQuest"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/medquest"

    # CORS
    cors_origins: list[str] = ["*"]

    # One-time grants and badge cut-offs
    pioneer_limit: int = 100  # first N registered accounts earn "pioneer"
    founder_limit: int = 10  # first N registered accounts earn the "founder" badge
    elite_percentile: float = 0.01  # top share of accounts by XP for "elite_athlete"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject cut-offs that would make grants unreachable or universal."""
        if self.pioneer_limit < 1:
            raise ValueError("PIONEER_LIMIT must be a positive integer")
        if self.founder_limit < 1:
            raise ValueError("FOUNDER_LIMIT must be a positive integer")
        if not 0 < self.elite_percentile <= 1:
            raise ValueError("ELITE_PERCENTILE must be in the range (0, 1]")
        return self


settings = Settings()
