"""
GAEN Key Store Configuration
Pydantic Settings for environment variable management
"""

from datetime import timedelta

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Database (PostgreSQL in production, SQLite for local runs and tests)
    DATABASE_URL: str = Field(
        "sqlite:///./gaen_keys.db", description="SQLAlchemy connection string"
    )
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False
    DB_STATEMENT_TIMEOUT_MS: int = 30000

    # Release policy
    RELEASE_BUCKET_DURATION: timedelta = Field(
        timedelta(hours=2), description="Width of the received-at bucket"
    )
    TIME_SKEW: timedelta = Field(
        timedelta(hours=2), description="Grace period a key stays valid after its rolling period"
    )
    RETENTION_PERIOD: timedelta = Field(
        timedelta(days=14), description="Keys received before now - RETENTION_PERIOD are purged"
    )
    ORIGIN_COUNTRY: str = Field("CH", min_length=2, max_length=2)

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @model_validator(mode="after")
    def _check_release_policy(self) -> "Settings":
        if self.RELEASE_BUCKET_DURATION <= timedelta(0):
            raise ValueError("RELEASE_BUCKET_DURATION must be positive")
        if self.TIME_SKEW < timedelta(0):
            raise ValueError("TIME_SKEW must not be negative")
        # A key is only published once its expiry (plus skew) lies in a closed
        # bucket, so anything shorter would purge keys before their window.
        if self.RETENTION_PERIOD < self.RELEASE_BUCKET_DURATION + self.TIME_SKEW:
            raise ValueError(
                "RETENTION_PERIOD must cover at least one release bucket plus TIME_SKEW"
            )
        return self


# Global settings instance
settings = Settings()
