"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal
from enum import StrEnum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReferralMode(StrEnum):
    """Implementation strategy for chain resolution, ledger writes and flushing."""

    STANDARD = "standard"
    OPTIMIZED = "optimized"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False
    database_pool_size: int = Field(default=10, ge=1)

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    log_level: str = "INFO"
    log_file: str = "logs/unifarm.log"

    # Farming
    farming_daily_rate: Decimal = Field(
        default=Decimal("0.005"),
        gt=0,
        le=1,
        description="Daily farming yield as a fraction of the deposit (0.005 = 0.5%)"
    )
    farming_min_deposit: Decimal = Field(
        default=Decimal("0.001"),
        gt=0,
        description="Minimum farming deposit amount"
    )
    farming_max_accrual_seconds: Decimal = Field(
        default=Decimal("10"),
        gt=0,
        description="Upper clamp for elapsed seconds credited by one accrual tick"
    )
    farming_tick_seconds: int = Field(
        default=10, ge=1, description="Scheduler interval for the farming cycle"
    )
    farming_group_size: int = Field(
        default=10, ge=1, description="Participants accrued concurrently per group"
    )
    farming_group_pause_seconds: float = Field(
        default=0.5, ge=0, description="Pause between accrual groups"
    )

    # Referral rewards
    referral_mode: ReferralMode = ReferralMode.STANDARD
    referral_min_reward: Decimal = Field(
        default=Decimal("0.0001"),
        ge=0,
        description="Rewards below this amount are not credited"
    )
    referral_stop_on_cycle: bool = Field(
        default=False,
        description="Stop chain resolution at the first repeated ancestor"
    )

    # Reward batches
    reward_batch_size: int = Field(default=50, ge=1)
    reward_flush_interval_seconds: float = Field(default=5.0, gt=0)
    reward_max_retries: int = Field(default=3, ge=0)
    reward_retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    reward_max_backoff_seconds: float = Field(default=60.0, ge=0)
    reward_recovery_interval_seconds: int = Field(default=300, ge=1)
    reward_recovery_limit: int = Field(default=100, ge=1)
    reward_stuck_after_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Processing batches older than this are treated as stuck"
    )

    # Job locks
    farming_cycle_lock_seconds: int = Field(
        default=300,
        ge=1,
        description="Redis lock TTL of one farming cycle (covers the actor time limit)"
    )
    reward_recovery_lock_seconds: int = Field(default=300, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError(
                "DATABASE_URL must start with postgresql:// or postgresql+asyncpg://"
            )
        if v.startswith("postgresql://"):
            v = "postgresql+asyncpg://" + v[len("postgresql://"):]
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def redis_url(self) -> str:
        """Redis connection URL for the task broker."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


# Global settings instance
settings = Settings()
