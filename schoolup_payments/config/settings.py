"""Application settings using Pydantic for environment-based configuration."""
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables (prefix ``SCHOOLUP_``)."""

    # Application Configuration
    app_name: str = Field(default="schoolup-payments", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="CORS allowed origins (comma-separated)",
    )

    # Payment Processing
    currency: str = Field(default="ZMW", description="Settlement currency (fixed)")
    max_payment_amount: Decimal = Field(
        default=Decimal("100000"), gt=0, description="Largest single collection accepted"
    )
    confirmation_timeout_seconds: int = Field(
        default=300, gt=0, description="How long a transaction may stay PENDING"
    )
    sweep_interval_seconds: float = Field(
        default=30.0, gt=0, description="Interval between timeout sweeps"
    )
    receipt_max_attempts: int = Field(
        default=10, ge=1, description="Receipt number generation attempts before giving up"
    )

    # Webhooks
    webhook_secret: Optional[str] = Field(
        default=None, description="HMAC secret for X-MoMo-Signature (verification off if unset)"
    )

    # Mobile network simulator
    simulator_enabled: bool = Field(default=True, description="Confirm collections with the simulator")
    simulator_latency_seconds: float = Field(
        default=5.0, ge=0, description="Simulated USSD push + PIN entry latency"
    )
    simulator_success_rate: float = Field(
        default=1.0, description="Probability that a simulated collection succeeds"
    )

    # Notifications
    accounts_office_user_id: str = Field(default="admin-1", description="Sender of receipts")
    accounts_office_name: str = Field(
        default="School Accounts Office", description="Sender display name for receipts"
    )

    # Background workers
    background_workers_enabled: bool = Field(
        default=True, description="Run timeout sweeper and notification relay in the API process"
    )
    relay_poll_interval_seconds: float = Field(default=1.0, gt=0, description="Outbox poll interval")

    model_config = SettingsConfigDict(
        env_prefix="SCHOOLUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("simulator_success_rate")
    @classmethod
    def validate_success_rate(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("simulator_success_rate must be between 0 and 1")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if v.upper() != "ZMW":
            raise ValueError("Only Zambian Kwacha (ZMW) is supported")
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
