"""Configuration management for the Texas Power Pricing API"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str = Field(default="sqlite:///./power_pricing.db")

    # API Configuration
    api_keys_str: str = Field(default="dev-key-123,admin-key-456", validation_alias="API_KEYS")
    rate_limit_per_minute: int = Field(default=120)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Upstream pricing API
    pricing_api_url: str = Field(default="https://pricing.api.comparepower.com", validation_alias="COMPAREPOWER_API_URL")
    pricing_api_key: Optional[str] = Field(default=None, validation_alias="COMPAREPOWER_API_KEY")
    pricing_timeout_seconds: float = Field(default=10.0)
    pricing_cache_ttl_seconds: int = Field(default=3600)
    pricing_cache_max_entries: int = Field(default=100)

    # ZIP resolution
    geocoder_timeout_seconds: float = Field(default=10.0)
    geocoder_cache_ttl_seconds: int = Field(default=86400)
    zip_result_cache_ttl_seconds: int = Field(default=21600)

    # SQL plan cache
    plan_cache_ttl_hours: int = Field(default=1)
    api_log_retention_days: int = Field(default=30)

    # Request guards
    idempotency_ttl_seconds: int = Field(default=3600)
    rate_limit_cleanup_seconds: int = Field(default=60)

    # Data files
    data_dir: str = Field(default=str(PACKAGE_DIR / "data"))

    # Application Configuration
    app_name: str = "Texas Power Pricing API"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)

    def get_api_keys(self) -> List[str]:
        """Parse comma-separated API keys"""
        return [key.strip() for key in self.api_keys_str.split(",") if key.strip()]

    @property
    def zip_mappings_path(self) -> Path:
        return Path(self.data_dir) / "texas_zip_mappings.json"

    @property
    def generated_plans_dir(self) -> Path:
        return Path(self.data_dir) / "generated"


# Global settings instance
settings = Settings()
