# =============================================================================
# File: telemetry_service/config/service_config.py
# Description: Process-level settings for the API and worker entry points
# =============================================================================

from functools import lru_cache

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from telemetry_service.common.base.base_config import BaseConfig


class ServiceConfig(BaseConfig):
    model_config = SettingsConfigDict(**{
        **BaseConfig.model_config,
        "env_prefix": "TELEMETRY_",
    })

    environment: str = Field(default="development")
    service_name: str = Field(default="telemetry")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # Run the projection consumer inside the API process
    embedded_consumer: bool = Field(default=True)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_service_config() -> ServiceConfig:
    return ServiceConfig()


def reset_service_config() -> None:
    """Reset settings singleton (for testing)."""
    get_service_config.cache_clear()
