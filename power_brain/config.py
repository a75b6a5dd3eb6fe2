from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from .models import GateConfig


class ConfigurationError(RuntimeError):
    pass


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # development|production
    ENV: str = "development"

    # Make sends: x-brain-secret: <BRAIN_SECRET>
    BRAIN_SECRET: Optional[str] = None

    AIRTABLE_API_KEY: Optional[str] = None
    AIRTABLE_BASE_ID: Optional[str] = None
    AIRTABLE_TABLE_NAME: str = "Leads"
    AIRTABLE_API_URL: str = "https://api.airtable.com/v0"
    AIRTABLE_TIMEOUT_MS: int = 12000
    AIRTABLE_MAX_RETRIES: int = 2
    AIRTABLE_BACKOFF_S: float = 0.5

    GATE_CALIFORNIA_ONLY: bool = False
    GATE_KERN_COUNTY_ONLY: bool = False

    PORT: int = 3000

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in ("production", "prod")

    def gate_config(self) -> GateConfig:
        return GateConfig(state_gate=self.GATE_CALIFORNIA_ONLY, county_gate=self.GATE_KERN_COUNTY_ONLY)

    def require_airtable(self) -> None:
        for name in ("AIRTABLE_API_KEY", "AIRTABLE_BASE_ID", "AIRTABLE_TABLE_NAME"):
            if not getattr(self, name):
                raise ConfigurationError(f"Missing env var: {name}")


@lru_cache
def get_settings() -> Settings:
    return Settings()
