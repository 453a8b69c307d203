from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STRATEGIES = {
    "Second": 5,
    "Minute": 10,
    "Hour": 1000,
    "Day": 2000,
}


class Settings(BaseSettings):
    app_name: str = "RateWarden API"
    redis_url: str = "redis://localhost:6379/0"
    # {strategy id: max count}; "<limit>-<unit>" ids may map to null
    strategies: dict[str, int | None] = Field(default_factory=lambda: dict(DEFAULT_STRATEGIES))
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(env_prefix="RATEWARDEN_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
