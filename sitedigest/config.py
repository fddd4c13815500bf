"""Pydantic Settings — loads configuration from environment variables."""

from functools import lru_cache

from pydantic import PositiveInt
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_prefix": "SITEDIGEST_",
        "extra": "ignore",
        "protected_namespaces": ("settings_",),
    }

    model_api_key: str = ""
    log_level: str = "INFO"

    user_agent: str = "SiteDigest Bot"
    crawl_delay_ms: int = 1000
    crawl_concurrency: PositiveInt = 1
    crawl_redirect_limit: int = 3
    crawl_retries: int = 1
    crawl_depth: int = 0
    crawl_subdomains: bool = False
    respect_robots_txt: bool = True
    request_timeout: float = 30.0
    event_channel_capacity: PositiveInt = 888
    store_error_policy: str = "abort"

    summarize_batch_size: PositiveInt = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()
