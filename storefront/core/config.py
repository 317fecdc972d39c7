from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKEN_SIGNING_SECRET = "storefront-dev-token-secret-change-me"
DEFAULT_GATEWAY_KEY_ID = "rzp_test_storefront"
DEFAULT_GATEWAY_KEY_SECRET = "storefront-dev-gateway-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SF_", extra="ignore")

    app_name: str = "Storefront Fulfillment"
    env: str = "dev"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    database_url: str = "sqlite+pysqlite:///./storefront.db"

    auth_enabled: bool = True
    token_signing_secret: str = DEFAULT_TOKEN_SIGNING_SECRET
    access_token_ttl_seconds: int = 3600

    # Payment gateway: fake | http
    gateway_mode: str = "fake"
    gateway_base_url: str = "https://api.razorpay.com/v1"
    gateway_key_id: str = DEFAULT_GATEWAY_KEY_ID
    gateway_key_secret: str = Field(
        default=DEFAULT_GATEWAY_KEY_SECRET,
        description="Shared secret used for gateway basic auth and callback HMAC",
    )
    gateway_timeout_seconds: float = 10.0
    currency: str = "INR"

    # Read cache: memory | redis | none
    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_key_prefix: str = "sf:"

    order_number_max_attempts: int = 5
    reconciliation_dir: Path = Path("/tmp/storefront/reconciliation")

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return

        insecure_items: list[str] = []
        if self.token_signing_secret == DEFAULT_TOKEN_SIGNING_SECRET:
            insecure_items.append("SF_TOKEN_SIGNING_SECRET")
        if self.gateway_key_secret == DEFAULT_GATEWAY_KEY_SECRET:
            insecure_items.append("SF_GATEWAY_KEY_SECRET")

        if insecure_items:
            raise ValueError(
                "insecure default secrets are not allowed outside dev mode; set env vars: "
                + ", ".join(sorted(insecure_items))
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
