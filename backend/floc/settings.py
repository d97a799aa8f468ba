"""Settings for the Floc backend with observability configuration."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    # WATCH/MULTI retries before a write gives up with StoreContention
    store_max_retries: int = _env_field(8, "STORE_MAX_RETRIES")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("floc-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    cors_allow_origins: Any = _env_field((), "CORS_ALLOW_ORIGINS")

    # Connection graph
    connection_write_mode: Literal["transaction", "two_phase"] = _env_field(
        "transaction", "CONNECTION_WRITE_MODE"
    )
    self_heal_edges: bool = _env_field(True, "SELF_HEAL_EDGES")

    # Payments
    default_currency: str = _env_field("INR", "DEFAULT_CURRENCY")
    payment_key_id: str = _env_field("", "PAYMENT_KEY_ID", "RAZORPAY_KEY_ID")
    payment_key_secret: str = _env_field("", "PAYMENT_KEY_SECRET", "RAZORPAY_KEY_SECRET")
    payment_order_ttl_seconds: int = _env_field(3600, "PAYMENT_ORDER_TTL_SECONDS")
    checkout_brand_name: str = _env_field("Floc", "CHECKOUT_BRAND_NAME")

    # Connections feed
    feed_page_size: int = _env_field(20, "FEED_PAGE_SIZE")
    feed_page_size_max: int = _env_field(100, "FEED_PAGE_SIZE_MAX")

    # Background sweeps; 0 disables
    connection_sweep_interval_seconds: int = _env_field(300, "CONNECTION_SWEEP_INTERVAL_SECONDS")
    payment_sweep_interval_seconds: int = _env_field(60, "PAYMENT_SWEEP_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("obs_log_level", mode="before")
    def _normalise_level(cls, value):  # type: ignore[override]
        return str(value or "INFO").upper()

    @field_validator("cors_allow_origins", mode="before")
    def _split_cors(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple, set)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        return ()

    @field_validator("default_currency", mode="before")
    def _normalise_currency(cls, value):  # type: ignore[override]
        return str(value or "INR").strip().upper()

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development", "test")


settings = Settings()
