from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from curator.engine.errors import ConfigError


class Settings(BaseSettings):
    environment: str = "dev"
    agent_account: str | None = None
    refresh_token: str | None = None
    client_secret: str | None = None
    forced: bool = False
    dry_run: bool = False

    total_budget: float = 1000.0
    top_k: int = 5
    min_age_hours: float = 6.0
    voting_power_threshold: float = 10000.0
    low_follower_threshold: int = 500
    category_table_json: str | None = None
    extra_automated_voters_json: str | None = None

    steem_api_url: str = "https://api.steemit.com"
    steemconnect_host: str = "https://v2.steemconnect.com"
    steemconnect_scopes: str = (
        "vote,comment,comment_delete,comment_options,custom_json,claim_reward_balance,offline"
    )
    request_timeout_seconds: float = 10.0
    inter_call_delay_seconds: float = 3.0
    content_retry_max_attempts: int = 10
    content_retry_backoff_seconds: float = 1.0
    account_retry_max_attempts: int = 1

    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 4
    run_lease_seconds: int = 3600

    run_interval_seconds: float = 3600.0
    run_once: bool = False
    crash_backoff_seconds: float = 30.0
    max_backoff_seconds: float = 900.0
    log_level: str = "INFO"

    comment_tags: str = "utopian-io"
    comment_community: str = "utopian"
    comment_app: str = "utopian/1.0.0"

    otel_enabled: bool = True
    otel_service_name: str = "contribution-curator"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="CURATOR_", extra="ignore")

    def require_credentials(self) -> None:
        missing = [
            name
            for name in ("agent_account", "refresh_token", "client_secret")
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            raise ConfigError(f"missing required settings: {', '.join(f'CURATOR_{m.upper()}' for m in missing)}")


@lru_cache
def get_settings() -> Settings:
    return Settings()
