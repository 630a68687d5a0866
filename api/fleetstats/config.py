"""Service configuration via Pydantic Settings.

All settings are configurable via environment variables or .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "Fleet Telemetry"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    # Event store: "sql" (tabular scan), "graphql" (dimensional) or "memory"
    store_backend: str = "sql"
    account_id: str = ""
    api_token: str = ""
    api_base_url: str = "https://api.cloudflare.com/client/v4"
    graphql_url: str = "https://api.cloudflare.com/client/v4/graphql"
    graphql_max_groups: int = 10000  # a full page is reported as truncated
    dataset: str = "fleet_telemetry_events"
    ingest_url: str = ""  # write path relay; writes are skipped when empty

    # Stats query window and deadline (seconds, applies to both queries)
    active_window_days: int = 7
    query_timeout: float = 10.0
    write_timeout: float = 2.0

    # Ingestion
    max_field_length: int = 100
    country_header: str = "cf-ipcountry"

    # Top-K per facet before collapsing into "Other"
    facet_top_k: int = 8
    cpu_model_top_k: int = 12
    cpu_cores_top_k: int = 10

    host: str = "0.0.0.0"
    port: int = 8000

    favicon_url: str = ""  # logo redirect target; /favicon.* is 404 when empty


settings = Settings()
