from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "SharpCRM Access API"
    app_version: str = "0.1.0"
    app_env: str = "local"
    app_debug: bool = True
    api_port: int = 8000
    database_url: str = "sqlite+aiosqlite:///./sharpcrm.db"
    store_backend: str = "memory"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_service_name: str = "sharpcrm-access"
    otel_exporter_endpoint: str | None = None
    otel_console_exporter: bool = False
    authz_default_allow: bool = True
    hierarchy_transitive: bool = False
    hierarchy_max_depth: int = 10
    stats_recent_days: int = 30

    users_table_name: str = "SharpCRM-Users-development"
    deals_table_name: str = "SharpCRM-Deals-development"
    products_table_name: str = "SharpCRM-Products-development"
    tasks_table_name: str = "SharpCRM-Tasks-development"
    contacts_table_name: str = "SharpCRM-Contacts-development"
    dealers_table_name: str = "SharpCRM-Dealers-development"
    subsidiaries_table_name: str = "SharpCRM-Subsidiaries-development"
    leads_table_name: str = "SharpCRM-Leads-development"
    quotes_table_name: str = "SharpCRM-Quotes-development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
