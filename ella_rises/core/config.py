from functools import lru_cache
from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "ella-rises"
    environment: str = "dev"
    database_url: str | None = None
    db_host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("ER_DB_HOST", "RDS_HOSTNAME", "RDS_HOST", "DB_HOST"),
    )
    db_port: int = Field(default=5432, validation_alias=AliasChoices("ER_DB_PORT", "RDS_PORT", "DB_PORT"))
    db_user: str = Field(
        default="postgres",
        validation_alias=AliasChoices("ER_DB_USER", "RDS_USERNAME", "RDS_USER", "DB_USER"),
    )
    db_password: str = Field(default="", validation_alias=AliasChoices("ER_DB_PASSWORD", "RDS_PASSWORD", "DB_PASSWORD"))
    db_name: str = Field(
        default="ellarising",
        validation_alias=AliasChoices("ER_DB_NAME", "RDS_DB_NAME", "RDS_DATABASE", "DB_DATABASE"),
    )
    rds_hostname: str | None = Field(default=None, validation_alias=AliasChoices("RDS_HOSTNAME", "RDS_HOST"))
    db_ssl: bool | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    session_secret: str = "ella-rises-dev-secret"
    session_cookie: str = "ella_rises_session"
    session_max_age_seconds: int = 60 * 60 * 8
    password_bcrypt_rounds: int = 10
    upcoming_events_limit: int = 15
    not_found_events_limit: int = 3
    otel_enabled: bool = True
    otel_service_name: str = "ella-rises"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="ER_", extra="ignore", populate_by_name=True)

    @property
    def ssl_required(self) -> bool:
        # Managed (RDS) hosts always use TLS; local databases opt in explicitly.
        if self.db_ssl is not None:
            return self.db_ssl
        return bool(self.rds_hostname)

    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        credentials = quote(self.db_user, safe="")
        if self.db_password:
            credentials = f"{credentials}:{quote(self.db_password, safe='')}"
        return f"postgresql://{credentials}@{self.db_host}:{self.db_port}/{quote(self.db_name, safe='')}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
