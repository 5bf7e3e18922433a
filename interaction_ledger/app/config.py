"""Config file."""
from typing import Literal
from urllib.parse import quote_plus

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # PROJECT
    project_name: str = Field(..., alias="PROJECT_NAME")

    # DATABASE
    postgres_user: str = Field(..., alias="POSTGRES_USER")
    postgres_password: SecretStr = Field(..., alias="POSTGRES_PASSWORD")
    postgres_server: str = Field(..., alias="POSTGRES_SERVER")
    postgres_port: int = Field(..., alias="POSTGRES_PORT")
    postgres_db: str = Field(..., alias="POSTGRES_DB")
    database_url: str | None = Field(None, alias="DATABASE_URL")
    sync_database_url: str | None = Field(None, alias="SYNC_DATABASE_URL")

    # LEDGER
    conflict_policy: Literal["reject", "accept_trusted"] = Field(
        "reject", alias="LEDGER_CONFLICT_POLICY"
    )
    # comma separated in the environment, empty = any source may correct
    trusted_sources: str = Field("", alias="LEDGER_TRUSTED_SOURCES")

    storage_retry_attempts: int = Field(3, alias="LEDGER_STORAGE_RETRY_ATTEMPTS", ge=1)
    storage_retry_base_delay: float = Field(0.05, alias="LEDGER_STORAGE_RETRY_BASE_DELAY", ge=0)
    storage_retry_max_delay: float = Field(1.0, alias="LEDGER_STORAGE_RETRY_MAX_DELAY", ge=0)

    ingest_batch_size: int = Field(1_000, alias="LEDGER_INGEST_BATCH_SIZE", gt=0)

    query_default_limit: int = Field(100, alias="LEDGER_QUERY_DEFAULT_LIMIT", gt=0)
    query_max_limit: int = Field(1_000, alias="LEDGER_QUERY_MAX_LIMIT", gt=0)

    @field_validator("trusted_sources")
    @classmethod
    def strip_trusted_sources(cls, value: str) -> str:
        return ",".join(s.strip() for s in value.split(",") if s.strip())

    @model_validator(mode="after")
    def assemble_db_urls(self) -> "Settings":
        if self.query_default_limit > self.query_max_limit:
            raise ValueError("LEDGER_QUERY_DEFAULT_LIMIT must be <= LEDGER_QUERY_MAX_LIMIT")

        if not self.database_url:
            user = quote_plus(self.postgres_user)
            password = quote_plus(self.postgres_password.get_secret_value())
            host = self.postgres_server
            port = self.postgres_port
            db = self.postgres_db

            self.database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

        if not self.sync_database_url:
            user = quote_plus(self.postgres_user)
            password = quote_plus(self.postgres_password.get_secret_value())
            host = self.postgres_server
            port = self.postgres_port
            db = self.postgres_db

            self.sync_database_url = f"postgresql://{user}:{password}@{host}:{port}/{db}"

        return self

    @property
    def trusted_source_names(self) -> frozenset[str]:
        return frozenset(s for s in self.trusted_sources.split(",") if s)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


settings: Settings = Settings()
