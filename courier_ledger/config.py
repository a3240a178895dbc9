from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .store import DataStore, InMemoryStore, SqlStore


class Settings(BaseSettings):
    app_name: str = "Courier Ledger API"
    version: str = "1.0.0"

    # Unset means an in-memory store seeded with demo couriers
    database_url: Optional[str] = None
    connect_timeout_seconds: int = 10
    create_tables: bool = False
    echo_sql: bool = False

    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_prefix="COURIER_LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        return value.upper() if isinstance(value, str) else value


@lru_cache
def get_settings() -> Settings:
    return Settings()


def build_store(settings: Settings) -> DataStore:
    if not settings.database_url:
        return InMemoryStore(seed=True)

    store = SqlStore.from_url(
        settings.database_url,
        connect_timeout=settings.connect_timeout_seconds,
        echo=settings.echo_sql,
    )
    if settings.create_tables:
        store.create_tables()
    return store
