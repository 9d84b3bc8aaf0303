# app/core/config.py
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ALLOWED_ENVS = {"dev", "prod", "test"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # 기본 앱 설정
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_allow_origins: str = Field("*", alias="CORS_ALLOW_ORIGINS")

    # DB
    database_url: str = Field("sqlite:///./tasks.db", alias="DATABASE_URL")
    database_driver: str = Field("psycopg2", alias="DATABASE_DRIVER")
    db_sslmode: Optional[str] = Field(None, alias="DB_SSLMODE")
    auto_create_tables: bool = Field(True, alias="AUTO_CREATE_TABLES")

    # Query
    task_default_limit: int = Field(100, alias="TASK_DEFAULT_LIMIT")

    @field_validator("app_env")
    @classmethod
    def _check_env(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in _ALLOWED_ENVS:
            allowed = "|".join(sorted(_ALLOWED_ENVS))
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
