from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(populate_by_name=True)

    secret_key: str = Field(..., alias="APP_SECRET_KEY")
    cookie_secure: bool = Field(False, alias="APP_COOKIE_SECURE")
    session_max_age: int = Field(8 * 60 * 60, alias="SESSION_MAX_AGE", gt=0)

    config_path: str = Field("data/domains.json", alias="LDAP_BRIDGE_CONFIG")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_dir: Optional[str] = Field(None, alias="LOG_DIR")
    log_retention_days: int = Field(30, alias="LOG_RETENTION_DAYS")


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
