"""
Configuration for the finance tracker API.

Settings are read once from the environment (and a local .env file) and
cached. In production the database credentials come from a JSON secret
document instead of DATABASE_URL.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


DEV_JWT_SECRET = "CHANGE_THIS_TO_A_LONG_RANDOM_SECRET"
SECRET_STORE_ENVIRONMENTS = ("production", "aws")
REQUIRED_DB_SECRET_FIELDS = ("host", "username", "password", "dbname")


class ConfigurationError(RuntimeError):
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    environment: str = Field(
        default="development",
        description="development, test, production or aws"
    )
    database_url: str = Field(
        default="sqlite:///./finance.db",
        description="SQLAlchemy URL used outside the secret-store environments"
    )
    db_driver: str = Field(
        default="mysql+pymysql",
        description="SQLAlchemy driver name for URLs built from the secret document"
    )
    secrets_file: Optional[str] = Field(
        default=None,
        description="Path to the JSON secret document with the database credentials"
    )

    jwt_secret: str = Field(default=DEV_JWT_SECRET)
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24, ge=1)

    cors_origins: str = Field(
        default="http://localhost:3001",
        description="Comma-separated list of allowed frontend origins"
    )

    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def uses_secret_store(self) -> bool:
        return self.environment in SECRET_STORE_ENVIRONMENTS

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def resolve_database_url(self) -> str:
        """Return the URL the engine should connect to."""
        if not self.uses_secret_store:
            return self.database_url
        if not self.secrets_file:
            raise ConfigurationError(f"SECRETS_FILE is required in the {self.environment} environment")
        return database_url_from_secret(load_secret_document(self.secrets_file), self.db_driver)


def load_secret_document(path: str) -> dict:
    secret_path = Path(path)
    if not secret_path.exists():
        raise ConfigurationError(f"Secret document not found at {path}")
    try:
        return json.loads(secret_path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ConfigurationError(f"Secret document at {path} is not valid JSON") from exc


def database_url_from_secret(secret: dict, driver: str) -> str:
    missing = [name for name in REQUIRED_DB_SECRET_FIELDS if not secret.get(name)]
    if missing:
        raise ConfigurationError("Missing required database secret fields: " + ", ".join(missing))

    url = URL.create(
        drivername=driver,
        username=secret["username"],
        password=secret["password"],
        host=secret["host"],
        port=int(secret.get("port") or 3306),
        database=secret["dbname"],
    )
    return url.render_as_string(hide_password=False)


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload.
    """
    settings = Settings()
    if not settings.is_development and settings.environment != "test" and settings.jwt_secret == DEV_JWT_SECRET:
        raise ConfigurationError("JWT_SECRET must be set outside development")
    return settings
