"""
Connection settings for MySQL-backed tables.

Values come from environment variables prefixed ``DBTABLE_`` (for example
``DBTABLE_HOST``) or a ``.env`` file, falling back to the local defaults of a
development server.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DbConfig(BaseSettings):
    # required
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = "test"

    # optional
    connection_limit: int = Field(20, ge=1)
    queue_limit: int = Field(10, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="DBTABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def uri(self) -> str:
        return f"mysql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    @property
    def safe_uri(self) -> str:
        """The URI with the password masked, for logs."""
        password = "***" if self.password else ""
        return f"mysql://{self.user}:{password}@{self.host}:{self.port}/{self.database}"


@lru_cache(maxsize=1)
def get_db_config() -> DbConfig:
    """
    Retrieve a cached instance of DbConfig to avoid repeated env parsing.
    """
    return DbConfig()


__all__ = ["DbConfig", "get_db_config"]
