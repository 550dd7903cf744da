"""
Configuration for the validator bot registry.
"""

import os
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.engine import URL, make_url

# Table names
SUBSCRIPTION_TABLE = "ksm_bot"
WATCHED_VALIDATOR_TABLE = "ksm_bot_validators"
WATCHED_TELEMETRY_TABLE = "ksm_bot_telemetry"
VALIDATOR_SNAPSHOT_TABLE = "bot_validators"

DEFAULT_DRIVER = "postgresql+asyncpg"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///ksm_bot.db"

# Base58 alphabet used by SS58 account addresses
ADDRESS_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
ADDRESS_LENGTH = 47
IDENTITY_SEPARATOR = "/"


class DatabaseConfig(BaseModel):
    """Connection settings, consumed once at startup."""

    driver: str = DEFAULT_DRIVER
    account: Optional[str] = None
    password: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    name: Optional[str] = None
    url_override: Optional[str] = None
    echo: bool = False

    @property
    def url(self) -> URL:
        """
        Build the SQLAlchemy URL.

        An explicit `url_override` wins. Without a host, falls back to the
        local SQLite database.
        """
        if self.url_override:
            return make_url(self.url_override)
        if not self.host:
            return make_url(DEFAULT_DATABASE_URL)
        return URL.create(
            self.driver,
            username=self.account,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.name,
        )


def load_database_config() -> DatabaseConfig:
    """
    Read connection settings from the environment.

    ## Environment Variables
    - `DATABASE_URL`: Full connection URL, overrides the parts below
    - `DB_DRIVER`: SQLAlchemy async driver (default: postgresql+asyncpg)
    - `DB_ACCOUNT`, `DB_PASSWORD`, `DB_HOST`, `DB_PORT`, `DB_NAME`
    - `ECHO_SQL`: Enable SQL query logging (default: false)
    """
    port = os.getenv("DB_PORT")
    return DatabaseConfig(
        driver=os.getenv("DB_DRIVER", DEFAULT_DRIVER),
        account=os.getenv("DB_ACCOUNT"),
        password=os.getenv("DB_PASSWORD"),
        host=os.getenv("DB_HOST"),
        port=int(port) if port else None,
        name=os.getenv("DB_NAME"),
        url_override=os.getenv("DATABASE_URL"),
        echo=os.getenv("ECHO_SQL", "false").lower() == "true",
    )
