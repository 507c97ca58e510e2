"""Typed configuration models with Pydantic validation."""

from __future__ import annotations

from typing import Literal
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Log level"
    )
    format: Literal["json", "text"] = Field(default="text", description="Log output format")


class MongoDbSettings(BaseModel):
    """MongoDB endpoint and collection settings."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="localhost", min_length=1, description="MongoDB host")
    port: int = Field(default=27017, ge=1, le=65535, description="MongoDB port")
    database: str = Field(default="plp_bookstore", min_length=1, description="Database name")
    collection: str = Field(default="books", min_length=1, description="Book collection name")
    username: str | None = Field(default=None, min_length=1, description="Optional user")
    password: SecretStr | None = Field(default=None, description="Optional password")
    uri: SecretStr | None = Field(
        default=None,
        description="Full connection URI; overrides host, port and credentials when set",
    )
    connect_timeout_ms: int = Field(
        default=2000,
        ge=1,
        description="Socket connect timeout in milliseconds",
    )
    server_selection_timeout_ms: int = Field(
        default=2000,
        ge=1,
        description="Server selection timeout in milliseconds",
    )
    query_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Default deadline for a single query or write",
    )
    app_name: str | None = Field(default="bookstore", min_length=1, description="Driver app name")

    @model_validator(mode="after")
    def _check_credentials(self) -> MongoDbSettings:
        if self.password is not None and self.username is None:
            raise ValueError("password requires username")
        return self

    def connection_uri(self) -> str:
        """Return the effective connection URI."""
        if self.uri is not None:
            return self.uri.get_secret_value()
        credentials = ""
        if self.username is not None:
            credentials = quote_plus(self.username)
            if self.password is not None:
                credentials += ":" + quote_plus(self.password.get_secret_value())
            credentials += "@"
        return f"mongodb://{credentials}{self.host}:{self.port}"


class AppSettings(BaseModel):
    """Root application settings."""

    model_config = ConfigDict(frozen=True)

    service_name: str = Field(default="bookstore", min_length=1, description="Service name")
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    mongodb: MongoDbSettings = Field(default_factory=MongoDbSettings)
