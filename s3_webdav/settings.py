from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Configuration for the backing S3 bucket."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore"
    )

    endpoint: str | None = Field(
        default=None,
        validation_alias="S3_WEBDAV_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_WEBDAV_ACCESS_KEY",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_WEBDAV_SECRET_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_WEBDAV_SESSION_TOKEN",
            "AWS_SESSION_TOKEN",
        ),
    )
    region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices(
            "S3_WEBDAV_REGION",
            "AWS_REGION",
        ),
    )
    bucket: str = Field(
        default="webdav",
        validation_alias="S3_WEBDAV_BUCKET",
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="path",
        validation_alias="S3_WEBDAV_ADDRESSING_STYLE",
    )
    bucket_location: str = Field(
        default="us-east-1",
        validation_alias="S3_WEBDAV_BUCKET_LOCATION",
    )
    create_bucket: bool = Field(
        default=False,
        validation_alias="S3_WEBDAV_CREATE_BUCKET",
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        validation_alias="S3_WEBDAV_PAGE_SIZE",
    )
    list_metadata: bool = Field(
        default=True,
        validation_alias="S3_WEBDAV_LIST_METADATA",
    )


class ServerSettings(BaseSettings):
    """Configuration for the ASGI application itself."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias="S3_WEBDAV_LOG_LEVEL",
    )
    cors_origins: str = Field(
        default="*",
        validation_alias="S3_WEBDAV_CORS_ORIGINS",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def allowed_origins(self) -> list[str]:
        """Split the comma separated origin list."""
        origins = (origin.strip() for origin in self.cors_origins.split(","))
        return [origin for origin in origins if origin]


def load_store_settings_from_env() -> StoreSettings:
    """Load bucket settings from environment variables.

    Returns:
        StoreSettings instance populated from environment variables.
    """
    return StoreSettings()


def load_server_settings_from_env() -> ServerSettings:
    """Load application settings from environment variables.

    Returns:
        ServerSettings instance populated from environment variables.
    """
    return ServerSettings()
