"""Library configuration using Pydantic Settings."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vwbl.domain.types import UploadContentType, UploadMetadataType

DEFAULT_VWBL_NETWORK_URL = "https://dev.vwbl.network"
DEFAULT_SIGN_MESSAGE = "Hello VWBL"
DEFAULT_S3_ACCESS_KEY = "minio"
DEFAULT_S3_SECRET_KEY = "minio123"
DEFAULT_IPFS_ENDPOINT = "https://api.nft.storage/upload"
DEFAULT_IPFS_GATEWAY_URL = "https://nftstorage.link/ipfs"
SECRET_FILE_ENV_VARS = (
    "VWBL_S3_ACCESS_KEY",
    "VWBL_S3_SECRET_KEY",
    "VWBL_IPFS_API_KEY",
)


def _load_secret_file_env_vars() -> None:
    """Allow secrets to be sourced from *_FILE env vars (Docker secrets)."""
    for env_var in SECRET_FILE_ENV_VARS:
        file_var = f"{env_var}_FILE"
        file_path = os.getenv(file_var)
        if not file_path:
            continue
        try:
            value = Path(file_path).read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise RuntimeError(f"Failed to read {file_var} at {file_path}") from exc
        if not value:
            raise ValueError(f"{file_var} is empty")
        os.environ[env_var] = value


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VWBL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ----- Application -----
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False

    # ----- VWBL Network (key custody) -----
    vwbl_network_url: str = DEFAULT_VWBL_NETWORK_URL
    contract_address: str = ""
    http_timeout: float | None = Field(
        default=30.0,
        description="Timeout in seconds for HTTP calls. None disables the client timeout.",
    )

    # ----- Signing -----
    # Used when the network cannot serve a challenge. Disable to surface outages instead.
    sign_message_fallback_enabled: bool = True
    default_sign_message: str = DEFAULT_SIGN_MESSAGE

    # ----- Storage -----
    upload_content_type: UploadContentType | None = None
    upload_metadata_type: UploadMetadataType | None = None

    # ----- S3 Storage -----
    s3_bucket: str = ""
    s3_region: str = "ap-northeast-1"
    s3_endpoint: str | None = None
    s3_access_key: str = DEFAULT_S3_ACCESS_KEY
    s3_secret_key: str = DEFAULT_S3_SECRET_KEY
    s3_public_url: str = ""

    # ----- IPFS -----
    ipfs_api_key: str = ""
    ipfs_endpoint: str = DEFAULT_IPFS_ENDPOINT
    ipfs_gateway_url: str = DEFAULT_IPFS_GATEWAY_URL

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def uses_s3(self) -> bool:
        return (
            self.upload_content_type == UploadContentType.S3
            or self.upload_metadata_type == UploadMetadataType.S3
        )

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Ensure secure settings in production environment."""
        if self.is_production:
            if self.app_debug:
                raise ValueError("VWBL_APP_DEBUG must be false in production!")
            if not self.vwbl_network_url.startswith("https://"):
                raise ValueError("VWBL_VWBL_NETWORK_URL must use https in production!")
            if self.uses_s3:
                if self.s3_access_key == DEFAULT_S3_ACCESS_KEY:
                    raise ValueError("VWBL_S3_ACCESS_KEY must be set to a non-default value!")
                if self.s3_secret_key == DEFAULT_S3_SECRET_KEY:
                    raise ValueError("VWBL_S3_SECRET_KEY must be set to a non-default value!")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    _load_secret_file_env_vars()
    return Settings()
