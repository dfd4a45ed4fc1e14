"""SDK configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SDK settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DROPBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App identity
    app_key: str = Field(default="")
    bundle_id: str = Field(default="")

    # OAuth2
    auth_host: str = Field(default="www.dropbox.com")

    # Babel hosts
    api_host: str = Field(default="https://api.dropboxapi.com/2")
    content_host: str = Field(default="https://content.dropboxapi.com/2")
    notify_host: str = Field(default="https://notify.dropboxapi.com/2")

    # Token storage
    token_backend: Literal["keyring", "file", "memory"] = Field(default="keyring")
    keychain_service_suffix: str = Field(default="dropbox.authv2")
    token_file: str = Field(default="~/.dropbox-babel/tokens.enc")
    token_encryption_key: str | None = Field(default=None)

    # HTTP
    http_timeout_seconds: float = Field(default=60.0)
    user_agent: str = Field(default="OfficialDropboxPythonBabelSDK/0.1.0")

    # TLS trust: a PEM bundle replaces the default anchors when set
    ca_bundle: str | None = Field(default=None)
    crl_file: str | None = Field(default=None)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    @property
    def base_hosts(self) -> dict[str, str]:
        """Babel host name -> base URL."""
        return {
            "meta": self.api_host,
            "content": self.content_host,
            "notify": self.notify_host,
        }

    @property
    def keychain_service(self) -> str:
        """Service label all stored credentials are namespaced under."""
        return f"{self.bundle_id}.{self.keychain_service_suffix}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
