"""Configuration settings for ksail_oci.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from ksail_oci import __version__


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the KSAIL_OCI_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="KSAIL_OCI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Registry access
    insecure_registry: bool = Field(
        default=True,
        description="Allow plain HTTP and unverified TLS when talking to registries",
    )
    registry_username: str | None = Field(
        default=None,
        description="Username for registry authentication",
    )
    registry_password: SecretStr | None = Field(
        default=None,
        description="Password or token for registry authentication",
    )
    user_agent: str = Field(
        default=f"ksail-oci/{__version__}",
        description="User-Agent header sent to registries",
    )

    # Timeouts (in seconds)
    push_timeout: int = Field(
        default=300,
        ge=1,
        description="Overall timeout for pushing an artifact",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secrets are masked in the output.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
