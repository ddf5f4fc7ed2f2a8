"""
Stackwork Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Find project root (where .env file is located)
PROJECT_ROOT = Path(__file__).parent.parent


class StackworkSettings(BaseSettings):
    """
    Stackwork configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="SW_",  # All Stackwork env vars must start with SW_
    )

    # Scheduling Configuration
    concurrency_limit: int | None = Field(
        default=None,
        ge=1,
        description="Maximum concurrent provisioning calls, unbounded if unset (env: SW_CONCURRENCY_LIMIT)",
    )

    check_existing: bool = Field(
        default=False,
        description="Adopt resources the backend already knows instead of provisioning them (env: SW_CHECK_EXISTING)",
    )

    # Program Configuration
    stack_name: str = Field(
        default="dev",
        description="Name of the stack being provisioned (env: SW_STACK_NAME)",
    )

    program_file: str = Field(
        default="main.py",
        description="Program file exposing build(stack) (env: SW_PROGRAM_FILE)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: SW_LOG_LEVEL)",
    )


# Global settings instance
_settings: StackworkSettings | None = None


def get_settings() -> StackworkSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        StackworkSettings instance
    """
    global _settings
    if _settings is None:
        _settings = StackworkSettings()
    return _settings


def reload_settings() -> StackworkSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh StackworkSettings instance
    """
    global _settings
    _settings = StackworkSettings()
    return _settings
