"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator


class BookingConfig(BaseModel):
    """Booking rules for the public wizard."""
    max_cart_items: int = 3
    booking_horizon_months: int = 3
    request_timeout_seconds: float = 10.0

    @field_validator("max_cart_items", "booking_horizon_months")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure limits are positive."""
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout_seconds must be greater than zero")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    supabase_url: str
    supabase_key: str = ""  # anon key
    service_role_key: str = ""  # Optional: keyring or env var preferred
    timezone: str = "America/Sao_Paulo"
    booking: BookingConfig = Field(default_factory=BookingConfig)
    mock_data_file: Optional[Path] = None

    @field_validator("supabase_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Require an http(s) URL and drop the trailing slash."""
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"supabase_url must be an http(s) URL, got '{value}'")
        return value.rstrip("/")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
