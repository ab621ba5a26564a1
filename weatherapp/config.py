"""
Configuration for Weather App backend.

Resolves the OpenWeatherMap API settings and the per-user directory holding
the score database. Precedence, highest first: constructor arguments,
OPENWEATHER_* environment variables, the JSON config file, defaults.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type, Union

from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

logger = logging.getLogger(__name__)

# Configuration constants
DEFAULT_BASE_URL = "http://api.openweathermap.org/data/2.5/weather"
DEFAULT_TIMEOUT = 10  # seconds
API_KEY_PLACEHOLDER = "YOUR_API_KEY_HERE"
APP_DIR_NAME = "weatherapp"
DEFAULT_CONFIG_FILE = "config.json"

# config.json keys -> settings fields
CONFIG_FILE_KEYS = {
    "openWeatherMapApiKey": "api_key",
    "baseUrl": "base_url",
    "timeout": "timeout",
}


class ConfigFileSettingsSource(PydanticBaseSettingsSource):
    """Settings read from the JSON config file; unreadable files are logged and skipped."""

    def __init__(self, settings_cls: Type[BaseSettings], path: Optional[Path]):
        super().__init__(settings_cls)
        self.path = path or default_config_path()
        self._values = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read config file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Config file {self.path} must contain a JSON object")
            return {}
        return {
            field: data[key]
            for key, field in CONFIG_FILE_KEYS.items()
            if data.get(key) not in (None, "")
        }

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return dict(self._values)


class ApiConfig(BaseSettings):
    """Read-only API settings consumed by the weather client."""
    model_config = SettingsConfigDict(env_prefix="OPENWEATHER_", frozen=True, extra="ignore")

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    config_file: Optional[Path] = Field(default=None, exclude=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        init_kwargs = getattr(init_settings, "init_kwargs", {}) or {}
        path = init_kwargs.get("config_file")
        file_settings = ConfigFileSettingsSource(settings_cls, Path(path) if path else None)
        return init_settings, env_settings, file_settings

    def is_configured(self) -> bool:
        key = (self.api_key or "").strip()
        return bool(key) and key != API_KEY_PLACEHOLDER

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "ApiConfig":
        """
        Build the configuration from the environment and the JSON config file.

        Raises:
            pydantic.ValidationError: a setting has the wrong type (e.g. a non-numeric timeout)
        """
        config = cls(config_file=Path(path) if path else None)
        if not config.is_configured():
            logger.warning("OpenWeatherMap API key not configured")
        return config


def user_data_dir() -> Path:
    """Per-user application data directory."""
    override = os.getenv("WEATHERAPP_DATA_DIR")
    if override:
        return Path(override)
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def default_config_path() -> Path:
    return Path(os.getenv("WEATHERAPP_CONFIG", str(user_data_dir() / DEFAULT_CONFIG_FILE)))
