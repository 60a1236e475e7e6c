"""Configuration loading, saving and validation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from agile_rates.config.schema import AppConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads config from YAML defaults plus user overrides."""

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        """Load configuration from defaults + user overrides."""
        defaults = self._load_yaml(self._defaults_path)
        overrides = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(defaults, overrides)
        self._config = AppConfig.model_validate(merged)
        logger.info("Configuration loaded successfully")
        return self._config

    def to_json(self) -> str:
        return self.config.model_dump_json(indent=2)

    def save_user_config(self, updates: dict[str, Any]) -> AppConfig:
        """Apply updates to user config file and reload."""
        current = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(current, updates)
        with open(self._user_path, "w") as f:
            yaml.dump(merged, f, default_flow_style=False, sort_keys=False)
        return self.load()

    def save_region(self, region: str) -> AppConfig:
        """Persist the selected region as the user's default."""
        return self.save_user_config({"dashboard": {"default_region": region}})

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
