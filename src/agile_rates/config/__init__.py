"""Configuration management for Agile Rates."""

from agile_rates.config.schema import AppConfig
from agile_rates.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
