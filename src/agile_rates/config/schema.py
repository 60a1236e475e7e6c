"""Pydantic configuration models for all system settings."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from agile_rates.regions import parse_region


class ApiConfig(BaseModel):
    base_url: str = "https://api.octopus.energy/v1"
    product_code: str = "AGILE-24-10-01"
    timeout_seconds: float = 30.0
    page_size: int = 48  # 48 half-hourly periods per day
    max_attempts: int = Field(3, ge=1)
    retry_base_delay_seconds: float = Field(1.0, ge=0.0)


class CacheConfig(BaseModel):
    backend: str = "memory"  # memory, sqlite
    path: str = "agile_rates.db"
    namespace: str = "octopus_rates"
    ttl_seconds: int = Field(3600, ge=0)
    max_age_days: int = Field(7, ge=1)
    max_bytes: int = 0  # 0 = unbounded (memory backend only)

    @field_validator("backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in ("memory", "sqlite"):
            raise ValueError(f"Unknown cache backend: {value}")
        return value


class DevicePreset(BaseModel):
    name: str
    duration_hours: float = Field(gt=0.0)


def _default_presets() -> dict[str, DevicePreset]:
    return {
        "dishwasher": DevicePreset(name="Dishwasher", duration_hours=2.0),
        "washing_machine": DevicePreset(name="Washing Machine", duration_hours=1.5),
        "tumble_dryer": DevicePreset(name="Tumble Dryer", duration_hours=2.5),
        "ev_charging": DevicePreset(name="EV Charging", duration_hours=8.0),
        "immersion_heater": DevicePreset(name="Immersion Heater", duration_hours=2.0),
        "heat_pump": DevicePreset(name="Heat Pump", duration_hours=4.0),
    }


class AnalysisConfig(BaseModel):
    cheap_fraction: float = Field(0.3, ge=0.0, le=1.0)
    expensive_fraction: float = Field(0.7, ge=0.0, le=1.0)
    cheap_margin_pence: float = Field(5.0, ge=0.0)  # 0.05 GBP above the day's minimum
    ranking_count: int = Field(5, ge=1)
    default_duration_hours: float = Field(1.5, gt=0.0)
    display_timezone: str = "Europe/London"
    device_presets: dict[str, DevicePreset] = Field(default_factory=_default_presets)


class DashboardConfig(BaseModel):
    default_region: str = "C"
    refresh_interval_seconds: int = Field(1800, ge=1)

    @field_validator("default_region")
    @classmethod
    def _check_region(cls, value: str) -> str:
        return parse_region(value).value


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class AppConfig(BaseModel):
    """Root configuration model containing all system settings."""

    api: ApiConfig = ApiConfig()
    cache: CacheConfig = CacheConfig()
    analysis: AnalysisConfig = AnalysisConfig()
    dashboard: DashboardConfig = DashboardConfig()
    logging: LoggingConfig = LoggingConfig()
