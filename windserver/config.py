"""Application configuration"""
from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from windserver.models import (
    GFS_DEFAULT_FORECAST_HOURS,
    GFS_LEVELS,
    NOMADS_FILTER_URL,
    ForecastOffset,
    LevelSpec,
    get_level,
    parse_forecast,
)

MAX_ZOOM_CEILING = 10
MAX_WORKERS = 16


def _clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))


class Settings(BaseSettings):
    """Application settings, read once from the environment (or .env)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    static_path: Path = Path("./public")
    cors_origins: str = "*"

    # Storage
    data_path: Path = Path("./public/data/weather")
    temp_path: Path = Path("./temp")

    # Update cycle
    update_schedule: str = "0 3,9,15,21 * * *"  # every 6 hours, 3h after each GFS run
    max_zoom_level: int = 5
    levels: str = ",".join(GFS_LEVELS)
    forecast_hours: str = ",".join(str(h) for h in GFS_DEFAULT_FORECAST_HOURS)
    initial_update_delay_seconds: float = 5.0
    update_lock_timeout_seconds: float = 1800.0

    # Upstream
    nomads_filter_url: str = NOMADS_FILTER_URL
    fetch_timeout_seconds: float = 120.0
    fetch_deadline_seconds: float = 600.0
    fetch_delay_seconds: float = 1.0

    # Conversion / tiling
    converter_path: str = "./grib2json"
    convert_timeout_seconds: float = 300.0
    workers: int = 4

    # Logging
    log_level: str = "info"
    log_file: str | None = None

    @field_validator("max_zoom_level")
    @classmethod
    def _clamp_zoom(cls, value: int) -> int:
        return _clamp(value, 0, MAX_ZOOM_CEILING)

    @field_validator("workers")
    @classmethod
    def _clamp_workers(cls, value: int) -> int:
        return _clamp(value, 1, MAX_WORKERS)

    @field_validator("levels")
    @classmethod
    def _check_levels(cls, value: str) -> str:
        names = [item.strip().lower() for item in value.split(",") if item.strip()]
        if not names:
            raise ValueError("LEVELS cannot be empty")
        for name in names:
            get_level(name)
        return ",".join(dict.fromkeys(names))

    @field_validator("forecast_hours")
    @classmethod
    def _check_forecasts(cls, value: str) -> str:
        items = [item.strip() for item in value.split(",") if item.strip()]
        if not items:
            raise ValueError("FORECAST_HOURS cannot be empty")
        hours = [parse_forecast(item).hours for item in items]
        return ",".join(str(h) for h in dict.fromkeys(hours))

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().lower() or "info"

    @property
    def level_specs(self) -> tuple[LevelSpec, ...]:
        return tuple(get_level(name) for name in self.levels.split(","))

    @property
    def forecast_offsets(self) -> tuple[ForecastOffset, ...]:
        return tuple(parse_forecast(item) for item in self.forecast_hours.split(","))

    @property
    def level_names(self) -> list[str]:
        return [level.name for level in self.level_specs]

    @property
    def forecast_labels(self) -> list[str]:
        return [forecast.label for forecast in self.forecast_offsets]

    @property
    def current_path(self) -> Path:
        return self.data_path / "current"

    @property
    def releases_path(self) -> Path:
        return self.data_path / "releases"

    @property
    def staging_root(self) -> Path:
        return self.data_path / ".staging"

    @property
    def lock_path(self) -> Path:
        return self.data_path / ".update.lock"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
