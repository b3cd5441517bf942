"""NOMADS filter CGI locators for GFS U/V wind subsets."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from windserver.models import GFS_PRODUCT, NOMADS_FILTER_URL, ForecastOffset, LevelSpec

WIND_VARIABLE_PARAMS = ("var_UGRD=on", "var_VGRD=on")


@dataclass(frozen=True)
class SourceFileDescriptor:
    run_time: datetime
    level: LevelSpec
    forecast: ForecastOffset
    url: str

    @property
    def scratch_name(self) -> str:
        return f"gfs_{self.level.name}_{self.forecast.label}.grb2"

    @property
    def key(self) -> str:
        return f"{self.level.name}/{self.forecast.label}"


def build_filter_url(
    run_time: datetime,
    level: LevelSpec,
    forecast: ForecastOffset,
    *,
    base_url: str = NOMADS_FILTER_URL,
) -> str:
    date_str = run_time.strftime("%Y%m%d")
    hour_str = run_time.strftime("%H")
    params = [
        f"file=gfs.t{hour_str}z.{GFS_PRODUCT}.f{forecast.code}",
        *WIND_VARIABLE_PARAMS,
        level.selector,
        f"dir=%2Fgfs.{date_str}%2F{hour_str}%2Fatmos",
    ]
    return base_url + "?" + "&".join(params)


def describe(
    run_time: datetime,
    level: LevelSpec,
    forecast: ForecastOffset,
    *,
    base_url: str = NOMADS_FILTER_URL,
) -> SourceFileDescriptor:
    url = build_filter_url(run_time, level, forecast, base_url=base_url)
    return SourceFileDescriptor(run_time=run_time, level=level, forecast=forecast, url=url)


def describe_matrix(
    run_time: datetime,
    levels: tuple[LevelSpec, ...],
    forecasts: tuple[ForecastOffset, ...],
    *,
    base_url: str = NOMADS_FILTER_URL,
) -> list[SourceFileDescriptor]:
    return [
        describe(run_time, level, forecast, base_url=base_url)
        for level in levels
        for forecast in forecasts
    ]
