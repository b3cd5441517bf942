from __future__ import annotations

import re

from .base import ForecastOffset, LevelSpec

NOMADS_FILTER_URL = "https://nomads.ncep.noaa.gov/cgi-bin/filter_gfs_0p25.pl"
GFS_PRODUCT = "pgrb2.0p25"

# GFS runs at 00/06/12/18 UTC; a run is usually fetchable ~3h later.
GFS_CYCLE_HOURS: tuple[int, ...] = (0, 6, 12, 18)
GFS_AVAILABILITY_LAG_HOURS = 3

# grib2json parameterNumber values (category 2, momentum).
WIND_U_PARAMETER = 2
WIND_V_PARAMETER = 3
WIND_PARAMETERS: tuple[int, ...] = (WIND_U_PARAMETER, WIND_V_PARAMETER)

GFS_LEVELS: dict[str, LevelSpec] = {
    "surface": LevelSpec(name="surface", altitude="Surface", selector="lev_10_m_above_ground=on"),
    "850mb": LevelSpec(name="850mb", altitude="~5,000ft", selector="lev_850_mb=on"),
    "700mb": LevelSpec(name="700mb", altitude="~10,000ft", selector="lev_700_mb=on"),
    "500mb": LevelSpec(name="500mb", altitude="~18,000ft", selector="lev_500_mb=on"),
    "300mb": LevelSpec(name="300mb", altitude="~33,000ft", selector="lev_300_mb=on"),
    "150mb": LevelSpec(name="150mb", altitude="FL440", selector="lev_150_mb=on"),
}

GFS_DEFAULT_FORECAST_HOURS: tuple[int, ...] = (0, 6)

_FORECAST_RE = re.compile(r"^f?(\d{1,3})$")


def get_level(name: str) -> LevelSpec:
    level = GFS_LEVELS.get(name.strip().lower())
    if level is None:
        valid = ", ".join(GFS_LEVELS)
        raise ValueError(f"Unknown level: {name!r} (valid: {valid})")
    return level


def parse_forecast(value: str | int) -> ForecastOffset:
    if isinstance(value, int):
        return ForecastOffset(hours=value)
    match = _FORECAST_RE.match(value.strip().lower())
    if match is None:
        raise ValueError(f"Invalid forecast offset: {value!r}")
    return ForecastOffset(hours=int(match.group(1)))
