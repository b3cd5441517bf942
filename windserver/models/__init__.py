from .base import ForecastOffset, LevelSpec
from .gfs import (
    GFS_AVAILABILITY_LAG_HOURS,
    GFS_CYCLE_HOURS,
    GFS_DEFAULT_FORECAST_HOURS,
    GFS_LEVELS,
    GFS_PRODUCT,
    NOMADS_FILTER_URL,
    WIND_PARAMETERS,
    WIND_U_PARAMETER,
    WIND_V_PARAMETER,
    get_level,
    parse_forecast,
)

__all__ = [
    "ForecastOffset",
    "LevelSpec",
    "GFS_AVAILABILITY_LAG_HOURS",
    "GFS_CYCLE_HOURS",
    "GFS_DEFAULT_FORECAST_HOURS",
    "GFS_LEVELS",
    "GFS_PRODUCT",
    "NOMADS_FILTER_URL",
    "WIND_PARAMETERS",
    "WIND_U_PARAMETER",
    "WIND_V_PARAMETER",
    "get_level",
    "parse_forecast",
]
