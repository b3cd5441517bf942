from __future__ import annotations

from datetime import datetime, timezone

from windserver.models import get_level, parse_forecast
from windserver.services.nomads import build_filter_url, describe, describe_matrix

RUN = datetime(2024, 5, 10, 6, tzinfo=timezone.utc)


def test_surface_url_shape() -> None:
    url = build_filter_url(RUN, get_level("surface"), parse_forecast(0))
    assert url == (
        "https://nomads.ncep.noaa.gov/cgi-bin/filter_gfs_0p25.pl"
        "?file=gfs.t06z.pgrb2.0p25.f000"
        "&var_UGRD=on&var_VGRD=on"
        "&lev_10_m_above_ground=on"
        "&dir=%2Fgfs.20240510%2F06%2Fatmos"
    )


def test_forecast_is_always_three_digits() -> None:
    url = build_filter_url(RUN, get_level("500mb"), parse_forecast(6))
    assert "file=gfs.t06z.pgrb2.0p25.f006&" in url
    assert "&lev_500_mb=on&" in url


def test_url_is_pure() -> None:
    level = get_level("300mb")
    forecast = parse_forecast(6)
    assert build_filter_url(RUN, level, forecast) == build_filter_url(RUN, level, forecast)
    assert build_filter_url(RUN, level, forecast, base_url="http://mirror/filter").startswith(
        "http://mirror/filter?file="
    )


def test_descriptor_names() -> None:
    descriptor = describe(RUN, get_level("850mb"), parse_forecast(6))
    assert descriptor.scratch_name == "gfs_850mb_f006.grb2"
    assert descriptor.key == "850mb/f006"
    assert descriptor.url == build_filter_url(RUN, get_level("850mb"), parse_forecast(6))


def test_matrix_is_level_major() -> None:
    levels = (get_level("surface"), get_level("500mb"))
    forecasts = (parse_forecast(0), parse_forecast(6))
    keys = [d.key for d in describe_matrix(RUN, levels, forecasts)]
    assert keys == ["surface/f000", "surface/f006", "500mb/f000", "500mb/f006"]
