from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from windserver.config import Settings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep a developer's .env out of the way.
    monkeypatch.chdir(tmp_path)
    for name in ("MAX_ZOOM_LEVEL", "LEVELS", "FORECAST_HOURS", "WORKERS", "DATA_PATH", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_cover_full_catalog() -> None:
    settings = Settings()

    assert settings.port == 8080
    assert settings.max_zoom_level == 5
    assert settings.update_schedule == "0 3,9,15,21 * * *"
    assert settings.level_names == ["surface", "850mb", "700mb", "500mb", "300mb", "150mb"]
    assert settings.forecast_labels == ["f000", "f006"]
    assert settings.current_path == Path("./public/data/weather") / "current"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAX_ZOOM_LEVEL", "3")
    monkeypatch.setenv("LEVELS", "surface,500mb")
    monkeypatch.setenv("FORECAST_HOURS", "0,12")
    monkeypatch.setenv("DATA_PATH", "/srv/wind")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    settings = Settings()

    assert settings.max_zoom_level == 3
    assert settings.level_names == ["surface", "500mb"]
    assert settings.forecast_labels == ["f000", "f012"]
    assert settings.releases_path == Path("/srv/wind/releases")
    assert settings.log_level == "debug"


def test_zoom_and_workers_are_clamped() -> None:
    settings = Settings(max_zoom_level=42, workers=0)
    assert settings.max_zoom_level == 10
    assert settings.workers == 1

    settings = Settings(max_zoom_level=-1, workers=99)
    assert settings.max_zoom_level == 0
    assert settings.workers == 16


def test_levels_and_forecasts_are_normalized() -> None:
    settings = Settings(levels=" Surface, 500MB ,surface", forecast_hours="f006, 0, 6")

    assert settings.levels == "surface,500mb"
    assert settings.forecast_hours == "6,0"
    assert [f.code for f in settings.forecast_offsets] == ["006", "000"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"levels": "surface,925mb"},
        {"levels": " , "},
        {"forecast_hours": "f1000"},
        {"forecast_hours": "tomorrow"},
    ],
)
def test_invalid_catalog_entries_are_rejected(overrides: dict[str, str]) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_settings_are_frozen() -> None:
    settings = Settings()
    with pytest.raises(ValidationError):
        settings.port = 9000
