from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from windserver.api.deps import get_pipeline, get_settings
from windserver.config import Settings
from windserver.services.pipeline import UpdatePipeline
from windserver.services.run_resolution import next_update_time
from windserver.services.tiles import TILES_DIRNAME, read_manifest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])


def _isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _list_dirs(path: Path) -> list[str]:
    if not path.is_dir():
        return []
    return sorted(entry.name for entry in path.iterdir() if entry.is_dir())


def _last_update(current: Path, manifest: dict | None) -> datetime:
    if manifest is not None:
        parsed = _parse_timestamp(manifest.get("generated_utc"))
        if parsed is not None:
            return parsed
    return datetime.fromtimestamp(current.stat().st_mtime, tz=timezone.utc)


@router.get("/health")
def health_check(settings: Settings = Depends(get_settings)) -> JSONResponse:
    now = datetime.now(timezone.utc)
    next_update = _isoformat(next_update_time(now))
    current = settings.current_path

    if not current.exists():
        return JSONResponse(
            status_code=503,
            content={
                "status": "no_data",
                "message": "No weather data available yet",
                "nextUpdate": next_update,
                "expectedLevels": len(settings.level_names),
                "expectedForecasts": len(settings.forecast_labels),
            },
        )

    manifest = read_manifest(current)
    last_update = _last_update(current, manifest)
    age_hours = (now - last_update).total_seconds() / 3600

    tiles_root = current / TILES_DIRNAME
    levels = _list_dirs(tiles_root)
    forecasts = _list_dirs(tiles_root / levels[0]) if levels else []

    return JSONResponse(
        content={
            "status": "healthy",
            "lastUpdate": _isoformat(last_update),
            "dataAgeHours": round(age_hours, 2),
            "nextUpdate": next_update,
            "runId": manifest.get("run_id") if manifest else None,
            "data": {
                "expectedLevels": len(settings.level_names),
                "availableLevels": len(levels),
                "expectedForecasts": len(settings.forecast_labels),
                "availableForecasts": len(forecasts),
                "levels": levels,
                "forecasts": forecasts,
            },
            "config": {
                "maxZoomLevel": settings.max_zoom_level,
                "updateSchedule": settings.update_schedule,
                "pressureLevels": settings.level_names,
            },
        }
    )


@router.post("/update")
def trigger_update(pipeline: UpdatePipeline = Depends(get_pipeline)) -> JSONResponse:
    logger.info("Manual update triggered")
    result = pipeline.run_cycle()
    return JSONResponse(
        status_code=200 if result.success else 500,
        content=result.to_dict(),
    )
