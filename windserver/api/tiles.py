from __future__ import annotations

import re

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse, RedirectResponse

from windserver.api.deps import get_settings
from windserver.config import Settings
from windserver.services.tiles import tile_path

router = APIRouter(prefix="/data", tags=["tiles"])

TILE_Y_RE = re.compile(r"^(?P<y>\d+)(\.json)?$")

# Tiles for a given run never change; a new run is picked up within the hour.
_CACHE_TILE = "public, max-age=3600"


def _parse_tile_y(value: str) -> int:
    match = TILE_Y_RE.match(value)
    if not match:
        raise HTTPException(status_code=400, detail="Invalid tile coordinate")
    return int(match.group("y"))


@router.get("/levels")
def list_levels(settings: Settings = Depends(get_settings)) -> dict:
    return {
        "pressureLevels": [
            {
                "name": level.name,
                "altitude": level.altitude,
                "description": level.description,
            }
            for level in settings.level_specs
        ],
        "forecasts": [
            {"code": forecast.label, "description": forecast.description}
            for forecast in settings.forecast_offsets
        ],
        "zoomLevels": f"0-{settings.max_zoom_level}",
        "maxZoomLevel": settings.max_zoom_level,
    }


@router.get("/weather/{z}/{x}/{y}")
def legacy_tile_redirect(
    z: int,
    x: int,
    y: str,
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    tile_y = _parse_tile_y(y)
    level = settings.level_names[0]
    forecast = settings.forecast_labels[0]
    return RedirectResponse(url=f"/data/{level}/{forecast}/{z}/{x}/{tile_y}.json", status_code=301)


@router.get("/weather/{level}/{forecast}/{z}/{x}/{y}")
@router.get("/{level}/{forecast}/{z}/{x}/{y}")
def get_tile(
    level: str,
    forecast: str,
    z: int,
    x: int,
    y: str,
    settings: Settings = Depends(get_settings),
) -> Response:
    valid_levels = settings.level_names
    if level not in valid_levels:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid pressure level", "validLevels": valid_levels},
        )
    valid_forecasts = settings.forecast_labels
    if forecast not in valid_forecasts:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid forecast hour", "validForecasts": valid_forecasts},
        )
    tile_y = _parse_tile_y(y)

    path = tile_path(settings.current_path, level, forecast, z, x, tile_y)
    # Read through the current pointer in one open so a concurrent publish
    # cannot hand back a mix of two releases.
    try:
        content = path.read_bytes()
    except (FileNotFoundError, NotADirectoryError):
        return JSONResponse(
            status_code=404,
            content={
                "error": "Tile not found",
                "message": f"No data available for {level} {forecast} tile {z}/{x}/{tile_y}",
            },
        )
    return Response(
        content=content,
        media_type="application/json",
        headers={
            "Cache-Control": _CACHE_TILE,
            "Access-Control-Allow-Origin": "*",
        },
    )
