from __future__ import annotations

import concurrent.futures
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from windserver.models import ForecastOffset, LevelSpec
from windserver.services.errors import IncompleteBuild
from windserver.services.grid import WindGrid, tile_bounds_wgs84

logger = logging.getLogger(__name__)

TILES_DIRNAME = "tiles"
MANIFEST_NAME = "manifest.json"
CONTRACT_VERSION = 1


def branch_key(level: LevelSpec, forecast: ForecastOffset) -> tuple[str, str]:
    return level.name, forecast.label


def tile_path(root: Path, level: str, forecast: str, z: int, x: int, y: int) -> Path:
    return root / TILES_DIRNAME / level / forecast / str(z) / str(x) / f"{y}.json"


def _now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class TileTreeSummary:
    root: Path
    run_id: str
    max_zoom: int
    # "level/forecast" -> {zoom: tile count}
    tile_counts: dict[str, dict[int, int]] = field(default_factory=dict)

    @property
    def branches(self) -> int:
        return len(self.tile_counts)

    @property
    def total_tiles(self) -> int:
        return sum(sum(zooms.values()) for zooms in self.tile_counts.values())


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, separators=(",", ":")))


def _load_grid(path: Path, label: str) -> WindGrid:
    try:
        records = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise IncompleteBuild(f"Unreadable intermediate for {label}: {path}: {exc}") from exc
    if not isinstance(records, list):
        raise IncompleteBuild(f"Intermediate for {label} is not a record list: {path}")
    try:
        return WindGrid.from_records(records)
    except (KeyError, TypeError, ValueError) as exc:
        raise IncompleteBuild(f"Invalid intermediate for {label}: {exc}") from exc


class TileBuilder:
    """Derives the level/forecast/zoom/x/y tile tree from grib2json output."""

    def __init__(
        self,
        levels: tuple[LevelSpec, ...],
        forecasts: tuple[ForecastOffset, ...],
        *,
        max_zoom: int,
        workers: int = 4,
    ) -> None:
        if max_zoom < 0:
            raise ValueError("max_zoom must be >= 0")
        self.levels = levels
        self.forecasts = forecasts
        self.max_zoom = max_zoom
        self.workers = max(1, workers)

    def expected_branches(self) -> list[tuple[str, str]]:
        return [branch_key(level, forecast) for level in self.levels for forecast in self.forecasts]

    def build(
        self,
        intermediates: Mapping[tuple[str, str], Path],
        staging_dir: Path,
        *,
        run_id: str,
    ) -> TileTreeSummary:
        expected = self.expected_branches()
        missing = [
            f"{level}/{forecast}"
            for level, forecast in expected
            if (level, forecast) not in intermediates or not Path(intermediates[(level, forecast)]).is_file()
        ]
        if missing:
            raise IncompleteBuild(f"Missing intermediate data for: {', '.join(missing)}")

        staging_dir = Path(staging_dir)
        staging_dir.mkdir(parents=True, exist_ok=True)
        summary = TileTreeSummary(root=staging_dir, run_id=run_id, max_zoom=self.max_zoom)

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {
                executor.submit(self._build_branch, Path(intermediates[key]), staging_dir, *key): key
                for key in expected
            }
            done, not_done = concurrent.futures.wait(
                futures, return_when=concurrent.futures.FIRST_EXCEPTION
            )
            for future in not_done:
                future.cancel()
            for future in done:
                exc = future.exception()
                if exc is not None:
                    raise exc
            for future, (level, forecast) in futures.items():
                summary.tile_counts[f"{level}/{forecast}"] = future.result()

        self._write_manifest(summary)
        logger.info(
            "Generated %s tiles for %s levels x %s forecasts x %s zoom levels",
            summary.total_tiles,
            len(self.levels),
            len(self.forecasts),
            self.max_zoom + 1,
        )
        return summary

    def _build_branch(self, source: Path, staging_dir: Path, level: str, forecast: str) -> dict[int, int]:
        label = f"{level} {forecast}"
        grid = _load_grid(source, label)
        counts: dict[int, int] = {}
        for z in range(self.max_zoom + 1):
            n = 2**z
            written = 0
            for x in range(n):
                for y in range(n):
                    selection = grid.select(*tile_bounds_wgs84(z, x, y))
                    if selection is None:
                        continue
                    rows, cols = selection
                    _write_json(
                        tile_path(staging_dir, level, forecast, z, x, y),
                        grid.subset_payload(rows, cols),
                    )
                    written += 1
            if written == 0:
                raise IncompleteBuild(f"No tiles produced for {label} at zoom {z}")
            counts[z] = written
        logger.debug("Generated tiles for %s (zoom 0-%s)", label, self.max_zoom)
        return counts

    def _write_manifest(self, summary: TileTreeSummary) -> None:
        payload = {
            "contract_version": CONTRACT_VERSION,
            "run_id": summary.run_id,
            "generated_utc": _now_utc_iso(),
            "levels": [level.name for level in self.levels],
            "forecasts": [forecast.label for forecast in self.forecasts],
            "max_zoom": self.max_zoom,
            "tile_counts": {
                key: {str(z): count for z, count in zooms.items()}
                for key, zooms in summary.tile_counts.items()
            },
            "total_tiles": summary.total_tiles,
        }
        _write_json(summary.root / MANIFEST_NAME, payload)


def read_manifest(root: Path) -> dict[str, Any] | None:
    path = Path(root) / MANIFEST_NAME
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("manifest.json read failed: %s", exc)
        return None
    return payload if isinstance(payload, dict) else None


def validate_tree(root: Path, levels: list[str], forecasts: list[str], max_zoom: int) -> list[str]:
    """Return the level/forecast/zoom branches missing from a built tree."""
    missing: list[str] = []
    for level in levels:
        for forecast in forecasts:
            for z in range(max_zoom + 1):
                zoom_dir = Path(root) / TILES_DIRNAME / level / forecast / str(z)
                if not zoom_dir.is_dir() or not any(zoom_dir.rglob("*.json")):
                    missing.append(f"{level}/{forecast}/{z}")
    return missing


def count_tiles(root: Path, level: str, forecast: str, z: int) -> int:
    zoom_dir = Path(root) / TILES_DIRNAME / level / forecast / str(z)
    if not zoom_dir.is_dir():
        return 0
    return sum(1 for _ in zoom_dir.rglob("*.json"))


def count_mismatches(
    root: Path,
    manifest: Mapping[str, Any],
    levels: list[str],
    forecasts: list[str],
    max_zoom: int,
) -> list[str]:
    """Branch/zoom entries whose tile files on disk differ from the manifest counts."""
    recorded = manifest.get("tile_counts")
    if not isinstance(recorded, dict):
        return ["tile_counts"]
    mismatches: list[str] = []
    for level in levels:
        for forecast in forecasts:
            zooms = recorded.get(f"{level}/{forecast}")
            for z in range(max_zoom + 1):
                expected = zooms.get(str(z)) if isinstance(zooms, dict) else None
                actual = count_tiles(root, level, forecast, z)
                if not isinstance(expected, int) or expected != actual:
                    mismatches.append(f"{level}/{forecast}/{z} ({actual} of {expected})")
    return mismatches
