from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from windserver.models import WIND_U_PARAMETER, WIND_V_PARAMETER

# Web Mercator cannot represent the poles; slippy tiles stop here.
MERCATOR_MAX_LAT = 85.0511287798066
SCAN_NEGATIVE_I = 0x80
SCAN_POSITIVE_J = 0x40


def tile_bounds_wgs84(z: int, x: int, y: int) -> tuple[float, float, float, float]:
    """(west, south, east, north) of a slippy-map tile in degrees."""
    n = 2**z
    if not (0 <= x < n and 0 <= y < n):
        raise ValueError(f"Tile out of range: z={z} x={x} y={y}")
    west = x / n * 360.0 - 180.0
    east = (x + 1) / n * 360.0 - 180.0
    north = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))
    south = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * (y + 1) / n))))
    return west, south, east, north


@dataclass
class WindGrid:
    """U/V components of one grib2json file on a regular lat/lon grid."""

    u_header: dict[str, Any]
    v_header: dict[str, Any]
    u: np.ndarray
    v: np.ndarray
    lats: np.ndarray
    lons: np.ndarray
    dx: float
    dy: float

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> "WindGrid":
        by_param: dict[int, dict[str, Any]] = {}
        for record in records:
            header = record.get("header") or {}
            param = header.get("parameterNumber")
            if isinstance(param, int) and param not in by_param:
                by_param[param] = record
        missing = [p for p in (WIND_U_PARAMETER, WIND_V_PARAMETER) if p not in by_param]
        if missing:
            raise ValueError(f"Missing wind component records for parameterNumber={missing}")

        u_record = by_param[WIND_U_PARAMETER]
        v_record = by_param[WIND_V_PARAMETER]
        header = u_record["header"]
        nx = int(header["nx"])
        ny = int(header["ny"])
        dx = float(header["dx"])
        dy = float(header["dy"])
        if nx <= 0 or ny <= 0 or dx <= 0 or dy <= 0:
            raise ValueError(f"Invalid grid geometry: nx={nx} ny={ny} dx={dx} dy={dy}")

        u = _values(u_record.get("data"), nx, ny)
        v = _values(v_record.get("data"), nx, ny)

        scan_mode = int(header.get("scanMode") or 0)
        i = np.arange(nx, dtype=np.float64)
        j = np.arange(ny, dtype=np.float64)
        lon_step = -dx if scan_mode & SCAN_NEGATIVE_I else dx
        lat_step = dy if scan_mode & SCAN_POSITIVE_J else -dy
        lons = np.mod(float(header["lo1"]) + lon_step * i, 360.0)
        lats = float(header["la1"]) + lat_step * j

        return cls(
            u_header=dict(u_record["header"]),
            v_header=dict(v_record["header"]),
            u=u,
            v=v,
            lats=lats,
            lons=lons,
            dx=dx,
            dy=dy,
        )

    def select(
        self, west: float, south: float, east: float, north: float
    ) -> tuple[np.ndarray, np.ndarray] | None:
        """Row/column indices of grid points covering a lat/lon box.

        The box is padded by half a grid cell so a tile narrower than the grid
        spacing still picks up its nearest points. Columns are ordered eastward
        from ``west`` across the antimeridian.
        """
        width = east - west
        offsets = np.mod(self.lons - west + self.dx / 2.0, 360.0)
        if width >= 360.0:
            col_mask = np.ones(self.lons.shape, dtype=bool)
        else:
            col_mask = offsets <= width + self.dx
        cols = np.flatnonzero(col_mask)
        cols = cols[np.argsort(offsets[cols], kind="stable")]

        half_dy = self.dy / 2.0
        row_mask = (self.lats >= south - half_dy) & (self.lats <= north + half_dy)
        rows = np.flatnonzero(row_mask)
        if rows.size == 0 or cols.size == 0:
            return None
        return rows, cols

    def subset_payload(self, rows: np.ndarray, cols: np.ndarray) -> list[dict[str, Any]]:
        geometry = {
            "nx": int(cols.size),
            "ny": int(rows.size),
            "lo1": float(self.lons[cols[0]]),
            "lo2": float(self.lons[cols[-1]]),
            "la1": float(self.lats[rows[0]]),
            "la2": float(self.lats[rows[-1]]),
            "numberPoints": int(cols.size * rows.size),
            # Columns always run eastward; row order is kept as in the source.
            "scanMode": int(self.u_header.get("scanMode") or 0) & SCAN_POSITIVE_J,
        }
        payload = []
        for header, values in ((self.u_header, self.u), (self.v_header, self.v)):
            sub = values[np.ix_(rows, cols)]
            payload.append({"header": {**header, **geometry}, "data": _to_json_list(sub)})
        return payload


def _values(data: Any, nx: int, ny: int) -> np.ndarray:
    if not isinstance(data, list):
        raise ValueError("Record has no data array (was grib2json run with --data?)")
    if len(data) != nx * ny:
        raise ValueError(f"Data length {len(data)} does not match grid {nx}x{ny}")
    arr = np.array([np.nan if value is None else value for value in data], dtype=np.float64)
    return arr.reshape(ny, nx)


def _to_json_list(values: np.ndarray) -> list[float | None]:
    rounded = np.round(values, 2).ravel().tolist()
    return [None if math.isnan(value) else value for value in rounded]
