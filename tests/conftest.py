from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest


_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _record(parameter: int, data: list[float | None]) -> dict[str, Any]:
    return {
        "header": {
            "discipline": 0,
            "parameterCategory": 2,
            "parameterNumber": parameter,
            "nx": 4,
            "ny": 3,
            "lo1": 0.0,
            "la1": 90.0,
            "lo2": 270.0,
            "la2": -90.0,
            "dx": 90.0,
            "dy": 90.0,
            "scanMode": 0,
            "numberPoints": 12,
        },
        "data": data,
    }


@pytest.fixture
def wind_records() -> list[dict[str, Any]]:
    """A 4x3 global grid at 90 degree spacing: U rises eastward, V southward."""
    u = [float(col) for _row in range(3) for col in range(4)]
    v = [float(row) * 10.0 for row in range(3) for _col in range(4)]
    return [_record(2, u), _record(3, v)]


@pytest.fixture
def write_intermediate(wind_records: list[dict[str, Any]]) -> Callable[[Path], Path]:
    def _write(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(wind_records))
        return path

    return _write
