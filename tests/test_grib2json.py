from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

from windserver.models import get_level, parse_forecast
from windserver.services.errors import ConversionFailed
from windserver.services.fetch import FetchedFile
from windserver.services.grib2json import Grib2JsonConverter
from windserver.services.nomads import describe

RUN = datetime(2024, 5, 10, 6, tzinfo=timezone.utc)

_WRITES_OUTPUT = """
import json, sys
args = sys.argv[1:]
out = args[args.index("--output") + 1]
with open(out, "w") as handle:
    json.dump({"argv": args}, handle)
"""

_FAILS = """
import sys
sys.stderr.write("Exception in thread main: not a GRIB2 file\\n")
sys.exit(3)
"""

_SILENT = """
import sys
sys.exit(0)
"""

_HANGS = """
import time
time.sleep(30)
"""


def _fetched(tmp_path: Path) -> FetchedFile:
    path = tmp_path / "gfs_500mb_f006.grb2"
    path.write_bytes(b"GRIB")
    descriptor = describe(RUN, get_level("500mb"), parse_forecast(6))
    return FetchedFile(path=path, size_bytes=4, descriptor=descriptor)


def _converter(tmp_path: Path, source: str, **kwargs: float) -> Grib2JsonConverter:
    script = tmp_path / "fake_grib2json.py"
    script.write_text(source)
    return Grib2JsonConverter([sys.executable, str(script)], **kwargs)


def test_build_args_selects_wind_parameters() -> None:
    converter = Grib2JsonConverter("/opt/grib2json/bin/grib2json")
    args = converter.build_args(Path("in.grb2"), Path("out.json"))
    assert args == [
        "/opt/grib2json/bin/grib2json",
        "--data",
        "--output",
        "out.json",
        "--names",
        "--compact",
        "--filter.parameter.parameterNumber",
        "[2,3]",
        "in.grb2",
    ]


def test_string_executable_is_split() -> None:
    converter = Grib2JsonConverter("java -jar grib2json.jar")
    assert converter.command == ["java", "-jar", "grib2json.jar"]


def test_convert_success(tmp_path: Path) -> None:
    converter = _converter(tmp_path, _WRITES_OUTPUT)
    output = tmp_path / "scratch" / "wind-500mb-f006.json"

    result = converter.convert(_fetched(tmp_path), output)

    assert result == output
    argv = json.loads(output.read_text())["argv"]
    assert argv[-1].endswith("gfs_500mb_f006.grb2")
    assert "[2,3]" in argv


def test_non_zero_exit_carries_stderr(tmp_path: Path) -> None:
    converter = _converter(tmp_path, _FAILS)

    with pytest.raises(ConversionFailed) as excinfo:
        converter.convert(_fetched(tmp_path), tmp_path / "out.json")

    assert excinfo.value.returncode == 3
    assert "not a GRIB2 file" in excinfo.value.stderr
    assert "500mb f006" in str(excinfo.value)


def test_missing_executable(tmp_path: Path) -> None:
    converter = Grib2JsonConverter(str(tmp_path / "no-such-grib2json"))

    with pytest.raises(ConversionFailed, match="process error"):
        converter.convert(_fetched(tmp_path), tmp_path / "out.json")


def test_missing_output_file(tmp_path: Path) -> None:
    converter = _converter(tmp_path, _SILENT)

    with pytest.raises(ConversionFailed, match="no output"):
        converter.convert(_fetched(tmp_path), tmp_path / "out.json")


def test_timeout(tmp_path: Path) -> None:
    converter = _converter(tmp_path, _HANGS, timeout_seconds=0.5)

    with pytest.raises(ConversionFailed, match="timed out"):
        converter.convert(_fetched(tmp_path), tmp_path / "out.json")
