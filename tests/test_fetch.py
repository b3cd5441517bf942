from __future__ import annotations

import io
import itertools
from datetime import datetime, timezone
from pathlib import Path

import pytest
import requests

from windserver.models import get_level, parse_forecast
from windserver.services.errors import TransportError
from windserver.services.fetch import Fetcher
from windserver.services.nomads import describe

RUN = datetime(2024, 5, 10, 6, tzinfo=timezone.utc)


def _response(status_code: int, body: bytes, url: str) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Internal Server Error"
    response.url = url
    response.raw = io.BytesIO(body)
    return response


class _FakeSession:
    def __init__(self, status_code: int = 200, body: bytes = b"GRIB2" * 100, exc: Exception | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.exc = exc
        self.calls: list[tuple[str, float]] = []

    def get(self, url: str, *, stream: bool, timeout: float) -> requests.Response:
        assert stream is True
        self.calls.append((url, timeout))
        if self.exc is not None:
            raise self.exc
        return _response(self.status_code, self.body, url)


def _descriptor():
    return describe(RUN, get_level("surface"), parse_forecast(0))


def test_fetch_writes_deterministic_scratch_file(tmp_path: Path) -> None:
    session = _FakeSession()
    fetcher = Fetcher(tmp_path, timeout_seconds=7, session=session)

    fetched = fetcher.fetch(_descriptor())

    assert fetched.path == tmp_path / "gfs_surface_f000.grb2"
    assert fetched.path.read_bytes() == b"GRIB2" * 100
    assert fetched.size_bytes == 500
    assert session.calls == [(_descriptor().url, 7)]
    assert [p.name for p in tmp_path.iterdir()] == ["gfs_surface_f000.grb2"]


def test_http_error_leaves_no_output(tmp_path: Path) -> None:
    fetcher = Fetcher(tmp_path, session=_FakeSession(status_code=500, body=b"oops"))

    with pytest.raises(TransportError) as excinfo:
        fetcher.fetch(_descriptor())

    assert excinfo.value.status_code == 500
    assert "500" in str(excinfo.value)
    assert excinfo.value.url == _descriptor().url
    assert list(tmp_path.iterdir()) == []


def test_failure_leaves_existing_target_unchanged(tmp_path: Path) -> None:
    target = tmp_path / "gfs_surface_f000.grb2"
    target.write_bytes(b"previous")
    fetcher = Fetcher(tmp_path, session=_FakeSession(status_code=503, body=b""))

    with pytest.raises(TransportError):
        fetcher.fetch(_descriptor())

    assert target.read_bytes() == b"previous"
    assert [p.name for p in tmp_path.iterdir()] == ["gfs_surface_f000.grb2"]


def test_timeout_is_transport_error(tmp_path: Path) -> None:
    fetcher = Fetcher(tmp_path, session=_FakeSession(exc=requests.exceptions.ReadTimeout("read timed out")))

    with pytest.raises(TransportError, match="Timed out") as excinfo:
        fetcher.fetch(_descriptor())

    assert excinfo.value.status_code is None
    assert list(tmp_path.iterdir()) == []


def test_connection_error_is_transport_error(tmp_path: Path) -> None:
    fetcher = Fetcher(tmp_path, session=_FakeSession(exc=requests.exceptions.ConnectionError("refused")))

    with pytest.raises(TransportError, match="Transport error fetching"):
        fetcher.fetch(_descriptor())


def test_empty_body_is_rejected(tmp_path: Path) -> None:
    fetcher = Fetcher(tmp_path, session=_FakeSession(body=b""))

    with pytest.raises(TransportError, match="Empty response body"):
        fetcher.fetch(_descriptor())

    assert list(tmp_path.iterdir()) == []


def test_slow_body_hits_download_deadline(tmp_path: Path) -> None:
    ticks = itertools.count(0, 5)
    fetcher = Fetcher(
        tmp_path,
        deadline_seconds=7,
        session=_FakeSession(body=b"GRIB2" * 10),
        chunk_size=5,
        clock=lambda: next(ticks),
    )

    with pytest.raises(TransportError, match="exceeded 7s") as excinfo:
        fetcher.fetch(_descriptor())

    assert excinfo.value.url == _descriptor().url
    assert list(tmp_path.iterdir()) == []
