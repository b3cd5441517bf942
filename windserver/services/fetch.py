from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests

from windserver.services.errors import TransportError, transport_error_from
from windserver.services.nomads import SourceFileDescriptor

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class FetchedFile:
    path: Path
    size_bytes: int
    descriptor: SourceFileDescriptor

    def __fspath__(self) -> str:
        return str(self.path)


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove partial download %s: %s", path, exc)


class Fetcher:
    """Streams one NOMADS subset to scratch storage per call."""

    def __init__(
        self,
        scratch_dir: Path,
        *,
        timeout_seconds: float = 120.0,
        deadline_seconds: float = 600.0,
        session: requests.Session | None = None,
        chunk_size: int = CHUNK_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scratch_dir = Path(scratch_dir)
        # Per-read timeout for requests; the deadline bounds the whole body.
        self.timeout_seconds = timeout_seconds
        self.deadline_seconds = deadline_seconds
        self.session = session or requests.Session()
        self.chunk_size = chunk_size
        self._clock = clock

    def target_path(self, descriptor: SourceFileDescriptor) -> Path:
        return self.scratch_dir / descriptor.scratch_name

    def fetch(self, descriptor: SourceFileDescriptor) -> FetchedFile:
        target = self.target_path(descriptor)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")
        logger.debug("Downloading: %s", descriptor.url)
        deadline = self._clock() + self.deadline_seconds

        try:
            with self.session.get(descriptor.url, stream=True, timeout=self.timeout_seconds) as response:
                response.raise_for_status()
                with tmp_path.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if self._clock() > deadline:
                            raise TransportError(
                                f"Timed out fetching {descriptor.url}: "
                                f"download exceeded {self.deadline_seconds:.0f}s",
                                url=descriptor.url,
                            )
                        if chunk:
                            handle.write(chunk)
        except requests.exceptions.RequestException as exc:
            _unlink_quietly(tmp_path)
            raise transport_error_from(exc, descriptor.url) from exc
        except BaseException:
            _unlink_quietly(tmp_path)
            raise

        size = tmp_path.stat().st_size
        if size == 0:
            _unlink_quietly(tmp_path)
            raise TransportError(f"Empty response body for {descriptor.url}", url=descriptor.url)

        try:
            os.replace(tmp_path, target)
        except OSError:
            _unlink_quietly(tmp_path)
            raise

        logger.debug("Downloaded %s (%.1f MB)", target.name, size / (1024 * 1024))
        return FetchedFile(path=target, size_bytes=size, descriptor=descriptor)
