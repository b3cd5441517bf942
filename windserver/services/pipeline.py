from __future__ import annotations

import concurrent.futures
import json
import logging
import os
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

from windserver.config import Settings
from windserver.services.errors import PipelineBusy, PipelineError, TransportError
from windserver.services.fetch import FetchedFile, Fetcher
from windserver.services.grib2json import Converter, Grib2JsonConverter
from windserver.services.nomads import SourceFileDescriptor, describe_matrix
from windserver.services.publisher import Publisher, new_release_id
from windserver.services.run_resolution import resolve_run_time, run_id as format_run_id
from windserver.services.tiles import TileBuilder

logger = logging.getLogger(__name__)

LOCK_POLL_SECONDS = 0.05
LOCK_OWNER_NAME = "owner.json"


def _write_lock_owner(lock_path: Path) -> None:
    owner = {"pid": os.getpid(), "started": time.time()}
    (lock_path / LOCK_OWNER_NAME).write_text(json.dumps(owner))


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user.
        return True
    return True


def lock_is_stale(lock_path: Path, *, timeout_seconds: float, now: float | None = None) -> bool:
    """True when the lock holder is gone or has held the lock past ``timeout_seconds``."""
    now = time.time() if now is None else now
    try:
        owner = json.loads((lock_path / LOCK_OWNER_NAME).read_text())
    except FileNotFoundError:
        owner = None
    except (OSError, ValueError) as exc:
        logger.warning("Unreadable update lock owner in %s: %s", lock_path, exc)
        owner = None

    if not isinstance(owner, dict):
        # Holder may be between mkdir and writing its owner file.
        try:
            started = lock_path.stat().st_mtime
        except FileNotFoundError:
            return False
        return now - started > timeout_seconds

    pid = owner.get("pid")
    started = owner.get("started")
    if isinstance(pid, int) and not _pid_alive(pid):
        return True
    if isinstance(started, (int, float)):
        return now - started > timeout_seconds
    return False


@contextmanager
def update_lock(lock_path: Path, *, timeout_seconds: float) -> Iterator[None]:
    """Directory-based lock: ``mkdir`` is atomic, so one cycle holds it at a time."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout_seconds
    while True:
        try:
            lock_path.mkdir()
            break
        except FileExistsError:
            if time.monotonic() >= deadline:
                raise PipelineBusy("Weather data update already in progress")
            time.sleep(LOCK_POLL_SECONDS)
    try:
        _write_lock_owner(lock_path)
        yield
    finally:
        shutil.rmtree(lock_path, ignore_errors=True)


def initialize_directories(settings: Settings) -> None:
    """Create data/scratch roots and clear leftovers from a crashed cycle.

    A lock is only broken when its holder is provably dead, and staging is only
    cleared while holding the lock, so a cycle running in another process is
    left alone.
    """
    for directory in (settings.data_path, settings.temp_path, settings.releases_path):
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info("Created directory: %s", directory)

    lock_path = settings.lock_path
    if lock_path.exists() and lock_is_stale(lock_path, timeout_seconds=settings.update_lock_timeout_seconds):
        logger.warning("Removing stale update lock: %s", lock_path)
        shutil.rmtree(lock_path, ignore_errors=True)

    try:
        with update_lock(lock_path, timeout_seconds=0):
            if settings.staging_root.exists():
                logger.warning("Removing stale staging directory: %s", settings.staging_root)
                shutil.rmtree(settings.staging_root, ignore_errors=True)
    except PipelineBusy:
        logger.info("Update in progress elsewhere; leaving %s in place", settings.staging_root)


def clear_scratch(scratch_dir: Path) -> None:
    if not scratch_dir.is_dir():
        return
    for entry in scratch_dir.iterdir():
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as exc:
            logger.error("Cleanup failed for %s: %s", entry, exc)


@dataclass
class CycleResult:
    success: bool
    run_id: str | None = None
    levels: int = 0
    forecasts: int = 0
    total_files: int = 0
    duration: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            payload: dict[str, Any] = {"success": False, "error": self.error}
            if self.run_id:
                payload["runId"] = self.run_id
            return payload
        return {
            "success": True,
            "runId": self.run_id,
            "levels": self.levels,
            "forecasts": self.forecasts,
            "totalFiles": self.total_files,
            "duration": self.duration,
        }


class UpdatePipeline:
    """One update cycle: resolve run, fetch, convert, tile, publish, clean up."""

    def __init__(
        self,
        settings: Settings,
        *,
        fetcher: Fetcher | None = None,
        converter: Converter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.levels = settings.level_specs
        self.forecasts = settings.forecast_offsets
        self.fetcher = fetcher or Fetcher(
            settings.temp_path,
            timeout_seconds=settings.fetch_timeout_seconds,
            deadline_seconds=settings.fetch_deadline_seconds,
        )
        self.converter = converter or Grib2JsonConverter(
            settings.converter_path,
            timeout_seconds=settings.convert_timeout_seconds,
        )
        self.builder = TileBuilder(
            self.levels,
            self.forecasts,
            max_zoom=settings.max_zoom_level,
            workers=settings.workers,
        )
        self.publisher = Publisher(
            settings.data_path,
            levels=settings.level_names,
            forecasts=settings.forecast_labels,
            max_zoom=settings.max_zoom_level,
        )
        self._sleep = sleep

    def run_cycle(self, now: datetime | None = None) -> CycleResult:
        try:
            with update_lock(self.settings.lock_path, timeout_seconds=self.settings.update_lock_timeout_seconds):
                return self._run(now or datetime.now(timezone.utc))
        except PipelineBusy as exc:
            logger.warning("Weather data update skipped: %s", exc)
            return CycleResult(success=False, error=str(exc))

    def _run(self, now: datetime) -> CycleResult:
        started = time.monotonic()
        run_time = resolve_run_time(now)
        cycle_run_id = format_run_id(run_time)
        release_id = new_release_id(cycle_run_id)
        staging_dir = self.settings.staging_root / release_id
        scratch_dir = self.settings.temp_path
        descriptors = describe_matrix(
            run_time,
            self.levels,
            self.forecasts,
            base_url=self.settings.nomads_filter_url,
        )
        logger.info("Starting weather data update for GFS run %s", cycle_run_id)

        try:
            fetched = self._fetch_all(descriptors)
            intermediates = self._convert_all(fetched, scratch_dir)
            self.builder.build(intermediates, staging_dir, run_id=cycle_run_id)
            self.publisher.publish(staging_dir, release_id=release_id)
        except PipelineError as exc:
            logger.error("Weather data update failed for run %s: %s", cycle_run_id, exc)
            return CycleResult(success=False, run_id=cycle_run_id, error=str(exc))
        except Exception as exc:
            logger.exception("Weather data update failed for run %s", cycle_run_id)
            return CycleResult(success=False, run_id=cycle_run_id, error=f"{type(exc).__name__}: {exc}")
        finally:
            clear_scratch(scratch_dir)
            if staging_dir.exists():
                shutil.rmtree(staging_dir, ignore_errors=True)
            logger.info("Temporary files cleaned up")

        duration = round(time.monotonic() - started, 1)
        result = CycleResult(
            success=True,
            run_id=cycle_run_id,
            levels=len(self.levels),
            forecasts=len(self.forecasts),
            total_files=len(fetched),
            duration=duration,
        )
        logger.info(
            "Weather data update completed in %.1f seconds: %s files (%s levels x %s forecasts)",
            duration,
            result.total_files,
            result.levels,
            result.forecasts,
        )
        return result

    def _fetch_all(self, descriptors: list[SourceFileDescriptor]) -> list[FetchedFile]:
        logger.info(
            "Downloading %s levels x %s forecast hours = %s files",
            len(self.levels),
            len(self.forecasts),
            len(descriptors),
        )
        fetched: list[FetchedFile] = []
        for index, descriptor in enumerate(descriptors):
            if index and self.settings.fetch_delay_seconds > 0:
                # Keep consecutive requests to NOMADS spaced out.
                self._sleep(self.settings.fetch_delay_seconds)
            logger.info(
                "Downloading %s %s %s...",
                descriptor.level.name,
                descriptor.level.altitude,
                descriptor.forecast.label,
            )
            try:
                fetched.append(self.fetcher.fetch(descriptor))
            except TransportError as exc:
                logger.error(
                    "Download failed for %s (status=%s): %s",
                    descriptor.key,
                    exc.status_code if exc.status_code is not None else "n/a",
                    exc,
                )
                raise
        logger.info("Successfully downloaded %s GRIB files", len(fetched))
        return fetched

    def _convert_all(self, fetched: list[FetchedFile], scratch_dir: Path) -> dict[tuple[str, str], Path]:
        logger.info("Processing %s GRIB files to JSON...", len(fetched))
        outputs: dict[tuple[str, str], Path] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.settings.workers) as executor:
            futures = {}
            for item in fetched:
                key = (item.descriptor.level.name, item.descriptor.forecast.label)
                output_path = scratch_dir / f"wind-{key[0]}-{key[1]}.json"
                futures[executor.submit(self.converter.convert, item, output_path)] = key
            done, not_done = concurrent.futures.wait(
                futures, return_when=concurrent.futures.FIRST_EXCEPTION
            )
            for future in not_done:
                future.cancel()
            for future in done:
                exc = future.exception()
                if exc is not None:
                    raise exc
            for future, key in futures.items():
                outputs[key] = future.result()
        return outputs
