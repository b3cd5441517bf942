from __future__ import annotations

import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path

from windserver.services.errors import SwapFailed
from windserver.services.tiles import count_mismatches, read_manifest, validate_tree

logger = logging.getLogger(__name__)


def _atomic_symlink(path: Path, target_rel: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    if tmp_path.is_symlink() or tmp_path.exists():
        tmp_path.unlink()
    os.symlink(target_rel, tmp_path)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _is_under_root(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def new_release_id(run_id: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{run_id}-{stamp}-{uuid.uuid4().hex[:8]}"


class Publisher:
    """Promotes a fully built staging tree to ``current``.

    ``current`` is a relative symlink into ``releases/``. A publish moves the
    staging directory into ``releases/`` with one rename, swaps the symlink
    with one ``os.replace`` and only then deletes superseded releases, so a
    reader resolving ``current/...`` sees either the old tree or the new one.
    """

    def __init__(
        self,
        data_root: Path,
        *,
        levels: list[str],
        forecasts: list[str],
        max_zoom: int,
    ) -> None:
        self.data_root = Path(data_root)
        self.current_path = self.data_root / "current"
        self.releases_path = self.data_root / "releases"
        self.levels = list(levels)
        self.forecasts = list(forecasts)
        self.max_zoom = max_zoom

    def current_release(self) -> Path | None:
        if not self.current_path.exists():
            return None
        return self.current_path.resolve()

    def validate_staging(self, staging_dir: Path) -> None:
        if not staging_dir.is_dir():
            raise SwapFailed(f"Staging directory not found: {staging_dir}")
        manifest = read_manifest(staging_dir)
        if manifest is None:
            raise SwapFailed(f"Staging tree has no manifest: {staging_dir}")
        built_for = (manifest.get("levels"), manifest.get("forecasts"), manifest.get("max_zoom"))
        if built_for != (self.levels, self.forecasts, self.max_zoom):
            raise SwapFailed(
                "Staging manifest does not match configuration: "
                f"levels={built_for[0]} forecasts={built_for[1]} max_zoom={built_for[2]}"
            )
        missing = validate_tree(staging_dir, self.levels, self.forecasts, self.max_zoom)
        if missing:
            raise SwapFailed(f"Staging tree incomplete, missing: {', '.join(missing)}")
        mismatched = count_mismatches(staging_dir, manifest, self.levels, self.forecasts, self.max_zoom)
        if mismatched:
            raise SwapFailed(f"Staging tree does not match its manifest: {', '.join(mismatched)}")

    def publish(self, staging_dir: Path, *, release_id: str) -> Path:
        staging_dir = Path(staging_dir)
        self.validate_staging(staging_dir)

        self.releases_path.mkdir(parents=True, exist_ok=True)
        release_dir = self.releases_path / release_id
        if release_dir.exists():
            raise SwapFailed(f"Release already exists: {release_dir}")

        try:
            os.rename(staging_dir, release_dir)
        except OSError as exc:
            raise SwapFailed(f"Failed to move staging tree into releases: {exc}") from exc

        try:
            self._point_current_at(release_dir)
        except OSError as exc:
            shutil.rmtree(release_dir, ignore_errors=True)
            raise SwapFailed(f"Failed to swap current pointer: {exc}") from exc

        logger.info("Published release %s", release_id)
        self.prune_releases(keep=release_dir)
        return release_dir

    def _point_current_at(self, release_dir: Path) -> None:
        legacy: Path | None = None
        if self.current_path.exists() and not self.current_path.is_symlink():
            # Plain directory from an older layout: park it as a release so it
            # is pruned with the rest once the symlink is in place.
            legacy = self.releases_path / f"legacy-{uuid.uuid4().hex[:8]}"
            logger.info("Moving legacy current directory aside: %s -> %s", self.current_path, legacy)
            os.rename(self.current_path, legacy)
        target_rel = os.path.relpath(release_dir, self.current_path.parent)
        try:
            _atomic_symlink(self.current_path, target_rel)
        except OSError:
            if legacy is not None and not self.current_path.exists():
                os.rename(legacy, self.current_path)
            raise

    def prune_releases(self, *, keep: Path | None = None) -> int:
        """Delete every release except ``keep`` (defaults to the current one)."""
        if not self.releases_path.is_dir():
            return 0
        keep_path = (keep or self.current_release())
        keep_resolved = keep_path.resolve() if keep_path is not None else None
        removed = 0
        for entry in self.releases_path.iterdir():
            if not entry.is_dir() or entry.is_symlink():
                continue
            if keep_resolved is not None and entry.resolve() == keep_resolved:
                continue
            if not _is_under_root(entry, self.releases_path):
                logger.warning("Skipping retention delete outside root: %s", entry)
                continue
            logger.info("Removing superseded release: %s", entry.name)
            shutil.rmtree(entry, ignore_errors=True)
            removed += 1
        return removed
