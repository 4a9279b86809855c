"""Versioned report history: run directories plus a runs.json manifest."""

from __future__ import annotations

import json
import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from visualjudge.models.config import (
    REPORT_INDEX_FILE,
    REPORT_RESULTS_FILE,
    RUNS_DIR,
    RUNS_MANIFEST_FILE,
)
from visualjudge.models.run import RunHandle, RunMetadata

logger = logging.getLogger(__name__)

RUN_ID_PATTERN = re.compile(r"^\d{8}_\d{6}")


def slugify_run_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", name.strip()).strip("-")


class ReportManager:
    """Keeps the latest report at ``base_dir`` and past runs under ``base_dir/runs``.

    Named runs are never removed by cleanup; only the newest
    ``keep_history`` unnamed runs are kept.
    """

    def __init__(self, base_dir: str | Path, keep_history: int = 10):
        if keep_history < 0:
            raise ValueError("keep_history cannot be negative")
        self.base_dir = Path(base_dir)
        self.keep_history = keep_history

    @property
    def runs_dir(self) -> Path:
        return self.base_dir / RUNS_DIR

    @property
    def manifest_path(self) -> Path:
        return self.base_dir / RUNS_MANIFEST_FILE

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------

    def _load_manifest(self) -> list[RunMetadata]:
        if not self.manifest_path.exists():
            return []
        try:
            with open(self.manifest_path) as f:
                data = json.load(f)
            return [RunMetadata.model_validate(item) for item in data]
        except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning("Failed to read runs manifest %s: %s. Treating as empty.",
                           self.manifest_path, e)
            return []

    def _write_manifest(self, runs: list[RunMetadata]) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with open(self.manifest_path, "w") as f:
            json.dump([r.model_dump() for r in runs], f, indent=2)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def generate_run_id(self, name: Optional[str] = None) -> str:
        """``YYYYMMDD_HHMMSS[_name]`` in UTC, suffixed ``-2``, ``-3``... on collision."""
        run_id = self._now().strftime("%Y%m%d_%H%M%S")
        if name:
            slug = slugify_run_name(name)
            if slug:
                run_id = f"{run_id}_{slug}"

        taken = {r.run_id for r in self._load_manifest()}
        candidate = run_id
        suffix = 2
        while candidate in taken or self.get_run_dir(candidate).exists():
            candidate = f"{run_id}-{suffix}"
            suffix += 1
        return candidate

    def get_run_dir(self, run_id: str) -> Path:
        return self.runs_dir / run_id

    def create_run(self, name: Optional[str] = None) -> RunHandle:
        run_id = self.generate_run_id(name)
        run_dir = self.get_run_dir(run_id)
        run_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Created run directory: %s", run_dir)
        return RunHandle(run_id=run_id, run_dir=run_dir, latest_dir=self.base_dir)

    def save_run_metadata(self, metadata: RunMetadata) -> None:
        """Add a run to the manifest, newest first.

        The new entry goes in front before the stable sort, so it wins ties
        with runs recorded at the same timestamp.
        """
        runs = [r for r in self._load_manifest() if r.run_id != metadata.run_id]
        runs.insert(0, metadata)
        runs.sort(key=lambda r: r.timestamp, reverse=True)
        self._write_manifest(runs)
        logger.info("Updated runs manifest with run: %s", metadata.run_id)

    def get_run_history(self) -> list[RunMetadata]:
        return self._load_manifest()

    def list_runs(self) -> list[RunMetadata]:
        return self.get_run_history()

    def get_run(self, run_id: str) -> Optional[Path]:
        run_dir = self.get_run_dir(run_id)
        return run_dir if run_dir.is_dir() else None

    def delete_run(self, run_id: str) -> bool:
        """Remove a run's directory and manifest entry. Returns False if unknown."""
        runs = self._load_manifest()
        remaining = [r for r in runs if r.run_id != run_id]
        run_dir = self.get_run_dir(run_id)
        found = len(remaining) != len(runs) or run_dir.exists()

        if run_dir.exists():
            shutil.rmtree(run_dir)
        if len(remaining) != len(runs):
            self._write_manifest(remaining)
        if found:
            logger.info("Deleted run: %s", run_id)
        else:
            logger.warning("Run not found: %s", run_id)
        return found

    def archive_current_run(self, run_id: str) -> Path:
        """Copy the latest report files into the run's directory."""
        run_dir = self.get_run_dir(run_id)
        run_dir.mkdir(parents=True, exist_ok=True)
        for filename in (REPORT_INDEX_FILE, REPORT_RESULTS_FILE):
            source = self.base_dir / filename
            if not source.exists():
                raise FileNotFoundError(f"Cannot archive run {run_id}: {source} is missing")
            shutil.copy2(source, run_dir / filename)
        logger.info("Archived run to: %s", run_dir)
        return run_dir

    def cleanup_old_runs(self) -> list[str]:
        """Apply the retention policy. Returns the run IDs that were removed."""
        history = self._load_manifest()
        named = [r for r in history if r.is_named]
        regular = [r for r in history if not r.is_named]
        to_delete = regular[self.keep_history:]
        removed: list[str] = []

        if to_delete:
            logger.info("Cleaning up %d old runs (keeping %d)", len(to_delete), self.keep_history)
        for run in to_delete:
            run_dir = self.get_run_dir(run.run_id)
            try:
                if run_dir.exists():
                    shutil.rmtree(run_dir)
                logger.info("Deleted old run: %s", run.run_id)
            except OSError as e:
                logger.warning("Failed to delete run %s: %s", run.run_id, e)
            removed.append(run.run_id)

        kept = named + regular[:self.keep_history]
        missing = [r for r in kept if not self.get_run_dir(r.run_id).is_dir()]
        for run in missing:
            logger.warning("Dropping manifest entry for missing run directory: %s", run.run_id)
        kept = [r for r in kept if r not in missing]
        kept.sort(key=lambda r: r.timestamp, reverse=True)
        self._write_manifest(kept)

        known = {r.run_id for r in kept} | set(removed)
        if self.runs_dir.is_dir():
            for entry in sorted(self.runs_dir.iterdir()):
                if entry.is_dir() and entry.name not in known and RUN_ID_PATTERN.match(entry.name):
                    try:
                        shutil.rmtree(entry)
                        logger.info("Removed orphan run directory: %s", entry.name)
                        removed.append(entry.name)
                    except OSError as e:
                        logger.warning("Failed to remove orphan run directory %s: %s", entry.name, e)

        if not removed and not missing:
            logger.info("No old runs to clean up")
        return removed
