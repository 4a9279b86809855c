"""Versioned run records kept in the runs manifest."""

from __future__ import annotations

from pathlib import Path
from typing import NamedTuple, Optional

from pydantic import BaseModel


class RunMetadata(BaseModel):
    run_id: str  # YYYYMMDD_HHMMSS[_name]
    timestamp: float  # epoch seconds
    name: Optional[str] = None  # named runs are never removed by cleanup
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    pass_rate: float = 0.0
    duration: float = 0.0

    @property
    def is_named(self) -> bool:
        return bool(self.name)


class RunHandle(NamedTuple):
    run_id: str
    run_dir: Path
    latest_dir: Path
