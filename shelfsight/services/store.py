from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from shelfsight.pipeline.types import AnalysisResult

logger = logging.getLogger(__name__)


@dataclass
class StoredAnalysis:
    analysis_id: str
    results: list[AnalysisResult]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_records(self) -> list[dict[str, Any]]:
        return [result.to_record() for result in self.results]

    def to_json(self) -> str:
        return json.dumps(self.to_records())


class ResultStore:
    """Keeps finished batches by id, optionally mirrored as JSON files."""

    def __init__(self, results_dir: str | Path | None = None) -> None:
        self._analyses: dict[str, StoredAnalysis] = {}
        self._lock = asyncio.Lock()
        self._results_dir = Path(results_dir).expanduser() if results_dir else None

    async def save(self, results: list[AnalysisResult]) -> StoredAnalysis:
        stored = StoredAnalysis(analysis_id=uuid.uuid4().hex, results=list(results))
        async with self._lock:
            self._analyses[stored.analysis_id] = stored

        if self._results_dir is not None:
            await asyncio.to_thread(self._write, stored)
        return stored

    async def get(self, analysis_id: str) -> StoredAnalysis | None:
        async with self._lock:
            return self._analyses.get(analysis_id)

    async def count(self) -> int:
        async with self._lock:
            return len(self._analyses)

    def _write(self, stored: StoredAnalysis) -> None:
        if self._results_dir is None:
            return
        self._results_dir.mkdir(parents=True, exist_ok=True)
        path = self._results_dir / f"{stored.analysis_id}.json"
        path.write_text(stored.to_json(), encoding="utf-8")
        logger.info("Persisted %d result(s) to %s", len(stored.results), path)
