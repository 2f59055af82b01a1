"""File-based storage for per-run logs.

Each run gets its own directory, so concurrent runs never share a file.
Node details are appended as JSONL the moment a node settles; the
summary is written once at the end because it aggregates the details.

Storage layout::

    {base_path}/
      runs/
        {run_id}/
          summary.json     # Level 1: written once at end
          details.jsonl    # Level 2: appended per node
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ValidationError

from docflow.runtime.runtime_log_schemas import NodeDetail, RunDetailsLog, RunSummaryLog

logger = logging.getLogger(__name__)


class RuntimeLogStore:
    """Persists run summaries and node details under ``base_path/runs``."""

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path)

    def _get_run_dir(self, run_id: str) -> Path:
        return self._base_path / "runs" / run_id

    # -------------------------------------------------------------------
    # Incremental write (sync, called from the executor)
    # -------------------------------------------------------------------

    def ensure_run_dir(self, run_id: str) -> None:
        self._get_run_dir(run_id).mkdir(parents=True, exist_ok=True)

    def append_node_detail(self, run_id: str, detail: NodeDetail) -> None:
        """Append one JSONL line to details.jsonl."""
        path = self._get_run_dir(run_id) / "details.jsonl"
        line = json.dumps(detail.model_dump(), ensure_ascii=False) + "\n"
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)

    def read_node_details_sync(self, run_id: str) -> list[NodeDetail]:
        """Read details.jsonl back. Skips corrupt lines."""
        return _read_jsonl_as_models(self._get_run_dir(run_id) / "details.jsonl", NodeDetail)

    # -------------------------------------------------------------------
    # Summary write (async, called from end_run)
    # -------------------------------------------------------------------

    async def save_summary(self, run_id: str, summary: RunSummaryLog) -> None:
        run_dir = self._get_run_dir(run_id)
        await asyncio.to_thread(run_dir.mkdir, parents=True, exist_ok=True)
        await self._write_json(run_dir / "summary.json", summary.model_dump())

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    async def load_summary(self, run_id: str) -> RunSummaryLog | None:
        data = await self._read_json(self._get_run_dir(run_id) / "summary.json")
        return RunSummaryLog(**data) if data is not None else None

    async def load_details(self, run_id: str) -> RunDetailsLog | None:
        path = self._get_run_dir(run_id) / "details.jsonl"

        def _read() -> RunDetailsLog | None:
            if not path.exists():
                return None
            return RunDetailsLog(run_id=run_id, nodes=_read_jsonl_as_models(path, NodeDetail))

        return await asyncio.to_thread(_read)

    async def list_runs(self, status: str = "", limit: int = 20) -> list[RunSummaryLog]:
        """Load summaries newest first. Runs without summary.json show as in_progress."""
        run_ids = await asyncio.to_thread(self._scan_run_dirs)
        summaries: list[RunSummaryLog] = []

        for run_id in run_ids:
            summary = await self.load_summary(run_id)
            if summary is None:
                summary = RunSummaryLog(
                    run_id=run_id,
                    status="in_progress",
                    started_at=_infer_started_at(run_id),
                )
            if status and summary.status != status:
                continue
            summaries.append(summary)

        summaries.sort(key=lambda s: s.started_at, reverse=True)
        return summaries[:limit]

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _scan_run_dirs(self) -> list[str]:
        runs_dir = self._base_path / "runs"
        if not runs_dir.exists():
            return []
        return [d.name for d in runs_dir.iterdir() if d.is_dir()]

    @staticmethod
    async def _write_json(path: Path, data: dict) -> None:
        """Write JSON atomically: write to .tmp then replace."""
        tmp = path.with_suffix(".tmp")
        content = json.dumps(data, indent=2, ensure_ascii=False)

        def _write() -> None:
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)

    @staticmethod
    async def _read_json(path: Path) -> dict | None:
        """Read a JSON file. None if missing or corrupt."""

        def _read() -> dict | None:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Failed to read %s: %s", path, e)
                return None

        return await asyncio.to_thread(_read)


def _read_jsonl_as_models(path: Path, model_cls: type[BaseModel]) -> list:
    """Parse a JSONL file into model instances, skipping blank and corrupt lines."""
    results = []
    if not path.exists():
        return results
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    results.append(model_cls(**json.loads(line)))
                except (json.JSONDecodeError, ValidationError, TypeError) as e:
                    logger.warning("Skipping corrupt JSONL line in %s: %s", path, e)
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
    return results


def _infer_started_at(run_id: str) -> str:
    """Best-effort ISO timestamp from a run_id like '20250101T120000_abc12345'."""
    try:
        dt = datetime.strptime(run_id.split("_")[0], "%Y%m%dT%H%M%S").replace(tzinfo=UTC)
        return dt.isoformat()
    except (ValueError, IndexError):
        return ""
