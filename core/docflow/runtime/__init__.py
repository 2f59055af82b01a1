"""Per-run log persistence: node details as JSONL, one summary per run."""

from docflow.runtime.runtime_log_schemas import NodeDetail, RunDetailsLog, RunSummaryLog
from docflow.runtime.runtime_log_store import RuntimeLogStore
from docflow.runtime.runtime_logger import RuntimeLogger

__all__ = [
    "NodeDetail",
    "RunDetailsLog",
    "RunSummaryLog",
    "RuntimeLogStore",
    "RuntimeLogger",
]
