"""Output contract models shared by the engine and the fallback path."""

from docflow.schemas.report import (
    RESERVED_REPORT_KEYS,
    AggregatedReport,
    ErrorRecord,
    MultiNodeResults,
    TokenUsage,
)

__all__ = [
    "AggregatedReport",
    "ErrorRecord",
    "MultiNodeResults",
    "TokenUsage",
    "RESERVED_REPORT_KEYS",
]
