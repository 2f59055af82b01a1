"""Pydantic models for per-run logs.

Level 1 - SUMMARY:  one per document run: status, counts, tokens, timing
Level 2 - DETAILS:  one per node invocation: outcome, latency, tokens, error
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Level 2: Per-node details
# ---------------------------------------------------------------------------


class NodeDetail(BaseModel):
    """Outcome of one node invocation."""

    node_name: str
    priority: int = 0
    group_index: int = 0
    success: bool = True
    has_data: bool = False
    error: str | None = None
    stacktrace: str = ""
    timed_out: bool = False
    tokens_used: int = 0
    latency_ms: int = 0
    confidence: float | None = None
    provider: str = ""
    needs_attention: bool = False
    attention_reasons: list[str] = Field(default_factory=list)
    run_id: str = ""


# ---------------------------------------------------------------------------
# Level 1: Run summary
# ---------------------------------------------------------------------------


class RunSummaryLog(BaseModel):
    """Run-level summary written once the report has been produced."""

    run_id: str
    document_id: str = ""
    status: str = ""  # "success"|"degraded"|"fallback"|"failure"|"in_progress"
    total_nodes_executed: int = 0
    node_path: list[str] = Field(default_factory=list)
    successful_nodes: int = 0
    failed_nodes: int = 0
    parallel_groups: int = 0
    total_tokens: int = 0
    needs_attention: bool = False
    attention_reasons: list[str] = Field(default_factory=list)
    started_at: str = ""  # ISO timestamp
    duration_ms: int = 0


class RunDetailsLog(BaseModel):
    """Level 2 container: all node details for a run."""

    run_id: str
    nodes: list[NodeDetail] = Field(default_factory=list)
