"""RuntimeLogger: captures per-node outcomes during a document run.

The orchestrator creates one logger per run when a ``RuntimeLogStore`` is
configured and hands it to the executor. Each ``log_node_complete()`` call
appends to details.jsonl immediately; only the summary is written at
``end_run()`` since it aggregates the details.

Usage::

    store = RuntimeLogStore(Path(log_dir))
    orchestrator = Orchestrator(catalog, log_store=store, ...)
    # every run now leaves runs/{run_id}/summary.json + details.jsonl

Safety: ``end_run()`` catches all exceptions internally and logs them via
the Python logger. Logging failure must never kill a successful run.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime

from docflow.runtime.runtime_log_schemas import NodeDetail, RunSummaryLog
from docflow.runtime.runtime_log_store import RuntimeLogStore

logger = logging.getLogger(__name__)

# Thresholds above which a node is flagged for attention
SLOW_NODE_MS = 30_000
HIGH_TOKEN_USAGE = 50_000


class RuntimeLogger:
    """Captures node outcomes for a single run.

    Thread-safe: uses a lock around file appends since nodes of a group
    settle concurrently.
    """

    def __init__(self, store: RuntimeLogStore) -> None:
        self._store = store
        self._run_id = ""
        self._document_id = ""
        self._started_at = ""
        self._lock = threading.Lock()

    @property
    def run_id(self) -> str:
        return self._run_id

    def start_run(self, document_id: str = "", run_id: str = "") -> str:
        """Start a new run and create its directory. Returns the run_id."""
        if run_id:
            self._run_id = run_id
        else:
            ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
            self._run_id = f"{ts}_{uuid.uuid4().hex[:8]}"

        self._document_id = document_id
        self._started_at = datetime.now(UTC).isoformat()
        self._store.ensure_run_dir(self._run_id)
        return self._run_id

    def log_node_complete(
        self,
        node_name: str,
        success: bool,
        priority: int = 0,
        group_index: int = 0,
        has_data: bool = False,
        error: str | None = None,
        stacktrace: str = "",
        timed_out: bool = False,
        tokens_used: int = 0,
        latency_ms: int = 0,
        confidence: float | None = None,
        provider: str = "",
    ) -> None:
        """Record the outcome of one node. Synchronous, appends one JSONL line."""
        needs_attention = not success
        attention_reasons: list[str] = []
        if not success and error:
            attention_reasons.append(f"Node {node_name} failed: {error}")

        if latency_ms > SLOW_NODE_MS:
            needs_attention = True
            attention_reasons.append(f"High latency: {latency_ms}ms")

        if tokens_used > HIGH_TOKEN_USAGE:
            needs_attention = True
            attention_reasons.append(f"High token usage: {tokens_used}")

        detail = NodeDetail(
            node_name=node_name,
            priority=priority,
            group_index=group_index,
            success=success,
            has_data=has_data,
            error=error,
            stacktrace=stacktrace,
            timed_out=timed_out,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
            confidence=confidence,
            provider=provider,
            needs_attention=needs_attention,
            attention_reasons=attention_reasons,
            run_id=self._run_id,
        )

        try:
            with self._lock:
                self._store.append_node_detail(self._run_id, detail)
        except Exception:
            logger.exception(
                "Failed to log node %s for run_id=%s (non-fatal)",
                node_name,
                self._run_id,
            )

    async def end_run(
        self,
        status: str,
        duration_ms: int,
        node_path: list[str] | None = None,
        parallel_groups: int = 0,
    ) -> None:
        """Read details back, aggregate them into the summary, write summary.json.

        Catches all exceptions internally; logging failure must not
        propagate to the caller.
        """
        try:
            node_details = self._store.read_node_details_sync(self._run_id)

            needs_attention = any(nd.needs_attention for nd in node_details)
            attention_reasons: list[str] = []
            for nd in node_details:
                attention_reasons.extend(nd.attention_reasons)

            summary = RunSummaryLog(
                run_id=self._run_id,
                document_id=self._document_id,
                status=status,
                total_nodes_executed=len(node_details),
                node_path=node_path or [],
                successful_nodes=sum(1 for nd in node_details if nd.success),
                failed_nodes=sum(1 for nd in node_details if not nd.success),
                parallel_groups=parallel_groups,
                total_tokens=sum(nd.tokens_used for nd in node_details),
                needs_attention=needs_attention,
                attention_reasons=attention_reasons,
                started_at=self._started_at,
                duration_ms=duration_ms,
            )

            await self._store.save_summary(self._run_id, summary)
            logger.info(
                "Runtime logs saved: run_id=%s status=%s nodes=%d",
                self._run_id,
                status,
                len(node_details),
            )
        except Exception:
            logger.exception(
                "Failed to save runtime logs for run_id=%s (non-fatal)",
                self._run_id,
            )
