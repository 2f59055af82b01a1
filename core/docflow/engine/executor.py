"""
Node Executor - runs an execution plan group by group.

Groups run strictly in order. Inside a group every node gets its own
asyncio task reading the same immutable snapshot; a semaphore caps how
many run at once. Once the whole group has settled, successful results
are folded into a new snapshot which the next group reads.

A node failure (exception or timeout) is recorded as an ErrorRecord and
never cancels its siblings or later groups.
"""

import asyncio
import logging
import time
import traceback
from dataclasses import dataclass, field
from typing import Any

from docflow.config import OrchestratorConfig
from docflow.engine.plan import ExecutionPlan
from docflow.errors import NodeTimeoutError
from docflow.nodes.node import NodeDefinition, PartialResult, ProgressSink, SharedState
from docflow.observability import trace_scope
from docflow.runtime.runtime_logger import RuntimeLogger
from docflow.schemas.report import ErrorRecord, utc_now_iso

logger = logging.getLogger(__name__)


@dataclass
class NodeOutcome:
    """How one node settled."""

    node: NodeDefinition
    group_index: int
    result: PartialResult | None = None
    error: str | None = None
    timed_out: bool = False
    latency_ms: int = 0
    # When the node failed, not when its group was merged
    failed_at: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ExecutionResult:
    """Final snapshot plus everything that happened along the way."""

    state: SharedState
    errors: list[ErrorRecord] = field(default_factory=list)
    outcomes: list[NodeOutcome] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def successful(self) -> list[NodeOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[NodeOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def results(self) -> dict[str, PartialResult]:
        """Successful results by node name."""
        return {o.node.name: o.result for o in self.outcomes if o.success and o.result}


class NodeExecutor:
    """Runs plans under the concurrency and timeout limits of a config."""

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        runtime_logger: RuntimeLogger | None = None,
    ):
        self.config = config or OrchestratorConfig()
        self.runtime_logger = runtime_logger

    async def execute(
        self,
        plan: ExecutionPlan,
        state: SharedState,
        on_progress: ProgressSink | None = None,
    ) -> ExecutionResult:
        """
        Run every group of ``plan`` against ``state``.

        Progress is reported as completed/total * 100 and reaches 100 once
        every node has settled.
        """
        start = time.monotonic()
        total = plan.total_nodes
        completed = 0
        result = ExecutionResult(state=state)

        # One ceiling for the whole run; sequential mode is a ceiling of 1
        limit = self.config.max_concurrent_nodes if self.config.enable_parallel_execution else 1
        semaphore = asyncio.Semaphore(limit)

        def node_settled(outcome: NodeOutcome) -> None:
            nonlocal completed
            completed += 1
            if on_progress is None or not total:
                return
            status = "completed" if outcome.success else "failed"
            try:
                on_progress(
                    "executing",
                    completed / total * 100,
                    f"{outcome.node.name} {status} ({completed}/{total})",
                )
            except Exception as e:
                logger.warning(f"Progress sink failed after {outcome.node.name} (ignored): {e}")

        for group_index, group in enumerate(plan.parallel_groups):
            logger.info(
                f"Group {group_index + 1}/{len(plan.parallel_groups)} "
                f"(priority {group[0].priority}): {[n.name for n in group]}",
                extra={"event": "group_started", "group": group_index},
            )
            snapshot = result.state

            async def run_one(node: NodeDefinition, gi: int = group_index) -> NodeOutcome:
                async with semaphore:
                    outcome = await self._run_node(node, snapshot, gi)
                node_settled(outcome)
                return outcome

            if self.config.enable_parallel_execution:
                outcomes = await asyncio.gather(*(run_one(node) for node in group))
            else:
                outcomes = [await run_one(node) for node in group]

            # Single writer: the coordinator folds outcomes in plan order
            updates: list[tuple[str, PartialResult]] = []
            for outcome in outcomes:
                result.outcomes.append(outcome)
                if outcome.success and outcome.result is not None:
                    updates.append((outcome.node.name, outcome.result))
                else:
                    record = ErrorRecord(node=outcome.node.name, error=outcome.error or "")
                    if outcome.failed_at:
                        record.timestamp = outcome.failed_at
                    result.errors.append(record)
            result.state = snapshot.with_results(updates)

        result.elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"Executed {total} node(s): {len(result.successful)} succeeded, "
            f"{len(result.failed)} failed in {result.elapsed_ms}ms",
            extra={"event": "execution_finished", "latency_ms": result.elapsed_ms},
        )
        return result

    async def _run_node(
        self, node: NodeDefinition, state: SharedState, group_index: int
    ) -> NodeOutcome:
        timeout = node.timeout or self.config.timeout_per_node
        outcome = NodeOutcome(node=node, group_index=group_index)
        stacktrace = ""
        start = time.monotonic()

        with trace_scope(node=node.name):
            try:
                value: Any = await asyncio.wait_for(node.run(state), timeout=timeout)
                if not isinstance(value, PartialResult):
                    value = PartialResult(data=value)
                outcome.result = value
            except TimeoutError:
                outcome.error = str(NodeTimeoutError(node.name, timeout))
                outcome.timed_out = True
            except Exception as e:
                outcome.error = str(e) or type(e).__name__
                stacktrace = traceback.format_exc()

            if not outcome.success:
                outcome.failed_at = utc_now_iso()

            outcome.latency_ms = int((time.monotonic() - start) * 1000)

            if outcome.success:
                logger.info(
                    f"✓ {node.name} "
                    f"({'data' if outcome.result.has_data else 'no data'}, "
                    f"{outcome.latency_ms}ms)",
                    extra={
                        "event": "node_completed",
                        "latency_ms": outcome.latency_ms,
                        "tokens_used": outcome.result.metadata.tokens_used,
                    },
                )
            else:
                logger.error(
                    f"✗ {node.name} failed: {outcome.error}",
                    extra={"event": "node_failed", "latency_ms": outcome.latency_ms},
                )

        if self.runtime_logger:
            metadata = outcome.result.metadata if outcome.result else None
            self.runtime_logger.log_node_complete(
                node_name=node.name,
                success=outcome.success,
                priority=node.priority,
                group_index=group_index,
                has_data=bool(outcome.result and outcome.result.has_data),
                error=outcome.error,
                stacktrace=stacktrace,
                timed_out=outcome.timed_out,
                tokens_used=metadata.tokens_used if metadata else 0,
                latency_ms=outcome.latency_ms,
                confidence=metadata.confidence if metadata else None,
                provider=metadata.provider if metadata else "",
            )
        return outcome
