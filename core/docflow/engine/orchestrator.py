"""
Orchestrator - the entry point for processing one document.

A run walks ``idle → selecting → planning → executing → aggregating →
done``. Any exception escaping that pipeline (per-node failures never do)
diverts the run to the legacy single-pass analyzer, whose result is
reshaped into the same AggregatedReport contract. If the legacy path
fails too, its exception propagates to the caller unchanged.

Example::

    catalog = build_document_catalog(LiteLLMInferenceProvider())
    orchestrator = Orchestrator(
        catalog,
        legacy_analyzer=LiteLLMLegacyAnalyzer(),
        feature_detector=LiteLLMFeatureDetector(document_feature_flags()),
    )
    report = await orchestrator.process(content, document_id="doc-1")
"""

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from docflow.config import OrchestratorConfig
from docflow.engine.aggregator import aggregate
from docflow.engine.executor import NodeExecutor
from docflow.engine.plan import ExecutionPlan, build_plan
from docflow.errors import PipelineError
from docflow.llm.provider import ContentPart, FeatureDetector, LegacyAnalyzer
from docflow.nodes.catalog import NodeCatalog
from docflow.nodes.node import ProgressSink, SharedState
from docflow.observability import trace_scope
from docflow.runtime.runtime_log_store import RuntimeLogStore
from docflow.runtime.runtime_logger import RuntimeLogger
from docflow.schemas.report import AggregatedReport, ErrorRecord, MultiNodeResults

logger = logging.getLogger(__name__)

LEGACY_NODE_NAME = "legacy-analysis"
NO_NODES_MESSAGE = "No specialized processing required"
FALLBACK_MESSAGE = "Used legacy processing as fallback"

# Overall progress checkpoints; node execution is spread over 30-90
PROGRESS_START = 0
PROGRESS_SELECTED = 10
PROGRESS_PLANNED = 20
PROGRESS_EXECUTING = 30
PROGRESS_EXECUTION_SPAN = 60
PROGRESS_AGGREGATING = 90
PROGRESS_DONE = 100


class RunPhase(StrEnum):
    IDLE = "idle"
    SELECTING = "selecting"
    PLANNING = "planning"
    EXECUTING = "executing"
    AGGREGATING = "aggregating"
    FALLBACK = "fallback"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _Run:
    """Per-run bookkeeping. Never shared between runs."""

    run_id: str
    state: SharedState
    on_phase: Callable[[RunPhase], None] | None = None
    phase: RunPhase = RunPhase.IDLE
    phases: list[RunPhase] = field(default_factory=list)
    last_progress: float = 0.0
    started: float = field(default_factory=time.monotonic)

    def enter(self, phase: RunPhase) -> None:
        logger.debug(f"Run {self.run_id}: {self.phase} → {phase}")
        self.phase = phase
        self.phases.append(phase)
        if self.on_phase is not None:
            self.on_phase(phase)

    def progress(self, stage: str, percent: float, message: str) -> None:
        # Overall progress never moves backwards, including on the fallback path
        self.last_progress = max(self.last_progress, min(percent, PROGRESS_DONE))
        self.state.emit_progress(stage, self.last_progress, message)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


class Orchestrator:
    """
    Runs documents through a node catalog.

    The catalog and collaborators are injected, so independent
    orchestrators (one per server, one per test) share nothing.
    """

    def __init__(
        self,
        catalog: NodeCatalog,
        config: OrchestratorConfig | None = None,
        legacy_analyzer: LegacyAnalyzer | None = None,
        feature_detector: FeatureDetector | None = None,
        log_store: RuntimeLogStore | None = None,
        on_phase: Callable[[RunPhase], None] | None = None,
    ):
        self.catalog = catalog
        self.config = config or OrchestratorConfig()
        self.legacy_analyzer = legacy_analyzer
        self.feature_detector = feature_detector
        self.log_store = log_store
        self.on_phase = on_phase

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process(
        self,
        content: Sequence[ContentPart] | str,
        document_id: str = "",
        language: str = "English",
        on_progress: ProgressSink | None = None,
        options: dict[str, Any] | None = None,
    ) -> AggregatedReport:
        """Detect features in ``content`` and run the matching nodes."""
        if isinstance(content, str):
            content = [{"type": "text", "text": content}]

        flags: dict[str, bool] | None = None
        if self.feature_detector is not None:
            try:
                flags = await self.feature_detector.detect(content)
            except Exception as e:
                # Missing flags route the run to the fallback path
                logger.error(f"Feature detection failed for document '{document_id}': {e}")

        state = SharedState(
            content=tuple(content),
            feature_flags=flags,
            language=language,
            document_id=document_id,
            options=options or {},
            progress=on_progress,
        )
        return await self.run_with_fallback(state)

    async def run_with_fallback(self, state: SharedState) -> AggregatedReport:
        """
        Run selection → planning → execution → aggregation for ``state``.

        Raises:
            PipelineError: the pipeline failed and fallback is disabled
                or no legacy analyzer is configured
            Exception: whatever the legacy analyzer raised, unchanged
        """
        run_logger = self._start_run_logger(state.document_id)
        run_id = run_logger.run_id if run_logger else _new_run_id()
        run = _Run(run_id=run_id, state=state, on_phase=self.on_phase)

        trace = {"run_id": run_id}
        if state.document_id:
            trace["document_id"] = state.document_id

        with trace_scope(**trace):
            try:
                report, plan = await self._run_pipeline(run, run_logger)
            except Exception as e:
                if not self.config.fallback_to_legacy or self.legacy_analyzer is None:
                    run.enter(RunPhase.FAILED)
                    await self._end_run(run_logger, "failure", run)
                    if isinstance(e, PipelineError):
                        raise
                    raise PipelineError(f"Multi-node pipeline failed: {e}") from e

                logger.error(
                    f"Multi-node pipeline failed during {run.phase}, "
                    f"falling back to legacy analysis: {e}",
                    exc_info=not isinstance(e, PipelineError),
                )
                run.enter(RunPhase.FALLBACK)
                try:
                    report = await self._fallback(run, cause=e)
                except Exception:
                    run.enter(RunPhase.FAILED)
                    logger.error("Legacy analysis failed; giving up on this document")
                    await self._end_run(run_logger, "failure", run)
                    raise
                run.enter(RunPhase.DONE)
                await self._end_run(run_logger, "fallback", run, node_path=[LEGACY_NODE_NAME])
                return report

            run.enter(RunPhase.DONE)
            status = "degraded" if report.errors else "success"
            await self._end_run(
                run_logger,
                status,
                run,
                node_path=plan.execution_order,
                parallel_groups=len(plan.parallel_groups),
            )
            return report

    run = run_with_fallback

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(
        self, run: _Run, run_logger: RuntimeLogger | None
    ) -> tuple[AggregatedReport, ExecutionPlan]:
        state = run.state

        run.enter(RunPhase.SELECTING)
        run.progress("selecting", PROGRESS_START, "Selecting processing nodes")
        if state.feature_flags is None:
            raise PipelineError("No feature flags available for node selection")

        selected = self.catalog.select(state.feature_flags)
        logger.info(
            f"Selected {len(selected)} of {len(self.catalog)} node(s): "
            f"{[n.name for n in selected]}",
            extra={"event": "nodes_selected"},
        )
        run.progress("selecting", PROGRESS_SELECTED, f"Selected {len(selected)} node(s)")

        run.enter(RunPhase.PLANNING)
        plan = build_plan(selected)
        run.progress(
            "planning",
            PROGRESS_PLANNED,
            f"Planned {len(plan.parallel_groups)} parallel group(s)",
        )

        if plan.is_empty:
            run.enter(RunPhase.AGGREGATING)
            report = AggregatedReport(
                token_usage=state.token_usage,
                multi_node_results=MultiNodeResults(
                    execution_time=run.elapsed_ms,
                    execution_stats=plan.stats(self.config.max_concurrent_nodes),
                    message=NO_NODES_MESSAGE,
                ),
            )
            run.progress("complete", PROGRESS_DONE, NO_NODES_MESSAGE)
            return report, plan

        run.enter(RunPhase.EXECUTING)

        def on_node_progress(stage: str, percent: float, message: str) -> None:
            run.progress(
                stage, PROGRESS_EXECUTING + percent * PROGRESS_EXECUTION_SPAN / 100, message
            )

        executor = NodeExecutor(self.config, runtime_logger=run_logger)
        result = await executor.execute(plan, state, on_node_progress)

        run.enter(RunPhase.AGGREGATING)
        run.progress("aggregating", PROGRESS_AGGREGATING, "Aggregating node results")
        report = aggregate(
            result,
            plan,
            elapsed_ms=run.elapsed_ms,
            max_concurrent_nodes=self.config.max_concurrent_nodes,
        )
        run.progress(
            "complete",
            PROGRESS_DONE,
            f"Processed {plan.total_nodes} node(s), {len(report.errors)} error(s)",
        )
        return report, plan

    async def _fallback(self, run: _Run, cause: BaseException) -> AggregatedReport:
        """Run the legacy analyzer and reshape its result into the report contract."""
        state = run.state
        run.progress("fallback", PROGRESS_SELECTED, "Using legacy analysis")

        legacy = await self.legacy_analyzer.analyze(state.text, state.language)

        token_usage = dict(legacy.token_usage or {"total": 0})
        total = token_usage.get("total", 0)
        report = AggregatedReport(
            sections={
                self.config.legacy_field: {
                    "content": legacy.content,
                    "tokenUsage": token_usage,
                    "provider": LEGACY_NODE_NAME,
                }
            },
            token_usage=state.token_usage.with_usage(
                LEGACY_NODE_NAME, total if isinstance(total, int) else 0
            ),
            errors=[
                ErrorRecord(node="multi-node-pipeline", error=str(cause) or type(cause).__name__)
            ],
            multi_node_results=MultiNodeResults(
                processed_nodes=[LEGACY_NODE_NAME],
                successful_nodes=1,
                failed_nodes=0,
                execution_time=run.elapsed_ms,
                parallel_groups=1,
                message=FALLBACK_MESSAGE,
            ),
        )
        run.progress("complete", PROGRESS_DONE, "Legacy analysis completed")
        return report

    # ------------------------------------------------------------------
    # Run logging
    # ------------------------------------------------------------------

    def _start_run_logger(self, document_id: str) -> RuntimeLogger | None:
        if self.log_store is None:
            return None
        run_logger = RuntimeLogger(self.log_store)
        try:
            run_logger.start_run(document_id=document_id)
        except OSError as e:
            logger.warning(f"Run logging disabled for this run: {e}")
            return None
        return run_logger

    async def _end_run(
        self,
        run_logger: RuntimeLogger | None,
        status: str,
        run: _Run,
        node_path: list[str] | None = None,
        parallel_groups: int = 0,
    ) -> None:
        logger.info(
            f"Run {run.run_id} finished: {status} in {run.elapsed_ms}ms",
            extra={"event": "run_finished", "latency_ms": run.elapsed_ms},
        )
        if run_logger is not None:
            await run_logger.end_run(
                status=status,
                duration_ms=run.elapsed_ms,
                node_path=node_path,
                parallel_groups=parallel_groups,
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Registered nodes and effective configuration."""
        main = self.catalog.main_report_node()
        return {
            "totalNodes": len(self.catalog),
            "registeredNodes": self.catalog.names(),
            "mainReportNode": main.name if main else None,
            "targetConflicts": self.catalog.target_conflicts(),
            "config": {
                "enableParallelExecution": self.config.enable_parallel_execution,
                "maxConcurrentNodes": self.config.max_concurrent_nodes,
                "timeoutPerNode": self.config.timeout_per_node,
                "fallbackToLegacy": self.config.fallback_to_legacy,
                "strictTargetFields": self.config.strict_target_fields,
            },
            "hasLegacyAnalyzer": self.legacy_analyzer is not None,
            "hasFeatureDetector": self.feature_detector is not None,
        }


def _new_run_id() -> str:
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
    return f"{ts}_{uuid.uuid4().hex[:8]}"

