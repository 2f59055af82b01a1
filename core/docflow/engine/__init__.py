"""Planning, execution, aggregation and the fallback-wrapped orchestrator."""

from docflow.engine.aggregator import aggregate
from docflow.engine.executor import ExecutionResult, NodeExecutor, NodeOutcome
from docflow.engine.orchestrator import Orchestrator, RunPhase
from docflow.engine.plan import ExecutionPlan, build_plan

__all__ = [
    "ExecutionPlan",
    "build_plan",
    "NodeExecutor",
    "NodeOutcome",
    "ExecutionResult",
    "aggregate",
    "Orchestrator",
    "RunPhase",
]
