"""
docflow - dynamic multi-node document processing.

A document's detected feature flags select processing nodes from a
catalog; the selected nodes run in priority-ordered parallel groups and
their outputs are merged into one report. If the pipeline fails as a
whole, a legacy single-pass analyzer produces the report instead.

Typical use::

    from docflow import Orchestrator, SharedState, build_document_catalog
    from docflow.llm import LiteLLMInferenceProvider, LiteLLMLegacyAnalyzer

    inference = LiteLLMInferenceProvider()
    orchestrator = Orchestrator(
        build_document_catalog(inference),
        legacy_analyzer=LiteLLMLegacyAnalyzer(inference),
    )
    report = await orchestrator.run(SharedState.from_text(text, flags))
"""

from docflow.config import OrchestratorConfig, RuntimeConfig
from docflow.engine import (
    ExecutionPlan,
    NodeExecutor,
    Orchestrator,
    RunPhase,
    aggregate,
    build_plan,
)
from docflow.errors import (
    ConfigError,
    DocflowError,
    NodeConfigError,
    NodeTimeoutError,
    PipelineError,
)
from docflow.nodes import (
    NodeCatalog,
    NodeConfig,
    NodeDefinition,
    OutputMapping,
    PartialResult,
    ProcessingNode,
    SharedState,
    build_document_catalog,
    create_node,
    select_nodes,
)
from docflow.schemas import AggregatedReport, ErrorRecord, MultiNodeResults, TokenUsage

__all__ = [
    # Configuration
    "OrchestratorConfig",
    "RuntimeConfig",
    # Nodes
    "NodeConfig",
    "NodeDefinition",
    "OutputMapping",
    "SharedState",
    "PartialResult",
    "ProcessingNode",
    "NodeCatalog",
    "create_node",
    "select_nodes",
    "build_document_catalog",
    # Engine
    "ExecutionPlan",
    "build_plan",
    "NodeExecutor",
    "aggregate",
    "Orchestrator",
    "RunPhase",
    # Report
    "AggregatedReport",
    "ErrorRecord",
    "MultiNodeResults",
    "TokenUsage",
    # Errors
    "DocflowError",
    "ConfigError",
    "NodeConfigError",
    "NodeTimeoutError",
    "PipelineError",
]
