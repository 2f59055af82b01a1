"""
Node model - what a processing node is and what it sees.

A processing node is one unit of specialised extraction work. Nodes are
registered once in a ``NodeCatalog`` as immutable ``NodeDefinition``
entries and selected per document by their trigger flags.

Every node in a run receives the same read-only ``SharedState`` snapshot
and communicates only through the ``PartialResult`` it returns. The
executor folds results into a fresh snapshot after each parallel group,
so concurrently running nodes never write to shared state.
"""

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docflow.llm.provider import ContentPart, content_text
from docflow.schemas.report import TokenUsage

logger = logging.getLogger(__name__)

# Progress sink: (stage, percent 0-100, message). Fire-and-forget.
ProgressSink = Callable[[str, float, str], None]


class OutputMapping(BaseModel):
    """Where a node's payload lands in the aggregated report."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    target_field: str = Field(min_length=1, description="Report field the payload is written to")
    unwrap_field: str | None = Field(
        default=None, description="Nested key to lift out of the payload before writing"
    )
    is_main_report: bool = Field(
        default=False, description="Merge the payload onto the report's top level"
    )


@dataclass
class ResultMetadata:
    """Bookkeeping attached to every node result."""

    processing_time_ms: int = 0
    tokens_used: int = 0
    confidence: float | None = None
    provider: str = ""


@dataclass
class PartialResult:
    """Outcome of one node. ``data=None`` means the node ran and found nothing."""

    data: Any = None
    metadata: ResultMetadata = field(default_factory=ResultMetadata)

    @property
    def has_data(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class SharedState:
    """
    Read-mostly snapshot of a document run.

    ``feature_flags`` is None when detection never ran; the orchestrator
    treats that as a pipeline failure and falls back. ``results`` maps
    node names to payloads merged from completed groups.
    """

    content: tuple[ContentPart, ...] = ()
    feature_flags: Mapping[str, bool] | None = None
    language: str = "English"
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    results: Mapping[str, Any] = field(default_factory=dict)
    document_id: str = ""
    options: Mapping[str, Any] = field(default_factory=dict)
    progress: ProgressSink | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", tuple(self.content))
        if self.feature_flags is not None:
            object.__setattr__(self, "feature_flags", MappingProxyType(dict(self.feature_flags)))
        object.__setattr__(self, "results", MappingProxyType(dict(self.results)))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @classmethod
    def from_text(
        cls,
        text: str,
        feature_flags: Mapping[str, bool] | None = None,
        **kwargs: Any,
    ) -> "SharedState":
        return cls(content=({"type": "text", "text": text},), feature_flags=feature_flags, **kwargs)

    @property
    def text(self) -> str:
        return content_text(self.content)

    def true_flags(self) -> set[str]:
        return {name for name, value in (self.feature_flags or {}).items() if value is True}

    def with_results(self, updates: Sequence[tuple[str, PartialResult]]) -> "SharedState":
        """Return a new snapshot with ``updates`` folded in (later entries win)."""
        results = dict(self.results)
        token_usage = self.token_usage
        for node_name, result in updates:
            token_usage = token_usage.with_usage(node_name, result.metadata.tokens_used)
            if result.has_data:
                results[node_name] = result.data
        return replace(self, results=results, token_usage=token_usage)

    def emit_progress(self, stage: str, percent: float, message: str) -> None:
        if self.progress is None:
            return
        try:
            self.progress(stage, percent, message)
        except Exception as e:
            logger.warning(f"Progress sink failed at {stage} {percent:.0f}% (ignored): {e}")


class ProcessingNode(ABC):
    """Runnable part of a node: reads the snapshot, returns a PartialResult."""

    @abstractmethod
    async def run(self, state: SharedState) -> PartialResult:
        """Execute the node. Exceptions are recorded by the executor."""


class FunctionNode(ProcessingNode):
    """Wraps a plain function (sync or async) as a processing node.

    The function may return a PartialResult or a bare payload. Sync
    functions run in a worker thread.
    """

    def __init__(self, func: Callable[[SharedState], Any | Awaitable[Any]]):
        self.func = func
        self.is_async = inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
            getattr(func, "__call__", None)
        )

    async def run(self, state: SharedState) -> PartialResult:
        start = time.monotonic()
        if self.is_async:
            value = self.func(state)
        else:
            value = await asyncio.to_thread(self.func, state)
        if inspect.isawaitable(value):
            value = await value
        if isinstance(value, PartialResult):
            return value
        return PartialResult(
            data=value,
            metadata=ResultMetadata(processing_time_ms=int((time.monotonic() - start) * 1000)),
        )


@dataclass(frozen=True)
class NodeDefinition:
    """Immutable catalog entry. Created once, never mutated after registration."""

    name: str
    description: str
    trigger_flags: tuple[str, ...]
    priority: int
    output_mapping: OutputMapping
    node: ProcessingNode = field(compare=False, repr=False)
    # Per-node override of the executor timeout, in seconds
    timeout: float | None = None

    @property
    def target_field(self) -> str:
        return self.output_mapping.target_field

    def selects(self, flags: Mapping[str, Any] | None) -> bool:
        """True iff at least one trigger flag is literally ``True`` in ``flags``."""
        if not flags:
            return False
        return any(flags.get(flag) is True for flag in self.trigger_flags)

    async def run(self, state: SharedState) -> PartialResult:
        return await self.node.run(state)
