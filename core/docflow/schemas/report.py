"""Pydantic models for the output contract of a document run.

Both the multi-node path and the legacy fallback path return an
``AggregatedReport``; ``to_dict()`` flattens it into the camelCase shape
downstream consumers read (report sections at the top level next to
``tokenUsage``, ``errors`` and ``multiNodeResults``).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorRecord(_CamelModel):
    """One per-node failure. Error records accumulate for the whole run."""

    node: str
    error: str
    timestamp: str = Field(default_factory=utc_now_iso)


class TokenUsage(_CamelModel):
    """Token counters for a run: a running total plus a per-node breakdown."""

    total: int = 0
    nodes: dict[str, int] = Field(default_factory=dict)

    def with_usage(self, node: str, tokens: int) -> TokenUsage:
        """Return a copy with ``tokens`` charged to ``node``."""
        if tokens <= 0:
            return self.model_copy(deep=True)
        nodes = dict(self.nodes)
        nodes[node] = nodes.get(node, 0) + tokens
        return TokenUsage(total=self.total + tokens, nodes=nodes)


class MultiNodeResults(_CamelModel):
    """Execution summary attached to every report."""

    processed_nodes: list[str] = Field(default_factory=list)
    successful_nodes: int = 0
    failed_nodes: int = 0
    execution_time: int = 0  # milliseconds
    parallel_groups: int = 0
    execution_stats: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    # Report fields written by more than one node this run: {field: [node, ...]}
    field_conflicts: dict[str, list[str]] = Field(default_factory=dict)
    # Nodes whose payload had to be reshaped before merging
    normalizations: list[str] = Field(default_factory=list)


class AggregatedReport(BaseModel):
    """Unified result of a document run.

    ``sections`` holds the merged node payloads: the main-report node's
    fields at the top level, each specialised node under its target field.
    A missing section means "not attempted or not found", never ``None``.
    """

    sections: dict[str, Any] = Field(default_factory=dict)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    errors: list[ErrorRecord] = Field(default_factory=list)
    multi_node_results: MultiNodeResults = Field(default_factory=MultiNodeResults)

    def get(self, field: str, default: Any = None) -> Any:
        return self.sections.get(field, default)

    def __contains__(self, field: str) -> bool:
        return field in self.sections

    @property
    def is_fallback(self) -> bool:
        return self.multi_node_results.processed_nodes == ["legacy-analysis"]

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the wire shape: sections plus run metadata."""
        return {
            **self.sections,
            "tokenUsage": self.token_usage.model_dump(by_alias=True),
            "errors": [e.model_dump(by_alias=True) for e in self.errors],
            "multiNodeResults": self.multi_node_results.model_dump(by_alias=True),
        }


# Keys the report reserves for run metadata; a main-report payload may not
# overwrite them when its fields are merged onto the top level.
RESERVED_REPORT_KEYS = frozenset({"report", "tokenUsage", "errors", "multiNodeResults"})
