"""Execution planning: selected nodes → ordered parallel groups.

Groups are keyed by priority tier, ascending: tier 1 runs before tier 2.
Within a group the input (catalog) order is kept, which makes the plan
deterministic, but the executor runs group members concurrently and
nothing may rely on their relative order.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from itertools import groupby
from typing import Any

from docflow.errors import PipelineError
from docflow.nodes.node import NodeDefinition


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered parallel groups plus a flat order used for bookkeeping only."""

    parallel_groups: tuple[tuple[NodeDefinition, ...], ...] = ()

    @property
    def execution_order(self) -> list[str]:
        """Group-major flattening of node names."""
        return [node.name for group in self.parallel_groups for node in group]

    @property
    def total_nodes(self) -> int:
        return sum(len(group) for group in self.parallel_groups)

    @property
    def priorities(self) -> list[int]:
        return [group[0].priority for group in self.parallel_groups]

    @property
    def is_empty(self) -> bool:
        return not self.parallel_groups

    def structure(self) -> list[list[str]]:
        """Group structure as node names, e.g. ``[["a", "b"], ["c"]]``."""
        return [[node.name for node in group] for group in self.parallel_groups]

    def stats(self, max_concurrent_nodes: int | None = None) -> dict[str, Any]:
        """Plan shape for telemetry and ``multiNodeResults.executionStats``."""
        sizes = [len(group) for group in self.parallel_groups]
        stats: dict[str, Any] = {
            "totalNodes": self.total_nodes,
            "parallelGroups": len(sizes),
            "maxGroupSize": max(sizes, default=0),
            "nodesPerPriority": {
                str(group[0].priority): len(group) for group in self.parallel_groups
            },
        }
        if max_concurrent_nodes is not None:
            # Number of concurrency "waves" if every node took equal time
            stats["estimatedWaves"] = sum(-(-size // max_concurrent_nodes) for size in sizes)
        return stats


def build_plan(selected: Sequence[NodeDefinition]) -> ExecutionPlan:
    """
    Group selected nodes by priority tier.

    Raises:
        PipelineError: the same node name appears twice
    """
    seen: set[str] = set()
    for node in selected:
        if node.name in seen:
            raise PipelineError(f"Node '{node.name}' selected more than once")
        seen.add(node.name)

    # sorted() is stable, so catalog order survives inside each tier
    ordered = sorted(selected, key=lambda node: node.priority)
    groups = tuple(tuple(group) for _, group in groupby(ordered, key=lambda node: node.priority))
    return ExecutionPlan(parallel_groups=groups)
