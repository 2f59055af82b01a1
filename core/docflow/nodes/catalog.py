"""Node catalog and trigger-based selection.

A ``NodeCatalog`` is an explicit, caller-owned registry: one per server,
one per test. Registration order is preserved and is the order
``select_nodes`` returns, which keeps planning deterministic.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from docflow.errors import NodeConfigError
from docflow.nodes.node import NodeDefinition, OutputMapping

logger = logging.getLogger(__name__)


class NodeCatalog:
    """
    Registry of processing nodes.

    Example:
        catalog = NodeCatalog()
        catalog.register_all(NodeFactory(inference=provider).create_all(configs))
        selected = catalog.select({"isMedical": True, "hasECG": False})
    """

    def __init__(
        self,
        nodes: Iterable[NodeDefinition] | None = None,
        strict_target_fields: bool = False,
    ):
        self._nodes: dict[str, NodeDefinition] = {}
        self._targets: dict[str, list[str]] = {}
        self.strict_target_fields = strict_target_fields
        if nodes is not None:
            self.register_all(nodes)

    def register(self, node: NodeDefinition) -> None:
        """
        Add a node to the catalog.

        Raises:
            NodeConfigError: duplicate name, a second main-report node, or
                (with ``strict_target_fields``) a duplicate target field
        """
        if node.name in self._nodes:
            raise NodeConfigError(f"Node '{node.name}' is already registered")

        if node.output_mapping.is_main_report:
            main = self.main_report_node()
            if main is not None:
                raise NodeConfigError(
                    f"Node '{node.name}' is marked as main report but '{main.name}' already is"
                )

        target = node.target_field
        owners = self._targets.get(target, [])
        if owners and not node.output_mapping.is_main_report:
            if self.strict_target_fields:
                raise NodeConfigError(
                    f"Node '{node.name}' writes report field '{target}' "
                    f"already owned by {owners}"
                )
            logger.warning(
                f"Report field '{target}' is written by {owners} and '{node.name}'; "
                "the later node in execution order wins"
            )

        self._nodes[node.name] = node
        self._targets.setdefault(target, []).append(node.name)
        logger.debug(f"Registered node '{node.name}' (priority {node.priority})")

    def register_all(self, nodes: Iterable[NodeDefinition]) -> None:
        for node in nodes:
            self.register(node)

    def get(self, name: str) -> NodeDefinition | None:
        return self._nodes.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[NodeDefinition]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def names(self) -> list[str]:
        return list(self._nodes)

    def main_report_node(self) -> NodeDefinition | None:
        return next((n for n in self._nodes.values() if n.output_mapping.is_main_report), None)

    def by_priority(self, priority: int) -> list[NodeDefinition]:
        return [n for n in self._nodes.values() if n.priority == priority]

    def by_trigger(self, flag: str) -> list[NodeDefinition]:
        return [n for n in self._nodes.values() if flag in n.trigger_flags]

    def output_mappings(self) -> dict[str, OutputMapping]:
        return {name: node.output_mapping for name, node in self._nodes.items()}

    def target_conflicts(self) -> dict[str, list[str]]:
        """Report fields claimed by more than one non-main node."""
        conflicts = {}
        for target, owners in self._targets.items():
            specialised = [
                name for name in owners if not self._nodes[name].output_mapping.is_main_report
            ]
            if len(specialised) > 1:
                conflicts[target] = specialised
        return conflicts

    def select(self, flags: Mapping[str, Any] | None) -> list[NodeDefinition]:
        return select_nodes(self, flags)


def select_nodes(
    catalog: Iterable[NodeDefinition], flags: Mapping[str, Any] | None
) -> list[NodeDefinition]:
    """Nodes with at least one trigger flag set to True, in registration order."""
    return [node for node in catalog if node.selects(flags)]
