"""Processing nodes: model, factory, catalog and the shipped document catalog."""

from docflow.nodes.catalog import NodeCatalog, select_nodes
from docflow.nodes.definitions import (
    DOCUMENT_NODE_CONFIGS,
    build_document_catalog,
    document_feature_flags,
)
from docflow.nodes.factory import (
    NodeConfig,
    NodeFactory,
    SchemaDrivenNode,
    calculate_confidence,
    create_node,
    load_node_configs,
)
from docflow.nodes.node import (
    FunctionNode,
    NodeDefinition,
    OutputMapping,
    PartialResult,
    ProcessingNode,
    ProgressSink,
    ResultMetadata,
    SharedState,
)
from docflow.nodes.terms import MedicalTermsNode

__all__ = [
    # Model
    "NodeDefinition",
    "OutputMapping",
    "SharedState",
    "PartialResult",
    "ResultMetadata",
    "ProcessingNode",
    "FunctionNode",
    "ProgressSink",
    # Factory
    "NodeConfig",
    "NodeFactory",
    "SchemaDrivenNode",
    "create_node",
    "calculate_confidence",
    "load_node_configs",
    # Catalog
    "NodeCatalog",
    "select_nodes",
    "DOCUMENT_NODE_CONFIGS",
    "build_document_catalog",
    "document_feature_flags",
    "MedicalTermsNode",
]
