"""
Node factory - builds runnable nodes from declarative configuration.

Most task types need nothing but a ``NodeConfig``: a name, trigger
flags, a priority tier, a schema and an output mapping. The factory
pairs the config with the generic ``SchemaDrivenNode``, which hands the
schema and document to the inference collaborator and applies the
default enhancement and confidence heuristic. Task types that need more
supply a ``custom_validation`` hook or a hand-written ``ProcessingNode``.

Malformed configuration raises ``NodeConfigError`` here, at construction
time, so a bad catalog fails before any document is processed.
"""

import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from docflow.errors import NodeConfigError
from docflow.llm.provider import InferenceProvider
from docflow.nodes.node import (
    FunctionNode,
    NodeDefinition,
    OutputMapping,
    PartialResult,
    ProcessingNode,
    ResultMetadata,
    SharedState,
)

logger = logging.getLogger(__name__)

CustomValidator = Callable[[Any, SharedState], Any | Awaitable[Any]]

BASE_CONFIDENCE = 0.5
DOCUMENT_CONTEXT_KEY = "documentContext"


class NodeConfig(BaseModel):
    """
    Declarative record for one processing node.

    Example:
        NodeConfig(
            name="ecg-processing",
            description="ECG analysis using schema-driven extraction",
            schema_ref="ecg",
            triggers=["hasECG"],
            priority=2,
            output_mapping=OutputMapping(target_field="ecg"),
        )
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    description: str = ""
    triggers: list[str] = Field(min_length=1, description="Feature flags; any true selects the node")
    priority: int = Field(gt=0, strict=True, description="Tier; lower runs earlier")
    schema_ref: str = Field(default="", description="Key into the schema library")
    json_schema: dict[str, Any] | None = Field(
        default=None, description="Inline JSON schema; takes precedence over schema_ref"
    )
    timeout: float | None = Field(default=None, gt=0, description="Per-node timeout override (s)")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    output_mapping: OutputMapping | None = None
    custom_validation: CustomValidator | None = Field(default=None, exclude=True)

    @field_validator("triggers")
    @classmethod
    def _triggers_non_blank(cls, triggers: list[str]) -> list[str]:
        if any(not t or not t.strip() for t in triggers):
            raise ValueError("trigger flag names must be non-empty")
        return triggers

    @property
    def mapping(self) -> OutputMapping:
        """Explicit mapping, or one derived from the node name."""
        if self.output_mapping is not None:
            return self.output_mapping
        return OutputMapping(target_field=self.name.removesuffix("-processing"))


def _coerce_config(config: NodeConfig | Mapping[str, Any]) -> NodeConfig:
    if isinstance(config, NodeConfig):
        return config
    if not isinstance(config, Mapping):
        raise NodeConfigError(f"Unsupported node configuration type: {type(config).__name__}")
    try:
        return NodeConfig.model_validate(dict(config))
    except ValidationError as e:
        name = config.get("name", "<unnamed>")
        raise NodeConfigError(f"Invalid configuration for node '{name}': {e}") from e


def load_node_configs(path: str | Path) -> list[NodeConfig]:
    """Load a JSON list of node configuration records."""
    try:
        with open(path, encoding="utf-8") as f:
            records = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise NodeConfigError(f"Cannot read node configurations from {path}: {e}") from e
    if not isinstance(records, list):
        raise NodeConfigError(f"{path}: expected a JSON list of node configurations")
    return [_coerce_config(record) for record in records]


# ---------------------------------------------------------------------------
# Default behaviour shared by schema-driven nodes
# ---------------------------------------------------------------------------


def calculate_confidence(data: Any, triggers: Iterable[str]) -> float:
    """Completeness heuristic used when a node has no better signal."""
    if not isinstance(data, dict):
        return BASE_CONFIDENCE if data else 0.0

    confidence = BASE_CONFIDENCE
    if len(data) > 1:
        confidence += 0.1

    primary = next(iter(triggers), None)
    if primary is not None and data.get(primary) is True:
        confidence += 0.2

    structured = [
        key
        for key, value in data.items()
        if key != DOCUMENT_CONTEXT_KEY and isinstance(value, dict | list)
    ]
    confidence += min(len(structured) * 0.1, 0.2)

    return min(round(confidence, 4), 1.0)


def apply_default_enhancement(data: Any, state: SharedState, config: NodeConfig) -> Any:
    """Stamp processing metadata onto dict payloads. Other shapes pass through."""
    if not isinstance(data, dict):
        return data
    flags = state.feature_flags or {}
    document_type = flags.get("documentType")
    return {
        **data,
        DOCUMENT_CONTEXT_KEY: {
            "documentType": document_type
            if isinstance(document_type, str)
            else f"{config.mapping.target_field}_record",
            "language": state.language,
            "extractedFrom": "schema_driven_analysis",
            "processingTimestamp": datetime.now(UTC).isoformat(),
            "nodeId": config.name,
            "priority": config.priority,
        },
    }


def _is_empty(data: Any) -> bool:
    return data is None or (isinstance(data, dict | list) and len(data) == 0)


class SchemaDrivenNode(ProcessingNode):
    """Generic node: schema + content → inference → enhance → score."""

    def __init__(self, config: NodeConfig, schema: dict[str, Any], inference: InferenceProvider):
        self.config = config
        self.schema = schema
        self.inference = inference

    async def run(self, state: SharedState) -> PartialResult:
        start = time.monotonic()
        result = await self.inference.extract(
            self.schema,
            state.content,
            language=state.language,
            temperature=self.config.temperature,
        )

        data = result.data
        if _is_empty(data):
            logger.info(f"{self.config.name}: nothing found")
            data = None
        elif self.config.custom_validation is not None:
            data = self.config.custom_validation(data, state)
            if inspect.isawaitable(data):
                data = await data
        else:
            data = apply_default_enhancement(data, state, self.config)

        return PartialResult(
            data=data,
            metadata=ResultMetadata(
                processing_time_ms=int((time.monotonic() - start) * 1000),
                tokens_used=result.tokens_used,
                confidence=calculate_confidence(data, self.config.triggers)
                if data is not None
                else None,
                provider=result.provider or self.inference.name,
            ),
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def _generic_schema(config: NodeConfig) -> dict[str, Any]:
    return {
        "title": config.schema_ref,
        "description": config.description or f"Extract {config.schema_ref} data",
        "type": "object",
        "additionalProperties": True,
    }


def _resolve_schema(
    config: NodeConfig, schemas: Mapping[str, dict[str, Any]] | None
) -> dict[str, Any]:
    if config.json_schema is not None:
        schema = dict(config.json_schema)
        schema.setdefault("title", config.schema_ref or config.name)
        return schema
    if not config.schema_ref:
        raise NodeConfigError(
            f"Node '{config.name}' needs a schema_ref, a json_schema, or a custom implementation"
        )
    if schemas is None:
        return _generic_schema(config)
    if config.schema_ref not in schemas:
        raise NodeConfigError(f"Node '{config.name}': unknown schema '{config.schema_ref}'")
    schema = dict(schemas[config.schema_ref])
    schema.setdefault("title", config.schema_ref)
    return schema


def create_node(
    config: NodeConfig | Mapping[str, Any],
    inference: InferenceProvider | None = None,
    schemas: Mapping[str, dict[str, Any]] | None = None,
    implementation: ProcessingNode | Callable[[SharedState], Any] | None = None,
) -> NodeDefinition:
    """
    Build a NodeDefinition from a configuration record.

    Args:
        config: NodeConfig or an equivalent mapping
        inference: Provider used by the schema-driven implementation
        schemas: Schema library; when given, ``schema_ref`` must resolve in it
        implementation: Hand-written node (or plain function) replacing the
            schema-driven default

    Raises:
        NodeConfigError: the record is malformed or cannot be made runnable
    """
    cfg = _coerce_config(config)

    node: ProcessingNode
    if implementation is not None:
        node = (
            implementation
            if isinstance(implementation, ProcessingNode)
            else FunctionNode(implementation)
        )
    else:
        if inference is None:
            raise NodeConfigError(
                f"Node '{cfg.name}' is schema-driven but no inference provider was supplied"
            )
        node = SchemaDrivenNode(cfg, _resolve_schema(cfg, schemas), inference)

    return NodeDefinition(
        name=cfg.name,
        description=cfg.description,
        trigger_flags=tuple(cfg.triggers),
        priority=cfg.priority,
        output_mapping=cfg.mapping,
        node=node,
        timeout=cfg.timeout,
    )


class NodeFactory:
    """Creates nodes that share one inference provider and schema library."""

    def __init__(
        self,
        inference: InferenceProvider | None = None,
        schemas: Mapping[str, dict[str, Any]] | None = None,
        implementations: Mapping[str, ProcessingNode | Callable[[SharedState], Any]] | None = None,
    ):
        self.inference = inference
        self.schemas = schemas
        self.implementations = dict(implementations or {})

    def create(self, config: NodeConfig | Mapping[str, Any]) -> NodeDefinition:
        cfg = _coerce_config(config)
        return create_node(
            cfg,
            inference=self.inference,
            schemas=self.schemas,
            implementation=self.implementations.get(cfg.name),
        )

    def create_all(self, configs: Iterable[NodeConfig | Mapping[str, Any]]) -> list[NodeDefinition]:
        return [self.create(config) for config in configs]
