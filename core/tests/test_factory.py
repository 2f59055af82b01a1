"""
Tests for the declarative node factory.

Construction errors must surface as NodeConfigError before any document
is processed; schema-driven nodes must apply the default enhancement and
confidence heuristic unless a custom validator replaces them.
"""

import json
from pathlib import Path

import pytest

from docflow.errors import NodeConfigError
from docflow.llm import MockInferenceProvider
from docflow.nodes import (
    NodeConfig,
    NodeFactory,
    OutputMapping,
    PartialResult,
    ProcessingNode,
    SharedState,
    calculate_confidence,
    create_node,
    load_node_configs,
)
from docflow.nodes.factory import DOCUMENT_CONTEXT_KEY, SchemaDrivenNode


def ecg_config(**overrides) -> dict:
    config = {
        "name": "ecg-processing",
        "description": "ECG analysis",
        "schema_ref": "ecg",
        "triggers": ["hasECG"],
        "priority": 2,
    }
    config.update(overrides)
    return config


# ---- Construction errors ----


@pytest.mark.parametrize(
    "overrides",
    [
        {"triggers": []},
        {"triggers": [" "]},
        {"priority": 0},
        {"priority": -1},
        {"priority": 1.5},
        {"priority": "2"},
        {"priority": True},
        {"name": ""},
        {"unknown_key": 1},
    ],
)
def test_malformed_config_fails_at_construction(overrides):
    with pytest.raises(NodeConfigError):
        create_node(ecg_config(**overrides), inference=MockInferenceProvider())


def test_schema_driven_node_requires_inference_provider():
    with pytest.raises(NodeConfigError, match="no inference provider"):
        create_node(ecg_config())


def test_schema_driven_node_requires_a_schema():
    with pytest.raises(NodeConfigError, match="schema_ref"):
        create_node(ecg_config(schema_ref=""), inference=MockInferenceProvider())


def test_unknown_schema_ref_fails_when_library_given():
    with pytest.raises(NodeConfigError, match="unknown schema"):
        create_node(
            ecg_config(schema_ref="missing"),
            inference=MockInferenceProvider(),
            schemas={"ecg": {"type": "object"}},
        )


def test_unsupported_config_type():
    with pytest.raises(NodeConfigError):
        create_node(["not", "a", "config"], inference=MockInferenceProvider())


# ---- Definition shape ----


def test_definition_carries_config_metadata():
    node = create_node(
        ecg_config(timeout=5, output_mapping={"target_field": "ecg", "unwrap_field": "ecg"}),
        inference=MockInferenceProvider(),
    )
    assert node.name == "ecg-processing"
    assert node.trigger_flags == ("hasECG",)
    assert node.priority == 2
    assert node.timeout == 5
    assert node.output_mapping == OutputMapping(target_field="ecg", unwrap_field="ecg")
    assert isinstance(node.node, SchemaDrivenNode)


def test_target_field_derived_from_name():
    node = create_node(ecg_config(), inference=MockInferenceProvider())
    assert node.target_field == "ecg"
    assert not node.output_mapping.is_main_report


def test_selects_requires_a_true_trigger():
    node = create_node(
        ecg_config(triggers=["hasECG", "hasHolter"]), inference=MockInferenceProvider()
    )
    assert node.selects({"hasECG": True})
    assert node.selects({"hasECG": False, "hasHolter": True})
    assert not node.selects({"hasECG": False})
    assert not node.selects({"hasECG": "yes"})
    assert not node.selects({})
    assert not node.selects(None)


def test_definition_is_immutable():
    node = create_node(ecg_config(), inference=MockInferenceProvider())
    with pytest.raises(AttributeError):
        node.priority = 1  # type: ignore[misc]


# ---- Schema-driven behaviour ----


@pytest.mark.asyncio
async def test_schema_driven_node_enhances_and_scores():
    inference = MockInferenceProvider(
        responses={"ecg": {"hasECG": True, "rhythm": "sinus", "intervals": {"pr": 160}}}
    )
    node = create_node(ecg_config(), inference=inference)
    state = SharedState.from_text("ECG: sinus rhythm", {"hasECG": True}, language="Czech")

    result = await node.run(state)

    assert inference.calls == ["ecg"]
    assert result.data["rhythm"] == "sinus"
    context = result.data[DOCUMENT_CONTEXT_KEY]
    assert context["nodeId"] == "ecg-processing"
    assert context["priority"] == 2
    assert context["language"] == "Czech"
    assert context["documentType"] == "ecg_record"
    assert context["extractedFrom"] == "schema_driven_analysis"
    # 0.5 base + 0.1 several keys + 0.2 primary trigger + 0.1 one structured field
    assert result.metadata.confidence == pytest.approx(0.9)
    assert result.metadata.tokens_used == 10
    assert result.metadata.provider == "mock"


@pytest.mark.asyncio
async def test_empty_inference_payload_means_nothing_found():
    node = create_node(ecg_config(), inference=MockInferenceProvider(default={}))
    result = await node.run(SharedState.from_text("", {"hasECG": True}))
    assert result.data is None
    assert not result.has_data
    assert result.metadata.confidence is None
    assert result.metadata.tokens_used == 10


@pytest.mark.asyncio
async def test_inline_json_schema_takes_precedence():
    inference = MockInferenceProvider(responses={"inline": {"x": 1}})
    node = create_node(
        ecg_config(json_schema={"title": "inline", "type": "object"}), inference=inference
    )
    await node.run(SharedState.from_text("x", {"hasECG": True}))
    assert inference.calls == ["inline"]


@pytest.mark.asyncio
async def test_sync_custom_validator_replaces_default_enhancement():
    def validate(data, state):
        return {"checked": True, **data}

    node = create_node(
        ecg_config(custom_validation=validate),
        inference=MockInferenceProvider(responses={"ecg": {"rate": 70}}),
    )
    result = await node.run(SharedState.from_text("x", {"hasECG": True}))
    assert result.data == {"checked": True, "rate": 70}
    assert DOCUMENT_CONTEXT_KEY not in result.data


@pytest.mark.asyncio
async def test_async_custom_validator_is_awaited():
    async def validate(data, state):
        return {**data, "language": state.language}

    node = create_node(
        ecg_config(custom_validation=validate),
        inference=MockInferenceProvider(responses={"ecg": {"rate": 70}}),
    )
    result = await node.run(SharedState.from_text("x", {"hasECG": True}, language="German"))
    assert result.data == {"rate": 70, "language": "German"}


@pytest.mark.asyncio
async def test_inference_errors_propagate_to_the_executor():
    node = create_node(
        ecg_config(),
        inference=MockInferenceProvider(responses={"ecg": RuntimeError("rate limited")}),
    )
    with pytest.raises(RuntimeError, match="rate limited"):
        await node.run(SharedState.from_text("x", {"hasECG": True}))


# ---- Custom implementations ----


class EchoNode(ProcessingNode):
    async def run(self, state):
        return PartialResult(data={"text": state.text})


@pytest.mark.asyncio
async def test_processing_node_implementation_needs_no_schema():
    node = create_node(ecg_config(schema_ref=""), implementation=EchoNode())
    result = await node.run(SharedState.from_text("hello", {"hasECG": True}))
    assert result.data == {"text": "hello"}


@pytest.mark.asyncio
async def test_plain_function_implementation_is_wrapped():
    node = create_node(ecg_config(), implementation=lambda state: {"flags": state.true_flags()})
    result = await node.run(SharedState.from_text("", {"hasECG": True, "other": False}))
    assert result.data == {"flags": {"hasECG"}}


def test_factory_prefers_registered_implementation():
    factory = NodeFactory(
        inference=MockInferenceProvider(),
        implementations={"echo": EchoNode()},
    )
    nodes = factory.create_all(
        [ecg_config(), {"name": "echo", "triggers": ["isMedical"], "priority": 10}]
    )
    assert isinstance(nodes[0].node, SchemaDrivenNode)
    assert isinstance(nodes[1].node, EchoNode)


# ---- Confidence heuristic ----


@pytest.mark.parametrize(
    "data,expected",
    [
        (None, 0.0),
        ("", 0.0),
        ("some text", 0.5),
        ([{"a": 1}], 0.5),
        ({"a": 1}, 0.5),
        ({"a": 1, "b": 2}, 0.6),
        ({"hasECG": True, "b": 2}, 0.8),
        ({"hasECG": False, "b": {}}, 0.7),
        ({"hasECG": True, "a": {}, "b": [], "c": {}}, 1.0),
        ({"a": 1, DOCUMENT_CONTEXT_KEY: {}}, 0.6),
    ],
)
def test_calculate_confidence(data, expected):
    assert calculate_confidence(data, ["hasECG"]) == pytest.approx(expected)


# ---- Loading from JSON ----


def test_load_node_configs(tmp_path: Path):
    path = tmp_path / "nodes.json"
    path.write_text(
        json.dumps(
            [
                ecg_config(),
                {
                    "name": "summary",
                    "triggers": ["isMedical"],
                    "priority": 1,
                    "schema_ref": "report.core",
                    "output_mapping": {"target_field": "summary", "is_main_report": True},
                },
            ]
        )
    )
    configs = load_node_configs(path)
    assert [c.name for c in configs] == ["ecg-processing", "summary"]
    assert configs[1].mapping.is_main_report
    assert isinstance(configs[0], NodeConfig)


def test_load_node_configs_rejects_bad_files(tmp_path: Path):
    bad_json = tmp_path / "bad.json"
    bad_json.write_text("{not json")
    not_a_list = tmp_path / "object.json"
    not_a_list.write_text(json.dumps(ecg_config()))
    invalid_record = tmp_path / "invalid.json"
    invalid_record.write_text(json.dumps([ecg_config(priority=0)]))

    for path in (bad_json, not_a_list, invalid_record, tmp_path / "missing.json"):
        with pytest.raises(NodeConfigError):
            load_node_configs(path)
