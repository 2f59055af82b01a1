"""
Tests for NodeCatalog registration and trigger-based selection.
"""

import itertools
import logging

import pytest

from docflow.errors import NodeConfigError
from docflow.nodes import NodeCatalog, NodeConfig, OutputMapping, create_node, select_nodes


def make_node(name, triggers, priority=1, target=None, main=False):
    return create_node(
        NodeConfig(
            name=name,
            triggers=list(triggers),
            priority=priority,
            output_mapping=OutputMapping(target_field=target or name, is_main_report=main),
        ),
        implementation=lambda state: {"node": name},
    )


FLAGS = ("flagX", "flagY", "flagZ")


def sample_catalog() -> NodeCatalog:
    return NodeCatalog(
        [
            make_node("NodeA", ["flagX"], 1, "a"),
            make_node("NodeB", ["flagY"], 1, "b"),
            make_node("NodeC", ["flagY", "flagZ"], 2, "c"),
            make_node("NodeD", ["flagZ", "flagX"], 3, "d"),
        ]
    )


def test_scenario_selection():
    selected = select_nodes(sample_catalog(), {"flagX": True, "flagY": False, "flagZ": True})
    assert [n.name for n in selected] == ["NodeA", "NodeC", "NodeD"]


def test_trigger_correctness_for_every_flag_assignment():
    catalog = sample_catalog()
    # True/False/missing/non-boolean for every flag
    values = (True, False, None, "true")
    for combo in itertools.product(values, repeat=len(FLAGS)):
        flags = {name: value for name, value in zip(FLAGS, combo) if value is not None}
        true_flags = {name for name, value in flags.items() if value is True}

        selected = {n.name for n in catalog.select(flags)}
        expected = {n.name for n in catalog if set(n.trigger_flags) & true_flags}
        assert selected == expected, flags


def test_selection_preserves_registration_order():
    catalog = NodeCatalog(
        [
            make_node("late", ["f"], 3),
            make_node("early", ["f"], 1),
            make_node("middle", ["f"], 2),
        ]
    )
    assert [n.name for n in catalog.select({"f": True})] == ["late", "early", "middle"]


def test_no_true_flags_selects_nothing():
    catalog = sample_catalog()
    assert catalog.select({}) == []
    assert catalog.select(None) == []
    assert catalog.select({"flagX": False, "unrelated": True}) == []


def test_duplicate_name_rejected():
    catalog = NodeCatalog([make_node("NodeA", ["flagX"])])
    with pytest.raises(NodeConfigError, match="already registered"):
        catalog.register(make_node("NodeA", ["flagY"], target="other"))


def test_only_one_main_report_node():
    catalog = NodeCatalog([make_node("main", ["flagX"], main=True)])
    with pytest.raises(NodeConfigError, match="main report"):
        catalog.register(make_node("main2", ["flagY"], main=True))


def test_shared_target_field_warns(caplog):
    catalog = NodeCatalog([make_node("first", ["flagX"], target="shared")])
    with caplog.at_level(logging.WARNING, logger="docflow.nodes.catalog"):
        catalog.register(make_node("second", ["flagY"], 2, target="shared"))

    assert "second" in catalog
    assert catalog.target_conflicts() == {"shared": ["first", "second"]}
    assert any("shared" in r.getMessage() for r in caplog.records)


def test_shared_target_field_rejected_in_strict_mode():
    catalog = NodeCatalog([make_node("first", ["flagX"], target="shared")], strict_target_fields=True)
    with pytest.raises(NodeConfigError, match="shared"):
        catalog.register(make_node("second", ["flagY"], target="shared"))
    assert "second" not in catalog


def test_catalog_helpers():
    catalog = sample_catalog()
    catalog.register(make_node("main", ["flagX"], 1, target="report", main=True))

    assert len(catalog) == 5
    assert catalog.names() == ["NodeA", "NodeB", "NodeC", "NodeD", "main"]
    assert catalog.get("NodeC").priority == 2
    assert catalog.get("missing") is None
    assert catalog.main_report_node().name == "main"
    assert [n.name for n in catalog.by_priority(1)] == ["NodeA", "NodeB", "main"]
    assert [n.name for n in catalog.by_trigger("flagZ")] == ["NodeC", "NodeD"]
    assert catalog.output_mappings()["NodeB"].target_field == "b"
    assert catalog.target_conflicts() == {}


def test_catalogs_are_independent():
    first = NodeCatalog([make_node("NodeA", ["flagX"])])
    second = NodeCatalog()
    assert "NodeA" not in second
    second.register(make_node("NodeA", ["flagY"]))
    assert first.get("NodeA").trigger_flags == ("flagX",)
