"""
Tests for result aggregation: main-report merge, keyed sections,
unwrapping, shared-target overwrites and the multiNodeResults summary.
"""

import logging

from docflow.engine import aggregate, build_plan
from docflow.engine.executor import ExecutionResult, NodeOutcome
from docflow.nodes import NodeConfig, OutputMapping, PartialResult, SharedState, create_node
from docflow.schemas import ErrorRecord


def make_node(name, priority=1, target=None, unwrap=None, main=False):
    return create_node(
        NodeConfig(
            name=name,
            triggers=["f"],
            priority=priority,
            output_mapping=OutputMapping(
                target_field=target or name, unwrap_field=unwrap, is_main_report=main
            ),
        ),
        implementation=lambda state: None,
    )


def run_results(plan, payloads, failures=()):
    """Build an ExecutionResult as the executor would: outcomes in plan order."""
    result = ExecutionResult(state=SharedState(), elapsed_ms=12)
    for group_index, group in enumerate(plan.parallel_groups):
        for node in group:
            if node.name in failures:
                result.outcomes.append(
                    NodeOutcome(node=node, group_index=group_index, error="boom")
                )
                result.errors.append(ErrorRecord(node=node.name, error="boom"))
            else:
                result.outcomes.append(
                    NodeOutcome(
                        node=node,
                        group_index=group_index,
                        result=PartialResult(data=payloads.get(node.name)),
                    )
                )
    return result


def test_keyed_sections_and_summary():
    plan = build_plan([make_node("ecg"), make_node("labs", target="signals"), make_node("x", 2)])
    report = aggregate(run_results(plan, {"ecg": {"rate": 70}, "labs": [{"name": "Hb"}]}), plan)

    assert report.sections == {"ecg": {"rate": 70}, "signals": [{"name": "Hb"}]}
    summary = report.multi_node_results
    assert summary.processed_nodes == ["ecg", "labs", "x"]
    assert summary.successful_nodes == 3
    assert summary.failed_nodes == 0
    assert summary.parallel_groups == 2
    assert summary.execution_time == 12
    assert summary.execution_stats["totalNodes"] == 3


def test_failed_and_empty_nodes_leave_field_absent():
    plan = build_plan([make_node("ok"), make_node("failed"), make_node("empty")])
    report = aggregate(run_results(plan, {"ok": {"v": 1}}, failures={"failed"}), plan)

    assert report.sections == {"ok": {"v": 1}}
    assert "failed" not in report
    assert "empty" not in report
    assert [e.node for e in report.errors] == ["failed"]
    assert report.multi_node_results.failed_nodes == 1


def test_main_report_merged_at_top_level_without_report_key():
    plan = build_plan([make_node("analysis", main=True, target="report"), make_node("ecg")])
    payloads = {
        "analysis": {"title": "Discharge", "summary": "ok", "report": "self", "errors": ["x"]},
        "ecg": {"rate": 70},
    }
    report = aggregate(run_results(plan, payloads), plan)

    assert report.sections == {"title": "Discharge", "summary": "ok", "ecg": {"rate": 70}}
    flat = report.to_dict()
    assert flat["title"] == "Discharge"
    assert "report" not in flat
    assert flat["errors"] == []


def test_main_report_array_uses_first_element(caplog):
    plan = build_plan([make_node("analysis", main=True)])
    with caplog.at_level(logging.WARNING, logger="docflow.engine.aggregator"):
        report = aggregate(run_results(plan, {"analysis": [{"title": "x"}, {"title": "y"}]}), plan)

    assert report.sections == {"title": "x"}
    assert report.errors == []
    assert report.multi_node_results.normalizations == ["analysis"]
    assert any("array" in r.getMessage() for r in caplog.records)


def test_main_report_empty_array_contributes_nothing():
    plan = build_plan([make_node("analysis", main=True)])
    report = aggregate(run_results(plan, {"analysis": []}), plan)
    assert report.sections == {}
    assert report.multi_node_results.normalizations == ["analysis"]


def test_main_report_non_object_is_ignored():
    plan = build_plan([make_node("analysis", main=True)])
    report = aggregate(run_results(plan, {"analysis": "plain text"}), plan)
    assert report.sections == {}
    assert report.multi_node_results.successful_nodes == 1


def test_unwrap_field():
    plan = build_plan(
        [
            make_node("diagnosis-processing", target="diagnosis", unwrap="diagnosis"),
            make_node("patient-processing", target="patient", unwrap="patient"),
        ]
    )
    payloads = {
        "diagnosis-processing": {"diagnosis": [{"code": "I10"}], "documentContext": {}},
        # Unwrap key missing: the payload is written as-is
        "patient-processing": {"name": "Jane"},
    }
    report = aggregate(run_results(plan, payloads), plan)

    assert report.sections["diagnosis"] == [{"code": "I10"}]
    assert report.sections["patient"] == {"name": "Jane"}


def test_distinct_targets_never_overwrite_each_other():
    names = [f"n{i}" for i in range(6)]
    plan = build_plan([make_node(name, i % 2 + 1) for i, name in enumerate(names)])
    payloads = {name: {"from": name} for name in names}
    report = aggregate(run_results(plan, payloads), plan)

    for name in names:
        assert report.sections[name] == {"from": name}
    assert report.multi_node_results.field_conflicts == {}


def test_shared_target_later_node_wins():
    # Known sharp edge: both nodes write "shared", the later one in
    # execution order overwrites the earlier one
    plan = build_plan(
        [make_node("second", 2, target="shared"), make_node("first", 1, target="shared")]
    )
    payloads = {"first": {"v": 1}, "second": {"v": 2}}
    report = aggregate(run_results(plan, payloads), plan)

    assert plan.execution_order == ["first", "second"]
    assert report.sections == {"shared": {"v": 2}}
    assert report.multi_node_results.field_conflicts == {"shared": ["first", "second"]}


def test_isolation_every_node_in_report_or_errors():
    plan = build_plan([make_node(f"n{i}", i % 3 + 1) for i in range(9)])
    failures = {"n1", "n4"}
    payloads = {f"n{i}": {"i": i} for i in range(9)}
    report = aggregate(run_results(plan, payloads, failures=failures), plan)

    error_nodes = [e.node for e in report.errors]
    assert sorted(error_nodes) == sorted(failures)
    for name in plan.execution_order:
        assert (name in report) != (name in error_nodes)


def test_explicit_elapsed_time_wins():
    plan = build_plan([make_node("a")])
    report = aggregate(run_results(plan, {"a": {}}), plan, elapsed_ms=99)
    assert report.multi_node_results.execution_time == 99


def test_to_dict_uses_camel_case():
    plan = build_plan([make_node("a")])
    flat = aggregate(run_results(plan, {"a": {"v": 1}}), plan).to_dict()
    assert flat["a"] == {"v": 1}
    assert flat["tokenUsage"] == {"total": 0, "nodes": {}}
    assert flat["multiNodeResults"]["processedNodes"] == ["a"]
    assert flat["multiNodeResults"]["successfulNodes"] == 1
    assert "fieldConflicts" in flat["multiNodeResults"]
