"""Result aggregation: per-node payloads → one AggregatedReport.

The main-report node's payload is merged onto the report's top level;
every other node is written under its own ``target_field``. Nodes that
failed or found nothing leave their field absent.
"""

import logging
from typing import Any

from docflow.engine.executor import ExecutionResult
from docflow.engine.plan import ExecutionPlan
from docflow.schemas.report import RESERVED_REPORT_KEYS, AggregatedReport, MultiNodeResults

logger = logging.getLogger(__name__)


def _normalize_main_payload(node_name: str, payload: Any, normalizations: list[str]) -> dict:
    """Coerce the main node's payload into a dict of top-level fields."""
    if isinstance(payload, list):
        # Compatibility shim: some main-report schemas come back as a one-element array
        logger.warning(
            f"Main report from '{node_name}' is an array of {len(payload)} item(s); "
            "using the first element"
        )
        normalizations.append(node_name)
        payload = payload[0] if payload else {}
    if not isinstance(payload, dict):
        logger.warning(
            f"Main report from '{node_name}' is {type(payload).__name__}, not an object; ignored"
        )
        if node_name not in normalizations:
            normalizations.append(node_name)
        return {}
    return payload


def aggregate(
    run_results: ExecutionResult,
    plan: ExecutionPlan,
    elapsed_ms: int | None = None,
    max_concurrent_nodes: int | None = None,
) -> AggregatedReport:
    """
    Merge successful node results into one report.

    Nodes are visited in ``plan.execution_order``, so when two nodes
    share a ``target_field`` the later one wins; each such overwrite is
    listed under ``multiNodeResults.fieldConflicts``.
    """
    results = run_results.results
    sections: dict[str, Any] = {}
    writers: dict[str, list[str]] = {}
    normalizations: list[str] = []

    for group in plan.parallel_groups:
        for node in group:
            result = results.get(node.name)
            if result is None or not result.has_data:
                continue

            mapping = node.output_mapping
            payload = result.data

            if mapping.is_main_report:
                fields = _normalize_main_payload(node.name, payload, normalizations)
                for key, value in fields.items():
                    if key in RESERVED_REPORT_KEYS:
                        continue
                    sections[key] = value
                continue

            if mapping.unwrap_field and isinstance(payload, dict) and mapping.unwrap_field in payload:
                payload = payload[mapping.unwrap_field]
                if payload is None:
                    continue

            target = mapping.target_field
            if target in writers:
                logger.warning(
                    f"Field '{target}' written by '{node.name}' overwrites "
                    f"{writers[target]}"
                )
            writers.setdefault(target, []).append(node.name)
            sections[target] = payload

    successful = len(run_results.successful)
    summary = MultiNodeResults(
        processed_nodes=plan.execution_order,
        successful_nodes=successful,
        failed_nodes=len(run_results.failed),
        execution_time=run_results.elapsed_ms if elapsed_ms is None else elapsed_ms,
        parallel_groups=len(plan.parallel_groups),
        execution_stats=plan.stats(max_concurrent_nodes),
        message=f"Processed {plan.total_nodes} node(s): {successful} succeeded",
        field_conflicts={field: names for field, names in writers.items() if len(names) > 1},
        normalizations=normalizations,
    )

    return AggregatedReport(
        sections=sections,
        token_usage=run_results.state.token_usage,
        errors=list(run_results.errors),
        multi_node_results=summary,
    )
