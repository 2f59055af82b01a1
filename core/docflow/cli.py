"""
Command-line interface for docflow.

Usage:
    docflow nodes
    docflow plan --flags isMedical,hasECG
    docflow run report.txt --flags isMedical,hasLabResults --mock
    docflow run report.txt --flags isMedical --log-dir ./runtime_logs
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from docflow.config import OrchestratorConfig, RuntimeConfig
from docflow.engine import Orchestrator, build_plan
from docflow.llm import (
    MockInferenceProvider,
    MockLegacyAnalyzer,
    StaticFeatureDetector,
    content_text,
)
from docflow.nodes import build_document_catalog, select_nodes
from docflow.observability import configure_logging
from docflow.runtime import RuntimeLogStore


def _parse_flags(raw: str) -> dict[str, bool]:
    """``"a,b"`` → ``{"a": True, "b": True}``; ``"a=false"`` sets an explicit False."""
    flags: dict[str, bool] = {}
    for item in filter(None, (part.strip() for part in raw.split(","))):
        name, _, value = item.partition("=")
        flags[name.strip()] = value.strip().lower() not in ("false", "0", "no") if value else True
    return flags


def _mock_payload(schema: dict, content: list) -> dict:
    """Echo which schema was asked for, so --mock output shows every node that ran."""
    return {"schema": schema.get("title", ""), "excerpt": content_text(content)[:120]}


def cmd_nodes(args: argparse.Namespace) -> int:
    catalog = build_document_catalog(MockInferenceProvider())
    if args.json:
        print(
            json.dumps(
                [
                    {
                        "name": node.name,
                        "priority": node.priority,
                        "triggers": list(node.trigger_flags),
                        "targetField": node.target_field,
                        "isMainReport": node.output_mapping.is_main_report,
                    }
                    for node in catalog
                ],
                indent=2,
            )
        )
        return 0

    for node in catalog:
        main = " (main report)" if node.output_mapping.is_main_report else ""
        print(
            f"{node.priority:>3}  {node.name:<32} → {node.target_field}{main}"
            f"  [{', '.join(node.trigger_flags)}]"
        )
    print(f"\n{len(catalog)} node(s)")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    catalog = build_document_catalog(MockInferenceProvider())
    flags = _parse_flags(args.flags)
    plan = build_plan(select_nodes(catalog, flags))
    config = OrchestratorConfig.load()
    print(
        json.dumps(
            {
                "flags": flags,
                "parallelGroups": plan.structure(),
                "executionOrder": plan.execution_order,
                "stats": plan.stats(config.max_concurrent_nodes),
            },
            indent=2,
        )
    )
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: {path} is not a file", file=sys.stderr)
        return 1
    text = path.read_text(encoding="utf-8")
    flags = _parse_flags(args.flags)

    config = OrchestratorConfig.load(
        enable_parallel_execution=False if args.sequential else None,
        max_concurrent_nodes=args.max_concurrent,
        timeout_per_node=args.timeout,
    )

    if args.mock:
        inference = MockInferenceProvider(default=_mock_payload)
        legacy = MockLegacyAnalyzer()
    else:
        from docflow.llm.litellm import LiteLLMInferenceProvider, LiteLLMLegacyAnalyzer

        runtime_config = RuntimeConfig(language=args.language)
        if args.model:
            runtime_config.model = args.model
        inference = LiteLLMInferenceProvider(runtime_config)
        legacy = LiteLLMLegacyAnalyzer(inference)

    orchestrator = Orchestrator(
        build_document_catalog(inference, strict_target_fields=config.strict_target_fields),
        config=config,
        legacy_analyzer=legacy,
        feature_detector=StaticFeatureDetector(flags),
        log_store=RuntimeLogStore(args.log_dir) if args.log_dir else None,
    )

    def on_progress(stage: str, percent: float, message: str) -> None:
        if not args.quiet:
            print(f"[{percent:5.1f}%] {stage}: {message}", file=sys.stderr)

    report = asyncio.run(
        orchestrator.process(
            text,
            document_id=args.document_id or path.stem,
            language=args.language,
            on_progress=on_progress,
        )
    )
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False, default=str))
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    nodes_parser = subparsers.add_parser("nodes", help="List the registered processing nodes")
    nodes_parser.add_argument("--json", action="store_true", help="Print the catalog as JSON")
    nodes_parser.set_defaults(func=cmd_nodes)

    plan_parser = subparsers.add_parser(
        "plan", help="Show which nodes a flag set selects and how they are grouped"
    )
    plan_parser.add_argument(
        "--flags", default="", help="Comma-separated feature flags, e.g. isMedical,hasECG"
    )
    plan_parser.set_defaults(func=cmd_plan)

    run_parser = subparsers.add_parser("run", help="Process a text document")
    run_parser.add_argument("file", help="Path to a UTF-8 text file")
    run_parser.add_argument("--flags", default="", help="Comma-separated feature flags")
    run_parser.add_argument("--document-id", default="", help="Document id for logs")
    run_parser.add_argument("--language", default="English", help="Output language")
    run_parser.add_argument("--model", default=None, help="LiteLLM model name")
    run_parser.add_argument(
        "--sequential", action="store_true", help="Run nodes one at a time (debugging)"
    )
    run_parser.add_argument("--max-concurrent", type=int, default=None)
    run_parser.add_argument("--timeout", type=float, default=None, help="Per-node timeout (s)")
    run_parser.add_argument(
        "--mock", action="store_true", help="Use the mock inference provider (no API calls)"
    )
    run_parser.add_argument("--log-dir", default=None, help="Persist run logs under this dir")
    run_parser.add_argument("--quiet", "-q", action="store_true", help="Hide progress output")
    run_parser.set_defaults(func=cmd_run)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docflow",
        description="docflow - run document processing nodes",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument(
        "--log-format", default="auto", choices=["auto", "json", "human"], help="Log format"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
