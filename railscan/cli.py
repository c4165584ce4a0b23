"""Command-line entry point for railscan."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import PROJECT_CONFIG_FILENAME, ConfigError, ScanOptions, load_project_config
from .driver import ScanError, scan
from .result import ScanResult, format_findings, format_summary_table
from .rules import Category, RuleSet, ValidationError
from .rules.loader import load_default_rule_set, load_rule_set
from .severity import Severity

EXIT_OK = 0
EXIT_ERROR = 2


def _severity(value: str) -> Severity:
    try:
        return Severity.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _category(value: str) -> Category:
    try:
        return Category.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="railscan",
        description="Static pattern scanner for web framework security review checklists",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging on stderr.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Scan a source tree")
    scan_parser.add_argument("root", help="Directory to scan.")
    _add_rules_arguments(scan_parser)
    scan_parser.add_argument(
        "--config",
        default=None,
        help=f"Project config file (defaults to <root>/{PROJECT_CONFIG_FILENAME} when present).",
    )
    scan_parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="GLOB",
        help="Skip paths matching GLOB during traversal (repeatable).",
    )
    scan_parser.add_argument(
        "--format",
        choices=["json", "text"],
        default="text",
        help="Report format (defaults to text).",
    )
    scan_parser.add_argument(
        "--out",
        "--output",
        dest="output_path",
        default=None,
        help="Write the report to this path instead of stdout.",
    )
    scan_parser.add_argument(
        "--fail-on",
        type=_severity,
        default=Severity.LOW,
        metavar="SEVERITY",
        help="Exit 1 when an active finding is at or above SEVERITY (default: low).",
    )
    scan_parser.add_argument(
        "--fail-on-warnings",
        action="store_true",
        help="Also exit 1 when the scan recorded warnings.",
    )
    scan_parser.add_argument("--concurrency", type=_positive_int, default=None, metavar="N")
    scan_parser.add_argument("--max-file-size", type=_positive_int, default=None, metavar="BYTES")
    scan_parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        metavar="SECONDS",
        help="Per-file matching time budget.",
    )
    scan_parser.add_argument(
        "--window",
        type=_positive_int,
        default=None,
        metavar="LINES",
        help="Lines visible to multi-line patterns (default: 3).",
    )
    scan_parser.add_argument(
        "--show-suppressed",
        action="store_true",
        help="List suppressed findings in text output.",
    )

    rules_parser = subparsers.add_parser("rules", help="Validate and list the rule set")
    _add_rules_arguments(rules_parser)
    rules_parser.add_argument("--format", choices=["json", "text"], default="text")
    return parser


def _add_rules_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--rules",
        default=None,
        help="YAML rule set to use instead of the built-in rules.",
    )
    parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        type=_category,
        default=[],
        help="Only run rules in this category (repeatable).",
    )


def load_rules(path: Optional[str]) -> RuleSet:
    if path is None:
        return load_default_rule_set()
    return load_rule_set(Path(path))


def build_options(args: argparse.Namespace) -> ScanOptions:
    values = {
        "ignore": tuple(args.ignore),
        "categories": tuple(args.categories),
        "fail_on": args.fail_on,
    }
    if args.concurrency is not None:
        values["concurrency"] = args.concurrency
    if args.max_file_size is not None:
        values["max_file_size"] = args.max_file_size
    if args.timeout is not None:
        values["file_timeout"] = args.timeout
    if args.window is not None:
        values["window"] = args.window
    return ScanOptions(**values)


def render_report(result: ScanResult, report_format: str, show_suppressed: bool) -> str:
    if report_format == "json":
        return json.dumps(result.to_dict(), indent=2)
    sections = [format_summary_table(result)]
    if result.findings:
        sections.append(format_findings(result.findings, "Findings"))
    if show_suppressed and result.suppressed:
        sections.append(format_findings(result.suppressed, "Suppressed Findings"))
    return "\n\n".join(sections)


def write_output(result: ScanResult, args: argparse.Namespace) -> None:
    report = render_report(result, args.format, args.show_suppressed)
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)

    if args.output_path:
        output_file = Path(args.output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(report + "\n", encoding="utf-8")
        print(format_summary_table(result))
        print(f"\nReport written to {args.output_path}")
    else:
        print(report)


def run_scan_command(args: argparse.Namespace) -> int:
    rule_set = load_rules(args.rules)
    root = Path(args.root)
    if args.config:
        project = load_project_config(Path(args.config), required=True)
    else:
        project = load_project_config(root / PROJECT_CONFIG_FILENAME)
    options = build_options(args)
    result = scan(root, rule_set, suppression_config=project, options=options)
    write_output(result, args)
    return result.exit_code(fail_on_warnings=args.fail_on_warnings)


def run_rules_command(args: argparse.Namespace) -> int:
    rule_set = load_rules(args.rules).restrict(args.categories)
    if args.format == "json":
        print(json.dumps([rule.to_dict() for rule in rule_set], indent=2))
        return EXIT_OK
    for rule in rule_set:
        print(f"{rule.id:<45} {rule.severity.value:<9} {rule.category.value:<18} {rule.label}")
    print(f"\n{len(rule_set)} rules")
    return EXIT_OK


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.command == "scan":
            return run_scan_command(args)
        if args.command == "rules":
            return run_rules_command(args)
    except (ValidationError, ConfigError, ScanError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    parser.error(f"Unsupported command: {args.command}")
    return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
