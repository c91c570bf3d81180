#!/usr/bin/env python3
"""
LockGraph command line interface

Analyzes lock-event traces and reports deadlock cycles.

Exit Codes:
  0: Success (or deadlocks within the allowed maximum)
  1: No trace files given
  2: More deadlock cycles than allowed (CI mode)
  3: Analysis error
"""

import argparse
import datetime
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import networkx as nx

from lockgraph import __version__
from lockgraph.logging_config import setup_logger
from lockgraph.session import AnalysisResult, LockGraphAnalyzer

logger = logging.getLogger(__name__)


def format_analysis_report(result: AnalysisResult, filename: str) -> str:
    """Render the full text report for one analyzed trace"""
    report = []

    report.append("=" * 100)
    report.append("LockGraph Deadlock Analysis Report")
    report.append("=" * 100)
    report.append(f"File: {filename}")
    report.append(f"Analysis Time: {result.analysis_time:.3f} seconds")
    report.append(
        f"Generated: {datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
    )

    report.append("\n" + "🔍 EXECUTIVE SUMMARY")
    report.append("-" * 50)
    if result.errors:
        report.append("❌ ANALYSIS FAILED")
        report.append("   The trace could not be analyzed, see errors below.")
    elif result.has_deadlock:
        report.append(f"🚨 {len(result.cycles)} DEADLOCK CYCLE(S) DETECTED")
        report.append("   Threads can block each other forever on these locks.")
    else:
        report.append("✅ NO DEADLOCK CYCLES DETECTED")
        report.append("   The observed lock ordering is consistent across threads.")

    metrics = result.metrics
    report.append("\nGraph Metrics:")
    report.append(f"  • Lock Events: {metrics.get('events', 0)}")
    report.append(f"  • Threads (process nodes): {metrics.get('processes', 0)}")
    report.append(f"  • Locks (resource nodes): {metrics.get('resources', 0)}")
    report.append(f"  • Wait Edges: {metrics.get('wait_edges', 0)}")
    report.append(f"  • Hold Edges: {metrics.get('hold_edges', 0)}")

    if result.errors:
        report.append("\n" + "❌ ERRORS")
        report.append("-" * 50)
        for i, error in enumerate(result.errors, 1):
            report.append(f"{i}. {error}")

    if result.warnings:
        report.append("\n" + "⚠️  TRACE WARNINGS")
        report.append("-" * 50)
        for i, warning in enumerate(result.warnings, 1):
            report.append(f"{i}. {warning}")

    if result.has_deadlock:
        report.append("\n" + "⚰️  DEADLOCK CYCLES")
        report.append("-" * 50)
        report.append(result.report.rstrip())

        report.append("\n" + "📚 REMEDIATION")
        report.append("-" * 50)
        report.append(result.suggestions.strip())

    report.append("\n" + "=" * 100)

    return "\n".join(report)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lockgraph",
        description="LockGraph: static deadlock detector for lock-event traces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lockgraph trace.json
  lockgraph --output report.txt traces/*.json
  lockgraph --json results.json --ci-mode trace.json
  lockgraph --debug --log-file lockgraph.log trace.json

Exit Codes:
  0: Success
  1: No trace files given
  2: Deadlock cycles above --max-deadlocks (CI mode)
  3: Analysis error
""",
    )

    parser.add_argument("files", nargs="*", help="Event trace files to analyze")
    parser.add_argument("--output", "-o", help="Output file for the report")
    parser.add_argument("--json", help="Output JSON report to file")
    parser.add_argument(
        "--ci-mode",
        action="store_true",
        help="Run in CI mode with non-zero exit on deadlocks",
    )
    parser.add_argument(
        "--max-deadlocks",
        type=int,
        default=0,
        help="Maximum allowed deadlock cycles (CI mode)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output and stack traces"
    )
    parser.add_argument("--log-file", help="Also write log records to this file")
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Suppress non-essential output"
    )
    parser.add_argument(
        "--version", action="version", version=f"LockGraph {__version__}"
    )
    return parser


def build_json_summary(
    all_results: List[Tuple[str, AnalysisResult, Optional[dict]]]
) -> dict:
    json_data = {
        "analysis_summary": {
            "total_files": len(all_results),
            "files_with_deadlocks": sum(1 for _, r, _ in all_results if r.has_deadlock),
            "total_cycles": sum(len(r.cycles) for _, r, _ in all_results),
            "analysis_timestamp": datetime.datetime.now().isoformat(),
            "lockgraph_version": __version__,
        },
        "files": [],
    }

    for filepath, result, graph_data in all_results:
        json_data["files"].append(
            {
                "file": filepath,
                "has_deadlock": result.has_deadlock,
                "cycles": result.cycles,
                "metrics": result.metrics,
                "warnings": result.warnings,
                "errors": result.errors,
                "analysis_time": result.analysis_time,
                "graph": graph_data,
            }
        )
    return json_data


def main(argv: Optional[List[str]] = None):
    """Entry point of the ``lockgraph`` command"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.files:
        parser.print_help()
        sys.exit(1)

    if args.debug:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    setup_logger("lockgraph", level, args.log_file)

    analyzer = LockGraphAnalyzer()
    all_results = []
    reports = []
    total_cycles = 0
    had_error = False

    for filepath in args.files:
        path = Path(filepath)
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            had_error = True
            if args.ci_mode:
                sys.exit(3)
            continue

        if not args.quiet:
            print(f"Analyzing {path}...")

        try:
            result = analyzer.analyze_file(path)
        except Exception as e:
            print(f"Error analyzing {path}: {e}", file=sys.stderr)
            if args.debug:
                import traceback

                traceback.print_exc()
            had_error = True
            if args.ci_mode:
                sys.exit(3)
            continue

        for error in result.errors:
            print(f"Error: {error}", file=sys.stderr)
        had_error = had_error or bool(result.errors)

        graph_data = None
        if args.json and not result.errors:
            graph_data = nx.node_link_data(analyzer.session.graph.to_networkx())
        all_results.append((str(path), result, graph_data))
        total_cycles += len(result.cycles)
        reports.append(format_analysis_report(result, str(path)))

    if reports:
        text = "\n\n".join(reports)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(text)
            if not args.quiet:
                print(f"Report saved to {args.output}")
        else:
            print(text)

    if args.json and all_results:
        with open(args.json, "w", encoding="utf-8") as f:
            json.dump(build_json_summary(all_results), f, indent=2, default=str)
        if not args.quiet:
            print(f"JSON report saved to {args.json}")

    if args.ci_mode:
        if had_error:
            print("❌ CI FAILURE: analysis errors occurred")
            sys.exit(3)
        if total_cycles > args.max_deadlocks:
            print(
                f"❌ CI FAILURE: {total_cycles} deadlock cycle(s) found "
                f"(max allowed: {args.max_deadlocks})"
            )
            sys.exit(2)
        print("✅ CI PASSED: No deadlock cycles above the allowed maximum")
        sys.exit(0)


if __name__ == "__main__":
    main()
