"""Command-line interface for running scans.

Usage:
    azqr [options]
    python scripts/run_scan.py [options]

Options:
    --subscription ID        Scan only this subscription (can be repeated)
    --resource-group NAME    Scan only this resource group (can be repeated)
    --include TYPE           Scan only this resource type (can be repeated)
    --exclude TYPE           Skip this resource type (can be repeated)
    --detailed               Evaluate detailed-only recommendations too
    --max-parallel N         Maximum concurrent scan units
    --timeout SECONDS        Deadline for the whole run
    --json                   Output results in JSON format
    --markdown               Output results in Markdown format
    --csv                    Output results in CSV format
    --mask                   Mask subscription ids in the output
    --output FILE            Write the report to FILE instead of stdout
    --verbose                Enable verbose logging

Exit Codes:
    0   Scan completed and every unit was scanned or skipped
    1   Scan completed with failed units
    2   Invalid arguments, internal error or cancelled scan

Examples:
    # Scan every enabled subscription and print a summary
    azqr

    # Scan one subscription with detailed rules, Markdown to a file
    azqr --subscription 00000000-0000-0000-0000-000000000000 --detailed \\
        --markdown --output report.md

    # Scan only AKS clusters
    azqr --include Microsoft.ContainerService/managedClusters
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from azqr.core.config import Settings
from azqr.core.errors import ScanCancelledError, ScanError
from azqr.scanners.models import ScanReport
from azqr.scanners.reports import ReportGenerator
from azqr.scanners.runner import ScanRunner

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="azqr",
        description="Azure Quick Review: scan Azure resources for best-practice recommendations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--subscription",
        action="append",
        dest="subscriptions",
        help="Scan only this subscription (can be repeated)",
    )

    parser.add_argument(
        "--resource-group",
        action="append",
        dest="resource_groups",
        help="Scan only this resource group (can be repeated)",
    )

    parser.add_argument(
        "--include",
        action="append",
        dest="include_types",
        help="Scan only this resource type (can be repeated)",
    )

    parser.add_argument(
        "--exclude",
        action="append",
        dest="exclude_types",
        help="Skip this resource type (can be repeated)",
    )

    parser.add_argument(
        "--detailed",
        action="store_true",
        help="Evaluate detailed-only recommendations too",
    )

    parser.add_argument(
        "--max-parallel",
        type=int,
        help="Maximum concurrent scan units (default: 10)",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        help="Deadline for the whole run in seconds",
    )

    output_format = parser.add_mutually_exclusive_group()
    output_format.add_argument(
        "--json",
        action="store_true",
        help="Output results in JSON format",
    )
    output_format.add_argument(
        "--markdown",
        action="store_true",
        help="Output results in Markdown format",
    )
    output_format.add_argument(
        "--csv",
        action="store_true",
        help="Output results in CSV format",
    )

    parser.add_argument(
        "--mask",
        action="store_true",
        help="Mask subscription ids in the output",
    )

    parser.add_argument(
        "--output",
        type=Path,
        help="Write the report to this file instead of stdout",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser


def build_settings(args: argparse.Namespace) -> Settings:
    """Build settings from the environment, overridden by CLI arguments."""
    overrides: dict[str, Any] = {}
    if args.subscriptions:
        overrides["subscription_ids"] = args.subscriptions
    if args.resource_groups:
        overrides["resource_group_filter"] = args.resource_groups
    if args.include_types:
        overrides["include_resource_types"] = args.include_types
    if args.exclude_types:
        overrides["exclude_resource_types"] = args.exclude_types
    if args.detailed:
        overrides["enable_detailed_scan"] = True
    if args.max_parallel is not None:
        overrides["max_parallel_scans"] = args.max_parallel
    if args.timeout is not None:
        overrides["scan_timeout_seconds"] = args.timeout
    if args.mask:
        overrides["mask_subscription_ids"] = True
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return Settings(**overrides)


def render_report(report: ScanReport, args: argparse.Namespace, mask: bool) -> str:
    """Render the report in the requested format."""
    generator = ReportGenerator(report, mask=mask)

    if args.json:
        return generator.to_json()
    if args.markdown:
        return generator.to_markdown()
    if args.csv:
        return generator.to_csv()

    summary = generator.get_summary()
    lines = [
        "=" * 60,
        "AZURE QUICK REVIEW RESULTS",
        "=" * 60,
        f"Report ID: {summary['id']}",
        f"Started: {summary['started_at']}",
        f"Completed: {summary['completed_at']}",
        f"State: {summary['state']}",
        "",
        f"📊 Resources: {summary['resources']}",
        f"🔎 Recommendations evaluated: {summary['rows']}",
        f"❌ Broken: {summary['broken']}",
        f"❓ Indeterminate: {summary['indeterminate']}",
        f"⏭️  Skipped units: {summary['skipped_units']}",
        f"⚠️  Failed units: {summary['failed_units']}",
    ]

    if report.failed_units:
        lines.append("")
        lines.append("Failed units:")
        for unit in report.failed_units:
            scope = unit.resource_group or "*"
            lines.append(f"  - {unit.scanner} [{scope}]: {unit.message}")

    lines.extend(["", "-" * 60, "JSON Summary:", json.dumps(summary, indent=2)])
    return "\n".join(lines)


def exit_code_for(report: ScanReport) -> int:
    """Map a finished report to the process exit code."""
    if report.failed_units:
        return 1
    return 0


async def async_main(argv: list[str] | None = None) -> int:
    """Async main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Error: invalid settings: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    runner = ScanRunner(settings=settings)
    try:
        report = await runner.run_scan()
    except ScanCancelledError as e:
        print(f"Scan cancelled: {e.message}", file=sys.stderr)
        return 2
    except ScanError as e:
        print(f"Error running scan: {e.message}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Error running scan: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 2
    finally:
        runner.client_manager.close()

    output = render_report(report, args, mask=settings.mask_subscription_ids)
    if args.output:
        args.output.write_text(output, encoding="utf-8")
        logger.info(f"Report written to {args.output}")
    else:
        print(output)

    return exit_code_for(report)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        return asyncio.run(async_main(argv))
    except KeyboardInterrupt:
        print("\nScan interrupted by user", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
