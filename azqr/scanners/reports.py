"""Report generation for scan results.

Provides JSON, Markdown and CSV output formats. Rows are rendered in report
order; subscription ids can be masked for sharing.
"""

import csv
import io
import json
import logging
from typing import Any

from azqr.scanners.models import ResultRow, ScanReport, ScanUnitResult, UnitStatus

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "subscription_id",
    "subscription_name",
    "resource_group",
    "location",
    "resource_type",
    "resource_name",
    "category",
    "impact",
    "rule_id",
    "description",
    "broken",
    "indeterminate",
    "detail",
    "learn_more_url",
]


def mask_subscription_id(subscription_id: str) -> str:
    """Mask a subscription id, keeping only its last 12 characters."""
    if not subscription_id:
        return subscription_id
    return "xxxxxxxx-xxxx-xxxx-xxxx-" + subscription_id[-12:]


class ReportGenerator:
    """Generate reports from scan results."""

    def __init__(self, report: ScanReport, mask: bool = False):
        """Initialize the report generator.

        Args:
            report: The scan report to render
            mask: Whether to mask subscription ids
        """
        self.report = report
        self.mask = mask

    def _subscription(self, subscription_id: str) -> str:
        if self.mask:
            return mask_subscription_id(subscription_id)
        return subscription_id

    def _row_dict(self, row: ResultRow) -> dict[str, Any]:
        data = row.model_dump(mode="json")
        data["subscription_id"] = self._subscription(row.subscription_id)
        return data

    def _unit_dict(self, unit: ScanUnitResult) -> dict[str, Any]:
        data = unit.model_dump(mode="json")
        data["subscription_id"] = self._subscription(unit.subscription_id)
        return data

    def to_json(self, pretty: bool = True) -> str:
        """Generate JSON report.

        Args:
            pretty: Whether to pretty-print the JSON

        Returns:
            JSON string representation of the report
        """
        data = {
            "id": self.report.id,
            "started_at": self.report.started_at.isoformat(),
            "completed_at": self.report.completed_at.isoformat()
            if self.report.completed_at
            else None,
            "state": self.report.state.value,
            "detailed_scan": self.report.detailed_scan,
            "subscription_ids": [
                self._subscription(s) for s in self.report.subscription_ids
            ],
            "summary": self.get_summary(),
            "units": [self._unit_dict(u) for u in self.report.units],
            "results": [self._row_dict(r) for r in self.report.rows],
        }

        if pretty:
            return json.dumps(data, indent=2)
        return json.dumps(data)

    def to_markdown(self) -> str:
        """Generate Markdown report.

        Returns:
            Markdown string representation of the report
        """
        summary = self.get_summary()
        lines = [
            "# Azure Quick Review Report",
            "",
            f"**Report ID:** `{self.report.id}`",
            f"**Started:** {self.report.started_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
        ]

        if self.report.completed_at:
            lines.append(
                f"**Completed:** {self.report.completed_at.strftime('%Y-%m-%d %H:%M:%S')} UTC"
            )

        lines.extend([
            f"**State:** {self.report.state.value}",
            "",
            "## Summary",
            "",
            f"- **Subscriptions:** {summary['subscriptions']}",
            f"- **Resources:** {summary['resources']}",
            f"- **Recommendations evaluated:** {summary['rows']}",
            f"- ❌ **Broken:** {summary['broken']}",
            f"- ❓ **Indeterminate:** {summary['indeterminate']}",
            f"- ⏭️ **Skipped units:** {summary['skipped_units']}",
            f"- ⚠️ **Failed units:** {summary['failed_units']}",
            "",
        ])

        if self.report.rows:
            lines.extend([
                "## Recommendations",
                "",
                "| Subscription | Resource Group | Type | Name | Id | Category | Impact "
                "| Recommendation | Broken | Detail |",
                "|---|---|---|---|---|---|---|---|---|---|",
            ])
            for row in self.report.rows:
                status = "❓" if row.indeterminate else ("❌" if row.broken else "✅")
                lines.append(
                    f"| {self._subscription(row.subscription_id)} | {row.resource_group} "
                    f"| {row.resource_type} | {row.resource_name} | {row.rule_id} "
                    f"| {row.category.value} | {row.impact.value} "
                    f"| {_escape(row.description)} | {status} | {_escape(row.detail)} |"
                )
            lines.append("")

        incomplete = [u for u in self.report.units if u.status != UnitStatus.COMPLETED]
        if incomplete:
            lines.extend([
                "## Incomplete Coverage",
                "",
                "| Subscription | Resource Group | Scanner | Status | Kind | Message |",
                "|---|---|---|---|---|---|",
            ])
            for unit in incomplete:
                kind = unit.error_kind.value if unit.error_kind else ""
                lines.append(
                    f"| {self._subscription(unit.subscription_id)} "
                    f"| {unit.resource_group or '*'} | {unit.scanner} "
                    f"| {unit.status.value} | {kind} | {_escape(unit.message)} |"
                )
            lines.append("")

        return "\n".join(lines)

    def to_csv(self) -> str:
        """Generate CSV report with one line per result row."""
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for row in self.report.rows:
            writer.writerow(self._row_dict(row))
        return output.getvalue()

    def get_summary(self) -> dict[str, Any]:
        """Get summary statistics, including counts per category and impact."""
        summary = self.report.get_summary()

        by_category: dict[str, int] = {}
        by_impact: dict[str, int] = {}
        for row in self.report.rows:
            if not row.broken:
                continue
            by_category[row.category.value] = by_category.get(row.category.value, 0) + 1
            by_impact[row.impact.value] = by_impact.get(row.impact.value, 0) + 1

        summary["broken_by_category"] = by_category
        summary["broken_by_impact"] = by_impact
        return summary


def _escape(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")
