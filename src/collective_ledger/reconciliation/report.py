"""Report generation for reconciliation results."""

import json
import csv
import io
from datetime import datetime

from .models import ReconciliationReport, PairKind


class ReportGenerator:
    """Generator for reconciliation reports in various formats."""

    def __init__(self, report: ReconciliationReport):
        """Initialize the report generator.

        Args:
            report: The reconciliation report to generate output from.
        """
        self.report = report

    def to_json(self, include_details: bool = True, indent: int = 2) -> str:
        """Generate JSON representation of the report.

        Args:
            include_details: If True, include all records. If False, only summary.
            indent: JSON indentation level.

        Returns:
            JSON string representation of the report.
        """
        if include_details:
            data = self.report.to_full_dict()
        else:
            data = self.report.to_summary_dict()

        def json_serializer(obj):
            if isinstance(obj, datetime):
                return obj.isoformat()
            if isinstance(obj, PairKind):
                return obj.value
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(data, indent=indent, default=json_serializer)

    def to_csv(self, record_type: str = "all") -> str:
        """Generate CSV representation of specific record types.

        Args:
            record_type: Type of records to include ('corrections',
                        'inconsistencies', 'conflicts', or 'all').

        Returns:
            CSV string with the requested records.
        """
        output = io.StringIO()

        if record_type in ("corrections", "all"):
            if self.report.corrections:
                writer = csv.writer(output)
                writer.writerow([
                    "type", "transaction_id", "transaction_group", "field_name",
                    "old_value", "new_value"
                ])
                for record in self.report.corrections:
                    writer.writerow([
                        "correction",
                        record.transaction_id,
                        record.transaction_group,
                        record.field_name,
                        record.old_value,
                        record.new_value,
                    ])

        if record_type in ("inconsistencies", "all"):
            if self.report.inconsistencies:
                if output.tell() > 0:
                    output.write("\n")
                writer = csv.writer(output)
                writer.writerow([
                    "type", "transaction_id", "transaction_group", "row_type", "kind",
                    "net_value", "net_amount_in_collective_currency", "difference", "detected_at"
                ])
                for record in self.report.inconsistencies:
                    writer.writerow([
                        "inconsistency",
                        record.transaction_id,
                        record.transaction_group,
                        record.type,
                        record.kind.value,
                        record.net_value,
                        record.net_amount_in_collective_currency,
                        record.difference,
                        record.detected_at.isoformat(),
                    ])

        if record_type in ("conflicts", "all"):
            if self.report.conflicts:
                if output.tell() > 0:
                    output.write("\n")
                writer = csv.writer(output)
                writer.writerow([
                    "type", "transaction_id", "transaction_group", "expected",
                    "attempted", "detected_at"
                ])
                for record in self.report.conflicts:
                    writer.writerow([
                        "conflict",
                        record.transaction_id,
                        record.transaction_group,
                        json.dumps(record.expected),
                        json.dumps(record.attempted),
                        record.detected_at.isoformat(),
                    ])

        return output.getvalue()

    def to_summary_text(self) -> str:
        """Generate a human-readable text summary of the report.

        Returns:
            Formatted text summary of the reconciliation report.
        """
        summary = self.report.to_summary_dict()
        stats = summary["statistics"]

        lines = [
            "=" * 60,
            "FEE RECONCILIATION REPORT SUMMARY",
            "=" * 60,
            f"Report ID: {summary['id']}",
            f"Status: {summary['status']}",
            f"Mode: {'dry run' if summary['dry_run'] else 'changes written'}",
            "",
            "Statistics:",
            f"  Planned Rows: {stats['total_count']}",
            f"  Rows Scanned: {stats['rows_scanned']}",
            f"  Pairs Checked: {stats['pairs_checked']}",
            f"    Order Pairs: {stats['order_pairs']}",
            f"    Expense Pairs: {stats['expense_pairs']}",
            f"    Unlinked Pairs: {stats['unlinked_pairs']}",
            f"  Skipped (no fees): {stats['skipped_pairs']}",
            f"  Corrected Pairs: {stats['corrected_pairs']}",
            f"  Rows Changed: {stats['rows_changed']}",
            f"  Rows Written: {stats['rows_written']}",
            f"  Inconsistencies: {stats['total_inconsistencies']}",
            f"  Conflicts: {stats['total_conflicts']}",
            "",
            f"Created At: {summary['created_at']}",
            f"Completed At: {summary['completed_at'] or 'N/A'}",
        ]

        if summary.get("error_message"):
            lines.extend([
                "",
                "Error:",
                f"  {summary['error_message']}",
            ])

        lines.append("=" * 60)

        return "\n".join(lines)

    def to_detailed_text(self) -> str:
        """Generate a detailed human-readable text report.

        Returns:
            Formatted text with summary and all records.
        """
        lines = [self.to_summary_text(), ""]

        if self.report.inconsistencies:
            lines.extend([
                "INCONSISTENT TRANSACTIONS",
                "-" * 40,
            ])
            for r in self.report.inconsistencies:
                lines.append(
                    f"  doesn't add up | {r.transaction_id} | {r.type} | "
                    f"{r.transaction_group} | {r.difference} | ({r.kind.value})"
                )
            lines.append("")

        if self.report.conflicts:
            lines.extend([
                "CONFLICTS (changed since scanned, not written)",
                "-" * 40,
            ])
            for r in self.report.conflicts:
                lines.extend([
                    f"\nTransaction: {r.transaction_id} | Group: {r.transaction_group}",
                    f"  Expected: {r.expected}",
                    f"  Attempted: {r.attempted}",
                ])
            lines.append("")

        if self.report.corrections:
            lines.extend([
                "CORRECTIONS",
                "-" * 40,
            ])
            for r in self.report.corrections:
                lines.append(
                    f"  {r.transaction_id} | {r.field_name}: {r.old_value} -> {r.new_value}"
                )
            lines.append("")

        return "\n".join(lines)
