"""Service layer for reconciliation operations."""

import uuid
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import TransactionRepository
from ..errors import PairingError
from .models import (
    ConflictRecord,
    LedgerRow,
    PairAction,
    PairKind,
    PairOutcome,
    ReconciliationOptions,
    ReconciliationReport,
    ReconciliationStatus,
)
from .reconciler import Reconciler
from .report import ReportGenerator

logger = logging.getLogger(__name__)


def check_pairs(rows: List[LedgerRow]) -> None:
    """Raise PairingError at the first adjacent pair that does not share a group.

    ``rows`` must have an even length.
    """
    for i in range(0, len(rows), 2):
        if rows[i].transaction_group != rows[i + 1].transaction_group:
            raise PairingError(rows[i].id, rows[i].transaction_group, rows[i + 1].transaction_group)


class ReconciliationJob:
    """Scans the ledger pair by pair and normalizes fee signs.

    Rows are read ordered by (transaction_group, id) so both halves of a pair
    are adjacent. The scan covers ``options.limit`` rows, or every
    non-deleted row counted when the run starts.
    """

    def __init__(
        self,
        session: AsyncSession,
        options: Optional[ReconciliationOptions] = None,
        reconciler: Optional[Reconciler] = None,
    ):
        """
        Args:
            session: Async database session.
            options: Run options; defaults to a dry run.
            reconciler: Pair migration logic; defaults to the order fee sign policy.
        """
        self.session = session
        self.options = options or ReconciliationOptions()
        self.reconciler = reconciler or Reconciler()
        self.transaction_repo = TransactionRepository(session)
        # Report of the latest run, kept when run() raises
        self.report: Optional[ReconciliationReport] = None

    async def run(self) -> ReconciliationReport:
        """Execute the reconciliation job.

        Returns:
            ReconciliationReport with counters and findings.

        Raises:
            PairingError: A row has no pair. The report is marked FAILED and
                batches processed before the error stay committed.
        """
        report = ReconciliationReport(
            id=str(uuid.uuid4()),
            status=ReconciliationStatus.IN_PROGRESS,
            dry_run=self.options.dry_run,
            created_at=datetime.utcnow(),
        )
        self.report = report
        logger.info(
            f"Starting reconciliation job {report.id} "
            f"({'dry run' if self.options.dry_run else 'writing changes'})"
        )

        try:
            await self._scan(report)
        except PairingError as e:
            logger.error(f"Reconciliation job {report.id} failed: {e}")
            report.status = ReconciliationStatus.FAILED
            report.error_message = str(e)
            report.completed_at = datetime.utcnow()
            raise

        report.status = ReconciliationStatus.COMPLETED
        report.completed_at = datetime.utcnow()
        logger.info(
            f"Reconciliation job {report.id} completed: "
            f"{report.pairs_checked} pairs, "
            f"{report.corrected_pairs} corrected, "
            f"{len(report.inconsistencies)} inconsistencies, "
            f"{len(report.conflicts)} conflicts"
        )
        return report

    async def _scan(self, report: ReconciliationReport) -> None:
        total = self.options.limit or await self.transaction_repo.count_valid()
        report.total_count = total
        offset = 0
        pending: List[LedgerRow] = []

        while offset < total:
            size = min(self.options.batch_size, total - offset)
            # Fetch one extra row when needed so the last pair is complete
            if (len(pending) + size) % 2:
                size += 1
            batch = await self.transaction_repo.list_valid(limit=size, offset=offset)
            if not batch:
                break
            offset += len(batch)
            report.rows_scanned += len(batch)

            rows = pending + [LedgerRow.model_validate(tr) for tr in batch]
            pending = [rows.pop()] if len(rows) % 2 else []
            check_pairs(rows)

            for i in range(0, len(rows), 2):
                outcome = self.reconciler.migrate(rows[i], rows[i + 1])
                await self._record(report, outcome, {rows[i].id: rows[i], rows[i + 1].id: rows[i + 1]})

            if not self.options.dry_run:
                await self.session.commit()
            logger.debug(f"Processed {offset}/{total} transactions")

        if pending:
            row = pending[0]
            raise PairingError(row.id, row.transaction_group)

    async def _record(
        self,
        report: ReconciliationReport,
        outcome: PairOutcome,
        scanned: Dict[int, LedgerRow],
    ) -> None:
        """Count the outcome and write its changed rows unless dry running."""
        report.pairs_checked += 1
        if outcome.kind == PairKind.EXPENSE:
            report.expense_pairs += 1
        elif outcome.kind == PairKind.ORDER:
            report.order_pairs += 1
        else:
            report.unlinked_pairs += 1
        if outcome.action == PairAction.SKIPPED:
            report.skipped_pairs += 1
        elif outcome.action == PairAction.CORRECTED:
            report.corrected_pairs += 1

        report.corrections.extend(outcome.corrections)
        report.inconsistencies.extend(outcome.inconsistencies)
        if self.options.verbose:
            report.outcomes.append(outcome)

        if outcome.action != PairAction.CORRECTED:
            return

        for row in (outcome.credit, outcome.debit):
            original = scanned[row.id]
            changes = row.changes_from(original)
            if not changes:
                continue
            report.rows_changed += 1
            if self.options.dry_run:
                continue

            expected = original.patchable_values()
            updated = await self.transaction_repo.update_if_unchanged(row.id, expected, changes)
            if updated:
                report.rows_written += 1
            else:
                report.conflicts.append(ConflictRecord(
                    transaction_id=row.id,
                    transaction_group=row.transaction_group,
                    expected=expected,
                    attempted=changes,
                ))

    def generate_report(
        self,
        report: ReconciliationReport,
        format: str = "json",
        include_details: bool = True,
    ) -> str:
        """Generate a formatted report from reconciliation results.

        Args:
            report: ReconciliationReport to format.
            format: Output format ('json', 'csv', 'text', 'detailed_text').
            include_details: Include detailed records (for JSON format).

        Returns:
            Formatted report string.
        """
        generator = ReportGenerator(report)

        if format == "json":
            return generator.to_json(include_details=include_details)
        elif format == "csv":
            return generator.to_csv(record_type="all")
        elif format == "text":
            return generator.to_summary_text()
        elif format == "detailed_text":
            return generator.to_detailed_text()
        else:
            raise ValueError(f"Unsupported report format: {format}")
