"""Models for ledger fee reconciliation."""

import enum
from datetime import datetime
from typing import Optional, Dict, Any, List, Union
from pydantic import BaseModel, ConfigDict, Field

from ..errors import InconsistencyDetected

# Columns reconciliation is allowed to patch
PATCHABLE_FIELDS = (
    "host_currency_fx_rate",
    "host_fee_in_host_currency",
    "platform_fee_in_host_currency",
    "payment_processor_fee_in_host_currency",
)


class ReconciliationStatus(str, enum.Enum):
    """Status of a reconciliation job."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PairKind(str, enum.Enum):
    """What both rows of a pair are linked to."""
    EXPENSE = "expense"
    ORDER = "order"
    UNLINKED = "unlinked"


class PairAction(str, enum.Enum):
    VERIFIED = "verified"  # checked, never modified
    SKIPPED = "skipped"  # order pair without fees
    CORRECTED = "corrected"
    UNCHANGED = "unchanged"  # order pair already correctly signed


class LedgerRow(BaseModel):
    """Snapshot of the Transaction columns reconciliation reads and patches."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    transaction_group: str
    amount: int
    amount_in_host_currency: Optional[int] = None
    host_currency_fx_rate: Optional[float] = None
    host_fee_in_host_currency: Optional[int] = None
    platform_fee_in_host_currency: Optional[int] = None
    payment_processor_fee_in_host_currency: Optional[int] = None
    net_amount_in_collective_currency: Optional[int] = None
    order_id: Optional[int] = None
    expense_id: Optional[int] = None

    def patchable_values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in PATCHABLE_FIELDS}

    def changes_from(self, original: "LedgerRow") -> Dict[str, Any]:
        """Patchable columns whose value differs from ``original``."""
        return {
            name: value
            for name, value in self.patchable_values().items()
            if value != getattr(original, name)
        }


class FeeCorrection(BaseModel):
    """One column rewritten on one row."""
    transaction_id: int
    transaction_group: str
    field_name: str
    old_value: Optional[Union[int, float]] = None
    new_value: Optional[Union[int, float]] = None


class InconsistencyRecord(BaseModel):
    """A row whose net value does not match its net amount."""
    transaction_id: int
    transaction_group: str
    type: str
    kind: PairKind
    net_value: Union[int, float]
    net_amount_in_collective_currency: Optional[int] = None
    difference: Union[int, float]
    detected_at: datetime = Field(default_factory=datetime.utcnow)


class ConflictRecord(BaseModel):
    """A correction not written because the row changed after it was scanned."""
    transaction_id: int
    transaction_group: str
    expected: Dict[str, Any]
    attempted: Dict[str, Any]
    detected_at: datetime = Field(default_factory=datetime.utcnow)


class PairOutcome(BaseModel):
    """Result of migrating one CREDIT/DEBIT pair.

    ``credit`` and ``debit`` hold the rows as they should be stored; the
    scanned rows are left untouched.
    """
    transaction_group: str
    kind: PairKind
    action: PairAction
    credit: LedgerRow
    debit: LedgerRow
    corrections: List[FeeCorrection] = Field(default_factory=list)
    inconsistencies: List[InconsistencyRecord] = Field(default_factory=list)


class ReconciliationOptions(BaseModel):
    """Options of a reconciliation run."""
    dry_run: bool = Field(default=True, description="Compute corrections without writing them")
    verbose: bool = Field(default=False, description="Keep per-pair outcomes in the report")
    limit: Optional[int] = Field(default=None, gt=0, description="Number of rows to scan")
    batch_size: int = Field(default=100, gt=0, description="Rows fetched per query")


class ReconciliationReport(BaseModel):
    """Complete reconciliation report with all findings."""
    id: str = Field(..., description="Report ID")
    status: ReconciliationStatus = Field(default=ReconciliationStatus.PENDING)
    dry_run: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(None, description="Time when reconciliation completed")

    # Statistics
    total_count: int = Field(default=0, description="Rows the scan was planned to cover")
    rows_scanned: int = Field(default=0)
    pairs_checked: int = Field(default=0)
    expense_pairs: int = Field(default=0)
    order_pairs: int = Field(default=0)
    unlinked_pairs: int = Field(default=0)
    skipped_pairs: int = Field(default=0)
    corrected_pairs: int = Field(default=0)
    rows_changed: int = Field(default=0)
    rows_written: int = Field(default=0)

    # Detailed records
    corrections: List[FeeCorrection] = Field(default_factory=list)
    inconsistencies: List[InconsistencyRecord] = Field(default_factory=list)
    conflicts: List[ConflictRecord] = Field(default_factory=list)
    outcomes: List[PairOutcome] = Field(default_factory=list)

    # Error information
    error_message: Optional[str] = Field(None, description="Error message if reconciliation failed")

    @property
    def has_findings(self) -> bool:
        return bool(self.inconsistencies or self.conflicts)

    def raise_for_inconsistencies(self) -> None:
        """Raise InconsistencyDetected if any row still fails the net-value check."""
        if self.inconsistencies:
            raise InconsistencyDetected(list(self.inconsistencies))

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return a summary of the report without detailed records."""
        return {
            "id": self.id,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "statistics": {
                "total_count": self.total_count,
                "rows_scanned": self.rows_scanned,
                "pairs_checked": self.pairs_checked,
                "expense_pairs": self.expense_pairs,
                "order_pairs": self.order_pairs,
                "unlinked_pairs": self.unlinked_pairs,
                "skipped_pairs": self.skipped_pairs,
                "corrected_pairs": self.corrected_pairs,
                "rows_changed": self.rows_changed,
                "rows_written": self.rows_written,
                "total_inconsistencies": len(self.inconsistencies),
                "total_conflicts": len(self.conflicts),
            },
            "error_message": self.error_message,
        }

    def to_full_dict(self) -> Dict[str, Any]:
        """Return the complete report including all records."""
        result = self.to_summary_dict()
        result["corrections"] = [r.model_dump(mode="json") for r in self.corrections]
        result["inconsistencies"] = [r.model_dump(mode="json") for r in self.inconsistencies]
        result["conflicts"] = [r.model_dump(mode="json") for r in self.conflicts]
        if self.outcomes:
            result["outcomes"] = [r.model_dump(mode="json") for r in self.outcomes]
        return result
