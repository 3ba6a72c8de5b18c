"""Fee reconciliation for the double-entry ledger.

Scans transaction pairs ordered by transaction group and normalizes the sign
of the fee columns of order-linked pairs so that every row satisfies

    round(amount_in_host_currency + fees) * host_currency_fx_rate
        == net_amount_in_collective_currency

Rows that still do not add up are reported for manual follow-up.

Features:
- Pure per-pair migration with a named fee sign policy
- Dry runs that compute corrections without writing them
- Optimistic per-row writes that record concurrent changes as conflicts
- Reports as JSON, CSV or text
"""

from .models import (
    ReconciliationStatus,
    PairKind,
    PairAction,
    LedgerRow,
    FeeCorrection,
    InconsistencyRecord,
    ConflictRecord,
    PairOutcome,
    ReconciliationOptions,
    ReconciliationReport,
)
from .reconciler import Reconciler, order_fee_sign_policy
from .service import ReconciliationJob, check_pairs
from .report import ReportGenerator

__all__ = [
    # Models
    "ReconciliationStatus",
    "PairKind",
    "PairAction",
    "LedgerRow",
    "FeeCorrection",
    "InconsistencyRecord",
    "ConflictRecord",
    "PairOutcome",
    "ReconciliationOptions",
    "ReconciliationReport",
    # Core Components
    "Reconciler",
    "order_fee_sign_policy",
    "ReconciliationJob",
    "check_pairs",
    "ReportGenerator",
]
