"""Per-pair fee migration for the double-entry ledger."""

import logging
from typing import Callable, List, Tuple

from ..fees import FEE_FIELDS, difference, ensure_fx_rate, has_non_zero_fees, is_consistent, negate, net_value
from .models import (
    FeeCorrection,
    InconsistencyRecord,
    LedgerRow,
    PairAction,
    PairKind,
    PairOutcome,
)

logger = logging.getLogger(__name__)

FeeSignPolicy = Callable[[LedgerRow], LedgerRow]


def order_fee_sign_policy(row: LedgerRow) -> LedgerRow:
    """Order-linked rows carry non-positive fees on both sides of the pair.

    Each of the three fee columns of ``row`` is negated when positive.
    """
    return row.model_copy(update={field: negate(getattr(row, field)) for field in FEE_FIELDS})


class Reconciler:
    """Migrates one CREDIT/DEBIT pair at a time.

    Works on ``LedgerRow`` snapshots and returns corrected copies; it never
    touches the database, so dry runs and real runs share the same logic.
    """

    def __init__(self, fee_sign_policy: FeeSignPolicy = order_fee_sign_policy):
        self.fee_sign_policy = fee_sign_policy

    @staticmethod
    def split(tr1: LedgerRow, tr2: LedgerRow) -> Tuple[LedgerRow, LedgerRow]:
        """Return (credit, debit) based on the ``type`` of each row."""
        credit = tr1 if tr1.type == "CREDIT" else tr2
        debit = tr1 if tr1.type == "DEBIT" else tr2
        return credit, debit

    @staticmethod
    def kind(tr1: LedgerRow, tr2: LedgerRow) -> PairKind:
        if tr1.expense_id is not None and tr1.expense_id == tr2.expense_id:
            return PairKind.EXPENSE
        if tr1.order_id is not None and tr1.order_id == tr2.order_id:
            return PairKind.ORDER
        return PairKind.UNLINKED

    def _verify(self, rows: List[LedgerRow], kind: PairKind) -> List[InconsistencyRecord]:
        found = []
        for row in rows:
            if not is_consistent(row):
                found.append(InconsistencyRecord(
                    transaction_id=row.id,
                    transaction_group=row.transaction_group,
                    type=row.type,
                    kind=kind,
                    net_value=net_value(row),
                    net_amount_in_collective_currency=row.net_amount_in_collective_currency,
                    difference=difference(row),
                ))
                logger.info(
                    f"doesn't add up | {row.id} | {row.type} | {row.transaction_group} "
                    f"| {difference(row)} |"
                )
        return found

    def _corrections(self, original: LedgerRow, updated: LedgerRow) -> List[FeeCorrection]:
        return [
            FeeCorrection(
                transaction_id=original.id,
                transaction_group=original.transaction_group,
                field_name=name,
                old_value=getattr(original, name),
                new_value=value,
            )
            for name, value in updated.changes_from(original).items()
        ]

    def migrate(self, tr1: LedgerRow, tr2: LedgerRow) -> PairOutcome:
        """Migrate one pair of transactions.

        Expense pairs and pairs with no common link are only verified. Order
        pairs get their fx rate filled in and their fees re-signed by the fee
        sign policy, unless neither row has any fee.

        The caller guarantees both rows share a transaction group.
        """
        credit, debit = self.split(tr1, tr2)
        kind = self.kind(tr1, tr2)
        group = tr1.transaction_group

        if kind != PairKind.ORDER:
            logger.debug(f"{group}: {kind.value} pair, verify only")
            return PairOutcome(
                transaction_group=group,
                kind=kind,
                action=PairAction.VERIFIED,
                credit=credit,
                debit=debit,
                inconsistencies=self._verify([credit, debit], kind),
            )

        new_credit = credit.model_copy()
        new_debit = debit.model_copy()
        ensure_fx_rate(new_credit)
        ensure_fx_rate(new_debit)
        logger.debug(
            f"{group}: order pair, consistent {is_consistent(new_credit)}/{is_consistent(new_debit)}"
        )

        if not has_non_zero_fees(tr1) and not has_non_zero_fees(tr2):
            logger.debug(f"{group}: no fees, skipping")
            return PairOutcome(
                transaction_group=group,
                kind=kind,
                action=PairAction.SKIPPED,
                credit=credit,
                debit=debit,
            )

        new_credit = self.fee_sign_policy(new_credit)
        new_debit = self.fee_sign_policy(new_debit)
        corrections = self._corrections(credit, new_credit) + self._corrections(debit, new_debit)
        return PairOutcome(
            transaction_group=group,
            kind=kind,
            action=PairAction.CORRECTED if corrections else PairAction.UNCHANGED,
            credit=new_credit,
            debit=new_debit,
            corrections=corrections,
            inconsistencies=self._verify([new_credit, new_debit], kind),
        )
