"""Fee arithmetic shared by order processing and ledger reconciliation.

Every function here is pure: it reads amounts from any object exposing the
ledger column names (ORM ``Transaction`` rows or ``LedgerRow`` snapshots) and
never performs I/O.
"""

import math
from typing import Any, Optional, Union

from .connectors.base import BalanceTransaction, GatewayFees

Number = Union[int, float]

FEE_FIELDS = (
    "host_fee_in_host_currency",
    "platform_fee_in_host_currency",
    "payment_processor_fee_in_host_currency",
)


def round_half_up(value: Number) -> int:
    """Round like the ledger always has: halves go towards +infinity."""
    return int(math.floor(value + 0.5))


def _amount(value: Optional[Number]) -> Number:
    return value or 0


def net_value(tr: Any) -> Number:
    """Net value of a transaction.

    The sum of the host currency amount and its fees is rounded *before* the
    fx rate is applied; the consistency check depends on that order.
    """
    total = _amount(tr.amount_in_host_currency)
    for field in FEE_FIELDS:
        total += _amount(getattr(tr, field))
    fx_rate = tr.host_currency_fx_rate
    if fx_rate is None:
        fx_rate = 0
    return round_half_up(total) * fx_rate


def is_consistent(tr: Any) -> bool:
    """Verify the net value of a transaction.

    The stored net is in minor units, so the net value is compared once
    rounded to a whole unit. Same-currency rows are unaffected.
    """
    return round_half_up(net_value(tr)) == tr.net_amount_in_collective_currency


def difference(tr: Any) -> Number:
    """Difference between the net value and netAmountInCollectiveCurrency."""
    return net_value(tr) - _amount(tr.net_amount_in_collective_currency)


def _parse_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def has_non_zero_fees(tr: Any) -> bool:
    return any(_parse_int(getattr(tr, field)) != 0 for field in FEE_FIELDS)


def negate(value: Optional[Number]) -> Optional[Number]:
    """Convert ``value`` to negative if it's positive; leave anything else alone."""
    if value is not None and value > 0:
        return -value
    return value


def ensure_fx_rate(tr: Any) -> bool:
    """Fill in a rate of 1 for same-currency transactions missing one.

    Returns:
        True if the rate was set.
    """
    if tr.amount == tr.amount_in_host_currency and not tr.host_currency_fx_rate:
        tr.host_currency_fx_rate = 1
        return True
    return False


def application_fee(total_amount: int, fee_percent: Number) -> int:
    """Platform application fee taken on a charge."""
    return int(math.floor(total_amount * fee_percent / 100))


def host_fee(amount: int, fee_percent: Number) -> int:
    """Host fee on a settled amount, in the settlement currency."""
    return int(math.floor(amount * (fee_percent or 0) / 100))


def extract_fees(balance_transaction: BalanceTransaction) -> GatewayFees:
    """Split a balance transaction's fee details into processor and platform fees."""
    fees = GatewayFees(total=balance_transaction.fee or 0)
    for detail in balance_transaction.fee_details:
        if detail.type == "stripe_fee":
            fees.stripe_fee += detail.amount
        elif detail.type == "application_fee":
            fees.application_fee += detail.amount
        else:
            fees.other += detail.amount
    return fees
