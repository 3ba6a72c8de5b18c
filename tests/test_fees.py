"""Tests for ledger fee arithmetic."""

import pytest
from types import SimpleNamespace

from collective_ledger.connectors import BalanceTransaction, FeeDetail
from collective_ledger.fees import (
    application_fee,
    difference,
    ensure_fx_rate,
    extract_fees,
    has_non_zero_fees,
    host_fee,
    is_consistent,
    negate,
    net_value,
    round_half_up,
)
from collective_ledger.reconciliation import LedgerRow

from conftest import ledger_row_values


def row(**overrides) -> LedgerRow:
    return LedgerRow(id=1, **{
        k: v for k, v in ledger_row_values(**overrides).items()
        if k not in ("currency", "host_currency")
    })


class TestRounding:
    """Tests for round_half_up."""

    def test_rounds_half_towards_positive_infinity(self):
        """Halves go up for positive and negative values alike."""
        assert round_half_up(2.5) == 3
        assert round_half_up(-2.5) == -2
        assert round_half_up(-2.6) == -3

    def test_integers_unchanged(self):
        assert round_half_up(-1100) == -1100


class TestNetValue:
    """Tests for net_value and the consistency check."""

    def test_consistent_credit(self):
        """A credit without fees nets to its amount."""
        tr = row()
        assert net_value(tr) == 1000
        assert is_consistent(tr)
        assert difference(tr) == 0

    def test_fees_reduce_net_value(self):
        tr = row(
            host_fee_in_host_currency=-100,
            platform_fee_in_host_currency=-50,
            payment_processor_fee_in_host_currency=-59,
            net_amount_in_collective_currency=791,
        )
        assert net_value(tr) == 791
        assert is_consistent(tr)

    def test_rounds_before_applying_fx_rate(self):
        """The sum is rounded first, then converted."""
        tr = SimpleNamespace(**ledger_row_values(host_fee_in_host_currency=-0.5, host_currency_fx_rate=1.5))
        # round(999.5) = 1000, * 1.5
        assert net_value(tr) == 1500

    def test_fractional_net_value_compares_in_minor_units(self):
        """A converted net value is stored rounded to a whole minor unit."""
        tr = row(
            amount_in_host_currency=913,
            host_fee_in_host_currency=-91,
            platform_fee_in_host_currency=-46,
            payment_processor_fee_in_host_currency=-56,
            host_currency_fx_rate=1000 / 913,
            net_amount_in_collective_currency=789,
        )
        assert net_value(tr) != 789
        assert is_consistent(tr)

        tr.net_amount_in_collective_currency = 788
        assert not is_consistent(tr)

    def test_missing_fees_count_as_zero(self):
        tr = row(
            host_fee_in_host_currency=None,
            platform_fee_in_host_currency=None,
            payment_processor_fee_in_host_currency=None,
        )
        assert net_value(tr) == 1000
        assert is_consistent(tr)

    def test_missing_fx_rate_fails_consistency(self):
        tr = row(host_currency_fx_rate=None)
        assert net_value(tr) == 0
        assert not is_consistent(tr)
        assert difference(tr) == -1000

    def test_positive_debit_fees_are_inconsistent(self):
        """A debit storing its fees as positive values does not add up."""
        tr = row(
            type="DEBIT",
            amount=-1000,
            amount_in_host_currency=-1000,
            host_fee_in_host_currency=50,
            platform_fee_in_host_currency=30,
            payment_processor_fee_in_host_currency=20,
            net_amount_in_collective_currency=-1000,
        )
        assert net_value(tr) == -900
        assert not is_consistent(tr)
        assert difference(tr) == 100


class TestFeePresence:
    """Tests for has_non_zero_fees."""

    def test_no_fees(self):
        assert not has_non_zero_fees(row())

    def test_none_fees(self):
        assert not has_non_zero_fees(row(host_fee_in_host_currency=None))

    @pytest.mark.parametrize("field", [
        "host_fee_in_host_currency",
        "platform_fee_in_host_currency",
        "payment_processor_fee_in_host_currency",
    ])
    def test_any_single_fee(self, field):
        assert has_non_zero_fees(row(**{field: -1}))


class TestNegate:
    """Tests for negate."""

    def test_positive_becomes_negative(self):
        assert negate(50) == -50

    def test_negative_and_zero_unchanged(self):
        assert negate(-50) == -50
        assert negate(0) == 0

    def test_idempotent(self):
        for value in (-7, 0, 7):
            assert negate(negate(value)) == negate(value)

    def test_none_passes_through(self):
        assert negate(None) is None


class TestEnsureFxRate:
    """Tests for ensure_fx_rate."""

    def test_sets_rate_for_same_amount(self):
        tr = row(host_currency_fx_rate=None)
        assert ensure_fx_rate(tr) is True
        assert tr.host_currency_fx_rate == 1

    def test_keeps_existing_rate(self):
        tr = row(host_currency_fx_rate=1.2)
        assert ensure_fx_rate(tr) is False
        assert tr.host_currency_fx_rate == 1.2

    def test_leaves_converted_rows_alone(self):
        tr = row(amount=1000, amount_in_host_currency=900, host_currency_fx_rate=None)
        assert ensure_fx_rate(tr) is False
        assert tr.host_currency_fx_rate is None


class TestChargeFees:
    """Tests for the fee computations used when charging an order."""

    def test_application_fee_floors(self):
        assert application_fee(1000, 5) == 50
        assert application_fee(1099, 5) == 54

    def test_host_fee_floors(self):
        assert host_fee(1000, 10) == 100
        assert host_fee(999, 10) == 99

    def test_host_fee_without_percent(self):
        assert host_fee(1000, None) == 0

    def test_extract_fees(self):
        """Fee details are summed by type."""
        bt = BalanceTransaction(
            id="txn_1",
            amount=1000,
            currency="usd",
            fee=119,
            fee_details=[
                FeeDetail(amount=59, type="stripe_fee"),
                FeeDetail(amount=50, type="application_fee"),
                FeeDetail(amount=10, type="tax"),
            ],
        )
        fees = extract_fees(bt)
        assert fees.total == 119
        assert fees.stripe_fee == 59
        assert fees.application_fee == 50
        assert fees.other == 10
