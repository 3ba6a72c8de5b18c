"""Exception hierarchy for order processing and ledger reconciliation."""

from typing import Any, List, Optional


class LedgerError(Exception):
    """Base class for all collective_ledger errors."""

    def __init__(self, message: str):
        super().__init__(message)
        # Set by OrderProcessor when the error aborts an order workflow
        self.workflow: Optional[Any] = None


class OrderNotFound(LedgerError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class HostAccountMissing(LedgerError):
    """Raised when a collective's host has no gateway account configured."""

    def __init__(self, collective_id: int, host_collective_id: Optional[int] = None):
        self.collective_id = collective_id
        self.host_collective_id = host_collective_id
        super().__init__(
            f"No gateway account configured for the host of collective {collective_id}"
            + (f" (host {host_collective_id})" if host_collective_id else "")
        )


class GatewayError(LedgerError):
    """Wraps any failed call to the payment gateway."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        """
        Args:
            message: Error message
            operation: Gateway operation that failed (e.g. ``create_charge``)
            original_error: Underlying SDK or network exception
        """
        super().__init__(message)
        self.operation = operation
        self.original_error = original_error


class PairingError(LedgerError):
    """Raised when a ledger scan finds a transaction without its pair."""

    def __init__(
        self,
        transaction_id: Any,
        transaction_group: Optional[str],
        other_group: Optional[str] = None,
    ):
        self.transaction_id = transaction_id
        self.transaction_group = transaction_group
        self.other_group = other_group
        super().__init__(
            f"Cannot find pair for the transaction id {transaction_id} "
            f"(group {transaction_group}, next row group {other_group})"
        )


class InconsistencyDetected(LedgerError):
    """Raised on demand when reconciliation left rows failing the net-value check."""

    def __init__(self, findings: List[Any]):
        self.findings = findings
        super().__init__(f"{len(findings)} transaction(s) do not add up after correction")
