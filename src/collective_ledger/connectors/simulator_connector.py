"""Simulator gateway for exercising order flows without real gateway calls."""

import uuid
import time
import logging
from typing import Dict, Any, List, Optional, Set, Tuple
from dataclasses import dataclass, field

from ..errors import GatewayError
from .base import (
    BalanceTransaction,
    ChargeRequest,
    CustomerProfile,
    FeeDetail,
    GatewayBase,
    GatewayCharge,
    GatewayCustomer,
    GatewayPlan,
    GatewaySubscription,
    GatewayToken,
    HostAccount,
    PlanRequest,
    SubscriptionRequest,
)

logger = logging.getLogger(__name__)

PLATFORM = "platform"


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    processor_fee_percent: float = 2.9
    processor_fee_fixed: int = 30
    settlement_currency: Optional[str] = None  # None settles in the charge currency
    settlement_fx_rate: float = 1.0  # charge currency -> settlement currency
    delay_ms: int = 0
    fail_on: Set[str] = field(default_factory=set)  # operation names that raise GatewayError


@dataclass
class SimulatedCall:
    operation: str
    account: str
    args: Dict[str, Any] = field(default_factory=dict)


class SimulatorGateway(GatewayBase):
    """
    In-memory gateway. Keeps customers, charges, balance transactions, plans
    and subscriptions per account and records every call in order.

    Special tokens:
    - ``sim_card_decline``: ``create_charge`` raises a card decline
    - ``sim_card_timeout``: ``create_charge`` raises a timeout
    """

    name = "simulator"

    CARD_DECLINE = "sim_card_decline"
    CARD_TIMEOUT = "sim_card_timeout"

    def __init__(self, config: Optional[SimulatorConfig] = None):
        self.config = config or SimulatorConfig()
        self.calls: List[SimulatedCall] = []
        self.customers: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.tokens: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.charges: Dict[Tuple[str, str], GatewayCharge] = {}
        self.balance_transactions: Dict[Tuple[str, str], BalanceTransaction] = {}
        self.plans: Dict[Tuple[str, str], GatewayPlan] = {}
        self.subscriptions: Dict[Tuple[str, str], GatewaySubscription] = {}
        logger.info("SimulatorGateway initialized")

    def _generate_id(self, prefix: str) -> str:
        return f"{prefix}_sim_{uuid.uuid4().hex[:16]}"

    def _account(self, host_account: Optional[HostAccount]) -> str:
        return host_account.username if host_account else PLATFORM

    def _record(self, operation: str, host_account: Optional[HostAccount], **args: Any) -> str:
        if self.config.delay_ms > 0:
            time.sleep(self.config.delay_ms / 1000.0)
        account = self._account(host_account)
        self.calls.append(SimulatedCall(operation=operation, account=account, args=args))
        if operation in self.config.fail_on:
            raise GatewayError(
                f"Simulated {operation} failure",
                operation=operation,
                original_error=RuntimeError(f"simulated failure in {operation}"),
            )
        return account

    def operations(self) -> List[str]:
        """Names of the calls made so far, in order (for tests)."""
        return [c.operation for c in self.calls]

    def create_customer(
        self,
        host_account: Optional[HostAccount],
        token: str,
        profile: CustomerProfile,
    ) -> GatewayCustomer:
        account = self._record("create_customer", host_account, token=token)
        customer_id = self._generate_id("cus")
        self.customers[(account, customer_id)] = {
            "id": customer_id,
            "source": token,
            "email": profile.email,
        }
        return GatewayCustomer(id=customer_id, raw_response={"id": customer_id, "simulator": True})

    def create_token(self, host_account: HostAccount, customer_id: str) -> GatewayToken:
        account = self._record("create_token", host_account, customer_id=customer_id)
        if (PLATFORM, customer_id) not in self.customers:
            raise GatewayError(
                f"No such customer: {customer_id}",
                operation="create_token",
            )
        token_id = self._generate_id("tok")
        self.tokens[(account, token_id)] = {
            "id": token_id,
            "customer": customer_id,
            "source": self.customers[(PLATFORM, customer_id)]["source"],
        }
        return GatewayToken(id=token_id)

    def _token_source(self, account: str, token_id: str) -> Optional[str]:
        token = self.tokens.get((account, token_id))
        return token["source"] if token else None

    def create_charge(self, host_account: HostAccount, request: ChargeRequest) -> GatewayCharge:
        account = self._record(
            "create_charge", host_account,
            amount=request.amount, currency=request.currency,
            application_fee=request.application_fee,
        )
        source = self._token_source(account, request.source)
        if source == self.CARD_TIMEOUT:
            raise GatewayError(
                "Simulated timeout", operation="create_charge",
                original_error=TimeoutError("Simulated timeout"),
            )
        if source == self.CARD_DECLINE:
            raise GatewayError("Your card was declined.", operation="create_charge")

        settlement_currency = (self.config.settlement_currency or request.currency).lower()
        settled = int(round(request.amount * self.config.settlement_fx_rate))
        processor_fee = int(round(settled * self.config.processor_fee_percent / 100)) + self.config.processor_fee_fixed
        app_fee = int(round(request.application_fee * self.config.settlement_fx_rate))

        bt_id = self._generate_id("txn")
        bt = BalanceTransaction(
            id=bt_id,
            amount=settled,
            currency=settlement_currency,
            fee=processor_fee + app_fee,
            net=settled - processor_fee - app_fee,
            fee_details=[
                FeeDetail(amount=processor_fee, currency=settlement_currency, type="stripe_fee"),
                FeeDetail(amount=app_fee, currency=settlement_currency, type="application_fee"),
            ],
            raw_response={"id": bt_id, "simulator": True},
        )
        self.balance_transactions[(account, bt_id)] = bt

        charge_id = self._generate_id("ch")
        charge = GatewayCharge(
            id=charge_id,
            amount=request.amount,
            currency=request.currency.lower(),
            balance_transaction=bt_id,
            status="succeeded",
            raw_response={
                "id": charge_id,
                "amount": request.amount,
                "currency": request.currency.lower(),
                "balance_transaction": bt_id,
                "metadata": request.metadata,
                "simulator": True,
            },
        )
        self.charges[(account, charge_id)] = charge
        return charge

    def retrieve_balance_transaction(
        self, host_account: HostAccount, balance_transaction_id: str
    ) -> BalanceTransaction:
        account = self._record(
            "retrieve_balance_transaction", host_account,
            balance_transaction_id=balance_transaction_id,
        )
        bt = self.balance_transactions.get((account, balance_transaction_id))
        if bt is None:
            raise GatewayError(
                f"No such balance transaction: {balance_transaction_id}",
                operation="retrieve_balance_transaction",
            )
        return bt

    def get_or_create_plan(self, host_account: HostAccount, request: PlanRequest) -> GatewayPlan:
        account = self._record("get_or_create_plan", host_account, plan=request.plan_id)
        key = (account, request.plan_id)
        if key not in self.plans:
            self.plans[key] = GatewayPlan(
                id=request.plan_id,
                interval=request.interval,
                amount=request.amount,
                currency=request.currency.lower(),
            )
        return self.plans[key]

    def create_subscription(
        self,
        host_account: HostAccount,
        customer_id: str,
        request: SubscriptionRequest,
    ) -> GatewaySubscription:
        account = self._record(
            "create_subscription", host_account,
            customer_id=customer_id, plan=request.plan, trial_end=request.trial_end,
            application_fee_percent=request.application_fee_percent,
            metadata=request.metadata,
        )
        if (account, request.plan) not in self.plans:
            raise GatewayError(f"No such plan: {request.plan}", operation="create_subscription")
        if (account, customer_id) not in self.customers:
            raise GatewayError(f"No such customer: {customer_id}", operation="create_subscription")
        subscription_id = self._generate_id("sub")
        subscription = GatewaySubscription(
            id=subscription_id,
            status="trialing" if request.trial_end else "active",
            raw_response={"id": subscription_id, "simulator": True},
        )
        self.subscriptions[(account, subscription_id)] = subscription
        return subscription

    def health_check(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "provider": self.name,
            "call_count": len(self.calls),
            "config": {
                "processor_fee_percent": self.config.processor_fee_percent,
                "settlement_currency": self.config.settlement_currency,
                "fail_on": sorted(self.config.fail_on),
            },
        }
