"""Order processing: turns one order into gateway side effects and a ledger entry."""

import asyncio
import enum
import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from .config import collective_url, get_platform_fee_percent
from .connectors.base import (
    ChargeRequest,
    CustomerProfile,
    GatewayBase,
    HostAccount,
    PlanRequest,
    SubscriptionRequest,
)
from .database import (
    ActivityRepository,
    ActivityType,
    CollectiveRepository,
    MemberRole,
    Order,
    OrderRepository,
    PaymentMethodRepository,
    SubscriptionRepository,
    Transaction,
    TransactionPayload,
    TransactionRepository,
    TransactionType,
    User,
)
from .errors import GatewayError, HostAccountMissing, LedgerError, OrderNotFound
from .fees import application_fee, extract_fees, host_fee

logger = logging.getLogger(__name__)

TRIAL_MONTHS = {"month": 1, "year": 12}


class ProcessingStep(str, enum.Enum):
    RESOLVE_HOST_ACCOUNT = "resolve_host_account"
    ENSURE_PLATFORM_CUSTOMER = "ensure_platform_customer"
    CREATE_HOST_TOKEN = "create_host_token"
    CHARGE = "charge"
    SUBSCRIBE = "subscribe"
    GRANT_BACKER_ROLE = "grant_backer_role"
    MARK_PROCESSED = "mark_processed"
    CONFIRM_PAYMENT_METHOD = "confirm_payment_method"


@dataclass
class OrderWorkflowState:
    """What an order workflow has done so far.

    Attached to any error that aborts the workflow as ``error.workflow``.
    """
    order_id: int
    host_account: Optional[HostAccount] = None
    platform_customer_id: Optional[str] = None
    host_token: Optional[str] = None
    host_customer_id: Optional[str] = None
    gateway_subscription_id: Optional[str] = None
    transactions: List[Transaction] = field(default_factory=list)
    completed_steps: List[ProcessingStep] = field(default_factory=list)
    failed_step: Optional[ProcessingStep] = None

    @property
    def charged(self) -> bool:
        return ProcessingStep.CHARGE in self.completed_steps


def get_subscription_trial_end(created_at: datetime, interval: Optional[str]) -> Optional[int]:
    """First day of the next billing period, as epoch seconds.

    ``month`` moves to the 1st of the following month, ``year`` to the 1st of
    the same month next year. The time of day is kept. Naive datetimes are
    UTC. Any other interval has no trial.
    """
    months = TRIAL_MONTHS.get(interval or "")
    if months is None:
        return None
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    month_index = created_at.month - 1 + months
    trial_end = created_at.replace(
        year=created_at.year + month_index // 12,
        month=month_index % 12 + 1,
        day=1,
    )
    return int(math.floor(trial_end.timestamp()))


class OrderProcessor:
    """Runs the payment workflow of an order against a gateway.

    Steps run strictly in order; each gateway call completes before the next
    one starts. There are no retries and no compensation: the customer record
    and the ledger pair are committed as soon as they exist, so a failure
    further down leaves them in place.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: GatewayBase,
        platform_fee_percent: Optional[float] = None,
    ):
        """
        Args:
            session: AsyncSession used for every read and write of the workflow.
            gateway: Gateway implementation (Stripe or simulator).
            platform_fee_percent: Overrides PLATFORM_FEE_PERCENT.
        """
        self.session = session
        self.gateway = gateway
        self.platform_fee_percent = (
            platform_fee_percent if platform_fee_percent is not None else get_platform_fee_percent()
        )
        self.collective_repo = CollectiveRepository(session)
        self.order_repo = OrderRepository(session)
        self.payment_method_repo = PaymentMethodRepository(session)
        self.subscription_repo = SubscriptionRepository(session)
        self.transaction_repo = TransactionRepository(session)
        self.activity_repo = ActivityRepository(session)

    async def process_order(
        self,
        order: Union[int, Order],
        user: Optional[User] = None,
    ) -> List[Transaction]:
        """Charge an order and record it in the ledger.

        Args:
            order: Order or order id.
            user: Acting user; defaults to the user who created the order.

        Returns:
            The [credit, debit] Transaction pair.

        Raises:
            OrderNotFound: No order with that id.
            HostAccountMissing: The receiving collective's host has no gateway account.
            GatewayError: A gateway call failed.
        """
        order_id = order.id if isinstance(order, Order) else order
        order = await self.order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        user = user or order.created_by_user
        state = OrderWorkflowState(order_id=order.id)
        logger.info(f"Processing order {order.id} for {order.total_amount} {order.currency}")

        try:
            async with self._step(state, ProcessingStep.RESOLVE_HOST_ACCOUNT):
                state.host_account = await self._resolve_host_account(order)

            async with self._step(state, ProcessingStep.ENSURE_PLATFORM_CUSTOMER):
                state.platform_customer_id = await self._ensure_platform_customer(order, user)

            async with self._step(state, ProcessingStep.CREATE_HOST_TOKEN):
                token = await self._gateway(
                    "create_token",
                    self.gateway.create_token,
                    state.host_account,
                    state.platform_customer_id,
                )
                state.host_token = token.id

            async with self._step(state, ProcessingStep.CHARGE):
                state.transactions = await self._charge(order, user, state)

            if order.subscription is not None:
                async with self._step(state, ProcessingStep.SUBSCRIBE):
                    await self._subscribe(order, user, state)

            async with self._step(state, ProcessingStep.GRANT_BACKER_ROLE):
                await self.collective_repo.find_or_add_member(
                    user.id,
                    order.to_collective_id,
                    MemberRole.BACKER.value,
                    tier_id=order.tier_id,
                    created_by_user_id=user.id,
                )

            async with self._step(state, ProcessingStep.MARK_PROCESSED):
                await self.order_repo.mark_processed(order)

            async with self._step(state, ProcessingStep.CONFIRM_PAYMENT_METHOD):
                await self.payment_method_repo.mark_confirmed(order.payment_method)

            await self.session.commit()
        except Exception as e:
            if isinstance(e, LedgerError):
                e.workflow = state
            if state.charged:
                logger.error(
                    f"Order {order.id} was charged but not fully confirmed: "
                    f"{state.failed_step.value if state.failed_step else 'commit'} failed "
                    f"(transactions {[t.id for t in state.transactions]})"
                )
            raise

        logger.info(f"Order {order.id} processed")
        return state.transactions

    @asynccontextmanager
    async def _step(self, state: OrderWorkflowState, step: ProcessingStep):
        logger.debug(f"Order {state.order_id}: {step.value}")
        try:
            yield
        except Exception:
            state.failed_step = step
            raise
        state.completed_steps.append(step)

    async def _gateway(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking gateway call off the event loop."""
        try:
            return await asyncio.to_thread(fn, *args)
        except GatewayError:
            raise
        except Exception as e:
            logger.error(f"Gateway {operation} failed: {e}")
            raise GatewayError(
                f"Gateway {operation} failed: {e}",
                operation=operation,
                original_error=e,
            ) from e

    def _profile(self, order: Order, user: User) -> CustomerProfile:
        return CustomerProfile(email=user.email, collective=order.from_collective.info)

    async def _resolve_host_account(self, order: Order) -> HostAccount:
        collective = order.to_collective
        account = await self.collective_repo.get_host_stripe_account(collective)
        if account is None:
            raise HostAccountMissing(collective.id, collective.host_collective_id)
        return HostAccount(
            id=account.id,
            username=account.username,
            collective_id=account.collective_id,
            token=account.token,
        )

    async def _ensure_platform_customer(self, order: Order, user: User) -> str:
        payment_method = order.payment_method
        if payment_method.customer_id:
            return payment_method.customer_id

        customer = await self._gateway(
            "create_customer",
            self.gateway.create_customer,
            None,
            payment_method.token,
            self._profile(order, user),
        )
        customer_id = await self.payment_method_repo.set_customer_id_if_unset(payment_method, customer.id)
        await self.session.commit()
        return customer_id

    async def _charge(self, order: Order, user: User, state: OrderWorkflowState) -> List[Transaction]:
        host_account = state.host_account
        payment_method = order.payment_method
        request = ChargeRequest(
            amount=order.total_amount,
            currency=order.currency,
            source=state.host_token,
            description=order.description,
            application_fee=application_fee(order.total_amount, self.platform_fee_percent),
            metadata={
                "from": collective_url(order.from_collective.slug),
                "to": collective_url(order.to_collective.slug),
                "customerEmail": user.email,
                "PaymentMethodId": payment_method.id,
            },
        )
        charge = await self._gateway("create_charge", self.gateway.create_charge, host_account, request)
        balance_transaction = await self._gateway(
            "retrieve_balance_transaction",
            self.gateway.retrieve_balance_transaction,
            host_account,
            charge.balance_transaction,
        )

        fees = extract_fees(balance_transaction)
        payload = TransactionPayload(
            type=TransactionType.DONATION,
            order_id=order.id,
            created_by_user_id=user.id,
            from_collective_id=order.from_collective_id,
            to_collective_id=order.to_collective_id,
            payment_method_id=payment_method.id,
            description=order.description,
            amount=order.total_amount,
            currency=order.currency,
            txn_currency=balance_transaction.currency,
            amount_in_txn_currency=balance_transaction.amount,
            txn_currency_fx_rate=order.total_amount / balance_transaction.amount,
            host_fee_in_txn_currency=host_fee(
                balance_transaction.amount, order.to_collective.host_fee_percent
            ),
            platform_fee_in_txn_currency=fees.application_fee,
            payment_processor_fee_in_txn_currency=fees.stripe_fee,
            data={
                "charge": charge.model_dump(mode="json"),
                "balanceTransaction": balance_transaction.model_dump(mode="json"),
            },
        )
        transactions = await self.transaction_repo.create_from_payload(payload)
        await self.session.commit()
        logger.info(f"Order {order.id} charged as {charge.id}")
        return transactions

    async def _get_or_create_host_customer(
        self, order: Order, user: User, state: OrderWorkflowState
    ) -> str:
        """Customer of the payer on the host account.

        Cached per host in PaymentMethod.data; created from a fresh token of
        the platform customer on a miss.
        """
        host_account = state.host_account
        payment_method = order.payment_method
        cached = payment_method.customer_ids_for_host.get(host_account.username)
        if cached:
            return cached

        token = await self._gateway(
            "create_token", self.gateway.create_token, host_account, state.platform_customer_id
        )
        customer = await self._gateway(
            "create_customer",
            self.gateway.create_customer,
            host_account,
            token.id,
            self._profile(order, user),
        )
        return await self.payment_method_repo.set_host_customer_id_if_unset(
            payment_method, host_account.username, customer.id
        )

    async def _subscribe(self, order: Order, user: User, state: OrderWorkflowState) -> None:
        host_account = state.host_account
        subscription = order.subscription
        plan = await self._gateway(
            "get_or_create_plan",
            self.gateway.get_or_create_plan,
            host_account,
            PlanRequest(
                interval=subscription.interval,
                amount=order.total_amount,
                currency=order.currency,
            ),
        )
        state.host_customer_id = await self._get_or_create_host_customer(order, user, state)

        request = SubscriptionRequest(
            plan=plan.id,
            application_fee_percent=self.platform_fee_percent,
            trial_end=get_subscription_trial_end(order.created_at, subscription.interval),
            metadata={
                "from": collective_url(order.from_collective.slug),
                "to": collective_url(order.to_collective.slug),
                "PaymentMethodId": order.payment_method.id,
            },
        )
        gateway_subscription = await self._gateway(
            "create_subscription",
            self.gateway.create_subscription,
            host_account,
            state.host_customer_id,
            request,
        )
        state.gateway_subscription_id = gateway_subscription.id

        await self.subscription_repo.activate(subscription, gateway_subscription.id)
        await self.activity_repo.create(
            ActivityType.SUBSCRIPTION_CONFIRMED.value,
            {
                "collective": order.to_collective.minimal,
                "user": user.minimal,
                "tier": order.tier.to_dict() if order.tier else None,
                "subscription": subscription.to_dict(),
            },
        )
