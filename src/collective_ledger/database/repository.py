"""Repository layer for order and ledger persistence operations."""

import uuid
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import select, update, func, exists
from sqlalchemy.ext.asyncio import AsyncSession

from ..fees import negate, net_value, round_half_up
from .models import (
    Activity,
    Collective,
    ConnectedAccount,
    Member,
    Order,
    PaymentMethod,
    Subscription,
    Transaction,
    TransactionType,
    dump_json,
)

logger = logging.getLogger(__name__)

# Attempts at merging into PaymentMethod.data before giving up
HOST_CUSTOMER_WRITE_ATTEMPTS = 5


class CollectiveRepository:
    """Repository for collectives, their hosts and memberships."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, collective_id: int) -> Optional[Collective]:
        result = await self.session.execute(
            select(Collective).where(Collective.id == collective_id)
        )
        return result.scalar_one_or_none()

    async def get_host_stripe_account(self, collective: Collective) -> Optional[ConnectedAccount]:
        """Get the Stripe account of the collective's host.

        A collective without a host collective is its own host.

        Args:
            collective: Collective receiving the funds.

        Returns:
            ConnectedAccount if the host connected one, None otherwise.
        """
        host_id = collective.host_collective_id or collective.id
        result = await self.session.execute(
            select(ConnectedAccount)
            .where(
                ConnectedAccount.collective_id == host_id,
                ConnectedAccount.service == "stripe",
            )
            .order_by(ConnectedAccount.created_at.desc(), ConnectedAccount.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_or_add_member(
        self,
        user_id: int,
        collective_id: int,
        role: str,
        tier_id: Optional[int] = None,
        created_by_user_id: Optional[int] = None,
    ) -> Tuple[Member, bool]:
        """Grant ``role`` to a user unless they already hold it.

        Returns:
            Tuple of (Member, created).
        """
        result = await self.session.execute(
            select(Member).where(
                Member.user_id == user_id,
                Member.collective_id == collective_id,
                Member.role == role,
            )
        )
        member = result.scalar_one_or_none()
        if member is not None:
            return member, False

        member = Member(
            user_id=user_id,
            collective_id=collective_id,
            role=role,
            tier_id=tier_id,
            created_by_user_id=created_by_user_id,
        )
        self.session.add(member)
        await self.session.flush()
        logger.info(f"Added user {user_id} to collective {collective_id} as {role}")
        return member, True


class OrderRepository:
    """Repository for Order operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """Get an order with its collectives, user, tier, payment method and subscription.

        Always re-reads the row so relationships are loaded even when the
        order is already in the session.
        """
        result = await self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_processed(self, order: Order) -> Order:
        order.processed_at = datetime.utcnow()
        await self.session.flush()
        logger.info(f"Marked order {order.id} as processed")
        return order

    async def list_charged_unprocessed(
        self,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        """Orders with ledger entries but no processed_at.

        These were charged but the workflow stopped before completing; they
        need manual follow-up.
        """
        charged = exists().where(
            Transaction.order_id == Order.id,
            Transaction.deleted_at.is_(None),
        )
        result = await self.session.execute(
            select(Order)
            .where(Order.processed_at.is_(None), charged)
            .order_by(Order.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())


class PaymentMethodRepository:
    """Repository for PaymentMethod, including its conditional writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, payment_method_id: int) -> Optional[PaymentMethod]:
        result = await self.session.execute(
            select(PaymentMethod).where(PaymentMethod.id == payment_method_id)
        )
        return result.scalar_one_or_none()

    async def set_customer_id_if_unset(self, payment_method: PaymentMethod, customer_id: str) -> str:
        """Store the platform customer id unless another writer got there first.

        Args:
            payment_method: PaymentMethod to update.
            customer_id: Customer id just created on the platform account.

        Returns:
            The customer id that is durably stored, which callers must use.
        """
        result = await self.session.execute(
            update(PaymentMethod)
            .where(
                PaymentMethod.id == payment_method.id,
                PaymentMethod.customer_id.is_(None),
            )
            .values(customer_id=customer_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(payment_method, attribute_names=["customer_id"])
        if result.rowcount == 0:
            logger.warning(
                f"PaymentMethod {payment_method.id} already has customer "
                f"{payment_method.customer_id}; discarding {customer_id}"
            )
        return payment_method.customer_id

    async def set_host_customer_id_if_unset(
        self,
        payment_method: PaymentMethod,
        host_username: str,
        customer_id: str,
    ) -> str:
        """Cache the customer id for a host account, first write wins.

        The cache lives in ``PaymentMethod.data["CustomerIdForHost"]`` keyed by
        the host account username. Writes are guarded by ``version`` so
        concurrent merges of different hosts are not lost.

        Returns:
            The customer id that is durably stored for ``host_username``.
        """
        for _ in range(HOST_CUSTOMER_WRITE_ATTEMPTS):
            await self.session.refresh(payment_method, attribute_names=["data_json", "version"])
            existing = payment_method.customer_ids_for_host.get(host_username)
            if existing:
                if existing != customer_id:
                    logger.warning(
                        f"PaymentMethod {payment_method.id} already has customer {existing} "
                        f"for host {host_username}; discarding {customer_id}"
                    )
                return existing

            data = payment_method.data
            data.setdefault("CustomerIdForHost", {})[host_username] = customer_id
            seen_version = payment_method.version
            result = await self.session.execute(
                update(PaymentMethod)
                .where(
                    PaymentMethod.id == payment_method.id,
                    PaymentMethod.version == seen_version,
                )
                .values(data_json=dump_json(data), version=seen_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                await self.session.refresh(payment_method, attribute_names=["data_json", "version"])
                logger.info(
                    f"Stored customer {customer_id} for host {host_username} "
                    f"on PaymentMethod {payment_method.id}"
                )
                return customer_id
            logger.info(f"PaymentMethod {payment_method.id} changed concurrently, retrying")

        raise RuntimeError(
            f"Could not store host customer for PaymentMethod {payment_method.id} "
            f"after {HOST_CUSTOMER_WRITE_ATTEMPTS} attempts"
        )

    async def mark_confirmed(self, payment_method: PaymentMethod) -> PaymentMethod:
        """Set confirmed_at once, after the first successful charge."""
        if payment_method.confirmed_at is None:
            payment_method.confirmed_at = datetime.utcnow()
            await self.session.flush()
        return payment_method


class SubscriptionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def activate(self, subscription: Subscription, stripe_subscription_id: str) -> Subscription:
        """Store the gateway subscription id, then activate."""
        subscription.stripe_subscription_id = stripe_subscription_id
        await self.session.flush()
        subscription.activate()
        await self.session.flush()
        logger.info(f"Activated subscription {subscription.id} ({stripe_subscription_id})")
        return subscription


class TransactionPayload(BaseModel):
    """One computed ledger entry, expanded into a CREDIT/DEBIT pair.

    Fees are the positive amounts reported by the gateway, in the settlement
    (transaction) currency.
    """
    type: TransactionType = TransactionType.DONATION
    order_id: Optional[int] = None
    created_by_user_id: Optional[int] = None
    from_collective_id: int
    to_collective_id: int
    payment_method_id: Optional[int] = None
    description: Optional[str] = None
    amount: int
    currency: str
    txn_currency: str
    amount_in_txn_currency: int
    txn_currency_fx_rate: float
    host_fee_in_txn_currency: int = 0
    platform_fee_in_txn_currency: int = 0
    payment_processor_fee_in_txn_currency: int = 0
    data: Dict[str, Any] = Field(default_factory=dict)


class TransactionRepository:
    """Repository for the double-entry ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_from_payload(self, payload: TransactionPayload) -> List[Transaction]:
        """Persist a CREDIT/DEBIT pair sharing a new transaction group.

        Fees are stored non-positive. Each row stores its net value rounded
        to minor units, which is what the consistency check compares.

        Returns:
            [credit, debit]
        """
        group = str(uuid.uuid4())
        host_fee = negate(payload.host_fee_in_txn_currency)
        platform_fee = negate(payload.platform_fee_in_txn_currency)
        processor_fee = negate(payload.payment_processor_fee_in_txn_currency)
        host_currency = payload.txn_currency.upper()

        common = dict(
            transaction_group=group,
            description=payload.description,
            currency=payload.currency.upper(),
            host_currency=host_currency,
            host_currency_fx_rate=payload.txn_currency_fx_rate,
            host_fee_in_host_currency=host_fee,
            platform_fee_in_host_currency=platform_fee,
            payment_processor_fee_in_host_currency=processor_fee,
            order_id=payload.order_id,
            created_by_user_id=payload.created_by_user_id,
            payment_method_id=payload.payment_method_id,
        )

        credit = Transaction(
            type=TransactionType.CREDIT.value,
            amount=payload.amount,
            amount_in_host_currency=payload.amount_in_txn_currency,
            from_collective_id=payload.from_collective_id,
            to_collective_id=payload.to_collective_id,
            **common,
        )
        credit.net_amount_in_collective_currency = round_half_up(net_value(credit))
        credit.data = {"kind": payload.type.value, **payload.data}

        fees_total = host_fee + platform_fee + processor_fee
        debit = Transaction(
            type=TransactionType.DEBIT.value,
            amount=-credit.net_amount_in_collective_currency,
            amount_in_host_currency=-round_half_up(payload.amount_in_txn_currency + fees_total),
            from_collective_id=payload.to_collective_id,
            to_collective_id=payload.from_collective_id,
            **common,
        )
        debit.net_amount_in_collective_currency = round_half_up(net_value(debit))
        debit.data = {"kind": payload.type.value}

        self.session.add_all([credit, debit])
        await self.session.flush()

        logger.info(
            f"Created transaction pair {credit.id}/{debit.id} in group {group} "
            f"for order {payload.order_id}"
        )
        return [credit, debit]

    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        result = await self.session.execute(
            select(Transaction).where(Transaction.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def list_by_order(self, order_id: int) -> List[Transaction]:
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.order_id == order_id, Transaction.deleted_at.is_(None))
            .order_by(Transaction.id)
        )
        return list(result.scalars().all())

    async def count_valid(self) -> int:
        """Number of non-deleted transactions."""
        result = await self.session.execute(
            select(func.count()).select_from(Transaction).where(Transaction.deleted_at.is_(None))
        )
        return result.scalar_one()

    async def list_valid(self, limit: int = 100, offset: int = 0) -> List[Transaction]:
        """Non-deleted transactions ordered by transaction group.

        Both halves of a pair share a group, so sorted rows come in adjacent
        pairs. Rows already in the session are re-read from the database.
        """
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.deleted_at.is_(None))
            .order_by(Transaction.transaction_group, Transaction.id)
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def update_if_unchanged(
        self,
        transaction_id: int,
        expected: Dict[str, Any],
        values: Dict[str, Any],
    ) -> bool:
        """Write ``values`` only if the row still holds ``expected``.

        Args:
            transaction_id: Row to update.
            expected: Column -> value read when the row was scanned.
            values: Column -> new value.

        Returns:
            True if the row was updated, False if it changed in between.
        """
        conditions = [
            getattr(Transaction, column).is_not_distinct_from(value)
            for column, value in expected.items()
        ]
        result = await self.session.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount == 1
        if not updated:
            logger.warning(f"Transaction {transaction_id} changed since it was scanned; not updated")
        return updated


class ActivityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, type: str, data: Dict[str, Any]) -> Activity:
        activity = Activity(type=type)
        activity.data = data
        self.session.add(activity)
        await self.session.flush()
        logger.debug(f"Created activity {activity.id} of type {type}")
        return activity

    async def list_by_type(self, type: str) -> List[Activity]:
        result = await self.session.execute(
            select(Activity).where(Activity.type == type).order_by(Activity.id)
        )
        return list(result.scalars().all())
