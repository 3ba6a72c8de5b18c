"""SQLAlchemy models for orders and the double-entry ledger."""

import json
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    String,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column
import enum


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class TransactionType(str, enum.Enum):
    """Ledger row sides, plus the payload kind expanded into a pair."""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    DONATION = "DONATION"


class SubscriptionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"


class MemberRole(str, enum.Enum):
    HOST = "HOST"
    ADMIN = "ADMIN"
    BACKER = "BACKER"


class ActivityType(str, enum.Enum):
    SUBSCRIPTION_CONFIRMED = "subscription.confirmed"


def load_json(value: Optional[str]) -> Optional[Dict[str, Any]]:
    if value:
        return json.loads(value)
    return None


def dump_json(value: Optional[Dict[str, Any]]) -> Optional[str]:
    if value is not None:
        return json.dumps(value, default=str)
    return None


class Collective(Base):
    """A beneficiary collective; hosts are collectives too."""
    __tablename__ = "collectives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    host_fee_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    host_collective_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("collectives.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    connected_accounts: Mapped[List["ConnectedAccount"]] = relationship(
        "ConnectedAccount", back_populates="collective", lazy="selectin"
    )

    @property
    def info(self) -> Dict[str, Any]:
        """Public profile snapshot."""
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "currency": self.currency,
        }

    @property
    def minimal(self) -> Dict[str, Any]:
        return {"id": self.id, "slug": self.slug, "name": self.name}


class ConnectedAccount(Base):
    """Gateway account connected by a host collective."""
    __tablename__ = "connected_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collective_id: Mapped[int] = mapped_column(Integer, ForeignKey("collectives.id"), nullable=False)
    service: Mapped[str] = mapped_column(String(50), nullable=False, default="stripe")
    # Gateway account id, e.g. acct_...
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    collective: Mapped["Collective"] = relationship("Collective", back_populates="connected_accounts")

    __table_args__ = (
        Index("ix_connected_accounts_collective_service", "collective_id", "service"),
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def minimal(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username}


class Tier(Base):
    __tablename__ = "tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collective_id: Mapped[int] = mapped_column(Integer, ForeignKey("collectives.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    interval: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "interval": self.interval,
        }


class Member(Base):
    """Role of a user within a collective."""
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    collective_id: Mapped[int] = mapped_column(Integer, ForeignKey("collectives.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    tier_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("tiers.id"), nullable=True)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "collective_id", "role", name="uq_members_user_collective_role"),
    )


class PaymentMethod(Base):
    """A payer's stored card on the platform gateway account."""
    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service: Mapped[str] = mapped_column(String(50), nullable=False, default="stripe")
    token: Mapped[str] = mapped_column(String(255), nullable=False)
    # Platform-level customer; written once (first write wins)
    customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    data_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Bumped on every write of data_json, guards the host customer cache
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def data(self) -> Dict[str, Any]:
        return load_json(self.data_json) or {}

    @data.setter
    def data(self, value: Optional[Dict[str, Any]]) -> None:
        self.data_json = dump_json(value)

    @property
    def customer_ids_for_host(self) -> Dict[str, str]:
        """Host account username -> customer id on that host account."""
        return dict(self.data.get("CustomerIdForHost") or {})


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    interval: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SubscriptionStatus.PENDING.value)
    is_active: Mapped[bool] = mapped_column(default=False, nullable=False)
    activated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    def activate(self) -> "Subscription":
        self.status = SubscriptionStatus.ACTIVE.value
        self.is_active = True
        self.activated_at = datetime.utcnow()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "interval": self.interval,
            "amount": self.amount,
            "currency": self.currency,
            "stripe_subscription_id": self.stripe_subscription_id,
            "status": self.status,
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
        }


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_collective_id: Mapped[int] = mapped_column(Integer, ForeignKey("collectives.id"), nullable=False)
    to_collective_id: Mapped[int] = mapped_column(Integer, ForeignKey("collectives.id"), nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    tier_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("tiers.id"), nullable=True)
    payment_method_id: Mapped[int] = mapped_column(Integer, ForeignKey("payment_methods.id"), nullable=False)
    subscription_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("subscriptions.id"), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    from_collective: Mapped["Collective"] = relationship(
        "Collective", foreign_keys=[from_collective_id], lazy="selectin"
    )
    to_collective: Mapped["Collective"] = relationship(
        "Collective", foreign_keys=[to_collective_id], lazy="selectin"
    )
    created_by_user: Mapped["User"] = relationship("User", lazy="selectin")
    tier: Mapped[Optional["Tier"]] = relationship("Tier", lazy="selectin")
    payment_method: Mapped["PaymentMethod"] = relationship("PaymentMethod", lazy="selectin")
    subscription: Mapped[Optional["Subscription"]] = relationship("Subscription", lazy="selectin")

    __table_args__ = (
        Index("ix_orders_processed_at", "processed_at"),
    )


class Transaction(Base):
    """One side (CREDIT or DEBIT) of a ledger entry."""
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    transaction_group: Mapped[str] = mapped_column(String(36), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    host_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    amount_in_host_currency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    host_currency_fx_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    host_fee_in_host_currency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    platform_fee_in_host_currency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    payment_processor_fee_in_host_currency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    net_amount_in_collective_currency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    order_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("orders.id"), nullable=True)
    expense_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    from_collective_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("collectives.id"), nullable=True)
    to_collective_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("collectives.id"), nullable=True)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    payment_method_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("payment_methods.id"), nullable=True)

    # Raw gateway payloads kept for audit
    data_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_transactions_transaction_group", "transaction_group"),
        Index("ix_transactions_order_id", "order_id"),
        Index("ix_transactions_deleted_at", "deleted_at"),
    )

    @property
    def data(self) -> Optional[Dict[str, Any]]:
        return load_json(self.data_json)

    @data.setter
    def data(self, value: Optional[Dict[str, Any]]) -> None:
        self.data_json = dump_json(value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "transaction_group": self.transaction_group,
            "amount": self.amount,
            "currency": self.currency,
            "host_currency": self.host_currency,
            "amount_in_host_currency": self.amount_in_host_currency,
            "host_currency_fx_rate": self.host_currency_fx_rate,
            "host_fee_in_host_currency": self.host_fee_in_host_currency,
            "platform_fee_in_host_currency": self.platform_fee_in_host_currency,
            "payment_processor_fee_in_host_currency": self.payment_processor_fee_in_host_currency,
            "net_amount_in_collective_currency": self.net_amount_in_collective_currency,
            "order_id": self.order_id,
            "expense_id": self.expense_id,
            "from_collective_id": self.from_collective_id,
            "to_collective_id": self.to_collective_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Activity(Base):
    """Immutable audit record."""
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_activities_type", "type"),
    )

    @property
    def data(self) -> Optional[Dict[str, Any]]:
        return load_json(self.data_json)

    @data.setter
    def data(self, value: Optional[Dict[str, Any]]) -> None:
        self.data_json = dump_json(value)
