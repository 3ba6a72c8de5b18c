"""Shared test fixtures and configuration."""

import os
import pytest
from datetime import datetime
from unittest.mock import MagicMock, patch
from typing import Dict, Any

# Set up test environment variables before importing modules
os.environ.setdefault("STRIPE_API_KEY", "sk_test_dummy_key_for_testing")
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PLATFORM_FEE_PERCENT", "5")
os.environ.setdefault("WEBSITE_URL", "https://ledger.test")

HOST_ACCOUNT_ID = "acct_host_123"


@pytest.fixture
def mock_stripe_api_key():
    """Set up mock Stripe API key."""
    with patch.dict(os.environ, {"STRIPE_API_KEY": "sk_test_mock_key"}):
        yield "sk_test_mock_key"


@pytest.fixture
def mock_api_key():
    """Set up mock API key for authentication."""
    with patch.dict(os.environ, {"API_KEY": "test_api_key_12345"}):
        yield "test_api_key_12345"


@pytest.fixture
def auth_headers(mock_api_key):
    """Return headers with authentication."""
    return {"Authorization": f"Bearer {mock_api_key}"}


@pytest.fixture
def host_account():
    from collective_ledger.connectors import HostAccount
    return HostAccount(id=1, username=HOST_ACCOUNT_ID, collective_id=1)


@pytest.fixture
def mock_stripe_charge():
    """Create a mock Stripe Charge."""
    mock_charge = MagicMock()
    mock_charge.id = "ch_1234567890"
    mock_charge.amount = 1000
    mock_charge.currency = "usd"
    mock_charge.balance_transaction = "txn_1234567890"
    mock_charge.status = "succeeded"
    mock_charge.to_dict.return_value = {
        "id": "ch_1234567890",
        "amount": 1000,
        "currency": "usd",
        "balance_transaction": "txn_1234567890",
        "status": "succeeded",
        "source": {"id": "card_123", "last4": "4242"},
        "metadata": {},
    }
    return mock_charge


@pytest.fixture
def mock_stripe_balance_transaction():
    """Create a mock Stripe BalanceTransaction."""
    mock_bt = MagicMock()
    mock_bt.to_dict.return_value = {
        "id": "txn_1234567890",
        "amount": 1000,
        "currency": "usd",
        "fee": 109,
        "net": 891,
        "fee_details": [
            {"amount": 59, "currency": "usd", "type": "stripe_fee", "description": "Stripe processing fees"},
            {"amount": 50, "currency": "usd", "type": "application_fee", "description": "platform fee"},
        ],
    }
    return mock_bt


def ledger_row_values(**overrides) -> Dict[str, Any]:
    """Column values of a consistent, fee-less CREDIT row."""
    values = {
        "type": "CREDIT",
        "transaction_group": "group-a",
        "amount": 1000,
        "currency": "USD",
        "host_currency": "USD",
        "amount_in_host_currency": 1000,
        "host_currency_fx_rate": 1,
        "host_fee_in_host_currency": 0,
        "platform_fee_in_host_currency": 0,
        "payment_processor_fee_in_host_currency": 0,
        "net_amount_in_collective_currency": 1000,
    }
    values.update(overrides)
    return values


# Database fixtures for integration tests
@pytest.fixture
async def test_db_engine():
    """Create an in-memory SQLite database for testing."""
    from collective_ledger.database import Base, create_async_engine

    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db_session(test_db_engine):
    """Create a database session for testing."""
    from collective_ledger.database import get_async_session_factory

    session_factory = get_async_session_factory(test_db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(test_db_session):
    """A donor giving 10.00 USD to a hosted collective through a stored card.

    Returns a dict with the created rows.
    """
    from collective_ledger.database import (
        Collective,
        ConnectedAccount,
        Order,
        PaymentMethod,
        Tier,
        User,
    )

    session = test_db_session
    host = Collective(slug="host", name="Host Org", currency="USD", host_fee_percent=0)
    session.add(host)
    await session.flush()

    collective = Collective(
        slug="webpack",
        name="Webpack",
        currency="USD",
        host_fee_percent=10,
        host_collective_id=host.id,
    )
    donor = Collective(slug="xdamman", name="Xavier", currency="USD")
    session.add_all([collective, donor])
    await session.flush()

    session.add(ConnectedAccount(collective_id=host.id, service="stripe", username=HOST_ACCOUNT_ID))
    user = User(email="xavier@example.com", username="xdamman")
    session.add(user)
    await session.flush()

    tier = Tier(collective_id=collective.id, name="backer", amount=1000, interval="month")
    payment_method = PaymentMethod(service="stripe", token="tok_visa", created_by_user_id=user.id)
    session.add_all([tier, payment_method])
    await session.flush()

    order = Order(
        from_collective_id=donor.id,
        to_collective_id=collective.id,
        total_amount=1000,
        currency="USD",
        description="Donation to Webpack",
        created_by_user_id=user.id,
        tier_id=tier.id,
        payment_method_id=payment_method.id,
        created_at=datetime(2020, 3, 15, 10, 30, 0),
    )
    session.add(order)
    await session.commit()

    return {
        "host": host,
        "collective": collective,
        "donor": donor,
        "user": user,
        "tier": tier,
        "payment_method": payment_method,
        "order": order,
    }


@pytest.fixture
async def subscription_order(test_db_session, seeded):
    """Turn the seeded order into a monthly subscription."""
    from collective_ledger.database import Subscription

    subscription = Subscription(interval="month", amount=1000, currency="USD")
    test_db_session.add(subscription)
    await test_db_session.flush()
    seeded["order"].subscription_id = subscription.id
    await test_db_session.commit()
    await test_db_session.refresh(seeded["order"], attribute_names=["subscription"])
    seeded["subscription"] = subscription
    return seeded
