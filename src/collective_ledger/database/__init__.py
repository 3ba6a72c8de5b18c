"""Database module for order and ledger persistence."""

from .models import (
    Base,
    Collective,
    ConnectedAccount,
    User,
    Tier,
    Member,
    PaymentMethod,
    Subscription,
    Order,
    Transaction,
    Activity,
    TransactionType,
    SubscriptionStatus,
    MemberRole,
    ActivityType,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    create_tables,
    get_async_session_factory,
    DatabaseManager,
)
from .repository import (
    CollectiveRepository,
    OrderRepository,
    PaymentMethodRepository,
    SubscriptionRepository,
    TransactionRepository,
    TransactionPayload,
    ActivityRepository,
)

__all__ = [
    # Models
    "Base",
    "Collective",
    "ConnectedAccount",
    "User",
    "Tier",
    "Member",
    "PaymentMethod",
    "Subscription",
    "Order",
    "Transaction",
    "Activity",
    "TransactionType",
    "SubscriptionStatus",
    "MemberRole",
    "ActivityType",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "create_tables",
    "get_async_session_factory",
    "DatabaseManager",
    # Repositories
    "CollectiveRepository",
    "OrderRepository",
    "PaymentMethodRepository",
    "SubscriptionRepository",
    "TransactionRepository",
    "TransactionPayload",
    "ActivityRepository",
]
