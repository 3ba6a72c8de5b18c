"""Payment gateway connectors."""

from .base import (
    GatewayBase,
    HostAccount,
    CustomerProfile,
    GatewayCustomer,
    GatewayToken,
    ChargeRequest,
    GatewayCharge,
    FeeDetail,
    BalanceTransaction,
    GatewayFees,
    PlanRequest,
    GatewayPlan,
    SubscriptionRequest,
    GatewaySubscription,
)
from .stripe_connector import StripeGateway, sanitize_response, SENSITIVE_FIELDS
from .simulator_connector import (
    SimulatorGateway,
    SimulatorConfig,
    SimulatedCall,
)

__all__ = [
    # Interface and models
    "GatewayBase",
    "HostAccount",
    "CustomerProfile",
    "GatewayCustomer",
    "GatewayToken",
    "ChargeRequest",
    "GatewayCharge",
    "FeeDetail",
    "BalanceTransaction",
    "GatewayFees",
    "PlanRequest",
    "GatewayPlan",
    "SubscriptionRequest",
    "GatewaySubscription",
    # Gateways
    "StripeGateway",
    "sanitize_response",
    "SENSITIVE_FIELDS",
    "SimulatorGateway",
    "SimulatorConfig",
    "SimulatedCall",
]
