from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field


# Canonical models
class HostAccount(BaseModel):
    """Gateway account of the host that receives funds for a collective."""
    id: Optional[int] = None
    username: str  # gateway account id, e.g. acct_...
    collective_id: Optional[int] = None
    token: Optional[str] = None


class CustomerProfile(BaseModel):
    email: Optional[str] = None
    collective: Optional[Dict[str, Any]] = None


class GatewayCustomer(BaseModel):
    id: str
    raw_response: Optional[Dict[str, Any]] = None


class GatewayToken(BaseModel):
    id: str
    raw_response: Optional[Dict[str, Any]] = None


class ChargeRequest(BaseModel):
    amount: int  # minor units
    currency: str
    source: str
    description: Optional[str] = None
    application_fee: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GatewayCharge(BaseModel):
    id: str
    amount: int
    currency: str
    balance_transaction: str
    status: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


class FeeDetail(BaseModel):
    amount: int
    currency: Optional[str] = None
    type: str
    description: Optional[str] = None


class BalanceTransaction(BaseModel):
    """Settlement of a charge, in the gateway's settlement currency."""
    id: str
    amount: int
    currency: str
    fee: int = 0
    net: Optional[int] = None
    fee_details: List[FeeDetail] = Field(default_factory=list)
    raw_response: Optional[Dict[str, Any]] = None


class GatewayFees(BaseModel):
    total: int = 0
    stripe_fee: int = 0
    application_fee: int = 0
    other: int = 0


class PlanRequest(BaseModel):
    interval: str  # month|year
    amount: int
    currency: str

    @property
    def plan_id(self) -> str:
        """Plans are reusable across orders with identical terms."""
        return f"{self.currency.upper()}-{self.interval.upper()}-{self.amount}"


class GatewayPlan(BaseModel):
    id: str
    interval: str
    amount: int
    currency: str
    raw_response: Optional[Dict[str, Any]] = None


class SubscriptionRequest(BaseModel):
    plan: str
    application_fee_percent: float
    trial_end: Optional[int] = None  # epoch seconds
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GatewaySubscription(BaseModel):
    id: str
    status: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


class GatewayBase(ABC):
    """
    Capability set consumed by order processing. Every method is a network
    round trip to the gateway and must be treated as fallible and slow;
    implementations raise ``GatewayError`` on failure.

    ``host_account`` selects the connected account the call runs as; ``None``
    means the platform's own account.
    """

    name = "base"

    @abstractmethod
    def create_customer(
        self,
        host_account: Optional[HostAccount],
        token: str,
        profile: CustomerProfile,
    ) -> GatewayCustomer:
        raise NotImplementedError

    @abstractmethod
    def create_token(self, host_account: HostAccount, customer_id: str) -> GatewayToken:
        """
        Create a single-use token on the host account from a platform customer.
        """
        raise NotImplementedError

    @abstractmethod
    def create_charge(self, host_account: HostAccount, request: ChargeRequest) -> GatewayCharge:
        raise NotImplementedError

    @abstractmethod
    def retrieve_balance_transaction(
        self, host_account: HostAccount, balance_transaction_id: str
    ) -> BalanceTransaction:
        raise NotImplementedError

    @abstractmethod
    def get_or_create_plan(self, host_account: HostAccount, request: PlanRequest) -> GatewayPlan:
        raise NotImplementedError

    @abstractmethod
    def create_subscription(
        self,
        host_account: HostAccount,
        customer_id: str,
        request: SubscriptionRequest,
    ) -> GatewaySubscription:
        raise NotImplementedError

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True, "provider": self.name}
