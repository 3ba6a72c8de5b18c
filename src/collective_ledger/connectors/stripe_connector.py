import logging
from typing import Any, Dict, Optional

import stripe

from ..config import get_stripe_api_key
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

# Fields that should not be kept in raw responses stored on the ledger
SENSITIVE_FIELDS = frozenset([
    "client_secret",
    "source",
    "payment_method_details",
    "card",
    "bank_account",
])


def sanitize_response(raw_response: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Remove sensitive fields from a raw Stripe response, recursively."""
    if not raw_response:
        return {}
    sanitized = {}
    for key, value in raw_response.items():
        if key in SENSITIVE_FIELDS:
            continue
        if isinstance(value, dict):
            sanitized[key] = sanitize_response(value)
        else:
            sanitized[key] = value
    return sanitized


def _to_dict(obj: Any) -> Dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeGateway(GatewayBase):
    """
    Stripe Connect gateway built on stripe-python. The platform API key is
    passed on every request and host accounts are addressed with the
    ``stripe_account`` header, so no process-wide Stripe configuration is
    touched.
    """

    name = "stripe"

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key or get_stripe_api_key()
        if not self._api_key:
            raise ValueError(
                "STRIPE_API_KEY must be provided either as argument or environment variable"
            )

    def _request_options(self, host_account: Optional[HostAccount]) -> Dict[str, Any]:
        options: Dict[str, Any] = {"api_key": self._api_key}
        if host_account is not None:
            options["stripe_account"] = host_account.username
        return options

    def _fail(self, operation: str, error: Exception) -> GatewayError:
        logger.error(f"Stripe {operation} failed: {type(error).__name__}: {error}")
        return GatewayError(
            f"Stripe {operation} failed: {error}",
            operation=operation,
            original_error=error,
        )

    def create_customer(
        self,
        host_account: Optional[HostAccount],
        token: str,
        profile: CustomerProfile,
    ) -> GatewayCustomer:
        metadata = {}
        if profile.collective:
            metadata = {
                "collective_id": profile.collective.get("id"),
                "collective_slug": profile.collective.get("slug"),
            }
        try:
            customer = stripe.Customer.create(
                source=token,
                email=profile.email,
                description=(profile.collective or {}).get("name"),
                metadata=metadata,
                **self._request_options(host_account),
            )
        except stripe.StripeError as e:
            raise self._fail("create_customer", e) from e
        return GatewayCustomer(id=customer.id, raw_response=sanitize_response(_to_dict(customer)))

    def create_token(self, host_account: HostAccount, customer_id: str) -> GatewayToken:
        # The host account is a distinct principal: the platform customer has
        # to be re-tokenized before it can be used there (shared customers).
        try:
            token = stripe.Token.create(
                customer=customer_id,
                **self._request_options(host_account),
            )
        except stripe.StripeError as e:
            raise self._fail("create_token", e) from e
        return GatewayToken(id=token.id)

    def create_charge(self, host_account: HostAccount, request: ChargeRequest) -> GatewayCharge:
        try:
            charge = stripe.Charge.create(
                amount=request.amount,
                currency=request.currency.lower(),
                source=request.source,
                description=request.description,
                application_fee_amount=request.application_fee,
                metadata=request.metadata,
                **self._request_options(host_account),
            )
        except stripe.StripeError as e:
            raise self._fail("create_charge", e) from e
        return GatewayCharge(
            id=charge.id,
            amount=charge.amount,
            currency=charge.currency,
            balance_transaction=charge.balance_transaction,
            status=charge.status,
            raw_response=sanitize_response(_to_dict(charge)),
        )

    def retrieve_balance_transaction(
        self, host_account: HostAccount, balance_transaction_id: str
    ) -> BalanceTransaction:
        try:
            bt = stripe.BalanceTransaction.retrieve(
                balance_transaction_id,
                **self._request_options(host_account),
            )
        except stripe.StripeError as e:
            raise self._fail("retrieve_balance_transaction", e) from e
        raw = _to_dict(bt)
        return BalanceTransaction(
            id=raw["id"],
            amount=raw["amount"],
            currency=raw["currency"],
            fee=raw.get("fee") or 0,
            net=raw.get("net"),
            fee_details=[FeeDetail(**d) for d in raw.get("fee_details") or []],
            raw_response=raw,
        )

    def get_or_create_plan(self, host_account: HostAccount, request: PlanRequest) -> GatewayPlan:
        plan_id = request.plan_id
        options = self._request_options(host_account)
        try:
            try:
                plan = stripe.Plan.retrieve(plan_id, **options)
            except stripe.InvalidRequestError as e:
                if getattr(e, "code", None) != "resource_missing":
                    raise
                logger.info(f"Creating plan {plan_id} on {host_account.username}")
                plan = stripe.Plan.create(
                    id=plan_id,
                    amount=request.amount,
                    currency=request.currency.lower(),
                    interval=request.interval,
                    product={"name": plan_id},
                    **options,
                )
        except stripe.StripeError as e:
            raise self._fail("get_or_create_plan", e) from e
        return GatewayPlan(
            id=plan.id,
            interval=plan.interval,
            amount=plan.amount,
            currency=plan.currency,
            raw_response=_to_dict(plan),
        )

    def create_subscription(
        self,
        host_account: HostAccount,
        customer_id: str,
        request: SubscriptionRequest,
    ) -> GatewaySubscription:
        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"plan": request.plan}],
            "application_fee_percent": request.application_fee_percent,
            "metadata": request.metadata,
        }
        if request.trial_end is not None:
            params["trial_end"] = request.trial_end
        try:
            subscription = stripe.Subscription.create(
                **params,
                **self._request_options(host_account),
            )
        except stripe.StripeError as e:
            raise self._fail("create_subscription", e) from e
        return GatewaySubscription(
            id=subscription.id,
            status=subscription.status,
            raw_response=sanitize_response(_to_dict(subscription)),
        )
