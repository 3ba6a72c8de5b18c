# collective_ledger package
__version__ = "0.1.0"

from .errors import (
    LedgerError,
    OrderNotFound,
    HostAccountMissing,
    GatewayError,
    PairingError,
    InconsistencyDetected,
)
from .database import (
    Order,
    PaymentMethod,
    Subscription,
    Transaction,
    Activity,
    init_db,
    close_db,
    get_db,
)
from .services import (
    OrderProcessor,
    OrderWorkflowState,
    ProcessingStep,
    get_subscription_trial_end,
)

# Reconciliation exports
from .reconciliation import (
    ReconciliationJob,
    ReconciliationOptions,
    ReconciliationReport,
    ReconciliationStatus,
    Reconciler,
    ReportGenerator,
    order_fee_sign_policy,
)
