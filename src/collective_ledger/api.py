import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import ORDER_PROCESS_RATE_LIMIT, limiter, verify_api_key
from .connectors.base import GatewayBase
from .connectors.stripe_connector import StripeGateway
from .database import close_db, get_db, init_db
from .errors import GatewayError, HostAccountMissing, OrderNotFound
from .reconciliation.api import router as reconciliation_router
from .services import OrderProcessor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Collective Ledger API", lifespan=lifespan)
app.state.limiter = limiter


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )


app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.include_router(reconciliation_router)


def get_gateway() -> GatewayBase:
    """Gateway used for order processing; overridden in tests."""
    return StripeGateway()


class ProcessOrderResponse(BaseModel):
    order_id: int
    processed: bool
    transactions: List[Dict[str, Any]]


def _workflow_detail(error: Exception) -> Optional[Dict[str, Any]]:
    workflow = getattr(error, "workflow", None)
    if workflow is None:
        return None
    return {
        "completed_steps": [step.value for step in workflow.completed_steps],
        "failed_step": workflow.failed_step.value if workflow.failed_step else None,
        "charged": workflow.charged,
    }


@app.post("/orders/{order_id}/process", response_model=ProcessOrderResponse)
@limiter.limit(ORDER_PROCESS_RATE_LIMIT)
async def process_order(
    request: Request,
    order_id: int,
    db: AsyncSession = Depends(get_db),
    gateway: GatewayBase = Depends(get_gateway),
    api_key: str = Depends(verify_api_key),
):
    """Charge an order and record it in the ledger."""
    processor = OrderProcessor(db, gateway)
    try:
        transactions = await processor.process_order(order_id)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HostAccountMissing as e:
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), "workflow": _workflow_detail(e)},
        )
    except GatewayError as e:
        raise HTTPException(
            status_code=402,
            detail={
                "message": str(e),
                "operation": e.operation,
                "workflow": _workflow_detail(e),
            },
        )

    return ProcessOrderResponse(
        order_id=order_id,
        processed=True,
        transactions=[t.to_dict() for t in transactions],
    )


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/gateway/health")
async def gateway_health(gateway: GatewayBase = Depends(get_gateway)):
    """Report which gateway order processing would use."""
    return gateway.health_check()
