"""API endpoints for reconciliation operations."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..auth import RECONCILIATION_RATE_LIMIT, verify_api_key, limiter
from ..errors import PairingError
from .models import ReconciliationOptions
from .service import ReconciliationJob

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])

REPORT_FORMATS = ("json", "csv", "text", "detailed_text")


class ReconciliationRequestBody(BaseModel):
    """Request body for starting a reconciliation job."""
    dry_run: bool = Field(default=True, description="Compute corrections without writing them")
    limit: Optional[int] = Field(default=None, gt=0, description="Number of rows to scan")
    batch_size: int = Field(default=100, gt=0, description="Rows fetched per query")


class ReconciliationSummaryResponse(BaseModel):
    """Summary response for reconciliation job."""
    id: str
    status: str
    dry_run: bool
    created_at: datetime
    completed_at: Optional[datetime] = None
    total_count: int = 0
    rows_scanned: int = 0
    pairs_checked: int = 0
    corrected_pairs: int = 0
    skipped_pairs: int = 0
    rows_changed: int = 0
    rows_written: int = 0
    total_inconsistencies: int = 0
    total_conflicts: int = 0
    error_message: Optional[str] = None


@router.post("/jobs")
@limiter.limit(RECONCILIATION_RATE_LIMIT)
async def create_reconciliation_job(
    request: Request,
    body: ReconciliationRequestBody,
    include_details: bool = Query(default=False, description="Include detailed records"),
    format: str = Query(default="json", description="Output format: json, csv, text, detailed_text"),
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    """
    Run the fee reconciliation job.

    Dry run unless ``dry_run`` is false. A transaction without its pair
    aborts the job with 409.
    """
    if format not in REPORT_FORMATS:
        raise HTTPException(
            status_code=400,
            detail=f"format must be one of: {', '.join(REPORT_FORMATS)}"
        )

    options = ReconciliationOptions(
        dry_run=body.dry_run,
        limit=body.limit,
        batch_size=body.batch_size,
    )
    job = ReconciliationJob(db, options)
    logger.info(f"Starting reconciliation job via API (dry_run={options.dry_run})")

    try:
        report = await job.run()
    except PairingError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "transaction_id": e.transaction_id,
                "transaction_group": e.transaction_group,
            },
        )

    if format != "json":
        output = job.generate_report(report=report, format=format)
        content_type = "text/csv" if format == "csv" else "text/plain"
        return PlainTextResponse(content=output, media_type=content_type)

    if include_details:
        return report.to_full_dict()

    summary = report.to_summary_dict()
    stats = summary["statistics"]
    return ReconciliationSummaryResponse(
        id=report.id,
        status=summary["status"],
        dry_run=report.dry_run,
        created_at=report.created_at,
        completed_at=report.completed_at,
        total_count=stats["total_count"],
        rows_scanned=stats["rows_scanned"],
        pairs_checked=stats["pairs_checked"],
        corrected_pairs=stats["corrected_pairs"],
        skipped_pairs=stats["skipped_pairs"],
        rows_changed=stats["rows_changed"],
        rows_written=stats["rows_written"],
        total_inconsistencies=stats["total_inconsistencies"],
        total_conflicts=stats["total_conflicts"],
        error_message=summary.get("error_message"),
    )


@router.get("/health")
async def reconciliation_health():
    """Health check endpoint for reconciliation service."""
    return {"status": "healthy", "service": "reconciliation"}
