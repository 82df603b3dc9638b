"""API routes for monthly recap surplus/deficit allocation."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from db.connection import get_db
from services.money import to_cents
from services.periods import MONTH_PATTERN, current_month
from services.recap_service import allocate_recap, get_recap, revert_recap_allocation, to_recap_allocation
from schemas.credit import OkResponse, RevertAllocationRequest
from schemas.recap import RecapAllocateRequest, RecapAllocateResponse, RecapResponse

router = APIRouter(prefix="/api/recap", tags=["recap"])


@router.get("", response_model=RecapResponse)
def read_recap(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN, description="Month as YYYY-MM (defaults to current)"),
    type: str = Query("monthly", description="Recap type"),
    db: Session = Depends(get_db)
):
    """Get the recap for a month with its allocations and allocation options."""
    return get_recap(db, month or current_month(), type)


@router.post("/allocate", response_model=RecapAllocateResponse)
def allocate_surplus(request: RecapAllocateRequest, db: Session = Depends(get_db)):
    """Allocate part of a recap's surplus or deficit."""
    allocation, complete = allocate_recap(
        db,
        request.recap_id,
        request.allocation_type,
        to_cents(request.amount),
        target_goal_id=request.target_goal_id,
        target_transaction_id=request.target_transaction_id,
        reset_existing=request.reset_existing,
    )
    return RecapAllocateResponse(allocation=to_recap_allocation(allocation), complete=complete)


@router.delete("/allocate", response_model=OkResponse)
def revert_surplus_allocation(request: RevertAllocationRequest, db: Session = Depends(get_db)):
    """Undo a recap allocation."""
    revert_recap_allocation(db, request.allocation_id)
    return OkResponse()
