"""API routes for credit triage: list, allocate, undo, reset."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from db.connection import get_db
from models.allocation import Allocation
from services.allocation_service import allocate, revert, reset_credit
from services.money import to_cents, to_dollars
from services.periods import MONTH_PATTERN, current_month
from services.triage_service import get_unallocated
from schemas.credit import (
    AllocateRequest,
    AllocateResponse,
    AllocationRecord,
    OkResponse,
    ResetCreditRequest,
    RevertAllocationRequest,
    UnallocatedCreditsResponse,
)

router = APIRouter(prefix="/api/credits", tags=["credits"])


def to_record(allocation: Allocation) -> AllocationRecord:
    return AllocationRecord(
        id=allocation.id,
        credit_id=allocation.credit_id,
        recap_id=allocation.recap_id,
        allocation_type=allocation.allocation_type,
        amount=to_dollars(allocation.amount_cents),
        target_transaction_id=allocation.target_transaction_id,
        target_category_id=allocation.target_category_id,
        target_goal_id=allocation.target_goal_id,
        period=allocation.period,
        label=allocation.label,
        created_at=allocation.created_at,
        reverted=allocation.reverted,
    )


@router.get("/unallocated", response_model=UnallocatedCreditsResponse)
def list_unallocated(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN, description="Month as YYYY-MM (defaults to current)"),
    db: Session = Depends(get_db)
):
    """Credits for the month with their allocations, plus the option lists the triage screen needs."""
    return get_unallocated(db, month or current_month())


@router.post("/allocate", response_model=AllocateResponse)
def allocate_credit(request: AllocateRequest, db: Session = Depends(get_db)):
    """Allocate part of a credit. Amounts over the credit's remaining amount are refused."""
    body = request.root
    allocation, complete = allocate(
        db,
        body.credit_id,
        body.action,
        to_cents(body.amount),
        body.to_target(),
    )
    return AllocateResponse(
        allocation=to_record(allocation),
        complete=complete,
        remainingAmount=to_dollars(allocation.credit.open_cents),
    )


@router.delete("/allocate", response_model=OkResponse)
def revert_allocation(request: RevertAllocationRequest, db: Session = Depends(get_db)):
    """Undo an allocation. Reverting the same allocation twice returns 409."""
    revert(db, request.allocation_id)
    return OkResponse()


@router.post("/reset", response_model=OkResponse)
def reset(request: ResetCreditRequest, db: Session = Depends(get_db)):
    """Return a transaction to the triage pool, reverting all its allocations."""
    reset_credit(db, request.transaction_id)
    return OkResponse()
