"""API routes for finding and flagging transactions."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from decimal import Decimal

from db.connection import get_db, atomic
from models.transaction import Transaction
from services import ledger_store
from services.matching_service import search, DEFAULT_LIMIT, MAX_WINDOW_DAYS, WINDOW_STEPS
from services.money import to_cents, to_dollars
from schemas.transaction import (
    SearchTransaction,
    TransactionSearchResponse,
    UpdateTransactionRequest,
    CloseShortfallRequest,
)
from schemas.credit import OkResponse

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


def _to_search_item(transaction: Transaction, score: Optional[float] = None) -> SearchTransaction:
    matched = to_dollars(transaction.allocated_cents or 0)
    return SearchTransaction(
        id=transaction.id,
        date=transaction.date.isoformat(),
        amount=to_dollars(transaction.amount_cents),
        description=transaction.description,
        categoryName=transaction.category_name,
        accountName=transaction.account_name,
        isReturn=transaction.is_return,
        returnStatus=transaction.return_status,
        returnedAmount=matched if transaction.is_return else None,
        isHealthcare=transaction.is_healthcare,
        reimbursementStatus=transaction.reimbursement_status,
        reimbursedAmount=matched if transaction.is_healthcare else None,
        remainingAmount=to_dollars(transaction.open_cents),
        matchScore=round(score, 3) if score is not None else None,
    )


@router.get("/search", response_model=TransactionSearchResponse)
def search_transactions(
    type: str = Query(..., pattern="^(return|healthcare)$", description="Search type: 'return' or 'healthcare'"),
    days: int = Query(WINDOW_STEPS[0], ge=1, description=f"Look-back window in days (max {MAX_WINDOW_DAYS})"),
    q: Optional[str] = Query(None, description="Substring over description and category name"),
    category_id: Optional[int] = Query(None, description="Restrict to one category"),
    credit_description: Optional[str] = Query(None, description="Credit description used for suggestions"),
    credit_amount: Optional[Decimal] = Query(None, gt=0, description="Credit open amount in dollars"),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db)
):
    """Find expenses a credit could be matched against, widening the window on request."""
    result = search(
        db,
        type,
        q=q,
        category_id=category_id,
        days=days,
        credit_amount_cents=to_cents(credit_amount) if credit_amount is not None else None,
        credit_description=credit_description,
        limit=limit,
    )
    suggested = result["suggested"]
    return TransactionSearchResponse(
        tagged=[_to_search_item(t) for t in result["tagged"]],
        suggested=_to_search_item(suggested, result["suggested_score"]) if suggested else None,
        results=[_to_search_item(t) for t in result["results"]],
        days=result["days"],
        nextDays=result["next_days"],
        exhausted=result["exhausted"],
    )


@router.patch("", response_model=OkResponse)
def update_transaction(request: UpdateTransactionRequest, db: Session = Depends(get_db)):
    """Flag or unflag a transaction as a return or healthcare claim, or recategorize it."""
    with atomic(db):
        ledger_store.flag_transaction(
            db,
            request.id,
            is_return=request.is_return,
            return_status=request.return_status,
            is_healthcare=request.is_healthcare,
            reimbursement_status=request.reimbursement_status,
            category_id=request.category_id,
        )
    return OkResponse()


@router.post("/close-shortfall", response_model=OkResponse)
def close_shortfall_endpoint(request: CloseShortfallRequest, db: Session = Depends(get_db)):
    """Accept the unmatched remainder of a return or claim and mark it settled."""
    with atomic(db):
        ledger_store.close_shortfall(db, request.transaction_id, request.type)
    return OkResponse()
