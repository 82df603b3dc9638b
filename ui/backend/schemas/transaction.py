"""Pydantic schemas for transaction search and status edits."""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal


class SearchTransaction(BaseModel):
    """Candidate expense returned by the transaction finder."""
    id: int
    date: str
    amount: float
    description: Optional[str] = None
    categoryName: Optional[str] = None
    accountName: Optional[str] = None
    isReturn: Optional[bool] = None
    returnStatus: Optional[str] = None
    returnedAmount: Optional[float] = None
    isHealthcare: Optional[bool] = None
    reimbursementStatus: Optional[str] = None
    reimbursedAmount: Optional[float] = None
    remainingAmount: Optional[float] = None
    matchScore: Optional[float] = None


class TransactionSearchResponse(BaseModel):
    """Response schema for the transaction finder."""
    tagged: List[SearchTransaction]
    suggested: Optional[SearchTransaction] = None
    results: List[SearchTransaction]
    days: int = Field(..., description="Window actually searched, in days")
    nextDays: Optional[int] = Field(None, description="Next wider window, if any")
    exhausted: bool = Field(False, description="True once the widest window has been searched")


class UpdateTransactionRequest(BaseModel):
    """Request schema for status and category edits."""
    id: int = Field(..., description="Transaction to update")
    is_return: Optional[bool] = Field(None, description="Flag or unflag as a pending return")
    return_status: Optional[Literal["none", "pending", "received"]] = None
    is_healthcare: Optional[bool] = Field(None, description="Flag or unflag as a healthcare expense")
    reimbursement_status: Optional[Literal["none", "pending", "partial", "complete"]] = None
    category_id: Optional[int] = Field(None, description="New category")


class CloseShortfallRequest(BaseModel):
    """Request schema for writing off an unmatched remainder."""
    transaction_id: int
    type: Literal["return", "healthcare"] = "return"
