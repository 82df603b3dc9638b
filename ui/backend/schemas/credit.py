"""Pydantic schemas for the credit triage and allocation endpoints.

Amounts cross the API in dollars. Response field names follow the client's
camelCase models; request bodies keep the client's snake_case keys.
"""
from pydantic import BaseModel, Field, RootModel
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal

from services.allocation_service import AllocationTarget, NO_TARGET


# ---------------------------
# Triage view
# ---------------------------


class CreditSubAllocation(BaseModel):
    """Live allocation shown as a chip under its credit."""
    id: int
    type: str
    amount: float
    label: Optional[str] = None


class CreditItem(BaseModel):
    """Credit with its allocated/remaining split."""
    id: int
    date: str
    amount: float
    description: Optional[str] = None
    categoryName: Optional[str] = None
    accountName: Optional[str] = None
    allocatedAmount: float = 0
    remainingAmount: float
    state: str = Field("unallocated", description="unallocated, partial or allocated")
    allocations: List[CreditSubAllocation] = []


class GoalOption(BaseModel):
    id: int
    name: str
    goalType: str
    targetAmount: float
    currentAmount: float
    remaining: float


class CategoryOption(BaseModel):
    id: int
    name: str
    category_type: Optional[str] = None
    parent_id: Optional[int] = None
    color: Optional[str] = None
    sort_order: Optional[int] = None

    class Config:
        from_attributes = True


class ReturnItem(BaseModel):
    id: int
    date: str
    amount: float
    description: Optional[str] = None
    return_status: Optional[str] = None
    remainingAmount: Optional[float] = None


class SpreadItem(BaseModel):
    """Amortized expense active in the requested month."""
    id: int
    description: str
    totalAmount: float
    monthlyPortion: float
    months: int
    startMonth: str
    categoryName: str
    monthsRemaining: int
    remainingThisMonth: float = Field(..., description="Monthly portion not yet offset this month")


class UnallocatedCreditsResponse(BaseModel):
    credits: List[CreditItem]
    allocatedCredits: List[CreditItem]
    goals: List[GoalOption]
    expenseCategories: List[CategoryOption]
    pendingReturns: List[ReturnItem]
    spreadItems: List[SpreadItem]


# ---------------------------
# Allocate requests (one shape per action)
# ---------------------------


class _AllocateBase(BaseModel):
    credit_id: int = Field(..., description="Credit transaction to allocate from")
    amount: Decimal = Field(..., gt=0, description="Amount in dollars")

    def to_target(self) -> AllocationTarget:
        return NO_TARGET


class ReturnAllocateRequest(_AllocateBase):
    action: Literal["return"]
    original_id: int = Field(..., description="Original purchase being refunded")

    def to_target(self) -> AllocationTarget:
        return AllocationTarget("transaction", self.original_id)


class HealthcareAllocateRequest(_AllocateBase):
    action: Literal["healthcare"]
    original_id: int = Field(..., description="Healthcare expense being reimbursed")

    def to_target(self) -> AllocationTarget:
        return AllocationTarget("transaction", self.original_id)


class SpreadOffsetAllocateRequest(_AllocateBase):
    action: Literal["spread_offset"]
    original_id: int = Field(..., description="Spread item whose monthly portion is offset")

    def to_target(self) -> AllocationTarget:
        return AllocationTarget("spread", self.original_id)


class SpendOffsetAllocateRequest(_AllocateBase):
    action: Literal["spend_offset"]
    category_id: int = Field(..., description="Expense category being offset")

    def to_target(self) -> AllocationTarget:
        return AllocationTarget("category", self.category_id)


class GoalAllocateRequest(_AllocateBase):
    action: Literal["goal"]
    goal_id: int = Field(..., description="Goal receiving the money")

    def to_target(self) -> AllocationTarget:
        return AllocationTarget("goal", self.goal_id)


class OtherIncomeAllocateRequest(_AllocateBase):
    action: Literal["other_income"]


class TaxRefundAllocateRequest(_AllocateBase):
    action: Literal["tax_refund"]


AllocateAction = Annotated[
    Union[
        ReturnAllocateRequest,
        HealthcareAllocateRequest,
        SpreadOffsetAllocateRequest,
        SpendOffsetAllocateRequest,
        GoalAllocateRequest,
        OtherIncomeAllocateRequest,
        TaxRefundAllocateRequest,
    ],
    Field(discriminator="action"),
]


class AllocateRequest(RootModel[AllocateAction]):
    """Allocate request body; the ``action`` field selects which shape applies."""


class RevertAllocationRequest(BaseModel):
    allocation_id: int = Field(..., description="Allocation to undo")


class ResetCreditRequest(BaseModel):
    transaction_id: int = Field(..., description="Transaction to return to the triage pool")


# ---------------------------
# Responses
# ---------------------------


class AllocationRecord(BaseModel):
    id: int
    credit_id: Optional[int] = None
    recap_id: Optional[int] = None
    allocation_type: str
    amount: float
    target_transaction_id: Optional[int] = None
    target_category_id: Optional[int] = None
    target_goal_id: Optional[int] = None
    period: str
    label: Optional[str] = None
    created_at: Optional[datetime] = None
    reverted: bool = False


class OkResponse(BaseModel):
    ok: bool = True


class AllocateResponse(OkResponse):
    allocation: AllocationRecord
    complete: bool
    remainingAmount: float
