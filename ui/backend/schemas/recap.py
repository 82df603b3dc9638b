"""Pydantic schemas for recap surplus/deficit allocations."""
from pydantic import BaseModel, Field, model_validator
from typing import List, Literal, Optional
from decimal import Decimal

RecapAllocationType = Literal[
    "spread_paydown",
    "goal_contribution",
    "next_month_boost",
    "bank_it",
    "goal_reduction",
    "next_month_reduce",
    "absorb_deficit",
]

_GOAL_TYPES = ("goal_contribution", "goal_reduction")


class RecapAllocateRequest(BaseModel):
    """Request schema for allocating part of a recap's surplus or deficit."""
    recap_id: int
    allocation_type: RecapAllocationType
    amount: Decimal = Field(..., gt=0, description="Amount in dollars")
    target_goal_id: Optional[int] = None
    target_transaction_id: Optional[int] = None
    reset_existing: bool = Field(False, description="Revert existing allocations first, atomically")

    @model_validator(mode="after")
    def _check_target(self):
        if self.allocation_type in _GOAL_TYPES and self.target_goal_id is None:
            raise ValueError(f"{self.allocation_type} requires target_goal_id")
        if self.allocation_type == "spread_paydown" and self.target_transaction_id is None:
            raise ValueError("spread_paydown requires target_transaction_id")
        return self


class RecapAllocation(BaseModel):
    id: int
    recap_id: int
    allocation_type: str
    amount: float
    target_goal_id: Optional[int] = None
    target_transaction_id: Optional[int] = None


class RecapAllocateResponse(BaseModel):
    ok: bool = True
    allocation: RecapAllocation
    complete: bool


class RecapSummary(BaseModel):
    id: int
    month: str
    recap_type: str
    surplus_deficit: float
    allocated_amount: float
    remaining_amount: float
    allocation_status: str


class AllocationGoalOption(BaseModel):
    id: int
    name: str
    targetAmount: float
    currentAmount: float
    remaining: float


class AllocationSpreadOption(BaseModel):
    id: int
    description: str
    totalAmount: float
    monthlyPortion: float
    monthsRemaining: int


class AllocationOptions(BaseModel):
    goals: List[AllocationGoalOption]
    spreads: List[AllocationSpreadOption]


class RecapResponse(BaseModel):
    recap: Optional[RecapSummary] = None
    allocations: List[RecapAllocation] = []
    options: Optional[AllocationOptions] = None
