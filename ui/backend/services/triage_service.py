"""Read-only view of the credit triage screen for one month."""
import logging
from typing import List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.goal import Goal
from models.transaction import Transaction, Category
from services import ledger_store
from services.allocation_service import live_allocations_by_credit
from services.money import to_dollars
from services.periods import month_of
from schemas.credit import (
    CreditItem,
    CreditSubAllocation,
    GoalOption,
    CategoryOption,
    ReturnItem,
    SpreadItem,
    UnallocatedCreditsResponse,
)

logger = logging.getLogger(__name__)


def get_unallocated(db: Session, month: str) -> UnallocatedCreditsResponse:
    """Compose the triage state for ``month``.

    Credits still holding money come first (newest first) with their live
    allocations for chip display; fully allocated credits follow separately.
    Allocation totals are read from the ledger columns, never cached here.
    """
    credits = ledger_store.list_credits(db, month)
    allocations = live_allocations_by_credit(db, [c.id for c in credits])

    open_items: List[CreditItem] = []
    allocated_items: List[CreditItem] = []
    for credit in credits:
        item = _credit_item(credit, allocations.get(credit.id, []))
        if credit.remaining_cents == 0:
            allocated_items.append(item)
        else:
            open_items.append(item)

    response = UnallocatedCreditsResponse(
        credits=open_items,
        allocatedCredits=allocated_items,
        goals=list_goal_options(db),
        expenseCategories=list_expense_categories(db),
        pendingReturns=list_pending_returns(db),
        spreadItems=list_spread_options(db, month),
    )
    logger.info(
        f"Triage {month}: {len(open_items)} open credit(s), {len(allocated_items)} allocated"
    )
    return response


def _credit_item(credit: Transaction, allocations) -> CreditItem:
    return CreditItem(
        id=credit.id,
        date=credit.date.isoformat(),
        amount=to_dollars(credit.amount_cents),
        description=credit.description,
        categoryName=credit.category_name,
        accountName=credit.account_name,
        allocatedAmount=to_dollars(credit.allocated_cents or 0),
        remainingAmount=to_dollars(credit.open_cents),
        state=credit.credit_allocation or "unallocated",
        allocations=[
            CreditSubAllocation(
                id=a.id,
                type=a.allocation_type,
                amount=to_dollars(a.amount_cents),
                label=a.label,
            )
            for a in allocations
        ],
    )


def list_goal_options(db: Session) -> List[GoalOption]:
    """Active goals that still have room, in creation order."""
    goals = (
        db.query(Goal)
        .filter(Goal.is_active.is_(True), Goal.target_cents > Goal.current_cents)
        .order_by(Goal.id)
        .all()
    )
    return [
        GoalOption(
            id=g.id,
            name=g.name,
            goalType=g.goal_type,
            targetAmount=to_dollars(g.target_cents),
            currentAmount=to_dollars(g.current_cents),
            remaining=to_dollars(g.room_cents),
        )
        for g in goals
    ]


def list_expense_categories(db: Session) -> List[CategoryOption]:
    rows = (
        db.query(Category)
        .filter(Category.category_type == "expense")
        .order_by(Category.sort_order, Category.name)
        .all()
    )
    return [CategoryOption.model_validate(c) for c in rows]


def list_pending_returns(db: Session) -> List[ReturnItem]:
    rows = (
        db.query(Transaction)
        .filter(
            Transaction.is_return.is_(True),
            Transaction.return_status == "pending",
            or_(Transaction.remaining_cents.is_(None), Transaction.remaining_cents > 0),
        )
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .all()
    )
    return [
        ReturnItem(
            id=t.id,
            date=t.date.isoformat(),
            amount=to_dollars(t.amount_cents),
            description=t.description,
            return_status=t.return_status,
            remainingAmount=to_dollars(t.open_cents),
        )
        for t in rows
    ]


def list_spread_options(db: Session, month: str) -> List[SpreadItem]:
    items = ledger_store.list_spread_items(db, month)
    return [
        SpreadItem(
            id=item.id,
            description=item.description or "",
            totalAmount=to_dollars(item.abs_cents),
            monthlyPortion=to_dollars(ledger_store.monthly_portion_cents(item, month)),
            months=item.amortize_months or 1,
            startMonth=item.amortize_start or month_of(item.date),
            categoryName=item.category_name or "",
            monthsRemaining=ledger_store.spread_months_remaining(item, month),
            remainingThisMonth=to_dollars(ledger_store.spread_remaining_cents(db, item, month)),
        )
        for item in items
    ]
