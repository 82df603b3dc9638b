"""Allocations against a monthly recap's surplus (or deficit).

The recap's absolute surplus/deficit is a pool that allocations draw from
under the same conservation rule as credits: live allocations never exceed
the pool. ``reset_existing`` lets a second user replace the first user's
choices; the revert-all and the new allocation commit together.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from db.connection import atomic
from models.allocation import Allocation, Recap
from services import ledger_store
from services.errors import (
    AlreadyReverted,
    AmountExceedsRemaining,
    GoalAlreadyFunded,
    InvalidTarget,
    NotFound,
    TargetOverMatched,
)
from services.money import EPSILON_CENTS, to_dollars
from services.triage_service import list_goal_options, list_spread_options
from schemas.recap import (
    AllocationGoalOption,
    AllocationOptions,
    AllocationSpreadOption,
    RecapAllocation,
    RecapResponse,
    RecapSummary,
)

logger = logging.getLogger(__name__)

SURPLUS_TYPES = ("spread_paydown", "goal_contribution", "next_month_boost", "bank_it")
DEFICIT_TYPES = ("goal_reduction", "next_month_reduce", "absorb_deficit")


def _get_recap(db: Session, recap_id: int, lock: bool = False) -> Recap:
    query = db.query(Recap).filter(Recap.id == recap_id)
    if lock:
        query = query.with_for_update()
    recap = query.first()
    if recap is None:
        raise NotFound(f"Recap {recap_id} not found")
    return recap


def _refresh_recap_status(recap: Recap) -> None:
    if recap.allocated_cents == 0:
        recap.allocation_status = "pending"
    elif recap.remaining_cents == 0:
        recap.allocation_status = "complete"
    else:
        recap.allocation_status = "partial"


def allocate_recap(
    db: Session,
    recap_id: int,
    allocation_type: str,
    amount_cents: int,
    target_goal_id: Optional[int] = None,
    target_transaction_id: Optional[int] = None,
    reset_existing: bool = False,
) -> Tuple[Allocation, bool]:
    """Allocate part of a recap's pool; optionally replace existing allocations first."""
    with atomic(db):
        recap = _get_recap(db, recap_id, lock=True)
        if reset_existing:
            live = (
                db.query(Allocation)
                .filter(Allocation.recap_id == recap.id, Allocation.reverted.is_(False))
                .order_by(Allocation.id)
                .with_for_update()
                .all()
            )
            for existing in live:
                _reverse_locked(db, existing, recap)
            logger.info(f"Recap {recap_id}: reset {len(live)} existing allocation(s)")

        allowed = SURPLUS_TYPES if recap.surplus_deficit_cents > 0 else DEFICIT_TYPES
        if allocation_type not in allowed:
            raise InvalidTarget(f"{allocation_type} does not apply to this recap")

        if amount_cents <= 0:
            raise AmountExceedsRemaining("Allocation amount must be positive")
        available = recap.remaining_cents
        if available <= 0 or amount_cents > available + EPSILON_CENTS:
            raise AmountExceedsRemaining(
                f"Recap {recap_id}: amount {amount_cents} cents exceeds remaining {available} cents"
            )
        amount_cents = min(amount_cents, available)

        allocation = Allocation(recap_id=recap.id, allocation_type=allocation_type, period=recap.month)

        if allocation_type == "spread_paydown":
            item = ledger_store.get_transaction(db, target_transaction_id, lock=True)
            if not ledger_store.spread_is_active(item, recap.month):
                raise InvalidTarget(f"Transaction {item.id} is not a spread item active in {recap.month}")
            unpaid = ledger_store.spread_unpaid_cents(db, item)
            if unpaid <= 0 or amount_cents > unpaid + EPSILON_CENTS:
                raise TargetOverMatched(
                    f"Spread item {item.id}: amount {amount_cents} cents exceeds unpaid {unpaid} cents"
                )
            amount_cents = min(amount_cents, unpaid)
            allocation.target_transaction_id = item.id
            allocation.label = f"Pay Down Spread: {item.description}"
        elif allocation_type in ("goal_contribution", "goal_reduction"):
            goal = ledger_store.get_goal(db, target_goal_id, lock=True)
            if allocation_type == "goal_contribution":
                if goal.room_cents == 0:
                    raise GoalAlreadyFunded(f"Goal {goal.id} has already reached its target")
                amount_cents = min(amount_cents, goal.room_cents)
                goal.current_cents = goal.current_cents + amount_cents
            else:
                if goal.current_cents == 0:
                    raise InvalidTarget(f"Goal {goal.id} has nothing to reduce")
                amount_cents = min(amount_cents, goal.current_cents)
                goal.current_cents = goal.current_cents - amount_cents
            allocation.target_goal_id = goal.id
            allocation.label = goal.name
        else:
            allocation.label = allocation_type.replace("_", " ").title()

        allocation.amount_cents = amount_cents
        db.add(allocation)
        recap.allocated_cents = recap.allocated_cents + amount_cents
        _refresh_recap_status(recap)
        db.flush()
        complete = recap.remaining_cents == 0

    logger.info(
        f"Allocated {amount_cents} cents of recap {recap_id} as {allocation_type} "
        f"(allocation {allocation.id}, complete={complete})"
    )
    return allocation, complete


def revert_recap_allocation(db: Session, allocation_id: int) -> Allocation:
    with atomic(db):
        found = db.query(Allocation).filter(Allocation.id == allocation_id).first()
        if found is None or found.recap_id is None:
            raise NotFound(f"Allocation {allocation_id} not found")
        recap = _get_recap(db, found.recap_id, lock=True)
        allocation = (
            db.query(Allocation)
            .filter(Allocation.id == allocation_id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        if allocation.reverted:
            raise AlreadyReverted(f"Allocation {allocation_id} was already reverted")
        _reverse_locked(db, allocation, recap)
    logger.info(f"Reverted recap allocation {allocation_id}")
    return allocation


def _reverse_locked(db: Session, allocation: Allocation, recap: Recap) -> None:
    recap.allocated_cents = recap.allocated_cents - allocation.amount_cents
    _refresh_recap_status(recap)
    if allocation.target_goal_id is not None:
        goal = ledger_store.get_goal(db, allocation.target_goal_id, lock=True)
        if allocation.allocation_type == "goal_contribution":
            goal.current_cents = max(goal.current_cents - allocation.amount_cents, 0)
        else:
            goal.current_cents = goal.current_cents + allocation.amount_cents
    allocation.reverted = True
    allocation.reverted_at = datetime.utcnow()
    db.flush()


def to_recap_allocation(allocation: Allocation) -> RecapAllocation:
    return RecapAllocation(
        id=allocation.id,
        recap_id=allocation.recap_id,
        allocation_type=allocation.allocation_type,
        amount=to_dollars(allocation.amount_cents),
        target_goal_id=allocation.target_goal_id,
        target_transaction_id=allocation.target_transaction_id,
    )


def get_recap(db: Session, month: str, recap_type: str = "monthly") -> RecapResponse:
    """Recap for a month with its live allocations and target options."""
    recap = (
        db.query(Recap)
        .filter(Recap.month == month, Recap.recap_type == recap_type)
        .order_by(Recap.id.desc())
        .first()
    )
    if recap is None:
        return RecapResponse(recap=None, allocations=[], options=None)

    live = (
        db.query(Allocation)
        .filter(Allocation.recap_id == recap.id, Allocation.reverted.is_(False))
        .order_by(Allocation.id)
        .all()
    )
    goals = [
        AllocationGoalOption(
            id=g.id,
            name=g.name,
            targetAmount=g.targetAmount,
            currentAmount=g.currentAmount,
            remaining=g.remaining,
        )
        for g in list_goal_options(db)
    ]
    spreads = [
        AllocationSpreadOption(
            id=s.id,
            description=s.description,
            totalAmount=s.totalAmount,
            monthlyPortion=s.monthlyPortion,
            monthsRemaining=s.monthsRemaining,
        )
        for s in list_spread_options(db, month)
    ]
    return RecapResponse(
        recap=RecapSummary(
            id=recap.id,
            month=recap.month,
            recap_type=recap.recap_type,
            surplus_deficit=to_dollars(recap.surplus_deficit_cents),
            allocated_amount=to_dollars(recap.allocated_cents),
            remaining_amount=to_dollars(recap.remaining_cents),
            allocation_status=recap.allocation_status,
        ),
        allocations=[to_recap_allocation(a) for a in live],
        options=AllocationOptions(goals=goals, spreads=spreads),
    )
