"""Allocation ledger: assign slices of a credit to targets, and undo them.

A credit moves between ``unallocated``, ``partial`` and ``allocated`` only
through :func:`allocate`, :func:`revert` and :func:`reset_credit`. Each call
runs in a single database transaction and re-validates remaining amounts
under row locks, so two requests can never spend the same cents.

Locks are always taken in the order credit -> allocation rows -> target
transaction -> goal.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from db.connection import atomic
from models.allocation import Allocation, CREDIT_ALLOCATION_TYPES
from models.transaction import Transaction
from services import ledger_store
from services.errors import (
    AlreadyReverted,
    AmountExceedsRemaining,
    GoalAlreadyFunded,
    InvalidTarget,
    NotFound,
    TargetOverMatched,
)
from services.money import EPSILON_CENTS
from services.periods import month_of

logger = logging.getLogger(__name__)

# Which kind of target each allocation type points at
TARGET_KINDS = {
    "return": "transaction",
    "healthcare": "transaction",
    "spread_offset": "spread",
    "spend_offset": "category",
    "goal": "goal",
    "other_income": "none",
    "tax_refund": "none",
}

_STATIC_LABELS = {
    "other_income": "Other Income",
    "tax_refund": "Tax Refund",
}


@dataclass(frozen=True)
class AllocationTarget:
    """What an allocation points at: kind is transaction, spread, category, goal or none."""
    kind: str
    id: Optional[int] = None


NO_TARGET = AllocationTarget("none")


def allocate(
    db: Session,
    credit_id: int,
    allocation_type: str,
    amount_cents: int,
    target: AllocationTarget = NO_TARGET,
) -> Tuple[Allocation, bool]:
    """Allocate part of a credit to a target.

    Returns the new allocation and whether the credit is now fully allocated.
    Nothing is written if any validation fails.
    """
    with atomic(db):
        allocation, complete = _allocate_locked(db, credit_id, allocation_type, amount_cents, target)
    logger.info(
        f"Allocated {allocation.amount_cents} cents of credit {credit_id} "
        f"as {allocation_type} (allocation {allocation.id}, complete={complete})"
    )
    return allocation, complete


def revert(db: Session, allocation_id: int) -> Allocation:
    """Undo an allocation, giving its amount back to the credit and target.

    The row is kept with ``reverted`` set. A second revert of the same id
    raises ``AlreadyReverted`` and changes nothing.
    """
    with atomic(db):
        found = db.query(Allocation).filter(Allocation.id == allocation_id).first()
        if found is None or found.credit_id is None:
            raise NotFound(f"Allocation {allocation_id} not found")
        credit = ledger_store.get_transaction(db, found.credit_id, lock=True)
        allocation = (
            db.query(Allocation)
            .filter(Allocation.id == allocation_id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        if allocation.reverted:
            raise AlreadyReverted(f"Allocation {allocation_id} was already reverted")
        _reverse_locked(db, allocation, credit)
    logger.info(f"Reverted allocation {allocation_id} ({allocation.amount_cents} cents) on credit {credit.id}")
    return allocation


def reset_credit(db: Session, transaction_id: int) -> Tuple[Transaction, int]:
    """Put a transaction back in the triage pool with nothing allocated.

    Used when a positive transaction was treated as income but is really a
    credit. Every live allocation is reverted in the same transaction.
    Returns the credit and how many allocations were reverted.
    """
    with atomic(db):
        credit = ledger_store.get_transaction(db, transaction_id, lock=True)
        if credit.amount_cents <= 0:
            raise InvalidTarget(f"Transaction {transaction_id} is not a credit")
        live = (
            db.query(Allocation)
            .filter(Allocation.credit_id == credit.id, Allocation.reverted.is_(False))
            .order_by(Allocation.id)
            .with_for_update()
            .all()
        )
        for allocation in live:
            _reverse_locked(db, allocation, credit)
        ledger_store.ensure_tracked(credit)
        credit.credit_allocation = "unallocated"
        db.flush()
    logger.info(f"Reset credit {transaction_id}: reverted {len(live)} allocation(s)")
    return credit, len(live)


def _allocate_locked(
    db: Session,
    credit_id: int,
    allocation_type: str,
    amount_cents: int,
    target: AllocationTarget,
) -> Tuple[Allocation, bool]:
    if allocation_type not in CREDIT_ALLOCATION_TYPES:
        raise InvalidTarget(f"Unknown allocation type {allocation_type!r}")
    expected_kind = TARGET_KINDS[allocation_type]
    if target.kind != expected_kind or (expected_kind != "none" and target.id is None):
        raise InvalidTarget(f"Allocation type {allocation_type} needs a {expected_kind} target")

    try:
        credit = ledger_store.get_transaction(db, credit_id, lock=True)
    except NotFound:
        raise NotFound(f"Credit {credit_id} not found")
    if credit.amount_cents <= 0:
        raise NotFound(f"Credit {credit_id} not found")
    if not ledger_store.is_credit(credit):
        raise InvalidTarget(f"Transaction {credit_id} is not in the triage pool; reset it first")

    amount_cents = _clamp(
        amount_cents,
        credit.open_cents,
        AmountExceedsRemaining,
        f"Credit {credit_id}",
    )
    period = month_of(credit.date)

    target_transaction = None
    goal = None
    allocation = Allocation(
        credit_id=credit.id,
        allocation_type=allocation_type,
        period=period,
    )

    if expected_kind == "transaction":
        target_transaction = ledger_store.get_transaction(db, target.id, lock=True)
        _check_matchable(credit, target_transaction)
        if allocation_type == "return" and not target_transaction.is_return:
            target_transaction.is_return = True
            target_transaction.return_status = "pending"
        if allocation_type == "healthcare" and not target_transaction.is_healthcare:
            target_transaction.is_healthcare = True
            target_transaction.reimbursement_status = "pending"
        ledger_store.ensure_tracked(target_transaction)
        amount_cents = _clamp(
            amount_cents,
            target_transaction.remaining_cents,
            TargetOverMatched,
            f"Transaction {target_transaction.id}",
        )
        allocation.target_transaction_id = target_transaction.id
        allocation.label = _label(allocation_type, target_transaction.description)

    elif expected_kind == "spread":
        item = ledger_store.get_transaction(db, target.id, lock=True)
        if not ledger_store.spread_is_active(item, period):
            raise InvalidTarget(f"Transaction {item.id} is not a spread item active in {period}")
        amount_cents = _clamp(
            amount_cents,
            ledger_store.spread_remaining_cents(db, item, period),
            TargetOverMatched,
            f"Spread item {item.id} ({period} portion)",
        )
        allocation.target_transaction_id = item.id
        allocation.label = _label(allocation_type, item.description)

    elif expected_kind == "category":
        category = ledger_store.get_category(db, target.id)
        if category.category_type != "expense":
            raise InvalidTarget(f"Category {category.id} is not an expense category")
        allocation.target_category_id = category.id
        allocation.label = _label(allocation_type, category.name)

    elif expected_kind == "goal":
        goal = ledger_store.get_goal(db, target.id, lock=True)
        if not goal.is_active:
            raise InvalidTarget(f"Goal {goal.id} is not active")
        if goal.room_cents == 0:
            raise GoalAlreadyFunded(f"Goal {goal.id} has already reached its target")
        # Overshoot is capped to the goal's remaining room
        amount_cents = min(amount_cents, goal.room_cents)
        allocation.target_goal_id = goal.id
        allocation.label = _label(allocation_type, goal.name)

    else:
        allocation.label = _label(allocation_type, None)

    allocation.amount_cents = amount_cents
    db.add(allocation)

    ledger_store.adjust_remaining(db, credit, -amount_cents)
    ledger_store.refresh_credit_state(credit)
    if target_transaction is not None:
        ledger_store.adjust_remaining(db, target_transaction, -amount_cents)
        _refresh_target_status(allocation_type, target_transaction)
    if goal is not None:
        goal.current_cents = goal.current_cents + amount_cents

    db.flush()
    return allocation, credit.remaining_cents == 0


def _reverse_locked(db: Session, allocation: Allocation, credit: Transaction) -> None:
    ledger_store.adjust_remaining(db, credit, allocation.amount_cents)
    ledger_store.refresh_credit_state(credit)

    if TARGET_KINDS.get(allocation.allocation_type) == "transaction":
        target = ledger_store.get_transaction(db, allocation.target_transaction_id, lock=True)
        ledger_store.adjust_remaining(db, target, allocation.amount_cents)
        _refresh_target_status(allocation.allocation_type, target)

    if allocation.target_goal_id is not None:
        goal = ledger_store.get_goal(db, allocation.target_goal_id, lock=True)
        goal.current_cents = max(goal.current_cents - allocation.amount_cents, 0)

    allocation.reverted = True
    allocation.reverted_at = datetime.utcnow()
    db.flush()


def _clamp(amount_cents: int, available_cents: int, error, subject: str) -> int:
    """Validate ``amount_cents`` against what is available.

    Requests within one cent of the available amount are trimmed to it.
    """
    if amount_cents <= 0:
        raise error(f"Allocation amount must be positive (got {amount_cents} cents)")
    if available_cents <= 0:
        raise error(f"{subject} has nothing left to allocate")
    if amount_cents > available_cents + EPSILON_CENTS:
        raise error(
            f"{subject}: amount {amount_cents} cents exceeds remaining {available_cents} cents"
        )
    return min(amount_cents, available_cents)


def _check_matchable(credit: Transaction, target: Transaction) -> None:
    if target.id == credit.id:
        raise InvalidTarget("A credit cannot be matched against itself")
    if target.amount_cents >= 0:
        raise InvalidTarget(f"Transaction {target.id} is not an expense")


def _refresh_target_status(allocation_type: str, target: Transaction) -> None:
    if allocation_type == "return":
        ledger_store.refresh_return_status(target)
    elif allocation_type == "healthcare":
        ledger_store.refresh_reimbursement_status(target)


def _label(allocation_type: str, name: Optional[str]) -> str:
    if allocation_type in _STATIC_LABELS:
        return _STATIC_LABELS[allocation_type]
    prefix = {
        "return": "Return",
        "healthcare": "Reimbursement",
        "spread_offset": "Spread",
        "spend_offset": "Offset",
        "goal": "Goal",
    }[allocation_type]
    return f"{prefix}: {name}" if name else prefix


def live_allocations_by_credit(db: Session, credit_ids: Iterable[int]) -> Dict[int, List[Allocation]]:
    """Non-reverted allocations grouped by credit id, oldest first."""
    ids = list(credit_ids)
    grouped: Dict[int, List[Allocation]] = {credit_id: [] for credit_id in ids}
    if not ids:
        return grouped
    rows = (
        db.query(Allocation)
        .filter(Allocation.credit_id.in_(ids), Allocation.reverted.is_(False))
        .order_by(Allocation.id)
        .all()
    )
    for row in rows:
        grouped[row.credit_id].append(row)
    return grouped
