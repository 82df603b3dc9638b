"""Ledger store: transaction lookups and remaining-amount bookkeeping.

The store owns no allocation rules. It loads rows (optionally under a row
lock), applies remaining/allocated deltas while keeping
``remaining + allocated + written_off == |amount|``, and recomputes the
derived status columns. Callers commit.
"""
import logging
from typing import List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from models.transaction import Transaction, Category, RETURN_STATUSES, REIMBURSEMENT_STATUSES
from models.goal import Goal
from models.allocation import Allocation
from services.errors import NotFound, InvalidTarget, InvariantViolation
from services.periods import month_bounds, month_of, months_between

logger = logging.getLogger(__name__)

POOL_STATES = ("unallocated", "partial", "allocated")
NON_CREDIT_CATEGORY_TYPES = ("income", "transfer")
SPREAD_ALLOCATION_TYPES = ("spread_offset", "spread_paydown")


def get_transaction(db: Session, transaction_id: int, lock: bool = False) -> Transaction:
    """Load a transaction, taking a row lock when ``lock`` is set."""
    query = db.query(Transaction).filter(Transaction.id == transaction_id)
    if lock:
        query = query.with_for_update()
    transaction = query.first()
    if transaction is None:
        raise NotFound(f"Transaction {transaction_id} not found")
    return transaction


def get_goal(db: Session, goal_id: int, lock: bool = False) -> Goal:
    query = db.query(Goal).filter(Goal.id == goal_id)
    if lock:
        query = query.with_for_update()
    goal = query.first()
    if goal is None:
        raise NotFound(f"Goal {goal_id} not found")
    return goal


def get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFound(f"Category {category_id} not found")
    return category


def is_credit(transaction: Transaction) -> bool:
    """Whether a transaction belongs to the triage pool.

    Mirrors the SQL filter in :func:`list_credits`.
    """
    if transaction.amount_cents <= 0:
        return False
    if transaction.credit_allocation in POOL_STATES:
        return True
    if transaction.credit_allocation is not None:
        return False
    category = transaction.category
    return category is None or category.category_type not in NON_CREDIT_CATEGORY_TYPES


def list_credits(db: Session, month: str) -> List[Transaction]:
    """Positive transactions in the triage pool dated within ``month``, newest first."""
    start, end = month_bounds(month)
    return (
        db.query(Transaction)
        .outerjoin(Category, Transaction.category_id == Category.id)
        .filter(
            Transaction.amount_cents > 0,
            Transaction.date >= start,
            Transaction.date < end,
            or_(
                Transaction.credit_allocation.in_(POOL_STATES),
                and_(
                    Transaction.credit_allocation.is_(None),
                    or_(
                        Category.id.is_(None),
                        Category.category_type.notin_(NON_CREDIT_CATEGORY_TYPES),
                    ),
                ),
            ),
        )
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .all()
    )


def ensure_tracked(transaction: Transaction) -> Transaction:
    """Start remaining-amount tracking with the whole amount open."""
    if transaction.remaining_cents is None:
        transaction.remaining_cents = transaction.abs_cents
        transaction.allocated_cents = 0
        transaction.written_off_cents = 0
    return transaction


def adjust_remaining(db: Session, transaction: Transaction, delta_cents: int) -> Transaction:
    """Apply ``delta_cents`` to the remaining amount and the inverse to allocated.

    A negative delta consumes the transaction (allocation); a positive delta
    gives money back (revert). Raises ``InvariantViolation`` if the result
    would leave remaining outside ``[0, |amount| - written_off]``.
    """
    ensure_tracked(transaction)
    ceiling = transaction.abs_cents - transaction.written_off_cents
    new_remaining = transaction.remaining_cents + delta_cents
    if new_remaining < 0 or new_remaining > ceiling:
        raise InvariantViolation(
            f"Transaction {transaction.id}: remaining would become {new_remaining} cents "
            f"(allowed 0..{ceiling})"
        )
    transaction.remaining_cents = new_remaining
    transaction.allocated_cents = transaction.allocated_cents - delta_cents
    db.flush()
    return transaction


def refresh_credit_state(credit: Transaction) -> None:
    if credit.remaining_cents is None or credit.remaining_cents == credit.abs_cents:
        credit.credit_allocation = "unallocated"
    elif credit.remaining_cents == 0:
        credit.credit_allocation = "allocated"
    else:
        credit.credit_allocation = "partial"


def refresh_return_status(transaction: Transaction) -> None:
    if not transaction.is_return:
        return
    transaction.return_status = "received" if transaction.remaining_cents == 0 else "pending"


def refresh_reimbursement_status(transaction: Transaction) -> None:
    if not transaction.is_healthcare:
        return
    if transaction.remaining_cents == 0:
        transaction.reimbursement_status = "complete"
    elif transaction.remaining_cents is None or transaction.remaining_cents == transaction.abs_cents:
        transaction.reimbursement_status = "pending"
    else:
        transaction.reimbursement_status = "partial"


def live_target_allocations(db: Session, transaction_id: int) -> int:
    """Total cents of non-reverted allocations consuming a transaction."""
    total = (
        db.query(func.coalesce(func.sum(Allocation.amount_cents), 0))
        .filter(
            Allocation.target_transaction_id == transaction_id,
            Allocation.reverted.is_(False),
        )
        .scalar()
    )
    return int(total or 0)


def flag_transaction(
    db: Session,
    transaction_id: int,
    is_return: Optional[bool] = None,
    return_status: Optional[str] = None,
    is_healthcare: Optional[bool] = None,
    reimbursement_status: Optional[str] = None,
    category_id: Optional[int] = None,
) -> Transaction:
    """Apply status and category edits to a transaction.

    Flagging an expense as a return or healthcare claim starts tracking its
    unmatched remainder. Un-flagging is refused while allocations still
    consume the transaction.
    """
    transaction = get_transaction(db, transaction_id, lock=True)

    if category_id is not None:
        transaction.category_id = get_category(db, category_id).id

    if return_status is not None and return_status not in RETURN_STATUSES:
        raise InvalidTarget(f"Unknown return_status {return_status!r}")
    if reimbursement_status is not None and reimbursement_status not in REIMBURSEMENT_STATUSES:
        raise InvalidTarget(f"Unknown reimbursement_status {reimbursement_status!r}")

    flagging = bool(is_return) or bool(is_healthcare)
    if flagging and transaction.amount_cents >= 0:
        raise InvalidTarget(f"Transaction {transaction_id} is not an expense")

    if is_return is True:
        transaction.is_return = True
        if transaction.return_status == "none":
            transaction.return_status = "pending"
        ensure_tracked(transaction)
    elif is_return is False and transaction.is_return:
        _require_unconsumed(db, transaction)
        transaction.is_return = False
        transaction.return_status = "none"

    if is_healthcare is True:
        transaction.is_healthcare = True
        if transaction.reimbursement_status == "none":
            transaction.reimbursement_status = "pending"
        ensure_tracked(transaction)
    elif is_healthcare is False and transaction.is_healthcare:
        _require_unconsumed(db, transaction)
        transaction.is_healthcare = False
        transaction.reimbursement_status = "none"

    if return_status is not None and transaction.is_return:
        transaction.return_status = return_status
    if reimbursement_status is not None and transaction.is_healthcare:
        transaction.reimbursement_status = reimbursement_status

    if not transaction.is_return and not transaction.is_healthcare and transaction.amount_cents < 0:
        # Plain expense again; stop tracking once nothing consumes it
        if transaction.allocated_cents == 0:
            transaction.remaining_cents = None
            transaction.written_off_cents = 0

    db.flush()
    logger.info(
        f"Flagged transaction {transaction_id}: is_return={transaction.is_return} "
        f"is_healthcare={transaction.is_healthcare}"
    )
    return transaction


def _require_unconsumed(db: Session, transaction: Transaction) -> None:
    if live_target_allocations(db, transaction.id) > 0:
        raise InvariantViolation(
            f"Transaction {transaction.id} has live allocations; undo them first"
        )


def close_shortfall(db: Session, transaction_id: int, kind: str) -> Transaction:
    """Write off the unmatched remainder of a return or healthcare claim."""
    transaction = get_transaction(db, transaction_id, lock=True)
    if kind == "return" and not transaction.is_return:
        raise InvalidTarget(f"Transaction {transaction_id} is not a return")
    if kind == "healthcare" and not transaction.is_healthcare:
        raise InvalidTarget(f"Transaction {transaction_id} is not a healthcare expense")

    ensure_tracked(transaction)
    shortfall = transaction.remaining_cents
    transaction.written_off_cents = transaction.written_off_cents + shortfall
    transaction.remaining_cents = 0
    if kind == "return":
        transaction.return_status = "received"
    else:
        transaction.reimbursement_status = "complete"
    db.flush()
    logger.info(f"Closed {kind} shortfall on transaction {transaction_id}: wrote off {shortfall} cents")
    return transaction


# ---------------------------
# Spread / payoff items
# ---------------------------


def spread_start(item: Transaction) -> str:
    return item.amortize_start or month_of(item.date)


def monthly_portion_cents(item: Transaction, month: Optional[str] = None) -> int:
    """Even share of a spread item per month; the final month also takes the leftover cents."""
    months = item.amortize_months or 1
    portion = item.abs_cents // months
    if month is not None and spread_months_remaining(item, month) == 1:
        return item.abs_cents - portion * (months - 1)
    return portion


def spread_is_active(item: Transaction, month: str) -> bool:
    if not item.is_amortized:
        return False
    elapsed = months_between(spread_start(item), month)
    return 0 <= elapsed < (item.amortize_months or 1)


def spread_months_remaining(item: Transaction, month: str) -> int:
    return (item.amortize_months or 1) - months_between(spread_start(item), month)


def spread_offset_cents(db: Session, item_id: int, period: str) -> int:
    """Cents already offset against a spread item's portion for ``period``."""
    total = (
        db.query(func.coalesce(func.sum(Allocation.amount_cents), 0))
        .filter(
            Allocation.target_transaction_id == item_id,
            Allocation.allocation_type == "spread_offset",
            Allocation.period == period,
            Allocation.reverted.is_(False),
        )
        .scalar()
    )
    return int(total or 0)


def spread_paid_cents(db: Session, item_id: int) -> int:
    """Cents of live offsets and paydowns against a spread item, across all periods."""
    total = (
        db.query(func.coalesce(func.sum(Allocation.amount_cents), 0))
        .filter(
            Allocation.target_transaction_id == item_id,
            Allocation.allocation_type.in_(SPREAD_ALLOCATION_TYPES),
            Allocation.reverted.is_(False),
        )
        .scalar()
    )
    return int(total or 0)


def spread_unpaid_cents(db: Session, item: Transaction) -> int:
    return max(item.abs_cents - spread_paid_cents(db, item.id), 0)


def spread_remaining_cents(db: Session, item: Transaction, period: str) -> int:
    portion_left = monthly_portion_cents(item, period) - spread_offset_cents(db, item.id, period)
    return max(min(portion_left, spread_unpaid_cents(db, item)), 0)


def list_spread_items(db: Session, month: str) -> List[Transaction]:
    """Amortized expenses whose spread covers ``month``."""
    candidates = (
        db.query(Transaction)
        .filter(Transaction.is_amortized.is_(True), Transaction.amount_cents < 0)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .all()
    )
    return [item for item in candidates if spread_is_active(item, month)]
