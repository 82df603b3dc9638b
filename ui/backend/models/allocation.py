"""SQLAlchemy models for allocation records and the recaps they can draw from."""
from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    DateTime,
    Boolean,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from models.transaction import Base, BigIntId

CREDIT_ALLOCATION_TYPES = (
    "return",
    "healthcare",
    "spend_offset",
    "spread_offset",
    "goal",
    "other_income",
    "tax_refund",
)

RECAP_ALLOCATION_TYPES = (
    "spread_paydown",
    "goal_contribution",
    "next_month_boost",
    "bank_it",
    "goal_reduction",
    "next_month_reduce",
    "absorb_deficit",
)

_ALL_TYPES_SQL = ",".join(f"'{t}'" for t in CREDIT_ALLOCATION_TYPES + RECAP_ALLOCATION_TYPES)


class Recap(Base):
    """Monthly recap whose surplus (or deficit) is allocated like a credit.

    Recap rows are produced by the recap generator; this service only draws
    allocations against ``surplus_deficit_cents``.
    """
    __tablename__ = "recaps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    month = Column(String(7), nullable=False)
    recap_type = Column(String(16), nullable=False, default="monthly")
    surplus_deficit_cents = Column(BigInteger, nullable=False, default=0)
    allocated_cents = Column(BigInteger, nullable=False, default=0)
    allocation_status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "allocated_cents >= 0 AND allocated_cents <= abs(surplus_deficit_cents)",
            name="ck_recaps_allocated_bounded",
        ),
        CheckConstraint(
            "allocation_status in ('pending','partial','complete')",
            name="ck_recaps_allocation_status",
        ),
    )

    @property
    def pool_cents(self) -> int:
        return abs(self.surplus_deficit_cents)

    @property
    def remaining_cents(self) -> int:
        return self.pool_cents - self.allocated_cents


class Allocation(Base):
    """A slice of a credit (or recap surplus) assigned to one target.

    Rows are never deleted: undo sets ``reverted`` and keeps the audit trail.
    """
    __tablename__ = "allocations"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    credit_id = Column(BigInteger, ForeignKey("transactions.id"), nullable=True)
    recap_id = Column(Integer, ForeignKey("recaps.id"), nullable=True)
    allocation_type = Column(String(32), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    target_transaction_id = Column(BigInteger, ForeignKey("transactions.id"), nullable=True)
    target_category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    target_goal_id = Column(Integer, ForeignKey("goals.id"), nullable=True)
    period = Column(String(7), nullable=False)  # YYYY-MM the allocation counts against
    label = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    reverted = Column(Boolean, nullable=False, default=False)
    reverted_at = Column(DateTime)

    credit = relationship("Transaction", foreign_keys=[credit_id])
    target_transaction = relationship("Transaction", foreign_keys=[target_transaction_id])
    recap = relationship("Recap")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_allocations_amount_positive"),
        CheckConstraint(
            "(credit_id IS NULL) <> (recap_id IS NULL)",
            name="ck_allocations_single_parent",
        ),
        CheckConstraint(f"allocation_type in ({_ALL_TYPES_SQL})", name="ck_allocations_type"),
        Index("ix_allocations_credit_id", "credit_id"),
        Index("ix_allocations_target_transaction_id", "target_transaction_id"),
        Index("ix_allocations_recap_id", "recap_id"),
    )
