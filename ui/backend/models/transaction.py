"""SQLAlchemy models for transactions, categories and accounts."""
from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    Date,
    DateTime,
    Boolean,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntId = BigInteger().with_variant(Integer, "sqlite")

RETURN_STATUSES = ("none", "pending", "received")
REIMBURSEMENT_STATUSES = ("none", "pending", "partial", "complete")
CREDIT_ALLOCATION_STATES = ("unallocated", "partial", "allocated", "income")


class Category(Base):
    """Budget category; parents group children one level deep."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    category_type = Column(String(16), nullable=False, default="expense")
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    color = Column(String(16))
    sort_order = Column(Integer)

    __table_args__ = (
        CheckConstraint(
            "category_type in ('income','expense','transfer')",
            name="ck_categories_type",
        ),
    )


class Account(Base):
    """Bank or card account a transaction was posted to."""
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    account_type = Column(String(32), nullable=False, default="checking")
    is_active = Column(Boolean, nullable=False, default=True)


class Transaction(Base):
    """A financial event. Amounts are signed cents; negative is an expense.

    ``remaining_cents`` is NULL until the transaction takes part in matching.
    Once tracked, ``remaining + allocated + written_off`` always equals the
    absolute amount. Only the allocation ledger writes these columns.
    """
    __tablename__ = "transactions"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    description = Column(Text)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)

    is_return = Column(Boolean, nullable=False, default=False)
    return_status = Column(String(16), nullable=False, default="none")
    is_healthcare = Column(Boolean, nullable=False, default=False)
    reimbursement_status = Column(String(16), nullable=False, default="none")
    is_fixed = Column(Boolean, nullable=False, default=False)
    is_amortized = Column(Boolean, nullable=False, default=False)
    amortize_months = Column(Integer)
    amortize_start = Column(String(7))  # YYYY-MM
    is_user_entered = Column(Boolean, nullable=False, default=False)

    credit_allocation = Column(String(16))
    remaining_cents = Column(BigInteger)
    allocated_cents = Column(BigInteger, nullable=False, default=0)
    written_off_cents = Column(BigInteger, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category")
    account = relationship("Account")

    __table_args__ = (
        CheckConstraint(
            "return_status in ('none','pending','received')",
            name="ck_transactions_return_status",
        ),
        CheckConstraint(
            "reimbursement_status in ('none','pending','partial','complete')",
            name="ck_transactions_reimbursement_status",
        ),
        CheckConstraint(
            "credit_allocation IS NULL OR "
            "credit_allocation in ('unallocated','partial','allocated','income')",
            name="ck_transactions_credit_allocation",
        ),
        CheckConstraint(
            "remaining_cents IS NULL OR (remaining_cents >= 0 AND allocated_cents >= 0 "
            "AND remaining_cents + allocated_cents + written_off_cents = abs(amount_cents))",
            name="ck_transactions_remaining_conserved",
        ),
        Index("ix_transactions_date", "date"),
    )

    @property
    def abs_cents(self) -> int:
        return abs(self.amount_cents)

    @property
    def open_cents(self) -> int:
        """Unmatched portion; untracked transactions are wholly open."""
        if self.remaining_cents is None:
            return self.abs_cents
        return self.remaining_cents

    @property
    def category_name(self):
        return self.category.name if self.category else None

    @property
    def account_name(self):
        return self.account.name if self.account else None
