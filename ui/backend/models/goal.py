"""SQLAlchemy model for savings and payoff goals."""
from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, Text, BigInteger, ForeignKey, CheckConstraint
from datetime import datetime

from models.transaction import Base

GOAL_TYPES = ("monthly_savings", "fund_target", "category_limit", "net_worth")


class Goal(Base):
    """Target/current amount pair. Allocations of type goal move ``current_cents``."""
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    goal_type = Column(String(32), nullable=False, default="fund_target")
    target_cents = Column(BigInteger, nullable=False)
    current_cents = Column(BigInteger, nullable=False, default=0)
    deadline = Column(Date)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    is_savings_target = Column(Boolean, nullable=False, default=False)
    is_payoff = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "goal_type in ('monthly_savings','fund_target','category_limit','net_worth')",
            name="ck_goals_type",
        ),
        CheckConstraint("current_cents >= 0", name="ck_goals_current_non_negative"),
    )

    @property
    def room_cents(self) -> int:
        return max(self.target_cents - self.current_cents, 0)
