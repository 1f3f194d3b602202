"""
Target domain entity - a goal attached to a category

Targets are informational: the balance engine never reads them.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from envelope.domain.budget import new_id, utcnow

# Target types
TARGET_TYPE_SPENDING_LIMIT = "spending_limit"
TARGET_TYPE_SAVINGS_BALANCE = "savings_balance"
TARGET_TYPE_MONTHLY_CONTRIBUTION = "monthly_contribution"

TARGET_TYPES = (
    TARGET_TYPE_SPENDING_LIMIT,
    TARGET_TYPE_SAVINGS_BALANCE,
    TARGET_TYPE_MONTHLY_CONTRIBUTION,
)


@dataclass(frozen=True)
class Target:
    id: str
    category_id: str
    type: str
    amount: int
    target_date: Optional[date] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def create(
        category_id: str,
        target_type: str,
        amount: int,
        target_date: Optional[date] = None,
    ) -> "Target":
        now = utcnow()
        return Target(
            id=new_id(),
            category_id=category_id,
            type=target_type,
            amount=amount,
            target_date=target_date,
            created_at=now,
            updated_at=now,
        )
