"""
MonthSummary - closing figures of one budget month

Summaries are the unit of the carryover cache: the next month opens with the
previous month's closing ``available`` per category.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping

from envelope.domain.budget import utcnow


@dataclass(frozen=True)
class CategoryBalance:
    """assigned/activity are this month only; available includes carryover"""
    assigned: int = 0
    activity: int = 0
    available: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"assigned": self.assigned, "activity": self.activity, "available": self.available}


@dataclass(frozen=True)
class MonthSummary:
    """
    Snapshot of a month

    category_balances only contains categories whose carryover chain has
    started by this month. updated_at is bookkeeping and does not take part in
    equality, so two computations from the same store state compare equal.
    """
    budget_id: str
    month: str
    ready_to_assign: int
    category_balances: Mapping[str, CategoryBalance]
    uncategorized_activity: int = 0
    updated_at: datetime = field(default_factory=utcnow, compare=False)

    def available(self, category_id: str) -> int:
        balance = self.category_balances.get(category_id)
        return balance.available if balance else 0

    def total_available(self) -> int:
        return sum(b.available for b in self.category_balances.values())

    def balances_json(self) -> Dict[str, Any]:
        return {cid: b.to_dict() for cid, b in self.category_balances.items()}
