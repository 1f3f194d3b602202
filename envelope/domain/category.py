"""
Category and CategoryGroup domain entities

Categories are virtual envelopes; their assigned/activity/available figures are
computed per month by the balance engine, never stored on the entity.
"""
from dataclasses import dataclass, field
from datetime import datetime

from envelope.domain.budget import new_id, utcnow


@dataclass(frozen=True)
class CategoryGroup:
    """Organisational container for related categories"""
    id: str
    budget_id: str
    name: str
    sort_order: int = 0

    @staticmethod
    def create(budget_id: str, name: str, sort_order: int = 0) -> "CategoryGroup":
        return CategoryGroup(id=new_id(), budget_id=budget_id, name=name, sort_order=sort_order)


@dataclass(frozen=True)
class Category:
    """
    Category (envelope) inside exactly one group

    created_at anchors the start of the carryover chain (together with the
    earliest assignment/activity month).
    """
    id: str
    group_id: str
    name: str
    sort_order: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def create(group_id: str, name: str, sort_order: int = 0) -> "Category":
        now = utcnow()
        return Category(
            id=new_id(),
            group_id=group_id,
            name=name,
            sort_order=sort_order,
            created_at=now,
            updated_at=now,
        )
