"""
Assignment domain entity - the "Assigned" cell of the budget grid
"""
from dataclasses import dataclass

from envelope.domain.budget import new_id


@dataclass(frozen=True)
class Assignment:
    """
    Money assigned to a category for one specific month

    Not cumulative: one row per (category_id, month), and assigning again
    replaces the amount instead of adding to it.
    """
    id: str
    category_id: str
    month: str
    amount: int

    @staticmethod
    def create(category_id: str, month: str, amount: int) -> "Assignment":
        return Assignment(id=new_id(), category_id=category_id, month=month, amount=amount)
