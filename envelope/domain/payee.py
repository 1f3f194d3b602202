"""
Payee domain entity
"""
from dataclasses import dataclass

from envelope.domain.budget import new_id


@dataclass(frozen=True)
class Payee:
    """Who money is sent to or received from. Names are unique case-insensitively per budget."""
    id: str
    budget_id: str
    name: str

    @staticmethod
    def create(budget_id: str, name: str) -> "Payee":
        return Payee(id=new_id(), budget_id=budget_id, name=name)
