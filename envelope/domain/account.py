"""
Account domain entity - a container holding actual money
"""
from dataclasses import dataclass

from envelope.domain.budget import new_id

# Account types
ACCOUNT_TYPE_CHECKING = "checking"
ACCOUNT_TYPE_SAVINGS = "savings"
ACCOUNT_TYPE_CREDIT = "credit"
ACCOUNT_TYPE_CASH = "cash"
ACCOUNT_TYPE_TRACKING = "tracking"  # off-budget: investments, property, loans

ACCOUNT_TYPES = (
    ACCOUNT_TYPE_CHECKING,
    ACCOUNT_TYPE_SAVINGS,
    ACCOUNT_TYPE_CREDIT,
    ACCOUNT_TYPE_CASH,
    ACCOUNT_TYPE_TRACKING,
)


def is_on_budget(account_type: str) -> bool:
    """Every account type except tracking contributes to ready-to-assign"""
    return account_type != ACCOUNT_TYPE_TRACKING


@dataclass(frozen=True)
class Account:
    """
    Account entity

    Account types:
    - checking / savings / credit / cash: on-budget, their money is assignable
    - tracking: off-budget, holds transactions but never feeds category
      balances or ready-to-assign
    """
    id: str
    budget_id: str
    name: str
    type: str

    @property
    def on_budget(self) -> bool:
        return is_on_budget(self.type)

    @staticmethod
    def create(budget_id: str, name: str, account_type: str) -> "Account":
        return Account(id=new_id(), budget_id=budget_id, name=name, type=account_type)
