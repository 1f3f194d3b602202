"""
Transaction domain entity - an individual money movement
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from envelope.domain.budget import new_id, utcnow
from envelope.domain.month import month_of


@dataclass(frozen=True)
class Transaction:
    """
    Transaction entity

    amount is signed cents: positive = inflow, negative = outflow.
    category_id None means "uncategorized".
    transfer_account_id marks one leg of an inter-account transfer; the other
    leg lives in that account with the opposite amount and points back here.
    """
    id: str
    account_id: str
    date: date
    amount: int
    category_id: Optional[str] = None
    payee_id: Optional[str] = None
    cleared: bool = False
    memo: Optional[str] = None
    transfer_account_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def month(self) -> str:
        return month_of(self.date)

    @property
    def is_transfer(self) -> bool:
        return self.transfer_account_id is not None

    @staticmethod
    def create(
        account_id: str,
        date: date,
        amount: int,
        category_id: Optional[str] = None,
        payee_id: Optional[str] = None,
        cleared: bool = False,
        memo: Optional[str] = None,
        transfer_account_id: Optional[str] = None,
    ) -> "Transaction":
        """
        Create a new transaction with a fresh UUID

        Args:
            account_id: Account the money moves in
            date: Posting date
            amount: Signed amount in cents
            category_id: Envelope (None = uncategorized)
            payee_id: Payee reference (optional)
            cleared: Bank-confirmed flag
            memo: Free-form note
            transfer_account_id: Counter-account for transfer legs

        Returns:
            Transaction entity (not yet persisted)
        """
        now = utcnow()
        return Transaction(
            id=new_id(),
            account_id=account_id,
            date=date,
            amount=amount,
            category_id=category_id,
            payee_id=payee_id,
            cleared=cleared,
            memo=memo,
            transfer_account_id=transfer_account_id,
            created_at=now,
            updated_at=now,
        )
