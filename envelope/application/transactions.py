"""
Transaction use cases - business logic for ledger transactions

Every use case validates fully before the first write and commits once.
None of them recompute balances: the caller (see workspace.py) runs the
carryover propagator from the earliest affected month afterwards.
"""
import logging
from dataclasses import replace
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from envelope.domain.account import Account
from envelope.domain.budget import utcnow
from envelope.domain.month import month_end, month_start
from envelope.domain.transaction import Transaction
from envelope.errors import LedgerIntegrityError, NotFoundError, ValidationError
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.utils.validation import require_cents, require_date, require_month

logger = logging.getLogger(__name__)


class TransactionValidationError(ValidationError):
    """Transaction input rejected"""
    pass


def _require_account(store: LedgerStore, account_id: str) -> Account:
    account = store.get_account(account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def _check_category(store: LedgerStore, category_id: Optional[str], budget_id: str) -> None:
    if category_id is None:
        return
    owner = store.get_category_budget_id(category_id)
    if owner is None:
        raise NotFoundError(f"Category {category_id} not found")
    if owner != budget_id:
        raise TransactionValidationError(f"Category {category_id} belongs to another budget")


def _check_payee(store: LedgerStore, payee_id: Optional[str], budget_id: str) -> None:
    if payee_id is None:
        return
    payee = store.get_payee(payee_id)
    if payee is None:
        raise NotFoundError(f"Payee {payee_id} not found")
    if payee.budget_id != budget_id:
        raise TransactionValidationError(f"Payee {payee_id} belongs to another budget")


def _require_nonzero_amount(amount) -> int:
    amount = require_cents(amount, error_cls=TransactionValidationError)
    if amount == 0:
        raise TransactionValidationError("Amount must not be zero")
    return amount


def _require_pair(store: LedgerStore, transaction: Transaction) -> Transaction:
    pair = store.find_transfer_pair(transaction)
    if pair is None:
        raise LedgerIntegrityError(
            f"Transfer transaction {transaction.id} has no matching leg in account "
            f"{transaction.transfer_account_id}"
        )
    return pair


class AddTransactionUseCase:
    """
    Use case: record a single (non-transfer) transaction
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(
        self,
        account_id: str,
        date: date | str,
        amount: int,
        category_id: Optional[str] = None,
        payee_id: Optional[str] = None,
        cleared: bool = False,
        memo: Optional[str] = None,
    ) -> Transaction:
        """
        Validate and persist a transaction

        Args:
            account_id: Account the money moves in
            date: Posting date (date or YYYY-MM-DD)
            amount: Signed cents, non-zero (positive = inflow)
            category_id: Envelope in the same budget (None = uncategorized)
            payee_id: Payee in the same budget (optional)
            cleared: Bank-confirmed flag
            memo: Free-form note

        Returns:
            The stored Transaction

        Raises:
            TransactionValidationError: bad amount/date, cross-budget reference
            NotFoundError: account, category or payee missing
        """
        amount = _require_nonzero_amount(amount)
        tx_date = require_date(date, error_cls=TransactionValidationError)
        account = _require_account(self.store, account_id)
        _check_category(self.store, category_id, account.budget_id)
        _check_payee(self.store, payee_id, account.budget_id)

        transaction = Transaction.create(
            account_id=account_id,
            date=tx_date,
            amount=amount,
            category_id=category_id,
            payee_id=payee_id,
            cleared=bool(cleared),
            memo=memo or None,
        )
        self.store.save_transaction(transaction)
        self.db.commit()

        logger.info("Transaction %s added: %s %d", transaction.id, tx_date.isoformat(), amount)
        return transaction


class CreateTransferUseCase:
    """
    Use case: move money between two accounts of the same budget

    Produces two legs: -|amount| in the source account and +|amount| in the
    destination, same date, no category, pointing at each other.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(
        self,
        from_account_id: str,
        to_account_id: str,
        date: date | str,
        amount: int,
        cleared: bool = False,
        memo: Optional[str] = None,
        payee_id: Optional[str] = None,
    ) -> Tuple[Transaction, Transaction]:
        """
        Returns:
            (outflow leg, inflow leg)
        """
        amount = abs(_require_nonzero_amount(amount))
        tx_date = require_date(date, error_cls=TransactionValidationError)
        if from_account_id == to_account_id:
            raise TransactionValidationError("Cannot transfer to the same account")

        source = _require_account(self.store, from_account_id)
        destination = _require_account(self.store, to_account_id)
        if source.budget_id != destination.budget_id:
            raise TransactionValidationError("Transfer accounts must belong to the same budget")
        _check_payee(self.store, payee_id, source.budget_id)

        outflow = Transaction.create(
            account_id=from_account_id,
            date=tx_date,
            amount=-amount,
            payee_id=payee_id,
            cleared=bool(cleared),
            memo=memo or None,
            transfer_account_id=to_account_id,
        )
        inflow = replace(
            Transaction.create(
                account_id=to_account_id,
                date=tx_date,
                amount=amount,
                payee_id=payee_id,
                cleared=bool(cleared),
                memo=memo or None,
                transfer_account_id=from_account_id,
            ),
            created_at=outflow.created_at,
            updated_at=outflow.updated_at,
        )
        self.store.save_transactions([outflow, inflow])
        self.db.commit()

        logger.info(
            "Transfer %s -> %s of %d on %s (legs %s, %s)",
            from_account_id, to_account_id, amount, tx_date.isoformat(), outflow.id, inflow.id,
        )
        return outflow, inflow


class UpdateTransactionUseCase:
    """
    Use case: edit a transaction

    Returns both versions so the caller can recompute from
    min(old.month, new.month). Amount, date, cleared and memo edits of a
    transfer leg are mirrored on its pair in the same commit.
    """

    EDITABLE_FIELDS = ("account_id", "date", "amount", "category_id", "payee_id", "cleared", "memo")

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, transaction_id: str, **changes) -> Tuple[Transaction, Transaction]:
        """
        Args:
            transaction_id: Transaction to edit
            **changes: Any of EDITABLE_FIELDS

        Returns:
            (old, new)

        Raises:
            TransactionValidationError: unknown field, bad value, transfer rule
            NotFoundError: transaction or referenced entity missing
            LedgerIntegrityError: transfer leg without its pair
        """
        unknown = set(changes) - set(self.EDITABLE_FIELDS)
        if unknown:
            raise TransactionValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        old = self.store.get_transaction(transaction_id)
        if old is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        if "amount" in changes:
            changes["amount"] = _require_nonzero_amount(changes["amount"])
        if "date" in changes:
            changes["date"] = require_date(changes["date"], error_cls=TransactionValidationError)
        if "cleared" in changes and not isinstance(changes["cleared"], bool):
            raise TransactionValidationError("Cleared must be true or false")
        if "account_id" in changes and changes["account_id"] is None:
            raise TransactionValidationError("Account is required")
        if "memo" in changes:
            changes["memo"] = changes["memo"] or None

        account = _require_account(self.store, changes.get("account_id", old.account_id))
        if account.budget_id != _require_account(self.store, old.account_id).budget_id:
            raise TransactionValidationError("Cannot move a transaction to another budget")

        pair = None
        if old.is_transfer:
            if changes.get("category_id") is not None:
                raise TransactionValidationError("Transfer transactions cannot have a category")
            if changes.get("account_id", old.account_id) != old.account_id:
                raise TransactionValidationError("Cannot move a transfer leg to another account")
            pair = _require_pair(self.store, old)
        else:
            _check_category(self.store, changes.get("category_id", old.category_id), account.budget_id)
        _check_payee(self.store, changes.get("payee_id", old.payee_id), account.budget_id)

        now = utcnow()
        new = replace(old, updated_at=now, **changes)
        updated = [new]
        if pair is not None:
            updated.append(replace(
                pair,
                amount=-new.amount,
                date=new.date,
                cleared=new.cleared,
                memo=new.memo,
                updated_at=now,
            ))

        self.store.save_transactions(updated)
        self.db.commit()

        logger.info("Transaction %s updated: %s", transaction_id, ", ".join(sorted(changes)))
        return old, new


class SetTransactionClearedUseCase:
    """Use case: toggle the cleared flag (mirrored on transfer pairs)"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, transaction_id: str, cleared: bool) -> Transaction:
        _, new = UpdateTransactionUseCase(self.db).execute(transaction_id, cleared=cleared)
        return new


class DeleteTransactionUseCase:
    """
    Use case: delete a transaction (and its transfer pair)

    Both legs go in one flush. If the pair cannot be found nothing is deleted.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, transaction_id: str) -> List[Transaction]:
        """
        Returns:
            Deleted transactions (one, or both transfer legs)

        Raises:
            NotFoundError: unknown transaction
            LedgerIntegrityError: dangling transfer leg
        """
        transaction = self.store.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        victims = [transaction]
        if transaction.is_transfer:
            victims.append(_require_pair(self.store, transaction))

        self.store.delete_transactions([t.id for t in victims])
        self.db.commit()

        logger.info("Deleted transaction(s): %s", ", ".join(t.id for t in victims))
        return victims


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def list_transactions(
    db: Session,
    budget_id: str,
    account_id: Optional[str] = None,
    month: Optional[str] = None,
) -> List[Transaction]:
    """Transactions of a budget (or one of its accounts), optionally for one month"""
    store = LedgerStore(db)
    from_date = to_date = None
    if month is not None:
        require_month(month)
        from_date, to_date = month_start(month), month_end(month)

    if account_id is not None:
        account = _require_account(store, account_id)
        if account.budget_id != budget_id:
            raise NotFoundError(f"Account {account_id} not found in budget {budget_id}")
        return store.list_transactions(account_id, from_date=from_date, to_date=to_date)
    return store.list_budget_transactions(budget_id, from_date=from_date, to_date=to_date)
