"""
Budget workspace - the caller side of the recompute protocol

Front ends (CLI, HTTP API) never call a use case directly: they go through a
Workspace, which runs the use case, recomputes month summaries from the
earliest affected month and hands out immutable month snapshots.

    edit        -> recalculate from min(old month, new month)
    create/delete/assign -> recalculate from that month
    structural deletion  -> invalidate the whole cache
    account type change across the on-budget line -> invalidate
    renames, regrouping, targets, payees -> nothing to recompute
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from envelope.application.assignments import (
    AssignToCategoryUseCase, ClearAssignmentUseCase, MoveBetweenCategoriesUseCase,
)
from envelope.application.balances import (
    AccountBalances, MonthCategoryRow, TargetProgress, get_account_balances, get_target_progress,
)
from envelope.application.budgets import (
    CreateAccountUseCase, CreateCategoryGroupUseCase, CreateCategoryUseCase,
    DeleteAccountUseCase, DeleteCategoryGroupUseCase, DeleteCategoryUseCase, DeletePayeeUseCase,
    DeleteTargetUseCase, FindOrCreatePayeeUseCase, MoveCategoryUseCase, RenameCategoryGroupUseCase,
    RenameCategoryUseCase, RenamePayeeUseCase, SetTargetUseCase, UpdateAccountUseCase, get_budget,
)
from envelope.application.ready_to_assign import get_tracking_balance
from envelope.application.transactions import (
    AddTransactionUseCase, CreateTransferUseCase, DeleteTransactionUseCase,
    SetTransactionClearedUseCase, UpdateTransactionUseCase,
)
from envelope.config import get_settings
from envelope.domain.account import Account
from envelope.domain.assignment import Assignment
from envelope.domain.budget import Budget
from envelope.domain.category import Category, CategoryGroup
from envelope.domain.month import current_month as real_current_month
from envelope.domain.month import month_end, month_of, previous_month
from envelope.domain.payee import Payee
from envelope.domain.target import Target
from envelope.domain.transaction import Transaction
from envelope.errors import NotFoundError
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.readmodels.month_summaries import CarryoverPropagator
from envelope.utils.validation import require_month


@dataclass(frozen=True)
class AccountSnapshot:
    account: Account
    balances: AccountBalances


@dataclass(frozen=True)
class MonthSnapshot:
    """Read-only view of one budget month, built from the summary cache"""
    budget: Budget
    month: str
    ready_to_assign: int
    opening_ready_to_assign: int
    uncategorized_activity: int
    tracking_balance: int
    categories: Tuple[MonthCategoryRow, ...]
    groups: Tuple[CategoryGroup, ...]
    accounts: Tuple[AccountSnapshot, ...]

    def category(self, category_id: str) -> Optional[MonthCategoryRow]:
        for row in self.categories:
            if row.category_id == category_id:
                return row
        return None

    @property
    def total_available(self) -> int:
        return sum(r.closing for r in self.categories)

    @property
    def on_budget_balance(self) -> int:
        return sum(a.balances.working for a in self.accounts if a.account.on_budget)


class Workspace:
    """
    One budget, one selected month

    Args:
        db: SQLAlchemy session
        budget_id: Budget to work on
        month: Selected month (default: current month)
        current_month: Override of "now" for the recompute range
    """

    def __init__(
        self,
        db: Session,
        budget_id: str,
        month: Optional[str] = None,
        current_month: Optional[str] = None,
    ):
        self.db = db
        self.budget = get_budget(db, budget_id)
        self.current_month = current_month or real_current_month(get_settings().TIMEZONE)
        self.month = require_month(month or self.current_month)
        self.propagator = CarryoverPropagator(db)
        self.store = LedgerStore(db)

    @property
    def budget_id(self) -> str:
        return self.budget.id

    def select_month(self, month: str) -> MonthSnapshot:
        self.month = require_month(month)
        return self.refresh()

    def _recalculate(self, start_month: str) -> None:
        self.propagator.recalculate_from(self.budget_id, start_month, current_month=self.current_month)

    def _require_in_budget(self, account_id: str) -> None:
        account = self.store.get_account(account_id)
        if account is None or account.budget_id != self.budget_id:
            raise NotFoundError(f"Account {account_id} not found in budget {self.budget_id}")

    def _require_category_in_budget(self, category_id: str) -> None:
        if self.store.get_category_budget_id(category_id) != self.budget_id:
            raise NotFoundError(f"Category {category_id} not found in budget {self.budget_id}")

    def _require_transaction_in_budget(self, transaction_id: str) -> None:
        transaction = self.store.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        self._require_in_budget(transaction.account_id)

    def _require_group_in_budget(self, group_id: str) -> None:
        group = self.store.get_group(group_id)
        if group is None or group.budget_id != self.budget_id:
            raise NotFoundError(f"Category group {group_id} not found in budget {self.budget_id}")

    def _require_payee_in_budget(self, payee_id: str) -> None:
        payee = self.store.get_payee(payee_id)
        if payee is None or payee.budget_id != self.budget_id:
            raise NotFoundError(f"Payee {payee_id} not found in budget {self.budget_id}")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def add_transaction(
        self,
        account_id: str,
        date: date | str,
        amount: int,
        category_id: Optional[str] = None,
        payee_id: Optional[str] = None,
        payee_name: Optional[str] = None,
        cleared: bool = False,
        memo: Optional[str] = None,
    ) -> Transaction:
        """payee_name is resolved with find-or-create when payee_id is not given"""
        self._require_in_budget(account_id)
        if payee_id is None and payee_name:
            payee_id = FindOrCreatePayeeUseCase(self.db).execute(self.budget_id, payee_name).id
        transaction = AddTransactionUseCase(self.db).execute(
            account_id=account_id,
            date=date,
            amount=amount,
            category_id=category_id,
            payee_id=payee_id,
            cleared=cleared,
            memo=memo,
        )
        self._recalculate(transaction.month)
        return transaction

    def create_transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        date: date | str,
        amount: int,
        cleared: bool = False,
        memo: Optional[str] = None,
    ) -> Tuple[Transaction, Transaction]:
        self._require_in_budget(from_account_id)
        legs = CreateTransferUseCase(self.db).execute(
            from_account_id, to_account_id, date, amount, cleared=cleared, memo=memo,
        )
        self._recalculate(legs[0].month)
        return legs

    def update_transaction(self, transaction_id: str, payee_name: Optional[str] = None, **changes) -> Transaction:
        """payee_name is resolved with find-or-create, like add_transaction"""
        self._require_transaction_in_budget(transaction_id)
        if payee_name:
            changes["payee_id"] = FindOrCreatePayeeUseCase(self.db).execute(self.budget_id, payee_name).id
        old, new = UpdateTransactionUseCase(self.db).execute(transaction_id, **changes)
        self._recalculate(min(old.month, new.month))
        return new

    def set_cleared(self, transaction_id: str, cleared: bool) -> Transaction:
        """Cleared status feeds account balances only; month summaries stay valid"""
        self._require_transaction_in_budget(transaction_id)
        return SetTransactionClearedUseCase(self.db).execute(transaction_id, cleared)

    def delete_transaction(self, transaction_id: str) -> List[Transaction]:
        self._require_transaction_in_budget(transaction_id)
        deleted = DeleteTransactionUseCase(self.db).execute(transaction_id)
        self._recalculate(min(t.month for t in deleted))
        return deleted

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assign(self, category_id: str, month: str, amount: int) -> Assignment:
        self._require_category_in_budget(category_id)
        assignment = AssignToCategoryUseCase(self.db).execute(category_id, month, amount)
        self._recalculate(month)
        return assignment

    def move(self, from_category_id: str, to_category_id: str, month: str, amount: int) -> Tuple[Assignment, Assignment]:
        self._require_category_in_budget(from_category_id)
        result = MoveBetweenCategoriesUseCase(self.db).execute(from_category_id, to_category_id, month, amount)
        self._recalculate(month)
        return result

    def clear_assignment(self, category_id: str, month: str) -> bool:
        self._require_category_in_budget(category_id)
        removed = ClearAssignmentUseCase(self.db).execute(category_id, month)
        if removed:
            self._recalculate(month)
        return removed

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def create_account(self, name: str, account_type: str) -> Account:
        return CreateAccountUseCase(self.db).execute(self.budget_id, name, account_type)

    def create_group(self, name: str) -> CategoryGroup:
        return CreateCategoryGroupUseCase(self.db).execute(self.budget_id, name)

    def create_category(self, group_id: str, name: str) -> Category:
        self._require_group_in_budget(group_id)
        category = CreateCategoryUseCase(self.db).execute(group_id, name)
        # Cached months from the creation month on must list the new category
        start = month_of(category.created_at)
        latest = self.store.get_latest_cached_month(self.budget_id)
        if latest is not None and latest >= start:
            self._recalculate(start)
        return category

    def edit_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        account_type: Optional[str] = None,
    ) -> Account:
        self._require_in_budget(account_id)
        old, new = UpdateAccountUseCase(self.db).execute(account_id, name=name, account_type=account_type)
        if old.on_budget != new.on_budget:
            self.propagator.invalidate(self.budget_id)
        return new

    def rename_group(self, group_id: str, name: str) -> CategoryGroup:
        self._require_group_in_budget(group_id)
        return RenameCategoryGroupUseCase(self.db).execute(group_id, name)

    def rename_category(self, category_id: str, name: str) -> Category:
        self._require_category_in_budget(category_id)
        return RenameCategoryUseCase(self.db).execute(category_id, name)

    def move_category(self, category_id: str, group_id: str) -> Category:
        """Summaries are keyed by category, so regrouping leaves them valid"""
        self._require_category_in_budget(category_id)
        self._require_group_in_budget(group_id)
        return MoveCategoryUseCase(self.db).execute(category_id, group_id)

    def delete_account(self, account_id: str) -> Account:
        self._require_in_budget(account_id)
        account = DeleteAccountUseCase(self.db).execute(account_id)
        self.propagator.invalidate(self.budget_id)
        return account

    def delete_group(self, group_id: str) -> CategoryGroup:
        self._require_group_in_budget(group_id)
        group = DeleteCategoryGroupUseCase(self.db).execute(group_id)
        self.propagator.invalidate(self.budget_id)
        return group

    def delete_category(self, category_id: str) -> Category:
        self._require_category_in_budget(category_id)
        category = DeleteCategoryUseCase(self.db).execute(category_id)
        self.propagator.invalidate(self.budget_id)
        return category

    # ------------------------------------------------------------------
    # Targets & payees (never part of the month summaries)
    # ------------------------------------------------------------------

    def set_target(
        self,
        category_id: str,
        target_type: str,
        amount: int,
        target_date: Optional[date | str] = None,
    ) -> Target:
        self._require_category_in_budget(category_id)
        return SetTargetUseCase(self.db).execute(category_id, target_type, amount, target_date)

    def clear_target(self, category_id: str) -> bool:
        self._require_category_in_budget(category_id)
        return DeleteTargetUseCase(self.db).execute(category_id)

    def target_progress(self, category_id: str) -> TargetProgress:
        """Progress in the selected month"""
        self._require_category_in_budget(category_id)
        return get_target_progress(self.db, category_id, self.month)

    def rename_payee(self, payee_id: str, name: str) -> Payee:
        self._require_payee_in_budget(payee_id)
        return RenamePayeeUseCase(self.db).execute(payee_id, name)

    def delete_payee(self, payee_id: str) -> Tuple[Payee, int]:
        self._require_payee_in_budget(payee_id)
        return DeletePayeeUseCase(self.db).execute(payee_id)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def refresh(self) -> MonthSnapshot:
        """
        Snapshot of the selected month

        Closing figures come from the summary cache (filled on demand),
        opening figures from the previous month's cached summary.
        """
        closing = self.propagator.get_summary(self.budget_id, self.month)
        opening = self.propagator.get_summary(self.budget_id, previous_month(self.month))

        rows = tuple(
            MonthCategoryRow(
                category_id=c.id,
                group_id=c.group_id,
                name=c.name,
                opening=opening.available(c.id),
                assigned=closing.category_balances[c.id].assigned,
                activity=closing.category_balances[c.id].activity,
                closing=closing.category_balances[c.id].available,
            )
            for c in self.store.list_categories(self.budget_id)
            if c.id in closing.category_balances
        )
        accounts = tuple(
            AccountSnapshot(account=a, balances=get_account_balances(self.db, a.id, as_of=month_end(self.month)))
            for a in self.store.list_accounts(self.budget_id)
        )
        return MonthSnapshot(
            budget=self.budget,
            month=self.month,
            ready_to_assign=closing.ready_to_assign,
            opening_ready_to_assign=opening.ready_to_assign,
            uncategorized_activity=closing.uncategorized_activity,
            tracking_balance=get_tracking_balance(self.db, self.budget_id, self.month),
            categories=rows,
            groups=tuple(self.store.list_groups(self.budget_id)),
            accounts=accounts,
        )
