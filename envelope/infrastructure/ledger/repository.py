"""
Ledger Store - durable keyed storage for every ledger entity

The store maps ORM rows to immutable domain entities and back. It holds no
business rules except structural cascades on delete. Nothing here commits:
the calling use case owns the transaction boundary.
"""
import logging
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from envelope.domain.account import Account, is_on_budget
from envelope.domain.assignment import Assignment
from envelope.domain.budget import Budget
from envelope.domain.category import Category, CategoryGroup
from envelope.domain.month_summary import CategoryBalance, MonthSummary
from envelope.domain.payee import Payee
from envelope.domain.target import Target
from envelope.domain.transaction import Transaction
from envelope.errors import LedgerIntegrityError
from envelope.infrastructure.db.models import (
    AccountModel, AssignmentModel, BudgetModel, CategoryGroupModel, CategoryModel,
    MonthSummaryModel, PayeeModel, TargetModel, TransactionModel,
)

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive timestamps; everything we store is UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Row -> entity mapping
# ---------------------------------------------------------------------------


def _budget(row: BudgetModel) -> Budget:
    return Budget(
        id=row.id, name=row.name, currency=row.currency,
        created_at=_aware(row.created_at), updated_at=_aware(row.updated_at),
    )


def _account(row: AccountModel) -> Account:
    return Account(id=row.id, budget_id=row.budget_id, name=row.name, type=row.type)


def _group(row: CategoryGroupModel) -> CategoryGroup:
    return CategoryGroup(id=row.id, budget_id=row.budget_id, name=row.name, sort_order=row.sort_order)


def _category(row: CategoryModel) -> Category:
    return Category(
        id=row.id, group_id=row.group_id, name=row.name, sort_order=row.sort_order,
        created_at=_aware(row.created_at), updated_at=_aware(row.updated_at),
    )


def _payee(row: PayeeModel) -> Payee:
    return Payee(id=row.id, budget_id=row.budget_id, name=row.name)


def _transaction(row: TransactionModel) -> Transaction:
    return Transaction(
        id=row.id,
        account_id=row.account_id,
        date=row.date,
        amount=row.amount,
        category_id=row.category_id,
        payee_id=row.payee_id,
        cleared=bool(row.cleared),
        memo=row.memo,
        transfer_account_id=row.transfer_account_id,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _assignment(row: AssignmentModel) -> Assignment:
    return Assignment(id=row.id, category_id=row.category_id, month=row.month, amount=row.amount)


def _target(row: TargetModel) -> Target:
    return Target(
        id=row.id, category_id=row.category_id, type=row.type, amount=row.amount,
        target_date=row.target_date,
        created_at=_aware(row.created_at), updated_at=_aware(row.updated_at),
    )


def _summary(row: MonthSummaryModel) -> MonthSummary:
    balances = {
        cid: CategoryBalance(
            assigned=int(values["assigned"]),
            activity=int(values["activity"]),
            available=int(values["available"]),
        )
        for cid, values in (row.category_balances or {}).items()
    }
    return MonthSummary(
        budget_id=row.budget_id,
        month=row.month,
        ready_to_assign=row.ready_to_assign,
        category_balances=balances,
        uncategorized_activity=row.uncategorized_activity,
        updated_at=_aware(row.updated_at),
    )


class LedgerStore:
    """
    Repository over the ledger tables

    get_* return None when the entity is missing, save_* insert or overwrite
    by id, delete_* return the number of removed rows (cascades included).
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def get_budget(self, budget_id: str) -> Optional[Budget]:
        row = self.db.get(BudgetModel, budget_id)
        return _budget(row) if row else None

    def list_budgets(self) -> List[Budget]:
        rows = self.db.query(BudgetModel).order_by(BudgetModel.created_at, BudgetModel.name).all()
        return [_budget(r) for r in rows]

    def save_budget(self, budget: Budget) -> Budget:
        row = self.db.get(BudgetModel, budget.id)
        if row is None:
            row = BudgetModel(id=budget.id, created_at=budget.created_at)
            self.db.add(row)
        row.name = budget.name
        row.currency = budget.currency
        row.updated_at = budget.updated_at
        self.db.flush()
        return budget

    def delete_budget(self, budget_id: str) -> int:
        """Delete budget and everything it owns"""
        deleted = 0
        for account in self.list_accounts(budget_id):
            deleted += self._delete_account_rows(account.id)
        for group in self.list_groups(budget_id):
            deleted += self.delete_group(group.id)
        deleted += self.db.query(PayeeModel).filter(
            PayeeModel.budget_id == budget_id
        ).delete()
        deleted += self.delete_month_summaries(budget_id)
        deleted += self.db.query(BudgetModel).filter(
            BudgetModel.id == budget_id
        ).delete()
        self.db.flush()
        logger.info("Budget %s deleted (%d rows incl. cascades)", budget_id, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, account_id: str) -> Optional[Account]:
        row = self.db.get(AccountModel, account_id)
        return _account(row) if row else None

    def list_accounts(self, budget_id: str) -> List[Account]:
        rows = self.db.query(AccountModel).filter(
            AccountModel.budget_id == budget_id
        ).order_by(AccountModel.name).all()
        return [_account(r) for r in rows]

    def save_account(self, account: Account) -> Account:
        row = self.db.get(AccountModel, account.id)
        if row is None:
            row = AccountModel(id=account.id)
            self.db.add(row)
        row.budget_id = account.budget_id
        row.name = account.name
        row.type = account.type
        row.on_budget = is_on_budget(account.type)
        self.db.flush()
        return account

    def delete_account(self, account_id: str) -> int:
        """
        Delete account with its transactions

        Transfer legs in other accounts whose pair lived here are removed too,
        so no dangling leg survives.
        """
        deleted = self._delete_account_rows(account_id)
        self.db.flush()
        logger.info("Account %s deleted (%d rows incl. cascades)", account_id, deleted)
        return deleted

    def _delete_account_rows(self, account_id: str) -> int:
        deleted = self.db.query(TransactionModel).filter(
            TransactionModel.transfer_account_id == account_id,
            TransactionModel.account_id != account_id,
        ).delete()
        deleted += self.db.query(TransactionModel).filter(
            TransactionModel.account_id == account_id
        ).delete()
        deleted += self.db.query(AccountModel).filter(
            AccountModel.id == account_id
        ).delete()
        return deleted

    # ------------------------------------------------------------------
    # Category groups & categories
    # ------------------------------------------------------------------

    def get_group(self, group_id: str) -> Optional[CategoryGroup]:
        row = self.db.get(CategoryGroupModel, group_id)
        return _group(row) if row else None

    def list_groups(self, budget_id: str) -> List[CategoryGroup]:
        rows = self.db.query(CategoryGroupModel).filter(
            CategoryGroupModel.budget_id == budget_id
        ).order_by(CategoryGroupModel.sort_order, CategoryGroupModel.name).all()
        return [_group(r) for r in rows]

    def save_group(self, group: CategoryGroup) -> CategoryGroup:
        row = self.db.get(CategoryGroupModel, group.id)
        if row is None:
            row = CategoryGroupModel(id=group.id)
            self.db.add(row)
        row.budget_id = group.budget_id
        row.name = group.name
        row.sort_order = group.sort_order
        self.db.flush()
        return group

    def delete_group(self, group_id: str) -> int:
        """Delete group with all of its categories"""
        deleted = 0
        for category in self.list_categories_in_group(group_id):
            deleted += self.delete_category(category.id)
        deleted += self.db.query(CategoryGroupModel).filter(
            CategoryGroupModel.id == group_id
        ).delete()
        self.db.flush()
        return deleted

    def get_category(self, category_id: str) -> Optional[Category]:
        row = self.db.get(CategoryModel, category_id)
        return _category(row) if row else None

    def get_category_budget_id(self, category_id: str) -> Optional[str]:
        """
        Budget owning a category (through its group)

        Raises:
            LedgerIntegrityError: category points at a missing group
        """
        category = self.db.get(CategoryModel, category_id)
        if category is None:
            return None
        group = self.db.get(CategoryGroupModel, category.group_id)
        if group is None:
            raise LedgerIntegrityError(
                f"Category {category_id} references missing group {category.group_id}"
            )
        return group.budget_id

    def list_categories(self, budget_id: str) -> List[Category]:
        rows = (
            self.db.query(CategoryModel)
            .join(CategoryGroupModel, CategoryGroupModel.id == CategoryModel.group_id)
            .filter(CategoryGroupModel.budget_id == budget_id)
            .order_by(CategoryGroupModel.sort_order, CategoryModel.sort_order, CategoryModel.name)
            .all()
        )
        return [_category(r) for r in rows]

    def list_categories_in_group(self, group_id: str) -> List[Category]:
        rows = self.db.query(CategoryModel).filter(
            CategoryModel.group_id == group_id
        ).order_by(CategoryModel.sort_order, CategoryModel.name).all()
        return [_category(r) for r in rows]

    def save_category(self, category: Category) -> Category:
        row = self.db.get(CategoryModel, category.id)
        if row is None:
            row = CategoryModel(id=category.id, created_at=category.created_at)
            self.db.add(row)
        row.group_id = category.group_id
        row.name = category.name
        row.sort_order = category.sort_order
        row.updated_at = category.updated_at
        self.db.flush()
        return category

    def delete_category(self, category_id: str) -> int:
        """
        Delete category, its assignments and target

        Its transactions stay in the ledger as uncategorized.
        """
        self.db.query(TransactionModel).filter(
            TransactionModel.category_id == category_id
        ).update({TransactionModel.category_id: None})
        deleted = self.db.query(AssignmentModel).filter(
            AssignmentModel.category_id == category_id
        ).delete()
        deleted += self.db.query(TargetModel).filter(
            TargetModel.category_id == category_id
        ).delete()
        deleted += self.db.query(CategoryModel).filter(
            CategoryModel.id == category_id
        ).delete()
        self.db.flush()
        return deleted

    # ------------------------------------------------------------------
    # Payees
    # ------------------------------------------------------------------

    def get_payee(self, payee_id: str) -> Optional[Payee]:
        row = self.db.get(PayeeModel, payee_id)
        return _payee(row) if row else None

    def find_payee_by_name(self, budget_id: str, name: str) -> Optional[Payee]:
        """Case-insensitive lookup"""
        row = self.db.query(PayeeModel).filter(
            PayeeModel.budget_id == budget_id,
            func.lower(PayeeModel.name) == name.strip().lower(),
        ).first()
        return _payee(row) if row else None

    def list_payees(self, budget_id: str) -> List[Payee]:
        rows = self.db.query(PayeeModel).filter(
            PayeeModel.budget_id == budget_id
        ).order_by(PayeeModel.name).all()
        return [_payee(r) for r in rows]

    def save_payee(self, payee: Payee) -> Payee:
        row = self.db.get(PayeeModel, payee.id)
        if row is None:
            row = PayeeModel(id=payee.id)
            self.db.add(row)
        row.budget_id = payee.budget_id
        row.name = payee.name
        self.db.flush()
        return payee

    def delete_payee(self, payee_id: str) -> int:
        self.db.query(TransactionModel).filter(
            TransactionModel.payee_id == payee_id
        ).update({TransactionModel.payee_id: None})
        deleted = self.db.query(PayeeModel).filter(
            PayeeModel.id == payee_id
        ).delete()
        self.db.flush()
        return deleted

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        row = self.db.get(TransactionModel, transaction_id)
        return _transaction(row) if row else None

    def list_transactions(
        self,
        account_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Transaction]:
        """Transactions of one account, date range inclusive, ordered by date"""
        query = self.db.query(TransactionModel).filter(TransactionModel.account_id == account_id)
        if from_date is not None:
            query = query.filter(TransactionModel.date >= from_date)
        if to_date is not None:
            query = query.filter(TransactionModel.date <= to_date)
        rows = query.order_by(TransactionModel.date, TransactionModel.created_at).all()
        return [_transaction(r) for r in rows]

    def list_budget_transactions(
        self,
        budget_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        on_budget_only: bool = False,
    ) -> List[Transaction]:
        """
        Transactions across all accounts of a budget

        Args:
            budget_id: Budget
            from_date: Inclusive lower bound (optional)
            to_date: Inclusive upper bound (optional)
            on_budget_only: Skip transactions of tracking accounts
        """
        query = (
            self.db.query(TransactionModel)
            .join(AccountModel, AccountModel.id == TransactionModel.account_id)
            .filter(AccountModel.budget_id == budget_id)
        )
        if on_budget_only:
            query = query.filter(AccountModel.on_budget.is_(True))
        if from_date is not None:
            query = query.filter(TransactionModel.date >= from_date)
        if to_date is not None:
            query = query.filter(TransactionModel.date <= to_date)
        rows = query.order_by(TransactionModel.date, TransactionModel.created_at).all()
        return [_transaction(r) for r in rows]

    def list_category_transactions(self, category_id: str) -> List[Transaction]:
        rows = self.db.query(TransactionModel).filter(
            TransactionModel.category_id == category_id
        ).order_by(TransactionModel.date).all()
        return [_transaction(r) for r in rows]

    def save_transaction(self, transaction: Transaction) -> Transaction:
        self.save_transactions([transaction])
        return transaction

    def save_transactions(self, transactions: Iterable[Transaction]) -> None:
        """Write several transactions in one flush (transfer pairs)"""
        for tx in transactions:
            row = self.db.get(TransactionModel, tx.id)
            if row is None:
                row = TransactionModel(id=tx.id, created_at=tx.created_at)
                self.db.add(row)
            row.account_id = tx.account_id
            row.category_id = tx.category_id
            row.payee_id = tx.payee_id
            row.date = tx.date
            row.amount = tx.amount
            row.cleared = tx.cleared
            row.memo = tx.memo
            row.transfer_account_id = tx.transfer_account_id
            row.updated_at = tx.updated_at
        self.db.flush()

    def delete_transactions(self, transaction_ids: Iterable[str]) -> int:
        ids = list(transaction_ids)
        if not ids:
            return 0
        deleted = self.db.query(TransactionModel).filter(
            TransactionModel.id.in_(ids)
        ).delete()
        self.db.flush()
        return deleted

    def find_transfer_pair(self, transaction: Transaction) -> Optional[Transaction]:
        """
        Other leg of a transfer

        Match: lives in transfer_account_id, points back at this account,
        opposite amount. Among candidates a leg on the same date wins, then the
        one created closest to this leg (both legs of a transfer share one
        timestamp), so identical transfers between the same accounts keep
        their own pairs.
        """
        if transaction.transfer_account_id is None:
            return None
        rows = self.db.query(TransactionModel).filter(
            TransactionModel.account_id == transaction.transfer_account_id,
            TransactionModel.transfer_account_id == transaction.account_id,
            TransactionModel.amount == -transaction.amount,
            TransactionModel.id != transaction.id,
        ).all()
        if not rows:
            return None
        created = _aware(transaction.created_at)
        candidates = [_transaction(row) for row in rows]
        return min(candidates, key=lambda tx: (
            tx.date != transaction.date,
            abs((tx.created_at - created).total_seconds()),
            tx.id,
        ))

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def get_assignment(self, category_id: str, month: str) -> Optional[Assignment]:
        row = self.db.query(AssignmentModel).filter(
            AssignmentModel.category_id == category_id,
            AssignmentModel.month == month,
        ).first()
        return _assignment(row) if row else None

    def list_assignments(
        self,
        budget_id: str,
        month: Optional[str] = None,
        through_month: Optional[str] = None,
    ) -> List[Assignment]:
        """
        Assignments of a budget

        Args:
            month: Only this month
            through_month: Only months <= this one
        """
        query = (
            self.db.query(AssignmentModel)
            .join(CategoryModel, CategoryModel.id == AssignmentModel.category_id)
            .join(CategoryGroupModel, CategoryGroupModel.id == CategoryModel.group_id)
            .filter(CategoryGroupModel.budget_id == budget_id)
        )
        if month is not None:
            query = query.filter(AssignmentModel.month == month)
        if through_month is not None:
            query = query.filter(AssignmentModel.month <= through_month)
        rows = query.order_by(AssignmentModel.month, AssignmentModel.category_id).all()
        return [_assignment(r) for r in rows]

    def list_category_assignments(self, category_id: str) -> List[Assignment]:
        rows = self.db.query(AssignmentModel).filter(
            AssignmentModel.category_id == category_id
        ).order_by(AssignmentModel.month).all()
        return [_assignment(r) for r in rows]

    def save_assignment(self, assignment: Assignment) -> Assignment:
        """Upsert on (category_id, month); an existing row keeps its id"""
        row = self.db.query(AssignmentModel).filter(
            AssignmentModel.category_id == assignment.category_id,
            AssignmentModel.month == assignment.month,
        ).first()
        if row is None:
            row = AssignmentModel(
                id=assignment.id,
                category_id=assignment.category_id,
                month=assignment.month,
            )
            self.db.add(row)
        row.amount = assignment.amount
        self.db.flush()
        return _assignment(row)

    def delete_assignment(self, category_id: str, month: str) -> int:
        deleted = self.db.query(AssignmentModel).filter(
            AssignmentModel.category_id == category_id,
            AssignmentModel.month == month,
        ).delete()
        self.db.flush()
        return deleted

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def get_target(self, category_id: str) -> Optional[Target]:
        row = self.db.query(TargetModel).filter(TargetModel.category_id == category_id).first()
        return _target(row) if row else None

    def list_targets(self, budget_id: str) -> List[Target]:
        rows = (
            self.db.query(TargetModel)
            .join(CategoryModel, CategoryModel.id == TargetModel.category_id)
            .join(CategoryGroupModel, CategoryGroupModel.id == CategoryModel.group_id)
            .filter(CategoryGroupModel.budget_id == budget_id)
            .all()
        )
        return [_target(r) for r in rows]

    def save_target(self, target: Target) -> Target:
        """Upsert on category_id (one target per category)"""
        row = self.db.query(TargetModel).filter(TargetModel.category_id == target.category_id).first()
        if row is None:
            row = TargetModel(id=target.id, category_id=target.category_id, created_at=target.created_at)
            self.db.add(row)
        row.type = target.type
        row.amount = target.amount
        row.target_date = target.target_date
        row.updated_at = target.updated_at
        self.db.flush()
        return _target(row)

    def delete_target(self, category_id: str) -> int:
        deleted = self.db.query(TargetModel).filter(
            TargetModel.category_id == category_id
        ).delete()
        self.db.flush()
        return deleted

    # ------------------------------------------------------------------
    # Month summaries (read model, written by the propagator only)
    # ------------------------------------------------------------------

    def get_month_summary(self, budget_id: str, month: str) -> Optional[MonthSummary]:
        row = self.db.query(MonthSummaryModel).filter(
            MonthSummaryModel.budget_id == budget_id,
            MonthSummaryModel.month == month,
        ).first()
        return _summary(row) if row else None

    def get_latest_month_summary_before(self, budget_id: str, month: str) -> Optional[MonthSummary]:
        row = self.db.query(MonthSummaryModel).filter(
            MonthSummaryModel.budget_id == budget_id,
            MonthSummaryModel.month < month,
        ).order_by(MonthSummaryModel.month.desc()).first()
        return _summary(row) if row else None

    def list_month_summaries(self, budget_id: str, from_month: Optional[str] = None) -> List[MonthSummary]:
        query = self.db.query(MonthSummaryModel).filter(MonthSummaryModel.budget_id == budget_id)
        if from_month is not None:
            query = query.filter(MonthSummaryModel.month >= from_month)
        rows = query.order_by(MonthSummaryModel.month).all()
        return [_summary(r) for r in rows]

    def get_latest_cached_month(self, budget_id: str) -> Optional[str]:
        return self.db.query(func.max(MonthSummaryModel.month)).filter(
            MonthSummaryModel.budget_id == budget_id
        ).scalar()

    def save_month_summary(self, summary: MonthSummary) -> None:
        row = self.db.query(MonthSummaryModel).filter(
            MonthSummaryModel.budget_id == summary.budget_id,
            MonthSummaryModel.month == summary.month,
        ).first()
        if row is None:
            row = MonthSummaryModel(budget_id=summary.budget_id, month=summary.month)
            self.db.add(row)
        row.ready_to_assign = summary.ready_to_assign
        row.uncategorized_activity = summary.uncategorized_activity
        row.category_balances = summary.balances_json()
        row.updated_at = summary.updated_at
        self.db.flush()

    def delete_month_summaries(self, budget_id: str, from_month: Optional[str] = None) -> int:
        query = self.db.query(MonthSummaryModel).filter(MonthSummaryModel.budget_id == budget_id)
        if from_month is not None:
            query = query.filter(MonthSummaryModel.month >= from_month)
        deleted = query.delete()
        self.db.flush()
        return deleted
