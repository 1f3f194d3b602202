"""
Budget structure use cases: budgets, accounts, category groups, categories,
payees and targets.

Structural deletions cascade inside the store; month summaries of the budget
become stale, so the caller invalidates the carryover cache afterwards.
"""
import logging
from dataclasses import replace
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from envelope.config import get_settings
from envelope.domain.account import ACCOUNT_TYPES, Account
from envelope.domain.budget import Budget, is_valid_currency, utcnow
from envelope.domain.category import Category, CategoryGroup
from envelope.domain.payee import Payee
from envelope.domain.target import TARGET_TYPES, Target
from envelope.errors import NotFoundError, ValidationError
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.utils.validation import require_cents, require_date, require_name

logger = logging.getLogger(__name__)


class BudgetValidationError(ValidationError):
    pass


def get_budget(db: Session, budget_id: str) -> Budget:
    budget = LedgerStore(db).get_budget(budget_id)
    if budget is None:
        raise NotFoundError(f"Budget {budget_id} not found")
    return budget


def list_budgets(db: Session) -> List[Budget]:
    return LedgerStore(db).list_budgets()


def _require_currency(currency: str) -> str:
    code = (currency or "").strip().upper()
    if not is_valid_currency(code):
        raise BudgetValidationError(f"Invalid currency code: {currency!r}")
    return code


def _require_group(store: LedgerStore, group_id: str) -> CategoryGroup:
    group = store.get_group(group_id)
    if group is None:
        raise NotFoundError(f"Category group {group_id} not found")
    return group


def _require_category(store: LedgerStore, category_id: str) -> Category:
    category = store.get_category(category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def _require_account(store: LedgerStore, account_id: str) -> Account:
    account = store.get_account(account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


class CreateBudgetUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, name: str, currency: Optional[str] = None) -> Budget:
        name = require_name(name, "Budget", BudgetValidationError)
        currency = _require_currency(currency or get_settings().DEFAULT_CURRENCY)

        budget = self.store.save_budget(Budget.create(name, currency))
        self.db.commit()
        logger.info("Budget %s created: %s (%s)", budget.id, name, currency)
        return budget


class RenameBudgetUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, budget_id: str, name: str) -> Budget:
        name = require_name(name, "Budget", BudgetValidationError)
        budget = replace(get_budget(self.db, budget_id), name=name, updated_at=utcnow())
        self.store.save_budget(budget)
        self.db.commit()
        return budget


class DeleteBudgetUseCase:
    """Delete a budget with everything it owns (summaries included)"""

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, budget_id: str) -> int:
        get_budget(self.db, budget_id)
        deleted = self.store.delete_budget(budget_id)
        self.db.commit()
        return deleted


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class CreateAccountUseCase:
    """
    Use case: open an account

    Types checking/savings/credit/cash are on-budget; tracking is not.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, budget_id: str, name: str, account_type: str) -> Account:
        name = require_name(name, "Account", BudgetValidationError)
        if account_type not in ACCOUNT_TYPES:
            raise BudgetValidationError(
                f"Invalid account type: {account_type!r} (expected one of {', '.join(ACCOUNT_TYPES)})"
            )
        get_budget(self.db, budget_id)

        account = self.store.save_account(Account.create(budget_id, name, account_type))
        self.db.commit()
        logger.info("Account %s created in budget %s: %s [%s]", account.id, budget_id, name, account_type)
        return account


class UpdateAccountUseCase:
    """
    Use case: rename an account or change its type

    Returns both versions: a type change that crosses the on-budget line
    moves the account's whole history in or out of the budget.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(
        self,
        account_id: str,
        name: Optional[str] = None,
        account_type: Optional[str] = None,
    ) -> Tuple[Account, Account]:
        old = _require_account(self.store, account_id)
        changes = {}
        if name is not None:
            changes["name"] = require_name(name, "Account", BudgetValidationError)
        if account_type is not None:
            if account_type not in ACCOUNT_TYPES:
                raise BudgetValidationError(
                    f"Invalid account type: {account_type!r} (expected one of {', '.join(ACCOUNT_TYPES)})"
                )
            changes["type"] = account_type
        if not changes:
            raise BudgetValidationError("Nothing to update: give a name or a type")

        new = replace(old, **changes)
        self.store.save_account(new)
        self.db.commit()
        logger.info("Account %s updated: %s", account_id, ", ".join(sorted(changes)))
        return old, new


class DeleteAccountUseCase:
    """Deletes the account, its transactions and the far legs of its transfers"""

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, account_id: str) -> Account:
        account = _require_account(self.store, account_id)
        self.store.delete_account(account_id)
        self.db.commit()
        return account


# ---------------------------------------------------------------------------
# Category groups & categories
# ---------------------------------------------------------------------------


class CreateCategoryGroupUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, budget_id: str, name: str, sort_order: Optional[int] = None) -> CategoryGroup:
        name = require_name(name, "Category group", BudgetValidationError)
        get_budget(self.db, budget_id)
        if sort_order is None:
            sort_order = max((g.sort_order for g in self.store.list_groups(budget_id)), default=-1) + 1

        group = self.store.save_group(CategoryGroup.create(budget_id, name, sort_order))
        self.db.commit()
        return group


class RenameCategoryGroupUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, group_id: str, name: str) -> CategoryGroup:
        name = require_name(name, "Category group", BudgetValidationError)
        group = replace(_require_group(self.store, group_id), name=name)
        self.store.save_group(group)
        self.db.commit()
        return group


class DeleteCategoryGroupUseCase:
    """Deletes the group and its categories (see DeleteCategoryUseCase)"""

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, group_id: str) -> CategoryGroup:
        group = _require_group(self.store, group_id)
        self.store.delete_group(group_id)
        self.db.commit()
        logger.info("Category group %s deleted", group_id)
        return group


class CreateCategoryUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, group_id: str, name: str, sort_order: Optional[int] = None) -> Category:
        name = require_name(name, "Category", BudgetValidationError)
        _require_group(self.store, group_id)
        if sort_order is None:
            siblings = self.store.list_categories_in_group(group_id)
            sort_order = max((c.sort_order for c in siblings), default=-1) + 1

        category = self.store.save_category(Category.create(group_id, name, sort_order))
        self.db.commit()
        logger.info("Category %s created in group %s: %s", category.id, group_id, name)
        return category


class RenameCategoryUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, category_id: str, name: str) -> Category:
        name = require_name(name, "Category", BudgetValidationError)
        category = replace(_require_category(self.store, category_id), name=name, updated_at=utcnow())
        self.store.save_category(category)
        self.db.commit()
        return category


class MoveCategoryUseCase:
    """Move a category into another group of the same budget"""

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, category_id: str, group_id: str) -> Category:
        category = _require_category(self.store, category_id)
        target_group = _require_group(self.store, group_id)
        if target_group.budget_id != self.store.get_category_budget_id(category_id):
            raise BudgetValidationError("Cannot move a category to a group of another budget")

        category = replace(category, group_id=group_id, updated_at=utcnow())
        self.store.save_category(category)
        self.db.commit()
        return category


class DeleteCategoryUseCase:
    """
    Deletes the category with its assignments and target

    Its transactions become uncategorized.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, category_id: str) -> Category:
        category = _require_category(self.store, category_id)
        self.store.delete_category(category_id)
        self.db.commit()
        logger.info("Category %s deleted", category_id)
        return category


# ---------------------------------------------------------------------------
# Payees
# ---------------------------------------------------------------------------


class FindOrCreatePayeeUseCase:
    """
    Payees are deduplicated by case-insensitive name within a budget
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, budget_id: str, name: str) -> Payee:
        name = require_name(name, "Payee", BudgetValidationError)
        existing = self.store.find_payee_by_name(budget_id, name)
        if existing is not None:
            return existing

        get_budget(self.db, budget_id)
        payee = self.store.save_payee(Payee.create(budget_id, name))
        self.db.commit()
        return payee


def _require_payee(store: LedgerStore, payee_id: str) -> Payee:
    payee = store.get_payee(payee_id)
    if payee is None:
        raise NotFoundError(f"Payee {payee_id} not found")
    return payee


class RenamePayeeUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, payee_id: str, name: str) -> Payee:
        name = require_name(name, "Payee", BudgetValidationError)
        payee = _require_payee(self.store, payee_id)
        existing = self.store.find_payee_by_name(payee.budget_id, name)
        if existing is not None and existing.id != payee_id:
            raise BudgetValidationError(f'A payee with the name "{name}" already exists')

        payee = replace(payee, name=name)
        self.store.save_payee(payee)
        self.db.commit()
        return payee


class DeletePayeeUseCase:
    """Deletes the payee; its transactions keep their amounts and lose the payee"""

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, payee_id: str) -> Tuple[Payee, int]:
        """
        Returns:
            (deleted payee, number of transactions it was cleared from)
        """
        payee = _require_payee(self.store, payee_id)
        cleared = sum(
            1 for tx in self.store.list_budget_transactions(payee.budget_id) if tx.payee_id == payee_id
        )
        self.store.delete_payee(payee_id)
        self.db.commit()
        logger.info("Payee %s deleted, cleared from %d transaction(s)", payee_id, cleared)
        return payee, cleared


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class SetTargetUseCase:
    """One target per category; setting again replaces it"""

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(
        self,
        category_id: str,
        target_type: str,
        amount: int,
        target_date: Optional[date | str] = None,
    ) -> Target:
        if target_type not in TARGET_TYPES:
            raise BudgetValidationError(
                f"Invalid target type: {target_type!r} (expected one of {', '.join(TARGET_TYPES)})"
            )
        amount = require_cents(amount, "Target amount", BudgetValidationError)
        if amount <= 0:
            raise BudgetValidationError("Target amount must be positive")
        if target_date is not None:
            target_date = require_date(target_date, BudgetValidationError)
        _require_category(self.store, category_id)

        target = self.store.save_target(Target.create(category_id, target_type, amount, target_date))
        self.db.commit()
        return target


class DeleteTargetUseCase:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, category_id: str) -> bool:
        _require_category(self.store, category_id)
        removed = self.store.delete_target(category_id) > 0
        self.db.commit()
        return removed
