"""
Ready to assign - budget-wide money not yet given a job

RTA(M) = on-budget balance through the end of M
         - everything assigned through M
         - everything spent (or received) in categories through M

That is exactly the on-budget balance minus the sum of category available
balances, so money is conserved: Σ available + RTA == on-budget balance.
Uncategorized transactions move the balance without touching any category,
so they land in RTA. A negative result is valid (over-assigned).
"""
from sqlalchemy import func
from sqlalchemy.orm import Session

from envelope.domain.month import month_end
from envelope.errors import NotFoundError
from envelope.infrastructure.db.models import (
    AccountModel, AssignmentModel, BudgetModel, CategoryGroupModel, CategoryModel, TransactionModel,
)
from envelope.utils.validation import require_month


def compute_ready_to_assign(on_budget_balance: int, assigned_total: int, categorized_activity_total: int) -> int:
    return on_budget_balance - assigned_total - categorized_activity_total


def get_on_budget_balance(db: Session, budget_id: str, month: str) -> int:
    """Sum of every on-budget transaction dated up to the end of month (cleared or not)"""
    total = (
        db.query(func.coalesce(func.sum(TransactionModel.amount), 0))
        .join(AccountModel, AccountModel.id == TransactionModel.account_id)
        .filter(
            AccountModel.budget_id == budget_id,
            AccountModel.on_budget.is_(True),
            TransactionModel.date <= month_end(month),
        )
        .scalar()
    )
    return int(total or 0)


def get_tracking_balance(db: Session, budget_id: str, month: str) -> int:
    """Same as get_on_budget_balance for tracking accounts (reported separately)"""
    total = (
        db.query(func.coalesce(func.sum(TransactionModel.amount), 0))
        .join(AccountModel, AccountModel.id == TransactionModel.account_id)
        .filter(
            AccountModel.budget_id == budget_id,
            AccountModel.on_budget.is_(False),
            TransactionModel.date <= month_end(month),
        )
        .scalar()
    )
    return int(total or 0)


def get_assigned_total(db: Session, budget_id: str, month: str) -> int:
    """Assigned through month, all categories of the budget"""
    total = (
        db.query(func.coalesce(func.sum(AssignmentModel.amount), 0))
        .join(CategoryModel, CategoryModel.id == AssignmentModel.category_id)
        .join(CategoryGroupModel, CategoryGroupModel.id == CategoryModel.group_id)
        .filter(
            CategoryGroupModel.budget_id == budget_id,
            AssignmentModel.month <= month,
        )
        .scalar()
    )
    return int(total or 0)


def get_categorized_activity_total(db: Session, budget_id: str, month: str) -> int:
    """
    Category activity through month

    Only on-budget, non-transfer transactions whose category still exists.
    """
    total = (
        db.query(func.coalesce(func.sum(TransactionModel.amount), 0))
        .join(AccountModel, AccountModel.id == TransactionModel.account_id)
        .join(CategoryModel, CategoryModel.id == TransactionModel.category_id)
        .filter(
            AccountModel.budget_id == budget_id,
            AccountModel.on_budget.is_(True),
            TransactionModel.transfer_account_id.is_(None),
            TransactionModel.date <= month_end(month),
        )
        .scalar()
    )
    return int(total or 0)


def get_ready_to_assign(db: Session, budget_id: str, month: str) -> int:
    """
    Ready to assign at the close of month

    Args:
        db: SQLAlchemy session
        budget_id: Budget
        month: YYYY-MM

    Returns:
        Signed cents (negative = more assigned than available)

    Raises:
        ValidationError: malformed month
        NotFoundError: unknown budget
    """
    require_month(month)
    if db.get(BudgetModel, budget_id) is None:
        raise NotFoundError(f"Budget {budget_id} not found")

    return compute_ready_to_assign(
        get_on_budget_balance(db, budget_id, month),
        get_assigned_total(db, budget_id, month),
        get_categorized_activity_total(db, budget_id, month),
    )
