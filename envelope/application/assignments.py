"""
Assignment use cases - giving money a job
"""
import logging
from typing import Dict, List, Tuple

from sqlalchemy.orm import Session

from envelope.domain.assignment import Assignment
from envelope.errors import NotFoundError, ValidationError
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.utils.validation import require_cents, require_month

logger = logging.getLogger(__name__)


class AssignmentValidationError(ValidationError):
    pass


def _require_category_budget(store: LedgerStore, category_id: str) -> str:
    budget_id = store.get_category_budget_id(category_id)
    if budget_id is None:
        raise NotFoundError(f"Category {category_id} not found")
    return budget_id


class AssignToCategoryUseCase:
    """
    Use case: set the assigned amount of (category, month)

    Replace semantics: assigning 5000 then 8000 leaves 8000, not 13000.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, category_id: str, month: str, amount: int) -> Assignment:
        require_month(month, error_cls=AssignmentValidationError)
        amount = require_cents(amount, error_cls=AssignmentValidationError)
        _require_category_budget(self.store, category_id)

        assignment = self.store.save_assignment(Assignment.create(category_id, month, amount))
        self.db.commit()

        logger.info("Assigned %d to category %s for %s", amount, category_id, month)
        return assignment


class MoveBetweenCategoriesUseCase:
    """
    Use case: move assigned money from one category to another in a month

    Source assignment decreases by amount, destination increases by amount.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(
        self,
        from_category_id: str,
        to_category_id: str,
        month: str,
        amount: int,
    ) -> Tuple[Assignment, Assignment]:
        """
        Returns:
            (source assignment, destination assignment) after the move

        Raises:
            AssignmentValidationError: bad month/amount, same category, cross-budget
            NotFoundError: category missing
        """
        require_month(month, error_cls=AssignmentValidationError)
        amount = require_cents(amount, error_cls=AssignmentValidationError)
        if amount <= 0:
            raise AssignmentValidationError("Amount to move must be positive")
        if from_category_id == to_category_id:
            raise AssignmentValidationError("Cannot move money to the same category")
        if _require_category_budget(self.store, from_category_id) != _require_category_budget(
            self.store, to_category_id
        ):
            raise AssignmentValidationError("Categories belong to different budgets")

        source = self.store.get_assignment(from_category_id, month)
        destination = self.store.get_assignment(to_category_id, month)
        from_amount = (source.amount if source else 0) - amount
        to_amount = (destination.amount if destination else 0) + amount

        source = self.store.save_assignment(Assignment.create(from_category_id, month, from_amount))
        destination = self.store.save_assignment(Assignment.create(to_category_id, month, to_amount))
        self.db.commit()

        logger.info("Moved %d from %s to %s for %s", amount, from_category_id, to_category_id, month)
        return source, destination


class ClearAssignmentUseCase:
    """Use case: remove the assignment row of (category, month)"""

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, category_id: str, month: str) -> bool:
        """Returns True when a row was removed"""
        require_month(month, error_cls=AssignmentValidationError)
        _require_category_budget(self.store, category_id)

        removed = self.store.delete_assignment(category_id, month) > 0
        self.db.commit()
        return removed


def get_last_assignments_before_month(db: Session, budget_id: str, month: str) -> Dict[str, Assignment]:
    """
    Most recent assignment strictly before month, per category

    Used to pre-fill a new month with last month's plan.
    """
    require_month(month, error_cls=AssignmentValidationError)
    latest: Dict[str, Assignment] = {}
    for assignment in LedgerStore(db).list_assignments(budget_id):
        if assignment.month >= month:
            continue
        existing = latest.get(assignment.category_id)
        if existing is None or assignment.month > existing.month:
            latest[assignment.category_id] = assignment
    return latest


def list_month_assignments(db: Session, budget_id: str, month: str) -> List[Assignment]:
    """Non-zero assignments of a budget in month"""
    require_month(month, error_cls=AssignmentValidationError)
    return [a for a in LedgerStore(db).list_assignments(budget_id, month=month) if a.amount != 0]
