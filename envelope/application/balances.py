"""
Balance Engine - per-account, per-category and per-month balances

Pure read-side functions over the ledger store:

    assigned(c, M)   assignment row for (c, M), or 0
    activity(c, M)   on-budget, non-transfer transactions of c dated in M
    available(c, M)  available(c, M-1) + assigned(c, M) + activity(c, M)

Carryover is unconditional, overspending included. A category's chain starts
at its first month: the earliest of its creation month, first assignment
month and first activity month. Months before that are not reported.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from envelope.application.ready_to_assign import compute_ready_to_assign, get_tracking_balance
from envelope.domain.category import Category
from envelope.domain.month import month_end, month_of, month_start, previous_month
from envelope.domain.month_summary import CategoryBalance, MonthSummary
from envelope.domain.target import TARGET_TYPE_SAVINGS_BALANCE, TARGET_TYPE_SPENDING_LIMIT, Target
from envelope.domain.transaction import Transaction
from envelope.errors import NotFoundError, ValidationError
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.utils.validation import require_month


@dataclass(frozen=True)
class AccountBalances:
    """cleared + uncleared == working"""
    cleared: int = 0
    uncleared: int = 0

    @property
    def working(self) -> int:
        return self.cleared + self.uncleared


@dataclass(frozen=True)
class MonthCategoryRow:
    category_id: str
    group_id: str
    name: str
    opening: int
    assigned: int
    activity: int
    closing: int


@dataclass(frozen=True)
class MonthData:
    """Budget grid for one month: opening/closing per category and RTA"""
    budget_id: str
    month: str
    opening_ready_to_assign: int
    closing_ready_to_assign: int
    uncategorized_activity: int
    tracking_balance: int
    categories: List[MonthCategoryRow] = field(default_factory=list)

    @property
    def total_assigned(self) -> int:
        return sum(r.assigned for r in self.categories)

    @property
    def total_activity(self) -> int:
        return sum(r.activity for r in self.categories)

    @property
    def total_available(self) -> int:
        return sum(r.closing for r in self.categories)


def is_category_activity(tx: Transaction, on_budget_account_ids: Set[str], category_ids: Set[str]) -> bool:
    """Transfer legs and tracking-account transactions never hit a category"""
    return (
        tx.transfer_account_id is None
        and tx.account_id in on_budget_account_ids
        and tx.category_id in category_ids
    )


def is_uncategorized_activity(tx: Transaction, on_budget_account_ids: Set[str], category_ids: Set[str]) -> bool:
    return (
        tx.transfer_account_id is None
        and tx.account_id in on_budget_account_ids
        and tx.category_id not in category_ids
    )


def _on_budget_account_ids(store: LedgerStore, budget_id: str) -> Set[str]:
    return {a.id for a in store.list_accounts(budget_id) if a.on_budget}


def _require_budget(store: LedgerStore, budget_id: str) -> None:
    if store.get_budget(budget_id) is None:
        raise NotFoundError(f"Budget {budget_id} not found")


def category_first_month(
    category: Category,
    assignment_months: Iterable[str] = (),
    activity_months: Iterable[str] = (),
) -> str:
    return min([month_of(category.created_at), *assignment_months, *activity_months])


def get_account_balances(db: Session, account_id: str, as_of: Optional[date] = None) -> AccountBalances:
    """
    Cleared / uncleared balances of one account

    Args:
        db: SQLAlchemy session
        account_id: Account
        as_of: Only transactions dated up to this day (default: all)

    Raises:
        NotFoundError: unknown account
    """
    store = LedgerStore(db)
    if store.get_account(account_id) is None:
        raise NotFoundError(f"Account {account_id} not found")

    cleared = uncleared = 0
    for tx in store.list_transactions(account_id, to_date=as_of):
        if tx.cleared:
            cleared += tx.amount
        else:
            uncleared += tx.amount
    return AccountBalances(cleared=cleared, uncleared=uncleared)


def get_category_balances(db: Session, category_id: str, month: str) -> CategoryBalance:
    """
    assigned / activity / available of one category in month

    Before the category's first month everything is zero.

    Raises:
        ValidationError: malformed month
        NotFoundError: unknown category
    """
    require_month(month)
    store = LedgerStore(db)
    category = store.get_category(category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    budget_id = store.get_category_budget_id(category_id)
    on_budget = _on_budget_account_ids(store, budget_id)

    history = _category_history(store, category, on_budget)
    if history.first_month > month:
        return CategoryBalance()
    return CategoryBalance(
        assigned=history.assigned.get(month, 0),
        activity=history.activity.get(month, 0),
        available=history.available_through(month),
    )


@dataclass
class _CategoryHistory:
    first_month: str
    assigned: Dict[str, int]
    activity: Dict[str, int]

    def available_through(self, month: str) -> int:
        return (
            sum(v for m, v in self.assigned.items() if m <= month)
            + sum(v for m, v in self.activity.items() if m <= month)
        )


def _category_history(store: LedgerStore, category: Category, on_budget: Set[str]) -> _CategoryHistory:
    assigned: Dict[str, int] = defaultdict(int)
    activity: Dict[str, int] = defaultdict(int)
    for a in store.list_category_assignments(category.id):
        assigned[a.month] += a.amount
    for tx in store.list_category_transactions(category.id):
        if is_category_activity(tx, on_budget, {category.id}):
            activity[tx.month] += tx.amount
    first = category_first_month(category, assigned.keys(), activity.keys())
    return _CategoryHistory(first_month=first, assigned=dict(assigned), activity=dict(activity))


def compute_month_summary(
    db: Session,
    budget_id: str,
    month: str,
    previous: Optional[MonthSummary] = None,
) -> MonthSummary:
    """
    Closing figures of month

    With previous (the summary of the month before), carryover starts from
    it and only this month's rows are read. Without it, opening balances come
    from the whole history. Both paths give the same result for the same
    store contents.

    Raises:
        ValidationError: malformed month, or previous is not the prior month
        NotFoundError: unknown budget
    """
    require_month(month)
    store = LedgerStore(db)
    _require_budget(store, budget_id)

    if previous is None:
        return _summary_from_history(store, budget_id, month)

    if previous.budget_id != budget_id or previous.month != previous_month(month):
        raise ValidationError(
            f"Carryover for {month} needs the {previous_month(month)} summary of budget {budget_id}, "
            f"got {previous.month} of budget {previous.budget_id}"
        )
    return _summary_from_previous(store, budget_id, month, previous)


def _summary_from_history(store: LedgerStore, budget_id: str, month: str) -> MonthSummary:
    categories = store.list_categories(budget_id)
    category_ids = {c.id for c in categories}
    on_budget = _on_budget_account_ids(store, budget_id)

    first = {c.id: month_of(c.created_at) for c in categories}
    assigned_total: Dict[str, int] = defaultdict(int)
    assigned_month: Dict[str, int] = defaultdict(int)
    activity_total: Dict[str, int] = defaultdict(int)
    activity_month: Dict[str, int] = defaultdict(int)
    uncategorized = 0
    balance = 0

    for a in store.list_assignments(budget_id, through_month=month):
        if a.category_id not in category_ids:
            continue
        first[a.category_id] = min(first[a.category_id], a.month)
        assigned_total[a.category_id] += a.amount
        if a.month == month:
            assigned_month[a.category_id] += a.amount

    for tx in store.list_budget_transactions(budget_id, to_date=month_end(month), on_budget_only=True):
        balance += tx.amount
        in_month = tx.month == month
        if is_category_activity(tx, on_budget, category_ids):
            first[tx.category_id] = min(first[tx.category_id], tx.month)
            activity_total[tx.category_id] += tx.amount
            if in_month:
                activity_month[tx.category_id] += tx.amount
        elif in_month and is_uncategorized_activity(tx, on_budget, category_ids):
            uncategorized += tx.amount

    balances = {
        c.id: CategoryBalance(
            assigned=assigned_month[c.id],
            activity=activity_month[c.id],
            available=assigned_total[c.id] + activity_total[c.id],
        )
        for c in categories
        if first[c.id] <= month
    }
    ready = compute_ready_to_assign(balance, sum(assigned_total.values()), sum(activity_total.values()))
    return MonthSummary(
        budget_id=budget_id,
        month=month,
        ready_to_assign=ready,
        category_balances=balances,
        uncategorized_activity=uncategorized,
    )


def _summary_from_previous(
    store: LedgerStore,
    budget_id: str,
    month: str,
    previous: MonthSummary,
) -> MonthSummary:
    categories = store.list_categories(budget_id)
    category_ids = {c.id for c in categories}
    on_budget = _on_budget_account_ids(store, budget_id)

    assigned_month: Dict[str, int] = defaultdict(int)
    activity_month: Dict[str, int] = defaultdict(int)
    uncategorized = 0
    net = 0

    for a in store.list_assignments(budget_id, month=month):
        if a.category_id in category_ids:
            assigned_month[a.category_id] += a.amount

    txs = store.list_budget_transactions(
        budget_id, from_date=month_start(month), to_date=month_end(month), on_budget_only=True,
    )
    for tx in txs:
        net += tx.amount
        if is_category_activity(tx, on_budget, category_ids):
            activity_month[tx.category_id] += tx.amount
        elif is_uncategorized_activity(tx, on_budget, category_ids):
            uncategorized += tx.amount

    balances: Dict[str, CategoryBalance] = {}
    for category in categories:
        cid = category.id
        if cid in previous.category_balances:
            opening = previous.available(cid)
        else:
            history = _category_history(store, category, on_budget)
            if history.first_month > month:
                continue
            opening = history.available_through(previous.month)
        balances[cid] = CategoryBalance(
            assigned=assigned_month[cid],
            activity=activity_month[cid],
            available=opening + assigned_month[cid] + activity_month[cid],
        )

    ready = compute_ready_to_assign(
        previous.ready_to_assign + net,
        sum(assigned_month.values()),
        sum(activity_month.values()),
    )
    return MonthSummary(
        budget_id=budget_id,
        month=month,
        ready_to_assign=ready,
        category_balances=balances,
        uncategorized_activity=uncategorized,
    )


def get_month_data(
    db: Session,
    budget_id: str,
    month: str,
    previous: Optional[MonthSummary] = None,
) -> MonthData:
    """
    Budget grid of month: per category opening, assigned, activity, closing

    Args:
        db: SQLAlchemy session
        budget_id: Budget
        month: YYYY-MM
        previous: Summary of the month before (optional, saves a history scan)
    """
    closing = compute_month_summary(db, budget_id, month, previous)
    opening = previous or compute_month_summary(db, budget_id, previous_month(month))

    store = LedgerStore(db)
    rows = [
        MonthCategoryRow(
            category_id=c.id,
            group_id=c.group_id,
            name=c.name,
            opening=opening.available(c.id),
            assigned=closing.category_balances[c.id].assigned,
            activity=closing.category_balances[c.id].activity,
            closing=closing.category_balances[c.id].available,
        )
        for c in store.list_categories(budget_id)
        if c.id in closing.category_balances
    ]
    return MonthData(
        budget_id=budget_id,
        month=month,
        opening_ready_to_assign=opening.ready_to_assign,
        closing_ready_to_assign=closing.ready_to_assign,
        uncategorized_activity=closing.uncategorized_activity,
        tracking_balance=get_tracking_balance(db, budget_id, month),
        categories=rows,
    )


@dataclass(frozen=True)
class TargetProgress:
    """
    How far a category is towards its target in a month

    current is measured per target type:
        spending_limit        money spent this month, |activity|
        savings_balance       available including carryover
        monthly_contribution  assigned this month
    """
    target: Target
    month: str
    current: int
    remaining: int
    percent: float


def get_target_progress(db: Session, category_id: str, month: str) -> TargetProgress:
    """
    Raises:
        NotFoundError: unknown category, or no target set
        ValidationError: malformed month
    """
    balances = get_category_balances(db, category_id, month)
    target = LedgerStore(db).get_target(category_id)
    if target is None:
        raise NotFoundError(f"No target set for category {category_id}")

    if target.type == TARGET_TYPE_SPENDING_LIMIT:
        current = abs(balances.activity)
    elif target.type == TARGET_TYPE_SAVINGS_BALANCE:
        current = balances.available
    else:
        current = balances.assigned
    percent = min(100.0, max(0.0, current * 100 / target.amount))
    return TargetProgress(
        target=target,
        month=month,
        current=current,
        remaining=target.amount - current,
        percent=round(percent, 1),
    )
