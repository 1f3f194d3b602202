"""
Tests for ready-to-assign queries
"""
import pytest

from envelope.application.assignments import AssignToCategoryUseCase
from envelope.application.ready_to_assign import (
    compute_ready_to_assign, get_assigned_total, get_categorized_activity_total,
    get_on_budget_balance, get_ready_to_assign, get_tracking_balance,
)
from envelope.application.transactions import AddTransactionUseCase, CreateTransferUseCase
from envelope.errors import NotFoundError, ValidationError


def test_compute_ready_to_assign():
    assert compute_ready_to_assign(100000, 80000, -20000) == 40000
    assert compute_ready_to_assign(0, 5000, 0) == -5000


def test_empty_budget_has_nothing_to_assign(db_session, ledger):
    assert get_ready_to_assign(db_session, ledger.budget.id, "2025-01") == 0


def test_cumulative_through_month(db_session, ledger):
    add = AddTransactionUseCase(db_session).execute
    assign = AssignToCategoryUseCase(db_session).execute

    add(ledger.checking.id, "2025-01-01", 300000)
    assign(ledger.rent.id, "2025-01", 100000)
    add(ledger.checking.id, "2025-02-01", 300000)
    assign(ledger.rent.id, "2025-02", 100000)
    add(ledger.checking.id, "2025-02-03", -100000, category_id=ledger.rent.id)

    assert get_ready_to_assign(db_session, ledger.budget.id, "2025-01") == 200000
    assert get_ready_to_assign(db_session, ledger.budget.id, "2025-02") == 400000
    # Future assignments don't reduce an earlier month
    assign(ledger.fun.id, "2025-03", 50000)
    assert get_ready_to_assign(db_session, ledger.budget.id, "2025-02") == 400000
    assert get_ready_to_assign(db_session, ledger.budget.id, "2025-03") == 350000


def test_component_queries(db_session, ledger):
    add = AddTransactionUseCase(db_session).execute
    add(ledger.checking.id, "2025-01-01", 100000)
    add(ledger.savings.id, "2025-01-02", -2000, category_id=ledger.fun.id)
    add(ledger.brokerage.id, "2025-01-02", 700000)
    CreateTransferUseCase(db_session).execute(ledger.checking.id, ledger.brokerage.id, "2025-01-05", 30000)
    AssignToCategoryUseCase(db_session).execute(ledger.fun.id, "2025-01", 5000)

    assert get_on_budget_balance(db_session, ledger.budget.id, "2025-01") == 68000
    assert get_tracking_balance(db_session, ledger.budget.id, "2025-01") == 730000
    assert get_assigned_total(db_session, ledger.budget.id, "2025-01") == 5000
    assert get_categorized_activity_total(db_session, ledger.budget.id, "2025-01") == -2000
    assert get_ready_to_assign(db_session, ledger.budget.id, "2025-01") == 65000


def test_unknown_budget(db_session, ledger):
    with pytest.raises(NotFoundError):
        get_ready_to_assign(db_session, "missing", "2025-01")


def test_bad_month(db_session, ledger):
    with pytest.raises(ValidationError):
        get_ready_to_assign(db_session, ledger.budget.id, "2025-1")
