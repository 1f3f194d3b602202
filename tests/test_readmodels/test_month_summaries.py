"""
Tests for CarryoverPropagator (month summary read model)
"""
import pytest

from envelope.application.assignments import AssignToCategoryUseCase
from envelope.application.ready_to_assign import get_on_budget_balance
from envelope.application.transactions import AddTransactionUseCase
from envelope.errors import NotFoundError, ValidationError
from envelope.readmodels.month_summaries import CarryoverPropagator


@pytest.fixture
def propagator(db_session):
    return CarryoverPropagator(db_session)


@pytest.fixture
def activity(db_session, ledger):
    """Income in January and March, groceries overspent in February"""
    add = AddTransactionUseCase(db_session).execute
    assign = AssignToCategoryUseCase(db_session).execute
    add(ledger.checking.id, "2025-01-01", 400000)
    assign(ledger.rent.id, "2025-01", 150000)
    assign(ledger.groceries.id, "2025-01", 50000)
    add(ledger.checking.id, "2025-01-15", -30000, category_id=ledger.groceries.id)
    add(ledger.checking.id, "2025-02-15", -45000, category_id=ledger.groceries.id)
    add(ledger.checking.id, "2025-02-20", -150000, category_id=ledger.rent.id)
    add(ledger.checking.id, "2025-03-01", 400000)
    return ledger


class TestRecalculateFrom:

    def test_range_ends_at_current_month_when_nothing_is_cached(self, propagator, activity):
        summaries = propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03")
        assert [s.month for s in summaries] == ["2025-01", "2025-02", "2025-03"]
        assert propagator.cached_months(activity.budget.id) == ["2025-01", "2025-02", "2025-03"]

    def test_carryover_values(self, propagator, activity):
        jan, feb, mar = propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03")

        assert jan.available(activity.groceries.id) == 20000
        assert feb.available(activity.groceries.id) == -25000
        assert mar.available(activity.groceries.id) == -25000
        assert feb.available(activity.rent.id) == 0
        assert jan.ready_to_assign == 200000
        assert feb.ready_to_assign == 200000
        assert mar.ready_to_assign == 600000

    def test_money_is_conserved_every_month(self, db_session, propagator, activity):
        for summary in propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03"):
            balance = get_on_budget_balance(db_session, activity.budget.id, summary.month)
            assert summary.total_available() + summary.ready_to_assign == balance

    def test_idempotent(self, propagator, activity):
        first = propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03")
        second = propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03")
        assert first == second
        assert propagator.cached_months(activity.budget.id) == ["2025-01", "2025-02", "2025-03"]

    def test_range_ends_at_latest_cached_month(self, propagator, activity):
        propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-05")
        summaries = propagator.recalculate_from(activity.budget.id, "2025-02", current_month="2025-03")
        assert [s.month for s in summaries] == ["2025-02", "2025-03", "2025-04", "2025-05"]

    def test_start_after_current_month(self, propagator, activity):
        summaries = propagator.recalculate_from(activity.budget.id, "2025-06", current_month="2025-03")
        assert [s.month for s in summaries] == ["2025-06"]

    def test_earlier_months_are_never_touched(self, db_session, store, propagator, activity):
        propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03")
        jan_before = store.get_month_summary(activity.budget.id, "2025-01")

        # Edit January behind the propagator's back, then recompute from February only
        AddTransactionUseCase(db_session).execute(activity.checking.id, "2025-01-20", 99900)
        propagator.recalculate_from(activity.budget.id, "2025-02", current_month="2025-03")

        assert store.get_month_summary(activity.budget.id, "2025-01") == jan_before
        # February chains from the cached January summary
        assert store.get_month_summary(activity.budget.id, "2025-02").ready_to_assign == 200000

    def test_failure_leaves_cache_unchanged(self, db_session, store, propagator, activity, monkeypatch):
        propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03")
        before = store.list_month_summaries(activity.budget.id)

        AddTransactionUseCase(db_session).execute(activity.checking.id, "2025-02-10", -1000,
                                                  category_id=activity.fun.id)
        original = store.save_month_summary
        calls = []

        def failing_save(summary):
            calls.append(summary.month)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            original(summary)

        monkeypatch.setattr(propagator.store, "save_month_summary", failing_save)
        with pytest.raises(RuntimeError, match="disk full"):
            propagator.recalculate_from(activity.budget.id, "2025-02", current_month="2025-03")

        assert calls == ["2025-02", "2025-03"]
        assert store.list_month_summaries(activity.budget.id) == before

    def test_validation(self, propagator, activity):
        with pytest.raises(ValidationError):
            propagator.recalculate_from(activity.budget.id, "2025/01")
        with pytest.raises(NotFoundError):
            propagator.recalculate_from("missing", "2025-01")


class TestGetSummary:

    def test_miss_is_computed_and_cached(self, propagator, activity):
        summary = propagator.get_summary(activity.budget.id, "2025-02")
        assert summary.available(activity.groceries.id) == -25000
        assert propagator.cached_months(activity.budget.id) == ["2025-02"]

    def test_fills_forward_from_nearest_cached_month(self, propagator, activity):
        propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-01")
        summary = propagator.get_summary(activity.budget.id, "2025-04")

        assert summary.ready_to_assign == 600000
        assert propagator.cached_months(activity.budget.id) == ["2025-01", "2025-02", "2025-03", "2025-04"]

    def test_hit_returns_cached_row(self, db_session, propagator, activity):
        cached = propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-01")[0]
        # A stale cache entry is served as is until someone recalculates
        AddTransactionUseCase(db_session).execute(activity.checking.id, "2025-01-31", 100)
        assert propagator.get_summary(activity.budget.id, "2025-01") == cached


def test_invalidate(propagator, activity):
    propagator.recalculate_from(activity.budget.id, "2025-01", current_month="2025-03")
    assert propagator.invalidate(activity.budget.id) == 3
    assert propagator.cached_months(activity.budget.id) == []
    assert propagator.invalidate(activity.budget.id) == 0
