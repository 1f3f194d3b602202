"""
Tests for the balance engine: category carryover, ready to assign, account balances
"""
from datetime import date, datetime, timezone

import pytest

from envelope.application.assignments import AssignToCategoryUseCase
from envelope.application.budgets import SetTargetUseCase
from envelope.application.balances import (
    compute_month_summary, get_account_balances, get_category_balances, get_month_data, get_target_progress,
)
from envelope.application.ready_to_assign import get_on_budget_balance
from envelope.application.transactions import AddTransactionUseCase, CreateTransferUseCase
from envelope.domain.month_summary import CategoryBalance
from envelope.errors import NotFoundError, ValidationError


@pytest.fixture
def january(db_session, ledger):
    """
    2025-01: $5,000 paycheck (uncategorized), Rent $1,500 and Groceries $600
    assigned, $450 spent on groceries
    """
    AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-01-02", 500000, cleared=True)
    AssignToCategoryUseCase(db_session).execute(ledger.rent.id, "2025-01", 150000)
    AssignToCategoryUseCase(db_session).execute(ledger.groceries.id, "2025-01", 60000)
    AddTransactionUseCase(db_session).execute(
        ledger.checking.id, "2025-01-10", -45000, category_id=ledger.groceries.id,
    )
    return ledger


def _assert_conserved(db_session, summary):
    balance = get_on_budget_balance(db_session, summary.budget_id, summary.month)
    assert summary.total_available() + summary.ready_to_assign == balance


class TestCategoryBalances:

    def test_month_figures(self, db_session, january):
        balance = get_category_balances(db_session, january.groceries.id, "2025-01")
        assert balance == CategoryBalance(assigned=60000, activity=-45000, available=15000)

    def test_positive_carryover(self, db_session, january):
        feb = get_category_balances(db_session, january.groceries.id, "2025-02")
        assert feb == CategoryBalance(assigned=0, activity=0, available=15000)

    def test_overspending_carries_forward_negative(self, db_session, january):
        AssignToCategoryUseCase(db_session).execute(january.groceries.id, "2025-02", 50000)
        AddTransactionUseCase(db_session).execute(
            january.checking.id, "2025-02-05", -70000, category_id=january.groceries.id,
        )

        assert get_category_balances(db_session, january.groceries.id, "2025-02").available == -5000
        assert get_category_balances(db_session, january.groceries.id, "2025-03").available == -5000

        AssignToCategoryUseCase(db_session).execute(january.groceries.id, "2025-03", 20000)
        assert get_category_balances(db_session, january.groceries.id, "2025-03").available == 15000

    def test_before_first_month_is_zero(self, db_session, january):
        assert get_category_balances(db_session, january.rent.id, "2024-12") == CategoryBalance()

    def test_unknown_category(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            get_category_balances(db_session, "nope", "2025-01")

    def test_bad_month(self, db_session, ledger):
        with pytest.raises(ValidationError):
            get_category_balances(db_session, ledger.rent.id, "January")


class TestReadyToAssign:

    def test_january(self, db_session, january):
        summary = compute_month_summary(db_session, january.budget.id, "2025-01")
        # 455,000 on budget - 210,000 assigned + 45,000 spent from envelopes
        assert summary.ready_to_assign == 290000
        _assert_conserved(db_session, summary)

    def test_uncategorized_spending_lands_in_ready_to_assign(self, db_session, january):
        AddTransactionUseCase(db_session).execute(january.checking.id, "2025-01-20", -10000)

        summary = compute_month_summary(db_session, january.budget.id, "2025-01")
        assert summary.ready_to_assign == 280000
        assert summary.uncategorized_activity == 490000
        assert summary.category_balances[january.groceries.id].available == 15000
        _assert_conserved(db_session, summary)

    def test_over_assigning_goes_negative(self, db_session, january):
        AssignToCategoryUseCase(db_session).execute(january.fun.id, "2025-01", 400000)
        summary = compute_month_summary(db_session, january.budget.id, "2025-01")
        assert summary.ready_to_assign == -110000
        _assert_conserved(db_session, summary)

    def test_transfer_between_on_budget_accounts_changes_nothing(self, db_session, january):
        before = compute_month_summary(db_session, january.budget.id, "2025-01")
        CreateTransferUseCase(db_session).execute(january.checking.id, january.savings.id, "2025-01-15", 100000)
        after = compute_month_summary(db_session, january.budget.id, "2025-01")
        assert after == before

    def test_transfer_to_tracking_account_leaves_the_budget(self, db_session, january):
        CreateTransferUseCase(db_session).execute(january.checking.id, january.brokerage.id, "2025-01-15", 50000)
        summary = compute_month_summary(db_session, january.budget.id, "2025-01")
        assert summary.ready_to_assign == 240000
        assert summary.uncategorized_activity == 500000
        _assert_conserved(db_session, summary)

    def test_tracking_account_transactions_never_hit_categories(self, db_session, january):
        AddTransactionUseCase(db_session).execute(
            january.brokerage.id, "2025-01-12", -5000, category_id=january.fun.id,
        )
        summary = compute_month_summary(db_session, january.budget.id, "2025-01")
        assert summary.category_balances[january.fun.id].activity == 0
        assert summary.ready_to_assign == 290000

    def test_unknown_budget(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            compute_month_summary(db_session, "nope", "2025-01")


class TestCategoryChainStart:

    def test_early_activity_starts_the_chain(self, db_session, ledger):
        AddTransactionUseCase(db_session).execute(
            ledger.checking.id, "2024-11-20", -2500, category_id=ledger.fun.id,
        )
        summary = compute_month_summary(db_session, ledger.budget.id, "2024-12")
        assert set(summary.category_balances) == {ledger.fun.id}
        assert summary.available(ledger.fun.id) == -2500

    def test_category_created_later_is_not_reported_before(self, db_session, ledger, category_factory):
        gifts = category_factory(ledger.everyday.id, "Gifts", created_at=datetime(2025, 3, 2, tzinfo=timezone.utc))

        feb = compute_month_summary(db_session, ledger.budget.id, "2025-02")
        mar = compute_month_summary(db_session, ledger.budget.id, "2025-03")
        assert gifts.id not in feb.category_balances
        assert mar.category_balances[gifts.id] == CategoryBalance()


class TestIncrementalSummary:

    def test_chain_matches_full_history(self, db_session, january):
        AssignToCategoryUseCase(db_session).execute(january.groceries.id, "2025-02", 50000)
        AddTransactionUseCase(db_session).execute(
            january.checking.id, "2025-02-05", -70000, category_id=january.groceries.id,
        )
        AddTransactionUseCase(db_session).execute(january.checking.id, "2025-03-01", 500000)

        previous = None
        for month in ("2025-01", "2025-02", "2025-03"):
            previous = compute_month_summary(db_session, january.budget.id, month, previous)
            assert previous == compute_month_summary(db_session, january.budget.id, month)
            _assert_conserved(db_session, previous)

    def test_previous_must_be_the_month_before(self, db_session, january):
        jan = compute_month_summary(db_session, january.budget.id, "2025-01")
        with pytest.raises(ValidationError):
            compute_month_summary(db_session, january.budget.id, "2025-03", previous=jan)

    def test_category_missing_from_previous_uses_its_history(self, db_session, january, category_factory):
        jan = compute_month_summary(db_session, january.budget.id, "2025-01")
        late = category_factory(january.everyday.id, "Late", created_at=datetime(2025, 2, 10, tzinfo=timezone.utc))
        AssignToCategoryUseCase(db_session).execute(late.id, "2025-02", 1000)

        feb = compute_month_summary(db_session, january.budget.id, "2025-02", previous=jan)
        assert feb.available(late.id) == 1000
        assert feb == compute_month_summary(db_session, january.budget.id, "2025-02")


class TestMonthData:

    def test_opening_and_closing(self, db_session, january):
        data = get_month_data(db_session, january.budget.id, "2025-02")
        rows = {r.category_id: r for r in data.categories}

        assert rows[january.groceries.id].opening == 15000
        assert rows[january.groceries.id].closing == 15000
        assert rows[january.rent.id].opening == 150000
        assert data.opening_ready_to_assign == 290000
        assert data.closing_ready_to_assign == 290000
        assert data.total_available == 165000
        assert data.tracking_balance == 0

    def test_tracking_balance_reported_separately(self, db_session, january):
        AddTransactionUseCase(db_session).execute(january.brokerage.id, "2025-01-03", 1000000)
        data = get_month_data(db_session, january.budget.id, "2025-01")
        assert data.tracking_balance == 1000000
        assert data.closing_ready_to_assign == 290000


class TestAccountBalances:

    def test_cleared_and_uncleared(self, db_session, january):
        balances = get_account_balances(db_session, january.checking.id)
        assert balances.cleared == 500000
        assert balances.uncleared == -45000
        assert balances.working == 455000

    def test_as_of(self, db_session, january):
        assert get_account_balances(db_session, january.checking.id, as_of=date(2025, 1, 5)).working == 500000

    def test_unknown_account(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            get_account_balances(db_session, "nope")


class TestTargetProgress:

    def test_spending_limit_counts_money_spent(self, db_session, january):
        SetTargetUseCase(db_session).execute(january.groceries.id, "spending_limit", 60000)
        progress = get_target_progress(db_session, january.groceries.id, "2025-01")
        assert (progress.current, progress.remaining, progress.percent) == (45000, 15000, 75.0)

    def test_savings_balance_counts_carryover(self, db_session, january):
        AssignToCategoryUseCase(db_session).execute(january.rent.id, "2025-02", 150000)
        SetTargetUseCase(db_session).execute(january.rent.id, "savings_balance", 200000, "2025-06-30")
        progress = get_target_progress(db_session, january.rent.id, "2025-02")
        assert (progress.current, progress.remaining, progress.percent) == (300000, -100000, 100.0)

    def test_monthly_contribution_counts_assigned(self, db_session, january):
        SetTargetUseCase(db_session).execute(january.rent.id, "monthly_contribution", 100000)
        assert get_target_progress(db_session, january.rent.id, "2025-01").percent == 100.0
        feb = get_target_progress(db_session, january.rent.id, "2025-02")
        assert (feb.current, feb.remaining, feb.percent) == (0, 100000, 0.0)

    def test_no_target(self, db_session, january):
        with pytest.raises(NotFoundError, match="No target"):
            get_target_progress(db_session, january.fun.id, "2025-01")
