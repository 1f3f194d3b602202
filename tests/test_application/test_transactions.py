"""
Tests for transaction use cases (single transactions and transfers)
"""
from datetime import date, datetime, timezone

import pytest

from envelope.application.transactions import (
    AddTransactionUseCase, CreateTransferUseCase, DeleteTransactionUseCase, SetTransactionClearedUseCase,
    TransactionValidationError, UpdateTransactionUseCase, list_transactions,
)
from envelope.domain.account import Account
from envelope.domain.budget import Budget
from envelope.domain.category import Category, CategoryGroup
from envelope.domain.transaction import Transaction
from envelope.errors import LedgerIntegrityError, NotFoundError


@pytest.fixture
def other_budget(db_session, store):
    """Second budget with one account and one category"""
    budget = store.save_budget(Budget.create("Other"))
    account = store.save_account(Account(id="acc-other", budget_id=budget.id, name="Other", type="checking"))
    group = store.save_group(CategoryGroup(id="grp-other", budget_id=budget.id, name="Misc"))
    category = store.save_category(Category(id="cat-other", group_id=group.id, name="Misc"))
    db_session.commit()
    return budget, account, category


class TestAddTransaction:

    def test_add(self, db_session, store, ledger):
        tx = AddTransactionUseCase(db_session).execute(
            account_id=ledger.checking.id,
            date="2025-01-15",
            amount=-4599,
            category_id=ledger.groceries.id,
            memo="weekly shop",
        )
        stored = store.get_transaction(tx.id)
        assert stored.date == date(2025, 1, 15)
        assert stored.amount == -4599
        assert stored.category_id == ledger.groceries.id
        assert stored.memo == "weekly shop"
        assert stored.cleared is False

    def test_zero_amount_rejected(self, db_session, ledger):
        with pytest.raises(TransactionValidationError, match="zero"):
            AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-01-15", 0)

    def test_float_amount_rejected(self, db_session, ledger):
        with pytest.raises(TransactionValidationError):
            AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-01-15", 12.5)

    def test_bad_date_rejected(self, db_session, ledger):
        with pytest.raises(TransactionValidationError):
            AddTransactionUseCase(db_session).execute(ledger.checking.id, "15/01/2025", 100)

    def test_unknown_account(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            AddTransactionUseCase(db_session).execute("missing", "2025-01-15", 100)

    def test_unknown_category(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-01-15", 100, category_id="missing")

    def test_category_of_another_budget_rejected(self, db_session, store, ledger, other_budget):
        _, _, foreign_category = other_budget
        with pytest.raises(TransactionValidationError):
            AddTransactionUseCase(db_session).execute(
                ledger.checking.id, "2025-01-15", -100, category_id=foreign_category.id,
            )
        assert store.list_transactions(ledger.checking.id) == []


class TestTransfers:

    def test_creates_two_opposite_legs(self, db_session, store, ledger):
        outflow, inflow = CreateTransferUseCase(db_session).execute(
            ledger.checking.id, ledger.savings.id, "2025-02-01", 25000, memo="rainy day",
        )
        assert outflow.account_id == ledger.checking.id
        assert outflow.amount == -25000
        assert outflow.transfer_account_id == ledger.savings.id
        assert inflow.account_id == ledger.savings.id
        assert inflow.amount == 25000
        assert inflow.transfer_account_id == ledger.checking.id
        assert outflow.category_id is None and inflow.category_id is None
        assert outflow.date == inflow.date == date(2025, 2, 1)
        assert store.find_transfer_pair(outflow) == inflow

    def test_sign_of_amount_is_ignored(self, db_session, ledger):
        outflow, inflow = CreateTransferUseCase(db_session).execute(
            ledger.checking.id, ledger.savings.id, "2025-02-01", -25000,
        )
        assert (outflow.amount, inflow.amount) == (-25000, 25000)

    def test_same_account_rejected(self, db_session, ledger):
        with pytest.raises(TransactionValidationError):
            CreateTransferUseCase(db_session).execute(ledger.checking.id, ledger.checking.id, "2025-02-01", 100)

    def test_cross_budget_rejected(self, db_session, store, ledger, other_budget):
        _, foreign_account, _ = other_budget
        with pytest.raises(TransactionValidationError):
            CreateTransferUseCase(db_session).execute(ledger.checking.id, foreign_account.id, "2025-02-01", 100)
        assert store.list_transactions(ledger.checking.id) == []
        assert store.list_transactions(foreign_account.id) == []

    def test_delete_removes_both_legs(self, db_session, store, ledger):
        outflow, inflow = CreateTransferUseCase(db_session).execute(
            ledger.checking.id, ledger.savings.id, "2025-02-01", 25000,
        )
        deleted = DeleteTransactionUseCase(db_session).execute(inflow.id)

        assert {t.id for t in deleted} == {outflow.id, inflow.id}
        assert store.get_transaction(outflow.id) is None
        assert store.get_transaction(inflow.id) is None

    def test_dangling_leg_is_an_integrity_error(self, db_session, store, ledger):
        orphan = Transaction.create(
            account_id=ledger.checking.id, date=date(2025, 2, 1), amount=-100,
            transfer_account_id=ledger.savings.id,
        )
        store.save_transaction(orphan)
        db_session.commit()

        with pytest.raises(LedgerIntegrityError):
            DeleteTransactionUseCase(db_session).execute(orphan.id)
        assert store.get_transaction(orphan.id) is not None

    def test_legs_share_one_timestamp(self, db_session, ledger):
        outflow, inflow = CreateTransferUseCase(db_session).execute(
            ledger.checking.id, ledger.savings.id, "2025-02-01", 5000,
        )
        assert outflow.created_at == inflow.created_at

    def test_identical_transfers_keep_their_own_pairs(self, db_session, store, ledger):
        legs = []
        for label, hour in (("morning", 9), ("evening", 17)):
            created = datetime(2025, 2, 1, hour, tzinfo=timezone.utc)
            legs.append(Transaction(
                id=f"{label}-out", account_id=ledger.checking.id, date=date(2025, 2, 1), amount=-5000,
                transfer_account_id=ledger.savings.id, created_at=created, updated_at=created,
            ))
            legs.append(Transaction(
                id=f"{label}-in", account_id=ledger.savings.id, date=date(2025, 2, 1), amount=5000,
                transfer_account_id=ledger.checking.id, created_at=created, updated_at=created,
            ))
        store.save_transactions(legs)
        db_session.commit()

        deleted = DeleteTransactionUseCase(db_session).execute("evening-out")

        assert {t.id for t in deleted} == {"evening-out", "evening-in"}
        assert store.get_transaction("morning-in") is not None
        assert store.get_transaction("morning-out") is not None


class TestUpdateTransaction:

    def test_returns_old_and_new(self, db_session, store, ledger):
        tx = AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-03-10", -1000)
        old, new = UpdateTransactionUseCase(db_session).execute(
            tx.id, date="2025-01-05", amount=-1500, category_id=ledger.fun.id,
        )
        assert old.month == "2025-03"
        assert new.month == "2025-01"
        assert store.get_transaction(tx.id).amount == -1500
        assert store.get_transaction(tx.id).category_id == ledger.fun.id

    def test_unknown_field_rejected(self, db_session, ledger):
        tx = AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-03-10", -1000)
        with pytest.raises(TransactionValidationError, match="transfer_account_id"):
            UpdateTransactionUseCase(db_session).execute(tx.id, transfer_account_id=ledger.savings.id)

    def test_unknown_transaction(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            UpdateTransactionUseCase(db_session).execute("missing", amount=5)

    def test_transfer_edit_is_mirrored_on_pair(self, db_session, store, ledger):
        outflow, inflow = CreateTransferUseCase(db_session).execute(
            ledger.checking.id, ledger.savings.id, "2025-02-01", 25000,
        )
        UpdateTransactionUseCase(db_session).execute(
            outflow.id, amount=-30000, date="2025-02-03", memo="more", cleared=True,
        )

        pair = store.get_transaction(inflow.id)
        assert pair.amount == 30000
        assert pair.date == date(2025, 2, 3)
        assert pair.memo == "more"
        assert pair.cleared is True

    def test_transfer_cannot_take_a_category(self, db_session, ledger):
        outflow, _ = CreateTransferUseCase(db_session).execute(
            ledger.checking.id, ledger.savings.id, "2025-02-01", 25000,
        )
        with pytest.raises(TransactionValidationError):
            UpdateTransactionUseCase(db_session).execute(outflow.id, category_id=ledger.fun.id)

    def test_set_cleared(self, db_session, store, ledger):
        tx = AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-03-10", -1000)
        SetTransactionClearedUseCase(db_session).execute(tx.id, True)
        assert store.get_transaction(tx.id).cleared is True

    @pytest.mark.parametrize("changes", [{"cleared": None}, {"cleared": 1}, {"amount": None}, {"date": None},
                                         {"account_id": None}])
    def test_null_or_mistyped_values_rejected(self, db_session, store, ledger, changes):
        tx = AddTransactionUseCase(db_session).execute(ledger.checking.id, "2025-03-10", -1000, cleared=True)
        with pytest.raises(TransactionValidationError):
            UpdateTransactionUseCase(db_session).execute(tx.id, **changes)
        stored = store.get_transaction(tx.id)
        assert (stored.cleared, stored.amount, stored.date) == (True, -1000, date(2025, 3, 10))


class TestListTransactions:

    def test_filters(self, db_session, ledger):
        add = AddTransactionUseCase(db_session).execute
        jan = add(ledger.checking.id, "2025-01-31", -100)
        feb = add(ledger.checking.id, "2025-02-01", -200)
        other = add(ledger.savings.id, "2025-02-10", 300)

        assert [t.id for t in list_transactions(db_session, ledger.budget.id)] == [jan.id, feb.id, other.id]
        assert [t.id for t in list_transactions(db_session, ledger.budget.id, month="2025-02")] == [feb.id, other.id]
        assert [t.id for t in list_transactions(
            db_session, ledger.budget.id, account_id=ledger.checking.id, month="2025-02",
        )] == [feb.id]

    def test_account_of_another_budget(self, db_session, ledger, other_budget):
        _, foreign_account, _ = other_budget
        with pytest.raises(NotFoundError):
            list_transactions(db_session, ledger.budget.id, account_id=foreign_account.id)
