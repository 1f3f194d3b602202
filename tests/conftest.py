"""
Pytest fixtures for testing
"""
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session

from envelope.config import get_settings
from envelope.domain.account import Account
from envelope.domain.budget import Budget
from envelope.domain.category import Category, CategoryGroup
from envelope.infrastructure.db.session import Database
from envelope.infrastructure.ledger.repository import LedgerStore


_JAN_1 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached per process; tests that touch env vars need a clean slate"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database():
    """In-memory SQLite store (one shared connection)"""
    database = Database("sqlite://").open()
    yield database
    database.close()


@pytest.fixture
def db_session(database) -> Session:
    """Create database session for tests"""
    session = database.session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def store(db_session) -> LedgerStore:
    return LedgerStore(db_session)


def make_category(store: LedgerStore, group_id: str, name: str, created_at: datetime = _JAN_1,
                  sort_order: int = 0) -> Category:
    return store.save_category(Category(
        id=f"cat-{name.lower()}",
        group_id=group_id,
        name=name,
        sort_order=sort_order,
        created_at=created_at,
        updated_at=created_at,
    ))


@pytest.fixture
def category_factory(db_session, store):
    """Create (and commit) a category with a chosen creation time"""
    def factory(group_id: str, name: str, created_at: datetime = _JAN_1) -> Category:
        category = make_category(store, group_id, name, created_at=created_at)
        db_session.commit()
        return category
    return factory


@pytest.fixture
def ledger(db_session, store):
    """
    Budget with three accounts and three categories, all created 2025-01-01

        checking, savings  on-budget
        brokerage          tracking
        Bills:    Rent
        Everyday: Groceries, Fun
    """
    budget = store.save_budget(Budget(id="budget-1", name="Household", currency="USD",
                                      created_at=_JAN_1, updated_at=_JAN_1))
    checking = store.save_account(Account(id="acc-checking", budget_id=budget.id, name="Checking", type="checking"))
    savings = store.save_account(Account(id="acc-savings", budget_id=budget.id, name="Savings", type="savings"))
    brokerage = store.save_account(Account(id="acc-brokerage", budget_id=budget.id, name="Brokerage",
                                           type="tracking"))
    bills = store.save_group(CategoryGroup(id="grp-bills", budget_id=budget.id, name="Bills", sort_order=0))
    everyday = store.save_group(CategoryGroup(id="grp-everyday", budget_id=budget.id, name="Everyday",
                                              sort_order=1))
    rent = make_category(store, bills.id, "Rent")
    groceries = make_category(store, everyday.id, "Groceries", sort_order=0)
    fun = make_category(store, everyday.id, "Fun", sort_order=1)
    db_session.commit()

    return SimpleNamespace(
        budget=budget,
        checking=checking,
        savings=savings,
        brokerage=brokerage,
        bills=bills,
        everyday=everyday,
        rent=rent,
        groceries=groceries,
        fun=fun,
    )
