"""
SQLAlchemy ORM models (ledger tables + month summary read model)
"""
from datetime import date as date_type, datetime
from sqlalchemy import (
    BigInteger, Boolean, Date, Integer, JSON, String, Text, TIMESTAMP,
    UniqueConstraint, Index, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from envelope.infrastructure.db.session import Base


class BudgetModel(Base):
    """
    Budget - root of the ownership tree
    """
    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="USD")

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)


class AccountModel(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    budget_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # checking, savings, credit, cash, tracking
    # Denormalised from type so that balance queries can filter in SQL
    on_budget: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")


class CategoryGroupModel(Base):
    __tablename__ = "category_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    budget_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


class CategoryModel(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)


class PayeeModel(Base):
    __tablename__ = "payees"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    budget_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class TransactionModel(Base):
    """
    Ledger transactions. amount is signed cents (positive = inflow)
    """
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    category_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    payee_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cleared: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)

    # For transfer legs: the counter-account
    transfer_account_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)


class AssignmentModel(Base):
    """
    Assigned amount for (category, month) - one row per pair
    """
    __tablename__ = "assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    category_id: Mapped[str] = mapped_column(String(36), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("category_id", "month", name="uq_assignment_category_month"),
    )


class TargetModel(Base):
    __tablename__ = "targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    category_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    target_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)


# ============================================================================
# Read Models (written only by the carryover propagator)
# ============================================================================


class MonthSummaryModel(Base):
    """
    Read model: closing figures of a budget month (built by CarryoverPropagator)
    """
    __tablename__ = "month_summaries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    budget_id: Mapped[str] = mapped_column(String(36), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)

    ready_to_assign: Mapped[int] = mapped_column(BigInteger, nullable=False)
    uncategorized_activity: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    # {category_id: {"assigned": int, "activity": int, "available": int}}
    category_balances: Mapped[dict] = mapped_column(JSON, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("budget_id", "month", name="uq_month_summary_budget_month"),
        Index("ix_month_summary_budget_month", "budget_id", "month"),
    )
