"""
Budget API endpoints: budgets, structure, month view, assignments, targets, payees, export/import
"""
from datetime import date as date_type
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Response
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from envelope.api.deps import get_db, get_workspace
from envelope.application.assignments import list_month_assignments
from envelope.application.budgets import (
    CreateBudgetUseCase, DeleteBudgetUseCase, get_budget, list_budgets,
)
from envelope.application.exchange import ImportBudgetUseCase, export_budget
from envelope.application.workspace import MonthSnapshot, Workspace
from envelope.domain.month import is_valid_month
from envelope.domain.target import Target
from envelope.errors import NotFoundError, ValidationError
from envelope.infrastructure.ledger.repository import LedgerStore


router = APIRouter(prefix="/api/v1/budgets", tags=["budgets"])


def _month_field(value: str) -> str:
    if not is_valid_month(value):
        raise ValueError("month must be YYYY-MM")
    return value


# === Request/Response models ===

class CreateBudgetRequest(BaseModel):
    name: str
    currency: Optional[str] = None


class BudgetResponse(BaseModel):
    id: str
    name: str
    currency: str


class CreateAccountRequest(BaseModel):
    name: str
    type: str  # checking, savings, credit, cash, tracking


class AccountResponse(BaseModel):
    id: str
    budget_id: str
    name: str
    type: str
    on_budget: bool


class CreateGroupRequest(BaseModel):
    name: str


class GroupResponse(BaseModel):
    id: str
    budget_id: str
    name: str
    sort_order: int


class CreateCategoryRequest(BaseModel):
    group_id: str
    name: str


class CategoryResponse(BaseModel):
    id: str
    group_id: str
    name: str
    sort_order: int


class UpdateAccountRequest(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None


class RenameRequest(BaseModel):
    name: str


class UpdateCategoryRequest(BaseModel):
    """Rename and/or move to another group"""
    name: Optional[str] = None
    group_id: Optional[str] = None


class SetTargetRequest(BaseModel):
    type: str  # spending_limit, savings_balance, monthly_contribution
    amount: int  # cents
    target_date: Optional[date_type] = None


class TargetResponse(BaseModel):
    id: str
    category_id: str
    type: str
    amount: int
    target_date: Optional[date_type] = None


class TargetProgressResponse(BaseModel):
    target: TargetResponse
    month: str
    current: int
    remaining: int
    percent: float


class PayeeResponse(BaseModel):
    id: str
    budget_id: str
    name: str


class AssignRequest(BaseModel):
    category_id: str
    month: str
    amount: int  # cents

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        return _month_field(v)


class MoveRequest(BaseModel):
    from_category_id: str
    to_category_id: str
    month: str
    amount: int  # cents

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        return _month_field(v)


class AssignmentResponse(BaseModel):
    id: str
    category_id: str
    month: str
    amount: int


class CategoryMonthResponse(BaseModel):
    category_id: str
    group_id: str
    name: str
    opening: int
    assigned: int
    activity: int
    available: int


class AccountBalanceResponse(BaseModel):
    id: str
    name: str
    type: str
    on_budget: bool
    cleared: int
    uncleared: int
    working: int


class MonthResponse(BaseModel):
    budget_id: str
    month: str
    ready_to_assign: int
    opening_ready_to_assign: int
    uncategorized_activity: int
    tracking_balance: int
    categories: List[CategoryMonthResponse]
    accounts: List[AccountBalanceResponse]


def month_response(snapshot: MonthSnapshot) -> MonthResponse:
    return MonthResponse(
        budget_id=snapshot.budget.id,
        month=snapshot.month,
        ready_to_assign=snapshot.ready_to_assign,
        opening_ready_to_assign=snapshot.opening_ready_to_assign,
        uncategorized_activity=snapshot.uncategorized_activity,
        tracking_balance=snapshot.tracking_balance,
        categories=[
            CategoryMonthResponse(
                category_id=r.category_id,
                group_id=r.group_id,
                name=r.name,
                opening=r.opening,
                assigned=r.assigned,
                activity=r.activity,
                available=r.closing,
            )
            for r in snapshot.categories
        ],
        accounts=[
            AccountBalanceResponse(
                id=a.account.id,
                name=a.account.name,
                type=a.account.type,
                on_budget=a.account.on_budget,
                cleared=a.balances.cleared,
                uncleared=a.balances.uncleared,
                working=a.balances.working,
            )
            for a in snapshot.accounts
        ],
    )


# === Budgets ===

@router.post("", response_model=BudgetResponse, status_code=201)
def create_budget(req: CreateBudgetRequest, db: Session = Depends(get_db)):
    """Create a budget"""
    budget = CreateBudgetUseCase(db).execute(req.name, req.currency)
    return BudgetResponse(id=budget.id, name=budget.name, currency=budget.currency)


@router.get("", response_model=list[BudgetResponse])
def get_budgets(db: Session = Depends(get_db)):
    return [BudgetResponse(id=b.id, name=b.name, currency=b.currency) for b in list_budgets(db)]


@router.post("/import", response_model=BudgetResponse, status_code=201)
def import_budget(document: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """Import an export document as a new budget"""
    budget = ImportBudgetUseCase(db).execute(document)
    return BudgetResponse(id=budget.id, name=budget.name, currency=budget.currency)


@router.get("/{budget_id}", response_model=BudgetResponse)
def get_one_budget(budget_id: str, db: Session = Depends(get_db)):
    budget = get_budget(db, budget_id)
    return BudgetResponse(id=budget.id, name=budget.name, currency=budget.currency)


@router.delete("/{budget_id}", status_code=204)
def delete_budget(budget_id: str, db: Session = Depends(get_db)):
    DeleteBudgetUseCase(db).execute(budget_id)
    return Response(status_code=204)


@router.get("/{budget_id}/export")
def export(budget_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    return export_budget(db, budget_id)


# === Structure ===

@router.post("/{budget_id}/accounts", response_model=AccountResponse, status_code=201)
def create_account(req: CreateAccountRequest, ws: Workspace = Depends(get_workspace)):
    a = ws.create_account(req.name, req.type)
    return AccountResponse(id=a.id, budget_id=a.budget_id, name=a.name, type=a.type, on_budget=a.on_budget)


@router.get("/{budget_id}/accounts", response_model=list[AccountResponse])
def list_accounts(budget_id: str, db: Session = Depends(get_db)):
    get_budget(db, budget_id)
    return [
        AccountResponse(id=a.id, budget_id=a.budget_id, name=a.name, type=a.type, on_budget=a.on_budget)
        for a in LedgerStore(db).list_accounts(budget_id)
    ]


@router.delete("/{budget_id}/accounts/{account_id}", status_code=204)
def delete_account(account_id: str, ws: Workspace = Depends(get_workspace)):
    ws.delete_account(account_id)
    return Response(status_code=204)


@router.patch("/{budget_id}/accounts/{account_id}", response_model=AccountResponse)
def update_account(account_id: str, req: UpdateAccountRequest, ws: Workspace = Depends(get_workspace)):
    """Rename and/or change the type (crossing on/off budget rebuilds the month cache)"""
    a = ws.edit_account(account_id, name=req.name, account_type=req.type)
    return AccountResponse(id=a.id, budget_id=a.budget_id, name=a.name, type=a.type, on_budget=a.on_budget)


@router.post("/{budget_id}/category-groups", response_model=GroupResponse, status_code=201)
def create_group(req: CreateGroupRequest, ws: Workspace = Depends(get_workspace)):
    g = ws.create_group(req.name)
    return GroupResponse(id=g.id, budget_id=g.budget_id, name=g.name, sort_order=g.sort_order)


@router.get("/{budget_id}/category-groups", response_model=list[GroupResponse])
def list_groups(budget_id: str, db: Session = Depends(get_db)):
    get_budget(db, budget_id)
    return [
        GroupResponse(id=g.id, budget_id=g.budget_id, name=g.name, sort_order=g.sort_order)
        for g in LedgerStore(db).list_groups(budget_id)
    ]


@router.patch("/{budget_id}/category-groups/{group_id}", response_model=GroupResponse)
def rename_group(group_id: str, req: RenameRequest, ws: Workspace = Depends(get_workspace)):
    g = ws.rename_group(group_id, req.name)
    return GroupResponse(id=g.id, budget_id=g.budget_id, name=g.name, sort_order=g.sort_order)


@router.delete("/{budget_id}/category-groups/{group_id}", status_code=204)
def delete_group(group_id: str, ws: Workspace = Depends(get_workspace)):
    """Deletes the group with its categories"""
    ws.delete_group(group_id)
    return Response(status_code=204)


@router.post("/{budget_id}/categories", response_model=CategoryResponse, status_code=201)
def create_category(req: CreateCategoryRequest, ws: Workspace = Depends(get_workspace)):
    c = ws.create_category(req.group_id, req.name)
    return CategoryResponse(id=c.id, group_id=c.group_id, name=c.name, sort_order=c.sort_order)


@router.get("/{budget_id}/categories", response_model=list[CategoryResponse])
def list_categories(budget_id: str, db: Session = Depends(get_db)):
    get_budget(db, budget_id)
    return [
        CategoryResponse(id=c.id, group_id=c.group_id, name=c.name, sort_order=c.sort_order)
        for c in LedgerStore(db).list_categories(budget_id)
    ]


@router.patch("/{budget_id}/categories/{category_id}", response_model=CategoryResponse)
def update_category(category_id: str, req: UpdateCategoryRequest, ws: Workspace = Depends(get_workspace)):
    if req.name is None and req.group_id is None:
        raise ValidationError("Nothing to update: give a name or a group_id")
    c = None
    if req.name is not None:
        c = ws.rename_category(category_id, req.name)
    if req.group_id is not None:
        c = ws.move_category(category_id, req.group_id)
    return CategoryResponse(id=c.id, group_id=c.group_id, name=c.name, sort_order=c.sort_order)


@router.delete("/{budget_id}/categories/{category_id}", status_code=204)
def delete_category(category_id: str, ws: Workspace = Depends(get_workspace)):
    ws.delete_category(category_id)
    return Response(status_code=204)


# === Month view & assignments ===

@router.get("/{budget_id}/months/{month}", response_model=MonthResponse)
def get_month(ws: Workspace = Depends(get_workspace)):
    """Category balances and ready to assign of a month"""
    return month_response(ws.refresh())


@router.post("/{budget_id}/assignments", response_model=AssignmentResponse)
def assign(req: AssignRequest, ws: Workspace = Depends(get_workspace)):
    """Set the assigned amount of (category, month) - replaces, never adds"""
    a = ws.assign(req.category_id, req.month, req.amount)
    return AssignmentResponse(id=a.id, category_id=a.category_id, month=a.month, amount=a.amount)


@router.post("/{budget_id}/assignments/move", response_model=list[AssignmentResponse])
def move(req: MoveRequest, ws: Workspace = Depends(get_workspace)):
    source, destination = ws.move(req.from_category_id, req.to_category_id, req.month, req.amount)
    return [
        AssignmentResponse(id=a.id, category_id=a.category_id, month=a.month, amount=a.amount)
        for a in (source, destination)
    ]


@router.get("/{budget_id}/assignments", response_model=list[AssignmentResponse])
def list_assignments(ws: Workspace = Depends(get_workspace)):
    """Non-zero assignments of ?month= (default: current month)"""
    return [
        AssignmentResponse(id=a.id, category_id=a.category_id, month=a.month, amount=a.amount)
        for a in list_month_assignments(ws.db, ws.budget_id, ws.month)
    ]


@router.delete("/{budget_id}/assignments/{month}/{category_id}", status_code=204)
def clear_assignment(category_id: str, ws: Workspace = Depends(get_workspace)):
    if not ws.clear_assignment(category_id, ws.month):
        raise NotFoundError(f"No assignment for category {category_id} in {ws.month}")
    return Response(status_code=204)


# === Targets ===

def target_response(target: Target) -> TargetResponse:
    return TargetResponse(
        id=target.id,
        category_id=target.category_id,
        type=target.type,
        amount=target.amount,
        target_date=target.target_date,
    )


@router.put("/{budget_id}/categories/{category_id}/target", response_model=TargetResponse)
def set_target(category_id: str, req: SetTargetRequest, ws: Workspace = Depends(get_workspace)):
    """One target per category; PUT replaces it"""
    return target_response(ws.set_target(category_id, req.type, req.amount, req.target_date))


@router.get("/{budget_id}/categories/{category_id}/target", response_model=TargetProgressResponse)
def get_target(category_id: str, ws: Workspace = Depends(get_workspace)):
    """Target with its progress in ?month= (default: current month)"""
    progress = ws.target_progress(category_id)
    return TargetProgressResponse(
        target=target_response(progress.target),
        month=progress.month,
        current=progress.current,
        remaining=progress.remaining,
        percent=progress.percent,
    )


@router.delete("/{budget_id}/categories/{category_id}/target", status_code=204)
def clear_target(category_id: str, ws: Workspace = Depends(get_workspace)):
    if not ws.clear_target(category_id):
        raise NotFoundError(f"No target set for category {category_id}")
    return Response(status_code=204)


# === Payees ===

@router.get("/{budget_id}/payees", response_model=list[PayeeResponse])
def list_payees(budget_id: str, db: Session = Depends(get_db)):
    get_budget(db, budget_id)
    return [PayeeResponse(id=p.id, budget_id=p.budget_id, name=p.name) for p in LedgerStore(db).list_payees(budget_id)]


@router.patch("/{budget_id}/payees/{payee_id}", response_model=PayeeResponse)
def rename_payee(payee_id: str, req: RenameRequest, ws: Workspace = Depends(get_workspace)):
    p = ws.rename_payee(payee_id, req.name)
    return PayeeResponse(id=p.id, budget_id=p.budget_id, name=p.name)


@router.delete("/{budget_id}/payees/{payee_id}", status_code=204)
def delete_payee(payee_id: str, ws: Workspace = Depends(get_workspace)):
    """Transactions of the payee are kept without a payee"""
    ws.delete_payee(payee_id)
    return Response(status_code=204)
