"""
Transaction API endpoints (scoped to a budget)
"""
from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from envelope.api.deps import get_db, get_workspace
from envelope.application.budgets import get_budget
from envelope.application.transactions import list_transactions
from envelope.application.workspace import Workspace
from envelope.domain.transaction import Transaction


router = APIRouter(prefix="/api/v1/budgets/{budget_id}", tags=["transactions"])


# === Request models ===

class CreateTransactionRequest(BaseModel):
    account_id: str
    date: date_type
    amount: int  # cents, positive = inflow
    category_id: str | None = None
    payee_id: str | None = None
    payee_name: str | None = None
    cleared: bool = False
    memo: str | None = None


class UpdateTransactionRequest(BaseModel):
    """Only the fields present in the body are changed"""
    account_id: str | None = None
    date: Optional[date_type] = None
    amount: int | None = None
    category_id: str | None = None
    payee_id: str | None = None
    payee_name: str | None = None  # find-or-create, wins over payee_id
    cleared: bool | None = None
    memo: str | None = None

    @field_validator("account_id", "date", "amount", "cleared", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v


class CreateTransferRequest(BaseModel):
    from_account_id: str
    to_account_id: str
    date: date_type
    amount: int  # cents, sign ignored
    cleared: bool = False
    memo: str | None = None


class TransactionResponse(BaseModel):
    id: str
    account_id: str
    date: date_type
    amount: int
    category_id: str | None = None
    payee_id: str | None = None
    cleared: bool
    memo: str | None = None
    transfer_account_id: str | None = None


def transaction_response(tx: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        account_id=tx.account_id,
        date=tx.date,
        amount=tx.amount,
        category_id=tx.category_id,
        payee_id=tx.payee_id,
        cleared=tx.cleared,
        memo=tx.memo,
        transfer_account_id=tx.transfer_account_id,
    )


# === Endpoints ===

@router.post("/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(req: CreateTransactionRequest, ws: Workspace = Depends(get_workspace)):
    """Record a transaction and recompute from its month"""
    tx = ws.add_transaction(
        account_id=req.account_id,
        date=req.date,
        amount=req.amount,
        category_id=req.category_id,
        payee_id=req.payee_id,
        payee_name=req.payee_name,
        cleared=req.cleared,
        memo=req.memo,
    )
    return transaction_response(tx)


@router.get("/transactions", response_model=list[TransactionResponse])
def get_transactions(
    budget_id: str,
    account_id: str | None = None,
    month: str | None = None,
    db: Session = Depends(get_db),
):
    get_budget(db, budget_id)
    return [transaction_response(t) for t in list_transactions(db, budget_id, account_id=account_id, month=month)]


@router.patch("/transactions/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: str,
    req: UpdateTransactionRequest,
    ws: Workspace = Depends(get_workspace),
):
    """Edit a transaction; recompute from min(old month, new month)"""
    changes = req.model_dump(exclude_unset=True)
    tx = ws.update_transaction(transaction_id, **changes)
    return transaction_response(tx)


@router.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, ws: Workspace = Depends(get_workspace)):
    """Delete a transaction (both legs for transfers)"""
    ws.delete_transaction(transaction_id)
    return Response(status_code=204)


@router.post("/transfers", response_model=list[TransactionResponse], status_code=201)
def create_transfer(req: CreateTransferRequest, ws: Workspace = Depends(get_workspace)):
    legs = ws.create_transfer(
        req.from_account_id,
        req.to_account_id,
        req.date,
        req.amount,
        cleared=req.cleared,
        memo=req.memo,
    )
    return [transaction_response(t) for t in legs]
