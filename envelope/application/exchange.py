"""
Budget export/import (JSON document, camelCase keys)

Document layout:
    {
      "version": "1.0",
      "exportedAt": "2025-01-31T12:00:00+00:00",
      "budget": {"id": ..., "name": ..., "currency": ...},
      "accounts": [...], "categoryGroups": [...], "categories": [...],
      "transactions": [...], "payees": [...], "assignments": [...],
      "targets": [...]            # optional
    }

Import is all-or-nothing: the whole document is parsed into entities before
the first write, and the writes share one commit. The wire shapes are the
*Document pydantic models below.
"""
import logging
from collections import defaultdict
from datetime import date as date_type, datetime
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt, StrictStr, TypeAdapter
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from envelope.domain.account import ACCOUNT_TYPES, Account
from envelope.domain.assignment import Assignment
from envelope.domain.budget import Budget, is_valid_currency, utcnow
from envelope.domain.category import Category, CategoryGroup
from envelope.domain.month import is_valid_month
from envelope.domain.payee import Payee
from envelope.domain.target import TARGET_TYPES, Target
from envelope.domain.transaction import Transaction
from envelope.errors import LedgerIntegrityError, NotFoundError, ValidationError
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.readmodels.month_summaries import CarryoverPropagator

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"


class ImportValidationError(ValidationError):
    pass


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _iso_date(value: date_type | None) -> str | None:
    return value.isoformat() if value else None


def export_budget(db: Session, budget_id: str) -> Dict[str, Any]:
    """
    Serialize a budget with everything it owns

    Raises:
        NotFoundError: unknown budget
    """
    store = LedgerStore(db)
    budget = store.get_budget(budget_id)
    if budget is None:
        raise NotFoundError(f"Budget {budget_id} not found")

    document = {
        "version": EXPORT_VERSION,
        "exportedAt": utcnow().isoformat(),
        "budget": {"id": budget.id, "name": budget.name, "currency": budget.currency},
        "accounts": [
            {"id": a.id, "budgetId": a.budget_id, "name": a.name, "type": a.type, "onBudget": a.on_budget}
            for a in store.list_accounts(budget_id)
        ],
        "categoryGroups": [
            {"id": g.id, "budgetId": g.budget_id, "name": g.name, "sortOrder": g.sort_order}
            for g in store.list_groups(budget_id)
        ],
        "categories": [
            {
                "id": c.id,
                "groupId": c.group_id,
                "name": c.name,
                "sortOrder": c.sort_order,
                "createdAt": c.created_at.isoformat(),
            }
            for c in store.list_categories(budget_id)
        ],
        "transactions": [
            {
                "id": t.id,
                "accountId": t.account_id,
                "categoryId": t.category_id,
                "payeeId": t.payee_id,
                "date": t.date.isoformat(),
                "amount": t.amount,
                "cleared": t.cleared,
                "memo": t.memo,
                "transferAccountId": t.transfer_account_id,
            }
            for t in store.list_budget_transactions(budget_id)
        ],
        "payees": [
            {"id": p.id, "budgetId": p.budget_id, "name": p.name}
            for p in store.list_payees(budget_id)
        ],
        "assignments": [
            {"id": a.id, "categoryId": a.category_id, "month": a.month, "amount": a.amount}
            for a in store.list_assignments(budget_id)
        ],
        "targets": [
            {
                "id": t.id,
                "categoryId": t.category_id,
                "type": t.type,
                "amount": t.amount,
                "targetDate": _iso_date(t.target_date),
            }
            for t in store.list_targets(budget_id)
        ],
    }
    logger.info(
        "Budget %s exported: %d transactions, %d assignments",
        budget_id, len(document["transactions"]), len(document["assignments"]),
    )
    return document


# ---------------------------------------------------------------------------
# Import: document schema
# ---------------------------------------------------------------------------


class _DocumentModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BudgetDocument(_DocumentModel):
    id: StrictStr
    name: StrictStr
    currency: Optional[StrictStr] = None


class AccountDocument(_DocumentModel):
    id: StrictStr
    name: StrictStr
    type: StrictStr
    on_budget: Optional[StrictBool] = None  # derived from type on import


class CategoryGroupDocument(_DocumentModel):
    id: StrictStr
    name: StrictStr
    sort_order: StrictInt


class CategoryDocument(_DocumentModel):
    id: StrictStr
    group_id: StrictStr
    name: StrictStr
    sort_order: StrictInt
    created_at: Optional[datetime] = None


class TransactionDocument(_DocumentModel):
    id: StrictStr
    account_id: StrictStr
    date: date_type
    amount: StrictInt
    cleared: StrictBool
    category_id: Optional[StrictStr] = None
    payee_id: Optional[StrictStr] = None
    memo: Optional[StrictStr] = None
    transfer_account_id: Optional[StrictStr] = None


class PayeeDocument(_DocumentModel):
    id: StrictStr
    name: StrictStr


class AssignmentDocument(_DocumentModel):
    id: StrictStr
    category_id: StrictStr
    month: StrictStr
    amount: StrictInt


class TargetDocument(_DocumentModel):
    id: StrictStr
    category_id: StrictStr
    type: StrictStr
    amount: StrictInt
    target_date: Optional[date_type] = None


class ExportDocument(_DocumentModel):
    """Top level; elements are checked separately against ELEMENT_MODELS"""
    version: StrictStr
    budget: BudgetDocument
    accounts: List[Any]
    category_groups: List[Any]
    categories: List[Any]
    transactions: List[Any]
    payees: List[Any]
    assignments: List[Any]
    targets: Optional[List[Any]] = None


ELEMENT_MODELS: Dict[str, Type[_DocumentModel]] = {
    "accounts": AccountDocument,
    "categoryGroups": CategoryGroupDocument,
    "categories": CategoryDocument,
    "transactions": TransactionDocument,
    "payees": PayeeDocument,
    "assignments": AssignmentDocument,
    "targets": TargetDocument,
}

_ELEMENT_ADAPTERS = {name: TypeAdapter(model) for name, model in ELEMENT_MODELS.items()}
_ARRAY_ADAPTERS = {name: TypeAdapter(List[model]) for name, model in ELEMENT_MODELS.items()}


def _element_error(name: str, loc: tuple) -> ImportValidationError:
    """loc is (index, field, ...) as reported by pydantic"""
    index, *path = loc
    where = f"{name}[{index}]"
    if not path:
        return ImportValidationError(f"Invalid import: {where} must be an object")
    field = ".".join(str(part) for part in path)
    return ImportValidationError(f"Invalid import: {where}.{field} is missing or has the wrong type")


def _document_error(loc: tuple) -> ImportValidationError:
    if not loc:
        return ImportValidationError("Invalid import: document must be a JSON object")
    field = loc[0]
    if field == "version":
        return ImportValidationError("Invalid import: missing version")
    if field == "budget":
        return ImportValidationError("Invalid import: budget must have id and name")
    if field == "targets":
        return ImportValidationError("Invalid import: targets must be an array")
    return ImportValidationError(f"Invalid import: missing {field} array")


def validate_document(document: Any) -> ExportDocument:
    """
    Structural validation

    The top level is validated in full; of each non-empty array only the
    first element is checked for required fields and their types.

    Raises:
        ImportValidationError: missing/invalid budget or arrays
    """
    try:
        parsed = ExportDocument.model_validate(document)
    except SchemaError as exc:
        raise _document_error(exc.errors()[0]["loc"]) from exc

    for name in ELEMENT_MODELS:
        items = document.get(name)
        if not items:
            continue
        try:
            _ELEMENT_ADAPTERS[name].validate_python(items[0])
        except SchemaError as exc:
            raise _element_error(name, (0, *exc.errors()[0]["loc"])) from exc
    return parsed


def _parse_array(name: str, items: Optional[List[Any]]) -> list:
    try:
        return _ARRAY_ADAPTERS[name].validate_python(items or [])
    except SchemaError as exc:
        raise _element_error(name, exc.errors()[0]["loc"]) from exc


def check_transfer_pairs(transactions: List[Transaction]) -> None:
    """
    Every transfer leg needs exactly one partner

    A partner lives in the leg's transfer account, points back at the leg's
    account, has the same date and the opposite amount. Each leg pairs once.

    Raises:
        ImportValidationError: self-transfer, categorized leg, or a leg left
            without a partner
    """
    waiting: Dict[tuple, List[Transaction]] = defaultdict(list)
    for tx in transactions:
        if not tx.is_transfer:
            continue
        if tx.transfer_account_id == tx.account_id:
            raise ImportValidationError(f"Invalid import: transfer {tx.id} points at its own account")
        if tx.category_id is not None:
            raise ImportValidationError(f"Invalid import: transfer {tx.id} cannot have a category")
        partner_key = (tx.transfer_account_id, tx.account_id, tx.date, -tx.amount)
        if waiting[partner_key]:
            waiting[partner_key].pop()
        else:
            waiting[(tx.account_id, tx.transfer_account_id, tx.date, tx.amount)].append(tx)

    orphans = [tx for legs in waiting.values() for tx in legs]
    if orphans:
        raise ImportValidationError(
            f"Invalid import: transfer {orphans[0].id} has no matching leg in account "
            f"{orphans[0].transfer_account_id}"
        )


# ---------------------------------------------------------------------------
# Import: entities
# ---------------------------------------------------------------------------


class _DocumentParser:
    """Turns a validated document into domain entities, checking references"""

    def __init__(self, document: Dict[str, Any], header: ExportDocument):
        self.doc = document
        self.header = header
        self.budget_id = header.budget.id

    def parse(self) -> Dict[str, list]:
        doc = self.doc
        now = utcnow()
        currency = self.header.budget.currency or "USD"
        if not is_valid_currency(currency):
            raise ImportValidationError(f"Invalid import: invalid currency {currency!r}")
        budget = Budget(id=self.budget_id, name=self.header.budget.name, currency=currency,
                        created_at=now, updated_at=now)

        accounts = []
        for item in _parse_array("accounts", doc["accounts"]):
            if item.type not in ACCOUNT_TYPES:
                raise ImportValidationError(f"Invalid import: account {item.id} has invalid type {item.type!r}")
            accounts.append(Account(id=item.id, budget_id=self.budget_id, name=item.name, type=item.type))
        account_ids = {a.id for a in accounts}

        groups = [
            CategoryGroup(id=item.id, budget_id=self.budget_id, name=item.name, sort_order=item.sort_order)
            for item in _parse_array("categoryGroups", doc["categoryGroups"])
        ]
        group_ids = {g.id for g in groups}

        categories = []
        for item in _parse_array("categories", doc["categories"]):
            if item.group_id not in group_ids:
                raise ImportValidationError(f"Invalid import: category {item.id} references unknown group")
            created = item.created_at or now
            categories.append(Category(
                id=item.id, group_id=item.group_id, name=item.name,
                sort_order=item.sort_order, created_at=created, updated_at=created,
            ))
        category_ids = {c.id for c in categories}

        payees = [
            Payee(id=item.id, budget_id=self.budget_id, name=item.name)
            for item in _parse_array("payees", doc["payees"])
        ]
        payee_ids = {p.id for p in payees}

        transactions = []
        for item in _parse_array("transactions", doc["transactions"]):
            if item.account_id not in account_ids:
                raise ImportValidationError(f"Invalid import: transaction {item.id} references unknown account")
            if item.category_id is not None and item.category_id not in category_ids:
                raise ImportValidationError(f"Invalid import: transaction {item.id} references unknown category")
            if item.payee_id is not None and item.payee_id not in payee_ids:
                raise ImportValidationError(f"Invalid import: transaction {item.id} references unknown payee")
            if item.transfer_account_id is not None and item.transfer_account_id not in account_ids:
                raise ImportValidationError(
                    f"Invalid import: transaction {item.id} references unknown transfer account"
                )
            transactions.append(Transaction(
                id=item.id,
                account_id=item.account_id,
                date=item.date,
                amount=item.amount,
                category_id=item.category_id,
                payee_id=item.payee_id,
                cleared=item.cleared,
                memo=item.memo,
                transfer_account_id=item.transfer_account_id,
                created_at=now,
                updated_at=now,
            ))
        check_transfer_pairs(transactions)

        assignments = []
        for item in _parse_array("assignments", doc["assignments"]):
            if item.category_id not in category_ids:
                raise ImportValidationError(f"Invalid import: assignment {item.id} references unknown category")
            if not is_valid_month(item.month):
                raise ImportValidationError(f"Invalid import: assignment {item.id} has invalid month")
            assignments.append(Assignment(
                id=item.id, category_id=item.category_id, month=item.month, amount=item.amount,
            ))

        targets = []
        for item in _parse_array("targets", doc.get("targets")):
            if item.category_id not in category_ids:
                raise ImportValidationError(f"Invalid import: target {item.id} references unknown category")
            if item.type not in TARGET_TYPES:
                raise ImportValidationError(f"Invalid import: target {item.id} has invalid type")
            targets.append(Target(
                id=item.id, category_id=item.category_id, type=item.type, amount=item.amount,
                target_date=item.target_date, created_at=now, updated_at=now,
            ))

        return {
            "budget": [budget],
            "accounts": accounts,
            "groups": groups,
            "categories": categories,
            "payees": payees,
            "transactions": transactions,
            "assignments": assignments,
            "targets": targets,
        }


class ImportBudgetUseCase:
    """
    Use case: create a budget from an export document

    Ids are preserved. Importing over an existing budget id is rejected.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def execute(self, document: Any) -> Budget:
        """
        Raises:
            ImportValidationError: structural problem (nothing written)
            LedgerIntegrityError: database rejected the writes (rolled back)
        """
        header = validate_document(document)
        budget_id = header.budget.id
        if self.store.get_budget(budget_id) is not None:
            raise ImportValidationError(f"Budget {budget_id} already exists")

        entities = _DocumentParser(document, header).parse()
        self._check_collisions(entities)

        try:
            self.store.save_budget(entities["budget"][0])
            for account in entities["accounts"]:
                self.store.save_account(account)
            for group in entities["groups"]:
                self.store.save_group(group)
            for category in entities["categories"]:
                self.store.save_category(category)
            for payee in entities["payees"]:
                self.store.save_payee(payee)
            self.store.save_transactions(entities["transactions"])
            for assignment in entities["assignments"]:
                self.store.save_assignment(assignment)
            for target in entities["targets"]:
                self.store.save_target(target)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise LedgerIntegrityError(f"Import of budget {budget_id} failed: {exc}") from exc

        CarryoverPropagator(self.db).invalidate(budget_id)
        logger.info(
            "Budget %s imported: %d accounts, %d categories, %d transactions",
            budget_id, len(entities["accounts"]), len(entities["categories"]), len(entities["transactions"]),
        )
        return entities["budget"][0]

    def _check_collisions(self, entities: Dict[str, list]) -> None:
        """save_* overwrite by id, so ids owned by another budget must be refused up front"""
        lookups = (
            ("accounts", self.store.get_account),
            ("groups", self.store.get_group),
            ("categories", self.store.get_category),
            ("payees", self.store.get_payee),
            ("transactions", self.store.get_transaction),
        )
        for name, getter in lookups:
            for entity in entities[name]:
                if getter(entity.id) is not None:
                    raise ImportValidationError(f"Invalid import: {name[:-1]} {entity.id} already exists")
