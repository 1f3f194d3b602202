"""
Command-line interface

    envelope [--db PATH] [--json | --quiet] <command> ...

The active budget is remembered per database file in
$BUDGET_CONFIG_DIR/config.json, so several databases can be used side by side.
"""
import argparse
import json
import logging
import os
import sys
from dataclasses import asdict, is_dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from envelope.application.assignments import get_last_assignments_before_month, list_month_assignments
from envelope.application.balances import get_account_balances
from envelope.application.budgets import (
    CreateBudgetUseCase, DeleteBudgetUseCase, get_budget, list_budgets,
)
from envelope.application.exchange import ImportBudgetUseCase, export_budget
from envelope.application.transactions import list_transactions
from envelope.application.workspace import Workspace
from envelope.config import get_settings
from envelope.domain.month import current_month
from envelope.errors import LedgerError, NotFoundError, ValidationError
from envelope.infrastructure.db.session import Database, sqlite_file_path
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.utils.dates import parse_date
from envelope.utils.money import format_money, parse_amount
from envelope.utils.validation import require_month

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-database config (active budget)
# ---------------------------------------------------------------------------


def config_path() -> str:
    return os.path.join(get_settings().BUDGET_CONFIG_DIR, "config.json")


def load_config() -> Dict[str, Any]:
    path = config_path()
    if not os.path.exists(path):
        return {}
    try:
        with open(path, encoding="utf-8") as fh:
            loaded = json.load(fh)
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable config file %s", path)
        return {}
    return loaded if isinstance(loaded, dict) else {}


def save_config(config: Dict[str, Any]) -> None:
    path = config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2)


def get_active_budget_id(db_key: str) -> Optional[str]:
    return load_config().get("databases", {}).get(db_key, {}).get("activeBudgetId")


def set_active_budget_id(db_key: str, budget_id: str) -> None:
    config = load_config()
    config.setdefault("databases", {}).setdefault(db_key, {})["activeBudgetId"] = budget_id
    save_config(config)


def clear_active_budget_id(db_key: str) -> None:
    config = load_config()
    entry = config.get("databases", {}).get(db_key)
    if entry is None:
        return
    entry.pop("activeBudgetId", None)
    if not entry:
        del config["databases"][db_key]
    save_config(config)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


class Output:
    """Formats results as tables (default), JSON (--json) or bare ids (--quiet)"""

    def __init__(self, as_json: bool = False, quiet: bool = False, stream=None, err_stream=None):
        self.as_json = as_json
        self.quiet = quiet
        self.stream = stream or sys.stdout
        self.err_stream = err_stream or sys.stderr

    def _print(self, text: str = "") -> None:
        print(text, file=self.stream)

    def _dump(self, data: Any) -> None:
        self._print(json.dumps(data, indent=2, default=str))

    def emit(self, data: Any, table: Callable[[], None], quiet_ids: Sequence[str] = ()) -> None:
        if self.as_json:
            self._dump(data)
        elif self.quiet:
            for item_id in quiet_ids:
                self._print(item_id)
        else:
            table()

    def success(self, message: str, data: Any = None) -> None:
        data = _plain(data)
        if self.as_json:
            self._print(json.dumps({"success": True, "message": message, "data": data}, default=str))
        elif self.quiet:
            if isinstance(data, dict) and "id" in data:
                self._print(data["id"])
        else:
            self._print(message)

    def error(self, exc: Exception) -> None:
        if self.as_json:
            print(json.dumps({"success": False, "error": str(exc)}), file=self.err_stream)
        else:
            print(f"Error: {exc}", file=self.err_stream)

    def rows(self, headers: List[str], rows: List[List[Any]]) -> None:
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(str(cell)))
        self._print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        for row in rows:
            self._print("  ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row)))


# ---------------------------------------------------------------------------
# Lookups by id or name
# ---------------------------------------------------------------------------


def _by_id_or_name(items: list, key: str, what: str):
    for item in items:
        if item.id == key:
            return item
    matches = [item for item in items if item.name.lower() == key.strip().lower()]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValidationError(f"{what} name {key!r} is ambiguous, use the id")
    raise NotFoundError(f"{what} not found: {key}")


class CliContext:
    """Everything a command handler needs"""

    def __init__(self, db: Session, db_key: str, out: Output):
        self.db = db
        self.db_key = db_key
        self.out = out
        self.store = LedgerStore(db)

    def active_budget_id(self) -> str:
        budget_id = get_active_budget_id(self.db_key)
        if not budget_id:
            raise ValidationError('No active budget. Use "envelope use <id|name>" to select a budget.')
        return budget_id

    def workspace(self, month: Optional[str] = None) -> Workspace:
        return Workspace(self.db, self.active_budget_id(), month=month)

    def account(self, key: str):
        return _by_id_or_name(self.store.list_accounts(self.active_budget_id()), key, "Account")

    def category(self, key: str):
        return _by_id_or_name(self.store.list_categories(self.active_budget_id()), key, "Category")

    def group(self, key: str):
        return _by_id_or_name(self.store.list_groups(self.active_budget_id()), key, "Category group")

    def payee(self, key: str):
        return _by_id_or_name(self.store.list_payees(self.active_budget_id()), key, "Payee")

    def currency(self) -> str:
        return get_budget(self.db, self.active_budget_id()).currency


def _month_arg(value: Optional[str]) -> str:
    return require_month(value) if value else current_month(get_settings().TIMEZONE)


# ---------------------------------------------------------------------------
# Budget commands
# ---------------------------------------------------------------------------


def cmd_create(ctx: CliContext, args) -> None:
    budget = CreateBudgetUseCase(ctx.db).execute(args.name, args.currency)
    if get_active_budget_id(ctx.db_key) is None:
        set_active_budget_id(ctx.db_key, budget.id)
    ctx.out.success(f"Created budget: {budget.name} ({budget.id})", budget)


def cmd_list(ctx: CliContext, args) -> None:
    budgets = list_budgets(ctx.db)
    active = get_active_budget_id(ctx.db_key)
    ctx.out.emit(
        [_plain(b) for b in budgets],
        lambda: ctx.out.rows(
            ["ID", "Name", "Currency", "Active"],
            [[b.id, b.name, b.currency, "*" if b.id == active else ""] for b in budgets],
        ),
        [b.id for b in budgets],
    )


def cmd_use(ctx: CliContext, args) -> None:
    budget = _by_id_or_name(list_budgets(ctx.db), args.budget, "Budget")
    set_active_budget_id(ctx.db_key, budget.id)
    ctx.out.success(f"Now using budget: {budget.name}", budget)


def cmd_show(ctx: CliContext, args) -> None:
    budget = get_budget(ctx.db, ctx.active_budget_id())
    accounts = ctx.store.list_accounts(budget.id)
    data = {**_plain(budget), "accounts": len(accounts), "categories": len(ctx.store.list_categories(budget.id))}

    def table():
        ctx.out._print(f"Budget:     {budget.name}")
        ctx.out._print(f"ID:         {budget.id}")
        ctx.out._print(f"Currency:   {budget.currency}")
        ctx.out._print(f"Accounts:   {data['accounts']}")
        ctx.out._print(f"Categories: {data['categories']}")

    ctx.out.emit(data, table, [budget.id])


def cmd_delete(ctx: CliContext, args) -> None:
    budget = get_budget(ctx.db, args.budget_id)
    DeleteBudgetUseCase(ctx.db).execute(budget.id)
    if get_active_budget_id(ctx.db_key) == budget.id:
        clear_active_budget_id(ctx.db_key)
    ctx.out.success(f"Deleted budget: {budget.name}", budget)


# ---------------------------------------------------------------------------
# Accounts, groups, categories
# ---------------------------------------------------------------------------


def cmd_account_add(ctx: CliContext, args) -> None:
    account_type = "tracking" if args.off_budget else args.type
    account = ctx.workspace().create_account(args.name, account_type)
    ctx.out.success(f"Created account: {account.name} ({account.type})", account)


def cmd_account_list(ctx: CliContext, args) -> None:
    currency = ctx.currency()
    accounts = ctx.store.list_accounts(ctx.active_budget_id())
    balances = {a.id: get_account_balances(ctx.db, a.id) for a in accounts}
    data = [
        {**_plain(a), "onBudget": a.on_budget, "cleared": balances[a.id].cleared,
         "uncleared": balances[a.id].uncleared, "balance": balances[a.id].working}
        for a in accounts
    ]
    ctx.out.emit(
        data,
        lambda: ctx.out.rows(
            ["ID", "Name", "Type", "Balance"],
            [[a.id, a.name, a.type, format_money(balances[a.id].working, currency)] for a in accounts],
        ),
        [a.id for a in accounts],
    )


def cmd_account_show(ctx: CliContext, args) -> None:
    account = ctx.account(args.account)
    currency = ctx.currency()
    balances = get_account_balances(ctx.db, account.id)
    recent = ctx.store.list_transactions(account.id)[-args.limit:][::-1] if args.limit > 0 else []
    data = {
        **_plain(account),
        "onBudget": account.on_budget,
        "cleared": balances.cleared,
        "uncleared": balances.uncleared,
        "balance": balances.working,
        "recentTransactions": [_plain(t) for t in recent],
    }

    def table():
        ctx.out._print(f"Account:   {account.name}")
        ctx.out._print(f"ID:        {account.id}")
        ctx.out._print(f"Type:      {account.type} ({'on' if account.on_budget else 'off'} budget)")
        ctx.out._print(f"Cleared:   {format_money(balances.cleared, currency)}")
        ctx.out._print(f"Uncleared: {format_money(balances.uncleared, currency)}")
        ctx.out._print(f"Balance:   {format_money(balances.working, currency)}")
        if recent:
            ctx.out._print()
            ctx.out.rows(
                ["ID", "Date", "Amount", "C"],
                [[t.id, t.date, format_money(t.amount, currency), "x" if t.cleared else ""] for t in recent],
            )

    ctx.out.emit(data, table, [account.id])


def cmd_account_edit(ctx: CliContext, args) -> None:
    account = ctx.account(args.account)
    updated = ctx.workspace().edit_account(account.id, name=args.name, account_type=args.type)
    ctx.out.success(f"Updated account: {updated.name} ({updated.type})", updated)


def cmd_account_delete(ctx: CliContext, args) -> None:
    account = ctx.workspace().delete_account(ctx.account(args.account).id)
    ctx.out.success(f"Deleted account: {account.name}", account)


def cmd_group_add(ctx: CliContext, args) -> None:
    group = ctx.workspace().create_group(args.name)
    ctx.out.success(f"Created category group: {group.name}", group)


def cmd_group_list(ctx: CliContext, args) -> None:
    budget_id = ctx.active_budget_id()
    groups = ctx.store.list_groups(budget_id)
    counts = {g.id: 0 for g in groups}
    for c in ctx.store.list_categories(budget_id):
        counts[c.group_id] = counts.get(c.group_id, 0) + 1
    ctx.out.emit(
        [{**_plain(g), "categories": counts[g.id]} for g in groups],
        lambda: ctx.out.rows(
            ["ID", "Name", "Categories"],
            [[g.id, g.name, counts[g.id]] for g in groups],
        ),
        [g.id for g in groups],
    )


def cmd_group_rename(ctx: CliContext, args) -> None:
    group = ctx.group(args.group)
    renamed = ctx.workspace().rename_group(group.id, args.name)
    ctx.out.success(f"Renamed category group: {group.name} -> {renamed.name}", renamed)


def cmd_group_delete(ctx: CliContext, args) -> None:
    group = ctx.workspace().delete_group(ctx.group(args.group).id)
    ctx.out.success(f"Deleted category group: {group.name}", group)


def cmd_category_add(ctx: CliContext, args) -> None:
    group = ctx.group(args.group)
    category = ctx.workspace().create_category(group.id, args.name)
    ctx.out.success(f"Created category: {category.name} in {group.name}", category)


def cmd_category_list(ctx: CliContext, args) -> None:
    categories = ctx.store.list_categories(ctx.active_budget_id())
    groups = {g.id: g.name for g in ctx.store.list_groups(ctx.active_budget_id())}
    ctx.out.emit(
        [_plain(c) for c in categories],
        lambda: ctx.out.rows(
            ["ID", "Group", "Name"],
            [[c.id, groups.get(c.group_id, ""), c.name] for c in categories],
        ),
        [c.id for c in categories],
    )


def cmd_category_rename(ctx: CliContext, args) -> None:
    category = ctx.category(args.category)
    renamed = ctx.workspace().rename_category(category.id, args.name)
    ctx.out.success(f"Renamed category: {category.name} -> {renamed.name}", renamed)


def cmd_category_move(ctx: CliContext, args) -> None:
    category, group = ctx.category(args.category), ctx.group(args.group)
    moved = ctx.workspace().move_category(category.id, group.id)
    ctx.out.success(f"Moved category {moved.name} to {group.name}", moved)


def cmd_category_delete(ctx: CliContext, args) -> None:
    category = ctx.workspace().delete_category(ctx.category(args.category).id)
    ctx.out.success(f"Deleted category: {category.name}", category)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def cmd_tx_add(ctx: CliContext, args) -> None:
    account = ctx.account(args.account)
    category_id = ctx.category(args.category).id if args.category else None
    tx = ctx.workspace().add_transaction(
        account_id=account.id,
        date=parse_date(args.date or "today"),
        amount=parse_amount(args.amount),
        category_id=category_id,
        payee_name=args.payee,
        cleared=args.cleared,
        memo=args.memo,
    )
    ctx.out.success(f"Added transaction: {format_money(tx.amount, ctx.currency())} on {tx.date}", tx)


def cmd_tx_list(ctx: CliContext, args) -> None:
    budget_id = ctx.active_budget_id()
    account_id = ctx.account(args.account).id if args.account else None
    month = require_month(args.month) if args.month else None
    txs = list_transactions(ctx.db, budget_id, account_id=account_id, month=month)
    currency = ctx.currency()
    categories = {c.id: c.name for c in ctx.store.list_categories(budget_id)}
    accounts = {a.id: a.name for a in ctx.store.list_accounts(budget_id)}
    payees = {p.id: p.name for p in ctx.store.list_payees(budget_id)}

    def describe(tx) -> str:
        if tx.is_transfer:
            return f"Transfer: {accounts.get(tx.transfer_account_id, '?')}"
        return categories.get(tx.category_id, "Uncategorized")

    ctx.out.emit(
        [_plain(t) for t in txs],
        lambda: ctx.out.rows(
            ["ID", "Date", "Account", "Payee", "Category", "Amount", "C"],
            [
                [t.id, t.date, accounts.get(t.account_id, ""), payees.get(t.payee_id, ""),
                 describe(t), format_money(t.amount, currency), "x" if t.cleared else ""]
                for t in txs
            ],
        ),
        [t.id for t in txs],
    )


def cmd_tx_show(ctx: CliContext, args) -> None:
    budget_id = ctx.active_budget_id()
    tx = ctx.store.get_transaction(args.transaction_id)
    accounts = {a.id: a.name for a in ctx.store.list_accounts(budget_id)}
    if tx is None or tx.account_id not in accounts:
        raise NotFoundError(f"Transaction not found: {args.transaction_id}")
    currency = ctx.currency()
    payee = ctx.store.get_payee(tx.payee_id) if tx.payee_id else None
    category = ctx.store.get_category(tx.category_id) if tx.category_id else None

    def table():
        ctx.out._print(f"Transaction: {tx.id}")
        ctx.out._print(f"Date:        {tx.date}")
        ctx.out._print(f"Account:     {accounts[tx.account_id]}")
        ctx.out._print(f"Amount:      {format_money(tx.amount, currency)}")
        ctx.out._print(f"Payee:       {payee.name if payee else '-'}")
        if tx.is_transfer:
            ctx.out._print(f"Transfer:    {accounts.get(tx.transfer_account_id, '?')}")
        else:
            ctx.out._print(f"Category:    {category.name if category else 'Uncategorized'}")
        ctx.out._print(f"Cleared:     {'yes' if tx.cleared else 'no'}")
        if tx.memo:
            ctx.out._print(f"Memo:        {tx.memo}")

    ctx.out.emit(_plain(tx), table, [tx.id])


def cmd_tx_edit(ctx: CliContext, args) -> None:
    changes: Dict[str, Any] = {}
    if args.amount is not None:
        changes["amount"] = parse_amount(args.amount)
    if args.date is not None:
        changes["date"] = parse_date(args.date)
    if args.category is not None:
        changes["category_id"] = ctx.category(args.category).id
    if args.memo is not None:
        changes["memo"] = args.memo
    if args.cleared is not None:
        changes["cleared"] = args.cleared
    if not changes and not args.payee:
        raise ValidationError("Nothing to update: give at least one of --amount, --date, --payee, "
                              "--category, --memo, --cleared/--no-cleared")
    tx = ctx.workspace().update_transaction(args.transaction_id, payee_name=args.payee, **changes)
    ctx.out.success(f"Updated transaction: {format_money(tx.amount, ctx.currency())} on {tx.date}", tx)


def cmd_tx_delete(ctx: CliContext, args) -> None:
    deleted = ctx.workspace().delete_transaction(args.transaction_id)
    ctx.out.success(
        f"Deleted {len(deleted)} transaction(s)",
        {"id": deleted[0].id, "deleted": [t.id for t in deleted]},
    )


def cmd_transfer(ctx: CliContext, args) -> None:
    source, destination = ctx.account(args.from_account), ctx.account(args.to_account)
    outflow, inflow = ctx.workspace().create_transfer(
        source.id,
        destination.id,
        parse_date(args.date or "today"),
        parse_amount(args.amount),
        memo=args.memo,
    )
    ctx.out.success(
        f"Transferred {format_money(inflow.amount, ctx.currency())} from {source.name} to {destination.name}",
        {"id": outflow.id, "outflow": _plain(outflow), "inflow": _plain(inflow)},
    )


# ---------------------------------------------------------------------------
# Assignments & month view
# ---------------------------------------------------------------------------


def cmd_assign(ctx: CliContext, args) -> None:
    category = ctx.category(args.category)
    month = _month_arg(args.month)
    assignment = ctx.workspace(month).assign(category.id, month, parse_amount(args.amount))
    ctx.out.success(
        f"Assigned {format_money(assignment.amount, ctx.currency())} to {category.name} for {month}",
        assignment,
    )


def cmd_move(ctx: CliContext, args) -> None:
    source, destination = ctx.category(args.from_category), ctx.category(args.to_category)
    month = _month_arg(args.month)
    amount = parse_amount(args.amount)
    ctx.workspace(month).move(source.id, destination.id, month, amount)
    ctx.out.success(
        f"Moved {format_money(amount, ctx.currency())} from {source.name} to {destination.name} for {month}",
        {"from": source.id, "to": destination.id, "month": month, "amount": amount},
    )


def cmd_month(ctx: CliContext, args) -> None:
    snapshot = ctx.workspace(_month_arg(args.month)).refresh()
    currency = snapshot.budget.currency
    data = {
        "month": snapshot.month,
        "readyToAssign": snapshot.ready_to_assign,
        "uncategorizedActivity": snapshot.uncategorized_activity,
        "categories": [
            {"id": r.category_id, "name": r.name, "assigned": r.assigned,
             "activity": r.activity, "available": r.closing}
            for r in snapshot.categories
        ],
    }

    def table():
        ctx.out._print(f"Month: {snapshot.month}")
        ctx.out._print(f"Ready to assign: {format_money(snapshot.ready_to_assign, currency)}")
        ctx.out._print()
        ctx.out.rows(
            ["Category", "Assigned", "Activity", "Available"],
            [
                [r.name, format_money(r.assigned, currency), format_money(r.activity, currency),
                 format_money(r.closing, currency)]
                for r in snapshot.categories
            ],
        )
        if snapshot.uncategorized_activity:
            ctx.out._print()
            ctx.out._print(f"Uncategorized: {format_money(snapshot.uncategorized_activity, currency)}")

    ctx.out.emit(data, table, [r.category_id for r in snapshot.categories])


def cmd_assign_list(ctx: CliContext, args) -> None:
    budget_id = ctx.active_budget_id()
    month = _month_arg(args.month)
    currency = ctx.currency()
    groups = {g.id: g for g in ctx.store.list_groups(budget_id)}
    categories = {c.id: c for c in ctx.store.list_categories(budget_id)}
    previous = get_last_assignments_before_month(ctx.db, budget_id, month)
    assignments = sorted(
        list_month_assignments(ctx.db, budget_id, month),
        key=lambda a: (groups[categories[a.category_id].group_id].sort_order, categories[a.category_id].sort_order),
    )
    total = sum(a.amount for a in assignments)
    data = {
        "month": month,
        "assignments": [
            {
                "categoryId": a.category_id,
                "categoryName": categories[a.category_id].name,
                "groupName": groups[categories[a.category_id].group_id].name,
                "amount": a.amount,
                "previousAmount": previous[a.category_id].amount if a.category_id in previous else None,
            }
            for a in assignments
        ],
        "total": total,
    }

    def table():
        if not assignments:
            ctx.out._print(f"No assignments for {month}")
            return
        ctx.out._print(f"Assignments for {month}")
        ctx.out._print()
        ctx.out.rows(
            ["Group", "Category", "Assigned", "Previous"],
            [
                [row["groupName"], row["categoryName"], format_money(row["amount"], currency),
                 "" if row["previousAmount"] is None else format_money(row["previousAmount"], currency)]
                for row in data["assignments"]
            ],
        )
        ctx.out._print()
        ctx.out._print(f"Total assigned: {format_money(total, currency)}")

    ctx.out.emit(data, table, [a.id for a in assignments])


def cmd_assign_clear(ctx: CliContext, args) -> None:
    category = ctx.category(args.category)
    month = _month_arg(args.month)
    existing = ctx.store.get_assignment(category.id, month)
    if not ctx.workspace(month).clear_assignment(category.id, month):
        ctx.out.success(f"No assignment to clear for {category.name} in {month}",
                        {"id": category.id, "month": month, "cleared": False})
        return
    ctx.out.success(
        f"Cleared {format_money(existing.amount, ctx.currency())} assignment from {category.name} for {month}",
        {"id": category.id, "month": month, "cleared": True, "amount": existing.amount},
    )


def cmd_available(ctx: CliContext, args) -> None:
    snapshot = ctx.workspace(_month_arg(args.month)).refresh()
    formatted = format_money(snapshot.ready_to_assign, snapshot.budget.currency)
    ctx.out.emit(
        {"month": snapshot.month, "readyToAssign": snapshot.ready_to_assign, "formatted": formatted},
        lambda: ctx.out._print(f"Ready to Assign ({snapshot.month}): {formatted}"),
        [str(snapshot.ready_to_assign)],
    )


def cmd_status(ctx: CliContext, args) -> None:
    snapshot = ctx.workspace(_month_arg(args.month)).refresh()
    currency = snapshot.budget.currency
    groups = [
        (g, [r for r in snapshot.categories if r.group_id == g.id])
        for g in sorted(snapshot.groups, key=lambda g: g.sort_order)
    ]
    data = {
        "month": snapshot.month,
        "readyToAssign": snapshot.ready_to_assign,
        "groups": [
            {
                "id": g.id,
                "name": g.name,
                "categories": [
                    {"id": r.category_id, "name": r.name, "assigned": r.assigned,
                     "activity": r.activity, "available": r.closing}
                    for r in rows
                ],
            }
            for g, rows in groups
        ],
    }

    def table():
        ctx.out._print(f"Budget: {snapshot.budget.name} - {snapshot.month}")
        ctx.out._print(f"Ready to Assign: {format_money(snapshot.ready_to_assign, currency)}")
        for group, rows in groups:
            ctx.out._print()
            ctx.out._print(group.name)
            ctx.out.rows(
                ["  Category", "Assigned", "Activity", "Available"],
                [
                    [f"  {r.name}", format_money(r.assigned, currency), format_money(r.activity, currency),
                     format_money(r.closing, currency)]
                    for r in rows
                ],
            )

    ctx.out.emit(data, table, [r.category_id for r in snapshot.categories])


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------

# Short names accepted on the command line
TARGET_TYPE_ALIASES = {
    "spending": "spending_limit",
    "savings": "savings_balance",
    "monthly": "monthly_contribution",
}


def cmd_target_set(ctx: CliContext, args) -> None:
    category = ctx.category(args.category)
    target_type = TARGET_TYPE_ALIASES.get(args.type, args.type)
    target_date = parse_date(args.by) if args.by else None
    existed = ctx.store.get_target(category.id) is not None
    target = ctx.workspace().set_target(category.id, target_type, parse_amount(args.amount), target_date)
    verb = "Updated" if existed else "Set"
    ctx.out.success(
        f"{verb} target for {category.name}: {target.type} {format_money(target.amount, ctx.currency())}",
        target,
    )


def cmd_target_show(ctx: CliContext, args) -> None:
    category = ctx.category(args.category)
    if ctx.store.get_target(category.id) is None:
        raise NotFoundError(f"No target set for {category.name}")
    progress = ctx.workspace(_month_arg(args.month)).target_progress(category.id)
    currency = ctx.currency()
    target = progress.target
    data = {
        "category": category.name,
        "month": progress.month,
        "target": _plain(target),
        "progress": {"current": progress.current, "remaining": progress.remaining, "percent": progress.percent},
    }

    def table():
        ctx.out._print(f"Target for {category.name} ({progress.month})")
        ctx.out._print(f"Type:      {target.type}")
        ctx.out._print(f"Amount:    {format_money(target.amount, currency)}")
        if target.target_date:
            ctx.out._print(f"By:        {target.target_date}")
        ctx.out._print(f"Current:   {format_money(progress.current, currency)}")
        ctx.out._print(f"Remaining: {format_money(progress.remaining, currency)}")
        ctx.out._print(f"Progress:  {progress.percent:.1f}%")

    ctx.out.emit(data, table, [target.id])


def cmd_target_clear(ctx: CliContext, args) -> None:
    category = ctx.category(args.category)
    if not ctx.workspace().clear_target(category.id):
        raise NotFoundError(f"No target set for {category.name}")
    ctx.out.success(f"Cleared target for {category.name}", {"id": category.id})


# ---------------------------------------------------------------------------
# Payees
# ---------------------------------------------------------------------------


def _payee_transactions(ctx: CliContext, payee_id: str) -> list:
    return [t for t in ctx.store.list_budget_transactions(ctx.active_budget_id()) if t.payee_id == payee_id]


def cmd_payee_list(ctx: CliContext, args) -> None:
    payees = ctx.store.list_payees(ctx.active_budget_id())
    counts = {p.id: 0 for p in payees}
    for t in ctx.store.list_budget_transactions(ctx.active_budget_id()):
        if t.payee_id in counts:
            counts[t.payee_id] += 1
    ctx.out.emit(
        [{**_plain(p), "transactions": counts[p.id]} for p in payees],
        lambda: ctx.out.rows(["ID", "Name", "Transactions"], [[p.id, p.name, counts[p.id]] for p in payees]),
        [p.id for p in payees],
    )


def cmd_payee_show(ctx: CliContext, args) -> None:
    payee = ctx.payee(args.payee)
    transactions = _payee_transactions(ctx, payee.id)
    recent = transactions[-args.limit:][::-1] if args.limit > 0 else []
    currency = ctx.currency()
    data = {
        **_plain(payee),
        "transactionCount": len(transactions),
        "total": sum(t.amount for t in transactions),
        "recentTransactions": [_plain(t) for t in recent],
    }

    def table():
        ctx.out._print(f"Payee:        {payee.name}")
        ctx.out._print(f"ID:           {payee.id}")
        ctx.out._print(f"Transactions: {len(transactions)}")
        ctx.out._print(f"Total:        {format_money(data['total'], currency)}")
        if recent:
            ctx.out._print()
            ctx.out.rows(
                ["ID", "Date", "Amount"],
                [[t.id, t.date, format_money(t.amount, currency)] for t in recent],
            )

    ctx.out.emit(data, table, [payee.id])


def cmd_payee_edit(ctx: CliContext, args) -> None:
    payee = ctx.payee(args.payee)
    renamed = ctx.workspace().rename_payee(payee.id, args.name)
    ctx.out.success(f"Renamed payee: {payee.name} -> {renamed.name}", renamed)


def cmd_payee_delete(ctx: CliContext, args) -> None:
    payee, cleared = ctx.workspace().delete_payee(ctx.payee(args.payee).id)
    ctx.out.success(
        f"Deleted payee: {payee.name} (cleared from {cleared} transaction(s))",
        {**_plain(payee), "clearedTransactions": cleared},
    )


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


def cmd_export(ctx: CliContext, args) -> None:
    document = export_budget(ctx.db, ctx.active_budget_id())
    text = json.dumps(document, indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(text)
        ctx.out.success(f"Exported budget to {args.output}", {"id": document["budget"]["id"]})
    else:
        ctx.out._print(text)


def cmd_import(ctx: CliContext, args) -> None:
    try:
        with open(args.file, encoding="utf-8") as fh:
            document = json.load(fh)
    except OSError as exc:
        raise ValidationError(f"Cannot read {args.file}: {exc.strerror}") from exc
    except ValueError as exc:
        raise ValidationError(f"Invalid JSON in {args.file}: {exc}") from exc
    budget = ImportBudgetUseCase(ctx.db).execute(document)
    if get_active_budget_id(ctx.db_key) is None:
        set_active_budget_id(ctx.db_key, budget.id)
    ctx.out.success(f"Imported budget: {budget.name}", budget)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="envelope", description="Envelope budgeting ledger")
    parser.add_argument("--db", help="Path to SQLite database file")
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--quiet", action="store_true", help="Minimal output (IDs only)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create", help="Create a new budget")
    p.add_argument("name")
    p.add_argument("--currency", default=None, help="Currency code (default: USD)")
    p.set_defaults(func=cmd_create)

    sub.add_parser("list", help="List all budgets").set_defaults(func=cmd_list)

    p = sub.add_parser("use", help="Set active budget for subsequent commands")
    p.add_argument("budget", help="Budget id or name")
    p.set_defaults(func=cmd_use)

    sub.add_parser("show", help="Show active budget details").set_defaults(func=cmd_show)

    p = sub.add_parser("delete", help="Delete a budget")
    p.add_argument("budget_id")
    p.set_defaults(func=cmd_delete)

    account = sub.add_parser("account", help="Manage accounts").add_subparsers(dest="action", required=True)
    p = account.add_parser("add", help="Add an account")
    p.add_argument("name")
    p.add_argument("--type", default="checking", help="checking, savings, credit, cash, tracking")
    p.add_argument("--off-budget", action="store_true", help="Create as tracking (off-budget) account")
    p.set_defaults(func=cmd_account_add)
    account.add_parser("list", help="List accounts").set_defaults(func=cmd_account_list)
    p = account.add_parser("show", help="Show account balances and recent transactions")
    p.add_argument("account", help="Account id or name")
    p.add_argument("--limit", type=int, default=10, help="Number of recent transactions to show")
    p.set_defaults(func=cmd_account_show)
    p = account.add_parser("edit", help="Rename an account or change its type")
    p.add_argument("account", help="Account id or name")
    p.add_argument("--name", help="New account name")
    p.add_argument("--type", help="New account type: checking, savings, credit, cash, tracking")
    p.set_defaults(func=cmd_account_edit)
    p = account.add_parser("delete", help="Delete an account with its transactions")
    p.add_argument("account", help="Account id or name")
    p.set_defaults(func=cmd_account_delete)

    group = sub.add_parser("group", help="Manage category groups").add_subparsers(dest="action", required=True)
    p = group.add_parser("add", help="Add a category group")
    p.add_argument("name")
    p.set_defaults(func=cmd_group_add)
    group.add_parser("list", help="List category groups").set_defaults(func=cmd_group_list)
    p = group.add_parser("rename", help="Rename a category group")
    p.add_argument("group", help="Category group id or name")
    p.add_argument("name", help="New name")
    p.set_defaults(func=cmd_group_rename)
    p = group.add_parser("delete", help="Delete a category group and its categories")
    p.add_argument("group", help="Category group id or name")
    p.set_defaults(func=cmd_group_delete)

    category = sub.add_parser("category", help="Manage categories").add_subparsers(dest="action", required=True)
    p = category.add_parser("add", help="Add a category")
    p.add_argument("name")
    p.add_argument("--group", required=True, help="Category group id or name")
    p.set_defaults(func=cmd_category_add)
    category.add_parser("list", help="List categories").set_defaults(func=cmd_category_list)
    p = category.add_parser("rename", help="Rename a category")
    p.add_argument("category", help="Category id or name")
    p.add_argument("name", help="New name")
    p.set_defaults(func=cmd_category_rename)
    p = category.add_parser("move", help="Move a category to another group")
    p.add_argument("category", help="Category id or name")
    p.add_argument("--group", required=True, help="Destination group id or name")
    p.set_defaults(func=cmd_category_move)
    p = category.add_parser("delete", help="Delete a category (its transactions become uncategorized)")
    p.add_argument("category", help="Category id or name")
    p.set_defaults(func=cmd_category_delete)

    tx = sub.add_parser("tx", help="Manage transactions").add_subparsers(dest="action", required=True)
    p = tx.add_parser("add", help="Add a transaction")
    p.add_argument("--account", required=True, help="Account id or name")
    p.add_argument("--amount", required=True, help="Amount (negative for outflow)")
    p.add_argument("--payee", help="Payee name")
    p.add_argument("--category", help="Category id or name")
    p.add_argument("--date", help="Transaction date (default: today)")
    p.add_argument("--memo", help="Transaction memo")
    p.add_argument("--cleared", action="store_true", help="Mark as cleared")
    p.set_defaults(func=cmd_tx_add)
    p = tx.add_parser("list", help="List transactions")
    p.add_argument("--account", help="Filter by account")
    p.add_argument("--month", help="Filter by month (YYYY-MM)")
    p.set_defaults(func=cmd_tx_list)
    p = tx.add_parser("show", help="Show transaction details")
    p.add_argument("transaction_id")
    p.set_defaults(func=cmd_tx_show)
    p = tx.add_parser("edit", help="Edit a transaction (mirrored on the other transfer leg)")
    p.add_argument("transaction_id")
    p.add_argument("--amount", help="New amount")
    p.add_argument("--date", help="New date")
    p.add_argument("--payee", help="New payee name")
    p.add_argument("--category", help="New category id or name")
    p.add_argument("--memo", help="New memo")
    p.add_argument("--cleared", action=argparse.BooleanOptionalAction, default=None,
                   help="Mark as cleared (--no-cleared for uncleared)")
    p.set_defaults(func=cmd_tx_edit)
    p = tx.add_parser("delete", help="Delete a transaction (both legs for transfers)")
    p.add_argument("transaction_id")
    p.set_defaults(func=cmd_tx_delete)

    p = sub.add_parser("transfer", help="Transfer money between accounts")
    p.add_argument("--from", dest="from_account", required=True, help="Source account id or name")
    p.add_argument("--to", dest="to_account", required=True, help="Destination account id or name")
    p.add_argument("--amount", required=True)
    p.add_argument("--date", help="Transfer date (default: today)")
    p.add_argument("--memo")
    p.set_defaults(func=cmd_transfer)

    p = sub.add_parser("assign", help="Assign money to a category (replaces the month's amount)")
    p.add_argument("category", help="Category id or name")
    p.add_argument("amount")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_assign)

    p = sub.add_parser("move", help="Move assigned money between categories")
    p.add_argument("from_category")
    p.add_argument("to_category")
    p.add_argument("amount")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_move)

    p = sub.add_parser("month", help="Category balances and ready to assign")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_month)

    p = sub.add_parser("assign-list", help="List the assignments of a month")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_assign_list)

    p = sub.add_parser("assign-clear", help="Remove the assignment of a category for a month")
    p.add_argument("category", help="Category id or name")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_assign_clear)

    p = sub.add_parser("available", help="Show ready to assign")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_available)

    p = sub.add_parser("status", help="Budget overview by category group")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_status)

    target = sub.add_parser("target", help="Manage category targets").add_subparsers(dest="action", required=True)
    p = target.add_parser("set", help="Set or replace the target of a category")
    p.add_argument("category", help="Category id or name")
    p.add_argument("--amount", required=True, help="Target amount")
    p.add_argument("--type", default="monthly",
                   help="spending, savings, monthly (or spending_limit, savings_balance, monthly_contribution)")
    p.add_argument("--by", help="Target date for savings targets")
    p.set_defaults(func=cmd_target_set)
    p = target.add_parser("show", help="Show target progress for a category")
    p.add_argument("category", help="Category id or name")
    p.add_argument("--month", help="Month in YYYY-MM format (default: current)")
    p.set_defaults(func=cmd_target_show)
    p = target.add_parser("clear", help="Remove the target of a category")
    p.add_argument("category", help="Category id or name")
    p.set_defaults(func=cmd_target_clear)

    payee = sub.add_parser("payee", help="Manage payees").add_subparsers(dest="action", required=True)
    payee.add_parser("list", help="List payees").set_defaults(func=cmd_payee_list)
    p = payee.add_parser("show", help="Show a payee with recent transactions")
    p.add_argument("payee", help="Payee id or name")
    p.add_argument("--limit", type=int, default=10, help="Number of recent transactions to show")
    p.set_defaults(func=cmd_payee_show)
    p = payee.add_parser("edit", help="Rename a payee")
    p.add_argument("payee", help="Payee id or name")
    p.add_argument("--name", required=True, help="New payee name")
    p.set_defaults(func=cmd_payee_edit)
    p = payee.add_parser("delete", help="Delete a payee (its transactions keep their amounts)")
    p.add_argument("payee", help="Payee id or name")
    p.set_defaults(func=cmd_payee_delete)

    p = sub.add_parser("export", help="Export the active budget as JSON")
    p.add_argument("--output", "-o", help="Write to file instead of stdout")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Import a budget from a JSON export")
    p.add_argument("file")
    p.set_defaults(func=cmd_import)

    return parser


def _open_database(db_path: Optional[str]) -> tuple[Database, str]:
    """Store handle plus the key its active budget is remembered under"""
    if db_path:
        path = os.path.abspath(os.path.expanduser(db_path))
        database = Database(f"sqlite:///{path}")
    else:
        database = Database()
    key = sqlite_file_path(database.url) or database.url
    return database.open(), key


def main(argv: Optional[Sequence[str]] = None, stdout=None, stderr=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        stream=stderr or sys.stderr,
    )
    out = Output(as_json=args.json, quiet=args.quiet, stream=stdout, err_stream=stderr)

    database = None
    try:
        database, key = _open_database(args.db)
        db = database.session()
        try:
            args.func(CliContext(db, key, out), args)
        finally:
            db.close()
    except (LedgerError, ValueError) as exc:
        out.error(exc)
        return 1
    finally:
        if database is not None:
            database.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
