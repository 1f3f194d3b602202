"""
Tests for the command-line interface
"""
import json
import os

import pytest

from envelope.cli import get_active_budget_id, main


@pytest.fixture
def cli(tmp_path, monkeypatch, capsys):
    """Run the CLI against a temporary database and config directory"""
    monkeypatch.setenv("BUDGET_CONFIG_DIR", str(tmp_path / "config"))
    db_path = str(tmp_path / "budget.sqlite")

    def run(*args, db=db_path):
        code = main(["--db", db, *args])
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    run.db_path = db_path
    return run


def _json(out):
    return json.loads(out)


def test_create_sets_active_budget(cli):
    code, out, _ = cli("create", "Home")
    assert code == 0
    assert "Created budget: Home" in out

    config_file = os.path.join(os.environ["BUDGET_CONFIG_DIR"], "config.json")
    with open(config_file) as fh:
        config = json.load(fh)
    active = config["databases"][os.path.abspath(cli.db_path)]["activeBudgetId"]
    assert active == get_active_budget_id(os.path.abspath(cli.db_path))


def test_json_output(cli):
    code, out, _ = cli("--json", "create", "Home", "--currency", "EUR")
    payload = _json(out)
    assert code == 0
    assert payload["success"] is True
    assert payload["data"]["currency"] == "EUR"

    _, out, _ = cli("--json", "list")
    assert [b["name"] for b in _json(out)] == ["Home"]


def test_no_active_budget(cli):
    code, out, err = cli("account", "list")
    assert code == 1
    assert out == ""
    assert err.startswith("Error: No active budget")

    code, _, err = cli("--json", "account", "list")
    assert code == 1
    assert _json(err) == {"success": False, "error": 'No active budget. Use "envelope use <id|name>" to select a budget.'}


def test_use_by_name(cli):
    cli("create", "Home")
    _, out, _ = cli("--quiet", "create", "Work")
    work_id = out.strip()

    code, out, _ = cli("use", "work")
    assert code == 0
    assert get_active_budget_id(os.path.abspath(cli.db_path)) == work_id

    code, _, err = cli("use", "Nowhere")
    assert code == 1
    assert "Budget not found" in err


def test_budget_flow(cli):
    cli("create", "Home")
    assert cli("account", "add", "Checking", "--type", "checking")[0] == 0
    assert cli("account", "add", "House", "--off-budget")[0] == 0
    assert cli("group", "add", "Bills")[0] == 0
    assert cli("category", "add", "Rent", "--group", "bills")[0] == 0

    code, _, err = cli("tx", "add", "--account", "Checking", "--amount", "1,000", "--date", "2025-01-02",
                       "--payee", "Employer", "--cleared")
    assert code == 0, err
    assert cli("tx", "add", "--account", "Checking", "--amount", "-250.50", "--date", "1/15/2025",
               "--category", "Rent")[0] == 0
    assert cli("assign", "Rent", "600", "--month", "2025-01")[0] == 0

    code, out, _ = cli("--json", "month", "--month", "2025-01")
    month = _json(out)
    assert code == 0
    # 1,000.00 - 250.50 on budget, 600.00 assigned, 250.50 spent from Rent
    assert month["readyToAssign"] == 40000
    assert month["categories"] == [{
        "id": month["categories"][0]["id"],
        "name": "Rent",
        "assigned": 60000,
        "activity": -25050,
        "available": 34950,
    }]

    _, out, _ = cli("month", "--month", "2025-01")
    assert "Ready to assign: $400.00" in out
    assert "$349.50" in out

    _, out, _ = cli("--quiet", "tx", "list", "--month", "2025-01")
    assert len(out.split()) == 2

    _, out, _ = cli("account", "list")
    assert "$749.50" in out


def test_transfer_and_delete(cli):
    cli("create", "Home")
    cli("account", "add", "Checking")
    cli("account", "add", "Savings", "--type", "savings")

    code, out, _ = cli("--json", "transfer", "--from", "Checking", "--to", "Savings", "--amount", "50",
                       "--date", "2025-02-01")
    assert code == 0
    data = _json(out)["data"]
    assert data["outflow"]["amount"] == -5000
    assert data["inflow"]["amount"] == 5000

    code, out, _ = cli("tx", "delete", data["inflow"]["id"])
    assert code == 0
    assert "Deleted 2 transaction(s)" in out
    assert cli("--quiet", "tx", "list")[1] == ""


def test_move(cli):
    cli("create", "Home")
    cli("group", "add", "Everyday")
    cli("category", "add", "Groceries", "--group", "Everyday")
    cli("category", "add", "Fun", "--group", "Everyday")
    cli("assign", "Groceries", "300", "--month", "2025-01")

    code, out, _ = cli("move", "Groceries", "Fun", "100", "--month", "2025-01")
    assert code == 0
    assert "Moved $100.00 from Groceries to Fun for 2025-01" in out

    _, out, _ = cli("--json", "month", "--month", "2025-01")
    assigned = {c["name"]: c["assigned"] for c in _json(out)["categories"]}
    assert assigned == {"Groceries": 20000, "Fun": 10000}


def test_invalid_input(cli):
    cli("create", "Home")
    cli("account", "add", "Checking")

    code, _, err = cli("tx", "add", "--account", "Checking", "--amount", "lots")
    assert code == 1
    assert "Invalid amount: lots" in err

    code, _, err = cli("tx", "add", "--account", "Nope", "--amount", "5")
    assert code == 1
    assert "Account not found: Nope" in err

    code, _, err = cli("assign", "Rent", "5", "--month", "2025-13")
    assert code == 1


def test_export_and_import_into_another_database(cli, tmp_path):
    cli("create", "Home")
    cli("account", "add", "Checking")
    cli("tx", "add", "--account", "Checking", "--amount", "10", "--date", "2025-01-05")
    export_file = str(tmp_path / "home.json")
    assert cli("export", "--output", export_file)[0] == 0

    other_db = str(tmp_path / "other.sqlite")
    code, out, _ = cli("import", export_file, db=other_db)
    assert code == 0
    assert "Imported budget: Home" in out

    _, out, _ = cli("--quiet", "tx", "list", db=other_db)
    assert len(out.split()) == 1

    code, _, err = cli("import", str(tmp_path / "missing.json"), db=other_db)
    assert code == 1
    assert "Cannot read" in err


def test_delete_clears_active_budget(cli):
    _, out, _ = cli("--quiet", "create", "Home")
    budget_id = out.strip()
    assert cli("delete", budget_id)[0] == 0
    assert get_active_budget_id(os.path.abspath(cli.db_path)) is None
    assert cli("show")[0] == 1


def test_unwritable_database_location(cli, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    code, _, err = cli("list", db=str(blocker / "budget.sqlite"))
    assert code == 1
    assert "Cannot create directory" in err


def test_account_show_edit_delete(cli):
    cli("create", "Home")
    cli("account", "add", "Checking")
    cli("tx", "add", "--account", "Checking", "--amount", "100", "--date", "2025-01-02", "--cleared")
    cli("tx", "add", "--account", "Checking", "--amount", "-25", "--date", "2025-01-03")

    code, out, _ = cli("account", "show", "checking")
    assert code == 0
    assert "Cleared:   $100.00" in out
    assert "Uncleared: -$25.00" in out
    assert "Balance:   $75.00" in out

    _, out, _ = cli("account", "edit", "Checking", "--name", "Main", "--type", "cash")
    assert "Updated account: Main (cash)" in out
    code, _, err = cli("account", "edit", "Main")
    assert code == 1
    assert "Nothing to update" in err

    _, out, _ = cli("account", "delete", "Main")
    assert "Deleted account: Main" in out
    assert cli("--quiet", "account", "list")[1] == ""


def test_group_and_category_commands(cli):
    cli("create", "Home")
    cli("group", "add", "Bills")
    cli("group", "add", "Fun")
    cli("category", "add", "Rent", "--group", "Bills")
    cli("category", "add", "Games", "--group", "Fun")

    _, out, _ = cli("--json", "group", "list")
    assert [(g["name"], g["categories"]) for g in _json(out)] == [("Bills", 1), ("Fun", 1)]

    assert "Renamed category group: Fun -> Leisure" in cli("group", "rename", "Fun", "Leisure")[1]
    assert "Renamed category: Games -> Hobbies" in cli("category", "rename", "Games", "Hobbies")[1]
    assert "Moved category Hobbies to Bills" in cli("category", "move", "Hobbies", "--group", "Bills")[1]
    assert "Deleted category group: Leisure" in cli("group", "delete", "Leisure")[1]
    assert "Deleted category: Rent" in cli("category", "delete", "Rent")[1]

    _, out, _ = cli("--json", "category", "list")
    assert [c["name"] for c in _json(out)] == ["Hobbies"]


def test_tx_show_and_edit(cli):
    cli("create", "Home")
    cli("account", "add", "Checking")
    cli("group", "add", "Bills")
    cli("category", "add", "Rent", "--group", "Bills")
    _, out, _ = cli("--quiet", "tx", "add", "--account", "Checking", "--amount", "-50", "--date", "2025-01-05")
    tx_id = out.strip()

    code, out, _ = cli("tx", "edit", tx_id, "--amount", "-75", "--category", "Rent", "--payee", "Landlord",
                       "--cleared")
    assert code == 0
    assert "Updated transaction: -$75.00 on 2025-01-05" in out

    _, out, _ = cli("tx", "show", tx_id)
    assert "Payee:       Landlord" in out
    assert "Category:    Rent" in out
    assert "Cleared:     yes" in out
    assert _json(cli("--json", "tx", "show", tx_id)[1])["amount"] == -7500

    cli("tx", "edit", tx_id, "--no-cleared")
    assert _json(cli("--json", "tx", "show", tx_id)[1])["cleared"] is False

    code, _, err = cli("tx", "edit", tx_id)
    assert code == 1
    assert "Nothing to update" in err
    code, _, err = cli("tx", "show", "missing")
    assert code == 1
    assert "Transaction not found: missing" in err


def test_assignment_views(cli):
    cli("create", "Home")
    cli("account", "add", "Checking")
    cli("group", "add", "Bills")
    cli("category", "add", "Rent", "--group", "Bills")
    cli("category", "add", "Power", "--group", "Bills")
    cli("tx", "add", "--account", "Checking", "--amount", "2000", "--date", "2025-01-02")
    cli("assign", "Rent", "600", "--month", "2025-01")
    cli("assign", "Rent", "650", "--month", "2025-02")
    cli("assign", "Power", "50", "--month", "2025-02")

    data = _json(cli("--json", "assign-list", "--month", "2025-02")[1])
    assert [(a["categoryName"], a["amount"], a["previousAmount"]) for a in data["assignments"]] == [
        ("Rent", 65000, 60000),
        ("Power", 5000, None),
    ]
    assert data["total"] == 70000
    assert "Total assigned: $700.00" in cli("assign-list", "--month", "2025-02")[1]

    assert "Ready to Assign (2025-02): $700.00" in cli("available", "--month", "2025-02")[1]
    assert _json(cli("--json", "available", "--month", "2025-02")[1]) == {
        "month": "2025-02", "readyToAssign": 70000, "formatted": "$700.00",
    }

    status = _json(cli("--json", "status", "--month", "2025-02")[1])
    assert status["readyToAssign"] == 70000
    assert [(c["name"], c["available"]) for c in status["groups"][0]["categories"]] == [
        ("Rent", 125000),
        ("Power", 5000),
    ]

    _, out, _ = cli("assign-clear", "Power", "--month", "2025-02")
    assert "Cleared $50.00 assignment from Power for 2025-02" in out
    code, out, _ = cli("assign-clear", "Power", "--month", "2025-02")
    assert code == 0
    assert "No assignment to clear" in out
    assert "$750.00" in cli("available", "--month", "2025-02")[1]


def test_target_commands(cli):
    cli("create", "Home")
    cli("group", "add", "Bills")
    cli("category", "add", "Rent", "--group", "Bills")
    cli("assign", "Rent", "300", "--month", "2025-01")

    _, out, _ = cli("target", "set", "Rent", "--amount", "1200", "--type", "monthly")
    assert "Set target for Rent: monthly_contribution $1,200.00" in out
    _, out, _ = cli("target", "set", "Rent", "--amount", "600", "--type", "monthly")
    assert out.startswith("Updated target for Rent")

    shown = _json(cli("--json", "target", "show", "Rent", "--month", "2025-01")[1])
    assert shown["progress"] == {"current": 30000, "remaining": 30000, "percent": 50.0}
    assert "Progress:  50.0%" in cli("target", "show", "Rent", "--month", "2025-01")[1]

    code, _, err = cli("target", "set", "Rent", "--amount", "10", "--type", "wishlist")
    assert code == 1
    assert "Invalid target type" in err

    assert "Cleared target for Rent" in cli("target", "clear", "Rent")[1]
    code, _, err = cli("target", "clear", "Rent")
    assert code == 1
    assert "No target set for Rent" in err


def test_payee_commands(cli):
    cli("create", "Home")
    cli("account", "add", "Checking")
    cli("tx", "add", "--account", "Checking", "--amount", "-20", "--date", "2025-01-05", "--payee", "Cafe")
    cli("tx", "add", "--account", "Checking", "--amount", "-30", "--date", "2025-01-06", "--payee", "cafe")
    cli("tx", "add", "--account", "Checking", "--amount", "-5", "--date", "2025-01-07", "--payee", "Bakery")

    payees = _json(cli("--json", "payee", "list")[1])
    assert [(p["name"], p["transactions"]) for p in payees] == [("Bakery", 1), ("Cafe", 2)]

    shown = _json(cli("--json", "payee", "show", "cafe")[1])
    assert (shown["transactionCount"], shown["total"]) == (2, -5000)
    assert [t["amount"] for t in shown["recentTransactions"]] == [-3000, -2000]

    code, _, err = cli("payee", "edit", "Cafe", "--name", "BAKERY")
    assert code == 1
    assert 'A payee with the name "BAKERY" already exists' in err
    assert "Renamed payee: Cafe -> Coffee bar" in cli("payee", "edit", "Cafe", "--name", "Coffee bar")[1]

    _, out, _ = cli("payee", "delete", "Coffee bar")
    assert "Deleted payee: Coffee bar (cleared from 2 transaction(s))" in out
    assert [p["name"] for p in _json(cli("--json", "payee", "list")[1])] == ["Bakery"]
