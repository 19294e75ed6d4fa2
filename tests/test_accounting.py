
import pytest

from yatrasathi.finance import financial_year
from yatrasathi.responses import today


@pytest.fixture
def ledgers(client, admin) -> dict:
    created = {}
    for name, ledger_type, opening in (
        ("Cash in Hand", "Cash", 50000),
        ("HDFC Bank", "Bank", 0),
        ("Office Rent", "Expense", 0),
        ("Commission Income", "Income", 0),
    ):
        resp = client.post(
            "/api/accounting/ledgers",
            json={"name": name, "ledger_type": ledger_type, "opening_balance": opening},
            headers=admin["headers"],
        )
        assert resp.status_code == 201
        created[name] = resp.json()["data"]
    return created


def _contra(client, user, amount=10000, **extra):
    payload = {"account": "HDFC Bank", "counter_account": "Cash in Hand", "entry_type": "Dr", "amount": amount}
    payload.update(extra)
    return client.post("/api/accounting/contra", json=payload, headers=user["headers"])


def test_ledger_master_endpoints(client, admin, customer, ledgers) -> None:
    dup = client.post(
        "/api/accounting/ledgers",
        json={"name": "HDFC Bank", "ledger_type": "Bank"},
        headers=admin["headers"],
    )
    assert dup.status_code == 400

    names = client.get("/api/accounting/ledgers/names", headers=admin["headers"]).json()["data"]
    assert names == ["Cash in Hand", "Commission Income", "HDFC Bank", "Office Rent"]

    cash_bank = client.get("/api/accounting/ledgers/cash-bank", headers=admin["headers"]).json()["data"]
    assert [row["name"] for row in cash_bank] == ["Cash in Hand", "HDFC Bank"]

    by_type = client.get("/api/accounting/ledgers", params={"type": "Expense"}, headers=admin["headers"]).json()["data"]
    assert [row["name"] for row in by_type] == ["Office Rent"]

    one = client.get("/api/accounting/ledgers/Office Rent", headers=admin["headers"])
    assert one.status_code == 200
    assert one.json()["data"]["ledger_type"] == "Expense"
    assert client.get("/api/accounting/ledgers/Nowhere", headers=admin["headers"]).status_code == 404

    update = client.patch("/api/accounting/ledgers/Office Rent", json={"description": "Monthly rent"}, headers=admin["headers"])
    assert update.json()["data"]["description"] == "Monthly rent"

    assert "Bank" in client.get("/api/accounting/ledgers/types", headers=admin["headers"]).json()["data"]
    assert client.get("/api/accounting/ledgers", headers=customer["headers"]).status_code == 403


def test_voucher_numbering_sequence(client, admin, ledgers) -> None:
    fyear = financial_year(today())
    peek = client.get("/api/accounting/contra/next-voucher", headers=admin["headers"]).json()["data"]
    assert peek["voucher_no"] == f"CT/{fyear}/0001"

    first = _contra(client, admin).json()["data"]
    second = _contra(client, admin, amount=500).json()["data"]
    assert first["voucher_no"] == f"CT/{fyear}/0001"
    assert second["voucher_no"] == f"CT/{fyear}/0002"
    assert first["voucher_type"] == "CONTRA"

    peek = client.get("/api/accounting/contra/next-voucher", headers=admin["headers"]).json()["data"]
    assert peek["voucher_no"] == f"CT/{fyear}/0003"

    journal_peek = client.get("/api/accounting/journal/next-voucher", headers=admin["headers"]).json()["data"]
    assert journal_peek["voucher_no"] == f"JN/{fyear}/0001"

    listing = client.get("/api/accounting/contra", headers=admin["headers"]).json()
    assert [row["voucher_no"] for row in listing["data"]] == [f"CT/{fyear}/0001", f"CT/{fyear}/0002"]
    assert listing["meta"]["total_amount"] == 10500.0
    assert client.get("/api/accounting/journal", headers=admin["headers"]).json()["data"] == []


def test_contra_restricted_to_cash_and_bank(client, admin, ledgers) -> None:
    resp = _contra(client, admin, account="Office Rent")
    assert resp.status_code == 400
    assert resp.json()["message"] == "contra entries are allowed only between cash and bank ledgers"


def test_journal_ledgers_must_differ(client, admin, ledgers) -> None:
    resp = client.post(
        "/api/accounting/journal",
        json={"account": "Office Rent", "counter_account": "Office Rent", "amount": 100},
        headers=admin["headers"],
    )
    assert resp.status_code == 400

    resp = client.post(
        "/api/accounting/journal",
        json={"account": "Office Rent", "counter_account": "Commission Income", "amount": 100},
        headers=admin["headers"],
    )
    assert resp.status_code == 201


def test_payment_voucher_mode_rules(client, admin, ledgers) -> None:
    base = {"account": "Office Rent", "counter_account": "HDFC Bank", "entry_type": "Dr", "amount": 15000}
    assert client.post("/api/accounting/payment", json=base, headers=admin["headers"]).status_code == 400
    assert client.post("/api/accounting/payment", json={**base, "mode": "Cheque"}, headers=admin["headers"]).status_code == 400

    no_cash = {**base, "counter_account": "Commission Income", "mode": "Bank"}
    assert client.post("/api/accounting/payment", json=no_cash, headers=admin["headers"]).status_code == 400

    resp = client.post(
        "/api/accounting/payment",
        json={
            **base,
            "mode": "Cheque",
            "cheque_no": "004512",
            "ledger_entries": [
                {"ledger": "Office Rent", "debit": 15000},
                {"ledger": "HDFC Bank", "credit": 15000},
            ],
        },
        headers=admin["headers"],
    )
    assert resp.status_code == 201
    voucher = resp.json()["data"]
    assert voucher["voucher_no"].startswith("PY/")
    assert voucher["balance_check"] is True
    assert len(voucher["ledger_entries"]) == 2


def test_ledger_balance_aggregation(client, admin, ledgers) -> None:
    _contra(client, admin, amount=10000)
    client.post(
        "/api/accounting/payment",
        json={"account": "Office Rent", "counter_account": "Cash in Hand", "entry_type": "Dr", "amount": 2500, "mode": "Cash"},
        headers=admin["headers"],
    )
    client.post(
        "/api/accounting/receipt",
        json={"account": "HDFC Bank", "counter_account": "Commission Income", "entry_type": "Dr", "amount": 4000, "mode": "Bank"},
        headers=admin["headers"],
    )

    cash = client.get("/api/accounting/ledgers/Cash in Hand/balance", headers=admin["headers"]).json()["data"]
    assert cash["opening_balance"] == 50000.0
    assert cash["total_credit"] == 12500.0
    assert cash["balance"] == 37500.0
    assert cash["side"] == "Dr"
    assert cash["voucher_count"] == 2

    bank = client.get("/api/accounting/ledgers/HDFC Bank/balance", headers=admin["headers"]).json()["data"]
    assert bank["total_debit"] == 14000.0
    assert bank["balance"] == 14000.0

    income = client.get("/api/accounting/ledgers/Commission Income/balance", headers=admin["headers"]).json()["data"]
    assert income["balance"] == 4000.0
    assert income["side"] == "Cr"


def test_update_delete_and_lock(client, admin, accountant, ledgers) -> None:
    voucher_id = _contra(client, accountant).json()["data"]["voucher_id"]

    update = client.put(f"/api/accounting/contra/{voucher_id}", json={"amount": 12000, "narration": "corrected"}, headers=accountant["headers"])
    assert update.status_code == 200
    assert update.json()["data"]["amount"] == 12000.0
    assert update.json()["data"]["modified_by"] == accountant["id"]

    assert client.get(f"/api/accounting/journal/{voucher_id}", headers=admin["headers"]).status_code == 404

    assert client.post(f"/api/accounting/contra/{voucher_id}/lock", headers=accountant["headers"]).status_code == 403
    lock = client.post(f"/api/accounting/contra/{voucher_id}/lock", headers=admin["headers"])
    assert lock.json()["data"]["locked"] is True

    assert client.put(f"/api/accounting/contra/{voucher_id}", json={"amount": 1}, headers=admin["headers"]).status_code == 409
    assert client.delete(f"/api/accounting/contra/{voucher_id}", headers=admin["headers"]).status_code == 409

    other_id = _contra(client, accountant, amount=300).json()["data"]["voucher_id"]
    deleted = client.delete(f"/api/accounting/contra/{other_id}", headers=accountant["headers"])
    assert deleted.json()["data"]["status"] == "Deleted"
    active = client.get("/api/accounting/contra", headers=admin["headers"]).json()["data"]
    assert [row["voucher_id"] for row in active] == [voucher_id]
    assert client.delete(f"/api/accounting/contra/{other_id}", headers=accountant["headers"]).status_code == 400


def test_modes(client, accountant) -> None:
    data = client.get("/api/accounting/modes", headers=accountant["headers"]).json()["data"]
    assert "Cheque" in data["modes"]
    assert data["cheque_modes"] == ["Cheque", "Draft"]


def test_year_end_closing_locks_vouchers(client, admin, ledgers) -> None:
    voucher_id = _contra(client, admin).json()["data"]["voucher_id"]
    fyear = financial_year(today())
    closing = client.post("/api/payments/year-end-closing", json={"financial_year": fyear}, headers=admin["headers"])
    assert closing.json()["data"]["vouchers_locked"] == 1

    assert client.get(f"/api/accounting/contra/{voucher_id}", headers=admin["headers"]).json()["data"]["locked"] is True
    blocked = _contra(client, admin)
    assert blocked.status_code == 409
