from datetime import date

from yatrasathi.finance import financial_year


def _pay(client, user, customer_id, amount, **extra):
    payload = {"customer_id": customer_id, "amount": amount, "mode": "Cash"}
    payload.update(extra)
    return client.post("/api/payments", json=payload, headers=user["headers"])


def test_auto_allocation_is_fifo_by_travel_date(client, admin, customer, issue_pnr) -> None:
    later = issue_pnr(customer["id"], "5550000002", 1000, days=40)
    earlier = issue_pnr(customer["id"], "5550000001", 800, days=10)

    resp = _pay(client, admin, customer["id"], 1200)
    assert resp.status_code == 201
    payment = resp.json()["data"]
    assert [(row["pnr_id"], row["amount"]) for row in payment["allocations"]] == [
        (earlier["pnr_id"], 800.0),
        (later["pnr_id"], 400.0),
    ]
    assert payment["unallocated_amount"] == 0.0
    assert payment["status"] == "ADJUSTED"
    assert payment["financial_year"] is not None

    first = client.get(f"/api/payments/pnrs/{earlier['pnr_id']}/status", headers=customer["headers"]).json()["data"]
    second = client.get(f"/api/payments/pnrs/{later['pnr_id']}/status", headers=customer["headers"]).json()["data"]
    assert first["payment_status"] == "PAID"
    assert second["payment_status"] == "PARTIAL"
    assert second["pending_amount"] == 600.0

    pending = client.get(f"/api/payments/customer/{customer['id']}/pending-pnrs", headers=admin["headers"]).json()["data"]
    assert [row["pnr_number"] for row in pending["pnrs"]] == ["5550000002"]
    assert pending["total_pending"] == 600.0


def test_surplus_becomes_advance(client, admin, customer, issue_pnr) -> None:
    issue_pnr(customer["id"], "6660000001", 1100)
    resp = _pay(client, admin, customer["id"], 1500)
    payment = resp.json()["data"]
    assert payment["allocated_amount"] == 1100.0
    assert payment["unallocated_amount"] == 400.0
    assert payment["status"] == "RECEIVED"

    advance = client.get(f"/api/payments/customer/{customer['id']}/advance", headers=customer["headers"]).json()["data"]
    assert advance["total_advance"] == 400.0
    assert advance["by_financial_year"][0]["financial_year"] == payment["financial_year"]


def test_manual_allocation_limits(client, admin, customer, other_customer, issue_pnr) -> None:
    pnr = issue_pnr(customer["id"], "7770000001", 500)
    foreign = issue_pnr(other_customer["id"], "7770000009", 500)
    payment_id = _pay(client, admin, customer["id"], 800, auto_allocate=False).json()["data"]["payment_id"]

    over_pnr = client.post(f"/api/payments/{payment_id}/allocate", json={"pnr_id": pnr["pnr_id"], "amount": 600}, headers=admin["headers"])
    assert over_pnr.status_code == 400
    assert over_pnr.json()["error"] == "validation_error"

    wrong_customer = client.post(f"/api/payments/{payment_id}/allocate", json={"pnr_id": foreign["pnr_id"], "amount": 100}, headers=admin["headers"])
    assert wrong_customer.status_code == 400

    ok_resp = client.post(f"/api/payments/{payment_id}/allocate", json={"pnr_id": pnr["pnr_id"], "amount": 500}, headers=admin["headers"])
    assert ok_resp.status_code == 200
    assert ok_resp.json()["data"]["unallocated_amount"] == 300.0

    nothing_left = client.post(f"/api/payments/{payment_id}/auto-allocate", headers=admin["headers"])
    assert nothing_left.json()["data"]["new_allocations"] == 0


def test_allocation_cannot_exceed_unallocated(client, admin, customer, issue_pnr) -> None:
    pnr = issue_pnr(customer["id"], "8880000001", 1000)
    payment_id = _pay(client, admin, customer["id"], 300, auto_allocate=False).json()["data"]["payment_id"]
    resp = client.post(f"/api/payments/{payment_id}/allocate", json={"pnr_id": pnr["pnr_id"], "amount": 400}, headers=admin["headers"])
    assert resp.status_code == 400


def test_reference_required_for_non_cash_modes(client, admin, customer) -> None:
    resp = _pay(client, admin, customer["id"], 100, mode="UPI")
    assert resp.status_code == 400
    resp = _pay(client, admin, customer["id"], 100, mode="UPI", reference_no="UPI-1")
    assert resp.status_code == 201
    resp = _pay(client, admin, customer["id"], 100, mode="Barter")
    assert resp.status_code == 400
    resp = _pay(client, admin, customer["id"], 0)
    assert resp.status_code == 400


def test_refund_unallocated_and_against_pnr(client, admin, customer, issue_pnr) -> None:
    pnr = issue_pnr(customer["id"], "9990000001", 1100)
    payment_id = _pay(client, admin, customer["id"], 1500).json()["data"]["payment_id"]

    too_much = client.post(f"/api/payments/{payment_id}/refund", json={"amount": 500}, headers=admin["headers"])
    assert too_much.status_code == 400

    resp = client.post(f"/api/payments/{payment_id}/refund", json={"amount": 400}, headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["data"]["refunded_amount"] == 400.0
    assert resp.json()["data"]["unallocated_amount"] == 0.0

    resp = client.post(
        f"/api/payments/{payment_id}/refund",
        json={"amount": 100, "pnr_id": pnr["pnr_id"], "reason": "berth not provided"},
        headers=admin["headers"],
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["refunded_amount"] == 500.0
    assert data["allocations"][-1]["amount"] == -100.0

    status = client.get(f"/api/payments/pnrs/{pnr['pnr_id']}/status", headers=admin["headers"]).json()["data"]
    assert status["paid_amount"] == 1000.0
    assert status["payment_status"] == "PARTIAL"

    # DEBIT 1100 (PNR), CREDIT 1500 (payment), DEBIT 400 and 100 (refunds)
    ledger = client.get(f"/api/payments/customer/{customer['id']}/ledger", headers=customer["headers"]).json()["data"]
    assert [entry["entry_type"] for entry in ledger["entries"]] == ["DEBIT", "CREDIT", "DEBIT", "DEBIT"]
    assert ledger["balance"] == 100.0


def test_full_refund_closes_payment(client, admin, customer) -> None:
    payment_id = _pay(client, admin, customer["id"], 250).json()["data"]["payment_id"]
    resp = client.post(f"/api/payments/{payment_id}/refund", json={"amount": 250}, headers=admin["headers"])
    assert resp.json()["data"]["status"] == "REFUNDED"
    again = client.post(f"/api/payments/{payment_id}/refund", json={"amount": 1}, headers=admin["headers"])
    assert again.status_code == 409


def test_verify_requires_accounts_role(client, admin, accountant, agent, customer) -> None:
    payment_id = _pay(client, admin, customer["id"], 300).json()["data"]["payment_id"]

    assert client.post(f"/api/payments/{payment_id}/verify", headers=agent["headers"]).status_code == 403
    assert client.post(f"/api/payments/{payment_id}/verify", headers=customer["headers"]).status_code == 403

    resp = client.post(f"/api/payments/{payment_id}/verify", headers=accountant["headers"])
    assert resp.status_code == 200
    assert resp.json()["data"]["verification_status"] == "VERIFIED"
    assert resp.json()["data"]["verified_by"] == accountant["id"]

    again = client.post(f"/api/payments/{payment_id}/verify", headers=admin["headers"])
    assert again.status_code == 400


def test_reject_reverses_credit(client, accountant, customer) -> None:
    payment_id = _pay(client, accountant, customer["id"], 300).json()["data"]["payment_id"]
    resp = client.post(f"/api/payments/{payment_id}/reject", json={"reason": "cheque bounced"}, headers=accountant["headers"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "REJECTED"
    assert data["unallocated_amount"] == 0.0

    ledger = client.get(f"/api/payments/customer/{customer['id']}/ledger", headers=accountant["headers"]).json()["data"]
    assert ledger["balance"] == 0.0
    advance = client.get(f"/api/payments/customer/{customer['id']}/advance", headers=accountant["headers"]).json()["data"]
    assert advance["total_advance"] == 0.0


def test_delete_payment_guard(client, admin, accountant, customer, issue_pnr) -> None:
    issue_pnr(customer["id"], "1230000001", 200)
    allocated_id = _pay(client, admin, customer["id"], 200).json()["data"]["payment_id"]
    free_id = _pay(client, admin, customer["id"], 50).json()["data"]["payment_id"]

    assert client.delete(f"/api/payments/{free_id}", headers=accountant["headers"]).status_code == 403
    blocked = client.delete(f"/api/payments/{allocated_id}", headers=admin["headers"])
    assert blocked.status_code == 400
    assert blocked.json()["message"] == "cannot delete a payment with allocations"

    assert client.delete(f"/api/payments/{free_id}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/payments/{free_id}", headers=admin["headers"]).status_code == 404


def test_customer_payment_visibility(client, admin, customer, other_customer) -> None:
    payment_id = _pay(client, admin, customer["id"], 100).json()["data"]["payment_id"]
    assert client.get(f"/api/payments/{payment_id}", headers=customer["headers"]).status_code == 200
    assert client.get(f"/api/payments/{payment_id}", headers=other_customer["headers"]).status_code == 403
    assert client.get("/api/payments", headers=other_customer["headers"]).json()["data"] == []
    assert _pay(client, customer, customer["id"], 100).status_code == 403


def test_outstanding_report(client, admin, customer, other_customer, issue_pnr) -> None:
    issue_pnr(customer["id"], "3210000001", 900)
    issue_pnr(other_customer["id"], "3210000002", 300)
    _pay(client, admin, other_customer["id"], 300)

    resp = client.get("/api/payments/reports/outstanding", headers=admin["headers"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [row["customer_id"] for row in data["customers"]] == [customer["id"]]
    assert data["total_outstanding"] == 900.0


def test_year_end_closing(client, admin, customer, issue_pnr) -> None:
    pnr = issue_pnr(customer["id"], "4560000001", 1000)
    fyear = financial_year(date.fromisoformat(pnr["travel_date"]))
    _pay(client, admin, customer["id"], 400, payment_date=pnr["travel_date"])

    resp = client.post("/api/payments/year-end-closing", json={"financial_year": fyear}, headers=admin["headers"])
    assert resp.status_code == 201
    closing = resp.json()["data"]
    assert closing["pnrs_closed"] == 1
    assert closing["total_receivables"] == 600.0
    assert closing["total_advances"] == 0.0

    again = client.post("/api/payments/year-end-closing", json={"financial_year": fyear}, headers=admin["headers"])
    assert again.status_code == 409

    blocked = _pay(client, admin, customer["id"], 100, payment_date=pnr["travel_date"])
    assert blocked.status_code == 409
    assert blocked.json()["message"] == f"financial year {fyear} is closed"

    listing = client.get("/api/payments/year-end-closing", headers=admin["headers"]).json()["data"]
    assert [row["financial_year"] for row in listing] == [fyear]

    invalid = client.post("/api/payments/year-end-closing", json={"financial_year": "2025-27"}, headers=admin["headers"])
    assert invalid.status_code == 400


def test_split_allocation_shares_equally(client, admin, customer, issue_pnr) -> None:
    pnrs = [issue_pnr(customer["id"], f"777000000{n}", 500, days=10 + n) for n in range(3)]
    payment_id = _pay(client, admin, customer["id"], 1000, auto_allocate=False).json()["data"]["payment_id"]

    empty = client.post(f"/api/payments/{payment_id}/split-allocate", json={"pnr_ids": []}, headers=admin["headers"])
    assert empty.status_code == 200
    assert empty.json()["data"]["new_allocations"] == 0
    assert empty.json()["data"]["unallocated_amount"] == 1000.0

    resp = client.post(
        f"/api/payments/{payment_id}/split-allocate",
        json={"pnr_ids": [pnr["pnr_id"] for pnr in pnrs], "amount": 900},
        headers=admin["headers"],
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["new_allocations"] == 3
    assert sorted(row["amount"] for row in data["allocations"]) == [300.0, 300.0, 300.0]
    assert data["unallocated_amount"] == 100.0


def test_split_allocation_remainder_goes_to_first_pnr(client, admin, customer, issue_pnr) -> None:
    first = issue_pnr(customer["id"], "7780000001", 500)
    second = issue_pnr(customer["id"], "7780000002", 500)
    third = issue_pnr(customer["id"], "7780000003", 500)
    payment_id = _pay(client, admin, customer["id"], 100, auto_allocate=False).json()["data"]["payment_id"]

    resp = client.post(
        f"/api/payments/{payment_id}/split-allocate",
        json={"pnr_ids": [first["pnr_id"], second["pnr_id"], third["pnr_id"]]},
        headers=admin["headers"],
    )
    assert resp.status_code == 200
    amounts = {row["pnr_id"]: row["amount"] for row in resp.json()["data"]["allocations"]}
    assert amounts == {first["pnr_id"]: 33.34, second["pnr_id"]: 33.33, third["pnr_id"]: 33.33}
    assert resp.json()["data"]["unallocated_amount"] == 0.0
