from tests.helpers.ledger import days_ago, load_transaction, make_category, make_transaction


def test_search_suggests_same_merchant(client):
    purchase_id = make_transaction(-42.17, "Target", on=days_ago(2))
    make_transaction(-13.99, "Netflix", on=days_ago(3))

    response = client.get(
        "/api/transactions/search",
        params={"type": "return", "credit_description": "Target Refund", "credit_amount": "42.17"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["suggested"]["id"] == purchase_id
    assert body["suggested"]["matchScore"] > 0.55
    assert body["days"] == 90
    assert body["nextDays"] == 180
    assert body["exhausted"] is False
    assert [r["id"] for r in body["results"]][0] == purchase_id
    assert len(body["results"]) == 2


def test_search_widening_finds_older_purchase(client):
    costco_id = make_transaction(-200, "Costco", on=days_ago(120))

    narrow = client.get("/api/transactions/search", params={"type": "return", "q": "costco"}).json()
    assert narrow["results"] == []

    wide = client.get(
        "/api/transactions/search", params={"type": "return", "q": "costco", "days": narrow["nextDays"]}
    ).json()
    assert [r["id"] for r in wide["results"]] == [costco_id]
    assert wide["days"] == 180


def test_search_clamps_window(client):
    response = client.get("/api/transactions/search", params={"type": "healthcare", "days": 5000})

    assert response.status_code == 200
    assert response.json()["days"] == 730
    assert response.json()["nextDays"] is None
    assert response.json()["exhausted"] is True


def test_search_rejects_unknown_type(client):
    response = client.get("/api/transactions/search", params={"type": "groceries"})

    assert response.status_code == 422


def test_search_reports_tagged_remaining(client):
    pending_id = make_transaction(
        -100, "Nordstrom", on=days_ago(10), is_return=True, return_status="pending",
        remaining_cents=4000, allocated_cents=6000,
    )

    body = client.get("/api/transactions/search", params={"type": "return"}).json()

    assert [t["id"] for t in body["tagged"]] == [pending_id]
    assert body["tagged"][0]["remainingAmount"] == 40.0
    assert body["tagged"][0]["returnedAmount"] == 60.0
    assert body["tagged"][0]["reimbursedAmount"] is None


def test_patch_flags_return(client):
    purchase_id = make_transaction(-59.99, "Gap", on=days_ago(4))

    response = client.patch("/api/transactions", json={"id": purchase_id, "is_return": True})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    purchase = load_transaction(purchase_id)
    assert purchase.is_return is True
    assert purchase.return_status == "pending"
    assert purchase.remaining_cents == 5999

    body = client.get("/api/transactions/search", params={"type": "return"}).json()
    assert [t["id"] for t in body["tagged"]] == [purchase_id]


def test_patch_recategorizes(client):
    purchase_id = make_transaction(-20, "CVS")
    healthcare = make_category("Healthcare")

    response = client.patch("/api/transactions", json={"id": purchase_id, "category_id": healthcare})

    assert response.status_code == 200
    assert load_transaction(purchase_id).category_id == healthcare


def test_patch_unflag_with_live_allocation_is_conflict(client):
    refund_id = make_transaction(30, "Refund")
    purchase_id = make_transaction(-60, "Shoes", is_return=True, return_status="pending")
    client.post(
        "/api/credits/allocate",
        json={"credit_id": refund_id, "action": "return", "amount": 30, "original_id": purchase_id},
    )

    response = client.patch("/api/transactions", json={"id": purchase_id, "is_return": False})

    assert response.status_code == 409
    assert response.json()["code"] == "InvariantViolation"
    assert load_transaction(purchase_id).is_return is True


def test_patch_unknown_transaction(client):
    response = client.patch("/api/transactions", json={"id": 4040, "is_return": True})

    assert response.status_code == 404


def test_close_shortfall(client):
    refund_id = make_transaction(60, "Partial refund")
    purchase_id = make_transaction(-100, "Best Buy", is_return=True, return_status="pending")
    client.post(
        "/api/credits/allocate",
        json={"credit_id": refund_id, "action": "return", "amount": 60, "original_id": purchase_id},
    )

    response = client.post("/api/transactions/close-shortfall", json={"transaction_id": purchase_id})

    assert response.status_code == 200
    purchase = load_transaction(purchase_id)
    assert purchase.remaining_cents == 0
    assert purchase.written_off_cents == 4000
    assert purchase.return_status == "received"


def test_close_shortfall_healthcare(client):
    visit_id = make_transaction(-250, "Dr Lee", is_healthcare=True, reimbursement_status="pending")

    response = client.post(
        "/api/transactions/close-shortfall", json={"transaction_id": visit_id, "type": "healthcare"}
    )

    assert response.status_code == 200
    visit = load_transaction(visit_id)
    assert visit.reimbursement_status == "complete"
    assert visit.written_off_cents == 25000
