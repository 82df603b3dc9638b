from datetime import date

from services.periods import month_of
from tests.helpers.ledger import (
    load_allocation,
    load_goal,
    load_transaction,
    make_category,
    make_goal,
    make_transaction,
)

MONTH = "2025-03"


def _revert(client, allocation_id):
    return client.request("DELETE", "/api/credits/allocate", json={"allocation_id": allocation_id})


def test_unallocated_lists_month(client):
    credit_id = make_transaction(45.5, "Target refund", on=date(2025, 3, 12))
    make_transaction(10, "Other month", on=date(2025, 4, 1))

    response = client.get("/api/credits/unallocated", params={"month": MONTH})

    assert response.status_code == 200
    body = response.json()
    assert [c["id"] for c in body["credits"]] == [credit_id]
    assert body["credits"][0]["remainingAmount"] == 45.5
    assert body["allocatedCredits"] == []
    assert set(body) == {"credits", "allocatedCredits", "goals", "expenseCategories", "pendingReturns", "spreadItems"}


def test_unallocated_defaults_to_current_month(client):
    credit_id = make_transaction(12, "Refund", on=date.today())

    response = client.get("/api/credits/unallocated")

    assert response.status_code == 200
    assert [c["id"] for c in response.json()["credits"]] == [credit_id]


def test_unallocated_rejects_bad_month(client):
    response = client.get("/api/credits/unallocated", params={"month": "2025-13"})

    assert response.status_code == 422
    assert "error" in response.json()


def test_allocate_return_end_to_end(client):
    refund_id = make_transaction(150, "AMAZON.COM REFUND", on=date(2025, 3, 20))
    purchase_id = make_transaction(-150, "Amazon", on=date(2025, 3, 1), is_return=True, return_status="pending")

    response = client.post(
        "/api/credits/allocate",
        json={"credit_id": refund_id, "action": "return", "amount": 150.0, "original_id": purchase_id},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["complete"] is True
    assert body["remainingAmount"] == 0.0
    assert body["allocation"]["allocation_type"] == "return"
    assert body["allocation"]["amount"] == 150.0
    assert body["allocation"]["period"] == MONTH

    purchase = load_transaction(purchase_id)
    assert purchase.remaining_cents == 0
    assert purchase.return_status == "received"

    triage = client.get("/api/credits/unallocated", params={"month": MONTH}).json()
    assert triage["credits"] == []
    assert [c["id"] for c in triage["allocatedCredits"]] == [refund_id]


def test_allocate_goal_partial(client):
    credit_id = make_transaction(200, "Bonus", on=date(2025, 3, 3))
    goal_id = make_goal("Emergency fund", 500, current=100)

    response = client.post(
        "/api/credits/allocate",
        json={"credit_id": credit_id, "action": "goal", "amount": 80, "goal_id": goal_id},
    )

    assert response.status_code == 200
    assert response.json()["complete"] is False
    assert response.json()["remainingAmount"] == 120.0
    assert load_goal(goal_id).current_cents == 18000
    assert load_transaction(credit_id).credit_allocation == "partial"


def test_allocate_spend_offset(client):
    credit_id = make_transaction(25, "Rebate")
    groceries = make_category("Groceries")

    response = client.post(
        "/api/credits/allocate",
        json={"credit_id": credit_id, "action": "spend_offset", "amount": "10.005", "category_id": groceries},
    )

    assert response.status_code == 200
    assert response.json()["allocation"]["amount"] == 10.01
    assert response.json()["allocation"]["label"] == "Offset: Groceries"


def test_allocate_over_remaining_is_conflict(client):
    credit_id = make_transaction(100, "Refund")
    client.post("/api/credits/allocate", json={"credit_id": credit_id, "action": "other_income", "amount": 60})

    response = client.post(
        "/api/credits/allocate", json={"credit_id": credit_id, "action": "tax_refund", "amount": 60}
    )

    assert response.status_code == 409
    assert response.json()["code"] == "AmountExceedsRemaining"
    assert "error" in response.json()


def test_allocate_unknown_credit_is_not_found(client):
    response = client.post("/api/credits/allocate", json={"credit_id": 999, "action": "other_income", "amount": 5})

    assert response.status_code == 404
    assert response.json()["code"] == "NotFound"


def test_allocate_requires_target_for_action(client):
    credit_id = make_transaction(50, "Refund")

    response = client.post("/api/credits/allocate", json={"credit_id": credit_id, "action": "goal", "amount": 5})

    assert response.status_code == 422


def test_allocate_rejects_unknown_action(client):
    credit_id = make_transaction(50, "Refund")

    response = client.post("/api/credits/allocate", json={"credit_id": credit_id, "action": "lottery", "amount": 5})

    assert response.status_code == 422


def test_allocate_rejects_non_positive_amount(client):
    credit_id = make_transaction(50, "Refund")

    response = client.post(
        "/api/credits/allocate", json={"credit_id": credit_id, "action": "other_income", "amount": 0}
    )

    assert response.status_code == 422


def test_full_goal_is_conflict(client):
    credit_id = make_transaction(50, "Refund")
    goal_id = make_goal("Done", 100, current=100)

    response = client.post(
        "/api/credits/allocate", json={"credit_id": credit_id, "action": "goal", "amount": 5, "goal_id": goal_id}
    )

    assert response.status_code == 409
    assert response.json()["code"] == "GoalAlreadyFunded"


def test_revert_then_revert_again(client):
    credit_id = make_transaction(80, "Refund")
    created = client.post(
        "/api/credits/allocate", json={"credit_id": credit_id, "action": "other_income", "amount": 30}
    ).json()
    allocation_id = created["allocation"]["id"]

    first = _revert(client, allocation_id)
    second = _revert(client, allocation_id)

    assert first.status_code == 200
    assert first.json() == {"ok": True}
    assert second.status_code == 409
    assert second.json()["code"] == "AlreadyReverted"
    assert load_allocation(allocation_id).reverted is True
    credit = load_transaction(credit_id)
    assert credit.remaining_cents == 8000
    assert credit.credit_allocation == "unallocated"


def test_revert_unknown_allocation(client):
    response = _revert(client, 31337)

    assert response.status_code == 404


def test_reset_income_back_into_pool(client):
    income = make_category("Paycheck", "income")
    today = date.today()
    paycheck_id = make_transaction(900, "Payroll", on=today, category_id=income)

    before = client.get("/api/credits/unallocated", params={"month": month_of(today)}).json()
    assert before["credits"] == []

    response = client.post("/api/credits/reset", json={"transaction_id": paycheck_id})

    assert response.status_code == 200
    after = client.get("/api/credits/unallocated", params={"month": month_of(today)}).json()
    assert [c["id"] for c in after["credits"]] == [paycheck_id]
    assert after["credits"][0]["state"] == "unallocated"


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
