from tests.helpers.ledger import load_goal, load_recap, make_goal, make_recap

MONTH = "2025-03"


def test_get_recap(client):
    recap_id = make_recap(MONTH, 320)
    make_goal("Trip", 1000)

    body = client.get("/api/recap", params={"month": MONTH}).json()

    assert body["recap"]["id"] == recap_id
    assert body["recap"]["surplus_deficit"] == 320.0
    assert body["recap"]["remaining_amount"] == 320.0
    assert body["allocations"] == []
    assert [g["name"] for g in body["options"]["goals"]] == ["Trip"]


def test_get_recap_missing(client):
    body = client.get("/api/recap", params={"month": "2031-05"}).json()

    assert body["recap"] is None


def test_allocate_and_revert_recap(client):
    recap_id = make_recap(MONTH, 300)
    goal_id = make_goal("House", 5000)

    response = client.post(
        "/api/recap/allocate",
        json={"recap_id": recap_id, "allocation_type": "goal_contribution", "amount": 100, "target_goal_id": goal_id},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["complete"] is False
    assert load_goal(goal_id).current_cents == 10000

    reverted = client.request("DELETE", "/api/recap/allocate", json={"allocation_id": body["allocation"]["id"]})

    assert reverted.status_code == 200
    assert load_goal(goal_id).current_cents == 0
    assert load_recap(recap_id).allocated_cents == 0


def test_reset_existing_over_http(client):
    recap_id = make_recap(MONTH, 300)
    client.post("/api/recap/allocate", json={"recap_id": recap_id, "allocation_type": "bank_it", "amount": 300})

    blocked = client.post(
        "/api/recap/allocate", json={"recap_id": recap_id, "allocation_type": "next_month_boost", "amount": 300}
    )
    replaced = client.post(
        "/api/recap/allocate",
        json={"recap_id": recap_id, "allocation_type": "next_month_boost", "amount": 300, "reset_existing": True},
    )

    assert blocked.status_code == 409
    assert replaced.status_code == 200
    assert replaced.json()["complete"] is True
    body = client.get("/api/recap", params={"month": MONTH}).json()
    assert [a["allocation_type"] for a in body["allocations"]] == ["next_month_boost"]


def test_goal_types_need_goal(client):
    recap_id = make_recap(MONTH, 300)

    response = client.post(
        "/api/recap/allocate", json={"recap_id": recap_id, "allocation_type": "goal_contribution", "amount": 10}
    )

    assert response.status_code == 422
