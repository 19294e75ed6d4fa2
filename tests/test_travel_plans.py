PLAN = {
    "title": "Goa weekend",
    "description": "Beach trip with family",
    "start_date": "2026-12-20",
    "end_date": "2026-12-23",
    "destination": "Goa",
    "budget": 25000,
    "activities": ["Baga beach", "Fort Aguada"],
}


def test_create_list_update_delete(client, customer) -> None:
    create_resp = client.post("/api/travel-plans", json=PLAN, headers=customer["headers"])
    assert create_resp.status_code == 201
    plan = create_resp.json()["data"]
    assert plan["owner_id"] == customer["id"]
    assert plan["budget"] == 25000.0
    assert plan["is_public"] is False

    mine = client.get("/api/travel-plans", headers=customer["headers"]).json()["data"]
    assert [row["plan_id"] for row in mine] == [plan["plan_id"]]

    update = client.patch(f"/api/travel-plans/{plan['plan_id']}", json={"budget": 30000, "is_public": True}, headers=customer["headers"])
    assert update.status_code == 200
    assert update.json()["data"]["budget"] == 30000.0

    bad_dates = client.patch(f"/api/travel-plans/{plan['plan_id']}", json={"end_date": "2026-12-01"}, headers=customer["headers"])
    assert bad_dates.status_code == 400

    assert client.delete(f"/api/travel-plans/{plan['plan_id']}", headers=customer["headers"]).status_code == 200
    assert client.get(f"/api/travel-plans/{plan['plan_id']}", headers=customer["headers"]).status_code == 404


def test_end_date_before_start_rejected(client, customer) -> None:
    resp = client.post("/api/travel-plans", json={**PLAN, "end_date": "2026-12-01"}, headers=customer["headers"])
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


def test_private_public_and_shared_visibility(client, customer, other_customer) -> None:
    private_id = client.post("/api/travel-plans", json=PLAN, headers=customer["headers"]).json()["data"]["plan_id"]
    public_id = client.post(
        "/api/travel-plans", json={**PLAN, "title": "Open itinerary", "is_public": True}, headers=customer["headers"]
    ).json()["data"]["plan_id"]

    assert client.get(f"/api/travel-plans/{private_id}", headers=other_customer["headers"]).status_code == 404
    assert client.get(f"/api/travel-plans/{public_id}", headers=other_customer["headers"]).status_code == 200

    public = client.get("/api/travel-plans", params={"scope": "public"}, headers=other_customer["headers"]).json()["data"]
    assert [row["plan_id"] for row in public] == [public_id]

    share = client.post(
        f"/api/travel-plans/{private_id}/share",
        json={"emails": ["VIKRAM@example.com", customer["email"]]},
        headers=customer["headers"],
    )
    assert share.status_code == 200
    assert share.json()["data"]["shared_with"] == [other_customer["email"]]

    shared = client.get("/api/travel-plans", params={"scope": "shared"}, headers=other_customer["headers"]).json()["data"]
    assert [row["plan_id"] for row in shared] == [private_id]
    assert client.get(f"/api/travel-plans/{private_id}", headers=other_customer["headers"]).status_code == 200

    edit = client.patch(f"/api/travel-plans/{private_id}", json={"title": "Mine now"}, headers=other_customer["headers"])
    assert edit.status_code == 403
    reshare = client.post(f"/api/travel-plans/{private_id}/share", json={"emails": ["x@example.com"]}, headers=other_customer["headers"])
    assert reshare.status_code == 403


def test_travel_plans_need_permission(client, accountant) -> None:
    assert client.post("/api/travel-plans", json=PLAN, headers=accountant["headers"]).status_code == 403


def test_public_plans_open_to_every_signed_in_user(client, customer, accountant) -> None:
    public_id = client.post(
        "/api/travel-plans", json={**PLAN, "is_public": True}, headers=customer["headers"]
    ).json()["data"]["plan_id"]
    private_id = client.post("/api/travel-plans", json=PLAN, headers=customer["headers"]).json()["data"]["plan_id"]

    public = client.get("/api/travel-plans", params={"scope": "public"}, headers=accountant["headers"])
    assert public.status_code == 200
    assert [row["plan_id"] for row in public.json()["data"]] == [public_id]
    assert client.get(f"/api/travel-plans/{public_id}", headers=accountant["headers"]).status_code == 200
    assert client.get(f"/api/travel-plans/{private_id}", headers=accountant["headers"]).status_code == 404

    assert client.get("/api/travel-plans", headers=accountant["headers"]).status_code == 403
    assert client.get("/api/travel-plans", params={"scope": "shared"}, headers=accountant["headers"]).status_code == 403
    assert client.get("/api/travel-plans", params={"scope": "public"}).status_code == 401


def test_patch_cannot_null_required_plan_fields(client, customer) -> None:
    plan_id = client.post("/api/travel-plans", json=PLAN, headers=customer["headers"]).json()["data"]["plan_id"]

    for body in ({"start_date": None}, {"title": None}, {"description": None}, {"budget": None}):
        resp = client.patch(f"/api/travel-plans/{plan_id}", json=body, headers=customer["headers"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    cleared = client.patch(f"/api/travel-plans/{plan_id}", json={"activities": None}, headers=customer["headers"])
    assert cleared.status_code == 200
    assert cleared.json()["data"]["activities"] == []
    assert cleared.json()["data"]["start_date"] == PLAN["start_date"]
