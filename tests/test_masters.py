import pytest


@pytest.fixture
def stations(client, admin) -> dict:
    created = {}
    for code, name, city in (("ndls", "New Delhi", "Delhi"), ("BCT", "Mumbai Central", "Mumbai"), ("HWH", "Howrah Junction", "Kolkata")):
        resp = client.post("/api/stations", json={"code": code, "name": name, "city": city}, headers=admin["headers"])
        assert resp.status_code == 201
        created[resp.json()["data"]["code"]] = resp.json()["data"]
    return created


TRAIN = {
    "train_no": "12952",
    "name": "Mumbai Rajdhani",
    "from_station": "ndls",
    "to_station": "BCT",
    "days": "1111111",
    "seats": {"3A": 320, "2A": 100},
    "fares": {"3A": 2450, "2A": 3400.5},
}


def test_station_crud(client, admin, customer, stations) -> None:
    listed = client.get("/api/stations", headers=customer["headers"]).json()["data"]
    assert [row["code"] for row in listed] == ["BCT", "HWH", "NDLS"]

    search = client.get("/api/stations", params={"q": "mumbai"}, headers=customer["headers"]).json()["data"]
    assert [row["code"] for row in search] == ["BCT"]

    duplicate = client.post("/api/stations", json={"code": "NDLS", "name": "Again"}, headers=admin["headers"])
    assert duplicate.status_code == 400
    assert client.post("/api/stations", json={"code": "PUNE", "name": "Pune"}, headers=customer["headers"]).status_code == 403

    station_id = stations["HWH"]["station_id"]
    update = client.patch(f"/api/stations/{station_id}", json={"state": "West Bengal"}, headers=admin["headers"])
    assert update.json()["data"]["state"] == "West Bengal"
    assert client.patch(f"/api/stations/{station_id}", json={"name": None}, headers=admin["headers"]).status_code == 400

    assert client.delete(f"/api/stations/{station_id}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/stations/{station_id}", headers=customer["headers"]).status_code == 404
    assert client.get("/api/stations").status_code == 401


def test_train_crud(client, admin, customer, stations) -> None:
    resp = client.post("/api/trains", json=TRAIN, headers=admin["headers"])
    assert resp.status_code == 201
    train = resp.json()["data"]
    assert train["from_station"] == "NDLS"
    assert train["from_station_name"] == "New Delhi"
    assert train["to_station_name"] == "Mumbai Central"
    assert train["fares"] == {"3A": 2450.0, "2A": 3400.5}

    listed = client.get("/api/trains", params={"from_station": "ndls"}, headers=customer["headers"]).json()["data"]
    assert [row["train_no"] for row in listed] == ["12952"]

    update = client.patch(f"/api/trains/{train['train_id']}", json={"to_station": "HWH", "days": "1010100"}, headers=admin["headers"])
    assert update.status_code == 200
    assert update.json()["data"]["to_station_name"] == "Howrah Junction"
    assert update.json()["data"]["days"] == "1010100"

    assert client.delete(f"/api/trains/{train['train_id']}", headers=customer["headers"]).status_code == 403
    assert client.delete(f"/api/trains/{train['train_id']}", headers=admin["headers"]).status_code == 200
    assert client.get("/api/trains", headers=customer["headers"]).json()["data"] == []


def test_train_validation(client, admin, stations) -> None:
    assert client.post("/api/trains", json={**TRAIN, "days": "11111"}, headers=admin["headers"]).status_code == 400
    assert client.post("/api/trains", json={**TRAIN, "to_station": "NDLS"}, headers=admin["headers"]).status_code == 400
    unknown = client.post("/api/trains", json={**TRAIN, "to_station": "MAS"}, headers=admin["headers"])
    assert unknown.status_code == 400
    assert unknown.json()["message"] == "unknown station MAS"

    assert client.post("/api/trains", json=TRAIN, headers=admin["headers"]).status_code == 201
    assert client.post("/api/trains", json=TRAIN, headers=admin["headers"]).status_code == 400


def test_station_on_a_route_cannot_be_deleted(client, admin, stations) -> None:
    client.post("/api/trains", json=TRAIN, headers=admin["headers"])
    resp = client.delete(f"/api/stations/{stations['BCT']['station_id']}", headers=admin["headers"])
    assert resp.status_code == 409
    assert resp.json()["message"] == "related records exist"


def test_booking_and_pnr_show_master_names(client, admin, customer, stations, booking_payload) -> None:
    train_id = client.post("/api/trains", json=TRAIN, headers=admin["headers"]).json()["data"]["train_id"]
    booking_id = client.post("/api/bookings", json=booking_payload(), headers=customer["headers"]).json()["data"]["booking_id"]
    client.post("/api/billing", json={"booking_id": booking_id, "railway_fare": 2450}, headers=admin["headers"])

    pnr = client.post(
        f"/api/bookings/{booking_id}/pnrs",
        json={"pnr_number": "2456789012", "train_no": "12952", "booking_amount": 2450},
        headers=admin["headers"],
    )
    assert pnr.status_code == 201
    assert pnr.json()["data"]["train_name"] == "Mumbai Rajdhani"

    detail = client.get(f"/api/bookings/{booking_id}", headers=customer["headers"]).json()["data"]
    assert detail["from_station_name"] == "New Delhi"
    assert detail["to_station_name"] == "Mumbai Central"

    client.patch(f"/api/trains/{train_id}", json={"is_active": False}, headers=admin["headers"])
    stopped = client.post(
        f"/api/bookings/{booking_id}/pnrs",
        json={"pnr_number": "2456789013", "train_no": "12952", "booking_amount": 100},
        headers=admin["headers"],
    )
    assert stopped.status_code == 400
    assert stopped.json()["message"] == "train 12952 is not running"
