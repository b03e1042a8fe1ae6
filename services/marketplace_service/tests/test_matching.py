import json
import pytest
from conftest import auth_headers
from database import SessionLocal
from models import Bid, Notification
from matching import haversine_km, parse_location
import matching

NAIROBI = (-1.2921, 36.8219)
THIKA = (-1.0333, 37.0693)
MOMBASA = (-4.0435, 39.6682)


def test_haversine_distances():
    assert haversine_km(*NAIROBI, *NAIROBI) == 0
    assert 35 < haversine_km(*NAIROBI, *THIKA) < 45
    assert 420 < haversine_km(*NAIROBI, *MOMBASA) < 460


def test_parse_location():
    assert parse_location(json.dumps({"lat": 1.5, "lng": 36.2})) == (1.5, 36.2)
    assert parse_location("Block A") is None
    assert parse_location(None) is None
    assert parse_location(json.dumps({"lat": 1.5})) is None


def notified_user_ids(request_id):
    with SessionLocal() as db:
        rows = db.query(Notification).filter(
            Notification.type == "new_request",
            Notification.related_entity_id == request_id
        ).all()
        return {n.user_id for n in rows}


def test_new_request_notifies_matching_providers(client, make_user, make_provider, service):
    owner = make_user("client@example.com")
    near_user, _ = make_provider("near@example.com", service_ids=[service.id], latitude=THIKA[0], longitude=THIKA[1])
    far_user, _ = make_provider("far@example.com", service_ids=[service.id], latitude=MOMBASA[0], longitude=MOMBASA[1])
    wrong_service_user, _ = make_provider("wrong@example.com", latitude=NAIROBI[0], longitude=NAIROBI[1])

    response = client.post(
        "/api/client/requests",
        json={
            "isService": True,
            "serviceId": service.id,
            "desiredPrice": 800,
            "location": json.dumps({"lat": NAIROBI[0], "lng": NAIROBI[1]}),
        },
        headers=auth_headers(owner),
    )
    assert response.status_code == 201

    assert notified_user_ids(response.json()["id"]) == {near_user.id}
    message = client.get("/api/notifications", headers=auth_headers(near_user)).json()[0]["message"]
    assert message == "New service request matching your profile"


def test_college_match_creates_auto_bid(client, make_user, make_provider, college):
    owner = make_user("client@example.com")
    alumni_user, alumni_id = make_provider("alumni@example.com", college_id=college.id)
    make_provider("outsider@example.com")

    response = client.post(
        "/api/client/requests",
        json={"isService": False, "productName": "Lab coat", "desiredPrice": 700, "collegeFilterId": college.id},
        headers=auth_headers(owner),
    )
    request_id = response.json()["id"]

    assert notified_user_ids(request_id) == {alumni_user.id}
    with SessionLocal() as db:
        bids = db.query(Bid).filter(Bid.request_id == request_id).all()
    assert len(bids) == 1
    assert bids[0].provider_id == alumni_id
    assert bids[0].price == 700
    assert bids[0].is_graduate_of_requested_college is True


def test_auto_bid_can_be_switched_off(client, make_user, make_provider, college, monkeypatch):
    monkeypatch.setattr(matching, "AUTO_BID_ON_COLLEGE_MATCH", False)
    owner = make_user("client@example.com")
    make_provider("alumni@example.com", college_id=college.id)

    response = client.post(
        "/api/client/requests",
        json={"isService": False, "productName": "Lab coat", "desiredPrice": 700, "collegeFilterId": college.id},
        headers=auth_headers(owner),
    )
    with SessionLocal() as db:
        assert db.query(Bid).filter(Bid.request_id == response.json()["id"]).count() == 0


def test_provider_feed_filters(client, make_user, make_provider, college, service):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com", service_ids=[service.id])
    headers = auth_headers(owner)

    near = client.post("/api/client/requests", json={
        "isService": True, "serviceId": service.id, "desiredPrice": 500,
        "location": json.dumps({"lat": THIKA[0], "lng": THIKA[1]}),
    }, headers=headers).json()
    far = client.post("/api/client/requests", json={
        "isService": False, "productName": "Fridge", "desiredPrice": 9000,
        "latitude": MOMBASA[0], "longitude": MOMBASA[1],
    }, headers=headers).json()
    other_college = client.post("/api/client/requests", json={
        "isService": False, "productName": "Gown", "collegeFilterId": college.id,
    }, headers=headers).json()

    feed = client.get("/api/provider/requests", headers=auth_headers(provider_user)).json()
    ids = {r["id"] for r in feed}
    assert near["id"] in ids and far["id"] in ids
    assert other_college["id"] not in ids

    nearby = client.get(
        f"/api/provider/requests?lat={NAIROBI[0]}&lng={NAIROBI[1]}&range=50",
        headers=auth_headers(provider_user),
    ).json()
    assert [r["id"] for r in nearby] == [near["id"]]

    by_service = client.get(
        "/api/provider/requests?filterByServices=true", headers=auth_headers(provider_user)
    ).json()
    assert [r["id"] for r in by_service] == [near["id"]]


@pytest.mark.parametrize("query", ["lat=91&lng=0", "lat=0&lng=-181", "lat=0&lng=0&range=0", "lat=0&lng=0&range=20000"])
def test_provider_feed_rejects_bad_coordinates(client, make_provider, query):
    provider_user, _ = make_provider("provider@example.com")
    response = client.get(f"/api/provider/requests?{query}", headers=auth_headers(provider_user))
    assert response.status_code == 400
    assert "error" in response.json()
