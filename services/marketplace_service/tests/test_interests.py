from conftest import auth_headers
from database import SessionLocal
from models import ChatRoom, Interest, InterestStatus, Message


def open_request(client, owner, **overrides):
    payload = {"isService": False, "productName": "Bookshelf", "desiredPrice": 900}
    payload.update(overrides)
    response = client.post("/api/client/requests", json=payload, headers=auth_headers(owner))
    assert response.status_code == 201
    return response.json()


def express(client, provider_user, request_id, message="I can deliver today"):
    return client.post(
        f"/api/provider/interests/{request_id}",
        json={"message": message},
        headers=auth_headers(provider_user),
    )


def test_duplicate_interest_conflicts(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, provider_id = make_provider("provider@example.com")
    request = open_request(client, owner)

    first = express(client, provider_user, request["id"])
    assert first.status_code == 201
    assert first.json()["status"] == "pending"
    assert first.json()["providerId"] == provider_id

    second = express(client, provider_user, request["id"])
    assert second.status_code == 409
    assert second.json()["error"] == "Interest already exists for this request"

    with SessionLocal() as db:
        assert db.query(Interest).filter(Interest.request_id == request["id"]).count() == 1

    notifications = client.get("/api/notifications", headers=auth_headers(owner)).json()
    assert [n["type"] for n in notifications].count("new_interest") == 1


def test_interest_requires_request_accepting_interests(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = open_request(client, owner, allowInterests=False)

    response = express(client, provider_user, request["id"])
    assert response.status_code == 404
    assert response.json() == {"error": "Request not found or doesn't accept interests"}

    response = express(client, provider_user, 9999)
    assert response.status_code == 404


def test_accepting_twice_reuses_room(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = open_request(client, owner)
    interest = express(client, provider_user, request["id"]).json()

    first = client.post(f"/api/provider/interests/{interest['id']}/accept", headers=auth_headers(owner))
    assert first.status_code == 201
    room_id = first.json()["chatRoomId"]
    assert first.json()["interest"]["status"] == "accepted"
    assert first.json()["interest"]["chatRoomId"] == room_id

    second = client.post(f"/api/provider/interests/{interest['id']}/accept", headers=auth_headers(owner))
    assert second.status_code == 200
    assert second.json()["chatRoomId"] == room_id

    with SessionLocal() as db:
        assert db.query(ChatRoom).count() == 1
        room = db.get(ChatRoom, room_id)
        assert room.client_id == owner.id
        assert room.provider_id == provider_user.id
        assert room.request_id == request["id"]
        welcome = db.query(Message).filter(Message.chat_room_id == room_id).all()
        assert len(welcome) == 1
        assert welcome[0].is_system is True

    provider_notes = client.get("/api/notifications", headers=auth_headers(provider_user)).json()
    assert [n["type"] for n in provider_notes].count("interest_accepted") == 1


def test_accept_by_other_client_is_not_found(client, make_user, make_provider):
    owner = make_user("client@example.com")
    stranger = make_user("stranger@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = open_request(client, owner)
    interest = express(client, provider_user, request["id"]).json()

    response = client.post(f"/api/provider/interests/{interest['id']}/accept", headers=auth_headers(stranger))
    assert response.status_code == 404
    assert response.json() == {"error": "Interest not found or unauthorized"}
    with SessionLocal() as db:
        assert db.query(ChatRoom).count() == 0


def test_withdraw_accepted_interest_is_rejected(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = open_request(client, owner)
    interest = express(client, provider_user, request["id"]).json()
    accepted = client.post(f"/api/provider/interests/{interest['id']}/accept", headers=auth_headers(owner))
    room_id = accepted.json()["chatRoomId"]

    response = client.delete(f"/api/provider/interests/{interest['id']}", headers=auth_headers(provider_user))
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot withdraw an accepted interest"}

    with SessionLocal() as db:
        stored = db.get(Interest, interest["id"])
        assert stored.status == InterestStatus.ACCEPTED
        assert stored.chat_room_id == room_id
        assert db.get(ChatRoom, room_id) is not None


def test_withdraw_pending_interest(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = open_request(client, owner)
    interest = express(client, provider_user, request["id"]).json()

    response = client.delete(f"/api/provider/interests/{interest['id']}", headers=auth_headers(provider_user))
    assert response.status_code == 200
    with SessionLocal() as db:
        assert db.get(Interest, interest["id"]) is None

    notifications = client.get("/api/notifications", headers=auth_headers(owner)).json()
    assert notifications[0]["type"] == "interest_withdrawn"


def test_reject_interest(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = open_request(client, owner)
    interest = express(client, provider_user, request["id"]).json()

    response = client.post(
        f"/api/provider/interests/{interest['id']}/reject",
        json={"reason": "Found someone closer"},
        headers=auth_headers(owner),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

    notes = client.get("/api/notifications", headers=auth_headers(provider_user)).json()
    rejected = [n for n in notes if n["type"] == "interest_rejected"]
    assert len(rejected) == 1
    assert "Found someone closer" in rejected[0]["message"]

    again = client.post(f"/api/provider/interests/{interest['id']}/reject", headers=auth_headers(owner))
    assert again.status_code == 409

    accept = client.post(f"/api/provider/interests/{interest['id']}/accept", headers=auth_headers(owner))
    assert accept.status_code == 409


def test_interest_listings(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = open_request(client, owner)
    interest = express(client, provider_user, request["id"]).json()

    mine = client.get("/api/provider/interests/my", headers=auth_headers(provider_user)).json()
    assert [i["id"] for i in mine] == [interest["id"]]

    for_request = client.get(
        f"/api/provider/interests/request/{request['id']}", headers=auth_headers(owner)
    ).json()
    assert [i["id"] for i in for_request] == [interest["id"]]

    other = make_user("other@example.com")
    response = client.get(f"/api/provider/interests/request/{request['id']}", headers=auth_headers(other))
    assert response.status_code == 404


def test_shortlist_interest(client, make_user, make_provider):
    owner = make_user("client@example.com")
    stranger = make_user("stranger@example.com")
    provider_user, _ = make_provider("provider@example.com")
    other_user, _ = make_provider("other@example.com")
    request = open_request(client, owner)
    interest = express(client, provider_user, request["id"]).json()
    declined = express(client, other_user, request["id"]).json()
    assert interest["isShortlisted"] is False

    url = f"/api/provider/interests/{interest['id']}/shortlist"
    response = client.patch(url, headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json()["isShortlisted"] is True

    listed = client.get(f"/api/provider/interests/request/{request['id']}", headers=auth_headers(owner)).json()
    assert {i["id"]: i["isShortlisted"] for i in listed} == {interest["id"]: True, declined["id"]: False}

    response = client.patch(url, json={"shortlisted": False}, headers=auth_headers(owner))
    assert response.json()["isShortlisted"] is False

    assert client.patch(url, headers=auth_headers(stranger)).status_code == 404
    assert client.patch(url, headers=auth_headers(provider_user)).status_code == 403

    client.post(f"/api/provider/interests/{declined['id']}/reject", headers=auth_headers(owner))
    response = client.patch(f"/api/provider/interests/{declined['id']}/shortlist", headers=auth_headers(owner))
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot shortlist a rejected interest"}
