from conftest import auth_headers


def setup_room(client, make_user, make_provider):
    owner = make_user("client@example.com")
    provider_user, _ = make_provider("provider@example.com")
    request = client.post(
        "/api/client/requests",
        json={"isService": False, "productName": "Calculator", "desiredPrice": 2500},
        headers=auth_headers(owner),
    ).json()
    interest = client.post(
        f"/api/provider/interests/{request['id']}", headers=auth_headers(provider_user)
    ).json()
    room_id = client.post(
        f"/api/provider/interests/{interest['id']}/accept", headers=auth_headers(owner)
    ).json()["chatRoomId"]
    return owner, provider_user, room_id


def test_rooms_listing(client, make_user, make_provider):
    owner, provider_user, room_id = setup_room(client, make_user, make_provider)

    rooms = client.get("/api/chat/rooms", headers=auth_headers(provider_user)).json()
    assert len(rooms) == 1
    assert rooms[0]["id"] == room_id
    assert rooms[0]["clientId"] == owner.id
    assert rooms[0]["providerId"] == provider_user.id
    assert rooms[0]["unreadCount"] == 1
    assert rooms[0]["lastMessage"]["isSystem"] is True

    owner_rooms = client.get("/api/chat/rooms", headers=auth_headers(owner)).json()
    assert owner_rooms[0]["unreadCount"] == 0


def test_post_and_read_messages(client, make_user, make_provider):
    owner, provider_user, room_id = setup_room(client, make_user, make_provider)

    response = client.post(
        f"/api/chat/rooms/{room_id}/messages",
        json={"content": "Can you do 2000?"},
        headers=auth_headers(provider_user),
    )
    assert response.status_code == 201
    assert response.json()["senderId"] == provider_user.id

    messages = client.get(f"/api/chat/rooms/{room_id}/messages", headers=auth_headers(owner)).json()
    assert [m["content"] for m in messages][-1] == "Can you do 2000?"
    assert messages[0]["isSystem"] is True

    rooms = client.get("/api/chat/rooms", headers=auth_headers(owner)).json()
    assert rooms[0]["unreadCount"] == 0

    # The owner was offline, so the message left a stored notification
    notes = client.get("/api/notifications", headers=auth_headers(owner)).json()
    assert notes[0]["type"] == "new_message"
    assert notes[0]["relatedEntityId"] == room_id


def test_empty_message_rejected(client, make_user, make_provider):
    owner, _, room_id = setup_room(client, make_user, make_provider)
    response = client.post(
        f"/api/chat/rooms/{room_id}/messages", json={"content": "   "}, headers=auth_headers(owner)
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Message content is required"}


def test_outsider_cannot_read_room(client, make_user, make_provider):
    _, _, room_id = setup_room(client, make_user, make_provider)
    outsider = make_user("outsider@example.com")
    response = client.get(f"/api/chat/rooms/{room_id}/messages", headers=auth_headers(outsider))
    assert response.status_code == 403
    assert response.json() == {"error": "Unauthorized access to chat room"}

    response = client.get("/api/chat/rooms/999/messages", headers=auth_headers(outsider))
    assert response.status_code == 404
