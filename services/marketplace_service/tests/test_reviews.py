from conftest import auth_headers
from database import SessionLocal
from models import Notification, Provider, Review


def post_review(client, user, provider_id, rating, comment=None):
    body = {"providerId": provider_id, "rating": rating}
    if comment is not None:
        body["comment"] = comment
    return client.post("/api/reviews", json=body, headers=auth_headers(user))


def test_reviews_update_provider_rating(client, make_user, make_provider):
    provider_user, provider_id = make_provider("provider@example.com")
    alice = make_user("alice@example.com", name="Alice")
    bob = make_user("bob@example.com", name="Bob")

    response = post_review(client, alice, provider_id, 5, "  Fixed my laptop in an hour  ")
    assert response.status_code == 201
    body = response.json()
    assert body["review"]["rating"] == 5
    assert body["review"]["comment"] == "Fixed my laptop in an hour"
    assert body["review"]["reviewerName"] == "Alice"
    assert body["stats"] == {"averageRating": 5.0, "reviewCount": 1}

    response = post_review(client, bob, provider_id, 3.5)
    assert response.status_code == 201
    assert response.json()["review"]["rating"] == 4
    assert response.json()["stats"] == {"averageRating": 4.5, "reviewCount": 2}

    with SessionLocal() as db:
        provider = db.get(Provider, provider_id)
        assert provider.rating == 4.5
        assert provider.total_reviews == 2
        notified = db.query(Notification).filter(
            Notification.user_id == provider_user.id,
            Notification.type == "new_review"
        ).count()
        assert notified == 2

    profile = client.get("/api/provider/profile", headers=auth_headers(provider_user)).json()
    assert profile["rating"] == 4.5
    assert profile["totalReviews"] == 2


def test_list_provider_reviews(client, make_user, make_provider):
    _, provider_id = make_provider("provider@example.com")
    first = make_user("first@example.com", name="First")
    second = make_user("second@example.com", name="Second")
    post_review(client, first, provider_id, 2)
    post_review(client, second, provider_id, 5, "Great")

    response = client.get(f"/api/reviews/provider/{provider_id}")
    assert response.status_code == 200
    body = response.json()
    assert [r["reviewerName"] for r in body["reviews"]] == ["Second", "First"]
    assert body["stats"] == {"averageRating": 3.5, "reviewCount": 2}

    assert client.get("/api/reviews/provider/999").status_code == 404


def test_provider_without_reviews(client, make_provider):
    _, provider_id = make_provider("provider@example.com")
    body = client.get(f"/api/reviews/provider/{provider_id}").json()
    assert body == {"reviews": [], "stats": {"averageRating": 0.0, "reviewCount": 0}}


def test_review_rules(client, make_user, make_provider):
    provider_user, provider_id = make_provider("provider@example.com")
    reviewer = make_user("client@example.com")

    for rating in (0, 5.5, "great"):
        response = post_review(client, reviewer, provider_id, rating)
        assert response.status_code == 400

    response = post_review(client, reviewer, 999, 4)
    assert response.status_code == 404
    assert response.json() == {"error": "Provider not found"}

    response = post_review(client, provider_user, provider_id, 5)
    assert response.status_code == 403
    assert response.json() == {"error": "You cannot review your own profile"}

    assert post_review(client, reviewer, provider_id, 4).status_code == 201
    response = post_review(client, reviewer, provider_id, 1)
    assert response.status_code == 409
    assert response.json() == {"error": "You have already reviewed this provider"}

    with SessionLocal() as db:
        assert db.query(Review).count() == 1
        assert db.get(Provider, provider_id).rating == 4.0


def test_review_requires_authentication(client, make_provider):
    _, provider_id = make_provider("provider@example.com")
    response = client.post("/api/reviews", json={"providerId": provider_id, "rating": 4})
    assert response.status_code == 401
