from artmarket.models import Comment, Order, User
from artmarket.services.notifier import NotificationKind

PASSWORD = "password123"


def signup(client, **overrides):
    payload = {
        "name": "Ada",
        "email": "Ada@Example.com",
        "password": "longenough",
        "password_confirm": "longenough",
    }
    payload.update(overrides)
    return client.post("/api/auth/signup", json=payload)


def test_signup_returns_token_and_sends_welcome(client, notifier):
    response = signup(client)

    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["data"]["user"]["email"] == "ada@example.com"
    assert body["data"]["user"]["role"] == "viewer"
    assert "hashed_password" not in body["data"]["user"]
    assert [entry[0] for entry in notifier.of_kind(NotificationKind.WELCOME)] == ["ada@example.com"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["data"]["user"]["name"] == "Ada"


def test_signup_succeeds_when_welcome_mail_fails(client, notifier):
    notifier.deliver = False

    assert signup(client).status_code == 201


def test_signup_rejects_admin_role_and_mismatched_passwords(client):
    assert signup(client, role="admin").status_code == 400
    assert signup(client, password_confirm="different1").status_code == 400
    assert signup(client, password="short", password_confirm="short").status_code == 400


def test_duplicate_email_is_a_conflict(client):
    signup(client)

    response = signup(client, email="ada@example.com")

    assert response.status_code == 409


def test_login_with_form(client, make_user):
    user = make_user("artist", email="painter@example.com")

    response = client.post("/api/auth/login", data={"username": "Painter@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["id"] == user.id

    response = client.post("/api/auth/login", data={"username": "painter@example.com", "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect email or password"


def test_invalid_token_is_rejected(client):
    response = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token. Please log in again!"


def test_update_me_rejects_password_fields(client, make_user, headers):
    user = make_user()

    response = client.patch("/api/users/update-me", json={"name": "New", "password": "newpassword"}, headers=headers(user))

    assert response.status_code == 400
    assert "update-my-password" in response.json()["message"]


def test_update_me_changes_profile_and_ignores_role(client, make_user, headers):
    user = make_user()

    response = client.patch(
        "/api/users/update-me",
        json={"name": "Renamed", "bio": "Collector", "role": "admin"},
        headers=headers(user),
    )

    assert response.status_code == 200
    data = response.json()["data"]["user"]
    assert (data["name"], data["bio"], data["role"]) == ("Renamed", "Collector", "viewer")


def test_profile_includes_owned_and_favorite_artworks(client, make_user, make_artwork, headers):
    artist = make_user("artist")
    owned = make_artwork(artist, title="Own work")
    client.post(f"/api/artworks/{owned.id}/like", headers=headers(artist))

    response = client.get("/api/users/me", headers=headers(artist))

    profile = response.json()["data"]["user"]
    assert [a["title"] for a in profile["artworks"]] == ["Own work"]
    assert [a["id"] for a in profile["favorites"]] == [owned.id]


def test_other_profiles_are_admin_only(client, make_user, headers):
    viewer = make_user()
    other = make_user()
    admin = make_user("admin")

    assert client.get(f"/api/users/{other.id}", headers=headers(viewer)).status_code == 403
    assert client.get(f"/api/users/{other.id}", headers=headers(admin)).status_code == 200
    assert client.get("/api/users/424242", headers=headers(viewer)).status_code == 404


def test_deactivated_user_is_hidden_but_history_remains(client, db, make_user, make_artwork, make_order, headers):
    artist = make_user("artist")
    viewer = make_user()
    admin = make_user("admin")
    artwork = make_artwork(artist)
    order = make_order(viewer, artwork, "cs_deactivated")
    comment = client.post(
        f"/api/artworks/{artwork.id}/comments", json={"text": "Lovely"}, headers=headers(viewer)
    ).json()["data"]["comment"]

    assert client.delete("/api/users/delete-me", headers=headers(viewer)).status_code == 204

    # The old token no longer authenticates and login is refused
    assert client.get("/api/users/me", headers=headers(viewer)).status_code == 401
    login = client.post("/api/auth/login", data={"username": viewer.email, "password": PASSWORD})
    assert login.status_code == 401

    listed = client.get("/api/users/", headers=headers(admin)).json()["data"]["users"]
    assert viewer.id not in [u["id"] for u in listed]
    assert client.get(f"/api/users/{viewer.id}", headers=headers(admin)).status_code == 404

    assert client.get(f"/api/orders/{order.id}", headers=headers(admin)).status_code == 200
    assert client.get(f"/api/comments/{comment['id']}", headers=headers(admin)).status_code == 200
    db.expire_all()
    assert db.query(User).filter(User.id == viewer.id).one().is_active is False


def test_admin_can_reactivate_through_admin_routes(client, make_user, headers):
    viewer = make_user(is_active=False)
    admin = make_user("admin")

    assert client.get(f"/api/admin/users/{viewer.id}", headers=headers(admin)).json()["data"]["user"]["is_active"] is False

    response = client.patch(f"/api/users/{viewer.id}", json={"is_active": True}, headers=headers(admin))

    assert response.status_code == 200
    assert response.json()["data"]["user"]["is_active"] is True


def test_change_role(client, make_user, headers):
    viewer = make_user()
    admin = make_user("admin")

    denied = client.patch(
        "/api/admin/users/change-role", json={"user_id": viewer.id, "new_role": "admin"}, headers=headers(viewer))
    assert denied.status_code == 403

    response = client.patch(
        "/api/admin/users/change-role", json={"user_id": viewer.id, "new_role": "artist"}, headers=headers(admin))
    assert response.json()["data"]["user"]["role"] == "artist"

    invalid = client.patch(
        "/api/admin/users/change-role", json={"user_id": viewer.id, "new_role": "owner"}, headers=headers(admin))
    assert invalid.status_code == 400


def test_admin_delete_user_keeps_orders(client, db, make_user, make_artwork, make_order, headers):
    artist = make_user("artist")
    buyer = make_user()
    admin = make_user("admin")
    artwork = make_artwork(artist)
    order = make_order(buyer, artwork, "cs_delete_user")
    buyer_id = buyer.id
    client.post(f"/api/artworks/{artwork.id}/comments", json={"text": "Hi"}, headers=headers(buyer))

    assert client.delete(f"/api/users/{artist.id}", headers=headers(admin)).status_code == 409
    assert client.delete(f"/api/users/{buyer_id}", headers=headers(admin)).status_code == 204

    db.expire_all()
    assert db.query(User).filter(User.id == buyer_id).first() is None
    assert db.query(Order).filter(Order.id == order.id).one().user_id is None
    assert db.query(Comment).count() == 0


def test_dashboard_stats(client, make_user, make_artwork, make_order, headers):
    artist = make_user("artist")
    buyer = make_user()
    admin = make_user("admin")
    sold = make_artwork(artist, price="250.00", status="sold")
    make_artwork(artist)
    make_order(buyer, sold, "cs_paid", status="processing", payment_status="succeeded")

    assert client.get("/api/admin/dashboard/stats", headers=headers(buyer)).status_code == 403

    stats = client.get("/api/admin/dashboard/stats", headers=headers(admin)).json()["data"]["stats"]
    assert stats == {
        "user_count": 3,
        "artwork_count": 2,
        "sold_artwork_count": 1,
        "order_count": 1,
        "revenue": 250.0,
    }
