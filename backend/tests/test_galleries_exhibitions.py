from datetime import datetime, timedelta, timezone

from artmarket.models import Artwork, Exhibition
from artmarket.services.exhibition_service import derive_status, exhibition_service


def iso(dt):
    return dt.isoformat()


def test_gallery_crud_keeps_artwork_order(client, db, make_user, make_artwork, headers):
    admin = make_user("admin")
    curator = make_user()
    artist = make_user("artist")
    first, second, third = (make_artwork(artist, title=t) for t in ("First", "Second", "Third"))

    response = client.post("/api/galleries/", json={
        "name": "North Wing",
        "curator_id": curator.id,
        "artwork_ids": [third.id, first.id, third.id],
    }, headers=headers(admin))

    assert response.status_code == 201
    gallery = response.json()["data"]["gallery"]
    assert [a["title"] for a in gallery["artworks"]] == ["Third", "First"]
    assert gallery["curator"]["id"] == curator.id

    updated = client.patch(f"/api/galleries/{gallery['id']}", json={
        "description": "Refurbished",
        "artwork_ids": [second.id, first.id],
    }, headers=headers(admin)).json()["data"]["gallery"]
    assert updated["name"] == "North Wing"
    assert [a["title"] for a in updated["artworks"]] == ["Second", "First"]

    db.expire_all()
    assert db.query(Artwork).filter(Artwork.id == third.id).one().gallery_id is None
    assert db.query(Artwork).filter(Artwork.id == second.id).one().gallery_id == gallery["id"]

    public = client.get(f"/api/artworks/{second.id}").json()["data"]["artwork"]
    assert public["gallery"]["name"] == "North Wing"

    assert client.delete(f"/api/galleries/{gallery['id']}", headers=headers(admin)).status_code == 204
    assert client.get(f"/api/galleries/{gallery['id']}").status_code == 404
    db.expire_all()
    assert db.query(Artwork).filter(Artwork.id == second.id).one().gallery_id is None


def test_gallery_validation(client, make_user, headers):
    admin = make_user("admin")
    artist = make_user("artist")

    assert client.post("/api/galleries/", json={"name": "Mine"}, headers=headers(artist)).status_code == 403
    assert client.post("/api/galleries/", json={"name": "X", "artwork_ids": [999]}, headers=headers(admin)).status_code == 400
    assert client.post("/api/galleries/", json={"name": "Dup"}, headers=headers(admin)).status_code == 201
    assert client.post("/api/galleries/", json={"name": "Dup"}, headers=headers(admin)).status_code == 409
    assert client.get("/api/galleries/").json()["results"] == 1


def test_derive_status():
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    day = timedelta(days=1)

    assert derive_status(now + day, now + 2 * day, now) == "upcoming"
    assert derive_status(now - day, now + day, now) == "ongoing"
    assert derive_status(now - 2 * day, now - day, now) == "past"


def test_exhibition_lifecycle(client, make_user, make_artwork, headers):
    admin = make_user("admin")
    curator = make_user("artist")
    artwork = make_artwork(curator, title="Featured")
    gallery_id = client.post("/api/galleries/", json={"name": "Hall"}, headers=headers(admin)).json()["data"]["gallery"]["id"]
    now = datetime.now(timezone.utc)

    response = client.post("/api/exhibitions/", json={
        "title": "Spring Show",
        "description": "New work",
        "start_date": iso(now - timedelta(days=1)),
        "end_date": iso(now + timedelta(days=10)),
        "gallery_id": gallery_id,
        "featured_artwork_ids": [artwork.id],
        "curator_ids": [curator.id],
    }, headers=headers(admin))

    assert response.status_code == 201
    exhibition = response.json()["data"]["exhibition"]
    assert exhibition["status"] == "ongoing"
    assert [a["title"] for a in exhibition["featured_artworks"]] == ["Featured"]
    assert [c["id"] for c in exhibition["curators"]] == [curator.id]
    assert exhibition["gallery"]["id"] == gallery_id

    moved = client.patch(f"/api/exhibitions/{exhibition['id']}", json={
        "start_date": iso(now + timedelta(days=5)),
        "end_date": iso(now + timedelta(days=20)),
    }, headers=headers(admin)).json()["data"]["exhibition"]
    assert moved["status"] == "upcoming"

    listed = client.get("/api/exhibitions/", params={"status": "upcoming"}).json()
    assert listed["results"] == 1

    assert client.delete(f"/api/exhibitions/{exhibition['id']}", headers=headers(admin)).status_code == 204
    assert client.get(f"/api/exhibitions/{exhibition['id']}").status_code == 404


def test_exhibition_rejects_bad_dates_and_references(client, make_user, headers):
    admin = make_user("admin")
    now = datetime.now(timezone.utc)
    base = {"title": "Show", "description": "d", "start_date": iso(now), "end_date": iso(now + timedelta(days=1))}

    backwards = dict(base, end_date=iso(now - timedelta(days=1)))
    response = client.post("/api/exhibitions/", json=backwards, headers=headers(admin))
    assert response.status_code == 400
    assert response.json()["message"] == "End date must be after start date"

    assert client.post("/api/exhibitions/", json=dict(base, gallery_id=404), headers=headers(admin)).status_code == 400
    assert client.post("/api/exhibitions/", json=dict(base, curator_ids=[404]), headers=headers(admin)).status_code == 400
    assert client.post("/api/exhibitions/", json=base, headers=headers(make_user("artist"))).status_code == 403


def test_refresh_exhibition_statuses(db):
    now = datetime.now(timezone.utc)
    day = timedelta(days=1)
    db.add_all([
        Exhibition(title="Was upcoming", description="d", start_date=now - day, end_date=now + day, status="upcoming"),
        Exhibition(title="Was ongoing", description="d", start_date=now - 3 * day, end_date=now - day, status="ongoing"),
        Exhibition(title="Correct", description="d", start_date=now + day, end_date=now + 2 * day, status="upcoming"),
    ])
    db.commit()

    assert exhibition_service.refresh_exhibition_statuses(db, now) == 2

    db.expire_all()
    statuses = {e.title: e.status for e in db.query(Exhibition).all()}
    assert statuses == {"Was upcoming": "ongoing", "Was ongoing": "past", "Correct": "upcoming"}


def test_exhibition_required_fields_cannot_be_cleared(client, make_user, headers):
    admin = make_user("admin")
    now = datetime.now(timezone.utc)
    created = client.post("/api/exhibitions/", json={
        "title": "Keep me", "description": "d", "start_date": iso(now), "end_date": iso(now + timedelta(days=1)),
    }, headers=headers(admin)).json()["data"]["exhibition"]

    for field in ("title", "description", "start_date", "end_date"):
        response = client.patch(f"/api/exhibitions/{created['id']}", json={field: None}, headers=headers(admin))
        assert response.status_code == 400, field
        assert response.json()["message"] == f"Exhibition {field} cannot be empty"

    assert client.get(f"/api/exhibitions/{created['id']}").json()["data"]["exhibition"]["title"] == "Keep me"


def test_artwork_moves_to_the_gallery_it_was_last_added_to(client, make_user, make_artwork, headers):
    admin = make_user("admin")
    artwork = make_artwork(make_user("artist"), title="Travelling")

    def create(name):
        return client.post("/api/galleries/", json={"name": name, "artwork_ids": [artwork.id]},
                           headers=headers(admin)).json()["data"]["gallery"]["id"]

    first = create("East")
    second = create("West")

    assert client.get(f"/api/galleries/{first}").json()["data"]["gallery"]["artworks"] == []
    assert [a["title"] for a in client.get(f"/api/galleries/{second}").json()["data"]["gallery"]["artworks"]] == ["Travelling"]
    assert client.get(f"/api/artworks/{artwork.id}").json()["data"]["artwork"]["gallery"]["id"] == second
