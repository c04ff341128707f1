def post_comment(client, artwork_id, user_headers, text="Wonderful colours"):
    return client.post(f"/api/artworks/{artwork_id}/comments", json={"text": text}, headers=user_headers)


def test_create_and_list_comments_for_artwork(client, make_user, make_artwork, headers):
    viewer = make_user(name="Grace")
    artwork = make_artwork(make_user("artist"))
    other_artwork = make_artwork(make_user("artist"))

    response = post_comment(client, artwork.id, headers(viewer))
    post_comment(client, other_artwork.id, headers(viewer), text="Elsewhere")

    assert response.status_code == 201
    comment = response.json()["data"]["comment"]
    assert comment["author"]["name"] == "Grace"
    assert comment["artwork_id"] == artwork.id

    listed = client.get(f"/api/artworks/{artwork.id}/comments", headers=headers(viewer)).json()
    assert [c["text"] for c in listed["data"]["comments"]] == ["Wonderful colours"]
    assert client.get("/api/comments/", headers=headers(viewer)).json()["results"] == 2


def test_comment_on_missing_artwork(client, make_user, headers):
    response = post_comment(client, 4040, headers(make_user()))

    assert response.status_code == 404


def test_comment_text_is_validated(client, make_user, make_artwork, headers):
    artwork = make_artwork(make_user("artist"))

    assert post_comment(client, artwork.id, headers(make_user()), text="").status_code == 400
    assert post_comment(client, artwork.id, headers(make_user()), text="x" * 501).status_code == 400


def test_only_author_or_admin_edits_and_deletes(client, make_user, make_artwork, headers):
    author = make_user()
    stranger = make_user()
    admin = make_user("admin")
    artwork = make_artwork(make_user("artist"))
    comment_id = post_comment(client, artwork.id, headers(author)).json()["data"]["comment"]["id"]

    assert client.patch(f"/api/comments/{comment_id}", json={"text": "Hijack"}, headers=headers(stranger)).status_code == 403
    edited = client.patch(f"/api/comments/{comment_id}", json={"text": "Edited"}, headers=headers(author))
    assert edited.json()["data"]["comment"]["text"] == "Edited"

    assert client.delete(f"/api/comments/{comment_id}", headers=headers(stranger)).status_code == 403
    assert client.delete(f"/api/comments/{comment_id}", headers=headers(admin)).status_code == 204
    assert client.get(f"/api/comments/{comment_id}", headers=headers(author)).status_code == 404


def test_comments_require_login(client, make_user, make_artwork):
    artwork = make_artwork(make_user("artist"))

    assert client.get(f"/api/artworks/{artwork.id}/comments").status_code == 401
    assert client.get("/api/comments/").status_code == 401
