import io

import pytest

import audio


@pytest.fixture
def admin_headers(admin, login):
    return login(admin)


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_register_login_and_profile(client):
    resp = client.post(
        "/accounts/register", json={"username": "alice", "email": "Alice@Example.com", "password": "hunter22"}
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "user"

    dup = client.post("/accounts/register", json={"username": "alice", "email": "x@example.com", "password": "hunter22"})
    assert dup.status_code == 409
    assert dup.json()["error_code"] == "CONFLICT"

    bad = client.post("/accounts/login", json={"username_or_email": "alice", "password": "wrong"})
    assert bad.status_code == 401

    token = client.post(
        "/accounts/login", json={"username_or_email": "alice@example.com", "password": "hunter22"}
    ).json()["token"]
    headers = {"X-Session-Token": token}
    profile = client.get("/accounts/profile", headers=headers).json()
    assert profile["username"] == "alice"
    assert profile["playlists"] == []

    assert client.post("/accounts/logout", headers=headers).status_code == 200
    assert client.get("/accounts/profile", headers=headers).status_code == 401


def test_identity_and_role_checks(client, make_user, login):
    assert client.get("/accounts/profile").status_code == 401
    assert client.get("/accounts/profile", headers={"X-Session-Token": "nope"}).status_code == 401

    headers = login(make_user())
    assert client.get("/moderation/pending", headers=headers).status_code == 403
    assert client.get("/stats/tracks", headers=headers).status_code == 403


def test_role_change_is_seen_on_next_request(client, make_user, login, admin_headers):
    user = make_user()
    headers = login(user)
    assert client.get("/admin/users", headers=headers).status_code == 403

    resp = client.post(f"/admin/users/{user['id']}/role", json={"role": "admin"}, headers=admin_headers)
    assert resp.status_code == 200
    assert client.get("/admin/users", params={"search": user["username"]}, headers=headers).json()["users"][0][
        "role"
    ] == "admin"


def test_public_track_reads_and_play(client, make_track):
    track = make_track("Night Drive")
    pending = make_track("Unreleased", approved=False)

    assert client.get(f"/tracks/{track['id']}").json()["title"] == "Night Drive"
    missing = client.get(f"/tracks/{pending['id']}")
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "NOT_FOUND"

    assert client.post(f"/tracks/{track['id']}/play").status_code == 200
    assert client.post(f"/tracks/{pending['id']}/play").status_code == 404
    assert client.post("/tracks/999/play").status_code == 404

    results = client.get("/search", params={"q": "night"}).json()
    assert [t["id"] for t in results["tracks"]] == [track["id"]]


def test_similar_tracks(client, make_track):
    current = make_track()
    others = [make_track() for _ in range(6)]
    for _ in range(3):
        client.post(f"/tracks/{others[2]['id']}/play")

    similar = client.get(f"/tracks/{current['id']}/similar").json()["tracks"]
    assert len(similar) == 5
    assert similar[0]["id"] == others[2]["id"]
    assert current["id"] not in [t["id"] for t in similar]


def test_upload_and_moderate(client, make_user, login, admin_headers, genre, monkeypatch):
    monkeypatch.setattr(audio, "probe_duration", lambda path: 215)
    musician_headers = login(make_user("musician"))

    resp = client.post(
        "/tracks",
        data={"title": "Demo", "genre_id": str(genre["id"])},
        files={"file": ("demo.mp3", io.BytesIO(b"ID3fake"), "audio/mpeg")},
        headers=musician_headers,
    )
    assert resp.status_code == 201, resp.text
    track = resp.json()
    assert track["duration_s"] == 215
    assert track["is_moderated"] is False

    listener_headers = login(make_user())
    forbidden = client.post(
        "/tracks",
        data={"title": "Nope", "genre_id": str(genre["id"])},
        files={"file": ("nope.mp3", io.BytesIO(b"x"), "audio/mpeg")},
        headers=listener_headers,
    )
    assert forbidden.status_code == 403

    pending = client.get("/moderation/pending", headers=admin_headers).json()["tracks"]
    assert [t["id"] for t in pending] == [track["id"]]

    resp = client.post(f"/moderation/tracks/{track['id']}/approve", json={"comment": "Nice"}, headers=admin_headers)
    assert resp.json()["moderation"]["status"] == "approved"
    assert client.get(f"/tracks/{track['id']}").status_code == 200

    stream = client.get(f"/tracks/{track['id']}/stream")
    assert stream.status_code == 200
    assert stream.content == b"ID3fake"

    profile = client.get("/accounts/profile", headers=musician_headers).json()
    assert profile["musician_tracks"][0]["moderation_status"] == "approved"


def test_upload_rejects_bad_extension(client, make_user, login, genre):
    headers = login(make_user("musician"))
    resp = client.post(
        "/tracks",
        data={"title": "Doc", "genre_id": str(genre["id"]), "duration_s": "60"},
        files={"file": ("notes.txt", io.BytesIO(b"text"), "text/plain")},
        headers=headers,
    )
    assert resp.status_code == 422
    assert resp.json()["error_code"] == "VALIDATION_FAILED"


def test_stats_reports(client, admin_headers, make_track, album, artist):
    client.post("/admin/albums", json={"title": "Empty Shelf", "artist_id": artist["id"]}, headers=admin_headers)
    track = make_track(album_id=album["id"])
    client.post(f"/tracks/{track['id']}/play")
    client.post(f"/tracks/{track['id']}/play")

    albums = client.get("/stats/albums", params={"period": "week"}, headers=admin_headers).json()["albums"]
    assert [(a["album_title"], a["total_listens"]) for a in albums] == [("First Light", 2), ("Empty Shelf", 0)]

    tracks = client.get("/stats/tracks", params={"period": "nonsense"}, headers=admin_headers).json()["tracks"]
    assert tracks[0]["total_listens"] == 2

    detail = client.get(f"/stats/tracks/{track['id']}", headers=admin_headers).json()
    assert detail["total_listens"] == 2
    assert client.get("/stats/tracks/999", headers=admin_headers).status_code == 404


def test_playlist_flow(client, make_user, login, make_track):
    user = make_user()
    headers = login(user)
    track = make_track()

    assert client.get("/playlists/can-create", headers=headers).json() == {"can_create": False}
    assert client.post("/playlists", json={"title": "Mix"}, headers=headers).status_code == 403

    card = {"card_number": "4111111111111111", "card_holder": "Test Holder", "expiry": "12/30", "cvc": "123"}
    assert client.post("/subscriptions", json=card, headers=headers).status_code == 201
    assert client.post("/subscriptions", json=card, headers=headers).status_code == 409

    assert client.post("/playlists", json={"title": "M"}, headers=headers).status_code == 422
    playlist = client.post("/playlists", json={"title": "Mix"}, headers=headers).json()
    pid = playlist["id"]

    assert client.post(f"/playlists/{pid}/tracks", json={"track_id": track["id"]}, headers=headers).status_code == 201
    dup = client.post(f"/playlists/{pid}/tracks", json={"track_id": track["id"]}, headers=headers)
    assert dup.status_code == 409

    assert client.get(f"/playlists/{pid}").status_code == 403
    other = login(make_user("admin"))
    assert client.delete(f"/playlists/{pid}", headers=other).status_code == 404

    client.patch(f"/playlists/{pid}", json={"visibility": "public"}, headers=headers)
    public = client.get(f"/playlists/{pid}").json()
    assert [t["id"] for t in public["tracks"]] == [track["id"]]

    removed = client.delete(f"/playlists/{pid}/tracks/{track['id']}", headers=headers).json()
    assert removed == {"removed": True}
    assert client.get("/playlists", headers=headers).json()["playlists"][0]["track_count"] == 0


def test_admin_catalog_management(client, admin_headers):
    assert client.post("/admin/genres", json={"name": "Jazz"}, headers=admin_headers).status_code == 201
    assert client.post("/admin/genres", json={"name": "Jazz"}, headers=admin_headers).status_code == 409
    assert client.post("/admin/albums", json={"title": "Ghost", "artist_id": 42}, headers=admin_headers).status_code == 404
    assert [g["name"] for g in client.get("/genres").json()["genres"]] == ["Jazz"]


def test_login_with_mixed_case_email(client):
    resp = client.post(
        "/accounts/register", json={"username": "bob", "email": "Bob@Example.com", "password": "hunter22"}
    )
    assert resp.status_code == 201
    assert resp.json()["email"] == "bob@example.com"

    logged_in = client.post("/accounts/login", json={"username_or_email": "Bob@Example.com", "password": "hunter22"})
    assert logged_in.status_code == 200
    assert logged_in.json()["user"]["username"] == "bob"


def test_artist_photo_upload(client, admin_headers, artist, tmp_path):
    resp = client.post(
        f"/admin/artists/{artist['id']}/photo",
        files={"file": ("portrait.png", io.BytesIO(b"\x89PNG"), "image/png")},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    photo_path = resp.json()["photo_path"]
    assert photo_path.startswith("/images/")
    assert (tmp_path / "media" / photo_path.lstrip("/")).read_bytes() == b"\x89PNG"

    missing = client.post(
        "/admin/artists/999/photo",
        files={"file": ("portrait.png", io.BytesIO(b"\x89PNG"), "image/png")},
        headers=admin_headers,
    )
    assert missing.status_code == 404
    assert list((tmp_path / "media" / "images").iterdir()) == [tmp_path / "media" / photo_path.lstrip("/")]

    wrong_type = client.post(
        f"/admin/artists/{artist['id']}/photo",
        files={"file": ("song.mp3", io.BytesIO(b"ID3"), "audio/mpeg")},
        headers=admin_headers,
    )
    assert wrong_type.status_code == 422


def test_home_route_is_public(client, make_track):
    track = make_track()
    make_track(approved=False)

    feed = client.get("/home").json()

    assert [t["id"] for t in feed["tracks"]] == [track["id"]]
    assert set(feed) == {"tracks", "artists", "new_releases"}
