import itertools

import pytest
from dateutil.relativedelta import relativedelta
from fastapi.testclient import TestClient

import accounts
import catalog
import database
import main
import moderation
import uploads
from database import db, to_iso, utcnow

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", str(tmp_path / "music.db"))
    monkeypatch.setattr(uploads, "MEDIA_DIR", str(tmp_path / "media"))
    monkeypatch.setenv("PAYMENT_TEST_MODE", "true")
    database.init_db()
    yield


@pytest.fixture
def make_user():
    def _make(role="user", username=None):
        username = username or f"user{next(_seq)}"
        user = accounts.register(username, f"{username}@example.com", "secret123")
        if role != "user":
            user = accounts.change_role(user["id"], role)
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", "root")


@pytest.fixture
def genre():
    return catalog.create_genre("Rock")


@pytest.fixture
def artist():
    return catalog.create_artist("The Testers", "House band")


@pytest.fixture
def album(artist):
    return catalog.create_album("First Light", artist["id"], "2024-05-01")


@pytest.fixture
def make_track(admin, genre, artist):
    def _make(title=None, approved=True, album_id=None, genre_id=None, uploaded_by=None):
        title = title or f"Track {next(_seq)}"
        track = uploads.create_track(
            title,
            f"/audio/{title.replace(' ', '_')}.mp3",
            180,
            genre_id or genre["id"],
            artist_id=artist["id"],
            album_id=album_id,
            uploaded_by_user_id=uploaded_by,
        )
        if approved:
            moderation.approve(track["id"], moderator_id=admin["id"])
        return track

    return _make


@pytest.fixture
def add_subscription():
    """Insert a subscription row directly, ending ``ends_in`` from now."""

    def _add(user_id, ends_in=relativedelta(months=1), active=True):
        now = utcnow()
        with db() as conn:
            return conn.execute(
                """
                INSERT INTO subscriptions (user_id, start_date, end_date, is_activated, amount, transaction_id)
                VALUES (?, ?, ?, ?, 299.0, ?)
                """,
                (user_id, to_iso(now - relativedelta(months=1)), to_iso(now + ends_in), int(active), f"T{next(_seq)}"),
            ).lastrowid

    return _add


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def login(client):
    def _login(user):
        resp = client.post(
            "/accounts/login", json={"username_or_email": user["username"], "password": "secret123"}
        )
        assert resp.status_code == 200, resp.text
        return {"X-Session-Token": resp.json()["token"]}

    return _login
