import logging
import secrets
import sqlite3

from werkzeug.security import check_password_hash, generate_password_hash

from database import db, now_iso
from errors import Conflict, NotFound, Unauthorized, ValidationFailed
from models import ROLE_MUSICIAN, ROLE_USER, ROLES, CurrentUser
from moderation import latest_status
from playlists import list_user_playlists
from subscriptions import active_subscription, list_subscriptions, reconcile_role

logger = logging.getLogger(__name__)


def _user_row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "username": row["username"],
        "email": row["email"],
        "role": row["role"],
        "created_at": row["created_at"],
    }


def register(username: str, email: str, password: str) -> dict:
    """Create a plain user account. Username and email must both be unused."""
    email = email.strip().lower()
    password_hash = generate_password_hash(password)
    with db(immediate=True) as conn:
        if conn.execute("SELECT 1 FROM users WHERE username=?", (username,)).fetchone():
            raise Conflict("A user with this username already exists")
        if conn.execute("SELECT 1 FROM users WHERE email=?", (email,)).fetchone():
            raise Conflict("A user with this email already exists")
        try:
            user_id = conn.execute(
                "INSERT INTO users (username, email, password_hash, role, created_at) VALUES (?, ?, ?, ?, ?)",
                (username, email, password_hash, ROLE_USER, now_iso()),
            ).lastrowid
        except sqlite3.IntegrityError:
            raise Conflict("A user with this username or email already exists")
        row = conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
    logger.info(f"User {username} registered")
    return _user_row_to_dict(row)


def login(username_or_email: str, password: str) -> tuple[str, CurrentUser]:
    """Verify credentials and open a session. Returns (token, identity)."""
    with db() as conn:
        row = conn.execute(
            "SELECT id, username, role, password_hash FROM users WHERE username=? OR email=?",
            (username_or_email, username_or_email.lower()),
        ).fetchone()
        if not row or not check_password_hash(row["password_hash"], password):
            raise Unauthorized("Invalid username or password")
        token = secrets.token_urlsafe(32)
        conn.execute(
            "INSERT INTO sessions (token, user_id, created_at) VALUES (?, ?, ?)",
            (token, row["id"], now_iso()),
        )
    logger.info(f"User {row['username']} logged in")
    return token, CurrentUser(id=row["id"], username=row["username"], role=row["role"])


def logout(token: str):
    with db() as conn:
        conn.execute("DELETE FROM sessions WHERE token=?", (token,))


def resolve_session(token: str) -> CurrentUser | None:
    """Identity behind a session token; the role is always read fresh."""
    with db() as conn:
        row = conn.execute(
            """
            SELECT u.id, u.username, u.role
            FROM sessions s JOIN users u ON u.id = s.user_id
            WHERE s.token=?
            """,
            (token,),
        ).fetchone()
    if not row:
        return None
    return CurrentUser(id=row["id"], username=row["username"], role=row["role"])


def get_user(user_id: int) -> dict:
    with db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
    if not row:
        raise NotFound(f"User {user_id} not found")
    return _user_row_to_dict(row)


def profile(user_id: int) -> dict:
    """Account overview. Lapsed subscribers are downgraded as a side effect."""
    with db(immediate=True) as conn:
        row = conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
        if not row:
            raise NotFound(f"User {user_id} not found")
        role = reconcile_role(conn, user_id, row["role"])

        musician_tracks = []
        if role == ROLE_MUSICIAN:
            for track in conn.execute(
                "SELECT id, title, is_moderated, created_at FROM tracks WHERE uploaded_by_user_id=? ORDER BY id DESC",
                (user_id,),
            ).fetchall():
                musician_tracks.append(
                    {
                        "id": track["id"],
                        "title": track["title"],
                        "is_moderated": bool(track["is_moderated"]),
                        "created_at": track["created_at"],
                        "moderation_status": latest_status(conn, track["id"]),
                    }
                )

    user = _user_row_to_dict(row)
    user["role"] = role
    user["subscriptions"] = list_subscriptions(user_id)
    user["active_subscription"] = active_subscription(user_id)
    user["playlists"] = list_user_playlists(user_id)
    user["musician_tracks"] = musician_tracks
    return user


def list_users(search: str | None = None) -> list[dict]:
    with db() as conn:
        rows = conn.execute("SELECT * FROM users ORDER BY role, username").fetchall()
    users = [_user_row_to_dict(r) for r in rows]
    if search:
        needle = search.casefold()
        users = [
            u
            for u in users
            if needle in u["username"].casefold()
            or needle in u["email"].casefold()
            or needle in u["role"].casefold()
            or needle in str(u["id"])
        ]
    return users


def change_role(user_id: int, role: str) -> dict:
    if role not in ROLES:
        raise ValidationFailed(f"Unknown role: {role}")
    with db() as conn:
        cur = conn.execute("UPDATE users SET role=? WHERE id=?", (role, user_id))
        if cur.rowcount == 0:
            raise NotFound(f"User {user_id} not found")
        row = conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
    logger.info(f"User {row['username']} role changed to {role}")
    return _user_row_to_dict(row)
