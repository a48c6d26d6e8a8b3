import logging

from catalog import TRACK_SELECT, load_track, track_row_to_dict
from database import db, now_iso
from errors import NotFound
from models import MODERATION_APPROVED, MODERATION_PENDING, MODERATION_REJECTED, ROLE_ADMIN

logger = logging.getLogger(__name__)

DEFAULT_COMMENTS = {
    MODERATION_PENDING: "Awaiting moderation",
    MODERATION_APPROVED: "Track approved",
    MODERATION_REJECTED: "Track rejected",
}


def _moderation_row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "track_id": row["track_id"],
        "moderator_id": row["moderator_id"],
        "status": row["status"],
        "comment": row["comment"],
        "moderation_date": row["moderation_date"],
    }


def _first_admin_id(conn) -> int | None:
    row = conn.execute("SELECT id FROM users WHERE role=? ORDER BY id LIMIT 1", (ROLE_ADMIN,)).fetchone()
    return row["id"] if row else None


def submit_for_moderation(conn, track_id: int) -> int | None:
    """Open a pending review for a newly uploaded track.

    Runs inside the caller's transaction so the track and its review row commit
    together. The review is assigned to the first admin on record; without any
    admin no row is written and None is returned.
    """
    moderator_id = _first_admin_id(conn)
    if moderator_id is None:
        logger.warning(f"No admin available to review track {track_id}; moderation request skipped")
        return None
    cur = conn.execute(
        """
        INSERT INTO moderations (track_id, moderator_id, status, comment, moderation_date)
        VALUES (?, ?, ?, ?, ?)
        """,
        (track_id, moderator_id, MODERATION_PENDING, DEFAULT_COMMENTS[MODERATION_PENDING], now_iso()),
    )
    logger.info(f"Track {track_id} submitted for moderation (moderator={moderator_id})")
    return cur.lastrowid


def _decide(track_id: int, status: str, comment: str | None, moderator_id: int | None) -> dict | None:
    comment = comment or DEFAULT_COMMENTS[status]
    with db(immediate=True) as conn:
        track = load_track(conn, track_id)
        if track is None:
            raise NotFound(f"Track {track_id} not found")

        if moderator_id is None:
            moderator_id = _first_admin_id(conn)
        if moderator_id is None:
            logger.warning(f"No admin to attribute {status} decision on track {track_id} to; skipped")
            return None

        if status == MODERATION_APPROVED:
            conn.execute("UPDATE tracks SET is_moderated=1 WHERE id=?", (track_id,))

        existing = conn.execute(
            "SELECT id FROM moderations WHERE track_id=? ORDER BY id LIMIT 1", (track_id,)
        ).fetchone()
        if existing:
            moderation_id = existing["id"]
            conn.execute(
                """
                UPDATE moderations SET status=?, comment=?, moderation_date=?, moderator_id=?
                WHERE id=?
                """,
                (status, comment, now_iso(), moderator_id, moderation_id),
            )
        else:
            moderation_id = conn.execute(
                """
                INSERT INTO moderations (track_id, moderator_id, status, comment, moderation_date)
                VALUES (?, ?, ?, ?, ?)
                """,
                (track_id, moderator_id, status, comment, now_iso()),
            ).lastrowid

        row = conn.execute("SELECT * FROM moderations WHERE id=?", (moderation_id,)).fetchone()

    logger.info(f"Track {track_id} {status} by moderator {moderator_id}")
    return _moderation_row_to_dict(row)


def approve(track_id: int, comment: str | None = None, moderator_id: int | None = None) -> dict | None:
    """Make a track playable and record the decision.

    Returns the upserted moderation row, or None when no admin exists to
    attribute the decision to (nothing is written in that case).
    """
    return _decide(track_id, MODERATION_APPROVED, comment, moderator_id)


def reject(track_id: int, comment: str | None = None, moderator_id: int | None = None) -> dict | None:
    """Record a rejection. Never changes the track's playability flag."""
    return _decide(track_id, MODERATION_REJECTED, comment, moderator_id)


def list_pending() -> list[dict]:
    # Rejected tracks stay unmoderated, so they are listed here as well.
    with db() as conn:
        rows = conn.execute(TRACK_SELECT + " WHERE t.is_moderated=0 ORDER BY t.id").fetchall()
    return [track_row_to_dict(r) for r in rows]


def list_history() -> list[dict]:
    with db() as conn:
        rows = conn.execute(
            """
            SELECT m.id, m.track_id, m.moderator_id, m.status, m.comment, m.moderation_date,
                   t.title AS track_title, t.is_moderated,
                   u.username AS moderator_username
            FROM moderations m
            JOIN tracks t ON t.id = m.track_id
            LEFT JOIN users u ON u.id = m.moderator_id
            ORDER BY m.moderation_date DESC, m.id DESC
            """
        ).fetchall()
    history = []
    for row in rows:
        entry = _moderation_row_to_dict(row)
        entry["track_title"] = row["track_title"]
        entry["track_is_moderated"] = bool(row["is_moderated"])
        entry["moderator_username"] = row["moderator_username"]
        history.append(entry)
    return history


def review(track_id: int) -> dict:
    """Track details plus every moderation row recorded for it."""
    with db() as conn:
        row = conn.execute(TRACK_SELECT + " WHERE t.id=?", (track_id,)).fetchone()
        if not row:
            raise NotFound(f"Track {track_id} not found")
        moderations = conn.execute(
            "SELECT * FROM moderations WHERE track_id=? ORDER BY moderation_date DESC, id DESC",
            (track_id,),
        ).fetchall()
    track = track_row_to_dict(row)
    track["moderations"] = [_moderation_row_to_dict(m) for m in moderations]
    return track


def latest_status(conn, track_id: int) -> str | None:
    row = conn.execute(
        "SELECT status FROM moderations WHERE track_id=? ORDER BY moderation_date DESC, id DESC LIMIT 1",
        (track_id,),
    ).fetchone()
    return row["status"] if row else None
