"""User playlists and their ordered, duplicate-free track memberships.

Every mutation re-checks ownership itself and reports a foreign playlist exactly
like a missing one. Membership changes run under ``db(immediate=True)`` so the
max-position read, the insert and any renumbering happen under one write lock.
"""

import logging
import sqlite3

from catalog import TRACK_COLUMNS, TRACK_JOINS, load_playable_track, track_row_to_dict
from database import db, now_iso
from errors import Conflict, Forbidden, NotFound
from models import (
    ROLE_ADMIN,
    ROLE_MUSICIAN,
    VISIBILITY_PRIVATE,
    VISIBILITY_PUBLIC,
    CurrentUser,
)
from subscriptions import has_active_subscription

logger = logging.getLogger(__name__)


def _playlist_row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "title": row["title"],
        "description": row["description"],
        "user_id": row["user_id"],
        "visibility": row["visibility"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _owned_playlist(conn, playlist_id: int, owner_user_id: int):
    row = conn.execute(
        "SELECT * FROM playlists WHERE id=? AND user_id=?", (playlist_id, owner_user_id)
    ).fetchone()
    if not row:
        raise NotFound(f"Playlist {playlist_id} not found")
    return row


def _renumber(conn, playlist_id: int):
    rows = conn.execute(
        "SELECT track_id FROM playlist_tracks WHERE playlist_id=? ORDER BY position, added_at, track_id",
        (playlist_id,),
    ).fetchall()
    for index, row in enumerate(rows):
        conn.execute(
            "UPDATE playlist_tracks SET position=? WHERE playlist_id=? AND track_id=?",
            (index, playlist_id, row["track_id"]),
        )


def can_create_playlists(user: CurrentUser) -> bool:
    if user.role in (ROLE_ADMIN, ROLE_MUSICIAN):
        return True
    with db() as conn:
        return has_active_subscription(conn, user.id)


def create_playlist(user: CurrentUser, title: str, description: str | None = None, is_public: bool = False) -> dict:
    if not can_create_playlists(user):
        raise Forbidden("Creating playlists requires an active subscription")
    visibility = VISIBILITY_PUBLIC if is_public else VISIBILITY_PRIVATE
    with db() as conn:
        playlist_id = conn.execute(
            """
            INSERT INTO playlists (title, description, user_id, visibility, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (title, description, user.id, visibility, now_iso()),
        ).lastrowid
        row = conn.execute("SELECT * FROM playlists WHERE id=?", (playlist_id,)).fetchone()
    logger.info(f"User {user.username} created playlist {playlist_id} {title!r}")
    return _playlist_row_to_dict(row)


def edit_playlist(
    playlist_id: int,
    owner_user_id: int,
    title: str | None = None,
    description: str | None = None,
    visibility: str | None = None,
) -> dict:
    with db(immediate=True) as conn:
        current = _owned_playlist(conn, playlist_id, owner_user_id)
        conn.execute(
            "UPDATE playlists SET title=?, description=?, visibility=?, updated_at=? WHERE id=?",
            (
                title if title is not None else current["title"],
                description if description is not None else current["description"],
                visibility if visibility is not None else current["visibility"],
                now_iso(),
                playlist_id,
            ),
        )
        row = conn.execute("SELECT * FROM playlists WHERE id=?", (playlist_id,)).fetchone()
    logger.info(f"Playlist {playlist_id} updated by user {owner_user_id}")
    return _playlist_row_to_dict(row)


def delete_playlist(playlist_id: int, owner_user_id: int):
    with db(immediate=True) as conn:
        _owned_playlist(conn, playlist_id, owner_user_id)
        conn.execute("DELETE FROM playlists WHERE id=?", (playlist_id,))
    logger.info(f"Playlist {playlist_id} deleted by user {owner_user_id}")


def list_user_playlists(user_id: int) -> list[dict]:
    with db() as conn:
        rows = conn.execute(
            """
            SELECT p.*, (SELECT COUNT(*) FROM playlist_tracks pt WHERE pt.playlist_id = p.id) AS track_count
            FROM playlists p
            WHERE p.user_id=?
            ORDER BY p.created_at DESC, p.id DESC
            """,
            (user_id,),
        ).fetchall()
    playlists = []
    for row in rows:
        entry = _playlist_row_to_dict(row)
        entry["track_count"] = row["track_count"]
        playlists.append(entry)
    return playlists


def get_playlist(playlist_id: int, viewer: CurrentUser | None = None) -> dict:
    """Playlist with its tracks in position order.

    Private playlists are readable by their owner only; public and unlisted ones
    by anyone holding the id.
    """
    with db() as conn:
        row = conn.execute(
            """
            SELECT p.*, u.username AS owner_username
            FROM playlists p JOIN users u ON u.id = p.user_id
            WHERE p.id=?
            """,
            (playlist_id,),
        ).fetchone()
        if not row:
            raise NotFound(f"Playlist {playlist_id} not found")
        if row["visibility"] == VISIBILITY_PRIVATE and (viewer is None or viewer.id != row["user_id"]):
            raise Forbidden("This playlist is private")

        members = conn.execute(
            f"""
            SELECT {TRACK_COLUMNS}, pt.position, pt.added_at
            FROM playlist_tracks pt
            JOIN tracks t ON t.id = pt.track_id
            {TRACK_JOINS}
            WHERE pt.playlist_id=?
            ORDER BY pt.position, pt.added_at
            """,
            (playlist_id,),
        ).fetchall()

    playlist = _playlist_row_to_dict(row)
    playlist["owner_username"] = row["owner_username"]
    playlist["tracks"] = []
    for member in members:
        track = track_row_to_dict(member)
        track["position"] = member["position"]
        track["added_at"] = member["added_at"]
        playlist["tracks"].append(track)
    return playlist


def add_track(playlist_id: int, track_id: int, owner_user_id: int) -> dict:
    """Append a playable track to the end of an owned playlist."""
    with db(immediate=True) as conn:
        _owned_playlist(conn, playlist_id, owner_user_id)
        if load_playable_track(conn, track_id) is None:
            raise NotFound(f"Track {track_id} not found")
        if conn.execute(
            "SELECT 1 FROM playlist_tracks WHERE playlist_id=? AND track_id=?", (playlist_id, track_id)
        ).fetchone():
            raise Conflict("This track is already in the playlist")

        position = conn.execute(
            "SELECT COALESCE(MAX(position), -1) + 1 AS next FROM playlist_tracks WHERE playlist_id=?",
            (playlist_id,),
        ).fetchone()["next"]
        added_at = now_iso()
        try:
            conn.execute(
                "INSERT INTO playlist_tracks (playlist_id, track_id, position, added_at) VALUES (?, ?, ?, ?)",
                (playlist_id, track_id, position, added_at),
            )
        except sqlite3.IntegrityError:
            raise Conflict("This track is already in the playlist")

    logger.info(f"Track {track_id} added to playlist {playlist_id} at position {position}")
    return {"playlist_id": playlist_id, "track_id": track_id, "position": position, "added_at": added_at}


def remove_track(playlist_id: int, track_id: int, owner_user_id: int) -> bool:
    """Remove a membership and repack the remaining positions to 0..n-1.

    Returns False, changing nothing, when the track was not in the playlist.
    """
    with db(immediate=True) as conn:
        _owned_playlist(conn, playlist_id, owner_user_id)
        deleted = conn.execute(
            "DELETE FROM playlist_tracks WHERE playlist_id=? AND track_id=?", (playlist_id, track_id)
        ).rowcount
        if not deleted:
            logger.info(f"Track {track_id} not in playlist {playlist_id}; nothing removed")
            return False
        _renumber(conn, playlist_id)

    logger.info(f"Track {track_id} removed from playlist {playlist_id}")
    return True


def reorder(playlist_id: int, ordered_track_ids: list[int], owner_user_id: int) -> list[dict]:
    """Set ``position = index`` for each listed track; ids not in the playlist are ignored."""
    with db(immediate=True) as conn:
        _owned_playlist(conn, playlist_id, owner_user_id)
        members = {
            r["track_id"]
            for r in conn.execute(
                "SELECT track_id FROM playlist_tracks WHERE playlist_id=?", (playlist_id,)
            ).fetchall()
        }
        skipped = []
        for index, track_id in enumerate(ordered_track_ids):
            if track_id not in members:
                skipped.append(track_id)
                continue
            conn.execute(
                "UPDATE playlist_tracks SET position=? WHERE playlist_id=? AND track_id=?",
                (index, playlist_id, track_id),
            )
        rows = conn.execute(
            "SELECT track_id, position FROM playlist_tracks WHERE playlist_id=? ORDER BY position, added_at",
            (playlist_id,),
        ).fetchall()

    if skipped:
        logger.debug(f"Reorder of playlist {playlist_id} ignored unknown track ids {skipped}")
    logger.info(f"Playlist {playlist_id} reordered by user {owner_user_id}")
    return [dict(r) for r in rows]
