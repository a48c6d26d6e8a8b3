import logging
import sqlite3

from dateutil.relativedelta import relativedelta

from database import db, utcnow
from errors import Conflict, NotFound
from models import Track

logger = logging.getLogger(__name__)

SIMILAR_TRACKS_LIMIT = 5
SEARCH_SIDE_LIMIT = 10
HOME_TRACKS_LIMIT = 15
HOME_ARTISTS_LIMIT = 10
NEW_RELEASES_LIMIT = 10

TRACK_COLUMNS = """
    t.id, t.title, t.file_path, t.duration_s, t.genre_id, t.artist_id,
    t.album_id, t.is_moderated, t.uploaded_by_user_id, t.created_at,
    g.name AS genre_name, ar.name AS artist_name, al.title AS album_title
"""
TRACK_JOINS = """
    JOIN genres g ON g.id = t.genre_id
    LEFT JOIN artists ar ON ar.id = t.artist_id
    LEFT JOIN albums al ON al.id = t.album_id
"""
TRACK_SELECT = f"SELECT {TRACK_COLUMNS} FROM tracks t {TRACK_JOINS}"


def track_row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "title": row["title"],
        "file_path": row["file_path"],
        "duration_s": row["duration_s"],
        "genre_id": row["genre_id"],
        "genre_name": row["genre_name"],
        "artist_id": row["artist_id"],
        "artist_name": row["artist_name"],
        "album_id": row["album_id"],
        "album_title": row["album_title"],
        "is_moderated": bool(row["is_moderated"]),
        "uploaded_by_user_id": row["uploaded_by_user_id"],
        "created_at": row["created_at"],
    }


def load_track(conn, track_id: int) -> Track | None:
    row = conn.execute("SELECT * FROM tracks WHERE id=?", (track_id,)).fetchone()
    if not row:
        return None
    return Track(
        id=row["id"],
        title=row["title"],
        file_path=row["file_path"],
        duration_s=row["duration_s"],
        genre_id=row["genre_id"],
        artist_id=row["artist_id"],
        album_id=row["album_id"],
        is_moderated=bool(row["is_moderated"]),
        uploaded_by_user_id=row["uploaded_by_user_id"],
        created_at=row["created_at"],
    )


def load_playable_track(conn, track_id: int) -> Track | None:
    track = load_track(conn, track_id)
    if track is None or not track.is_moderated:
        return None
    return track


# --- genres / artists / albums ---


def create_genre(name: str) -> dict:
    try:
        with db() as conn:
            cur = conn.execute("INSERT INTO genres (name) VALUES (?)", (name,))
    except sqlite3.IntegrityError:
        raise Conflict(f"Genre '{name}' already exists")
    logger.info(f"Genre created: id={cur.lastrowid} name={name!r}")
    return {"id": cur.lastrowid, "name": name}


def list_genres() -> list[dict]:
    with db() as conn:
        rows = conn.execute("SELECT id, name FROM genres ORDER BY name").fetchall()
    return [dict(r) for r in rows]


def create_artist(name: str, description: str = "", photo_path: str | None = None) -> dict:
    with db() as conn:
        cur = conn.execute(
            "INSERT INTO artists (name, description, photo_path) VALUES (?, ?, ?)",
            (name, description or "", photo_path),
        )
    logger.info(f"Artist created: id={cur.lastrowid} name={name!r}")
    return {"id": cur.lastrowid, "name": name, "description": description or "", "photo_path": photo_path}


def set_artist_photo(artist_id: int, photo_path: str) -> dict:
    with db() as conn:
        if not conn.execute("UPDATE artists SET photo_path=? WHERE id=?", (photo_path, artist_id)).rowcount:
            raise NotFound(f"Artist {artist_id} not found")
        row = conn.execute("SELECT id, name, description, photo_path FROM artists WHERE id=?", (artist_id,)).fetchone()
    logger.info(f"Artist {artist_id} photo set to {photo_path}")
    return dict(row)


def list_artists() -> list[dict]:
    with db() as conn:
        rows = conn.execute("SELECT id, name, description, photo_path FROM artists ORDER BY name").fetchall()
    return [dict(r) for r in rows]


def create_album(title: str, artist_id: int, release_date: str | None = None) -> dict:
    with db() as conn:
        if not conn.execute("SELECT 1 FROM artists WHERE id=?", (artist_id,)).fetchone():
            raise NotFound(f"Artist {artist_id} not found")
        cur = conn.execute(
            "INSERT INTO albums (title, artist_id, release_date) VALUES (?, ?, ?)",
            (title, artist_id, release_date),
        )
    logger.info(f"Album created: id={cur.lastrowid} title={title!r} artist_id={artist_id}")
    return {"id": cur.lastrowid, "title": title, "artist_id": artist_id, "release_date": release_date}


def list_albums() -> list[dict]:
    with db() as conn:
        rows = conn.execute(
            """
            SELECT al.id, al.title, al.artist_id, al.release_date, ar.name AS artist_name
            FROM albums al
            JOIN artists ar ON ar.id = al.artist_id
            ORDER BY al.title
            """
        ).fetchall()
    return [dict(r) for r in rows]


# --- tracks ---


def get_track(track_id: int, include_unmoderated: bool = False) -> dict:
    """Single track with genre/artist/album names.

    Unmoderated tracks are reported as missing unless ``include_unmoderated``.
    """
    with db() as conn:
        row = conn.execute(TRACK_SELECT + " WHERE t.id=?", (track_id,)).fetchone()
    if not row or (not row["is_moderated"] and not include_unmoderated):
        raise NotFound(f"Track {track_id} not found")
    return track_row_to_dict(row)


def playable_file_path(track_id: int) -> str:
    with db() as conn:
        track = load_playable_track(conn, track_id)
    if track is None:
        raise NotFound(f"Track {track_id} not found")
    return track.file_path


def similar_tracks(genre_id: int, current_track_id: int) -> list[dict]:
    """Most-listened playable tracks of the same genre, excluding the current one."""
    with db() as conn:
        rows = conn.execute(
            TRACK_SELECT
            + """
            WHERE t.genre_id=? AND t.id != ? AND t.is_moderated=1
            ORDER BY (SELECT COALESCE(SUM(ts.listen_count), 0)
                      FROM track_statistics ts WHERE ts.track_id = t.id) DESC, t.id ASC
            LIMIT ?
            """,
            (genre_id, current_track_id, SIMILAR_TRACKS_LIMIT),
        ).fetchall()
    return [track_row_to_dict(r) for r in rows]


def _contains(needle: str, *haystacks) -> bool:
    needle = needle.casefold()
    return any(h and needle in h.casefold() for h in haystacks)


def search(query: str) -> dict:
    """Playable tracks, artists and albums matching ``query`` (case-insensitive)."""
    query = query.strip()
    with db() as conn:
        track_rows = conn.execute(
            TRACK_SELECT
            + """
            WHERE t.is_moderated=1
            ORDER BY (SELECT COALESCE(SUM(ts.listen_count), 0)
                      FROM track_statistics ts WHERE ts.track_id = t.id) DESC, t.id ASC
            """
        ).fetchall()
        artist_rows = conn.execute("SELECT id, name, description, photo_path FROM artists ORDER BY id").fetchall()
        album_rows = conn.execute(
            """
            SELECT al.id, al.title, al.artist_id, al.release_date, ar.name AS artist_name
            FROM albums al JOIN artists ar ON ar.id = al.artist_id
            ORDER BY al.id
            """
        ).fetchall()

    tracks = [track_row_to_dict(r) for r in track_rows if _contains(query, r["title"], r["artist_name"])]
    artists = [dict(r) for r in artist_rows if _contains(query, r["name"])][:SEARCH_SIDE_LIMIT]
    albums = [dict(r) for r in album_rows if _contains(query, r["title"], r["artist_name"])][:SEARCH_SIDE_LIMIT]
    return {
        "query": query,
        "tracks": tracks,
        "artists": artists,
        "albums": albums,
        "total_results": len(tracks) + len(artists) + len(albums),
    }


def home_feed() -> dict:
    """Landing page data: a random sample of playable tracks and artists plus last month's album releases."""
    since = (utcnow() - relativedelta(months=1)).date().isoformat()
    with db() as conn:
        track_rows = conn.execute(
            TRACK_SELECT + " WHERE t.is_moderated=1 ORDER BY RANDOM() LIMIT ?", (HOME_TRACKS_LIMIT,)
        ).fetchall()
        artist_rows = conn.execute(
            "SELECT id, name, description, photo_path FROM artists ORDER BY RANDOM() LIMIT ?", (HOME_ARTISTS_LIMIT,)
        ).fetchall()
        album_rows = conn.execute(
            """
            SELECT al.id, al.title, al.artist_id, al.release_date, ar.name AS artist_name,
                   (SELECT COUNT(*) FROM tracks t WHERE t.album_id = al.id AND t.is_moderated=1) AS track_count
            FROM albums al
            JOIN artists ar ON ar.id = al.artist_id
            WHERE al.release_date IS NOT NULL AND al.release_date >= ?
            ORDER BY al.release_date DESC, al.id DESC
            LIMIT ?
            """,
            (since, NEW_RELEASES_LIMIT),
        ).fetchall()
    return {
        "tracks": [track_row_to_dict(r) for r in track_rows],
        "artists": [dict(r) for r in artist_rows],
        "new_releases": [dict(r) for r in album_rows],
    }
