"""Play-event log and the time-windowed reports built from it.

Every play is its own ``track_statistics`` row with ``listen_count = 1``; totals
are always summed at query time, so concurrent plays of one track never contend
on a shared counter.
"""

import logging
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from catalog import load_playable_track, load_track
from database import db, to_iso, utcnow
from errors import NotFound
from models import PERIODS

logger = logging.getLogger(__name__)

DAILY_BREAKDOWN_DAYS = 30
NO_ALBUM = "No album"


def normalize_period(period: str | None) -> str:
    period = (period or "all").lower()
    return period if period in PERIODS else "all"


def period_filter(period: str | None, column: str = "ts.date", now: datetime | None = None) -> tuple[str, list]:
    """SQL condition restricting ``column`` to the requested window.

    Windows are computed against UTC "now" at call time. Unknown periods mean "all".
    """
    now = now or utcnow()
    period = normalize_period(period)
    if period == "today":
        return f"substr({column}, 1, 10) = ?", [now.date().isoformat()]
    if period == "week":
        return f"{column} >= ?", [to_iso(now - timedelta(days=7))]
    if period == "month":
        return f"{column} >= ?", [to_iso(now - relativedelta(months=1))]
    if period == "year":
        return f"{column} >= ?", [to_iso(now - relativedelta(years=1))]
    return "1=1", []


def _matches(search: str | None, *fields) -> bool:
    if not search:
        return True
    needle = search.casefold()
    return any(f and needle in f.casefold() for f in fields)


def record_play(track_id: int) -> dict:
    """Append one play event for a playable track."""
    played_at = to_iso(utcnow())
    with db() as conn:
        if load_playable_track(conn, track_id) is None:
            raise NotFound(f"Track {track_id} not found")
        stat_id = conn.execute(
            "INSERT INTO track_statistics (track_id, date, listen_count) VALUES (?, ?, 1)",
            (track_id, played_at),
        ).lastrowid
    logger.debug(f"Play recorded: track={track_id} stat={stat_id}")
    return {"id": stat_id, "track_id": track_id, "date": played_at, "listen_count": 1}


def track_report(search: str | None = None, period: str = "all") -> list[dict]:
    """Listens per track within the period, highest total first."""
    clause, params = period_filter(period)
    with db() as conn:
        rows = conn.execute(
            f"""
            SELECT t.id AS track_id, t.title AS track_title,
                   ar.name AS artist_name, al.title AS album_title,
                   SUM(ts.listen_count) AS total_listens,
                   MAX(ts.date) AS last_listen
            FROM track_statistics ts
            JOIN tracks t ON t.id = ts.track_id
            LEFT JOIN artists ar ON ar.id = t.artist_id
            LEFT JOIN albums al ON al.id = t.album_id
            WHERE {clause}
            GROUP BY t.id
            ORDER BY total_listens DESC, last_listen DESC
            """,
            params,
        ).fetchall()

    return [
        {
            "track_id": r["track_id"],
            "track_title": r["track_title"],
            "artist_name": r["artist_name"],
            "album_title": r["album_title"] or NO_ALBUM,
            "total_listens": r["total_listens"],
            "last_listen": r["last_listen"],
        }
        for r in rows
        if _matches(search, r["track_title"], r["artist_name"])
    ]


def album_report(search: str | None = None, period: str = "all") -> list[dict]:
    """Listens per album within the period.

    Every album in the catalog is listed; albums without qualifying plays carry
    ``total_listens = 0`` and no ``last_listen``.
    """
    clause, params = period_filter(period)
    with db() as conn:
        rows = conn.execute(
            f"""
            SELECT al.id AS album_id, al.title AS album_title, ar.name AS artist_name,
                   COALESCE(s.total_listens, 0) AS total_listens,
                   s.last_listen AS last_listen,
                   COALESCE(s.track_count, 0) AS track_count
            FROM albums al
            LEFT JOIN artists ar ON ar.id = al.artist_id
            LEFT JOIN (
                SELECT t.album_id AS album_id,
                       SUM(ts.listen_count) AS total_listens,
                       MAX(ts.date) AS last_listen,
                       COUNT(DISTINCT ts.track_id) AS track_count
                FROM track_statistics ts
                JOIN tracks t ON t.id = ts.track_id
                WHERE t.album_id IS NOT NULL AND {clause}
                GROUP BY t.album_id
            ) s ON s.album_id = al.id
            ORDER BY total_listens DESC, al.title ASC
            """,
            params,
        ).fetchall()

    return [dict(r) for r in rows if _matches(search, r["album_title"], r["artist_name"])]


def track_detail(track_id: int, period: str = "all") -> dict:
    """Per-day listens (most recent 30 days with plays) and overall figures for one track."""
    clause, params = period_filter(period, column="date")
    with db() as conn:
        track = load_track(conn, track_id)
        if track is None:
            raise NotFound(f"Track {track_id} not found")

        daily = conn.execute(
            f"""
            SELECT substr(date, 1, 10) AS day, SUM(listen_count) AS listen_count
            FROM track_statistics
            WHERE track_id = ? AND {clause}
            GROUP BY day
            ORDER BY day DESC
            LIMIT ?
            """,
            [track_id, *params, DAILY_BREAKDOWN_DAYS],
        ).fetchall()
        totals = conn.execute(
            f"""
            SELECT COALESCE(SUM(listen_count), 0) AS total_listens,
                   MIN(date) AS first_listen, MAX(date) AS last_listen
            FROM track_statistics
            WHERE track_id = ? AND {clause}
            """,
            [track_id, *params],
        ).fetchone()

    return {
        "track_id": track.id,
        "track_title": track.title,
        "period": normalize_period(period),
        "total_listens": totals["total_listens"],
        "first_listen": totals["first_listen"],
        "last_listen": totals["last_listen"],
        "daily": [{"date": d["day"], "listen_count": d["listen_count"]} for d in daily],
    }
