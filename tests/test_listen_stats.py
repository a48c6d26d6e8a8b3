import threading
from datetime import datetime, timedelta, timezone

import pytest

import listen_stats
from catalog import create_album
from database import db, to_iso, utcnow
from errors import NotFound


def _play_at(track_id, moment, count=1):
    with db() as conn:
        conn.execute(
            "INSERT INTO track_statistics (track_id, date, listen_count) VALUES (?, ?, ?)",
            (track_id, to_iso(moment), count),
        )


def test_record_play_appends_one_row(make_track):
    track = make_track()

    first = listen_stats.record_play(track["id"])
    second = listen_stats.record_play(track["id"])

    assert first["listen_count"] == 1
    assert second["id"] != first["id"]
    assert listen_stats.track_detail(track["id"])["total_listens"] == 2


def test_record_play_missing_track():
    with pytest.raises(NotFound):
        listen_stats.record_play(12345)


def test_concurrent_plays_are_all_counted(make_track):
    track = make_track()
    errors = []

    def play():
        try:
            listen_stats.record_play(track["id"])
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=play) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with db() as conn:
        row = conn.execute(
            "SELECT COUNT(*) AS n, SUM(listen_count) AS total FROM track_statistics WHERE track_id=?",
            (track["id"],),
        ).fetchone()
    assert (row["n"], row["total"]) == (20, 20)


def test_period_filter_windows():
    now = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)

    assert listen_stats.period_filter("all", now=now) == ("1=1", [])
    assert listen_stats.period_filter("bogus", now=now) == ("1=1", [])
    assert listen_stats.period_filter("today", now=now)[1] == ["2024-03-31"]
    assert listen_stats.period_filter("week", now=now)[1] == [to_iso(datetime(2024, 3, 24, 12, 0, tzinfo=timezone.utc))]
    # calendar month back, clamped to the shorter February
    assert listen_stats.period_filter("month", now=now)[1] == [to_iso(datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc))]
    assert listen_stats.period_filter("year", now=now)[1] == [to_iso(datetime(2023, 3, 31, 12, 0, tzinfo=timezone.utc))]


def test_track_report_orders_and_filters(make_track, album):
    now = utcnow()
    popular = make_track("Popular Song", album_id=album["id"])
    quiet = make_track("Quiet Song")
    old = make_track("Old Song")
    for _ in range(3):
        _play_at(popular["id"], now - timedelta(hours=1))
    _play_at(quiet["id"], now - timedelta(hours=2))
    _play_at(old["id"], now - timedelta(days=40), count=5)

    everything = listen_stats.track_report()
    assert [r["track_title"] for r in everything] == ["Old Song", "Popular Song", "Quiet Song"]

    weekly = listen_stats.track_report(period="week")
    assert [(r["track_title"], r["total_listens"]) for r in weekly] == [("Popular Song", 3), ("Quiet Song", 1)]
    assert weekly[0]["album_title"] == "First Light"
    assert weekly[1]["album_title"] == "No album"

    assert [r["track_title"] for r in listen_stats.track_report(search="quiet")] == ["Quiet Song"]
    assert len(listen_stats.track_report(search="TESTERS")) == 3


def test_album_report_lists_albums_without_plays(make_track, artist, album):
    silent = create_album("Silent Album", artist["id"])
    first = make_track(album_id=album["id"])
    second = make_track(album_id=album["id"])
    listen_stats.record_play(first["id"])
    listen_stats.record_play(first["id"])
    listen_stats.record_play(second["id"])

    report = listen_stats.album_report()

    assert [r["album_title"] for r in report] == ["First Light", "Silent Album"]
    assert report[0]["total_listens"] == 3
    assert report[0]["track_count"] == 2
    assert report[1]["album_id"] == silent["id"]
    assert report[1]["total_listens"] == 0
    assert report[1]["last_listen"] is None


def test_track_detail_daily_breakdown(make_track):
    track = make_track()
    now = utcnow()
    _play_at(track["id"], now)
    _play_at(track["id"], now)
    _play_at(track["id"], now - timedelta(days=3))
    _play_at(track["id"], now - timedelta(days=400))

    detail = listen_stats.track_detail(track["id"], period="month")

    assert detail["total_listens"] == 3
    assert [d["listen_count"] for d in detail["daily"]] == [2, 1]
    assert detail["daily"][0]["date"] == now.date().isoformat()
    assert detail["last_listen"] >= detail["first_listen"]

    assert listen_stats.track_detail(track["id"])["total_listens"] == 4


def test_track_detail_missing_track():
    with pytest.raises(NotFound):
        listen_stats.track_detail(999)


def test_normalize_period():
    assert listen_stats.normalize_period("WEEK") == "week"
    assert listen_stats.normalize_period(None) == "all"
    assert listen_stats.normalize_period("fortnight") == "all"
