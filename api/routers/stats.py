from fastapi import APIRouter, Depends

import listen_stats
from routers.auth import require_admin

router = APIRouter(prefix="/stats", dependencies=[Depends(require_admin)])


@router.get("/tracks")
def track_report(search: str | None = None, period: str = "all"):
    return {"period": listen_stats.normalize_period(period), "tracks": listen_stats.track_report(search, period)}


@router.get("/albums")
def album_report(search: str | None = None, period: str = "all"):
    return {"period": listen_stats.normalize_period(period), "albums": listen_stats.album_report(search, period)}


@router.get("/tracks/{track_id}")
def track_detail(track_id: int, period: str = "all"):
    return listen_stats.track_detail(track_id, period)
