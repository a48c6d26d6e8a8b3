import logging
import os

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse

import audio
import catalog
import listen_stats
import uploads
from errors import DomainError, NotFound, ValidationFailed
from models import CurrentUser
from routers.auth import require_uploader

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/tracks", status_code=201)
async def upload_track(
    title: str = Form(...),
    genre_id: int = Form(...),
    artist_id: int | None = Form(None),
    album_id: int | None = Form(None),
    duration_s: int | None = Form(None),
    file: UploadFile = File(...),
    user: CurrentUser = Depends(require_uploader),
):
    title = title.strip()[:255]
    if not title:
        raise ValidationFailed("title is required")
    if duration_s is not None and not 1 <= duration_s <= audio.MAX_DURATION_S:
        raise ValidationFailed(f"duration_s must be between 1 and {audio.MAX_DURATION_S}")

    stored_path = await uploads.save_upload(file, uploads.AUDIO_FOLDER, uploads.AUDIO_EXTENSIONS)
    dest = uploads.absolute_path(stored_path)
    try:
        if duration_s is None:
            try:
                duration_s = await run_in_threadpool(audio.probe_duration, dest)
            except Exception as e:
                logger.warning(f"Could not probe {stored_path}: {e}")
                raise ValidationFailed("Could not read audio duration; supply duration_s") from e
        return uploads.create_track(
            title,
            stored_path,
            duration_s,
            genre_id,
            artist_id=artist_id,
            album_id=album_id,
            uploaded_by_user_id=user.id,
        )
    except DomainError:
        if os.path.exists(dest):
            os.unlink(dest)
        raise


@router.get("/tracks/{track_id}")
def get_track(track_id: int):
    return catalog.get_track(track_id)


@router.get("/tracks/{track_id}/similar")
def get_similar(track_id: int):
    track = catalog.get_track(track_id)
    return {"tracks": catalog.similar_tracks(track["genre_id"], track_id)}


@router.get("/tracks/{track_id}/stream")
def stream_track(track_id: int):
    path = uploads.absolute_path(catalog.playable_file_path(track_id))
    if not os.path.isfile(path):
        logger.warning(f"Audio file missing for track {track_id}: {path}")
        raise NotFound(f"Audio for track {track_id} not found")
    return FileResponse(path)


@router.post("/tracks/{track_id}/play")
def play_track(track_id: int):
    """Record one listen. Guests may play."""
    return listen_stats.record_play(track_id)
