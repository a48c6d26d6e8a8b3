import logging
import os
import re
import uuid

from fastapi import UploadFile

from database import db, now_iso
from errors import NotFound, ValidationFailed
from moderation import submit_for_moderation

logger = logging.getLogger(__name__)

MEDIA_DIR = os.environ.get("MEDIA_DIR", "/media")
AUDIO_FOLDER = "audio"
IMAGE_FOLDER = "images"
AUDIO_EXTENSIONS = {".mp3", ".wav", ".flac", ".m4a", ".ogg", ".opus"}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
MAX_FILE_SIZE = 200 * 1024 * 1024  # 200MB


def _safe_name(filename: str) -> str:
    base = os.path.basename(filename)
    return re.sub(r"[^A-Za-z0-9._-]", "_", base)[:120] or "file"


def absolute_path(stored_path: str) -> str:
    return os.path.join(MEDIA_DIR, stored_path.lstrip("/"))


async def save_upload(file: UploadFile, folder: str, allowed_extensions: set[str]) -> str:
    """Copy an uploaded file into the blob store and return its stored path.

    The stored path is relative to MEDIA_DIR (``/<folder>/<uuid>_<name>``); callers
    persist it as-is and never look inside the file.
    """
    if not file.filename:
        raise ValidationFailed("A file is required")
    ext = os.path.splitext(file.filename)[1].lower()
    if ext not in allowed_extensions:
        raise ValidationFailed(f"Unsupported file type: {ext}")

    stored_path = f"/{folder}/{uuid.uuid4().hex}_{_safe_name(file.filename)}"
    dest = absolute_path(stored_path)
    os.makedirs(os.path.dirname(dest), exist_ok=True)

    size = 0
    with open(dest, "wb") as f_out:
        while chunk := await file.read(65536):
            size += len(chunk)
            if size > MAX_FILE_SIZE:
                f_out.close()
                os.unlink(dest)
                raise ValidationFailed("File too large (max 200MB)")
            f_out.write(chunk)

    logger.info(f"Stored upload {file.filename!r} at {stored_path} ({size} bytes)")
    return stored_path


def create_track(
    title: str,
    file_path: str,
    duration_s: int,
    genre_id: int,
    artist_id: int | None = None,
    album_id: int | None = None,
    uploaded_by_user_id: int | None = None,
) -> dict:
    """Insert an unmoderated track and queue it for moderation in one transaction."""
    with db() as conn:
        if not conn.execute("SELECT 1 FROM genres WHERE id=?", (genre_id,)).fetchone():
            raise NotFound(f"Genre {genre_id} not found")
        if artist_id is not None and not conn.execute("SELECT 1 FROM artists WHERE id=?", (artist_id,)).fetchone():
            raise NotFound(f"Artist {artist_id} not found")
        if album_id is not None and not conn.execute("SELECT 1 FROM albums WHERE id=?", (album_id,)).fetchone():
            raise NotFound(f"Album {album_id} not found")

        track_id = conn.execute(
            """
            INSERT INTO tracks (title, file_path, duration_s, genre_id, artist_id, album_id,
                                is_moderated, uploaded_by_user_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (title, file_path, duration_s, genre_id, artist_id, album_id, uploaded_by_user_id, now_iso()),
        ).lastrowid
        moderation_id = submit_for_moderation(conn, track_id)

    logger.info(f"Track created: id={track_id} title={title!r} uploaded_by={uploaded_by_user_id}")
    return {
        "id": track_id,
        "title": title,
        "file_path": file_path,
        "duration_s": duration_s,
        "genre_id": genre_id,
        "artist_id": artist_id,
        "album_id": album_id,
        "is_moderated": False,
        "uploaded_by_user_id": uploaded_by_user_id,
        "moderation_id": moderation_id,
    }
