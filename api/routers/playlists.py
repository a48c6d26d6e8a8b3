from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

import playlists
from models import VISIBILITIES, CurrentUser
from routers.auth import current_user, require_user

router = APIRouter(prefix="/playlists")

VISIBILITY_PATTERN = "^(" + "|".join(VISIBILITIES) + ")$"


class PlaylistCreate(BaseModel):
    title: str = Field(min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    is_public: bool = False


class PlaylistUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    visibility: str | None = Field(default=None, pattern=VISIBILITY_PATTERN)


class TrackAdd(BaseModel):
    track_id: int


class TrackOrder(BaseModel):
    track_ids: list[int]


@router.get("")
def my_playlists(user: CurrentUser = Depends(require_user)):
    return {"playlists": playlists.list_user_playlists(user.id)}


@router.get("/can-create")
def can_create(user: CurrentUser = Depends(require_user)):
    return {"can_create": playlists.can_create_playlists(user)}


@router.post("", status_code=201)
def create(req: PlaylistCreate, user: CurrentUser = Depends(require_user)):
    return playlists.create_playlist(user, req.title.strip(), req.description, req.is_public)


@router.get("/{playlist_id}")
def get_playlist(playlist_id: int, viewer: CurrentUser | None = Depends(current_user)):
    return playlists.get_playlist(playlist_id, viewer)


@router.patch("/{playlist_id}")
def edit(playlist_id: int, req: PlaylistUpdate, user: CurrentUser = Depends(require_user)):
    title = req.title.strip() if req.title is not None else None
    return playlists.edit_playlist(playlist_id, user.id, title, req.description, req.visibility)


@router.delete("/{playlist_id}")
def delete(playlist_id: int, user: CurrentUser = Depends(require_user)):
    playlists.delete_playlist(playlist_id, user.id)
    return {"ok": True}


@router.post("/{playlist_id}/tracks", status_code=201)
def add_track(playlist_id: int, req: TrackAdd, user: CurrentUser = Depends(require_user)):
    return playlists.add_track(playlist_id, req.track_id, user.id)


@router.delete("/{playlist_id}/tracks/{track_id}")
def remove_track(playlist_id: int, track_id: int, user: CurrentUser = Depends(require_user)):
    return {"removed": playlists.remove_track(playlist_id, track_id, user.id)}


@router.put("/{playlist_id}/order")
def reorder(playlist_id: int, req: TrackOrder, user: CurrentUser = Depends(require_user)):
    return {"tracks": playlists.reorder(playlist_id, req.track_ids, user.id)}
