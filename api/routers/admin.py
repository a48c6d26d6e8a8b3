import os

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel, Field

import accounts
import catalog
import uploads
from errors import DomainError
from models import ROLES
from routers.auth import require_admin

router = APIRouter(dependencies=[Depends(require_admin)])

ROLE_PATTERN = "^(" + "|".join(ROLES) + ")$"


class RoleUpdate(BaseModel):
    role: str = Field(pattern=ROLE_PATTERN)


class GenreCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class ArtistCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    photo_path: str | None = Field(default=None, max_length=500)


class AlbumCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    artist_id: int
    release_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")


@router.get("/admin/users")
def list_users(search: str | None = None):
    return {"users": accounts.list_users(search)}


@router.post("/admin/users/{user_id}/role")
def change_role(user_id: int, update: RoleUpdate):
    return accounts.change_role(user_id, update.role)


@router.post("/admin/genres", status_code=201)
def create_genre(req: GenreCreate):
    return catalog.create_genre(req.name.strip())


@router.post("/admin/artists", status_code=201)
def create_artist(req: ArtistCreate):
    return catalog.create_artist(req.name.strip(), req.description, req.photo_path)


@router.post("/admin/albums", status_code=201)
def create_album(req: AlbumCreate):
    return catalog.create_album(req.title.strip(), req.artist_id, req.release_date)


@router.post("/admin/artists/{artist_id}/photo")
async def upload_artist_photo(artist_id: int, file: UploadFile = File(...)):
    stored_path = await uploads.save_upload(file, uploads.IMAGE_FOLDER, uploads.IMAGE_EXTENSIONS)
    try:
        return catalog.set_artist_photo(artist_id, stored_path)
    except DomainError:
        os.unlink(uploads.absolute_path(stored_path))
        raise
