from fastapi import APIRouter, Query

import catalog

router = APIRouter()


@router.get("/genres")
def list_genres():
    return {"genres": catalog.list_genres()}


@router.get("/artists")
def list_artists():
    return {"artists": catalog.list_artists()}


@router.get("/albums")
def list_albums():
    return {"albums": catalog.list_albums()}


@router.get("/search")
def search(q: str = Query(..., min_length=1, max_length=200)):
    return catalog.search(q)


@router.get("/home")
def home():
    return catalog.home_feed()
