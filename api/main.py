import logging
import os
from contextlib import asynccontextmanager

from database import init_db
from errors import Conflict, DomainError, Forbidden, NotFound, PaymentDeclined, Unauthorized, ValidationFailed
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers import accounts, admin, library, moderation, playlists, stats, subscriptions, tracks
from sweeper import start_sweeper, stop_sweeper

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = os.getenv("SERVICE_NAME", "Music Streaming")

STATUS_CODES = {
    NotFound: 404,
    Forbidden: 403,
    Conflict: 409,
    ValidationFailed: 422,
    PaymentDeclined: 402,
    Unauthorized: 401,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting up {SERVICE_NAME} API")
    init_db()
    start_sweeper()
    yield
    logger.info(f"Shutting down {SERVICE_NAME} API")
    stop_sweeper()


app = FastAPI(title=SERVICE_NAME + " API", lifespan=lifespan)

_origins = [o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins or ["http://localhost", "http://localhost:8000"],
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-Session-Token"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    status_code = STATUS_CODES.get(type(exc), 400)
    if status_code == 402:
        logger.warning(f"{request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=status_code, content={"detail": exc.detail, "error_code": exc.error_code})


app.include_router(accounts.router)
app.include_router(library.router)
app.include_router(tracks.router)
app.include_router(playlists.router)
app.include_router(subscriptions.router)
app.include_router(moderation.router)
app.include_router(stats.router)
app.include_router(admin.router)


@app.get("/health")
def health():
    return {"ok": True}
