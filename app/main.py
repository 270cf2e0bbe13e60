"""
app/main.py
-----------------------------------------------------------------------------
FastAPI application entrypoint for the character profile server.

This module is a **thin routing layer**: each route handler parses the
request, calls a domain module, and maps domain errors onto HTTP responses.

Domain modules
~~~~~~~~~~~~~~
- ``app.config``   – Environment-driven settings.
- ``app.store``    – Name-keyed byte store and the JSON document layer.
- ``app.assets``   – Uploaded image storage and image URLs.
- ``app.profiles`` – Upload / view orchestration.
- ``app.gallery``  – Showcase listing and like counters.
- ``app.friends``  – Follow lists and mutual-friend lookup.
- ``app.schema``   – Pydantic models for the fixed-shape responses.

Run with:
    profile-server
or:
    uvicorn app.main:app --host 0.0.0.0 --port 3000

Endpoints
---------
GET    /health                   → liveness probe
POST   /upload/{name}            → store a profile (+ optional image)
PUT    /upload/{name}            → same as POST
GET    /view/{name}              → return a stored profile
GET    /images/{filename}        → return a stored image
GET    /gallery                  → showcased profiles, most liked first
POST   /gallery/{name}/like      → increment a profile's like count
DELETE /gallery/{name}/like      → decrement a profile's like count
POST   /friends/update-follows   → publish a follow list
POST   /friends/check-mutual     → list mutual friends

Architecture notes
------------------
- Blocking file I/O lives in regular ``def`` handlers (FastAPI runs them in
  a threadpool).  The upload handler must ``await`` the multipart body, so
  it hands the storage work to ``run_in_threadpool`` explicitly.
- No state about profiles is held in memory between requests; every
  request reads or writes the backing directories directly.
- ``StorageError`` propagates out of the handlers and is turned into a 500
  by a single exception handler.
"""

from __future__ import annotations

import logging
import time
import tomllib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.requests import Request

from app.assets import AssetStore
from app.config import settings
from app.errors import InvalidPayloadError, MissingPayloadError, NotFoundError, StorageError
from app.friends import mutual_friends, update_follows
from app.gallery import adjust_likes, build_gallery
from app.profiles import upload_profile, view_profile
from app.schema import (
    ErrorResponse,
    FollowsRequest,
    GalleryEntry,
    HealthResponse,
    LikeResponse,
    MutualFriendsResponse,
    UpdateFollowsResponse,
)
from app.store import DocumentStore, FileStore

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Bootstrap
# -----------------------------------------------------------------------------

_HERE = Path(__file__).parent

# Read version from pyproject.toml (single source of truth).
_PYPROJECT = _HERE.parent / "pyproject.toml"
with open(_PYPROJECT, "rb") as _f:
    _APP_VERSION: str = tomllib.load(_f)["project"]["version"]

_STARTED_AT = time.monotonic()

PROFILE_NOT_FOUND = {"error": "Profile not found"}

# The stores create their directories on construction.
profile_store = DocumentStore(FileStore(settings.profiles_dir, suffix=".json"))
follows_store = DocumentStore(FileStore(settings.follows_dir, suffix=".json"))
asset_store = AssetStore(settings.images_dir)

# -----------------------------------------------------------------------------
# FastAPI app + middleware
# -----------------------------------------------------------------------------

app = FastAPI(
    title="Character Profile Server",
    description=(
        "Stores character profiles (arbitrary JSON plus an optional image) "
        "by name and serves them back."
    ),
    version=_APP_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Log the failure with its cause and answer with a generic 500."""
    logger.error(
        "Storage failure on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def _base_url(request: Request) -> str:
    return settings.public_base_url or str(request.base_url)


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, summary="Liveness probe")
def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=time.monotonic() - _STARTED_AT,
    )


# -----------------------------------------------------------------------------
# Upload / view
# -----------------------------------------------------------------------------


async def _read_upload_body(request: Request) -> tuple[str | bytes | None, UploadFile | None]:
    """
    Extract the profile JSON and optional image from an upload request.

    Accepts ``multipart/form-data`` (fields ``profile`` and ``image``) or a
    raw ``application/json`` body holding the profile itself.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        return await request.body(), None

    form = await request.form()
    profile = form.get("profile")
    if isinstance(profile, UploadFile):
        # Some clients send the profile as a file part.
        profile = await profile.read()

    image = form.get("image")
    if not isinstance(image, UploadFile) or not image.filename:
        image = None
    return profile, image


@app.api_route(
    "/upload/{name:path}",
    methods=["POST", "PUT"],
    summary="Store a profile and its optional image",
    responses={
        200: {"description": "The stored profile document."},
        400: {"description": "Missing or invalid profile JSON (plain text)."},
    },
)
async def upload(name: str, request: Request) -> Response:
    """
    Store the uploaded profile under *name*, replacing any previous one.

    When an ``image`` file is attached it is stored under the sanitized
    name and the returned document's ``ProfileImageUrl`` points at it.

    Returns
    -------
    The stored (possibly modified) profile document.

    Raises
    ------
    HTTPException(404) if the name is empty.
    StorageError (→ 500) if the profile or image cannot be written.
    """
    if not name:
        raise HTTPException(status_code=404, detail="Not Found")
    raw_profile, image = await _read_upload_body(request)
    try:
        document = await run_in_threadpool(
            upload_profile,
            name,
            raw_profile,
            profiles=profile_store,
            assets=asset_store,
            base_url=_base_url(request),
            image=image.file if image is not None else None,
            image_filename=image.filename if image is not None else None,
        )
    except (MissingPayloadError, InvalidPayloadError) as exc:
        return PlainTextResponse(str(exc), status_code=400)
    finally:
        if image is not None:
            await image.close()

    return JSONResponse(document)


@app.get(
    "/view/{name:path}",
    summary="Return a stored profile",
    responses={404: {"model": ErrorResponse}},
)
def view(name: str) -> JSONResponse:
    """Return the profile stored under *name*, or a 404 error body."""
    if not name:
        return JSONResponse(PROFILE_NOT_FOUND, status_code=404)
    try:
        document = view_profile(name, profiles=profile_store)
    except NotFoundError:
        logger.debug("Profile not found: %r", name)
        return JSONResponse(PROFILE_NOT_FOUND, status_code=404)
    return JSONResponse(document)


@app.get(
    "/images/{filename}",
    summary="Return a stored profile image",
    responses={404: {"model": ErrorResponse}},
)
def get_image(filename: str) -> Response:
    try:
        path = asset_store.path_for(filename)
    except NotFoundError:
        return JSONResponse({"error": "Image not found"}, status_code=404)
    return FileResponse(path)


# -----------------------------------------------------------------------------
# Gallery / likes
# -----------------------------------------------------------------------------


@app.get("/gallery", response_model=list[GalleryEntry], summary="List showcased profiles")
def gallery() -> list[GalleryEntry]:
    return build_gallery(profile_store)


def _like_response(name: str, delta: int) -> Response:
    try:
        count = adjust_likes(profile_store, name, delta)
    except NotFoundError:
        return JSONResponse(PROFILE_NOT_FOUND, status_code=404)
    return JSONResponse(LikeResponse(LikeCount=count).model_dump())


@app.post(
    "/gallery/{name:path}/like",
    response_model=LikeResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Like a profile",
)
def like(name: str) -> Response:
    return _like_response(name, 1)


@app.delete(
    "/gallery/{name:path}/like",
    response_model=LikeResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Remove a like from a profile",
)
def unlike(name: str) -> Response:
    return _like_response(name, -1)


# -----------------------------------------------------------------------------
# Friends
# -----------------------------------------------------------------------------


def _parse_follows(body: Any) -> FollowsRequest | None:
    try:
        return FollowsRequest.model_validate(body)
    except ValidationError:
        return None


@app.post(
    "/friends/update-follows",
    response_model=UpdateFollowsResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Publish the list of characters a character follows",
)
def friends_update_follows(body: Any = Body(None)) -> Response:
    req = _parse_follows(body)
    if req is None:
        return JSONResponse({"error": "Invalid request data"}, status_code=400)
    update_follows(follows_store, req.character, req.following)
    return JSONResponse(UpdateFollowsResponse().model_dump())


@app.post(
    "/friends/check-mutual",
    response_model=MutualFriendsResponse,
    responses={400: {"model": ErrorResponse}},
    summary="List followed characters who follow back",
)
def friends_check_mutual(body: Any = Body(None)) -> Response:
    req = _parse_follows(body)
    if req is None:
        return JSONResponse({"error": "Invalid request data"}, status_code=400)
    mutual = mutual_friends(follows_store, req.character, req.following)
    return JSONResponse(MutualFriendsResponse(mutualFriends=mutual).model_dump())


# -----------------------------------------------------------------------------
# Console entry point
# -----------------------------------------------------------------------------


def run() -> None:
    """Configure logging and serve the app with uvicorn on ``settings.port``."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Profiles directory: %s", settings.profiles_dir)
    logger.info("Images directory: %s", settings.images_dir)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    run()
