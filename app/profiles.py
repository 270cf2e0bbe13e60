"""
app/profiles.py
-----------------------------------------------------------------------------
Upload and retrieval of character profiles.

A profile is an arbitrary JSON object.  The server never interprets it,
with one exception: when an image is uploaded alongside the profile, the
``ProfileImageUrl`` field is overwritten with the public URL of the stored
image.  Without an image, a client-supplied ``ProfileImageUrl`` is stored
unchanged.

These functions are synchronous; the route handlers in ``main.py`` run them
in FastAPI's threadpool so file I/O never blocks the event loop.
"""

from __future__ import annotations

import json
import logging
from typing import Any, BinaryIO

from app.assets import AssetStore, image_url
from app.errors import InvalidPayloadError, MissingPayloadError
from app.store import DocumentStore

logger = logging.getLogger(__name__)

IMAGE_URL_FIELD = "ProfileImageUrl"


def _reject_constant(token: str) -> Any:
    # json.loads accepts NaN and Infinity, which are not JSON.
    raise InvalidPayloadError("Invalid profile JSON.")


def parse_profile(raw: str | bytes | None) -> dict[str, Any]:
    """
    Parse the uploaded profile document.

    Parameters
    ----------
    raw : The ``profile`` form field, or the raw request body.

    Returns
    -------
    dict : The decoded JSON object.

    Raises
    ------
    MissingPayloadError
        If *raw* is ``None`` or blank.
    InvalidPayloadError
        If *raw* is not valid JSON, or is JSON but not an object.
    """
    if raw is None:
        raise MissingPayloadError("Missing profile data.")
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidPayloadError("Invalid profile JSON.") from exc
    if not raw.strip():
        raise MissingPayloadError("Missing profile data.")

    try:
        document = json.loads(raw, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise InvalidPayloadError("Invalid profile JSON.") from exc

    # ProfileImageUrl has to be settable on whatever we store.
    if not isinstance(document, dict):
        raise InvalidPayloadError("Invalid profile JSON.")
    return document


def upload_profile(
    name: str,
    raw_profile: str | bytes | None,
    *,
    profiles: DocumentStore,
    assets: AssetStore,
    base_url: str,
    image: BinaryIO | None = None,
    image_filename: str | None = None,
) -> dict[str, Any]:
    """
    Store a profile and its optional image, returning the stored document.

    The profile is validated before anything is written, so a rejected
    upload leaves both stores untouched.  An existing profile under *name*
    is replaced entirely.

    Parameters
    ----------
    name           : Profile name (already percent-decoded).
    raw_profile    : JSON text of the profile.
    profiles       : Profile store.
    assets         : Image store.
    base_url       : Base for the ``ProfileImageUrl`` value.
    image          : Uploaded image file, or ``None``.
    image_filename : Original filename of the image; supplies the extension.

    Raises
    ------
    MissingPayloadError, InvalidPayloadError
        If the profile document is absent or malformed.
    StorageError
        If writing the image or profile fails.
    """
    document = parse_profile(raw_profile)

    if image is not None:
        filename = assets.save(name, image, image_filename)
        document[IMAGE_URL_FIELD] = image_url(base_url, filename)

    existed = profiles.exists(name)
    profiles.put(name, document)
    logger.info("%s profile %r", "Updated" if existed else "Created", name)
    return document


def view_profile(name: str, *, profiles: DocumentStore) -> dict[str, Any]:
    """Return the stored profile for *name*; raises ``NotFoundError`` if absent."""
    return profiles.get(name)
