"""
app/assets.py
-----------------------------------------------------------------------------
Storage for uploaded profile images.

An image is stored under a filename derived from the profile name:

    sanitize_asset_name(name) + image_extension(original_filename)

so ``"Sir Reginald/The Bold"`` uploading ``portrait.jpg`` becomes
``Sir_Reginald_The_Bold.jpg``.  A later upload for the same name overwrites
the previous image (when the extension matches).  Images are never deleted
by the server.

The files are served back read-only by ``GET /images/{filename}``; the URL
for a stored image is built by :func:`image_url`.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO
from urllib.parse import quote

from app.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_EXTENSION = ".png"

# Route prefix under which stored images are served.
IMAGES_ROUTE = "/images"

_DISALLOWED_NAME_CHARS = re.compile(r"[^A-Za-z0-9_@-]")
_DISALLOWED_EXT_CHARS = re.compile(r"[^A-Za-z0-9]")


def sanitize_asset_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_@-]`` with ``_``."""
    return _DISALLOWED_NAME_CHARS.sub("_", name)


def image_extension(filename: str | None) -> str:
    """
    Return the extension of *filename* including the leading dot.

    Falls back to ``.png`` when the filename has no extension.  Dotfiles
    such as ``.hidden`` count as having no extension.
    """
    ext = os.path.splitext(filename or "")[1]
    if not ext or ext == ".":
        return DEFAULT_IMAGE_EXTENSION
    return "." + _DISALLOWED_EXT_CHARS.sub("_", ext[1:])


def asset_filename(name: str, original_filename: str | None) -> str:
    return sanitize_asset_name(name) + image_extension(original_filename)


def image_url(base_url: str, filename: str) -> str:
    """Public URL of the stored image *filename*."""
    return f"{base_url.rstrip('/')}{IMAGES_ROUTE}/{quote(filename, safe='@')}"


class AssetStore:
    """
    Image files under *root*, one per sanitized profile name.

    Parameters
    ----------
    root : Directory holding the images.  Created if missing.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, name: str, source: BinaryIO, original_filename: str | None) -> str:
        """
        Move an uploaded file into the store and return its asset filename.

        *source* is the upload's temporary file.  Its content is streamed
        into a temporary sibling of the destination and then renamed into
        place, replacing any image already stored under the same filename.

        Raises
        ------
        StorageError
            If the image cannot be written.
        """
        filename = asset_filename(name, original_filename)
        destination = self.root / filename
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".", suffix=".upload")
            try:
                with os.fdopen(fd, "wb") as fh:
                    shutil.copyfileobj(source, fh)
                os.replace(tmp_name, destination)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Failed to store image {filename}: {exc}") from exc

        logger.info("Stored image %s for %r", filename, name)
        return filename

    def path_for(self, filename: str) -> Path:
        """
        Resolve a stored asset filename to its path.

        Only bare filenames are accepted; anything with a path separator or
        a leading dot is treated as absent.

        Raises
        ------
        NotFoundError
            If no such asset exists.
        """
        if not filename or filename != Path(filename).name or filename.startswith("."):
            raise NotFoundError(filename)
        path = self.root / filename
        if not path.is_file():
            raise NotFoundError(filename)
        return path
