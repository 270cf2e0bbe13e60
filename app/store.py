"""
app/store.py
-----------------------------------------------------------------------------
Name-keyed record storage.

Two layers:

1. ``Store`` – a byte-level key/value protocol.  ``FileStore`` implements it
   with one file per key under a root directory.  Any other backend (an
   embedded key/value database, an object store) can be dropped in as long as
   it honours the same four methods.
2. ``DocumentStore`` – JSON documents on top of any ``Store``.  This is the
   profile store used by the upload and view routes, and also holds the
   friends/follows records.

Overwrite policy
----------------
``put`` always replaces the whole record.  There is no merge, no version
check and no locking: when two writers race on the same key, whichever
``os.replace`` lands last wins.

Filename mapping
----------------
Keys are used verbatim as filenames (``{key}{suffix}``) except for the few
characters a filename cannot safely hold – path separators, ``%`` and
control characters – which are percent-escaped.  ``keys()`` reverses the
escaping, so every name a client can send stays addressable.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import unquote

from app.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

# Characters escaped in filenames.  "%" must be escaped too so unquote() in
# keys() is an exact inverse.
_UNSAFE_FILENAME_CHARS = re.compile(r"[%/\\\x00-\x1f\x7f]")


class Store(Protocol):
    """Byte-level key/value storage."""

    def put(self, key: str, data: bytes) -> None: ...

    def get(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...


# -----------------------------------------------------------------------------
# Filesystem backend
# -----------------------------------------------------------------------------


def key_to_filename(key: str, suffix: str = "") -> str:
    """Return the on-disk filename for *key*."""
    escaped = _UNSAFE_FILENAME_CHARS.sub(lambda m: f"%{ord(m.group()):02X}", key)
    return escaped + suffix


def write_atomic(path: Path, data: bytes) -> None:
    """
    Write *data* to *path* through a temporary sibling file.

    The temporary file lives in the same directory so ``os.replace`` is a
    rename on one filesystem; readers see either the old or the new record,
    never a partial one.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileStore:
    """
    One file per key under *root*.

    Parameters
    ----------
    root   : Directory holding the records.  Created if missing.
    suffix : Appended to every filename (``".json"`` for profiles).
    """

    def __init__(self, root: Path, suffix: str = ".json") -> None:
        self.root = Path(root)
        self.suffix = suffix
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.root / key_to_filename(key, self.suffix)

    def put(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        try:
            write_atomic(path, data)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def get(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(key) from None
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def keys(self) -> list[str]:
        try:
            entries = list(self.root.iterdir())
        except OSError as exc:
            raise StorageError(f"Failed to list {self.root}: {exc}") from exc
        names = []
        for entry in entries:
            # Skip in-flight temporary files from write_atomic().
            if entry.name.startswith(".") and entry.name.endswith(".tmp"):
                continue
            if not entry.name.endswith(self.suffix) or not entry.is_file():
                continue
            stem = entry.name[: -len(self.suffix)] if self.suffix else entry.name
            names.append(unquote(stem))
        return sorted(names)


# -----------------------------------------------------------------------------
# JSON documents
# -----------------------------------------------------------------------------


class DocumentStore:
    """
    JSON documents keyed by name.

    Documents are stored pretty-printed (two-space indent) so the files stay
    readable when inspected by hand.
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    def put(self, name: str, document: dict[str, Any]) -> None:
        """Create or fully replace the document stored under *name*."""
        data = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
        self.store.put(name, data.encode("utf-8"))

    def get(self, name: str) -> dict[str, Any]:
        """
        Return the document stored under *name*.

        Raises
        ------
        NotFoundError
            If nothing is stored under *name*.
        StorageError
            If the record is empty or not valid JSON.  The record is left
            untouched so it can be inspected.
        """
        raw = self.store.get(name)
        if not raw.strip():
            raise StorageError(f"Record {name!r} is empty")
        try:
            return json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Unreadable record %r: %s", name, exc)
            raise StorageError(f"Record {name!r} is not valid JSON: {exc}") from exc

    def exists(self, name: str) -> bool:
        return self.store.exists(name)

    def names(self) -> list[str]:
        return self.store.keys()
