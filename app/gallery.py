"""
app/gallery.py
-----------------------------------------------------------------------------
Public gallery and like counters.

The gallery is a full scan of the profile store on every request: there is
no cache and no index.  A profile is listed when its ``Sharing`` field is
``"ShowcasePublic"`` (or the client's numeric enum value ``2``).  Entries
are sorted by ``LikeCount``, highest first.

Likes are a read-modify-write of the stored profile.  Concurrent likes on the
same profile can lose an increment; that is acceptable for a popularity
counter and matches the store's last-write-wins policy.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from app.errors import NotFoundError, StorageError
from app.schema import GalleryEntry, Offset
from app.store import DocumentStore

logger = logging.getLogger(__name__)

SHOWCASE_VALUES: tuple[Any, ...] = ("ShowcasePublic", 2)

UNKNOWN_SERVER = "Unknown"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def split_character_id(character_id: str) -> tuple[str, str]:
    """
    Split ``"Name@Server"`` into ``("Name", "Server")``.

    Names without an ``@`` get the server ``"Unknown"``.
    """
    character, sep, server = character_id.partition("@")
    if not sep:
        return character_id, UNKNOWN_SERVER
    return character, server.split("@")[0]


def like_count_of(profile: dict[str, Any]) -> int:
    """
    Return the stored ``LikeCount`` as an int.

    Integral floats such as ``3.0`` count; anything else (missing, text,
    booleans, fractional or non-finite numbers) counts as 0.
    """
    value = profile.get("LikeCount")
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def is_showcased(profile: dict[str, Any]) -> bool:
    sharing = profile.get("Sharing")
    # bool is an int subclass; True must not match the enum value 2.
    if isinstance(sharing, bool):
        return False
    return sharing in SHOWCASE_VALUES


def _offset(raw: Any) -> Offset:
    if isinstance(raw, dict):
        try:
            return Offset(X=raw.get("X", 0.0) or 0.0, Y=raw.get("Y", 0.0) or 0.0)
        except ValueError:
            pass
    return Offset()


def gallery_entry(name: str, profile: dict[str, Any]) -> GalleryEntry:
    """Build the gallery summary for one stored profile."""
    fallback_name, server = split_character_id(name)
    character_name = profile.get("CharacterName")
    if not isinstance(character_name, str) or not character_name:
        character_name = fallback_name

    like_count = like_count_of(profile)

    zoom = profile.get("ImageZoom")
    if not isinstance(zoom, (int, float)) or isinstance(zoom, bool) or not zoom:
        zoom = 1.0

    def text(field: str) -> str:
        value = profile.get(field)
        return value if isinstance(value, str) else ""

    image = profile.get("ProfileImageUrl")
    return GalleryEntry(
        CharacterId=name,
        CharacterName=character_name,
        Server=server,
        ProfileImageUrl=image if isinstance(image, str) and image else None,
        Tags=text("Tags"),
        Bio=text("Bio"),
        GalleryStatus=text("GalleryStatus"),
        Race=text("Race"),
        Pronouns=text("Pronouns"),
        LikeCount=max(like_count, 0),
        LastUpdated=text("LastUpdated") or _now_iso(),
        ImageZoom=float(zoom),
        ImageOffset=_offset(profile.get("ImageOffset")),
    )


def build_gallery(profiles: DocumentStore) -> list[GalleryEntry]:
    """
    Return every showcased profile, most liked first.

    Records that cannot be read are skipped and counted in the log rather
    than failing the whole listing.
    """
    entries: list[GalleryEntry] = []
    skipped = 0
    for name in profiles.names():
        try:
            profile = profiles.get(name)
        except NotFoundError:
            # Overwritten or removed since names() listed it.
            continue
        except StorageError as exc:
            logger.warning("Skipping unreadable profile %r: %s", name, exc)
            skipped += 1
            continue
        if not isinstance(profile, dict) or not is_showcased(profile):
            continue
        entries.append(gallery_entry(name, profile))

    # sorted() is stable, so equal counts keep name order.
    entries = sorted(entries, key=lambda e: e.LikeCount, reverse=True)
    if skipped:
        logger.info("Gallery: %d profiles (skipped %d unreadable)", len(entries), skipped)
    else:
        logger.info("Gallery: %d profiles", len(entries))
    return entries


def adjust_likes(profiles: DocumentStore, name: str, delta: int) -> int:
    """
    Add *delta* to the profile's ``LikeCount`` and return the new count.

    The count never drops below zero.  ``LastUpdated`` is stamped with the
    current time.

    Raises
    ------
    NotFoundError
        If no profile is stored under *name*.
    """
    profile = profiles.get(name)
    current = like_count_of(profile)
    profile["LikeCount"] = max(0, current + delta)
    profile["LastUpdated"] = _now_iso()
    profiles.put(name, profile)
    logger.info("Likes for %r now %d", name, profile["LikeCount"])
    return profile["LikeCount"]
