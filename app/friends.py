"""
app/friends.py
-----------------------------------------------------------------------------
Follow lists and mutual-friend lookup.

Each character publishes the list of characters it follows.  Two characters
are mutual friends when each appears in the other's list.  Follow records
live in their own namespace so they can never collide with a profile name.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.errors import NotFoundError, StorageError
from app.store import DocumentStore

logger = logging.getLogger(__name__)


def update_follows(follows: DocumentStore, character: str, following: list[str]) -> None:
    """Replace the follow list published by *character*."""
    follows.put(
        character,
        {
            "character": character,
            "following": following,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        },
    )
    logger.info("Updated follows for %r: %d following", character, len(following))


def mutual_friends(follows: DocumentStore, character: str, following: list[str]) -> list[str]:
    """
    Return the members of *following* who follow *character* back.

    Characters that never published a follow list, or whose record cannot be
    read, are treated as not following anyone.
    """
    mutual: list[str] = []
    for other in following:
        try:
            record = follows.get(other)
        except NotFoundError:
            continue
        except StorageError as exc:
            logger.warning("Skipping follows for %r: %s", other, exc)
            continue
        their_following = record.get("following") if isinstance(record, dict) else None
        if isinstance(their_following, list) and character in their_following:
            mutual.append(other)

    logger.info("%r has %d mutual friends", character, len(mutual))
    return mutual
