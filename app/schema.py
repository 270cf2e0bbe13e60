"""
app/schema.py
-----------------------------------------------------------------------------
Pydantic v2 models for the request / response objects with a fixed shape.

Profiles themselves are *not* modelled here: a profile is whatever JSON
object the client uploads, stored verbatim as a plain ``dict``.  Only the
auxiliary endpoints (health, gallery, likes, friends) have fixed schemas.

Field names follow the client's PascalCase / camelCase wire format rather
than Python conventions, so the models serialise without aliases.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Errors / health
# -----------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """JSON error body, e.g. ``{"error": "Profile not found"}``."""

    error: str


class HealthResponse(BaseModel):
    status: str = Field("healthy", examples=["healthy"])
    timestamp: str = Field(..., description="Current server time, ISO-8601 UTC.")
    uptime: float = Field(..., description="Seconds since the server started.")


# -----------------------------------------------------------------------------
# Gallery / likes
# -----------------------------------------------------------------------------


class Offset(BaseModel):
    """Image pan offset as stored by the client."""

    X: float = 0.0
    Y: float = 0.0


class GalleryEntry(BaseModel):
    """
    Summary of one showcased profile as listed by ``GET /gallery``.

    ``CharacterId`` is the name the profile is stored under and can be passed
    straight back to ``/view/{name}`` or the like endpoints.
    """

    CharacterId: str
    CharacterName: str
    Server: str
    ProfileImageUrl: str | None = None
    Tags: str = ""
    Bio: str = ""
    GalleryStatus: str = ""
    Race: str = ""
    Pronouns: str = ""
    LikeCount: int = 0
    LastUpdated: str
    ImageZoom: float = 1.0
    ImageOffset: Offset = Field(default_factory=Offset)


class LikeResponse(BaseModel):
    LikeCount: int = Field(..., ge=0)


# -----------------------------------------------------------------------------
# Friends
# -----------------------------------------------------------------------------


class FollowsRequest(BaseModel):
    """Body of both ``/friends/update-follows`` and ``/friends/check-mutual``."""

    character: str = Field(..., min_length=1, description="The requesting character.")
    following: list[str] = Field(
        ..., description="Characters the requesting character follows."
    )


class UpdateFollowsResponse(BaseModel):
    success: bool = True


class MutualFriendsResponse(BaseModel):
    mutualFriends: list[str]
