"""
app/errors.py
-----------------------------------------------------------------------------
Exception types shared by the storage layer and the route handlers.

Route handlers in ``main.py`` translate these into HTTP responses:

- ``MissingPayloadError`` / ``InvalidPayloadError`` → 400, plain text.
- ``NotFoundError``                               → 404, JSON error body.
- ``StorageError``                                → 500, JSON error body
                                                    (via an exception handler).
"""

from __future__ import annotations


class ProfileServerError(Exception):
    """Base class for all errors raised by the profile server."""


class NotFoundError(ProfileServerError, LookupError):
    """No record exists under the requested key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"No record stored under {key!r}")
        self.key = key


class MissingPayloadError(ProfileServerError, ValueError):
    """The upload request carried no profile document."""


class InvalidPayloadError(ProfileServerError, ValueError):
    """The profile document is not a well-formed JSON object."""


class StorageError(ProfileServerError):
    """Reading or writing the backing store failed."""


class ConfigError(ProfileServerError, ValueError):
    """An environment variable holds an unusable value."""
