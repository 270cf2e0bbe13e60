"""
app/config.py
-----------------------------------------------------------------------------
Runtime configuration for the profile server.

Values come from environment variables.  A ``.env`` file in the working
directory is loaded first (no-op if it doesn't exist), so local overrides
never need to be exported by hand.

Environment variables
---------------------
PORT            – TCP port for uvicorn (default: 3000).
HOST            – Bind address (default: 0.0.0.0).
PROFILES_DIR    – Directory holding one ``{name}.json`` per profile.
IMAGES_DIR      – Directory holding uploaded profile images.
FOLLOWS_DIR     – Directory holding friends/follows records.
PUBLIC_BASE_URL – Base URL written into ``ProfileImageUrl``.  When unset the
                  base URL of the incoming request is used.
CORS_ORIGINS    – Comma-separated list of allowed origins (default: ``*``).
LOG_LEVEL       – Logging level name (default: info).

Relative directory defaults resolve against the project root, so the server
behaves the same regardless of the working directory uvicorn is started from.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from app.errors import ConfigError

load_dotenv()

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_PORT: int = 3000


class Settings(BaseModel):
    """Resolved server settings."""

    port: int = Field(DEFAULT_PORT, description="TCP port the server listens on.")
    host: str = Field("0.0.0.0", description="Bind address.")
    profiles_dir: Path = Field(
        _PROJECT_ROOT / "profiles",
        description="Profile namespace: one JSON file per profile name.",
    )
    images_dir: Path = Field(
        _PROJECT_ROOT / "public" / "images",
        description="Asset namespace: one image file per sanitized profile name.",
    )
    follows_dir: Path = Field(
        _PROJECT_ROOT / "follows",
        description="Friends namespace: one follows record per character.",
    )
    public_base_url: str | None = Field(
        None,
        description="Base URL used when building ProfileImageUrl values.",
    )
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = Field("info", description="Logging level name.")


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError as exc:
        raise ConfigError(f"PORT must be an integer, got {raw!r}") from exc
    if not 1 <= port <= 65535:
        raise ConfigError(f"PORT must be between 1 and 65535, got {port}")
    return port


def _resolve_dir(raw: str | None, default: Path) -> Path:
    if not raw:
        return default
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = _PROJECT_ROOT / path
    return path


def load_settings() -> Settings:
    """
    Build a :class:`Settings` instance from the current environment.

    Raises
    ------
    ConfigError
        If ``PORT`` is not a valid TCP port number.
    """
    defaults = Settings()

    raw_port = os.getenv("PORT")
    origins = os.getenv("CORS_ORIGINS", "*")
    base_url = os.getenv("PUBLIC_BASE_URL", "").strip().rstrip("/")

    return Settings(
        port=_parse_port(raw_port) if raw_port else DEFAULT_PORT,
        host=os.getenv("HOST", defaults.host),
        profiles_dir=_resolve_dir(os.getenv("PROFILES_DIR"), defaults.profiles_dir),
        images_dir=_resolve_dir(os.getenv("IMAGES_DIR"), defaults.images_dir),
        follows_dir=_resolve_dir(os.getenv("FOLLOWS_DIR"), defaults.follows_dir),
        public_base_url=base_url or None,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).lower(),
    )


settings: Settings = load_settings()
