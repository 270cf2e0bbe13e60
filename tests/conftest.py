"""Shared fixtures for the profile server test suite."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.assets import AssetStore
from app.errors import NotFoundError
from app.main import app
from app.store import DocumentStore, FileStore


class MemoryStore:
    """In-memory ``Store`` used to exercise the document layer without disk."""

    def __init__(self) -> None:
        self.records: dict[str, bytes] = {}

    def put(self, key: str, data: bytes) -> None:
        self.records[key] = data

    def get(self, key: str) -> bytes:
        try:
            return self.records[key]
        except KeyError:
            raise NotFoundError(key) from None

    def exists(self, key: str) -> bool:
        return key in self.records

    def keys(self) -> list[str]:
        return sorted(self.records)


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def profiles_dir(tmp_path: Path) -> Path:
    return tmp_path / "profiles"


@pytest.fixture()
def images_dir(tmp_path: Path) -> Path:
    return tmp_path / "public" / "images"


@pytest.fixture()
def profile_store(profiles_dir: Path) -> DocumentStore:
    return DocumentStore(FileStore(profiles_dir))


@pytest.fixture()
def follows_store(tmp_path: Path) -> DocumentStore:
    return DocumentStore(FileStore(tmp_path / "follows"))


@pytest.fixture()
def asset_store(images_dir: Path) -> AssetStore:
    return AssetStore(images_dir)


@pytest.fixture()
def client(
    profile_store: DocumentStore,
    follows_store: DocumentStore,
    asset_store: AssetStore,
) -> Iterator[TestClient]:
    """FastAPI test client whose stores live under ``tmp_path``."""
    with (
        patch("app.main.profile_store", profile_store),
        patch("app.main.follows_store", follows_store),
        patch("app.main.asset_store", asset_store),
    ):
        yield TestClient(app)


@pytest.fixture()
def sample_profile() -> dict:
    """A realistic profile document as sent by the client."""
    return {
        "CharacterName": "Reginald",
        "Pronouns": "he/him",
        "Race": "Hyur",
        "Bio": "A knight of some renown.",
        "Tags": "knight, noble",
        "Sharing": "ShowcasePublic",
        "ImageZoom": 1.25,
        "ImageOffset": {"X": 4.0, "Y": -2.5},
        "Traits": [{"name": "brave", "level": 3}],
    }
