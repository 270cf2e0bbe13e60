"""Tests for app/main.py – FastAPI routes."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from app.errors import StorageError
from app.store import DocumentStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x01" * 16


def _upload(client: TestClient, name: str, profile: dict | str | None, image=None, method="post"):
    data = {}
    if profile is not None:
        data["profile"] = profile if isinstance(profile, str) else json.dumps(profile)
    files = {"image": image} if image is not None else None
    return client.request(method.upper(), f"/upload/{quote(name, safe='')}", data=data, files=files)


# ── Health ───────────────────────────────────────────────────────────────────


class TestHealth:
    def test_healthy(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["uptime"] >= 0
        assert "T" in data["timestamp"]


# ── Upload / view ────────────────────────────────────────────────────────────


class TestRoundTrip:
    def test_upload_then_view(self, client: TestClient, sample_profile: dict) -> None:
        resp = _upload(client, "Reginald@Lich", sample_profile)
        assert resp.status_code == 200
        assert resp.json() == sample_profile

        resp = client.get("/view/Reginald@Lich")
        assert resp.status_code == 200
        assert resp.json() == sample_profile

    def test_stored_as_name_json(
        self, client: TestClient, profiles_dir: Path, sample_profile: dict
    ) -> None:
        _upload(client, "Reginald@Lich", sample_profile)
        stored = json.loads((profiles_dir / "Reginald@Lich.json").read_text(encoding="utf-8"))
        assert stored == sample_profile

    def test_put_behaves_like_post(self, client: TestClient, sample_profile: dict) -> None:
        resp = _upload(client, "alice", sample_profile, method="put")
        assert resp.status_code == 200
        assert client.get("/view/alice").json() == sample_profile

    def test_raw_json_body(self, client: TestClient, sample_profile: dict) -> None:
        resp = client.post("/upload/alice", json=sample_profile)
        assert resp.status_code == 200
        assert client.get("/view/alice").json() == sample_profile

    def test_percent_encoded_name(self, client: TestClient) -> None:
        name = "Sir Reginald/The Bold"
        _upload(client, name, {"Bio": "bold"})
        resp = client.get(f"/view/{quote(name, safe='')}")
        assert resp.status_code == 200
        assert resp.json() == {"Bio": "bold"}

    def test_unicode_name(self, client: TestClient) -> None:
        _upload(client, "Zoë", {"x": 1})
        assert client.get(f"/view/{quote('Zoë')}").json() == {"x": 1}


class TestOverwrite:
    def test_last_write_wins_without_merge(self, client: TestClient) -> None:
        _upload(client, "n", {"a": 1, "b": 2})
        _upload(client, "n", {"c": 3})
        assert client.get("/view/n").json() == {"c": 3}


class TestNotFound:
    def test_unknown_name(self, client: TestClient) -> None:
        resp = client.get("/view/never-uploaded")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Profile not found"}


class TestUploadRejection:
    def test_missing_profile_field(self, client: TestClient, profiles_dir: Path) -> None:
        resp = _upload(client, "alice", None)
        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text == "Missing profile data."
        assert client.get("/view/alice").status_code == 404
        assert list(profiles_dir.iterdir()) == []

    def test_missing_profile_with_image_stores_nothing(
        self, client: TestClient, images_dir: Path
    ) -> None:
        resp = _upload(client, "alice", None, image=("a.png", PNG_BYTES, "image/png"))
        assert resp.status_code == 400
        assert list(images_dir.iterdir()) == []

    def test_empty_json_body(self, client: TestClient) -> None:
        resp = client.post(
            "/upload/alice", content=b"", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.text == "Missing profile data."

    def test_invalid_json_keeps_existing(self, client: TestClient) -> None:
        _upload(client, "alice", {"keep": True})
        resp = _upload(client, "alice", "{not json")
        assert resp.status_code == 400
        assert resp.text == "Invalid profile JSON."
        assert client.get("/view/alice").json() == {"keep": True}

    @pytest.mark.parametrize("raw", ['{"a": NaN}', '{"a": Infinity}'])
    def test_non_finite_numbers_keep_existing(
        self, client: TestClient, profiles_dir: Path, raw: str
    ) -> None:
        _upload(client, "alice", {"keep": True})
        resp = _upload(client, "alice", raw)
        assert resp.status_code == 400
        assert resp.text == "Invalid profile JSON."
        assert client.get("/view/alice").json() == {"keep": True}
        stored = json.loads((profiles_dir / "alice.json").read_text(encoding="utf-8"))
        assert stored == {"keep": True}

    def test_empty_name_stores_nothing(self, client: TestClient, profiles_dir: Path) -> None:
        resp = client.post("/upload/", data={"profile": "{}"})
        assert resp.status_code == 404
        assert list(profiles_dir.iterdir()) == []
        assert client.get("/gallery").json() == []

    def test_empty_name_view_not_found(self, client: TestClient) -> None:
        resp = client.get("/view/")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Profile not found"}

    def test_non_object_json(self, client: TestClient) -> None:
        resp = _upload(client, "alice", "[1, 2, 3]")
        assert resp.status_code == 400
        assert resp.text == "Invalid profile JSON."


# ── Images ───────────────────────────────────────────────────────────────────


class TestImageUpload:
    def test_url_injected_and_fetchable(self, client: TestClient) -> None:
        resp = _upload(client, "alice", {"Bio": "hi"}, image=("me.jpg", JPEG_BYTES, "image/jpeg"))
        assert resp.status_code == 200
        url = resp.json()["ProfileImageUrl"]
        assert url == "http://testserver/images/alice.jpg"

        img = client.get(url)
        assert img.status_code == 200
        assert img.content == JPEG_BYTES
        assert img.headers["content-type"] == "image/jpeg"

    def test_url_persisted(self, client: TestClient) -> None:
        resp = _upload(client, "alice", {"Bio": "hi"}, image=("me.jpg", JPEG_BYTES, "image/jpeg"))
        assert client.get("/view/alice").json() == resp.json()

    def test_name_sanitized_for_asset(self, client: TestClient, images_dir: Path) -> None:
        name = "Sir Reginald/The Bold"
        resp = _upload(client, name, {"Bio": "bold"}, image=("p.jpg", JPEG_BYTES, "image/jpeg"))
        url = resp.json()["ProfileImageUrl"]
        assert url.endswith("/images/Sir_Reginald_The_Bold.jpg")
        assert (images_dir / "Sir_Reginald_The_Bold.jpg").read_bytes() == JPEG_BYTES

        view = client.get(f"/view/{quote(name, safe='')}")
        assert view.status_code == 200
        assert view.json()["ProfileImageUrl"] == url

    def test_at_sign_kept_in_url(self, client: TestClient, images_dir: Path) -> None:
        resp = _upload(
            client, "Reginald@Lich", {"Bio": "hi"}, image=("me.jpg", JPEG_BYTES, "image/jpeg")
        )
        url = resp.json()["ProfileImageUrl"]
        assert url == "http://testserver/images/Reginald@Lich.jpg"
        assert (images_dir / "Reginald@Lich.jpg").read_bytes() == JPEG_BYTES
        assert client.get(url).content == JPEG_BYTES

    def test_default_extension(self, client: TestClient) -> None:
        resp = _upload(client, "alice", {}, image=("blob", PNG_BYTES, "application/octet-stream"))
        assert resp.json()["ProfileImageUrl"].endswith("/images/alice.png")

    def test_image_replaces_client_url(self, client: TestClient) -> None:
        profile = {"ProfileImageUrl": "https://elsewhere/x.png"}
        resp = _upload(client, "alice", profile, image=("a.png", PNG_BYTES, "image/png"))
        assert resp.json()["ProfileImageUrl"] == "http://testserver/images/alice.png"

    def test_client_url_kept_without_image(self, client: TestClient) -> None:
        profile = {"ProfileImageUrl": "https://elsewhere/x.png"}
        resp = _upload(client, "alice", profile)
        assert resp.json()["ProfileImageUrl"] == "https://elsewhere/x.png"

    def test_public_base_url_setting(self, client: TestClient) -> None:
        with patch("app.main.settings.public_base_url", "https://cdn.example.com"):
            resp = _upload(client, "alice", {}, image=("a.png", PNG_BYTES, "image/png"))
        assert resp.json()["ProfileImageUrl"] == "https://cdn.example.com/images/alice.png"

    def test_missing_image_404(self, client: TestClient) -> None:
        assert client.get("/images/nothing.png").status_code == 404


# ── Storage failures ─────────────────────────────────────────────────────────


class TestStorageFailure:
    def test_write_failure_returns_500(self, client: TestClient) -> None:
        with patch.object(DocumentStore, "put", side_effect=StorageError("disk full")):
            resp = _upload(client, "alice", {"a": 1})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_corrupt_record_returns_500(self, client: TestClient, profiles_dir: Path) -> None:
        (profiles_dir / "broken.json").write_text("{oops", encoding="utf-8")
        resp = client.get("/view/broken")
        assert resp.status_code == 500
        assert (profiles_dir / "broken.json").exists()


# ── Gallery / likes ──────────────────────────────────────────────────────────


class TestGallery:
    def test_lists_showcased_by_likes(self, client: TestClient) -> None:
        _upload(client, "a@Lich", {"Sharing": "ShowcasePublic", "LikeCount": 2})
        _upload(client, "b@Lich", {"Sharing": 2, "LikeCount": 9, "CharacterName": "Bee"})
        _upload(client, "c@Lich", {"Sharing": "Private"})

        resp = client.get("/gallery")
        assert resp.status_code == 200
        data = resp.json()
        assert [e["CharacterId"] for e in data] == ["b@Lich", "a@Lich"]
        assert data[0]["CharacterName"] == "Bee"
        assert data[0]["Server"] == "Lich"
        assert data[1]["CharacterName"] == "a"

    def test_empty(self, client: TestClient) -> None:
        assert client.get("/gallery").json() == []


class TestLikes:
    def test_like_and_unlike(self, client: TestClient) -> None:
        _upload(client, "a@Lich", {"Bio": "x"})
        assert client.post("/gallery/a@Lich/like").json() == {"LikeCount": 1}
        assert client.post("/gallery/a@Lich/like").json() == {"LikeCount": 2}
        assert client.delete("/gallery/a@Lich/like").json() == {"LikeCount": 1}
        stored = client.get("/view/a@Lich").json()
        assert stored["LikeCount"] == 1
        assert stored["Bio"] == "x"

    def test_unlike_never_negative(self, client: TestClient) -> None:
        _upload(client, "a", {})
        assert client.delete("/gallery/a/like").json() == {"LikeCount": 0}

    @pytest.mark.parametrize("method", ["post", "delete"])
    def test_missing_profile(self, client: TestClient, method: str) -> None:
        resp = client.request(method.upper(), "/gallery/nobody/like")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Profile not found"}


# ── Friends ──────────────────────────────────────────────────────────────────


class TestFriends:
    def test_update_and_check_mutual(self, client: TestClient) -> None:
        resp = client.post(
            "/friends/update-follows", json={"character": "bob", "following": ["alice"]}
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        client.post("/friends/update-follows", json={"character": "carol", "following": []})

        resp = client.post(
            "/friends/check-mutual",
            json={"character": "alice", "following": ["bob", "carol", "dave"]},
        )
        assert resp.status_code == 200
        assert resp.json() == {"mutualFriends": ["bob"]}

    def test_follows_do_not_touch_profiles(self, client: TestClient) -> None:
        client.post("/friends/update-follows", json={"character": "bob", "following": []})
        assert client.get("/view/bob").status_code == 404

    @pytest.mark.parametrize(
        "body",
        [
            {"character": "bob"},
            {"following": []},
            {"character": "", "following": []},
            {"character": "bob", "following": "alice"},
            [1, 2],
        ],
    )
    @pytest.mark.parametrize("path", ["/friends/update-follows", "/friends/check-mutual"])
    def test_invalid_body(self, client: TestClient, path: str, body) -> None:
        resp = client.post(path, json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid request data"}
