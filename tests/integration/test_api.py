"""Integration tests for promptwild.api.main — FastAPI REST API endpoints.

All tests use the FastAPI TestClient against an application built from a
temporary configuration, so every test gets its own SQLite database.
Tests cover every endpoint:

- ``POST /api/expand`` — Prompt expansion.
- ``POST /api/expand/check`` — Choice point detection.
- ``POST /api/fragments/counters/reset`` — Sequential counter reset.
- ``/api/fragments`` — Fragment file management.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from promptwild.api.main import create_app


@pytest.fixture
def test_client(test_config):
    """Create a TestClient with the app lifespan running."""
    with TestClient(create_app(test_config)) as client:
        yield client


def create_fragment(client, name, content, folder="") -> dict:
    resp = client.post(
        "/api/fragments",
        json={"name": name, "folder": folder, "content": content},
    )
    assert resp.status_code == 200
    return resp.json()


# ---------------------------------------------------------------------------
# Expansion endpoint tests.
# ---------------------------------------------------------------------------


class TestExpand:
    """Test POST /api/expand — prompt expansion."""

    def test_expand_plain_prompt(self, test_client):
        """A prompt without choice points should come back unchanged."""
        resp = test_client.post("/api/expand", json={"prompt": "1girl, smile"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["expanded"] == ["1girl, smile"]
        assert data["has_choice_points"] is False

    def test_expand_inline(self, test_client):
        """Inline options should resolve to one option."""
        resp = test_client.post("/api/expand", json={"prompt": "<red|blue>"})
        data = resp.json()
        assert data["has_choice_points"] is True
        assert data["expanded"][0] in ("red", "blue")

    def test_expand_sequential_batch(self, test_client):
        """A batch should walk a sequential fragment in order."""
        create_fragment(test_client, "hair", ["a", "b", "c"])
        resp = test_client.post("/api/expand", json={"prompt": "<*hair>", "count": 4})
        assert resp.json()["expanded"] == ["a", "b", "c", "a"]

    def test_expand_unknown_fragment(self, test_client):
        """Unknown fragments should stay literal."""
        resp = test_client.post("/api/expand", json={"prompt": "<doesnotexist>"})
        assert resp.json()["expanded"] == ["<doesnotexist>"]

    @pytest.mark.parametrize("count", [0, 101])
    def test_expand_invalid_count(self, test_client, count):
        """Counts outside 1–100 should be rejected."""
        resp = test_client.post("/api/expand", json={"prompt": "x", "count": count})
        assert resp.status_code == 422

    def test_check(self, test_client):
        """The dry check should detect each syntax."""
        for prompt, expected in [("(a/b)", True), ("a, b/c", True), ("plain", False)]:
            resp = test_client.post("/api/expand/check", json={"prompt": prompt})
            assert resp.json() == {"has_choice_points": expected}


class TestCounters:
    """Test POST /api/fragments/counters/reset."""

    def test_reset_single(self, test_client):
        """Resetting a path should restart it."""
        create_fragment(test_client, "hair", ["a", "b"])
        test_client.post("/api/expand", json={"prompt": "<*hair>"})

        resp = test_client.post("/api/fragments/counters/reset", json={"path": "hair"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "path": "hair"}

        resp = test_client.post("/api/expand", json={"prompt": "<*hair>"})
        assert resp.json()["expanded"] == ["a"]

    def test_reset_all(self, test_client):
        """An empty body should reset every counter."""
        create_fragment(test_client, "hair", ["a", "b"])
        test_client.post("/api/expand", json={"prompt": "<*hair>"})

        resp = test_client.post("/api/fragments/counters/reset", json={})
        assert resp.json()["path"] is None

        resp = test_client.post("/api/expand", json={"prompt": "<*hair>"})
        assert resp.json()["expanded"] == ["a"]


# ---------------------------------------------------------------------------
# Fragment management endpoint tests.
# ---------------------------------------------------------------------------


class TestFragments:
    """Test /api/fragments — fragment file management."""

    def test_create_and_get(self, test_client):
        """A created fragment should be retrievable with its content."""
        created = create_fragment(test_client, "anime", ["cel shading"], folder="styles")
        assert created["path"] == "styles/anime"
        assert created["line_count"] == 1

        resp = test_client.get(f"/api/fragments/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["content"] == ["cel shading"]

    def test_create_requires_name(self, test_client):
        """An empty name should be rejected."""
        resp = test_client.post("/api/fragments", json={"name": ""})
        assert resp.status_code == 422

    def test_create_blank_name(self, test_client):
        """A whitespace-only name should be rejected."""
        resp = test_client.post("/api/fragments", json={"name": "   "})
        assert resp.status_code == 422
        assert test_client.get("/api/fragments").json()["total"] == 0

    def test_list_and_filter(self, test_client):
        """Listing should support a folder filter."""
        create_fragment(test_client, "hair", ["a"])
        create_fragment(test_client, "anime", ["b"], folder="styles")

        data = test_client.get("/api/fragments").json()
        assert data["total"] == 2

        data = test_client.get("/api/fragments", params={"folder": "styles"}).json()
        assert [f["name"] for f in data["files"]] == ["anime"]

    def test_folders(self, test_client):
        """Folders should be listed sorted without the root."""
        create_fragment(test_client, "a", ["x"], folder="zeta")
        create_fragment(test_client, "b", ["x"], folder="alpha")
        create_fragment(test_client, "c", ["x"])

        assert test_client.get("/api/fragments/folders").json() == {"folders": ["alpha", "zeta"]}

    def test_import(self, test_client):
        """Importing text should drop blank and comment lines."""
        resp = test_client.post(
            "/api/fragments/import",
            json={"name": "hair", "text": "# comment\nlong hair\n\nshort hair\n"},
        )
        assert resp.status_code == 200
        assert resp.json()["content"] == ["long hair", "short hair"]

    def test_update(self, test_client):
        """PATCH should rename and replace content."""
        created = create_fragment(test_client, "hair", ["a"])

        resp = test_client.patch(
            f"/api/fragments/{created['id']}",
            json={"name": "hairstyle", "content": ["x", "y"]},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "hairstyle"
        assert data["line_count"] == 2

    def test_duplicate(self, test_client):
        """Duplicating should add a _copy file."""
        created = create_fragment(test_client, "hair", ["a"])

        resp = test_client.post(f"/api/fragments/{created['id']}/duplicate")
        assert resp.status_code == 200
        assert resp.json()["name"] == "hair_copy"

    def test_export(self, test_client):
        """Export should return plain text lines."""
        created = create_fragment(test_client, "hair", ["a", "b"])

        resp = test_client.get(f"/api/fragments/{created['id']}/export")
        assert resp.status_code == 200
        assert resp.text == "a\nb"
        assert "text/plain" in resp.headers["content-type"]

    def test_export_empty(self, test_client):
        """Exporting an empty fragment should return 404."""
        created = create_fragment(test_client, "hair", [])

        resp = test_client.get(f"/api/fragments/{created['id']}/export")
        assert resp.status_code == 404

    def test_delete(self, test_client):
        """Deleting should remove the fragment."""
        created = create_fragment(test_client, "hair", ["a"])

        resp = test_client.delete(f"/api/fragments/{created['id']}")
        assert resp.json() == {"success": True, "deleted": created["id"]}
        assert test_client.get(f"/api/fragments/{created['id']}").status_code == 404

    def test_clear(self, test_client):
        """DELETE /api/fragments should remove everything."""
        create_fragment(test_client, "hair", ["a"])

        resp = test_client.delete("/api/fragments")
        assert resp.status_code == 200
        assert test_client.get("/api/fragments").json()["total"] == 0

    @pytest.mark.parametrize(
        "method, suffix",
        [("get", ""), ("patch", ""), ("delete", ""), ("post", "/duplicate"), ("get", "/export")],
    )
    def test_unknown_id(self, test_client, method, suffix):
        """Unknown ids should return 404 on every per-file route."""
        kwargs = {"json": {}} if method == "patch" else {}
        resp = getattr(test_client, method)(f"/api/fragments/missing{suffix}", **kwargs)
        assert resp.status_code == 404


class TestPersistence:
    """Fragments should survive an application restart."""

    def test_restart_keeps_fragments_and_counters(self, test_config):
        with TestClient(create_app(test_config)) as client:
            create_fragment(client, "hair", ["a", "b", "c"])
            client.post("/api/expand", json={"prompt": "<*hair>"})

        with TestClient(create_app(test_config)) as client:
            resp = client.post("/api/expand", json={"prompt": "<*hair>"})
            assert resp.json()["expanded"] == ["b"]
