"""
Tests for the HTTP API.
"""

import pytest
from aiohttp import test_utils

from image_tagger.web_server import WebServer


@pytest.fixture
def server(cat_dog_state, image_dir):
    return WebServer(cat_dog_state, image_dir, threads=2)


@pytest.mark.asyncio
async def test_root(server):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        resp = await client.get("/")
        assert resp.status == 200
        body = await resp.json()

    assert body["tags"] == ["cat", "dog"]
    assert body["multilabel"] is True


@pytest.mark.asyncio
async def test_list(server):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        resp = await client.get("/list")
        body = await resp.json()

    assert [item["name"] for item in body["items"]] == ["a.jpg", "b.jpg", "c.jpg"]
    assert body["items"][1]["tags"] == ["cat", "dog"]


@pytest.mark.asyncio
async def test_query(server):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        resp = await client.get("/query", params={"cat": "in", "dog": "ex"})
        body = await resp.json()

        bad = await client.get("/query", params={"cat": "maybe"})
        assert bad.status == 400

    assert [item["name"] for item in body["items"]] == ["a.jpg"]
    assert body["selection"] == {"cat": "in", "dog": "ex"}


@pytest.mark.asyncio
async def test_stats_queries_reproduce_groups(server):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        resp = await client.get("/stats")
        body = await resp.json()
        assert body["total"] == 3
        assert len(body["groups"]) == 3

        for group in body["groups"]:
            matches = await (await client.get(group["query"])).json()
            assert len(matches["items"]) == group["count"]


@pytest.mark.asyncio
async def test_update(server, tag_dir):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        resp = await client.post("/update", json={"name": "a.jpg", "tags": []})
        assert resp.status == 200
        assert (await resp.json())["updated"] is True

        stats = await (await client.get("/stats")).json()

    assert (tag_dir / "a.txt").read_text(encoding="utf-8") == ""
    assert {group["signature"]: group["count"] for group in stats["groups"]} == {"": 2, "cat & dog": 1}


@pytest.mark.asyncio
async def test_update_errors(server, tag_dir):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        unknown = await client.post("/update", json={"name": "zzz.jpg", "tags": ["cat"]})
        assert unknown.status == 200
        assert (await unknown.json())["updated"] is False

        bad_tag = await client.post("/update", json={"name": "a.jpg", "tags": ["bird"]})
        assert bad_tag.status == 400

        bad_body = await client.post("/update", data=b"not json")
        assert bad_body.status == 400

        # A directory in place of the tag file makes the write fail
        (tag_dir / "a.txt").unlink()
        (tag_dir / "a.txt").mkdir()
        failed = await client.post("/update", json={"name": "a.jpg", "tags": ["dog"]})
        assert failed.status == 500

        listed = await (await client.get("/list")).json()

    assert listed["items"][0]["tags"] == ["cat"]


@pytest.mark.asyncio
async def test_images(server):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        resp = await client.get("/images/a.jpg")
        assert resp.status == 200
        assert await resp.read() == b"\xff\xd8\xff\xe0fake-jpeg"

        missing = await client.get("/images/nothere.jpg")
        assert missing.status == 404


@pytest.mark.asyncio
async def test_health_and_metrics(server):
    async with test_utils.TestClient(test_utils.TestServer(server.app)) as client:
        health = await (await client.get("/health")).json()
        metrics = await (await client.get("/metrics")).json()

    assert health["status"] == "healthy"
    assert health["metrics"]["images"] == 3
    assert health["metrics"]["tag_store"] == "file"
    assert "cpu_percent" in metrics
    assert metrics["updates"] == 0
