"""
API Server Tests
================

Exercises the FastAPI surface through TestClient (lifespan included).

INVARIANTS TESTED:
==================
1. A blocked transform is a 200 with applied=false, never an HTTP error
2. Reversion over HTTP does not advance the logical clock
3. Unknown identities are 404s; malformed bodies are 400s
4. With SYMBOLSPACE_STORAGE_DIR set, symbols survive a restart
"""

import pytest
from fastapi.testclient import TestClient

from symbolspace.api.server import app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("SYMBOLSPACE_STORAGE_DIR", raising=False)
    with TestClient(app) as test_client:
        yield test_client


def construct(client, value, **extra):
    response = client.post("/api/v1/symbols", json={"value": value, **extra})
    assert response.status_code == 201
    return response.json()


class TestBasics:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "online"

    def test_construct_and_lookup(self, client):
        created = construct(client, {"count": 0})
        assert created["shape"] == "mapping"
        assert created["coordinate"] == 0
        assert created["write_capable"] is True

        fetched = client.get(f"/api/v1/symbols/{created['identity']}").json()
        assert fetched["value"] == {"count": 0}

    def test_unknown_identity(self, client):
        assert client.get("/api/v1/symbols/" + "0" * 64).status_code == 404

    def test_clock(self, client):
        construct(client, "a")
        body = client.get("/api/v1/clock").json()
        assert body["clock"] == 1
        assert body["size"] == 1


class TestTransformAndRevert:

    def test_merge_then_revert(self, client):
        root = construct(client, {"count": 0})
        response = client.post(
            f"/api/v1/symbols/{root['identity']}/transform",
            json={"mode": "merge", "data": {"count": 1}},
        )
        body = response.json()
        assert body["applied"] is True
        child = body["symbol"]
        assert child["value"] == {"count": 1}
        assert child["parent"] == root["identity"]

        clock = client.get("/api/v1/clock").json()["clock"]
        reverted = client.post(f"/api/v1/symbols/{child['identity']}/revert", json={"steps": 1}).json()
        assert reverted["symbol"]["identity"] == root["identity"]
        assert reverted["degraded"] is False
        assert client.get("/api/v1/clock").json()["clock"] == clock

    def test_read_only_symbol_blocks(self, client):
        root = construct(client, "fixed", permissions=["read"])
        body = client.post(
            f"/api/v1/symbols/{root['identity']}/transform",
            json={"mode": "replace", "value": "changed"},
        ).json()
        assert body["applied"] is False
        assert body["error"]["code"] == "PERMISSION_DENIED"
        assert body["symbol"]["identity"] == root["identity"]

    def test_structural_revert(self, client):
        root = construct(client, {"a": 1})
        child = client.post(
            f"/api/v1/symbols/{root['identity']}/transform",
            json={"mode": "replace", "value": {"a": 2}},
        ).json()["symbol"]
        body = client.post(
            f"/api/v1/symbols/{child['identity']}/revert", json={"structural": True}
        ).json()
        assert body["applied"] is True
        assert body["symbol"]["value"] == {"a": 1}

    def test_bad_requests(self, client):
        root = construct(client, 1)
        url = f"/api/v1/symbols/{root['identity']}"
        assert client.post(url + "/transform", json={"mode": "function"}).status_code == 400
        assert client.post(url + "/transform", json={"mode": "merge"}).status_code == 400
        assert client.post(url + "/revert", json={"steps": -1}).status_code == 400
        assert client.post("/api/v1/symbols", json={"value": 1, "permissions": ["fly"]}).status_code == 400


class TestLineageAndAudit:

    def test_lineage(self, client):
        root = construct(client, {"v": 0})
        child = client.post(
            f"/api/v1/symbols/{root['identity']}/transform",
            json={"mode": "literal", "value": {"v": 1}},
        ).json()["symbol"]

        body = client.get(f"/api/v1/symbols/{child['identity']}/lineage").json()
        assert body["ancestry"] == [root["identity"]]
        assert body["resolvable"] == [root["identity"]]
        assert body["ancestors"] == [root["identity"]]

    def test_audit(self, client):
        construct(client, "a")
        body = client.get("/api/v1/audit").json()
        assert body["report"]["total_entries"] >= 1
        assert body["entries"][0]["action"] == "symbol_constructed"


class TestPersistence:

    def test_symbols_survive_restart(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SYMBOLSPACE_STORAGE_DIR", str(tmp_path))
        with TestClient(app) as first:
            created = construct(first, {"persisted": True})

        with TestClient(app) as second:
            response = second.get(f"/api/v1/symbols/{created['identity']}")
            assert response.status_code == 200
            assert response.json()["value"] == {"persisted": True}
