"""Tests for the Atrium HTTP host (FastAPI)."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from atrium.auth import StaticIdentityVerifier
from atrium.config import AppConfig
from atrium.discovery.config_store import ConfigStore
from atrium.discovery.models import ServiceRecord, ServiceStatus
from atrium.discovery.registry import ServiceRegistry
from atrium.discovery.runtime import DiscoveryRuntime
from atrium.server import create_app


@pytest.fixture()
def server_registry(tmp_path):
    return ServiceRegistry.bootstrap(ConfigStore(tmp_path / "services.json"))


@pytest.fixture()
def client(tmp_path, server_registry):
    config = AppConfig(data_dir=tmp_path)
    app = create_app(
        config=config,
        runtime=DiscoveryRuntime(config, registry=server_registry),
        identity_verifier=StaticIdentityVerifier(
            {
                "alice": ("wonderland", ["user"]),
                "root": ("toor", ["user", "admin"]),
            }
        ),
    )
    with TestClient(app) as c:
        yield c


def _login(client, username: str, password: str) -> dict:
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['token']}"}


class TestMeta:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["uptime"] >= 0

    def test_service_info(self, client):
        body = client.get("/service-info").json()
        assert body["id"] == "atrium"
        assert body["healthCheck"] == "/health"

    def test_index_lists_active(self, client):
        body = client.get("/").json()
        assert [s["id"] for s in body["services"]] == ["board", "calendar", "gallery"]


class TestAuth:
    def test_login(self, client):
        resp = client.post("/auth/login", json={"username": "alice", "password": "wonderland"})
        assert resp.status_code == 200
        assert resp.json()["user"] == {"id": "alice", "roles": ["user"]}

    def test_bad_password(self, client):
        resp = client.post("/auth/login", json={"username": "alice", "password": "nope"})
        assert resp.status_code == 401

    def test_unknown_session(self, client):
        resp = client.get("/services", headers={"Authorization": "Bearer bogus"})
        assert resp.status_code == 401

    def test_logout_ends_session(self, client):
        headers = _login(client, "alice", "wonderland")
        assert client.post("/auth/logout", headers=headers).status_code == 200
        assert client.get("/services", headers=headers).status_code == 401

    def test_no_verifier(self, tmp_path, server_registry):
        config = AppConfig(data_dir=tmp_path)
        app = create_app(config=config, runtime=DiscoveryRuntime(config, registry=server_registry))
        with TestClient(app) as c:
            resp = c.post("/auth/login", json={"username": "a", "password": "b"})
        assert resp.status_code == 503


class TestServices:
    def test_anonymous_sees_public_only(self, client, server_registry):
        server_registry.record_discovery(
            ServiceRecord(id="status-page", url="http://status:80", status=ServiceStatus.ACTIVE)
        )
        resp = client.get("/services")
        assert [s["id"] for s in resp.json()] == ["status-page"]

    def test_user_sees_role_services(self, client):
        headers = _login(client, "alice", "wonderland")
        ids = [s["id"] for s in client.get("/services", headers=headers).json()]
        assert ids == ["board", "calendar", "gallery"]

    def test_get_one(self, client):
        headers = _login(client, "alice", "wonderland")
        resp = client.get("/services/board", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["isInternal"] is True

    def test_get_unknown(self, client):
        assert client.get("/services/nope").status_code == 404

    def test_get_hidden_from_anonymous(self, client):
        assert client.get("/services/board").status_code == 404

    def test_all_requires_admin(self, client):
        headers = _login(client, "alice", "wonderland")
        assert client.get("/services/all", headers=headers).status_code == 403
        assert client.get("/services/all").status_code == 401

    def test_categories(self, client):
        ids = [c["id"] for c in client.get("/categories").json()]
        assert ids == ["communication", "collaboration", "media"]


class TestAdmin:
    def test_register_and_unregister(self, client):
        headers = _login(client, "root", "toor")
        resp = client.post(
            "/admin/services",
            json={"id": "wiki", "url": "http://wiki:3001", "requiredRoles": ["user"]},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "unknown"

        everything = client.get("/services/all", headers=headers).json()
        assert "wiki" in [s["id"] for s in everything]
        # not active yet, so not listed for users
        ids = [s["id"] for s in client.get("/services", headers=headers).json()]
        assert "wiki" not in ids

        resp = client.delete("/admin/services/wiki", headers=headers)
        assert resp.status_code == 200
        assert client.get("/services/wiki", headers=headers).status_code == 404

    def test_register_duplicate(self, client):
        headers = _login(client, "root", "toor")
        resp = client.post("/admin/services", json={"id": "board"}, headers=headers)
        assert resp.status_code == 409

    def test_register_blank_id(self, client):
        headers = _login(client, "root", "toor")
        resp = client.post("/admin/services", json={"id": "  "}, headers=headers)
        assert resp.status_code == 422

    def test_register_requires_admin(self, client):
        headers = _login(client, "alice", "wonderland")
        resp = client.post("/admin/services", json={"id": "wiki"}, headers=headers)
        assert resp.status_code == 403

    def test_unregister_unknown(self, client):
        headers = _login(client, "root", "toor")
        assert client.delete("/admin/services/nope", headers=headers).status_code == 404

    def test_unregister_internal_refused(self, client):
        headers = _login(client, "root", "toor")
        assert client.delete("/admin/services/board", headers=headers).status_code == 404
        assert client.get("/services/board", headers=headers).status_code == 200
