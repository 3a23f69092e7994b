"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from unifiipam.server import state
from unifiipam.server.app import app
from unifiipam.server.config import config

BASE = "/api/namespaces/default"

SECRET = {"metadata": {"name": "unifi-credentials"}, "data": {"apiKey": "good-key"}}
INSTANCE = {
    "metadata": {"name": "unifi"},
    "spec": {"host": "https://unifi.lan", "credentials_ref": {"name": "unifi-credentials"}},
}
POOL = {
    "metadata": {"name": "pool"},
    "spec": {
        "instance_ref": {"name": "unifi"},
        "network_id": "net-1",
        "subnets": [{"cidr": "10.1.40.0/24"}],
    },
}


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_FILE", str(tmp_path / "api.db"))
    monkeypatch.setattr(config, "CONTROLLERS_ENABLED", False)
    monkeypatch.setattr(config, "WEBHOOKS_ENABLED", True)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def provisioned(client):
    assert client.post(f"{BASE}/secrets", json=SECRET).status_code == 201
    assert client.post(f"{BASE}/instances", json=INSTANCE).status_code == 201
    return client


class TestHealth:
    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["controllers_running"] is False
        assert body["resources"]["UnifiIPPool"] == 0


class TestLifespan:
    def test_store_follows_app_lifetime(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "DB_FILE", str(tmp_path / "lifespan.db"))
        monkeypatch.setattr(config, "CONTROLLERS_ENABLED", False)

        with TestClient(app) as test_client:
            assert state.get_store() is not None
            assert test_client.get("/api/health").status_code == 200
        assert state.get_store() is None
        assert state.get_manager() is None


class TestSecrets:
    def test_values_are_redacted(self, client):
        created = client.post(f"{BASE}/secrets", json=SECRET)
        assert created.status_code == 201
        assert created.json()["keys"] == ["apiKey"]
        assert "good-key" not in created.text

        fetched = client.get(f"{BASE}/secrets/unifi-credentials").json()
        assert "data" not in fetched
        assert fetched["metadata"]["namespace"] == "default"


class TestInstances:
    def test_admission_denied(self, client):
        response = client.post(f"{BASE}/instances", json=INSTANCE)
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "Admission Denied"
        assert detail["kind"] == "UnifiInstance"
        assert detail["detail"][0]["field"] == "spec.credentials_ref"

    def test_create_and_list(self, provisioned):
        instances = provisioned.get("/api/instances").json()
        assert [i["metadata"]["name"] for i in instances] == ["unifi"]
        assert instances[0]["spec"]["site"] == "default"


class TestPools:
    def test_lifecycle(self, provisioned):
        created = provisioned.post(f"{BASE}/pools", json=POOL)
        assert created.status_code == 201
        pool = created.json()
        assert pool["metadata"]["generation"] == 1
        assert pool["spec"]["instance_ref"]["namespace"] == "default"

        assert provisioned.post(f"{BASE}/pools", json=POOL).status_code == 409

        pool["spec"]["gateway"] = "10.1.40.254"
        updated = provisioned.put(f"{BASE}/pools/pool", json=pool)
        assert updated.status_code == 200
        assert updated.json()["metadata"]["generation"] == 2

        # the same body again carries a stale resource version
        assert provisioned.put(f"{BASE}/pools/pool", json=pool).status_code == 409

        listed = provisioned.get("/api/pools", params={"namespace": "default"}).json()
        assert [p["metadata"]["name"] for p in listed] == ["pool"]
        assert provisioned.get("/api/pools", params={"namespace": "other"}).json() == []

        deleted = provisioned.delete(f"{BASE}/pools/pool")
        assert deleted.json()["kind"] == "UnifiIPPool"
        assert provisioned.get(f"{BASE}/pools/pool").status_code == 404

    def test_invalid_subnet(self, provisioned):
        body = {**POOL, "spec": {**POOL["spec"], "subnets": [{"cidr": "10.1.40.0/33"}]}}
        response = provisioned.post(f"{BASE}/pools", json=body)
        assert response.status_code == 422
        assert response.json()["detail"]["detail"][0]["field"] == "spec.subnets[0].cidr"

    def test_path_name_mismatch(self, provisioned):
        pool = provisioned.post(f"{BASE}/pools", json=POOL).json()
        assert provisioned.put(f"{BASE}/pools/other", json=pool).status_code == 400

    def test_missing_pool(self, client):
        assert client.get(f"{BASE}/pools/nope").status_code == 404
        assert client.delete(f"{BASE}/pools/nope").status_code == 404


class TestClaimsAndAddresses:
    def test_claim_is_stored_unbound(self, provisioned):
        claim = {"metadata": {"name": "worker-0"}, "spec": {"pool_ref": {"name": "pool"}}}
        response = provisioned.post(f"{BASE}/claims", json=claim)
        assert response.status_code == 201
        assert response.json()["spec"]["pool_ref"]["kind"] == "UnifiIPPool"
        assert response.json()["status"]["address_ref"] is None

        assert provisioned.get("/api/addresses", params={"namespace": "default", "pool": "pool"}).json() == []
        assert provisioned.get(f"{BASE}/addresses/worker-0").status_code == 404
