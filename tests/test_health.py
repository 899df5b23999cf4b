"""
CivicFix
Tests - health endpoints and app factory basics.

Covers:
    - /api/v1/health, /ready, /live
    - JSON 404 / 405 handlers
    - Production config refuses missing settings
"""

import pytest


class TestHealth:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok", "app": "CivicFix"}

    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "ok"
        assert data["checks"]["app"]["testing"] is True


class TestErrorHandlers:
    def test_unknown_route(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_method_not_allowed(self, client):
        res = client.put("/api/v1/health")
        assert res.status_code == 405
        assert res.get_json()["error"] == "Method not allowed"


class TestProductionConfig:
    def test_requires_database_url(self, monkeypatch):
        from civicfix.config import ProductionConfig
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError):
            ProductionConfig()
