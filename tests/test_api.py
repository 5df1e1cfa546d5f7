"""
tests/test_api.py
─────────────────────────────────────────────────────────────────────────────
Tests for velocity.api — VelocityAPI class and the FastAPI endpoints.

Coverage:
  - VelocityAPI.triage: board order, counts over the full batch, filter, limit
  - VelocityAPI.classify / get_config
  - POST /triage, POST /classify: happy path, 400 on bad archetype / row
  - GET /health, GET /config

HTTP tests use fastapi.testclient (requires httpx). Config comes from a
temporary directory so a local velocity_config.json never leaks in.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from velocity import __version__
from velocity.api import VelocityAPI, _build_app
from velocity.config import load_config

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
NOW_ISO = "2026-10-19T12:00:00Z"


# ── HELPERS ──────────────────────────────────────────────────────────────────

def _rows():
    return [
        {"id": "routine", "customer_name": "Sam", "created_at": NOW_ISO},
        {"id": "upsell", "urgency": "low", "estimated_value": 1800, "created_at": NOW_ISO},
        {"id": "gas", "urgency": "emergency", "created_at": NOW_ISO,
         "ai_summary": "Customer smells gas near the furnace and evacuated the house"},
        {"id": "angry", "priority_color": "red", "sentiment_score": 1, "created_at": NOW_ISO},
    ]


@pytest.fixture
def config(tmp_path):
    return load_config(tmp_path)


@pytest.fixture
def api(config):
    return VelocityAPI(config=config)


@pytest.fixture
def client(config):
    return TestClient(_build_app(config=config))


# ── CLASS ────────────────────────────────────────────────────────────────────

class TestVelocityAPI:

    def test_triage_board(self, api):
        board = api.triage(_rows(), now=NOW)
        assert board["count"] == 4
        assert [r["record_id"] for r in board["results"]] == ["gas", "angry", "upsell", "routine"]
        assert board["counts"] == {"HAZARD": 1, "RECOVERY": 1, "REVENUE": 1, "LOGISTICS": 1}

    def test_counts_cover_full_batch(self, api):
        board = api.triage(_rows(), now=NOW, archetype="revenue", limit=1)
        assert [r["record_id"] for r in board["results"]] == ["upsell"]
        assert board["count"] == 1
        assert sum(board["counts"].values()) == 4

    def test_limit(self, api):
        board = api.triage(_rows(), now=NOW, limit=2)
        assert [r["record_id"] for r in board["results"]] == ["gas", "angry"]

    def test_signals_hidden_by_default(self, api):
        board = api.triage(_rows(), now=NOW)
        assert all("signals" not in r for r in board["results"])

    def test_bad_archetype_raises(self, api):
        with pytest.raises(ValueError):
            api.triage(_rows(), now=NOW, archetype="urgent")

    def test_classify(self, api):
        card = api.classify({"id": "x", "priority_color": "red", "revenue_tier": "replacement",
                             "estimated_value": 20000}, now=NOW)
        assert card["archetype"] == "RECOVERY"
        assert "signals" in card

    def test_thresholds_from_config(self, config):
        config["thresholds"]["revenue_value_threshold"] = 2000
        api = VelocityAPI(config=config)
        card = api.classify({"id": "x", "estimated_value": 1800}, now=NOW)
        assert card["archetype"] == "LOGISTICS"

    def test_get_config(self, api):
        data = api.get_config()
        assert data["archetypes"] == ["HAZARD", "RECOVERY", "REVENUE", "LOGISTICS"]
        assert data["thresholds"]["max_display_tags"] == 4


# ── HTTP ─────────────────────────────────────────────────────────────────────

class TestEndpoints:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}

    def test_config(self, client):
        resp = client.get("/config")
        assert resp.status_code == 200
        assert resp.json()["config"]["api_port"] == 8766

    def test_triage(self, client):
        resp = client.post("/triage", json={"records": _rows(), "now": NOW_ISO})
        assert resp.status_code == 200
        body = resp.json()
        assert body["results"][0]["record_id"] == "gas"
        assert body["results"][0]["narrative"]["headline"].startswith("Gas Leak reported by")
        assert body["counts"]["LOGISTICS"] == 1

    def test_triage_filter(self, client):
        resp = client.post("/triage", json={"records": _rows(), "now": NOW_ISO, "archetype": "hazard"})
        assert [r["record_id"] for r in resp.json()["results"]] == ["gas"]

    def test_triage_empty(self, client):
        resp = client.post("/triage", json={})
        assert resp.status_code == 200
        assert resp.json()["count"] == 0

    def test_triage_bad_archetype(self, client):
        resp = client.post("/triage", json={"records": [], "archetype": "urgent"})
        assert resp.status_code == 400
        assert "Unknown archetype" in resp.json()["detail"]

    def test_triage_limit_validated(self, client):
        resp = client.post("/triage", json={"records": [], "limit": 0})
        assert resp.status_code == 422

    def test_classify(self, client):
        resp = client.post("/classify", json={
            "record": {"id": "c1", "urgency": "low", "estimated_value": 1800},
            "now":    NOW_ISO,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["archetype"] == "REVENUE"
        assert body["signals"]["hazard_type"] is None

    def test_classify_requires_record(self, client):
        assert client.post("/classify", json={}).status_code == 422
