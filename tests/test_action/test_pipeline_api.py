"""Tests for the pipeline analytics HTTP endpoints."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from freight_insights.action.api import app
from freight_insights.action.dependencies import get_deals, get_now
from freight_insights.deals.models import Deal
from freight_insights.ingestion.deal_loader import DealLoadError

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _deal(deal_id, stage, value, mode="trucking", rep="Ana",
          close="2026-12-15T00:00:00Z", updated="2026-10-15T00:00:00Z") -> Deal:
    return Deal(
        deal_id=deal_id,
        company_name=f"Shipper {deal_id}",
        transportation_mode=mode,
        stage=stage,
        value=value,
        expected_close_date=close,
        updated_date=updated,
        sales_rep=rep,
    )


DEALS = [
    _deal("W-1", "closed_won", 5_000, close="2026-03-10T00:00:00Z"),
    _deal("W-2", "closed_won", 30_000, mode="rail", close="2026-04-10T00:00:00Z"),
    _deal("L-1", "closed_lost", 75_000, rep="Ben", close="2026-05-10T00:00:00Z"),
    _deal("N-1", "negotiation", 100_000),
    _deal("P-1", "proposal", 20_000, mode="rail", updated="2026-09-01T00:00:00Z"),
]


@pytest.fixture()
def client():
    app.dependency_overrides[get_deals] = lambda: list(DEALS)
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": "1.0.0"}


# ---------------------------------------------------------------------------
# /analytics/historical
# ---------------------------------------------------------------------------


class TestHistoricalEndpoint:
    def test_get_unfiltered(self, client):
        resp = client.get("/analytics/historical")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        overall = body["data"]["overall"]
        assert overall["total_deals"] == 3
        assert overall["won_deals"] == 2
        assert overall["win_rate"] == 66.67
        assert body["filters"]["applied"] == {}
        available = body["filters"]["available"]
        assert available["transportationModes"] == ["trucking", "rail", "ocean", "air"]
        assert available["dealSizeCategories"] == ["Small", "Medium", "Large", "Enterprise"]
        assert "closed_won" in available["stages"]

    def test_get_with_query_filters(self, client):
        resp = client.get(
            "/analytics/historical",
            params={"transportationMode": "rail", "dealSizeCategory": "Medium"},
        )
        body = resp.json()
        assert body["data"]["overall"]["total_deals"] == 1
        assert body["filters"]["applied"] == {
            "transportationMode": "rail",
            "dealSizeCategory": "Medium",
        }

    def test_unknown_size_category_dropped(self, client):
        resp = client.get("/analytics/historical", params={"dealSizeCategory": "Huge"})
        body = resp.json()
        assert body["filters"]["applied"] == {}
        assert body["data"]["overall"]["total_deals"] == 3

    def test_post_with_body_filters(self, client):
        resp = client.post(
            "/analytics/historical",
            json={"filters": {"dealSizeCategory": "Small"}},
        )
        assert resp.status_code == 200
        overall = resp.json()["data"]["overall"]
        assert overall["total_deals"] == 1
        assert overall["win_rate"] == 100

    def test_post_empty_body(self, client):
        resp = client.post("/analytics/historical", json={})
        assert resp.status_code == 200
        assert set(resp.json()["data"]["by_deal_size"]) == {"Small", "Medium", "Large", "Enterprise"}


# ---------------------------------------------------------------------------
# /forecasting/revenue
# ---------------------------------------------------------------------------


class TestForecastEndpoint:
    def test_default_six_months(self, client):
        body = client.get("/forecasting/revenue").json()
        months = [m["month"] for m in body["data"]["forecast"]]
        assert months[0] == "2026-10"
        assert len(months) == 6
        assert body["filters"]["available"]["monthsToForecast"] == 6
        assert body["filters"]["available"]["quotaTarget"] is None

    def test_months_and_quota_from_query(self, client):
        resp = client.get(
            "/forecasting/revenue",
            params={"monthsToForecast": 3, "quotaTarget": 100_000},
        )
        data = resp.json()["data"]
        assert len(data["forecast"]) == 3
        assert data["insights"]["quota_target"] == 100_000
        assert data["insights"]["quota_gap"] is not None

    def test_zero_months_rejected(self, client):
        resp = client.get("/forecasting/revenue", params={"monthsToForecast": 0})
        assert resp.status_code == 422

    def test_post(self, client):
        resp = client.post(
            "/forecasting/revenue",
            json={"monthsToForecast": 3, "filters": {"transportationMode": "rail"}},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [m["deal_count"] for m in body["data"]["forecast"]] == [0, 0, 1]
        assert body["filters"]["applied"] == {"transportationMode": "rail"}

    def test_post_rejects_zero_months(self, client):
        resp = client.post("/forecasting/revenue", json={"monthsToForecast": 0})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# /trends
# ---------------------------------------------------------------------------


class TestTrendsEndpoint:
    def test_open_deals_only(self, client):
        body = client.get("/trends").json()
        assert body["success"] is True
        ids = [t["deal_id"] for t in body["data"]["trends"]]
        assert sorted(ids) == ["N-1", "P-1"]
        assert body["data"]["insights"]["total_deals"] == 2

    def test_enums_serialised_as_values(self, client):
        trend = client.get("/trends").json()["data"]["trends"][0]
        assert trend["risk_level"] in {"low", "medium", "high", "critical"}
        assert trend["priority"] in {"low", "medium", "high", "urgent"}

    def test_is_stalling_true(self, client):
        body = client.get("/trends", params={"isStalling": "true"}).json()
        assert [t["deal_id"] for t in body["data"]["trends"]] == ["P-1"]

    def test_is_stalling_other_string_is_false(self, client):
        body = client.get("/trends", params={"isStalling": "yes"}).json()
        assert [t["deal_id"] for t in body["data"]["trends"]] == ["N-1"]

    def test_date_bounds_from_query(self, client):
        body = client.get("/trends", params={"endDate": "2026-12-31"}).json()
        assert sorted(t["deal_id"] for t in body["data"]["trends"]) == ["N-1", "P-1"]

        body = client.get("/trends", params={"startDate": "2026-12-16"}).json()
        assert body["data"]["trends"] == []

    def test_date_bounds_from_body(self, client):
        resp = client.post("/trends", json={"filters": {"endDate": "2026-12-01"}})
        assert resp.json()["data"]["insights"]["total_deals"] == 0

    def test_post_filters(self, client):
        resp = client.post("/trends", json={"filters": {"transportationMode": "rail"}})
        assert [t["deal_id"] for t in resp.json()["data"]["trends"]] == ["P-1"]


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


def test_deal_load_failure_returns_json(client):
    def _broken():
        raise DealLoadError("Deal FB-9 is missing required fields: stage")

    app.dependency_overrides[get_deals] = _broken
    resp = client.get("/trends")
    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Failed to load deals"
    assert "FB-9" in body["message"]


def test_unexpected_error_returns_json(client):
    def _boom():
        raise RuntimeError("disk on fire")

    app.dependency_overrides[get_deals] = _boom
    resp = client.get("/analytics/historical")
    assert resp.status_code == 500
    assert resp.json() == {
        "success": False,
        "error": "Internal server error",
        "message": "disk on fire",
    }
