"""Tests for the FastAPI frontend."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from analysis_service import ClimateAnalysisService
from climate_analysis import AnalysisConfig
from conftest import FakeProvider
from frontend_api import app
from request_cache import RequestCache
from weather_models import MalformedSeriesError, ProviderError


def make_service(resolver, provider, clock) -> ClimateAnalysisService:
    return ClimateAnalysisService(
        resolver,
        provider,
        cache=RequestCache(clock=clock),
        config=AnalysisConfig(kwargs={"history_years": 2}),
        today=lambda: date(2024, 6, 15),
    )


@pytest.fixture
def client(monkeypatch, fake_resolver, fake_provider, clock) -> TestClient:
    monkeypatch.setattr(
        "frontend_api.frontend_api.service", make_service(fake_resolver, fake_provider, clock)
    )
    return TestClient(app)


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["cache"] == "ready"

    def test_uninitialized(self, monkeypatch):
        monkeypatch.setattr("frontend_api.frontend_api.service", None)
        response = TestClient(app).get("/health")
        assert response.status_code == 503

    def test_other_endpoints_need_the_service(self, monkeypatch):
        monkeypatch.setattr("frontend_api.frontend_api.service", None)
        assert TestClient(app).get("/cache").status_code == 503


class TestAnalysisEndpoint:
    """Test cases for GET /analysis/{postcode}."""

    def test_analysis(self, client):
        response = client.get("/analysis/SW1A 1AA")
        assert response.status_code == 200

        body = response.json()
        assert body["location"]["name"] == "Westminster"
        assert body["start"] == "2022-01-01"
        assert body["end"] == "2024-06-13"
        assert body["series"] is None
        assert [period["label"] for period in body["yearly"]] == ["2022", "2023", "2024"]
        assert "drought" in body["runs"]
        assert body["trends"]["rainfall"]["per"] == "day"
        assert len(body["recent"]) == 30

    def test_analysis_with_series(self, client):
        body = client.get("/analysis/SW1A1AA", params={"include_series": True}).json()
        assert len(body["series"]) == body["days"]
        assert body["series"][0]["date"] == "2022-01-01"

    def test_unknown_postcode(self, client):
        response = client.get("/analysis/ZZ1 1ZZ")
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "failure", [ProviderError("archive unavailable"), MalformedSeriesError("duplicate date")]
    )
    def test_upstream_failure(self, monkeypatch, fake_resolver, clock, failure):
        monkeypatch.setattr(
            "frontend_api.frontend_api.service",
            make_service(fake_resolver, FakeProvider(failure=failure), clock),
        )
        response = TestClient(app).get("/analysis/SW1A 1AA")
        assert response.status_code == 502


class TestCurrentEndpoint:
    def test_current(self, client):
        response = client.get("/current/SW1A 1AA")
        assert response.status_code == 200

        body = response.json()
        assert body["location"]["postcode"] == "SW1A 1AA"
        assert body["readings"]["temperature_2m"] == 18.4
        assert body["readings"]["precipitation"] is None
        assert body["today"]["temperature_2m_max"] == 21.0


class TestCacheEndpoints:
    """Test cases for cache statistics and purging."""

    def test_stats_after_requests(self, client):
        client.get("/analysis/SW1A 1AA")
        client.get("/analysis/SW1A 1AA")

        stats = client.get("/cache").json()
        assert stats["size"] == 2
        assert stats["misses"] == 2
        assert stats["hits"] == 2
        assert stats["hit_rate"] == 0.5

    def test_purge_expired(self, client, clock):
        client.get("/current/SW1A 1AA")
        clock.advance(601)

        response = client.delete("/cache/expired")
        assert response.status_code == 200
        assert response.json() == {"purged": 1}
        assert client.get("/cache").json()["size"] == 1
