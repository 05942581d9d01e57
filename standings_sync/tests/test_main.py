from __future__ import annotations

import pytest
import requests
from fastapi.testclient import TestClient

from standings_sync.main import create_app
from standings_sync.services.orchestrator import SyncOrchestrator
from standings_sync.tests.helpers import FakeApi, leagues_payload, standings_payload, top_scorers_payload


@pytest.fixture
def client(orchestrator: SyncOrchestrator, monkeypatch):
    monkeypatch.setenv("LIVE_REFRESH_ENABLED", "false")
    with TestClient(create_app(orchestrator)) as test_client:
        yield test_client


def test_healthz(client: TestClient) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readyz_reports_cache_and_budget(client: TestClient) -> None:
    body = client.get("/readyz").json()

    assert body["status"] == "ready"
    assert body["api_key_configured"] is True
    assert body["cache_backend"] == "memory"
    assert body["cache"]["entries"] == 0
    assert body["api_budget"]["limit"] == 50
    assert body["live_refresh_running"] is False


def test_standings_endpoint_returns_ranked_table(client: TestClient, fake_api: FakeApi) -> None:
    fake_api.route("standings", standings_payload(39, 2022))

    response = client.get("/api/leagues/39/standings", params={"season": 2022})

    assert response.status_code == 200
    body = response.json()
    assert body["league_id"] == 39
    assert body["season"] == 2022
    assert body["stale"] is False
    assert body["warnings"] == []
    assert len(body["standings"]) == 20
    assert body["standings"][0]["team_name"] == "Manchester City"
    assert body["standings"][0]["points"] == 89
    assert body["standings"][-1]["points"] == 25


def test_standings_endpoint_requires_a_season(client: TestClient) -> None:
    response = client.get("/api/leagues/39/standings")

    assert response.status_code == 422


def test_unavailable_standings_map_to_503(client: TestClient, fake_api: FakeApi) -> None:
    fake_api.fail("standings", requests.exceptions.ConnectionError("offline"))

    response = client.get("/api/leagues/39/standings", params={"season": 2022})

    assert response.status_code == 503
    assert "standings:39:2022" in response.json()["detail"]


def test_league_endpoint_returns_seasons(client: TestClient, fake_api: FakeApi) -> None:
    fake_api.route("leagues", leagues_payload())

    response = client.get("/api/leagues/39")

    assert response.status_code == 200
    body = response.json()
    assert body["league"]["name"] == "Premier League"
    assert body["league"]["country_code"] == "GB"
    assert [season["year"] for season in body["seasons"] if season["current"]] == [2024]


def test_invalidate_endpoint_forces_a_refetch(client: TestClient, fake_api: FakeApi) -> None:
    fake_api.route("standings", standings_payload(39, 2022))
    client.get("/api/leagues/39/standings", params={"season": 2022})

    response = client.post("/api/leagues/39/invalidate")
    assert response.json() == {"league_id": 39, "invalidated": 2}

    client.get("/api/leagues/39/standings", params={"season": 2022})
    assert fake_api.count("standings") == 2


def test_top_scorers_endpoint(client: TestClient, fake_api: FakeApi) -> None:
    fake_api.route("topscorers", top_scorers_payload(39, 2022))

    response = client.get("/api/leagues/39/top-scorers", params={"season": 2022})

    assert response.status_code == 200
    body = response.json()
    assert body["stale"] is False
    assert [scorer["player_name"] for scorer in body["top_scorers"]] == [
        "E. Haaland",
        "H. Kane",
        "I. Toney",
    ]
    assert body["top_scorers"][0]["goals"] == 36
