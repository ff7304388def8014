"""
Tests for owner-scoped realtime and stats endpoints.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient
from jose import jwt

from src.api.auth_utils import ALGORITHM, SECRET_KEY, create_access_token

CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def track(client: TestClient, path: str, ip: str) -> None:
    response = client.post(
        "/api/collect/event",
        json={"site_id": "site_1", "type": "pageview", "path": path},
        headers={"User-Agent": CHROME_UA, "X-Forwarded-For": ip},
    )
    assert response.status_code == 202


class TestOwnerAuth:
    def test_missing_token_401(self, client: TestClient) -> None:
        assert client.get("/api/realtime/site_1").status_code == 401

    def test_garbage_token_401(self, client: TestClient) -> None:
        response = client.get("/api/stats/site_1", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_expired_token_401(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        token = create_access_token(
            {"sub": "owner_1"},
            expires_delta=timedelta(minutes=5),
            now_utc=datetime.now(UTC) - timedelta(hours=1),
        )
        response = client.get("/api/stats/site_1", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_foreign_audience_401(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        token = jwt.encode(
            {"sub": "owner_1", "aud": "billing", "exp": datetime.now(UTC) + timedelta(hours=1)},
            SECRET_KEY,
            algorithm=ALGORITHM,
        )
        response = client.get("/api/stats/site_1", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_other_owner_403(self, client: TestClient, stranger_headers: dict[str, str]) -> None:
        response = client.get("/api/realtime/site_1", headers=stranger_headers)
        assert response.status_code == 403
        assert response.json()["errors"][0]["code"] == "site_forbidden"


class TestRealtimeApi:
    def test_snapshot(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        track(client, "/", "203.0.113.1")
        track(client, "/", "203.0.113.2")
        track(client, "/about", "203.0.113.1")

        response = client.get("/api/realtime/site_1?window=30", headers=owner_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["active_visitors"] == 2
        assert data["page_views"] == 3
        assert data["top_pages"][0] == {"path": "/", "visitors": 2}
        assert data["device_breakdown"] == {"desktop": 3}
        assert all("fingerprint" not in e for e in data["recent_events"])

    def test_window_too_large(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get("/api/realtime/site_1?window=1500", headers=owner_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "invalid_time_window"

    def test_nan_window(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get("/api/realtime/site_1?window=nan", headers=owner_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "invalid_time_window"

    def test_negative_window(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get("/api/realtime/site_1?window=-5", headers=owner_headers)
        assert response.status_code == 400


class TestStatsApi:
    def test_period_summary(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        track(client, "/", "203.0.113.1")
        track(client, "/docs", "203.0.113.2")

        response = client.get("/api/stats/site_1?period=7d", headers=owner_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["pageviews"] == 2
        assert data["unique_visitors"] == 2
        assert len(data["daily"]) == 7
        assert {row["value"] for row in data["breakdowns"]["pages"]} == {"/", "/docs"}

    def test_explicit_range_zero_filled(
        self, client: TestClient, owner_headers: dict[str, str]
    ) -> None:
        response = client.get(
            "/api/stats/site_1?start=2025-03-01&end=2025-03-03", headers=owner_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["pageviews"] == 0
        assert [row["date"] for row in data["daily"]] == ["2025-03-01", "2025-03-02", "2025-03-03"]

    def test_reversed_range_400(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get(
            "/api/stats/site_1?start=2025-03-05&end=2025-03-01", headers=owner_headers
        )
        assert response.status_code == 400

    def test_unknown_period_400(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get("/api/stats/site_1?period=2w", headers=owner_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "invalid_period"
