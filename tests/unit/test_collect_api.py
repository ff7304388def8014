"""
Tests for the public event collection endpoint.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient

from src.api import deps

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


def post_event(
    client: TestClient,
    payload: dict[str, object],
    ua: str = CHROME_UA,
    ip: str = "203.0.113.7",
):  # type: ignore[no-untyped-def]
    return client.post(
        "/api/collect/event",
        json=payload,
        headers={"User-Agent": ua, "X-Forwarded-For": f"{ip}, 10.0.0.1"},
    )


class TestCollect:
    def test_accepted(self, client: TestClient) -> None:
        """New event is 202."""
        response = post_event(client, {"site_id": "site_1", "type": "pageview", "path": "/"})
        assert response.status_code == 202
        assert response.json() == {"ok": True, "status": "accepted"}

    def test_duplicate_is_200(self, client: TestClient) -> None:
        """Replay inside the dedup window is a successful no-op."""
        payload = {"site_id": "site_1", "type": "pageview", "path": "/pricing"}
        assert post_event(client, payload).status_code == 202
        response = post_event(client, payload)
        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"

    def test_different_visitors_both_accepted(self, client: TestClient) -> None:
        payload = {"site_id": "site_1", "type": "pageview", "path": "/"}
        assert post_event(client, payload, ip="203.0.113.7").status_code == 202
        assert post_event(client, payload, ip="198.51.100.9").status_code == 202

    def test_accepted_event_reaches_realtime_buffer(self, client: TestClient) -> None:
        post_event(client, {"site_id": "site_1", "type": "pageview", "path": "/docs"})
        events = deps.get_event_buffer().snapshot("site_1")
        assert len(events) == 1
        assert events[0].path == "/docs"
        assert events[0].device == "desktop"

    def test_unregistered_site_rejected(self, client: TestClient) -> None:
        response = post_event(
            client, {"site_id": "no-such-site-xyz", "type": "pageview", "path": "/"}
        )
        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "invalid_site"
        assert deps.get_event_buffer().site_ids() == []

    def test_missing_site_id(self, client: TestClient) -> None:
        response = post_event(client, {"type": "pageview", "path": "/"})
        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "validation_error"


class TestCollectPrivacy:
    def test_pii_field_rejected(self, client: TestClient) -> None:
        response = post_event(
            client,
            {"site_id": "site_1", "type": "pageview", "path": "/", "email": "a@example.com"},
        )
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["reason"] == "forbidden_field"
        assert "a@example.com" not in response.text

    def test_bot_rejected(self, client: TestClient) -> None:
        response = post_event(
            client, {"site_id": "site_1", "type": "pageview", "path": "/"}, ua=BOT_UA
        )
        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "bot_traffic"

    def test_raw_attributes_never_echoed(self, client: TestClient) -> None:
        response = post_event(client, {"site_id": "site_1", "type": "nope", "path": "/"})
        assert response.status_code == 400
        assert "203.0.113.7" not in response.text
        assert "Chrome/120" not in response.text


class TestInMemorySweep:
    def test_sweep_drops_stale_sites_and_keys(self, client: TestClient) -> None:
        post_event(client, {"site_id": "site_1", "type": "pageview", "path": "/"})
        assert deps.get_event_buffer().site_ids() == ["site_1"]

        later = datetime.now(UTC) + timedelta(days=2)
        dropped, expired = deps.sweep_in_memory_state(later)

        assert (dropped, expired) == (1, 1)
        assert deps.get_event_buffer().site_ids() == []


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
