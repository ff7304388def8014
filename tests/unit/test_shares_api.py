"""
Tests for share management and the public share view.
"""

from __future__ import annotations

import re

from fastapi.testclient import TestClient


def create_share(
    client: TestClient, headers: dict[str, str], **body: object
) -> dict[str, object]:
    payload: dict[str, object] = {"site_id": "site_1"}
    payload.update(body)
    response = client.post("/api/shares", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestShareManagement:
    def test_create(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        share = create_share(client, owner_headers, expires_in="7d")
        assert re.fullmatch(r"share_[0-9a-f]{16}", str(share["token"]))
        assert share["allowed_periods"] == ["7d", "30d", "90d"]
        assert share["expires_at"] is not None
        assert share["has_password"] is False
        assert "owner_id" not in share
        assert "password_hash" not in share

    def test_create_for_foreign_site_403(
        self, client: TestClient, stranger_headers: dict[str, str]
    ) -> None:
        response = client.post("/api/shares", json={"site_id": "site_1"}, headers=stranger_headers)
        assert response.status_code == 403

    def test_invalid_expiry_400(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.post(
            "/api/shares", json={"site_id": "site_1", "expires_in": "2y"}, headers=owner_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["code"] == "invalid_expires_in"

    def test_list_and_revoke(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        keep = create_share(client, owner_headers)
        drop = create_share(client, owner_headers)

        assert client.delete(f"/api/shares/{drop['token']}", headers=owner_headers).status_code == 204

        listed = client.get("/api/shares?site_id=site_1", headers=owner_headers).json()
        assert [s["token"] for s in listed] == [keep["token"]]

    def test_revoke_unknown_404(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.delete("/api/shares/share_0000000000000000", headers=owner_headers)
        assert response.status_code == 404

    def test_revoke_by_stranger_404(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        stranger_headers: dict[str, str],
    ) -> None:
        share = create_share(client, owner_headers)
        response = client.delete(f"/api/shares/{share['token']}", headers=stranger_headers)
        assert response.status_code == 404


class TestPublicStats:
    def test_view(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        share = create_share(client, owner_headers)
        response = client.get(f"/api/public/stats?token={share['token']}&period=30d")
        assert response.status_code == 200
        data = response.json()
        assert data["period"] == "30d"
        assert data["allowed_periods"] == ["7d", "30d", "90d"]
        assert data["stats"]["site_id"] == "site_1"
        assert len(data["stats"]["daily"]) == 30
        assert "owner" not in response.text

    def test_period_not_allowed_403(
        self, client: TestClient, owner_headers: dict[str, str]
    ) -> None:
        share = create_share(client, owner_headers)
        response = client.get(f"/api/public/stats?token={share['token']}&period=365d")
        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "period_not_allowed"

    def test_password_flow(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        share = create_share(client, owner_headers, password="hunter22")
        url = f"/api/public/stats?token={share['token']}&period=7d"

        missing = client.get(url)
        assert missing.status_code == 403
        assert missing.json()["detail"]["reason"] == "password_required"

        wrong = client.get(url, headers={"X-Share-Password": "nope"})
        assert wrong.json()["detail"]["reason"] == "invalid_password"

        assert client.get(url, headers={"X-Share-Password": "hunter22"}).status_code == 200

    def test_revoked_then_404(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        share = create_share(client, owner_headers)
        url = f"/api/public/stats?token={share['token']}&period=7d"
        assert client.get(url).status_code == 200

        client.delete(f"/api/shares/{share['token']}", headers=owner_headers)
        response = client.get(url)
        assert response.status_code == 404
        assert response.json()["detail"]["reason"] == "not_found"

    def test_unknown_token_404(self, client: TestClient) -> None:
        response = client.get("/api/public/stats?token=share_ffffffffffffffff")
        assert response.status_code == 404
