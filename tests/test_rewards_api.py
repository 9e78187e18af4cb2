"""
End-to-end tests of the detection, verification and admin endpoints
"""
import base64
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from ecolens.schemas.schemas import BinComparison
from ecolens.services.proof_in_bin_service import proof_in_bin_service


def _image(content: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(content).decode("ascii")


BOTTLE_IMAGE = _image(b"bottle-on-the-table")
BIN_IMAGE = _image(b"bottle-in-the-bin")


def _bottle(**overrides):
    body = {
        "item_name": "plastic bottle",
        "confidence": 90,
        "bin_type": "recyclable",
        "coins_awarded": 15,
        "image_data": BOTTLE_IMAGE,
    }
    body.update(overrides)
    return body


def _newspaper(**overrides):
    body = {
        "item_name": "newspaper",
        "confidence": 85,
        "bin_type": "recyclable",
        "coins_awarded": 8,
        "image_data": _image(b"newspaper"),
    }
    body.update(overrides)
    return body


MISMATCH = BinComparison(
    is_matching_object=False,
    match_score=20,
    item_identified="plastic bottle",
    bin_item_identified="empty bin",
    confidence=90,
    reasoning="No bottle visible in the bin",
    fraud_risk=60,
)

MATCH = BinComparison(
    is_matching_object=True,
    match_score=90,
    item_identified="plastic bottle",
    bin_item_identified="plastic bottle",
    confidence=90,
    reasoning="Same bottle in the recycling bin",
    fraud_risk=10,
)


class TestDetectEndpoint:

    def test_rejects_missing_or_non_data_url(self, client):
        for body in ({}, {"image_data": "https://example.com/photo.jpg"}):
            response = client.post("/api/detect", json=body)
            assert response.status_code == 400
            assert response.json() == {"error": "Valid image data is required"}

    def test_fallback_results_hide_provider(self, client, make_image_url):
        response = client.post("/api/detect", json={"image_data": make_image_url(b"photo")})

        assert response.status_code == 200
        items = response.json()
        assert 1 <= len(items) <= 2
        for item in items:
            assert set(item) == {"name", "confidence", "bin_type", "bin_color", "coins_reward"}


class TestRecordAndVerify:

    def test_high_value_item_waits_for_verification(self, client):
        response = client.post("/api/detections", json=_bottle())

        assert response.status_code == 200
        body = response.json()
        assert body["requires_verification"] is True
        assert body["coins_awarded"] == 0
        assert body["verification_reason"].startswith("High-value item")
        assert body["detection"]["verification_status"] == "pending"
        assert body["detection"]["coins_earned"] == 15
        assert client.get("/api/user").json()["green_coins"] == 0
        assert client.get("/api/transactions").json() == []

    def test_successful_verification_credits_once(self, client):
        detection_id = client.post("/api/detections", json=_bottle()).json()["detection"]["id"]

        response = client.post(f"/api/detections/{detection_id}/verify", json={"bin_image": BIN_IMAGE})

        assert response.status_code == 200
        body = response.json()
        assert body["coins_awarded"] == 15
        assert body["match_score"] == 85
        assert body["detection"]["verification_status"] == "verified"
        assert body["detection"]["verified_at"] is not None

        user = client.get("/api/user").json()
        assert (user["green_coins"], user["total_earned"]) == (15, 15)
        transactions = client.get("/api/transactions").json()
        assert len(transactions) == 1
        assert transactions[0]["type"] == "earn"
        assert transactions[0]["detection_id"] == detection_id
        stats = client.get("/api/stats").json()
        assert (stats["total_detections"], stats["plastic_items_detected"]) == (1, 1)

        again = client.post(f"/api/detections/{detection_id}/verify", json={"bin_image": BIN_IMAGE})
        assert again.status_code == 400
        assert again.json()["alreadyVerified"] is True
        assert client.get("/api/user").json()["green_coins"] == 15

    def test_low_value_item_is_credited_immediately(self, client):
        response = client.post("/api/detections", json=_newspaper())

        body = response.json()
        assert body["requires_verification"] is False
        assert body["coins_awarded"] == 8
        assert body["detection"]["verification_status"] == "verified"
        assert body["rate_limit"]["remaining"] == 9

        assert client.get("/api/user").json()["green_coins"] == 8
        stats = client.get("/api/user/1/stats").json()
        assert (stats["total_detections"], stats["paper_items_detected"]) == (1, 1)
        assert stats["favorite_material"] == "paper"
        assert stats["streak_days"] == 1
        achievements = client.get("/api/achievements").json()
        assert [a["achievement_type"] for a in achievements] == ["first_detection"]
        history = client.get("/api/user/1/detections").json()
        assert len(history) == 1

    def test_claimed_coins_are_capped(self, client):
        body = client.post("/api/detections", json=_newspaper(coins_awarded=500)).json()
        assert body["detection"]["coins_earned"] == 10
        assert body["requires_verification"] is True

    def test_failed_attempts_end_in_rejection(self, client, storage):
        detection_id = client.post("/api/detections", json=_bottle()).json()["detection"]["id"]
        url = f"/api/detections/{detection_id}/verify"

        with patch.object(proof_in_bin_service, "compare", new=AsyncMock(return_value=MISMATCH)):
            remaining = []
            for _ in range(3):
                response = client.post(url, json={"bin_image": BIN_IMAGE})
                assert response.status_code == 400
                assert response.json()["verificationRejected"] is True
                remaining.append(response.json()["attemptsRemaining"])

            assert remaining == [2, 1, 0]
            assert storage.get_detection(detection_id).verification_status == "rejected"

            last = client.post(url, json={"bin_image": BIN_IMAGE})
            assert last.json()["attemptsRemaining"] == 0

        assert client.get("/api/user").json()["green_coins"] == 0
        assert client.get("/api/transactions").json() == []

    def test_reusing_the_item_photo_is_a_fraud_attempt(self, client):
        detection_id = client.post("/api/detections", json=_bottle()).json()["detection"]["id"]

        response = client.post(
            f"/api/detections/{detection_id}/verify", json={"bin_image": BOTTLE_IMAGE}
        )

        assert response.status_code == 400
        assert response.json()["fraudAttempt"] is True

    def test_verification_window_expires(self, client, storage):
        detection_id = client.post("/api/detections", json=_bottle()).json()["detection"]["id"]
        storage.update_detection(detection_id, created_at=datetime.utcnow() - timedelta(hours=25))

        response = client.post(f"/api/detections/{detection_id}/verify", json={"bin_image": BIN_IMAGE})

        assert response.status_code == 400
        assert response.json()["verificationExpired"] is True
        assert storage.get_detection(detection_id).verification_status == "rejected"

    def test_mixed_naive_and_utc_capture_times(self, client):
        detection_id = client.post("/api/detections", json=_bottle()).json()["detection"]["id"]

        response = client.post(f"/api/detections/{detection_id}/verify", json={
            "bin_image": BIN_IMAGE,
            "item_captured_at": "2026-10-19T10:00:00",
            "bin_captured_at": "2026-10-19T10:02:00Z",
        })

        assert response.status_code == 200
        assert response.json()["coins_awarded"] == 15

    @pytest.mark.parametrize("status,flag", [
        ("rejected", "verificationRejected"),
        ("verified", "alreadyVerified"),
    ])
    def test_detection_settled_during_comparison_is_not_credited(self, client, storage, status, flag):
        detection_id = client.post("/api/detections", json=_bottle()).json()["detection"]["id"]

        async def settle_elsewhere(*args, **kwargs):
            storage.update_detection(detection_id, verification_status=status)
            return MATCH

        with patch.object(proof_in_bin_service, "compare", new=AsyncMock(side_effect=settle_elsewhere)):
            response = client.post(f"/api/detections/{detection_id}/verify", json={"bin_image": BIN_IMAGE})

        assert response.status_code == 400
        assert response.json()[flag] is True
        if status == "rejected":
            assert response.json()["attemptsRemaining"] == 0
        assert storage.get_detection(detection_id).verification_status == status
        assert client.get("/api/user").json()["green_coins"] == 0
        assert client.get("/api/transactions").json() == []

    def test_unknown_detection(self, client):
        response = client.post("/api/detections/999/verify", json={"bin_image": BIN_IMAGE})
        assert response.status_code == 404
        assert response.json() == {"error": "Detection not found"}

    def test_missing_bin_image_is_a_400(self, client):
        response = client.post("/api/detections/1/verify", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"


class TestFraudRulesOverHttp:

    def test_low_confidence(self, client):
        response = client.post("/api/detections", json=_newspaper(confidence=50))

        assert response.status_code == 400
        body = response.json()
        assert body["lowConfidence"] is True
        assert body["minimumRequired"] == 60

    def test_third_quick_scan_is_refused(self, client):
        for name in ("newspaper", "cardboard box"):
            assert client.post(
                "/api/detections", json=_newspaper(item_name=name, image_data=_image(name.encode()))
            ).status_code == 200

        response = client.post(
            "/api/detections", json=_newspaper(item_name="egg carton", image_data=_image(b"egg"))
        )

        assert response.status_code == 400
        assert response.json()["rapidScanningDetected"] is True

    def test_duplicate_image(self, client, relaxed_limits):
        client.post("/api/detections", json=_newspaper())
        response = client.post("/api/detections", json=_newspaper(item_name="cardboard box"))

        assert response.status_code == 400
        assert response.json()["duplicateImage"] is True


class TestAdminAndSystem:

    def test_admin_requires_api_key(self, client):
        response = client.get("/api/admin/users")
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or missing API key"}

    @pytest.mark.parametrize("path", [
        "/api/admin/users",
        "/api/admin/detections",
        "/api/admin/stats",
        "/api/admin/achievements",
        "/api/admin/transactions",
    ])
    def test_admin_listings(self, client, admin_headers, path):
        response = client.get(path, headers=admin_headers)
        assert response.status_code == 200
        assert isinstance(response.json(), list)

    def test_fraud_monitoring(self, client, admin_headers):
        client.post("/api/detections", json=_newspaper())
        report = client.get("/api/admin/fraud-monitoring", headers=admin_headers).json()
        assert report["summary"]["last_24_hour_detections"] == 1
        assert report["suspicious_detections"] == []

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["storage"] == "memory"
        assert body["providers"] == {"gemini": False, "clarifai": False}

    def test_profile_update(self, client):
        response = client.put("/api/user", json={"username": "recycler", "email": "r@example.com"})
        assert response.status_code == 200
        assert response.json()["username"] == "recycler"

        invalid = client.put("/api/user", json={"username": "recycler", "email": "not-an-email"})
        assert invalid.status_code == 400
