"""
Shared fixtures for EcoLens tests.

Every test gets a fresh in-memory store, the demo user, offline vision
providers and a seeded RNG for the fallback detector.
"""
import base64
import random
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from ecolens.config import settings
from ecolens.dependencies import get_storage
from ecolens.main import app
from ecolens.schemas.schemas import DetectedObject, DetectionCreate, VerificationStatus
from ecolens.services.detection_service import detection_service, get_bin_type
from ecolens.services.proof_in_bin_service import proof_in_bin_service
from ecolens.services.user_service import user_service
from ecolens.storage.memory import MemStorage


def data_url(content: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


@pytest.fixture(autouse=True)
def offline_vision(monkeypatch):
    """No test ever reaches a real vision provider"""
    monkeypatch.setattr(detection_service, "gemini_key", "")
    monkeypatch.setattr(detection_service, "clarifai_key", "")
    monkeypatch.setattr(detection_service, "provider", "auto")
    monkeypatch.setattr(detection_service, "rng", random.Random(42))
    monkeypatch.setattr(proof_in_bin_service, "api_key", "")


@pytest.fixture
def relaxed_limits(monkeypatch):
    """Lift the pacing rules for tests that record several detections quickly"""
    monkeypatch.setattr(settings, "RAPID_SCAN_MAX", 1000)
    monkeypatch.setattr(settings, "SAME_ITEM_MAX", 1000)
    monkeypatch.setattr(settings, "SAME_CLIENT_MAX", 1000)
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX", 1000)
    monkeypatch.setattr(settings, "OFF_HOURS_DAILY_MAX", 1000)


@pytest.fixture
def storage():
    return MemStorage()


@pytest.fixture
def demo_user(storage):
    return user_service.get_or_create_demo_user(storage)


@pytest.fixture
def client(storage, demo_user):
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-API-Key": settings.ADMIN_API_KEY}


@pytest.fixture
def add_detection(storage):
    """Insert a detection directly, optionally back-dated"""

    def _add(
        user_id: int,
        created_at: datetime = None,
        name: str = "plastic bottle",
        confidence: int = 85,
        coins: int = 5,
        user_agent: str = "pytest-agent",
        **fields
    ):
        detection = storage.create_detection(DetectionCreate(
            user_id=user_id,
            detected_objects=[DetectedObject(
                name=name, confidence=confidence, bin_type=get_bin_type(name), coins_reward=coins
            )],
            confidence_score=confidence,
            coins_earned=coins,
            verification_status=fields.pop("verification_status", VerificationStatus.verified),
            user_agent=user_agent,
            **fields
        ))
        if created_at is not None:
            detection = storage.update_detection(detection.id, created_at=created_at)
        return detection

    return _add


@pytest.fixture
def make_image_url():
    return data_url
