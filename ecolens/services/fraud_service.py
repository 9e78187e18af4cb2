"""
Fraud Service - behavioural anti-fraud checks for detection submissions
"""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ecolens.config import settings
from ecolens.exceptions import FraudCheckError
from ecolens.schemas.schemas import Detection, DetectionSubmission
from ecolens.storage.base import Storage

logger = logging.getLogger(__name__)


def calculate_fraud_score(
    confidence: int,
    recent_count: int,
    missing_image_hash: bool,
    rapid_scans: int = 0
) -> int:
    """Heuristic 0-100 risk for a new detection"""
    score = 0

    if confidence < 70:
        score += 20
    if confidence < 60:
        score += 30

    if recent_count > 5:
        score += 25
    if recent_count > 8:
        score += 40

    if missing_image_hash:
        score += 15

    # Rapid scanning suggests reuse of one item without disposal
    if rapid_scans > 2:
        score += 30
    if rapid_scans > 4:
        score += 50

    return min(score, 100)


def get_verification_reason(fraud_score: int, coins: int) -> str:
    if fraud_score >= settings.FRAUD_FORCE_VERIFICATION_SCORE:
        return "Suspicious activity detected - verification required to ensure proper disposal"
    if coins >= settings.VERIFICATION_COIN_THRESHOLD:
        return "High-value item detected - please verify proper disposal to prevent fraud"
    return "Verification required for quality assurance and fraud prevention"


def get_behavior_warnings(recent_count: int, rapid_count: int, same_client_count: int) -> List[str]:
    warnings = []
    if recent_count > 6:
        warnings.append("High detection frequency - please ensure you're disposing items properly")
    if rapid_count > 2:
        warnings.append("Scanning too quickly - take time between each item for proper disposal")
    if same_client_count > 5:
        warnings.append("Multiple detections from same location - vary your recycling locations")
    return warnings


def _first_confidence(detection: Detection) -> int:
    return detection.detected_objects[0].confidence if detection.detected_objects else 0


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class FraudService:
    """Ordered pre-persist checks; the first failing rule rejects the submission"""

    def check_detection_allowed(
        self,
        storage: Storage,
        user_id: int,
        submission: DetectionSubmission,
        user_agent: str,
        now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """
        Run every anti-fraud rule against a submission.

        Returns:
            Window counts used for scoring and warnings

        Raises:
            FraudCheckError: with the flag of the first rule that tripped
        """
        now = now or datetime.utcnow()
        window_start = now - timedelta(minutes=settings.RATE_LIMIT_WINDOW_MINUTES)

        recent = storage.get_recent_detections(user_id, window_start)
        if len(recent) >= settings.RATE_LIMIT_MAX:
            cooldown = recent[-1].created_at + timedelta(minutes=settings.RATE_LIMIT_WINDOW_MINUTES)
            logger.warning(f"Rate limit hit for user {user_id}")
            raise FraudCheckError(
                "Rate limit exceeded. Please wait before scanning again.",
                status_code=429,
                cooldownUntil=cooldown.isoformat()
            )

        if submission.image_hash:
            duplicate = storage.get_detection_by_image_hash(submission.image_hash)
            if duplicate:
                raise FraudCheckError(
                    "This image has already been processed. Please use a new photo.",
                    duplicateImage=True,
                    originalDetection=duplicate.created_at.isoformat()
                )

        if submission.confidence < settings.MIN_DETECTION_CONFIDENCE:
            raise FraudCheckError(
                "Detection confidence too low. Please try with better lighting or closer image.",
                lowConfidence=True,
                confidence=submission.confidence,
                minimumRequired=settings.MIN_DETECTION_CONFIDENCE
            )

        same_items = storage.get_recent_same_item_detections(user_id, submission.item_name, window_start)
        if len(same_items) >= settings.SAME_ITEM_MAX:
            raise FraudCheckError(
                "Too many similar items detected recently. Please try different items.",
                suspiciousPattern=True
            )

        same_client = [d for d in recent if d.user_agent == user_agent]
        if len(same_client) >= settings.SAME_CLIENT_MAX:
            raise FraudCheckError(
                "Suspicious activity detected. Please ensure you're disposing items properly.",
                locationSuspicious=True
            )

        today = storage.get_recent_detections(user_id, _start_of_day(now))
        if len(today) >= settings.DAILY_DETECTION_LIMIT:
            raise FraudCheckError(
                "Daily detection limit reached. Normal recycling behavior doesn't exceed "
                f"{settings.DAILY_DETECTION_LIMIT} items per day.",
                dailyLimitExceeded=True
            )

        rapid_start = now - timedelta(minutes=settings.RAPID_SCAN_WINDOW_MINUTES)
        rapid = [d for d in recent if d.created_at >= rapid_start]
        if len(rapid) >= settings.RAPID_SCAN_MAX:
            raise FraudCheckError(
                "Scanning too quickly. Please take at least "
                f"{settings.RAPID_SCAN_WINDOW_MINUTES} minutes between each item for proper disposal.",
                rapidScanningDetected=True
            )

        is_weekend = now.weekday() >= 5
        is_night = now.hour < 6 or now.hour > 22
        if (is_weekend or is_night) and len(today) > settings.OFF_HOURS_DAILY_MAX:
            raise FraudCheckError(
                "Unusual recycling pattern detected. Most recycling happens during regular hours.",
                unusualTimePattern=True
            )

        if (submission.coins_awarded >= settings.VERIFICATION_COIN_THRESHOLD
                and submission.confidence < settings.HIGH_VALUE_MIN_CONFIDENCE):
            raise FraudCheckError(
                "High-value item requires higher detection confidence for fraud prevention.",
                lowConfidenceHighValue=True
            )

        last_ten = today[:10]
        if len(last_ten) >= 10:
            average = sum(_first_confidence(d) for d in last_ten) / len(last_ten)
            # Real-world scans vary; a flat >95 average looks spoofed
            if average > 95:
                raise FraudCheckError(
                    "Detection pattern appears artificial. Real-world scanning shows more variation.",
                    suspiciousConsistency=True
                )

        same_device_today = [d for d in today if d.user_agent == user_agent]
        if len(same_device_today) > settings.DEVICE_DAILY_MAX:
            raise FraudCheckError(
                "Excessive scanning from same device. Please ensure authentic recycling behavior.",
                deviceOveruse=True
            )

        return {
            "recent_count": len(recent),
            "rapid_count": len(rapid),
            "same_client_count": len(same_client),
            "today_count": len(today),
        }

    def get_fraud_monitoring(self, storage: Storage, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Admin report over the last 24 hours"""
        now = now or datetime.utcnow()
        since = now - timedelta(hours=24)
        window = [d for d in storage.get_all_detections() if d.created_at > since]

        suspicious = [d for d in window if d.fraud_score > 50]

        per_user = Counter(d.user_id for d in window)
        rapid_scanners = [
            {"user_id": user_id, "detection_count": count}
            for user_id, count in per_user.items() if count > 15
        ]

        per_hash = Counter(d.image_hash for d in window if d.image_hash)
        duplicate_attempts = [
            {"image_hash": image_hash, "attempt_count": count}
            for image_hash, count in per_hash.items() if count > 1
        ]

        return {
            "suspicious_detections": suspicious[:20],
            "rapid_scanners": rapid_scanners,
            "duplicate_attempts": duplicate_attempts,
            "summary": {
                "total_suspicious": len(suspicious),
                "total_rapid_scanners": len(rapid_scanners),
                "total_duplicate_attempts": len(duplicate_attempts),
                "last_24_hour_detections": len(window),
            },
        }


# Singleton instance
fraud_service = FraudService()
