"""
Rewards Service - detection recording, Proof-in-Bin verification and QR redemption

Coins move only through ``Storage.record_coin_transaction`` so every balance
change has exactly one matching transaction row.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ecolens.config import settings
from ecolens.exceptions import (
    InsufficientCoinsError,
    NotFoundError,
    ValidationFailedError,
    VerificationError,
)
from ecolens.schemas.schemas import (
    DetectedObject,
    Detection,
    DetectionCreate,
    DetectionSubmission,
    MaterialCategory,
    Stats,
    TransactionCreate,
    TransactionType,
    VerificationStatus,
    VerifyRequest,
)
from ecolens.services.achievement_service import achievement_service
from ecolens.services.analytics_service import analytics_service, time_of_day
from ecolens.services.detection_service import get_coins_reward, get_item_category, hash_image
from ecolens.services.fraud_service import (
    calculate_fraud_score,
    fraud_service,
    get_behavior_warnings,
    get_verification_reason,
)
from ecolens.services.proof_in_bin_service import (
    calculate_bin_verification_fraud_score,
    proof_in_bin_service,
)
from ecolens.services.qr_service import qr_service
from ecolens.storage.base import Storage

logger = logging.getLogger(__name__)

MATERIALS = ("plastic", "paper", "glass", "metal")
MIN_MATCH_SCORE = 70
# Fallback results jitter rewards by up to this much above the base value
MAX_REWARD_JITTER = 2


def _item_name(detection: Detection) -> str:
    return detection.detected_objects[0].name if detection.detected_objects else "item"


def _next_streak(stats: Stats, now: datetime) -> int:
    if stats.last_detection_at is None:
        return 1
    last_day = stats.last_detection_at.date()
    if last_day == now.date():
        return max(stats.streak_days, 1)
    if last_day == now.date() - timedelta(days=1):
        return stats.streak_days + 1
    return 1


def _favorite_material(stats: Stats) -> Optional[MaterialCategory]:
    counts = {m: getattr(stats, f"{m}_items_detected") for m in MATERIALS}
    material, count = max(counts.items(), key=lambda kv: kv[1])
    return MaterialCategory(material) if count > 0 else None


class RewardsService:
    """Service for crediting, verifying and redeeming Green Coins"""

    def _apply_detection_effects(
        self,
        storage: Storage,
        user_id: int,
        item_name: str,
        coins: int,
        now: datetime
    ) -> None:
        """Stats, impact, daily habit and achievements for a credited detection"""
        category = get_item_category(item_name)
        before = storage.get_user_stats(user_id)
        if before is None:
            raise NotFoundError("User stats not found")

        increments = {"total_detections": 1, "total_coins_earned": coins}
        if category in MATERIALS:
            increments[f"{category}_items_detected"] = 1
        stats = storage.increment_user_stats(user_id, **increments)
        stats = storage.update_user_stats(
            user_id,
            streak_days=_next_streak(before, now),
            favorite_material=_favorite_material(stats),
            last_detection_at=now
        )

        analytics_service.apply_detection_impact(storage, user_id, category)
        storage.upsert_daily_habit(
            user_id, now.date(),
            detections=1, coins=coins, item_type=category, favorite_time=time_of_day(now)
        )
        achievement_service.check_and_award(storage, user_id, stats)

    def _credit(
        self,
        storage: Storage,
        detection: Detection,
        description: str,
        metadata: Dict[str, Any],
        now: datetime
    ) -> None:
        if detection.coins_earned > 0:
            storage.record_coin_transaction(TransactionCreate(
                user_id=detection.user_id,
                type=TransactionType.earn,
                amount=detection.coins_earned,
                description=description,
                detection_id=detection.id,
                metadata=metadata
            ))
            logger.info(
                f"Credited {detection.coins_earned} coins to user {detection.user_id} "
                f"for detection {detection.id}"
            )
        self._apply_detection_effects(
            storage, detection.user_id, _item_name(detection), detection.coins_earned, now
        )

    def record_detection(
        self,
        storage: Storage,
        user_id: int,
        submission: DetectionSubmission,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Persist a detection and credit it when no verification is needed.

        Returns:
            Dict matching DetectionRecordResponse

        Raises:
            FraudCheckError: a behavioural rule rejected the submission
        """
        now = now or datetime.utcnow()
        user_agent = user_agent or "unknown"
        if storage.get_user_by_id(user_id) is None:
            raise NotFoundError("User not found")

        if not submission.image_hash and submission.image_data:
            submission = submission.model_copy(update={"image_hash": hash_image(submission.image_data)})

        counts = fraud_service.check_detection_allowed(storage, user_id, submission, user_agent, now)

        coins = min(submission.coins_awarded, get_coins_reward(submission.item_name) + MAX_REWARD_JITTER)
        fraud_score = calculate_fraud_score(
            submission.confidence,
            counts["recent_count"],
            not submission.image_hash,
            counts["rapid_count"]
        )
        requires_verification = (
            submission.needs_verification
            or fraud_score >= settings.FRAUD_FORCE_VERIFICATION_SCORE
            or coins >= settings.VERIFICATION_COIN_THRESHOLD
        )

        detection = storage.create_detection(DetectionCreate(
            user_id=user_id,
            image_url=submission.image_data,
            image_hash=submission.image_hash,
            detected_objects=[DetectedObject(
                name=submission.item_name,
                confidence=submission.confidence,
                bin_type=submission.bin_type,
                coins_reward=coins
            )],
            confidence_score=submission.confidence,
            coins_earned=coins,
            is_verified=not requires_verification,
            verification_status=(
                VerificationStatus.pending if requires_verification else VerificationStatus.verified
            ),
            fraud_score=fraud_score,
            ip_address=ip_address or "unknown",
            user_agent=user_agent
        ))
        logger.info(
            f"Detection {detection.id} recorded for user {user_id}: {submission.item_name} "
            f"coins={coins} fraud={fraud_score} verify={requires_verification}"
        )

        if not requires_verification:
            self._credit(
                storage, detection,
                description=f"Detected {submission.item_name}",
                metadata={"confidence": submission.confidence, "fraud_score": fraud_score},
                now=now
            )

        return {
            "success": True,
            "detection": detection,
            "coins_awarded": 0 if requires_verification else coins,
            "fraud_score": fraud_score,
            "requires_verification": requires_verification,
            "verification_reason": (
                get_verification_reason(fraud_score, coins) if requires_verification else None
            ),
            "rate_limit": {
                "remaining": max(0, settings.RATE_LIMIT_MAX - counts["recent_count"] - 1),
                "reset_time": now + timedelta(minutes=settings.RATE_LIMIT_WINDOW_MINUTES),
                "daily_remaining": max(0, settings.DAILY_DETECTION_LIMIT - counts["today_count"] - 1),
            },
            "behavior_warnings": get_behavior_warnings(
                counts["recent_count"], counts["rapid_count"], counts["same_client_count"]
            ),
        }

    def _raise_if_settled(self, detection: Detection) -> None:
        if detection.verification_status == VerificationStatus.verified:
            raise VerificationError("Detection already verified", alreadyVerified=True)

        if detection.verification_status == VerificationStatus.rejected:
            raise VerificationError(
                "Verification was rejected for this detection",
                verificationRejected=True,
                attemptsRemaining=0
            )

    def _check_verifiable(self, storage: Storage, detection: Detection, now: datetime) -> None:
        max_attempts = settings.MAX_VERIFICATION_ATTEMPTS

        self._raise_if_settled(detection)

        if detection.verification_attempts >= max_attempts:
            storage.update_detection(detection.id, verification_status=VerificationStatus.rejected)
            raise VerificationError(
                "Maximum verification attempts exceeded. Contact support.",
                maxAttemptsExceeded=True
            )

        if now - detection.created_at > timedelta(hours=settings.VERIFICATION_WINDOW_HOURS):
            storage.update_detection(detection.id, verification_status=VerificationStatus.rejected)
            logger.info(f"Detection {detection.id} verification window expired")
            raise VerificationError(
                "Verification window has expired for this detection",
                verificationExpired=True
            )

    def _settle(self, storage: Storage, detection_id: int, **fields: Any) -> Detection:
        """Write a verification outcome only while the detection is still pending"""
        settled = storage.settle_detection(detection_id, **fields)
        if settled is None:
            # Another request settled it during the comparison
            current = storage.get_detection(detection_id)
            logger.warning(
                f"Detection {detection_id} was settled concurrently "
                f"({current.verification_status.value})"
            )
            self._raise_if_settled(current)
            raise VerificationError("Detection is no longer pending")
        return settled

    async def verify_detection(
        self,
        storage: Storage,
        detection_id: int,
        request: VerifyRequest,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Proof-in-Bin verification of a pending detection.

        Returns:
            Dict matching VerifyResponse

        Raises:
            NotFoundError: unknown detection
            VerificationError: the attempt was refused or failed
        """
        now = now or datetime.utcnow()
        detection = storage.get_detection(detection_id)
        if detection is None:
            raise NotFoundError("Detection not found")

        self._check_verifiable(storage, detection, now)

        bin_hash = hash_image(request.bin_image)
        if detection.image_hash and bin_hash == detection.image_hash:
            logger.warning(f"Detection {detection_id}: bin photo reuses the original image")
            raise VerificationError(
                "Verification image cannot be the same as original detection image",
                fraudAttempt=True
            )

        comparison = await proof_in_bin_service.compare(
            request.item_image or detection.image_url,
            request.bin_image,
            detection.detected_objects
        )

        attempts = detection.verification_attempts + 1
        if request.item_captured_at and request.bin_captured_at:
            seconds = abs((request.bin_captured_at - request.item_captured_at).total_seconds())
        else:
            seconds = (now - detection.created_at).total_seconds()
        fraud_score = calculate_bin_verification_fraud_score(comparison, attempts, seconds)

        passed = (
            comparison.is_matching_object
            and comparison.match_score >= MIN_MATCH_SCORE
            and fraud_score < settings.VERIFICATION_FRAUD_REJECT_THRESHOLD
        )

        if not passed:
            max_attempts = settings.MAX_VERIFICATION_ATTEMPTS
            status = (
                VerificationStatus.rejected if attempts >= max_attempts else VerificationStatus.pending
            )
            self._settle(
                storage, detection_id,
                verification_attempts=attempts,
                verification_image_hash=bin_hash,
                fraud_score=max(detection.fraud_score, fraud_score),
                verification_status=status
            )
            logger.info(
                f"Detection {detection_id} failed verification "
                f"(attempt {attempts}, score={comparison.match_score}, fraud={fraud_score})"
            )
            raise VerificationError(
                f"Verification failed: {comparison.reasoning}",
                verificationRejected=True,
                attemptsRemaining=max(0, max_attempts - attempts)
            )

        verified = self._settle(
            storage, detection_id,
            verification_attempts=attempts,
            verification_image_hash=bin_hash,
            fraud_score=max(detection.fraud_score, fraud_score),
            verification_status=VerificationStatus.verified,
            is_verified=True,
            verified_at=now
        )
        self._credit(
            storage, verified,
            description=f"Recycling reward (verified): {_item_name(verified)}",
            metadata={
                "verification_passed": True,
                "match_score": comparison.match_score,
                "fraud_score": fraud_score,
            },
            now=now
        )
        logger.info(f"Detection {detection_id} verified; {verified.coins_earned} coins awarded")

        return {
            "success": True,
            "detection": verified,
            "coins_awarded": verified.coins_earned,
            "match_score": comparison.match_score,
            "fraud_score": fraud_score,
            "verification_notes": comparison.reasoning,
        }

    def issue_redemption_qr(
        self,
        storage: Storage,
        user_id: int,
        amount: Optional[int],
        value: Optional[float],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Spend coins for a QR-encoded redemption code.

        Raises:
            ValidationFailedError: missing or non-positive amount/value
            InsufficientCoinsError: balance below amount; nothing changes
        """
        if not amount or not value or amount <= 0 or value <= 0:
            raise ValidationFailedError("Amount and value are required.")

        user = storage.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.green_coins < amount:
            raise InsufficientCoinsError()

        now = now or datetime.utcnow()
        currency = settings.QR_CURRENCY
        code = qr_service.generate_redemption_code(now)
        qr_data = qr_service.create_qr_payload(code, value, currency, now)
        qr_image = qr_service.generate_qr_image(qr_data)

        transaction = storage.record_coin_transaction(TransactionCreate(
            user_id=user_id,
            type=TransactionType.spend,
            amount=amount,
            description=f"QR code redeemed for {currency} {value:g}",
            qr_code=code,
            metadata={"value": value, "currency": currency}
        ))
        storage.increment_user_stats(user_id, total_coins_spent=amount)
        logger.info(f"Issued redemption code {code} to user {user_id} for {amount} coins")

        return {
            "success": True,
            "qr_code_image": qr_image,
            "qr_data": qr_data,
            "redemption_code": code,
            "value": value,
            "currency": currency,
            "transaction": transaction,
        }


# Singleton instance
rewards_service = RewardsService()
