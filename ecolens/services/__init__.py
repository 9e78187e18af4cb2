"""
Services package - Business logic layer
"""
from ecolens.services.detection_service import detection_service
from ecolens.services.proof_in_bin_service import proof_in_bin_service
from ecolens.services.fraud_service import fraud_service
from ecolens.services.qr_service import qr_service
from ecolens.services.achievement_service import achievement_service
from ecolens.services.analytics_service import analytics_service
from ecolens.services.rewards_service import rewards_service
from ecolens.services.user_service import user_service

__all__ = [
    "detection_service",
    "proof_in_bin_service",
    "fraud_service",
    "qr_service",
    "achievement_service",
    "analytics_service",
    "rewards_service",
    "user_service",
]
