"""
API routers package
"""
from ecolens.api import (
    system,
    detect,
    users,
    detections,
    transactions,
    analytics,
    admin
)

__all__ = [
    "system",
    "detect",
    "users",
    "detections",
    "transactions",
    "analytics",
    "admin"
]
