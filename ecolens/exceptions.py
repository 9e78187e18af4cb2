"""
Domain errors raised by services and rendered as JSON by the API layer.

Every error carries a human-readable message, an HTTP status code and an
optional set of flags (``suspiciousPattern``, ``dailyLimitExceeded``, ...)
that clients turn into advice text.
"""
from typing import Any, Dict


class EcoLensError(Exception):
    """Base error: rendered as ``{"error": message, **flags}``"""

    status_code = 400

    def __init__(self, message: str, status_code: int = None, **flags: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.flags = flags

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.flags}


class NotFoundError(EcoLensError):
    status_code = 404


class ValidationFailedError(EcoLensError):
    status_code = 400


class InsufficientCoinsError(EcoLensError):
    status_code = 400

    def __init__(self, message: str = "Insufficient coins", **flags: Any):
        super().__init__(message, **flags)


class FraudCheckError(EcoLensError):
    """A business rule tripped by anti-fraud heuristics"""
    status_code = 400


class VerificationError(EcoLensError):
    """A Proof-in-Bin verification attempt that cannot be accepted"""
    status_code = 400
