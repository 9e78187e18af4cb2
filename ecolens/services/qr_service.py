"""
QR Service - redemption codes and their QR images
"""
import base64
import io
import json
import logging
import secrets
import string
from datetime import datetime
from typing import Optional

import qrcode

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_lowercase
CODE_PREFIX = "ECOLENS"


class QRService:

    def generate_redemption_code(self, now: Optional[datetime] = None) -> str:
        """ECOLENS-<epoch ms>-<9 base36 chars>"""
        now = now or datetime.utcnow()
        epoch_ms = int((now - datetime(1970, 1, 1)).total_seconds() * 1000)
        suffix = "".join(secrets.choice(BASE36) for _ in range(9))
        return f"{CODE_PREFIX}-{epoch_ms}-{suffix}"

    def create_qr_payload(self, code: str, value: float, currency: str, generated: datetime) -> str:
        """Compact JSON embedded in the QR image"""
        payload = {
            "code": code,
            "value": value,
            "currency": currency,
            "generated": generated.isoformat() + "Z",
        }
        return json.dumps(payload, separators=(',', ':'))

    def generate_qr_image(self, data: str) -> str:
        """Render data as a PNG QR code and return it as a data URL"""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
        return f"data:image/png;base64,{encoded}"


qr_service = QRService()
