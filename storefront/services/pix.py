"""
PIX artifacts for a pending payment: transaction key, copy-and-paste code and
QR rendering. The code is a simplified base64 JSON payload, not the EMV BR Code.
"""

import base64
import io
import json
import logging
import uuid
from decimal import Decimal
from typing import Optional

import qrcode
import qrcode.constants

from storefront.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

PIX_KEY_PREFIX = "DISCBOT"


def generate_pix_key() -> str:
    """DISCBOT + 16 hex chars."""
    return f"{PIX_KEY_PREFIX}{uuid.uuid4().hex[:16]}"


def generate_pix_code(
    payment_id: str,
    amount: Decimal,
    product_name: str,
    settings: Optional[Settings] = None,
) -> str:
    settings = settings or get_settings()
    payload = {
        "keyType": settings.PIX_KEY_TYPE,
        "keyValue": settings.PIX_KEY_VALUE,
        "name": settings.PIX_MERCHANT_NAME,
        "city": settings.PIX_MERCHANT_CITY,
        "txId": payment_id[:25],
        "amount": f"{Decimal(str(amount)):.2f}",
        "description": f"Purchase: {product_name[:30]}",
    }
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_pix_code(code: str) -> dict:
    return json.loads(base64.b64decode(code))


def render_qr_code(payload: str, settings: Optional[Settings] = None) -> str:
    """PNG data URL for `payload`, or the placeholder URL when rendering fails."""
    settings = settings or get_settings()
    try:
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=1,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"
    except Exception as e:
        logger.error(f"QR code rendering failed: {e}")
        return settings.QR_PLACEHOLDER_URL
