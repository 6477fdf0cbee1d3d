import re
import io
import base64
import logging
from typing import Optional

import qrcode

from ..config.settings import settings

logger = logging.getLogger(__name__)

# EMVCo merchant-presented QR tags used by PromptPay
PAYLOAD_FORMAT_INDICATOR = "00"
POINT_OF_INITIATION = "01"
MERCHANT_ACCOUNT_INFO = "29"
COUNTRY_CODE = "58"
TRANSACTION_CURRENCY = "53"
TRANSACTION_AMOUNT = "54"
CRC = "63"

PROMPTPAY_AID = "A000000677010111"
STATIC_QR = "11"
DYNAMIC_QR = "12"
THB_NUMERIC = "764"

TARGET_PHONE = "01"
TARGET_TAX_ID = "02"
TARGET_EWALLET = "03"


def crc16_ccitt(data: str) -> str:
    """CRC-16/CCITT-FALSE as four upper-case hex digits"""
    crc = 0xFFFF
    for byte in data.encode("ascii"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


class PromptPayService:
    """Builds PromptPay payment strings and their QR images"""

    def __init__(self, receiver_id: Optional[str] = None):
        self.receiver_id = receiver_id or settings.PROMPTPAY_ID

    @staticmethod
    def _tlv(tag: str, value: str) -> str:
        return f"{tag}{len(value):02d}{value}"

    def _format_target(self) -> str:
        """Sub-tag and value identifying the receiver account"""
        digits = re.sub(r'\D', '', self.receiver_id)
        if len(digits) >= 15:
            return self._tlv(TARGET_EWALLET, digits)
        if len(digits) == 13:
            return self._tlv(TARGET_TAX_ID, digits)
        if not digits:
            raise ValueError("PromptPay receiver id is not configured")

        # Mobile numbers go out as 0066 + number without the leading zero
        phone = "66" + digits[1:] if digits.startswith("0") else digits
        return self._tlv(TARGET_PHONE, phone.zfill(13))

    def build_payment_string(self, amount: Optional[float] = None) -> str:
        """Build the EMVCo payload; a positive amount makes it a one-time QR"""
        parts = [
            self._tlv(PAYLOAD_FORMAT_INDICATOR, "01"),
            self._tlv(POINT_OF_INITIATION, DYNAMIC_QR if amount else STATIC_QR),
            self._tlv(MERCHANT_ACCOUNT_INFO, self._tlv("00", PROMPTPAY_AID) + self._format_target()),
            self._tlv(COUNTRY_CODE, "TH"),
            self._tlv(TRANSACTION_CURRENCY, THB_NUMERIC),
        ]
        if amount:
            parts.append(self._tlv(TRANSACTION_AMOUNT, f"{amount:.2f}"))

        payload = "".join(parts) + CRC + "04"
        return payload + crc16_ccitt(payload)

    @staticmethod
    def verify_payment_string(payment_string: str) -> bool:
        """Check the trailing CRC of a payment string"""
        if len(payment_string) < 8 or payment_string[-8:-4] != CRC + "04":
            return False
        return crc16_ccitt(payment_string[:-4]) == payment_string[-4:]

    def generate_qr_code(self, payment_string: str) -> str:
        """Generate base64 encoded QR code"""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(payment_string)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        # Convert to base64
        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
