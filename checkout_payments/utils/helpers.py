import re
import hmac
import hashlib
import secrets
import string
import time
import logging
from decimal import Decimal, ROUND_HALF_UP

logger = logging.getLogger(__name__)

CARD_NUMBER_DIGITS = 16
EXPIRY_DIGITS = 4
CVV_MAX_DIGITS = 4

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits

def sanitize_input(text: str) -> str:
    """
    Sanitize user input to prevent injection attacks
    and remove potentially harmful characters.
    """
    if not text:
        return ""

    # Remove potentially harmful characters
    sanitized = re.sub(r'[<>{}[\]\\]', '', text.strip())
    # Limit length to prevent abuse
    return sanitized[:500]

def strip_card_separators(card_number: str) -> str:
    """Remove the spaces and hyphens a user or the mask put between digit groups"""
    return re.sub(r'[\s-]', '', card_number or "")

def format_card_number(value: str) -> str:
    """Mask card number input as groups of four digits, at most 16 digits"""
    digits = re.sub(r'\D', '', value or "")[:CARD_NUMBER_DIGITS]
    return " ".join(digits[i:i + 4] for i in range(0, len(digits), 4))

def format_expiry_date(value: str) -> str:
    """Mask expiry input as MM/YY, inserting the separator after the month"""
    digits = re.sub(r'\D', '', value or "")[:EXPIRY_DIGITS]
    if len(digits) >= 2:
        return f"{digits[:2]}/{digits[2:]}"
    return digits

def format_cvv(value: str) -> str:
    return re.sub(r'\D', '', value or "")[:CVV_MAX_DIGITS]

def mask_card_number(card_number: str) -> str:
    """Card number safe for logs: only the last four digits survive"""
    digits = strip_card_separators(card_number)
    if len(digits) <= 4:
        return "*" * len(digits)
    return f"**** {digits[-4:]}"

def round_amount(amount: float) -> int:
    """Round to the nearest whole currency unit, halves away from zero"""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def generate_client_reference(length: int = 8) -> str:
    """Random upper-case reference for a single confirmation attempt"""
    return "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(length))

def generate_idempotency_key() -> str:
    return secrets.token_hex(16)

def generate_card_token(card_digits: str, expiry_date: str) -> str:
    """
    Derive a single-use opaque card token.

    The card digits and expiry are run through HMAC-SHA256 keyed with a fresh
    random nonce that is discarded immediately, so the token cannot be mapped
    back to the card and two tokens for the same card never match.
    """
    nonce = secrets.token_bytes(32)
    digest = hmac.new(nonce, f"{card_digits}|{expiry_date}".encode(), hashlib.sha256).hexdigest()
    return f"tok_{digest[:24]}_{int(time.time() * 1000)}"

def generate_transaction_id(prefix: str) -> str:
    """Generate a sandbox transaction ID"""
    return f"{prefix}_{secrets.token_hex(5)}"
