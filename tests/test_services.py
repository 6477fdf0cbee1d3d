import re
import pytest
import requests
from unittest.mock import MagicMock
import sys
import os

# Add project root to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from checkout_payments.models.payment_model import PaymentMethod, PaymentRequest, PaymentResult, PaymentStatus
from checkout_payments.services.errors import BusinessError, TransportError
from checkout_payments.services.promptpay_service import PromptPayService, crc16_ccitt
from checkout_payments.services.settlement_client import SettlementClient
from checkout_payments.utils.helpers import (
    format_card_number,
    format_expiry_date,
    generate_client_reference,
    mask_card_number,
    round_amount,
    sanitize_input,
)

def mock_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    return response

@pytest.fixture
def session():
    return MagicMock()

# Helpers

def test_sanitize_input():
    """Test input sanitization"""
    assert sanitize_input("  John Doe ") == "John Doe"
    assert sanitize_input("John <script>") == "John script"
    assert len(sanitize_input("a" * 600)) == 500
    assert sanitize_input("") == ""

def test_format_card_number():
    assert format_card_number("4242424242424242") == "4242 4242 4242 4242"
    assert format_card_number("42424") == "4242 4"
    assert format_card_number("") == ""

def test_format_expiry_date():
    """Test the separator goes in after the second digit"""
    assert format_expiry_date("1") == "1"
    assert format_expiry_date("12") == "12/"
    assert format_expiry_date("1228") == "12/28"
    assert format_expiry_date("12/2899") == "12/28"

def test_round_amount_half_up():
    assert round_amount(899.99) == 900
    assert round_amount(2.5) == 3
    assert round_amount(100.49) == 100

def test_generate_client_reference():
    reference = generate_client_reference()
    assert re.match(r'^[A-Z0-9]{8}$', reference)

def test_mask_card_number():
    assert mask_card_number("4242 4242 4242 1234") == "**** 1234"
    assert mask_card_number("12") == "**"

# PromptPay payload

def test_crc16_ccitt_check_value():
    assert crc16_ccitt("123456789") == "29B1"

def test_static_payment_string_for_phone():
    payment_string = PromptPayService(receiver_id="081-234-5678").build_payment_string()

    assert payment_string.startswith(
        "000201010211"
        "29370016A000000677010111011300668123456785802TH5303764"
        "6304"
    )
    assert len(payment_string) == len("000201010211") + 41 + 6 + 7 + 8
    assert PromptPayService.verify_payment_string(payment_string)

def test_dynamic_payment_string_carries_amount():
    payment_string = PromptPayService(receiver_id="0812345678").build_payment_string(899.5)

    assert payment_string.startswith("000201010212")
    assert "5406899.50" in payment_string
    assert PromptPayService.verify_payment_string(payment_string)

def test_payment_string_for_tax_id():
    payment_string = PromptPayService(receiver_id="1234567890123").build_payment_string()
    assert "02131234567890123" in payment_string

def test_tampered_payment_string_fails_crc():
    payment_string = PromptPayService(receiver_id="0812345678").build_payment_string(500)
    tampered = payment_string.replace("500.00", "100.00")

    assert not PromptPayService.verify_payment_string(tampered)
    assert not PromptPayService.verify_payment_string("")

def test_generate_qr_code_image():
    service = PromptPayService(receiver_id="0812345678")
    image = service.generate_qr_code(service.build_payment_string(500))
    assert image.startswith("data:image/png;base64,")

def test_missing_receiver_id():
    with pytest.raises(ValueError):
        PromptPayService(receiver_id="--").build_payment_string()

# Settlement client

def test_create_payment_sends_idempotency_key(session):
    session.request.return_value = mock_response(200, {"success": True, "data": {"transactionId": "ch_1"}})
    client = SettlementClient(base_url="http://shop.test/api/", auth_token_provider=lambda: "abc", session=session)

    data = client.create_payment(PaymentRequest(
        method=PaymentMethod.STRIPE,
        amount=900,
        payload={"paymentMethodId": "tok_x"},
        idempotency_key="key-1"
    ))

    assert data == {"transactionId": "ch_1"}
    args, kwargs = session.request.call_args
    assert args == ("POST", "http://shop.test/api/payments/stripe")
    assert kwargs["json"] == {"paymentMethodId": "tok_x", "amount": 900}
    assert kwargs["headers"]["Idempotency-Key"] == "key-1"
    assert kwargs["headers"]["Authorization"] == "Bearer abc"

def test_no_authorization_header_without_token(session):
    session.request.return_value = mock_response(200, {"success": True, "data": {}})
    client = SettlementClient(base_url="http://shop.test/api", auth_token_provider=lambda: None, session=session)

    client.get_payment_status("order_1")

    args, kwargs = session.request.call_args
    assert args == ("GET", "http://shop.test/api/payments/order_1/status")
    assert "Authorization" not in kwargs["headers"]

def test_unsuccessful_body_is_business_error(session):
    """Test a 200 with success false is still a failure"""
    session.request.return_value = mock_response(200, {"success": False, "message": "Declined"})
    client = SettlementClient(base_url="http://shop.test/api", session=session)

    with pytest.raises(BusinessError) as exc_info:
        client.get_payment_status("order_1")

    assert exc_info.value.message == "Declined"
    assert exc_info.value.status_code == 200

def test_http_error_status_is_business_error(session):
    session.request.return_value = mock_response(403, {"success": False, "message": "Unauthorized"})
    client = SettlementClient(base_url="http://shop.test/api", session=session)

    with pytest.raises(BusinessError) as exc_info:
        client.get_payment_status("order_1")

    assert exc_info.value.status_code == 403

def test_connection_failure_is_transport_error(session):
    session.request.side_effect = requests.exceptions.ConnectionError("refused")
    client = SettlementClient(base_url="http://shop.test/api", session=session)

    with pytest.raises(TransportError):
        client.get_payment_status("order_1")

def test_confirm_payment_body(session):
    session.request.return_value = mock_response(200, {"success": True, "data": {"order_id": "order_1"}})
    client = SettlementClient(base_url="http://shop.test/api", timeout=3, session=session)
    result = PaymentResult(
        method=PaymentMethod.PROMPTPAY,
        transaction_id="PP_1",
        status=PaymentStatus.PENDING_VERIFICATION,
        reference="ABC"
    )

    client.confirm_payment("order_1", PaymentMethod.PROMPTPAY, result, 500)

    args, kwargs = session.request.call_args
    assert args == ("POST", "http://shop.test/api/payments/confirm")
    assert kwargs["timeout"] == 3
    assert kwargs["json"] == {
        "orderId": "order_1",
        "paymentMethod": "promptpay",
        "paymentDetails": {
            "method": "promptpay",
            "transactionId": "PP_1",
            "status": "pending-verification",
            "reference": "ABC"
        },
        "amount": 500
    }
