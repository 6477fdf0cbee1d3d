import pytest
from unittest.mock import MagicMock
import sys
import os

# Add project root to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from checkout_payments.models.payment_model import PaymentMethod, PaymentStatus
from checkout_payments.services.checkout_orchestrator import CheckoutOrchestrator, OrderPaymentState
from checkout_payments.services.errors import BusinessError
from checkout_payments.widgets.card_widget import CardPaymentWidget
from checkout_payments.widgets.paypal_widget import PayPalPaymentWidget
from checkout_payments.widgets.promptpay_widget import PromptPayWidget

@pytest.fixture
def client():
    """Mock settlement client"""
    mock = MagicMock()
    mock.create_payment.return_value = {"transactionId": "tx_1", "reference": "REF12345"}
    mock.confirm_payment.return_value = {"order_id": "order_1", "status": "processing"}
    return mock

@pytest.fixture
def checkout(client):
    return CheckoutOrchestrator(client, "order_1", 899.99, on_complete=MagicMock(), on_error=MagicMock())

def fill_card(widget):
    widget.update_field("card_name", "John Doe")
    widget.update_field("card_number", "4242424242424242")
    widget.update_field("expiry_date", "1228")
    widget.update_field("cvv", "123")

def test_default_method_is_card(checkout):
    assert checkout.selected_method == PaymentMethod.STRIPE
    assert isinstance(checkout.widget, CardPaymentWidget)
    assert checkout.render().method == "stripe"

def test_card_payment_marks_order_paid(checkout, client):
    fill_card(checkout.widget)

    result = checkout.widget.pay()

    client.confirm_payment.assert_called_once_with("order_1", PaymentMethod.STRIPE, result, 899.99)
    assert checkout.order_state == OrderPaymentState.PAID
    assert checkout.fulfillment_allowed
    checkout.on_complete.assert_called_once_with({"order_id": "order_1", "status": "processing"})

def test_promptpay_payment_awaits_verification(checkout, client):
    """Test a pending-verification result never releases the order"""
    widget = checkout.select(PaymentMethod.PROMPTPAY)
    assert isinstance(widget, PromptPayWidget)

    widget.generate_qr()
    result = widget.confirm()

    assert result.status == PaymentStatus.PENDING_VERIFICATION
    assert checkout.order_state == OrderPaymentState.AWAITING_VERIFICATION
    assert not checkout.fulfillment_allowed

def test_refresh_status_completes_pending_payment(checkout, client):
    widget = checkout.select(PaymentMethod.PROMPTPAY)
    widget.generate_qr()
    widget.confirm()

    client.get_payment_status.return_value = {"paymentStatus": "pending"}
    assert checkout.refresh_status() == OrderPaymentState.AWAITING_VERIFICATION

    client.get_payment_status.return_value = {"paymentStatus": "completed"}
    assert checkout.refresh_status() == OrderPaymentState.PAID

def test_processing_covers_widget_submission(checkout, client):
    """Test the composed flag is set while the widget's request is pending"""
    widget = checkout.widget

    def pending_payment(payment_request):
        assert checkout.processing
        assert checkout.render().actions[0].disabled
        # No switching methods mid-payment
        assert checkout.select(PaymentMethod.PROMPTPAY) is widget
        return {"transactionId": "tx_1"}

    client.create_payment.side_effect = pending_payment
    fill_card(widget)
    widget.pay()

    assert not checkout.processing
    assert checkout.selected_method == PaymentMethod.STRIPE

def test_widget_busy_while_confirming(checkout, client):
    widget = checkout.widget

    def pending_confirmation(*args):
        assert checkout.processing
        assert widget.busy
        return {"order_id": "order_1"}

    client.confirm_payment.side_effect = pending_confirmation
    fill_card(widget)
    widget.pay()

    assert not checkout.processing

def test_confirmation_failure_reports_error(checkout, client):
    client.confirm_payment.side_effect = BusinessError("Order not found", status_code=404)
    fill_card(checkout.widget)

    checkout.widget.pay()

    assert checkout.error == "Order not found"
    checkout.on_error.assert_called_once_with("Order not found")
    checkout.on_complete.assert_not_called()
    assert checkout.order_state == OrderPaymentState.AWAITING_PAYMENT
    assert not checkout.processing

def test_widget_error_reaches_checkout(checkout, client):
    client.create_payment.side_effect = BusinessError("Card declined", status_code=402)
    fill_card(checkout.widget)

    checkout.widget.pay()

    assert checkout.error == "Card declined"
    client.confirm_payment.assert_not_called()

def test_switching_method_discards_local_state(checkout):
    fill_card(checkout.widget)
    first = checkout.widget

    checkout.select(PaymentMethod.PROMPTPAY)
    card = checkout.select(PaymentMethod.STRIPE)

    assert card is not first
    assert card.form.card_number == ""

def test_bank_transfer_is_pending_verification(checkout, client):
    assert checkout.select(PaymentMethod.BANK_TRANSFER) is None
    assert checkout.render() is None

    order = checkout.confirm_bank_transfer()

    assert order == {"order_id": "order_1", "status": "processing"}
    args = client.confirm_payment.call_args[0]
    assert args[1] == PaymentMethod.BANK_TRANSFER
    assert args[2].status == PaymentStatus.PENDING_VERIFICATION
    assert args[2].transaction_id == f"BT_{args[2].reference}"
    assert checkout.order_state == OrderPaymentState.AWAITING_VERIFICATION

def test_bank_transfer_requires_selection(checkout, client):
    assert checkout.confirm_bank_transfer() is None
    client.confirm_payment.assert_not_called()

def test_summary(checkout):
    summary = checkout.summary()

    assert summary["order_id"] == "order_1"
    assert summary["display_amount"].endswith("900")
    assert [method["id"] for method in summary["methods"]] == ["stripe", "paypal", "promptpay", "bank-transfer"]
    assert summary["order_state"] == "awaiting_payment"

def test_retry_confirmation_does_not_charge_again(checkout, client):
    """Test a failed confirmation is retried with the same payment"""
    client.confirm_payment.side_effect = [
        BusinessError("Payment confirmation failed", status_code=400),
        {"order_id": "order_1", "status": "processing"},
    ]
    fill_card(checkout.widget)
    result = checkout.widget.pay()
    assert checkout.unconfirmed_result is result
    assert checkout.order_state == OrderPaymentState.AWAITING_PAYMENT

    order = checkout.retry_confirmation()

    assert order == {"order_id": "order_1", "status": "processing"}
    assert client.create_payment.call_count == 1
    assert client.confirm_payment.call_args_list[1][0][2] is result
    assert checkout.order_state == OrderPaymentState.PAID
    assert checkout.unconfirmed_result is None
    assert checkout.error is None

def test_unrecorded_payment_blocks_method_switch(checkout, client):
    client.confirm_payment.side_effect = BusinessError("Payment confirmation failed", status_code=400)
    fill_card(checkout.widget)
    checkout.widget.pay()
    card = checkout.widget

    assert checkout.select(PaymentMethod.PROMPTPAY) is card
    assert checkout.selected_method == PaymentMethod.STRIPE
    assert card.pay() is None
    assert client.create_payment.call_count == 1

def test_retry_confirmation_without_failure(checkout, client):
    assert checkout.retry_confirmation() is None
    client.confirm_payment.assert_not_called()

def test_paypal_payment_marks_order_paid(checkout, client):
    widget = checkout.select(PaymentMethod.PAYPAL)
    assert isinstance(widget, PayPalPaymentWidget)

    result = widget.approve("5O190127TN364715T", "FSMVU44LF3YUS")

    assert result.status == PaymentStatus.COMPLETED
    assert checkout.order_state == OrderPaymentState.PAID
