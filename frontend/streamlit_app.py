import streamlit as st
import requests
import os

from checkout_payments.models.payment_model import PaymentMethod
from checkout_payments.models.widget_model import WidgetView
from checkout_payments.services.checkout_orchestrator import CheckoutOrchestrator, PAYMENT_METHODS
from checkout_payments.services.settlement_client import SettlementClient
from checkout_payments.config.settings import settings

# Configure page
st.set_page_config(
    page_title="Checkout",
    page_icon="💳",
    layout="centered"
)

# Get backend URL from environment variable with default
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:5000")

# API configuration
API_BASE_URL = BACKEND_URL + "/api"
API_HEALTH_URL = BACKEND_URL

def test_api_connection():
    """Test connection to the backend API"""
    try:
        response = requests.get(f"{API_HEALTH_URL}/health", timeout=5)
        return response.status_code == 200
    except requests.exceptions.RequestException:
        return False

def get_checkout(order_id: str, total: float) -> CheckoutOrchestrator:
    """One orchestrator per checkout attempt, kept across reruns"""
    checkout = st.session_state.get("checkout")
    if checkout is None or checkout.order_id != order_id or checkout.total != total:
        client = SettlementClient(
            base_url=API_BASE_URL,
            auth_token_provider=lambda: st.session_state.get("token")
        )
        checkout = CheckoutOrchestrator(client, order_id, total)
        st.session_state.checkout = checkout
    return checkout

def _field_key(method: str, name: str) -> str:
    return f"{method}_{name}"

def _on_field_change(checkout: CheckoutOrchestrator, name: str, key: str):
    widget = checkout.widget
    if widget is None:
        return
    widget.update_field(name, st.session_state[key])
    # Show the masked value back in the input
    st.session_state[key] = getattr(widget.form, name)

def _clear_fields(view: WidgetView):
    for field in view.fields:
        st.session_state.pop(_field_key(view.method, field.name), None)

def run_action(checkout: CheckoutOrchestrator, view: WidgetView, action: str):
    widget = checkout.widget
    if action == "pay":
        if widget.pay():
            _clear_fields(view)
    elif action == "generate_qr":
        widget.generate_qr()
    elif action == "confirm":
        widget.confirm()
    elif action == "back":
        widget.back()

def display_widget(checkout: CheckoutOrchestrator):
    """Display the active payment widget from its view model"""
    view = checkout.render()
    if view is None:
        return

    st.subheader(view.title)

    if view.error:
        st.error(view.error)
    if view.message:
        st.success(view.message)

    for field in view.fields:
        key = _field_key(view.method, field.name)
        if key not in st.session_state:
            st.session_state[key] = field.value
        st.text_input(
            field.label,
            key=key,
            placeholder=field.placeholder,
            max_chars=field.max_length,
            disabled=field.disabled,
            on_change=_on_field_change,
            args=(checkout, field.name, key)
        )

    if view.qr_image:
        st.image(view.qr_image, caption="Scan this QR code with your banking app", width=256)
        if view.expired:
            st.warning("This QR code has expired. Generate a new one if your bank rejects it.")
        elif view.expires_at:
            st.caption(f"Valid until {view.expires_at:%H:%M:%S}")

    for note in view.notes:
        st.write(f"• {note}")

    for action in view.actions:
        if st.button(action.label, key=f"{view.method}_{action.name}", disabled=action.disabled,
                     type="primary" if action.name in ("pay", "generate_qr", "confirm") else "secondary"):
            run_action(checkout, view, action.name)
            st.rerun()

def display_bank_transfer(checkout: CheckoutOrchestrator):
    details = settings.get_bank_details()
    st.subheader("Bank Transfer Details")
    st.write(f"**Bank:** {details['bank']}")
    st.write(f"**Account Name:** {details['account_name']}")
    st.write(f"**Account Number:** {details['account_number']}")
    st.write(f"**SWIFT Code:** {details['swift_code']}")
    st.write(f"**Amount to Transfer:** {settings.CURRENCY_SYMBOL}{checkout.total:.0f}")
    st.caption("Please transfer the exact amount and your order will be confirmed upon receipt.")

    if st.button("I have transferred the amount", type="primary", disabled=checkout.processing):
        checkout.confirm_bank_transfer()
        st.rerun()

def main():
    """Main Streamlit application"""
    st.title("💳 Checkout")

    # Check API connection
    if not test_api_connection():
        st.error("⚠️ Payment API is not available. Please make sure the backend server is running.")
        st.info("Run the backend with: `uvicorn checkout_payments.app:app --port 5000`")
        return

    with st.sidebar:
        st.header("Order")
        st.session_state.token = st.text_input("API token", value=st.session_state.get("token", "demo-token"),
                                               type="password")
        order_id = st.text_input("Order ID", value=settings.DEMO_ORDER_ID)
        total = st.number_input("Total", min_value=1.0, value=settings.DEMO_ORDER_TOTAL, step=1.0)

    checkout = get_checkout(order_id, float(total))
    summary = checkout.summary()

    labels = {method["id"]: f"{method['name']} - {method['description']}" for method in PAYMENT_METHODS}
    selected = st.radio(
        "Select Payment Method",
        options=list(labels),
        format_func=labels.get,
        index=list(labels).index(summary["selected_method"]),
        disabled=checkout.processing or checkout.unconfirmed_result is not None
    )
    previous = checkout.widget
    widget = checkout.select(PaymentMethod(selected))
    if previous is not None and widget is not previous:
        # Inputs of the discarded widget must not reappear in the new one
        _clear_fields(previous.render(checkout.total))

    if checkout.error:
        st.error(f"Error: {checkout.error}")
    if checkout.unconfirmed_result is not None:
        st.warning("Your payment went through but the order has not been updated yet.")
        if st.button("Retry recording payment", type="primary", disabled=checkout.processing):
            checkout.retry_confirmation()
            st.rerun()

    st.divider()
    if checkout.selected_method == PaymentMethod.BANK_TRANSFER:
        display_bank_transfer(checkout)
    else:
        display_widget(checkout)

    st.divider()
    st.subheader("Payment Summary")
    st.write(f"**Amount to Pay:** {summary['display_amount']}")
    st.write(f"**Order status:** {checkout.order_state.value.replace('_', ' ')}")

    if checkout.fulfillment_allowed:
        st.success("Payment received - your order is being processed.")
    elif checkout.last_result is not None:
        st.info("We will process your order once the payment is verified.")
        if st.button("Check payment status"):
            checkout.refresh_status()
            st.rerun()

    st.caption("🔒 Your payment information is never stored. Card details are replaced by a one-time token.")

if __name__ == "__main__":
    main()
