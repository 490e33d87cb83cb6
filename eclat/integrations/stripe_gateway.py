from __future__ import annotations

import stripe

from eclat.core.config import Settings
from eclat.models.order import Order


class PaymentError(Exception):
    pass


class StripeGateway:
    """Thin wrapper over Stripe Checkout; one instance per app (see eclat.main)."""

    def __init__(self, settings: Settings):
        self.secret_key = settings.STRIPE_SECRET_KEY
        self.webhook_secret = settings.STRIPE_WEBHOOK_SECRET
        self.site_url = settings.PUBLIC_SITE_URL.rstrip("/")

    def create_checkout_session(self, order: Order) -> stripe.checkout.Session:
        if not self.secret_key:
            raise PaymentError("Stripe is not configured")

        try:
            return stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": order.currency,
                            "unit_amount": int(order.total_amount),
                            "product_data": {"name": f"ÉCLAT Beauty order #{order.order_number}"},
                        },
                        "quantity": 1,
                    }
                ],
                customer_email=order.email,
                metadata={"orderId": str(order.id)},
                success_url=f"{self.site_url}/checkout/success?order={order.id}",
                cancel_url=f"{self.site_url}/checkout?cancelled={order.id}",
            )
        except stripe.StripeError as e:
            raise PaymentError(f"Stripe error: {e.user_message or str(e)}") from e

    def construct_event(self, payload: bytes, signature: str) -> stripe.Event:
        # Raises ValueError (bad payload) or stripe.SignatureVerificationError
        if not self.webhook_secret:
            raise PaymentError("Stripe webhook secret is not configured")
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
