# siteapi/integrations/payments.py
import logging
import math
from typing import Any, Dict, Optional

import stripe

logger = logging.getLogger(__name__)


class PaymentsDisabledError(RuntimeError):
    """Raised when Stripe keys are not configured."""

    def __init__(self, operation: Optional[str] = None):
        message = "Payments are not configured"
        if operation:
            message = f"Payment operation '{operation}' unavailable: Stripe is not configured"
        super().__init__(message)
        self.operation = operation


class PaymentError(Exception):
    pass


class InvalidAmount(ValueError):
    pass


class InvalidWebhook(ValueError):
    pass


class StripeGateway:
    """Donation checkout and webhook verification through the Stripe SDK."""

    MIN_AMOUNT = 1
    MAX_AMOUNT = 10000
    CURRENCY = "usd"

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str] = None,
        product_name: str = "Donation",
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.product_name = product_name

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    @classmethod
    def validate_amount(cls, amount: Any) -> float:
        try:
            value = float(amount)
        except (TypeError, ValueError):
            raise InvalidAmount("Invalid amount") from None
        if not math.isfinite(value) or value < cls.MIN_AMOUNT or value > cls.MAX_AMOUNT:
            raise InvalidAmount(f"Amount must be between ${cls.MIN_AMOUNT} and ${cls.MAX_AMOUNT}")
        return value

    def create_checkout_session(self, amount: Any, success_url: str, cancel_url: str) -> Dict[str, Any]:
        if not self.configured:
            raise PaymentsDisabledError("create_checkout_session")
        value = self.validate_amount(amount)

        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": self.CURRENCY,
                        "product_data": {
                            "name": self.product_name,
                            "description": f"${value:.2f} donation",
                        },
                        "unit_amount": int(round(value * 100)),
                    },
                    "quantity": 1,
                }],
                mode="payment",
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout failed: %s", e)
            raise PaymentError("Failed to create checkout session") from e

        logger.info("Checkout session created", extra={"session_id": session.id, "amount": value})
        return {"sessionId": session.id, "url": session.url}

    def construct_event(self, payload: bytes, signature: Optional[str]):
        if not self.webhook_secret:
            raise PaymentsDisabledError("construct_event")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise InvalidWebhook(f"Webhook signature verification failed: {e}") from e
