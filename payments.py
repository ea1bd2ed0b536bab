"""
Stripe payment intents.
"""
import os

import stripe

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")


class PaymentError(Exception):
    pass


class PaymentGateway:
    def __init__(self, api_key: str, currency: str = "usd"):
        if not api_key:
            raise PaymentError("Missing required Stripe secret: STRIPE_SECRET_KEY")
        self.api_key = api_key
        self.currency = currency

    def create_intent(self, amount_cents: int, metadata: dict) -> dict:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=self.currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            raise PaymentError(str(e)) from e
        return {"id": intent.id, "client_secret": intent.client_secret}

    def retrieve_intent(self, intent_id: str) -> dict:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise PaymentError(str(e)) from e
        return {
            "status": intent.status,
            "amount": intent.amount,
            "metadata": dict(intent.metadata or {}),
        }
