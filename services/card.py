import json
import logging

import stripe

from services.errors import PaymentProviderError, ValidationError

logger = logging.getLogger("seatclean.card")


class CardPaymentError(PaymentProviderError):
    pass


class WebhookSignatureError(Exception):
    pass


class CardGateway:
    """Stripe payment intents and webhook verification."""

    def __init__(self, secret_key, webhook_secret=None, currency="kes", min_amount=50):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.min_amount = min_amount

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            currency=config.get("CARD_CURRENCY", "kes"),
            min_amount=config.get("CARD_MIN_AMOUNT", 50),
        )

    def create_payment_intent(self, amount_minor, currency=None, customer_email=None,
                              customer_name=None, metadata=None) -> dict:
        try:
            amount = int(amount_minor)
        except (TypeError, ValueError):
            raise ValidationError("Invalid amount", field="amount")
        if amount < self.min_amount:
            raise ValidationError("Invalid amount", field="amount")

        if not self.secret_key:
            raise CardPaymentError("Stripe secret key not configured")

        meta = {"customer_name": customer_name or ""}
        meta.update(metadata or {})

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=amount,  # smallest currency unit
                currency=(currency or self.currency).lower(),
                receipt_email=customer_email or None,
                metadata=meta,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            logger.error(f"Stripe create-intent failed: {exc}")
            raise CardPaymentError(getattr(exc, "user_message", None) or "Stripe error") from exc

        return {"id": intent["id"], "client_secret": intent["client_secret"]}

    def retrieve_intent_status(self, intent_id: str) -> str:
        """Current Stripe status of an intent, e.g. "succeeded" or "processing"."""
        if not self.secret_key:
            raise CardPaymentError("Stripe secret key not configured")
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.secret_key)
        except stripe.StripeError as exc:
            logger.error(f"Stripe retrieve-intent {intent_id} failed: {exc}")
            raise CardPaymentError(getattr(exc, "user_message", None) or "Stripe error") from exc
        return intent["status"]

    def construct_event(self, payload: bytes, signature: str):
        if self.webhook_secret:
            try:
                return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            except (ValueError, stripe.SignatureVerificationError) as exc:
                raise WebhookSignatureError(str(exc)) from exc

        # dev-mode fallback: anyone can post events here
        logger.warning("STRIPE_WEBHOOK_SECRET not set; accepting unsigned webhook payload")
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise WebhookSignatureError("Invalid webhook payload") from exc
