import logging

from flask import Blueprint, jsonify, request

from services.card import WebhookSignatureError
from services.context import get_services
from services.payments import handle_card_event
from utils.audit import log_event

logger = logging.getLogger("seatclean.routes.webhook")

webhook_bp = Blueprint("webhook", __name__, url_prefix="/payments/card")


@webhook_bp.post("/webhook")
def stripe_webhook():
    services = get_services()
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.get_data()

    try:
        event = services.card.construct_event(payload, sig_header)
    except WebhookSignatureError as exc:
        return jsonify(error=f"Webhook error: {exc}"), 400

    # always acknowledge once the event is authentic, so Stripe does not retry
    try:
        outcome = handle_card_event(services.store, services.notifier, event)
        log_event("CARD_WEBHOOK", entity="stripe_event", metadata={"outcome": outcome})
    except Exception:
        logger.exception("Stripe webhook processing failed")

    return jsonify(received=True), 200
