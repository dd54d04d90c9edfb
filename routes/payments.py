import logging

from flask import Blueprint, current_app, jsonify, request

from services.context import get_services
from services.errors import ServiceError
from services.payments import (
    apply_query_result,
    handle_mpesa_callback,
    start_card_payment,
    start_mpesa_payment,
)
from utils.audit import log_event

logger = logging.getLogger("seatclean.routes.payments")

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


# ---------- Card ----------
@payments_bp.post("/card/create-intent")
def create_card_intent():
    data = request.get_json(silent=True) or {}
    services = get_services()

    intent = start_card_payment(
        services.store,
        services.card,
        booking_id=data.get("booking_id") or None,
        amount_minor=data.get("amount"),
        currency=data.get("currency"),
        customer_email=data.get("customer_email"),
        customer_name=data.get("customer_name"),
    )

    log_event("CARD_INTENT_CREATED", entity="booking", entity_id=data.get("booking_id"),
              metadata={"payment_intent_id": intent["id"]})
    return jsonify(client_secret=intent["client_secret"], payment_intent_id=intent["id"]), 200


# ---------- M-Pesa ----------
@payments_bp.post("/mpesa/push")
def mpesa_push():
    data = request.get_json(silent=True) or {}
    booking_id = (data.get("booking_id") or "").strip()
    if not booking_id:
        return jsonify(error="booking_id required", field="booking_id"), 400

    services = get_services()
    try:
        result = start_mpesa_payment(
            services.store,
            services.mpesa,
            booking_id,
            phone=data.get("phone") or None,
            account_prefix=current_app.config.get("MPESA_ACCOUNT_PREFIX", "GCS"),
        )
    except ValueError as exc:
        return jsonify(error=str(exc), field="phone"), 400

    log_event("MPESA_PUSH_SENT", entity="booking", entity_id=booking_id,
              metadata={"checkout_request_id": result["checkout_request_id"]})
    return jsonify(
        success=True,
        checkout_request_id=result["checkout_request_id"],
        merchant_request_id=result["merchant_request_id"],
    ), 200


@payments_bp.post("/mpesa/callback")
def mpesa_callback():
    # Safaricom only gets an acknowledgement; outcomes are for our logs
    payload = request.get_json(silent=True) or {}
    services = get_services()
    try:
        outcome = handle_mpesa_callback(services.store, services.notifier, payload)
        checkout_id = ((payload.get("Body") or {}).get("stkCallback") or {}).get("CheckoutRequestID")
        log_event("MPESA_CALLBACK", entity="checkout", entity_id=checkout_id, metadata={"outcome": outcome})
    except Exception:
        logger.exception("M-Pesa callback processing failed")
    return jsonify(CALLBACK_ACK), 200


@payments_bp.get("/mpesa/query/<checkout_request_id>")
def mpesa_query(checkout_request_id: str):
    services = get_services()
    if not services.store.find_by_field("mpesa_checkout_request_id", checkout_request_id):
        return jsonify(error="Checkout request not found"), 404

    data = services.mpesa.query_status(checkout_request_id)

    try:
        apply_query_result(services.store, checkout_request_id, data)
    except ServiceError:
        logger.exception(f"Could not apply STK query result for {checkout_request_id}")
    return jsonify(data), 200
