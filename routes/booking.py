from flask import Blueprint, current_app, jsonify, request

from services.context import get_services
from services.payments import reconcile_card_booking
from services.records import booking_from_payload
from utils.audit import log_event

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


# ---------- CUSTOMERS: submit booking ----------
@booking_bp.post("")
def create_booking():
    data = request.get_json(silent=True) or {}
    services = get_services()

    # total is always priced server-side; any client "total" is ignored
    booking = booking_from_payload(data, current_app.config)
    booking_id = services.store.create(booking)
    booking = services.store.get(booking_id)

    # card checkout may have been confirmed before this request arrived
    if booking.payment_intent_id:
        reconcile_card_booking(services.store, services.card, services.notifier, booking)
        booking = services.store.get(booking_id)

    log_event("BOOKING_CREATE", entity="booking", entity_id=booking_id, metadata={
        "service_type": booking.service_type,
        "item_count": booking.item_count,
        "total": f"{booking.total:.2f}",
        "payment_method": booking.payment_method,
    })

    services.notifier.submit("booking_received", booking)
    services.notifier.submit("admin_new_booking", booking)

    return jsonify(booking_id=booking_id, booking=booking.to_dict()), 201


# ---------- CUSTOMERS: poll payment status ----------
@booking_bp.get("/<booking_id>/payment-status")
def payment_status(booking_id: str):
    booking = get_services().store.get(booking_id)
    return jsonify(status=booking.payment_status, booking=booking.to_dict()), 200
