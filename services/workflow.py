import logging

from services.errors import InvalidTransition, ValidationError
from services.records import BOOKING_STATUSES

logger = logging.getLogger("seatclean.workflow")

# admin-driven edges; declined and completed are terminal
ALLOWED_TRANSITIONS = {
    "pending": ("accepted", "declined"),
    "accepted": ("completed",),
    "declined": (),
    "completed": (),
}

NOTIFY_ON = {
    "accepted": "status_update",
    "declined": "status_update",
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


def transition_booking(store, notifier, booking_id: str, target: str,
                       admin_notes: str = None, send_invoice: bool = True):
    """Move a booking along the status graph and notify the customer.

    Returns the updated booking. Raises InvalidTransition for an edge that
    is not allowed, including a concurrent admin having moved it first.
    """
    if target not in BOOKING_STATUSES:
        raise ValidationError("Invalid status", field="status")

    booking = store.get(booking_id)
    if not can_transition(booking.booking_status, target):
        raise InvalidTransition(booking.booking_status, target)

    updates = {"booking_status": target}
    if admin_notes is not None:
        updates["admin_notes"] = admin_notes

    if not store.update(booking_id, updates, expect={"booking_status": booking.booking_status}):
        current = store.get(booking_id).booking_status
        raise InvalidTransition(current, target)

    updated = store.get(booking_id)
    logger.info(f"Booking {booking_id}: {booking.booking_status} -> {target}")

    kind = NOTIFY_ON.get(target)
    if target == "completed" and send_invoice:
        kind = "invoice"
    if kind:
        notifier.submit(kind, updated)
    return updated
