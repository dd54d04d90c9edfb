"""Payment reconciliation.

Providers never learn our booking ids. They report back by their own
correlation id (Stripe payment-intent id, M-Pesa CheckoutRequestID), which
was stored on the booking when the payment started. Every payment-status
write is a compare-and-swap on ``payment_status == "pending"`` so a
redelivered callback or webhook cannot flip or double-apply a result.
"""
import logging
import time
from dataclasses import dataclass
from decimal import Decimal

from services.card import CardPaymentError
from services.errors import PaymentStateError
from services.mpesa import account_reference

logger = logging.getLogger("seatclean.payments")

FINAL_PAYMENT_STATUSES = ("paid", "failed")

# CallbackMetadata item name -> booking field
RECEIPT_ITEMS = {
    "MpesaReceiptNumber": "mpesa_receipt_number",
    "Amount": "mpesa_amount",
    "TransactionDate": "mpesa_transaction_date",
}

MAX_RESULT_DESC = 255

# STK query result codes that end a transaction for good; anything else
# (4999 "still under processing" and friends) leaves the booking pending
FINAL_QUERY_FAILURE_CODES = frozenset({
    1,     # insufficient balance
    1019,  # transaction expired
    1025,  # push could not be sent
    1032,  # cancelled by user
    1037,  # phone unreachable / timed out
    2001,  # wrong PIN
})


def _require_pending(booking):
    if booking.payment_status != "pending":
        raise PaymentStateError(f"Booking payment is already {booking.payment_status}")


# ---------- M-Pesa ----------

def start_mpesa_payment(store, mpesa, booking_id: str, phone: str = None, account_prefix: str = "GCS") -> dict:
    booking = store.get(booking_id)
    _require_pending(booking)

    result = mpesa.initiate_push(
        phone=phone or booking.phone,
        amount=booking.total,
        booking_reference=account_reference(account_prefix, booking.id),
        description="Seat Cleaning Payment",
    )

    # join key for the asynchronous callback
    store.update(booking_id, {
        "payment_method": "mpesa",
        "mpesa_checkout_request_id": result["checkout_request_id"],
        "mpesa_merchant_request_id": result["merchant_request_id"],
    })
    return result


def extract_receipt(callback: dict) -> dict:
    items = (callback.get("CallbackMetadata") or {}).get("Item") or []
    receipt = {}
    for item in items:
        field = RECEIPT_ITEMS.get(item.get("Name"))
        value = item.get("Value")
        if field and value not in (None, ""):
            receipt[field] = str(value)
    return receipt


def handle_mpesa_callback(store, notifier, payload: dict) -> str:
    """Apply an STK callback to its booking; returns what happened."""
    callback = ((payload or {}).get("Body") or {}).get("stkCallback")
    if not callback:
        logger.warning("M-Pesa callback without Body.stkCallback ignored")
        return "ignored"

    checkout_id = callback.get("CheckoutRequestID")
    try:
        result_code = int(callback.get("ResultCode"))
    except (TypeError, ValueError):
        logger.warning(f"M-Pesa callback for {checkout_id} has no usable ResultCode")
        return "ignored"

    matches = store.find_by_field("mpesa_checkout_request_id", checkout_id) if checkout_id else []
    if not matches:
        logger.warning(f"M-Pesa callback for unknown checkout {checkout_id}")
        return "unmatched"
    booking = matches[0]

    result_desc = (callback.get("ResultDesc") or "")[:MAX_RESULT_DESC] or None
    if result_code == 0:
        receipt = extract_receipt(callback)
        missing = [name for name in RECEIPT_ITEMS.values() if name not in receipt]
        if missing:
            logger.error(f"M-Pesa success callback for {checkout_id} missing {missing}; booking left pending")
            return "incomplete"
        updates = {"payment_status": "paid", "mpesa_result_code": 0, "mpesa_result_desc": result_desc}
        updates.update(receipt)
    else:
        updates = {"payment_status": "failed", "mpesa_result_code": result_code, "mpesa_result_desc": result_desc}

    applied = store.update(
        booking.id,
        updates,
        expect={"payment_status": "pending", "mpesa_checkout_request_id": checkout_id},
    )
    if not applied:
        current = store.get(booking.id).payment_status
        if result_code == 0 and current != "paid":
            logger.error(f"M-Pesa success callback for booking {booking.id} arrived after it was marked {current}; "
                         f"receipt {updates.get('mpesa_receipt_number')} needs manual review")
        else:
            logger.info(f"Duplicate M-Pesa callback for booking {booking.id} ignored")
        return "duplicate"

    logger.info(f"Booking {booking.id} payment {updates['payment_status']} via M-Pesa ({result_code})")
    if updates["payment_status"] == "paid":
        notifier.submit("payment_confirmed", store.get(booking.id))
    return updates["payment_status"]


def apply_query_result(store, checkout_id: str, data: dict) -> str:
    """Record a final failure reported by an STK query.

    A successful query carries no receipt, so it leaves the booking
    pending until the callback arrives. Codes outside
    FINAL_QUERY_FAILURE_CODES are treated as still in flight.
    """
    if "ResultCode" not in data:
        return "pending"
    try:
        result_code = int(data["ResultCode"])
    except (TypeError, ValueError):
        return "pending"
    if result_code not in FINAL_QUERY_FAILURE_CODES:
        return "pending"

    result_desc = (data.get("ResultDesc") or "")[:MAX_RESULT_DESC] or None
    for booking in store.find_by_field("mpesa_checkout_request_id", checkout_id):
        applied = store.update(
            booking.id,
            {"payment_status": "failed", "mpesa_result_code": result_code, "mpesa_result_desc": result_desc},
            expect={"payment_status": "pending", "mpesa_checkout_request_id": checkout_id},
        )
        if applied:
            logger.info(f"Booking {booking.id} payment failed per STK query ({result_code})")
    return "failed"


# ---------- Card ----------

def start_card_payment(store, card, booking_id=None, amount_minor=None, currency=None,
                       customer_email=None, customer_name=None) -> dict:
    booking = None
    metadata = None
    if booking_id:
        booking = store.get(booking_id)
        _require_pending(booking)
        amount_minor = int(booking.total * Decimal(100))
        customer_email = booking.email
        customer_name = booking.name
        metadata = {"booking_id": booking.id}

    intent = card.create_payment_intent(
        amount_minor,
        currency=currency,
        customer_email=customer_email,
        customer_name=customer_name,
        metadata=metadata,
    )

    if booking is not None:
        store.update(booking.id, {"payment_method": "card", "payment_intent_id": intent["id"]})
    return intent


def handle_card_event(store, notifier, event) -> str:
    try:
        event_type = event["type"]
        intent_id = event["data"]["object"]["id"]
    except (KeyError, TypeError):
        logger.warning("Malformed Stripe event ignored")
        return "ignored"

    if event_type != "payment_intent.succeeded":
        return "ignored"

    matches = store.find_by_field("payment_intent_id", intent_id)
    if not matches:
        logger.info(f"Stripe payment {intent_id} has no matching booking")
        return "unmatched"
    booking = matches[0]

    applied = store.update(booking.id, {"payment_status": "paid"}, expect={"payment_status": "pending"})
    if not applied:
        logger.info(f"Duplicate Stripe event for booking {booking.id} ignored")
        return "duplicate"

    logger.info(f"Booking {booking.id} paid by card ({intent_id})")
    notifier.submit("payment_confirmed", store.get(booking.id))
    return "paid"



def reconcile_card_booking(store, card, notifier, booking) -> str:
    """Catch up a booking created after its card payment already went through.

    The checkout page confirms the intent before it posts the booking, so
    the succeeded webhook can arrive while no booking carries the intent
    id yet. Asking Stripe directly closes that gap.
    """
    if not booking.payment_intent_id or booking.payment_status != "pending":
        return booking.payment_status

    try:
        status = card.retrieve_intent_status(booking.payment_intent_id)
    except CardPaymentError:
        logger.warning(f"Could not check Stripe intent for booking {booking.id}; waiting for the webhook")
        return "pending"
    if status != "succeeded":
        return "pending"

    applied = store.update(booking.id, {"payment_status": "paid"}, expect={"payment_status": "pending"})
    if not applied:
        return store.get(booking.id).payment_status

    logger.info(f"Booking {booking.id} paid by card ({booking.payment_intent_id}) before it was created")
    notifier.submit("payment_confirmed", store.get(booking.id))
    return "paid"

# ---------- Polling ----------

@dataclass
class PollResult:
    status: str
    attempts: int
    timed_out: bool


def poll_payment_status(fetch, attempts: int, interval: float, sleep=time.sleep) -> PollResult:
    """Call ``fetch()`` until it reports paid/failed or the attempts run out."""
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        status = fetch()
        if status in FINAL_PAYMENT_STATUSES:
            return PollResult(status=status, attempts=attempt, timed_out=False)
        if attempt < attempts:
            sleep(interval)
    return PollResult(status="timed_out", attempts=attempts, timed_out=True)
