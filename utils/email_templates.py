from html import escape

PAYMENT_LABELS = {
    "mpesa": "M-Pesa",
    "card": "Card",
    "pay_on_service": "Pay on Service",
}


def _short_id(booking) -> str:
    return "#" + (booking.id or "")[-8:].upper()


def _when(booking) -> str:
    day = booking.date.strftime("%A, %d %B %Y") if booking.date else "TBD"
    return f"{day} at {booking.time_slot or 'TBD'}"


def _location(booking) -> str:
    return ", ".join(p for p in (booking.address, booking.area, booking.county) if p)


def _table(rows) -> str:
    cells = "".join(
        f"<tr><td>{escape(str(label))}</td><td><strong>{escape(str(value))}</strong></td></tr>"
        for label, value in rows
    )
    return f"<table cellpadding=\"6\">{cells}</table>"


def _page(business: str, heading: str, body: str) -> str:
    return (
        f"<html><body style=\"font-family: system-ui; max-width: 600px; margin: 0 auto;\">"
        f"<h1>{escape(business)}</h1><h2>{escape(heading)}</h2>{body}"
        f"</body></html>"
    )


def _summary_rows(booking):
    return [
        ("Booking ID", _short_id(booking)),
        ("Date & Time", _when(booking)),
        ("Location", _location(booking)),
        ("Service", f"{booking.item_type} x {booking.item_count}"),
        ("Payment Method", PAYMENT_LABELS.get(booking.payment_method, booking.payment_method)),
        ("Amount", f"KSh {booking.total:,.2f}"),
    ]


def booking_received(booking, settings):
    body = (
        f"<p>Hi {escape(booking.name)}, we have received your booking. "
        f"We will confirm it shortly.</p>" + _table(_summary_rows(booking))
    )
    return {
        "to": booking.email,
        "subject": f"Booking received - {_when(booking)}",
        "html": _page(settings["BUSINESS_NAME"], "Booking received", body),
    }


def payment_confirmed(booking, settings):
    rows = _summary_rows(booking)
    if booking.mpesa_receipt_number:
        rows.append(("M-Pesa Receipt", booking.mpesa_receipt_number))
    body = f"<p>Hi {escape(booking.name)}, your payment has been received. Thank you!</p>" + _table(rows)
    return {
        "to": booking.email,
        "subject": f"Payment confirmed - {_short_id(booking)}",
        "html": _page(settings["BUSINESS_NAME"], "Payment confirmed", body),
    }


def status_update(booking, settings):
    if booking.booking_status == "accepted":
        heading = "Booking accepted"
        text = f"Great news! Your cleaning booking for {_when(booking)} has been confirmed by our team."
    else:
        heading = "Booking update"
        text = f"We're sorry, but we're unable to fulfil your booking for {_when(booking)}. Please contact us to reschedule."
    body = f"<p>Hi {escape(booking.name)},</p><p>{escape(text)}</p>"
    return {
        "to": booking.email,
        "subject": f"{heading} - {settings['BUSINESS_NAME']}",
        "html": _page(settings["BUSINESS_NAME"], heading, body),
    }


def admin_new_booking(booking, settings):
    rows = [
        ("Client", booking.name),
        ("Email", booking.email),
        ("Phone", booking.phone),
    ] + _summary_rows(booking) + [("Payment Status", booking.payment_status)]
    link = settings.get("ADMIN_DASHBOARD_URL")
    body = _table(rows)
    if link:
        body += f"<p><a href=\"{escape(link)}\">View in dashboard</a></p>"
    return {
        "to": settings.get("ADMIN_EMAIL"),
        "subject": f"New booking - {booking.name} - KSh {booking.total:,.2f}",
        "html": _page(settings["BUSINESS_NAME"], "New booking received", body),
    }


def invoice(booking, settings):
    label = "Amount Paid" if booking.payment_status == "paid" else "Amount Due"
    rows = _summary_rows(booking)[:-1] + [(label, f"KSh {booking.total:,.2f}")]
    body = (
        f"<p>Hi {escape(booking.name)}, your cleaning is done. Thank you for choosing us!</p>"
        + _table(rows)
    )
    return {
        "to": booking.email,
        "subject": f"Service complete - Invoice {_short_id(booking)}",
        "html": _page(settings["BUSINESS_NAME"], "Invoice", body),
    }


TEMPLATES = {
    "booking_received": booking_received,
    "payment_confirmed": payment_confirmed,
    "status_update": status_update,
    "admin_new_booking": admin_new_booking,
    "invoice": invoice,
}


def render(kind: str, booking, settings: dict) -> dict:
    try:
        template = TEMPLATES[kind]
    except KeyError:
        raise ValueError(f"Unknown email kind: {kind}")
    return template(booking, settings)
