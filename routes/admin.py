from flask import Blueprint, current_app, g, jsonify, request

from security.admin_auth import generate_token, require_admin, validate_credentials
from services.admin_queries import (
    BookingFilters,
    aggregate_clients,
    dashboard_stats,
    filter_bookings,
    listing_stats,
    paginate,
)
from services.context import get_services
from services.workflow import transition_booking
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(error="Email and password required"), 400

    if not validate_credentials(email, password):
        log_event("ADMIN_LOGIN_FAIL", metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    log_event("ADMIN_LOGIN", actor=email)
    return jsonify(token=generate_token(email), message="Login successful"), 200


# ---------- bookings ----------
@admin_bp.get("/bookings")
@require_admin
def list_bookings():
    filters = BookingFilters.from_args(request.args)
    rows = filter_bookings(get_services().store.list(), filters)

    page = paginate(
        rows,
        page=request.args.get("page"),
        limit=request.args.get("limit"),
        default_limit=current_app.config.get("ADMIN_DEFAULT_PAGE_SIZE", 20),
        max_limit=current_app.config.get("ADMIN_MAX_PAGE_SIZE", 100),
    )

    return jsonify(
        bookings=[b.to_dict() for b in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        pages=page.pages,
        stats=listing_stats(rows),
    ), 200


@admin_bp.get("/bookings/<booking_id>")
@require_admin
def get_booking(booking_id: str):
    booking = get_services().store.get(booking_id)
    return jsonify(booking=booking.to_dict()), 200


@admin_bp.patch("/bookings/<booking_id>/status")
@require_admin
def update_status(booking_id: str):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip().lower()
    admin_notes = data.get("admin_notes")
    if admin_notes is not None and not isinstance(admin_notes, str):
        return jsonify(error="admin_notes must be a string", field="admin_notes"), 400

    services = get_services()
    booking = transition_booking(
        services.store,
        services.notifier,
        booking_id,
        status,
        admin_notes=admin_notes.strip() if admin_notes is not None else None,
        send_invoice=current_app.config.get("SEND_INVOICE_ON_COMPLETE", True),
    )

    log_event("BOOKING_STATUS_CHANGE", actor=g.admin.get("sub"), entity="booking",
              entity_id=booking_id, metadata={"status": status})
    return jsonify(booking=booking.to_dict()), 200


@admin_bp.post("/bookings/<booking_id>/invoice")
@require_admin
def send_invoice(booking_id: str):
    services = get_services()
    booking = services.store.get(booking_id)
    services.notifier.submit("invoice", booking)

    log_event("INVOICE_SENT", actor=g.admin.get("sub"), entity="booking", entity_id=booking_id)
    return jsonify(message="Invoice queued"), 202


# ---------- dashboard ----------
@admin_bp.get("/stats")
@require_admin
def stats():
    return jsonify(dashboard_stats(get_services().store.list())), 200


@admin_bp.get("/clients")
@require_admin
def clients():
    return jsonify(clients=aggregate_clients(get_services().store.list())), 200
