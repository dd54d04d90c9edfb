"""Booking schema, validation and pricing.

Every record that enters a store goes through ``Booking.validate`` (on
create) or ``validate_fields`` (on update), so stores never hold an
untyped bag of fields.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from services.errors import ValidationError

SERVICE_TYPES = ("seats", "mattress", "bedframe")
PAYMENT_METHODS = ("mpesa", "card", "pay_on_service")
PAYMENT_STATUSES = ("pending", "paid", "failed")
BOOKING_STATUSES = ("pending", "accepted", "declined", "completed")

TIME_SLOTS = (
    "8:00 AM", "9:00 AM", "10:00 AM", "11:00 AM", "12:00 PM",
    "1:00 PM", "2:00 PM", "3:00 PM", "4:00 PM",
)

MAX_ITEM_COUNT = 100
CENTS = Decimal("0.01")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso_datetime(value):
    """Parse an ISO-8601 timestamp; returns None when it cannot be parsed."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_calendar_date(value):
    """Accepts YYYY-MM-DD or a full ISO timestamp; returns None if invalid."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def to_money(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Amount must be a number", field="total")
    if not amount.is_finite():
        raise ValidationError("Amount must be a number", field="total")
    return amount


@dataclass
class Booking:
    name: str
    email: str
    phone: str
    area: str
    service_type: str
    item_type: str
    item_count: int
    total: Decimal
    address: str = ""
    county: str = "Nairobi"
    date: date = None
    time_slot: str = None
    notes: str = ""

    payment_method: str = "pay_on_service"
    payment_status: str = "pending"
    payment_intent_id: str = None
    mpesa_checkout_request_id: str = None
    mpesa_merchant_request_id: str = None
    mpesa_receipt_number: str = None
    mpesa_amount: str = None
    mpesa_transaction_date: str = None
    mpesa_result_code: int = None
    mpesa_result_desc: str = None

    booking_status: str = "pending"
    admin_notes: str = ""

    id: str = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def validate(self):
        validate_fields(asdict(self))
        for name in ("name", "email", "phone", "area", "service_type", "item_type"):
            if not getattr(self, name):
                raise ValidationError(f"{name} is required", field=name)
        return self

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total"] = f"{self.total:.2f}"
        data["date"] = self.date.isoformat() if self.date else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Booking":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["total"] = to_money(values.get("total", 0)).quantize(CENTS)
        values["date"] = parse_calendar_date(values.get("date"))
        return cls(**values)


BOOKING_FIELDS = frozenset(f.name for f in fields(Booking))
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def _check_choice(name, value, choices, nullable=False):
    if value is None and nullable:
        return
    if value not in choices:
        raise ValidationError(f"Invalid {name}", field=name)


def validate_fields(values: dict) -> dict:
    """Validate a (partial) set of booking fields; raises ValidationError."""
    for name in values:
        if name not in BOOKING_FIELDS:
            raise ValidationError(f"Unknown booking field: {name}", field=name)

    if "email" in values and values["email"] is not None:
        email = values["email"]
        if "@" not in email or email != email.strip().lower():
            raise ValidationError("Invalid email", field="email")
    if "service_type" in values:
        _check_choice("service_type", values["service_type"], SERVICE_TYPES)
    if "payment_method" in values:
        _check_choice("payment_method", values["payment_method"], PAYMENT_METHODS)
    if "payment_status" in values:
        _check_choice("payment_status", values["payment_status"], PAYMENT_STATUSES)
    if "booking_status" in values:
        _check_choice("booking_status", values["booking_status"], BOOKING_STATUSES)
    if "time_slot" in values:
        _check_choice("time_slot", values["time_slot"], TIME_SLOTS, nullable=True)
    if "item_count" in values:
        count = values["item_count"]
        if not isinstance(count, int) or isinstance(count, bool) or not 1 <= count <= MAX_ITEM_COUNT:
            raise ValidationError(f"item_count must be between 1 and {MAX_ITEM_COUNT}", field="item_count")
    if "total" in values:
        total = values["total"]
        if not isinstance(total, Decimal) or total < 0 or total != total.quantize(CENTS):
            raise ValidationError("total must be a non-negative amount with at most 2 decimals", field="total")
    if "date" in values and values["date"] is not None and not isinstance(values["date"], date):
        raise ValidationError("Invalid date", field="date")
    return values


def compute_total(service_type: str, item_type: str, item_count: int, prices: dict) -> Decimal:
    """Price a booking from the configured rates (KSh)."""
    if service_type == "seats":
        unit = prices["PRICE_PER_SEAT"]
    elif service_type == "mattress":
        unit = prices["MATTRESS_PRICES"].get(item_type)
        if unit is None:
            raise ValidationError("Unknown mattress size", field="item_type")
    elif service_type == "bedframe":
        unit = prices["PRICE_PER_FRAME"]
    else:
        raise ValidationError("Invalid service_type", field="service_type")
    return (Decimal(str(unit)) * item_count).quantize(CENTS, rounding=ROUND_HALF_UP)


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", field=key)
    return value.strip()


def _whole_number(value, key: str) -> int:
    # 2.0 and "2" are fine, 2.7 and "2.7" are not
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise ValidationError(f"{key} must be a whole number", field=key)


def booking_from_payload(data: dict, prices: dict) -> Booking:
    """Build a new, validated booking from a submission payload."""
    for key in ("name", "email", "phone", "area", "service_type"):
        if not _text(data, key):
            raise ValidationError(f"{key} is required", field=key)

    service_type = _text(data, "service_type")
    _check_choice("service_type", service_type, SERVICE_TYPES)

    item_type = _text(data, "item_type")
    if not item_type:
        if service_type == "bedframe":
            item_type = "Bed Frame"
        else:
            raise ValidationError("item_type is required", field="item_type")

    item_count = _whole_number(data.get("item_count"), "item_count")

    raw_date = data.get("date")
    booking_date = parse_calendar_date(raw_date)
    if raw_date and booking_date is None:
        raise ValidationError("Invalid date. Use YYYY-MM-DD", field="date")

    validate_fields({"item_count": item_count})

    booking = Booking(
        name=_text(data, "name"),
        email=_text(data, "email").lower(),
        phone=_text(data, "phone"),
        area=_text(data, "area"),
        address=_text(data, "address"),
        county=_text(data, "county") or "Nairobi",
        service_type=service_type,
        item_type=item_type,
        item_count=item_count,
        total=compute_total(service_type, item_type, item_count, prices),
        date=booking_date,
        time_slot=_text(data, "time_slot") or None,
        notes=_text(data, "notes"),
        payment_method=_text(data, "payment_method") or "pay_on_service",
        payment_intent_id=_text(data, "payment_intent_id") or None,
    )
    return booking.validate()
