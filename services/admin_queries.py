"""Filtering, pagination and aggregates for the admin dashboard.

Everything here works on a full scan of the booking collection, which is
fine for a single small business.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from services.records import BOOKING_STATUSES, CENTS, parse_calendar_date, parse_iso_datetime

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def money(amount: Decimal) -> str:
    return f"{amount.quantize(CENTS):.2f}"


@dataclass
class BookingFilters:
    status: str = None
    date_from: object = None
    date_to: object = None
    search: str = None

    @classmethod
    def from_args(cls, args):
        status = (args.get("status") or "").strip().lower()
        search = (args.get("search") or "").strip().lower()
        return cls(
            status=None if status in ("", "all") else status,
            # unparseable bounds are ignored rather than rejected
            date_from=parse_calendar_date(args.get("from")),
            date_to=parse_calendar_date(args.get("to")),
            search=search or None,
        )

    def matches(self, booking) -> bool:
        if self.status and booking.booking_status != self.status:
            return False
        if self.date_from and (booking.date is None or booking.date < self.date_from):
            return False
        if self.date_to and (booking.date is None or booking.date > self.date_to):
            return False
        if self.search:
            haystack = (booking.name, booking.email, booking.phone, booking.area)
            if not any(self.search in (value or "").lower() for value in haystack):
                return False
        return True


def _created(booking):
    return parse_iso_datetime(booking.created_at) or _EPOCH


def newest_first(bookings) -> list:
    return sorted(bookings, key=_created, reverse=True)


def filter_bookings(bookings, filters: BookingFilters) -> list:
    return newest_first(b for b in bookings if filters.matches(b))


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: int
    pages: int


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def paginate(items: list, page=1, limit=None, default_limit=20, max_limit=100) -> Page:
    page = max(1, _to_int(page, 1))
    limit = _to_int(limit, default_limit)
    limit = max(1, min(limit, max_limit))

    total = len(items)
    start = (page - 1) * limit
    return Page(
        items=items[start:start + limit],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit),
    )


def revenue(bookings) -> Decimal:
    total = sum((b.total for b in bookings if b.payment_status == "paid"), Decimal("0"))
    return total.quantize(CENTS)


def status_counts(bookings) -> dict:
    counts = {status: 0 for status in BOOKING_STATUSES}
    for b in bookings:
        counts[b.booking_status] = counts.get(b.booking_status, 0) + 1
    return counts


def listing_stats(bookings) -> dict:
    stats = {"total": len(bookings)}
    stats.update(status_counts(bookings))
    stats["revenue"] = money(revenue(bookings))
    return stats


def dashboard_stats(bookings, now: datetime = None) -> dict:
    now = now or datetime.now(timezone.utc)
    this_month = []
    for b in bookings:
        created = parse_iso_datetime(b.created_at)
        if created and created.year == now.year and created.month == now.month:
            this_month.append(b)

    stats = {"total": len(bookings), "this_month": len(this_month)}
    stats.update(status_counts(bookings))
    stats.update({
        "total_revenue": money(revenue(bookings)),
        "month_revenue": money(revenue(this_month)),
        "total_items": sum(b.item_count for b in bookings),
    })
    return stats


def aggregate_clients(bookings) -> list:
    """Group bookings by email; contact details come from the newest booking."""
    clients = {}
    for b in newest_first(bookings):
        client = clients.get(b.email)
        if client is None:
            client = clients[b.email] = {
                "name": b.name,
                "email": b.email,
                "phone": b.phone,
                "county": b.county,
                "area": b.area,
                "bookings": 0,
                "total_spent": Decimal("0"),
                "last_booking": b.created_at,
            }
        client["bookings"] += 1
        client["total_spent"] += b.total

    out = list(clients.values())
    for client in out:
        client["total_spent"] = money(client["total_spent"])
    return out
