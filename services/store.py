"""Booking record store.

One interface, two backends: an in-memory dict for tests and local
development, and a Flask-SQLAlchemy table for production. Both validate
records on the way in and both support compare-and-swap updates through
the ``expect`` argument of ``update``.
"""
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, replace

from models import db
from models.booking import BookingRow
from services.errors import BookingNotFound, ValidationError
from services.records import (
    BOOKING_FIELDS,
    IMMUTABLE_FIELDS,
    Booking,
    utc_now_iso,
    validate_fields,
)

logger = logging.getLogger("seatclean.store")


def new_booking_id() -> str:
    return uuid.uuid4().hex


class BookingStore(ABC):

    @abstractmethod
    def create(self, booking: Booking) -> str:
        """Persist a new booking and return its generated id."""

    @abstractmethod
    def get(self, booking_id: str) -> Booking:
        """Return the booking or raise BookingNotFound."""

    @abstractmethod
    def update(self, booking_id: str, fields: dict, expect: dict = None) -> bool:
        """Apply a partial update.

        When ``expect`` is given the write only happens if every listed
        field still holds the expected value; returns False otherwise.
        Raises BookingNotFound for an unknown id.
        """

    @abstractmethod
    def list(self, predicate=None) -> list:
        """All bookings, optionally filtered by ``predicate(booking)``."""

    @abstractmethod
    def find_by_field(self, field: str, value) -> list:
        """Bookings whose ``field`` equals ``value``."""

    @staticmethod
    def _prepare_update(fields: dict) -> dict:
        values = dict(fields)
        for name in values:
            if name in IMMUTABLE_FIELDS:
                raise ValidationError(f"{name} cannot be changed", field=name)
        values.setdefault("updated_at", utc_now_iso())
        return validate_fields(values)

    @staticmethod
    def _check_field(field: str):
        if field not in BOOKING_FIELDS:
            raise ValidationError(f"Unknown booking field: {field}", field=field)


class InMemoryBookingStore(BookingStore):

    def __init__(self):
        self._rows = {}
        self._lock = threading.Lock()

    def create(self, booking):
        booking.validate()
        booking_id = new_booking_id()
        with self._lock:
            self._rows[booking_id] = replace(booking, id=booking_id)
        return booking_id

    def get(self, booking_id):
        with self._lock:
            row = self._rows.get(booking_id)
        if row is None:
            raise BookingNotFound(booking_id)
        return replace(row)

    def update(self, booking_id, fields, expect=None):
        values = self._prepare_update(fields)
        with self._lock:
            current = self._rows.get(booking_id)
            if current is None:
                raise BookingNotFound(booking_id)
            for name, wanted in (expect or {}).items():
                if getattr(current, name) != wanted:
                    return False
            self._rows[booking_id] = replace(current, **values)
        return True

    def list(self, predicate=None):
        with self._lock:
            rows = [replace(r) for r in self._rows.values()]
        if predicate is None:
            return rows
        return [r for r in rows if predicate(r)]

    def find_by_field(self, field, value):
        self._check_field(field)
        return self.list(lambda b: getattr(b, field) == value)


class SqlBookingStore(BookingStore):
    """Store backed by the ``bookings`` table; needs an app context."""

    @staticmethod
    def _to_booking(row: BookingRow) -> Booking:
        return Booking.from_dict({name: getattr(row, name) for name in BOOKING_FIELDS})

    def create(self, booking):
        booking.validate()
        booking_id = new_booking_id()
        row = BookingRow(**asdict(replace(booking, id=booking_id)))
        db.session.add(row)
        db.session.commit()
        return booking_id

    def get(self, booking_id):
        row = db.session.get(BookingRow, booking_id)
        if row is None:
            raise BookingNotFound(booking_id)
        return self._to_booking(row)

    def update(self, booking_id, fields, expect=None):
        values = self._prepare_update(fields)
        q = BookingRow.query.filter_by(id=booking_id)
        if expect:
            for name in expect:
                self._check_field(name)
            q = q.filter_by(**expect)
        count = q.update(values, synchronize_session=False)
        db.session.commit()
        if count:
            return True
        if db.session.get(BookingRow, booking_id) is None:
            raise BookingNotFound(booking_id)
        logger.info(f"Conditional update skipped for booking {booking_id}: {expect}")
        return False

    def list(self, predicate=None):
        rows = [self._to_booking(r) for r in BookingRow.query.all()]
        if predicate is None:
            return rows
        return [r for r in rows if predicate(r)]

    def find_by_field(self, field, value):
        self._check_field(field)
        rows = BookingRow.query.filter_by(**{field: value}).all()
        return [self._to_booking(r) for r in rows]


def build_store(config) -> BookingStore:
    backend = (config.get("BOOKING_STORE") or "sql").lower()
    if backend == "memory":
        return InMemoryBookingStore()
    if backend == "sql":
        return SqlBookingStore()
    raise ValueError(f"Unknown BOOKING_STORE backend: {backend}")
