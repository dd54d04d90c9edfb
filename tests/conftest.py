# Imports for testing tools
from decimal import Decimal

import pytest
import requests
from unittest.mock import MagicMock

# Import your application code
from app import create_app
from config import TestConfig
from security.admin_auth import hash_password
from services.context import EXTENSION_KEY
from services.mpesa import MpesaClient
from services.notifications import InlineExecutor, Notifier
from services.records import Booking
from services.store import InMemoryBookingStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "correct-horse-battery"

# low cost factor keeps bcrypt fast in tests
ADMIN_HASH = hash_password(ADMIN_PASSWORD, rounds=4)


class AppTestConfig(TestConfig):
    ADMIN_PASSWORD_HASH = ADMIN_HASH


class Outbox:
    """Notifier sender that records messages instead of talking SMTP."""

    def __init__(self, ok=True):
        self.ok = ok
        self.messages = []

    def __call__(self, to_email, subject, html):
        self.messages.append({"to": to_email, "subject": subject, "html": html})
        if self.ok:
            return True, None
        return False, "SMTP down"

    def subjects(self, prefix=""):
        return [m["subject"] for m in self.messages if m["subject"].startswith(prefix)]


class FakeResponse:
    """Just enough of requests.Response for the Daraja client."""

    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def make_booking(**overrides) -> Booking:
    values = {
        "name": "Jane Wanjiku",
        "email": "jane@example.com",
        "phone": "0712345678",
        "area": "Kilimani",
        "service_type": "seats",
        "item_type": "5-Seater Sofa",
        "item_count": 2,
        "total": Decimal("1400.00"),
    }
    values.update(overrides)
    return Booking(**values)


# --- Core fixtures ---
@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def notifier(outbox):
    return Notifier(
        sender=outbox,
        settings={
            "BUSINESS_NAME": "Geranium Cleaning Services",
            "ADMIN_EMAIL": ADMIN_EMAIL,
            "ADMIN_DASHBOARD_URL": "http://localhost:5173/admin/dashboard",
        },
        executor=InlineExecutor(),
    )


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def mpesa():
    """STK push adapter double; tests set return values per call."""
    client = MagicMock(spec=MpesaClient)
    client.initiate_push.return_value = {
        "checkout_request_id": "ws_CO_191020261200001",
        "merchant_request_id": "29115-34620561-1",
        "response_code": "0",
        "response_description": "Success. Request accepted for processing",
    }
    return client


# --- API Test Client Fixtures ---
@pytest.fixture
def app(notifier, mpesa):
    app = create_app(AppTestConfig)
    services = app.extensions[EXTENSION_KEY]
    services.notifier = notifier
    services.mpesa = mpesa
    yield app


@pytest.fixture
def services(app):
    return app.extensions[EXTENSION_KEY]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers(client):
    res = client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.get_json()['token']}"}


def stk_callback(checkout_id, result_code=0, receipt="NLJ7RT61SV", amount=1400,
                 desc="The service request is processed successfully."):
    callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": desc,
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {"Item": [
            {"Name": "Amount", "Value": amount},
            {"Name": "MpesaReceiptNumber", "Value": receipt},
            {"Name": "Balance"},
            {"Name": "TransactionDate", "Value": 20261019120501},
            {"Name": "PhoneNumber", "Value": 254712345678},
        ]}
    return {"Body": {"stkCallback": callback}}
