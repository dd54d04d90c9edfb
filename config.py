import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # Booking store backend: "sql" (Flask-SQLAlchemy) or "memory"
    BOOKING_STORE = os.getenv("BOOKING_STORE", "sql")

    # SQLite database file stored next to the app as seatclean.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "seatclean.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"

    # Admin login (single dashboard account)
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "bookings@geraniumcleaning.co.ke")
    ADMIN_PASSWORD_HASH = os.getenv("ADMIN_PASSWORD_HASH")  # bcrypt, see `flask hash-admin-password`
    ADMIN_TOKEN_TTL_SECONDS = int(os.getenv("ADMIN_TOKEN_TTL_SECONDS", str(7 * 24 * 60 * 60)))
    ADMIN_DASHBOARD_URL = os.getenv("ADMIN_DASHBOARD_URL", "http://localhost:5173/admin/dashboard")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    CARD_CURRENCY = os.getenv("CARD_CURRENCY", "kes")
    CARD_MIN_AMOUNT = 50  # smallest unit, ~$0.50

    # M-Pesa (Daraja)
    MPESA_ENV = os.getenv("MPESA_ENV", "sandbox")
    MPESA_CONSUMER_KEY = os.getenv("MPESA_CONSUMER_KEY")
    MPESA_CONSUMER_SECRET = os.getenv("MPESA_CONSUMER_SECRET")
    MPESA_SHORTCODE = os.getenv("MPESA_SHORTCODE")
    MPESA_PASSKEY = os.getenv("MPESA_PASSKEY")
    MPESA_CALLBACK_URL = os.getenv(
        "MPESA_CALLBACK_URL",
        os.getenv("SERVER_URL", "https://yourserver.com").rstrip("/") + "/payments/mpesa/callback"
    )
    MPESA_ACCOUNT_PREFIX = os.getenv("MPESA_ACCOUNT_PREFIX", "GCS")
    MPESA_TIMEOUT_SECONDS = int(os.getenv("MPESA_TIMEOUT_SECONDS", "15"))

    # Payment status polling (client-visible bound)
    PAYMENT_POLL_ATTEMPTS = int(os.getenv("PAYMENT_POLL_ATTEMPTS", "12"))
    PAYMENT_POLL_INTERVAL_SECONDS = float(os.getenv("PAYMENT_POLL_INTERVAL_SECONDS", "5"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Notifications
    NOTIFY_WORKERS = int(os.getenv("NOTIFY_WORKERS", "2"))
    NOTIFY_INLINE = False
    SEND_INVOICE_ON_COMPLETE = os.getenv("SEND_INVOICE_ON_COMPLETE", "true").lower() == "true"
    BUSINESS_NAME = "Geranium Cleaning Services"

    # Pricing (KSh)
    PRICE_PER_SEAT = 700
    MATTRESS_PRICES = {"Single": 1500, "Double": 2000, "King": 2500}
    PRICE_PER_FRAME = 800

    # Admin listing
    ADMIN_DEFAULT_PAGE_SIZE = 20
    ADMIN_MAX_PAGE_SIZE = 100

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    BOOKING_STORE = "memory"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_CREATE_TABLES = True

    ADMIN_EMAIL = "admin@example.com"
    ADMIN_PASSWORD_HASH = None  # filled in by the test fixtures

    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = None

    MPESA_CONSUMER_KEY = "key"
    MPESA_CONSUMER_SECRET = "secret"
    MPESA_SHORTCODE = "174379"
    MPESA_PASSKEY = "passkey"
    MPESA_CALLBACK_URL = "https://example.com/payments/mpesa/callback"

    PAYMENT_POLL_ATTEMPTS = 3
    PAYMENT_POLL_INTERVAL_SECONDS = 0

    SMTP_HOST = None
    NOTIFY_INLINE = True
