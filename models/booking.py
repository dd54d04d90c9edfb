from models.db import db

class BookingRow(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.String(32), primary_key=True)

    # customer
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(30), nullable=False)
    address = db.Column(db.String(255), nullable=False, default="")
    area = db.Column(db.String(120), nullable=False)
    county = db.Column(db.String(60), nullable=False, default="Nairobi")

    # service
    service_type = db.Column(db.String(20), nullable=False)  # seats, mattress, bedframe
    item_type = db.Column(db.String(60), nullable=False)
    item_count = db.Column(db.Integer, nullable=False)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    # schedule
    date = db.Column(db.Date, nullable=True)
    time_slot = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=False, default="")

    # payment
    payment_method = db.Column(db.String(20), nullable=False, default="pay_on_service")
    payment_status = db.Column(db.String(20), nullable=False, default="pending")  # pending, paid, failed
    payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    mpesa_checkout_request_id = db.Column(db.String(120), nullable=True, index=True)
    mpesa_merchant_request_id = db.Column(db.String(120), nullable=True)
    mpesa_receipt_number = db.Column(db.String(60), nullable=True)
    mpesa_amount = db.Column(db.String(30), nullable=True)
    mpesa_transaction_date = db.Column(db.String(30), nullable=True)
    mpesa_result_code = db.Column(db.Integer, nullable=True)
    mpesa_result_desc = db.Column(db.String(255), nullable=True)

    # workflow
    booking_status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    admin_notes = db.Column(db.Text, nullable=False, default="")

    # ISO-8601 strings, same shape as the in-memory store
    created_at = db.Column(db.String(40), nullable=False, index=True)
    updated_at = db.Column(db.String(40), nullable=False)
