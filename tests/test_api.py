import json

import pytest
import stripe

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, stk_callback

CHECKOUT_ID = "ws_CO_191020261200001"

BOOKING = {
    "name": "Jane Wanjiku",
    "email": "jane@example.com",
    "phone": "0712345678",
    "area": "Kilimani",
    "address": "Argwings Kodhek Rd",
    "service_type": "seats",
    "item_type": "5-Seater Sofa",
    "item_count": 2,
    "date": "2026-11-02",
    "time_slot": "10:00 AM",
    "payment_method": "mpesa",
}


def create_booking(client, **overrides):
    data = dict(BOOKING, **overrides)
    res = client.post("/bookings", json=data)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["booking_id"]


# ---------- Health ----------
def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_unknown_route(client):
    res = client.get("/nope")
    assert res.status_code == 404
    assert res.get_json() == {"error": "Route not found"}


# ---------- Bookings ----------
def test_create_booking(client, outbox):
    res = client.post("/bookings", json=dict(BOOKING, total=1))

    assert res.status_code == 201
    body = res.get_json()
    assert body["booking"]["total"] == "1400.00"
    assert body["booking"]["payment_status"] == "pending"
    assert body["booking"]["booking_status"] == "pending"
    assert body["booking"]["id"] == body["booking_id"]

    assert [m["to"] for m in outbox.messages] == ["jane@example.com", ADMIN_EMAIL]


def test_create_booking_validation_error(client, outbox):
    res = client.post("/bookings", json=dict(BOOKING, item_count=0))

    assert res.status_code == 400
    assert res.get_json()["field"] == "item_count"
    assert outbox.messages == []


def test_payment_status(client):
    booking_id = create_booking(client)

    res = client.get(f"/bookings/{booking_id}/payment-status")
    assert res.status_code == 200
    assert res.get_json()["status"] == "pending"

    assert client.get("/bookings/missing/payment-status").status_code == 404


def test_security_headers(client):
    res = client.get("/health")
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"


# ---------- M-Pesa ----------
def test_mpesa_happy_path(client, outbox, mpesa):
    booking_id = create_booking(client)

    res = client.post("/payments/mpesa/push", json={"booking_id": booking_id})
    assert res.status_code == 200
    assert res.get_json() == {
        "success": True,
        "checkout_request_id": CHECKOUT_ID,
        "merchant_request_id": "29115-34620561-1",
    }

    res = client.post("/payments/mpesa/callback", json=stk_callback(CHECKOUT_ID))
    assert res.status_code == 200
    assert res.get_json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    # redelivery
    client.post("/payments/mpesa/callback", json=stk_callback(CHECKOUT_ID))

    status = client.get(f"/bookings/{booking_id}/payment-status").get_json()
    assert status["status"] == "paid"
    assert status["booking"]["mpesa_receipt_number"] == "NLJ7RT61SV"
    assert len(outbox.subjects("Payment confirmed")) == 1


def test_mpesa_push_requires_booking_id(client, mpesa):
    res = client.post("/payments/mpesa/push", json={})
    assert res.status_code == 400
    mpesa.initiate_push.assert_not_called()


def test_mpesa_push_unknown_booking(client):
    assert client.post("/payments/mpesa/push", json={"booking_id": "missing"}).status_code == 404


def test_mpesa_push_bad_phone(client, mpesa):
    booking_id = create_booking(client)
    mpesa.initiate_push.side_effect = ValueError("Invalid phone number: '123'")

    res = client.post("/payments/mpesa/push", json={"booking_id": booking_id, "phone": "123"})

    assert res.status_code == 400
    assert res.get_json()["field"] == "phone"


def test_mpesa_push_after_payment_conflicts(client, mpesa):
    booking_id = create_booking(client)
    client.post("/payments/mpesa/push", json={"booking_id": booking_id})
    client.post("/payments/mpesa/callback", json=stk_callback(CHECKOUT_ID))

    res = client.post("/payments/mpesa/push", json={"booking_id": booking_id})
    assert res.status_code == 409


def test_mpesa_callback_always_acknowledged(client):
    for payload in ({}, {"Body": {"stkCallback": {"CheckoutRequestID": "ws_CO_unknown", "ResultCode": 0}}}):
        res = client.post("/payments/mpesa/callback", json=payload)
        assert res.status_code == 200
        assert res.get_json()["ResultCode"] == 0


def test_mpesa_query(client, mpesa):
    booking_id = create_booking(client)
    client.post("/payments/mpesa/push", json={"booking_id": booking_id})
    mpesa.query_status.return_value = {"ResponseCode": "0", "ResultCode": "1037", "ResultDesc": "DS timeout"}

    res = client.get(f"/payments/mpesa/query/{CHECKOUT_ID}")

    assert res.status_code == 200
    assert res.get_json()["ResultCode"] == "1037"
    assert client.get(f"/bookings/{booking_id}/payment-status").get_json()["status"] == "failed"


def test_mpesa_query_unknown_checkout(client, mpesa):
    assert client.get("/payments/mpesa/query/ws_CO_unknown").status_code == 404
    mpesa.query_status.assert_not_called()


# ---------- Card ----------
@pytest.fixture
def stripe_create(mocker):
    return mocker.patch("services.card.stripe.PaymentIntent.create",
                        return_value={"id": "pi_123", "client_secret": "pi_123_secret_abc"})


def test_card_intent_for_booking(client, stripe_create):
    booking_id = create_booking(client, payment_method="card")

    res = client.post("/payments/card/create-intent", json={"booking_id": booking_id})

    assert res.status_code == 200
    assert res.get_json() == {"client_secret": "pi_123_secret_abc", "payment_intent_id": "pi_123"}
    assert stripe_create.call_args[1]["amount"] == 140000


def test_card_intent_free_amount(client, stripe_create):
    res = client.post("/payments/card/create-intent", json={"amount": 5000, "currency": "KES"})
    assert res.status_code == 200
    assert stripe_create.call_args[1]["currency"] == "kes"


def test_card_intent_rejects_small_amount(client, stripe_create):
    res = client.post("/payments/card/create-intent", json={"amount": 10})
    assert res.status_code == 400
    stripe_create.assert_not_called()


def test_card_intent_provider_error(client, mocker):
    mocker.patch("services.card.stripe.PaymentIntent.create", side_effect=stripe.StripeError("card declined"))
    res = client.post("/payments/card/create-intent", json={"amount": 5000})
    assert res.status_code == 502


def test_card_webhook_marks_paid(client, stripe_create, outbox):
    booking_id = create_booking(client, payment_method="card")
    client.post("/payments/card/create-intent", json={"booking_id": booking_id})
    event = {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_123"}}}

    for _ in range(2):
        res = client.post("/payments/card/webhook", data=json.dumps(event),
                          content_type="application/json")
        assert res.status_code == 200
        assert res.get_json() == {"received": True}

    assert client.get(f"/bookings/{booking_id}/payment-status").get_json()["status"] == "paid"
    assert len(outbox.subjects("Payment confirmed")) == 1


def test_card_webhook_before_booking(client, outbox, mocker):
    mocker.patch("services.card.stripe.PaymentIntent.retrieve",
                 return_value={"id": "pi_abc", "status": "succeeded"})
    event = {"id": "evt_2", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_abc"}}}

    res = client.post("/payments/card/webhook", data=json.dumps(event), content_type="application/json")
    assert res.status_code == 200

    booking_id = create_booking(client, payment_method="card", payment_intent_id="pi_abc")

    status = client.get(f"/bookings/{booking_id}/payment-status").get_json()
    assert status["status"] == "paid"
    assert len(outbox.subjects("Payment confirmed")) == 1


def test_card_booking_created_while_intent_processing(client, outbox, mocker):
    mocker.patch("services.card.stripe.PaymentIntent.retrieve",
                 return_value={"id": "pi_abc", "status": "processing"})
    booking_id = create_booking(client, payment_method="card", payment_intent_id="pi_abc")
    assert client.get(f"/bookings/{booking_id}/payment-status").get_json()["status"] == "pending"

    event = {"id": "evt_3", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_abc"}}}
    client.post("/payments/card/webhook", data=json.dumps(event), content_type="application/json")

    assert client.get(f"/bookings/{booking_id}/payment-status").get_json()["status"] == "paid"
    assert len(outbox.subjects("Payment confirmed")) == 1


def test_card_booking_created_when_stripe_unreachable(client, mocker):
    mocker.patch("services.card.stripe.PaymentIntent.retrieve",
                 side_effect=stripe.APIConnectionError("connection reset"))

    res = client.post("/bookings", json=dict(BOOKING, payment_method="card", payment_intent_id="pi_abc"))

    assert res.status_code == 201
    assert res.get_json()["booking"]["payment_status"] == "pending"


def test_card_webhook_bad_signature(client, services, mocker):
    services.card.webhook_secret = "whsec_test"
    mocker.patch("services.card.stripe.Webhook.construct_event",
                 side_effect=stripe.SignatureVerificationError("No signatures found", "t=1,v1=bad"))

    res = client.post("/payments/card/webhook", data=b"{}", headers={"Stripe-Signature": "t=1,v1=bad"},
                      content_type="application/json")

    assert res.status_code == 400
    assert res.get_json()["error"].startswith("Webhook error")


# ---------- Admin ----------
def test_admin_login(client):
    res = client.post("/admin/login", json={"email": ADMIN_EMAIL.upper(), "password": ADMIN_PASSWORD})
    assert res.status_code == 200
    assert res.get_json()["token"]


@pytest.mark.parametrize("body,status", [
    ({"email": ADMIN_EMAIL, "password": "wrong"}, 401),
    ({"email": "someone@example.com", "password": ADMIN_PASSWORD}, 401),
    ({"email": ADMIN_EMAIL}, 400),
])
def test_admin_login_rejected(client, body, status):
    assert client.post("/admin/login", json=body).status_code == status


@pytest.mark.parametrize("headers,error", [
    ({}, "Unauthorized"),
    ({"Authorization": "Token abc"}, "Unauthorized"),
    ({"Authorization": "Bearer not-a-jwt"}, "Invalid or expired token"),
])
def test_admin_routes_need_token(client, headers, error):
    res = client.get("/admin/bookings", headers=headers)
    assert res.status_code == 401
    assert res.get_json()["error"] == error


def test_admin_token_without_admin_claim(app, client):
    from jose import jwt
    token = jwt.encode({"sub": "jane@example.com"}, app.config["SECRET_KEY"], algorithm="HS256")
    res = client.get("/admin/bookings", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 403


def test_admin_listing(client, admin_headers):
    for i in range(3):
        create_booking(client, email=f"client{i}@example.com")
    create_booking(client, name="Otieno", area="Westlands")

    res = client.get("/admin/bookings?limit=2&page=2", headers=admin_headers)
    body = res.get_json()
    assert res.status_code == 200
    assert (body["total"], body["page"], body["limit"], body["pages"]) == (4, 2, 2, 2)
    assert len(body["bookings"]) == 2
    assert body["stats"]["pending"] == 4
    assert body["stats"]["revenue"] == "0.00"

    res = client.get("/admin/bookings?search=westlands", headers=admin_headers)
    assert [b["name"] for b in res.get_json()["bookings"]] == ["Otieno"]


def test_admin_status_flow(client, admin_headers, outbox):
    booking_id = create_booking(client)
    url = f"/admin/bookings/{booking_id}/status"

    res = client.patch(url, json={"status": "accepted", "admin_notes": "Gate code 1234"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()["booking"]["booking_status"] == "accepted"
    assert res.get_json()["booking"]["admin_notes"] == "Gate code 1234"

    res = client.patch(url, json={"status": "declined"}, headers=admin_headers)
    assert res.status_code == 409

    res = client.patch(url, json={"status": "completed"}, headers=admin_headers)
    assert res.status_code == 200
    assert outbox.subjects("Service complete") != []

    res = client.patch(url, json={"status": "bogus"}, headers=admin_headers)
    assert res.status_code == 400


def test_admin_status_unknown_booking(client, admin_headers):
    res = client.patch("/admin/bookings/missing/status", json={"status": "accepted"}, headers=admin_headers)
    assert res.status_code == 404


def test_admin_get_booking_and_invoice(client, admin_headers, outbox):
    booking_id = create_booking(client)

    res = client.get(f"/admin/bookings/{booking_id}", headers=admin_headers)
    assert res.get_json()["booking"]["id"] == booking_id

    res = client.post(f"/admin/bookings/{booking_id}/invoice", headers=admin_headers)
    assert res.status_code == 202
    assert outbox.subjects("Service complete") != []


def test_admin_stats_and_clients(client, admin_headers):
    booking_id = create_booking(client)
    create_booking(client)
    client.post("/payments/mpesa/push", json={"booking_id": booking_id})
    client.post("/payments/mpesa/callback", json=stk_callback(CHECKOUT_ID))

    stats = client.get("/admin/stats", headers=admin_headers).get_json()
    assert stats["total"] == 2
    assert stats["total_revenue"] == "1400.00"
    assert stats["total_items"] == 4

    clients = client.get("/admin/clients", headers=admin_headers).get_json()["clients"]
    assert len(clients) == 1
    assert clients[0]["bookings"] == 2
    assert clients[0]["total_spent"] == "2800.00"
