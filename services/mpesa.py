"""Safaricom Daraja (M-Pesa Express / STK push) client."""
import base64
import logging
import math
import re
import threading
import time
from datetime import datetime

import requests

from services.errors import PaymentProviderError

logger = logging.getLogger("seatclean.mpesa")

BASE_URLS = {
    "production": "https://api.safaricom.co.ke",
    "sandbox": "https://sandbox.safaricom.co.ke",
}

COUNTRY_CODE = "254"
_CANONICAL_PHONE = re.compile(r"^254\d{9}$")

PROCESSING_ERROR_CODE = "500.001.1001"

# refresh the cached token this many seconds before it expires
TOKEN_EXPIRY_MARGIN = 60


class MpesaError(PaymentProviderError):
    pass


class MpesaAuthError(MpesaError):
    pass


def normalize_phone(phone: str) -> str:
    """Normalize a Kenyan number to 2547XXXXXXXX."""
    cleaned = re.sub(r"[^0-9+]", "", phone or "")
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith(COUNTRY_CODE):
        normalized = cleaned
    elif cleaned.startswith("0"):
        normalized = COUNTRY_CODE + cleaned[1:]
    else:
        normalized = COUNTRY_CODE + cleaned
    if not _CANONICAL_PHONE.match(normalized):
        raise ValueError(f"Invalid phone number: {phone!r}")
    return normalized


def timestamp(now: datetime = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d%H%M%S")


def account_reference(prefix: str, booking_id: str) -> str:
    return f"{prefix}-{booking_id[-6:].upper()}"


class MpesaClient:

    def __init__(self, consumer_key, consumer_secret, shortcode, passkey, callback_url,
                 env="sandbox", timeout=15, session=None, clock=time.monotonic):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.base_url = BASE_URLS.get(env, BASE_URLS["sandbox"])
        self.timeout = timeout
        self.session = session or requests.Session()
        self._clock = clock
        self._token = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_config(cls, config, session=None):
        return cls(
            consumer_key=config.get("MPESA_CONSUMER_KEY"),
            consumer_secret=config.get("MPESA_CONSUMER_SECRET"),
            shortcode=config.get("MPESA_SHORTCODE"),
            passkey=config.get("MPESA_PASSKEY"),
            callback_url=config.get("MPESA_CALLBACK_URL"),
            env=config.get("MPESA_ENV", "sandbox"),
            timeout=config.get("MPESA_TIMEOUT_SECONDS", 15),
            session=session,
        )

    def get_access_token(self) -> str:
        """Client-credentials token, cached for its lifetime."""
        with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token

            if not self.consumer_key or not self.consumer_secret:
                raise MpesaAuthError("M-Pesa credentials not configured")

            try:
                res = self.session.get(
                    f"{self.base_url}/oauth/v1/generate",
                    params={"grant_type": "client_credentials"},
                    auth=(self.consumer_key, self.consumer_secret),
                    timeout=self.timeout,
                )
                res.raise_for_status()
                data = res.json()
            except (requests.RequestException, ValueError) as exc:
                logger.error(f"M-Pesa token request failed: {exc}")
                raise MpesaAuthError("Could not authenticate with M-Pesa") from exc

            token = data.get("access_token")
            if not token:
                raise MpesaAuthError("M-Pesa did not return an access token")

            lifetime = int(data.get("expires_in") or 3599)
            self._token = token
            self._token_expires_at = self._clock() + max(lifetime - TOKEN_EXPIRY_MARGIN, 0)
            return token

    def build_password(self, ts: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{ts}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    def _post(self, path: str, payload: dict, tolerate=()) -> dict:
        token = self.get_access_token()
        try:
            res = self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error(f"M-Pesa request to {path} failed: {exc}")
            raise MpesaError("M-Pesa is unreachable") from exc

        try:
            data = res.json()
        except ValueError:
            data = {"raw_response": res.text}

        if res.status_code >= 400 and data.get("errorCode") not in tolerate:
            message = data.get("errorMessage") or data.get("ResponseDescription") or f"M-Pesa returned {res.status_code}"
            logger.warning(f"M-Pesa {path} rejected ({res.status_code}): {data}")
            raise MpesaError(message)
        return data

    def initiate_push(self, phone: str, amount, booking_reference: str, description: str = None) -> dict:
        msisdn = normalize_phone(phone)
        ts = timestamp()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": self.build_password(ts),
            "Timestamp": ts,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(math.ceil(float(amount))),
            "PartyA": msisdn,
            "PartyB": self.shortcode,
            "PhoneNumber": msisdn,
            "CallBackURL": self.callback_url,
            "AccountReference": booking_reference,
            "TransactionDesc": description or "Seat Cleaning Payment",
        }
        data = self._post("/mpesa/stkpush/v1/processrequest", payload)

        if str(data.get("ResponseCode", "")) != "0" or not data.get("CheckoutRequestID"):
            raise MpesaError(data.get("ResponseDescription") or "M-Pesa rejected the push request")

        logger.info(f"STK push sent for {booking_reference}: {data.get('CheckoutRequestID')}")
        return {
            "checkout_request_id": data["CheckoutRequestID"],
            "merchant_request_id": data.get("MerchantRequestID"),
            "response_code": data.get("ResponseCode"),
            "response_description": data.get("ResponseDescription"),
        }

    def query_status(self, checkout_request_id: str) -> dict:
        """STK push query; a still-processing transaction is not an error."""
        ts = timestamp()
        return self._post("/mpesa/stkpushquery/v1/query", {
            "BusinessShortCode": self.shortcode,
            "Password": self.build_password(ts),
            "Timestamp": ts,
            "CheckoutRequestID": checkout_request_id,
        }, tolerate=(PROCESSING_ERROR_CODE,))
