import hashlib
import hmac
import logging
from decimal import Decimal
from urllib.parse import quote

import requests
from django.conf import settings

from apps.common.exceptions import UpstreamProviderError

logger = logging.getLogger(__name__)

MINOR_UNITS = Decimal("100")


def to_minor_units(amount):
    return int((Decimal(str(amount)) * MINOR_UNITS).quantize(Decimal("1")))


def from_minor_units(value):
    return (Decimal(str(value or 0)) / MINOR_UNITS).quantize(Decimal("0.01"))


class PaystackClient:
    """Single-attempt wrapper around the Paystack REST API."""

    provider = "paystack"

    def __init__(self, secret_key=None, base_url=None, timeout=None):
        self.secret_key = settings.PAYSTACK_SECRET_KEY if secret_key is None else secret_key
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT_SECONDS

    def _headers(self):
        if not self.secret_key:
            raise UpstreamProviderError("Paystack secret key not configured", provider=self.provider, status_code=500)
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method, path, payload=None, allowed_statuses=()):
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.error("Paystack %s %s transport error: %s", method, path, exc)
            raise UpstreamProviderError("Payment provider is unreachable", provider=self.provider)

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        if response.status_code in allowed_statuses:
            return response.status_code, body

        if not response.ok or body.get("status") is not True:
            message = (body.get("message") or f"HTTP {response.status_code}").strip()
            logger.error("Paystack %s %s failed (%s): %s", method, path, response.status_code, message)
            status_code = 400 if 400 <= response.status_code < 500 else 502
            raise UpstreamProviderError(message, provider=self.provider, status_code=status_code)
        return response.status_code, body

    def initialize_transaction(self, *, email, amount, metadata, currency=None, callback_url=None, reference=None):
        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "currency": currency or settings.PAYSTACK_CURRENCY,
            "metadata": metadata,
        }
        callback_url = callback_url or settings.PAYSTACK_CALLBACK_URL
        if callback_url:
            payload["callback_url"] = callback_url
        if reference:
            payload["reference"] = reference
        _, body = self._request("POST", "/transaction/initialize", payload)
        return body.get("data") or {}

    def verify_transaction(self, reference):
        _, body = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        return body.get("data") or {}

    def create_customer(self, *, email, first_name, last_name, metadata=None):
        payload = {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "metadata": metadata or {},
        }
        _, body = self._request("POST", "/customer", payload, allowed_statuses=(400,))
        return (body.get("data") or {}).get("customer_code")

    def fetch_customer(self, email):
        _, body = self._request("GET", f"/customer/{quote(email, safe='')}")
        return (body.get("data") or {}).get("customer_code")

    def create_dedicated_account(self, *, customer_code, preferred_bank=None):
        payload = {
            "customer": customer_code,
            "preferred_bank": preferred_bank or settings.PAYSTACK_PREFERRED_BANK,
        }
        _, body = self._request("POST", "/dedicated_account", payload)
        return body.get("data") or {}

    def verify_webhook_signature(self, raw_body, signature):
        if not signature or not self.secret_key:
            return False
        expected = hmac.new(self.secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)
