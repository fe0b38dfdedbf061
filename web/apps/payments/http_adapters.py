"""HTTP client for the payment gateway with retries and a circuit breaker.

``HttpGatewayClient`` implements ``PaymentGatewayPort`` against a
Razorpay-compatible REST API using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- A circuit breaker for the provider, so a sick gateway fails fast instead
  of tying up worker threads until their timeouts.
- Retries with exponential backoff on transport errors and 5xx, applied
  only to idempotent reads (``fetch_payment_details``). Creating intents and
  refunds are never retried: a timed-out mutating call may have succeeded
  upstream, so it surfaces as ``GatewayError`` and the order is left as it
  was.

Signature checks are local HMAC computations and never hit the network.
"""

import logging
import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from apps.core import errors
from gateway.middleware import REQUEST_ID_CTX
from . import signatures
from .domain import PaymentDetails, PaymentGatewayPort, PaymentIntent, RefundResult

logger = logging.getLogger("payments")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe re-opens the breaker.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Admit or refuse a protected call.

        Raises:
            GatewayError: ``CIRCUIT_OPEN`` when open, or when a HALF_OPEN
                probe is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise errors.GatewayError("CIRCUIT_OPEN", f"{self.name} circuit is open")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise errors.GatewayError("CIRCUIT_OPEN", f"{self.name} circuit probe in flight")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


_gateway_cb = CircuitBreaker(
    "payment-gateway",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


def gateway_circuit_state() -> str:
    return _gateway_cb.state


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # Retry only on transport errors or 5xx
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _error_from_response(resp: httpx.Response, action: str) -> errors.GatewayError:
    description = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        description = body["error"].get("description")
    code = "GATEWAY_REJECTED" if 400 <= resp.status_code < 500 else "GATEWAY_UNAVAILABLE"
    return errors.GatewayError(code, f"{action} failed with HTTP {resp.status_code}: {description or 'no detail'}")


def _entity_body(resp: httpx.Response, action: str) -> dict:
    """Decode a 2xx gateway entity; it must be a JSON object carrying an ``id``.

    Raises:
        GatewayError: ``GATEWAY_BAD_RESPONSE`` for anything else.
    """
    try:
        data = resp.json()
    except ValueError:
        data = None
    if not isinstance(data, dict) or not data.get("id"):
        logger.error("gateway bad response", extra={"action": action, "status": resp.status_code})
        raise errors.GatewayError("GATEWAY_BAD_RESPONSE", f"{action} returned an unexpected body")
    return data


# ---------------- Gateway Adapter ---------------- #

class HttpGatewayClient(PaymentGatewayPort):
    """Razorpay-compatible REST client.

    Endpoints used: ``POST /orders``, ``GET /payments/{id}`` and
    ``POST /payments/{id}/refund``, authenticated with HTTP basic auth
    (key id / key secret).
    """

    def __init__(
        self,
        base_url: str | None = None,
        key_id: str | None = None,
        key_secret: str | None = None,
        webhook_secret: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_BASE_URL).rstrip("/")
        self.key_id = key_id or settings.PAYMENT_GATEWAY_KEY_ID
        self.key_secret = key_secret or settings.PAYMENT_GATEWAY_KEY_SECRET
        self.webhook_secret = webhook_secret or settings.PAYMENT_GATEWAY_WEBHOOK_SECRET
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, auth=(self.key_id, self.key_secret))

    def _post_once(self, path: str, payload: dict, action: str) -> dict:
        """Single-attempt POST for mutating calls; maps failures to GatewayError."""
        state = _gateway_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state})
        try:
            with self._client() as client:
                try:
                    resp = client.post(f"{self.base_url}{path}", json=payload, headers=headers)
                except httpx.TimeoutException as e:
                    _gateway_cb.on_failure()
                    logger.error("gateway timeout", extra={"action": action})
                    raise errors.GatewayError("GATEWAY_TIMEOUT", f"{action} timed out") from e
                except httpx.RequestError as e:
                    _gateway_cb.on_failure()
                    logger.error("gateway unreachable", extra={"action": action, "error": str(e)})
                    raise errors.GatewayError("GATEWAY_UNAVAILABLE", f"{action} failed: {e}") from e

                if resp.status_code >= 500:
                    _gateway_cb.on_failure()
                    raise _error_from_response(resp, action)
                # 4xx is a business answer, not a sick provider
                _gateway_cb.on_success()
                if resp.status_code >= 400:
                    raise _error_from_response(resp, action)
                return _entity_body(resp, action)
        finally:
            _gateway_cb.on_finish()

    def create_intent(self, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> PaymentIntent:
        payload = {"amount": amount_minor, "currency": currency, "receipt": receipt, "notes": notes or {}}
        data = self._post_once("/orders", payload, "create order")
        logger.info("gateway order created", extra={"gateway_order_id": data.get("id"), "receipt": receipt})
        return PaymentIntent(
            id=data["id"],
            amount_minor=int(data.get("amount", amount_minor)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )

    def verify_client_signature(self, intent_id: str, payment_id: str, signature: str) -> bool:
        return signatures.verify_client_signature(self.key_secret, intent_id, payment_id, signature)

    def verify_webhook_signature(self, raw_body: bytes, signature_header: str | None) -> bool:
        return signatures.verify_webhook_signature(self.webhook_secret, raw_body, signature_header)

    def fetch_payment_details(self, payment_id: str) -> PaymentDetails:
        """Fetch a payment, retrying transport errors and 5xx with backoff.

        Raises:
            GatewayError: After retries are exhausted, or on a 4xx answer.
        """
        max_attempts, backoff = _retry_policy()
        tries = 0

        state = _gateway_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with self._client() as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.get(f"{self.base_url}/payments/{payment_id}", headers=headers)
                        if resp.status_code == 200:
                            _gateway_cb.on_success()
                            return PaymentDetails.from_entity(_entity_body(resp, "fetch payment"))
                        if not _should_retry(resp, None):
                            _gateway_cb.on_success()
                            raise _error_from_response(resp, "fetch payment")
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_attempts:
                        _gateway_cb.on_failure()
                        if exc is not None:
                            raise errors.GatewayError("GATEWAY_UNAVAILABLE", f"fetch payment failed: {exc}") from exc
                        raise _error_from_response(resp, "fetch payment")

                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    time.sleep(min(sleep_s, cap))
        finally:
            _gateway_cb.on_finish()

    def refund(self, payment_id: str, amount_minor: int | None = None, notes: dict | None = None) -> RefundResult:
        payload: dict = {}
        if amount_minor is not None:
            payload["amount"] = amount_minor
        if notes:
            payload["notes"] = notes
        data = self._post_once(f"/payments/{payment_id}/refund", payload, "refund")
        logger.info("gateway refund created", extra={"refund_id": data.get("id"), "payment_id": payment_id})
        amount = data.get("amount")
        return RefundResult(
            id=data["id"],
            payment_id=data.get("payment_id", payment_id),
            amount_minor=int(amount) if amount is not None else None,
            status=data.get("status", "processed"),
            raw=data,
        )
