"""PayPal REST (Orders v2) gateway adapter.

Authenticates with OAuth client credentials, creates and captures checkout
orders, and verifies webhook deliveries through PayPal's
``verify-webhook-signature`` endpoint. All requests carry a timeout.
"""

import json
import time

import requests
import structlog

from storefront.config import StorefrontSettings
from storefront.gateway.port import CaptureResult, CreateOrderResult, PaymentGateway

logger = structlog.get_logger(__name__)

_SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PayPalGateway(PaymentGateway):
    def __init__(self, settings: StorefrontSettings, session: requests.Session | None = None) -> None:
        if not settings.paypal_client_id or not settings.paypal_client_secret:
            raise ValueError("PayPal client id and secret are required")
        self.settings = settings
        self.base_url = settings.paypal_api_base
        self.timeout = settings.notifier_timeout_seconds
        self.session = session or requests.Session()
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------
    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        resp = self.session.post(
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.settings.paypal_client_id, self.settings.paypal_client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        self._token = data["access_token"]
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + max(int(data.get("expires_in", 0)) - 60, 0)
        return self._token

    def _post(self, path: str, payload: dict | None = None) -> requests.Response:
        return self.session.post(
            f"{self.base_url}{path}",
            json=payload if payload is not None else {},
            headers={
                "Authorization": f"Bearer {self._access_token()}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )

    @staticmethod
    def _error_reason(resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return f"HTTP {resp.status_code}"
        details = body.get("details") or []
        if details and isinstance(details[0], dict):
            return details[0].get("issue") or details[0].get("description") or body.get("name", "")
        return body.get("message") or body.get("name") or f"HTTP {resp.status_code}"

    # -------------------------------------------------------------------
    # Port implementation
    # -------------------------------------------------------------------
    def create_order(self, amount: float, currency: str, reference: str) -> CreateOrderResult:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference,
                    "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
                }
            ],
        }
        try:
            resp = self._post("/v2/checkout/orders", payload)
        except requests.RequestException as exc:
            logger.warning("paypal_create_order_failed", reference=reference, error=str(exc))
            return CreateOrderResult(success=False, failure_reason=str(exc))

        if resp.status_code >= 400:
            return CreateOrderResult(success=False, failure_reason=self._error_reason(resp))

        data = resp.json()
        approval_url = next((link["href"] for link in data.get("links", []) if link.get("rel") == "approve"), None)
        return CreateOrderResult(success=True, gateway_order_id=data.get("id"), approval_url=approval_url)

    def capture_order(self, gateway_order_id: str) -> CaptureResult:
        try:
            resp = self._post(f"/v2/checkout/orders/{gateway_order_id}/capture")
        except requests.RequestException as exc:
            logger.warning("paypal_capture_failed", gateway_order_id=gateway_order_id, error=str(exc))
            return CaptureResult(success=False, failure_reason=str(exc))

        if resp.status_code >= 400:
            return CaptureResult(success=False, gateway_status="ERROR", failure_reason=self._error_reason(resp))

        data = resp.json()
        units = data.get("purchase_units") or [{}]
        captures = (units[0].get("payments") or {}).get("captures") or [{}]
        capture = captures[0]
        status = capture.get("status") or data.get("status")
        if status != "COMPLETED":
            return CaptureResult(
                success=False,
                transaction_id=capture.get("id"),
                gateway_status=status,
                failure_reason=f"Capture status {status}",
            )

        amount = capture.get("amount") or {}
        payer = data.get("payer") or {}
        name = payer.get("name") or {}
        return CaptureResult(
            success=True,
            transaction_id=capture.get("id"),
            amount=float(amount.get("value", 0.0)),
            currency=amount.get("currency_code", "USD"),
            payer_info={
                "payer_id": payer.get("payer_id"),
                "email": payer.get("email_address"),
                "name": " ".join(p for p in (name.get("given_name"), name.get("surname")) if p),
            },
            gateway_status=status,
        )

    def verify_webhook_signature(self, headers: dict[str, str], body: str) -> bool:
        if not self.settings.paypal_webhook_id:
            logger.error("paypal_webhook_id_missing")
            return False

        lowered = {k.lower(): v for k, v in headers.items()}
        payload = {key: lowered.get(header) for key, header in _SIGNATURE_HEADERS.items()}
        if not all(payload.values()):
            return False
        payload["webhook_id"] = self.settings.paypal_webhook_id
        payload["webhook_event"] = json.loads(body)

        try:
            resp = self._post("/v1/notifications/verify-webhook-signature", payload)
        except requests.RequestException as exc:
            logger.warning("paypal_signature_check_failed", error=str(exc))
            return False
        if resp.status_code >= 400:
            return False
        return resp.json().get("verification_status") == "SUCCESS"
