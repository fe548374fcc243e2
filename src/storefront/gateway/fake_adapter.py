"""Configurable fake payment gateway for development and testing.

Simulates the provider without any network calls. Configure it at runtime to
succeed or fail; every call is recorded in ``calls``.
"""

from uuid import uuid4

from storefront.gateway.port import CaptureResult, CreateOrderResult, PaymentGateway

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Payment declined"
        self.capture_amount: float | None = None
        self.orders: dict[str, float] = {}
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Payment declined",
        capture_amount: float | None = None,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.capture_amount = capture_amount

    def create_order(self, amount: float, currency: str, reference: str) -> CreateOrderResult:
        self.calls.append({"method": "create_order", "amount": amount, "currency": currency, "reference": reference})
        if not self.should_succeed:
            return CreateOrderResult(success=False, failure_reason=self.failure_reason)

        gateway_order_id = f"fake_order_{uuid4().hex[:12]}"
        self.orders[gateway_order_id] = amount
        return CreateOrderResult(
            success=True,
            gateway_order_id=gateway_order_id,
            approval_url=f"https://fake-gateway.local/checkout/{gateway_order_id}",
        )

    def capture_order(self, gateway_order_id: str) -> CaptureResult:
        self.calls.append({"method": "capture_order", "gateway_order_id": gateway_order_id})
        if not self.should_succeed:
            return CaptureResult(success=False, gateway_status="DECLINED", failure_reason=self.failure_reason)

        amount = self.capture_amount
        if amount is None:
            amount = self.orders.get(gateway_order_id, 0.0)
        return CaptureResult(
            success=True,
            transaction_id=f"fake_capture_{uuid4().hex[:12]}",
            amount=amount,
            payer_info={"payer_id": "FAKEPAYER", "email": "buyer@example.com"},
            gateway_status="COMPLETED",
        )

    def verify_webhook_signature(self, headers: dict[str, str], body: str) -> bool:  # noqa: ARG002
        return headers.get("paypal-transmission-sig") == TEST_SIGNATURE

    def reset(self) -> None:
        self.should_succeed = True
        self.failure_reason = "Payment declined"
        self.capture_amount = None
        self.orders.clear()
        self.calls.clear()
