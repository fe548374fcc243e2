"""Payment gateway port (abstract interface).

The contract every payment-provider adapter implements. Fulfillment only
needs the capture outcome and a transaction id to persist; the provider's
SDK and REST details stay behind this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CreateOrderResult:
    """Result of opening a checkout session with the provider."""

    success: bool
    gateway_order_id: str | None = None
    approval_url: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class CaptureResult:
    """Result of capturing an approved checkout."""

    success: bool
    transaction_id: str | None = None
    amount: float = 0.0
    currency: str = "USD"
    payer_info: dict = field(default_factory=dict)
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_order(self, amount: float, currency: str, reference: str) -> CreateOrderResult:
        """Open a checkout with the provider for the given amount."""
        ...

    @abstractmethod
    def capture_order(self, gateway_order_id: str) -> CaptureResult:
        """Capture funds for an approved checkout."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, headers: dict[str, str], body: str) -> bool:
        """Verify that a webhook delivery really came from the provider."""
        ...
