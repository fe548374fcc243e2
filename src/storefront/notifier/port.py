"""Notifier port (abstract interface) and the messages it carries.

Fulfillment hands the notifier fully-built messages; adapters decide how to
render and deliver them (in-memory for tests, SMTP plus an admin webhook in
production). Every call reports its outcome as a dict with a ``status`` key
("sent" or "failed") rather than raising for delivery problems.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime


@dataclass(frozen=True)
class DownloadLink:
    file_name: str
    url: str
    product_name: str | None = None


@dataclass(frozen=True)
class PendingItem:
    product_name: str
    reason: str


@dataclass(frozen=True)
class CompletedOrderMessage:
    """Files-ready email for auto-delivered items."""

    order_number: str
    download_links: tuple[DownloadLink, ...]
    expires_at: datetime
    customer_name: str | None = None


@dataclass(frozen=True)
class CustomizationProcessingMessage:
    """Customization-in-progress email listing the items still pending."""

    order_number: str
    pending_items: tuple[PendingItem, ...] = field(default_factory=tuple)
    customer_name: str | None = None
    missing_customization_data: bool = False


@dataclass(frozen=True)
class AdminOrderNotice:
    order_id: str
    order_number: str
    is_free_order: bool
    has_customizations: bool
    auto_completed: bool
    customer_email: str | None = None
    total: float = 0.0

    def to_payload(self) -> dict:
        return {
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "isFreeOrder": self.is_free_order,
            "hasCustomizations": self.has_customizations,
            "autoCompleted": self.auto_completed,
        }


class Notifier(ABC):
    """Abstract customer/admin notification interface."""

    @abstractmethod
    def send_completed_order_email(self, customer_email: str, message: CompletedOrderMessage) -> dict:
        """Tell the customer their files are ready to download."""
        ...

    @abstractmethod
    def send_customization_processing_email(
        self,
        customer_email: str,
        message: CustomizationProcessingMessage,
    ) -> dict:
        """Tell the customer which items are waiting on custom work."""
        ...

    @abstractmethod
    def send_admin_new_order_notification(self, notice: AdminOrderNotice) -> dict:
        """Tell the shop admin a paid (or free) order came in."""
        ...


def as_context(message) -> dict:
    """Shallow field dict of a message, the shape templates render from."""
    return {f.name: getattr(message, f.name) for f in fields(message)}
