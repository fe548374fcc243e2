"""Order aggregate (CQRS): a customer purchase of digital design products.

The order owns its line items, payment and delivery status fields, an
append-only history log, and the log of payment-provider webhook events it
has seen. After payment, the fulfillment pipeline is the only writer.

Status fields:
    payment_status:        pending → {paid, free, failed}; failed → paid; paid → refunded
    order_status:          pending → processing → {completed, awaiting_customization}
                           pending → cancelled (payment denied)
    customization_status:  none | pending | processing | completed

Item delivery_status is pending until a fulfillment pass sets it to
auto_delivered or awaiting_customization.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from storefront.domain import storefront
from storefront.order.events import (
    FulfillmentFailed,
    ItemAutoDelivered,
    ItemAwaitingCustomization,
    ItemPendingReview,
    OrderAwaitingCustomization,
    OrderCompleted,
    OrderPaid,
    OrderPlaced,
    PaymentDenied,
    PaymentFailed,
    PaymentHeld,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FREE = "free"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    AWAITING_CUSTOMIZATION = "awaiting_customization"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CustomizationStatus(Enum):
    NONE = "none"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class DeliveryStatus(Enum):
    PENDING = "pending"
    AUTO_DELIVERED = "auto_delivered"
    AWAITING_CUSTOMIZATION = "awaiting_customization"


_SETTLED_PAYMENT_STATUSES = {PaymentStatus.PAID.value, PaymentStatus.FREE.value}
_PAYABLE_FROM = {PaymentStatus.PENDING.value, PaymentStatus.FAILED.value}


def _load_json_list(raw: str | None) -> list:
    if not raw:
        return []
    value = json.loads(raw)
    return value if isinstance(value, list) else []


def _item_note(item, label: str, note: str | None) -> str:
    text = f"Item {item.position} ({item.product_name}) {label}"
    return f"{text}: {note}" if note else text


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class Customizations:
    """What the customer asked to change on a purchased design.

    List-shaped parts are held as JSON text:
        colors:          [{"name": "Red", "hex": "#FF0000"}, ...]
        text_changes:    [{"field": "headline", "value": "Grand Opening"}, ...]
        uploaded_images: [{"url": "...", "public_id": "..."}, ...]
    """

    colors = Text()
    text_changes = Text()
    uploaded_images = Text()
    uploaded_logo_url = String(max_length=1000)
    uploaded_logo_public_id = String(max_length=255)
    customization_notes = Text()

    @classmethod
    def from_dict(cls, data: dict | None):
        """Build from the checkout payload shape; ``None`` when nothing was supplied."""
        if not data:
            return None
        logo = data.get("uploaded_logo") or {}
        return cls(
            colors=json.dumps(data.get("colors") or []),
            text_changes=json.dumps(data.get("text_changes") or []),
            uploaded_images=json.dumps(data.get("uploaded_images") or []),
            uploaded_logo_url=logo.get("url"),
            uploaded_logo_public_id=logo.get("public_id"),
            customization_notes=data.get("customization_notes"),
        )

    def color_choices(self) -> list[dict]:
        return [c for c in _load_json_list(self.colors) if isinstance(c, dict)]

    def text_change_list(self) -> list[dict]:
        return _load_json_list(self.text_changes)

    def image_list(self) -> list[dict]:
        return _load_json_list(self.uploaded_images)

    def has_real_customization(self) -> bool:
        """Text, images, a logo or notes. Colour choices alone never count."""
        return bool(
            self.text_change_list()
            or self.image_list()
            or (self.uploaded_logo_url or "").strip()
            or (self.customization_notes or "").strip()
        )

    def to_dict(self) -> dict:
        return {
            "colors": self.color_choices(),
            "text_changes": self.text_change_list(),
            "uploaded_images": self.image_list(),
            "uploaded_logo": {"url": self.uploaded_logo_url, "public_id": self.uploaded_logo_public_id}
            if self.uploaded_logo_url
            else None,
            "customization_notes": self.customization_notes,
        }


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    """One purchased line, with a snapshot of the product at checkout time."""

    position = Integer(required=True, min_value=0)
    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    quantity = Integer(default=1, min_value=1)
    unit_price = Float(default=0.0, min_value=0.0)
    total_price = Float(default=0.0, min_value=0.0)
    enable_customizations = Boolean(default=False)
    has_customizations = Boolean(default=False)
    customizations = ValueObject(Customizations)
    delivery_status = String(
        max_length=50,
        choices=DeliveryStatus,
        default=DeliveryStatus.PENDING.value,
    )
    delivery_notes = Text()

    def color_choices(self) -> list[dict]:
        return self.customizations.color_choices() if self.customizations else []

    def has_real_customization(self) -> bool:
        return bool(self.customizations and self.customizations.has_real_customization())


@storefront.entity(part_of="Order")
class OrderHistoryEntry:
    status = String(required=True, max_length=100)
    note = Text()
    changed_by = String(max_length=255, default="system")
    recorded_at = DateTime(required=True)


@storefront.entity(part_of="Order")
class WebhookEventRecord:
    """A payment-provider webhook delivery, kept for replay de-duplication."""

    event_id = String(required=True, max_length=255)
    event_type = String(required=True, max_length=100)
    received_at = DateTime(required=True)
    processed = Boolean(default=False)
    payload = Text()


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    customer_id = Identifier()
    customer_name = String(max_length=255)
    customer_email = String(required=True, max_length=255)
    items = HasMany(OrderItem)
    subtotal = Float(default=0.0, min_value=0.0)
    promo_code = String(max_length=50)
    promo_discount = Float(default=0.0, min_value=0.0)
    total = Float(default=0.0, min_value=0.0)
    currency = String(max_length=3, default="USD")
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    order_status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    customization_status = String(choices=CustomizationStatus, default=CustomizationStatus.NONE.value)
    gateway_order_id = String(max_length=255)
    capture_id = String(max_length=255)
    transaction_id = String(max_length=255)
    payer_info = Text()  # JSON dict from the gateway
    paid_at = DateTime()
    download_expiry = DateTime()
    order_history = HasMany(OrderHistoryEntry)
    webhook_events = HasMany(WebhookEventRecord)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def completed_orders_have_every_item_delivered(self):
        if self.order_status != OrderStatus.COMPLETED.value:
            return
        undelivered = [i for i in (self.items or []) if i.delivery_status != DeliveryStatus.AUTO_DELIVERED.value]
        if undelivered:
            raise ValidationError({"order_status": [f"{len(undelivered)} item(s) have not been delivered"]})

    @invariant.post
    def awaiting_orders_have_an_awaiting_item(self):
        if self.order_status != OrderStatus.AWAITING_CUSTOMIZATION.value:
            return
        if not any(i.delivery_status == DeliveryStatus.AWAITING_CUSTOMIZATION.value for i in (self.items or [])):
            raise ValidationError({"order_status": ["No item is awaiting customization"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @staticmethod
    def generate_order_number(now: datetime | None = None) -> str:
        now = now or datetime.now(UTC)
        return f"PD-{now.year}-{uuid4().hex[:8].upper()}"

    @classmethod
    def create(
        cls,
        customer_email: str,
        items_data: list[dict],
        customer_id: str | None = None,
        customer_name: str | None = None,
        promo_code: str | None = None,
        promo_discount: float = 0.0,
        total: float | None = None,
        currency: str = "USD",
        gateway_order_id: str | None = None,
    ):
        """Create an unpaid order from checkout data.

        Each item dict must say whether the product supported customization at
        purchase time (``enable_customizations``); delivery decisions rely on
        that snapshot and never consult the live product.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        order = cls(
            order_number=cls.generate_order_number(now),
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            promo_code=promo_code,
            promo_discount=promo_discount or 0.0,
            currency=currency,
            gateway_order_id=gateway_order_id,
            payment_status=PaymentStatus.PENDING.value,
            order_status=OrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )

        subtotal = 0.0
        for position, data in enumerate(items_data):
            if data.get("enable_customizations") is None:
                raise ValidationError(
                    {"items": [f"Item {position} is missing its enable_customizations snapshot"]}
                )
            quantity = data.get("quantity") or 1
            unit_price = data.get("unit_price") or 0.0
            line_total = data.get("total_price")
            if line_total is None:
                line_total = round(unit_price * quantity, 2)
            subtotal += line_total
            order.add_items(
                OrderItem(
                    position=position,
                    product_id=data["product_id"],
                    product_name=data["product_name"],
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=line_total,
                    enable_customizations=bool(data["enable_customizations"]),
                    has_customizations=bool(data.get("has_customizations")),
                    customizations=Customizations.from_dict(data.get("customizations")),
                )
            )

        order.subtotal = round(subtotal, 2)
        computed_total = round(max(subtotal - order.promo_discount, 0.0), 2)
        order.total = computed_total if total is None else total
        if order.total < 0:
            raise ValidationError({"total": ["Order total cannot be negative"]})

        if any(item.has_real_customization() for item in order.items):
            order.customization_status = CustomizationStatus.PENDING.value

        order.record_history(OrderStatus.PENDING.value, "Order placed", changed_by="customer")
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=customer_id,
                customer_email=customer_email,
                item_count=len(items_data),
                total=order.total,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_settled(self) -> bool:
        """Payment already captured, or the order was free."""
        return self.payment_status in _SETTLED_PAYMENT_STATUSES

    @property
    def is_free(self) -> bool:
        return (self.total or 0.0) == 0

    def sorted_items(self) -> list[OrderItem]:
        return sorted(self.items or [], key=lambda i: i.position)

    def item_at(self, item_index: int) -> OrderItem:
        item = next((i for i in (self.items or []) if i.position == item_index), None)
        if item is None:
            raise ValidationError({"item_index": [f"Order has no item at index {item_index}"]})
        return item

    def items_with_status(self, status: DeliveryStatus) -> list[OrderItem]:
        return [i for i in self.sorted_items() if i.delivery_status == status.value]

    def webhook_event(self, event_id: str) -> WebhookEventRecord | None:
        return next((e for e in (self.webhook_events or []) if e.event_id == event_id), None)

    def has_webhook_event(self, event_id: str) -> bool:
        return self.webhook_event(event_id) is not None

    # -------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------
    def record_history(self, status: str, note: str | None = None, changed_by: str = "system") -> None:
        now = datetime.now(UTC)
        self.add_order_history(
            OrderHistoryEntry(
                status=status,
                note=note,
                changed_by=changed_by,
                recorded_at=now,
            )
        )
        self.updated_at = now

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment(
        self,
        transaction_id: str | None,
        amount: float,
        payer_info: dict | None = None,
        capture_id: str | None = None,
    ) -> None:
        """Mark the order paid (or free, for zero amount) and move it to processing."""
        if self.payment_status not in _PAYABLE_FROM:
            raise ValidationError({"payment_status": [f"Cannot record payment on a {self.payment_status} order"]})

        now = datetime.now(UTC)
        is_free = amount == 0
        status = PaymentStatus.FREE if is_free else PaymentStatus.PAID
        self.payment_status = status.value
        self.transaction_id = transaction_id
        if capture_id:
            self.capture_id = capture_id
        if payer_info:
            self.payer_info = json.dumps(payer_info)
        self.paid_at = now
        self.order_status = OrderStatus.PROCESSING.value
        note = "Free order completed" if is_free else f"Payment captured ({transaction_id})"
        self.record_history(OrderStatus.PROCESSING.value, note)
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                order_number=self.order_number,
                payment_status=status.value,
                transaction_id=transaction_id,
                amount=amount,
                paid_at=now,
            )
        )

    def record_payment_failure(self, reason: str) -> None:
        if self.is_settled:
            raise ValidationError({"payment_status": ["Payment has already been captured"]})
        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self.record_history("payment_failed", reason)
        self.raise_(PaymentFailed(order_id=str(self.id), reason=reason, failed_at=now))

    def mark_payment_pending(self, note: str) -> None:
        """Gateway reports the capture as held (e.g. eCheck, review)."""
        if self.is_settled:
            raise ValidationError({"payment_status": ["Payment has already been captured"]})
        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PENDING.value
        self.record_history("payment_pending", note)
        self.raise_(PaymentHeld(order_id=str(self.id), reason=note, held_at=now))

    def mark_payment_denied(self, note: str) -> None:
        if self.is_settled:
            raise ValidationError({"payment_status": ["Payment has already been captured"]})
        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self.order_status = OrderStatus.CANCELLED.value
        self.record_history(OrderStatus.CANCELLED.value, note)
        self.raise_(PaymentDenied(order_id=str(self.id), reason=note, denied_at=now))

    # -------------------------------------------------------------------
    # Item delivery transitions
    # -------------------------------------------------------------------
    def _set_item_delivery(self, item_index: int, status: DeliveryStatus, note: str | None) -> OrderItem | None:
        """Set an item's delivery status. Returns the item if anything changed."""
        item = self.item_at(item_index)
        if item.delivery_status == status.value and item.delivery_notes == note:
            return None
        item.delivery_status = status.value
        item.delivery_notes = note
        return item

    def mark_item_auto_delivered(self, item_index: int, note: str | None = None) -> bool:
        item = self._set_item_delivery(item_index, DeliveryStatus.AUTO_DELIVERED, note)
        if item is None:
            return False
        now = datetime.now(UTC)
        self.record_history("item_auto_delivered", _item_note(item, "auto-delivered", note))
        self.raise_(
            ItemAutoDelivered(
                order_id=str(self.id),
                item_index=item_index,
                product_id=str(item.product_id),
                note=note,
                delivered_at=now,
            )
        )
        return True

    def mark_item_awaiting_customization(self, item_index: int, note: str | None = None) -> bool:
        item = self._set_item_delivery(item_index, DeliveryStatus.AWAITING_CUSTOMIZATION, note)
        if item is None:
            return False
        now = datetime.now(UTC)
        self.record_history("item_awaiting_customization", _item_note(item, "awaiting customization", note))
        self.raise_(
            ItemAwaitingCustomization(
                order_id=str(self.id),
                item_index=item_index,
                product_id=str(item.product_id),
                note=note,
                flagged_at=now,
            )
        )
        return True

    def mark_item_pending_review(self, item_index: int, note: str | None = None) -> bool:
        """Free orders only: the customer sent customization data an admin must review."""
        item = self._set_item_delivery(item_index, DeliveryStatus.PENDING, note)
        if item is None:
            return False
        now = datetime.now(UTC)
        self.record_history("item_pending_review", _item_note(item, "pending review", note))
        self.raise_(
            ItemPendingReview(
                order_id=str(self.id),
                item_index=item_index,
                product_id=str(item.product_id),
                note=note,
                flagged_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Order-level delivery outcomes
    # -------------------------------------------------------------------
    def open_downloads(self, expires_at: datetime) -> None:
        self.download_expiry = expires_at
        self.updated_at = datetime.now(UTC)

    def complete_delivery(self) -> None:
        """All items were auto-delivered."""
        now = datetime.now(UTC)
        self.order_status = OrderStatus.COMPLETED.value
        self.customization_status = CustomizationStatus.COMPLETED.value
        self.record_history(OrderStatus.COMPLETED.value, "All items delivered automatically")
        self.raise_(
            OrderCompleted(
                order_id=str(self.id),
                order_number=self.order_number,
                download_expiry=self.download_expiry,
                completed_at=now,
            )
        )

    def await_customization(self) -> None:
        now = datetime.now(UTC)
        awaiting = self.items_with_status(DeliveryStatus.AWAITING_CUSTOMIZATION)
        delivered = self.items_with_status(DeliveryStatus.AUTO_DELIVERED)
        self.order_status = OrderStatus.AWAITING_CUSTOMIZATION.value
        self.customization_status = CustomizationStatus.PENDING.value
        note = f"{len(awaiting)} item(s) require custom work"
        if delivered:
            note += f"; {len(delivered)} item(s) delivered"
        self.record_history(OrderStatus.AWAITING_CUSTOMIZATION.value, note)
        self.raise_(
            OrderAwaitingCustomization(
                order_id=str(self.id),
                order_number=self.order_number,
                pending_item_count=len(awaiting),
                partially_delivered=bool(delivered),
                flagged_at=now,
            )
        )

    def hold_for_review(self) -> None:
        """Free orders whose customization data an admin must review first."""
        self.order_status = OrderStatus.PROCESSING.value
        self.customization_status = CustomizationStatus.PENDING.value
        self.record_history(OrderStatus.PROCESSING.value, "Customization data submitted, awaiting admin review")

    def mark_fulfillment_failed(self, reason: str) -> None:
        """Fall back to a recoverable state after an unexpected fulfillment error."""
        now = datetime.now(UTC)
        self.order_status = OrderStatus.PROCESSING.value
        self.customization_status = CustomizationStatus.PENDING.value
        self.record_history("fulfillment_error", reason)
        self.raise_(FulfillmentFailed(order_id=str(self.id), reason=reason, failed_at=now))

    # -------------------------------------------------------------------
    # Webhook event log
    # -------------------------------------------------------------------
    def log_webhook_event(self, event_id: str, event_type: str, payload: str | None = None) -> None:
        if self.has_webhook_event(event_id):
            raise ValidationError({"webhook_events": [f"Webhook event {event_id} already recorded"]})
        self.add_webhook_events(
            WebhookEventRecord(
                event_id=event_id,
                event_type=event_type,
                received_at=datetime.now(UTC),
                processed=False,
                payload=payload,
            )
        )

    def mark_webhook_processed(self, event_id: str) -> None:
        record = self.webhook_event(event_id)
        if record is None:
            raise ValidationError({"webhook_events": [f"Unknown webhook event {event_id}"]})
        record.processed = True
