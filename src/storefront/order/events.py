"""Order domain events: immutable facts about payment and delivery progress."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """A customer checked out; payment has not been captured yet."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier()
    customer_email = String(required=True)
    item_count = Integer(required=True)
    total = Float(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaid:
    """Payment was captured (or the order was free)."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    payment_status = String(required=True)
    transaction_id = String()
    amount = Float(required=True)
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    failed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentHeld:
    """The gateway reported the capture as pending."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    held_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentDenied:
    """The gateway denied the capture; the order was cancelled."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    denied_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ItemAutoDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    item_index = Integer(required=True)
    product_id = Identifier(required=True)
    note = Text()
    delivered_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ItemAwaitingCustomization:
    __version__ = 1

    order_id = Identifier(required=True)
    item_index = Integer(required=True)
    product_id = Identifier(required=True)
    note = Text()
    flagged_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ItemPendingReview:
    """A free-order item with customer-supplied customization awaits admin review."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_index = Integer(required=True)
    product_id = Identifier(required=True)
    note = Text()
    flagged_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCompleted:
    """Every item was auto-delivered."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    download_expiry = DateTime()
    completed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderAwaitingCustomization:
    """At least one item needs custom artwork before the order can complete."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    pending_item_count = Integer(required=True)
    partially_delivered = Boolean(default=False)
    flagged_at = DateTime(required=True)


@storefront.event(part_of="Order")
class FulfillmentFailed:
    """Fulfillment stopped on an unexpected error; the order fell back to processing."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = Text()
    failed_at = DateTime(required=True)
