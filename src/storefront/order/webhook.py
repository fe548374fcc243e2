"""PayPal webhook processing.

Each delivery is matched to an order (provider order id first, then capture
id), recorded in the order's webhook event log and dispatched on its type.
PayPal redelivers until it gets a 2xx, so a processed event id is acknowledged
as a duplicate without touching the order again. An event that failed midway
stays unprocessed and is retried on redelivery.
"""

import json
from dataclasses import dataclass, field
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.delivery.locks import order_lock
from storefront.delivery.orchestrator import FulfillmentResult, PaymentContext, get_orchestrator
from storefront.order.order import Order

logger = structlog.get_logger(__name__)


class PayPalEventType(Enum):
    CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
    CAPTURE_PENDING = "PAYMENT.CAPTURE.PENDING"
    CAPTURE_DENIED = "PAYMENT.CAPTURE.DENIED"


@dataclass(frozen=True)
class PayPalWebhookEvent:
    event_id: str
    event_type: str
    resource_id: str | None = None
    gateway_order_id: str | None = None
    amount: float | None = None
    status: str | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "PayPalWebhookEvent":
        resource = payload.get("resource") or {}
        related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
        amount = (resource.get("amount") or {}).get("value")
        return cls(
            event_id=payload["id"],
            event_type=payload["event_type"],
            resource_id=resource.get("id"),
            gateway_order_id=related.get("order_id"),
            amount=float(amount) if amount is not None else None,
            status=resource.get("status"),
            raw=payload,
        )


@dataclass(frozen=True)
class WebhookOutcome:
    order_id: str
    action: str  # completed, already_processed, payment_pending, payment_denied, recorded, duplicate
    fulfillment: FulfillmentResult | None = None


def process_webhook_event(event: PayPalWebhookEvent) -> WebhookOutcome:
    repo = current_domain.repository_for(Order)
    located = repo.find_by_gateway_reference(event.gateway_order_id, event.resource_id)
    if located is None:
        raise ObjectNotFoundError(
            f"No order matches PayPal order {event.gateway_order_id} / capture {event.resource_id}"
        )
    order_id = str(located.id)
    log = logger.bind(order_id=order_id, event_id=event.event_id, event_type=event.event_type)

    with order_lock(order_id):
        order = repo.get(order_id)
        record = order.webhook_event(event.event_id)
        if record is not None and record.processed:
            log.info("webhook_duplicate_ignored")
            return WebhookOutcome(order_id=order_id, action="duplicate")
        if record is None:
            order.log_webhook_event(event.event_id, event.event_type, json.dumps(event.raw))
            repo.add(order)

        try:
            fulfillment = None
            if event.event_type == PayPalEventType.CAPTURE_COMPLETED.value:
                fulfillment = get_orchestrator().fulfill(
                    order_id,
                    PaymentContext(
                        transaction_id=event.resource_id,
                        amount=event.amount if event.amount is not None else (order.total or 0.0),
                        capture_id=event.resource_id,
                        source="webhook",
                    ),
                )

            order = repo.get(order_id)
            action = _apply_event(order, event, fulfillment)
            order.mark_webhook_processed(event.event_id)
            repo.add(order)
        except Exception as exc:
            log.error("webhook_processing_failed", error=str(exc), exc_info=True)
            order = repo.get(order_id)
            order.record_history("webhook_error", f"{event.event_type} ({event.event_id}): {exc}", changed_by="paypal")
            repo.add(order)
            raise

    log.info("webhook_processed", action=action)
    return WebhookOutcome(order_id=order_id, action=action, fulfillment=fulfillment)


def _apply_event(order: Order, event: PayPalWebhookEvent, fulfillment: FulfillmentResult | None) -> str:
    """Apply the non-fulfillment side of an event to a freshly loaded order."""
    if event.event_type == PayPalEventType.CAPTURE_COMPLETED.value:
        order.record_history(
            "webhook_payment_completed",
            f"PayPal capture {event.resource_id} completed",
            changed_by="paypal",
        )
        return "already_processed" if fulfillment and fulfillment.already_processed else "completed"

    if event.event_type == PayPalEventType.CAPTURE_PENDING.value:
        if order.is_settled:
            order.record_history("webhook_ignored", "Capture pending reported for a settled order", changed_by="paypal")
            return "recorded"
        order.mark_payment_pending(f"PayPal capture {event.resource_id} pending ({event.status})")
        return "payment_pending"

    if event.event_type == PayPalEventType.CAPTURE_DENIED.value:
        if order.is_settled:
            order.record_history("webhook_ignored", "Capture denial reported for a settled order", changed_by="paypal")
            return "recorded"
        order.mark_payment_denied(f"PayPal capture {event.resource_id} denied")
        return "payment_denied"

    order.record_history("webhook_received", f"Unhandled PayPal event {event.event_type}", changed_by="paypal")
    return "recorded"
