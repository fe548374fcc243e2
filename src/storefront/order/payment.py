"""Payment entry points: gateway capture and zero-total checkout.

Both end in a fulfillment pass. These are plain application services rather
than command handlers: fulfillment persists in several steps (payment first,
then delivery state) and must not be folded into a single unit of work.
"""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from storefront.delivery.locks import order_lock
from storefront.delivery.orchestrator import (
    FulfillmentOutcome,
    FulfillmentResult,
    PaymentContext,
    get_orchestrator,
)
from storefront.gateway import get_gateway
from storefront.order.order import Order

logger = structlog.get_logger(__name__)


def capture_payment(order_id: str, gateway_order_id: str | None = None) -> FulfillmentResult:
    """Capture the approved checkout for an order and fulfill it.

    An order that is already settled is reported as already processed without
    calling the gateway, so a double-submitted capture never charges twice.
    """
    repo = current_domain.repository_for(Order)
    with order_lock(order_id):
        order = repo.get(order_id)
        if order.is_settled:
            logger.info("capture_skipped_already_settled", order_id=str(order_id))
            return FulfillmentResult(
                order_id=str(order.id),
                outcome=FulfillmentOutcome.ALREADY_PROCESSED,
                order_status=order.order_status,
                payment_status=order.payment_status,
            )

        reference = gateway_order_id or order.gateway_order_id
        if not reference:
            raise ValidationError({"gateway_order_id": ["Order has no payment-provider reference to capture"]})
        if gateway_order_id and not order.gateway_order_id:
            order.gateway_order_id = gateway_order_id

        capture = get_gateway().capture_order(reference)
        if not capture.success:
            logger.warning("capture_failed", order_id=str(order.id), reason=capture.failure_reason)
            order.record_payment_failure(capture.failure_reason or "Capture failed")
            repo.add(order)
            return FulfillmentResult(
                order_id=str(order.id),
                outcome=FulfillmentOutcome.FAILED,
                order_status=order.order_status,
                payment_status=order.payment_status,
                error=capture.failure_reason,
            )

        if gateway_order_id:
            repo.add(order)

        # Re-entrant lock: fulfillment re-reads the order under the same lock
        return get_orchestrator().fulfill(
            str(order.id),
            PaymentContext(
                transaction_id=capture.transaction_id,
                amount=capture.amount if capture.amount else (order.total or 0.0),
                payer_info=capture.payer_info,
                capture_id=capture.transaction_id,
                source="capture",
            ),
        )


def complete_free_order(order_id: str) -> FulfillmentResult:
    """Settle a zero-total order and fulfill it."""
    order = current_domain.repository_for(Order).get(order_id)
    if not order.is_free:
        raise ValidationError({"total": ["Order is not free; payment is required"]})
    return get_orchestrator().fulfill(str(order.id), PaymentContext.free_checkout())
