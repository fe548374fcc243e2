"""Fulfillment Orchestrator: drives a just-paid order to a stable delivery state.

One ``fulfill`` call per payment event (gateway capture, webhook, free
checkout). Calls may repeat or overlap for the same order; the pass is guarded
three ways:

- the order is re-read from the repository under a per-order lock, and an
  order whose payment is already settled (paid/free) is left untouched;
- download grants are insert-if-absent on (order, design file);
- item transitions are idempotent overwrites.

Notifications go out after the order is persisted. Their failures are logged
and never propagate; a failure to persist the final state is the one error
surfaced to callers, as ``FulfillmentIncomplete``.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean.utils.globals import current_domain

from storefront.access.order_design_file import OrderDesignFile
from storefront.catalogue.design_file import DesignFile
from storefront.config import StorefrontSettings, get_settings
from storefront.delivery.locks import order_lock
from storefront.delivery.resolver import DeliveryResolver, DeliveryVerdict, ItemVerdict
from storefront.notifier import get_notifier
from storefront.notifier.port import (
    AdminOrderNotice,
    CompletedOrderMessage,
    CustomizationProcessingMessage,
    DownloadLink,
    Notifier,
    PendingItem,
)
from storefront.order.order import DeliveryStatus, Order, OrderStatus
from storefront.utils.retry import retry_with_backoff

logger = structlog.get_logger(__name__)

NOTE_PENDING_REVIEW = "Customer supplied customization data; awaiting admin review"
NOTE_MISSING_CUSTOMIZATION = "Missing customization data: product supports customization but none was provided"


class FulfillmentIncomplete(Exception):
    """Payment is recorded but the order's delivery state could not be persisted."""

    def __init__(self, order_id: str, reason: str):
        super().__init__(f"Fulfillment of order {order_id} incomplete: {reason}")
        self.order_id = order_id
        self.reason = reason


class NotificationFailure(Exception):
    """A notifier reported a failed delivery."""


class FulfillmentOutcome(Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    CUSTOM_WORK = "custom_work"
    PENDING_REVIEW = "pending_review"
    ALREADY_PROCESSED = "already_processed"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentContext:
    """What the payment event told us: the trigger plus the id to persist."""

    transaction_id: str | None = None
    amount: float = 0.0
    payer_info: dict = field(default_factory=dict)
    capture_id: str | None = None
    source: str = "capture"

    @property
    def is_free(self) -> bool:
        return self.amount == 0

    @classmethod
    def free_checkout(cls) -> "PaymentContext":
        return cls(amount=0.0, source="free_checkout")


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: str
    outcome: FulfillmentOutcome
    order_status: str | None = None
    payment_status: str | None = None
    delivery_type: str | None = None
    requires_custom_work: bool = False
    auto_delivered_items: tuple[int, ...] = ()
    awaiting_items: tuple[int, ...] = ()
    pending_review_items: tuple[int, ...] = ()
    granted_file_ids: tuple[str, ...] = ()
    new_grants: int = 0
    notifications: dict = field(default_factory=dict)
    error: str | None = None

    @property
    def already_processed(self) -> bool:
        return self.outcome == FulfillmentOutcome.ALREADY_PROCESSED


class FulfillmentOrchestrator:
    def __init__(
        self,
        resolver: DeliveryResolver | None = None,
        notifier: Notifier | None = None,
        settings: StorefrontSettings | None = None,
    ) -> None:
        self._resolver = resolver
        self._notifier = notifier
        self.settings = settings or get_settings()

    @property
    def resolver(self) -> DeliveryResolver:
        if self._resolver is None:
            self._resolver = DeliveryResolver(current_domain.repository_for(DesignFile))
        return self._resolver

    @property
    def notifier(self) -> Notifier:
        return self._notifier or get_notifier()

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    def fulfill(self, order_id: str, payment: PaymentContext) -> FulfillmentResult:
        """Record payment, resolve delivery, grant files, then notify.

        Raises ``ObjectNotFoundError`` for an unknown order and
        ``FulfillmentIncomplete`` when the order cannot be persisted.
        """
        order_id = str(order_id)
        log = logger.bind(order_id=order_id, source=payment.source)
        repo = current_domain.repository_for(Order)

        with order_lock(order_id):
            order = repo.get(order_id)
            if order.is_settled:
                log.info("fulfillment_skipped_already_processed", payment_status=order.payment_status)
                return FulfillmentResult(
                    order_id=order_id,
                    outcome=FulfillmentOutcome.ALREADY_PROCESSED,
                    order_status=order.order_status,
                    payment_status=order.payment_status,
                )

            log.info("fulfillment_started", order_number=order.order_number, amount=payment.amount)
            order.record_payment(
                transaction_id=payment.transaction_id,
                amount=payment.amount,
                payer_info=payment.payer_info,
                capture_id=payment.capture_id,
            )
            self._save(order)

            try:
                verdict = self.resolver.classify(order)
                result = self._apply_verdict(order, verdict, payment)
                self._save(order)
            except FulfillmentIncomplete:
                raise
            except Exception as exc:
                log.error("fulfillment_failed", error=str(exc), exc_info=True)
                return self._fall_back(order_id, exc)

        log.info(
            "fulfillment_finished",
            outcome=result.outcome.value,
            delivery_type=result.delivery_type,
            new_grants=result.new_grants,
        )
        notifications = self._send_notifications(order, verdict, result, payment)
        return replace(result, notifications=notifications)

    # -------------------------------------------------------------------
    # State mutation
    # -------------------------------------------------------------------
    def _apply_verdict(self, order: Order, verdict: DeliveryVerdict, payment: PaymentContext) -> FulfillmentResult:
        grant_repo = current_domain.repository_for(OrderDesignFile)
        new_grants = 0

        for item_verdict in verdict.auto_items:
            for matched in item_verdict.files:
                _, created = grant_repo.grant(str(order.id), matched.design_file_id)
                new_grants += int(created)
            order.mark_item_auto_delivered(item_verdict.item_index, item_verdict.reason)

        for item_verdict in verdict.custom_items:
            self._flag_item(order, item_verdict, payment.is_free)

        granted_files = verdict.files
        if granted_files:
            order.open_downloads(datetime.now(UTC) + timedelta(days=self.settings.download_link_ttl_days))

        awaiting = order.items_with_status(DeliveryStatus.AWAITING_CUSTOMIZATION)
        pending_review = order.items_with_status(DeliveryStatus.PENDING) if payment.is_free else []

        if verdict.items and not verdict.requires_custom_work:
            order.complete_delivery()
            outcome = FulfillmentOutcome.COMPLETED
        elif awaiting:
            order.await_customization()
            outcome = FulfillmentOutcome.PARTIAL if verdict.auto_items else FulfillmentOutcome.CUSTOM_WORK
        else:
            # Free-order review holds, or an order with no items at all
            order.hold_for_review()
            outcome = FulfillmentOutcome.PENDING_REVIEW

        return FulfillmentResult(
            order_id=str(order.id),
            outcome=outcome,
            order_status=order.order_status,
            payment_status=order.payment_status,
            delivery_type=verdict.delivery_type.value,
            requires_custom_work=verdict.requires_custom_work,
            auto_delivered_items=tuple(v.item_index for v in verdict.auto_items),
            awaiting_items=tuple(i.position for i in awaiting),
            pending_review_items=tuple(i.position for i in pending_review),
            granted_file_ids=tuple(f.design_file_id for f in granted_files),
            new_grants=new_grants,
        )

    @staticmethod
    def _flag_item(order: Order, item_verdict: ItemVerdict, is_free: bool) -> None:
        """Mark an item that cannot ship now.

        Free orders split customizable items three ways: customer data to
        review, customization expected but missing, or plain custom work.
        """
        index = item_verdict.item_index
        if not is_free or item_verdict.lookup_failed:
            order.mark_item_awaiting_customization(index, item_verdict.reason)
            return

        item = order.item_at(index)
        if item.enable_customizations and item_verdict.has_real_customization:
            order.mark_item_pending_review(index, NOTE_PENDING_REVIEW)
        elif item.enable_customizations and not item.color_choices():
            order.mark_item_awaiting_customization(index, NOTE_MISSING_CUSTOMIZATION)
        else:
            order.mark_item_awaiting_customization(index, item_verdict.reason)

    def _save(self, order: Order) -> None:
        repo = current_domain.repository_for(Order)
        try:
            retry_with_backoff(
                lambda: repo.add(order),
                max_attempts=self.settings.persistence_max_attempts,
                base_delay=self.settings.persistence_retry_base_delay,
                operation="order_save",
            )
        except Exception as exc:
            logger.error(
                "fulfillment_persistence_failed",
                order_id=str(order.id),
                order_status=order.order_status,
                payment_status=order.payment_status,
                error=str(exc),
            )
            raise FulfillmentIncomplete(str(order.id), str(exc)) from exc

    def _fall_back(self, order_id: str, exc: Exception) -> FulfillmentResult:
        """Reload the persisted (paid) order and park it in processing/pending."""
        order = current_domain.repository_for(Order).get(order_id)
        order.mark_fulfillment_failed(f"Fulfillment error: {exc}")
        self._save(order)
        return FulfillmentResult(
            order_id=order_id,
            outcome=FulfillmentOutcome.FAILED,
            order_status=order.order_status,
            payment_status=order.payment_status,
            error=str(exc),
        )

    # -------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------
    def _send_notifications(
        self,
        order: Order,
        verdict: DeliveryVerdict,
        result: FulfillmentResult,
        payment: PaymentContext,
    ) -> dict:
        statuses: dict[str, str] = {}
        items_by_index = {i.position: i for i in order.sorted_items()}

        if result.granted_file_ids:
            # One link per granted file, even when several items share it.
            products = {}
            for item_verdict in verdict.auto_items:
                for matched in item_verdict.files:
                    products.setdefault(matched.design_file_id, item_verdict.product_name)
            links = tuple(
                DownloadLink(
                    file_name=matched.file_name,
                    url=self.settings.download_url(str(order.id), matched.design_file_id),
                    product_name=products[matched.design_file_id],
                )
                for matched in verdict.files
            )
            message = CompletedOrderMessage(
                order_number=order.order_number,
                download_links=links,
                expires_at=order.download_expiry,
                customer_name=order.customer_name,
            )
            statuses["completed_order_email"] = self._notify(
                "completed_order_email",
                order,
                lambda: self.notifier.send_completed_order_email(order.customer_email, message),
            )

        pending_indexes = result.awaiting_items + result.pending_review_items
        if pending_indexes:
            pending = tuple(
                PendingItem(
                    product_name=items_by_index[index].product_name,
                    reason=items_by_index[index].delivery_notes or "",
                )
                for index in sorted(pending_indexes)
            )
            message = CustomizationProcessingMessage(
                order_number=order.order_number,
                pending_items=pending,
                customer_name=order.customer_name,
                missing_customization_data=any(p.reason == NOTE_MISSING_CUSTOMIZATION for p in pending),
            )
            statuses["customization_processing_email"] = self._notify(
                "customization_processing_email",
                order,
                lambda: self.notifier.send_customization_processing_email(order.customer_email, message),
            )

        notice = AdminOrderNotice(
            order_id=str(order.id),
            order_number=order.order_number,
            is_free_order=payment.is_free,
            has_customizations=bool(pending_indexes),
            auto_completed=order.order_status == OrderStatus.COMPLETED.value,
            customer_email=order.customer_email,
            total=order.total or 0.0,
        )
        statuses["admin_notification"] = self._notify(
            "admin_notification",
            order,
            lambda: self.notifier.send_admin_new_order_notification(notice),
        )
        return statuses

    def _notify(self, operation: str, order: Order, send) -> str:
        def attempt():
            outcome = send() or {}
            if outcome.get("status") == "failed":
                raise NotificationFailure(outcome.get("error") or "delivery failed")
            return outcome

        try:
            retry_with_backoff(
                attempt,
                max_attempts=self.settings.notifier_max_attempts,
                base_delay=self.settings.notifier_retry_base_delay,
                operation=operation,
            )
        except Exception as exc:
            logger.warning(
                "notification_failed",
                operation=operation,
                order_id=str(order.id),
                order_number=order.order_number,
                error=str(exc),
                exc_info=True,
            )
            return "failed"
        return "sent"


_orchestrator: FulfillmentOrchestrator | None = None


def get_orchestrator() -> FulfillmentOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = FulfillmentOrchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    _orchestrator = None
