"""Tests for the FulfillmentOrchestrator against the in-memory domain."""

import threading
from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError
from storefront.access.order_design_file import OrderDesignFile
from storefront.catalogue.design_file import DesignFile
from storefront.delivery import locks
from storefront.delivery.orchestrator import (
    NOTE_MISSING_CUSTOMIZATION,
    NOTE_PENDING_REVIEW,
    FulfillmentIncomplete,
    FulfillmentOrchestrator,
    FulfillmentOutcome,
    PaymentContext,
    get_orchestrator,
)
from storefront.delivery.resolver import REASON_LOOKUP_FAILED, DeliveryResolver
from storefront.domain import storefront
from storefront.notifier.templates.kinds import NotificationKind
from storefront.order.order import (
    CustomizationStatus,
    DeliveryStatus,
    Order,
    OrderStatus,
    PaymentStatus,
)

RED = {"name": "Red", "hex": "#FF0000"}
GREEN = {"name": "Green", "hex": "#00FF00"}


def _item(product_id="prod-001", enable=False, customizations=None, name=None):
    return {
        "product_id": product_id,
        "product_name": name or f"Template {product_id}",
        "unit_price": 10.0,
        "enable_customizations": enable,
        "customizations": customizations,
    }


def _place_order(*items, total=None):
    order = Order.create(
        customer_email="jane@example.com",
        customer_name="Jane",
        items_data=list(items) or [_item()],
        total=total,
        gateway_order_id="PAYPAL-ORDER-1",
    )
    current_domain.repository_for(Order).add(order)
    return str(order.id)


def _add_file(product_id="prod-001", hex_value=None, **overrides):
    data = {
        "product_id": product_id,
        "file_name": f"{product_id}-{hex_value or 'general'}.psd",
        "file_url": f"https://cdn.test/{product_id}/{hex_value or 'general'}.psd",
        "file_type": "psd",
        "is_color_variant": hex_value is not None,
        "color_variant_hex": hex_value,
    }
    data.update(overrides)
    design_file = DesignFile.register(**data)
    current_domain.repository_for(DesignFile).add(design_file)
    return str(design_file.id)


def _paid(amount=10.0):
    return PaymentContext(transaction_id="CAPTURE-1", amount=amount, capture_id="CAPTURE-1")


def _load(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _grants(order_id):
    return current_domain.repository_for(OrderDesignFile).for_order(order_id)


class FailingCatalog:
    def find_files(self, product_id, is_color_variant, color_variant_hex=None):
        raise ConnectionError("catalogue down")


class TestSingleItemScenarios:
    def test_general_file_completes_order(self, notifier):
        _add_file()
        order_id = _place_order(_item())

        result = get_orchestrator().fulfill(order_id, _paid())

        order = _load(order_id)
        assert result.outcome == FulfillmentOutcome.COMPLETED
        assert order.order_status == OrderStatus.COMPLETED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.customization_status == CustomizationStatus.COMPLETED.value
        assert order.item_at(0).delivery_status == DeliveryStatus.AUTO_DELIVERED.value
        assert len(_grants(order_id)) == 1
        assert order.download_expiry is not None
        assert len(notifier.sent_of_kind(NotificationKind.FILES_READY)) == 1
        assert notifier.sent_of_kind(NotificationKind.CUSTOMIZATION_PROCESSING) == []

    def test_download_expiry_follows_configured_ttl(self):
        _add_file()
        order_id = _place_order(_item())
        get_orchestrator().fulfill(order_id, _paid())

        expiry = _load(order_id).download_expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)
        expected = datetime.now(UTC) + timedelta(days=30)
        assert abs((expiry - expected).total_seconds()) < 60

    def test_missing_color_blocks_item(self, notifier):
        _add_file(hex_value="#FF0000")
        order_id = _place_order(_item(customizations={"colors": [RED, GREEN]}))

        result = get_orchestrator().fulfill(order_id, _paid())

        item = _load(order_id).item_at(0)
        assert result.outcome == FulfillmentOutcome.CUSTOM_WORK
        assert item.delivery_status == DeliveryStatus.AWAITING_CUSTOMIZATION.value
        assert "Green" in item.delivery_notes
        assert _grants(order_id) == []
        assert notifier.sent_of_kind(NotificationKind.FILES_READY) == []
        assert len(notifier.sent_of_kind(NotificationKind.CUSTOMIZATION_PROCESSING)) == 1

    def test_all_colors_matched_grants_each_variant(self):
        red = _add_file(hex_value="#FF0000")
        green = _add_file(hex_value="#00FF00")
        order_id = _place_order(_item(customizations={"colors": [RED, GREEN]}))

        result = get_orchestrator().fulfill(order_id, _paid())

        assert result.outcome == FulfillmentOutcome.COMPLETED
        assert {g.design_file_id for g in _grants(order_id)} == {red, green}

    def test_notes_force_custom_work(self):
        _add_file()
        order_id = _place_order(_item(enable=True, customizations={"customization_notes": "make it blue"}))

        result = get_orchestrator().fulfill(order_id, _paid())

        assert result.outcome == FulfillmentOutcome.CUSTOM_WORK
        assert _load(order_id).item_at(0).delivery_status == DeliveryStatus.AWAITING_CUSTOMIZATION.value
        assert _grants(order_id) == []


class TestMixedOrder:
    def test_partial_delivery(self, notifier):
        _add_file("prod-001")
        order_id = _place_order(
            _item("prod-001"),
            _item("prod-002", enable=True, customizations={"customization_notes": "make it blue"}),
        )

        result = get_orchestrator().fulfill(order_id, _paid(20.0))

        order = _load(order_id)
        assert result.outcome == FulfillmentOutcome.PARTIAL
        assert result.delivery_type == "auto_delivery"
        assert result.requires_custom_work is True
        assert order.order_status == OrderStatus.AWAITING_CUSTOMIZATION.value
        assert order.item_at(0).delivery_status == DeliveryStatus.AUTO_DELIVERED.value
        assert order.item_at(1).delivery_status == DeliveryStatus.AWAITING_CUSTOMIZATION.value
        assert len(_grants(order_id)) == 1
        assert len(notifier.sent_of_kind(NotificationKind.FILES_READY)) == 1
        assert len(notifier.sent_of_kind(NotificationKind.CUSTOMIZATION_PROCESSING)) == 1
        assert len(notifier.sent_of_kind(NotificationKind.ADMIN_NEW_ORDER)) == 1

    def test_admin_notice_flags(self, notifier):
        _add_file("prod-001")
        order_id = _place_order(
            _item("prod-001"),
            _item("prod-002", enable=True, customizations={"customization_notes": "make it blue"}),
        )
        get_orchestrator().fulfill(order_id, _paid(20.0))

        notice = notifier.sent_of_kind(NotificationKind.ADMIN_NEW_ORDER)[0]["message"]
        assert notice.is_free_order is False
        assert notice.has_customizations is True
        assert notice.auto_completed is False

    def test_files_ready_links_point_at_download_route(self, notifier):
        file_id = _add_file()
        order_id = _place_order(_item())
        get_orchestrator().fulfill(order_id, _paid())

        message = notifier.sent_of_kind(NotificationKind.FILES_READY)[0]["message"]
        assert [link.url for link in message.download_links] == [
            f"https://shop.test/orders/{order_id}/files/{file_id}/download"
        ]

    def test_file_shared_by_two_items_gets_one_link(self, notifier):
        file_id = _add_file("prod-001")
        order_id = _place_order(_item("prod-001"), _item("prod-001", name="Second copy"))

        get_orchestrator().fulfill(order_id, _paid(20.0))

        message = notifier.sent_of_kind(NotificationKind.FILES_READY)[0]["message"]
        assert len(_grants(order_id)) == 1
        assert [link.url for link in message.download_links] == [
            f"https://shop.test/orders/{order_id}/files/{file_id}/download"
        ]
        assert message.download_links[0].product_name == "Template prod-001"


class TestIdempotency:
    def test_second_call_is_a_no_op(self, notifier):
        _add_file()
        order_id = _place_order(_item())
        orchestrator = get_orchestrator()

        first = orchestrator.fulfill(order_id, _paid())
        history_len = len(_load(order_id).order_history)
        sent = len(notifier.sent)
        second = orchestrator.fulfill(order_id, _paid())

        assert first.outcome == FulfillmentOutcome.COMPLETED
        assert second.already_processed
        assert second.order_status == OrderStatus.COMPLETED.value
        assert len(_grants(order_id)) == 1
        assert len(_load(order_id).order_history) == history_len
        assert len(notifier.sent) == sent

    def test_unknown_order(self):
        with pytest.raises(ObjectNotFoundError):
            get_orchestrator().fulfill("missing-order", _paid())


class TestOrderSpecificFiles:
    def test_other_orders_file_is_never_granted(self):
        order_a = _place_order(_item())
        order_b = _place_order(_item())
        _add_file(is_for_order=True, order_id=order_a)

        result = get_orchestrator().fulfill(order_b, _paid())

        assert result.outcome == FulfillmentOutcome.CUSTOM_WORK
        assert _grants(order_b) == []


class TestConcurrentFulfillment:
    def test_competing_pass_during_notification_no_ops(self, notifier):
        _add_file()
        order_id = _place_order(_item())
        orchestrator = get_orchestrator()
        competing = []

        def race(kind, message):
            if not competing:
                competing.append(orchestrator.fulfill(order_id, _paid()))

        notifier.on_send = race
        first = orchestrator.fulfill(order_id, _paid())

        assert first.outcome == FulfillmentOutcome.COMPLETED
        assert competing[0].already_processed
        assert len(_grants(order_id)) == 1
        assert len(notifier.sent_of_kind(NotificationKind.FILES_READY)) == 1

    def test_parallel_threads_mutate_once(self):
        _add_file()
        order_id = _place_order(_item())
        orchestrator = get_orchestrator()
        barrier = threading.Barrier(2, timeout=5)
        results, errors = [], []

        def worker():
            try:
                with storefront.domain_context():
                    barrier.wait()
                    results.append(orchestrator.fulfill(order_id, _paid()))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == ["already_processed", "completed"]
        assert len(_grants(order_id)) == 1
        assert locks._order_locks == {}

    def test_lock_registry_drains_after_each_order(self):
        _add_file()
        for _ in range(5):
            get_orchestrator().fulfill(_place_order(_item()), _paid())
        assert locks._order_locks == {}


class TestFreeOrders:
    def test_free_order_with_files_completes(self, notifier):
        _add_file()
        order_id = _place_order(_item(), total=0.0)

        result = get_orchestrator().fulfill(order_id, PaymentContext.free_checkout())

        order = _load(order_id)
        assert result.outcome == FulfillmentOutcome.COMPLETED
        assert order.payment_status == PaymentStatus.FREE.value
        notice = notifier.sent_of_kind(NotificationKind.ADMIN_NEW_ORDER)[0]["message"]
        assert notice.is_free_order is True
        assert notice.auto_completed is True

    def test_customer_data_goes_to_review(self):
        order_id = _place_order(
            _item(enable=True, customizations={"customization_notes": "make it blue"}),
            total=0.0,
        )

        result = get_orchestrator().fulfill(order_id, PaymentContext.free_checkout())

        order = _load(order_id)
        assert result.outcome == FulfillmentOutcome.PENDING_REVIEW
        assert result.pending_review_items == (0,)
        assert order.order_status == OrderStatus.PROCESSING.value
        assert order.customization_status == CustomizationStatus.PENDING.value
        assert order.item_at(0).delivery_status == DeliveryStatus.PENDING.value
        assert order.item_at(0).delivery_notes == NOTE_PENDING_REVIEW

    def test_customizable_item_without_data_or_files(self, notifier):
        order_id = _place_order(_item(enable=True), total=0.0)

        result = get_orchestrator().fulfill(order_id, PaymentContext.free_checkout())

        item = _load(order_id).item_at(0)
        assert result.outcome == FulfillmentOutcome.CUSTOM_WORK
        assert item.delivery_status == DeliveryStatus.AWAITING_CUSTOMIZATION.value
        assert item.delivery_notes == NOTE_MISSING_CUSTOMIZATION
        message = notifier.sent_of_kind(NotificationKind.CUSTOMIZATION_PROCESSING)[0]["message"]
        assert message.missing_customization_data is True

    def test_plain_item_without_files_awaits_custom_work(self):
        order_id = _place_order(_item(), total=0.0)

        result = get_orchestrator().fulfill(order_id, PaymentContext.free_checkout())

        item = _load(order_id).item_at(0)
        assert result.outcome == FulfillmentOutcome.CUSTOM_WORK
        assert item.delivery_notes == "No files available for this product"


class TestCatalogueFailure:
    def test_lookup_failure_sends_items_to_custom_work(self):
        order_id = _place_order(_item())
        orchestrator = FulfillmentOrchestrator(resolver=DeliveryResolver(FailingCatalog()))

        result = orchestrator.fulfill(order_id, _paid())

        item = _load(order_id).item_at(0)
        assert result.outcome == FulfillmentOutcome.CUSTOM_WORK
        assert item.delivery_status == DeliveryStatus.AWAITING_CUSTOMIZATION.value
        assert item.delivery_notes == REASON_LOOKUP_FAILED
        assert _grants(order_id) == []

    def test_bad_colour_data_keeps_earlier_items_deliverable(self):
        _add_file("prod-001")
        order_id = _place_order(
            _item("prod-001"),
            _item("prod-002", customizations={"colors": [{"name": "Red", "hex": 16711680}]}),
        )

        result = get_orchestrator().fulfill(order_id, _paid(20.0))

        order = _load(order_id)
        assert result.outcome == FulfillmentOutcome.PARTIAL
        assert order.item_at(0).delivery_status == DeliveryStatus.AUTO_DELIVERED.value
        assert order.item_at(1).delivery_status == DeliveryStatus.AWAITING_CUSTOMIZATION.value
        assert len(_grants(order_id)) == 1


class TestUnexpectedFailure:
    def test_error_after_payment_parks_order(self, monkeypatch):
        order_id = _place_order(_item())
        orchestrator = get_orchestrator()

        def explode(order):
            raise RuntimeError("resolver crashed")

        monkeypatch.setattr(orchestrator.resolver, "classify", explode)
        result = orchestrator.fulfill(order_id, _paid())

        order = _load(order_id)
        assert result.outcome == FulfillmentOutcome.FAILED
        assert "resolver crashed" in result.error
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.order_status == OrderStatus.PROCESSING.value
        assert order.customization_status == CustomizationStatus.PENDING.value
        assert any(h.status == "fulfillment_error" for h in order.order_history)


class TestNotificationFailures:
    def test_failed_notification_does_not_fail_fulfillment(self, notifier):
        _add_file()
        order_id = _place_order(_item())
        notifier.configure(should_succeed=False)

        result = get_orchestrator().fulfill(order_id, _paid())

        assert result.outcome == FulfillmentOutcome.COMPLETED
        assert result.notifications["completed_order_email"] == "failed"
        assert result.notifications["admin_notification"] == "failed"
        assert _load(order_id).order_status == OrderStatus.COMPLETED.value

    def test_crashing_notifier_is_contained(self, notifier):
        _add_file()
        order_id = _place_order(_item())
        notifier.configure(should_succeed=False, raise_errors=True)

        result = get_orchestrator().fulfill(order_id, _paid())

        assert result.outcome == FulfillmentOutcome.COMPLETED
        assert set(result.notifications.values()) == {"failed"}

    def test_transient_failure_is_retried(self, notifier):
        _add_file()
        order_id = _place_order(_item())
        notifier.configure(fail_times=1)

        result = get_orchestrator().fulfill(order_id, _paid())

        assert result.notifications == {"completed_order_email": "sent", "admin_notification": "sent"}
        assert len(notifier.sent_of_kind(NotificationKind.FILES_READY)) == 1


class TestPersistenceFailure:
    def test_exhausted_save_raises_incomplete(self, monkeypatch):
        _add_file()
        order_id = _place_order(_item())
        repo = current_domain.repository_for(Order)
        original_add = repo.add
        calls = {"n": 0}

        def flaky_add(order):
            calls["n"] += 1
            # First save (payment) succeeds, every later one fails
            if calls["n"] > 1:
                raise ConnectionError("database unavailable")
            return original_add(order)

        monkeypatch.setattr(type(repo), "add", lambda self, order: flaky_add(order))

        with pytest.raises(FulfillmentIncomplete) as exc:
            get_orchestrator().fulfill(order_id, _paid())

        assert exc.value.order_id == order_id
        monkeypatch.undo()
        assert _load(order_id).payment_status == PaymentStatus.PAID.value
