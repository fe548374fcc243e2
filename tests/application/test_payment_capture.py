"""Tests for gateway capture and zero-total checkout."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from storefront.catalogue.design_file import DesignFile
from storefront.delivery.orchestrator import FulfillmentOutcome
from storefront.order.order import Order, OrderStatus, PaymentStatus
from storefront.order.payment import capture_payment, complete_free_order


def _place_order(total=None, gateway_order_id="PAYPAL-ORDER-1"):
    order = Order.create(
        customer_email="jane@example.com",
        items_data=[
            {
                "product_id": "prod-001",
                "product_name": "Flyer Template",
                "unit_price": 15.0,
                "enable_customizations": False,
            }
        ],
        total=total,
        gateway_order_id=gateway_order_id,
    )
    current_domain.repository_for(Order).add(order)
    return str(order.id)


def _add_general_file():
    design_file = DesignFile.register(
        product_id="prod-001",
        file_name="flyer.psd",
        file_url="https://cdn.test/flyer.psd",
        file_type="psd",
    )
    current_domain.repository_for(DesignFile).add(design_file)


class TestCapturePayment:
    def test_successful_capture_fulfills_order(self, gateway):
        _add_general_file()
        order_id = _place_order()

        result = capture_payment(order_id)

        order = current_domain.repository_for(Order).get(order_id)
        assert result.outcome == FulfillmentOutcome.COMPLETED
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.transaction_id.startswith("fake_capture_")
        assert order.capture_id == order.transaction_id
        assert gateway.calls == [{"method": "capture_order", "gateway_order_id": "PAYPAL-ORDER-1"}]

    def test_amount_falls_back_to_order_total(self):
        order_id = _place_order()
        capture_payment(order_id)
        order = current_domain.repository_for(Order).get(order_id)
        assert order.payment_status == PaymentStatus.PAID.value

    def test_explicit_reference_is_stored(self, gateway):
        order_id = _place_order(gateway_order_id=None)

        capture_payment(order_id, gateway_order_id="PAYPAL-ORDER-9")

        order = current_domain.repository_for(Order).get(order_id)
        assert order.gateway_order_id == "PAYPAL-ORDER-9"
        assert gateway.calls[0]["gateway_order_id"] == "PAYPAL-ORDER-9"

    def test_missing_reference(self):
        order_id = _place_order(gateway_order_id=None)
        with pytest.raises(ValidationError):
            capture_payment(order_id)

    def test_declined_capture_records_failure(self, gateway):
        gateway.configure(should_succeed=False, failure_reason="INSTRUMENT_DECLINED")
        order_id = _place_order()

        result = capture_payment(order_id)

        order = current_domain.repository_for(Order).get(order_id)
        assert result.outcome == FulfillmentOutcome.FAILED
        assert result.error == "INSTRUMENT_DECLINED"
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.order_status == OrderStatus.PENDING.value

    def test_failed_capture_can_be_retried(self, gateway):
        order_id = _place_order()
        gateway.configure(should_succeed=False)
        capture_payment(order_id)

        gateway.configure(should_succeed=True)
        result = capture_payment(order_id)

        assert result.outcome != FulfillmentOutcome.FAILED
        order = current_domain.repository_for(Order).get(order_id)
        assert order.payment_status == PaymentStatus.PAID.value

    def test_repeat_capture_skips_gateway(self, gateway):
        order_id = _place_order()
        capture_payment(order_id)
        gateway.calls.clear()

        result = capture_payment(order_id)

        assert result.already_processed
        assert gateway.calls == []


class TestCompleteFreeOrder:
    def test_free_order_is_settled_as_free(self):
        _add_general_file()
        order_id = _place_order(total=0.0)

        result = complete_free_order(order_id)

        order = current_domain.repository_for(Order).get(order_id)
        assert result.outcome == FulfillmentOutcome.COMPLETED
        assert order.payment_status == PaymentStatus.FREE.value
        assert order.transaction_id is None

    def test_paid_order_rejected(self):
        order_id = _place_order()
        with pytest.raises(ValidationError):
            complete_free_order(order_id)

    def test_repeat_is_a_no_op(self):
        _add_general_file()
        order_id = _place_order(total=0.0)
        complete_free_order(order_id)
        assert complete_free_order(order_id).already_processed
