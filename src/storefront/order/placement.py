"""Order placement (checkout): command and handler."""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class PlaceOrder:
    """Create an unpaid order from the customer's cart."""

    customer_id = Identifier()
    customer_name = String(max_length=255)
    customer_email = String(required=True, max_length=255)
    items = Text(required=True)  # JSON list of item dicts
    promo_code = String(max_length=50)
    promo_discount = Float(default=0.0)
    total = Float()
    currency = String(max_length=3, default="USD")
    gateway_order_id = String(max_length=255)


@storefront.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        order = Order.create(
            customer_email=command.customer_email,
            items_data=items_data,
            customer_id=command.customer_id,
            customer_name=command.customer_name,
            promo_code=command.promo_code,
            promo_discount=command.promo_discount,
            total=command.total,
            currency=command.currency,
            gateway_order_id=command.gateway_order_id,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
