"""Repository for the Order aggregate."""

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.repository(part_of=Order)
class OrderRepository:
    def find_by_order_number(self, order_number: str) -> Order | None:
        results = self._dao.query.filter(order_number=order_number).all().items
        return results[0] if results else None

    def find_by_gateway_reference(
        self,
        gateway_order_id: str | None = None,
        capture_id: str | None = None,
    ) -> Order | None:
        """Locate an order from a payment-provider callback.

        The provider's order id is tried first, then the capture id.
        """
        for field, value in (("gateway_order_id", gateway_order_id), ("capture_id", capture_id)):
            if not value:
                continue
            results = self._dao.query.filter(**{field: value}).all().items
            if results:
                return results[0]
        return None
