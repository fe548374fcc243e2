"""Admin new-order template."""

from storefront.notifier.templates.kinds import NotificationKind


class AdminNewOrderTemplate:
    kind = NotificationKind.ADMIN_NEW_ORDER.value

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        if context.get("auto_completed"):
            outcome = "completed automatically"
        elif context.get("has_customizations"):
            outcome = "needs custom work"
        else:
            outcome = "needs review"
        kind = "Free order" if context.get("is_free_order") else "New order"
        return {
            "subject": f"{kind} {order_number} ({outcome})",
            "body": (
                f"{kind} {order_number} {outcome}.\n\n"
                f"Order id: {context.get('order_id', 'N/A')}\n"
                f"Customer: {context.get('customer_email') or 'unknown'}\n"
                f"Total: {context.get('total', 0.0):.2f}"
            ),
        }
