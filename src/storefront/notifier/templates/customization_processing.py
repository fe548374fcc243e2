"""Customization-in-progress template: items that need custom artwork."""

from storefront.notifier.templates.kinds import NotificationKind


class CustomizationProcessingTemplate:
    kind = NotificationKind.CUSTOMIZATION_PROCESSING.value

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        customer_name = context.get("customer_name") or "there"
        pending = context.get("pending_items", [])
        lines = "\n".join(f"  - {item.product_name}" for item in pending)

        if context.get("missing_customization_data"):
            closing = (
                "Some of these items support customization but we did not receive your details. "
                "Please reply to this email with the text, images or logo you would like used."
            )
        else:
            closing = "Our designers are working on them and will email you as soon as they are ready."

        return {
            "subject": f"Order {order_number}: customization in progress",
            "body": (
                f"Hi {customer_name},\n\n"
                f"The following items from order {order_number} need custom work:\n\n"
                f"{lines}\n\n"
                f"{closing}"
            ),
        }
