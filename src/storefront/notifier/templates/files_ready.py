"""Files-ready template: sent when some or all items were auto-delivered."""

from storefront.notifier.templates.kinds import NotificationKind


class FilesReadyTemplate:
    kind = NotificationKind.FILES_READY.value

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        customer_name = context.get("customer_name") or "there"
        links = context.get("download_links", [])
        expires_at = context.get("expires_at")
        expiry_text = expires_at.strftime("%Y-%m-%d") if expires_at else "soon"

        lines = []
        for link in links:
            label = f"{link.product_name}: {link.file_name}" if link.product_name else link.file_name
            lines.append(f"  - {label}\n    {link.url}")

        return {
            "subject": f"Your files for order {order_number} are ready",
            "body": (
                f"Hi {customer_name},\n\n"
                f"Your design files for order {order_number} are ready to download:\n\n"
                + "\n".join(lines)
                + f"\n\nDownload links expire on {expiry_text}.\n\n"
                "Thank you for your purchase!"
            ),
        }
