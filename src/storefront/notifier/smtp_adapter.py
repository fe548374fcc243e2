"""SMTP notifier with an optional admin chat webhook.

Customer emails and the admin email go out over SMTP; when
``admin_webhook_url`` is configured the admin notice is also posted there as
a Discord-style ``{"content": ...}`` message. Every network call is bounded by
``settings.notifier_timeout_seconds``.
"""

import smtplib
from email.message import EmailMessage
from uuid import uuid4

import requests
import structlog

from storefront.config import StorefrontSettings
from storefront.notifier.port import (
    AdminOrderNotice,
    CompletedOrderMessage,
    CustomizationProcessingMessage,
    Notifier,
    as_context,
)
from storefront.notifier.templates import render
from storefront.notifier.templates.kinds import NotificationKind

logger = structlog.get_logger(__name__)


class SmtpNotifier(Notifier):
    def __init__(self, settings: StorefrontSettings) -> None:
        self.settings = settings

    def _send_email(self, to: str, rendered: dict) -> dict:
        message_id = f"<{uuid4().hex}@storefront>"
        email = EmailMessage()
        email["From"] = self.settings.smtp_from
        email["To"] = to
        email["Subject"] = rendered["subject"]
        email["Message-ID"] = message_id
        email.set_content(rendered["body"])

        try:
            with smtplib.SMTP(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=self.settings.notifier_timeout_seconds,
            ) as smtp:
                if self.settings.smtp_use_tls:
                    smtp.starttls()
                if self.settings.smtp_username:
                    smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
                smtp.send_message(email)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("smtp_send_failed", to=to, subject=rendered["subject"], error=str(exc))
            return {"message_id": None, "status": "failed", "error": str(exc)}

        return {"message_id": message_id, "status": "sent"}

    def _post_admin_webhook(self, notice: AdminOrderNotice, rendered: dict) -> dict:
        payload = {"content": f"**{rendered['subject']}**\n{rendered['body']}", "order": notice.to_payload()}
        try:
            resp = requests.post(
                self.settings.admin_webhook_url,
                json=payload,
                timeout=self.settings.notifier_timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning("admin_webhook_failed", order_number=notice.order_number, error=str(exc))
            return {"status": "failed", "error": str(exc)}
        if resp.status_code >= 400:
            logger.warning("admin_webhook_rejected", order_number=notice.order_number, status_code=resp.status_code)
            return {"status": "failed", "error": f"HTTP {resp.status_code}"}
        return {"status": "sent"}

    def send_completed_order_email(self, customer_email: str, message: CompletedOrderMessage) -> dict:
        rendered = render(NotificationKind.FILES_READY.value, as_context(message))
        return self._send_email(customer_email, rendered)

    def send_customization_processing_email(
        self,
        customer_email: str,
        message: CustomizationProcessingMessage,
    ) -> dict:
        rendered = render(NotificationKind.CUSTOMIZATION_PROCESSING.value, as_context(message))
        return self._send_email(customer_email, rendered)

    def send_admin_new_order_notification(self, notice: AdminOrderNotice) -> dict:
        rendered = render(NotificationKind.ADMIN_NEW_ORDER.value, as_context(notice))
        result = self._send_email(self.settings.admin_email, rendered)
        if self.settings.admin_webhook_url:
            webhook_result = self._post_admin_webhook(notice, rendered)
            result = {**result, "webhook_status": webhook_result["status"]}
            # The admin is reached if either channel worked
            if webhook_result["status"] == "sent":
                result["status"] = "sent"
        return result
