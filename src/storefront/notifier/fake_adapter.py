"""Fake notifier: renders templates and records messages for test assertions."""

from uuid import uuid4

from storefront.notifier.port import (
    AdminOrderNotice,
    CompletedOrderMessage,
    CustomizationProcessingMessage,
    Notifier,
    as_context,
)
from storefront.notifier.templates import render
from storefront.notifier.templates.kinds import NotificationKind


class FakeNotifier(Notifier):
    """In-memory notifier.

    ``configure`` controls failure behaviour: report ``failed``, raise instead
    (to mimic a crashing adapter), or fail only the first ``fail_times`` calls.
    ``on_send`` is invoked before each delivery, which lets tests inject work
    (e.g. a competing fulfillment pass) in the middle of a send.
    """

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.attempts: int = 0
        self.should_succeed: bool = True
        self.failure_reason: str = "Notification delivery failed"
        self.raise_errors: bool = False
        self.fail_times: int | None = None
        self.on_send = None

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Notification delivery failed",
        raise_errors: bool = False,
        fail_times: int | None = None,
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_errors = raise_errors
        self.fail_times = fail_times

    def _deliver(self, kind: NotificationKind, to: str, message) -> dict:
        self.attempts += 1
        if self.on_send is not None:
            self.on_send(kind.value, message)

        failing = not self.should_succeed
        if self.fail_times is not None:
            failing = self.fail_times > 0
            self.fail_times = max(self.fail_times - 1, 0)

        if failing:
            if self.raise_errors:
                raise ConnectionError(self.failure_reason)
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        rendered = render(kind.value, as_context(message))
        message_id = f"msg-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "message_id": message_id,
                "kind": kind.value,
                "to": to,
                "subject": rendered["subject"],
                "body": rendered["body"],
                "message": message,
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def send_completed_order_email(self, customer_email: str, message: CompletedOrderMessage) -> dict:
        return self._deliver(NotificationKind.FILES_READY, customer_email, message)

    def send_customization_processing_email(
        self,
        customer_email: str,
        message: CustomizationProcessingMessage,
    ) -> dict:
        return self._deliver(NotificationKind.CUSTOMIZATION_PROCESSING, customer_email, message)

    def send_admin_new_order_notification(self, notice: AdminOrderNotice) -> dict:
        return self._deliver(NotificationKind.ADMIN_NEW_ORDER, "admin", notice)

    def sent_of_kind(self, kind: NotificationKind) -> list[dict]:
        return [s for s in self.sent if s["kind"] == kind.value]

    def reset(self) -> None:
        self.sent.clear()
        self.attempts = 0
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
        self.raise_errors = False
        self.fail_times = None
        self.on_send = None
