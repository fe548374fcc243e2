"""Notifier factory.

Provides get_notifier() / set_notifier() to swap implementations:
- FakeNotifier for development and testing (default)
- SmtpNotifier when SMTP is configured (``notifier_backend = "smtp"``)
"""

from storefront.config import get_settings
from storefront.notifier.fake_adapter import FakeNotifier
from storefront.notifier.port import Notifier

_current_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _current_notifier
    if _current_notifier is None:
        settings = get_settings()
        if settings.notifier_backend == "smtp":
            from storefront.notifier.smtp_adapter import SmtpNotifier

            _current_notifier = SmtpNotifier(settings)
        else:
            _current_notifier = FakeNotifier()
    return _current_notifier


def set_notifier(notifier: Notifier) -> None:
    """Override the active notifier (useful for tests)."""
    global _current_notifier
    _current_notifier = notifier


def reset_notifier() -> None:
    global _current_notifier
    _current_notifier = None
