"""Application settings for the storefront collaborators.

Settings are read from the environment exactly once, in
``StorefrontSettings.from_env()``, and handed to adapters when they are
constructed. Domain and orchestration code only ever sees the settings object.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class StorefrontSettings:
    base_url: str = "http://localhost:3000"
    download_link_ttl_days: int = 30

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_from: str = "orders@storefront.local"
    smtp_use_tls: bool = True

    admin_email: str = "admin@storefront.local"
    admin_webhook_url: str | None = None

    paypal_client_id: str | None = None
    paypal_client_secret: str | None = None
    paypal_mode: str = "sandbox"
    paypal_webhook_id: str | None = None

    notifier_backend: str = "fake"
    gateway_backend: str = "fake"

    notifier_timeout_seconds: float = 10.0
    notifier_max_attempts: int = 3
    notifier_retry_base_delay: float = 0.5

    persistence_max_attempts: int = 3
    persistence_retry_base_delay: float = 0.2

    @property
    def paypal_api_base(self) -> str:
        if self.paypal_mode == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"

    def download_url(self, order_id: str, design_file_id: str) -> str:
        return f"{self.base_url.rstrip('/')}/orders/{order_id}/files/{design_file_id}/download"

    @classmethod
    def from_env(cls) -> "StorefrontSettings":
        """Build settings from process environment variables."""
        return cls(
            base_url=os.getenv("BASE_URL", cls.base_url),
            download_link_ttl_days=int(os.getenv("DOWNLOAD_LINK_TTL_DAYS", cls.download_link_ttl_days)),
            smtp_host=os.getenv("SMTP_HOST", cls.smtp_host),
            smtp_port=int(os.getenv("SMTP_PORT", cls.smtp_port)),
            smtp_username=os.getenv("SMTP_USER"),
            smtp_password=os.getenv("SMTP_PASS"),
            smtp_from=os.getenv("SMTP_FROM", cls.smtp_from),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", cls.smtp_use_tls),
            admin_email=os.getenv("ADMIN_EMAIL", cls.admin_email),
            admin_webhook_url=os.getenv("ADMIN_WEBHOOK_URL"),
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID"),
            paypal_client_secret=os.getenv("PAYPAL_CLIENT_SECRET"),
            paypal_mode=os.getenv("PAYPAL_MODE", cls.paypal_mode),
            paypal_webhook_id=os.getenv("PAYPAL_WEBHOOK_ID"),
            notifier_backend=os.getenv("NOTIFIER", cls.notifier_backend).lower(),
            gateway_backend=os.getenv("PAYMENT_GATEWAY", cls.gateway_backend).lower(),
            notifier_timeout_seconds=float(os.getenv("NOTIFIER_TIMEOUT_SECONDS", cls.notifier_timeout_seconds)),
            notifier_max_attempts=int(os.getenv("NOTIFIER_MAX_ATTEMPTS", cls.notifier_max_attempts)),
            notifier_retry_base_delay=float(os.getenv("NOTIFIER_RETRY_BASE_DELAY", cls.notifier_retry_base_delay)),
            persistence_max_attempts=int(os.getenv("PERSISTENCE_MAX_ATTEMPTS", cls.persistence_max_attempts)),
            persistence_retry_base_delay=float(
                os.getenv("PERSISTENCE_RETRY_BASE_DELAY", cls.persistence_retry_base_delay)
            ),
        )


_current_settings: StorefrontSettings | None = None


def get_settings() -> StorefrontSettings:
    """Return the active settings, reading the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = StorefrontSettings.from_env()
    return _current_settings


def set_settings(settings: StorefrontSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    global _current_settings
    _current_settings = None
