"""OrderDesignFile aggregate: one order's access to one design file.

Grants are unique per (order, design file). Fulfillment passes may be retried,
so grants are created through ``OrderDesignFileRepository.grant``, an
insert-if-absent that hands back the existing grant on a repeat call.
"""

import threading
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from storefront.access.events import DesignFileAccessGranted, DesignFileDownloaded
from storefront.domain import storefront

_grant_lock = threading.Lock()


def make_grant_key(order_id: str, design_file_id: str) -> str:
    return f"{order_id}:{design_file_id}"


@storefront.aggregate
class OrderDesignFile:
    order_id = Identifier(required=True)
    design_file_id = Identifier(required=True)
    grant_key = String(required=True, max_length=100, unique=True)
    download_count = Integer(default=0, min_value=0)
    first_downloaded_at = DateTime()
    last_downloaded_at = DateTime()
    is_active = Boolean(default=True)
    granted_at = DateTime()

    @classmethod
    def create(cls, order_id: str, design_file_id: str):
        now = datetime.now(UTC)
        grant = cls(
            order_id=order_id,
            design_file_id=design_file_id,
            grant_key=make_grant_key(order_id, design_file_id),
            granted_at=now,
        )
        grant.raise_(
            DesignFileAccessGranted(
                grant_id=str(grant.id),
                order_id=str(order_id),
                design_file_id=str(design_file_id),
                granted_at=now,
            )
        )
        return grant

    def can_download(self, expires_at: datetime | None, now: datetime | None = None) -> bool:
        """Active grant whose order-level download window is still open."""
        if not self.is_active:
            return False
        if expires_at is None:
            return False
        now = now or datetime.now(UTC)
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return now <= expires_at

    def record_download(self, expires_at: datetime | None) -> None:
        now = datetime.now(UTC)
        if not self.is_active:
            raise ValidationError({"grant": ["Download access has been revoked"]})
        if not self.can_download(expires_at, now):
            raise ValidationError({"download_expiry": ["Download link has expired"]})

        self.download_count = (self.download_count or 0) + 1
        if self.first_downloaded_at is None:
            self.first_downloaded_at = now
        self.last_downloaded_at = now
        self.raise_(
            DesignFileDownloaded(
                grant_id=str(self.id),
                order_id=str(self.order_id),
                design_file_id=str(self.design_file_id),
                download_count=self.download_count,
                downloaded_at=now,
            )
        )


@storefront.repository(part_of=OrderDesignFile)
class OrderDesignFileRepository:
    def find_grant(self, order_id: str, design_file_id: str) -> OrderDesignFile | None:
        results = self._dao.query.filter(grant_key=make_grant_key(str(order_id), str(design_file_id))).all().items
        return results[0] if results else None

    def for_order(self, order_id: str) -> list[OrderDesignFile]:
        return self._dao.query.filter(order_id=str(order_id)).all().items

    def grant(self, order_id: str, design_file_id: str) -> tuple[OrderDesignFile, bool]:
        """Insert the grant if absent. Returns ``(grant, created)``."""
        order_id, design_file_id = str(order_id), str(design_file_id)
        with _grant_lock:
            existing = self.find_grant(order_id, design_file_id)
            if existing is not None:
                return existing, False
            grant = OrderDesignFile.create(order_id, design_file_id)
            self.add(grant)
            return grant, True
