"""DesignFile aggregate: deliverable assets attached to a product.

A product carries general files (valid whatever colour the customer picked)
and colour-variant files (one per predefined colour option, matched on hex).
Files produced ad hoc for a single order are flagged ``is_for_order`` and are
excluded from every catalogue lookup used for auto-delivery.
"""

import re
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from storefront.catalogue.events import DesignFileDeactivated, DesignFileRegistered
from storefront.domain import storefront

_HEX_PATTERN = re.compile(r"^#[0-9A-F]{6}$")


class FileType(Enum):
    PSD = "psd"
    AI = "ai"
    EPS = "eps"
    PDF = "pdf"
    SVG = "svg"
    ZIP = "zip"
    RAR = "rar"
    PNG = "png"
    JPG = "jpg"
    JPEG = "jpeg"
    GIF = "gif"
    WEBP = "webp"
    MP4 = "mp4"
    AVI = "avi"
    MOV = "mov"
    WMV = "wmv"
    FLV = "flv"
    WEBM = "webm"
    MKV = "mkv"


def normalize_hex(value: str | None) -> str | None:
    """Canonical ``#RRGGBB`` form: upper case, leading hash, 3-digit shorthand expanded."""
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lstrip("#").upper()
    if not cleaned:
        return None
    if len(cleaned) == 3:
        cleaned = "".join(ch * 2 for ch in cleaned)
    return f"#{cleaned}"


@storefront.aggregate
class DesignFile:
    """A downloadable asset for a product, optionally scoped to one colour or one order."""

    product_id: Identifier(required=True)
    file_name: String(required=True, max_length=255)
    file_url: String(required=True, max_length=1000)
    file_type: String(required=True, choices=FileType)
    file_size: Integer(min_value=0, default=0)
    mime_type: String(max_length=100)
    description: Text()
    is_color_variant: Boolean(default=False)
    color_variant_hex: String(max_length=7)
    is_for_order: Boolean(default=False)
    order_id: Identifier()
    is_active: Boolean(default=True)
    created_by: String(max_length=255)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def color_hex_present_only_for_variants(self):
        if self.is_color_variant and not self.color_variant_hex:
            raise ValidationError({"color_variant_hex": ["Colour-variant files require a colour hex"]})
        if not self.is_color_variant and self.color_variant_hex:
            raise ValidationError({"color_variant_hex": ["Only colour-variant files may carry a colour hex"]})

    @invariant.post
    def color_hex_must_be_canonical(self):
        if self.color_variant_hex and not _HEX_PATTERN.match(self.color_variant_hex):
            raise ValidationError({"color_variant_hex": [f"Invalid colour hex: {self.color_variant_hex}"]})

    @invariant.post
    def order_files_must_name_their_order(self):
        if self.is_for_order and not self.order_id:
            raise ValidationError({"order_id": ["Order-specific files must reference an order"]})

    @classmethod
    def register(
        cls,
        product_id,
        file_name,
        file_url,
        file_type,
        file_size=0,
        mime_type=None,
        description=None,
        is_color_variant=False,
        color_variant_hex=None,
        is_for_order=False,
        order_id=None,
        created_by=None,
    ):
        now = datetime.now(UTC)
        design_file = cls(
            product_id=product_id,
            file_name=file_name,
            file_url=file_url,
            file_type=(file_type or "").lower(),
            file_size=file_size or 0,
            mime_type=mime_type,
            description=description,
            is_color_variant=is_color_variant,
            color_variant_hex=normalize_hex(color_variant_hex) if is_color_variant else None,
            is_for_order=is_for_order,
            order_id=order_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        design_file.raise_(
            DesignFileRegistered(
                design_file_id=str(design_file.id),
                product_id=str(product_id),
                file_name=file_name,
                file_type=design_file.file_type,
                is_color_variant=design_file.is_color_variant,
                color_variant_hex=design_file.color_variant_hex,
                is_for_order=design_file.is_for_order,
                order_id=order_id,
                registered_at=now,
            )
        )
        return design_file

    def deactivate(self) -> None:
        """Soft-delete the file. Existing download grants keep pointing at it."""
        if not self.is_active:
            raise ValidationError({"is_active": ["Design file is already inactive"]})
        now = datetime.now(UTC)
        self.is_active = False
        self.updated_at = now
        self.raise_(
            DesignFileDeactivated(
                design_file_id=str(self.id),
                product_id=str(self.product_id),
                deactivated_at=now,
            )
        )


@storefront.repository(part_of=DesignFile)
class DesignFileRepository:
    """Catalogue queries used by delivery resolution.

    Every lookup is restricted to active, product-level files; order-specific
    files never leak into another order's auto-delivery decision.
    """

    def find_files(
        self,
        product_id: str,
        is_color_variant: bool,
        color_variant_hex: str | None = None,
    ) -> list[DesignFile]:
        criteria = {
            "product_id": str(product_id),
            "is_color_variant": is_color_variant,
            "is_for_order": False,
            "is_active": True,
        }
        if is_color_variant:
            hex_value = normalize_hex(color_variant_hex)
            if hex_value is None:
                return []
            criteria["color_variant_hex"] = hex_value
        return self._dao.query.filter(**criteria).all().items
